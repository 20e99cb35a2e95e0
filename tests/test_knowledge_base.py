from __future__ import annotations

import pytest

from smoking_risk.knowledge_base import (
    KnowledgeBaseError,
    build_knowledge_base,
    load_knowledge_base,
    parse_json_column,
)

SYMPTOMS = [{"id": "S1", "category": "respiratory"}, {"id": "S2", "category": "pain"}]
DISEASES = [{"id": "D1", "name": "Bronchitis", "severity": "moderate"}]


def _rule(**overrides):
    row = {"id": "R1", "symptom_id": "S1", "disease_id": "D1", "mb": 0.8, "md": 0.1, "weight": 1.0}
    row.update(overrides)
    return row


def test_shipped_dataset(kb):
    assert len(kb.symptoms) == 33
    assert len(kb.diseases) == 8
    assert len(kb.rules) == 56
    assert kb.symptom("G07").category == "pain"
    lung = kb.disease("P1")
    assert lung.name == "Lung Cancer"
    assert lung.severity == "critical"
    assert "Quit smoking" in lung.prevention
    assert lung.statistics["mortalityRate"] == "80-85%"


def test_rules_for_disease_are_sorted(kb):
    rules = kb.rules_for_disease("P4")
    assert [rule.id for rule in rules] == sorted(rule.id for rule in rules)
    assert {rule.disease_id for rule in rules} == {"P4"}
    assert kb.rules_for_disease("P99") == []


def test_load_is_cached():
    assert load_knowledge_base() is load_knowledge_base()


def test_symptoms_by_category(small_kb):
    grouped = small_kb.symptoms_by_category()
    assert list(grouped) == ["respiratory", "pain", "other"]
    assert [item.id for item in grouped["other"]] == ["S3"]


def test_to_frames(kb):
    frames = kb.to_frames()
    assert list(frames) == ["symptoms", "diseases", "rules"]
    assert len(frames["rules"]) == 56
    assert frames["rules"]["mb"].between(0, 1).all()


def test_camel_case_rows(small_kb):
    rule = next(item for item in small_kb.rules if item.id == "R2")
    assert (rule.symptom_id, rule.disease_id) == ("S1", "D2")


def test_missing_weight_defaults_to_one(small_kb):
    rule = next(item for item in small_kb.rules if item.id == "R3")
    assert rule.weight == 1.0


@pytest.mark.parametrize(
    "rules, message",
    [
        ([_rule(), _rule()], "Duplicate rule ids"),
        ([_rule(symptom_id="S9")], "unknown symptom"),
        ([_rule(disease_id="D9")], "unknown disease"),
        ([_rule(), _rule(id="R2")], "both link"),
        ([_rule(mb=1.2)], "must lie in [0, 1]"),
        ([_rule(md=-0.1)], "must lie in [0, 1]"),
        ([_rule(weight="heavy")], "must be a number"),
        ([_rule(mb=None)], "'mb' is required"),
    ],
)
def test_invalid_rules_are_rejected(rules, message):
    with pytest.raises(KnowledgeBaseError, match=message.replace("[", r"\[").replace("]", r"\]")):
        build_knowledge_base(SYMPTOMS, DISEASES, rules)


def test_unknown_severity_is_rejected():
    with pytest.raises(KnowledgeBaseError, match="unknown severity"):
        build_knowledge_base(SYMPTOMS, [{"id": "D1", "name": "X", "severity": "extreme"}], [])


def test_duplicate_symptoms_are_rejected():
    with pytest.raises(KnowledgeBaseError, match="Duplicate symptom ids: S1"):
        build_knowledge_base(SYMPTOMS + [{"id": "S1"}], DISEASES, [])


def test_missing_file(tmp_path):
    with pytest.raises(KnowledgeBaseError, match="Missing knowledge base file"):
        load_knowledge_base(tmp_path)


def test_missing_column(tmp_path):
    (tmp_path / "symptoms.csv").write_text("id,name\nS1,Cough\n", encoding="utf-8")
    with pytest.raises(KnowledgeBaseError, match="missing columns: category"):
        load_knowledge_base(tmp_path)


def test_load_from_directory(tmp_path):
    (tmp_path / "symptoms.csv").write_text("id,name,category\nS1,Cough,respiratory\n", encoding="utf-8")
    (tmp_path / "diseases.csv").write_text(
        'id,name,severity,prevention\nD1,Bronchitis,Moderate,"[""Rest""]"\n', encoding="utf-8"
    )
    (tmp_path / "rules.csv").write_text("id,symptom_id,disease_id,mb,md\nR1,S1,D1,0.7, 0.1\n", encoding="utf-8")
    kb = load_knowledge_base(tmp_path)
    assert kb.disease("D1").severity == "moderate"
    assert kb.disease("D1").prevention == ("Rest",)
    assert kb.rules[0].md == 0.1


@pytest.mark.parametrize(
    "value, expected",
    [
        ('["a", "b"]', ["a", "b"]),
        ('{"k": 1}', {"k": 1}),
        ("", []),
        (None, []),
        ("not json", []),
        (["already"], ["already"]),
    ],
)
def test_parse_json_column(value, expected):
    assert parse_json_column(value, []) == expected
