from __future__ import annotations

import pytest

from smoking_risk.certainty import engine
from smoking_risk.certainty.models import SelectedSymptom
from smoking_risk.knowledge_base import build_knowledge_base


def _diagnose(kb, selections):
    return engine.diagnose(selections, kb.diseases, kb.rules, kb.symptoms)


def test_single_strong_symptom(kb):
    results = _diagnose(kb, [SelectedSymptom("G07", 1.0)])
    assert [item.disease.id for item in results] == ["P4"]
    top = results[0]
    assert top.aggregate_cf == pytest.approx(0.97)
    assert top.adjusted_cf == top.aggregate_cf
    assert top.percentage == 97.0
    assert top.confidence == "certain"
    assert [item.rule_id for item in top.evidences] == ["R27"]


def test_certainty_scales_evidence(kb):
    results = _diagnose(kb, [SelectedSymptom("G07", 0.5)])
    assert results[0].aggregate_cf == pytest.approx(0.485)


def test_certainty_is_clamped(kb):
    low = _diagnose(kb, [SelectedSymptom("G07", 0.05)])
    high = _diagnose(kb, [SelectedSymptom("G07", 3.0)])
    assert low[0].evidences[0].certainty == 0.2
    assert high[0].evidences[0].certainty == 1.0


def test_multiple_symptoms_rank_by_cf(kb):
    results = _diagnose(kb, [{"symptom_id": "G01", "certainty": 1.0}, {"symptom_id": "G03", "certainty": 1.0}])
    assert [item.disease.id for item in results] == ["P5", "P1", "P7", "P4"]
    by_id = {item.disease.id: item for item in results}
    assert by_id["P1"].aggregate_cf == pytest.approx(0.63 + 0.7125 - 0.63 * 0.7125)
    assert by_id["P5"].aggregate_cf == pytest.approx(0.736 + 0.92 - 0.736 * 0.92)
    assert by_id["P4"].aggregate_cf == pytest.approx(0.578)


def test_disease_without_matching_rule_is_left_out(small_kb):
    results = _diagnose(small_kb, [SelectedSymptom("S2", 1.0)])
    assert [item.disease.id for item in results] == ["D1"]


def test_symptom_without_rule_gives_empty_result(small_kb):
    assert _diagnose(small_kb, [SelectedSymptom("S3", 1.0)]) == []


def test_no_selection_gives_empty_result(kb):
    assert _diagnose(kb, []) == []


def test_unknown_symptom_is_ignored(kb):
    results = _diagnose(kb, [SelectedSymptom("G99", 1.0), SelectedSymptom("G07", 1.0)])
    assert [item.disease.id for item in results] == ["P4"]


def test_last_duplicate_selection_wins(kb):
    results = _diagnose(kb, [SelectedSymptom("G07", 1.0), SelectedSymptom("G07", 0.5)])
    assert results[0].evidences[0].certainty == 0.5


def test_tie_broken_by_severity(small_kb):
    results = _diagnose(small_kb, [SelectedSymptom("S1", 1.0)])
    assert [item.disease.id for item in results] == ["D2", "D1"]
    assert results[0].adjusted_cf == results[1].adjusted_cf


def test_combined_evidence_beats_severity(small_kb):
    results = _diagnose(small_kb, [SelectedSymptom("S1", 1.0), SelectedSymptom("S2", 1.0)])
    assert [item.disease.id for item in results] == ["D1", "D2"]
    assert results[0].aggregate_cf == pytest.approx(0.8)


def test_selection_order_does_not_matter(kb):
    selections = [SelectedSymptom("G12", 0.6), SelectedSymptom("G01", 0.8), SelectedSymptom("G17", 0.4)]
    forward = _diagnose(kb, selections)
    backward = _diagnose(kb, list(reversed(selections)))
    assert [item.to_dict() for item in forward] == [item.to_dict() for item in backward]


def test_numeric_rule_ids_collect_in_natural_order():
    kb = build_knowledge_base(
        symptoms=[{"id": "S1"}, {"id": "S2"}],
        diseases=[{"id": "D1", "name": "Bronchitis", "severity": "moderate"}],
        rules=[
            {"id": 10, "symptom_id": "S1", "disease_id": "D1", "mb": 0.8, "md": 0.1},
            {"id": 9, "symptom_id": "S2", "disease_id": "D1", "mb": 0.6, "md": 0.1},
        ],
    )
    assert [rule.id for rule in kb.rules_for_disease("D1")] == ["9", "10"]
    results = _diagnose(kb, [SelectedSymptom("S1", 1.0), SelectedSymptom("S2", 1.0)])
    assert [item.rule_id for item in results[0].evidences] == ["9", "10"]
