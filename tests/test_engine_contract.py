from __future__ import annotations

import json

import pytest

from smoking_risk.certainty import engine
from smoking_risk.config import EngineSettings


def test_get_inputs_schema(kb):
    inputs = engine.get_inputs(kb)
    sliders = [item for item in inputs if item["type"] == "slider"]
    selects = [item for item in inputs if item["type"] == "selectbox"]
    assert [item["name"] for item in sliders] == ["age", "smoking_years", "cigarettes_per_day"]
    assert len(selects) == 33
    assert {item["category"] for item in selects} == {
        "respiratory", "pain", "systemic", "cardiovascular", "neurological", "oral", "reproductive",
    }
    assert selects[0]["options"][0] == "No"
    assert engine.CERTAINTY_LEVELS[selects[0]["options"][-1]] == 1.0


def test_selections_from_form_values(kb):
    selections = engine.selections_from_inputs(
        {"age": 40, "G01": "No", "G07": "Very sure", "G12": "Fairly sure", "G20": 0.6}, kb
    )
    assert [(item.symptom_id, item.certainty) for item in selections] == [
        ("G07", 1.0), ("G12", 0.4), ("G20", 0.6),
    ]


def test_run_inference_from_form(kb):
    result = engine.run_inference(
        {"name": "Sam", "age": 20, "smoking_years": 0, "cigarettes_per_day": 0, "G07": "Very sure"},
        knowledge_base=kb,
    )
    assert result["risk_percentage"] == 97.0
    assert result["risk_level"] == "High"
    assert result["risk_factor"] == 0.0
    assert result["all_scores"] == {"Heart Attack": 97.0}
    assert result["rule_trace"][0]["rule"].endswith("THEN Heart Attack (R27)")
    assert result["summary"]["user_profile"]["name"] == "Sam"
    assert "Heart Attack" in result["plain_summary"]
    assert result["recommendation"] == engine.RECOMMENDATIONS["high"]


def test_run_inference_without_match(small_kb):
    result = engine.run_inference({"age": 35, "S3": "Sure"}, knowledge_base=small_kb)
    assert result["risk_percentage"] == 0.0
    assert result["risk_level"] == "Low"
    assert result["all_scores"] == {}
    assert result["results"] == []
    assert result["recommendation"] == engine.NO_MATCH_RECOMMENDATION


def test_run_inference_respects_settings(kb):
    settings = EngineSettings(max_alternatives=1, percentage_decimals=0)
    result = engine.run_inference(
        {"age": 60, "selected_symptoms": [{"symptom_id": "G01", "certainty": 0.8}, {"symptom_id": "G03", "certainty": 0.8}]},
        knowledge_base=kb,
        settings=settings,
    )
    assert len(result["summary"]["alternative_diagnoses"]) == 1
    assert result["risk_percentage"] == pytest.approx(round(result["risk_percentage"]))
    assert len(result["all_scores"]) == 4


def test_run_inference_is_repeatable(kb):
    user_data = {"age": 52, "smoking_years": 30, "cigarettes_per_day": 25, "G01": "Sure", "G04": "Quite sure"}
    first = engine.run_inference(dict(user_data), knowledge_base=kb)
    second = engine.run_inference(dict(user_data), knowledge_base=kb)
    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)


def test_reasoning_describes_risk_effect(kb):
    unchanged = engine.run_inference({"age": 20, "G07": "Very sure"}, knowledge_base=kb)
    assert "leaves it at" in unchanged["reasoning"]
    assert "raises it to" not in unchanged["reasoning"]

    raised = engine.run_inference(
        {"age": 60, "smoking_years": 30, "cigarettes_per_day": 20, "G07": "Sure"}, knowledge_base=kb
    )
    assert "raises it to" in raised["reasoning"]
