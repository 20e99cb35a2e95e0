from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from smoking_risk.certainty import engine
from smoking_risk.certainty.models import SelectedSymptom
from smoking_risk.config import DEFAULT_SETTINGS, EngineSettings
from smoking_risk.knowledge_base import KnowledgeBase, load_knowledge_base

logger = logging.getLogger(__name__)

MIN_CERTAINTY = engine.MIN_CERTAINTY
MAX_CERTAINTY = engine.MAX_CERTAINTY


class DiagnosisRequestError(ValueError):
    """A diagnosis request that cannot be handed to the engine.

    ``errors`` holds one ``{"field", "message"}`` entry per problem found.
    """

    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = errors
        super().__init__("; ".join(f"{item['field']}: {item['message']}" for item in errors))


def _get(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in mapping:
            return mapping[key]
    return None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_diagnosis_request(payload: Mapping[str, Any]) -> Tuple[Dict[str, Any], List[SelectedSymptom]]:
    """Validate a request body and split it into user data and symptom selections.

    Expected shape::

        {"user_data": {"name": ..., "age": ..., "smoking_years": ..., "cigarettes_per_day": ...},
         "selected_symptoms": [{"symptom_id": "G01", "certainty": 0.8}, ...]}

    camelCase keys (``userData``, ``selectedSymptoms``, ``symptomId``) are accepted.
    """
    errors: List[Dict[str, str]] = []
    if not isinstance(payload, Mapping):
        raise DiagnosisRequestError([{"field": "body", "message": "Request body must be an object"}])

    user_data = _get(payload, "user_data", "userData")
    if not isinstance(user_data, Mapping):
        errors.append({"field": "user_data", "message": "User data must be an object"})
        user_data = {}
    else:
        if _is_blank(user_data.get("name")):
            errors.append({"field": "user_data.name", "message": "Name is required"})
        if _is_blank(user_data.get("age")):
            errors.append({"field": "user_data.age", "message": "Age is required"})

    selected = _get(payload, "selected_symptoms", "selectedSymptoms")
    selections: List[SelectedSymptom] = []
    if not isinstance(selected, (list, tuple)) or len(selected) == 0:
        errors.append({"field": "selected_symptoms", "message": "Select at least one symptom"})
        selected = []

    for index, item in enumerate(selected):
        field = f"selected_symptoms[{index}]"
        if not isinstance(item, Mapping):
            errors.append({"field": field, "message": "Each selection must be an object"})
            continue
        symptom_id = _get(item, "symptom_id", "symptomId")
        if _is_blank(symptom_id):
            errors.append({"field": f"{field}.symptom_id", "message": "Symptom id is required"})
            continue
        certainty = _get(item, "certainty", "user_certainty", "userCertainty")
        try:
            certainty = float(certainty)
        except (TypeError, ValueError):
            certainty = None
        if certainty is None or not MIN_CERTAINTY <= certainty <= MAX_CERTAINTY:
            errors.append(
                {
                    "field": f"{field}.certainty",
                    "message": f"Certainty must be between {MIN_CERTAINTY} and {MAX_CERTAINTY}",
                }
            )
            continue
        selections.append(SelectedSymptom(str(symptom_id).strip(), certainty))

    if errors:
        raise DiagnosisRequestError(errors)
    return dict(user_data), selections


def process_diagnosis(
    payload: Mapping[str, Any],
    knowledge_base: Optional[KnowledgeBase] = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> Dict[str, Any]:
    """Validate ``payload`` and run the full CF pipeline on it.

    Returns plain dicts ready for JSON: ``results``, ``summary`` and
    ``risk_factor``. Storing them is left to the caller.
    """
    try:
        user_data, selections = parse_diagnosis_request(payload)
    except DiagnosisRequestError as exc:
        logger.warning("Rejected diagnosis request: %s", exc)
        raise

    kb = knowledge_base if knowledge_base is not None else load_knowledge_base(settings.data_dir)
    inference_inputs = dict(user_data)
    inference_inputs["selected_symptoms"] = selections
    result = engine.run_inference(inference_inputs, knowledge_base=kb, settings=settings)

    summary = result["summary"]
    primary = summary["primary_diagnosis"]
    logger.info(
        "Diagnosis for %d symptom(s): %s (%s risk), risk factor %.3f",
        len(selections),
        primary["disease"]["id"] if primary else "no match",
        summary["risk_level"],
        result["risk_factor"],
    )
    return {
        "results": result["results"],
        "summary": summary,
        "risk_factor": result["risk_factor"],
    }
