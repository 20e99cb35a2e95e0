"""
Smoking-related disease engine based on the Certainty Factor (CF) method.

Expert rules ``IF symptom THEN disease`` carry a measure of belief (MB), a
measure of disbelief (MD) and a weight. Each selected symptom is scaled by how
sure the user is about it, the evidences of a disease are folded with the CF
combination law, and the behavioural risk factor is blended in as one more
positive evidence.

Implements get_inputs() and run_inference(user_data) for the Streamlit page.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from smoking_risk.certainty.models import (
    DiagnosisResult,
    DiagnosisSummary,
    Disease,
    Evidence,
    RiskProfile,
    Rule,
    SelectedSymptom,
    Symptom,
    rule_sort_key,
)
from smoking_risk.certainty.risk import (
    calculate_risk_factor,
    classify_risk_factor,
    describe_risk_factor,
)
from smoking_risk.config import DEFAULT_SETTINGS, EngineSettings
from smoking_risk.knowledge_base import KnowledgeBase, load_knowledge_base

logger = logging.getLogger(__name__)

# ── Certainty vocabulary ────────────────────────────────────────────────

MIN_CERTAINTY = 0.2
MAX_CERTAINTY = 1.0

CERTAINTY_LEVELS: Dict[str, float] = {
    "No": 0.0,
    "Slightly sure": 0.2,
    "Fairly sure": 0.4,
    "Quite sure": 0.6,
    "Sure": 0.8,
    "Very sure": 1.0,
}

# Lower bound of each band, checked top-down against the adjusted CF.
CONFIDENCE_BANDS: Tuple[Tuple[float, str], ...] = (
    (0.8, "certain"),
    (0.6, "almost certain"),
    (0.4, "probable"),
    (0.2, "possible"),
)
NO_CONFIDENCE = "uncertain"

RECOMMENDATIONS: Dict[str, str] = {
    "low": "Keep monitoring your symptoms and stay away from tobacco smoke.",
    "moderate": "Arrange a check-up with a doctor and start a plan to quit smoking.",
    "high": "See a doctor promptly for a full examination; your symptoms match a serious condition.",
}
NO_MATCH_RECOMMENDATION = (
    "None of the selected symptoms match a smoking-related disease in the knowledge base. "
    "See a doctor if the symptoms persist."
)


def _clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    """Bound ``value`` to [low, high]; NaN carries no belief and maps to 0 (or ``low`` if 0 is out of range)."""
    if math.isnan(value):
        return min(max(0.0, low), high)
    return max(low, min(high, value))


# ── CF arithmetic ───────────────────────────────────────────────────────

def cf_rule(rule: Rule) -> float:
    """CF of the rule itself: ``(mb - md) * weight`` bounded to [-1, 1]."""
    mb = _clamp(rule.mb, 0.0, 1.0)
    md = _clamp(rule.md, 0.0, 1.0)
    weight = _clamp(rule.weight, 0.0, 1.0)
    return _clamp((mb - md) * weight)


def combine_cf(cf1: float, cf2: float) -> float:
    """Combine two certainty factors.

    Same-sign cases use the expanded forms ``cf1 + cf2 - cf1*cf2`` and
    ``cf1 + cf2 + cf1*cf2`` so the result does not depend on argument order
    even in floating point.
    """
    if cf1 >= 0 and cf2 >= 0:
        combined = (cf1 + cf2) - cf1 * cf2
    elif cf1 < 0 and cf2 < 0:
        combined = (cf1 + cf2) + cf1 * cf2
    else:
        denominator = 1.0 - min(abs(cf1), abs(cf2))
        if denominator <= 0.0:
            # Full belief against full disbelief cancels out.
            return 0.0
        combined = (cf1 + cf2) / denominator
    return _clamp(combined)


def combine_evidences(evidences: Sequence[Evidence]) -> float:
    """Fold evidences in ascending (natural) rule id order; an empty sequence yields 0."""
    ordered = sorted(evidences, key=lambda item: rule_sort_key(item.rule_id))
    if not ordered:
        return 0.0
    combined = ordered[0].cf
    for item in ordered[1:]:
        combined = combine_cf(combined, item.cf)
    return combined


def adjust_cf(aggregate: float, risk_score: float) -> float:
    """Treat the risk score as one more positive evidence; net disbelief is left alone."""
    if aggregate < 0:
        return _clamp(aggregate)
    risk = _clamp(risk_score, 0.0, 1.0)
    return _clamp(aggregate + risk * (1.0 - aggregate))


def to_percentage(cf: float, decimals: int = DEFAULT_SETTINGS.percentage_decimals) -> float:
    return round(max(0.0, cf) * 100.0, decimals)


def classify_confidence(cf: float) -> str:
    for lower_bound, label in CONFIDENCE_BANDS:
        if cf >= lower_bound:
            return label
    return NO_CONFIDENCE


def classify_risk_level(cf: Optional[float], settings: EngineSettings = DEFAULT_SETTINGS) -> str:
    if cf is None:
        return "low"
    if cf >= settings.high_risk_threshold:
        return "high"
    if cf >= settings.moderate_risk_threshold:
        return "moderate"
    return "low"


def rank_results(results: Iterable[DiagnosisResult]) -> List[DiagnosisResult]:
    """Highest adjusted CF first, then the more severe disease, then disease id."""
    return sorted(
        results,
        key=lambda item: (-item.adjusted_cf, item.disease.severity_rank, item.disease.id),
    )


# ── Core inference ──────────────────────────────────────────────────────

def _as_selection(item: Union[SelectedSymptom, Mapping[str, Any]]) -> SelectedSymptom:
    if isinstance(item, SelectedSymptom):
        return item
    return SelectedSymptom.from_dict(item)


def _selected_certainties(
    selected_symptoms: Iterable[Union[SelectedSymptom, Mapping[str, Any]]],
    symptoms: Iterable[Symptom],
) -> Dict[str, float]:
    known = {symptom.id for symptom in symptoms}
    certainties: Dict[str, float] = {}
    for item in selected_symptoms:
        selection = _as_selection(item)
        if selection.symptom_id not in known:
            logger.debug("Ignoring unknown symptom id %r", selection.symptom_id)
            continue
        certainties[selection.symptom_id] = _clamp(selection.certainty, MIN_CERTAINTY, MAX_CERTAINTY)
    return certainties


def collect_evidences(
    disease: Disease,
    rules: Iterable[Rule],
    certainties: Mapping[str, float],
) -> List[Evidence]:
    evidences: List[Evidence] = []
    for rule in rules:
        if rule.disease_id != disease.id or rule.symptom_id not in certainties:
            continue
        rule_cf = cf_rule(rule)
        certainty = certainties[rule.symptom_id]
        evidences.append(
            Evidence(
                rule_id=rule.id,
                symptom_id=rule.symptom_id,
                disease_id=disease.id,
                rule_cf=rule_cf,
                certainty=certainty,
                cf=_clamp(rule_cf * certainty),
            )
        )
    evidences.sort(key=lambda item: rule_sort_key(item.rule_id))
    return evidences


def diagnose(
    selected_symptoms: Iterable[Union[SelectedSymptom, Mapping[str, Any]]],
    diseases: Iterable[Disease],
    rules: Iterable[Rule],
    symptoms: Iterable[Symptom],
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> List[DiagnosisResult]:
    """Aggregate CF per disease for the selected symptoms.

    Diseases without a single matching rule are left out, so a selection with
    no rule coverage gives an empty list. ``adjusted_cf`` equals the aggregate
    until ``adjust_diagnosis_with_risk`` is applied.
    """
    rules = tuple(rules)
    certainties = _selected_certainties(selected_symptoms, symptoms)

    results: List[DiagnosisResult] = []
    for disease in diseases:
        evidences = collect_evidences(disease, rules, certainties)
        if not evidences:
            continue
        aggregate = combine_evidences(evidences)
        results.append(
            DiagnosisResult(
                disease=disease,
                aggregate_cf=aggregate,
                adjusted_cf=aggregate,
                percentage=to_percentage(aggregate, settings.percentage_decimals),
                confidence=classify_confidence(aggregate),
                evidences=tuple(evidences),
            )
        )
    return rank_results(results)


def adjust_diagnosis_with_risk(
    results: Iterable[DiagnosisResult],
    risk_score: float,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> List[DiagnosisResult]:
    """Blend ``risk_score`` into each result, returning new ranked records."""
    adjusted_results = []
    for result in results:
        adjusted = adjust_cf(result.aggregate_cf, risk_score)
        adjusted_results.append(
            replace(
                result,
                adjusted_cf=adjusted,
                percentage=to_percentage(adjusted, settings.percentage_decimals),
                confidence=classify_confidence(adjusted),
            )
        )
    return rank_results(adjusted_results)


def create_diagnosis_summary(
    adjusted_results: Iterable[DiagnosisResult],
    user_profile: Union[RiskProfile, Mapping[str, Any], None],
    risk_score: float,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> DiagnosisSummary:
    ranked = rank_results(adjusted_results)
    primary = ranked[0] if ranked else None
    alternatives = tuple(ranked[1 : 1 + settings.max_alternatives])

    if isinstance(user_profile, RiskProfile):
        profile = user_profile.to_dict()
    else:
        profile = dict(user_profile or {})

    risk_level = classify_risk_level(primary.adjusted_cf if primary else None, settings)
    recommendation = RECOMMENDATIONS[risk_level] if primary else NO_MATCH_RECOMMENDATION

    return DiagnosisSummary(
        primary_diagnosis=primary,
        alternative_diagnoses=alternatives,
        total_matched=len(ranked),
        risk_level=risk_level,
        risk_score=risk_score,
        risk_factor_level=classify_risk_factor(risk_score, settings.risk),
        risk_description=describe_risk_factor(risk_score, settings.risk),
        recommendation=recommendation,
        user_profile=profile,
    )


# ── UI contract ─────────────────────────────────────────────────────────

def _knowledge_base(
    knowledge_base: Optional[KnowledgeBase] = None, data_dir: Optional[str] = None
) -> KnowledgeBase:
    return knowledge_base if knowledge_base is not None else load_knowledge_base(data_dir)


def get_inputs(knowledge_base: Optional[KnowledgeBase] = None) -> List[Dict]:
    """Risk profile sliders followed by one certainty select box per symptom."""
    kb = _knowledge_base(knowledge_base)
    inputs: List[Dict] = [
        {
            "type": "slider", "name": "age",
            "label": "Age", "unit": "years",
            "min": 10, "max": 100, "default": 30,
            "help": "Your age in years.",
        },
        {
            "type": "slider", "name": "smoking_years",
            "label": "Years of smoking", "unit": "years",
            "min": 0, "max": 70, "default": 0,
            "help": "How many years you have been smoking.",
        },
        {
            "type": "slider", "name": "cigarettes_per_day",
            "label": "Cigarettes per day", "unit": "cigarettes",
            "min": 0, "max": 60, "default": 0,
            "help": "Average number of cigarettes smoked per day.",
        },
    ]
    for category, symptoms in kb.symptoms_by_category().items():
        for symptom in symptoms:
            inputs.append(
                {
                    "type": "selectbox",
                    "name": symptom.id,
                    "label": f"{symptom.code} {symptom.name}",
                    "unit": "",
                    "help": symptom.description,
                    "category": category,
                    "options": list(CERTAINTY_LEVELS),
                }
            )
    return inputs


def _certainty_from_input(value: Any) -> float:
    if isinstance(value, str):
        if value in CERTAINTY_LEVELS:
            return CERTAINTY_LEVELS[value]
        try:
            return float(value)
        except ValueError:
            return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


def selections_from_inputs(
    user_data: Mapping[str, Any], knowledge_base: Optional[KnowledgeBase] = None
) -> List[SelectedSymptom]:
    """Pick the symptom answers out of a flat form dict; "No" answers are skipped."""
    kb = _knowledge_base(knowledge_base)
    explicit = user_data.get("selected_symptoms")
    if explicit is not None:
        return [_as_selection(item) for item in explicit]

    selections = []
    for symptom in kb.symptoms:
        certainty = _certainty_from_input(user_data.get(symptom.id, 0.0))
        if certainty > 0:
            selections.append(SelectedSymptom(symptom.id, certainty))
    return selections


def _rule_trace(results: Sequence[DiagnosisResult], symptom_names: Mapping[str, str]) -> List[Dict]:
    trace = []
    for result in results:
        for item in result.evidences:
            trace.append(
                {
                    "rule": (
                        f"IF {symptom_names.get(item.symptom_id, item.symptom_id)} "
                        f"THEN {result.disease.name} ({item.rule_id})"
                    ),
                    "strength": round(item.cf, 2),
                }
            )
    trace.sort(key=lambda row: row["strength"], reverse=True)
    return trace


def run_inference(
    user_data: Dict,
    knowledge_base: Optional[KnowledgeBase] = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> Dict:
    """Process user data through the CF engine. Returns standardised result dict."""
    kb = _knowledge_base(knowledge_base, settings.data_dir)
    profile = RiskProfile.from_dict(user_data)
    selections = selections_from_inputs(user_data, kb)

    risk_score = calculate_risk_factor(profile, settings.risk)
    raw_results = diagnose(selections, kb.diseases, kb.rules, kb.symptoms, settings)
    results = adjust_diagnosis_with_risk(raw_results, risk_score, settings)
    user_profile = profile.to_dict()
    if user_data.get("name"):
        user_profile["name"] = str(user_data["name"]).strip()
    summary = create_diagnosis_summary(results, user_profile, risk_score, settings)

    symptom_names = {symptom.id: symptom.name for symptom in kb.symptoms}
    risk_factor_pct = to_percentage(risk_score, settings.percentage_decimals)

    # Early exit when no rule matched
    if summary.primary_diagnosis is None:
        return {
            "risk_percentage": 0.0,
            "risk_level": "Low",
            "recommendation": summary.recommendation,
            "reasoning": (
                f"No rule matched the {len(selections)} selected symptom(s). "
                f"Behavioural risk factor is {risk_factor_pct:.1f}%."
            ),
            "all_scores": {},
            "rule_trace": [],
            "plain_summary": "No smoking-related disease pattern detected for the selected symptoms.",
            "results": [],
            "summary": summary.to_dict(),
            "risk_factor": risk_score,
        }

    top = summary.primary_diagnosis
    matched = [symptom_names.get(item.symptom_id, item.symptom_id) for item in top.evidences]
    effect = "raises it to" if top.adjusted_cf > top.aggregate_cf else "leaves it at"
    reasoning = (
        f"Based on {', '.join(matched)}, the rules give {top.disease.name} an aggregate CF of "
        f"{top.aggregate_cf:.3f}; a behavioural risk factor of {risk_factor_pct:.1f}% {effect} "
        f"{top.adjusted_cf:.3f} ({top.confidence})."
    )
    if summary.alternative_diagnoses:
        runner_up = summary.alternative_diagnoses[0]
        reasoning += f" Next most likely: {runner_up.disease.name} ({runner_up.percentage:.1f}%)."

    return {
        "risk_percentage": top.percentage,
        "risk_level": summary.risk_level.title(),
        "recommendation": summary.recommendation,
        "reasoning": reasoning,
        "all_scores": {item.disease.name: item.percentage for item in results},
        "rule_trace": _rule_trace(results, symptom_names),
        "plain_summary": (
            f"Assessment suggests {top.disease.name} as the leading condition "
            f"with {summary.risk_level} risk at {top.percentage:.1f}%."
        ),
        "results": [item.to_dict() for item in results],
        "summary": summary.to_dict(),
        "risk_factor": risk_score,
    }
