"""
Typed records shared by the certainty factor engine and its callers.

Rows coming from CSV files, database cursors or JSON bodies are loosely shaped;
``from_dict`` accepts both snake_case and camelCase keys so the boundary can
hand them over as-is. Every record is frozen: results are rebuilt, never mutated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple


SEVERITY_ORDER: Dict[str, int] = {"critical": 0, "high": 1, "moderate": 2, "low": 3}


def _pick(row: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in row and row[key] is not None:
            return row[key]
    return default


def _to_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_non_negative_int(value: Any) -> int:
    """Parse ``value`` the lenient way a form field is read: junk becomes 0."""
    if isinstance(value, bool):
        return int(value)
    try:
        number = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, number)


def severity_rank(severity: str) -> int:
    return SEVERITY_ORDER.get(str(severity).strip().lower(), len(SEVERITY_ORDER))


def rule_sort_key(rule_id: str) -> Tuple[Tuple[Any, ...], str]:
    """Order rule ids naturally: "R9" before "R10", "9" before "10"."""
    chunks = re.split(r"(\d+)", rule_id)
    return tuple(int(chunk) if index % 2 else chunk for index, chunk in enumerate(chunks)), rule_id


@dataclass(frozen=True)
class Symptom:
    id: str
    code: str
    name: str = ""
    description: str = ""
    category: str = ""
    mb: float = 0.5
    md: float = 0.1

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "Symptom":
        symptom_id = str(_pick(row, "id", "code", default="")).strip()
        return cls(
            id=symptom_id,
            code=str(_pick(row, "code", default=symptom_id)).strip(),
            name=str(_pick(row, "name", default="")),
            description=str(_pick(row, "description", default="")),
            category=str(_pick(row, "category", default="")).strip(),
            mb=_to_float(_pick(row, "mb"), 0.5),
            md=_to_float(_pick(row, "md"), 0.1),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "mb": self.mb,
            "md": self.md,
        }


@dataclass(frozen=True)
class Disease:
    id: str
    code: str
    name: str
    description: str = ""
    probability: float = 0.5
    severity: str = "moderate"
    prevention: Tuple[str, ...] = ()
    treatment: Tuple[str, ...] = ()
    statistics: Mapping[str, Any] = field(default_factory=dict)

    @property
    def severity_rank(self) -> int:
        return severity_rank(self.severity)

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "Disease":
        disease_id = str(_pick(row, "id", "code", default="")).strip()
        statistics = _pick(row, "statistics", default={})
        return cls(
            id=disease_id,
            code=str(_pick(row, "code", default=disease_id)).strip(),
            name=str(_pick(row, "name", default=disease_id)),
            description=str(_pick(row, "description", default="")),
            probability=_to_float(_pick(row, "probability"), 0.5),
            severity=str(_pick(row, "severity", default="moderate")).strip().lower(),
            prevention=tuple(str(item) for item in _pick(row, "prevention", default=[]) or []),
            treatment=tuple(str(item) for item in _pick(row, "treatment", default=[]) or []),
            statistics=dict(statistics) if isinstance(statistics, Mapping) else {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "probability": self.probability,
            "severity": self.severity,
            "prevention": list(self.prevention),
            "treatment": list(self.treatment),
            "statistics": dict(self.statistics),
        }


@dataclass(frozen=True)
class Rule:
    """Expert rule ``IF symptom THEN disease`` with belief, disbelief and weight."""

    id: str
    symptom_id: str
    disease_id: str
    mb: float
    md: float
    weight: float = 1.0

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "Rule":
        return cls(
            id=str(_pick(row, "id", default="")).strip(),
            symptom_id=str(_pick(row, "symptom_id", "symptomId", default="")).strip(),
            disease_id=str(_pick(row, "disease_id", "diseaseId", default="")).strip(),
            mb=_to_float(_pick(row, "mb"), 0.0),
            md=_to_float(_pick(row, "md"), 0.0),
            weight=_to_float(_pick(row, "weight"), 1.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symptom_id": self.symptom_id,
            "disease_id": self.disease_id,
            "mb": self.mb,
            "md": self.md,
            "weight": self.weight,
        }


@dataclass(frozen=True)
class SelectedSymptom:
    symptom_id: str
    certainty: float = 1.0

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "SelectedSymptom":
        return cls(
            symptom_id=str(_pick(row, "symptom_id", "symptomId", "id", default="")).strip(),
            certainty=_to_float(_pick(row, "certainty", "user_certainty", "userCertainty"), 1.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"symptom_id": self.symptom_id, "certainty": self.certainty}


@dataclass(frozen=True)
class RiskProfile:
    age: int = 0
    smoking_years: int = 0
    cigarettes_per_day: int = 0

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "RiskProfile":
        return cls(
            age=_to_non_negative_int(_pick(row, "age", default=0)),
            smoking_years=_to_non_negative_int(
                _pick(row, "smoking_years", "smokingYears", default=0)
            ),
            cigarettes_per_day=_to_non_negative_int(
                _pick(row, "cigarettes_per_day", "cigarettesPerDay", default=0)
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "age": self.age,
            "smoking_years": self.smoking_years,
            "cigarettes_per_day": self.cigarettes_per_day,
        }


@dataclass(frozen=True)
class Evidence:
    rule_id: str
    symptom_id: str
    disease_id: str
    rule_cf: float
    certainty: float
    cf: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "symptom_id": self.symptom_id,
            "disease_id": self.disease_id,
            "rule_cf": self.rule_cf,
            "certainty": self.certainty,
            "cf": self.cf,
        }


@dataclass(frozen=True)
class DiagnosisResult:
    disease: Disease
    aggregate_cf: float
    adjusted_cf: float
    percentage: float
    confidence: str
    evidences: Tuple[Evidence, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "disease": self.disease.to_dict(),
            "aggregate_cf": self.aggregate_cf,
            "adjusted_cf": self.adjusted_cf,
            "percentage": self.percentage,
            "confidence": self.confidence,
            "matched_symptoms": [item.symptom_id for item in self.evidences],
            "evidences": [item.to_dict() for item in self.evidences],
        }


@dataclass(frozen=True)
class DiagnosisSummary:
    primary_diagnosis: Optional[DiagnosisResult]
    alternative_diagnoses: Tuple[DiagnosisResult, ...]
    total_matched: int
    risk_level: str
    risk_score: float
    risk_factor_level: str
    risk_description: str
    recommendation: str
    user_profile: Mapping[str, Any] = field(default_factory=dict)

    @property
    def has_diagnosis(self) -> bool:
        return self.primary_diagnosis is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary_diagnosis": (
                self.primary_diagnosis.to_dict() if self.primary_diagnosis else None
            ),
            "alternative_diagnoses": [item.to_dict() for item in self.alternative_diagnoses],
            "total_matched": self.total_matched,
            "risk_level": self.risk_level,
            "risk_score": self.risk_score,
            "risk_factor_level": self.risk_factor_level,
            "risk_description": self.risk_description,
            "recommendation": self.recommendation,
            "user_profile": dict(self.user_profile),
        }
