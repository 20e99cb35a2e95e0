"""
Read-only knowledge base: symptoms, diseases and the CF rules linking them.

The shipped dataset lives in ``certainty/data/*.csv``. Rows from any other
source (database cursors, JSON bodies) go through ``build_knowledge_base``,
which turns them into typed records and enforces the data invariants once, at
the boundary, so the engine can trust what it receives.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from smoking_risk.certainty.models import SEVERITY_ORDER, Disease, Rule, Symptom, rule_sort_key

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "certainty" / "data"

SYMPTOM_COLUMNS = ["id", "code", "name", "description", "category", "mb", "md"]
DISEASE_COLUMNS = [
    "id",
    "code",
    "name",
    "description",
    "probability",
    "severity",
    "prevention",
    "treatment",
    "statistics",
]
RULE_COLUMNS = ["id", "symptom_id", "disease_id", "mb", "md", "weight"]
REQUIRED_COLUMNS = {
    "symptoms": ["id", "category"],
    "diseases": ["id", "name", "severity"],
    "rules": ["id", "symptom_id", "disease_id", "mb", "md"],
}


class KnowledgeBaseError(ValueError):
    """Raised when symptom, disease or rule data breaks an invariant."""


@dataclass(frozen=True)
class KnowledgeBase:
    symptoms: Tuple[Symptom, ...]
    diseases: Tuple[Disease, ...]
    rules: Tuple[Rule, ...]

    def symptom(self, symptom_id: str) -> Optional[Symptom]:
        return next((item for item in self.symptoms if item.id == symptom_id), None)

    def disease(self, disease_id: str) -> Optional[Disease]:
        return next((item for item in self.diseases if item.id == disease_id), None)

    def rules_for_disease(self, disease_id: str) -> List[Rule]:
        return sorted(
            (rule for rule in self.rules if rule.disease_id == disease_id),
            key=lambda rule: rule_sort_key(rule.id),
        )

    def symptoms_by_category(self) -> Dict[str, List[Symptom]]:
        grouped: Dict[str, List[Symptom]] = {}
        for symptom in self.symptoms:
            grouped.setdefault(symptom.category or "other", []).append(symptom)
        return grouped

    def to_frames(self) -> Dict[str, pd.DataFrame]:
        return {
            "symptoms": pd.DataFrame([item.to_dict() for item in self.symptoms], columns=SYMPTOM_COLUMNS),
            "diseases": pd.DataFrame([item.to_dict() for item in self.diseases], columns=DISEASE_COLUMNS),
            "rules": pd.DataFrame([item.to_dict() for item in self.rules], columns=RULE_COLUMNS),
        }


def parse_json_column(value, fallback):
    if isinstance(value, (list, dict)):
        return value
    if value is None or (isinstance(value, float) and pd.isna(value)) or value == "":
        return fallback
    try:
        return json.loads(value)
    except (TypeError, json.JSONDecodeError):
        return fallback


def _field(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def _unit_interval(row: Mapping[str, Any], key: str, where: str, default: Optional[float] = None) -> float:
    raw = _field(row, key)
    if raw is None:
        if default is None:
            raise KnowledgeBaseError(f"{where}: '{key}' is required")
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise KnowledgeBaseError(f"{where}: '{key}' must be a number, got {raw!r}") from None
    if pd.isna(value) or not 0.0 <= value <= 1.0:
        raise KnowledgeBaseError(f"{where}: '{key}' must lie in [0, 1], got {raw!r}")
    return value


def _check_unique(ids: Iterable[str], kind: str) -> None:
    ids = list(ids)
    if any(not item for item in ids):
        raise KnowledgeBaseError(f"Every {kind} needs an id")
    duplicates = sorted(item for item, count in Counter(ids).items() if count > 1)
    if duplicates:
        raise KnowledgeBaseError(f"Duplicate {kind} ids: {', '.join(duplicates)}")


def _to_symptom(row: Union[Symptom, Mapping[str, Any]]) -> Symptom:
    if isinstance(row, Symptom):
        return row
    where = f"Symptom {_field(row, 'id', 'code')!r}"
    data = dict(row)
    data["mb"] = _unit_interval(row, "mb", where, default=0.5)
    data["md"] = _unit_interval(row, "md", where, default=0.1)
    return Symptom.from_dict(data)


def _to_disease(row: Union[Disease, Mapping[str, Any]]) -> Disease:
    if isinstance(row, Disease):
        disease = row
    else:
        data = dict(row)
        for key in ("prevention", "treatment"):
            data[key] = parse_json_column(data.get(key), [])
        data["statistics"] = parse_json_column(data.get("statistics"), {})
        disease = Disease.from_dict(data)
    if disease.severity not in SEVERITY_ORDER:
        raise KnowledgeBaseError(
            f"Disease {disease.id!r}: unknown severity {disease.severity!r} "
            f"(expected one of {', '.join(SEVERITY_ORDER)})"
        )
    return disease


def _to_rule(row: Union[Rule, Mapping[str, Any]]) -> Rule:
    if isinstance(row, Rule):
        data = row.to_dict()
    else:
        data = dict(row)
    where = f"Rule {_field(data, 'id')!r}"
    data["mb"] = _unit_interval(data, "mb", where)
    data["md"] = _unit_interval(data, "md", where)
    data["weight"] = _unit_interval(data, "weight", where, default=1.0)
    return Rule.from_dict(data)


def build_knowledge_base(
    symptoms: Iterable[Union[Symptom, Mapping[str, Any]]],
    diseases: Iterable[Union[Disease, Mapping[str, Any]]],
    rules: Iterable[Union[Rule, Mapping[str, Any]]],
) -> KnowledgeBase:
    """Convert loosely-shaped rows into a validated ``KnowledgeBase``."""
    symptom_records = tuple(_to_symptom(row) for row in symptoms)
    disease_records = tuple(_to_disease(row) for row in diseases)
    rule_records = tuple(_to_rule(row) for row in rules)

    _check_unique((item.id for item in symptom_records), "symptom")
    _check_unique((item.id for item in disease_records), "disease")
    _check_unique((item.id for item in rule_records), "rule")

    symptom_ids = {item.id for item in symptom_records}
    disease_ids = {item.id for item in disease_records}
    seen_pairs: Dict[Tuple[str, str], str] = {}
    for rule in rule_records:
        if rule.symptom_id not in symptom_ids:
            raise KnowledgeBaseError(f"Rule {rule.id!r} references unknown symptom {rule.symptom_id!r}")
        if rule.disease_id not in disease_ids:
            raise KnowledgeBaseError(f"Rule {rule.id!r} references unknown disease {rule.disease_id!r}")
        pair = (rule.symptom_id, rule.disease_id)
        if pair in seen_pairs:
            raise KnowledgeBaseError(
                f"Rules {seen_pairs[pair]!r} and {rule.id!r} both link {pair[0]} to {pair[1]}"
            )
        seen_pairs[pair] = rule.id

    return KnowledgeBase(symptoms=symptom_records, diseases=disease_records, rules=rule_records)


def _read_table(data_dir: Path, name: str) -> List[Dict[str, Any]]:
    path = data_dir / f"{name}.csv"
    if not path.exists():
        raise KnowledgeBaseError(f"Missing knowledge base file: {path}")
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [str(col).strip() for col in df.columns]
    missing = [col for col in REQUIRED_COLUMNS[name] if col not in df.columns]
    if missing:
        raise KnowledgeBaseError(f"{path.name} is missing columns: {', '.join(missing)}")
    df = df.apply(lambda col: col.str.strip())
    return df.to_dict(orient="records")


@lru_cache(maxsize=8)
def _load_cached(data_dir: str) -> KnowledgeBase:
    directory = Path(data_dir)
    kb = build_knowledge_base(
        _read_table(directory, "symptoms"),
        _read_table(directory, "diseases"),
        _read_table(directory, "rules"),
    )
    logger.info(
        "Loaded knowledge base from %s: %d symptoms, %d diseases, %d rules",
        directory,
        len(kb.symptoms),
        len(kb.diseases),
        len(kb.rules),
    )
    return kb


def load_knowledge_base(data_dir: Optional[Union[str, Path]] = None) -> KnowledgeBase:
    """Load (and cache) the CSV knowledge base from ``data_dir`` or the shipped dataset."""
    directory = Path(data_dir).resolve() if data_dir else DATA_DIR
    return _load_cached(str(directory))
