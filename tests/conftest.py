from __future__ import annotations

import pytest

from smoking_risk.knowledge_base import build_knowledge_base, load_knowledge_base


@pytest.fixture(scope="session")
def kb():
    return load_knowledge_base()


@pytest.fixture
def small_kb():
    """Three symptoms, three diseases; S3 and D3 have no rules at all."""
    return build_knowledge_base(
        symptoms=[
            {"id": "S1", "name": "Cough", "category": "respiratory"},
            {"id": "S2", "name": "Chest pain", "category": "pain"},
            {"id": "S3", "name": "Itchy feet", "category": ""},
        ],
        diseases=[
            {"id": "D1", "name": "Bronchitis", "severity": "moderate"},
            {"id": "D2", "name": "Infarction", "severity": "critical"},
            {"id": "D3", "name": "Unlinked", "severity": "low"},
        ],
        rules=[
            {"id": "R1", "symptom_id": "S1", "disease_id": "D1", "mb": 0.8, "md": 0.2, "weight": 1.0},
            {"id": "R2", "symptomId": "S1", "diseaseId": "D2", "mb": 0.8, "md": 0.2, "weight": 1.0},
            {"id": "R3", "symptom_id": "S2", "disease_id": "D1", "mb": 0.6, "md": 0.1},
        ],
    )


@pytest.fixture
def non_smoker():
    return {"age": 20, "smoking_years": 0, "cigarettes_per_day": 0}
