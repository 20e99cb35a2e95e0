"""
Behavioural risk factor for smoking-related disease.

The score blends two saturating sub-scores built from S-shaped membership
functions:

* smoking intensity, from pack-years (years smoked x packs per day);
* age, a smaller secondary boost for older users.

Both curves are flat at 0 below their onset and flat at 1 beyond their
saturation point, so a long heavy smoking history can never push the
sub-score past its maximum.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Union

import numpy as np
import pandas as pd
import skfuzzy as fuzz

from smoking_risk.certainty.models import RiskProfile


@dataclass(frozen=True)
class RiskSettings:
    intensity_weight: float = 0.7
    age_weight: float = 0.3
    cigarettes_per_pack: int = 20
    pack_years_onset: float = 0.0
    pack_years_saturation: float = 30.0
    age_onset: float = 30.0
    age_saturation: float = 70.0
    high_band: float = 0.6
    moderate_band: float = 0.3


DEFAULT_RISK_SETTINGS = RiskSettings()

RISK_DESCRIPTIONS: Dict[str, str] = {
    "high": (
        "Your smoking history and age put you at high risk of smoking-related disease. "
        "Quitting now brings the largest benefit."
    ),
    "moderate": (
        "Your smoking history and age carry a moderate risk of smoking-related disease. "
        "Cutting down and quitting will lower it."
    ),
    "low": (
        "Your behavioural risk factor is low. Avoiding tobacco keeps it that way."
    ),
}


def _s_curve(value: float, onset: float, saturation: float) -> float:
    y = fuzz.smf(np.array([float(value)]), onset, saturation)
    return float(np.clip(y[0], 0.0, 1.0))


def pack_years(profile: RiskProfile, settings: RiskSettings = DEFAULT_RISK_SETTINGS) -> float:
    return profile.smoking_years * profile.cigarettes_per_day / float(settings.cigarettes_per_pack)


def intensity_score(profile: RiskProfile, settings: RiskSettings = DEFAULT_RISK_SETTINGS) -> float:
    return _s_curve(
        pack_years(profile, settings),
        settings.pack_years_onset,
        settings.pack_years_saturation,
    )


def age_score(profile: RiskProfile, settings: RiskSettings = DEFAULT_RISK_SETTINGS) -> float:
    return _s_curve(profile.age, settings.age_onset, settings.age_saturation)


def calculate_risk_factor(
    profile: Union[RiskProfile, Mapping[str, Any]],
    settings: RiskSettings = DEFAULT_RISK_SETTINGS,
) -> float:
    """Return the behavioural risk score in [0, 1] for ``profile``.

    Accepts a ``RiskProfile`` or any mapping with ``age``, ``smoking_years`` and
    ``cigarettes_per_day`` (camelCase keys work too). Unparseable or negative
    values count as 0, so an empty profile scores exactly 0.
    """
    if not isinstance(profile, RiskProfile):
        profile = RiskProfile.from_dict(profile)

    weight_total = settings.intensity_weight + settings.age_weight
    score = (
        settings.intensity_weight * intensity_score(profile, settings)
        + settings.age_weight * age_score(profile, settings)
    ) / weight_total
    return float(np.clip(score, 0.0, 1.0))


def classify_risk_factor(risk_score: float, settings: RiskSettings = DEFAULT_RISK_SETTINGS) -> str:
    if risk_score >= settings.high_band:
        return "high"
    if risk_score >= settings.moderate_band:
        return "moderate"
    return "low"


def describe_risk_factor(risk_score: float, settings: RiskSettings = DEFAULT_RISK_SETTINGS) -> str:
    return RISK_DESCRIPTIONS[classify_risk_factor(risk_score, settings)]


def risk_curve_frame(kind: str, settings: RiskSettings = DEFAULT_RISK_SETTINGS, points: int = 120):
    """Sample a sub-score curve for plotting; ``kind`` is ``"intensity"`` or ``"age"``."""
    if kind == "intensity":
        onset, saturation = settings.pack_years_onset, settings.pack_years_saturation
        label = "Pack-years"
    elif kind == "age":
        onset, saturation = settings.age_onset, settings.age_saturation
        label = "Age"
    else:
        raise ValueError(f"Unknown risk curve: {kind}")

    upper = saturation + max(10.0, (saturation - onset) * 0.25)
    universe = np.linspace(0.0, upper, points)
    return pd.DataFrame({label: universe, "Sub-score": fuzz.smf(universe, onset, saturation)})
