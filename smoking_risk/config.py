from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from yaml.loader import SafeLoader

from smoking_risk.certainty.risk import RiskSettings


BASE_DIR = Path(__file__).resolve().parent.parent
APP_DATA_DIR = BASE_DIR / "app_data"
SETTINGS_PATH = APP_DATA_DIR / "engine_config.yaml"

HIGH_RISK_THRESHOLD = 0.7
MODERATE_RISK_THRESHOLD = 0.4
MAX_ALTERNATIVES = 5
PERCENTAGE_DECIMALS = 1


class ConfigError(ValueError):
    """Raised when the engine configuration file holds unusable values."""


@dataclass(frozen=True)
class EngineSettings:
    high_risk_threshold: float = HIGH_RISK_THRESHOLD
    moderate_risk_threshold: float = MODERATE_RISK_THRESHOLD
    max_alternatives: int = MAX_ALTERNATIVES
    percentage_decimals: int = PERCENTAGE_DECIMALS
    log_level: str = "INFO"
    data_dir: Optional[str] = None
    risk: RiskSettings = field(default_factory=RiskSettings)


DEFAULT_SETTINGS = EngineSettings()


def _default_config() -> Dict:
    return {
        "engine": {
            "high_risk_threshold": HIGH_RISK_THRESHOLD,
            "moderate_risk_threshold": MODERATE_RISK_THRESHOLD,
            "max_alternatives": MAX_ALTERNATIVES,
            "percentage_decimals": PERCENTAGE_DECIMALS,
        },
        "risk": {item.name: getattr(DEFAULT_SETTINGS.risk, item.name) for item in fields(RiskSettings)},
        "knowledge_base": {"data_dir": None},
        "logging": {"level": "INFO"},
    }


def _normalize_config(config: Any) -> Dict:
    """Overlay ``config`` on the defaults, section by section."""
    defaults = _default_config()
    if not isinstance(config, dict):
        return defaults

    for section, values in defaults.items():
        override = config.get(section)
        if override is None:
            continue
        if not isinstance(override, dict):
            raise ConfigError(f"Section '{section}' must be a mapping.")
        unknown = set(override) - set(values)
        if unknown:
            raise ConfigError(f"Unknown keys in '{section}': {', '.join(sorted(unknown))}")
        values.update(override)
    return defaults


def _number(section: Dict, key: str, cast=float):
    try:
        return cast(section[key])
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be a number, got {section[key]!r}") from None


def _build_settings(config: Dict) -> EngineSettings:
    engine = config["engine"]
    risk_section = config["risk"]

    risk = RiskSettings(
        intensity_weight=_number(risk_section, "intensity_weight"),
        age_weight=_number(risk_section, "age_weight"),
        cigarettes_per_pack=_number(risk_section, "cigarettes_per_pack", int),
        pack_years_onset=_number(risk_section, "pack_years_onset"),
        pack_years_saturation=_number(risk_section, "pack_years_saturation"),
        age_onset=_number(risk_section, "age_onset"),
        age_saturation=_number(risk_section, "age_saturation"),
        high_band=_number(risk_section, "high_band"),
        moderate_band=_number(risk_section, "moderate_band"),
    )
    settings = EngineSettings(
        high_risk_threshold=_number(engine, "high_risk_threshold"),
        moderate_risk_threshold=_number(engine, "moderate_risk_threshold"),
        max_alternatives=_number(engine, "max_alternatives", int),
        percentage_decimals=_number(engine, "percentage_decimals", int),
        log_level=str(config["logging"].get("level") or "INFO").upper(),
        data_dir=config["knowledge_base"].get("data_dir") or None,
        risk=risk,
    )
    validate_settings(settings)
    return settings


def validate_settings(settings: EngineSettings) -> None:
    for name in ("high_risk_threshold", "moderate_risk_threshold"):
        value = getattr(settings, name)
        if not 0.0 <= value <= 1.0:
            raise ConfigError(f"'{name}' must lie in [0, 1], got {value}")
    if settings.moderate_risk_threshold > settings.high_risk_threshold:
        raise ConfigError("'moderate_risk_threshold' cannot exceed 'high_risk_threshold'")
    if settings.max_alternatives < 0:
        raise ConfigError("'max_alternatives' cannot be negative")
    if settings.percentage_decimals < 0:
        raise ConfigError("'percentage_decimals' cannot be negative")

    risk = settings.risk
    if risk.intensity_weight < 0 or risk.age_weight < 0:
        raise ConfigError("Risk weights cannot be negative")
    if risk.intensity_weight + risk.age_weight <= 0:
        raise ConfigError("Risk weights must add up to a positive value")
    if risk.cigarettes_per_pack <= 0:
        raise ConfigError("'cigarettes_per_pack' must be positive")
    if risk.pack_years_saturation <= risk.pack_years_onset or risk.pack_years_onset < 0:
        raise ConfigError("'pack_years_saturation' must be greater than a non-negative 'pack_years_onset'")
    if risk.age_saturation <= risk.age_onset or risk.age_onset < 0:
        raise ConfigError("'age_saturation' must be greater than a non-negative 'age_onset'")
    if not 0.0 <= risk.moderate_band <= risk.high_band <= 1.0:
        raise ConfigError("Risk bands must satisfy 0 <= moderate_band <= high_band <= 1")


def load_settings(path: Optional[Path] = None) -> EngineSettings:
    """Read engine settings from YAML, writing the defaults first when the file is missing."""
    settings_path = Path(path) if path is not None else SETTINGS_PATH
    if not settings_path.exists():
        settings_path.parent.mkdir(parents=True, exist_ok=True)
        with settings_path.open("w", encoding="utf-8") as file_obj:
            yaml.safe_dump(_default_config(), file_obj, sort_keys=False)
        return DEFAULT_SETTINGS

    with settings_path.open("r", encoding="utf-8") as file_obj:
        try:
            config = yaml.load(file_obj, Loader=SafeLoader) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Cannot parse {settings_path}: {exc}") from exc
    return _build_settings(_normalize_config(config))
