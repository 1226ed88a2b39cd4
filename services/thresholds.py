"""Threshold normalization for heterogeneous sensor configuration."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from models.records import ThresholdSet
from services.errors import ConfigError

logger = logging.getLogger(__name__)

CANONICAL_FIELDS = ("min", "max", "optimal_min", "optimal_max")

# Field lookup order per canonical field; the first present, numeric value wins.
_FIELD_SOURCES: Dict[str, Tuple[str, ...]] = {
    "min": ("min", "min_threshold", "min_critical"),
    "max": ("max", "max_threshold", "max_critical"),
    "optimal_min": ("optimal_min", "min_warning"),
    "optimal_max": ("optimal_max", "max_warning"),
}

DEFAULT_THRESHOLDS: Dict[str, ThresholdSet] = {
    "temperature": ThresholdSet(min=0.0, max=50.0, optimal_min=18.0, optimal_max=28.0),
    "humidity": ThresholdSet(min=10.0, max=95.0, optimal_min=40.0, optimal_max=70.0),
    "soil_moisture": ThresholdSet(min=10.0, max=90.0, optimal_min=30.0, optimal_max=70.0),
    "light": ThresholdSet(min=0.0, max=100000.0, optimal_min=10000.0, optimal_max=50000.0),
    "ph": ThresholdSet(min=4.0, max=9.0, optimal_min=6.0, optimal_max=7.5),
    "co2": ThresholdSet(min=200.0, max=5000.0, optimal_min=400.0, optimal_max=1200.0),
    "water_level": ThresholdSet(min=5.0, max=100.0, optimal_min=20.0, optimal_max=90.0),
    "pressure": ThresholdSet(min=950.0, max=1060.0, optimal_min=990.0, optimal_max=1030.0),
}
GENERIC_THRESHOLDS = ThresholdSet(min=0.0, max=100.0, optimal_min=20.0, optimal_max=80.0)

_TYPE_ALIASES = {
    "temp": "temperature",
    "air_temperature": "temperature",
    "soil_humidity": "soil_moisture",
    "moisture": "soil_moisture",
    "luminosity": "light",
    "lux": "light",
    "carbon_dioxide": "co2",
    "level": "water_level",
}


@dataclass(frozen=True, slots=True)
class NormalizedThresholds:
    thresholds: ThresholdSet
    defaulted_fields: Tuple[str, ...] = ()


def canonical_type(sensor_type: str) -> str:
    key = (sensor_type or "").strip().lower().replace(" ", "_").replace("-", "_")
    return _TYPE_ALIASES.get(key, key)


def default_thresholds(sensor_type: str) -> ThresholdSet:
    return DEFAULT_THRESHOLDS.get(canonical_type(sensor_type), GENERIC_THRESHOLDS)


def _coerce(field_name: str, raw_value: Any) -> float:
    if isinstance(raw_value, bool):
        raise ConfigError(field_name, raw_value)
    try:
        value = float(raw_value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(field_name, raw_value) from exc
    if not math.isfinite(value):
        raise ConfigError(field_name, raw_value)
    return value


def _pick(raw: Mapping[str, Any], canonical: str) -> Optional[float]:
    for source in _FIELD_SOURCES[canonical]:
        raw_value = raw.get(source)
        if raw_value is None or raw_value == "":
            continue
        try:
            return _coerce(source, raw_value)
        except ConfigError as exc:
            logger.warning("Ignoring threshold field", extra={"reason": str(exc)})
    return None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def normalize_thresholds(
    sensor_type: str, raw: Optional[Mapping[str, Any]] = None
) -> NormalizedThresholds:
    """Map raw threshold fields onto the canonical four-field shape.

    Explicit canonical fields win over the legacy ``*_critical`` and
    ``*_warning`` names; anything still missing comes from the default table
    for ``sensor_type``. Out-of-order bounds are clamped into
    ``min <= optimal_min <= optimal_max <= max``. Never raises.
    """
    raw = raw or {}
    defaults = default_thresholds(sensor_type)
    resolved: Dict[str, float] = {}
    defaulted: list[str] = []
    for canonical in CANONICAL_FIELDS:
        value = _pick(raw, canonical)
        if value is None:
            value = getattr(defaults, canonical)
            defaulted.append(canonical)
        resolved[canonical] = value

    low = resolved["min"]
    high = max(resolved["max"], low)
    optimal_min = _clamp(resolved["optimal_min"], low, high)
    optimal_max = _clamp(resolved["optimal_max"], optimal_min, high)

    return NormalizedThresholds(
        thresholds=ThresholdSet(
            min=low, max=high, optimal_min=optimal_min, optimal_max=optimal_max
        ),
        defaulted_fields=tuple(defaulted),
    )


def range_position(value: float, thresholds: ThresholdSet) -> float:
    """Percentage position of ``value`` along ``[min, max]``, clamped to 0-100."""
    width = thresholds.max - thresholds.min
    if width == 0:
        return 0.0
    return _clamp((value - thresholds.min) / width * 100.0, 0.0, 100.0)


def range_width(start: float, end: float, thresholds: ThresholdSet) -> float:
    """Width of ``[start, end]`` as a percentage of the full band."""
    width = thresholds.max - thresholds.min
    if width == 0:
        return 0.0
    return _clamp((end - start) / width * 100.0, 0.0, 100.0)
