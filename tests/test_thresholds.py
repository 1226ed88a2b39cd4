"""Unit tests for threshold normalization."""

from __future__ import annotations

import logging

import pytest

from models.records import ThresholdSet
from services.thresholds import (
    DEFAULT_THRESHOLDS,
    GENERIC_THRESHOLDS,
    canonical_type,
    normalize_thresholds,
    range_position,
    range_width,
)


def test_canonical_fields_are_used_as_is() -> None:
    result = normalize_thresholds(
        "temperature", {"min": 0, "max": 50, "optimal_min": 18, "optimal_max": 25}
    )

    assert result.thresholds == ThresholdSet(min=0.0, max=50.0, optimal_min=18.0, optimal_max=25.0)
    assert result.defaulted_fields == ()


def test_legacy_critical_and_warning_fields_map_onto_canonical_shape() -> None:
    result = normalize_thresholds(
        "humidity",
        {"min_critical": 5, "max_critical": 95, "min_warning": 30, "max_warning": 80},
    )

    assert result.thresholds == ThresholdSet(min=5.0, max=95.0, optimal_min=30.0, optimal_max=80.0)
    assert result.defaulted_fields == ()


def test_threshold_aliases_are_accepted() -> None:
    result = normalize_thresholds("ph", {"min_threshold": 5.0, "max_threshold": 8.5})

    assert result.thresholds.min == 5.0
    assert result.thresholds.max == 8.5
    assert result.defaulted_fields == ("optimal_min", "optimal_max")


def test_canonical_name_wins_over_legacy_name() -> None:
    result = normalize_thresholds("temperature", {"min": 2, "min_critical": 10})

    assert result.thresholds.min == 2.0


def test_missing_fields_fall_back_to_type_defaults() -> None:
    result = normalize_thresholds("temperature", {"optimal_max": 26})

    defaults = DEFAULT_THRESHOLDS["temperature"]
    assert result.thresholds.min == defaults.min
    assert result.thresholds.max == defaults.max
    assert result.thresholds.optimal_min == defaults.optimal_min
    assert result.thresholds.optimal_max == 26.0
    assert result.defaulted_fields == ("min", "max", "optimal_min")


def test_no_configuration_uses_defaults_for_every_field() -> None:
    result = normalize_thresholds("Soil-Moisture", None)

    assert result.thresholds == DEFAULT_THRESHOLDS["soil_moisture"]
    assert len(result.defaulted_fields) == 4


def test_unknown_type_uses_generic_defaults() -> None:
    result = normalize_thresholds("vibration", {})

    assert result.thresholds == GENERIC_THRESHOLDS


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        # optimal band above max is pulled back inside
        (
            {"min": 0, "max": 50, "optimal_min": 60, "optimal_max": 70},
            ThresholdSet(min=0.0, max=50.0, optimal_min=50.0, optimal_max=50.0),
        ),
        # max below min collapses onto min
        (
            {"min": 10, "max": 5, "optimal_min": 7, "optimal_max": 8},
            ThresholdSet(min=10.0, max=10.0, optimal_min=10.0, optimal_max=10.0),
        ),
        # inverted optimal band
        (
            {"min": 0, "max": 100, "optimal_min": 60, "optimal_max": 40},
            ThresholdSet(min=0.0, max=100.0, optimal_min=60.0, optimal_max=60.0),
        ),
    ],
)
def test_out_of_order_bounds_are_clamped(raw, expected: ThresholdSet) -> None:
    result = normalize_thresholds("generic", raw)

    assert result.thresholds == expected
    thresholds = result.thresholds
    assert thresholds.min <= thresholds.optimal_min <= thresholds.optimal_max <= thresholds.max


def test_unusable_values_are_logged_and_replaced(caplog) -> None:
    caplog.set_level(logging.WARNING, logger="services.thresholds")

    result = normalize_thresholds(
        "temperature", {"min": "cold", "max": float("nan"), "optimal_min": True, "optimal_max": "25"}
    )

    assert result.thresholds.min == DEFAULT_THRESHOLDS["temperature"].min
    assert result.thresholds.max == DEFAULT_THRESHOLDS["temperature"].max
    assert result.thresholds.optimal_max == 25.0
    assert result.defaulted_fields == ("min", "max", "optimal_min")
    assert sum("Ignoring threshold field" in message for message in caplog.messages) == 3


def test_canonical_type_resolves_aliases() -> None:
    assert canonical_type(" Temp ") == "temperature"
    assert canonical_type("lux") == "light"
    assert canonical_type("custom") == "custom"


def test_range_helpers_handle_degenerate_band() -> None:
    flat = ThresholdSet(min=5.0, max=5.0, optimal_min=5.0, optimal_max=5.0)

    assert range_position(5.0, flat) == 0.0
    assert range_width(5.0, 5.0, flat) == 0.0


def test_range_position_is_clamped() -> None:
    band = ThresholdSet(min=0.0, max=50.0, optimal_min=18.0, optimal_max=25.0)

    assert range_position(25.0, band) == 50.0
    assert range_position(-10.0, band) == 0.0
    assert range_position(75.0, band) == 100.0
    assert range_width(band.optimal_min, band.optimal_max, band) == pytest.approx(14.0)
