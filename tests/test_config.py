import json
import math
from dataclasses import replace

import pytest

from location_guard.config import (
    DEFAULT_QUALITY_BANDS,
    QualityBand,
    ValidatorConfig,
    load_config,
    region_from_value,
)
from location_guard.geo import INDIA_BOUNDS, RegionBounds
from location_guard.models import QualityTier


def test_defaults_keep_field_service_thresholds():
    cfg = ValidatorConfig()

    assert cfg.max_speed_kmh == pytest.approx(200.0)
    assert cfg.max_accuracy_m == 3000.0
    assert cfg.coarse_accuracy_m == 200.0
    assert cfg.stale_after_s == 300.0
    assert cfg.max_jump_distance_m is None
    assert cfg.expected_region is None


def test_from_mapping():
    cfg = ValidatorConfig.from_mapping(
        {"max_speed_kmh": 100, "stale_after_s": 900, "expected_region": "india"}
    )

    assert cfg.max_speed_mps == pytest.approx(100 / 3.6)
    assert cfg.stale_after_s == 900
    assert cfg.expected_region == INDIA_BOUNDS


def test_from_mapping_with_custom_bands():
    cfg = ValidatorConfig.from_mapping(
        {
            "quality_bands": [
                {"max_accuracy_m": 20, "tier": "excellent", "score": 100},
                {"max_accuracy_m": math.inf, "tier": "poor", "score": 40},
            ]
        }
    )
    assert cfg.quality_bands[1] == QualityBand(math.inf, QualityTier.POOR, 40, "")


def test_unknown_key_is_rejected():
    with pytest.raises(ValueError, match="unknown config key"):
        ValidatorConfig.from_mapping({"max_sped_kmh": 10})


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_speed_mps": 0.0},
        {"max_speed_mps": float("inf")},
        {"coarse_accuracy_m": 5000.0},
        {"max_jump_distance_m": 0.0},
        {"stale_after_s": -1.0},
    ],
)
def test_inconsistent_policy_is_rejected(kwargs):
    with pytest.raises(ValueError):
        ValidatorConfig(**kwargs)


def test_quality_bands_must_be_monotonic():
    bad = (
        QualityBand(10.0, QualityTier.GOOD, 80, ""),
        QualityBand(math.inf, QualityTier.EXCELLENT, 90, ""),
    )
    with pytest.raises(ValueError, match="monotonic"):
        ValidatorConfig(quality_bands=bad)


def test_quality_bands_must_be_open_ended():
    with pytest.raises(ValueError, match="open-ended"):
        ValidatorConfig(quality_bands=DEFAULT_QUALITY_BANDS[:-1])


def test_replace_revalidates():
    with pytest.raises(ValueError):
        replace(ValidatorConfig(), max_speed_mps=-1.0)


def test_region_from_value():
    assert region_from_value(None) is None
    assert region_from_value("INDIA") == INDIA_BOUNDS
    assert region_from_value({"min_lat": 1, "max_lat": 2, "min_lon": 3, "max_lon": 4}) == RegionBounds(1, 2, 3, 4)
    with pytest.raises(ValueError, match="unknown region"):
        region_from_value("atlantis")


def test_load_config(tmp_path):
    p = tmp_path / "guard.json"
    p.write_text(json.dumps({"max_accuracy_m": 1500, "coarse_accuracy_m": 100}), encoding="utf-8")

    cfg = load_config(p)

    assert cfg.max_accuracy_m == 1500
    assert cfg.coarse_accuracy_m == 100


def test_load_config_rejects_bad_json(tmp_path):
    p = tmp_path / "guard.json"
    p.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="not valid JSON"):
        load_config(p)

    p.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError, match="JSON object"):
        load_config(p)
