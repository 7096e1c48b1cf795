"""Tests for properties parsing and the immutable configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from intensity import config
from intensity.errors import FormatError
from intensity.transform import DEFAULT_TEMPLATE

ROOT = Path(__file__).resolve().parents[1]

PROPS = """\
# Minimal configuration.
! Also a comment.
intensity.fuel.COAL = 1.0
intensity.fuel.WIND=0
intensity.fuel.INTIRL./2011=0.7
intensity.fuel.INTIRL.2012/=0.45
intensity.fuelname.COAL=Coal
intensity.category.storage=PS
intensity.category.fossil=COAL
intensity.scale.WIND=1.1
intensity.scale.WIND.reason=Embedded generation not metered
intensity.loss.transmission=0.02
intensity.loss.distribution=0.05
timescale.intensity.max=1800
end=OK
"""


def _props(**overrides) -> dict[str, str]:
    props = config.parse_properties(PROPS)
    for k, v in overrides.items():
        key = k.replace("__", ".")
        if v is None:
            props.pop(key, None)
        else:
            props[key] = v
    return props


def test_parse_properties_comments_and_whitespace():
    """Comment lines are ignored and keys/values trimmed."""

    props = config.parse_properties("# c\n! c\n\n a = b=c \nend=OK\n")

    assert props == {"a": "b=c", "end": "OK"}


@pytest.mark.parametrize("text", ["a=1\n", "end=OK\na=1\n", "a=1\nnovalue\nend=OK\n", "end=NO\n"])
def test_parse_properties_rejects_truncated_or_bad(text):
    """A file must be well-formed and end with end=OK."""

    with pytest.raises(FormatError):
        config.parse_properties(text)


def test_from_properties_parses_everything():
    """Coefficients, categories, scale factors and scalars are parsed once."""

    cfg = config.IntensityConfig.from_properties(_props())

    assert cfg.table.resolve("INTIRL", 2009) == 0.7
    assert cfg.table.resolve("INTIRL", 2024) == 0.45
    assert cfg.categories == {"storage": frozenset({"PS"}), "fossil": frozenset({"COAL"})}
    assert cfg.storage_fuels == {"PS"}
    assert [(s.fuel_code, s.factor) for s in cfg.scale_factors] == [("WIND", 1.1)]
    assert cfg.transmission_loss == 0.02
    assert cfg.distribution_loss == 0.05
    assert cfg.max_age_s == 1800
    assert cfg.window_samples == 288
    assert cfg.min_fuel_types_in_mix == 2
    assert cfg.csv_template == DEFAULT_TEMPLATE
    assert cfg.fuel_name("COAL") == "Coal"
    assert cfg.fuel_name("WIND") == "WIND"
    assert cfg.expected_fuels == {"COAL", "WIND", "INTIRL", "PS"}


def test_explicit_expected_fuels_and_storage_alias():
    """`intensity.expectedFuels` and the older storage key are honoured."""

    props = _props(intensity__category__storage=None)
    props["intensity.storageTypes"] = "PS,BATT"
    props["intensity.expectedFuels"] = "COAL, WIND"

    cfg = config.IntensityConfig.from_properties(props)

    assert cfg.storage_fuels == {"PS", "BATT"}
    assert cfg.expected_fuels == {"COAL", "WIND"}


@pytest.mark.parametrize(
    "overrides",
    [
        {"intensity__loss__transmission": None},
        {"timescale__intensity__max": None},
        {"intensity__loss__distribution": "1.0"},
        {"timescale__intensity__max": "soon"},
        {"intensity__scale__WIND__reason": None},
        {"intensity__scale__WIND": "big"},
        {"intensity__fuel__COAL__20x1": "1"},
    ],
)
def test_from_properties_rejects_bad_config(overrides):
    """Missing required keys and bad values are format errors."""

    with pytest.raises(FormatError):
        config.IntensityConfig.from_properties(_props(**overrides))


def test_from_properties_needs_fuel_intensities():
    """A configuration without any fuel intensity is useless."""

    props = {k: v for k, v in _props().items() if not k.startswith("intensity.fuel.")}

    with pytest.raises(FormatError, match="no fuel intensities"):
        config.IntensityConfig.from_properties(props)


def test_config_is_immutable():
    """The configuration object cannot be modified once built."""

    cfg = config.IntensityConfig.from_properties(_props())

    with pytest.raises(ValidationError):
        cfg.max_age_s = 5
    with pytest.raises(TypeError):
        cfg.categories["storage"] = frozenset({"COAL"})
    with pytest.raises(TypeError):
        cfg.fuel_names["COAL"] = "Gas"
    assert cfg.storage_fuels == frozenset({"PS"})


def test_shipped_properties_load():
    """The bundled properties file is complete and forward-consistent."""

    cfg = config.load_config(ROOT / "config" / "intensity.properties")

    assert cfg.table.resolve("INTIRL", 2009) == 0.7
    assert cfg.table.resolve("INTIRL", 2024) == 0.288
    assert cfg.table.resolve("NUCLEAR", 2030) == 0.0
    assert cfg.storage_fuels == {"PS"}
    assert cfg.table.missing_forward_coefficients(2025) == []
    assert all(s.justification for s in cfg.scale_factors)


def test_load_properties_missing_file(tmp_path):
    """An unreadable properties file is a format error."""

    with pytest.raises(FormatError):
        config.load_properties(tmp_path / "absent.properties")


def test_environment_overrides(monkeypatch, tmp_path):
    """File locations and the feed URL come from the environment when set."""

    cfg = config.IntensityConfig.from_properties(_props())

    monkeypatch.delenv(config.ENV_FEED_URL, raising=False)
    assert config.feed_url(cfg) is None

    monkeypatch.setenv(config.ENV_FEED_URL, "https://example.test/feed")
    monkeypatch.setenv(config.ENV_PROPERTIES, str(tmp_path / "x.properties"))
    monkeypatch.setenv(config.ENV_STATE_DIR, str(tmp_path / "state"))

    assert config.feed_url(cfg) == "https://example.test/feed"
    assert config.properties_path() == tmp_path / "x.properties"
    assert config.state_dir() == tmp_path / "state"
