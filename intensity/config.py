"""
intensity/config.py

Configuration loading.

Responsibilities
----------------
- Read a flat `key=value` properties file, refusing a partially written one
  (the last entry must be `end=OK`).
- Build an immutable `IntensityConfig` from the properties, parsing the
  date-ranged coefficients, categories and scale factors once.
- Resolve file locations from the environment (`.env` is honoured).

Environment Variables
---------------------
INTENSITY_PROPERTIES
    Path of the properties file. Defaults to `config/intensity.properties`
    under the project root.
INTENSITY_STATE_DIR
    Directory for the long store, cache, notification state and daily logs.
    Defaults to `state/` under the current directory.
INTENSITY_FEED_URL
    Overrides the configured feed URL.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .coefficients import INTENSITY_PREFIX, IntensityTable
from .compute import STORAGE, ScaleFactor
from .errors import FormatError
from .transform import DEFAULT_TEMPLATE, ROW_TYPE

# Load `.env` for local development.
load_dotenv()

ENV_PROPERTIES = "INTENSITY_PROPERTIES"
ENV_STATE_DIR = "INTENSITY_STATE_DIR"
ENV_FEED_URL = "INTENSITY_FEED_URL"

DEFAULT_PROPERTIES_PATH = Path(__file__).resolve().parent.parent / "config" / "intensity.properties"
DEFAULT_STATE_DIR = Path("state")

END_KEY = "end"
END_VALUE = "OK"

FUELNAME_PREFIX = "intensity.fuelname."
CATEGORY_PREFIX = "intensity.category."
SCALE_PREFIX = "intensity.scale."
REASON_SUFFIX = ".reason"
# Older configurations list storage fuels under this key instead.
STORAGE_TYPES_KEY = "intensity.storageTypes"


def parse_properties(text: str) -> dict[str, str]:
    """Parse `key=value` lines; `#` and `!` start comment lines.

    Raises:
        FormatError: On a line with no `=`, or if the last entry is not
            `end=OK`.
    """
    props: dict[str, str] = {}
    last = None
    for n, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line[0] in "#!":
            continue
        key, sep, value = line.partition("=")
        if not sep:
            raise FormatError(f"line {n}: expected key=value, got {line!r}")
        key, value = key.strip(), value.strip()
        props[key] = value
        last = (key, value)
    if last != (END_KEY, END_VALUE):
        raise FormatError(f"properties do not end with {END_KEY}={END_VALUE}; truncated?")
    return props


def load_properties(path: str | os.PathLike) -> dict[str, str]:
    """Read and parse a properties file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise FormatError(f"cannot read properties file {path}: {e}") from e
    return parse_properties(text)


def _fuel_list(raw: str) -> frozenset[str]:
    return frozenset(f.strip() for f in raw.split(",") if f.strip())


def _required(props: Mapping[str, str], key: str) -> str:
    value = props.get(key)
    if value is None or value == "":
        raise FormatError(f"property undefined: {key}")
    return value


class IntensityConfig(BaseModel):
    """Immutable, fully parsed configuration for one run."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    table: IntensityTable
    fuel_names: Mapping[str, str] = Field(default_factory=lambda: MappingProxyType({}))
    categories: Mapping[str, frozenset[str]] = Field(default_factory=lambda: MappingProxyType({}))
    scale_factors: tuple[ScaleFactor, ...] = ()
    transmission_loss: float = Field(ge=0, lt=1)
    distribution_loss: float = Field(ge=0, lt=1)
    max_age_s: int = Field(gt=0)
    window_samples: int = Field(default=288, gt=0)
    stats_window_samples: int = Field(default=288, gt=0)
    notify_min_gap_mins: int = Field(default=60, ge=0)
    csv_template: str = DEFAULT_TEMPLATE
    csv_label: str = ROW_TYPE
    csv_url: str | None = None
    json_url: str | None = None
    min_fuel_types_in_mix: int = Field(default=2, ge=0)
    connect_timeout_s: float = Field(default=10, gt=0)
    read_timeout_s: float = Field(default=60, gt=0)
    explicit_expected_fuels: frozenset[str] | None = None

    @field_validator("fuel_names", "categories")
    @classmethod
    def _read_only(cls, v):
        return MappingProxyType(dict(v))

    @property
    def expected_fuels(self) -> frozenset[str]:
        """Fuels a snapshot needs to be complete.

        Configured explicitly, or else every fuel with a coefficient or a
        category.
        """
        if self.explicit_expected_fuels is not None:
            return self.explicit_expected_fuels
        fuels = set(self.table.fuels)
        for members in self.categories.values():
            fuels |= members
        return frozenset(fuels)

    @property
    def storage_fuels(self) -> frozenset[str]:
        return self.categories.get(STORAGE, frozenset())

    def fuel_name(self, fuel: str) -> str:
        """Human-readable fuel name, falling back to the code."""
        return self.fuel_names.get(fuel, fuel)

    @classmethod
    def from_properties(cls, props: Mapping[str, str]) -> IntensityConfig:
        """Build a config from flat properties.

        Raises:
            FormatError: On missing required keys, no fuel coefficients, or
                any malformed value.
        """
        table = IntensityTable.from_properties(props, INTENSITY_PREFIX)
        if not len(table):
            raise FormatError(f"no fuel intensities defined ({INTENSITY_PREFIX}*)")

        fuel_names = {
            k[len(FUELNAME_PREFIX):]: v for k, v in props.items() if k.startswith(FUELNAME_PREFIX)
        }
        categories = {
            k[len(CATEGORY_PREFIX):]: _fuel_list(v)
            for k, v in props.items()
            if k.startswith(CATEGORY_PREFIX)
        }
        if STORAGE not in categories and props.get(STORAGE_TYPES_KEY):
            categories[STORAGE] = _fuel_list(props[STORAGE_TYPES_KEY])

        scale_factors = []
        for k, v in sorted(props.items()):
            if not k.startswith(SCALE_PREFIX) or k.endswith(REASON_SUFFIX):
                continue
            fuel = k[len(SCALE_PREFIX):]
            try:
                factor = float(v)
            except ValueError as e:
                raise FormatError(f"bad scale factor {v!r} for {k}") from e
            scale_factors.append(ScaleFactor(fuel, factor, props.get(k + REASON_SUFFIX, "")))

        expected = props.get("intensity.expectedFuels")
        fields = {
            "table": table,
            "fuel_names": fuel_names,
            "categories": categories,
            "scale_factors": tuple(scale_factors),
            "transmission_loss": _required(props, "intensity.loss.transmission"),
            "distribution_loss": _required(props, "intensity.loss.distribution"),
            "max_age_s": _required(props, "timescale.intensity.max"),
            "window_samples": props.get("intensity.window.samples"),
            "stats_window_samples": props.get("intensity.stats.window.samples"),
            "notify_min_gap_mins": props.get("intensity.notify.minGapMins"),
            "csv_template": props.get("intensity.csv.fueltype"),
            "csv_label": props.get("intensity.csv.label"),
            "csv_url": props.get("intensity.URL.current.csv"),
            "json_url": props.get("intensity.URL.current.json"),
            "min_fuel_types_in_mix": props.get("intensity.minFuelTypesInMix"),
            "connect_timeout_s": props.get("intensity.http.connectTimeout"),
            "read_timeout_s": props.get("intensity.http.readTimeout"),
            "explicit_expected_fuels": _fuel_list(expected) if expected else None,
        }
        try:
            return cls(**{k: v for k, v in fields.items() if v is not None})
        except ValidationError as e:
            raise FormatError(f"invalid configuration: {e}") from e


def properties_path() -> Path:
    return Path(os.environ.get(ENV_PROPERTIES) or DEFAULT_PROPERTIES_PATH)


def state_dir() -> Path:
    return Path(os.environ.get(ENV_STATE_DIR) or DEFAULT_STATE_DIR)


def feed_url(config: IntensityConfig) -> str | None:
    """Feed URL to poll: the environment override, else JSON, else CSV."""
    return os.environ.get(ENV_FEED_URL) or config.json_url or config.csv_url


def load_config(path: str | os.PathLike | None = None) -> IntensityConfig:
    """Load the configuration from `path` or `INTENSITY_PROPERTIES`."""
    return IntensityConfig.from_properties(load_properties(path or properties_path()))
