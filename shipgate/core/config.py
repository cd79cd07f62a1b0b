"""Typed configuration loading and access.

``shipgate.toml`` lives at the repository root. Every table is optional;
a missing file yields the defaults (governance disabled).

    [release]
    branch = "main"
    require_approval = true

    [governance]
    enabled = true
    strict_mode = true
    auto_approve_threshold = 0.3

    [governance.weights]
    breaking = 0.55

    [governance.time]
    timezone = "Europe/Paris"
    business_start_hour = 9
    business_end_hour = 17

    [[governance.time.freeze]]
    name = "year-end"
    start = 2026-12-20
    end = 2027-01-02

    [[governance.rules]]
    name = "block-huge-ci-releases"
    ...
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_float,
    get_int,
    get_list,
    get_str,
    get_table,
)

__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "FreezeConfig",
    "GovernanceConfig",
    "ReleaseConfig",
    "ShipgateConfig",
    "TimeConfig",
    "WeightsConfig",
    "load_config",
    "load_repo_config",
]

CONFIG_FILENAME = "shipgate.toml"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    branch: str = "main"
    require_approval: bool = False
    # Version the first run starts from when no run has been published yet.
    initial_version: str = "0.0.0"


@dataclass(frozen=True, slots=True)
class WeightsConfig:
    breaking: float = 0.55
    security: float = 0.30
    volume: float = 0.15


@dataclass(frozen=True, slots=True)
class FreezeConfig:
    name: str
    start: datetime
    end: datetime
    reason: str = ""
    severity: str = "hard"


@dataclass(frozen=True, slots=True)
class TimeConfig:
    """``[governance.time]``: business hours and freeze periods.

    Freeze bounds without an offset are read in ``timezone`` (system local
    time when empty). A bare date as ``end`` includes that whole day.
    """

    timezone: str = ""
    business_start_hour: int = 9
    business_end_hour: int = 17
    allow_weekends: bool = False
    freeze: tuple[FreezeConfig, ...] = ()

    @property
    def tz(self) -> tzinfo | None:
        return ZoneInfo(self.timezone) if self.timezone else None


@dataclass(frozen=True, slots=True)
class GovernanceConfig:
    """Risk-gate configuration.

    ``rules`` is kept as the raw TOML array; the governance service validates
    it into a policy when the engine is built.
    """

    enabled: bool = False
    strict_mode: bool = False
    auto_approve_threshold: float = 0.3
    history_window: int = 10
    include_history: bool = True
    weights: WeightsConfig = field(default_factory=WeightsConfig)
    time: TimeConfig = field(default_factory=TimeConfig)
    rules: tuple[object, ...] = ()


@dataclass(frozen=True, slots=True)
class ShipgateConfig:
    """Main configuration container."""

    release: ReleaseConfig = field(default_factory=ReleaseConfig)
    governance: GovernanceConfig = field(default_factory=GovernanceConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ShipgateConfig:
        """Create ShipgateConfig from a mapping (parsed TOML).

        Raises ValueError on values of the wrong type or out of range.
        """
        release: StrDict = _table(data, "release")
        governance: StrDict = _table(data, "governance")
        weights: StrDict = _table(governance, "weights")

        threshold = _float(governance, "auto_approve_threshold", 0.3)
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"governance.auto_approve_threshold must be within [0, 1], got {threshold}")

        window = _int(governance, "history_window", 10)
        if window < 1:
            raise ValueError(f"governance.history_window must be >= 1, got {window}")

        weights_cfg = WeightsConfig(
            breaking=_float(weights, "breaking", 0.55),
            security=_float(weights, "security", 0.30),
            volume=_float(weights, "volume", 0.15),
        )
        for name in ("breaking", "security", "volume"):
            if getattr(weights_cfg, name) < 0:
                raise ValueError(f"governance.weights.{name} must not be negative")

        rules = get_list(governance, "rules")
        if "rules" in governance and rules is None:
            raise ValueError("governance.rules must be an array of tables")

        return cls(
            release=ReleaseConfig(
                branch=get_str(release, "branch") or "main",
                require_approval=_bool(release, "require_approval", False),
                initial_version=get_str(release, "initial_version") or "0.0.0",
            ),
            governance=GovernanceConfig(
                enabled=_bool(governance, "enabled", False),
                strict_mode=_bool(governance, "strict_mode", False),
                auto_approve_threshold=threshold,
                history_window=window,
                include_history=_bool(governance, "include_history", True),
                weights=weights_cfg,
                time=_time_config(_table(governance, "time")),
                rules=tuple(rules or ()),
            ),
        )


def _table(data: Mapping[str, object], key: str) -> StrDict:
    if key not in data:
        return {}
    table = get_table(data, key)
    if table is None:
        raise ValueError(f"[{key}] must be a table")
    return table


def _bool(table: StrDict, key: str, default: bool) -> bool:
    if key not in table:
        return default
    value = get_bool(table, key)
    if value is None:
        raise ValueError(f"{key} must be a boolean")
    return value


def _float(table: StrDict, key: str, default: float) -> float:
    if key not in table:
        return default
    value = get_float(table, key)
    if value is None:
        raise ValueError(f"{key} must be a number")
    return value


def _int(table: StrDict, key: str, default: int) -> int:
    if key not in table:
        return default
    value = get_int(table, key)
    if value is None:
        raise ValueError(f"{key} must be an integer")
    return value


def _moment(raw: object, zone: tzinfo | None, *, end: bool) -> datetime | None:
    if isinstance(raw, datetime):
        moment = raw
    elif isinstance(raw, date):
        day = raw + timedelta(days=1) if end else raw
        moment = datetime(day.year, day.month, day.day)
    else:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=zone) if zone is not None else moment.astimezone()
    return moment


def _time_config(table: StrDict) -> TimeConfig:
    timezone = get_str(table, "timezone")
    if "timezone" in table and timezone is None:
        raise ValueError("governance.time.timezone must be a string")
    zone: tzinfo | None = None
    if timezone:
        try:
            zone = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"governance.time.timezone: unknown timezone {timezone!r}") from e

    start_hour = _int(table, "business_start_hour", 9)
    end_hour = _int(table, "business_end_hour", 17)
    if not 0 <= start_hour < end_hour <= 24:
        raise ValueError(
            f"governance.time business hours must satisfy 0 <= start < end <= 24, got {start_hour}-{end_hour}"
        )

    raw_freezes = get_list(table, "freeze")
    if "freeze" in table and raw_freezes is None:
        raise ValueError("governance.time.freeze must be an array of tables")

    freezes: list[FreezeConfig] = []
    for index, item in enumerate(raw_freezes or []):
        freeze = as_str_dict(item)
        if freeze is None:
            raise ValueError(f"governance.time.freeze #{index + 1} must be a table")
        name = get_str(freeze, "name") or f"freeze-{index + 1}"
        start = _moment(freeze.get("start"), zone, end=False)
        end = _moment(freeze.get("end"), zone, end=True)
        if start is None or end is None:
            raise ValueError(f"freeze {name!r}: start and end must be TOML dates or datetimes")
        if end <= start:
            raise ValueError(f"freeze {name!r} ends before it starts")
        severity = get_str(freeze, "severity") or "hard"
        if severity not in ("soft", "hard"):
            raise ValueError(f"freeze {name!r}: severity must be 'soft' or 'hard', got {severity!r}")
        freezes.append(
            FreezeConfig(
                name=name,
                start=start,
                end=end,
                reason=get_str(freeze, "reason") or "",
                severity=severity,
            )
        )

    return TimeConfig(
        timezone=timezone or "",
        business_start_hour=start_hour,
        business_end_hour=end_hour,
        allow_weekends=_bool(table, "allow_weekends", False),
        freeze=tuple(freezes),
    )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling import and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[ShipgateConfig, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to shipgate.toml

    Returns:
        Ok(ShipgateConfig) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(ShipgateConfig.from_dict(result.value))
    except ValueError as e:
        return Err(ConfigError(f"Invalid config: {e}", path=path))


def load_repo_config(root: Path) -> Result[ShipgateConfig, ConfigError]:
    """Load ``shipgate.toml`` from ``root``; defaults when the file is absent."""
    path = root / CONFIG_FILENAME
    if not path.exists():
        return Ok(ShipgateConfig())
    return load_config(path)
