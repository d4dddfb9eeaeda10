"""Environment-driven settings for the guard and the engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

from riskdesk.execution.guard import GuardLimits


__all__ = ["Settings"]

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_number(env: Mapping[str, str], name: str, default: float, cast=float):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be numeric, got {raw!r}") from exc
    return cast(value)


@dataclass(frozen=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    max_daily_dd_percent: float = 4.0
    max_open_positions: int = 5
    max_positions_per_symbol: int = 3
    max_single_trade_risk_percent: float = 1.0
    allow_auto_execute: bool = False
    overtrading_limit: int = 5
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """
        Build settings from the process environment.

        Unset or empty variables keep their defaults.

        Raises:
            ValueError: If a numeric variable cannot be parsed, or the
                resulting settings are invalid
        """
        env = os.environ if env is None else env
        settings = cls(
            max_daily_dd_percent=_parse_number(env, "AUTOPILOT_MAX_DAILY_DD_PERCENT", 4.0),
            max_open_positions=_parse_number(env, "AUTOPILOT_MAX_OPEN_POSITIONS", 5, int),
            max_positions_per_symbol=_parse_number(
                env, "AUTOPILOT_MAX_POSITIONS_PER_SYMBOL", 3, int
            ),
            max_single_trade_risk_percent=_parse_number(
                env, "AUTOPILOT_MAX_SINGLE_TRADE_RISK_PERCENT", 1.0
            ),
            allow_auto_execute=_parse_bool(env.get("AUTOPILOT_ALLOW_AUTO_EXECUTE"), False),
            overtrading_limit=_parse_number(env, "TILT_OVERTRADING_LIMIT", 5, int),
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        )
        settings.validate()
        return settings

    def with_overrides(self, **overrides: Any) -> Settings:
        """Copy with some fields replaced; unknown names raise ValueError."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        updated = replace(self, **overrides)
        updated.validate()
        return updated

    def validate(self) -> None:
        if self.max_daily_dd_percent <= 0:
            raise ValueError("max_daily_dd_percent must be > 0")
        if self.max_open_positions < 1:
            raise ValueError("max_open_positions must be >= 1")
        if self.max_positions_per_symbol < 1:
            raise ValueError("max_positions_per_symbol must be >= 1")
        if self.max_single_trade_risk_percent <= 0:
            raise ValueError("max_single_trade_risk_percent must be > 0")
        if self.overtrading_limit < 0:
            raise ValueError("overtrading_limit must be >= 0")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(sorted(_LOG_LEVELS))}")

    def guard_limits(self) -> GuardLimits:
        return GuardLimits(
            max_daily_dd_percent=self.max_daily_dd_percent,
            max_open_positions=self.max_open_positions,
            max_positions_per_symbol=self.max_positions_per_symbol,
            max_single_trade_risk_percent=self.max_single_trade_risk_percent,
        )
