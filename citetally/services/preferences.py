from __future__ import annotations

import json
import logging

from citetally.logging_utils import structured_log
from citetally.services.citations.databases import (
    DATABASES,
    DEFAULT_DATABASE_ORDER,
    DatabaseOrderValidation,
    split_database_order,
    validate_database_order,
)
from citetally.services.host import PreferenceStore

logger = logging.getLogger(__name__)

PREF_DATABASE_ORDER = "database_order"
PREF_RATE_LIMITS = "rate_limits"
PREF_IGNORED_ITEMS = "ignored_items"
PREF_AUTO_UPDATE = "auto_update"
PREF_AUTO_UPDATE_CUTOFF = "auto_update_cutoff"
PREF_USE_COLORS = "use_colors"

AUTO_UPDATE_NEVER = "never"
AUTO_UPDATE_STARTUP = "startup"
AUTO_UPDATE_MODES = (AUTO_UPDATE_NEVER, AUTO_UPDATE_STARTUP)

DEFAULT_CUTOFF_MONTHS = 6
COLORS_ON = "color"
COLORS_OFF = "plain"


class PreferenceValidationError(ValueError):
    """Raised for expected preference-validation failures."""


def parse_auto_update_mode(value: str) -> str:
    mode = value.strip().lower()
    if mode not in AUTO_UPDATE_MODES:
        raise PreferenceValidationError(f"Auto update must be one of: {', '.join(AUTO_UPDATE_MODES)}.")
    return mode


def parse_cutoff_months(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise PreferenceValidationError("Cutoff must be a whole number of months.") from exc
    if parsed < 1:
        raise PreferenceValidationError("Cutoff must be at least 1 month.")
    return parsed


def parse_rate_limit_overrides(overrides_ms: dict[str, int]) -> str:
    unknown = [name for name in overrides_ms if name not in DATABASES]
    if unknown:
        raise PreferenceValidationError(f"Invalid database(s): {', '.join(unknown)}")
    if any(value <= 0 for value in overrides_ms.values()):
        raise PreferenceValidationError("Rate limits must be positive milliseconds.")
    return json.dumps(overrides_ms, sort_keys=True)


class Preferences:
    """Typed view over the host preference store."""

    def __init__(self, store: PreferenceStore) -> None:
        self._store = store

    async def database_order(self) -> list[str]:
        raw = await self._store.get(PREF_DATABASE_ORDER)
        names = split_database_order(raw or DEFAULT_DATABASE_ORDER)
        known = [name for name in names if name in DATABASES]
        if len(known) != len(names):
            structured_log(
                logger,
                "warning",
                "preferences.unknown_databases_ignored",
                configured=names,
            )
        return known

    async def set_database_order(self, value: str) -> DatabaseOrderValidation:
        validation = validate_database_order(value)
        if validation.valid:
            await self._store.set(PREF_DATABASE_ORDER, ",".join(validation.databases))
        return validation

    async def rate_limit_overrides(self) -> dict[str, float]:
        raw = await self._store.get(PREF_RATE_LIMITS)
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            structured_log(logger, "warning", "preferences.rate_limits_unreadable")
            return {}
        if not isinstance(parsed, dict):
            return {}
        overrides: dict[str, float] = {}
        for database, milliseconds in parsed.items():
            if isinstance(milliseconds, bool) or not isinstance(milliseconds, (int, float)):
                continue
            if milliseconds > 0:
                overrides[str(database)] = float(milliseconds) / 1000.0
        return overrides

    async def auto_update_mode(self) -> str:
        raw = await self._store.get(PREF_AUTO_UPDATE)
        if raw is None:
            return AUTO_UPDATE_NEVER
        try:
            return parse_auto_update_mode(raw)
        except PreferenceValidationError:
            return AUTO_UPDATE_NEVER

    async def cutoff_months(self) -> int:
        raw = await self._store.get(PREF_AUTO_UPDATE_CUTOFF)
        if raw is None:
            return DEFAULT_CUTOFF_MONTHS
        try:
            return parse_cutoff_months(raw)
        except PreferenceValidationError:
            return DEFAULT_CUTOFF_MONTHS

    async def use_colors(self) -> bool:
        return (await self._store.get(PREF_USE_COLORS)) == COLORS_ON

    async def update(
        self,
        *,
        rate_limits_ms: dict[str, int] | None = None,
        auto_update: str | None = None,
        cutoff_months: int | None = None,
        use_colors: bool | None = None,
    ) -> None:
        """Validate every given field, then write them; a rejected update writes nothing."""
        pending: dict[str, str] = {}
        if rate_limits_ms is not None:
            pending[PREF_RATE_LIMITS] = parse_rate_limit_overrides(rate_limits_ms)
        if auto_update is not None:
            pending[PREF_AUTO_UPDATE] = parse_auto_update_mode(auto_update)
        if cutoff_months is not None:
            pending[PREF_AUTO_UPDATE_CUTOFF] = str(parse_cutoff_months(str(cutoff_months)))
        if use_colors is not None:
            pending[PREF_USE_COLORS] = COLORS_ON if use_colors else COLORS_OFF
        for key, value in pending.items():
            await self._store.set(key, value)
