"""
Settings lookup backed by the ``settings`` table.

Values are stored as text with a ``value_type`` tag and parsed on read. A
branch row overrides the global row (``branch_id IS NULL``) with the same
key. Lookups are cached per process in a TTL cache; writes invalidate it.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Union

from cachetools import TTLCache
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings as app_settings
from core.exceptions import ValidationError
from models.organization import Setting

logger = logging.getLogger(__name__)

ParsedSettingValue = Union[str, int, float, bool, Dict[str, Any], list, None]

VALUE_TYPES = ("string", "number", "boolean", "json")

_cache: TTLCache = TTLCache(
    maxsize=app_settings.SETTINGS_CACHE_MAXSIZE,
    ttl=app_settings.SETTINGS_CACHE_TTL,
)


def _cache_key(branch_id: Optional[str], *parts: str) -> str:
    return ":".join(("settings", branch_id or "global") + parts)


def parse_setting_value(value: Optional[str], value_type: str) -> ParsedSettingValue:
    """Parse a stored text value according to its ``value_type``."""
    if value is None:
        return None
    if value_type == "number":
        try:
            number = float(value)
        except ValueError:
            return None
        return int(number) if number.is_integer() else number
    if value_type == "boolean":
        return value in ("true", "1")
    if value_type == "json":
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def coerce_int(value: Any, default: int, minimum: Optional[int] = None, key: Optional[str] = None) -> int:
    """
    Integer view of a parsed setting value.

    ``default`` is used when the value is missing, not numeric (a ``string``
    or ``json`` row holding something else), or below ``minimum``.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        number = None
    else:
        try:
            number = int(float(value))
        except (TypeError, ValueError, OverflowError):
            number = None
    if number is None or (minimum is not None and number < minimum):
        logger.warning(f"Ignoring invalid setting value for {key or 'setting'}: {value!r}")
        return default
    return number


def coerce_bool(value: Any, default: bool) -> bool:
    """Boolean view of a parsed setting value; strings go through the boolean parser."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return bool(parse_setting_value(value.strip().lower(), "boolean"))
    return default


def serialize_setting_value(value: Any, value_type: str) -> str:
    """Inverse of :func:`parse_setting_value`."""
    if value_type not in VALUE_TYPES:
        raise ValidationError(
            f"Unsupported value_type '{value_type}'",
            context={"field_name": "value_type", "field_value": value_type},
        )
    if value_type == "json":
        return json.dumps(value)
    if value_type == "boolean":
        if isinstance(value, str):
            return "true" if value.lower() in ("true", "1") else "false"
        return "true" if value else "false"
    if value_type == "number":
        try:
            float(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "Setting value is not a number",
                context={"field_name": "value", "field_value": value},
                original_exception=e,
            ) from e
    return str(value)


def _prefer_branch(rows: Iterable[Setting], branch_id: Optional[str]) -> Dict[str, Setting]:
    """Collapse rows by key, branch rows winning over global ones."""
    chosen: Dict[str, Setting] = {}
    for row in rows:
        current = chosen.get(row.key)
        if current is None or (branch_id and row.branch_id == branch_id):
            chosen[row.key] = row
    return chosen


def _scope(stmt, branch_id: Optional[str]):
    if branch_id:
        return stmt.where(or_(Setting.branch_id == branch_id, Setting.branch_id.is_(None)))
    return stmt.where(Setting.branch_id.is_(None))


async def get_setting(
    db: AsyncSession,
    key: str,
    branch_id: Optional[str] = None
) -> ParsedSettingValue:
    """Get a single setting value, or ``None`` when it is not defined."""
    cache_key = _cache_key(branch_id, key)
    if cache_key in _cache:
        return _cache[cache_key]

    result = await db.execute(_scope(select(Setting).where(Setting.key == key), branch_id))
    row = _prefer_branch(result.scalars().all(), branch_id).get(key)

    if row is None:
        logger.debug(f"Setting not found: {key} (branch={branch_id or 'global'})")
        value = None
    else:
        value = parse_setting_value(row.value, row.value_type)

    _cache[cache_key] = value
    return value


async def get_settings(
    db: AsyncSession,
    prefix: str,
    branch_id: Optional[str] = None
) -> Dict[str, ParsedSettingValue]:
    """
    Get all settings under ``prefix`` keyed by the remainder of the key.

    ``get_settings(db, "ratelimit")`` returns ``{"api_limit": 200, ...}``
    for rows ``ratelimit.api_limit`` and so on.
    """
    cache_key = _cache_key(branch_id, "prefix", prefix)
    if cache_key in _cache:
        return dict(_cache[cache_key])

    stmt = select(Setting).where(Setting.key.startswith(f"{prefix}.", autoescape=True))
    result = await db.execute(_scope(stmt, branch_id))

    values: Dict[str, ParsedSettingValue] = {}
    for key, row in _prefer_branch(result.scalars().all(), branch_id).items():
        values[key[len(prefix) + 1:]] = parse_setting_value(row.value, row.value_type)

    _cache[cache_key] = values
    return dict(values)


async def get_public_settings(
    db: AsyncSession,
    branch_id: Optional[str] = None
) -> Dict[str, ParsedSettingValue]:
    """All ``is_public`` settings, never including sensitive ones."""
    cache_key = _cache_key(branch_id, "public", "all")
    if cache_key in _cache:
        return dict(_cache[cache_key])

    stmt = select(Setting).where(Setting.is_public.is_(True), Setting.is_sensitive.is_(False))
    result = await db.execute(_scope(stmt, branch_id))

    values = {
        key: parse_setting_value(row.value, row.value_type)
        for key, row in _prefer_branch(result.scalars().all(), branch_id).items()
    }
    _cache[cache_key] = values
    return dict(values)


async def list_settings(db: AsyncSession, branch_id: Optional[str] = None) -> list:
    """Raw rows for the admin console (global rows plus the branch's own)."""
    stmt = _scope(select(Setting), branch_id).order_by(Setting.key, Setting.branch_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def upsert_setting(
    db: AsyncSession,
    key: str,
    value: Any,
    value_type: str = "string",
    branch_id: Optional[str] = None,
    is_public: Optional[bool] = None,
    is_sensitive: Optional[bool] = None,
    description: Optional[str] = None,
) -> Setting:
    """Create or update a setting row and invalidate the cache for its scope."""
    stored = serialize_setting_value(value, value_type)

    stmt = select(Setting).where(Setting.key == key)
    stmt = stmt.where(Setting.branch_id == branch_id) if branch_id else stmt.where(Setting.branch_id.is_(None))
    row = (await db.execute(stmt)).scalar_one_or_none()

    if row is None:
        row = Setting(
            key=key,
            branch_id=branch_id,
            is_public=bool(is_public),
            is_sensitive=bool(is_sensitive),
        )
        db.add(row)

    row.value = stored
    row.value_type = value_type
    if is_public is not None:
        row.is_public = is_public
    if is_sensitive is not None:
        row.is_sensitive = is_sensitive
    if description is not None:
        row.description = description

    await db.commit()
    await db.refresh(row)

    invalidate_settings_cache(branch_id)
    logger.info(f"Setting updated: {key} (branch={branch_id or 'global'})")
    return row


def invalidate_settings_cache(branch_id: Optional[str] = None) -> None:
    """
    Drop cached values for a branch. A global change can affect every
    branch through fallback, so it clears the whole cache.
    """
    if branch_id is None:
        _cache.clear()
    else:
        prefix = _cache_key(branch_id) + ":"
        for key in [k for k in list(_cache.keys()) if k.startswith(prefix)]:
            _cache.pop(key, None)
    logger.debug(f"Settings cache invalidated (branch={branch_id or 'global'})")


# ============================================================================
# Typed groups
# ============================================================================

@dataclass(frozen=True)
class RateLimitSettings:
    enabled: bool
    default_limit: int
    api_limit: int
    auth_limit: int
    window_seconds: int


async def get_rate_limit_settings(
    db: AsyncSession,
    branch_id: Optional[str] = None
) -> RateLimitSettings:
    values = await get_settings(db, "ratelimit", branch_id)

    def pick(name: str, fallback: int) -> int:
        return coerce_int(values.get(name), fallback, minimum=1, key=f"ratelimit.{name}")

    return RateLimitSettings(
        enabled=coerce_bool(values.get("enabled"), app_settings.RATE_LIMIT_ENABLED),
        default_limit=pick("default_limit", app_settings.RATE_LIMIT_DEFAULT),
        api_limit=pick("api_limit", app_settings.RATE_LIMIT_API),
        auth_limit=pick("auth_limit", app_settings.RATE_LIMIT_AUTH),
        window_seconds=pick("window_seconds", app_settings.RATE_LIMIT_WINDOW_SECONDS),
    )


@dataclass(frozen=True)
class LoyaltyRules:
    points_per_100k: int = 10
    redemption_value: int = 1
    review_bonus: int = 50
    min_booking_for_points: int = 100_000
    points_expiry_days: int = 365


async def get_loyalty_rules(
    db: AsyncSession,
    branch_id: Optional[str] = None
) -> LoyaltyRules:
    """
    AeroPoints rules. ``points_per_100k`` is also accepted without the
    ``loyalty.`` prefix, as older deployments stored it.
    """
    values = await get_settings(db, "loyalty", branch_id)
    defaults = LoyaltyRules()

    points_per_100k = values.get("points_per_100k")
    if points_per_100k is None:
        points_per_100k = await get_setting(db, "points_per_100k", branch_id)

    def pick(name: str, fallback: int) -> int:
        return coerce_int(values.get(name), fallback, minimum=0, key=f"loyalty.{name}")

    return LoyaltyRules(
        points_per_100k=coerce_int(points_per_100k, defaults.points_per_100k, minimum=0, key="loyalty.points_per_100k"),
        redemption_value=pick("redemption_value", defaults.redemption_value),
        review_bonus=pick("review_bonus", defaults.review_bonus),
        min_booking_for_points=pick("min_booking_for_points", defaults.min_booking_for_points),
        points_expiry_days=pick("points_expiry_days", defaults.points_expiry_days),
    )
