"""
Integration tests for the settings table, branch overrides and caching
"""

import pytest
from models import Setting
from services import settings as settings_service
from services.geofencing import get_geofencing_settings


@pytest.mark.asyncio
async def test_missing_setting_is_none(db_session):
    assert await settings_service.get_setting(db_session, "nope.nothing") is None


@pytest.mark.asyncio
async def test_branch_overrides_global(db_session, branch, other_branch):
    db_session.add_all([
        Setting(key="geofencing.default_radius_meters", value="50", value_type="number"),
        Setting(key="geofencing.default_radius_meters", value="120", value_type="number", branch_id=branch.id),
    ])
    await db_session.commit()

    assert await settings_service.get_setting(db_session, "geofencing.default_radius_meters") == 50
    assert await settings_service.get_setting(db_session, "geofencing.default_radius_meters", branch.id) == 120
    assert await settings_service.get_setting(db_session, "geofencing.default_radius_meters", other_branch.id) == 50


@pytest.mark.asyncio
async def test_prefix_lookup_strips_prefix(db_session, branch):
    db_session.add_all([
        Setting(key="geofencing.gps_timeout_ms", value="15000", value_type="number"),
        Setting(key="geofencing.default_radius_meters", value="75", value_type="number", branch_id=branch.id),
        Setting(key="geofencingx.other", value="1", value_type="number"),
    ])
    await db_session.commit()

    values = await settings_service.get_settings(db_session, "geofencing", branch.id)
    assert values == {"gps_timeout_ms": 15000, "default_radius_meters": 75}

    gps = await get_geofencing_settings(db_session, branch.id)
    assert gps.gps_timeout_ms == 15000
    assert gps.default_radius_meters == 75
    assert gps.gps_watch_max_age_ms == 5000


@pytest.mark.asyncio
async def test_values_are_cached_until_invalidated(db_session):
    row = Setting(key="app.company_name", value="Aero Travel", value_type="string")
    db_session.add(row)
    await db_session.commit()

    assert await settings_service.get_setting(db_session, "app.company_name") == "Aero Travel"

    row.value = "Aero Travel Indonesia"
    await db_session.commit()
    assert await settings_service.get_setting(db_session, "app.company_name") == "Aero Travel"

    settings_service.invalidate_settings_cache()
    assert await settings_service.get_setting(db_session, "app.company_name") == "Aero Travel Indonesia"


@pytest.mark.asyncio
async def test_upsert_creates_updates_and_invalidates(db_session, branch):
    await settings_service.get_setting(db_session, "loyalty.review_bonus", branch.id)

    created = await settings_service.upsert_setting(
        db_session, "loyalty.review_bonus", 75, "number", branch_id=branch.id, is_public=True,
    )
    assert created.value == "75"
    assert await settings_service.get_setting(db_session, "loyalty.review_bonus", branch.id) == 75

    updated = await settings_service.upsert_setting(
        db_session, "loyalty.review_bonus", 80, "number", branch_id=branch.id,
    )
    assert updated.id == created.id
    assert updated.is_public is True
    assert await settings_service.get_setting(db_session, "loyalty.review_bonus", branch.id) == 80


@pytest.mark.asyncio
async def test_public_settings_exclude_sensitive(db_session):
    db_session.add_all([
        Setting(key="app.company_name", value="Aero Travel", value_type="string", is_public=True),
        Setting(key="payment.server_key", value="secret", value_type="string", is_public=True, is_sensitive=True),
        Setting(key="ratelimit.api_limit", value="200", value_type="number", is_public=False),
    ])
    await db_session.commit()

    assert await settings_service.get_public_settings(db_session) == {"app.company_name": "Aero Travel"}


@pytest.mark.asyncio
async def test_rate_limit_settings_fall_back_to_config(db_session):
    db_session.add(Setting(key="ratelimit.auth_limit", value="3", value_type="number"))
    await db_session.commit()

    limits = await settings_service.get_rate_limit_settings(db_session)
    assert limits.auth_limit == 3
    assert limits.api_limit == 200
    assert limits.window_seconds == 60


@pytest.mark.asyncio
async def test_loyalty_rules_defaults(db_session):
    rules = await settings_service.get_loyalty_rules(db_session)
    assert rules == settings_service.LoyaltyRules()


@pytest.mark.asyncio
async def test_rate_limit_settings_ignore_text_values(db_session):
    db_session.add_all([
        Setting(key="ratelimit.api_limit", value="lots", value_type="string"),
        Setting(key="ratelimit.window_seconds", value="0", value_type="number"),
        Setting(key="ratelimit.enabled", value="false", value_type="string"),
    ])
    await db_session.commit()

    limits = await settings_service.get_rate_limit_settings(db_session)
    assert limits.api_limit == 200
    assert limits.window_seconds == 60
    assert limits.enabled is False

    await settings_service.upsert_setting(db_session, "ratelimit.enabled", "true", "string")
    assert (await settings_service.get_rate_limit_settings(db_session)).enabled is True


@pytest.mark.asyncio
async def test_geofencing_settings_ignore_text_values(db_session, branch):
    db_session.add_all([
        Setting(key="geofencing.gps_timeout_ms", value="slow", value_type="string"),
        Setting(key="geofencing.default_radius_meters", value="-10", value_type="number", branch_id=branch.id),
    ])
    await db_session.commit()

    gps = await get_geofencing_settings(db_session, branch.id)
    assert gps.gps_timeout_ms == 10000
    assert gps.default_radius_meters == 50


@pytest.mark.asyncio
async def test_loyalty_rules_ignore_text_values(db_session):
    db_session.add_all([
        Setting(key="loyalty.review_bonus", value="many", value_type="string"),
        Setting(key="loyalty.points_per_100k", value="20", value_type="number"),
    ])
    await db_session.commit()

    rules = await settings_service.get_loyalty_rules(db_session)
    assert rules.review_bonus == 50
    assert rules.points_per_100k == 20
