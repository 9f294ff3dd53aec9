"""
API endpoint tests
"""

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from models import GuideLicense, MeetingPoint, Setting, Trip
from models.base import LicenseStatus, UserRole


def next_wednesday(min_days: int = 40) -> date:
    day = date.today() + timedelta(days=min_days)
    while day.weekday() != 2:
        day += timedelta(days=1)
    return day


# ============================================================================
# Public
# ============================================================================

class TestPublicEndpoints:

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "Aero Travel Backend API"

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        data = response.json()

        assert response.status_code == 200
        assert data["database_connected"] is True
        assert data["status"] == "healthy"
        assert data["scheduler_running"] is False

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-API-Latency-ms" in response.headers

    @pytest.mark.asyncio
    async def test_public_settings(self, client, db_session):
        db_session.add_all([
            Setting(key="app.company_name", value="Aero Travel", value_type="string", is_public=True),
            Setting(key="ratelimit.api_limit", value="200", value_type="number"),
        ])
        await db_session.commit()

        response = await client.get("/api/settings/public")

        assert response.status_code == 200
        assert response.json() == {"settings": {"app.company_name": "Aero Travel"}}


# ============================================================================
# Authentication
# ============================================================================

class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/customer/points")
        body = response.json()

        assert response.status_code == 401
        assert body["error"] == "Unauthorized"
        assert body["code"] == "UNAUTHORIZED"
        assert body["request_id"]

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get("/api/customer/points", headers={"Authorization": "Bearer nonsense"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_inactive_user(self, client, make_user, auth):
        user = await make_user(UserRole.CUSTOMER, is_active=False)
        response = await client.get("/api/customer/points", headers=auth(user))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_role(self, client, guide, auth):
        response = await client.get("/api/customer/points", headers=auth(guide))
        body = response.json()

        assert response.status_code == 403
        assert body["error"] == "Forbidden"
        assert body["code"] == "FORBIDDEN"


# ============================================================================
# Partner portal
# ============================================================================

class TestPartnerEndpoints:

    @pytest.mark.asyncio
    async def test_quote(self, client, mitra, package, auth):
        payload = {"package_id": package.id, "trip_date": next_wednesday().isoformat(), "adult_pax": 2, "child_pax": 1}
        response = await client.post("/api/partner/bookings/quote", json=payload, headers=auth(mitra))
        data = response.json()

        assert response.status_code == 200
        assert Decimal(data["subtotal"]) == Decimal("1250000")
        assert Decimal(data["total_amount"]) == Decimal("1387500")
        assert data["is_weekend"] is False

    @pytest.mark.asyncio
    async def test_quote_requires_an_adult(self, client, mitra, package, auth):
        payload = {"package_id": package.id, "trip_date": next_wednesday().isoformat(), "adult_pax": 0}
        response = await client.post("/api/partner/bookings/quote", json=payload, headers=auth(mitra))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_create_list_get_cancel(self, client, mitra, package, wallet, auth):
        headers = auth(mitra)
        payload = {
            "package_id": package.id,
            "trip_date": next_wednesday().isoformat(),
            "adult_pax": 2,
            "customer_name": "Budi Santoso",
            "customer_phone": "081234567890",
        }

        created = await client.post("/api/partner/bookings", json=payload, headers=headers)
        assert created.status_code == 201
        booking = created.json()
        assert booking["status"] == "confirmed"
        assert booking["package_name"] == "Pahawang Island Hopping"
        assert booking["booking_code"].startswith("BK-")

        listed = await client.get("/api/partner/bookings", params={"status": "confirmed"}, headers=headers)
        assert listed.status_code == 200
        assert listed.json()["pagination"]["total"] == 1

        fetched = await client.get(f"/api/partner/bookings/{booking['id']}", headers=headers)
        assert fetched.json()["id"] == booking["id"]

        cancelled = await client.post(
            f"/api/partner/bookings/{booking['id']}/cancel", json={"reason": "Weather"}, headers=headers
        )
        data = cancelled.json()
        assert cancelled.status_code == 200
        assert data["booking"]["status"] == "cancelled"
        assert data["refund"]["refund_percentage"] == 100
        assert Decimal(data["refund"]["refund_amount"]) == Decimal("800000")

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, client, mitra, package, wallet, auth):
        payload = {
            "package_id": package.id,
            "trip_date": next_wednesday().isoformat(),
            "adult_pax": 10,
            "customer_name": "Rombongan",
            "customer_phone": "081234567890",
        }
        response = await client.post("/api/partner/bookings", json=payload, headers=auth(mitra))

        assert response.status_code == 400
        assert response.json()["code"] == "INSUFFICIENT_BALANCE"

    @pytest.mark.asyncio
    async def test_unknown_booking(self, client, mitra, auth):
        response = await client.get("/api/partner/bookings/missing", headers=auth(mitra))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_customer_cannot_book(self, client, customer, auth):
        response = await client.get("/api/partner/bookings", headers=auth(customer))
        assert response.status_code == 403


# ============================================================================
# Guide app
# ============================================================================

class TestGuideEndpoints:

    @pytest.mark.asyncio
    async def test_check_in_flow(self, client, db_session, guide, branch, auth):
        point = MeetingPoint(branch_id=branch.id, name="Dermaga Hanura", latitude=-5.5, longitude=105.2)
        db_session.add(point)
        await db_session.flush()
        trip = Trip(branch_id=branch.id, meeting_point_id=point.id, trip_code="TRIP-API", trip_date=date.today())
        db_session.add(trip)
        await db_session.commit()
        trip_id = trip.id
        headers = auth(guide)

        far = await client.post(
            "/api/guide/attendance/check-in",
            json={"trip_id": trip_id, "latitude": -5.51, "longitude": 105.2},
            headers=headers,
        )
        assert far.status_code == 400
        assert far.json()["code"] == "OUTSIDE_GEOFENCE"

        near = await client.post(
            "/api/guide/attendance/check-in",
            json={"trip_id": trip_id, "latitude": -5.5001, "longitude": 105.2, "accuracy": 8},
            headers=headers,
        )
        assert near.status_code == 200
        assert near.json()["meeting_point"]["name"] == "Dermaga Hanura"

        status = await client.get(f"/api/guide/attendance/{trip_id}", headers=headers)
        assert status.json()["checked_in"] is True

    @pytest.mark.asyncio
    async def test_geofencing_settings_defaults(self, client, guide, auth):
        response = await client.get("/api/guide/settings/geofencing", headers=auth(guide))
        assert response.json() == {
            "gps_timeout_ms": 10000,
            "gps_max_age_ms": 0,
            "gps_watch_max_age_ms": 5000,
            "default_radius_meters": 50,
        }

    @pytest.mark.asyncio
    async def test_rewards_and_redeem(self, client, super_admin, guide, auth):
        awarded = await client.post(
            "/api/admin/rewards/award",
            json={"guide_id": guide.id, "points": 300, "source_type": "badge", "source_id": "expert"},
            headers=auth(super_admin),
        )
        assert awarded.status_code == 201
        assert awarded.json()["balance_after"] == 300

        balance = await client.get("/api/guide/rewards", headers=auth(guide))
        assert balance.json()["balance"] == 300

        expiring = await client.get("/api/guide/rewards/expiring", params={"days": 30}, headers=auth(guide))
        assert expiring.json()["total"] == 0

        redeemed = await client.post("/api/guide/rewards/redeem", json={"points": 500}, headers=auth(guide))
        assert redeemed.status_code == 400
        assert redeemed.json()["code"] == "INSUFFICIENT_BALANCE"

    @pytest.mark.asyncio
    async def test_license_status(self, client, db_session, guide, auth):
        today = date.today()
        db_session.add(GuideLicense(
            guide_id=guide.id, license_number="GL-API", status=LicenseStatus.ACTIVE,
            issued_at=today - timedelta(days=340), expiry_date=today + timedelta(days=10),
        ))
        await db_session.commit()

        response = await client.get("/api/guide/license/status", headers=auth(guide))
        data = response.json()

        assert data["has_license"] is True
        assert data["status"] == "expiring_soon"
        assert data["days_until_expiry"] == 10


# ============================================================================
# Customer storefront
# ============================================================================

class TestCustomerEndpoints:

    @pytest.mark.asyncio
    async def test_points_and_estimate(self, client, customer, auth):
        balance = await client.get("/api/customer/points", headers=auth(customer))
        assert balance.status_code == 200
        assert balance.json()["balance"] == 0

        estimate = await client.get(
            "/api/customer/points/estimate", params={"booking_value": 1250000}, headers=auth(customer)
        )
        assert estimate.json()["points"] == 120

    @pytest.mark.asyncio
    async def test_referral_flow(self, client, customer, make_user, branch, auth):
        stats = await client.get("/api/customer/referral", headers=auth(customer))
        code = stats.json()["code"]
        assert code.startswith("AERO-")
        assert stats.json()["share"]["whatsapp_url"].startswith("https://wa.me/")

        friend = await make_user(UserRole.CUSTOMER, branch)
        valid = await client.get("/api/customer/referral/validate", params={"code": code.lower()}, headers=auth(friend))
        assert valid.json()["valid"] is True

        applied = await client.post("/api/customer/referral/apply", json={"code": code}, headers=auth(friend))
        assert applied.status_code == 200
        assert Decimal(applied.json()["discount"]) == Decimal("50000")

        again = await client.post("/api/customer/referral/apply", json={"code": code}, headers=auth(friend))
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_redeem_without_points(self, client, customer, auth):
        response = await client.post("/api/customer/points/redeem", json={"points": 10}, headers=auth(customer))
        assert response.status_code == 400


# ============================================================================
# Admin console
# ============================================================================

class TestAdminEndpoints:

    @pytest.mark.asyncio
    async def test_branch_admin_updates_branch_setting(self, client, branch_admin, branch, auth):
        response = await client.put(
            "/api/admin/settings",
            json={"key": "geofencing.default_radius_meters", "value": 80, "value_type": "number"},
            headers=auth(branch_admin),
        )
        data = response.json()

        assert response.status_code == 200
        assert data["branch_id"] == branch.id
        assert data["value"] == 80

    @pytest.mark.asyncio
    async def test_branch_admin_cannot_touch_other_branch(self, client, branch_admin, other_branch, auth):
        response = await client.put(
            "/api/admin/settings",
            json={"key": "x.y", "value": "z", "branch_id": other_branch.id},
            headers=auth(branch_admin),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_sensitive_values_are_masked(self, client, super_admin, auth):
        await client.put(
            "/api/admin/settings",
            json={"key": "payment.server_key", "value": "sk-live-123", "is_sensitive": True},
            headers=auth(super_admin),
        )
        response = await client.get("/api/admin/settings", headers=auth(super_admin))
        settings = {s["key"]: s for s in response.json()["settings"]}

        assert settings["payment.server_key"]["value"] == "********"

    @pytest.mark.asyncio
    async def test_marketing_cannot_manage_settings(self, client, make_user, branch, auth):
        marketing = await make_user(UserRole.MARKETING, branch)
        response = await client.get("/api/admin/settings", headers=auth(marketing))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_bookings_are_branch_scoped(self, client, mitra, package, wallet, other_branch, make_user, auth):
        payload = {
            "package_id": package.id,
            "trip_date": next_wednesday().isoformat(),
            "adult_pax": 1,
            "customer_name": "Budi",
            "customer_phone": "081234567890",
        }
        await client.post("/api/partner/bookings", json=payload, headers=auth(mitra))

        outsider = await make_user(UserRole.BRANCH_ADMIN, other_branch)
        response = await client.get("/api/admin/bookings", headers=auth(outsider))
        assert response.json()["pagination"]["total"] == 0

    @pytest.mark.asyncio
    async def test_award_to_non_guide(self, client, super_admin, customer, auth):
        response = await client.post(
            "/api/admin/rewards/award",
            json={"guide_id": customer.id, "points": 10},
            headers=auth(super_admin),
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_complete_booking_and_review_bonus(
        self, client, mitra, package, wallet, customer, branch_admin, auth
    ):
        payload = {
            "package_id": package.id,
            "trip_date": date.today().isoformat(),
            "adult_pax": 1,
            "customer_name": "Siti",
            "customer_phone": "081298765432",
            "customer_id": customer.id,
        }
        created = await client.post("/api/partner/bookings", json=payload, headers=auth(mitra))
        assert created.json()["customer_id"] == customer.id
        booking_id = created.json()["id"]

        completed = await client.post(f"/api/admin/bookings/{booking_id}/complete", headers=auth(branch_admin))
        data = completed.json()
        assert completed.status_code == 200
        assert data["booking"]["status"] == "completed"
        assert data["points_awarded"] > 0
        assert data["referral_completed"] is False

        bonus = await client.post(f"/api/admin/bookings/{booking_id}/review-bonus", headers=auth(branch_admin))
        assert bonus.status_code == 201
        assert bonus.json()["transaction_type"] == "earn_review"
        assert bonus.json()["points"] == 50

        again = await client.post(f"/api/admin/bookings/{booking_id}/review-bonus", headers=auth(branch_admin))
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_guide_cannot_complete_booking(self, client, guide, auth):
        response = await client.post("/api/admin/bookings/missing/complete", headers=auth(guide))
        assert response.status_code == 403
