"""
HTTP tests of the company and vendor apps through FastAPI's TestClient.
"""

import json
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from cabhub.src.enums import BookingStatus, BookingVisibility

from conftest import PASSWORD


def login(client: TestClient, app: str, username: str) -> dict:
    response = client.post(
        f"/{app}/account/token", data={"username": username, "password": PASSWORD}
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def headers(client, world):
    return {
        "acme": login(client, "company", "acme"),
        "globex": login(client, "company", "globex"),
        "swift": login(client, "vendor", "swift"),
        "metro": login(client, "vendor", "metro"),
        "rapid": login(client, "vendor", "rapid"),
    }


@pytest.fixture
def booking(client, headers):
    pickup = datetime.now(timezone.utc) + timedelta(hours=3)
    response = client.post(
        "/company/booking",
        headers=headers["acme"],
        data={
            "guest_name": "Ravi Menon",
            "guest_phone": "+919876543210",
            "pickup_location": "Cochin International Airport",
            "dropoff_location": "Infopark Phase 2",
            "pickup_datetime": pickup.isoformat(),
            "fare_amount": "850",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "OK"


class TestAccountToken:
    def test_wrong_password(self, client, world):
        response = client.post(
            "/company/account/token", data={"username": "acme", "password": "nope"}
        )
        assert response.status_code == 401
        assert response.headers["X-Error"] == "InvalidCredentials"

    def test_vendor_account_cannot_use_company_app(self, client, world):
        response = client.post(
            "/company/account/token", data={"username": "swift", "password": PASSWORD}
        )
        assert response.status_code == 401

    def test_company_token_is_rejected_by_vendor_app(self, client, headers):
        response = client.get("/vendor/booking", headers=headers["acme"])
        assert response.status_code == 401
        assert response.headers["X-Error"] == "InvalidToken"

    def test_logout(self, client, headers):
        response = client.delete("/company/account/token", headers=headers["acme"])
        assert response.status_code == 204
        response = client.get("/company/booking", headers=headers["acme"])
        assert response.status_code == 401

    def test_login_is_logged(self, client, world, mock_openobserve):
        login(client, "vendor", "swift")
        mock_openobserve.assert_called_once()

    def test_refresh_rotates_the_access_token(self, client, headers):
        old = headers["swift"]
        response = client.patch("/vendor/account/token", headers=old)
        assert response.status_code == 200
        new = {"Authorization": f"Bearer {response.json()['access_token']}"}
        assert new != old
        assert client.get("/vendor/booking", headers=old).status_code == 401
        assert client.get("/vendor/booking", headers=new).status_code == 200


class TestBookingFlow:
    def test_create(self, booking):
        assert booking["status"] == BookingStatus.PENDING
        assert booking["visibility"] == BookingVisibility.ASSOCIATED
        assert booking["booking_number"].startswith("BK-")
        assert booking["fare_amount"] == 850

    def test_create_in_the_past(self, client, headers):
        pickup = datetime.now(timezone.utc) - timedelta(hours=3)
        response = client.post(
            "/company/booking",
            headers=headers["acme"],
            data={
                "guest_name": "Ravi Menon",
                "guest_phone": "+919876543210",
                "pickup_location": "Airport",
                "dropoff_location": "Infopark",
                "pickup_datetime": pickup.isoformat(),
            },
        )
        assert response.status_code == 406
        assert response.headers["X-Error"] == "InvalidValue"

    def test_offers(self, client, headers, booking):
        swift = client.get("/vendor/booking", headers=headers["swift"]).json()
        rapid = client.get("/vendor/booking", headers=headers["rapid"]).json()
        assert [item["id"] for item in swift] == [booking["id"]]
        assert rapid == []

    def test_accept_race_over_http(self, client, headers, booking):
        first = client.patch(
            "/vendor/booking/accept", headers=headers["swift"], data={"id": booking["id"]}
        )
        second = client.patch(
            "/vendor/booking/accept", headers=headers["metro"], data={"id": booking["id"]}
        )
        assert first.status_code == 200
        assert first.json()["status"] == BookingStatus.ACCEPTED
        assert second.status_code == 409
        assert second.headers["X-Error"] == "AlreadyAssigned"

    def test_unassociated_vendor_gets_not_found(self, client, headers, booking):
        response = client.patch(
            "/vendor/booking/accept", headers=headers["rapid"], data={"id": booking["id"]}
        )
        assert response.status_code == 404

    def test_full_trip(self, client, headers, world, booking):
        swift = headers["swift"]
        bookingId = booking["id"]

        client.patch("/vendor/booking/accept", headers=swift, data={"id": bookingId})

        response = client.patch(
            "/vendor/booking/start", headers=swift, data={"id": bookingId}
        )
        assert response.status_code == 412
        assert response.headers["X-Error"] == "PreconditionFailed"

        response = client.patch(
            "/vendor/booking/assign",
            headers=swift,
            data={
                "id": bookingId,
                "driver_id": world.swift.driver.id,
                "vehicle_id": world.swift.vehicle.id,
            },
        )
        assert response.status_code == 200
        assert response.json()["driver_id"] == world.swift.driver.id

        response = client.patch(
            "/vendor/booking/start", headers=swift, data={"id": bookingId}
        )
        assert response.json()["status"] == BookingStatus.ONGOING

        response = client.patch(
            "/vendor/booking/end",
            headers=swift,
            data={"id": bookingId, "actual_fare": "450"},
        )
        assert response.json()["status"] == BookingStatus.COMPLETED
        assert response.json()["actual_fare"] == 450

        response = client.patch(
            "/company/booking/review",
            headers=headers["acme"],
            data={"id": bookingId, "rating": 5, "feedback": "Great"},
        )
        assert response.json()["rating"] == 5

        response = client.get(
            "/company/booking/history", headers=headers["acme"], params={"id": bookingId}
        )
        assert [row["status"] for row in response.json()] == [
            BookingStatus.ACCEPTED,
            BookingStatus.ONGOING,
            BookingStatus.COMPLETED,
        ]

        profile = client.get("/vendor/profile", headers=swift).json()
        assert profile["total_bookings"] == 1
        assert profile["rating"] == 5

    def test_company_cancel_and_cancel_again(self, client, headers, booking):
        response = client.patch(
            "/company/booking/cancel",
            headers=headers["acme"],
            data={"id": booking["id"], "reason": "Trip postponed"},
        )
        assert response.json()["status"] == BookingStatus.CANCELLED

        response = client.patch(
            "/company/booking/cancel", headers=headers["acme"], data={"id": booking["id"]}
        )
        assert response.status_code == 406
        assert response.headers["X-Error"] == "InvalidStateTransition"

    def test_other_company_cannot_cancel(self, client, headers, booking):
        response = client.patch(
            "/company/booking/cancel", headers=headers["globex"], data={"id": booking["id"]}
        )
        assert response.status_code == 404

    def test_open_to_market(self, client, headers, booking):
        response = client.patch(
            "/company/booking/open", headers=headers["acme"], data={"id": booking["id"]}
        )
        assert response.json()["visibility"] == BookingVisibility.OPEN_MARKET
        rapid = client.get("/vendor/booking", headers=headers["rapid"]).json()
        assert [item["id"] for item in rapid] == [booking["id"]]

    def test_reject_reoffers(self, client, headers, booking):
        response = client.patch(
            "/vendor/booking/reject", headers=headers["swift"], data={"id": booking["id"]}
        )
        assert response.json()["status"] == BookingStatus.REJECTED

        listed = client.get("/company/booking", headers=headers["acme"]).json()
        reoffer = [item for item in listed if item["reoffer_of"] == booking["id"]]
        assert len(reoffer) == 1
        assert reoffer[0]["visibility"] == BookingVisibility.OPEN_MARKET
        assert client.get("/vendor/booking", headers=headers["swift"]).json() == []


class TestFleetAndAssociations:
    def test_create_and_retire_driver(self, client, headers):
        response = client.post(
            "/vendor/driver",
            headers=headers["swift"],
            data={
                "name": "Suresh",
                "phone": "+919876543211",
                "license_number": "KL0720200012345",
            },
        )
        assert response.status_code == 201
        driverId = response.json()["id"]

        response = client.patch(
            "/vendor/driver",
            headers=headers["swift"],
            data={"id": driverId, "is_active": False},
        )
        assert response.json()["is_active"] is False

        response = client.patch(
            "/vendor/driver",
            headers=headers["metro"],
            data={"id": driverId, "is_active": True},
        )
        assert response.status_code == 404

    def test_create_vehicle(self, client, headers):
        response = client.post(
            "/vendor/vehicle",
            headers=headers["swift"],
            data={
                "registration_number": "KL07CD4321",
                "vehicle_type": 3,
                "make": "Mahindra",
                "model": "XUV700",
            },
        )
        assert response.status_code == 201
        listed = client.get("/vendor/vehicle", headers=headers["swift"]).json()
        assert "KL07CD4321" in [item["registration_number"] for item in listed]

    def test_associate_vendor(self, client, headers, world):
        response = client.post(
            "/company/association",
            headers=headers["globex"],
            data={"vendor_id": world.rapid.vendor.id},
        )
        assert response.status_code == 201
        listed = client.get("/vendor/association", headers=headers["rapid"]).json()
        assert [item["company_id"] for item in listed] == [world.globex.company.id]

    def test_company_lists_vendors(self, client, headers):
        listed = client.get("/company/vendor", headers=headers["acme"]).json()
        assert len(listed) == 3


class FakePubSub:
    """Async pub/sub stand-in that replays recorded messages, then idles."""

    def __init__(self, messages):
        self.messages = messages
        self.channels = []
        self.closed = False

    async def subscribe(self, *channels):
        self.channels.extend(channels)

    async def listen(self):
        yield {"type": "subscribe", "data": 1}
        for data in self.messages:
            yield {"type": "message", "data": data}
        await asyncio.Event().wait()

    async def unsubscribe(self):
        pass

    async def aclose(self):
        self.closed = True


class TestFeed:
    def test_invalid_token_is_refused(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/company/booking/feed?token=invalid"):
                pass

    def test_committed_change_is_forwarded(self, client, headers, booking, mock_redis):
        client.patch(
            "/vendor/booking/accept", headers=headers["swift"], data={"id": booking["id"]}
        )
        channel, payload = mock_redis.publish.call_args.args
        assert channel == "changes:booking"
        assert json.loads(payload)["id"] == booking["id"]

        pubsub = FakePubSub([payload])
        token = headers["acme"]["Authorization"].split()[1]
        with patch(
            "cabhub.src.redis.asyncRedisClient", new_callable=MagicMock
        ) as asyncClient:
            asyncClient.pubsub.return_value = pubsub
            with client.websocket_connect(
                f"/company/booking/feed?token={token}"
            ) as websocket:
                change = websocket.receive_json()

        assert change == {"table": "booking", "operation": "UPDATE"}
        assert pubsub.channels == ["changes:booking"]
        assert pubsub.closed is True
