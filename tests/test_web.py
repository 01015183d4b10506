"""
Tests for the FastAPI interface.
"""

import pytest
from fastapi.testclient import TestClient

from manufacturing_marketplace import MarketplaceService
from manufacturing_marketplace.config import TestingConfig
from manufacturing_marketplace.repository import RepositoryError
from manufacturing_marketplace.web import create_app
from manufacturing_marketplace.web.app import ensure_demo_data

CREATOR = {"X-User-Id": "creator-1", "X-User-Role": "creator", "X-User-Name": "Lena Brandt"}
MAKER_A = {"X-User-Id": "maker-a", "X-User-Role": "manufacturer", "X-User-Name": "Precision Parts GmbH"}
MAKER_B = {"X-User-Id": "maker-b", "X-User-Role": "manufacturer", "X-User-Name": "Fraeswerk Nord"}

OFFER = {"unit_cost": 40.0, "shipping_cost": 25.0, "projected_units": 10, "lead_time": 14}


# Fixtures

@pytest.fixture
def market():
    return MarketplaceService()


@pytest.fixture
def client(market):
    return TestClient(create_app(TestingConfig, service=market))


@pytest.fixture
def order_id(client):
    response = client.post("/orders", json={"title": "Gimbal frame", "quantity": 10}, headers=CREATOR)
    assert response.status_code == 201
    return response.json()["order"]["id"]


@pytest.fixture
def offer_ids(client, order_id):
    ids = []
    for headers in (MAKER_A, MAKER_B):
        response = client.post(f"/orders/{order_id}/offers", json=OFFER, headers=headers)
        assert response.status_code == 201
        ids.append(response.json()["offer"]["id"])
    return ids


# Tests for identity and error mapping

class TestIdentity:
    def test_missing_identity(self, client):
        response = client.get("/orders")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_unknown_role(self, client):
        response = client.get("/orders", headers={"X-User-Id": "u", "X-User-Role": "guest"})
        assert response.status_code == 401

    def test_wrong_role(self, client):
        response = client.post("/orders", json={"title": "Bracket", "quantity": 1}, headers=MAKER_A)
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_unknown_order(self, client):
        response = client.get("/orders/missing", headers=CREATOR)
        assert response.status_code == 404
        assert response.json()["details"] == {"entity": "Order", "id": "missing"}

    def test_validation_error(self, client):
        response = client.post("/orders", json={"title": "  ", "quantity": 1}, headers=CREATOR)
        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"


# Tests for orders

class TestOrders:
    def test_create_and_read(self, client, order_id):
        body = client.get(f"/orders/{order_id}", headers=CREATOR).json()["order"]
        assert body["status"] == "Order Created"
        assert body["manufacturer"] is None
        assert [item["id"] for item in client.get("/orders/unclaimed", headers=MAKER_A).json()["orders"]] == [
            order_id
        ]

    def test_shipping_address(self, client, order_id):
        address = {
            "recipient_name": "Lena Brandt",
            "street1": "Werkstraße 12",
            "city": "Bielefeld",
            "state": "NRW",
            "postal_code": "33602",
            "country": "DE",
            "phone_number": "+49 521 123456",
        }
        assert client.get(f"/orders/{order_id}/shipping-address", headers=CREATOR).json()["address"] is None
        response = client.put(f"/orders/{order_id}/shipping-address", json=address, headers=CREATOR)
        assert response.status_code == 200
        saved = client.get(f"/orders/{order_id}/shipping-address", headers=CREATOR).json()["address"]
        assert saved["city"] == "Bielefeld"

    def test_update_order_details(self, client, order_id):
        response = client.patch(
            f"/orders/{order_id}",
            json={"title": "Gimbal frame v2", "due_date": "2030-01-31"},
            headers=CREATOR,
        )
        assert response.status_code == 200
        assert response.json()["order"]["title"] == "Gimbal frame v2"
        assert response.json()["order"]["due_date"] == "2030-01-31"

        forbidden = client.patch(f"/orders/{order_id}", json={"title": "Mine"}, headers=MAKER_A)
        assert forbidden.status_code == 403


# Tests for decomposition and specifications

class TestDecomposition:
    def test_parts_assemblies_and_specifications(self, client, order_id, specification):
        parts = client.post(
            f"/orders/{order_id}/parts",
            json={
                "parts": [
                    {"name": "yaw_arm.step", "storage_path": f"{order_id}/frame/yaw_arm.step", "hierarchy": ["frame"]},
                    {"name": "bracket.step", "storage_path": f"{order_id}/bracket.step"},
                ]
            },
            headers=CREATOR,
        ).json()["parts"]
        tree = client.get(f"/orders/{order_id}/parts/tree", headers=CREATOR).json()["tree"]
        assert [node["label"] for node in tree] == ["frame", "bracket.step"]

        part_ids = [part["id"] for part in parts]
        created = client.post(
            f"/orders/{order_id}/assemblies", json={"name": "Frame", "part_ids": part_ids}, headers=CREATOR
        )
        assert created.status_code == 201
        assembly_id = created.json()["assembly"]["assembly"]["id"]

        duplicate = client.post(
            f"/orders/{order_id}/assemblies", json={"name": "Again", "part_ids": part_ids[:1]}, headers=CREATOR
        )
        assert duplicate.status_code == 422

        incomplete = client.post(f"/assemblies/{assembly_id}/complete", headers=CREATOR)
        assert incomplete.status_code == 422
        assert sorted(incomplete.json()["details"]["unspecified_part_ids"]) == sorted(part_ids)

        for part_id in part_ids:
            saved = client.put(
                f"/assemblies/{assembly_id}/specifications",
                json={"order_id": order_id, "part_id": part_id, "quantity": 10, "specifications": specification},
                headers=CREATOR,
            )
            assert saved.status_code == 200
        progress = client.get(f"/assemblies/{assembly_id}/progress", headers=CREATOR).json()
        assert progress["percent"] == 100.0

        complete = client.post(f"/assemblies/{assembly_id}/complete", headers=CREATOR)
        assert complete.json()["assembly"]["specifications_completed"] is True
        readiness = client.get(f"/orders/{order_id}/readiness", headers=CREATOR).json()
        assert readiness["ready"] is True

        specs = client.get(f"/assemblies/{assembly_id}/specifications", headers=CREATOR).json()["specifications"]
        assert specs[0]["specifications"]["surfaceFinish"]["roughness"] == "Ra 1.6"

    def test_specification_with_wrong_types_is_rejected(self, client, order_id, specification):
        specification["process"]["operations"] = "milling"
        response = client.put(
            "/assemblies/any/specifications",
            json={"order_id": order_id, "part_id": "any", "quantity": 1, "specifications": specification},
            headers=CREATOR,
        )
        assert response.status_code == 422


# Tests for chats

class TestChats:
    def test_chat_flow(self, client):
        started = client.post("/chats", json={"target_user_id": "maker-a"}, headers=CREATOR)
        assert started.status_code == 201
        chat_id = started.json()["chat"]["id"]
        again = client.post("/chats", json={"target_user_id": "creator-1"}, headers=MAKER_A)
        assert again.json()["chat"]["id"] == chat_id

        sent = client.post(f"/chats/{chat_id}/messages", json={"content": "Lead time?"}, headers=MAKER_A)
        assert sent.status_code == 201

        messages = client.get(f"/chats/{chat_id}/messages", headers=CREATOR).json()["messages"]
        assert [message["content"] for message in messages] == ["Lead time?"]
        chats = client.get("/chats", headers=CREATOR).json()["chats"]
        assert chats[0]["chat"]["id"] == chat_id
        assert chats[0]["unread_count"] == 1

    def test_outsider_and_blank_content(self, client):
        chat_id = client.post("/chats", json={"target_user_id": "maker-a"}, headers=CREATOR).json()["chat"]["id"]
        assert client.get(f"/chats/{chat_id}/messages", headers=MAKER_B).status_code == 403
        blank = client.post(f"/chats/{chat_id}/messages", json={"content": "  "}, headers=CREATOR)
        assert blank.status_code == 422
        assert blank.json()["error"] == "validation_error"
        assert client.post("/chats", json={"target_user_id": "creator-1"}, headers=CREATOR).status_code == 422


# Tests for offers and lifecycle

class TestOffersAndLifecycle:
    def test_accept_then_conflict(self, client, order_id, offer_ids):
        accepted = client.post(f"/offers/{offer_ids[0]}/accept", headers=CREATOR)
        assert accepted.status_code == 200
        body = accepted.json()
        assert body["order"]["status"] == "Order Accepted"
        assert body["order"]["manufacturer"] == "maker-a"
        assert body["superseded"] == [offer_ids[1]]

        second = client.post(f"/offers/{offer_ids[1]}/accept", headers=CREATOR)
        assert second.status_code == 409
        assert second.json()["error"] == "conflict"

    def test_decline(self, client, order_id, offer_ids):
        declined = client.post(f"/offers/{offer_ids[0]}/decline", headers=CREATOR)
        assert declined.json()["order"]["offers"] == [offer_ids[1]]
        pending = client.get(f"/orders/{order_id}/offers", headers=CREATOR).json()["offers"]
        assert [offer["id"] for offer in pending] == [offer_ids[1]]

    def test_advance_through_shipping(self, client, order_id, offer_ids):
        client.post(f"/offers/{offer_ids[0]}/accept", headers=CREATOR)
        assert client.post(f"/orders/{order_id}/advance", headers=MAKER_B).status_code == 403
        for expected in ("Machine Setup", "Started Manufacturing", "Quality Check"):
            response = client.post(f"/orders/{order_id}/advance", headers=MAKER_A)
            assert response.json()["order"]["status"] == expected

        assert client.post(f"/orders/{order_id}/advance", headers=MAKER_A).status_code == 422
        shipped = client.post(
            f"/orders/{order_id}/advance",
            json={"tracking_number": "1Z999AA10123456784", "carrier": "UPS"},
            headers=MAKER_A,
        )
        assert shipped.json()["order"]["status"] == "Shipping"
        assert shipped.json()["order"]["shipping_info"]["carrier"] == "UPS"

        events = client.get("/events", params={"limit": 3}, headers=CREATOR).json()["events"]
        assert len(events) == 3
        assert events[0]["event_type"] == "shipment"

    def test_store_failure_maps_to_503(self, client, market, order_id, offer_ids, monkeypatch):
        def broken_upsert(item_id, item):
            raise RepositoryError("database is locked")

        monkeypatch.setattr(market.store.orders, "upsert", broken_upsert)
        response = client.post(f"/offers/{offer_ids[0]}/accept", headers=CREATOR)
        assert response.status_code == 503
        assert response.json()["details"]["operation"] == "accept offer"


class TestDemoData:
    def test_seeding_is_idempotent(self):
        market = MarketplaceService()
        ensure_demo_data(market)
        ensure_demo_data(market)
        assert len(market.store.orders) == 1
        assert len(market.store.offers) == 1


class TestAppFactory:
    def test_builds_sqlite_backed_service(self):
        app = create_app(TestingConfig)
        client = TestClient(app)
        response = client.post("/orders", json={"title": "Bracket", "quantity": 2}, headers=CREATOR)
        assert response.status_code == 201
        assert len(client.get("/orders", headers=CREATOR).json()["orders"]) == 1
        app.state.marketplace_service.close()
