"""
Integration tests for catalog generation over HTTP and WebSocket.

The renderer is held behind a gate so the test can join the progress room
before the job reaches its rendering stages.
"""

import asyncio
from contextlib import ExitStack

import pytest

from commerce_core.catalog import HtmlCatalogRenderer

pytestmark = pytest.mark.integration


class GatedRenderer:
    def __init__(self):
        self.inner = HtmlCatalogRenderer()
        self.gate = asyncio.Event()

    async def render(self, document, on_progress):
        await self.gate.wait()
        return await self.inner.render(document, on_progress)


@pytest.fixture
def catalog_renderer():
    return GatedRenderer()


def receive_until_done(websocket) -> list[dict]:
    events = []
    while True:
        message = websocket.receive_json()
        events.append(message)
        if message["event"] in ("catalog-complete", "catalog-error"):
            return events


def test_generate_join_and_download(
    client, services, catalog, catalog_renderer, auth_headers
):
    response = client.post(
        "/api/catalog/generate",
        json={"categories": [catalog.mochilas], "inStock": True},
        headers=auth_headers,
    )
    assert response.status_code == 202
    room_id = response.json()["room_id"]

    with client.websocket_connect("/ws/catalog") as websocket:
        websocket.send_json({"action": "join", "roomId": room_id})
        assert websocket.receive_json() == {"event": "room-joined", "room_id": room_id}

        metrics = client.get("/api/catalog/metrics", headers=auth_headers).json()
        assert metrics["websocket_connections"] == 1
        assert metrics["total_members"] == 1
        assert metrics["running_tasks"] == 1

        client.portal.call(catalog_renderer.gate.set)
        events = receive_until_done(websocket)
        client.portal.call(services.tasks.wait_all)

    steps = [event["step"] for event in events]
    assert "document-completed" in steps
    progress = [event["progress"] for event in events]
    assert progress == sorted(progress)

    complete = events[-1]
    assert complete["event"] == "catalog-complete"
    assert complete["progress"] == 100
    assert complete["data"]["total_products"] == 2
    assert complete["data"]["total_variants"] == 2

    download = client.get(complete["data"]["download_url"])
    assert download.status_code == 200
    assert download.headers["content-type"].startswith("text/html")
    assert "City Backpack" in download.text
    assert "Market Tote" not in download.text

    # Closing the only connection removes the finished job's room
    assert not services.rooms.has_room(room_id)


def test_join_after_generation_finished(client, services, catalog, auth_headers):
    response = client.post(
        "/api/catalog/generate", json={"inStock": True}, headers=auth_headers
    )
    room_id = response.json()["room_id"]
    client.portal.call(services.tasks.wait_all)

    with client.websocket_connect("/ws/catalog") as websocket:
        websocket.send_json({"action": "join", "room_id": room_id})
        assert websocket.receive_json()["event"] == "room-joined"
        outcome = websocket.receive_json()

    assert outcome["event"] == "catalog-complete"
    assert outcome["progress"] == 100
    download = client.get(outcome["data"]["download_url"])
    assert download.status_code == 200
    assert not services.rooms.has_room(room_id)


def test_generate_requires_selection(client, catalog, auth_headers):
    response = client.post("/api/catalog/generate", json={}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_CATALOG_REQUEST"


def test_generate_requires_api_key(client, catalog):
    response = client.post("/api/catalog/generate", json={"inStock": True})
    assert response.status_code == 401


@pytest.mark.parametrize(
    "file_name", ["catalog-1-abcdef12.html", "..%2Fconfig.json", "secrets.txt"]
)
def test_download_unknown_file(client, file_name):
    response = client.get(f"/api/catalog/download/{file_name}")

    assert response.status_code == 404


class TestProgressSocket:
    def test_join_unknown_room(self, client):
        with client.websocket_connect("/ws/catalog") as websocket:
            websocket.send_json({"action": "join", "room_id": "missing"})
            message = websocket.receive_json()

        assert message["event"] == "room-join-failed"
        assert message["room_id"] == "missing"

    def test_join_and_leave(self, client, services):
        room_id = services.rooms.create_room()

        with client.websocket_connect("/ws/catalog") as websocket:
            websocket.send_json({"action": "join", "room_id": room_id})
            assert websocket.receive_json()["event"] == "room-joined"

            websocket.send_json({"action": "leave", "room_id": room_id})
            assert websocket.receive_json() == {"event": "room-left", "rooms": [room_id]}

    def test_unknown_action(self, client):
        with client.websocket_connect("/ws/catalog") as websocket:
            websocket.send_json({"action": "subscribe"})
            message = websocket.receive_json()

        assert message["event"] == "invalid-message"

    def test_room_capacity(self, client, services):
        room_id = services.rooms.create_room()
        join = {"action": "join", "room_id": room_id}
        sockets, events = [], []

        with ExitStack() as stack:
            for _ in range(6):
                websocket = stack.enter_context(client.websocket_connect("/ws/catalog"))
                websocket.send_json(join)
                events.append(websocket.receive_json()["event"])
                sockets.append(websocket)

            assert events == ["room-joined"] * 5 + ["room-join-failed"]

            sockets[0].send_json({"action": "leave", "room_id": room_id})
            assert sockets[0].receive_json()["event"] == "room-left"
            sockets[5].send_json(join)
            assert sockets[5].receive_json()["event"] == "room-joined"
