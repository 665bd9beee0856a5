"""Tests for the HTTP API (rpg_forge.app + rpg_forge.routes)."""

import base64

import pytest
from fastapi.testclient import TestClient

from conftest import StubLLM
from rpg_forge.app import create_app
from rpg_forge.demo import create_demo_data

SHADOWREALM = (
    "Quiero un universo de fantasía llamado Shadowrealm con 6 stats: "
    "fuerza, agilidad, vitalidad, inteligencia, percepción y carisma"
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("LLM_PROVIDER_URL", "FORGE_LOCALE", "FORGE_THRESHOLD"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def client(tmp_path) -> TestClient:
    return TestClient(create_app(tmp_path, llm_factory=lambda config: StubLLM()))


def _start(client: TestClient, mode: str = "universe") -> dict:
    resp = client.post("/api/sessions", json={"mode": mode})
    assert resp.status_code == 200
    return resp.json()


# ── health and settings ─────────────────────────────────────


def test_health(client: TestClient):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_settings_round_trip(client: TestClient):
    assert client.get("/api/settings").json()["locale"] == "es"
    updated = client.patch("/api/settings", json={"locale": "en"}).json()
    assert updated["locale"] == "en"
    snap = _start(client)
    assert snap["messages"][0]["content"].startswith("🌌 Let's create a universe!")


# ── sessions ────────────────────────────────────────────────


def test_start_and_get_session(client: TestClient):
    snap = _start(client)
    assert snap["session_id"].startswith("crea_")
    assert snap["phase_state"]["current_phase_id"] == "concept"
    again = client.get(f"/api/sessions/{snap['session_id']}").json()
    assert again["messages"] == snap["messages"]


def test_start_rejects_idle(client: TestClient):
    assert client.post("/api/sessions", json={"mode": "idle"}).status_code == 422


def test_unknown_session(client: TestClient):
    assert client.get("/api/sessions/crea_nope").status_code == 404
    assert client.post("/api/sessions/crea_nope/messages", json={"text": "hola"}).status_code == 404


def test_delete_session(client: TestClient):
    sid = _start(client)["session_id"]
    assert client.delete(f"/api/sessions/{sid}").json() == {"ok": True}
    assert client.get(f"/api/sessions/{sid}").status_code == 404
    assert client.delete(f"/api/sessions/{sid}").status_code == 404


def test_universe_created_end_to_end(client: TestClient):
    sid = _start(client)["session_id"]
    snap = client.post(f"/api/sessions/{sid}/messages", json={"text": SHADOWREALM}).json()
    assert snap["is_confirmation_mode"] is True
    assert snap["draft"]["kind"] == "universe"

    snap = client.post(f"/api/sessions/{sid}/confirm").json()
    assert snap["phase"] == "confirmed"
    assert snap["last_saved_id"] == "shadowrealm"

    universes = client.get("/api/universes").json()
    assert [u["name"] for u in universes] == ["Shadowrealm"]


def test_character_session_picks_universe(client: TestClient, tmp_path):
    create_demo_data(tmp_path)
    snap = _start(client, "character")
    assert "Reino de Sombras" in snap["messages"][0]["content"]
    snap = client.post(
        f"/api/sessions/{snap['session_id']}/universe", json={"universe_id": "reino-de-sombras"},
    ).json()
    assert snap["selected_universe"]["name"] == "Reino de Sombras"
    assert snap["phase_state"]["current_phase_id"] == "identity"


def test_conversation_reply(client: TestClient):
    sid = _start(client)["session_id"]
    snap = client.post(f"/api/sessions/{sid}/messages", json={"text": "Un universo llamado Aether"}).json()
    assert snap["messages"][-1]["content"] == StubLLM().reply
    assert snap["collected_data"] == {"name": "Aether"}


# ── images ──────────────────────────────────────────────────


def test_image_upload_and_assign(client: TestClient):
    sid = _start(client)["session_id"]
    data = base64.b64encode(b"\x89PNG\r\n\x1a\n").decode()
    snap = client.post(f"/api/sessions/{sid}/images", json={"data_base64": data, "mime_type": "image/png"}).json()
    assert snap["pending_image"]["mime_type"] == "image/png"

    snap = client.post(f"/api/sessions/{sid}/images/assign", json={"slot": "cover"}).json()
    assert snap["pending_image"] is None
    assert snap["collected_data"]["coverImage"].startswith("data:image/png;base64,")


def test_image_bad_base64(client: TestClient):
    sid = _start(client)["session_id"]
    resp = client.post(f"/api/sessions/{sid}/images", json={"data_base64": "***", "mime_type": "image/png"})
    assert resp.status_code == 400


def test_image_bad_slot_value(client: TestClient):
    sid = _start(client)["session_id"]
    resp = client.post(f"/api/sessions/{sid}/images/assign", json={"slot": "banner"})
    assert resp.status_code == 422


def test_discard_image(client: TestClient):
    sid = _start(client)["session_id"]
    snap = client.delete(f"/api/sessions/{sid}/images").json()
    assert snap["messages"][-1]["content"] == "No hay ninguna imagen pendiente."


# ── phases, lifecycle and actions ───────────────────────────


def test_phase_navigation(client: TestClient):
    sid = _start(client)["session_id"]
    assert client.post(f"/api/sessions/{sid}/phases/next").json()["phase_index"] == 1
    assert client.post(f"/api/sessions/{sid}/phases/previous").json()["phase_index"] == 0


def test_review_lifecycle(client: TestClient):
    sid = _start(client)["session_id"]
    client.post(f"/api/sessions/{sid}/messages", json={"text": SHADOWREALM})
    assert client.post(f"/api/sessions/{sid}/adjust").json()["phase"] == "adjusting"
    assert client.post(f"/api/sessions/{sid}/regenerate").json()["draft"] is None
    snap = client.post(f"/api/sessions/{sid}/discard").json()
    assert snap["collected_data"] == {}
    assert client.post(f"/api/sessions/{sid}/undo").json()["messages"][-1]["content"] == "No hay nada que deshacer."


def test_action_route(client: TestClient):
    sid = _start(client)["session_id"]
    client.post(f"/api/sessions/{sid}/messages", json={"text": SHADOWREALM})
    snap = client.post(f"/api/sessions/{sid}/actions/confirm_save").json()
    assert snap["phase"] == "confirmed"


def test_cancel_route(client: TestClient):
    sid = _start(client)["session_id"]
    snap = client.post(f"/api/sessions/{sid}/cancel").json()
    assert snap["is_generating"] is False
