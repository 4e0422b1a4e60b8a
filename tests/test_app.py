"""Tests for the Flask routes, driven through the test client."""

import io

import pytest

import app as studio
import config
from tests.fakes import FakeClient, FakeDevices, FakeLive, LiveClient, data_uri, png_bytes, studio_handler
from voice import VoiceSession


@pytest.fixture
def client():
    studio.app.config.update(TESTING=True, GENAI_CLIENT=FakeClient(studio_handler))
    studio.app.config.pop("SHAPER", None)
    studio.app.config.pop("VOICE_SESSION", None)
    studio._workspaces.clear()
    with studio.app.test_client() as test_client:
        yield test_client
    studio._workspaces.clear()


def upload_site(client):
    return client.post("/api/upload", json={"image_data": data_uri(png_bytes())})


class TestCaptureRoutes:
    """Camera gate and upload fallback."""

    def test_initial_state(self, client):
        payload = client.get("/api/state").get_json()
        assert payload["viewMode"] == "landing"
        assert payload["capture"]["state"] == "idle"
        assert payload["tutorial"]["key"] == "Real-World Capture"

    def test_frame_before_alignment_is_rejected(self, client):
        client.post("/api/capture/start")
        resp = client.post("/api/capture/frame", json={"image_data": data_uri(png_bytes())})
        assert resp.status_code == 409
        assert client.get("/api/state").get_json()["stage"] == 0

    def test_aligned_frame_runs_discovery(self, client):
        client.post("/api/capture/start")
        for _ in range(500):
            capture = client.post("/api/capture/tick").get_json()["capture"]
            if capture["progress"] >= 100:
                break
        assert client.post("/api/capture/confirm").get_json()["capture"]["canCapture"] is True

        payload = client.post("/api/capture/frame", json={"image_data": data_uri(png_bytes())}).get_json()
        assert payload["capture"]["state"] == "captured"
        assert payload["stage"] == 1
        assert payload["discovery"]["analysis"] == "Sloped terrain facing south."

    def test_unknown_action(self, client):
        assert client.post("/api/capture/zoom").status_code == 404

    def test_multipart_upload(self, client):
        resp = client.post(
            "/api/upload",
            data={"file": (io.BytesIO(png_bytes()), "site.png")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert resp.get_json()["viewMode"] == "wizard"

    def test_unreadable_upload(self, client):
        resp = client.post(
            "/api/upload",
            data={"file": (io.BytesIO(b"not an image"), "site.png")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_upload_without_image(self, client):
        assert client.post("/api/upload", json={}).status_code == 400


class TestWizardRoutes:
    def test_synthesis_without_discovery_conflicts(self, client):
        assert client.post("/api/synthesis").status_code == 409

    def test_full_flow(self, client):
        upload_site(client)
        prefs = client.post("/api/preferences", json={"style": "Eco-Friendly", "floors": 1}).get_json()
        assert prefs["preferences"]["style"] == "Eco-Friendly"

        payload = client.post("/api/synthesis").get_json()
        assert payload["viewMode"] == "detail"
        assert payload["design"]["name"] == "Terrace House"
        assert payload["design"]["preferences"]["floors"] == 1
        assert len(payload["projects"]) == 1

    def test_invalid_preferences(self, client):
        assert client.post("/api/preferences", json={"floors": 0}).status_code == 400
        assert client.post("/api/preferences", json={"materials": []}).status_code == 400

    def test_preferences_must_be_an_object(self, client):
        assert client.post("/api/preferences", json=["Luxury"]).status_code == 400
        assert client.post("/api/preferences", json="Modern").status_code == 400
        assert client.get("/api/state").get_json()["preferences"]["style"] == "Modern"

    def test_stage_navigation(self, client):
        upload_site(client)
        assert client.post("/api/stage", json={"stage": 0}).get_json()["stage"] == 0
        assert client.post("/api/stage", json={"stage": 2}).status_code == 409
        assert client.post("/api/stage", json={"stage": "x"}).status_code == 400

    def test_unknown_view(self, client):
        assert client.post("/api/view", json={"mode": "gallery"}).status_code == 400
        assert client.post("/api/view", json={"mode": "detail"}).status_code == 409


class TestDesignRoutes:
    def test_export_download(self, client):
        upload_site(client)
        design_id = client.post("/api/synthesis").get_json()["design"]["id"]

        resp = client.get(f"/api/design/{design_id}/export/obj")
        assert resp.status_code == 200
        assert resp.mimetype == "text/plain"
        assert resp.headers["Content-Disposition"] == 'attachment; filename="Terrace_House_model.obj"'

    def test_export_unknown_design_or_format(self, client):
        upload_site(client)
        design_id = client.post("/api/synthesis").get_json()["design"]["id"]
        assert client.get("/api/design/nope/export/obj").status_code == 404
        assert client.get(f"/api/design/{design_id}/export/stl").status_code == 404

    def test_refine_adds_version(self, client):
        upload_site(client)
        client.post("/api/synthesis")
        payload = client.post("/api/design/refine").get_json()
        assert len(payload["design"]["versions"]) == 1

    def test_reopen_project_from_dashboard(self, client):
        upload_site(client)
        design_id = client.post("/api/synthesis").get_json()["design"]["id"]
        client.post("/api/view", json={"mode": "dashboard"})
        assert client.get("/api/projects").get_json()[0]["id"] == design_id
        assert client.post(f"/api/projects/{design_id}/open").get_json()["viewMode"] == "detail"
        assert client.post("/api/projects/missing/open").status_code == 404


class TestConsultationRoutes:
    def test_chat_round_trip(self, client):
        chat = client.post("/api/chat", json={"message": "Best roof?"}).get_json()["chat"]
        assert [m["role"] for m in chat] == ["user", "assistant"]
        assert chat[1]["content"] == "Sloped terrain facing south."
        assert chat[1]["sources"] == ["https://example.org/code"]

    def test_empty_chat_rejected(self, client):
        assert client.post("/api/chat", json={"message": "  "}).status_code == 400

    def test_help_sentence(self, client):
        payload = client.get("/api/help/Real-World%20Capture").get_json()
        assert payload == {"key": "Real-World Capture", "text": "Tap the camera button."}

    def test_help_falls_back_to_track_description(self, client):
        studio.app.config["SHAPER"] = studio.RequestShaper(FakeClient(lambda *_: RuntimeError("down")))
        payload = client.get("/api/help/Contextual%20Discovery").get_json()
        assert payload["text"] == "Wait while we find real-world terrain logic."


class TestVoiceRoutes:
    def test_status_before_any_session(self, client):
        assert client.get("/api/voice").get_json()["state"] == "closed"

    def test_toggle_opens_session(self, client):
        devices = FakeDevices()
        voice = VoiceSession(LiveClient(FakeLive()), devices_factory=lambda: devices)
        studio.app.config["VOICE_SESSION"] = voice

        assert client.post("/api/voice/toggle").get_json()["state"] in ("connecting", "open")
        assert client.post("/api/voice/toggle").get_json()["state"] == "closed"
        assert voice.to_json()["pending"] == 0


class TestWorkspaces:
    """In-memory sessions are released."""

    def test_cookieless_clients_are_capped(self, client, monkeypatch):
        monkeypatch.setattr(config, "MAX_WORKSPACES", 5)
        for _ in range(20):
            studio.app.test_client().get("/api/state")
        assert len(studio._workspaces) == 5

    def test_idle_workspaces_expire(self, client):
        client.get("/api/state")
        for ws in studio._workspaces.values():
            ws.touched -= config.WORKSPACE_IDLE_SECONDS + 1
        studio.app.test_client().get("/api/state")
        assert len(studio._workspaces) == 1

    def test_active_session_keeps_its_workspace(self, client, monkeypatch):
        monkeypatch.setattr(config, "MAX_WORKSPACES", 2)
        upload_site(client)
        for _ in range(3):
            studio.app.test_client().get("/api/state")
            client.get("/api/state")
        assert client.get("/api/state").get_json()["hasImage"] is True
