import os

from core import state
from core.config import settings


def join(ws, room_id, username):
    ws.send_json({"event": "join room", "data": {"roomId": room_id, "username": username}})


class TestHttpRoutes:
    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["endpoints"]["websocket"] == "/ws"

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_metrics(self, client):
        body = client.get("/metrics").json()
        assert "total_messages" in body
        assert body["persistence_failures"] == state.message_store.failure_count

    def test_history_of_unknown_room_is_empty(self, client):
        resp = client.get("/api/room/never-joined/messages")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_invalid_room_id_is_rejected(self, client):
        assert client.get("/api/room/bad$room/messages").status_code == 422


class TestUpload:
    def test_upload_image(self, client):
        resp = client.post("/api/upload", files={"file": ("cat.png", b"\x89PNG fake", "image/png")})

        assert resp.status_code == 200
        body = resp.json()
        assert body["fileName"] == "cat.png"
        assert body["fileType"] == "image/png"
        assert body["fileUrl"].startswith("/uploads/") and body["fileUrl"].endswith(".png")

        stored = os.path.join(settings.UPLOAD_DIR, body["fileUrl"].rsplit("/", 1)[1])
        assert os.path.exists(stored)
        assert client.get(body["fileUrl"]).content == b"\x89PNG fake"

    def test_disallowed_type(self, client):
        resp = client.post("/api/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert resp.status_code == 400
        assert "allowed" in resp.json()["detail"]

    def test_extension_must_match_allow_list(self, client):
        resp = client.post("/api/upload", files={"file": ("movie.mkv", b"data", "video/x-matroska")})
        assert resp.status_code == 400

    def test_missing_file(self, client):
        assert client.post("/api/upload").status_code == 400

    def test_too_large(self, client, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 8)
        resp = client.post("/api/upload", files={"file": ("song.mp3", b"0123456789", "audio/mpeg")})
        assert resp.status_code == 413


class TestWebSocket:
    def test_two_user_scenario(self, client):
        with client.websocket_connect("/ws") as alice:
            join(alice, "api-r1", "alice")
            assert alice.receive_json() == {"event": "users list", "data": ["alice"]}
            assert alice.receive_json() == {"event": "message history", "data": []}

            with client.websocket_connect("/ws") as bob:
                join(bob, "api-r1", "bob")
                assert bob.receive_json() == {"event": "users list", "data": ["alice", "bob"]}
                assert bob.receive_json() == {"event": "message history", "data": []}
                assert alice.receive_json() == {"event": "users list", "data": ["alice", "bob"]}
                assert alice.receive_json() == {
                    "event": "user joined",
                    "data": {"username": "bob", "message": "bob joined the chat"},
                }

                alice.send_json({"event": "chat message", "data": {"message": "hi", "type": "text"}})
                for ws in (alice, bob):
                    frame = ws.receive_json()
                    assert frame["event"] == "chat message"
                    assert frame["data"]["username"] == "alice"
                    assert frame["data"]["message"] == "hi"
                message_id = frame["data"]["id"]

                bob.send_json({"event": "typing", "data": {"isTyping": True}})
                assert alice.receive_json() == {"event": "typing", "data": {"username": "bob", "isTyping": True}}

                bob.send_json({"event": "delete message", "data": {"messageId": message_id}})
                alice.send_json({"event": "delete message", "data": {"messageId": message_id}})
                deleted = {"event": "message deleted", "data": {"messageId": message_id, "deletedBy": "alice"}}
                assert alice.receive_json() == deleted
                assert bob.receive_json() == deleted

            assert alice.receive_json() == {
                "event": "user left",
                "data": {"username": "bob", "message": "bob left the chat"},
            }
            assert alice.receive_json() == {"event": "users list", "data": ["alice"]}

        assert client.get("/api/room/api-r1/users").json()["users"] == []

    def test_events_before_join_are_ignored(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "chat message", "data": {"message": "too early"}})
            ws.send_json({"event": "typing", "data": {"isTyping": True}})
            join(ws, "api-r2", "carol")
            assert ws.receive_json() == {"event": "users list", "data": ["carol"]}
            assert ws.receive_json() == {"event": "message history", "data": []}

        assert client.get("/api/room/api-r2/messages").json() == []

    def test_malformed_frames_get_error(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            assert ws.receive_json() == {"event": "error", "data": {"message": "Invalid JSON"}}

            ws.send_json({"event": "shout", "data": {}})
            assert ws.receive_json() == {"event": "error", "data": {"message": "Unknown event: shout"}}

    def test_binary_frame_gets_error_and_connection_survives(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(b"\x00")
            assert ws.receive_json() == {"event": "error", "data": {"message": "Binary frames are not supported"}}

            join(ws, "api-r4", "frank")
            assert ws.receive_json() == {"event": "users list", "data": ["frank"]}
            assert ws.receive_json()["event"] == "message history"

    def test_history_and_rest_fallback(self, client):
        with client.websocket_connect("/ws") as ws:
            join(ws, "api-r3", "dave")
            ws.receive_json()
            ws.receive_json()
            for text in ("one", "two"):
                ws.send_json({"event": "chat message", "data": {"message": text}})
                assert ws.receive_json()["data"]["message"] == text

        messages = client.get("/api/room/api-r3/messages").json()
        assert [m["message"] for m in messages] == ["one", "two"]

        with client.websocket_connect("/ws") as ws:
            join(ws, "api-r3", "erin")
            assert ws.receive_json() == {"event": "users list", "data": ["erin"]}
            history = ws.receive_json()
            assert history["event"] == "message history"
            assert [m["message"] for m in history["data"]] == ["one", "two"]
