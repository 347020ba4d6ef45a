"""Tests for the HTTP polling endpoints under /api/chat."""
import pytest


def poll_join(client, nickname):
    response = client.post("/api/chat/join", json={"nickname": nickname})
    assert response.status_code == 200, response.json()
    return response.json()


class TestPollJoin:
    """Tests for POST /api/chat/join."""

    def test_join_returns_connection_id_and_snapshot(self, client):
        data = poll_join(client, "Alice")
        assert data["connectionId"]
        assert data["nickname"] == "Alice"
        assert data["participants"] == ["Alice"]
        assert data["messages"] == []

    def test_duplicate_nickname_conflict(self, client):
        poll_join(client, "Alice")
        response = client.post("/api/chat/join", json={"nickname": "ALICE"})
        assert response.status_code == 409
        assert response.json()["code"] == "nickname-taken"

    @pytest.mark.parametrize("body", [{"nickname": "bad!"}, {"nickname": ""}, {"nickname": 7}, {}])
    def test_invalid_nickname(self, client, body):
        response = client.post("/api/chat/join", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "invalid-nickname"

    def test_failed_join_leaves_no_session(self, client):
        client.post("/api/chat/join", json={"nickname": "bad!"})
        info = client.get("/api/info").json()
        assert info["connections"] == 0
        assert info["activeParticipants"] == 0


class TestPollSendAndRead:
    """Tests for POST /api/chat/send and GET /api/chat/messages."""

    def test_send_and_read_back(self, client):
        alice = poll_join(client, "Alice")
        response = client.post(
            "/api/chat/send",
            json={"connectionId": alice["connectionId"], "body": "<i>hello</i>"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"]["body"] == "&lt;i&gt;hello&lt;/i&gt;"
        assert data["message"]["nickname"] == "Alice"

        messages = client.get("/api/chat/messages", params={"since": 0}).json()
        assert [m["body"] for m in messages["messages"]] == ["&lt;i&gt;hello&lt;/i&gt;"]
        assert messages["participants"] == ["Alice"]
        assert "serverTime" in messages

    def test_messages_since_is_strict(self, client):
        alice = poll_join(client, "Alice")
        sent = client.post(
            "/api/chat/send",
            json={"connectionId": alice["connectionId"], "body": "first"},
        ).json()["message"]

        response = client.get("/api/chat/messages", params={"since": sent["timestamp"]})
        assert response.json()["messages"] == []

    def test_messages_without_since_returns_recent(self, client):
        alice = poll_join(client, "Alice")
        client.post("/api/chat/send", json={"connectionId": alice["connectionId"], "body": "one"})
        data = client.get("/api/chat/messages").json()
        assert [m["body"] for m in data["messages"]] == ["one"]

    def test_send_with_unknown_connection(self, client):
        response = client.post("/api/chat/send", json={"connectionId": "nope", "body": "hi"})
        assert response.status_code == 404
        assert response.json()["code"] == "connection-error"

    def test_send_invalid_message(self, client):
        alice = poll_join(client, "Alice")
        response = client.post(
            "/api/chat/send",
            json={"connectionId": alice["connectionId"], "body": "x" * 501},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "invalid-message"

    def test_send_rate_limited(self, client):
        alice = poll_join(client, "Alice")
        statuses = [
            client.post(
                "/api/chat/send",
                json={"connectionId": alice["connectionId"], "body": f"msg {i}"},
            ).status_code
            for i in range(4)
        ]
        assert statuses == [200, 200, 200, 429]

    def test_participants_endpoint(self, client):
        poll_join(client, "Alice")
        poll_join(client, "Bob")
        data = client.get("/api/chat/participants").json()
        assert data == {"participants": ["Alice", "Bob"], "count": 2}


class TestPollLeave:
    """Tests for POST /api/chat/leave."""

    def test_leave_is_idempotent(self, client):
        alice = poll_join(client, "Alice")
        for _ in range(2):
            response = client.post("/api/chat/leave", json={"connectionId": alice["connectionId"]})
            assert response.status_code == 200
            assert response.json() == {"success": True}
        assert client.get("/api/chat/participants").json()["count"] == 0

    def test_send_after_leave(self, client):
        alice = poll_join(client, "Alice")
        client.post("/api/chat/leave", json={"connectionId": alice["connectionId"]})
        response = client.post(
            "/api/chat/send",
            json={"connectionId": alice["connectionId"], "body": "ghost"},
        )
        assert response.status_code == 404

    def test_polling_leave_notifies_websocket_clients(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()  # connected
            ws.send_json({"type": "join", "nickname": "Alice"})
            ws.receive_json()  # join-success
            ws.receive_json()  # participants-updated

            bob = poll_join(client, "Bob")
            assert ws.receive_json()["type"] == "participant-joined"
            assert ws.receive_json()["participants"] == ["Alice", "Bob"]

            client.post("/api/chat/send", json={"connectionId": bob["connectionId"], "body": "from poll"})
            message = ws.receive_json()
            assert message["type"] == "message"
            assert message["nickname"] == "Bob"

            client.post("/api/chat/leave", json={"connectionId": bob["connectionId"]})
            assert ws.receive_json()["type"] == "participant-left"
            assert ws.receive_json()["participants"] == ["Alice"]


class TestPollRoomFull:
    """Capacity errors map to 503."""

    @pytest.fixture
    def settings(self, settings):
        settings.chat.max_participants = 1
        return settings

    def test_room_full(self, client):
        poll_join(client, "Alice")
        response = client.post("/api/chat/join", json={"nickname": "Bob"})
        assert response.status_code == 503
        assert response.json()["code"] == "room-full"
