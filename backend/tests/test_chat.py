"""Tests for direct messages and their live conversation channels."""
import asyncio

from conftest import NOW
from kenflash.realtime import ChannelHub, conversation_channel, conversation_key, hub


def test_conversation_key_ignores_argument_order():
    assert conversation_key("admin-1", "creator-7") == conversation_key("creator-7", "admin-1")
    assert conversation_key("b", "a") == "chat:a:b"


def test_channel_is_released_when_the_view_exits():
    channels = ChannelHub()
    key = conversation_key("a", "b")

    async def scenario():
        async with conversation_channel(channels, "a", "b") as subscription:
            assert channels.active_count(key) == 1
            assert channels.publish(key, {"message_text": "hi"}) == 1
            assert (await subscription.get())["message_text"] == "hi"
        assert channels.active_count(key) == 0
        assert channels.publish(key, {"message_text": "nobody home"}) == 0

    asyncio.run(scenario())


def test_channel_is_released_on_error():
    channels = ChannelHub()

    async def scenario():
        try:
            async with conversation_channel(channels, "a", "b"):
                raise RuntimeError("view crashed")
        except RuntimeError:
            pass

    asyncio.run(scenario())
    assert channels.active_count(conversation_key("a", "b")) == 0


class TestMessagesApi:
    def test_send_message(self, client, clock):
        response = client.post("/messages", json={
            "sender_id": "admin-1", "receiver_id": "creator-7", "message_text": "  Welcome!  ",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["message_text"] == "Welcome!"
        assert body["is_read"] is False
        assert body["sent_at"] == NOW.isoformat()

    def test_blank_message_is_rejected(self, client):
        response = client.post("/messages", json={
            "sender_id": "admin-1", "receiver_id": "creator-7", "message_text": "   ",
        })
        assert response.status_code == 400

    def test_history_is_ordered_and_marked_read(self, client, clock):
        client.post("/messages", json={"sender_id": "admin-1", "receiver_id": "creator-7", "message_text": "one"})
        clock.advance(minutes=1)
        client.post("/messages", json={"sender_id": "creator-7", "receiver_id": "admin-1", "message_text": "two"})
        client.post("/messages", json={"sender_id": "admin-1", "receiver_id": "someone-else", "message_text": "x"})

        history = client.get("/messages", params={"viewer_id": "creator-7", "peer_id": "admin-1"}).json()
        assert [m["message_text"] for m in history] == ["one", "two"]
        # Read flags reflect the state before this viewer opened the thread
        assert history[0]["is_read"] is False

        again = client.get("/messages", params={"viewer_id": "creator-7", "peer_id": "admin-1"}).json()
        assert again[0]["is_read"] is True
        # The admin's unread reply stays unread until the admin looks
        assert again[1]["is_read"] is False


class TestConversationSocket:
    def test_message_reaches_both_participants(self, client, clock):
        key = conversation_key("admin-1", "creator-7")
        with client:
            with client.websocket_connect("/ws/conversations/admin-1/creator-7") as admin, \
                    client.websocket_connect("/ws/conversations/creator-7/admin-1") as creator:
                assert hub.active_count(key) == 2
                admin.send_json({"message_text": "hello"})

                received = creator.receive_json()
                echoed = admin.receive_json()

            assert received["message_text"] == "hello"
            assert received["sender_id"] == "admin-1"
            assert echoed["id"] == received["id"]
            assert hub.active_count(key) == 0

    def test_http_send_is_pushed_to_open_view(self, client, clock):
        with client:
            with client.websocket_connect("/ws/conversations/creator-7/admin-1") as creator:
                client.post("/messages", json={
                    "sender_id": "admin-1", "receiver_id": "creator-7", "message_text": "ping",
                })
                assert creator.receive_json()["message_text"] == "ping"

    def test_blank_frame_gets_an_error(self, client, clock):
        with client:
            with client.websocket_connect("/ws/conversations/admin-1/creator-7") as admin:
                admin.send_json({"message_text": ""})
                assert admin.receive_json() == {"error": "message_text is required"}

    def test_non_json_frame_gets_an_error_and_socket_stays_open(self, client, clock):
        with client:
            with client.websocket_connect("/ws/conversations/admin-1/creator-7") as admin:
                admin.send_text("hello there")
                assert admin.receive_json() == {"error": "message_text is required"}

                admin.send_json({"message_text": "still here"})
                assert admin.receive_json()["message_text"] == "still here"
