"""End-to-end conversations exercised through the public HTTP surface."""

from __future__ import annotations

from datetime import datetime

from app.models import DirectMessage, User
from app.services import ConversationAggregator
from helpers import send, signup


def test_first_message_is_read_on_view(client):
    alice_id, alice = signup(client, "alice")
    bob_id, bob = signup(client, "bob")

    message = send(client, alice, bob_id, "hi")
    assert message["thread_id"] == message["id"]
    assert message["is_read"] is False

    page = client.get(f"/api/messages/with/{alice_id}", headers=bob).json()
    assert [m["id"] for m in page["messages"]] == [message["id"]]
    assert page["messages"][0]["is_read"] is True

    assert client.get("/api/messages/unread-count", headers=alice).json() == {"count": 0}
    assert client.get("/api/messages/unread-count", headers=bob).json() == {"count": 0}

    (conversation,) = client.get("/api/messages/conversations", headers=bob).json()["conversations"]
    assert conversation["user"]["id"] == alice_id
    assert conversation["unread_count"] == 0
    assert conversation["last_message"]["content"] == "hi"


def test_reply_lands_in_root_thread(client):
    alice_id, alice = signup(client, "alice")
    bob_id, bob = signup(client, "bob")

    root = send(client, alice, bob_id, "root")
    reply = send(client, bob, alice_id, "reply", reply_to_id=root["id"])
    assert reply["thread_id"] == root["id"]

    thread = client.get(f"/api/messages/threads/{root['id']}", headers=alice).json()
    assert [m["id"] for m in thread["messages"]] == [root["id"], reply["id"]]


def test_send_to_offline_user_succeeds_and_pushes(client, push_dispatcher, drain):
    alice_id, _ = signup(client, "alice")
    bob_id, bob = signup(client, "bob", "Bob")

    response = client.post(
        "/api/messages", json={"recipient_id": alice_id, "content": "ping"}, headers=bob
    )
    assert response.status_code == 201
    drain()

    assert [user_id for user_id, _ in push_dispatcher.calls] == [alice_id]
    notification = push_dispatcher.calls[0][1]
    assert notification.target_url.endswith(f"/{bob_id}")
    assert notification.body == "Bob sent you a message"


def test_send_succeeds_even_when_push_fails(client, push_dispatcher, drain):
    push_dispatcher.error = RuntimeError("transport exploded")
    _, alice = signup(client, "alice")
    bob_id, _ = signup(client, "bob")

    response = client.post(
        "/api/messages", json={"recipient_id": bob_id, "content": "still works"}, headers=alice
    )
    drain()

    assert response.status_code == 201
    assert len(push_dispatcher.calls) == 1


def test_consecutive_pages_match_one_double_page(db_session):
    me = User(username="me", hashed_password="x")
    others = [User(username=f"peer{i}", hashed_password="x") for i in range(7)]
    db_session.add_all([me, *others])
    db_session.flush()
    for index, other in enumerate(others):
        db_session.add(
            DirectMessage(
                sender_id=other.id,
                recipient_id=me.id,
                content=str(index),
                created_at=datetime(2024, 1, 1, index),
            )
        )
    db_session.commit()

    aggregator = ConversationAggregator(db_session)
    page_one = [item.counterpart_id for item in aggregator.list(me.id, page=1, page_size=3).items]
    page_two = [item.counterpart_id for item in aggregator.list(me.id, page=2, page_size=3).items]
    combined = [item.counterpart_id for item in aggregator.list(me.id, page=1, page_size=6).items]

    assert not set(page_one) & set(page_two)
    assert page_one + page_two == combined
