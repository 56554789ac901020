"""Tests for the per-counterpart conversation listing."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from app.models import DirectMessage, User
from app.services import ConversationAggregator
from helpers import send, signup

BASE = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _message(sender: User, recipient: User, minutes: int, *, read: bool = False) -> DirectMessage:
    return DirectMessage(
        sender_id=sender.id,
        recipient_id=recipient.id,
        content=f"{sender.username}->{recipient.username}@{minutes}",
        created_at=BASE + timedelta(minutes=minutes),
        is_read=read,
    )


def test_groups_by_counterpart_newest_first(db_session):
    me, bob, carol, dave = (User(username=name, hashed_password="x") for name in ("me", "bob", "carol", "dave"))
    db_session.add_all([me, bob, carol, dave])
    db_session.flush()
    db_session.add_all(
        [
            _message(bob, me, 1),
            _message(me, bob, 2),
            _message(carol, me, 3),
            _message(carol, me, 4),
            _message(me, dave, 5),
            _message(bob, carol, 6),
        ]
    )
    db_session.commit()

    listing = ConversationAggregator(db_session).list(me.id)

    assert [item.counterpart_id for item in listing.items] == [dave.id, carol.id, bob.id]
    assert [item.unread_count for item in listing.items] == [0, 2, 1]
    assert listing.items[1].last_message.content == "carol->me@4"
    assert listing.items[2].last_message.sender_id == me.id
    assert listing.total == 3
    assert listing.has_more is False


def test_pagination_metadata(db_session):
    me = User(username="me", hashed_password="x")
    others = [User(username=f"user{i}", hashed_password="x") for i in range(5)]
    db_session.add_all([me, *others])
    db_session.flush()
    db_session.add_all([_message(other, me, index) for index, other in enumerate(others)])
    db_session.commit()

    aggregator = ConversationAggregator(db_session)
    first = aggregator.list(me.id, page=1, page_size=2)
    third = aggregator.list(me.id, page=3, page_size=2)
    beyond = aggregator.list(me.id, page=4, page_size=2)

    assert [item.counterpart.username for item in first.items] == ["user4", "user3"]
    assert first.total_pages == 3
    assert first.has_more is True
    assert [item.counterpart.username for item in third.items] == ["user0"]
    assert third.has_more is False
    assert beyond.items == []
    assert beyond.total == 5


def test_conversations_endpoint(client):
    alice_id, alice = signup(client, "alice", "Alice")
    bob_id, bob = signup(client, "bob")

    send(client, alice, bob_id, "ping")
    send(client, alice, bob_id, "ping again")

    response = client.get("/api/messages/conversations", headers=bob)
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"] == {
        "current_page": 1,
        "total_pages": 1,
        "total_conversations": 1,
        "has_more": False,
        "limit": 20,
    }
    (conversation,) = body["conversations"]
    assert conversation["user"]["id"] == alice_id
    assert conversation["user"]["display_name"] == "Alice"
    assert conversation["last_message"]["content"] == "ping again"
    assert conversation["unread_count"] == 2

    client.post(f"/api/messages/with/{alice_id}/read", headers=bob)
    refreshed = client.get("/api/messages/conversations", headers=bob).json()
    assert refreshed["conversations"][0]["unread_count"] == 0


def test_conversation_page_size_over_the_cap_is_rejected(client):
    _, alice = signup(client, "alice")

    response = client.get("/api/messages/conversations", params={"limit": 500}, headers=alice)
    assert response.status_code == 400
    assert response.json() == {
        "error": "invalid_argument",
        "detail": "Page size must not exceed 100",
    }

    largest = client.get("/api/messages/conversations", params={"limit": 100}, headers=alice)
    assert largest.status_code == 200
    assert largest.json()["pagination"]["limit"] == 100


def test_pages_of_a_large_listing_add_up_to_a_double_page(db_session):
    owner = User(username="owner", hashed_password="x")
    peers = [User(username=f"peer{index}", hashed_password="x") for index in range(120)]
    db_session.add_all([owner, *peers])
    db_session.flush()
    db_session.add_all(_message(peer, owner, minutes) for minutes, peer in enumerate(peers))
    db_session.commit()

    aggregator = ConversationAggregator(db_session)
    first = aggregator.list(owner.id, page=1, page_size=60)
    second = aggregator.list(owner.id, page=2, page_size=60)
    both = aggregator.list(owner.id, page=1, page_size=100)

    combined = [item.counterpart_id for item in first.items + second.items]
    assert len(set(combined)) == 120
    assert combined[:100] == [item.counterpart_id for item in both.items]
