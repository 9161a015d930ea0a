import asyncio
from datetime import timedelta

import pytest
from bson import ObjectId

from chatty.exceptions import ValidationError
from chatty.repositories.conversation_repository import pair_key
from chatty.utils.mongo import utc_now


async def test_resolve_is_idempotent_and_order_independent(conversations, users):
    alice, bob = users["alice"], users["bob"]

    first = await conversations.resolve_or_create(alice, bob)
    again = await conversations.resolve_or_create(alice, bob)
    reversed_pair = await conversations.resolve_or_create(bob, alice)

    assert first["_id"] == again["_id"] == reversed_pair["_id"]
    assert first["participants"] == sorted([alice, bob])
    assert first["pair_key"] == pair_key(bob, alice)
    assert first["last_message_id"] is None
    assert await conversations.collection.count_documents({}) == 1


async def test_distinct_pairs_get_distinct_conversations(conversations, users):
    ab = await conversations.resolve_or_create(users["alice"], users["bob"])
    ac = await conversations.resolve_or_create(users["alice"], users["carol"])

    assert ab["_id"] != ac["_id"]
    assert await conversations.collection.count_documents({}) == 2


async def test_self_conversation_is_rejected(conversations, users):
    with pytest.raises(ValidationError):
        await conversations.resolve_or_create(users["alice"], users["alice"])

    assert await conversations.collection.count_documents({}) == 0


async def test_lost_creation_race_returns_the_winner(conversations, users, monkeypatch):
    alice, bob = users["alice"], users["bob"]
    winner = await conversations.resolve_or_create(alice, bob)

    real_find = conversations.find_between
    calls = []

    async def stale_find(a, b):
        # the first lookup misses, as if the other request had not committed yet
        calls.append((a, b))
        if len(calls) == 1:
            return None
        return await real_find(a, b)

    monkeypatch.setattr(conversations, "find_between", stale_find)

    resolved = await conversations.resolve_or_create(bob, alice)

    assert resolved["_id"] == winner["_id"]
    assert len(calls) == 2
    assert await conversations.collection.count_documents({}) == 1


async def test_concurrent_resolves_create_one_conversation(conversations, users):
    alice, bob = users["alice"], users["bob"]

    results = await asyncio.gather(
        *[conversations.resolve_or_create(alice, bob) if i % 2 else conversations.resolve_or_create(bob, alice)
          for i in range(10)]
    )

    assert len({r["_id"] for r in results}) == 1
    assert await conversations.collection.count_documents({}) == 1


async def test_summary_only_moves_forward(conversations, users):
    convo = await conversations.resolve_or_create(users["alice"], users["bob"])
    now = utc_now()
    newer = {"_id": ObjectId(), "timestamp": now}
    older = {"_id": ObjectId(), "timestamp": now - timedelta(seconds=5)}

    assert await conversations.advance_last_message(convo["_id"], newer) is True
    assert await conversations.advance_last_message(convo["_id"], older) is False

    stored = await conversations.get(convo["_id"])
    assert stored["last_message_id"] == newer["_id"]
    assert stored["last_message_at"] == now


async def test_list_for_user_skips_empty_conversations(conversations, users):
    alice = users["alice"]
    talked = await conversations.resolve_or_create(alice, users["bob"])
    await conversations.resolve_or_create(alice, users["carol"])
    await conversations.advance_last_message(talked["_id"], {"_id": ObjectId(), "timestamp": utc_now()})

    listed = await conversations.list_for_user(alice)

    assert [c["_id"] for c in listed] == [talked["_id"]]
