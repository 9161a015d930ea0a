import pytest

from chatty.exceptions import NotFoundError, ValidationError


async def _exchange(service, a, b, count):
    sent = []
    for i in range(count):
        sender, receiver = (a, b) if i % 2 == 0 else (b, a)
        sent.append(await service.send_message(sender, receiver, f"message {i}"))
    return sent


async def test_pages_concatenate_in_chronological_order(service, users):
    alice, bob = users["alice"], users["bob"]
    sent = await _exchange(service, alice, bob, 7)

    pages = [await service.get_history(alice, bob, page=p, page_size=3) for p in (1, 2, 3, 4)]

    assert [m.content for m in pages[0].messages] == ["message 4", "message 5", "message 6"]
    assert [m.content for m in pages[2].messages] == ["message 0"]
    assert pages[3].messages == []

    combined = pages[2].messages + pages[1].messages + pages[0].messages
    assert [m.id for m in combined] == [m.id for m in sent]
    timestamps = [m.timestamp for m in combined]
    assert timestamps == sorted(timestamps)


async def test_history_is_scoped_to_the_pair(service, users):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    await service.send_message(alice, bob, "for bob")
    await service.send_message(alice, carol, "for carol")

    history = await service.get_history(bob, alice)

    assert [m.content for m in history.messages] == ["for bob"]


async def test_fetching_history_marks_incoming_messages_read(service, messages, users):
    alice, bob = users["alice"], users["bob"]
    await service.send_message(alice, bob, "hi")
    await service.send_message(alice, bob, "are you there?")
    await service.send_message(bob, alice, "yes")

    first = await service.get_history(bob, alice)

    # the page shows the state before the read
    assert [m.is_read for m in first.messages] == [False, False, False]
    assert first.receipt.reader_id == bob
    assert first.receipt.counterpart_id == alice
    assert first.receipt.count == 2
    assert await messages.count_unread(bob) == 0
    assert await messages.count_unread(alice) == 1

    second = await service.get_history(bob, alice)

    assert second.receipt.count == 0
    assert [m.is_read for m in second.messages] == [True, True, False]


async def test_explicit_mark_read(service, users):
    alice, bob = users["alice"], users["bob"]
    await service.send_message(alice, bob, "ping")

    receipt = await service.mark_conversation_read(bob, alice)
    again = await service.mark_conversation_read(bob, alice)

    assert receipt.count == 1
    assert again.count == 0
    assert await service.unread_count(bob) == 0


@pytest.mark.parametrize("page, size", [(0, 10), (1, 0), (1, 201)])
async def test_history_rejects_bad_paging(service, users, page, size):
    with pytest.raises(ValidationError):
        await service.get_history(users["alice"], users["bob"], page=page, page_size=size)


async def test_history_with_unknown_users(service, users):
    with pytest.raises(ValidationError):
        await service.get_history(users["alice"], "nope")
    with pytest.raises(NotFoundError):
        await service.get_history(users["alice"], "5f1d7f3e9b1e8a3c4d5e6f70")


async def test_recent_conversations_are_ordered_by_last_message(service, conversations, users):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    await service.send_message(alice, bob, "hey bob")
    await service.send_message(carol, alice, "hey alice")
    await service.send_message(bob, alice, "hey again")

    recent = await service.recent_conversations(alice)

    assert [c.user.username for c in recent] == ["bob", "carol"]
    # row id is the conversation, the counterpart is under `user`
    assert recent[0].id == str((await conversations.find_between(alice, bob))["_id"])
    assert recent[0].user.id == bob
    assert recent[0].last_message.content == "hey again"
    assert recent[0].unread_count == 1
    assert recent[1].last_message.content == "hey alice"
    assert recent[1].unread_count == 1

    await service.get_history(alice, bob)
    recent = await service.recent_conversations(alice)
    assert recent[0].unread_count == 0


async def test_recent_conversations_empty_for_new_user(service, users):
    assert await service.recent_conversations(users["carol"]) == []
