"""Send and fetch paths of the chat service against an in-memory store."""
import asyncio

import pytest
import pytest_asyncio
from bson import ObjectId

from app.services.chat_service import ChatService
from app.utils.errors import AccessDenied, InvalidArgument
from app.utils.websocket_manager import ConnectionManager
from helpers import FakeWebSocket


@pytest.fixture
def connections():
    return ConnectionManager()


@pytest.fixture
def service(message_repo, conversation_repo, user_repo, connections):
    return ChatService(message_repo, conversation_repo, user_repo, connections)


@pytest_asyncio.fixture
async def direct(conversation_repo):
    convo, _ = await conversation_repo.get_or_create_direct("alice", "bob")
    return convo


async def unread(conversation_repo, conversation_id):
    doc = await conversation_repo.get_by_id(ObjectId(conversation_id))
    return doc["unread_counts"]


@pytest.mark.asyncio
async def test_send_increments_everyone_but_sender(service, conversation_repo, direct):
    await service.send_message(direct["_id"], "alice", "hi")
    await service.send_message(direct["_id"], "alice", "again")

    assert await unread(conversation_repo, direct["_id"]) == {"alice": 0, "bob": 2}


@pytest.mark.asyncio
async def test_reply_resets_sender_counter(service, conversation_repo, direct):
    await service.send_message(direct["_id"], "alice", "hi")
    await service.send_message(direct["_id"], "bob", "hey")

    assert await unread(conversation_repo, direct["_id"]) == {"alice": 1, "bob": 0}


@pytest.mark.asyncio
async def test_send_returns_trimmed_message_read_by_sender(service, direct):
    message = await service.send_message(direct["_id"], "alice", "  hi there  ")

    assert message.text == "hi there"
    assert message.status == "sent"
    assert message.read_by == ["alice"]
    assert message.conversation_id == direct["_id"]


@pytest.mark.asyncio
async def test_send_updates_last_message_preview(service, conversation_repo, direct):
    await service.send_message(direct["_id"], "alice", "hi")

    doc = await conversation_repo.get_by_id(ObjectId(direct["_id"]))
    assert doc["last_message"]["text"] == "hi"
    assert doc["last_message"]["sender_id"] == "alice"


@pytest.mark.asyncio
async def test_sender_metadata_comes_from_profile(service, user_repo, direct):
    await user_repo.upsert_profile("alice", "Alice", "https://img/alice.png", "")

    message = await service.send_message(direct["_id"], "alice", "hi")

    assert message.sender_name == "Alice"
    assert message.sender_avatar == "https://img/alice.png"


@pytest.mark.asyncio
async def test_sender_without_profile_gets_placeholder(service, direct):
    message = await service.send_message(direct["_id"], "alice", "hi")

    assert message.sender_name == "You"
    assert message.sender_avatar == ""


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
async def test_blank_text_mutates_nothing(service, message_repo, conversation_repo, direct, text):
    with pytest.raises(InvalidArgument):
        await service.send_message(direct["_id"], "alice", text)

    assert await message_repo.list_for_conversation(ObjectId(direct["_id"])) == []
    doc = await conversation_repo.get_by_id(ObjectId(direct["_id"]))
    assert doc["unread_counts"] == {"alice": 0, "bob": 0}
    assert doc["last_message"] is None


@pytest.mark.asyncio
async def test_non_member_cannot_send_or_fetch(service, direct):
    with pytest.raises(AccessDenied):
        await service.send_message(direct["_id"], "mallory", "hi")
    with pytest.raises(AccessDenied):
        await service.list_messages(direct["_id"], "mallory")


@pytest.mark.asyncio
async def test_fetch_marks_read_and_resets_counter(service, conversation_repo, message_repo, direct):
    await service.send_message(direct["_id"], "alice", "one")
    await service.send_message(direct["_id"], "alice", "two")

    messages = await service.list_messages(direct["_id"], "bob")

    assert [m.text for m in messages] == ["one", "two"]
    assert all("bob" in m.read_by for m in messages)
    assert all(m.status == "seen" for m in messages)
    assert (await unread(conversation_repo, direct["_id"]))["bob"] == 0

    stored = await message_repo.list_for_conversation(ObjectId(direct["_id"]))
    assert all(doc["read_by"] == ["alice", "bob"] for doc in stored)
    assert all(doc["status"] == "seen" for doc in stored)


@pytest.mark.asyncio
@pytest.mark.parametrize("step", ["mark_read_by", "list_by_ids"])
async def test_message_sent_during_fetch_stays_unread(service, conversation_repo, message_repo, direct, monkeypatch, step):
    await service.send_message(direct["_id"], "alice", "early")
    original = getattr(message_repo, step)

    async def then_send(*args, **kwargs):
        result = await original(*args, **kwargs)
        await service.send_message(direct["_id"], "alice", "late")
        return result

    monkeypatch.setattr(message_repo, step, then_send)
    messages = await service.list_messages(direct["_id"], "bob")
    monkeypatch.undo()

    assert [m.text for m in messages] == ["early"]
    assert all("bob" in m.read_by for m in messages if m.status == "seen")
    assert (await unread(conversation_repo, direct["_id"]))["bob"] == 1
    stored = {doc["text"]: doc for doc in await message_repo.list_for_conversation(ObjectId(direct["_id"]))}
    assert stored["late"]["read_by"] == ["alice"]
    assert stored["late"]["status"] == "sent"

    again = await service.list_messages(direct["_id"], "bob")
    assert [m.text for m in again] == ["early", "late"]
    assert (await unread(conversation_repo, direct["_id"]))["bob"] == 0


@pytest.mark.asyncio
async def test_fetch_of_empty_conversation_leaves_counter_at_zero(service, conversation_repo, direct):
    assert await service.list_messages(direct["_id"], "bob") == []
    assert await unread(conversation_repo, direct["_id"]) == {"alice": 0, "bob": 0}


@pytest.mark.asyncio
async def test_fetch_after_own_reply_clears_older_unread(service, conversation_repo, message_repo, direct):
    await service.send_message(direct["_id"], "alice", "one")
    await service.send_message(direct["_id"], "bob", "reply")
    await service.send_message(direct["_id"], "alice", "two")

    messages = await service.list_messages(direct["_id"], "bob")

    assert [m.text for m in messages] == ["one", "reply", "two"]
    assert (await unread(conversation_repo, direct["_id"]))["bob"] == 0
    stored = await message_repo.list_for_conversation(ObjectId(direct["_id"]))
    assert all("bob" in doc["read_by"] for doc in stored)


@pytest.mark.asyncio
async def test_concurrent_sends_count_every_message(service, conversation_repo, message_repo, direct):
    await asyncio.gather(*(service.send_message(direct["_id"], "alice", f"m{i}") for i in range(20)))

    assert await unread(conversation_repo, direct["_id"]) == {"alice": 0, "bob": 20}
    assert len(await message_repo.list_for_conversation(ObjectId(direct["_id"]))) == 20


@pytest.mark.asyncio
async def test_sender_sees_stored_status(service, direct):
    await service.send_message(direct["_id"], "alice", "hi")

    before = await service.list_messages(direct["_id"], "alice")
    assert before[0].status == "sent"
    assert before[0].read_by == ["alice"]

    await service.list_messages(direct["_id"], "bob")
    after = await service.list_messages(direct["_id"], "alice")
    assert after[0].status == "seen"


@pytest.mark.asyncio
async def test_fetch_does_not_mark_own_messages(service, message_repo, direct):
    await service.send_message(direct["_id"], "alice", "hi")

    await service.list_messages(direct["_id"], "alice")

    stored = await message_repo.list_for_conversation(ObjectId(direct["_id"]))
    assert stored[0]["read_by"] == ["alice"]
    assert stored[0]["status"] == "sent"


@pytest.mark.asyncio
async def test_group_status_is_seen_only_after_every_member_read(service, conversation_repo, message_repo):
    group = await conversation_repo.create_group(["alice", "bob", "carol"], "Team")
    await service.send_message(group["_id"], "alice", "standup?")

    bob_view = await service.list_messages(group["_id"], "bob")
    assert bob_view[0].status == "seen"
    stored = await message_repo.list_for_conversation(ObjectId(group["_id"]))
    assert stored[0]["status"] == "sent"
    assert (await service.list_messages(group["_id"], "alice"))[0].status == "sent"

    await service.list_messages(group["_id"], "carol")
    assert (await service.list_messages(group["_id"], "alice"))[0].status == "seen"


@pytest.mark.asyncio
async def test_group_send_increments_all_other_members(service, conversation_repo):
    group = await conversation_repo.create_group(["alice", "bob", "carol"], "Team")

    await service.send_message(group["_id"], "bob", "hello")

    assert await unread(conversation_repo, group["_id"]) == {"alice": 1, "bob": 0, "carol": 1}


@pytest.mark.asyncio
async def test_ordering_is_non_decreasing(service, direct):
    for i in range(6):
        await service.send_message(direct["_id"], "alice" if i % 2 else "bob", f"m{i}")

    messages = await service.list_messages(direct["_id"], "alice")

    assert [m.text for m in messages] == [f"m{i}" for i in range(6)]
    stamps = [m.created_at for m in messages]
    assert stamps == sorted(stamps)


@pytest.mark.asyncio
async def test_overlong_text_is_rejected(service, direct):
    with pytest.raises(InvalidArgument):
        await service.send_message(direct["_id"], "alice", "x" * 4001)


@pytest.mark.asyncio
async def test_send_fans_out_to_room_and_other_members(service, connections, direct):
    alice_ws, bob_ws = FakeWebSocket(), FakeWebSocket()
    await connections.connect("alice", alice_ws)
    await connections.connect("bob", bob_ws)
    connections.join(alice_ws, direct["_id"])
    connections.join(bob_ws, direct["_id"])

    message = await service.send_message(direct["_id"], "alice", "hi")

    for ws in (alice_ws, bob_ws):
        pushed = ws.events("message:new")
        assert len(pushed) == 1
        assert pushed[0]["data"]["message"]["id"] == message.id
        assert pushed[0]["data"]["message"]["senderId"] == "alice"
    assert bob_ws.events("conversation:update") == [
        {"type": "conversation:update", "data": {"conversationId": direct["_id"]}}
    ]
    assert alice_ws.events("conversation:update") == []


@pytest.mark.asyncio
async def test_fanout_failure_does_not_fail_send(service, connections, message_repo, direct):
    broken = FakeWebSocket(fail=True)
    await connections.connect("bob", broken)
    connections.join(broken, direct["_id"])

    message = await service.send_message(direct["_id"], "alice", "hi")

    stored = await message_repo.list_for_conversation(ObjectId(direct["_id"]))
    assert [doc["_id"] for doc in stored] == [message.id]


@pytest.mark.asyncio
async def test_relay_of_already_broadcast_message_is_dropped(service, connections, direct):
    bob_ws = FakeWebSocket()
    await connections.connect("bob", bob_ws)
    connections.join(bob_ws, direct["_id"])
    message = await service.send_message(direct["_id"], "alice", "hi")

    forwarded = await service.relay_message(direct["_id"], "alice", message.id)

    assert forwarded == 0
    assert len(bob_ws.events("message:new")) == 1


@pytest.mark.asyncio
async def test_relay_forwards_unbroadcast_message_once(message_repo, conversation_repo, user_repo, direct):
    quiet = ChatService(message_repo, conversation_repo, user_repo, connections=None)
    message = await quiet.send_message(direct["_id"], "alice", "hi")

    connections = ConnectionManager()
    live = ChatService(message_repo, conversation_repo, user_repo, connections)
    alice_ws, bob_ws = FakeWebSocket(), FakeWebSocket()
    await connections.connect("alice", alice_ws)
    await connections.connect("bob", bob_ws)
    connections.join(alice_ws, direct["_id"])
    connections.join(bob_ws, direct["_id"])

    assert await live.relay_message(direct["_id"], "alice", message.id, origin=alice_ws) == 1
    assert await live.relay_message(direct["_id"], "alice", message.id, origin=alice_ws) == 0
    assert len(bob_ws.events("message:new")) == 1
    assert alice_ws.events("message:new") == []


@pytest.mark.asyncio
async def test_relay_rejects_messages_of_other_senders(service, connections, message_repo, conversation_repo, user_repo, direct):
    quiet = ChatService(message_repo, conversation_repo, user_repo, connections=None)
    message = await quiet.send_message(direct["_id"], "alice", "hi")

    assert await service.relay_message(direct["_id"], "bob", message.id) == 0
    assert await service.relay_message(direct["_id"], "bob", "garbage") == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("message_id", [["x"], {"id": "x"}, 42])
async def test_relay_rejects_non_string_message_id(service, direct, message_id):
    with pytest.raises(InvalidArgument):
        await service.relay_message(direct["_id"], "alice", message_id)
