import asyncio

import httpx
import pytest

from teamchat.client.http import ChatApiClient
from teamchat.client.notifier import RecordingNotifier
from teamchat.client.recorder import RECORDING_ERROR, RecorderState
from teamchat.client.sync import GROUP_REQUIREMENTS_ERROR, STICKERS, VOICE_MESSAGE_CONTENT, ChatSyncClient
from teamchat.schemas.message import DeliveryStatus
from teamchat.schemas.user import UserSummary
from teamchat.views.rendering import DELETED_PLACEHOLDER

from tests.fakes import FakeMicrophone


@pytest.fixture
async def sync_for(api_for):
    clients = []

    def make(user: str, **kwargs) -> ChatSyncClient:
        kwargs.setdefault("notifier", RecordingNotifier())
        kwargs.setdefault("typing_poll_interval", 0.05)
        client = ChatSyncClient(api_for(user), **kwargs)
        clients.append(client)
        return client

    yield make
    for client in clients:
        await client.close()


async def start_direct_chat(client: ChatSyncClient, other_id: str = "u-bob"):
    await client.open()
    conversation = await client.create_direct_conversation(other_id)
    assert conversation is not None
    return conversation


async def say(client: ChatSyncClient, text: str):
    client.on_input_change(text)
    return await client.send_message()


async def test_open_clears_badge_selects_first_and_marks_read(sync_for, bob):
    cid = (await bob.post("/conversations", json={"participantId": "u-alice"})).json()["id"]
    await bob.post(f"/conversations/{cid}/messages", json={"content": "hey"})
    cleared = []
    alice = sync_for("alice", clear_unread=lambda: cleared.append(True))

    await alice.open()

    assert cleared == [True]
    assert alice.current_user.id == "u-alice"
    assert alice.selected_conversation_id == cid
    assert [m.content for m in alice.messages] == ["hey"]
    assert alice.conversations[0].unread_count == 0
    assert alice.unread_total == 0
    assert alice.messages[0].read_by[0].user_id == "u-alice"


async def test_create_direct_and_send(sync_for):
    alice = sync_for("alice")
    conversation = await start_direct_chat(alice)

    sent = await say(alice, "Hello")

    assert sent.content == "Hello"
    assert alice.selected_conversation_id == conversation.id
    assert [m.content for m in alice.messages] == ["Hello"]
    assert alice.composer.text == ""
    assert alice.pending_message is None
    assert alice.conversations[0].last_message.content == "Hello"
    assert "  Hello" in alice.render()
    assert ("success", "Started conversation with Bob") in alice.notifier.toasts


async def test_edit_message(sync_for):
    alice = sync_for("alice")
    await start_direct_chat(alice)
    await say(alice, "foo")

    assert alice.start_edit(alice.messages[-1])
    alice.composer.edit_text = "bar"
    edited = await alice.edit_message()

    assert edited.content == "bar"
    assert alice.messages[-1].content == "bar"
    assert alice.messages[-1].is_edited
    assert alice.composer.editing is None
    assert any(line.endswith("(edited) [sent]") for line in alice.render())


async def test_unsend_message_renders_placeholder(sync_for):
    alice = sync_for("alice")
    await start_direct_chat(alice)
    await say(alice, "secret plan")

    await alice.unsend_message(alice.messages[-1])

    lines = alice.render()
    assert f"  {DELETED_PLACEHOLDER}" in lines
    assert not any("secret plan" in line for line in lines)
    assert alice.messages[-1].is_deleted
    assert ("success", "Message unsent") in alice.notifier.toasts


async def test_cannot_edit_or_unsend_others_messages(sync_for):
    alice = sync_for("alice")
    bob = sync_for("bob")
    await start_direct_chat(alice)
    await say(alice, "mine")
    await bob.open()

    theirs = bob.messages[-1]
    assert not bob.start_edit(theirs)
    assert await bob.edit_message(theirs, "changed") is None
    assert await bob.unsend_message(theirs) is None

    assert bob.notifier.errors == [
        "You can only edit your own messages",
        "You can only edit your own messages",
        "You can only unsend your own messages",
    ]
    await alice.load_messages(alice.selected_conversation_id)
    assert alice.messages[-1].content == "mine"


async def test_server_rejection_toasts_and_keeps_draft(sync_for):
    alice = sync_for("alice")
    await start_direct_chat(alice)
    too_long = "x" * 10001

    assert await say(alice, too_long) is None

    assert alice.notifier.errors == ["Message is too long"]
    assert alice.composer.text == too_long
    assert alice.pending_message.delivery_status == DeliveryStatus.FAILED
    assert alice.messages[-1].delivery_status == DeliveryStatus.FAILED


async def test_transport_failure_uses_fallback_message():
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    notifier = RecordingNotifier()
    api = ChatApiClient(base_url="http://test/api/chat", transport=httpx.MockTransport(handler))
    client = ChatSyncClient(api, current_user=UserSummary(id="u-alice", name="Alice"), notifier=notifier)
    client.selected_conversation_id = "c-1"

    client.on_input_change("draft")
    assert await client.send_message() is None
    assert await client.set_pinned("c-1", True) is None
    await api.aclose()

    assert notifier.errors == ["Failed to send message", "Failed to update pin status"]
    assert client.composer.text == "draft"
    assert [m.delivery_status for m in client.messages] == [DeliveryStatus.FAILED]


async def test_failed_read_leaves_list_loading():
    def handler(request):
        return httpx.Response(500, json={"error": "database unavailable"})

    api = ChatApiClient(base_url="http://test/api/chat", transport=httpx.MockTransport(handler))
    client = ChatSyncClient(api, current_user=UserSummary(id="u-alice", name="Alice"), notifier=RecordingNotifier())

    assert await client.load_conversations() == []
    assert client.conversations == []
    assert client.cache.state(("conversations",)).value == "loading"
    await api.aclose()


async def test_group_creation_checks(sync_for):
    alice = sync_for("alice")
    await alice.open()

    assert await alice.create_group_conversation("  ", ["u-bob", "u-carol"]) is None
    assert await alice.create_group_conversation("Ops", ["u-bob", "u-alice"]) is None
    group = await alice.create_group_conversation("Ops", ["u-bob", "u-carol"])

    assert alice.notifier.errors == [GROUP_REQUIREMENTS_ERROR, GROUP_REQUIREMENTS_ERROR]
    assert group.name == "Ops"
    assert alice.selected_conversation_id == group.id
    assert ("success", "Created group: Ops") in alice.notifier.toasts


async def test_reply_and_mentions(sync_for):
    alice = sync_for("alice")
    await start_direct_chat(alice)
    question = await say(alice, "ready?")

    alice.reply_to(question)
    alice.on_input_change("yes @Bo")
    assert [u.name for u in alice.mention_suggestions] == ["Bob"]
    alice.choose_mention(alice.mention_suggestions[0])
    assert alice.composer.text == "yes @Bob "
    sent = await alice.send_message()

    assert sent.reply_to_message_id == question.id
    assert sent.mentioned_user_ids == ["u-bob"]
    assert alice.composer.reply_to is None
    assert ("success", "Notified Bob") in alice.notifier.toasts
    assert "  > Alice: ready?" in alice.render()


async def test_reaction_toggle(sync_for):
    alice = sync_for("alice")
    await start_direct_chat(alice)
    message = await say(alice, "ship it")

    await alice.toggle_reaction(message, "🚀")
    assert [(r.emoji, r.user_id) for r in alice.messages[-1].reactions] == [("🚀", "u-alice")]

    await alice.toggle_reaction(alice.messages[-1], "🚀")
    assert alice.messages[-1].reactions == []


async def test_sticker_and_voice_messages(sync_for):
    alice = sync_for("alice", audio_input=FakeMicrophone())
    await start_direct_chat(alice)

    await alice.send_sticker(STICKERS[0])
    assert await alice.start_recording()
    alice.stop_recording()
    voice = await alice.send_voice_message()

    sticker = alice.messages[0]
    assert sticker.content == "👍"
    assert sticker.attachments[0].type == "sticker"
    assert voice.content == VOICE_MESSAGE_CONTENT
    assert voice.attachments[0].type == "audio/webm"
    assert voice.attachments[0].url.startswith("data:audio/webm;base64,")
    assert alice.recorder.blob is None
    # neither shows up among shared files
    media = alice.media()
    assert media.files == [] and media.images == []


async def test_recording_without_microphone(sync_for):
    alice = sync_for("alice")
    assert not await alice.start_recording()
    assert alice.notifier.errors == ["Could not access microphone"]


async def test_forward_message(sync_for):
    alice = sync_for("alice")
    source = await start_direct_chat(alice, "u-bob")
    original = await say(alice, "see https://docs.test/plan")
    target = await alice.create_direct_conversation("u-carol")

    forwarded = await alice.forward_message(original, target.id)

    assert forwarded.conversation_id == target.id
    assert forwarded.forwarded_from == "Alice"
    assert forwarded.content == original.content
    assert alice.selected_conversation_id == target.id
    assert source.id != target.id
    assert [link.url for link in alice.media().links] == ["https://docs.test/plan"]


async def test_pin_archive_and_filter(sync_for):
    alice = sync_for("alice")
    await alice.open()
    with_bob = await alice.create_direct_conversation("u-bob")
    with_carol = await alice.create_direct_conversation("u-carol")
    await say(alice, "latest")

    await alice.set_pinned(with_bob.id, True)
    assert [c.id for c in alice.visible_conversations] == [with_bob.id, with_carol.id]

    await alice.set_archived(with_bob.id, True)
    assert [c.id for c in alice.visible_conversations] == [with_carol.id]
    alice.view.show_archived = True
    assert [c.id for c in alice.visible_conversations] == [with_bob.id]

    alice.view.show_archived = False
    alice.view.search_query = "bob"
    assert alice.visible_conversations == []

    await alice.set_muted(with_carol.id, True)
    assert alice.selected_conversation.is_muted
    assert ("success", "Conversation archived") in alice.notifier.toasts


async def test_rename_and_delete_conversation(sync_for):
    alice = sync_for("alice")
    await alice.open()
    group = await alice.create_group_conversation("Ops", ["u-bob", "u-carol"])

    renamed = await alice.rename_conversation(group.id, "Operations")
    assert renamed.name == "Operations"

    assert await alice.delete_conversation(group.id)
    assert alice.selected_conversation_id is None
    assert alice.conversations == []
    assert ("success", "Conversation deleted") in alice.notifier.toasts


async def test_typing_presence_is_polled(sync_for):
    alice = sync_for("alice")
    conversation = await start_direct_chat(alice)
    bob = sync_for("bob")
    await bob.open()
    assert bob.selected_conversation_id == conversation.id

    bob.on_input_change("typing something")
    await asyncio.sleep(0.2)

    assert [u.name for u in alice.typing_users] == ["Bob"]
    assert alice.typing_label == "Bob is typing..."

    await bob.deselect_conversation()
    await asyncio.sleep(0.2)
    assert alice.typing_users == []


async def test_search_and_local_message_pins(sync_for):
    alice = sync_for("alice")
    await start_direct_chat(alice)
    await say(alice, "Deploy at noon")
    await say(alice, "lunch?")

    hits = alice.search("deploy")
    assert [m.content for m in hits] == ["Deploy at noon"]

    alice.toggle_message_pin(hits[0])
    assert [m.content for m in alice.pinned_messages] == ["Deploy at noon"]
    alice.toggle_message_pin(hits[0])
    assert alice.pinned_messages == []


def offline_client(handler, **kwargs) -> ChatSyncClient:
    api = ChatApiClient(base_url="http://test/api/chat", transport=httpx.MockTransport(handler))
    kwargs.setdefault("notifier", RecordingNotifier())
    return ChatSyncClient(api, current_user=UserSummary(id="u-alice", name="Alice"), **kwargs)


def typing_counting_handler(typing_payload):
    typing_polls = []

    def handler(request):
        if request.url.path.endswith("/typing"):
            typing_polls.append(request.method)
            return httpx.Response(200, json=typing_payload)
        return httpx.Response(200, json=[])

    return handler, typing_polls


@pytest.mark.parametrize("leave", ["deselect_conversation", "close"])
async def test_typing_poll_stops_when_leaving_conversation(leave):
    handler, typing_polls = typing_counting_handler([])
    client = offline_client(handler, typing_poll_interval=0.01)

    await client.select_conversation("c-1")
    await asyncio.sleep(0.05)
    task = client._typing_poll_task
    await getattr(client, leave)()
    polls_when_left = len(typing_polls)
    await asyncio.sleep(0.05)
    await client.api.aclose()

    assert polls_when_left > 0
    assert task.done()
    assert client._typing_poll_task is None
    assert len(typing_polls) == polls_when_left
    assert set(typing_polls) == {"GET"}


async def test_unreadable_typing_status_is_ignored():
    handler, typing_polls = typing_counting_handler([{"nope": 1}])
    client = offline_client(handler, typing_poll_interval=0.01)

    await client.select_conversation("c-1")
    await asyncio.sleep(0.05)

    assert len(typing_polls) > 1
    assert client.typing_users == []
    await client.deselect_conversation()
    await client.api.aclose()
    assert client.selected_conversation_id is None


async def test_failed_recording_shows_toast_and_frees_microphone():
    mic = FakeMicrophone(broken=True)
    client = offline_client(lambda request: httpx.Response(404, json={"error": "Not found"}), audio_input=mic)

    assert await client.start_recording()
    assert client.stop_recording() is None

    assert client.notifier.errors == [RECORDING_ERROR]
    assert client.recorder.state == RecorderState.CANCELLED
    assert mic.captures[0].released == 1
    assert await client.start_recording()
    await client.close()
    await client.api.aclose()
    assert mic.captures[1].released == 1


async def test_empty_success_body_counts_as_success():
    client = offline_client(lambda request: httpx.Response(200, json={}))

    assert await client.delete_conversation("c-1") is True
    await client.api.aclose()

    assert client.notifier.toasts == [("success", "Conversation deleted")]
