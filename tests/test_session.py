from datetime import datetime, timezone

import pytest

from copilot.storage.memory import InMemorySessionRepository
from copilot.types import (
    MessageNotFoundError,
    PromptNotFoundError,
    SessionOwnershipError,
    StorageError,
)


def without_created_at(messages):
    result = []
    for m in messages:
        data = m.to_dict()
        data.pop("created_at", None)
        result.append(data)
    return result


def test_manage_chat_session(session_service, session_id):
    assert session_id

    s = session_service.get(session_id)
    assert s.config.session_id == session_id
    assert s.config.prompt_name == "prompt"
    assert s.model == "model"

    params = {"word": "world"}
    s.push({"role": "user", "content": "hello", "created_at": datetime.now(timezone.utc)})
    final_messages = without_created_at(s.finish(params))
    assert final_messages == [
        {"content": "hello world", "params": params, "role": "system"},
        {"content": "hello", "role": "user"},
    ]
    s.save()

    s1 = session_service.get(session_id)
    assert without_created_at(s1.finish(params)) == final_messages
    assert without_created_at(s1.finish({})) == [
        {"content": "hello ", "params": {}, "role": "system"},
        {"content": "hello", "role": "user"},
    ]


def test_create_requires_existing_prompt(session_service):
    with pytest.raises(PromptNotFoundError):
        session_service.create(doc_id="d", workspace_id="w", user_id="u", prompt_name="missing")


def test_get_unknown_session_returns_none(session_service):
    assert session_service.get("nope") is None


def test_model_is_snapshotted_but_templates_rebind(prompt_service, session_service, session_id):
    prompt_service.set("prompt", "other-model", [{"role": "system", "content": "bye {{word}}"}])
    s = session_service.get(session_id)
    assert s.model == "model"
    assert s.finish({"word": "now"})[0].content == "bye now"


def test_session_with_deleted_prompt_returns_none(prompt_service, session_service, session_id):
    prompt_service.delete("prompt")
    assert session_service.get(session_id) is None


def test_process_message_id(session_service, session_id):
    s = session_service.get(session_id)
    text_message = session_service.create_message(session_id=session_id, content="hello")
    another_session_message = session_service.create_message(session_id="another-session-id")

    s.push_by_message_id(text_message)
    with pytest.raises(SessionOwnershipError):
        s.push_by_message_id(another_session_message)
    with pytest.raises(SessionOwnershipError):
        s.push_by_message_id(another_session_message.id)
    with pytest.raises(MessageNotFoundError):
        s.push_by_message_id("invalid")


def test_push_by_message_id_adds_exactly_once(session_service, session_id):
    s = session_service.get(session_id)
    message = session_service.create_message(session_id=session_id, content="hello")
    s.push_by_message_id(message.id)
    s.push_by_message_id(message.id)
    assert [m.id for m in s.stash_messages] == [message.id]

    s.save()
    with pytest.raises(MessageNotFoundError):
        s.push_by_message_id(message)
    assert len(s.stash_messages) == 0
    assert [m.id for m in s.history] == [message.id]


def test_committed_draft_cannot_be_attached_by_another_handle(session_service, session_id):
    first = session_service.get(session_id)
    second = session_service.get(session_id)
    draft = session_service.create_message(session_id=session_id, content="once")

    first.push_by_message_id(draft.id)
    first.save()

    with pytest.raises(MessageNotFoundError):
        second.push_by_message_id(draft.id)
    second.push({"role": "user", "content": "later"})
    second.save()

    history = session_service.get(session_id).history
    assert [m.content for m in history] == ["once", "later"]


def test_generate_with_text_message(session_service, session_id):
    s = session_service.get(session_id)
    message = session_service.create_message(session_id=session_id, content="hello")
    s.push_by_message_id(message)
    assert [m.content for m in s.finish({"word": "world"})] == ["hello world", "hello"]


def test_generate_with_attachment_message(session_service, session_id):
    s = session_service.get(session_id)
    message = session_service.create_message(
        session_id=session_id, attachments=["https://affine.pro/example.jpg"]
    )
    s.push_by_message_id(message)
    assert [m.attachments for m in s.finish({"word": "world"})] == [
        None,
        ["https://affine.pro/example.jpg"],
    ]


def test_empty_message_is_filtered(session_service, session_id):
    s = session_service.get(session_id)
    message = session_service.create_message(session_id=session_id)
    s.push_by_message_id(message)
    assert [m.content for m in s.finish({"word": "world"})] == ["hello world"]


def test_save_drains_stash(session_service, session_id):
    s = session_service.get(session_id)
    message = session_service.create_message(session_id=session_id, content="hello")
    s.push_by_message_id(message)
    assert len(s.stash_messages) == 1
    s.save()
    assert len(s.stash_messages) == 0


def test_save_preserves_order_across_handles(session_service, session_id):
    s = session_service.get(session_id)
    for text in ["one", "two", "three"]:
        s.push({"role": "user", "content": text})
    s.save()
    s.push({"role": "assistant", "content": "four"})
    s.save()

    fresh = session_service.get(session_id)
    assert [m.content for m in fresh.finish({"word": "x"})] == [
        "hello x",
        "one",
        "two",
        "three",
        "four",
    ]
    assert [m.content for m in fresh.history] == ["one", "two", "three", "four"]


def test_save_with_empty_stash_is_noop(session_service, session_id):
    s = session_service.get(session_id)
    s.save()
    assert session_service.get(session_id).history == ()


def test_handles_do_not_share_stash(session_service, session_id):
    a = session_service.get(session_id)
    b = session_service.get(session_id)
    a.push({"role": "user", "content": "only in a"})
    assert len(a.stash_messages) == 1
    assert len(b.stash_messages) == 0
    assert [m.content for m in b.finish({"word": "w"})] == ["hello w"]


def test_finish_does_not_mutate_session(session_service, session_id):
    s = session_service.get(session_id)
    s.push({"role": "user", "content": "hi"})
    s.finish({"word": "a"})
    s.finish({"word": "b"})
    assert len(s.stash_messages) == 1
    assert s.history == ()


class FailingRepository(InMemorySessionRepository):
    def append_history(self, session_id, messages):
        raise StorageError("disk full")


def test_failed_save_keeps_stash(prompt_service):
    from copilot.core.session import ChatSessionService

    service = ChatSessionService(prompt_service, FailingRepository())
    prompt_service.set("p", "m", [{"role": "system", "content": "sys"}])
    sid = service.create(doc_id="d", workspace_id="w", user_id="u", prompt_name="p")
    s = service.get(sid)
    s.push({"role": "user", "content": "a"})
    s.push({"role": "user", "content": "b"})

    with pytest.raises(StorageError):
        s.save()
    assert [m.content for m in s.stash_messages] == ["a", "b"]
    assert service.get(sid).history == ()


def test_push_by_message_id_uses_stored_owner(session_service, session_id):
    from dataclasses import replace

    s = session_service.get(session_id)
    foreign = session_service.create_message(session_id="another-session-id", content="x")
    forged = replace(foreign, session_id=session_id)
    with pytest.raises(SessionOwnershipError):
        s.push_by_message_id(forged)
    assert s.stash_messages == ()
