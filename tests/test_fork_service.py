import asyncio
from datetime import datetime
from types import SimpleNamespace

import pytest

from branchchat.core.errors import ChatError, ChatErrorCode
from branchchat.db.models.conversation import Conversation
from branchchat.db.models.message import Message
from branchchat.repositories.conversation_repository import ConversationRepository
from branchchat.repositories.message_repository import MessageRepository
from branchchat.schemas.conversation import ConversationResponse
from branchchat.services.fork_service import ForkService, derive_branch_title


@pytest.fixture
def fork_service(db):
    return ForkService(
        conversation_repository=ConversationRepository(),
        message_repository=MessageRepository(),
        db=db,
    )


def fork(service, conversation_id, message_id):
    return asyncio.run(service.fork(conversation_id, message_id))


def messages_of(db, conversation_id):
    return asyncio.run(MessageRepository.list_by_conversation(conversation_id, db))


def test_fork_copies_prefix_up_to_cutoff(db, fork_service, make_conversation):
    source, (u1, a1, u2) = make_conversation(
        "Mystery", [("user", "u1"), ("assistant", "a1"), ("user", "u2")]
    )

    branch = fork(fork_service, source.id, a1.id)

    assert branch.title == "Mystery (branch)"
    assert branch.parent_conversation_id == source.id
    assert branch.branch_from_message_id == a1.id
    assert branch.id != source.id

    copied = messages_of(db, branch.id)
    assert [(m.role, m.content) for m in copied] == [("user", "u1"), ("assistant", "a1")]
    assert {m.id for m in copied}.isdisjoint({u1.id, a1.id, u2.id})
    assert all(m.conversation_id == branch.id for m in copied)
    assert [m.sequence for m in copied] == [1, 2]


def test_fork_at_first_and_last_message(db, fork_service, make_conversation):
    source, messages = make_conversation(
        "Story", [("user", "1"), ("assistant", "2"), ("user", "3"), ("assistant", "4")]
    )

    first = fork(fork_service, source.id, messages[0].id)
    last = fork(fork_service, source.id, messages[-1].id)

    assert [m.content for m in messages_of(db, first.id)] == ["1"]
    assert [m.content for m in messages_of(db, last.id)] == ["1", "2", "3", "4"]


def test_fork_leaves_source_untouched(db, fork_service, make_conversation):
    source, messages = make_conversation("Story", [("user", "1"), ("assistant", "2")])
    before = [(m.id, m.content, m.sequence) for m in messages_of(db, source.id)]

    fork(fork_service, source.id, messages[0].id)

    after = [(m.id, m.content, m.sequence) for m in messages_of(db, source.id)]
    assert after == before
    assert asyncio.run(ConversationRepository.get_by_id(source.id, db)).title == "Story"


def test_fork_unknown_conversation(db, fork_service, make_conversation):
    _, messages = make_conversation("Story", [("user", "1")])

    with pytest.raises(ChatError) as exc_info:
        fork(fork_service, "missing", messages[0].id)

    assert exc_info.value.code == ChatErrorCode.CONVERSATION_NOT_FOUND
    assert exc_info.value.status_code == 404


def test_fork_unknown_message(db, fork_service, make_conversation):
    source, _ = make_conversation("Story", [("user", "1")])

    with pytest.raises(ChatError) as exc_info:
        fork(fork_service, source.id, "missing")

    assert exc_info.value.code == ChatErrorCode.MESSAGE_NOT_FOUND
    assert exc_info.value.status_code == 404


def test_fork_rejects_message_from_another_conversation(db, fork_service, make_conversation):
    source, _ = make_conversation("Story", [("user", "1")])
    _, foreign = make_conversation("Other", [("user", "x")])

    with pytest.raises(ChatError) as exc_info:
        fork(fork_service, source.id, foreign[0].id)

    assert exc_info.value.code == ChatErrorCode.MESSAGE_NOT_IN_CONVERSATION
    assert exc_info.value.status_code == 400
    assert db.query(Conversation).count() == 2


def test_branch_marker_is_not_duplicated(db, fork_service, make_conversation):
    source, messages = make_conversation("Mystery", [("user", "1")])

    branch = fork(fork_service, source.id, messages[0].id)
    branch_message = messages_of(db, branch.id)[0]
    grandchild = fork(fork_service, branch.id, branch_message.id)

    assert branch.title == "Mystery (branch)"
    assert grandchild.title == "Mystery (branch)"
    assert grandchild.parent_conversation_id == branch.id


@pytest.mark.parametrize("title, expected", [
    ("Mystery", "Mystery (branch)"),
    ("Mystery (branch)", "Mystery (branch)"),
    ("Mystery (branch) v2", "Mystery (branch) v2"),
    ("(branch) notes", "(branch) notes"),
    ("Branching paths", "Branching paths (branch)"),
])
def test_derive_branch_title(title, expected):
    assert derive_branch_title(title) == expected


def test_forks_are_independent(db, fork_service, make_conversation):
    source, messages = make_conversation("Story", [("user", "1"), ("assistant", "2")])

    first = fork(fork_service, source.id, messages[1].id)
    second = fork(fork_service, source.id, messages[1].id)

    first_ids = {m.id for m in messages_of(db, first.id)}
    second_ids = {m.id for m in messages_of(db, second.id)}
    assert first.id != second.id
    assert first_ids.isdisjoint(second_ids)

    asyncio.run(MessageRepository.append(first.id, "user", "only in first", db))
    assert asyncio.run(ConversationRepository.delete(first.id, db))

    assert [m.content for m in messages_of(db, second.id)] == ["1", "2"]
    assert [m.content for m in messages_of(db, source.id)] == ["1", "2"]
    assert asyncio.run(ConversationRepository.get_by_id(first.id, db)) is None


def test_deleting_parent_keeps_fork(db, fork_service, make_conversation):
    source, messages = make_conversation("Story", [("user", "1"), ("assistant", "2")])
    branch = fork(fork_service, source.id, messages[0].id)

    assert asyncio.run(ConversationRepository.delete(source.id, db))
    db.expire_all()

    survivor = asyncio.run(ConversationRepository.get_by_id(branch.id, db))
    assert survivor is not None
    assert survivor.parent_conversation_id is None
    assert survivor.branch_from_message_id is None
    assert [m.content for m in messages_of(db, branch.id)] == ["1"]
    assert db.query(Message).filter(Message.conversation_id == source.id).count() == 0


def test_fork_with_tied_timestamps_stops_at_cutoff(db, fork_service, make_conversation):
    source, _ = make_conversation("Ties", [])
    same_instant = datetime(2024, 5, 1, 12, 0, 0)
    rows = []
    for sequence, content in [(1, "a"), (2, "b"), (3, "c")]:
        row = Message(conversation_id=source.id, role="user", content=content,
                      sequence=sequence, created_at=same_instant)
        db.add(row)
        rows.append(row)
    db.commit()

    branch = fork(fork_service, source.id, rows[1].id)

    assert [m.content for m in messages_of(db, branch.id)] == ["a", "b"]


def test_failed_copy_leaves_no_branch(db, fork_service, make_conversation, monkeypatch):
    source, messages = make_conversation("Story", [("user", "1"), ("assistant", "2")])

    async def broken_prefix(conversation_id, cutoff, db, cutoff_sequence=None):
        # Second row violates NOT NULL on content
        return [messages[0], SimpleNamespace(role="assistant", content=None)]

    monkeypatch.setattr(MessageRepository, "range_up_to", staticmethod(broken_prefix))

    with pytest.raises(ChatError) as exc_info:
        fork(fork_service, source.id, messages[1].id)

    assert exc_info.value.code == ChatErrorCode.PERSISTENCE_FAILURE
    assert exc_info.value.stage == "fork"
    assert db.query(Conversation).count() == 1
    assert db.query(Message).count() == 2
    assert asyncio.run(ConversationRepository.list_forks(source.id, db)) == []


def test_list_forks_uses_lineage(db, fork_service, make_conversation):
    source, messages = make_conversation("Story", [("user", "1"), ("assistant", "2")])
    unrelated, _ = make_conversation("Unrelated", [("user", "x")])

    first = fork(fork_service, source.id, messages[0].id)
    second = fork(fork_service, source.id, messages[1].id)

    forks = asyncio.run(ConversationRepository.list_forks(source.id, db))
    assert {f.id for f in forks} == {first.id, second.id}
    assert asyncio.run(ConversationRepository.list_forks(unrelated.id, db)) == []


def test_fork_of_long_title_is_saved_and_listable(db, fork_service, make_conversation):
    source, messages = make_conversation("x" * 250, [("user", "1")])

    branch = fork(fork_service, source.id, messages[0].id)

    assert branch.title == "x" * 250 + " (branch)"
    listed = asyncio.run(ConversationRepository.list_all(db))
    assert {c.id for c in listed} == {source.id, branch.id}


def test_rejected_branch_row_is_rolled_back(db, fork_service, make_conversation, monkeypatch):
    source, messages = make_conversation("Story", [("user", "1"), ("assistant", "2")])

    validate = ConversationResponse.model_validate

    def reject_branches(obj):
        if obj.parent_conversation_id:
            raise ValueError("branch row rejected")
        return validate(obj)

    monkeypatch.setattr(ConversationResponse, "model_validate", staticmethod(reject_branches))

    with pytest.raises(ChatError) as exc_info:
        fork(fork_service, source.id, messages[1].id)

    assert exc_info.value.code == ChatErrorCode.PERSISTENCE_FAILURE
    assert db.query(Conversation).count() == 1
    assert db.query(Message).count() == 2


def test_renamed_branch_keeps_single_marker(db, fork_service, make_conversation):
    source, messages = make_conversation("Mystery", [("user", "1")])
    branch = fork(fork_service, source.id, messages[0].id)
    asyncio.run(ConversationRepository.update_title(branch.id, "Mystery (branch) v2", db))

    grandchild = fork(fork_service, branch.id, messages_of(db, branch.id)[0].id)

    assert grandchild.title == "Mystery (branch) v2"


def test_concurrent_forks_at_different_cutoffs(db, session_factory, make_conversation):
    source, messages = make_conversation(
        "Story", [("user", "1"), ("assistant", "2"), ("user", "3"), ("assistant", "4")]
    )
    first_db, second_db = session_factory(), session_factory()

    def service(session):
        return ForkService(ConversationRepository(), MessageRepository(), session)

    async def fork_both():
        return await asyncio.gather(
            service(first_db).fork(source.id, messages[1].id),
            service(second_db).fork(source.id, messages[3].id),
        )

    try:
        early, late = asyncio.run(fork_both())
    finally:
        first_db.close()
        second_db.close()

    db.expire_all()
    assert [m.content for m in messages_of(db, early.id)] == ["1", "2"]
    assert [m.content for m in messages_of(db, late.id)] == ["1", "2", "3", "4"]
    assert early.branch_from_message_id == messages[1].id
    assert late.branch_from_message_id == messages[3].id
    early_ids = {m.id for m in messages_of(db, early.id)}
    late_ids = {m.id for m in messages_of(db, late.id)}
    assert early_ids.isdisjoint(late_ids)


def test_append_at_cutoff_instant_is_not_copied(db, fork_service, make_conversation):
    source, messages = make_conversation("Story", [("user", "1"), ("assistant", "2")])
    cutoff = messages[1]
    # A write landing in the same instant as the cutoff sorts after it by sequence
    db.add(Message(conversation_id=source.id, role="user", content="late",
                   sequence=cutoff.sequence + 1, created_at=cutoff.created_at))
    db.commit()

    first = fork(fork_service, source.id, cutoff.id)
    asyncio.run(MessageRepository.append(source.id, "assistant", "later still", db))
    second = fork(fork_service, source.id, cutoff.id)

    assert [m.content for m in messages_of(db, first.id)] == ["1", "2"]
    assert [m.content for m in messages_of(db, second.id)] == ["1", "2"]
