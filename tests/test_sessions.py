import asyncio

import pytest

from docchat_server.chat.messages import HistoryEntry
from docchat_server.core.errors import InvalidNamespace
from docchat_server.sessions.locks import ConversationLocks
from docchat_server.sessions.store import InMemoryChatStateStore, normalize_chat_id


@pytest.fixture
def state():
    return InMemoryChatStateStore()


# ---------------------------------------------------------------------
# Namespace binding
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_set_namespace_trims(state):
    assert await state.set_active_namespace(42, "  Foo  ") == "Foo"
    assert await state.get_active_namespace(42) == "Foo"


@pytest.mark.asyncio
async def test_int_and_str_chat_ids_share_state(state):
    await state.set_active_namespace(42, "docs")
    assert await state.get_active_namespace("42") == "docs"


@pytest.mark.asyncio
async def test_clear_namespace(state):
    await state.set_active_namespace(1, "docs")
    await state.clear_active_namespace(1)
    assert await state.get_active_namespace(1) is None
    # Clearing an unbound conversation is a no-op.
    await state.clear_active_namespace(2)


@pytest.mark.asyncio
@pytest.mark.parametrize("namespace", ["", "   ", None])
async def test_blank_namespace_rejected(state, namespace):
    await state.set_active_namespace(1, "docs")
    with pytest.raises(InvalidNamespace):
        await state.set_active_namespace(1, namespace)
    assert await state.get_active_namespace(1) == "docs"


def test_normalize_chat_id():
    assert normalize_chat_id(7) == "7"
    assert normalize_chat_id("abc") == "abc"
    with pytest.raises(ValueError):
        normalize_chat_id(None)


# ---------------------------------------------------------------------
# History
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_history_oldest_first_with_limit(state):
    await state.append_history(
        1,
        [{"role": "user", "content": f"m{i}"} for i in range(5)],
    )

    recent = await state.get_recent_history(1, limit=3)

    assert [e.content for e in recent] == ["m2", "m3", "m4"]


@pytest.mark.asyncio
async def test_history_retains_most_recent(state):
    for i in range(7):
        await state.append_history(
            1,
            [
                HistoryEntry(role="user", content=f"q{i}"),
                HistoryEntry(role="assistant", content=f"a{i}"),
            ],
            retain=5,
        )

    assert state.history_size(1) == 5
    recent = await state.get_recent_history(1, limit=10)
    assert [e.content for e in recent] == ["a4", "q5", "a5", "q6", "a6"]


@pytest.mark.asyncio
async def test_history_is_sanitized(state):
    await state.append_history(
        1,
        [
            {"role": "system", "content": " hi "},
            {"role": "assistant", "content": ""},
            {"role": "assistant"},
            "garbage",
            {"role": "assistant", "content": "hello"},
        ],
    )

    recent = await state.get_recent_history(1)

    assert [(e.role, e.content) for e in recent] == [("user", "hi"), ("assistant", "hello")]


@pytest.mark.asyncio
async def test_history_isolated_per_conversation(state):
    await state.append_history(1, [{"role": "user", "content": "one"}])
    await state.append_history(2, [{"role": "user", "content": "two"}])

    assert [e.content for e in await state.get_recent_history(1)] == ["one"]
    assert await state.get_recent_history(3) == []
    assert await state.get_recent_history(1, limit=0) == []


@pytest.mark.asyncio
async def test_clear_all(state):
    await state.set_active_namespace(1, "docs")
    await state.append_history(1, [{"role": "user", "content": "x"}])

    state.clear_all()

    assert await state.get_active_namespace(1) is None
    assert state.history_size(1) == 0


# ---------------------------------------------------------------------
# Locks
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_same_conversation_is_serialized():
    locks = ConversationLocks()
    events = []

    async def turn(name):
        async with locks.hold(1):
            events.append(f"{name}-start")
            await asyncio.sleep(0.01)
            events.append(f"{name}-end")

    await asyncio.gather(turn("a"), turn("b"))

    assert events == ["a-start", "a-end", "b-start", "b-end"]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_different_conversations_do_not_block():
    locks = ConversationLocks()
    release = asyncio.Event()
    entered = []

    async def holder():
        async with locks.hold(1):
            entered.append(1)
            await release.wait()

    task = asyncio.create_task(holder())
    await asyncio.sleep(0)

    async with locks.hold(2):
        entered.append(2)
        assert len(locks) == 2

    release.set()
    await task
    assert entered == [1, 2]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_settle_waits_for_deferred_write():
    locks = ConversationLocks()
    release = asyncio.Event()
    written = []

    async def write():
        await release.wait()
        written.append("done")

    task = asyncio.create_task(write())
    locks.defer(5, task)
    assert locks.pending("5")

    asyncio.get_running_loop().call_soon(release.set)
    await locks.settle(5)

    assert written == ["done"]
    await asyncio.sleep(0)
    assert not locks.pending(5)


@pytest.mark.asyncio
async def test_settle_swallows_failed_write_and_ignores_unknown_ids():
    locks = ConversationLocks()

    async def broken():
        raise RuntimeError("db down")

    task = asyncio.create_task(broken())
    locks.defer(1, task)

    await locks.settle(1)
    await locks.settle(2)
    assert task.done()
