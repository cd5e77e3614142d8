import json

import pytest

from conftest import ScriptedLLM, text_reply, tool_reply
from docchat_server.chat.conversation import ConversationLoop
from docchat_server.chat.prompts import EMPTY_ANSWER, SYSTEM_PROMPT
from docchat_server.core.errors import ModelCallError
from docchat_server.rag.retrieval import RetrievalService
from docchat_server.tools.definitions import TOOL_DEFINITIONS


@pytest.fixture
def retrieval(embedder, store):
    return RetrievalService(embedder, store)


def _loop(llm, retrieval, **kwargs):
    return ConversationLoop(llm, retrieval, **kwargs)


def _roles(request):
    return [m["role"] for m in request["messages"]]


@pytest.mark.asyncio
async def test_plain_answer_uses_one_model_call(retrieval):
    llm = ScriptedLLM([text_reply("  Hi there!  ")])

    result = await _loop(llm, retrieval).run("hello", "docs")

    assert result.answer == "Hi there!"
    assert result.model_calls == 1
    assert len(llm.requests) == 1
    [request] = llm.requests
    assert request["tools"] == TOOL_DEFINITIONS
    assert request["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert request["messages"][-1] == {"role": "user", "content": "hello"}
    assert result.transcript[-1].role == "assistant"


@pytest.mark.asyncio
async def test_context_message_lists_matches(retrieval, store):
    store.add_file("docs", "handbook.md", "vacation policy details")
    llm = ScriptedLLM([text_reply("Answer")])

    result = await _loop(llm, retrieval).run("vacation policy details", "docs")

    assert [m.file.file_name for m in result.context] == ["handbook.md"]
    context = llm.requests[0]["messages"][1]
    assert context["role"] == "system"
    assert context["content"].startswith("Context retrieved from knowledge base:")
    assert "File: handbook.md [namespace: docs] (similarity 1.000)" in context["content"]
    assert "vacation policy details" in context["content"]


@pytest.mark.asyncio
async def test_no_context_message_without_matches(retrieval):
    llm = ScriptedLLM([text_reply("Answer")])

    await _loop(llm, retrieval).run("anything", "docs")

    assert _roles(llm.requests[0]) == ["system", "user"]


@pytest.mark.asyncio
async def test_history_is_sanitized_and_ordered(retrieval):
    llm = ScriptedLLM([text_reply("Answer")])
    history = [
        {"role": "user", "content": " first "},
        {"role": "assistant", "content": "second"},
        {"role": "system", "content": "coerced"},
        {"role": "assistant", "content": "   "},
        {"content": "no role"},
    ]

    await _loop(llm, retrieval).run("third", "docs", history)

    messages = llm.requests[0]["messages"]
    assert messages[1:] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "second"},
        {"role": "user", "content": "coerced"},
        {"role": "user", "content": "third"},
    ]


@pytest.mark.asyncio
async def test_tool_round_then_answer(retrieval, store):
    store.add_file("docs", "budget.txt")
    llm = ScriptedLLM(
        [
            tool_reply(("call_1", "find_files_by_name", '{"name": "budget"}')),
            text_reply("Found budget.txt"),
        ]
    )

    result = await _loop(llm, retrieval).run("where is the budget file?", "docs")

    assert result.answer == "Found budget.txt"
    assert result.model_calls == 2
    second = llm.requests[1]["messages"]
    tool_messages = [m for m in second if m["role"] == "tool"]
    assert len(tool_messages) == 1
    assert tool_messages[0]["tool_call_id"] == "call_1"
    payload = json.loads(tool_messages[0]["content"])
    assert [r["file_name"] for r in payload["results"]] == ["budget.txt"]
    assistant = second[-2]
    assert assistant["role"] == "assistant"
    assert assistant["tool_calls"][0]["id"] == "call_1"
    [invocation] = result.tool_results
    assert invocation.tool == "find_files_by_name"
    assert invocation.query == "budget"


@pytest.mark.asyncio
async def test_one_result_message_per_call_id(retrieval):
    llm = ScriptedLLM(
        [
            tool_reply(
                ("a", "find_files_by_name", '{"name": "x"}'),
                ("b", "find_files_by_name", '{"name": "y"}'),
            ),
            text_reply("done"),
        ]
    )

    await _loop(llm, retrieval).run("q", "docs")

    tool_ids = [m["tool_call_id"] for m in llm.requests[1]["messages"] if m["role"] == "tool"]
    assert tool_ids == ["a", "b"]


@pytest.mark.asyncio
async def test_unknown_tool_yields_error_result_without_mutation(retrieval, store):
    store.add_file("docs", "keep.txt")
    llm = ScriptedLLM(
        [tool_reply(("x1", "delete_everything", "{}")), text_reply("I can't do that.")]
    )

    result = await _loop(llm, retrieval).run("delete all files", "docs")

    [tool_message] = [m for m in llm.requests[1]["messages"] if m["role"] == "tool"]
    assert json.loads(tool_message["content"]) == {"error": "Unknown tool"}
    assert result.answer == "I can't do that."
    assert result.tool_results == []
    assert store.writes == 0
    assert [f.file_name for f in store.files] == ["keep.txt"]


@pytest.mark.asyncio
async def test_malformed_arguments_degrade_to_empty_lookup(retrieval, store):
    store.add_file("docs", "budget.txt")
    llm = ScriptedLLM(
        [tool_reply(("c", "find_files_by_name", "{oops")), text_reply("ok")]
    )

    result = await _loop(llm, retrieval).run("q", "docs")

    [tool_message] = [m for m in llm.requests[1]["messages"] if m["role"] == "tool"]
    assert json.loads(tool_message["content"]) == {"results": []}
    assert result.answer == "ok"


@pytest.mark.asyncio
async def test_tool_failure_is_reported_to_model(retrieval, store):
    llm = ScriptedLLM(
        [tool_reply(("c", "find_files_by_name", '{"name": "a"}')), text_reply("ok")]
    )

    async def broken(*args, **kwargs):
        raise KeyError("boom")

    retrieval.find_by_name = broken

    await _loop(llm, retrieval).run("q", "docs")

    [tool_message] = [m for m in llm.requests[1]["messages"] if m["role"] == "tool"]
    assert json.loads(tool_message["content"]) == {"error": "Tool execution failed: KeyError"}


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", [None, text_reply(None), text_reply("   ")])
async def test_degenerate_reply_gives_placeholder(retrieval, reply):
    llm = ScriptedLLM([reply])

    result = await _loop(llm, retrieval).run("q", "docs")

    assert result.answer == EMPTY_ANSWER
    assert result.model_calls == 1


@pytest.mark.asyncio
async def test_iteration_cap_forces_final_answer(retrieval):
    looping = tool_reply(("c", "find_files_by_name", '{"name": "a"}'))
    llm = ScriptedLLM([looping, looping, looping, text_reply("final")])

    result = await _loop(llm, retrieval, max_tool_iterations=2).run("q", "docs")

    assert result.answer == "final"
    assert result.model_calls == 4
    assert [r["tools"] for r in llm.requests] == [TOOL_DEFINITIONS] * 3 + [None]


@pytest.mark.asyncio
async def test_model_call_error_propagates(retrieval):
    llm = ScriptedLLM([ModelCallError("Chat completion failed: ConnectError")])

    with pytest.raises(ModelCallError):
        await _loop(llm, retrieval).run("q", "docs")
