"""
Tool-Calling Conversation Loop

Drives one user turn against the chat model:

1. Retrieve initial context for the raw prompt (an empty context is valid).
2. Assemble the transcript: system prompt, optional context summary,
   sanitized history, new user prompt.
3. Call the model with the `find_files_by_name` tool declared.
4. While the model requests tools, execute them scoped to the active
   namespace, append one tool-result message per call id and call again.
5. The first plain-text reply is the answer.

Degenerate model output never raises: a missing message or empty content
yields the placeholder answer. Tool rounds are capped at
`max_tool_iterations`; past the cap the model gets one last call without
tools and whatever it says (or the placeholder) is the answer.

Only a failed model request (`ModelCallError`) escapes; the caller turns it
into an apology. Persisting history is also the caller's job.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from .messages import (
    AssistantMessage,
    SystemMessage,
    ToolCall,
    ToolResultMessage,
    TranscriptMessage,
    UserMessage,
    sanitize_history,
    transcript_to_llm,
)
from .prompts import EMPTY_ANSWER, SYSTEM_PROMPT, build_context_message
from ..config import settings
from ..core.errors import ModelResponseEmpty, UnknownTool
from ..llm.client import LLMClient
from ..rag.models import RetrievalMatch
from ..rag.retrieval import RetrievalService
from ..tools.base import dispatch_tool_call, parse_tool_arguments
from ..tools.definitions import TOOL_DEFINITIONS

logger = logging.getLogger("docchat.conversation")


# ---------------------------------------------------------------------
# Turn Output
# ---------------------------------------------------------------------

class ToolInvocation(BaseModel):
    """One executed lookup: what was asked and what came back."""
    tool: str
    query: str
    results: List[Dict[str, Any]] = Field(default_factory=list)


class TurnResult(BaseModel):
    answer: str
    context: List[RetrievalMatch] = Field(default_factory=list)
    tool_results: List[ToolInvocation] = Field(default_factory=list)
    transcript: List[TranscriptMessage] = Field(default_factory=list)
    model_calls: int = 0


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _final_answer(content: Optional[str]) -> str:
    text = content.strip() if isinstance(content, str) else ""
    if not text:
        logger.warning("%s", ModelResponseEmpty("Model returned empty content"))
        return EMPTY_ANSWER
    return text


def _tool_result(call_id: str, payload: Dict[str, Any]) -> ToolResultMessage:
    return ToolResultMessage(
        tool_call_id=call_id,
        content=json.dumps(payload, default=str),
    )


# ---------------------------------------------------------------------
# Conversation Loop
# ---------------------------------------------------------------------

class ConversationLoop:
    """
    Runs the retrieval + model + tool iteration for a single turn.
    """

    def __init__(
        self,
        llm: LLMClient,
        retrieval: RetrievalService,
        max_tool_iterations: Optional[int] = None,
    ) -> None:
        self._llm = llm
        self._retrieval = retrieval
        self._max_tool_iterations = (
            settings.max_tool_iterations
            if max_tool_iterations is None
            else max_tool_iterations
        )

    async def run(
        self,
        prompt: str,
        namespace: str,
        history: Sequence[Any] = (),
    ) -> TurnResult:
        """
        Answer `prompt` within `namespace`.

        Parameters
        ----------
        prompt : str
            The new user message.

        namespace : str
            Active namespace, already resolved by the caller.

        history : Sequence[Any]
            Prior turns, oldest first. Sanitized here.

        Returns
        -------
        TurnResult
            Final answer, the context matches used, the tool invocation log,
            the full transcript and the number of model calls made.

        Raises
        ------
        ModelCallError
            If a model request fails outright.
        """
        matches = await self._retrieval.retrieve(namespace, prompt)

        initial: List[TranscriptMessage] = [SystemMessage(content=SYSTEM_PROMPT)]
        context_message = build_context_message(matches)
        if context_message is not None:
            initial.append(context_message)
        initial.extend(entry.to_message() for entry in sanitize_history(list(history)))
        initial.append(UserMessage(content=prompt))

        result = TurnResult(answer=EMPTY_ANSWER, context=matches, transcript=initial)
        # Validation copies the list; extend the copy the result owns.
        transcript = result.transcript
        iterations = 0

        while True:
            raw = await self._llm.complete(transcript_to_llm(transcript), TOOL_DEFINITIONS)
            result.model_calls += 1

            if raw is None:
                logger.warning("%s", ModelResponseEmpty("Model returned no message"))
                return result

            message = AssistantMessage.from_llm(raw)

            if not message.tool_calls:
                result.answer = _final_answer(message.content)
                transcript.append(AssistantMessage(content=result.answer))
                return result

            if iterations >= self._max_tool_iterations:
                logger.warning(
                    "Tool iteration cap (%d) reached in namespace %r; forcing final answer",
                    self._max_tool_iterations,
                    namespace,
                )
                return await self._conclude_without_tools(result)

            transcript.append(message)
            for tool_call in message.tool_calls:
                transcript.append(await self._execute(tool_call, namespace, result))
            iterations += 1

    async def _execute(
        self,
        tool_call: ToolCall,
        namespace: str,
        result: TurnResult,
    ) -> ToolResultMessage:
        """Run one requested call and build its tool-result message."""
        name = tool_call.function.name
        if tool_call.type != "function":
            logger.warning("Ignoring non-function tool call %s", tool_call.id)
            return _tool_result(tool_call.id, {"error": "Unknown tool"})

        args = parse_tool_arguments(tool_call.function.arguments)

        try:
            output = await dispatch_tool_call(name, args, namespace, self._retrieval)
        except UnknownTool as exc:
            logger.warning("%s", exc)
            return _tool_result(tool_call.id, {"error": "Unknown tool"})
        except Exception as exc:
            logger.exception("Tool %s failed", name)
            return _tool_result(
                tool_call.id, {"error": f"Tool execution failed: {type(exc).__name__}"}
            )

        result.tool_results.append(
            ToolInvocation(
                tool=name,
                query=output.get("query", ""),
                results=output.get("results", []),
            )
        )
        return _tool_result(tool_call.id, {"results": output.get("results", [])})

    async def _conclude_without_tools(self, result: TurnResult) -> TurnResult:
        raw = await self._llm.complete(transcript_to_llm(result.transcript), None)
        result.model_calls += 1
        if raw is None:
            logger.warning("%s", ModelResponseEmpty("Model returned no message"))
            return result
        result.answer = _final_answer(raw.get("content"))
        result.transcript.append(AssistantMessage(content=result.answer))
        return result
