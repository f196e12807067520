"""
Turn Orchestrator

Runs one chat turn as a bounded loop of reasoning steps against the model:

    IDLE -> AWAITING_MODEL_STEP -> TOOL_DISPATCH* -> FINALIZING -> DONE

Each step either answers in natural language or emits tool calls. Tool
calls are dispatched concurrently, their results are fed back, and the loop
asks the model again. When the step budget runs out a final call with tools
disabled forces an answer, relayed as the model streams it. A text answer
from a regular step is split into chunks. The resolved transcript is
persisted once the stream has been fully consumed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from enum import StrEnum

from pydantic import BaseModel, Field

from pgchat.config import Settings, get_settings
from pgchat.conversations import ChatStore
from pgchat.llm.base import BaseLLMProvider
from pgchat.llm.models import LLMMessage, LLMRequest, LLMToolSpec
from pgchat.models.context import ConnectionContext
from pgchat.models.transcript import (
    Message,
    MessagePart,
    TextPart,
    ToolInvocation,
    ToolInvocationPart,
    encode_tool_result,
    to_llm_messages,
)
from pgchat.pipeline.streaming import smooth_chunks
from pgchat.prompts import PromptLoader, render_system_prompt
from pgchat.tools import ToolContext, ToolExecutor, ToolName, ToolRegistry, agent_tool_names

logger = logging.getLogger(__name__)

BUDGET_EXHAUSTED_MESSAGE = (
    "I'm sorry, I couldn't finish analysing your database within the allowed "
    "number of steps. Please try a more specific question."
)
FORCE_ANSWER_INSTRUCTION = (
    "You have used every available tool step. Do not request more tools. "
    "Answer the user now using only the information gathered so far."
)
FAILED_TURN_MESSAGE = "An error occurred while generating the response."


class TurnState(StrEnum):
    IDLE = "idle"
    AWAITING_MODEL_STEP = "awaiting_model_step"
    TOOL_DISPATCH = "tool_dispatch"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class TurnError(Exception):
    """Boundary failure that aborts a turn before any model call."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class TurnRequest(BaseModel):
    chat_id: str | None = None
    owner_id: str
    messages: list[Message] = Field(default_factory=list)
    connection: ConnectionContext


class TurnResult(BaseModel):
    """Outcome of a turn, filled in while the stream is consumed."""

    chat_id: str | None = None
    state: TurnState = TurnState.IDLE
    answer: str = ""
    steps: int = 0
    tool_calls: int = 0
    budget_exhausted: bool = False
    persisted: bool = False
    messages: list[Message] = Field(default_factory=list)


def parse_chat_id(raw: str | None) -> str:
    """
    Validate a client-chosen chat id.

    Raises:
        TurnError: 400 when missing or not a UUID
    """
    if not raw:
        raise TurnError(400, "No id provided")
    try:
        return str(uuid.UUID(str(raw)))
    except ValueError as exc:
        raise TurnError(400, "Invalid id") from exc


class ChatOrchestrator:
    """
    Drives one reasoning/tool loop per turn.

    ``provider`` may be attached after ``prepare()``, so boundary failures
    are reported before any model credentials are resolved.
    """

    def __init__(
        self,
        provider: BaseLLMProvider | None = None,
        executor: ToolExecutor | None = None,
        store: ChatStore | None = None,
        settings: Settings | None = None,
        prompt_loader: PromptLoader | None = None,
    ) -> None:
        self.provider = provider
        self.executor = executor or ToolExecutor()
        self.store = store
        self.settings = settings or get_settings()
        self.prompt_loader = prompt_loader or PromptLoader()

    def tool_specs(self) -> list[LLMToolSpec]:
        names = agent_tool_names(self.settings.agent.expose_run_sql)
        return [
            LLMToolSpec(
                name=definition.name.value,
                description=definition.description,
                parameters=definition.parameters_schema,
            )
            for definition in ToolRegistry.list_definitions(names)
        ]

    async def validate(self, request: TurnRequest) -> str:
        """
        Boundary checks run before the model is called.

        Returns the normalised chat id.

        Raises:
            TurnError: 400 / 401 / 500 with no transcript mutation
        """
        chat_id = parse_chat_id(request.chat_id)

        if self.store is not None:
            try:
                chat = await self.store.find_chat(chat_id)
            except Exception as e:
                logger.error(f"Error fetching chat {chat_id}: {e}")
                raise TurnError(500, "Error fetching chat") from e
            if chat is not None and chat["owner_id"] != request.owner_id:
                logger.warning(
                    "Chat belongs to a different user",
                    extra={"chat_id": chat_id, "owner_id": request.owner_id},
                )
                raise TurnError(401, "Unauthorized")

        if not request.connection.dsn:
            raise TurnError(400, "No connection string provided")
        if not request.messages or request.messages[-1].role != "user":
            raise TurnError(400, "No user message provided")
        return chat_id

    async def prepare(self, request: TurnRequest) -> TurnResult:
        """Validate the turn and return the result it will fill in."""
        return TurnResult(chat_id=await self.validate(request))

    async def run_turn(self, request: TurnRequest) -> AsyncIterator[str]:
        """Validate, then stream the turn. Boundary failures raise TurnError."""
        result = await self.prepare(request)
        async for chunk in self.stream_turn(request, result):
            yield chunk

    async def stream_turn(
        self, request: TurnRequest, result: TurnResult
    ) -> AsyncIterator[str]:
        """
        Run a prepared turn and yield answer chunks.

        ``result`` is updated as the turn progresses. The transcript is
        persisted only after the last chunk has been consumed, so an
        abandoned stream never writes.
        """
        if self.provider is None:
            raise RuntimeError("No model provider attached to the orchestrator")

        ctx = ToolContext(
            user_id=request.owner_id,
            correlation_id=uuid.uuid4().hex,
            connection=request.connection,
            row_limit=self.settings.agent.row_limit,
            query_timeout=self.settings.agent.query_timeout_seconds,
            default_timeout=self.settings.agent.tool_timeout_seconds,
        )
        tool_specs = self.tool_specs()
        system_prompt = render_system_prompt(
            [spec.name for spec in tool_specs], loader=self.prompt_loader
        )
        llm_messages = [LLMMessage(role="system", content=system_prompt)]
        llm_messages.extend(to_llm_messages(request.messages))
        parts: list[MessagePart] = []

        try:
            answer = await self._reason(llm_messages, tool_specs, parts, ctx, result)
        except Exception as e:
            self._fail(result, e, ctx)
            yield FAILED_TURN_MESSAGE
            return

        self._transition(result, TurnState.FINALIZING)
        if answer is not None:
            for chunk in smooth_chunks(answer, self.settings.agent.stream_chunking):
                yield chunk
        else:
            streamed: list[str] = []
            try:
                async for chunk in self._stream_forced_answer(llm_messages):
                    streamed.append(chunk)
                    yield chunk
            except Exception as e:
                self._fail(result, e, ctx)
                yield FAILED_TURN_MESSAGE
                return
            answer = "".join(streamed).strip()
            if not answer:
                answer = BUDGET_EXHAUSTED_MESSAGE
                yield answer

        result.answer = answer
        parts.append(TextPart(text=answer))
        result.messages = [
            *request.messages,
            Message(role="assistant", content=answer, parts=parts),
        ]
        await self._persist(request.owner_id, result)
        self._transition(result, TurnState.DONE)

    async def _reason(
        self,
        llm_messages: list[LLMMessage],
        tool_specs: list[LLMToolSpec],
        parts: list[MessagePart],
        ctx: ToolContext,
        result: TurnResult,
    ) -> str | None:
        """
        Run model steps until one answers in text.

        Returns the answer, or None when a forced answer is needed because
        the budget ran out or a step came back empty.
        """
        max_steps = self.settings.agent.max_steps
        offered = {ToolName(spec.name) for spec in tool_specs}

        for step in range(1, max_steps + 1):
            self._transition(result, TurnState.AWAITING_MODEL_STEP)
            result.steps = step
            response = await self.provider.generate(
                LLMRequest(messages=llm_messages, tools=tool_specs)
            )

            if not response.has_tool_calls:
                if response.content:
                    return response.content
                logger.warning("Model step returned neither text nor tool calls")
                return None

            self._transition(result, TurnState.TOOL_DISPATCH)
            llm_messages.append(
                LLMMessage(
                    role="assistant",
                    content=response.content or None,
                    tool_calls=response.tool_calls,
                )
            )
            if response.content:
                parts.append(TextPart(text=response.content))

            outcomes = await self.executor.execute_calls(
                response.tool_calls, ctx, allowed=offered
            )
            result.tool_calls += len(outcomes)
            for outcome in outcomes:
                parts.append(
                    ToolInvocationPart(
                        tool_invocation=ToolInvocation(
                            state="result",
                            tool_call_id=outcome.tool_call_id,
                            tool_name=outcome.tool_name,
                            args=outcome.args,
                            result=outcome.result,
                        )
                    )
                )
                llm_messages.append(
                    LLMMessage(
                        role="tool",
                        tool_call_id=outcome.tool_call_id,
                        content=encode_tool_result(outcome.result),
                    )
                )

        result.budget_exhausted = True
        logger.info(
            f"Step budget of {max_steps} exhausted, forcing a final answer",
            extra={"correlation_id": ctx.correlation_id},
        )
        return None

    async def _stream_forced_answer(self, llm_messages: list[LLMMessage]) -> AsyncIterator[str]:
        """Relay a tool-less final answer as the model streams it."""
        request = LLMRequest(
            messages=[
                *llm_messages,
                LLMMessage(role="system", content=FORCE_ANSWER_INSTRUCTION),
            ]
        )
        async for chunk in self.provider.stream(request):
            if chunk.content:
                yield chunk.content

    async def _persist(self, owner_id: str, result: TurnResult) -> None:
        if self.store is None:
            return
        try:
            await self.store.save_turn(owner_id, result.chat_id, result.messages)
        except Exception as e:
            logger.error(f"Error saving chat {result.chat_id}: {e}")
            return
        result.persisted = True

    def _fail(self, result: TurnResult, error: Exception, ctx: ToolContext) -> None:
        self._transition(result, TurnState.FAILED)
        logger.error(f"Turn failed: {error}", extra={"correlation_id": ctx.correlation_id})

    @staticmethod
    def _transition(result: TurnResult, state: TurnState) -> None:
        logger.debug(f"Turn state {result.state} -> {state}")
        result.state = state
