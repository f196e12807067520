"""
Unit tests for the turn orchestrator.

The reasoning model is scripted step by step; tools run against mocked
database sessions.
"""

import uuid
from unittest.mock import AsyncMock, patch

import pytest

from pgchat.config import AgentSettings, Settings
from pgchat.llm.models import LLMResponse, LLMStreamChunk, LLMToolCall, LLMUsage
from pgchat.models.context import ConnectionContext
from pgchat.models.transcript import Message, TextPart, ToolInvocationPart
from pgchat.pipeline import (
    BUDGET_EXHAUSTED_MESSAGE,
    ChatOrchestrator,
    TurnError,
    TurnRequest,
    TurnState,
)
from pgchat.pipeline.orchestrator import FAILED_TURN_MESSAGE, FORCE_ANSWER_INSTRUCTION
from pgchat.tools import ToolName, ToolRegistry
from pgchat.tools.builtin import query as query_tools

CHAT_ID = str(uuid.uuid4())
SQL_ANSWER = "Here is the query:\n```sql\nSELECT COUNT(*) AS total_users\nFROM users;\n```"
USERS_TABLE = [
    {
        "table_name": "users",
        "schema_name": "public",
        "table_type": "BASE TABLE",
        "columns": [{"name": "id", "type": "integer", "is_nullable": False}],
    }
]


def _step(content: str = "", calls: list[LLMToolCall] | None = None) -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=calls or [],
        model="mock-model",
        usage=LLMUsage(prompt_tokens=1, completion_tokens=1, total_tokens=2),
        finish_reason="tool_calls" if calls else "stop",
        provider="mock",
    )


def _call(call_id: str, name: str, arguments: str = "{}") -> LLMToolCall:
    return LLMToolCall(id=call_id, name=name, arguments=arguments)


def _settings(**agent_overrides) -> Settings:
    return Settings(agent=AgentSettings(**agent_overrides))


def _turn(messages=None, chat_id=CHAT_ID, connection_string="postgresql://db/shop"):
    return TurnRequest(
        chat_id=chat_id,
        owner_id="user-1",
        messages=messages or [Message(role="user", content="How many users do I have?")],
        connection=ConnectionContext(connection_string=connection_string),
    )


async def _consume(orchestrator, turn):
    result = await orchestrator.prepare(turn)
    chunks = [chunk async for chunk in orchestrator.stream_turn(turn, result)]
    return "".join(chunks), result


@pytest.fixture
def list_tables_handler(registered_tools, monkeypatch):
    handler = AsyncMock(return_value=USERS_TABLE)

    async def _list_tables(ctx):
        return await handler(ctx)

    monkeypatch.setitem(ToolRegistry._handlers, ToolName.LIST_TABLES, _list_tables)
    return handler


class TestSchemaQuestion:
    @pytest.mark.asyncio
    async def test_tables_are_listed_before_the_sql_answer(
        self, scripted_provider, list_tables_handler, mock_chat_store
    ):
        provider = scripted_provider(
            [_step(calls=[_call("call_1", "getPublicTablesWithColumns")]), _step(SQL_ANSWER)]
        )
        orchestrator = ChatOrchestrator(provider, store=mock_chat_store, settings=_settings())

        answer, result = await _consume(orchestrator, _turn())

        assert answer == SQL_ANSWER
        assert result.state == TurnState.DONE
        assert result.steps == 2
        assert result.tool_calls == 1
        list_tables_handler.assert_awaited_once()

        first_request = provider.requests[0]
        assert first_request.messages[0].role == "system"
        offered = [spec.name for spec in first_request.tools]
        assert "getPublicTablesWithColumns" in offered
        assert "runSql" not in offered
        assert len(offered) == 7

        second_request = provider.requests[1]
        assert second_request.messages[-2].tool_calls[0].name == "getPublicTablesWithColumns"
        assert second_request.messages[-1].role == "tool"
        assert '"users"' in second_request.messages[-1].content

    @pytest.mark.asyncio
    async def test_transcript_is_persisted_in_emission_order(
        self, scripted_provider, list_tables_handler, mock_chat_store
    ):
        prior = [
            Message(role="user", content="hi"),
            Message(role="assistant", content="Hello! Ask me about your database."),
        ]
        new_message = Message(role="user", content="How many users do I have?")
        provider = scripted_provider(
            [
                _step(
                    "Let me look at the schema.",
                    [_call("call_1", "getPublicTablesWithColumns")],
                ),
                _step(SQL_ANSWER),
            ]
        )
        orchestrator = ChatOrchestrator(provider, store=mock_chat_store, settings=_settings())

        _, result = await _consume(orchestrator, _turn([*prior, new_message]))

        mock_chat_store.save_turn.assert_awaited_once()
        owner_id, chat_id, saved = mock_chat_store.save_turn.await_args.args
        assert (owner_id, chat_id) == ("user-1", CHAT_ID)
        assert saved[:3] == [*prior, new_message]
        assert len(saved) == 4

        assistant = saved[3]
        assert assistant.role == "assistant"
        assert assistant.content == SQL_ANSWER
        assert [type(part) for part in assistant.parts] == [
            TextPart,
            ToolInvocationPart,
            TextPart,
        ]
        invocation = assistant.parts[1].tool_invocation
        assert invocation.state == "result"
        assert invocation.tool_call_id == "call_1"
        assert invocation.result == USERS_TABLE
        assert result.persisted is True

    @pytest.mark.asyncio
    async def test_same_step_calls_fold_back_in_emission_order(
        self, scripted_provider, registered_tools, monkeypatch
    ):
        async def _indexes(ctx):
            return "indexes"

        async def _stats(ctx):
            return "stats"

        monkeypatch.setitem(ToolRegistry._handlers, ToolName.LIST_INDEXES, _indexes)
        monkeypatch.setitem(ToolRegistry._handlers, ToolName.TABLE_STATS, _stats)
        provider = scripted_provider(
            [
                _step(calls=[_call("b", "getTableStats"), _call("a", "getIndexes")]),
                _step("Add an index."),
            ]
        )
        orchestrator = ChatOrchestrator(provider, settings=_settings())

        _, result = await _consume(orchestrator, _turn())

        invocations = result.messages[-1].tool_invocations
        assert [invocation.tool_call_id for invocation in invocations] == ["b", "a"]
        assert [invocation.result for invocation in invocations] == ["stats", "indexes"]
        tool_messages = provider.requests[1].messages[-2:]
        assert [message.tool_call_id for message in tool_messages] == ["b", "a"]


class TestBlockedMutation:
    @pytest.mark.asyncio
    async def test_delete_is_refused_without_touching_the_database(
        self, scripted_provider, registered_tools, session_factory, mock_chat_store
    ):
        provider = scripted_provider(
            [
                _step(calls=[_call("call_1", "runSql", '{"query": "DELETE FROM users"}')]),
                _step("I can't run DELETE statements against your database."),
            ]
        )
        orchestrator = ChatOrchestrator(
            provider, store=mock_chat_store, settings=_settings(expose_run_sql=True)
        )

        with patch.object(query_tools, "open_session", session_factory):
            answer, result = await _consume(
                orchestrator, _turn([Message(role="user", content="Delete all users")])
            )

        assert "runSql" in [spec.name for spec in provider.requests[0].tools]
        invocation = result.messages[-1].tool_invocations[0]
        assert invocation.result == "This action is not allowed DELETE"
        assert provider.requests[1].messages[-1].content == "This action is not allowed DELETE"
        assert session_factory.calls == []
        assert answer.startswith("I can't run DELETE")

    @pytest.mark.asyncio
    async def test_unknown_tool_is_fed_back_as_text(self, scripted_provider, registered_tools):
        provider = scripted_provider(
            [_step(calls=[_call("call_1", "dropDatabase")]), _step("Sorry about that.")]
        )
        orchestrator = ChatOrchestrator(provider, settings=_settings())

        _, result = await _consume(orchestrator, _turn())

        assert result.messages[-1].tool_invocations[0].result == "Unknown tool: dropDatabase"
        assert result.state == TurnState.DONE

    @pytest.mark.asyncio
    async def test_hidden_run_sql_is_not_dispatched(
        self, scripted_provider, registered_tools, session_factory
    ):
        provider = scripted_provider(
            [
                _step(
                    calls=[
                        _call("call_1", "runSql", '{"query": "UPDATE users SET email = NULL"}')
                    ]
                ),
                _step("I can only inspect your database."),
            ]
        )
        orchestrator = ChatOrchestrator(provider, settings=_settings())

        with patch.object(query_tools, "open_session", session_factory):
            _, result = await _consume(orchestrator, _turn())

        assert "runSql" not in [spec.name for spec in provider.requests[0].tools]
        assert result.messages[-1].tool_invocations[0].result == "Unknown tool: runSql"
        assert session_factory.calls == []


class TestStepBudget:
    @pytest.mark.asyncio
    async def test_exhausted_budget_forces_an_answer(
        self, scripted_provider, list_tables_handler, mock_chat_store
    ):
        provider = scripted_provider(
            repeat=_step(calls=[_call("call_n", "getPublicTablesWithColumns")])
        )
        provider.stream_text = "Based on what I found, try:\nSELECT COUNT(*) FROM users;"
        orchestrator = ChatOrchestrator(
            provider, store=mock_chat_store, settings=_settings(max_steps=3)
        )

        answer, result = await _consume(orchestrator, _turn())

        assert answer == provider.stream_text
        assert result.steps == 3
        assert result.budget_exhausted is True
        assert provider.generate.await_count == 3
        assert len(provider.stream_requests) == 1
        forced = provider.stream_requests[0]
        assert forced.tools == []
        assert forced.messages[-1].content == FORCE_ANSWER_INSTRUCTION
        assert result.persisted is True

    @pytest.mark.asyncio
    async def test_empty_forced_answer_uses_fallback(
        self, scripted_provider, list_tables_handler
    ):
        provider = scripted_provider(
            repeat=_step(calls=[_call("call_n", "getPublicTablesWithColumns")])
        )
        orchestrator = ChatOrchestrator(provider, settings=_settings(max_steps=2))

        answer, result = await _consume(orchestrator, _turn())

        assert answer == BUDGET_EXHAUSTED_MESSAGE
        assert result.messages[-1].content == BUDGET_EXHAUSTED_MESSAGE

    @pytest.mark.asyncio
    async def test_empty_step_forces_an_answer(self, scripted_provider, registered_tools):
        provider = scripted_provider([_step("")])
        provider.stream_text = "SELECT 1;"
        orchestrator = ChatOrchestrator(provider, settings=_settings())

        answer, result = await _consume(orchestrator, _turn())

        assert answer == "SELECT 1;"
        assert result.budget_exhausted is False

    @pytest.mark.asyncio
    async def test_forced_answer_is_relayed_as_it_streams(
        self, scripted_provider, registered_tools, mock_chat_store
    ):
        provider = scripted_provider([_step("")])
        pieces = ["SEL", "ECT ", "", "1;"]

        async def _stream(request):
            provider.stream_requests.append(request)
            for piece in pieces:
                yield LLMStreamChunk(content=piece)

        provider.stream = _stream
        orchestrator = ChatOrchestrator(
            provider, store=mock_chat_store, settings=_settings()
        )
        turn = _turn()
        result = await orchestrator.prepare(turn)

        chunks = [chunk async for chunk in orchestrator.stream_turn(turn, result)]

        assert chunks == ["SEL", "ECT ", "1;"]
        assert result.answer == "SELECT 1;"
        saved = mock_chat_store.save_turn.await_args.args[2]
        assert saved[-1].content == "SELECT 1;"

    @pytest.mark.asyncio
    async def test_forced_answer_failure_ends_turn(
        self, scripted_provider, registered_tools, mock_chat_store
    ):
        provider = scripted_provider([_step("")])

        async def _stream(request):
            yield LLMStreamChunk(content="Partial")
            raise RuntimeError("stream dropped")

        provider.stream = _stream
        orchestrator = ChatOrchestrator(
            provider, store=mock_chat_store, settings=_settings()
        )

        answer, result = await _consume(orchestrator, _turn())

        assert answer == "Partial" + FAILED_TURN_MESSAGE
        assert result.state == TurnState.FAILED
        mock_chat_store.save_turn.assert_not_awaited()


class TestBoundaryChecks:
    @pytest.mark.asyncio
    async def test_chat_id_is_required_without_storage(self, scripted_provider):
        provider = scripted_provider([])
        orchestrator = ChatOrchestrator(provider, settings=_settings())

        with pytest.raises(TurnError) as exc_info:
            await orchestrator.prepare(_turn(chat_id=None))

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "No id provided"
        provider.generate.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("chat_id", "message"),
        [(None, "No id provided"), ("not-a-uuid", "Invalid id")],
    )
    async def test_chat_id_is_validated(
        self, scripted_provider, mock_chat_store, chat_id, message
    ):
        provider = scripted_provider([])
        orchestrator = ChatOrchestrator(provider, store=mock_chat_store, settings=_settings())

        with pytest.raises(TurnError) as exc_info:
            await orchestrator.prepare(_turn(chat_id=chat_id))

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == message
        provider.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_foreign_chat_is_unauthorized(self, scripted_provider, mock_chat_store):
        mock_chat_store.find_chat.return_value = {"id": CHAT_ID, "owner_id": "someone-else"}
        provider = scripted_provider([])
        orchestrator = ChatOrchestrator(provider, store=mock_chat_store, settings=_settings())

        with pytest.raises(TurnError) as exc_info:
            async for _ in orchestrator.run_turn(_turn()):
                pass

        assert exc_info.value.status_code == 401
        provider.generate.assert_not_awaited()
        mock_chat_store.save_turn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lookup_failure_is_500(self, scripted_provider, mock_chat_store):
        mock_chat_store.find_chat.side_effect = OSError("connection reset")
        orchestrator = ChatOrchestrator(
            scripted_provider([]), store=mock_chat_store, settings=_settings()
        )

        with pytest.raises(TurnError) as exc_info:
            await orchestrator.prepare(_turn())

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Error fetching chat"

    @pytest.mark.asyncio
    async def test_missing_connection_string(self, scripted_provider, mock_chat_store):
        orchestrator = ChatOrchestrator(
            scripted_provider([]), store=mock_chat_store, settings=_settings()
        )

        with pytest.raises(TurnError) as exc_info:
            await orchestrator.prepare(_turn(connection_string=""))

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "No connection string provided"

    @pytest.mark.asyncio
    async def test_turn_must_end_with_user_message(self, scripted_provider):
        orchestrator = ChatOrchestrator(scripted_provider([]), settings=_settings())

        with pytest.raises(TurnError) as exc_info:
            await orchestrator.prepare(
                _turn([Message(role="assistant", content="hello")])
            )

        assert exc_info.value.status_code == 400


class TestFailuresAndCancellation:
    @pytest.mark.asyncio
    async def test_model_failure_ends_turn_without_persisting(
        self, scripted_provider, registered_tools, mock_chat_store
    ):
        provider = scripted_provider([])
        provider.generate.side_effect = RuntimeError("upstream unavailable")
        orchestrator = ChatOrchestrator(provider, store=mock_chat_store, settings=_settings())

        answer, result = await _consume(orchestrator, _turn())

        assert answer == FAILED_TURN_MESSAGE
        assert result.state == TurnState.FAILED
        mock_chat_store.save_turn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_the_answer(
        self, scripted_provider, registered_tools, mock_chat_store
    ):
        mock_chat_store.save_turn.side_effect = RuntimeError("disk full")
        orchestrator = ChatOrchestrator(
            scripted_provider([_step(SQL_ANSWER)]), store=mock_chat_store, settings=_settings()
        )

        answer, result = await _consume(orchestrator, _turn())

        assert answer == SQL_ANSWER
        assert result.persisted is False
        assert result.state == TurnState.DONE

    @pytest.mark.asyncio
    async def test_abandoned_stream_never_persists(
        self, scripted_provider, registered_tools, mock_chat_store
    ):
        orchestrator = ChatOrchestrator(
            scripted_provider([_step(SQL_ANSWER)]), store=mock_chat_store, settings=_settings()
        )
        turn = _turn()
        result = await orchestrator.prepare(turn)
        stream = orchestrator.stream_turn(turn, result)

        first = await stream.__anext__()
        await stream.aclose()

        assert first == "Here is the query:\n"
        mock_chat_store.save_turn.assert_not_awaited()
        assert result.persisted is False
