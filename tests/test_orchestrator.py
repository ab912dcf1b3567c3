"""
Tests for the AI orchestrator's tool-calling loop, driven by a scripted client.
"""

from datetime import date

import pytest

from app.libs.ai_orchestrator import AIOrchestrator, NOT_CONFIGURED_MESSAGE, REPEAT_STOPPED_MESSAGE
from app.libs.ai_system_prompt import get_system_prompt
from app.libs.config import DEEPSEEK_MODEL, Settings
from app.libs.models import AIMessage
from fakes import FakeCompletion, ScriptedClient, text_reply, tool_call_reply


def make(settings, gateway, *script):
    client = ScriptedClient(*script)
    return AIOrchestrator(settings, gateway, client=client), client


class TestExecute:
    @pytest.mark.asyncio
    async def test_plain_answer(self, settings, gateway, context):
        orchestrator, client = make(settings, gateway, text_reply("You have one task."))

        result = await orchestrator.execute("How many tasks?", context)

        assert result.success
        assert result.response == "You have one task."
        assert result.tool_calls_made == []
        assert result.undo_batches == []
        request = client.requests[0]
        assert request["tool_choice"] == "auto"
        assert request["temperature"] == 0.1
        assert request["max_tokens"] == 4096
        assert request["model"] == settings.openai_model
        assert [m["role"] for m in request["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_empty_text_uses_default_response(self, settings, gateway, context):
        orchestrator, _ = make(settings, gateway, text_reply(None))
        result = await orchestrator.execute("do it", context)
        assert result.response == "Command executed successfully."

    @pytest.mark.asyncio
    async def test_history_is_sent_between_system_and_command(self, settings, gateway, context):
        orchestrator, client = make(settings, gateway, text_reply("ok"))
        history = [AIMessage(role="user", content="hi"), AIMessage(role="assistant", content="hello")]

        await orchestrator.execute("next", context, history)

        messages = client.requests[0]["messages"]
        assert [m["content"] for m in messages[1:]] == ["hi", "hello", "next"]

    @pytest.mark.asyncio
    async def test_tool_calls_run_and_collect_undo_batches(self, settings, gateway, context):
        orchestrator, client = make(
            settings,
            gateway,
            tool_call_reply(("update_task_item", {"task_id": "task-1", "status": "done"})),
            tool_call_reply(("create_task_subtask", {"task_id": "task-1", "title": "Proofread"})),
            text_reply("Marked done and added a subtask."),
        )

        result = await orchestrator.execute("finish the copy task", context)

        assert result.success
        assert [c.tool for c in result.tool_calls_made] == ["update_task_item", "create_task_subtask"]
        assert len(result.undo_batches) == 2
        assert result.undo_batches[0][0]["action"] == "upsert"
        assert result.undo_batches[1][0]["table"] == "task_subtasks"
        tool_messages = [m for m in client.requests[1]["messages"] if m["role"] == "tool"]
        assert tool_messages[0]["tool_call_id"] == "call_0"
        assert '"success": true' in tool_messages[0]["content"]

    @pytest.mark.asyncio
    async def test_invalid_json_arguments_become_empty(self, settings, gateway, context):
        reply = tool_call_reply(("search_projects", {}))
        reply.choices[0].message.tool_calls[0].function.arguments = "{not json"
        orchestrator, _ = make(settings, gateway, reply, text_reply("done"))

        result = await orchestrator.execute("list projects", context)

        assert result.tool_calls_made[0].arguments == {}
        assert result.tool_calls_made[0].result.success

    @pytest.mark.asyncio
    async def test_repeated_write_call_stops_the_loop(self, settings, gateway, context):
        call = ("create_project", {"name": "Launch"})
        orchestrator, client = make(settings, gateway, tool_call_reply(call), tool_call_reply(call))

        result = await orchestrator.execute("create Launch", context)

        assert result.success
        assert result.response == REPEAT_STOPPED_MESSAGE
        assert len(client.requests) == 2
        assert len(result.undo_batches) == 2

    @pytest.mark.asyncio
    async def test_repeated_failing_write_reports_the_error(self, settings, gateway, context):
        call = ("delete_tab", {"tab_id": "tab-x"})
        orchestrator, _ = make(settings, gateway, tool_call_reply(call, call))

        result = await orchestrator.execute("delete it", context)

        assert not result.success
        assert result.error == "Tab not found: tab-x"

    @pytest.mark.asyncio
    async def test_repeated_searches_are_allowed(self, settings, gateway, context):
        call = ("search_tasks", {"query": "copy"})
        orchestrator, _ = make(settings, gateway, tool_call_reply(call), tool_call_reply(call), text_reply("Found it"))

        result = await orchestrator.execute("find copy", context)

        assert result.success
        assert result.response == "Found it"

    @pytest.mark.asyncio
    async def test_iteration_limit(self, gateway, context):
        settings = Settings(openai_api_key="k", max_tool_iterations=2)
        orchestrator, _ = make(
            settings,
            gateway,
            tool_call_reply(("search_tasks", {})),
            tool_call_reply(("search_projects", {})),
        )

        result = await orchestrator.execute("loop", context)

        assert not result.success
        assert result.error == "Max iterations reached"
        assert len(result.tool_calls_made) == 2

    @pytest.mark.asyncio
    async def test_empty_choices(self, settings, gateway, context):
        orchestrator, _ = make(settings, gateway, FakeCompletion(choices=[]))

        result = await orchestrator.execute("hello", context)

        assert not result.success
        assert result.response == "No response from AI service."

    @pytest.mark.asyncio
    async def test_provider_error_is_reported_generically(self, settings, gateway, context, caplog):
        orchestrator, _ = make(settings, gateway, RuntimeError("upstream 502"))

        result = await orchestrator.execute("hello", context)

        assert not result.success
        assert result.response == "An error occurred while processing your command."
        assert result.error == "upstream 502"
        assert "AI provider call failed" in caplog.text

    @pytest.mark.asyncio
    async def test_undo_batches_survive_a_later_provider_error(self, settings, gateway, context):
        orchestrator, _ = make(
            settings,
            gateway,
            tool_call_reply(("create_project", {"name": "Alpha"})),
            RuntimeError("timeout"),
        )

        result = await orchestrator.execute("make alpha", context)

        assert not result.success
        assert len(result.undo_batches) == 1

    @pytest.mark.asyncio
    async def test_not_configured(self, gateway, context):
        orchestrator = AIOrchestrator(Settings(), gateway)

        result = await orchestrator.execute("hello", context)

        assert not result.success
        assert result.response == NOT_CONFIGURED_MESSAGE
        assert result.error == "Missing API key"


class TestProviderSelection:
    def test_openai_preferred(self, gateway):
        orchestrator = AIOrchestrator(Settings(openai_api_key="a", deepseek_api_key="b"), gateway)
        assert orchestrator.provider == "openai"
        assert orchestrator.model == "gpt-4o-mini"

    def test_deepseek_fallback(self, gateway):
        orchestrator = AIOrchestrator(Settings(deepseek_api_key="b"), gateway)
        assert orchestrator.provider == "deepseek"
        assert orchestrator.model == DEEPSEEK_MODEL
        assert str(orchestrator.client.base_url).startswith("https://api.deepseek.com/v1")


class TestStream:
    @pytest.mark.asyncio
    async def test_progress_events_end_with_response(self, settings, gateway, context):
        orchestrator, _ = make(
            settings,
            gateway,
            tool_call_reply(("create_project", {"name": "Beta"})),
            text_reply("Created Beta."),
        )

        events = [e async for e in orchestrator.execute_stream("create beta", context)]

        stages = [e.get("stage") for e in events]
        assert stages == ["thinking", "tool_call", "tool_result", "thinking", "response"]
        final = events[-1]
        assert final["content"] == "Created Beta."
        assert set(final["data"]) == {"toolCallsMade", "undoBatches", "undoSkippedTools"}
        assert final["data"]["undoBatches"][0][0]["table"] == "projects"

    @pytest.mark.asyncio
    async def test_failure_ends_with_error_event(self, settings, gateway, context):
        orchestrator, _ = make(settings, gateway, RuntimeError("boom"))

        events = [e async for e in orchestrator.execute_stream("x", context)]

        assert events[-1] == {"type": "error", "content": "boom"}


def test_system_prompt_includes_context(context):
    context.current_project_id = "proj-1"
    prompt = get_system_prompt(context, current_date=date(2026, 10, 16))

    assert "Workspace Name: Acme" in prompt
    assert "Current Date: 2026-10-16" in prompt
    assert "Current Project ID: proj-1" in prompt
    assert "Current Tab ID" not in prompt
