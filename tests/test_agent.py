"""
PaymentAgent decision parsing, prompt helpers and the Gemini message mapping.
"""

from types import SimpleNamespace

import pytest

from payassist.agent.agent import Decision, PaymentAgent, parse_decision_text, strip_fences
from payassist.agent.helpers import (
    build_tools_block,
    build_user_context_block,
    format_amount,
    format_observation_for_history,
    mask_account,
)
from payassist.clients.base import ReasoningChunk, ReasoningRequest, ReasoningResponse
from payassist.clients.gemini_llm_client import _split_parts, function_declarations, to_contents
from payassist.schemas.messages import Message, ToolCall
from payassist.services.seed import demo_dataset
from payassist.tools.banking_tools import build_banking_registry
from payassist.workflows.state import TransferWorkflow, WorkflowState

from tests.conftest import ScriptedReasoningClient


class StreamingClient:
    def __init__(self, chunks, response):
        self.chunks = chunks
        self.response = response

    async def complete(self, request):
        return self.response

    async def stream(self, request):
        for text in self.chunks:
            yield ReasoningChunk(text=text)
        yield ReasoningChunk(response=self.response)


def make_agent(client):
    return PaymentAgent(client, build_banking_registry().signatures(), "AUD")


def request():
    return ReasoningRequest(system_instruction="", messages=[Message(role="user", text="hi")])


async def collect(agent):
    tokens, decisions = [], []
    async for item in agent.decide_stream(request()):
        (decisions if isinstance(item, Decision) else tokens).append(item)
    return tokens, decisions


class TestDecisionParsing:
    def test_strip_fences(self):
        assert strip_fences('```json\n{"action": "respond"}\n```') == '{"action": "respond"}'
        assert strip_fences("plain text") == "plain text"

    def test_json_tool_call(self):
        agent = make_agent(ScriptedReasoningClient([]))
        raw = '```json\n{"action": "call_tool", "tool_name": "get_accounts", "tool_input": {}}\n```'
        decision = agent.interpret(ReasoningResponse(text=raw))
        assert decision.kind == "tool_calls"
        assert decision.tool_calls[0].name == "get_accounts"

    def test_non_object_tool_input_is_dropped(self):
        agent = make_agent(ScriptedReasoningClient([]))
        raw = '{"action": "call_tool", "tool_name": "get_accounts", "tool_input": "all"}'
        decision = agent.interpret(ReasoningResponse(text=raw))
        assert decision.kind == "tool_calls"
        assert decision.tool_calls[0].arguments == {}

    def test_python_dict_falls_back_to_literal_eval(self):
        parsed = parse_decision_text("{'action': 'respond', 'response': 'Done', 'ok': True}")
        assert parsed == {"action": "respond", "response": "Done", "ok": True}

    def test_unparseable_json_is_plain_answer(self):
        agent = make_agent(ScriptedReasoningClient([]))
        decision = agent.interpret(ReasoningResponse(text="{not json at all"))
        assert decision == Decision.final("{not json at all")

    def test_response_action(self):
        agent = make_agent(ScriptedReasoningClient([]))
        decision = agent.interpret(ReasoningResponse(text='{"action": "respond", "response": "Hello!"}'))
        assert decision == Decision.final("Hello!")

    def test_empty_response_is_noop(self):
        agent = make_agent(ScriptedReasoningClient([]))
        assert agent.interpret(ReasoningResponse()).kind == "noop"

    def test_native_tool_calls_win(self):
        agent = make_agent(ScriptedReasoningClient([]))
        call = ToolCall(name="get_contacts")
        decision = agent.interpret(ReasoningResponse(text="Let me check.", tool_calls=[call]))
        assert decision.kind == "tool_calls"
        assert decision.tool_calls == [call]
        assert decision.text == "Let me check."


class TestDecideStream:
    async def test_plain_text_streams_through(self):
        agent = make_agent(StreamingClient(["Your ", "balance ", "is fine."], ReasoningResponse(text="Your balance is fine.")))
        tokens, decisions = await collect(agent)
        assert tokens == ["Your ", "balance ", "is fine."]
        assert decisions == [Decision.final("Your balance is fine.")]

    async def test_json_decision_text_is_held_back(self):
        raw = '{"action": "call_tool", "tool_name": "get_accounts", "tool_input": {}}'
        agent = make_agent(StreamingClient(['{"action": ', '"call_tool", ...'], ReasoningResponse(text=raw)))
        tokens, decisions = await collect(agent)
        assert tokens == []
        assert decisions[0].kind == "tool_calls"

    async def test_json_final_answer_emitted_once(self):
        raw = '{"action": "respond", "response": "All done."}'
        agent = make_agent(StreamingClient([raw], ReasoningResponse(text=raw)))
        tokens, decisions = await collect(agent)
        assert tokens == ["All done."]

    async def test_client_without_stream(self):
        agent = make_agent(ScriptedReasoningClient([ReasoningResponse(text="Hi there")]))
        tokens, decisions = await collect(agent)
        assert tokens == ["Hi there"]
        assert decisions == [Decision.final("Hi there")]


class TestHelpers:
    def test_format_amount(self):
        assert format_amount("$1,234.5") == "$1,234.50 AUD"
        assert format_amount(None) is None
        assert format_amount("lots") is None

    def test_mask_account(self):
        assert mask_account("123456789") == "***6789"
        assert mask_account(None) is None

    def test_tools_block_lists_params(self):
        block = build_tools_block(build_banking_registry().signatures())
        assert "- start_transfer: " in block
        assert "destination (required), amount (optional), source_account (optional)" in block
        assert "- get_accounts: List the user's accounts with current balances. Params: none" in block

    def test_user_context_block(self):
        data = demo_dataset()
        workflow = TransferWorkflow(user_id="user_001", destination_query="sarah", state=WorkflowState.AWAITING_AMOUNT)
        block = build_user_context_block(
            data.users[0], data.accounts, data.contacts, workflow=workflow, notices=["The user confirmed."]
        )
        assert "- name: John Smith" in block
        assert "  - Savings Account (savings): $15,000.00 AUD" in block
        assert "- saved_contacts: Coffee Supplier, Sarah Johnson" in block
        assert "- transfer_in_progress: AWAITING_AMOUNT" in block
        assert block.endswith("- notice: The user confirmed.")

    def test_user_context_block_without_user(self):
        assert build_user_context_block(None, []) == "- (none)"

    @pytest.mark.parametrize(
        "observation, expected",
        [
            ({"success": False, "error": {"message": "Nope."}}, "tool -> error: Nope."),
            ({"success": True, "data": {"state": "SETTLED", "message": "Paid."}}, "tool -> SETTLED: Paid."),
            ({"success": True, "data": [1, 2]}, "tool -> returned 2 item(s)"),
        ],
    )
    def test_format_observation(self, observation, expected):
        assert format_observation_for_history("tool", observation) == expected


class TestGeminiMapping:
    def test_function_declarations(self):
        declarations = function_declarations(build_banking_registry().signatures())
        start = next(d for d in declarations if d.name == "start_transfer")
        assert start.parameters.required == ["destination"]
        assert set(start.parameters.properties) == {"destination", "amount", "source_account"}
        get_user = next(d for d in declarations if d.name == "get_user")
        assert get_user.parameters is None

    def test_tool_results_grouped(self):
        first, second = ToolCall(name="get_accounts"), ToolCall(name="get_contacts")
        contents = to_contents(
            [
                Message(role="user", text="hi"),
                Message(role="assistant", tool_calls=[first, second]),
                Message(role="tool", tool_name="get_accounts", tool_call_id=first.id, result={"success": True}),
                Message(role="tool", tool_name="get_contacts", tool_call_id=second.id, result={"success": True}),
                Message(role="assistant", text="Here you go."),
            ]
        )
        assert [c.role for c in contents] == ["user", "model", "user", "model"]
        assert len(contents[1].parts) == 2
        assert [p.function_response.name for p in contents[2].parts] == ["get_accounts", "get_contacts"]

    def test_split_parts(self):
        parts = [
            SimpleNamespace(function_call=None, text="Checking. "),
            SimpleNamespace(function_call=SimpleNamespace(name="get_accounts", args={}), text=None),
        ]
        response = SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])
        texts, calls = _split_parts(response)
        assert texts == ["Checking. "]
        assert calls[0].name == "get_accounts"
