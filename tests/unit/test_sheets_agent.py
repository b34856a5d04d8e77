"""Unit tests for the self-correcting executor and tool-call plan conversion."""

import asyncio
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from fakes import FakeEvaluator, FakeToolGenerator, SteppingClock

from sheet_router.agents.sheets_agent import CLARIFICATION_MESSAGE, SheetsAgent
from sheet_router.agents.tools import SHEET_TOOLS, TOOL_NAMES, get_tool
from sheet_router.models.base import AgentRequest, AgentStatus, DataContext, OutputMode
from sheet_router.models.plan import (
    AgentRunResult,
    EvaluationResult,
    ExecutorState,
    ToolCall,
    ToolCallingResult,
)
from sheet_router.utils.config import RouterConfig

CHART_AND_FORMAT = ToolCallingResult(
    text="Charted and formatted",
    tool_calls=[
        ToolCall(tool_name="chart", args={"chartType": "bar", "range": "A1:B11"}),
        ToolCall(tool_name="format", args={"range": "A1:B1", "options": {"bold": True}}),
    ],
)
SINGLE_FORMULA = ToolCallingResult(
    tool_calls=[ToolCall(tool_name="formula", args={"formula": "=UPPER(B{{ROW}})", "outputColumn": "d"})],
)
PASS = EvaluationResult(meets_goal=True, confidence=0.9)
FAIL = EvaluationResult(meets_goal=False, confidence=0.4, issues=["Wrong range"], should_retry=True)


@pytest.fixture
def context():
    return DataContext.from_raw({
        "headers": {"A": "Month", "B": "Revenue"},
        "dataColumns": ["A", "B"],
        "rowCount": 10,
    })


def make_agent(tool_replies, evaluator_replies=None, config=None, clock=None):
    evaluator = FakeEvaluator(evaluator_replies) if evaluator_replies is not None else None
    agent = SheetsAgent(
        FakeToolGenerator(tool_replies),
        evaluator=evaluator,
        config=config or RouterConfig(),
        clock=clock or SteppingClock(),
    )
    return agent


class TestTools:

    def test_tool_catalogue(self):
        assert len(SHEET_TOOLS) == len(TOOL_NAMES) == 10
        chart = get_tool("chart")
        assert chart["type"] == "function"
        assert chart["function"]["name"] == "chart"
        assert get_tool("teleport") is None


class TestExecutorLoop:
    """Generation, evaluation, retry and budgets."""

    @pytest.mark.asyncio
    async def test_satisfied_first_attempt(self, context):
        agent = make_agent([CHART_AND_FORMAT], [PASS])
        result = await agent.run("Chart revenue and bold headers", context)

        assert result.state == ExecutorState.SATISFIED
        assert result.attempts == 1
        assert [sr.tool for sr in result.step_results] == ["chart", "format"]
        assert all(sr.evaluation.meets_goal for sr in result.step_results)
        assert result.error is None

    @pytest.mark.asyncio
    async def test_evaluation_sees_whole_workflow(self, context):
        agent = make_agent([CHART_AND_FORMAT], [PASS])
        await agent.run("Chart revenue and bold headers", context)

        prompt = agent.evaluator.prompts[0]
        assert '1. chart: {"chartType": "bar", "range": "A1:B11"}' in prompt
        assert "2. format:" in prompt
        assert len(agent.evaluator.prompts) == 1

    @pytest.mark.asyncio
    async def test_retry_carries_feedback(self, context):
        agent = make_agent([CHART_AND_FORMAT], [FAIL, PASS])
        result = await agent.run("Chart revenue and bold headers", context)

        assert result.state == ExecutorState.SATISFIED
        assert result.attempts == 2
        prompts = agent.tool_generator.prompts
        assert prompts[0] == "Chart revenue and bold headers"
        assert prompts[1].startswith("Chart revenue and bold headers")
        assert "IMPORTANT: Previous attempt had issues. Please fix:" in prompts[1]
        assert "- chart: Wrong range" in prompts[1]

    @pytest.mark.asyncio
    async def test_exhausted_keeps_last_result(self, context):
        agent = make_agent([CHART_AND_FORMAT], [FAIL])
        result = await agent.run("Chart revenue and bold headers", context)

        assert result.state == ExecutorState.EXHAUSTED
        assert result.attempts == 2
        assert len(result.tool_calls) == 2
        assert not result.step_results[0].evaluation.meets_goal

    @pytest.mark.asyncio
    async def test_soft_timeout_skips_evaluation(self, context):
        agent = make_agent([CHART_AND_FORMAT], [PASS], clock=SteppingClock(step=50))
        result = await agent.run("Chart revenue and bold headers", context)

        assert result.state == ExecutorState.TIMED_OUT
        assert result.attempts == 1
        assert agent.evaluator.prompts == []
        assert result.step_results[0].evaluation.confidence == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_soft_timeout_stops_retry(self, context):
        agent = make_agent([CHART_AND_FORMAT], [FAIL, PASS], clock=SteppingClock(step=30))
        result = await agent.run("Chart revenue and bold headers", context)

        assert result.state == ExecutorState.TIMED_OUT
        assert result.attempts == 1
        assert len(agent.tool_generator.prompts) == 1

    @pytest.mark.asyncio
    async def test_evaluator_failure_accepts_result(self, context):
        agent = make_agent([CHART_AND_FORMAT], [RuntimeError("evaluator down")])
        result = await agent.run("Chart revenue and bold headers", context)

        assert result.state == ExecutorState.SATISFIED
        evaluation = result.step_results[0].evaluation
        assert evaluation.meets_goal
        assert evaluation.confidence == pytest.approx(0.5)
        assert evaluation.issues == ["Evaluation skipped"]

    @pytest.mark.asyncio
    async def test_single_formula_skips_evaluation(self, context):
        agent = make_agent([SINGLE_FORMULA], [FAIL])
        result = await agent.run("Uppercase column B", context)

        assert result.state == ExecutorState.SATISFIED
        assert agent.evaluator.prompts == []

    @pytest.mark.asyncio
    async def test_no_evaluator_accepts_first_result(self, context):
        agent = make_agent([CHART_AND_FORMAT])
        result = await agent.run("Chart revenue and bold headers", context)
        assert result.state == ExecutorState.SATISFIED
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_generation_error_is_captured(self, context):
        agent = make_agent([RuntimeError("model unavailable")], [PASS])
        result = await agent.run("Chart revenue", context)

        assert result.state == ExecutorState.EXHAUSTED
        assert result.error == "model unavailable"
        assert result.tool_calls == []
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_system_prompt_lists_tools(self, context):
        agent = make_agent([CHART_AND_FORMAT])
        await agent.run("Chart revenue", context)
        system = agent.tool_generator.systems[0]
        assert "chart" in system
        assert "formula" in system


class TestConvertToPlan:
    """Tool calls to ExecutionPlan."""

    @pytest.fixture
    def agent(self):
        return make_agent([CHART_AND_FORMAT])

    def test_multiple_calls_become_steps(self, agent, context):
        result = AgentRunResult(text="", tool_calls=CHART_AND_FORMAT.tool_calls, attempts=1)
        plan = agent.convert_to_plan(result, context, "Chart revenue and bold headers")

        assert plan.output_mode == OutputMode.COLUMNS
        assert plan.is_multi_step
        assert plan.summary == "Executed 2 operations"
        first, second = plan.steps
        assert first.action == "chart"
        assert first.config == {"chartType": "bar", "range": "A1:B11"}
        assert first.depends_on is None
        assert second.depends_on == "step_1"
        assert second.input_columns == ["A", "B"]

    def test_single_formula_call(self, agent, context):
        result = AgentRunResult(text="Uppercased", tool_calls=SINGLE_FORMULA.tool_calls)
        plan = agent.convert_to_plan(result, context, "Uppercase column B")

        assert plan.output_mode == OutputMode.FORMULA
        assert plan.steps[0].formula == "=UPPER(B{{ROW}})"
        assert plan.steps[0].output_column == "D"
        assert plan.summary == "Uppercased"

    def test_formula_step_defaults_to_first_empty_column(self, agent, context):
        calls = [
            ToolCall(tool_name="formula", args={"formula": "=LEN(B{{ROW}})"}),
            ToolCall(tool_name="format", args={"range": "C1", "options": {"bold": True}}),
        ]
        plan = agent.convert_to_plan(AgentRunResult(tool_calls=calls), context, "Count and bold")
        assert plan.steps[0].output_column == "C"
        assert plan.steps[0].start_row == 2
        assert plan.steps[0].end_row == 11

    def test_workflow_formula_steps_get_distinct_columns(self, agent, context):
        calls = [
            ToolCall(tool_name="formula", args={"formula": "=LEN(B{{ROW}})"}),
            ToolCall(tool_name="formula", args={"formula": "=C{{ROW}}*2"}),
            ToolCall(tool_name="formula", args={"formula": "=UPPER(A{{ROW}})", "outputColumn": "B"}),
        ]
        plan = agent.convert_to_plan(AgentRunResult(tool_calls=calls), context, "Count, double, uppercase")

        first, second, third = plan.steps
        assert [s.output_column for s in plan.steps] == ["C", "D", "E"]
        assert first.input_columns == ["A", "B"]
        assert second.input_columns == ["A", "B", "C"]
        assert third.input_columns == ["A", "B", "C", "D"]

    def test_workflow_keeps_free_model_column(self, agent, context):
        calls = [
            ToolCall(tool_name="formula", args={"formula": "=LEN(B{{ROW}})", "outputColumn": "c"}),
            ToolCall(tool_name="formula", args={"formula": "=C{{ROW}}*2"}),
        ]
        plan = agent.convert_to_plan(AgentRunResult(tool_calls=calls), context, "Count then double")
        assert [s.output_column for s in plan.steps] == ["C", "D"]

    def test_analyze_call_is_chat(self, agent, context):
        result = AgentRunResult(
            text="Revenue peaks in March",
            tool_calls=[ToolCall(tool_name="analyze", args={"question": "When is revenue highest?"})],
        )
        plan = agent.convert_to_plan(result, context, "When is revenue highest?")

        assert plan.output_mode == OutputMode.CHAT
        assert plan.chat_response == "Revenue peaks in March"
        assert not plan.is_command

    def test_table_call_becomes_create_table(self, agent, context):
        result = AgentRunResult(tool_calls=[ToolCall(tool_name="table", args={"range": "A1:B11"})])
        plan = agent.convert_to_plan(result, context, "Make this a table")

        assert plan.output_mode == OutputMode.SHEET
        assert plan.sheet_action == "createTable"
        assert plan.sheet_config == {"range": "A1:B11"}
        assert len(plan.steps) == 1

    def test_single_sheet_call_is_normalized(self, agent, context):
        args = {"range": "B2:B11", "options": {"validation": {"type": "list", "values": ["Yes", "No"]}}}
        result = AgentRunResult(tool_calls=[ToolCall(tool_name="format", args=args)])
        plan = agent.convert_to_plan(result, context, "Add a dropdown")

        assert plan.sheet_action == "dataValidation"
        assert plan.normalizations == ["nested_validation"]

    def test_no_calls_asks_for_clarification(self, agent, context):
        result = AgentRunResult(text="Which column holds the dates?")
        plan = agent.convert_to_plan(result, context, "Fix the dates")

        assert plan.output_mode == OutputMode.CHAT
        assert plan.needs_clarification
        assert plan.clarification == CLARIFICATION_MESSAGE
        details = plan.clarification_context
        assert details["originalCommand"] == "Fix the dates"
        assert details["agentResponse"] == "Which column holds the dates?"
        assert details["availableData"]["dataRange"] == "A2:B11"
        assert details["availableData"]["emptyColumns"] == ["C", "D", "E"]
        assert plan.data_context["columns"] == ["A", "B"]


class TestProcess:
    """BaseAgent request/response wrapper."""

    @pytest.mark.asyncio
    async def test_process_success(self, context):
        agent = make_agent([CHART_AND_FORMAT], [PASS])
        request = AgentRequest(agent_id="sheets_agent", command="Chart revenue", context=context)

        response = await agent.process(request)

        assert response.status == AgentStatus.SUCCESS
        assert response.result["state"] == "satisfied"
        assert response.result["attempts"] == 1
        assert response.result["plan"].output_mode == OutputMode.COLUMNS

    @pytest.mark.asyncio
    async def test_process_failure(self, context):
        agent = make_agent([CHART_AND_FORMAT], [PASS])

        def broken(*args, **kwargs):
            raise RuntimeError("conversion failed")

        agent.convert_to_plan = broken
        request = AgentRequest(agent_id="sheets_agent", command="Chart revenue", context=context)

        response = await agent.process(request)

        assert response.status == AgentStatus.FAILED
        assert "conversion failed" in response.error_log

    @pytest.mark.asyncio
    async def test_process_generation_error_is_failure(self, context):
        agent = make_agent([RuntimeError("tool model down")])
        request = AgentRequest(agent_id="sheets_agent", command="Chart revenue", context=context)

        response = await agent.process(request)

        assert response.status == AgentStatus.FAILED
        assert "tool model down" in response.error_log

    @pytest.mark.asyncio
    async def test_hard_timeout(self, context):
        class SlowToolGenerator:
            async def generate_with_tools(self, prompt, tools, system=None):
                await asyncio.sleep(1)
                return CHART_AND_FORMAT

        agent = SheetsAgent(SlowToolGenerator(), config=RouterConfig(hard_timeout_seconds=0.05))
        request = AgentRequest(agent_id="sheets_agent", command="Chart revenue", context=context)

        response = await agent.execute_with_timeout(request)

        assert response.status == AgentStatus.TIMEOUT
        assert response.execution_time_ms is not None
