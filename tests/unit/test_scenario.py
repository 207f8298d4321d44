"""Unit tests for scenario orchestration."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from harness.models.policy import PollPolicy
from harness.models.status import ScenarioStatus, StepKind
from harness.services.scenario import Scenario, Suite, SuiteRunner, run_scenario
from harness.utils.errors import AssertionFailure, TransportError

POLICY = PollPolicy(interval=0, max_attempts=3)


def _scenario(body, title="scenario"):
    return Scenario(title=title, body=body)


@pytest.mark.unit
class TestRunScenario:
    """Test run_scenario status and teardown handling."""

    @pytest.mark.asyncio
    async def test_passing_scenario(self):
        async def body(ctx):
            ctx.comment("Pushing release...")
            ctx.is_("c1", "c1", "commit matches")
            ctx.ok(True, "services running")

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert result.status == ScenarioStatus.PASSED
        assert result.error is None
        assert [s.kind for s in result.steps] == [
            StepKind.COMMENT,
            StepKind.ASSERTION,
            StepKind.ASSERTION,
        ]
        assert result.duration is not None

    @pytest.mark.asyncio
    async def test_assertion_failure_short_circuits(self):
        reached = []

        async def body(ctx):
            ctx.equal("lo", "hi", "Pin 4 is set to High after applying dtoverlay")
            reached.append("after")

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert result.status == ScenarioStatus.FAILED
        assert reached == []
        assert "expected: 'hi', observed: 'lo'" in result.error
        failed = result.steps[-1]
        assert failed.passed is False
        assert failed.expected == "hi"
        assert failed.observed == "lo"

    @pytest.mark.asyncio
    async def test_teardown_runs_after_success(self):
        disconnect = AsyncMock()

        async def body(ctx):
            ctx.teardown(disconnect, "disconnect modem")

        result = await run_scenario(_scenario(body), policy=POLICY)

        disconnect.assert_awaited_once()
        assert result.steps[-1].kind == StepKind.TEARDOWN

    @pytest.mark.asyncio
    async def test_teardown_runs_after_assertion_failure(self):
        disconnect = AsyncMock()

        async def body(ctx):
            ctx.teardown(disconnect, "disconnect modem")
            ctx.ok(False, "modem connected")

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert result.status == ScenarioStatus.FAILED
        disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_teardown_runs_after_transport_error(self):
        disconnect = AsyncMock()

        async def body(ctx):
            ctx.teardown(disconnect)
            raise TransportError("ssh: connect to host 10.0.0.2 port 22222: No route to host")

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert result.status == ScenarioStatus.FAILED
        assert result.error.startswith("TransportError")
        disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_teardown_failure_does_not_overturn_result(self):
        async def body(ctx):
            ctx.teardown(AsyncMock(side_effect=TransportError("modem gone")), "disconnect modem")

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert result.status == ScenarioStatus.PASSED
        assert result.teardown_errors == ["disconnect modem: modem gone"]

    @pytest.mark.asyncio
    async def test_teardown_order_is_reversed(self):
        order = []

        async def body(ctx):
            async def first():
                order.append("first")

            async def second():
                order.append("second")

            ctx.teardown(first)
            ctx.teardown(second)

        await run_scenario(_scenario(body), policy=POLICY)

        assert order == ["second", "first"]

    @pytest.mark.asyncio
    async def test_action_marks_rebooted_device_stale(self, device):
        async def body(ctx):
            await device.ip()
            await ctx.action("apply target state", AsyncMock(return_value="OK")(), reboots=device)

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert result.status == ScenarioStatus.PASSED
        assert device.address.stale is True

    @pytest.mark.asyncio
    async def test_failed_action_is_recorded(self):
        async def body(ctx):
            await ctx.action("push release", AsyncMock(side_effect=TransportError("build failed"))())

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert result.status == ScenarioStatus.FAILED
        action = [s for s in result.steps if s.kind == StepKind.ACTION][0]
        assert action.passed is False

    @pytest.mark.asyncio
    async def test_wait_returns_failure_value_on_exhaustion(self):
        values = []

        async def body(ctx):
            values.append(await ctx.wait(AsyncMock(return_value=False), description="lock"))

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert values == [False]
        assert result.status == ScenarioStatus.PASSED
        wait_step = [s for s in result.steps if s.kind == StepKind.WAIT][0]
        assert wait_step.passed is False
        assert wait_step.description == "lock (3 attempts)"

    @pytest.mark.asyncio
    async def test_wait_for_fails_scenario_on_exhaustion(self):
        async def body(ctx):
            await ctx.wait_for(AsyncMock(return_value=False), description="services running")

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert result.status == ScenarioStatus.FAILED
        assert "Timed out waiting for services running" in result.error

    @pytest.mark.asyncio
    async def test_wait_error_propagates(self):
        async def body(ctx):
            await ctx.wait(AsyncMock(side_effect=TransportError("api down")), description="x")

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert result.status == ScenarioStatus.FAILED
        assert "api down" in result.error

    @pytest.mark.asyncio
    async def test_poll_attempts_reported_as_comments(self):
        async def body(ctx):
            await ctx.wait(AsyncMock(side_effect=[False, True]), description="lockfile")

        result = await run_scenario(_scenario(body), policy=POLICY)

        comments = [s.description for s in result.steps if s.kind == StepKind.COMMENT]
        assert "Waiting for lockfile (attempt 2/3)" in comments

    @pytest.mark.asyncio
    async def test_same_compares_models_structurally(self):
        from harness.models.state import TargetStateResponse

        async def body(ctx):
            ctx.same(
                TargetStateResponse(status="success", message="OK"),
                {"status": "success", "message": "OK"},
                "configured through supervisor API",
            )

        result = await run_scenario(_scenario(body), policy=POLICY)

        assert result.status == ScenarioStatus.PASSED


@pytest.mark.unit
class TestSuiteRunner:
    """Test SuiteRunner sequencing and reporting."""

    @pytest.mark.asyncio
    async def test_scenarios_run_in_order(self):
        order = []

        def body(name, fail=False):
            async def run(ctx):
                order.append(name)
                if fail:
                    raise AssertionFailure("boom")
            return run

        suite = Suite(
            title="Supervisor test suite",
            scenarios=[
                _scenario(body("first"), "first"),
                _scenario(body("second", fail=True), "second"),
                _scenario(body("third"), "third"),
            ],
        )
        reporter = MagicMock()
        reporter.report_suite = AsyncMock()

        result = await SuiteRunner(policy=POLICY, reporter=reporter).run(suite)

        assert order == ["first", "second", "third"]
        assert [s.status for s in result.scenarios] == [
            ScenarioStatus.PASSED,
            ScenarioStatus.FAILED,
            ScenarioStatus.PASSED,
        ]
        assert result.passed is False
        assert result.counts()["failed"] == 1
        reporter.report_suite.assert_awaited_once_with(result)

    @pytest.mark.asyncio
    async def test_run_many_runs_suites_concurrently(self):
        started = asyncio.Event()
        both = []

        async def waiter(ctx):
            both.append("waiter")
            await asyncio.wait_for(started.wait(), timeout=1)

        async def setter(ctx):
            both.append("setter")
            started.set()

        suites = [
            Suite(title="device A", scenarios=[_scenario(waiter)]),
            Suite(title="device B", scenarios=[_scenario(setter)]),
        ]

        results = await SuiteRunner(policy=POLICY).run_many(suites)

        assert [r.title for r in results] == ["device A", "device B"]
        assert all(r.passed for r in results)
