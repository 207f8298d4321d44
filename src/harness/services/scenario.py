"""Scenario orchestration: ordered steps, assertions and guaranteed teardown."""

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from harness.models.policy import PollPolicy
from harness.models.result import ScenarioResult, StepRecord, SuiteResult
from harness.models.status import ScenarioStatus, StepKind
from harness.services.device import Device
from harness.services.poller import Condition, Converged, Failed, Poller
from harness.utils.errors import AssertionFailure, HarnessError
from harness.utils.logging import scenario_logger

TeardownCallback = Callable[[], Awaitable[Any]]


def _plain(value: Any) -> Any:
    """JSON-friendly form of an assertion operand."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if value is None or isinstance(value, (str, int, float, bool, list, dict)):
        return value
    return repr(value)


class ScenarioContext:
    """Test primitives handed to a scenario body.

    Steps run strictly in order: each ``action`` is awaited to completion
    before the next ``wait`` starts checking.
    """

    def __init__(
        self,
        result: ScenarioResult,
        exit_stack: AsyncExitStack,
        policy: Optional[PollPolicy] = None,
    ):
        self.logger = scenario_logger(result.title)
        self.result = result
        self.policy = policy or PollPolicy()
        self.poller = Poller(policy=self.policy, on_attempt=self.comment)
        self._exit_stack = exit_stack

    def _record(self, kind: StepKind, description: str, passed: bool = True, **values) -> None:
        self.result.steps.append(
            StepRecord(
                kind=kind,
                description=description,
                passed=passed,
                expected=_plain(values.get("expected")),
                observed=_plain(values.get("observed")),
            )
        )

    # -- reporting -----------------------------------------------------

    def comment(self, message: str) -> None:
        self.logger.info(message)
        self._record(StepKind.COMMENT, message)

    # -- assertions ----------------------------------------------------

    def ok(self, value: Any, message: str) -> None:
        """Assert ``value`` is truthy."""
        self._assert(bool(value), message, expected=True, observed=value)

    def is_(self, observed: Any, expected: Any, message: str) -> None:
        """Assert ``observed == expected``."""
        self._assert(observed == expected, message, expected=expected, observed=observed)

    equal = is_

    def same(self, observed: Any, expected: Any, message: str) -> None:
        """Assert structural equality (models compared by their fields)."""
        self._assert(
            _plain(observed) == _plain(expected),
            message,
            expected=expected,
            observed=observed,
        )

    def _assert(self, passed: bool, message: str, expected: Any, observed: Any) -> None:
        self._record(
            StepKind.ASSERTION, message, passed=passed, expected=expected, observed=observed
        )
        if passed:
            self.logger.info(f"ok - {message}")
            return
        self.logger.error(
            f"not ok - {message}: "
            f"expected {expected!r}, observed {observed!r}"
        )
        raise AssertionFailure(message, expected=expected, observed=observed)

    # -- actions and waits ---------------------------------------------

    async def action(
        self,
        description: str,
        operation: Awaitable[Any],
        reboots: Optional[Device] = None,
    ) -> Any:
        """Run a mutating operation to completion.

        Args:
            description: What the action does
            operation: Awaitable performing the mutation
            reboots: Device rebooted by this action; its address is
                marked stale once the action returns
        """
        self.logger.info(description)
        try:
            value = await operation
        except Exception:
            self._record(StepKind.ACTION, description, passed=False)
            raise
        self._record(StepKind.ACTION, description)
        if reboots is not None:
            reboots.invalidate(f"rebooted by: {description}")
        return value

    async def wait(
        self,
        condition: Condition,
        policy: Optional[PollPolicy] = None,
        description: Optional[str] = None,
        failure_value: Any = False,
    ) -> Any:
        """Poll ``condition``; returns its value or ``failure_value`` on exhaustion.

        Errors the policy does not tolerate propagate and fail the scenario.
        """
        description = description or getattr(condition, "description", "condition")
        self.comment(f"Waiting for {description}")
        outcome = await self.poller.poll(condition, policy=policy, description=description)
        if isinstance(outcome, Failed):
            self._record(StepKind.WAIT, description, passed=False, observed=str(outcome.error))
            raise outcome.error
        converged = isinstance(outcome, Converged)
        self._record(
            StepKind.WAIT,
            f"{description} ({outcome.attempts} attempts)",
            passed=converged,
        )
        return outcome.value if converged else failure_value

    async def wait_for(
        self,
        condition: Condition,
        policy: Optional[PollPolicy] = None,
        description: Optional[str] = None,
    ) -> Any:
        """Like :meth:`wait`, but exhaustion fails the scenario."""
        description = description or getattr(condition, "description", "condition")
        value = await self.wait(condition, policy=policy, description=description)
        if not value:
            raise AssertionFailure(
                f"Timed out waiting for {description}",
                expected=True,
                observed=_plain(getattr(condition, "last_reading", value)),
            )
        return value

    # -- teardown ------------------------------------------------------

    def teardown(self, callback: TeardownCallback, description: str = "teardown") -> None:
        """Register ``callback`` to run when the scenario ends, whatever the outcome.

        Callbacks run in reverse registration order.
        """
        self._exit_stack.push_async_callback(self._run_teardown, callback, description)

    async def _run_teardown(self, callback: TeardownCallback, description: str) -> None:
        try:
            await callback()
        except Exception as e:
            self.logger.error(
                f"teardown '{description}' failed: {e}",
                exc_info=True,
            )
            self.result.teardown_errors.append(f"{description}: {e}")
            self._record(StepKind.TEARDOWN, description, passed=False, observed=str(e))
        else:
            self._record(StepKind.TEARDOWN, description)


ScenarioBody = Callable[[ScenarioContext], Awaitable[None]]


@dataclass
class Scenario:
    """A titled scenario body."""

    title: str
    body: ScenarioBody


@dataclass
class Suite:
    """Scenarios run in order against one device."""

    title: str
    scenarios: list[Scenario] = field(default_factory=list)
    device_uuid: Optional[str] = None


async def run_scenario(scenario: Scenario, policy: Optional[PollPolicy] = None) -> ScenarioResult:
    """Run one scenario and its teardown.

    The scenario ends as PASSED or FAILED; teardown failures are recorded
    but never change that status.
    """
    logger = logging.getLogger("harness.scenario")
    result = ScenarioResult(title=scenario.title)
    result.status = ScenarioStatus.RUNNING
    result.started_at = datetime.now()
    logger.info(f"Scenario started: {scenario.title}")

    async with AsyncExitStack() as stack:
        context = ScenarioContext(result, stack, policy=policy)
        try:
            await scenario.body(context)
        except AssertionFailure as e:
            result.status = ScenarioStatus.FAILED
            result.error = str(e)
        except HarnessError as e:
            logger.error(f"Scenario {scenario.title} aborted: {e}")
            result.status = ScenarioStatus.FAILED
            result.error = f"{type(e).__name__}: {e}"
        except Exception as e:
            logger.error(f"Scenario {scenario.title} crashed: {e}", exc_info=True)
            result.status = ScenarioStatus.FAILED
            result.error = f"{type(e).__name__}: {e}"
        else:
            result.status = ScenarioStatus.PASSED
        logger.info(f"Scenario {scenario.title}: {result.status.value}, running teardown")

    result.finished_at = datetime.now()
    return result


class SuiteRunner:
    """Runs suites; scenarios of a suite run one after another."""

    def __init__(self, policy: Optional[PollPolicy] = None, reporter=None):
        """Initialize suite runner.

        Args:
            policy: Default poll policy for every scenario
            reporter: Optional ReportService notified with each SuiteResult
        """
        self.logger = logging.getLogger("harness.runner")
        self.policy = policy
        self.reporter = reporter

    async def run(self, suite: Suite) -> SuiteResult:
        self.logger.info(f"Suite started: {suite.title} ({len(suite.scenarios)} scenarios)")
        result = SuiteResult(title=suite.title, device_uuid=suite.device_uuid)
        for scenario in suite.scenarios:
            result.scenarios.append(await run_scenario(scenario, policy=self.policy))

        self.logger.info(f"Suite finished: {suite.title} {result.counts()}")
        if self.reporter is not None:
            await self.reporter.report_suite(result)
        return result

    async def run_many(self, suites: list[Suite]) -> list[SuiteResult]:
        """Run independent suites concurrently, one coroutine each.

        Suites must target different devices.
        """
        return list(await asyncio.gather(*(self.run(suite) for suite in suites)))
