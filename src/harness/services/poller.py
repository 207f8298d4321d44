"""Bounded convergence polling."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from harness.models.policy import PollPolicy
from harness.utils.errors import ProtocolError, TransportError

Condition = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class Converged:
    """Condition returned a truthy value."""

    value: Any
    attempts: int


@dataclass(frozen=True)
class Exhausted:
    """Attempt or time budget ran out before the condition held."""

    attempts: int
    last_value: Any = None


@dataclass(frozen=True)
class Failed:
    """Condition raised an error that aborts the wait."""

    error: BaseException
    attempts: int


PollOutcome = Union[Converged, Exhausted, Failed]


class _ConditionTimeout(Exception):
    """TimeoutError raised by the condition itself, not by the poll deadline."""

    def __init__(self, error: BaseException):
        super().__init__(str(error))
        self.error = error


class Poller:
    """Re-evaluates a condition at a fixed interval until it holds.

    Every poll is bounded by ``max_attempts``, ``timeout`` or both. The
    interval is only slept between attempts: a condition that holds on
    attempt k returns right after attempt k.
    """

    def __init__(
        self,
        policy: Optional[PollPolicy] = None,
        on_attempt: Optional[Callable[[str], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize poller.

        Args:
            policy: Default policy for polls that don't pass one
            on_attempt: Progress callback, called once per attempt
            sleep: Awaitable sleep (injectable for tests)
            clock: Monotonic clock (defaults to the running loop's clock)
        """
        self.logger = logging.getLogger("harness.poller")
        self.policy = policy or PollPolicy()
        self.on_attempt = on_attempt
        self._sleep = sleep
        self._clock = clock

    async def poll(
        self,
        condition: Condition,
        policy: Optional[PollPolicy] = None,
        description: Optional[str] = None,
    ) -> PollOutcome:
        """Evaluate ``condition`` until it converges, exhausts or fails.

        Args:
            condition: Async callable; a truthy result means converged
            policy: Overrides the poller's default policy
            description: Progress text (defaults to ``condition.description``)

        Returns:
            Converged, Exhausted or Failed
        """
        policy = policy or self.policy
        description = description or getattr(condition, "description", "condition")
        clock = self._clock or asyncio.get_running_loop().time
        deadline = clock() + policy.timeout if policy.timeout is not None else None

        attempt = 0
        last_value: Any = None
        while True:
            if attempt and deadline is not None and clock() >= deadline:
                self.logger.warning(
                    f"Timed out after {attempt} attempts: {description}"
                )
                return Exhausted(attempts=attempt, last_value=last_value)

            attempt += 1
            self._report(description, attempt, policy)

            try:
                value = await self._evaluate(condition, deadline, clock)
            except _ConditionTimeout as e:
                self.logger.error(
                    f"Condition timed out while waiting for {description}: {e}"
                )
                return Failed(error=e.error, attempts=attempt)
            except asyncio.TimeoutError:
                self.logger.warning(
                    f"Attempt {attempt} outlived the poll deadline: {description}"
                )
                return Exhausted(attempts=attempt, last_value=last_value)
            except ProtocolError as e:
                self.logger.error(f"Protocol error while waiting for {description}: {e}")
                return Failed(error=e, attempts=attempt)
            except TransportError as e:
                if policy.fail_fast_on_error:
                    self.logger.error(
                        f"Transport error while waiting for {description}: {e}"
                    )
                    return Failed(error=e, attempts=attempt)
                self.logger.warning(
                    f"Attempt {attempt} could not read state, retrying: {e}"
                )
                last_value = None
            except Exception as e:
                self.logger.error(
                    f"Condition raised while waiting for {description}: {e}",
                    exc_info=True,
                )
                return Failed(error=e, attempts=attempt)
            else:
                if value:
                    self.logger.info(f"Converged after {attempt} attempts: {description}")
                    return Converged(value=value, attempts=attempt)
                last_value = value

            if policy.max_attempts is not None and attempt >= policy.max_attempts:
                self.logger.warning(
                    f"Gave up after {attempt} attempts: {description}"
                )
                return Exhausted(attempts=attempt, last_value=last_value)

            delay = policy.interval
            if deadline is not None:
                delay = max(0.0, min(delay, deadline - clock()))
            await self._sleep(delay)

    async def wait_until(
        self,
        condition: Condition,
        failure_value: Any = False,
        policy: Optional[PollPolicy] = None,
        description: Optional[str] = None,
    ) -> Any:
        """Wait for ``condition``; value-returning form of :meth:`poll`.

        Returns:
            The condition's last (truthy) value, or ``failure_value`` when the
            budget is exhausted

        Raises:
            Whatever the condition raised, when the outcome is Failed
        """
        outcome = await self.poll(condition, policy=policy, description=description)
        if isinstance(outcome, Converged):
            return outcome.value
        if isinstance(outcome, Failed):
            raise outcome.error
        return failure_value

    async def _evaluate(
        self,
        condition: Condition,
        deadline: Optional[float],
        clock: Callable[[], float],
    ) -> Any:
        # only the deadline below may surface as a bare TimeoutError
        async def evaluate() -> Any:
            try:
                return await condition()
            except (asyncio.TimeoutError, TimeoutError) as e:
                raise _ConditionTimeout(e) from e

        if deadline is None:
            return await evaluate()
        return await asyncio.wait_for(evaluate(), timeout=max(0.0, deadline - clock()))

    def _report(self, description: str, attempt: int, policy: PollPolicy) -> None:
        budget = f"/{policy.max_attempts}" if policy.max_attempts is not None else ""
        message = f"Waiting for {description} (attempt {attempt}{budget})"
        self.logger.debug(message)
        if self.on_attempt is not None:
            self.on_attempt(message)


async def wait_until(
    condition: Condition,
    failure_value: Any = False,
    policy: Optional[PollPolicy] = None,
    description: Optional[str] = None,
    on_attempt: Optional[Callable[[str], None]] = None,
) -> Any:
    """Module-level shortcut for ``Poller(...).wait_until(...)``."""
    poller = Poller(policy=policy, on_attempt=on_attempt)
    return await poller.wait_until(
        condition, failure_value=failure_value, description=description
    )
