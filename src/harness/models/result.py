"""Scenario and suite result payloads."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from harness.models.status import ScenarioStatus, StepKind


class StepRecord(BaseModel):
    """One executed scenario step."""

    kind: StepKind
    description: str
    passed: bool = True
    expected: Optional[Any] = None
    observed: Optional[Any] = None
    at: datetime = Field(default_factory=datetime.now)


class ScenarioResult(BaseModel):
    """Outcome of one scenario, including teardown."""

    title: str
    status: ScenarioStatus = ScenarioStatus.NOT_STARTED
    steps: list[StepRecord] = Field(default_factory=list)
    error: Optional[str] = Field(None, description="Failure that ended the scenario")
    teardown_errors: list[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def passed(self) -> bool:
        return self.status == ScenarioStatus.PASSED

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


class SuiteResult(BaseModel):
    """Outcome of every scenario in a suite, in execution order."""

    title: str
    device_uuid: Optional[str] = None
    scenarios: list[ScenarioResult] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(s.passed for s in self.scenarios)

    def counts(self) -> dict[str, int]:
        """Number of scenarios per status."""
        counts = {status.value: 0 for status in ScenarioStatus}
        for scenario in self.scenarios:
            counts[scenario.status.value] += 1
        return counts
