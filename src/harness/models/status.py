"""Status enums for scenarios, steps and device services."""

from enum import Enum


class ScenarioStatus(str, Enum):
    """Scenario lifecycle.

    State transitions:
    notStarted → running → passed
                    ↓
                  failed

    Teardown runs after either terminal state.
    """

    NOT_STARTED = "notStarted"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


class StepKind(str, Enum):
    """Kind of recorded scenario step."""

    ACTION = "action"
    WAIT = "wait"
    ASSERTION = "assertion"
    COMMENT = "comment"
    TEARDOWN = "teardown"


class ServiceStatus(str, Enum):
    """Service status as reported by the cloud API."""

    DOWNLOADING = "Downloading"
    DOWNLOADED = "Downloaded"
    INSTALLING = "Installing"
    INSTALLED = "Installed"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    EXITED = "exited"
    DELETED = "deleted"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str) -> "ServiceStatus":
        """Map a raw status string, falling back to UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN
