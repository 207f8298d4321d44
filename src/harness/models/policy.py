"""Poll policy model."""

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class PollPolicy(BaseModel):
    """Bounds and pacing for one convergence wait.

    At least one of ``max_attempts`` or ``timeout`` must be set.
    """

    interval: float = Field(
        default=3.0, ge=0, description="Fixed delay between attempts (seconds)"
    )
    max_attempts: Optional[int] = Field(
        default=50, gt=0, description="Maximum number of condition evaluations"
    )
    timeout: Optional[float] = Field(
        default=None, gt=0, description="Wall-clock budget (seconds)"
    )
    fail_fast_on_error: bool = Field(
        default=True,
        description="Abort the wait on the first TransportError from the condition",
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def require_bound(self) -> "PollPolicy":
        """Reject unbounded polls."""
        if self.max_attempts is None and self.timeout is None:
            raise ValueError("PollPolicy needs max_attempts or timeout")
        return self

    def tolerant(self) -> "PollPolicy":
        """Copy of this policy that keeps polling through transport errors."""
        return self.model_copy(update={"fail_fast_on_error": False})
