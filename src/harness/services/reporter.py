"""Suite result reporting."""

import logging
from typing import Optional

import httpx

from harness.models.result import SuiteResult


class ReportService:
    """Logs suite summaries and posts them to a results collector."""

    def __init__(
        self,
        results_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize report service.

        Args:
            results_url: Endpoint receiving SuiteResult JSON (log only if None)
            transport: Custom httpx transport (tests)
        """
        self.logger = logging.getLogger("harness.reporter")
        self.results_url = results_url
        self._transport = transport

    async def report_suite(self, result: SuiteResult) -> None:
        """Send a suite result.

        Note:
            Failures are logged but not raised, so reporting never changes
            a suite's outcome
        """
        counts = result.counts()
        self.logger.info(
            f"Suite '{result.title}': {counts['passed']} passed, "
            f"{counts['failed']} failed"
        )
        for scenario in result.scenarios:
            if not scenario.passed:
                self.logger.warning(f"  FAILED {scenario.title}: {scenario.error}")

        if not self.results_url:
            return

        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                response = await client.post(
                    self.results_url,
                    json=result.model_dump(mode="json"),
                )
                response.raise_for_status()
                self.logger.debug("Suite result sent successfully")

        except httpx.HTTPError as e:
            self.logger.warning(f"Failed to report suite result: {e}")
        except Exception as e:
            self.logger.error(
                f"Unexpected error reporting suite result: {e}",
                exc_info=True,
            )
