"""Unit tests for the command-line entry point."""

import json
import logging

import pytest
from unittest.mock import AsyncMock, patch

from harness.main import SUITES, build_parser, main, run_suites
from harness.models.result import ScenarioResult, SuiteResult
from harness.models.status import ScenarioStatus


@pytest.fixture(autouse=True)
def reset_harness_logger():
    """main() configures the shared 'harness' logger; undo it after each test."""
    yield
    logger = logging.getLogger("harness")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for key in ("HARNESS_DEVICE_UUID", "HARNESS_DEVICE_LINK", "HARNESS_MODEMS", "MODEMS"):
        monkeypatch.delenv(key, raising=False)

    def write(**values):
        values.setdefault("log_file", str(tmp_path / "logs" / "harness.log"))
        path = tmp_path / "config.json"
        path.write_text(json.dumps(values))
        return str(path)
    return write


def _suite(status):
    return SuiteResult(title="suite", scenarios=[ScenarioResult(title="s", status=status)])


@pytest.mark.unit
class TestMain:
    """Test argument parsing and exit codes."""

    def test_parser_accepts_repeated_suites(self):
        args = build_parser().parse_args(["--suite", "modem", "--suite", "device-tree"])

        assert args.suite == ["modem", "device-tree"]

    def test_parser_rejects_unknown_suite(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--suite", "bluetooth"])

    def test_missing_config_file(self, tmp_path):
        assert main(["--config", str(tmp_path / "missing.json")]) == 2

    def test_no_device_configured(self, config_file):
        assert main(["--config", config_file(), "--suite", "modem"]) == 2

    def test_all_suites_pass(self, config_file):
        path = config_file(device_uuid="f3a1b2c3d4e5f60718293a4b5c6d7e8f")

        with patch(
            "harness.main.run_suites",
            new=AsyncMock(return_value=[_suite(ScenarioStatus.PASSED)]),
        ) as run_suites:
            assert main(["--config", path]) == 0

        names = run_suites.call_args[0][1]
        assert names == list(SUITES)

    def test_failed_scenario_exit_code(self, config_file):
        path = config_file(device_uuid="f3a1b2c3d4e5f60718293a4b5c6d7e8f")

        with patch(
            "harness.main.run_suites",
            new=AsyncMock(return_value=[
                _suite(ScenarioStatus.PASSED),
                _suite(ScenarioStatus.FAILED),
            ]),
        ):
            assert main(["--config", path, "--log-level", "debug"]) == 1

    @pytest.mark.asyncio
    async def test_run_suites_removes_workdir(self, tmp_path, harness_config):
        workdir = tmp_path / "harness-work"
        (workdir / "app").mkdir(parents=True)
        (workdir / "app" / "main.py").write_text("#comment\n")

        with patch(
            "harness.services.environment.tempfile.mkdtemp", return_value=str(workdir)
        ):
            results = await run_suites(harness_config, ["modem"])

        assert [r.title for r in results] == ["Cellular tests"]
        assert not workdir.exists()

    def test_empty_modem_suite_passes(self, config_file):
        """No modems listed: the cellular suite has nothing to run."""
        path = config_file(device_uuid="f3a1b2c3d4e5f60718293a4b5c6d7e8f", modems=[])

        assert main(["--config", path, "--suite", "modem"]) == 0
