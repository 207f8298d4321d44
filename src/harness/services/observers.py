"""Predicates over device state, built on probes.

An observer reads its probe once per call and answers "has the device
converged yet". Probe errors are not caught here: "cannot tell" must stay
distinguishable from "not yet", and the poll policy decides what to do
with it.
"""

import logging
import shlex
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from harness.models.state import ServiceSnapshot, TargetState
from harness.models.status import ServiceStatus
from harness.services.device import Device
from harness.services.shell import ShellExecutor
from harness.services.transport import Probe, ShellProbe
from harness.utils.errors import ProtocolError
from harness.utils.matching import lines_contain, subset_mismatches


class Observer:
    """Async predicate: reads ``probe`` and applies ``predicate`` to the reading."""

    def __init__(
        self,
        probe: Probe,
        predicate: Callable[[Any], bool],
        description: str,
    ):
        self.logger = logging.getLogger("harness.observers")
        self.probe = probe
        self.predicate = predicate
        self.description = description
        self.last_reading: Any = None

    async def __call__(self) -> bool:
        reading = await self.probe.read()
        self.last_reading = reading
        result = bool(self.predicate(reading))
        self.logger.debug(f"{self.description}: {result} (reading={reading!r})")
        return result

    def __repr__(self) -> str:
        return f"Observer({self.description!r})"


def _snapshot(reading: Any) -> ServiceSnapshot:
    if not isinstance(reading, ServiceSnapshot):
        raise ProtocolError(f"Expected a service snapshot, got {type(reading).__name__}")
    return reading


def service_at_commit(probe: Probe, services: Iterable[str], commit: str) -> Observer:
    """Every named service has a Running entry at ``commit``.

    Partial convergence (some services updated, some not) is not success.
    """
    names = list(services)
    if not names:
        raise ValueError("service_at_commit needs at least one service name")

    def predicate(reading: Any) -> bool:
        snapshot = _snapshot(reading)
        return all(
            snapshot.has(name, ServiceStatus.RUNNING, commit) for name in names
        )

    return Observer(
        probe, predicate, f"services {', '.join(names)} running at commit {commit}"
    )


def release_held_by_lock(
    probe: Probe, service: str, old_commit: str, new_commit: str
) -> Observer:
    """New release Downloaded while the old one is still Running."""

    def predicate(reading: Any) -> bool:
        snapshot = _snapshot(reading)
        return snapshot.has(service, ServiceStatus.DOWNLOADED, new_commit) and snapshot.has(
            service, ServiceStatus.RUNNING, old_commit
        )

    return Observer(
        probe,
        predicate,
        f"{service} downloaded at {new_commit} while {old_commit} keeps running",
    )


def target_state_matches(
    probe: Probe,
    requested: Union[TargetState, Mapping[str, str]],
    fields: Optional[Iterable[str]] = None,
) -> Observer:
    """Read-back supervisor config equals the requested values on ``fields``."""
    config = requested.local.config if isinstance(requested, TargetState) else dict(requested)
    keys = list(config.keys()) if fields is None else list(fields)

    def predicate(reading: Any) -> bool:
        if not isinstance(reading, TargetState):
            raise ProtocolError(f"Expected a target state, got {type(reading).__name__}")
        return not subset_mismatches(config, reading.local.config, keys)

    return Observer(probe, predicate, f"target state config {', '.join(keys)} applied")


def log_contains(probe: Probe, positive: str, negative: Optional[str] = None) -> Observer:
    """``positive`` appears in the logs and ``negative`` (if given) does not."""

    def predicate(reading: Any) -> bool:
        lines = reading.splitlines() if isinstance(reading, str) else list(reading)
        return lines_contain(lines, positive, negative)

    description = f"logs contain {positive!r}"
    if negative:
        description += f" without {negative!r}"
    return Observer(probe, predicate, description)


def output_equals(probe: Probe, expected: Any, description: Optional[str] = None) -> Observer:
    """Probe reading equals ``expected``."""
    return Observer(
        probe,
        lambda reading: reading == expected,
        description or f"{probe.description} == {expected!r}",
    )


def register_equals(probe: Probe, expected: str, register: str = "register") -> Observer:
    """Hardware register/pin reading equals the encoded ``expected`` value."""
    return output_equals(probe, expected, f"{register} reads {expected!r}")


def _path_probe(shell: ShellExecutor, device: Device, path: str) -> ShellProbe:
    quoted = shlex.quote(path)
    return ShellProbe(shell, device, f"[ -e {quoted} ] && echo present || echo absent")


def file_present(shell: ShellExecutor, device: Device, path: str) -> Observer:
    return output_equals(_path_probe(shell, device, path), "present", f"{path} exists")


def file_absent(shell: ShellExecutor, device: Device, path: str) -> Observer:
    """``path`` is gone; used with a marker file to detect a completed reboot."""
    return output_equals(_path_probe(shell, device, path), "absent", f"{path} removed")


def supervisor_version_equals(probe: Probe, version: str) -> Observer:
    return output_equals(probe, version, f"supervisor version {version}")


def supervisor_ready(probe: Probe) -> Observer:
    """Supervisor answers /ping."""
    return Observer(probe, bool, "supervisor responding to ping")


def modems_detected(probe: Probe) -> Observer:
    """ModemManager lists at least one modem."""
    return Observer(
        probe,
        lambda reading: "No modems were found" not in reading,
        "modems detected",
    )
