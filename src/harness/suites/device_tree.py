"""Device tree suite: dtoverlay/dtparam applied through the supervisor API."""

from functools import partial

from harness.models.state import LocalState, TargetState
from harness.services.environment import DeviceEnvironment
from harness.services.observers import file_absent, register_equals, supervisor_ready
from harness.services.scenario import Scenario, ScenarioContext, Suite
from harness.services.transport import HttpProbe, ShellProbe

PIN = 4
REBOOT_MARKER = "/tmp/reboot-check"
CONFIG_TXT = "/mnt/boot/config.txt"

DTPARAM = '"i2c_arm=on","spi=on","audio=on","foo=bar","level=42"'

# Once the overlay claims the pin, sysfs no longer exposes it; debugfs still does
PIN_LEVEL_THROUGH_DEBUG = (
    "(mountpoint -q /sys/kernel/debug || mount -t debugfs none /sys/kernel/debug) && "
    f"grep -m1 'gpio-{PIN} ' /sys/kernel/debug/gpio | grep -oE ' (hi|lo)' | tr -d ' '"
)


def config_txt_values(key: str) -> str:
    """Command printing every ``key=`` line of config.txt as a quoted, comma-joined list."""
    return (
        f"grep '^{key}=' {CONFIG_TXT} | sed 's/^{key}=//' | "
        "sed 's/.*/\"&\"/' | paste -sd, -"
    )


def build_target_state(direction: str) -> TargetState:
    return TargetState(
        local=LocalState(
            name="local",
            config={
                "HOST_CONFIG_dtoverlay": (
                    f'"gpio-key,gpio={PIN},active_low=0,gpio_pull={direction}"'
                ),
                "HOST_CONFIG_dtparam": DTPARAM,
                "SUPERVISOR_PERSISTENT_LOGGING": "true",
                "SUPERVISOR_LOCAL_MODE": "true",
            },
            apps={},
        )
    )


async def apply_supervisor_config(
    env: DeviceEnvironment, ctx: ScenarioContext, direction: str
) -> TargetState:
    """Write the device tree target state and wait for the device to come back."""
    # the supervisor and SSH are unreachable for a while around the reboot
    tolerant = env.policy().tolerant()
    ping = supervisor_ready(HttpProbe.ping(env.supervisor))

    await ctx.wait_for(ping, policy=tolerant, description="supervisor API to start")

    target_state = build_target_state(direction)
    await ctx.action(
        "Placing reboot marker",
        env.shell.execute_in_host_os(f"touch {REBOOT_MARKER}", env.device),
    )

    response = await ctx.action(
        "Applying dtoverlay & dtparam through the supervisor API (reboots the device)",
        env.supervisor.set_target_state(target_state),
        reboots=env.device,
    )
    ctx.same(
        response,
        {"status": "success", "message": "OK"},
        "DToverlay & DTparam configured successfully through Supervisor API",
    )

    ctx.comment("Waiting for DUT to come back online after reboot...")
    await ctx.wait_for(file_absent(env.shell, env.device, REBOOT_MARKER), policy=tolerant)

    # the device may come back on another address
    ip = await env.device.resolve()
    ctx.comment(f"Device re-resolved to {ip}")

    ctx.comment("Waiting for supervisor to be ready after reboot...")
    await ctx.wait_for(ping, policy=tolerant)
    return target_state


async def dtoverlay_and_dtparam(env: DeviceEnvironment, ctx: ScenarioContext) -> None:
    host = partial(env.shell.execute_in_host_os, device=env.device)

    await host(f"echo {PIN} >/sys/class/gpio/export")
    ctx.teardown(
        partial(host, f"[ ! -e /sys/class/gpio/gpio{PIN} ] || echo {PIN} >/sys/class/gpio/unexport"),
        "release GPIO pin",
    )
    initial = await host(f"cat /sys/class/gpio/gpio{PIN}/value")

    if initial == "0":
        ctx.equal(initial, "0", f"Pin {PIN} was Low when the test started")
        direction, expected_level = "up", "hi"
    else:
        ctx.equal(initial, "1", f"Pin {PIN} is High as expected")
        direction, expected_level = "down", "lo"

    await host(f"echo {PIN} >/sys/class/gpio/unexport")
    target_state = await apply_supervisor_config(env, ctx, direction)

    level = register_equals(
        ShellProbe(env.shell, env.device, PIN_LEVEL_THROUGH_DEBUG),
        expected_level,
        register=f"gpio-{PIN}",
    )
    ctx.ok(
        await level(),
        f"Pin {PIN} is set to {'High' if direction == 'up' else 'Low'} after applying dtoverlay "
        f"(read {level.last_reading!r})",
    )

    requested = target_state.local.config
    current = (await env.supervisor.get_target_state()).local.config
    ctx.equal(
        current.get("HOST_CONFIG_dtoverlay"),
        requested["HOST_CONFIG_dtoverlay"],
        "DToverlay successfully set in target state",
    )
    ctx.equal(
        current.get("HOST_CONFIG_dtparam"),
        requested["HOST_CONFIG_dtparam"],
        "DTparam successfully set in target state",
    )

    ctx.equal(
        await host(config_txt_values("dtoverlay")),
        requested["HOST_CONFIG_dtoverlay"],
        "DToverlay successfully configured in the config.txt",
    )
    ctx.equal(
        await host(config_txt_values("dtparam")),
        requested["HOST_CONFIG_dtparam"],
        "DTparam successfully configured in the config.txt",
    )


def build_suite(env: DeviceEnvironment) -> Suite:
    return Suite(
        title="Device Tree tests",
        device_uuid=env.config.device_uuid,
        scenarios=[
            Scenario("DToverlay & DTparam tests", partial(dtoverlay_and_dtparam, env)),
        ],
    )
