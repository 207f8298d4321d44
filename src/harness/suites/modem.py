"""Cellular suite: attach each configured modem and ping over its bearer."""

import asyncio
import json
from functools import partial
from pathlib import Path
from typing import Any

from harness.config import load_modem_config
from harness.services.environment import DeviceEnvironment
from harness.services.observers import modems_detected
from harness.services.scenario import Scenario, ScenarioContext, Suite
from harness.services.transport import ShellProbe
from harness.utils.errors import ProtocolError

PING_COUNT = 10


def parse_json(output: str, what: str) -> Any:
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Unexpected {what} output: {output!r}") from e


async def modem_test(env: DeviceEnvironment, modem_type: str, ctx: ScenarioContext) -> None:
    host = partial(env.shell.execute_in_host_os, device=env.device)
    ctx.comment("Starting Modem Tests...")

    config = load_modem_config(Path(env.config.modem_config))
    ctx.is_(
        modem_type in config.modems,
        True,
        f"Check if {modem_type} is a supported modem.",
    )

    await ctx.wait_for(
        modems_detected(
            ShellProbe(env.shell, env.device, "mmcli --scan-modems && mmcli --list-modems")
        ),
        policy=env.policy(),
        description="modem scan",
    )

    models = (
        await host("mmcli --list-modems | awk '{printf \"%s \",$NF}' | sed 's/ *$//g'")
    ).split(" ")
    ctx.is_(modem_type in models, True, f"Check if DUT has a {modem_type} modem.")

    addresses = parse_json(
        await host("mmcli --list-modems -J | jq '.\"modem-list\"'"), "modem list"
    )
    hardware = await asyncio.gather(
        *(host(f"mmcli -m {address} -J | jq '.modem.generic.model' -r") for address in addresses)
    )
    target = next(
        (address for address, model in zip(addresses, hardware) if model == modem_type),
        None,
    )
    ctx.ok(target is not None, f"Resolve modem address of {modem_type}")

    await ctx.action("Enabling modem", host(f"mmcli --modem={target} --enable"))

    async def disconnect() -> None:
        ctx.comment("Disconnecting the modem")
        await host(f"mmcli -m {target} --simple-disconnect && mmcli -m {target} --disable")

    ctx.teardown(disconnect, "disconnect modem")

    network = config.network
    await ctx.action(
        "Connecting modem",
        host(
            f"mmcli -m {target} --simple-connect="
            f"'apn={network.apn},ip-type={network.ip_type}'"
        ),
    )

    modem_data = parse_json(await host(f"mmcli -m {target} -J"), "modem status")
    generic = modem_data.get("modem", {}).get("generic", {})
    ctx.is_(generic.get("state"), "connected", "Check modem is connected to network.")

    bearers = generic.get("bearers", [])
    connected = await asyncio.gather(
        *(
            host(f"mmcli -m {target} -b {bearer} -J | jq '.bearer.status.connected' -r")
            for bearer in bearers
        )
    )
    bearer = next((b for b, state in zip(bearers, connected) if state == "yes"), None)
    ctx.ok(bearer is not None, "Find connected bearer")

    bearer_json = f"mmcli -m {target} -b {bearer} -J"
    ip_address = await host(f"{bearer_json} | jq '.bearer.\"ipv4-config\".address' -r")
    iface = await host(f"{bearer_json} | jq '.bearer.status.interface' -r")

    await host(f"mmcli --modem={target} --bearer={bearer}")
    await ctx.action(f"Bringing up {iface}", host(f"ip link set {iface} up"))
    await host(f"ip addr add {ip_address}/32 dev {iface}")
    await host(f"ip link set dev {iface} arp off")
    await host(f"ip route add default dev {iface} metric 200")

    ping = await host(f"ping -4 -c {PING_COUNT} -I {iface} {network.test_url}")
    ctx.ok(
        f"{PING_COUNT} packets transmitted, {PING_COUNT} packets received" in ping,
        f"ip address {network.test_url} should respond over {iface}",
    )


def build_suite(env: DeviceEnvironment) -> Suite:
    """One scenario per modem listed in the MODEMS setting."""
    return Suite(
        title="Cellular tests",
        device_uuid=env.config.device_uuid,
        scenarios=[
            Scenario(f"Modem test - {modem_type}", partial(modem_test, env, modem_type))
            for modem_type in env.config.modems
        ],
    )
