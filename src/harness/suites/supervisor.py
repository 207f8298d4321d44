"""Supervisor suite: release updates, delta downloads, supervisor reload, update locks."""

import shlex
import shutil
from functools import partial
from pathlib import Path
from typing import Iterable

from harness.services.environment import DeviceEnvironment
from harness.services.observers import (
    log_contains,
    output_equals,
    release_held_by_lock,
    service_at_commit,
    supervisor_version_equals,
)
from harness.services.scenario import Scenario, ScenarioContext, Suite
from harness.services.transport import CloudProbe, ShellProbe

HELLO_WORLD_REPO = "https://github.com/balena-io-examples/balena-python-hello-world.git"
UPDATES_LOCK_REPO = "https://github.com/balena-io-examples/balena-updates-lock.git"

DELTA_DOWNLOAD_MESSAGE = "Downloading delta for image"
REMOVE_SUPERVISOR = (
    "systemctl stop balena-supervisor && balena rm balena_supervisor && "
    "balena rmi -f $(balena images | grep supervisor | awk '{print $3}')"
)


async def clone(env: DeviceEnvironment, repo: str, name: str) -> Path:
    """Fresh clone of ``repo`` under the working directory."""
    target = env.workdir / name
    if target.exists():
        shutil.rmtree(target)
    await env.shell.execute_local(
        f"git clone {shlex.quote(repo)} {shlex.quote(str(target))}"
    )
    return target


async def wait_until_services_running(
    ctx: ScenarioContext,
    env: DeviceEnvironment,
    services: Iterable[str],
    commit: str,
) -> None:
    services = list(services)
    uuid = env.require("device_uuid")
    ctx.comment(
        f"Waiting for device: {uuid} to run services: {services} at commit: {commit}"
    )
    await ctx.wait_for(
        service_at_commit(CloudProbe.service_details(env.cloud, uuid), services, commit),
        policy=env.policy(),
    )


async def provisioning_without_deltas(env: DeviceEnvironment, ctx: ScenarioContext) -> None:
    uuid = env.require("device_uuid")
    application = env.require("application")

    ctx.comment("Cloning repo...")
    source = await clone(env, HELLO_WORLD_REPO, "app")

    first_commit = await ctx.action(
        "Pushing release...", env.cloud.push_release(application, source)
    )
    await wait_until_services_running(ctx, env, ["main"], first_commit)

    await ctx.action(
        "Disabling deltas",
        env.cloud.set_config_variable(uuid, "BALENA_SUPERVISOR_DELTA", 0),
    )

    # a trailing comment is enough to make the next release a delta candidate
    main_py = source / "src" / "main.py"
    await ctx.action(
        "Modifying application source",
        env.shell.execute_local(f"echo '#comment' >> {shlex.quote(str(main_py))}"),
    )

    second_commit = await ctx.action(
        "Pushing release...", env.cloud.push_release(application, source)
    )
    await wait_until_services_running(ctx, env, ["main"], second_commit)

    used_deltas = log_contains(
        CloudProbe.device_logs(env.cloud, uuid), DELTA_DOWNLOAD_MESSAGE
    )
    ctx.is_(
        await used_deltas(),
        False,
        "Device shouldn't use deltas to download new release",
    )


async def supervisor_reload(env: DeviceEnvironment, ctx: ScenarioContext) -> None:
    uuid = env.require("device_uuid")
    application = env.require("application")

    supervisor_version = await env.cloud.get_supervisor_version(uuid)
    ctx.comment(f"Supervisor version {supervisor_version} detected")

    await ctx.action(
        "removing supervisor",
        env.shell.execute_in_host_os(REMOVE_SUPERVISOR, env.device),
    )

    source = await clone(env, HELLO_WORLD_REPO, "original")
    first_commit = await ctx.action(
        "Pushing release...", env.cloud.push_release(application, source)
    )

    update_log = await ctx.action(
        "running update supervisor script...",
        env.shell.execute_in_host_os("update-balena-supervisor", env.device),
    )
    ctx.comment(update_log)

    redownloaded = supervisor_version_equals(
        CloudProbe.supervisor_version(env.cloud, uuid), supervisor_version
    )
    await ctx.wait(redownloaded, policy=env.policy(), description="supervisor re-download")
    ctx.is_(
        redownloaded.last_reading,
        supervisor_version,
        "Supervisor should have same version that it started with",
    )

    ctx.comment("checking supervisor is running again...")
    supervisor_running = await env.shell.execute_in_host_os(
        "balena ps | grep supervisor || true", env.device
    )
    ctx.is_(supervisor_running != "", True, "Supervisor should now be running")

    await wait_until_services_running(ctx, env, ["main"], first_commit)
    ctx.ok(True, "Device should have downloaded services from original app")


async def override_lock(env: DeviceEnvironment, ctx: ScenarioContext) -> None:
    uuid = env.require("device_uuid")
    application = env.require("application")

    ctx.comment("Cloning repo...")
    lock_source = await clone(env, UPDATES_LOCK_REPO, "lock")
    first_commit = await ctx.action(
        "Pushing release...", env.cloud.push_release(application, lock_source)
    )

    # the container may not exist yet while the release is being installed
    lockfile = output_equals(
        ShellProbe(env.shell, env.device, "ls /tmp/balena", container="main"),
        "updates.lock",
        "lockfile created",
    )
    await ctx.wait_for(lockfile, policy=env.policy().tolerant())

    source = await clone(env, HELLO_WORLD_REPO, "original")
    second_commit = await ctx.action(
        "Pushing release...", env.cloud.push_release(application, source)
    )

    ctx.comment("Checking if release is downloaded, but not installed...")
    await ctx.wait_for(
        release_held_by_lock(
            CloudProbe.service_details(env.cloud, uuid), "main", first_commit, second_commit
        ),
        policy=env.policy(),
    )
    ctx.ok(True, "Release should be downloaded, but not running due to lockfile")

    ctx.teardown(
        partial(env.cloud.set_config_variable, uuid, "BALENA_SUPERVISOR_OVERRIDE_LOCK", 0),
        "disable lock override",
    )
    await ctx.action(
        "Enabling lock override",
        env.cloud.set_config_variable(uuid, "BALENA_SUPERVISOR_OVERRIDE_LOCK", 1),
    )

    await wait_until_services_running(ctx, env, ["main"], second_commit)
    ctx.ok(
        True,
        "Second release should now be running, as override lock was enabled",
    )


def build_suite(env: DeviceEnvironment) -> Suite:
    return Suite(
        title="Supervisor test suite",
        device_uuid=env.config.device_uuid,
        scenarios=[
            Scenario("Provisioning without deltas", partial(provisioning_without_deltas, env)),
            Scenario("Supervisor reload test", partial(supervisor_reload, env)),
            Scenario("Override lock test", partial(override_lock, env)),
        ],
    )
