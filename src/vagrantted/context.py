"""Ordered VM context.

An ``OrderedContext`` owns one machine and a pipeline of asynchronous steps.
Every builder method appends a step and returns the context, so a test reads
as a single fluent sequence::

    ctx = vm("ubuntu:clean").run("echo hi").snapshot("after-echo")
    await ctx.cleanup()

Steps run strictly one after another. The first failure skips every later
step and is what ``promise()``/``settle()`` hands back, except for the
phases appended by ``cleanup()``, which always run.
"""

import asyncio
import inspect
from logging import getLogger
from typing import Any, Awaitable, Callable

from .config import ContextOptions
from .driver import Driver, Machine, VagrantDriver
from .errors import ContextClosed, UnsupportedPlatform
from .tags import MachineTag

LAST_SNAPSHOT = "last"

SMOKE_TESTS = ("git version", "npm version", "env | grep KALABOX_DEV")

Step = Callable[[Any], Any]


def _resolved(value: Any = None) -> asyncio.Future:
    future = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future


class OrderedContext:
    logger = getLogger(__name__)

    machine: Machine | None

    def __init__(
        self,
        tag: str | MachineTag,
        options: ContextOptions | None = None,
        driver: Driver | None = None,
    ):
        self.tag = tag if isinstance(tag, MachineTag) else MachineTag.parse(tag)
        self.options = options or ContextOptions()
        self.driver = driver if driver is not None else VagrantDriver()
        self.machine = None
        # Snapshots taken by this context, removed again by cleanup().
        self.snapshots: list[str] = []
        self._closed = False
        self._pipeline: asyncio.Future = _resolved()
        self.chain(self._bootstrap)

    def __repr__(self) -> str:
        return f"OrderedContext({str(self.tag)!r})"

    async def _bootstrap(self, _):
        self.logger.info(f"{self.tag}: locating machine {self.tag.machine}")
        machine = await self.driver.find_machine(self.tag.machine)
        self.machine = machine
        snapshot = await machine.find_snapshot_strict(self.tag.snapshot)
        await snapshot.revert()
        await machine.start(gui=self.options.gui)

    async def _guard(self, awaitable: Awaitable[Any]) -> Any:
        if self.options.step_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.options.step_timeout)

    async def _link(self, previous: Awaitable[Any], step: Step) -> Any:
        result = await previous
        name = getattr(step, "__name__", repr(step))
        self.logger.debug(f"{self.tag}: running step {name}")
        outcome = step(result)
        if inspect.isawaitable(outcome):
            outcome = await self._guard(outcome)
        return outcome

    def chain(self, step: Step) -> "OrderedContext":
        """Append ``step`` to the pipeline.

        ``step`` receives the previous step's result and may be a plain
        function or a coroutine function. It starts only once every earlier
        step has succeeded; if one failed, it is skipped and the failure is
        passed along unchanged.

        ``ContextOptions.step_timeout`` only bounds the awaitable a step
        returns. A plain function that blocks is not interrupted.
        """
        if self._closed:
            raise ContextClosed(f"{self.tag}: cannot chain after cleanup()")
        previous = self._pipeline
        self._pipeline = asyncio.get_running_loop().create_task(
            self._link(previous, step)
        )
        return self

    def snapshot(self, id: str) -> "OrderedContext":
        async def create_snapshot(_):
            await self.machine.create_snapshot(id)
            # Only recorded once the snapshot exists.
            self.snapshots.append(id)

        return self.chain(create_snapshot)

    def revert(self, id: str) -> "OrderedContext":
        async def revert_snapshot(_):
            snapshot = await self.machine.find_snapshot_strict(id)
            await snapshot.revert()

        return self.chain(revert_snapshot)

    def start(self) -> "OrderedContext":
        async def start_machine(_):
            await self.machine.start()

        return self.chain(start_machine)

    def restart(self) -> "OrderedContext":
        async def restart_machine(_):
            await self.machine.stop()
            await self.machine.start()

        return self.chain(restart_machine)

    def run(self, script: str) -> "OrderedContext":
        async def run_script(_):
            return await self.machine.script(script)

        return self.chain(run_script)

    def _script_path(self, *parts: str) -> str:
        return "/".join([self.options.scripts_dir.rstrip("/"), *parts])

    async def _build_deps(self, machine: Machine) -> None:
        platform = machine.platform
        if platform in ("darwin", "linux"):
            await machine.script(self._script_path("build", f"build_deps_{platform}.sh"))
        elif platform == "win32":
            await machine.copy(self._script_path("build", "build_deps_win32.ps1"))
            await machine.script(self._script_path("build", "build_deps_win32.bat"))
        else:
            raise UnsupportedPlatform(platform, str(self.tag))

    async def _run_installer(self, machine: Machine) -> None:
        platform = machine.platform
        if platform in ("darwin", "linux"):
            await machine.script(self._script_path("install", "install_posix.sh"))
        elif platform == "win32":
            await machine.script(self._script_path("install", "install_win32.bat"))
        else:
            raise UnsupportedPlatform(platform, str(self.tag))

    def install(self) -> "OrderedContext":
        """Build dependencies, install kalabox and check that it runs."""

        async def install_kalabox(_):
            machine = self.machine
            self.logger.info(f"{self.tag}: installing on {machine.platform}")
            await machine.set_env("KALABOX_DEV", "true")
            await self._build_deps(machine)
            for command in SMOKE_TESTS:
                await machine.script(command)
            await self._run_installer(machine)
            await machine.script("kbox version")
            if self.options.install_snapshot is not None:
                await machine.create_snapshot(self.options.install_snapshot)
                self.snapshots.append(self.options.install_snapshot)

        return self.chain(install_kalabox)

    def get_env(self, handler: Callable[[dict[str, str]], Any]) -> "OrderedContext":
        async def read_env(_):
            env = await self.machine.get_env()
            value = handler(env)
            if inspect.isawaitable(value):
                value = await value
            return value

        return self.chain(read_env)

    def set_env(self, key: str, value: str) -> "OrderedContext":
        async def write_env(_):
            await self.machine.set_env(key, value)

        return self.chain(write_env)

    def promise(self) -> asyncio.Future:
        """Hand out the pending pipeline and start a fresh, empty one."""
        pipeline = self._pipeline
        self._pipeline = _resolved()
        return pipeline

    def settle(self) -> asyncio.Future:
        """Same as promise(); the pipeline is taken when called, not when awaited."""
        return self.promise()

    async def _stop_machine(self) -> None:
        await self.machine.stop()

    async def _rotate_last_snapshot(self) -> None:
        last = await self.machine.find_snapshot(LAST_SNAPSHOT)
        if last is not None:
            await last.remove()
        await self.machine.create_snapshot(LAST_SNAPSHOT)

    async def _remove_snapshots(self) -> None:
        while self.snapshots:
            snapshot = await self.machine.find_snapshot_strict(self.snapshots[0])
            await snapshot.remove()
            self.snapshots.pop(0)

    async def _cleanup(self, previous: Awaitable[Any]) -> Any:
        error: Exception | None = None
        result = None
        try:
            result = await previous
        except Exception as e:
            self.logger.info(f"{self.tag}: pipeline failed, cleaning up: {e!r}")
            error = e

        if self.machine is None:
            self.logger.warning(f"{self.tag}: machine was never located, nothing to clean up")
        else:
            phases = (
                self._stop_machine,
                self._rotate_last_snapshot,
                self._remove_snapshots,
            )
            for phase in phases:
                try:
                    await self._guard(phase())
                except Exception as e:
                    self.logger.error(f"{self.tag}: cleanup phase {phase.__name__} failed: {e!r}")
                    # Last failure wins; the superseded one stays reachable.
                    if error is not None and e is not error and e.__context__ is None:
                        e.__context__ = error
                    error = e

        if error is not None:
            raise error
        return result

    def cleanup(self) -> asyncio.Future:
        """Stop the machine, rotate the ``last`` snapshot and drop our snapshots.

        The three phases run whatever happened before and whatever happens in
        each other. When several things fail, the failure that happened last
        is raised. The context accepts no more steps afterwards.
        """
        if self._closed:
            raise ContextClosed(f"{self.tag}: cleanup() already called")
        previous = self._pipeline
        self._pipeline = asyncio.get_running_loop().create_task(self._cleanup(previous))
        self._closed = True
        return self.promise()


def vm(
    tag: str,
    options: ContextOptions | None = None,
    driver: Driver | None = None,
) -> OrderedContext:
    return OrderedContext(tag, options, driver)


def install(
    tag: str,
    options: ContextOptions | None = None,
    driver: Driver | None = None,
) -> OrderedContext:
    return OrderedContext(tag, options, driver).install()
