import asyncio
import functools
import os
from logging import getLogger
from typing import Any, Callable, TypeVar, TypedDict

from inspect_ai.util import trace_action
from vagrant import Vagrant as BaseVagrant

from .errors import DriverError

T = TypeVar("T")

TRACE_NAME = "vagrant_ted_driver"

# Seconds to wait for a terminated vagrant process before killing it.
TERMINATE_GRACE = 5.0


class CommandResult(TypedDict):
    returncode: int
    stdout: str
    stderr: str


async def _run_in_executor(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a function in the thread pool executor."""
    return await asyncio.get_event_loop().run_in_executor(
        None, functools.partial(func, *args, **kwargs)
    )


class Vagrant(BaseVagrant):
    logger = getLogger(__name__)

    async def get_vm_names(self) -> list[str]:
        """Get list of VM names defined in the Vagrantfile."""
        try:
            status_info = await _run_in_executor(self.status)
        except Exception as e:
            raise DriverError(f"vagrant status failed: {e}") from e
        vm_names = [vm.name for vm in status_info]
        self.logger.debug(f"get_vm_names extracted names: {vm_names}")
        return vm_names

    async def _run_vagrant_command_async(
        self, args, timeout: float | None = None, extra_env: dict[str, str] | None = None
    ) -> CommandResult:
        """
        Run a vagrant command and return everything, not just stdout.

        args: A sequence of arguments to a vagrant command line.
        e.g. ['snapshot', 'save', 'my_vm_name', 'clean']. None entries are dropped.
        extra_env: Variables layered over the Vagrant environment for this call only.
        """
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        command = self._make_vagrant_command(args)
        self.logger.debug(f"Vagrant command: {command}")
        self.logger.debug(f"Working directory: {self.root}")

        env = self.env
        if extra_env:
            env = {**(self.env or os.environ), **extra_env}
            self.logger.debug(f"Extra environment variables: {extra_env}")

        # Only the subcommand is traced; guest commands may contain '%'.
        subcommand = command[1] if len(command) > 1 else ""
        with trace_action(self.logger, TRACE_NAME, f"vagrant {subcommand}"):
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.root,
                env=env,
            )

            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(), timeout=timeout
                )
            except asyncio.TimeoutError:
                await self._terminate(process, command)
                raise TimeoutError(
                    f"Vagrant command timed out after {timeout} seconds: {command}"
                ) from None

        assert process.returncode is not None, (
            "returncode should be set after communicate()"
        )

        stdout_str = stdout.decode("utf-8") if stdout else ""
        stderr_str = stderr.decode("utf-8") if stderr else ""

        return {
            "stdout": stdout_str,
            "stderr": stderr_str,
            "returncode": process.returncode,
        }

    async def _terminate(self, process, command) -> None:
        self.logger.warning(f"Terminating hung vagrant command: {command}")
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE)
        except asyncio.TimeoutError:
            self.logger.error(f"Killing vagrant command after terminate: {command}")
            process.kill()

    async def check_command(
        self, args, timeout: float | None = None, extra_env: dict[str, str] | None = None
    ) -> CommandResult:
        """Like _run_vagrant_command_async, but a nonzero exit raises DriverError."""
        result = await self._run_vagrant_command_async(
            args, timeout=timeout, extra_env=extra_env
        )
        if result["returncode"] != 0:
            self.logger.error(
                f"Vagrant command {args} failed with {result['returncode']}: "
                f"{result['stderr'].strip()}"
            )
            raise DriverError(
                f"Vagrant command failed: {result['stderr'].strip()}",
                command=[arg for arg in args if arg is not None],
                returncode=result["returncode"],
                stdout=result["stdout"],
                stderr=result["stderr"],
            )
        return result
