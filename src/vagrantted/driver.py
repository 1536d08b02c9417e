"""VM driver facade.

The ordered context only talks to the ``Driver``/``Machine``/``Snapshot``
protocols below. ``VagrantDriver`` implements them on top of the ``vagrant``
command line, so any provider vagrant supports (VMware, VirtualBox, libvirt)
can back a test run.
"""

import os
import shlex
from logging import getLogger
from typing import Protocol

import aiofiles
import aiofiles.os

from ._async_vagrant import Vagrant
from .config import DriverConfig
from .errors import DriverError, NotFound, ScriptError


class Snapshot(Protocol):
    name: str

    async def revert(self) -> None: ...

    async def remove(self) -> None: ...


class Machine(Protocol):
    name: str
    platform: str

    async def find_snapshot(self, name: str) -> Snapshot | None: ...

    async def find_snapshot_strict(self, name: str) -> Snapshot: ...

    async def create_snapshot(self, name: str) -> None: ...

    async def start(self, gui: bool | None = None) -> None: ...

    async def stop(self) -> None: ...

    async def script(self, path: str) -> str: ...

    async def copy(self, local_path: str) -> None: ...

    async def get_env(self) -> dict[str, str]: ...

    async def set_env(self, key: str, value: str) -> None: ...


class Driver(Protocol):
    async def find_machine(self, name: str) -> Machine: ...


def parse_snapshot_list(output: str) -> list[str]:
    """Extract snapshot names from ``vagrant snapshot list`` output.

    Status lines (``==> default: ...``) are vagrant chatter, not names.
    """
    names = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("==>"):
            continue
        names.append(line)
    return names


def parse_env(output: str) -> dict[str, str]:
    env = {}
    for line in output.splitlines():
        key, sep, value = line.rstrip("\r").partition("=")
        if sep and key:
            env[key] = value
    return env


class VagrantSnapshot:
    def __init__(self, machine: "VagrantMachine", name: str):
        self.machine = machine
        self.name = name

    def __repr__(self) -> str:
        return f"VagrantSnapshot({self.machine.name!r}, {self.name!r})"

    async def revert(self) -> None:
        self.machine.logger.info(f"Reverting {self.machine.name} to {self.name}")
        await self.machine._check(
            ["snapshot", "restore", self.machine.name, self.name, "--no-provision"]
        )

    async def remove(self) -> None:
        self.machine.logger.info(f"Removing snapshot {self.name} of {self.machine.name}")
        await self.machine._check(["snapshot", "delete", self.machine.name, self.name])


class VagrantMachine:
    logger = getLogger(__name__)

    def __init__(self, vagrant: Vagrant, name: str, platform: str, config: DriverConfig):
        self.vagrant = vagrant
        self.name = name
        self.platform = platform
        self.config = config

    def __repr__(self) -> str:
        return f"VagrantMachine({self.name!r}, platform={self.platform!r})"

    async def _check(self, args, extra_env=None):
        return await self.vagrant.check_command(
            args, timeout=self.config.command_timeout, extra_env=extra_env
        )

    async def _remote(self, command: str, shell: str | None = None):
        if self.platform == "win32":
            args = ["winrm", self.name, "--command", command]
            if shell is not None:
                args += ["--shell", shell]
        else:
            args = ["ssh", self.name, "--no-tty", "--command", command]
        return await self.vagrant._run_vagrant_command_async(
            args, timeout=self.config.command_timeout
        )

    async def list_snapshots(self) -> list[str]:
        result = await self._check(["snapshot", "list", self.name])
        return parse_snapshot_list(result["stdout"])

    async def find_snapshot(self, name: str) -> VagrantSnapshot | None:
        if name in await self.list_snapshots():
            return VagrantSnapshot(self, name)
        return None

    async def find_snapshot_strict(self, name: str) -> VagrantSnapshot:
        snapshot = await self.find_snapshot(name)
        if snapshot is None:
            raise NotFound("snapshot", f"{self.name}:{name}")
        return snapshot

    async def create_snapshot(self, name: str) -> None:
        self.logger.info(f"Creating snapshot {name} of {self.name}")
        await self._check(["snapshot", "save", self.name, name])

    async def start(self, gui: bool | None = None) -> None:
        self.logger.info(f"Starting {self.name} (gui={bool(gui)})")
        # The Vagrantfile reads TED_GUI to decide on a visible console.
        await self._check(
            ["up", self.name, "--no-provision"],
            extra_env={"TED_GUI": "true" if gui else "false"},
        )

    async def stop(self) -> None:
        self.logger.info(f"Stopping {self.name}")
        await self._check(["halt", self.name])

    async def script(self, path: str) -> str:
        """Run a script on the guest and return its stdout.

        ``path`` is either a local script file, whose contents are sent to the
        guest, or a command line run as is.
        """
        shell = None
        if await aiofiles.os.path.isfile(path):
            async with aiofiles.open(path, "r") as f:
                command = await f.read()
            if path.endswith(".bat"):
                shell = "cmd"
            self.logger.info(f"Running script {path} on {self.name}")
        else:
            command = path
            self.logger.info(f"Running command {command!r} on {self.name}")

        try:
            result = await self._remote(command, shell=shell)
        except TimeoutError:
            raise
        except (OSError, RuntimeError) as e:
            raise ScriptError(f"Could not run {path!r} on {self.name}: {e}") from e

        if result["returncode"] != 0:
            raise ScriptError(
                f"Script {path!r} exited with {result['returncode']} on {self.name}",
                command=[path],
                returncode=result["returncode"],
                stdout=result["stdout"],
                stderr=result["stderr"],
            )
        return result["stdout"]

    async def copy(self, local_path: str) -> None:
        if not await aiofiles.os.path.exists(local_path):
            raise DriverError(f"Cannot copy missing file {local_path} to {self.name}")
        destination = os.path.basename(local_path)
        self.logger.info(f"Copying {local_path} to {self.name}:{destination}")
        await self._check(["upload", local_path, destination, self.name])

    async def get_env(self) -> dict[str, str]:
        command = "cmd /c set" if self.platform == "win32" else "env"
        result = await self._remote(command)
        if result["returncode"] != 0:
            raise DriverError(
                f"Could not read environment of {self.name}",
                command=[command],
                returncode=result["returncode"],
                stdout=result["stdout"],
                stderr=result["stderr"],
            )
        return parse_env(result["stdout"])

    async def set_env(self, key: str, value: str) -> None:
        self.logger.info(f"Setting {key}={value} on {self.name}")
        if self.platform == "win32":
            # setx has no escape for '"'; names must be a single bare word.
            if not key or '"' in value or any(c in key for c in ' "='):
                raise DriverError(f"Cannot set {key!r}={value!r} with setx on {self.name}")
            command = f'setx {key} "{value}"'
        else:
            line = shlex.quote(f"{key}={value}")
            command = f"echo {line} | sudo tee -a /etc/environment > /dev/null"
        result = await self._remote(command)
        if result["returncode"] != 0:
            raise DriverError(
                f"Could not set {key} on {self.name}",
                command=[command],
                returncode=result["returncode"],
                stdout=result["stdout"],
                stderr=result["stderr"],
            )


class VagrantDriver:
    logger = getLogger(__name__)

    def __init__(self, config: DriverConfig | None = None, vagrant: Vagrant | None = None):
        self.config = config or DriverConfig()
        self.vagrant = vagrant or Vagrant(root=self.config.vagrant_root)

    async def find_machine(self, name: str) -> VagrantMachine:
        vm_names = await self.vagrant.get_vm_names()
        self.logger.debug(f"Machines in {self.config.vagrant_root}: {vm_names}")
        if name not in vm_names:
            raise NotFound("machine", name)
        return VagrantMachine(self.vagrant, name, self.config.platform_for(name), self.config)
