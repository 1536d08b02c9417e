"""
Pytest configuration and fixtures for vagrant-ted tests.

Test Categories:
- unit: Fast unit tests with no external dependencies
- vm_required: Tests that drive real VMs through vagrant (slow)
"""

import asyncio

import pytest

from vagrantted.errors import NotFound

pytest_plugins = ["vagrantted.pytest_plugin", "pytester"]


def pytest_configure(config):
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "unit: Fast unit tests with no external dependencies"
    )


class FakeSnapshot:
    def __init__(self, machine, name):
        self.machine = machine
        self.name = name

    async def revert(self):
        await self.machine._call("revert", self.name)

    async def remove(self):
        await self.machine._call("remove_snapshot", self.name)
        self.machine.snapshot_names.discard(self.name)


class FakeMachine:
    """In-memory machine that records every driver call in order.

    failures maps an operation name, or an (operation, argument) tuple, to the
    exception that call should raise.
    """

    def __init__(self, name="vm1", platform="linux", snapshots=("clean",), calls=None):
        self.name = name
        self.platform = platform
        self.snapshot_names = set(snapshots)
        self.calls = calls if calls is not None else []
        self.failures = {}
        self.outputs = {}
        self.env = {"PATH": "/usr/bin"}
        self.max_active = 0
        self._active = 0

    async def _call(self, op, *args):
        self._active += 1
        self.max_active = max(self.max_active, self._active)
        try:
            self.calls.append((op, *args))
            # Yield so overlapping calls would be observable.
            await asyncio.sleep(0)
            failure = self.failures.get((op, *args), self.failures.get(op))
            if failure is not None:
                raise failure
        finally:
            self._active -= 1

    async def find_snapshot(self, name):
        await self._call("find_snapshot", name)
        if name in self.snapshot_names:
            return FakeSnapshot(self, name)
        return None

    async def find_snapshot_strict(self, name):
        await self._call("find_snapshot_strict", name)
        if name not in self.snapshot_names:
            raise NotFound("snapshot", name)
        return FakeSnapshot(self, name)

    async def create_snapshot(self, name):
        await self._call("create_snapshot", name)
        self.snapshot_names.add(name)

    async def start(self, gui=None):
        await self._call("start", gui)

    async def stop(self):
        await self._call("stop")

    async def script(self, path):
        await self._call("script", path)
        return self.outputs.get(path, "")

    async def copy(self, local_path):
        await self._call("copy", local_path)

    async def get_env(self):
        await self._call("get_env")
        return dict(self.env)

    async def set_env(self, key, value):
        await self._call("set_env", key, value)
        self.env[key] = value


class FakeDriver:
    def __init__(self, *machines, calls=None):
        self.calls = calls if calls is not None else []
        self.machines = {}
        for machine in machines:
            machine.calls = self.calls
            self.machines[machine.name] = machine

    async def find_machine(self, name):
        self.calls.append(("find_machine", name))
        await asyncio.sleep(0)
        if name not in self.machines:
            raise NotFound("machine", name)
        return self.machines[name]


@pytest.fixture
def machine():
    return FakeMachine()


@pytest.fixture
def driver(machine):
    return FakeDriver(machine)


BOOTSTRAP_CALLS = [
    ("find_machine", "vm1"),
    ("find_snapshot_strict", "clean"),
    ("revert", "clean"),
    ("start", False),
]
