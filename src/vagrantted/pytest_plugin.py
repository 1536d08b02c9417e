"""
Pytest plugin that runs a test once per configured machine tag.

Load it from a conftest with ``pytest_plugins = ["vagrantted.pytest_plugin"]``
and request the ``ted_target`` fixture:

    @pytest.mark.asyncio
    async def test_boots(ted_target):
        await vm(ted_target.tag).run("uname -a").cleanup()

Tags come from ``--ted-vm`` (repeatable) or ``TED_VMS``; the ref shown in test
ids comes from ``--ted-ref`` or ``TED_REF``.
"""

from logging import getLogger

import pytest

from .config import TedConfig, TedTarget

logger = getLogger(__name__)

ted_config_key = pytest.StashKey[TedConfig]()


def targets_for(config: TedConfig) -> list[TedTarget]:
    return [TedTarget(tag=tag, ref=config.ref) for tag in config.vms]


def pytest_addoption(parser):
    group = parser.getgroup("ted", "VM integration tests")
    group.addoption(
        "--ted-ref",
        default=None,
        help="Source ref under test, shown in test ids (default: $TED_REF or HEAD)",
    )
    group.addoption(
        "--ted-vm",
        action="append",
        default=None,
        help="Machine tag <machine>:<snapshot> to run against; may be repeated",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "vm_required: Tests that drive real VMs through vagrant (slow)"
    )
    overrides = {}
    ref = config.getoption("--ted-ref", default=None)
    if ref is not None:
        overrides["ref"] = ref
    vms = config.getoption("--ted-vm", default=None)
    if vms:
        overrides["vms"] = vms
    ted_config = TedConfig(**overrides)
    logger.debug(f"ted configuration: {ted_config}")
    config.stash[ted_config_key] = ted_config


def pytest_generate_tests(metafunc):
    if "ted_target" not in metafunc.fixturenames:
        return
    targets = targets_for(metafunc.config.stash[ted_config_key])
    metafunc.parametrize(
        "ted_target", targets, ids=[target.title for target in targets]
    )


@pytest.fixture
def ted_config(request) -> TedConfig:
    return request.config.stash[ted_config_key]
