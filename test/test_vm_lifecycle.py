"""
End-to-end run against real machines.

Tags come from --ted-vm / TED_VMS and must name a machine in the Vagrantfile
under TED_VAGRANT_ROOT plus a snapshot it already has, e.g. ``ubuntu:clean``.
Without tags these tests are skipped.
"""

import pytest

from vagrantted import ContextOptions, NotFound, vm


@pytest.mark.vm_required
@pytest.mark.asyncio
async def test_run_and_snapshot(ted_target):
    """Boot from the tagged snapshot, run a command, snapshot and clean up."""
    ctx = vm(ted_target.tag, ContextOptions(step_timeout=900))
    output = await ctx.run("echo hello from ted").snapshot("ted-after-echo").settle()
    assert "hello from ted" in output

    await ctx.cleanup()
    assert ctx.snapshots == []


@pytest.mark.vm_required
@pytest.mark.asyncio
async def test_env_roundtrip(ted_target):
    ctx = vm(ted_target.tag, ContextOptions(step_timeout=900))
    ctx.set_env("TED_CHECK", "1").restart().get_env(lambda env: env.get("TED_CHECK"))
    try:
        assert await ctx.settle() == "1"
    finally:
        await ctx.cleanup()


@pytest.mark.vm_required
@pytest.mark.asyncio
async def test_missing_snapshot_is_reported(ted_target):
    ctx = vm(ted_target.tag, ContextOptions(step_timeout=900)).revert("ted-no-such-snapshot")
    with pytest.raises(NotFound):
        await ctx.cleanup()
