import pytest

from vagrantted.config import TedConfig, TedTarget
from vagrantted.pytest_plugin import targets_for

pytestmark = pytest.mark.unit


def test_targets_for():
    config = TedConfig(ref="abc123", vms=["ubuntu:clean", "win10:fresh"])
    assert targets_for(config) == [
        TedTarget(tag="ubuntu:clean", ref="abc123"),
        TedTarget(tag="win10:fresh", ref="abc123"),
    ]


def test_targets_for_no_vms():
    assert targets_for(TedConfig(ref="HEAD", vms=[])) == []


def test_one_test_per_tag(pytester):
    pytester.makepyfile(
        """
        def test_target(ted_target, ted_config):
            assert ted_target.ref == "abc123"
            assert ted_target.tag in ted_config.vms
        """
    )
    result = pytester.runpytest_subprocess(
        "-p", "vagrantted.pytest_plugin",
        "--ted-ref", "abc123",
        "--ted-vm", "ubuntu:clean",
        "--ted-vm", "win10:fresh",
        "-v",
    )
    result.assert_outcomes(passed=2)
    result.stdout.fnmatch_lines(
        [
            "*test_target?ubuntu:clean#abc123?*PASSED*",
            "*test_target?win10:fresh#abc123?*PASSED*",
        ]
    )


def test_tags_from_environment(pytester, monkeypatch):
    monkeypatch.setenv("TED_VMS", "ubuntu:clean")
    monkeypatch.delenv("TED_REF", raising=False)
    pytester.makepyfile(
        """
        def test_target(ted_target):
            assert ted_target.title == "ubuntu:clean#HEAD"
        """
    )
    result = pytester.runpytest_subprocess("-p", "vagrantted.pytest_plugin")
    result.assert_outcomes(passed=1)


def test_no_tags_skips(pytester, monkeypatch):
    monkeypatch.delenv("TED_VMS", raising=False)
    pytester.makepyfile(
        """
        def test_target(ted_target):
            raise AssertionError("should not run")
        """
    )
    result = pytester.runpytest_subprocess("-p", "vagrantted.pytest_plugin")
    result.assert_outcomes(skipped=1)
