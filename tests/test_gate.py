import pytest

from convtest.dsl import min_version, probe
from convtest.errors import ExecutionFailed, RuntimeEnvironmentError
from convtest.gate import ConditionalGate, GateState, find_version, parse_version


def invoker(stdout=b"", exc=None):
    calls = []

    def invoke(args, entrypoint):
        calls.append((tuple(args), entrypoint))
        if exc is not None:
            raise exc
        return stdout

    invoke.calls = calls
    return invoke


def test_starts_in_probing_state():
    gate = ConditionalGate("t", probe("--x"), invoker())
    assert gate.state is GateState.PROBING


def test_successful_probe_makes_target_applicable():
    invoke = invoker()
    gate = ConditionalGate("t", probe("--metadata=minversion=2.16", "--lua-filter=minversion.lua"), invoke)

    assert gate.resolve() is GateState.APPLICABLE
    assert gate.applicable
    assert invoke.calls == [(("--metadata=minversion=2.16", "--lua-filter=minversion.lua"), None)]


def test_failing_probe_command_skips_with_reason():
    failure = ExecutionFailed(target="probe", message="command failed", exit_code=83)
    gate = ConditionalGate("t", probe("--x", description="pandoc 2.16 or newer"), invoker(exc=failure))

    assert gate.resolve() is GateState.SKIPPED
    assert gate.reason == "pandoc 2.16 or newer failed (exit=83)"


def test_probe_timeout_skips():
    failure = ExecutionFailed(target="probe", message="timed out", timed_out=True)
    gate = ConditionalGate("t", probe("--x"), invoker(exc=failure))

    assert not gate.applicable
    assert "timed out" in gate.reason


def test_probe_runs_only_once():
    invoke = invoker()
    gate = ConditionalGate("t", probe("--x"), invoke)

    gate.resolve()
    gate.resolve()
    assert gate.applicable

    assert len(invoke.calls) == 1


def test_runtime_environment_error_is_not_a_skip():
    gate = ConditionalGate("t", probe("--x"), invoker(exc=RuntimeEnvironmentError(message="no docker")))

    with pytest.raises(RuntimeEnvironmentError):
        gate.resolve()


def test_version_too_old_skips():
    gate = ConditionalGate("t", min_version("2.16"), invoker(stdout=b"pandoc 2.10\nCompiled with pandoc-types 1.21\n"))

    assert gate.resolve() is GateState.SKIPPED
    assert gate.reason == "tool version 2.10 is older than 2.16"


def test_version_probe_runs_version_flag_by_default():
    invoke = invoker(stdout=b"pandoc 3.1.2\n")
    gate = ConditionalGate("t", min_version("2.16", entrypoint="pandoc"), invoke)

    assert gate.applicable
    assert invoke.calls == [(("--version",), "pandoc")]


def test_exact_minimum_version_is_applicable():
    gate = ConditionalGate("t", min_version("2.16"), invoker(stdout=b"pandoc 2.16.0\n"))
    assert gate.applicable


def test_unparseable_version_skips():
    gate = ConditionalGate("t", min_version("2.16"), invoker(stdout=b"no idea\n"))

    assert gate.resolve() is GateState.SKIPPED
    assert "could not determine" in gate.reason


@pytest.mark.parametrize(
    "text,expected",
    [
        ("pandoc 2.10.1\nFeatures: +server", "2.10.1"),
        ("pandoc-crossref v0.3.17.0", "0.3.17.0"),
        ("", None),
    ],
)
def test_find_version(text, expected):
    assert find_version(text) == expected


def test_parse_version_orders_numerically():
    assert parse_version("2.10") < parse_version("2.16")
    assert parse_version("2.9") < parse_version("2.10")
    assert parse_version("2.16") == parse_version("2.16.0")
