import pytest

from kubestrap.modules.kubeadm import GuardCheckError, IdempotencyGuard, Marker, PreconditionError, StepStatus
from kubestrap.modules.kubeadm.guard import command_succeeds, file_content, files_identical, path_exists


def test_effect_runs_when_marker_is_absent(executor, inventory):
    host = inventory.control_plane
    calls = []

    status = IdempotencyGuard(executor).ensure(
        host, "demo", path_exists("/etc/demo"), lambda: calls.append(executor.write_file(host, "/etc/demo", "x"))
    )

    assert status == StepStatus.APPLIED
    assert len(calls) == 1
    assert executor.state("cp-1").files["/etc/demo"] == "x"


def test_effect_skipped_when_marker_holds(executor, inventory):
    host = inventory.control_plane
    executor.state("cp-1").files["/etc/demo"] = "x"
    calls = []

    status = IdempotencyGuard(executor).ensure(host, "demo", path_exists("/etc/demo"), lambda: calls.append(1))

    assert status == StepStatus.ALREADY_SATISFIED
    assert calls == []


def test_marker_is_evaluated_on_every_call(executor, inventory):
    host = inventory.control_plane
    guard = IdempotencyGuard(executor)
    marker = file_content("/etc/demo", "new\n")
    executor.state("cp-1").files["/etc/demo"] = "new\n"

    assert guard.ensure(host, "demo", marker, lambda: None) == StepStatus.ALREADY_SATISFIED

    executor.state("cp-1").files["/etc/demo"] = "drifted\n"
    assert guard.ensure(host, "demo", marker, lambda: None) == StepStatus.APPLIED


def test_unreachable_host_raises_guard_check_error(executor, inventory):
    host = inventory.control_plane
    executor.unreachable.add("cp-1")
    calls = []

    with pytest.raises(GuardCheckError) as excinfo:
        IdempotencyGuard(executor).ensure(host, "demo", path_exists("/etc/demo"), lambda: calls.append(1))

    assert isinstance(excinfo.value, PreconditionError)
    assert excinfo.value.marker == "exists:/etc/demo"
    assert calls == []


def test_effect_errors_propagate(executor, inventory):
    def effect():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        IdempotencyGuard(executor).ensure(inventory.control_plane, "demo", Marker("never", lambda e, h: False), effect)


def test_command_markers(executor, inventory):
    host = inventory.control_plane
    state = executor.state("cp-1")
    state.files["/a"] = "same"
    state.files["/b"] = "same"

    assert files_identical("/a", "/b").holds(executor, host)
    state.files["/b"] = "other"
    assert not files_identical("/a", "/b").holds(executor, host)
    assert not command_succeeds("/usr/local/bin/crictl --version").holds(executor, host)
