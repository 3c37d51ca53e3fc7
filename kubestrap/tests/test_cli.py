import pytest
from typer.testing import CliRunner

from kubestrap.cli import app

runner = CliRunner()


def invoke(*args):
    return runner.invoke(app, list(args))


def test_help():
    result = invoke("--help")

    assert result.exit_code == 0
    for group in ("bootstrap", "inventory", "config", "serve"):
        assert group in result.stdout


def test_bootstrap_help():
    result = invoke("bootstrap", "run", "--help")

    assert result.exit_code == 0
    assert "--inventory" in result.stdout
    assert "--dry-run" in result.stdout


def test_dry_run_prints_plan_without_connecting(monkeypatch, inventory_file):
    from kubestrap.modules import bootstrap

    def no_ssh(config):
        raise AssertionError("dry run must not connect")

    monkeypatch.setattr(bootstrap, "build_executor", no_ssh)

    result = invoke("bootstrap", "run", "--inventory", str(inventory_file), "--dry-run")

    assert result.exit_code == 0, result.output
    assert "control_plane_bootstrap" in result.stdout
    assert "cluster_init" in result.stdout
    assert "cluster_join" in result.stdout


def test_dry_run_json(inventory_file):
    result = invoke("bootstrap", "run", "--inventory", str(inventory_file), "--dry-run", "--json")

    assert result.exit_code == 0, result.output
    assert '"phase": "worker_join"' in result.stdout


def test_bootstrap_run_succeeds(fake_ssh, inventory_file):
    result = invoke("bootstrap", "run", "--inventory", str(inventory_file), "--json")

    assert result.exit_code == 0, result.output
    assert '"outcome": "succeeded"' in result.stdout
    assert len(fake_ssh.all_commands(r"^kubeadm join ")) == 2
    assert fake_ssh.closed


def test_bootstrap_run_table(fake_ssh, inventory_file):
    result = invoke("bootstrap", "run", "--inventory", str(inventory_file), "--pod-cidr", "10.244.0.0/16")

    assert result.exit_code == 0, result.output
    assert "succeeded" in result.stdout
    assert "--pod-network-cidr=10.244.0.0/16" in fake_ssh.commands_on("cp-1", r"^kubeadm init")[0]


def test_partial_run_exits_zero(fake_ssh, inventory_file):
    fake_ssh.fail_on("worker-2", r"^kubeadm join ")

    result = invoke("bootstrap", "run", "--inventory", str(inventory_file))

    assert result.exit_code == 0, result.output
    assert "partial" in result.stdout


def test_aborted_run_exits_one(fake_ssh, inventory_file):
    fake_ssh.fail_on("cp-1", r"^kubeadm init ")

    result = invoke("bootstrap", "run", "--inventory", str(inventory_file))

    assert result.exit_code == 1
    assert "aborted" in result.stdout
    assert fake_ssh.all_commands(r"^kubeadm join ") == []


@pytest.mark.parametrize("extra", [[], ["--pod-cidr", "bogus"]])
def test_bad_input_exits_one(tmp_path, inventory_file, extra):
    inventory = inventory_file if extra else tmp_path / "missing.ini"

    result = invoke("bootstrap", "run", "--inventory", str(inventory), *extra)

    assert result.exit_code == 1


def test_inventory_validate(inventory_file, tmp_path):
    assert invoke("inventory", "validate", "--inventory", str(inventory_file)).exit_code == 0

    broken = tmp_path / "broken.ini"
    broken.write_text("[workers]\nworker-1\n")
    result = invoke("inventory", "validate", "--inventory", str(broken))
    assert result.exit_code == 1
    assert "exactly one master" in result.stdout


def test_inventory_show_json(inventory_file):
    result = invoke("inventory", "show", "--inventory", str(inventory_file), "--json")

    assert result.exit_code == 0, result.output
    assert '"address": "10.0.0.11"' in result.stdout
    assert '"ssh_user": "ubuntu"' in result.stdout


def test_config_init_show_validate(tmp_path):
    path = tmp_path / "kubestrap.yaml"

    assert invoke("config", "init", "--output", str(path)).exit_code == 0
    assert path.exists()
    assert invoke("config", "init", "--output", str(path)).exit_code == 1

    shown = invoke("config", "show", "--config", str(path))
    assert shown.exit_code == 0
    assert "kubernetes_version" in shown.stdout

    assert invoke("config", "validate", "--config", str(path)).exit_code == 0
    path.write_text("forks: -1\n")
    assert invoke("config", "validate", "--config", str(path)).exit_code == 1
