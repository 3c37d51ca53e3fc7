import os

import pytest
import yaml

from kubestrap.config import Config
from kubestrap.modules.kubeadm import (
    ClusterVars,
    ConfigError,
    InstallerConfig,
    create_config_file,
    get_config,
    set_config,
    show_config,
    validate_config_file,
)


def test_defaults():
    config = InstallerConfig()

    assert config.forks == 5
    assert config.cluster.kubernetes_version == "1.29"
    assert config.cluster.pod_cidr == "192.168.0.0/16"
    assert config.cluster.cri_version == "v1.28.0"
    assert config.cluster.interface == "eth1"
    assert [a.name for a in config.cluster.addons] == ["network", "metrics"]
    assert config.cluster.kubernetes_repository == "https://pkgs.k8s.io/core:/stable:/v1.29/deb/"


def test_version_prefixes_are_normalized():
    cluster = ClusterVars(kubernetes_version="v1.30", cri_version="1.30.0")

    assert cluster.kubernetes_version == "1.30"
    assert cluster.cri_version == "v1.30.0"


def test_invalid_pod_cidr_is_rejected():
    with pytest.raises(ConfigError, match="Invalid configuration"):
        InstallerConfig.load(overrides={"cluster": {"pod_cidr": "not-a-network"}})


def test_load_precedence(tmp_path, monkeypatch):
    path = tmp_path / "kubestrap.yaml"
    path.write_text(yaml.safe_dump({
        "forks": 3,
        "ssh": {"user": "vagrant"},
        "cluster": {"pod_cidr": "10.244.0.0/16", "interface": "enp0s8"},
    }))
    monkeypatch.setenv("KUBESTRAP_SSH__USER", "admin")
    monkeypatch.setenv("KUBESTRAP_CLUSTER__POD_CIDR", "10.10.0.0/16")

    config = InstallerConfig.load(path, overrides={"cluster": {"pod_cidr": "172.16.0.0/16"}})

    assert config.forks == 3
    assert config.ssh.user == "admin"
    assert config.cluster.interface == "enp0s8"
    assert config.cluster.pod_cidr == "172.16.0.0/16"


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        InstallerConfig.load(tmp_path / "missing.yaml")


def test_non_mapping_config_file(tmp_path):
    path = tmp_path / "kubestrap.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigError, match="must be a mapping"):
        InstallerConfig.load(path)


def test_get_config_is_cached():
    first = get_config()

    assert get_config() is first
    set_config(None)
    assert get_config() is not first


def test_create_and_validate_config_file(tmp_path):
    path = create_config_file(tmp_path / "conf" / "kubestrap.yaml")

    assert path.exists()
    assert oct(path.stat().st_mode & 0o777) == "0o600"
    result = validate_config_file(path)
    assert result["valid"], result["errors"]
    assert result["config"]["cluster"]["pod_cidr"] == "192.168.0.0/16"

    with pytest.raises(FileExistsError):
        create_config_file(path)
    create_config_file(path, overwrite=True)


def test_validate_reports_errors(tmp_path):
    missing = validate_config_file(tmp_path / "missing.yaml")
    assert not missing["valid"]
    assert not missing["exists"]

    path = tmp_path / "kubestrap.yaml"
    path.write_text("forks: 0\n")
    invalid = validate_config_file(path)
    assert not invalid["valid"]
    assert "forks" in invalid["errors"][0]


def test_validate_warns_about_missing_key(tmp_path):
    path = tmp_path / "kubestrap.yaml"
    path.write_text(yaml.safe_dump({"ssh": {"key_path": str(tmp_path / "id_missing")}}))

    result = validate_config_file(path)

    assert result["valid"]
    assert any("SSH key not found" in w for w in result["warnings"])


def test_show_config_mentions_overrides(tmp_path):
    path = create_config_file(tmp_path / "kubestrap.yaml")

    text = show_config(path)

    assert f"Loaded from: {path}" in text
    assert "pod_cidr: 192.168.0.0/16" in text
    assert "KUBESTRAP_SSH__USER" in text


def test_app_config_requires_api_key(monkeypatch):
    monkeypatch.setattr(Config, "API_KEY", "")

    with pytest.raises(ValueError, match="KUBESTRAP_API_KEY"):
        Config.validate()
    monkeypatch.setattr(Config, "API_KEY", os.urandom(4).hex())
    Config.validate()


def test_process_settings_feed_installer_defaults(monkeypatch, tmp_path):
    monkeypatch.setattr(Config, "FORKS", 10)
    monkeypatch.setattr(Config, "SSH_TIMEOUT", 3)
    monkeypatch.setattr(Config, "COMMAND_TIMEOUT", 120)

    config = InstallerConfig.load()

    assert config.forks == 10
    assert config.ssh.connect_timeout == 3
    assert config.ssh.command_timeout == 120

    path = tmp_path / "kubestrap.yaml"
    path.write_text("forks: 2\n")
    assert InstallerConfig.load(path).forks == 2
