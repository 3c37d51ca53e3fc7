"""kubeadm bootstrap configuration management.

Configuration is loaded from multiple sources with the following precedence:
1. Explicitly passed parameters
2. Environment variables (KUBESTRAP_<SECTION>__<FIELD>)
3. Configuration files
4. Default values
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ...config import Config
from .errors import ConfigError

logger = logging.getLogger("kubestrap.config")

ENV_PREFIX = "KUBESTRAP_"
ENV_NESTED_DELIMITER = "__"

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path("/etc/kubestrap/config.yaml"),
    Path("~/.config/kubestrap/config.yaml").expanduser(),
    Path("kubestrap.yaml").absolute(),
]


class SSHConfig(BaseModel):
    """SSH connection configuration."""
    user: str = Field(default="ubuntu", description="Default SSH username")
    key_path: Optional[str] = Field(default="~/.ssh/id_rsa", description="Path to SSH private key")
    port: int = Field(default=22, description="SSH port number")
    connect_timeout: int = Field(default_factory=lambda: Config.SSH_TIMEOUT, description="SSH connection timeout in seconds")
    command_timeout: int = Field(default_factory=lambda: Config.COMMAND_TIMEOUT, description="Remote command timeout in seconds")

    @field_validator('key_path')
    @classmethod
    def expand_key_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand the user home directory in the key path."""
        return os.path.expanduser(v) if v else v


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    file: Optional[str] = Field(default=None, description="Path to log file (if None, logs to stdout)")
    max_size_mb: int = Field(default=100, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level


class AddonConfig(BaseModel):
    """A manifest-based cluster add-on applied on the control plane."""
    name: str
    manifest: str


def _default_addons() -> List[AddonConfig]:
    return [
        AddonConfig(
            name="network",
            manifest="https://docs.projectcalico.org/manifests/calico.yaml",
        ),
        AddonConfig(
            name="metrics",
            manifest="https://raw.githubusercontent.com/techiescamp/kubeadm-scripts/main/manifests/metrics-server.yaml",
        ),
    ]


class ClusterVars(BaseModel):
    """Cluster-wide variables shared by every phase."""
    kubernetes_version: str = Field(default="1.29", description="Kubernetes package repository version")
    pod_cidr: str = Field(default="192.168.0.0/16", description="Pod network address range")
    cri_version: str = Field(default="v1.28.0", description="crictl release to install")
    interface: str = Field(default="eth1", description="Interface whose address the kubelet advertises")
    kernel_modules: List[str] = Field(default_factory=lambda: ["overlay", "br_netfilter"])
    sysctl: Dict[str, str] = Field(default_factory=lambda: {
        "net.bridge.bridge-nf-call-iptables": "1",
        "net.bridge.bridge-nf-call-ip6tables": "1",
        "net.ipv4.ip_forward": "1",
    })
    base_packages: List[str] = Field(default_factory=lambda: [
        "software-properties-common",
        "curl",
        "apt-transport-https",
        "ca-certificates",
    ])
    kubernetes_packages: List[str] = Field(default_factory=lambda: ["kubelet", "kubeadm", "kubectl"])
    crio_repository: str = Field(
        default="https://pkgs.k8s.io/addons:/cri-o:/prerelease:/main/deb/",
        description="CRI-O apt repository base URL",
    )
    addons: List[AddonConfig] = Field(default_factory=_default_addons)

    @field_validator('kubernetes_version')
    @classmethod
    def strip_version_prefix(cls, v: str) -> str:
        """Accept both '1.29' and 'v1.29'."""
        return str(v).lstrip('v')

    @field_validator('cri_version')
    @classmethod
    def ensure_version_prefix(cls, v: str) -> str:
        v = str(v)
        return v if v.startswith('v') else f"v{v}"

    @field_validator('pod_cidr')
    @classmethod
    def validate_pod_cidr(cls, v: str) -> str:
        import ipaddress
        try:
            ipaddress.ip_network(v, strict=False)
        except ValueError as e:
            raise ValueError(f"Invalid pod CIDR '{v}': {e}")
        return v

    @property
    def kubernetes_repository(self) -> str:
        return f"https://pkgs.k8s.io/core:/stable:/v{self.kubernetes_version}/deb/"


class InstallerConfig(BaseModel):
    """kubestrap installer configuration."""
    model_config = {"extra": "ignore"}

    ssh: SSHConfig = Field(default_factory=SSHConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    cluster: ClusterVars = Field(default_factory=ClusterVars)
    forks: int = Field(default_factory=lambda: Config.FORKS, ge=1, description="Maximum number of hosts processed in parallel")

    @classmethod
    def load(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> 'InstallerConfig':
        """Load configuration from file, environment variables and explicit overrides."""
        config_data: Dict[str, Any] = {}

        if config_path:
            config_path = Path(config_path).expanduser().absolute()
            if not config_path.exists():
                raise ConfigError(f"Configuration file not found: {config_path}")
            config_data = cls._load_config_file(config_path)
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        _deep_update(config_data, _env_overrides(os.environ))
        if overrides:
            _deep_update(config_data, overrides)

        try:
            return cls(**config_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration in {path} must be a mapping")
        logger.debug(f"Loaded configuration from {path}")
        return data

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a file."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self.model_dump(mode="json", exclude_none=True)

        with open(path, 'w') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)


def _env_overrides(environ: Dict[str, str]) -> Dict[str, Any]:
    """Translate KUBESTRAP_SECTION__FIELD variables into a nested dict."""
    result: Dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        parts = key[len(ENV_PREFIX):].lower().split(ENV_NESTED_DELIMITER)
        if not all(parts):
            continue
        target = result
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value
    return result


def _deep_update(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


# Global configuration instance
_config: Optional[InstallerConfig] = None


def get_config(config_path: Optional[Union[str, Path]] = None) -> InstallerConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = InstallerConfig.load(config_path)
    return _config


def set_config(config: Optional[InstallerConfig]) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
