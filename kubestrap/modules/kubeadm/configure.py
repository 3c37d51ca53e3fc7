"""Configuration file management: create, validate and show."""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .config import DEFAULT_CONFIG_PATHS, ENV_NESTED_DELIMITER, ENV_PREFIX, InstallerConfig
from .errors import ConfigError

logger = logging.getLogger("kubestrap.configure")


def find_config_file() -> Optional[Path]:
    """Return the first default configuration file that exists."""
    for path in DEFAULT_CONFIG_PATHS:
        path = path.expanduser().absolute()
        if path.exists():
            return path
    return None


def create_config_file(output_path: Optional[Union[str, Path]] = None, overwrite: bool = False) -> Path:
    """Create a new configuration file with default values.

    Args:
        output_path: Where to save the file. If None, uses the first writable default location.
        overwrite: If True, overwrite an existing file.

    Returns:
        Path to the created configuration file.

    Raises:
        FileExistsError: If the file exists and overwrite is False.
    """
    if output_path is None:
        for path in DEFAULT_CONFIG_PATHS:
            path = path.expanduser().absolute()
            if os.access(path.parent if path.parent.exists() else path.parent.parent, os.W_OK):
                output_path = path
                break
        else:
            output_path = Path("kubestrap.yaml").absolute()
    output_path = Path(output_path).expanduser().absolute()

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"File already exists: {output_path}")

    InstallerConfig().save(output_path)
    logger.info(f"Created configuration file: {output_path}")

    try:
        output_path.chmod(0o600)
    except OSError as e:
        logger.warning(f"Could not set permissions on {output_path}: {e}")

    return output_path


def validate_config_file(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Validate a configuration file.

    Returns:
        Dict with keys valid, path, exists, errors, warnings and (if valid) config.
    """
    config_path = Path(config_path).expanduser().absolute()
    result: Dict[str, Any] = {
        'valid': False,
        'path': str(config_path),
        'exists': config_path.exists(),
        'errors': [],
        'warnings': [],
    }

    if not result['exists']:
        result['errors'].append(f"File does not exist: {config_path}")
        return result

    try:
        config = InstallerConfig.load(config_path)
    except ConfigError as e:
        result['errors'].append(str(e))
        return result

    result['valid'] = True
    if config.ssh.key_path and not os.path.exists(config.ssh.key_path):
        result['warnings'].append(f"SSH key not found: {config.ssh.key_path}")
    if config.forks > 50:
        result['warnings'].append(f"forks={config.forks} opens many SSH sessions at once")
    result['config'] = config.model_dump(mode="json")
    return result


def show_config(config_path: Optional[Union[str, Path]] = None) -> str:
    """Render the effective configuration and where it came from."""
    config = InstallerConfig.load(config_path)
    source = str(config_path) if config_path else str(find_config_file() or "default values")

    lines = [
        f"Loaded from: {source}",
        "-" * 60,
        yaml.safe_dump(config.model_dump(mode="json"), default_flow_style=False, sort_keys=False).rstrip(),
        "",
        "Environment variables override file values, e.g.:",
        f"  {ENV_PREFIX}SSH{ENV_NESTED_DELIMITER}USER=ubuntu",
        f"  {ENV_PREFIX}CLUSTER{ENV_NESTED_DELIMITER}POD_CIDR=10.244.0.0/16",
        f"  {ENV_PREFIX}FORKS=10",
    ]
    return "\n".join(lines)
