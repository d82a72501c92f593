import os
import uuid

from cloudspace_provisioner.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_CONFIG_PATH,
    DEFAULT_REQUEST_TIMEOUT,
)


def _get_env_var(var_name: str, default: str) -> str:
    if value := os.environ.get(var_name):
        return value
    else:
        return default


def get_base_url() -> str:
    return _get_env_var("SPOT_BASE_URL", DEFAULT_BASE_URL).rstrip("/")


def get_config_path() -> str:
    return _get_env_var("SPOT_CONFIG_PATH", DEFAULT_CONFIG_PATH)


def get_request_timeout() -> float:
    raw = _get_env_var("SPOT_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"SPOT_REQUEST_TIMEOUT must be a number, got {raw!r}")


def generate_pool_name() -> str:
    return str(uuid.uuid4())
