import logging
import logging.config
from typing import Optional

import yaml

from cloudspace_provisioner.logging_config import LOGGER_NAME, LOGGING_CONFIG
from cloudspace_provisioner.utils import get_config_path

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(LOGGER_NAME)


class ConfigNotFound(Exception):
    """Raised when the CLI config file does not exist"""


class SpotConfig:
    org: str
    refresh_token: str
    access_token: str
    region: str

    def __init__(
        self,
        org: str = "",
        refresh_token: str = "",
        access_token: str = "",
        region: str = "",
    ):
        self.org = org
        self.refresh_token = refresh_token
        self.access_token = access_token
        self.region = region

    def __repr__(self):
        # tokens stay out of logs
        return f"SpotConfig org: {self.org}, region: {self.region}"

    @staticmethod
    def from_dict(config_data: dict):
        return SpotConfig(
            org=str(config_data.get("org") or ""),
            refresh_token=str(config_data.get("refresh_token") or ""),
            access_token=str(config_data.get("access_token") or ""),
            region=str(config_data.get("region") or ""),
        )


def load_config(path: Optional[str] = None) -> SpotConfig:
    """
    Load the YAML CLI config (org, tokens, default region).

    Raises ConfigNotFound if the file is missing.
    """
    config_path = path or get_config_path()
    logger.debug(f"Loading CLI config from {config_path}")
    try:
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigNotFound(
            f"spot config not found at {config_path} - "
            "create it with your default org, access token and region"
        )
    if not isinstance(config_data, dict):
        raise ValueError(f"{config_path} must contain a YAML mapping")

    return SpotConfig.from_dict(config_data)
