import copy
import logging
import os
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from omegaconf import OmegaConf
from omegaconf.errors import InterpolationResolutionError

from kitchen_ec2.constants import (
    DEFAULT_AVAILABILITY_ZONE_SUFFIX,
    DEFAULT_INSTANCE_TYPE,
    DEFAULT_REGION,
    DEFAULT_TAGS,
    RETRYABLE_SLEEP,
    RETRYABLE_TRIES,
    Interface,
    LaunchMode,
)
from kitchen_ec2.exceptions import UserError

logger = logging.getLogger(__name__)

HOST_SECTIONS = ("driver", "transport", "platform")

DEPRECATED_TRANSPORT_KEYS = ("ssh_key", "ssh_timeout", "ssh_retries", "username", "password")
"""Driver keys that moved to the transport and are still honoured with a warning."""

ZONE_LETTER_PATTERN = re.compile(r"^[a-z]$")


class ConfigLoader:
    """Load host configuration and finalize driver settings."""

    def __init__(self) -> None:
        """Initialize ConfigLoader with defaults read from the environment."""
        self.BUILT_IN_DEFAULTS = {
            "region": os.environ.get("AWS_REGION") or DEFAULT_REGION,
            "shared_credentials_profile": None,
            "aws_access_key_id": os.environ.get("AWS_ACCESS_KEY_ID"),
            "aws_secret_access_key": os.environ.get("AWS_SECRET_ACCESS_KEY"),
            "aws_session_token": os.environ.get("AWS_SESSION_TOKEN"),
            "aws_ssh_key_id": os.environ.get("AWS_SSH_KEY_ID"),
            "image_id": None,
            "image_search": None,
            "instance_type": DEFAULT_INSTANCE_TYPE,
            "availability_zone": None,
            "ebs_optimized": False,
            "security_group_ids": None,
            "subnet_id": None,
            "iam_profile_name": None,
            "associate_public_ip": None,
            "private_ip_address": None,
            "tenancy": None,
            "user_data": None,
            "block_device_mappings": None,
            "tags": dict(DEFAULT_TAGS),
            "spot_price": None,
            "spot_duration": None,
            "interface": None,
            "http_proxy": os.environ.get("HTTPS_PROXY") or os.environ.get("HTTP_PROXY"),
            "retryable_tries": RETRYABLE_TRIES,
            "retryable_sleep": RETRYABLE_SLEEP,
        }

    def load_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Load host configuration from YAML file.

        Parameters
        ----------
        config_path : str | None
            Path to YAML config file. If None, checks KITCHEN_EC2_CONFIG env var,
            then falls back to .kitchen-ec2.yml

        Returns
        -------
        dict[str, Any]
            Parsed configuration with name, driver, transport and platform
            sections, with all variable interpolations resolved

        Raises
        ------
        UserError
            If the file is not valid YAML or interpolation fails
        """
        if config_path is None:
            config_path = os.environ.get("KITCHEN_EC2_CONFIG", ".kitchen-ec2.yml")

        config_file = Path(config_path)
        config: dict[str, Any] = {}

        if config_file.exists():
            try:
                cfg = OmegaConf.load(config_file)
            except yaml.YAMLError as e:
                logger.error("Failed to parse YAML config file %s: %s", config_file, e)
                raise UserError(f"Invalid YAML in {config_file}: {e}") from e
            except OSError as e:
                logger.error("Failed to read config file %s: %s", config_file, e)
                raise UserError(f"Failed to read config file {config_file}: {e}") from e

            if cfg is not None:
                try:
                    config = OmegaConf.to_container(cfg, resolve=True, throw_on_missing=True)
                except InterpolationResolutionError as e:
                    logger.error("Failed to resolve configuration variables: %s", e)
                    raise UserError(f"Configuration variable resolution error: {e}") from e
        else:
            logger.debug("Config file %s not found, using defaults", config_file)

        for section in HOST_SECTIONS:
            if config.get(section) is None:
                config[section] = {}
            elif not isinstance(config[section], dict):
                raise UserError(f"{section} must be a mapping")

        config.setdefault("name", "default")
        return config

    def get_driver_config(self, config: dict[str, Any]) -> dict[str, Any]:
        """Merge the driver section of ``config`` over the built-in defaults."""
        merged = copy.deepcopy(self.BUILT_IN_DEFAULTS)
        for key, value in config.get("driver", {}).items():
            merged[key] = value
        return merged

    def finalize_config(
        self,
        config: dict[str, Any],
        platform_name: str,
        ami_lookup: Callable[[dict[str, Any], str], str | None],
    ) -> LaunchMode:
        """Validate and complete driver configuration in place.

        Parameters
        ----------
        config : dict[str, Any]
            Driver configuration; missing defaults are filled in
        platform_name : str
            Host platform name, used to pick a default AMI
        ami_lookup : Callable[[dict[str, Any], str], str | None]
            Called with (config, platform_name) when ``image_id`` is unset

        Returns
        -------
        LaunchMode
            SPOT when a spot price is configured, ON_DEMAND otherwise

        Raises
        ------
        UserError
            If a required key is missing or a value is invalid
        """
        for key, value in self.BUILT_IN_DEFAULTS.items():
            config.setdefault(key, copy.deepcopy(value))

        if not config.get("aws_ssh_key_id"):
            raise UserError("Ec2<Driver> requires :aws_ssh_key_id to be set")

        if not config.get("region"):
            raise UserError("Ec2<Driver> requires :region to be set")

        self._validate_interface(config)
        self._validate_retry_settings(config)
        config["availability_zone"] = self.expand_availability_zone(
            config["region"], config.get("availability_zone")
        )

        if not config.get("image_id"):
            config["image_id"] = ami_lookup(config, platform_name)

        if not config.get("image_id"):
            raise UserError("Ec2<Driver> requires :image_id to be set")

        if config.get("spot_price") is not None:
            return LaunchMode.SPOT
        return LaunchMode.ON_DEMAND

    def expand_availability_zone(self, region: str, zone: str | None) -> str:
        """Expand a bare zone letter into a full availability zone name.

        Parameters
        ----------
        region : str
            AWS region, e.g. "us-east-1"
        zone : str | None
            None, a single letter or a full zone name

        Returns
        -------
        str
            Full availability zone name, "<region>b" when ``zone`` is None

        Raises
        ------
        UserError
            If ``zone`` is a single character that is not a lowercase letter
        """
        if zone is None or zone == "":
            return f"{region}{DEFAULT_AVAILABILITY_ZONE_SUFFIX}"

        zone = str(zone)
        if len(zone) == 1:
            if not ZONE_LETTER_PATTERN.match(zone):
                raise UserError(
                    f"Invalid availability zone '{zone}'. "
                    "A single character zone must be a lowercase letter."
                )
            return f"{region}{zone}"

        return zone

    def _validate_interface(self, config: dict[str, Any]) -> None:
        interface = config.get("interface")
        if interface is None:
            return

        valid = [i.value for i in Interface]
        if interface not in valid:
            raise UserError(
                f"interface '{interface}' is not a valid type. Valid types: {valid}"
            )

    def _validate_retry_settings(self, config: dict[str, Any]) -> None:
        for field in ("retryable_tries", "retryable_sleep"):
            value = config.get(field)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise UserError(f"{field} must be a positive integer")
