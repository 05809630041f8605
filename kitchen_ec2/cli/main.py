"""CLI entry point for kitchen-ec2."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import fire
import paramiko
from botocore.exceptions import BotoCoreError, ClientError

from kitchen_ec2.constants import EXIT_CONFIG_ERROR, EXIT_ERROR
from kitchen_ec2.core.config import ConfigLoader
from kitchen_ec2.core.state import StateFile
from kitchen_ec2.driver import Ec2Driver
from kitchen_ec2.exceptions import ActionFailed, UserError
from kitchen_ec2.logging import InstanceFormatter, instance_logger
from kitchen_ec2.providers import ProviderCredentialsError, ProviderError
from kitchen_ec2.services.ssh import SSHTransport

NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "paramiko")


@dataclass
class HostPlatform:
    """Platform section of the host configuration."""

    name: str = "ubuntu-22.04"
    os_type: str = "unix"


@dataclass
class HostInstance:
    """Host-side context handed to the driver."""

    name: str
    logger: logging.Logger | logging.LoggerAdapter
    transport: Any
    platform: HostPlatform


class KitchenEc2CLI:
    """Create and destroy one EC2 test instance described by a YAML file.

    Parameters
    ----------
    client_factory : Callable[..., Any] | None
        Optional factory for the EC2 client wrapper, passed to the driver
    transport_factory : Callable[[dict[str, Any]], Any] | None
        Optional factory building the transport from its config section.
        If None, uses SSHTransport
    """

    def __init__(
        self,
        client_factory: Callable[..., Any] | None = None,
        transport_factory: Callable[[dict[str, Any]], Any] | None = None,
    ) -> None:
        self._config_loader = ConfigLoader()
        self._client_factory = client_factory
        self._transport_factory = transport_factory or SSHTransport

    def _build_driver(self, config_path: str | None) -> tuple[Ec2Driver, dict[str, Any]]:
        config = self._config_loader.load_config(config_path)
        platform_config = config["platform"]
        platform = HostPlatform(
            name=str(platform_config.get("name", HostPlatform.name)),
            os_type=str(platform_config.get("os_type", HostPlatform.os_type)),
        )
        instance = HostInstance(
            name=str(config["name"]),
            logger=instance_logger(str(config["name"])),
            transport=self._transport_factory(config["transport"]),
            platform=platform,
        )
        driver = Ec2Driver(
            self._config_loader.get_driver_config(config),
            instance,
            client_factory=self._client_factory,
            config_loader=self._config_loader,
        )
        return driver, config

    def _state_file(self, config: dict[str, Any], state_path: str | None) -> StateFile:
        if state_path is None:
            state_path = str(Path(".kitchen") / f"{config['name']}.yml")
        return StateFile(state_path)

    def create(self, config: str | None = None, state: str | None = None) -> dict[str, Any]:
        """Provision the instance and persist its state.

        Parameters
        ----------
        config : str | None
            Path to the host YAML file (default: KITCHEN_EC2_CONFIG or
            .kitchen-ec2.yml)
        state : str | None
            Path to the state file (default: .kitchen/<name>.yml)

        Returns
        -------
        dict[str, Any]
            Provisioning state after creation
        """
        driver, host_config = self._build_driver(config)
        state_file = self._state_file(host_config, state)
        current = state_file.read()

        try:
            driver.create(current)
        finally:
            if current:
                state_file.write(current)
            else:
                state_file.destroy()

        return current

    def destroy(self, config: str | None = None, state: str | None = None) -> dict[str, Any]:
        """Terminate the instance recorded in the state file."""
        driver, host_config = self._build_driver(config)
        state_file = self._state_file(host_config, state)
        current = state_file.read()

        try:
            driver.destroy(current)
        finally:
            if current:
                state_file.write(current)
            else:
                state_file.destroy()

        return current

    def diagnose(self, config: str | None = None) -> dict[str, Any]:
        """Report plugin metadata."""
        driver, _ = self._build_driver(config)
        return driver.diagnose_plugin()


def handle_error(message: str, exit_code: int, debug_mode: bool) -> None:
    """Print ``message`` and exit, or re-raise in debug mode.

    Raises
    ------
    Exception
        The error being handled, re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(message, file=sys.stderr)
    sys.exit(exit_code)


def main() -> None:
    """Entry point for Fire CLI with graceful error handling."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(InstanceFormatter("%(message)s"))
    logging.basicConfig(level=logging.INFO, handlers=[handler])

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    debug_mode = os.environ.get("KITCHEN_EC2_DEBUG") == "1"

    try:
        fire.Fire(KitchenEc2CLI())
    except UserError as e:
        handle_error(f"Configuration error: {e}", EXIT_CONFIG_ERROR, debug_mode)
    except ProviderCredentialsError:
        handle_error(
            "AWS credentials not found\n\n"
            "Configure your credentials:\n"
            "  aws configure\n\n"
            "Or set environment variables:\n"
            "  export AWS_ACCESS_KEY_ID=...\n"
            "  export AWS_SECRET_ACCESS_KEY=...",
            EXIT_ERROR,
            debug_mode,
        )
    except (ProviderError, ClientError, BotoCoreError) as e:
        handle_error(f"AWS error: {e}", EXIT_ERROR, debug_mode)
    except (ActionFailed, paramiko.SSHException) as e:
        handle_error(f"Action failed: {e}", EXIT_ERROR, debug_mode)
