"""EC2 driver: provisions and destroys one instance for the host application."""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from botocore.exceptions import ClientError, WaiterError

from kitchen_ec2 import __version__
from kitchen_ec2.constants import (
    API_VERSION,
    PLACEHOLDER_HOSTNAME,
    TAG_RETRY_MAX_SLEEP,
    TAG_RETRY_TRIES,
    UNIX_EC2_HINT_COMMAND,
    WINDOWS_EC2_HINT_COMMAND,
    WINDOWS_READY_MARKER,
    InstanceState,
    Interface,
    LaunchMode,
)
from kitchen_ec2.core.config import DEPRECATED_TRANSPORT_KEYS, ConfigLoader
from kitchen_ec2.core.interfaces import Instance
from kitchen_ec2.exceptions import UserError
from kitchen_ec2.providers.aws.ami import AMIResolver
from kitchen_ec2.providers.aws.client import Client
from kitchen_ec2.providers.aws.errors import is_not_found
from kitchen_ec2.providers.aws.instance_generator import LaunchRequest
from kitchen_ec2.providers.aws.server import Server

HOSTNAME_SOURCES = {
    Interface.PRIVATE: "private_ip_address",
    Interface.PUBLIC: "public_ip_address",
    Interface.DNS: "public_dns_name",
}
"""Server attribute per interface, in the priority used when none is requested."""


class Ec2Driver:
    """Create and destroy EC2 instances for a host application.

    The host owns the provisioning ``state`` dict and passes it to ``create``
    and ``destroy``; the driver only writes the keys it is responsible for
    (server_id, spot_request_id, hostname, password).

    Parameters
    ----------
    config : dict[str, Any]
        Driver configuration, completed in place by ``finalize_config``
    instance : Instance
        Host context providing the logger, transport and platform
    client_factory : Callable[..., Client] | None
        Factory for the EC2 client wrapper. If None, uses Client
    config_loader : ConfigLoader | None
        Loader that validates configuration. If None, a new one is created
    """

    def __init__(
        self,
        config: dict[str, Any],
        instance: Instance,
        client_factory: Callable[..., Client] | None = None,
        config_loader: ConfigLoader | None = None,
    ) -> None:
        self.config = config
        self.instance = instance
        self.logger = instance.logger
        self.client_factory = client_factory or Client
        self.config_loader = config_loader or ConfigLoader()
        self.launch_mode: LaunchMode | None = None
        self._ec2: Client | None = None

    def diagnose_plugin(self) -> dict[str, Any]:
        return {"name": "Ec2", "version": __version__, "api_version": API_VERSION}

    @property
    def ec2(self) -> Client:
        """EC2 client wrapper, created on first use from configuration."""
        if self._ec2 is None:
            self._ec2 = self.client_factory(
                region=self.config["region"],
                profile_name=self.config.get("shared_credentials_profile"),
                access_key_id=self.config.get("aws_access_key_id"),
                secret_access_key=self.config.get("aws_secret_access_key"),
                session_token=self.config.get("aws_session_token"),
                http_proxy=self.config.get("http_proxy"),
            )
        return self._ec2

    def finalize_config(self) -> "Ec2Driver":
        """Validate configuration and resolve defaults.

        Raises
        ------
        UserError
            If aws_ssh_key_id or image_id cannot be determined, or a value
            is invalid
        """
        self.launch_mode = self.config_loader.finalize_config(
            self.config, self.instance.platform.name, self.default_ami
        )
        return self

    def default_ami(
        self, config: dict[str, Any] | None = None, platform_name: str | None = None
    ) -> str | None:
        """Pick an AMI from image_search or the platform name."""
        config = self.config if config is None else config
        if platform_name is None:
            platform_name = self.instance.platform.name
        return AMIResolver(self.ec2).default_ami(config, platform_name)

    def lookup_ami(self, filters: dict[str, Any]) -> str:
        """Return the newest AMI matching ``filters``."""
        return AMIResolver(self.ec2).lookup_ami(filters)

    def windows_os(self) -> bool:
        platform = self.instance.platform
        os_type = getattr(platform, "os_type", None)
        return os_type == "windows" or platform.name.lower().startswith("windows")

    def create(self, state: dict[str, Any]) -> None:
        """Provision an instance and record it in ``state``.

        Does nothing when ``state`` already holds a server id.

        Raises
        ------
        WaiterError
            If a wait stage runs out of attempts; the instance is destroyed
            and ``state`` cleared first
        """
        self.copy_deprecated_configs(state)
        if state.get("server_id"):
            return None

        if self.launch_mode is None:
            self.finalize_config()

        if self._needs_windows_password():
            self._windows_key_path()

        self.logger.info("Creating EC2 instance...")
        if self.launch_mode is LaunchMode.SPOT:
            server = self.submit_spot(state)
        else:
            server = self.submit_server()
        self.logger.info("Instance <%s> requested.", server.id)

        self.wait_until_exists(server, state)
        state["server_id"] = server.id
        self.logger.info("EC2 instance <%s> created.", server.id)

        self._tag_and_wait_until_ready(server, state)

        if self._needs_windows_password():
            self.fetch_windows_admin_password(server, state)

        self.logger.info("EC2 instance <%s> ready.", state["server_id"])
        self.instance.transport.connection(state).wait_until_ready()
        self.create_ec2_json(state)
        self.logger.debug("ec2:create '%s'", state.get("hostname"))

    def _tag_and_wait_until_ready(self, server: Server, state: dict[str, Any]) -> None:
        # tagging right after the existence waiter can still hit NotFound
        for attempt in range(TAG_RETRY_TRIES):
            try:
                self.logger.info("Attempting to tag the instance, %s retries", attempt)
                if self.config.get("tags"):
                    self.tag_server(server)
                self.wait_until_ready(server, state)
                return
            except ClientError as e:
                if not is_not_found(e):
                    raise
                if attempt == TAG_RETRY_TRIES - 1:
                    self.logger.error(
                        "Instance <%s> still not found after %s attempts, "
                        "attempting to destroy it",
                        server.id,
                        TAG_RETRY_TRIES,
                    )
                    self.destroy(state)
                    raise
                time.sleep(min(2**attempt, TAG_RETRY_MAX_SLEEP))

    def _needs_windows_password(self) -> bool:
        if not self.windows_os():
            return False

        transport = self.instance.transport
        username = transport["username"] or ""
        return (
            re.search("administrator", str(username), re.IGNORECASE) is not None
            and transport["password"] is None
        )

    def _windows_key_path(self) -> Path:
        ssh_key = self.instance.transport["ssh_key"]
        if not ssh_key:
            raise UserError("transport ssh_key is required to decrypt the Windows password")
        return Path(ssh_key).expanduser()

    def submit_server(self) -> Server:
        """Launch an on-demand instance."""
        request = LaunchRequest.from_config(self.config)
        self.logger.debug("Creating on-demand instance from %s", request.image_id)
        return self.ec2.create_instance(**request.to_run_arguments())

    def submit_spot(self, state: dict[str, Any]) -> Server:
        """Request a spot instance and wait until the request is fulfilled.

        Parameters
        ----------
        state : dict[str, Any]
            Provisioning state; ``spot_request_id`` is recorded in it

        Returns
        -------
        Server
            Handle on the instance launched for the request

        Raises
        ------
        WaiterError
            If the request is not fulfilled in time; the request is cancelled
            and removed from ``state`` first
        """
        request = LaunchRequest.from_config(self.config)

        valid_until = None
        if request.spot_duration:
            valid_until = datetime.now(timezone.utc) + timedelta(
                seconds=int(request.spot_duration)
            )

        request_id = self.ec2.request_spot_instance(
            spot_price=request.spot_price or "",
            launch_specification=request.to_launch_specification(),
            valid_until=valid_until,
        )
        state["spot_request_id"] = request_id
        self.logger.info("Spot instance request <%s> submitted.", request_id)

        try:
            self.ec2.wait_for_spot_request(
                request_id,
                max_attempts=self.config["retryable_tries"],
                delay=self.config["retryable_sleep"],
            )
        except WaiterError:
            self.logger.error(
                "Spot request <%s> was not fulfilled in time, cancelling it", request_id
            )
            self.ec2.cancel_spot_request(request_id)
            state.pop("spot_request_id", None)
            raise

        return self.ec2.get_instance_from_spot_request(request_id)

    def tag_server(self, server: Server) -> None:
        server.create_tags(self.config["tags"])

    def wait_until_exists(self, server: Server, state: dict[str, Any]) -> None:
        self.logger.info("Polling AWS for existence of instance <%s>...", server.id)
        with self.destroy_on_timeout(state, "to exist", server):
            server.wait_until_exists(
                max_attempts=self.config["retryable_tries"],
                delay=self.config["retryable_sleep"],
            )

    def wait_until_ready(self, server: Server, state: dict[str, Any]) -> bool:
        """Wait until the instance runs and has a usable hostname.

        The hostname is stored in ``state`` whenever one resolves, before the
        existence and state checks, so it is known even if those fail.
        """

        def ready(aws_instance: Server) -> bool:
            hostname = self.hostname(aws_instance, self.config.get("interface"))
            if hostname is not None:
                state["hostname"] = hostname

            if not aws_instance.exists():
                return False
            if aws_instance.state_name != InstanceState.RUNNING.value:
                return False
            if hostname is None or hostname == PLACEHOLDER_HOSTNAME:
                return False

            if self.windows_os():
                return WINDOWS_READY_MARKER in aws_instance.console_output()
            return True

        return self.wait_with_destroy(server, state, "to become ready", ready)

    def fetch_windows_admin_password(self, server: Server, state: dict[str, Any]) -> str:
        """Wait for EC2 to generate the Administrator password and decrypt it.

        Raises
        ------
        UserError
            If the transport has no ssh_key to decrypt the password with
        """

        key_path = self._windows_key_path()

        def password_available(aws_instance: Server) -> bool:
            # blank until the password has been generated
            return bool(aws_instance.password_data())

        self.wait_with_destroy(
            server, state, "to fetch windows admin password", password_available
        )

        password = server.decrypt_windows_password(key_path)
        state["password"] = password
        self.logger.info("Retrieved Windows password for instance <%s>.", state.get("server_id"))
        return password

    def wait_with_destroy(
        self,
        server: Server,
        state: dict[str, Any],
        description: str,
        predicate: Callable[[Server], bool],
    ) -> bool:
        """Poll ``predicate`` within the retry budget, destroying on timeout.

        Parameters
        ----------
        server : Server
            Instance being waited on
        state : dict[str, Any]
            Provisioning state passed to ``destroy`` on timeout
        description : str
            What is being waited for, used in log messages
        predicate : Callable[[Server], bool]
            Readiness check called once per attempt

        Returns
        -------
        bool
            Result of the wait

        Raises
        ------
        WaiterError
            If the budget is exhausted, after the instance was destroyed
        """
        tries = self.config["retryable_tries"]
        sleep = self.config["retryable_sleep"]

        def log_attempt(attempts: int) -> None:
            self.logger.info(
                "Waited %s/%ss for instance <%s> %s.",
                attempts * sleep,
                tries * sleep,
                state.get("server_id"),
                description,
            )

        with self.destroy_on_timeout(state, description):
            return server.wait_until(
                predicate, max_attempts=tries, delay=sleep, before_attempt=log_attempt
            )

    @contextmanager
    def destroy_on_timeout(
        self, state: dict[str, Any], description: str, server: Server | None = None
    ) -> Generator[None, None, None]:
        """Destroy the instance and re-raise if the block's waiter fails.

        ``server`` is recorded in ``state`` first when the server id has not
        been stored yet, so the compensating destroy can find it.
        """
        try:
            yield
        except WaiterError:
            if server is not None:
                state.setdefault("server_id", server.id)
            self.logger.error(
                "Ran out of time waiting for the server with id [%s] %s, "
                "attempting to destroy it",
                state.get("server_id"),
                description,
            )
            self.destroy(state)
            raise

    def hostname(self, server: Server, interface: str | None = None) -> str | None:
        """Pick the address used to reach ``server``.

        Without ``interface`` the private address wins, then the public
        address, then the public DNS name. Empty strings count as absent.

        Raises
        ------
        UserError
            If ``interface`` is not one of dns, public or private
        """
        if interface is not None:
            try:
                source = HOSTNAME_SOURCES[Interface(interface)]
            except ValueError as e:
                valid = [i.value for i in Interface]
                raise UserError(
                    f"interface '{interface}' is not a valid type. Valid types: {valid}"
                ) from e
            return getattr(server, source) or None

        for source in HOSTNAME_SOURCES.values():
            value = getattr(server, source)
            if value:
                return value

        return None

    def destroy(self, state: dict[str, Any]) -> None:
        """Terminate the instance recorded in ``state`` and clear it.

        Safe to call repeatedly; ``state`` is always empty afterwards.
        """
        server_id = state.get("server_id")
        if server_id is None:
            return None

        server = self.ec2.get_instance(server_id)
        if server is not None:
            if state.get("hostname"):
                self.instance.transport.connection(state).close()
            server.terminate()

        spot_request_id = state.get("spot_request_id")
        if spot_request_id:
            self.logger.debug("Deleting spot request <%s>", spot_request_id)
            self.ec2.cancel_spot_request(spot_request_id)

        self.logger.info("EC2 instance <%s> destroyed.", server_id)
        state.clear()

    def create_ec2_json(self, state: dict[str, Any]) -> None:
        """Drop the Ohai EC2 hint file on the instance."""
        if self.windows_os():
            command = WINDOWS_EC2_HINT_COMMAND
        else:
            command = UNIX_EC2_HINT_COMMAND
        self.instance.transport.connection(state).execute(command)

    def copy_deprecated_configs(self, state: dict[str, Any]) -> None:
        """Honour settings that moved out of the driver configuration."""
        flavor_id = self.config.get("flavor_id")
        if flavor_id:
            self.logger.warning("flavor_id is deprecated, use instance_type instead")
            self.config["instance_type"] = flavor_id

        for key in DEPRECATED_TRANSPORT_KEYS:
            value = self.config.get(key)
            if value is not None:
                self.logger.warning(
                    "Driver setting %s is deprecated, configure it on the transport",
                    key,
                )
                state[key] = value
