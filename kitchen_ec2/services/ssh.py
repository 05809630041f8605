"""SSH transport used to reach provisioned instances."""

import logging
import socket
import time
from pathlib import Path
from typing import Any

import paramiko

from kitchen_ec2.constants import SSH_CONNECT_DELAYS, SSH_CONNECT_TIMEOUT_SECONDS
from kitchen_ec2.exceptions import TransportFailed, UserError

logger = logging.getLogger(__name__)

SSH_CONNECT_ERRORS = (
    paramiko.ssh_exception.NoValidConnectionsError,
    paramiko.ssh_exception.SSHException,
    TimeoutError,
    ConnectionRefusedError,
    ConnectionResetError,
    socket.timeout,
)


class SSHConnection:
    """Manages one SSH session to a provisioned instance.

    Parameters
    ----------
    host : str
        Remote host IP address or hostname
    username : str
        SSH username
    key_file : str | None
        Path to SSH private key file
    password : str | None
        Password, used when no key file is given
    port : int
        SSH port (default: 22)
    max_retries : int
        Connection attempts made by ``wait_until_ready``
    timeout : int
        Timeout in seconds for each connection attempt

    Attributes
    ----------
    client : paramiko.SSHClient | None
        SSH client instance (None when not connected)
    """

    def __init__(
        self,
        host: str,
        username: str,
        key_file: str | None = None,
        password: str | None = None,
        port: int = 22,
        max_retries: int = len(SSH_CONNECT_DELAYS),
        timeout: int = SSH_CONNECT_TIMEOUT_SECONDS,
    ) -> None:
        self.host = host
        self.username = username
        self.key_file = key_file
        self.password = password
        self.port = port
        self.max_retries = max_retries
        self.timeout = timeout
        self.client: paramiko.SSHClient | None = None

    def wait_until_ready(self) -> None:
        """Establish the SSH connection, retrying with backoff.

        Raises
        ------
        TransportFailed
            If the connection fails after all retry attempts
        """
        if self.client is not None:
            return

        for attempt in range(self.max_retries):
            try:
                logger.info(
                    "Waiting for SSH service on %s:%s (attempt %s/%s)...",
                    self.host,
                    self.port,
                    attempt + 1,
                    self.max_retries,
                )
                self.client = self._connect()
                return
            except SSH_CONNECT_ERRORS as e:
                self.client = None
                if attempt < self.max_retries - 1:
                    delay = SSH_CONNECT_DELAYS[min(attempt, len(SSH_CONNECT_DELAYS) - 1)]
                    logger.debug("SSH connection failed (%s), retrying in %ss", e, delay)
                    time.sleep(delay)
                    continue

                raise TransportFailed(
                    f"Failed to establish SSH connection to {self.host} "
                    f"after {self.max_retries} attempts"
                ) from e

    def _connect(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        pkey = None
        if self.key_file:
            try:
                pkey = paramiko.RSAKey.from_private_key_file(
                    str(Path(self.key_file).expanduser())
                )
            except OSError as e:
                raise UserError(f"Unable to read SSH key {self.key_file}: {e}") from e

        client.connect(
            hostname=self.host,
            port=self.port,
            username=self.username,
            pkey=pkey,
            password=self.password,
            timeout=self.timeout,
            auth_timeout=self.timeout,
            banner_timeout=self.timeout,
        )
        return client

    def execute(self, command: str) -> None:
        """Run ``command`` on the instance and log its output.

        Raises
        ------
        TransportFailed
            If the command exits with a non-zero status
        """
        self.wait_until_ready()
        logger.debug("[SSH] %s@%s$ %s", self.username, self.host, command)

        stdin, stdout, stderr = self.client.exec_command(command)
        try:
            for line in stdout.readlines():
                logger.info(line.rstrip("\n"))
            for line in stderr.readlines():
                logger.info(line.rstrip("\n"), extra={"stream": "stderr"})

            exit_code = stdout.channel.recv_exit_status()
        finally:
            stdin.close()
            stdout.close()
            stderr.close()

        if exit_code != 0:
            raise TransportFailed(
                f"SSH exited ({exit_code}) for command: [{command}]",
                exit_code=exit_code,
            )

    def close(self) -> None:
        if self.client is None:
            return

        logger.debug("[SSH] closing connection to %s", self.host)
        self.client.close()
        self.client = None


class SSHTransport:
    """Transport handing out SSH connections built from its settings.

    Parameters
    ----------
    config : dict[str, Any]
        Transport settings: username, ssh_key, password, port, connection_retries
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = {"username": "root", "port": 22, "ssh_key": None, "password": None}
        self.config.update(config or {})
        self._connection: SSHConnection | None = None

    def __getitem__(self, key: str) -> Any:
        return self.config.get(key)

    def connection(self, state: dict[str, Any]) -> SSHConnection:
        """Return the connection for the host recorded in ``state``.

        The same connection is reused while the hostname does not change.
        Values stored in state take precedence over transport settings.
        """
        host = state.get("hostname")
        if not host:
            raise TransportFailed("No hostname recorded for this instance")

        if self._connection is not None and self._connection.host == host:
            return self._connection

        if self._connection is not None:
            self._connection.close()

        options = {
            "host": host,
            "username": state.get("username") or self.config["username"],
            "key_file": state.get("ssh_key") or self.config["ssh_key"],
            "password": state.get("password") or self.config["password"],
            "port": int(self.config["port"]),
        }
        retries = state.get("ssh_retries") or self.config.get("connection_retries")
        if retries:
            options["max_retries"] = int(retries)
        timeout = state.get("ssh_timeout") or self.config.get("connection_timeout")
        if timeout:
            options["timeout"] = int(timeout)

        self._connection = SSHConnection(**options)
        return self._connection
