"""Pytest configuration and fixtures for kitchen-ec2 tests."""

import logging
import os
from collections.abc import Generator
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest

from kitchen_ec2.driver import Ec2Driver

DRIVER_ENV_VARS = (
    "AWS_REGION",
    "AWS_SSH_KEY_ID",
    "AWS_SESSION_TOKEN",
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "KITCHEN_EC2_CONFIG",
)


@pytest.fixture(autouse=True)
def clean_driver_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure environment defaults do not leak into driver configuration."""
    for name in DRIVER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def aws_credentials() -> Generator[None, None, None]:
    """Fixture to set AWS credentials for testing with proper cleanup.

    Sets mock AWS credentials in environment variables for the duration of the test,
    then restores the original environment state.

    Yields
    ------
    None
        Control back to test after setting credentials
    """
    names = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_DEFAULT_REGION")
    old_values = {name: os.environ.get(name) for name in names}

    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

    yield

    for name, value in old_values.items():
        if value is not None:
            os.environ[name] = value
        else:
            os.environ.pop(name, None)


class FakeTransport:
    """Transport double with dict-style settings and a mocked connection."""

    def __init__(self, settings: dict[str, Any] | None = None) -> None:
        self.settings = settings or {}
        self.connection_mock = MagicMock(name="connection")
        self.requested_states: list[dict[str, Any]] = []

    def __getitem__(self, key: str) -> Any:
        return self.settings.get(key)

    def connection(self, state: dict[str, Any]) -> MagicMock:
        self.requested_states.append(dict(state))
        return self.connection_mock


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport({"username": "ubuntu", "ssh_key": "~/.ssh/key.pem"})


@pytest.fixture
def platform() -> SimpleNamespace:
    return SimpleNamespace(name="fooos-99", os_type="unix")


@pytest.fixture
def host_instance(transport: FakeTransport, platform: SimpleNamespace) -> SimpleNamespace:
    """Host-side context the driver is constructed with."""
    return SimpleNamespace(
        name="default-fooos-99",
        logger=logging.getLogger("tests.instance"),
        transport=transport,
        platform=platform,
    )


@pytest.fixture
def ec2_client() -> MagicMock:
    """Mocked EC2 client wrapper."""
    return MagicMock(name="ec2_client")


@pytest.fixture
def client_factory(ec2_client: MagicMock) -> MagicMock:
    return MagicMock(name="client_factory", return_value=ec2_client)


@pytest.fixture
def config() -> dict[str, Any]:
    return {"aws_ssh_key_id": "key", "image_id": "ami-1234567"}


@pytest.fixture
def driver(
    config: dict[str, Any],
    host_instance: SimpleNamespace,
    client_factory: MagicMock,
) -> Ec2Driver:
    """Driver with finalized configuration and a mocked EC2 client."""
    ec2_driver = Ec2Driver(config, host_instance, client_factory=client_factory)
    ec2_driver.finalize_config()
    return ec2_driver


def make_server(
    server_id: str = "i-12345",
    private_ip_address: str | None = None,
    public_ip_address: str | None = None,
    public_dns_name: str | None = None,
) -> MagicMock:
    """Build a Server double exposing the attributes the driver reads."""
    server = MagicMock(name=f"server {server_id}")
    server.id = server_id
    server.private_ip_address = private_ip_address
    server.public_ip_address = public_ip_address
    server.public_dns_name = public_dns_name
    return server


@pytest.fixture
def server_factory():
    """Factory fixture for Server doubles."""
    return make_server
