"""Protocols describing what the driver needs from its host application."""

from __future__ import annotations

import logging
from typing import Any, Protocol


class Connection(Protocol):
    """Open channel to a provisioned instance."""

    def wait_until_ready(self) -> None:
        """Block until the instance accepts connections."""
        ...

    def execute(self, command: str) -> None:
        """Run ``command`` remotely, raising TransportFailed on failure."""
        ...

    def close(self) -> None:
        ...


class Transport(Protocol):
    """Host transport: read-only access to its settings plus connections."""

    def __getitem__(self, key: str) -> Any:
        ...

    def connection(self, state: dict[str, Any]) -> Connection:
        ...


class Platform(Protocol):
    name: str
    os_type: str


class Instance(Protocol):
    """Host-side context the driver is constructed with.

    Attributes
    ----------
    name : str
        Instance name used in log output
    logger : logging.Logger | logging.LoggerAdapter
        Logger the driver reports lifecycle progress through
    transport : Transport
        Transport used to reach the instance
    platform : Platform
        Target operating system description
    """

    name: str
    logger: logging.Logger | logging.LoggerAdapter
    transport: Transport
    platform: Platform
