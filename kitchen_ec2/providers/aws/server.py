"""Handle on a single provider-side EC2 instance."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from botocore.exceptions import ClientError, WaiterError

from kitchen_ec2.providers.aws.errors import is_not_found
from kitchen_ec2.providers.aws.windows import decrypt_windows_password

logger = logging.getLogger(__name__)


class Server:
    """Wrap a boto3 ``ec2.Instance`` with the calls the driver polls.

    Parameters
    ----------
    instance : Any
        boto3 EC2 Instance resource
    ec2_client : Any
        boto3 EC2 client, used for calls the resource does not expose
    """

    def __init__(self, instance: Any, ec2_client: Any) -> None:
        self.instance = instance
        self.ec2_client = ec2_client

    def __repr__(self) -> str:
        return f"Server(id={self.id!r})"

    @property
    def id(self) -> str:
        return self.instance.id

    @property
    def state_name(self) -> str | None:
        state = self.instance.state or {}
        return state.get("Name")

    @property
    def public_dns_name(self) -> str | None:
        return self.instance.public_dns_name

    @property
    def public_ip_address(self) -> str | None:
        return self.instance.public_ip_address

    @property
    def private_ip_address(self) -> str | None:
        return self.instance.private_ip_address

    def exists(self) -> bool:
        """Refresh cached attributes and report whether EC2 knows the instance.

        Returns
        -------
        bool
            False when EC2 answers InvalidInstanceID.NotFound or returns no data
        """
        try:
            self.instance.reload()
        except ClientError as e:
            if is_not_found(e):
                return False
            raise

        return self.instance.meta.data is not None

    def wait_until_exists(self, max_attempts: int, delay: int) -> None:
        """Block on the ``instance_exists`` waiter.

        Raises
        ------
        WaiterError
            If the instance is still unknown after ``max_attempts`` polls
        """
        self.instance.wait_until_exists(
            WaiterConfig={"Delay": delay, "MaxAttempts": max_attempts}
        )

    def wait_until(
        self,
        predicate: Callable[["Server"], bool],
        max_attempts: int,
        delay: float,
        before_attempt: Callable[[int], None] | None = None,
    ) -> bool:
        """Poll ``predicate`` until it returns True or the budget runs out.

        Parameters
        ----------
        predicate : Callable[[Server], bool]
            Called with this handle on every attempt
        max_attempts : int
            Maximum number of polls
        delay : float
            Seconds to sleep between polls
        before_attempt : Callable[[int], None] | None
            Called with the number of attempts already made before each poll

        Returns
        -------
        bool
            True once the predicate held

        Raises
        ------
        WaiterError
            If the predicate never held within ``max_attempts`` polls
        """
        for attempt in range(max_attempts):
            if before_attempt is not None:
                before_attempt(attempt)

            if predicate(self):
                return True

            if attempt < max_attempts - 1:
                time.sleep(delay)

        raise WaiterError(
            name="wait_until",
            reason=f"Max attempts exceeded ({max_attempts})",
            last_response={},
        )

    def create_tags(self, tags: dict[str, Any]) -> None:
        """Apply ``tags`` to the instance in a single call."""
        self.instance.create_tags(
            Tags=[{"Key": str(key), "Value": str(value)} for key, value in tags.items()]
        )

    def console_output(self) -> str:
        response = self.instance.console_output()
        return response.get("Output") or ""

    def password_data(self) -> str:
        """Return the encrypted administrator password, empty until generated."""
        response = self.ec2_client.get_password_data(InstanceId=self.id)
        return response.get("PasswordData") or ""

    def decrypt_windows_password(self, key_path: str | Path) -> str:
        return decrypt_windows_password(self.password_data(), key_path)

    def terminate(self) -> None:
        logger.debug("Terminating instance %s", self.id)
        self.instance.terminate()
