"""Thin wrapper around the boto3 EC2 client and resource."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from kitchen_ec2.providers.aws.errors import handle_aws_errors, is_not_found
from kitchen_ec2.providers.aws.server import Server

logger = logging.getLogger(__name__)


class Client:
    """EC2 access for one region and one set of credentials.

    Parameters
    ----------
    region : str
        AWS region for EC2 operations
    profile_name : str | None
        Shared credentials profile. If None, the default credential chain is used
    access_key_id : str | None
        Static access key id
    secret_access_key : str | None
        Static secret access key
    session_token : str | None
        Session token for temporary credentials
    http_proxy : str | None
        Proxy URL used for both http and https EC2 endpoints
    session_factory : Callable[..., Any] | None
        Optional factory for creating boto3 sessions. If None, uses
        boto3.session.Session
    """

    def __init__(
        self,
        region: str,
        profile_name: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        session_token: str | None = None,
        http_proxy: str | None = None,
        session_factory: Any | None = None,
    ) -> None:
        self.region = region
        self.session_factory = session_factory or boto3.session.Session

        with handle_aws_errors():
            self.session = self.session_factory(
                region_name=region,
                profile_name=profile_name,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                aws_session_token=session_token,
            )

        botocore_config = None
        if http_proxy:
            botocore_config = Config(proxies={"http": http_proxy, "https": http_proxy})

        self.client = self.session.client("ec2", config=botocore_config)
        self.resource = self.session.resource("ec2", config=botocore_config)

    def create_instance(self, **options: Any) -> Server:
        """Launch exactly one on-demand instance.

        Parameters
        ----------
        **options : Any
            Keyword arguments for ``create_instances``. MinCount and MaxCount
            are always forced to 1

        Returns
        -------
        Server
            Handle on the requested instance
        """
        options["MinCount"] = 1
        options["MaxCount"] = 1
        instances = self.resource.create_instances(**options)
        return Server(instances[0], self.client)

    def get_instance(self, instance_id: str) -> Server | None:
        """Look up an instance by id.

        Returns
        -------
        Server | None
            Handle on the instance, or None if EC2 does not know it
        """
        try:
            instances = list(
                self.resource.instances.filter(
                    Filters=[{"Name": "instance-id", "Values": [instance_id]}]
                )
            )
        except ClientError as e:
            if is_not_found(e):
                return None
            raise

        if not instances:
            return None

        return Server(instances[0], self.client)

    def request_spot_instance(
        self,
        spot_price: str,
        launch_specification: dict[str, Any],
        valid_until: datetime | None = None,
    ) -> str:
        """Submit a one-time spot request and return its id."""
        kwargs: dict[str, Any] = {
            "SpotPrice": spot_price,
            "InstanceCount": 1,
            "LaunchSpecification": launch_specification,
        }
        if valid_until is not None:
            kwargs["ValidUntil"] = valid_until

        response = self.client.request_spot_instances(**kwargs)
        return response["SpotInstanceRequests"][0]["SpotInstanceRequestId"]

    def wait_for_spot_request(
        self, request_id: str, max_attempts: int, delay: int
    ) -> None:
        """Block until EC2 fulfils the spot request.

        Raises
        ------
        WaiterError
            If the request is not fulfilled within ``max_attempts`` polls
        """
        waiter = self.client.get_waiter("spot_instance_request_fulfilled")
        waiter.wait(
            SpotInstanceRequestIds=[request_id],
            WaiterConfig={"Delay": delay, "MaxAttempts": max_attempts},
        )

    def get_instance_from_spot_request(self, request_id: str) -> Server:
        """Resolve the instance launched for a fulfilled spot request."""
        response = self.client.describe_spot_instance_requests(
            SpotInstanceRequestIds=[request_id]
        )
        instance_id = response["SpotInstanceRequests"][0]["InstanceId"]
        return Server(self.resource.Instance(instance_id), self.client)

    def cancel_spot_request(self, request_id: str) -> None:
        logger.debug("Cancelling spot request %s", request_id)
        self.client.cancel_spot_instance_requests(SpotInstanceRequestIds=[request_id])

    def images(
        self, filters: list[dict[str, Any]], owners: list[str] | None = None
    ) -> list[Any]:
        """List AMIs matching EC2 ``filters``."""
        kwargs: dict[str, Any] = {"Filters": filters}
        if owners:
            kwargs["Owners"] = owners

        with handle_aws_errors():
            return list(self.resource.images.filter(**kwargs))
