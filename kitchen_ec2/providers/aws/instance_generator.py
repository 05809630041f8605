"""Translate driver configuration into EC2 launch arguments."""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

logger = logging.getLogger(__name__)


def read_user_data(user_data: str | None) -> str | None:
    """Return user data, reading it from disk when it names an existing file."""
    if not user_data:
        return None

    path = Path(user_data).expanduser()
    try:
        if path.is_file():
            logger.debug("Reading user data from %s", path)
            return path.read_text()
    except OSError:
        # too long or otherwise not a valid path: treat as inline script
        pass

    return user_data


@dataclass(frozen=True)
class LaunchRequest:
    """Immutable description of the instance to launch.

    Attributes
    ----------
    image_id : str
        AMI ID
    instance_type : str
        EC2 instance type
    key_name : str
        Name of the EC2 key pair
    availability_zone : str | None
        Fully expanded availability zone
    tags : Mapping[str, str]
        Read-only tags applied once the instance exists
    spot_price : str | None
        Maximum hourly bid; None for on-demand
    spot_duration : int | None
        Seconds the spot request stays valid
    """

    image_id: str
    instance_type: str
    key_name: str
    availability_zone: str | None = None
    subnet_id: str | None = None
    security_group_ids: tuple[str, ...] = ()
    iam_profile_name: str | None = None
    ebs_optimized: bool = False
    user_data: str | None = None
    block_device_mappings: tuple[dict[str, Any], ...] = ()
    associate_public_ip: bool | None = None
    private_ip_address: str | None = None
    tenancy: str | None = None
    tags: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    spot_price: str | None = None
    spot_duration: int | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "LaunchRequest":
        """Build a launch request from finalized driver configuration."""
        security_group_ids = config.get("security_group_ids") or ()
        if isinstance(security_group_ids, str):
            security_group_ids = (security_group_ids,)

        spot_price = config.get("spot_price")

        return cls(
            image_id=config["image_id"],
            instance_type=config["instance_type"],
            key_name=config["aws_ssh_key_id"],
            availability_zone=config.get("availability_zone"),
            subnet_id=config.get("subnet_id"),
            security_group_ids=tuple(security_group_ids),
            iam_profile_name=config.get("iam_profile_name"),
            ebs_optimized=bool(config.get("ebs_optimized")),
            user_data=read_user_data(config.get("user_data")),
            block_device_mappings=tuple(config.get("block_device_mappings") or ()),
            associate_public_ip=config.get("associate_public_ip"),
            private_ip_address=config.get("private_ip_address"),
            tenancy=config.get("tenancy"),
            tags=MappingProxyType(
                {str(k): str(v) for k, v in (config.get("tags") or {}).items()}
            ),
            spot_price=None if spot_price is None else str(spot_price),
            spot_duration=config.get("spot_duration"),
        )

    def _base_arguments(self) -> dict[str, Any]:
        arguments: dict[str, Any] = {
            "ImageId": self.image_id,
            "InstanceType": self.instance_type,
            "KeyName": self.key_name,
        }

        placement: dict[str, Any] = {}
        if self.availability_zone:
            placement["AvailabilityZone"] = self.availability_zone.lower()
        if self.tenancy:
            placement["Tenancy"] = self.tenancy
        if placement:
            arguments["Placement"] = placement

        if self.ebs_optimized:
            arguments["EbsOptimized"] = True

        if self.iam_profile_name:
            arguments["IamInstanceProfile"] = {"Name": self.iam_profile_name}

        if self.block_device_mappings:
            arguments["BlockDeviceMappings"] = [
                dict(mapping) for mapping in self.block_device_mappings
            ]

        return arguments

    def _apply_network(
        self, arguments: dict[str, Any], use_interface: bool
    ) -> dict[str, Any]:
        if use_interface:
            interface: dict[str, Any] = {"DeviceIndex": 0}
            if self.associate_public_ip is not None:
                interface["AssociatePublicIpAddress"] = bool(self.associate_public_ip)
            if self.subnet_id:
                interface["SubnetId"] = self.subnet_id
            if self.security_group_ids:
                interface["Groups"] = list(self.security_group_ids)
            if self.private_ip_address:
                interface["PrivateIpAddress"] = self.private_ip_address
            arguments["NetworkInterfaces"] = [interface]
            return arguments

        if self.subnet_id:
            arguments["SubnetId"] = self.subnet_id
        if self.security_group_ids:
            arguments["SecurityGroupIds"] = list(self.security_group_ids)
        if self.private_ip_address:
            arguments["PrivateIpAddress"] = self.private_ip_address
        return arguments

    def to_run_arguments(self) -> dict[str, Any]:
        """Keyword arguments for ``ec2.create_instances``, count fixed at one."""
        arguments = self._apply_network(
            self._base_arguments(),
            use_interface=self.associate_public_ip is not None,
        )
        if self.user_data:
            arguments["UserData"] = self.user_data
        arguments["MinCount"] = 1
        arguments["MaxCount"] = 1
        return arguments

    def to_launch_specification(self) -> dict[str, Any]:
        """LaunchSpecification for ``request_spot_instances``.

        The spot API neither accepts a top-level private IP nor encodes user
        data itself, so both are handled here.
        """
        arguments = self._apply_network(
            self._base_arguments(),
            use_interface=(
                self.associate_public_ip is not None
                or self.private_ip_address is not None
            ),
        )
        if self.user_data:
            arguments["UserData"] = base64.b64encode(
                self.user_data.encode("utf-8")
            ).decode("ascii")
        return arguments
