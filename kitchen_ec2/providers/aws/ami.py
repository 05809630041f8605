"""AMI resolution and querying for EC2 instances."""

import logging
import re
from typing import Any

from kitchen_ec2.constants import CANONICAL_OWNER_ID
from kitchen_ec2.exceptions import UserError

logger = logging.getLogger(__name__)

UBUNTU_PLATFORM_PATTERN = re.compile(r"^ubuntu-(?P<version>\d+(?:\.\d+)?)$")


class AMIResolver:
    """Resolve and query for AMI IDs."""

    def __init__(self, client: Any) -> None:
        """Initialize AMIResolver.

        Parameters
        ----------
        client : Client
            EC2 client wrapper exposing ``images``
        """
        self.client = client

    def default_ami(self, config: dict[str, Any], platform_name: str) -> str | None:
        """Pick an AMI when configuration does not name one.

        Priority order:
        1. ``image_search`` filters from configuration
        2. Latest official Canonical image for ``ubuntu-<version>`` platforms
        3. None, leaving ``image_id`` unset

        Parameters
        ----------
        config : dict[str, Any]
            Driver configuration
        platform_name : str
            Host platform name, e.g. "ubuntu-22.04"

        Returns
        -------
        str | None
            AMI ID, or None if no default can be derived
        """
        image_search = config.get("image_search")
        if image_search is not None:
            return self.lookup_ami(image_search)

        match = UBUNTU_PLATFORM_PATTERN.match(platform_name or "")
        if match:
            return self.ubuntu_ami(match.group("version"))

        return None

    def ubuntu_ami(self, version: str) -> str:
        """Return the newest Canonical amd64 server image for an Ubuntu release."""
        filters = {
            "name": f"ubuntu/images/hvm-ssd*/ubuntu-*-{version}-amd64-server-*",
            "architecture": "x86_64",
            "state": "available",
        }
        logger.debug("Searching Canonical images for Ubuntu %s", version)
        return self.lookup_ami(filters, owners=[CANONICAL_OWNER_ID])

    def lookup_ami(
        self, filters: dict[str, Any], owners: list[str] | None = None
    ) -> str:
        """Query AWS for AMIs matching ``filters`` and return the newest.

        Parameters
        ----------
        filters : dict[str, Any]
            Mapping of EC2 image filter name to a value or list of values
        owners : list[str] | None
            AWS account IDs or aliases to restrict the search to

        Returns
        -------
        str
            Image ID with the latest CreationDate

        Raises
        ------
        UserError
            If no AMI matches the filters
        """
        aws_filters = [
            {
                "Name": str(name),
                "Values": [str(v) for v in value]
                if isinstance(value, (list, tuple))
                else [str(value)],
            }
            for name, value in filters.items()
        ]

        images = self.client.images(aws_filters, owners=owners)

        if not images:
            raise UserError(f"No AMI found matching {filters}")

        newest = max(images, key=lambda image: image.creation_date)
        logger.debug("Selected AMI %s created %s", newest.id, newest.creation_date)
        return newest.id
