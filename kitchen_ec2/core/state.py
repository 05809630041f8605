"""YAML persistence for provisioning state between CLI invocations."""

import logging
from pathlib import Path
from typing import Any

import yaml

from kitchen_ec2.exceptions import UserError

logger = logging.getLogger(__name__)


class StateFile:
    """Read and write the provisioning state of one instance.

    Parameters
    ----------
    path : str | Path
        Location of the YAML state file
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self) -> dict[str, Any]:
        """Return stored state, or an empty dict if nothing was stored yet."""
        if not self.path.exists():
            return {}

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise UserError(f"State file {self.path} is corrupt: {e}") from e

        if data is None:
            return {}

        if not isinstance(data, dict):
            raise UserError(f"State file {self.path} must contain a mapping")

        return data

    def write(self, state: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(dict(state), f, default_flow_style=False)
        logger.debug("Wrote state to %s", self.path)

    def destroy(self) -> None:
        """Remove the state file if present."""
        if self.path.exists():
            self.path.unlink()
