"""Global constants for the kitchen-ec2 driver.

This module contains values shared by the driver, the AWS provider layer and
the command line host.
"""

from enum import Enum

API_VERSION = 2
"""Driver plugin API version reported by ``diagnose_plugin``."""

DEFAULT_REGION = "us-east-1"
"""Default AWS region when neither configuration nor AWS_REGION provide one."""

DEFAULT_INSTANCE_TYPE = "t2.micro"
"""Instance type launched when configuration does not name one."""

DEFAULT_AVAILABILITY_ZONE_SUFFIX = "b"
"""Zone letter appended to the region when no availability zone is given."""

DEFAULT_TAGS = {"created-by": "test-kitchen"}
"""Tags applied to every instance unless configuration overrides them."""

RETRYABLE_TRIES = 60
"""Maximum number of polls for the existence, readiness and password waiters."""

RETRYABLE_SLEEP = 5
"""Delay in seconds between waiter polls.

Together with RETRYABLE_TRIES this gives each wait stage a five minute budget.
"""

TAG_RETRY_TRIES = 10
"""Attempts to tag a freshly created instance.

EC2 is eventually consistent: tagging can fail with InvalidInstanceID.NotFound
even after the existence waiter succeeded.
"""

TAG_RETRY_MAX_SLEEP = 30
"""Upper bound in seconds for the exponential backoff between tag attempts."""

PLACEHOLDER_HOSTNAME = "0.0.0.0"
"""Address some EC2-compatible clouds report before a real one is assigned."""

WINDOWS_READY_MARKER = "Windows is Ready to use"
"""Console output line EC2Config writes once a Windows instance has booted."""

CANONICAL_OWNER_ID = "099720109477"
"""AWS account that publishes official Ubuntu AMIs."""

UNIX_EC2_HINT_COMMAND = (
    "sudo mkdir -p /etc/chef/ohai/hints;sudo touch /etc/chef/ohai/hints/ec2.json"
)
"""Command creating the Ohai EC2 hint file on Unix-like instances."""

WINDOWS_EC2_HINT_COMMAND = (
    "New-Item -Force C:\\chef\\ohai\\hints\\ec2.json -ItemType File"
)
"""PowerShell command creating the Ohai EC2 hint file on Windows instances."""

SSH_CONNECT_DELAYS = [1, 2, 4, 8, 16, 30, 30, 30, 30, 30]
"""Backoff schedule in seconds between SSH connection attempts."""

SSH_CONNECT_TIMEOUT_SECONDS = 30
"""Timeout in seconds for a single SSH connection attempt."""

EXIT_SUCCESS = 0
"""Exit code indicating successful program completion."""

EXIT_ERROR = 1
"""Exit code indicating a provider, transport or unexpected error."""

EXIT_CONFIG_ERROR = 2
"""Exit code indicating a configuration error."""


class InstanceState(str, Enum):
    """Instance state values."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"
    TERMINATED = "terminated"


class LaunchMode(str, Enum):
    """How an instance is acquired from EC2."""

    ON_DEMAND = "on_demand"
    SPOT = "spot"


class Interface(str, Enum):
    """Instance address a caller may ask to connect through."""

    DNS = "dns"
    PUBLIC = "public"
    PRIVATE = "private"
