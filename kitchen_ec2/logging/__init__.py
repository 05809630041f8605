"""Logging helpers for kitchen-ec2."""

from kitchen_ec2.logging.formatters import InstanceFormatter, instance_logger

__all__ = ["InstanceFormatter", "instance_logger"]
