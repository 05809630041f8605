"""Command line host for the EC2 driver."""

from kitchen_ec2.cli.main import main

__all__ = ["main"]
