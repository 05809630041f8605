"""AWS EC2 provider implementation."""

from kitchen_ec2.providers.aws.ami import AMIResolver
from kitchen_ec2.providers.aws.client import Client
from kitchen_ec2.providers.aws.instance_generator import LaunchRequest
from kitchen_ec2.providers.aws.server import Server

__all__ = ["AMIResolver", "Client", "LaunchRequest", "Server"]
