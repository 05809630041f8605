"""Test Kitchen style EC2 driver."""

__version__ = "1.0.0"
