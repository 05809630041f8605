#!/usr/bin/env python3
"""Run the kitchen-ec2 CLI with ``python -m kitchen_ec2``."""

from kitchen_ec2.cli.main import main

if __name__ == "__main__":
    main()
