#!/usr/bin/env python3
"""
Entry point for running the client as a module.

Usage:
    python -m mqtt_adapter --config client.toml publish --topic sensors/temp --message 21.5
    python -m mqtt_adapter --config client.toml subscribe --topic sensors/temp --count 1
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
