#!/usr/bin/env python3
"""
Convenience entry point for running fleetbook directly.

Usage: python -m fleetbook [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
