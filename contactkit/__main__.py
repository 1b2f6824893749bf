"""
Entry point for running contactkit as a module.

Usage:
    python -m contactkit --help
    python -m contactkit find --org acme
    python -m contactkit groups list
"""

from contactkit.cli import cli

if __name__ == "__main__":
    cli()
