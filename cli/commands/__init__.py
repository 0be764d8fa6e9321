"""
oceanval CLI Commands

This package contains all CLI subcommands for the oceanval tool.

Commands:
    variables - List verifiable variables and depth levels
    stations  - List stations and the dashboard summary
    query     - Run a validation query (lead-time series, depth profile, comparison)
"""

from cli.commands import (
    query,
    stations,
    variables,
)

__all__ = [
    "query",
    "stations",
    "variables",
]
