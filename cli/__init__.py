"""
oceanval CLI Package

Command-line interface for the ocean forecast verification engine.
Provides commands for listing variables and stations and for running
validation queries over a sample document.

Usage:
    oceanval variables
    oceanval stations --data samples.json --status active
    oceanval query --data samples.json --station 2902123 --variable T --issue-date 2025-08-05
"""

__version__ = "0.1.0"

from cli.main import app

__all__ = ["app", "__version__"]
