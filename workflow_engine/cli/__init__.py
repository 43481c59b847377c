"""
CLI package for the Workflow Engine

Provides command-line interface for running and validating job definitions.
"""

from .main import main, cli

__all__ = ["main", "cli"]
