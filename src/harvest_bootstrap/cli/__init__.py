"""CLI entrypoints for harvest-bootstrap."""

from harvest_bootstrap.cli.harvest import app as harvest_app
from harvest_bootstrap.cli.harvest import run_cli

__all__ = ["harvest_app", "run_cli"]
