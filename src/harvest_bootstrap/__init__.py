"""harvest-bootstrap: bootstrap a project from files harvested out of another
project's history, renaming their namespace on the way in."""

__version__ = "0.1.0"
