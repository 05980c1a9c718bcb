"""Low-level traces for header scanning and archive indexing.

Set HARVEST_DEBUG to 1, true or yes to print them on stderr. The value is
read once, when this module is imported.
"""

import os
import sys
from typing import Any

_TRUTHY = ("1", "true", "yes")

_DEBUG_ENABLED = os.environ.get("HARVEST_DEBUG", "").lower() in _TRUTHY


def debug(msg: Any) -> None:
    """Write ``[DEBUG] msg`` to stderr when HARVEST_DEBUG is on."""
    if _DEBUG_ENABLED:
        print(f"[DEBUG] {msg}", file=sys.stderr)
