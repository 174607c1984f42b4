"""
Static flavor catalog served to the frontend.
"""

from __future__ import annotations

import json
from importlib import resources
from typing import Optional


def load_flavors(path: Optional[str] = None) -> dict:
    """Load the catalog from ``path`` or the bundled ``data/flavors.json``."""
    if path:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    bundled = resources.files("sippsearcher").joinpath("data/flavors.json")
    return json.loads(bundled.read_text(encoding="utf-8"))
