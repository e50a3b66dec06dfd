"""Helpers shared by the MCP test modules.

Kept out of conftest.py so tests can ``from tests.mcp._helpers import _parse``.
"""

from __future__ import annotations

import json
from typing import Any


def _parse(result: list[Any]) -> Any:
    """Return the first text item of a tool result, JSON-decoded when it is JSON."""
    text = result[0].text
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text
