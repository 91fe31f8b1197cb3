"""Formatting of boot and power query results."""

import json
from typing import Any, Dict, List


def format_boot_output(entries: List[Dict[str, Any]], format: str = "text") -> str:
    """
    Format boot override settings for display.

    Args:
        entries: One dict per system (system, enabled, target, mode)
        format: Output format ('text' or 'json')

    Returns:
        Formatted string output
    """
    if format.lower() == "json":
        return json.dumps(entries, indent=2)

    return "\n".join(
        f"Enabled: {entry.get('enabled')}, Target: {entry.get('target')}"
        for entry in entries
    )


def format_power_output(entries: List[Dict[str, Any]], format: str = "text") -> str:
    """Format power states for display ('text' or 'json')."""
    if format.lower() == "json":
        return json.dumps(entries, indent=2)

    return "\n".join(f"Power: {entry.get('power_state')}" for entry in entries)
