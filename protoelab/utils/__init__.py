"""Shared utility helpers for protoelab."""

from enum import Enum
from pathlib import Path
from typing import Any

# Canonical port templates for fixed-ports interface categories
CATEGORY_DEFINITIONS_PATH = Path(__file__).resolve().parent.parent / "model" / "categories.yml"


def enum_value(v: Any) -> str:
    """Extract the string value from an Enum member or return str(v)."""
    return v.value if isinstance(v, Enum) else str(v)


def filter_none(data: dict) -> dict:
    """Drop keys whose value is None so model field defaults apply."""
    return {k: v for k, v in data.items() if v is not None}
