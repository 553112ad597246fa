"""
Data loader for the advertising vendor catalogue.

The catalogue lives alongside this module in ``vendors.json`` as an
ordered list: earlier entries take priority when URL patterns overlap,
so the file order is part of the matching contract.
"""

from __future__ import annotations

import json
import pathlib
from typing import Any

import pydantic

from adflow.models import vendors as vendors_mod

# Resolve path to the data directory (same directory as this module)
_DATA_DIR = pathlib.Path(__file__).resolve().parent

# ============================================================================
# JSON File Loading
# ============================================================================


def _load_json(relative_path: str) -> Any:
    """Load and parse a JSON file relative to the data directory.

    Raises:
        FileNotFoundError: If the JSON file does not exist.
        json.JSONDecodeError: If the file contains invalid JSON.
    """
    full_path = _DATA_DIR / relative_path
    if not full_path.exists():
        raise FileNotFoundError(f"Data file not found: {relative_path}")
    with open(full_path, encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as exc:
            raise json.JSONDecodeError(
                f"Invalid JSON in {relative_path}: {exc.msg}",
                exc.doc,
                exc.pos,
            ) from exc


# ============================================================================
# Vendor Catalogue
# ============================================================================

_vendor_list_adapter = pydantic.TypeAdapter(list[vendors_mod.Vendor])

_vendors: tuple[vendors_mod.Vendor, ...] | None = None
_vendor_index: dict[str, vendors_mod.Vendor] | None = None


def _load_vendors(filename: str) -> tuple[vendors_mod.Vendor, ...]:
    """Validate the catalogue file into immutable vendor records."""
    return tuple(_vendor_list_adapter.validate_python(_load_json(filename)))


def get_vendors() -> tuple[vendors_mod.Vendor, ...]:
    """Get the vendor catalogue in declaration order (lazy loaded and cached)."""
    global _vendors
    if _vendors is None:
        _vendors = _load_vendors("vendors.json")
    return _vendors


def get_vendor(vendor_id: str) -> vendors_mod.Vendor | None:
    """Look a vendor up by its identifier."""
    global _vendor_index
    if _vendor_index is None:
        _vendor_index = {v.id: v for v in get_vendors()}
    return _vendor_index.get(vendor_id)
