"""Load the list of cut identifiers to generate assets for."""

from __future__ import annotations

from pathlib import Path
from typing import Hashable, Iterable, List

import yaml


def load_units(path: str | Path) -> List[Hashable]:
    """Read unit ids from a YAML or JSON file.

    Accepts a list of ids, a list of mappings with an ``id`` (or ``cut_id``)
    key, or a mapping with a ``units``/``cuts`` list. Duplicates are kept.
    """

    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Units file not found: {file_path}")
    try:
        data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {file_path}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("units", data.get("cuts"))
    if not isinstance(data, list):
        raise ValueError("Units file must contain a list of ids or a mapping with a 'units' list")
    return list(_extract_ids(data))


def _extract_ids(entries: Iterable[object]) -> Iterable[Hashable]:
    for index, entry in enumerate(entries):
        if isinstance(entry, dict):
            identifier = entry.get("id", entry.get("cut_id"))
            if identifier is None:
                raise ValueError(f"Unit entry {index} has no 'id'")
            yield identifier
        elif isinstance(entry, (str, int)):
            yield entry
        else:
            raise ValueError(f"Unsupported unit entry at index {index}: {entry!r}")


__all__ = ["load_units"]
