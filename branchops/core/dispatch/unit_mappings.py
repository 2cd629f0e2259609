"""Unit of measure lookup for dispatch items.

Most central kitchen items ship by weight. The exceptions live in
``data/unit_mappings.yaml``: exact lower-cased names first, then substring
patterns in file order.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Tuple

import yaml

MAPPINGS_PATH = Path(__file__).resolve().parents[2] / "data" / "unit_mappings.yaml"


@lru_cache(maxsize=1)
def _load() -> Tuple[str, Dict[str, str], List[Tuple[str, str]]]:
    with open(MAPPINGS_PATH, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    exact = {str(k).lower().strip(): str(v) for k, v in (data.get("exact") or {}).items()}
    patterns = [(str(p["pattern"]).lower(), str(p["unit"])) for p in data.get("patterns") or []]
    return str(data.get("default") or "KG"), exact, patterns


def get_item_unit(item_name: str, default_unit: str | None = None) -> str:
    default, exact, patterns = _load()
    name = (item_name or "").lower().strip()
    if name in exact:
        return exact[name]
    for pattern, unit in patterns:
        if pattern in name:
            return unit
    return default_unit or default

