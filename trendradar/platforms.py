"""Default hot-list platforms shipped with TrendRadar."""
import logging
import os
from typing import Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

_platforms: List[Dict[str, str]] = []
_loaded = False


def _load():
    global _platforms, _loaded
    if _loaded:
        return
    yaml_path = os.path.join(os.path.dirname(__file__), "platforms.yaml")
    try:
        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        _platforms = [
            {"id": str(p["id"]), "name": str(p.get("name", p["id"]))}
            for p in data.get("platforms", [])
            if isinstance(p, dict) and p.get("id")
        ]
        logger.debug(f"[Platforms] Loaded {len(_platforms)} platforms")
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"[Platforms] Failed to load platforms.yaml: {e}")
        _platforms = []
    _loaded = True


def get_default_platforms() -> List[Dict[str, str]]:
    _load()
    return [dict(p) for p in _platforms]


def resolve_platforms(configured: Optional[list]) -> List[Dict[str, str]]:
    """Configured platforms win; bare ids get their own id as display name."""
    if not configured:
        return get_default_platforms()
    result = []
    for p in configured:
        if isinstance(p, str):
            result.append({"id": p, "name": p})
        elif isinstance(p, dict) and p.get("id"):
            result.append({"id": str(p["id"]), "name": str(p.get("name", p["id"]))})
    return result
