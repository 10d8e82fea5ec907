"""Config file support for TrendRadar.

Settings are layered, later sources winning:
  1. DEFAULT_CONFIG         (built in)
  2. ~/.trendradar.yaml     (user-level)
  3. ./trendradar.yaml      (project-level, overrides user-level)
  4. TRENDRADAR_* env vars  (e.g. TRENDRADAR_REPORT_MODE=daily)
  5. CLI flags

Example config file:

    # ~/.trendradar.yaml
    report_mode: incremental
    max_news_per_keyword: 15
    algorithm_threshold: 0.8
    history_window: 7d
    llm_api_key: sk-...
    weight_config:
      rank_weight: 0.6
      frequency_weight: 0.3
      hotness_weight: 0.1
"""
import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml

from trendradar.keywords import DEFAULT_WEIGHT_CONFIG
from trendradar.llm import DEFAULT_BASE_URL, DEFAULT_MODEL
from trendradar.utils import parse_since_seconds

logger = logging.getLogger(__name__)

REPORT_MODES = ("daily", "current", "incremental")

DEFAULT_CONFIG: Dict[str, Any] = {
    "report_mode": "incremental",
    "request_interval": 1000,
    "request_retries": 2,
    "request_timeout": 15,
    "max_news_per_keyword": 10,
    "sort_by_position_first": False,
    "allow_multi_group": True,
    "hot_rank_threshold": 10,
    "weight_config": dict(DEFAULT_WEIGHT_CONFIG),
    "algorithm_threshold": 0.8,
    "prefilter_threshold": 0.1,
    "semantic_max_items": None,
    "history_window": "7d",
    "history_ttl": "30d",
    "llm_api_key": "",
    "llm_base_url": DEFAULT_BASE_URL,
    "llm_model": DEFAULT_MODEL,
    "llm_timeout": 60,
    "holiday_api_key": "",
    "holiday_schedule_hours": [10, 12, 16, 20],
    "enable_crawler": True,
    "enable_notification": True,
    "store_path": None,
    "platforms": None,
}

_BOOL_FIELDS = {"sort_by_position_first", "allow_multi_group", "enable_crawler", "enable_notification"}
_INT_FIELDS = {"request_interval", "request_retries", "request_timeout", "max_news_per_keyword",
               "hot_rank_threshold", "semantic_max_items", "llm_timeout"}
_FLOAT_FIELDS = {"algorithm_threshold", "prefilter_threshold"}
_STR_FIELDS = {"report_mode", "history_window", "history_ttl", "llm_api_key", "llm_base_url",
               "llm_model", "holiday_api_key", "store_path"}
_LIST_FIELDS = {"holiday_schedule_hours"}


def default_paths() -> list:
    return [
        Path.home() / ".trendradar.yaml",
        Path.home() / ".trendradar.yml",
        Path("trendradar.yaml"),
        Path("trendradar.yml"),
    ]


def load_config(paths: Optional[Iterable[Path]] = None) -> Dict[str, Any]:
    """Load config from YAML files, merging user + project level."""
    config: Dict[str, Any] = {}

    for p in (default_paths() if paths is None else paths):
        p = Path(p)
        if not p.is_file():
            continue
        try:
            with open(p, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"[Config] Failed to load {p}: {e}")
            continue
        if isinstance(data, dict):
            # Normalize keys: dashes → underscores
            config.update({str(k).replace("-", "_"): v for k, v in data.items()})
            logger.debug(f"[Config] Loaded {p}")

    return config


def load_env_config(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Load config from TRENDRADAR_* environment variables.

    Maps TRENDRADAR_REPORT_MODE=daily → report_mode=daily,
    TRENDRADAR_HOLIDAY_SCHEDULE_HOURS=9,18 → holiday_schedule_hours=[9, 18], etc.
    Unparseable numbers are ignored.
    """
    environ = os.environ if environ is None else environ
    prefix = "TRENDRADAR_"
    config: Dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(prefix):
            continue
        field = key[len(prefix):].lower()
        try:
            if field in _BOOL_FIELDS:
                config[field] = value.lower() in ("1", "true", "yes", "on")
            elif field in _INT_FIELDS:
                config[field] = int(value)
            elif field in _FLOAT_FIELDS:
                config[field] = float(value)
            elif field in _LIST_FIELDS:
                config[field] = [int(v) for v in value.split(",") if v.strip()]
            elif field in _STR_FIELDS:
                config[field] = value
        except ValueError:
            logger.warning(f"[Config] Ignoring bad value for {key}: {value!r}")
    return config


def merge_config(*layers: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge layers onto DEFAULT_CONFIG. ``weight_config`` merges key by key; None values are skipped."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    for layer in layers:
        for key, value in (layer or {}).items():
            if value is None:
                continue
            if key == "weight_config" and isinstance(value, dict):
                config["weight_config"] = {**config["weight_config"], **value}
            else:
                config[key] = value
    return validate_config(config)


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    if config["report_mode"] not in REPORT_MODES:
        raise ValueError(f"Invalid report_mode '{config['report_mode']}'. Use one of {', '.join(REPORT_MODES)}")
    for key in ("algorithm_threshold", "prefilter_threshold"):
        if not 0.0 <= float(config[key]) <= 1.0:
            raise ValueError(f"{key} must be between 0 and 1, got {config[key]}")
    # fail early on bad durations
    parse_since_seconds(config["history_window"])
    parse_since_seconds(config["history_ttl"])
    return config


def build_config(overrides: Optional[Dict[str, Any]] = None, use_files: bool = True,
                 environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Resolve the effective config. Priority: overrides > env > files > defaults."""
    file_config = load_config() if use_files else {}
    return merge_config(file_config, load_env_config(environ), overrides)
