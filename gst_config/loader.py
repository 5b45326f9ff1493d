"""
Configuration Loader (``gst_config.loader``).

Responsibility
--------------
Loads the YAML data files shipped with the package (notified reverse-charge
rules, RCM module settings) and parses them into typed objects: a
``NotifiedRuleRegistry`` and an ``RCMConfig``.

Architecture position
---------------------
**Config layer** -- infrastructure.  Engines never read files; they receive
the registry built here.  Services receive the config built here.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Rates are parsed through ``str`` into ``Decimal``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid rule  -> ``InvalidRuleError`` / ``DuplicateRuleError`` from the
  registry constructor.

Audit relevance
---------------
The registry version and the file checksum are logged on every load, so
the rule table behind a classification can be traced to a YAML revision.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from gst_engines.registry import NotifiedRule, NotifiedRuleRegistry, RuleKind
from gst_kernel.logging_config import get_logger
from gst_modules.rcm.config import RCMConfig

logger = get_logger("config.loader")

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_RULES_PATH = DATA_DIR / "notified_rules.yaml"
DEFAULT_RCM_CONFIG_PATH = DATA_DIR / "rcm_config.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_rule(data: dict[str, Any]) -> NotifiedRule:
    """
    Parse a ``NotifiedRule`` from a dict.

    Required keys: ``rule_id``, ``kind``, ``codes``, ``description``,
    ``gst_rate``, ``effective_from``.

    Raises:
        KeyError: if required keys are missing.
        ValueError: on an unknown kind or unparseable date.
    """
    return NotifiedRule(
        rule_id=data["rule_id"],
        kind=RuleKind(str(data["kind"]).upper()),
        codes=tuple(str(c) for c in data["codes"]),
        description=data["description"],
        gst_rate=Decimal(str(data["gst_rate"])),
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        notification_ref=data.get("notification_ref"),
        is_active=bool(data.get("is_active", True)),
        priority=int(data.get("priority", 0)),
    )


def load_notified_rules(path: Path = DEFAULT_RULES_PATH) -> NotifiedRuleRegistry:
    """Build a registry from a rules YAML file."""
    raw = load_yaml_file(path)
    rules = [parse_rule(item) for item in raw.get("rules", [])]
    registry = NotifiedRuleRegistry(rules)
    logger.info("notified_rules_loaded", extra={
        "path": str(path),
        "rule_count": len(registry),
        "registry_version": registry.version,
        "checksum": compute_checksum(raw),
    })
    return registry


def load_rcm_config(path: Path = DEFAULT_RCM_CONFIG_PATH) -> RCMConfig:
    raw = load_yaml_file(path)
    logger.info("rcm_config_file_loaded", extra={
        "path": str(path),
        "checksum": compute_checksum(raw),
    })
    return RCMConfig.from_dict(raw)


def compute_checksum(data: Any) -> str:
    """
    Deterministic SHA-256 hex digest of ``data``.

    Keys are sorted and non-JSON values (dates, Decimals) are rendered with
    ``str``, so the same content always yields the same digest.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
