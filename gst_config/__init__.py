"""
GST configuration (``gst_config``).

Seed data for the reverse-charge engine lives in ``gst_config/data``:
the notified-rule table and the default RCM module settings.

Usage:
    from gst_config import load_default_registry, load_default_config

    registry = load_default_registry()
    config = load_default_config()
"""

from gst_config.loader import (
    DEFAULT_RCM_CONFIG_PATH,
    DEFAULT_RULES_PATH,
    compute_checksum,
    load_notified_rules,
    load_rcm_config,
    load_yaml_file,
)
from gst_engines.registry import NotifiedRuleRegistry
from gst_modules.rcm.config import RCMConfig


def load_default_registry() -> NotifiedRuleRegistry:
    """Registry built from the packaged ``notified_rules.yaml``."""
    return load_notified_rules(DEFAULT_RULES_PATH)


def load_default_config() -> RCMConfig:
    """RCM settings from the packaged ``rcm_config.yaml``."""
    return load_rcm_config(DEFAULT_RCM_CONFIG_PATH)


__all__ = [
    "compute_checksum",
    "load_default_config",
    "load_default_registry",
    "load_notified_rules",
    "load_rcm_config",
    "load_yaml_file",
]
