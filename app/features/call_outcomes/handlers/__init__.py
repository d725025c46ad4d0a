"""
Outcome handlers: catalog, per-type handlers and the dispatch registry.
"""

from .base import OutcomeHandler, make_handler
from .catalog import OUTCOME_CATALOG, CatalogEntry, get_catalog_entry, get_scoring_rule, triggers_conversion
from .registry import OutcomeHandlerRegistry, build_default_registry

outcome_registry = build_default_registry()

__all__ = [
    "OUTCOME_CATALOG",
    "CatalogEntry",
    "OutcomeHandler",
    "OutcomeHandlerRegistry",
    "build_default_registry",
    "get_catalog_entry",
    "get_scoring_rule",
    "make_handler",
    "outcome_registry",
    "triggers_conversion",
]
