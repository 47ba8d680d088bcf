"""Extraction rules keyed by site domain."""

from novel_retrieval.rules.registry import (
    ExtractionRule,
    RuleRegistry,
    RuleValidation,
    validate_rule,
)
from novel_retrieval.rules.storage import check_rules_file, dump_rules, load_rules_file

__all__ = [
    "ExtractionRule",
    "RuleRegistry",
    "RuleValidation",
    "validate_rule",
    "check_rules_file",
    "dump_rules",
    "load_rules_file",
]
