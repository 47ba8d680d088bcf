"""TOML rule files.

A rule file holds one ``[[rules]]`` table per rule, using the storage
record layout (``remove_selectors`` is a single comma-joined string)::

    [[rules]]
    name = "example"
    domain = "novels.example.com"
    chapter_list_selector = "#list dd a"
    content_selector = "#content"
    remove_selectors = ".ad,.copy"
"""

from pathlib import Path

from novel_retrieval.config import dict_to_toml, load_toml
from novel_retrieval.rules.registry import ExtractionRule, RuleRegistry, RuleValidation, validate_rule


def read_rules_file(path: Path) -> list[ExtractionRule]:
    """Parse every rule in a file without validating it."""
    data = load_toml(path)
    return [ExtractionRule.from_record(record) for record in data.get("rules", [])]


def check_rules_file(path: Path) -> list[tuple[ExtractionRule, RuleValidation]]:
    """Validate every rule in a file, keeping all problems."""
    return [(rule, validate_rule(rule)) for rule in read_rules_file(path)]


def load_rules_file(path: Path, registry: RuleRegistry | None = None) -> RuleRegistry:
    """Register every rule of a file into ``registry`` (or a new one)."""
    registry = registry or RuleRegistry()
    for rule in read_rules_file(path):
        registry.register(rule)
    return registry


def dump_rules(rules: list[ExtractionRule]) -> str:
    """Serialize rules to the rule-file format."""
    chunks = []
    for rule in rules:
        body = dict_to_toml(rule.to_record())
        chunks.append("[[rules]]\n" + body)
    return "\n".join(chunks)
