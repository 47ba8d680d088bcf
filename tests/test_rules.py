from itertools import combinations

import pytest

from novel_retrieval.errors import ValidationError
from novel_retrieval.rules import (
    ExtractionRule,
    RuleRegistry,
    check_rules_file,
    dump_rules,
    load_rules_file,
    validate_rule,
)
from novel_retrieval.rules.registry import REQUIRED_FIELDS

FIELD_VALUES = {
    "domain": "novels.example.com",
    "chapter_list_selector": "#list a",
    "content_selector": "#content",
}


@pytest.mark.parametrize(
    "present",
    [
        subset
        for size in range(1, len(FIELD_VALUES))
        for subset in combinations(FIELD_VALUES, size)
    ],
)
def test_validation_reports_exactly_the_missing_fields(present):
    rule = ExtractionRule(**{name: FIELD_VALUES[name] for name in present})

    validation = validate_rule(rule)

    assert set(validation.missing_fields) == set(FIELD_VALUES) - set(present)
    assert not validation.ok


def test_complete_rule_is_valid():
    validation = validate_rule(ExtractionRule(**FIELD_VALUES))
    assert validation.ok
    assert validation.missing_fields == []


def test_blank_and_missing_rule():
    assert validate_rule(None).missing_fields == list(REQUIRED_FIELDS)
    whitespace = ExtractionRule(domain="  ", chapter_list_selector="#list a", content_selector="\t")
    assert validate_rule(whitespace).missing_fields == ["domain", "content_selector"]


def test_validation_message_names_fields():
    validation = validate_rule(ExtractionRule(domain="x.com"))
    assert validation.message == "Rule is incomplete, missing: chapter list selector, content selector"
    with pytest.raises(ValidationError) as excinfo:
        validation.raise_for_missing()
    assert excinfo.value.fields == ["chapter_list_selector", "content_selector"]


def test_rules_are_immutable():
    rule = ExtractionRule(**FIELD_VALUES)
    with pytest.raises(Exception):
        rule.domain = "other.com"


class TestRegistry:
    def test_builtin_rules(self):
        names = [r.name for r in RuleRegistry().list_rules()]
        assert names == ["universal", "generic-a", "generic-b", "biquge", "qidian", "69shu"]

    def test_register_rejects_incomplete_rule(self):
        registry = RuleRegistry()
        with pytest.raises(ValidationError) as excinfo:
            registry.register(ExtractionRule(name="broken", domain="x.com"))
        assert excinfo.value.fields == ["chapter_list_selector", "content_selector"]
        assert registry.get("broken") is None

    def test_register_defaults_name_to_host(self):
        registry = RuleRegistry(include_builtin=False)
        registry.register(ExtractionRule(domain="www.novels.example.com", chapter_list_selector="a", content_selector="p"))
        assert registry.get("novels.example.com") is not None

    def test_resolve_exact_and_parent_domain(self):
        rule = ExtractionRule(name="example", **FIELD_VALUES)
        registry = RuleRegistry([rule])

        assert registry.resolve("https://novels.example.com/book/1/") == rule
        assert registry.resolve("https://www.novels.example.com/book/1/") == rule
        assert registry.resolve("m.novels.example.com") == rule

    def test_resolve_keyword(self):
        registry = RuleRegistry()
        assert registry.resolve("https://www.xbiquge.so/book/12/").name == "biquge"
        assert registry.resolve("https://book.qidian.com/info/1").name == "qidian"
        assert registry.resolve("https://www.69shu.pro/book/1.htm").name == "69shu"

    def test_resolve_falls_back_to_first_wildcard(self):
        assert RuleRegistry().resolve("https://unknown.example.org/").name == "universal"

    def test_resolve_without_wildcard(self):
        registry = RuleRegistry(include_builtin=False)
        assert registry.resolve("https://unknown.example.org/") is None

    def test_later_registration_wins_for_same_domain(self):
        first = ExtractionRule(name="first", **FIELD_VALUES)
        second = ExtractionRule(name="second", **{**FIELD_VALUES, "content_selector": ".text"})
        registry = RuleRegistry([first, second], include_builtin=False)
        assert registry.resolve("novels.example.com").name == "second"

    def test_remove(self):
        registry = RuleRegistry()
        registry.remove("universal")
        assert registry.get("universal") is None
        assert registry.resolve("https://unknown.example.org/").name == "generic-a"


class TestRecords:
    def test_record_round_trip(self):
        rule = ExtractionRule(
            name="example",
            chapter_title_selector="span",
            remove_selectors=(".ad", "script"),
            **FIELD_VALUES,
        )
        record = rule.to_record()

        assert record["remove_selectors"] == ".ad,script"
        assert ExtractionRule.from_record(record) == rule

    def test_from_record_tolerates_blanks(self):
        rule = ExtractionRule.from_record({"domain": "x.com", "remove_selectors": " .a , ,.b ", "content_selector": None})
        assert rule.remove_selectors == (".a", ".b")
        assert rule.content_selector == ""

    def test_rules_file_round_trip(self, tmp_path):
        rules = [
            ExtractionRule(name="one", remove_selectors=('a[href="#top"]',), **FIELD_VALUES),
            ExtractionRule(name="two", domain="other.org", chapter_list_selector="ul li a", content_selector="#txt"),
        ]
        path = tmp_path / "rules.toml"
        path.write_text(dump_rules(rules), encoding="utf-8")

        registry = load_rules_file(path, RuleRegistry(include_builtin=False))

        assert registry.list_rules() == rules

    def test_check_rules_file_reports_every_problem(self, tmp_path):
        path = tmp_path / "rules.toml"
        path.write_text(
            '[[rules]]\nname = "good"\ndomain = "a.com"\nchapter_list_selector = "a"\ncontent_selector = "p"\n\n'
            '[[rules]]\nname = "bad"\ndomain = "b.com"\n',
            encoding="utf-8",
        )

        checked = check_rules_file(path)

        assert [(rule.name, v.ok) for rule, v in checked] == [("good", True), ("bad", False)]
        assert checked[1][1].missing_fields == ["chapter_list_selector", "content_selector"]
