"""Extraction rule model, validation and domain registry."""

from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from novel_retrieval.errors import ValidationError

WILDCARD_DOMAIN = "*"

# Field name -> label shown to rule authors
REQUIRED_FIELDS: dict[str, str] = {
    "domain": "domain",
    "chapter_list_selector": "chapter list selector",
    "content_selector": "content selector",
}


class ExtractionRule(BaseModel):
    """Selector set describing how to scrape one site (or family of sites).

    ``domain`` is a host name, a keyword contained in the host, or ``*``.
    Title and link selectors are optional; list and content selectors are
    required for the rule to be usable.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    domain: str = ""
    chapter_list_selector: str = ""
    chapter_title_selector: str = ""
    chapter_link_selector: str = ""
    content_selector: str = ""
    remove_selectors: tuple[str, ...] = Field(default_factory=tuple)

    def to_record(self) -> dict[str, str]:
        """Flatten to the storage format (comma-joined remove selectors)."""
        return {
            "name": self.name,
            "domain": self.domain,
            "chapter_list_selector": self.chapter_list_selector,
            "chapter_title_selector": self.chapter_title_selector,
            "chapter_link_selector": self.chapter_link_selector,
            "content_selector": self.content_selector,
            "remove_selectors": ",".join(self.remove_selectors),
        }

    @classmethod
    def from_record(cls, record: dict) -> "ExtractionRule":
        """Build a rule from the storage format."""
        data = dict(record)
        removes = data.get("remove_selectors") or ""
        if isinstance(removes, str):
            removes = removes.split(",")
        data["remove_selectors"] = tuple(s.strip() for s in removes if s and s.strip())
        for key, value in list(data.items()):
            if value is None:
                data[key] = ""
        return cls.model_validate(data)


class RuleValidation(BaseModel):
    """Outcome of validating a rule. Never raised, always returned."""

    missing_fields: list[str] = []

    @property
    def ok(self) -> bool:
        return not self.missing_fields

    @property
    def message(self) -> str:
        if self.ok:
            return "Rule is complete"
        labels = [REQUIRED_FIELDS.get(f, f) for f in self.missing_fields]
        return "Rule is incomplete, missing: " + ", ".join(labels)

    def raise_for_missing(self) -> None:
        if not self.ok:
            raise ValidationError(self.message, self.missing_fields)


def validate_rule(rule: ExtractionRule | None) -> RuleValidation:
    """Report every required field that is blank."""
    if rule is None:
        return RuleValidation(missing_fields=list(REQUIRED_FIELDS))
    missing = [
        field for field in REQUIRED_FIELDS if not getattr(rule, field, "").strip()
    ]
    return RuleValidation(missing_fields=missing)


UNIVERSAL_RULE = ExtractionRule(
    name="universal",
    domain=WILDCARD_DOMAIN,
    chapter_list_selector=(
        "#list dd a, .listmain dd a, #chapterlist a, .chapter-list a, "
        ".mulu a, .catalog a, .volume a, ul.list a, .chapters a, "
        "#catalog a, .booklist a, .ml_list a, .zjlist a, "
        ".dirlist a, #dir a, .chapterlist a"
    ),
    content_selector=(
        "#content, #chaptercontent, #booktxt, #booktext, #htmlContent, "
        "#nr, #nr1, .content, .chapter-content, .booktxt, .booktext, "
        ".read-content, .novelcontent, .article-content, .txt, "
        ".yd_text2, .txtnav, .contentbox"
    ),
    remove_selectors=(
        "script", "style", ".ad", ".ads", ".advertisement", "#ad", "#ads",
        ".banner", ".popup", ".comment", ".comments", "iframe", ".copy",
        ".bottem", ".bottem2", ".txtinfo", ".review-wrap",
    ),
)

GENERIC_A_RULE = ExtractionRule(
    name="generic-a",
    domain=WILDCARD_DOMAIN,
    chapter_list_selector="#list dd a, .listmain dd a, .chapter-list a, .mulu a, #chapterlist a",
    content_selector="#content, .content, #chaptercontent, .chapter-content, #booktxt, .booktxt",
    remove_selectors=("script", "style", ".ad", ".ads", ".banner", ".popup"),
)

GENERIC_B_RULE = ExtractionRule(
    name="generic-b",
    domain=WILDCARD_DOMAIN,
    chapter_list_selector=".chapter a, .chapters a, .catalog a, ul.list a, .volume a, .zjlist a",
    content_selector=(
        "#content, .content, .article, .text, .read-content, "
        "#chaptercontent, .novelcontent"
    ),
    remove_selectors=("script", "style", ".ad", ".ads", ".copy", ".banner"),
)

BIQUGE_RULE = ExtractionRule(
    name="biquge",
    domain="biquge",
    chapter_list_selector="#list dd a, .listmain dd a, #chapterlist a",
    content_selector="#content, #chaptercontent, .content",
    remove_selectors=("script", "style", ".bottem", ".bottem2", ".ad"),
)

QIDIAN_RULE = ExtractionRule(
    name="qidian",
    domain="qidian",
    chapter_list_selector=".volume-wrap .cf li a, .chapter-list a, .catalog a",
    content_selector=".read-content, .chapter-content, .content, #content",
    remove_selectors=("script", "style", ".review-wrap", ".chapter-review", ".ad"),
)

SHU69_RULE = ExtractionRule(
    name="69shu",
    domain="69shu",
    chapter_list_selector=".mu_contain li a, .mulu a, #catalog a",
    content_selector=".yd_text2, .txtnav, #content, .content",
    remove_selectors=("script", "style", ".txtinfo", ".ad"),
)


def _host_of(domain_or_url: str) -> str:
    value = domain_or_url.strip().lower()
    if "://" in value:
        value = urlparse(value).netloc
    value = value.split("@")[-1].split(":")[0]
    if value.startswith("www."):
        value = value[4:]
    return value


class RuleRegistry:
    """Named extraction rules, resolvable by site domain."""

    _builtin: tuple[ExtractionRule, ...] = (
        UNIVERSAL_RULE,
        GENERIC_A_RULE,
        GENERIC_B_RULE,
        BIQUGE_RULE,
        QIDIAN_RULE,
        SHU69_RULE,
    )

    def __init__(self, rules: list[ExtractionRule] | None = None, include_builtin: bool = True):
        self._rules: dict[str, ExtractionRule] = {}
        if include_builtin:
            for rule in self._builtin:
                self._rules[rule.name] = rule
        for rule in rules or []:
            self.register(rule)

    def register(self, rule: ExtractionRule) -> None:
        """Register a rule, replacing any rule with the same name.

        Raises ValidationError naming every missing field if the rule is
        not usable.
        """
        validate_rule(rule).raise_for_missing()
        name = rule.name or _host_of(rule.domain)
        if name != rule.name:
            rule = rule.model_copy(update={"name": name})
        self._rules[name] = rule

    def remove(self, name: str) -> None:
        self._rules.pop(name, None)

    def get(self, name: str) -> ExtractionRule | None:
        """Get a rule by name."""
        return self._rules.get(name)

    def list_rules(self) -> list[ExtractionRule]:
        """List all registered rules."""
        return list(self._rules.values())

    def resolve(self, domain_or_url: str) -> ExtractionRule | None:
        """Find the rule for a host (or URL).

        Exact host, then parent domains, then keyword containment, then the
        first wildcard rule.
        """
        host = _host_of(domain_or_url)
        if not host:
            return self._first_wildcard()

        # Later registrations shadow earlier ones for the same domain
        by_domain: dict[str, ExtractionRule] = {}
        for rule in reversed(list(self._rules.values())):
            if rule.domain != WILDCARD_DOMAIN:
                by_domain.setdefault(_host_of(rule.domain), rule)

        parts = host.split(".")
        for i in range(len(parts) - 1):
            candidate = ".".join(parts[i:])
            if candidate in by_domain:
                return by_domain[candidate]

        for key, rule in by_domain.items():
            if key and "." not in key and key in host:
                return rule

        return self._first_wildcard()

    def _first_wildcard(self) -> ExtractionRule | None:
        for rule in self._rules.values():
            if rule.domain == WILDCARD_DOMAIN:
                return rule
        return None
