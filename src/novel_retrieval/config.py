"""Configuration management with Pydantic models."""

from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class FetcherConfig(BaseModel):
    """Configuration for page fetching."""

    timeout_ms: int = Field(default=15000, ge=1000, le=120000)
    user_agent: str = DEFAULT_USER_AGENT
    follow_redirects: bool = True


class ExtractorConfig(BaseModel):
    """Configuration for chapter body extraction."""

    # Ranked: the first match with enough text wins.
    content_selectors: list[str] = Field(
        default_factory=lambda: [
            "#content",
            "#chaptercontent",
            "#chapter-content",
            "#bookcontent",
            "#book_text",
            "#booktext",
            "#htmlContent",
            "#text-content",
            "#nr",
            "#nr1",
            "#BookText",
            "#TextContent",
            "#contentbox",
            "#chapter_content",
            "#novelcontent",
            ".content",
            ".chaptercontent",
            ".chapter-content",
            ".bookcontent",
            ".book_text",
            ".booktext",
            ".novelcontent",
            ".novel-content",
            ".readcontent",
            ".read-content",
            ".article-content",
            ".txt",
            ".chapter_content",
            ".text_content",
            ".TextContent",
            ".contentbox",
            ".book-content",
            ".main-content",
            ".post-content",
            "article",
            ".article",
            "#article",
            '[itemprop="articleBody"]',
            ".panel-body",
            ".card-body",
            ".entry-content",
            ".post-body",
        ]
    )
    remove_selectors: list[str] = Field(
        default_factory=lambda: [
            "script",
            "style",
            "noscript",
            "iframe",
            ".ad",
            ".ads",
            ".advertisement",
            ".advert",
            "#ad",
            "#ads",
            "#advertisement",
            '[class^="ad-"]',
            '[class*=" ad-"]',
            '[class^="ads-"]',
            '[class*=" ads-"]',
            '[id^="ad-"]',
            '[id^="ads-"]',
            ".banner",
            "#banner",
            ".popup",
            "#popup",
            ".sponsor",
            "#sponsor",
            ".comment",
            "#comment",
            ".comments",
            "#comments",
        ]
    )
    min_content_length: int = Field(default=100, ge=0)
    largest_block_min_length: int = Field(default=200, ge=0)
    largest_block_tags: list[str] = Field(
        default_factory=lambda: ["div", "article", "section", "main"]
    )
    chrome_keywords: list[str] = Field(
        default_factory=lambda: ["nav", "header", "footer", "sidebar", "menu", "comment"]
    )


class NormalizerConfig(BaseModel):
    """Configuration for boilerplate line removal."""

    brand_lines: list[str] = Field(
        default_factory=lambda: ["天蚕土豆", "笔趣阁", "新笔趣阁"]
    )
    extra_line_patterns: list[str] = Field(default_factory=list)
    resegment_flat_text: bool = True


class DownloadConfig(BaseModel):
    """Configuration for the concurrent chapter download."""

    max_concurrent: int = Field(default=10, ge=1, le=32)
    stagger_delay_ms: int = Field(default=50, ge=0, le=10000)
    batch_size: int = Field(default=50, ge=1, le=1000)
    poll_interval: float = Field(default=1.0, gt=0.0, le=60.0)
    max_retries: int = Field(default=0, ge=0, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0.0, le=30.0)


class StorageConfig(BaseModel):
    """Configuration for the local novel library."""

    path: Path = Path("./library")


class AppConfig(BaseModel):
    """Main application configuration."""

    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    extractor: ExtractorConfig = Field(default_factory=ExtractorConfig)
    normalizer: NormalizerConfig = Field(default_factory=NormalizerConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    rules_file: Path | None = None
    verbose: bool = False

    @classmethod
    def from_toml(cls, path: Path) -> "AppConfig":
        """Load config from a TOML file."""
        return cls.model_validate(load_toml(path))

    def to_toml(self) -> str:
        """Serialize config to TOML format."""
        data = self.model_dump(mode="json", exclude_defaults=True)
        return dict_to_toml(data)


def load_toml(path: Path) -> dict:
    """Read a TOML document into a dict."""
    try:
        import tomllib  # type: ignore[import-not-found]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import-not-found]
    with open(path, "rb") as f:
        return tomllib.load(f)


def toml_value(v: object) -> str:
    """Format a Python value as a TOML literal."""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, str):
        escaped = v.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(v, list):
        items = ", ".join(toml_value(i) for i in v)
        return f"[{items}]"
    return toml_value(str(v))


def dict_to_toml(data: dict) -> str:
    """Convert a dict with one level of sub-tables to a TOML string."""
    lines: list[str] = []
    # Scalars must precede tables
    for k, v in data.items():
        if not isinstance(v, dict):
            lines.append(f"{k} = {toml_value(v)}")
    for k, v in data.items():
        if isinstance(v, dict):
            lines.append(f"\n[{k}]")
            for sk, sv in v.items():
                lines.append(f"{sk} = {toml_value(sv)}")
    return "\n".join(lines) + "\n"
