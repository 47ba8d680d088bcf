"""Rule-driven web novel downloader."""

__version__ = "0.1.0"
