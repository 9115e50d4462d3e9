from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _default_copyright(brand_name: str) -> str:
    return f"(c) {date.today().year} {brand_name.capitalize()} Inc. All rights reserved."


@dataclass
class Settings:
    """Runtime configuration read from the environment (and an optional .env)."""

    google_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    log_level: str = "INFO"
    brand_name: str = "sentra"
    copyright_text: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.copyright_text:
            self.copyright_text = _default_copyright(self.brand_name)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        brand_name = os.getenv("BRAND_NAME") or "sentra"
        return cls(
            google_api_key=os.getenv("GOOGLE_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL") or DEFAULT_MODEL,
            max_file_size=int(os.getenv("MAX_FILE_SIZE") or DEFAULT_MAX_FILE_SIZE),
            log_level=os.getenv("LOG_LEVEL") or "INFO",
            brand_name=brand_name,
            copyright_text=os.getenv("COPYRIGHT_TEXT") or None,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def configure_logging(level: str = "INFO") -> None:
    """Install a single stderr handler on the package logger."""
    logger = logging.getLogger("content_studio")
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
