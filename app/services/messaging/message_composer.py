"""
User-facing copy: every text the bot sends lives in app/copy/<locale>.yml.

A key maps to one string or a list of variants. A user always sees the same
variant of a key (hash of key + user_id), so re-prompts do not flicker
between wordings. Button labels are rendered without a user_id and therefore
always use the first variant, which keeps typed labels matchable.
"""

import hashlib
import logging
from pathlib import Path
from typing import Any

import yaml

from app.core.config import settings

logger = logging.getLogger(__name__)

COPY_DIR = Path(__file__).resolve().parent.parent.parent / "copy"

MISSING_TEMPLATE = "[MISSING: {key}]"


class MessageComposer:
    """Copy for one locale, loaded once from YAML."""

    def __init__(self, locale: str):
        self.locale = locale
        self.copy_file = COPY_DIR / f"{locale}.yml"
        self._copy_data: dict[str, Any] = self._read_copy_file()

    def _read_copy_file(self) -> dict[str, Any]:
        if not self.copy_file.exists():
            logger.warning(f"Copy file {self.copy_file} not found; every key will render as missing")
            return {}
        with open(self.copy_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded {len(data)} copy keys for locale {self.locale}")
        return data

    def has_key(self, key: str) -> bool:
        return key in self._copy_data

    def _select_variant(self, key: str, user_id: int | None = None) -> str:
        if key not in self._copy_data:
            logger.warning(f"Copy key '{key}' missing for locale {self.locale}")
            return MISSING_TEMPLATE.format(key=key)

        entry = self._copy_data[key]
        if not isinstance(entry, list):
            return str(entry)
        if not entry:
            logger.warning(f"Copy key '{key}' has an empty variant list")
            return ""
        if user_id is None:
            return str(entry[0])

        digest = hashlib.md5(f"{key}:{user_id}".encode()).hexdigest()
        return str(entry[int(digest, 16) % len(entry)])

    def render(self, key: str, user_id: int | None = None, **kwargs: Any) -> str:
        """
        Render `key` with str.format fields, e.g.
        render("photos_received", user_id=42, count=3).

        A missing format field leaves the template unformatted (logged).
        """
        template = self._select_variant(key, user_id)
        try:
            return template.format(**kwargs)
        except KeyError as e:
            logger.warning(f"Copy key '{key}' needs field {e}; sending it unformatted")
            return template


_composer: MessageComposer | None = None


def reset_cache() -> None:
    """Drop the cached composer (tests swap COPY_DIR and locale)."""
    global _composer
    _composer = None


def get_composer(locale: str | None = None) -> MessageComposer:
    global _composer
    locale = locale or settings.copy_locale
    if _composer is None or _composer.locale != locale:
        _composer = MessageComposer(locale=locale)
    return _composer


def render_message(
    key: str,
    user_id: int | None = None,
    locale: str | None = None,
    **kwargs: Any,
) -> str:
    return get_composer(locale).render(key, user_id=user_id, **kwargs)
