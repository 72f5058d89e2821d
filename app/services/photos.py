"""
Photo selection for inbound Telegram photo messages.

A photo message carries several resolution variants of the same image; the
bot keeps only the largest one. The dedup key is Telegram's file_unique_id
(stable for the same image content), falling back to file_id.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PhotoRef:
    file_id: str
    dedup_key: str


def _get(variant: Any, name: str) -> Any:
    if isinstance(variant, dict):
        return variant.get(name)
    return getattr(variant, name, None)


def pick_largest_photo(variants: list[Any] | None) -> PhotoRef | None:
    """
    Choose the variant with the largest file_size.

    Sorting is stable-ascending and the last item wins, so on equal sizes the
    later variant in the list is chosen. Missing file_size counts as 0.
    Accepts dicts or objects with file_id / file_unique_id / file_size.
    """
    if not variants:
        return None
    ordered = sorted(variants, key=lambda v: _get(v, "file_size") or 0)
    largest = ordered[-1]
    file_id = _get(largest, "file_id")
    if not file_id:
        return None
    return PhotoRef(file_id=file_id, dedup_key=_get(largest, "file_unique_id") or file_id)
