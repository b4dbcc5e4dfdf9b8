"""Release asset selection.

Assets are matched by filename prefix only:

  1. ``sbsrf*``: the core dictionary, always installed.
  2. ``octagram*``: the sentence language model, only in sentence mode.
  3. ``<engine>*``: engine-specific files, prefix is the lower-cased tag.
"""

from __future__ import annotations

from typing import Iterable

from sbsrf_update.release import Asset

CORE_PREFIX = "sbsrf"
SENTENCE_PREFIX = "octagram"


def matches(asset_name: str, variant_tag: str, sentence_mode: bool) -> bool:
    if asset_name.startswith(CORE_PREFIX):
        return True
    if asset_name.startswith(SENTENCE_PREFIX):
        return sentence_mode
    return asset_name.startswith(variant_tag.lower())


def select_assets(assets: Iterable[Asset], variant_tag: str, sentence_mode: bool) -> list[Asset]:
    """Return the assets belonging to this install, preserving release order."""
    return [a for a in assets if matches(a.name, variant_tag, sentence_mode)]
