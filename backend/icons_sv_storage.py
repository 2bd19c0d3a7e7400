# In-memory storage for fetched icon markup plus the fixed placeholder SVGs.
# Stored markup is kept exactly as the remote source returned it.
# Size and colour are applied later by icons_color_algorithm.

from dataclasses import dataclass
from typing import Dict, List, Optional

PLACEHOLDER_ORDER: List[str] = [
    "loading",
    "error",
]

PLACEHOLDER_SVGS: Dict[str, str] = {
        "loading": r"""<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">
      <circle cx="12" cy="12" r="9" fill="none" stroke="#9ca3af" stroke-width="2" stroke-dasharray="42 14" stroke-linecap="round" />
    </svg>""",
        "error": r"""<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">
      <circle cx="12" cy="12" r="9" fill="none" stroke="#dc2626" stroke-width="2" />
      <line x1="8" y1="8" x2="16" y2="16" stroke="#dc2626" stroke-width="2" stroke-linecap="round" />
      <line x1="16" y1="8" x2="8" y2="16" stroke="#dc2626" stroke-width="2" stroke-linecap="round" />
    </svg>""",
}


def get_placeholder(name: str) -> str:
    """Return the raw SVG string for the given placeholder name."""
    key = name.strip().lower()
    if key not in PLACEHOLDER_SVGS:
        raise KeyError("Unknown placeholder name: {}".format(name))
    return PLACEHOLDER_SVGS[key]


@dataclass(frozen=True)
class StoredIcon:
    markup: str
    source: str
    # colour the source already applied server-side, None for static assets
    color: Optional[str] = None
    single_path: bool = False


class IconCache:
    """Process-lifetime markup cache keyed by user-supplied name and by slug. No eviction."""

    def __init__(self):
        self._entries: Dict[str, StoredIcon] = {}

    @staticmethod
    def _key(key: str) -> str:
        return key.strip().lower()

    def get(self, key: str) -> Optional[StoredIcon]:
        if not key:
            return None
        return self._entries.get(self._key(key))

    def has(self, key: str) -> bool:
        return bool(key) and self._key(key) in self._entries

    def put(self, key: str, icon: StoredIcon) -> None:
        if key:
            self._entries[self._key(key)] = icon

    def lookup(self, name: str, slug: str) -> Optional[StoredIcon]:
        """Check name then slug; a hit under one key is backfilled under the other."""
        hit = self.get(name)
        if hit is not None:
            if slug and not self.has(slug):
                self.put(slug, hit)
            return hit
        hit = self.get(slug)
        if hit is not None:
            self.put(name, hit)
        return hit

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
