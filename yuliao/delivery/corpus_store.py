"""
Corpus persistence.

The corpus is stored as a single JSON array in ~/.yuliao/corpus.json,
using the same record shape as the browser build's export so files can
be moved between the two.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from loguru import logger

from yuliao.core.models import CorpusItem

# Default corpus location
CORPUS_PATH = Path.home() / ".yuliao" / "corpus.json"


class CorpusStore:
    """
    Manages corpus persistence.

    ``load`` and ``save`` are the whole contract the scheduler needs;
    the remaining helpers back the corpus management commands.
    """

    def __init__(self, path: Path | None = None):
        self.path = path or CORPUS_PATH
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> list[CorpusItem]:
        """Load all items (empty list if the file does not exist)."""
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise TypeError("corpus file must hold a JSON array")
            return [CorpusItem.from_dict(record) for record in data]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, OverflowError) as e:
            backup = self.path.with_suffix(".corrupt.json")
            os.replace(self.path, backup)
            logger.error(f"Corpus file unreadable ({e}); moved to {backup}")
            return []

    def save(self, items: list[CorpusItem]) -> Path:
        """Write all items atomically."""
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump([item.to_dict() for item in items], f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

        logger.debug(f"Saved {len(items)} corpus items to {self.path}")
        return self.path

    def get(self, item_id: str) -> CorpusItem | None:
        return next((item for item in self.load() if item.id == item_id), None)

    def add_items(self, new_items: list[CorpusItem]) -> int:
        """
        Append items, skipping ids or English texts already present.

        Returns:
            Number of items actually added
        """
        items = self.load()
        seen_ids = {item.id for item in items}
        seen_text = {item.english.strip().lower() for item in items}

        added = 0
        for item in new_items:
            key = item.english.strip().lower()
            if item.id in seen_ids or key in seen_text:
                continue
            items.append(item)
            seen_ids.add(item.id)
            seen_text.add(key)
            added += 1

        if added:
            self.save(items)
        return added

    def update_items(self, updated: list[CorpusItem]) -> None:
        """Replace stored items that share an id with ``updated``."""
        by_id = {item.id: item for item in updated}
        items = [by_id.get(item.id, item) for item in self.load()]
        self.save(items)

    def delete(self, item_id: str) -> bool:
        items = self.load()
        remaining = [item for item in items if item.id != item_id]
        if len(remaining) == len(items):
            return False
        self.save(remaining)
        return True
