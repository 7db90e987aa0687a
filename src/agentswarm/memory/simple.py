"""Simple working memory an agent carries between tasks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List


@dataclass
class MemoryRecord:
    role: str
    content: str
    metadata: Dict[str, str] | None = None


class ConversationBufferMemory:
    """Stores a bounded list of records in memory."""

    def __init__(self, max_items: int = 20) -> None:
        self.max_items = max_items
        self._items: List[MemoryRecord] = []

    def add(self, role: str, content: str, metadata: Dict[str, str] | None = None) -> None:
        self._items.append(MemoryRecord(role=role, content=content, metadata=metadata))
        if len(self._items) > self.max_items:
            self._items = self._items[-self.max_items :]

    def dump(self) -> List[MemoryRecord]:
        return list(self._items)

    def render(self, limit: int = 5, width: int = 200) -> str:
        """Return the most recent records as ``role: content`` lines."""

        lines = []
        for item in self._items[-limit:]:
            content = item.content if len(item.content) <= width else item.content[: width - 3] + "..."
            lines.append(f"{item.role}: {content}")
        return "\n".join(lines)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
