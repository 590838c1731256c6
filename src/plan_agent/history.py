# history.py
# Bounded, append-only log of executed steps. Oldest entries are evicted first.

from collections import deque
from typing import Iterator

from plan_agent.models import ExecutionHistoryEntry, Step


class ExecutionHistory:
    def __init__(self, limit: int = 50) -> None:
        if limit < 1:
            raise ValueError("history limit must be at least 1")
        self._entries: deque[ExecutionHistoryEntry] = deque(maxlen=limit)

    @property
    def limit(self) -> int:
        return self._entries.maxlen

    def append(self, entry: ExecutionHistoryEntry) -> None:
        self._entries.append(entry)

    def record(self, step: Step) -> ExecutionHistoryEntry:
        entry = ExecutionHistoryEntry(
            description=step.description,
            type=step.kind.value if step.kind else step.type,
            target=step.target,
        )
        self.append(entry)
        return entry

    def recent(self, n: int) -> list[ExecutionHistoryEntry]:
        """Last ``n`` entries, oldest first."""
        if n <= 0:
            return []
        return list(self._entries)[-n:]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ExecutionHistoryEntry]:
        return iter(list(self._entries))
