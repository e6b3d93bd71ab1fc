from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from arcane_market.resources import AUCTION_SEQUENCE, ResourceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QueueEntry:
    resource: ResourceKind
    index: int


class ResourceQueue:
    """Order in which resources come up for auction.

    Purely positional: it has no timers of its own. The AuctionManager asks it
    for the next resource when a round's countdown runs out.
    """

    def __init__(self, sequence: Sequence[ResourceKind] = AUCTION_SEQUENCE) -> None:
        if not sequence:
            raise ValueError("Resource queue needs at least one resource")
        self._sequence: tuple[ResourceKind, ...] = tuple(sequence)
        self._index = -1
        self._completed: set[ResourceKind] = set()
        self._history: list[QueueEntry] = []
        self.is_active = False
        self.is_paused = False

    @property
    def sequence(self) -> tuple[ResourceKind, ...]:
        return self._sequence

    @property
    def current(self) -> ResourceKind | None:
        if 0 <= self._index < len(self._sequence):
            return self._sequence[self._index]
        return None

    @property
    def history(self) -> list[QueueEntry]:
        return list(self._history)

    def start(self) -> ResourceKind | None:
        """Begin a fresh pass over the sequence and return the first resource."""

        if self.is_active:
            logger.warning("resource queue already active")
            return None
        self._index = -1
        self._completed.clear()
        self._history = []
        self.is_active = True
        self.is_paused = False
        return self.advance()

    def sync_to(self, resource: ResourceKind) -> None:
        """Align the cursor with a round that was opened directly."""

        if resource not in self._sequence:
            return
        self._index = self._sequence.index(resource)
        self.is_active = True
        self._history.append(QueueEntry(resource=resource, index=self._index))

    def advance(self) -> ResourceKind | None:
        """Move to the next resource; None once the sequence is exhausted."""

        if not self.is_active:
            return None

        nxt = self._index + 1
        while nxt < len(self._sequence) and self._sequence[nxt] in self._completed:
            nxt += 1
        if nxt >= len(self._sequence):
            self._index = len(self._sequence)
            self.is_active = False
            self.is_paused = False
            logger.info("resource queue complete: %s", [r.value for r in self._sequence if r in self._completed])
            return None

        self._index = nxt
        resource = self._sequence[nxt]
        self._history.append(QueueEntry(resource=resource, index=nxt))
        return resource

    def peek_next(self) -> ResourceKind | None:
        nxt = self._index + 1
        while nxt < len(self._sequence):
            if self._sequence[nxt] not in self._completed:
                return self._sequence[nxt]
            nxt += 1
        return None

    def mark_completed(self, resource: ResourceKind) -> None:
        self._completed.add(resource)

    def completed(self) -> list[ResourceKind]:
        return [r for r in self._sequence if r in self._completed]

    def remaining(self) -> list[ResourceKind]:
        return [r for r in self._sequence if r not in self._completed]

    def pause(self) -> bool:
        if not self.is_active or self.is_paused:
            return False
        self.is_paused = True
        return True

    def resume(self) -> bool:
        if not self.is_active or not self.is_paused:
            return False
        self.is_paused = False
        return True

    def status(self) -> dict[str, Any]:
        done = self.completed()
        return {
            "is_active": self.is_active,
            "is_paused": self.is_paused,
            "current_resource": self.current.value if self.current else None,
            "current_index": self._index,
            "completed_resources": [r.value for r in done],
            "remaining_resources": [r.value for r in self.remaining()],
            "total_resources": len(self._sequence),
            "progress": len(done) / len(self._sequence),
        }

    def reset(self) -> None:
        self._index = -1
        self._completed.clear()
        self._history = []
        self.is_active = False
        self.is_paused = False
