"""
Delta/sync protocol - dirty tracking and batched new/updated/removed extraction.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Set


@dataclass
class Delta:
    """One batch of changes for the presentation side."""
    tick: int = 0
    new_entities: List[dict] = field(default_factory=list)
    updated_entities: List[dict] = field(default_factory=list)
    removed_entity_ids: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.new_entities or self.updated_entities or self.removed_entity_ids)

    def to_dict(self) -> dict:
        return {
            "tick": self.tick,
            "new_entities": self.new_entities,
            "updated_entities": self.updated_entities,
            "removed_entity_ids": self.removed_entity_ids,
        }


class DeltaTracker:
    """Tracks creations and removals for one entity kind.

    Updates are discovered from each entity's `dirty` flag at extraction time;
    extraction clears every flag it reports.
    """

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        self._new_ids: List[str] = []
        self._removed_ids: List[str] = []

    def mark_new(self, entity_id: str):
        if entity_id not in self._new_ids:
            self._new_ids.append(entity_id)

    def mark_removed(self, entity_id: str):
        if entity_id in self._new_ids:
            # created and removed inside one batch: never announce it
            self._new_ids.remove(entity_id)
            return
        self._removed_ids.append(entity_id)

    def _serialize(self, entity) -> dict:
        data = entity.to_dict()
        data["entity_type"] = self.entity_type
        return data

    def extract(self, live: Dict[str, object], delta: Delta):
        new_set: Set[str] = set(self._new_ids)
        for entity_id in self._new_ids:
            entity = live.get(entity_id)
            if entity is not None:
                delta.new_entities.append(self._serialize(entity))
                entity.dirty = False
        for entity_id, entity in live.items():
            if entity_id in new_set or not entity.dirty:
                continue
            delta.updated_entities.append(self._serialize(entity))
            entity.dirty = False
        delta.removed_entity_ids.extend(self._removed_ids)
        self._new_ids = []
        self._removed_ids = []


class SyncRegistry:
    """Groups per-kind trackers and produces one Delta per call."""

    def __init__(self, sources: Dict[str, Callable[[], Dict[str, object]]]):
        self._sources = sources
        self._trackers = {kind: DeltaTracker(kind) for kind in sources}
        self._lock = threading.Lock()

    def tracker(self, entity_type: str) -> DeltaTracker:
        return self._trackers[entity_type]

    def mark_new(self, entity_type: str, entity_id: str):
        with self._lock:
            self._trackers[entity_type].mark_new(entity_id)

    def mark_removed(self, entity_type: str, entity_id: str):
        with self._lock:
            self._trackers[entity_type].mark_removed(entity_id)

    def extract(self, tick: int = 0) -> Delta:
        delta = Delta(tick=tick)
        with self._lock:
            for kind, source in self._sources.items():
                self._trackers[kind].extract(source(), delta)
        return delta

    def clear(self, entity_types: Iterable[str] = None):
        """Drop pending changes and clear dirty flags (used after a full snapshot)."""
        with self._lock:
            for kind in entity_types or self._sources:
                tracker = self._trackers[kind]
                tracker._new_ids = []
                tracker._removed_ids = []
                for entity in self._sources[kind]().values():
                    entity.dirty = False
