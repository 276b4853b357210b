"""
Notekeeper Backend - In-Memory Storage Engine
==============================================

What:  Process-local StorageClient with the same index, ordering and cursor
       semantics as SQLStorageClient.
Who:   Selected with DATA_BACKEND=memory for local development; used by the
       test suite as the default engine behind the note store.

Entities are copied on the way in and out, so callers never share mutable
state with the engine. Data is lost when the process exits.
"""

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from notekeeper.storage.base import (
    Entity,
    Key,
    Query,
    QueryResult,
    StorageClient,
    decode_cursor,
    encode_cursor,
    index_value,
)

logger = logging.getLogger(__name__)


class MemoryStorageClient(StorageClient):
    """Dictionary-backed engine: kind → id → Entity."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._entities: Dict[str, Dict[int, Entity]] = defaultdict(dict)
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def save(self, entity: Entity) -> Key:
        async with self._lock:
            key = entity.key
            if not key.is_complete:
                key = key.complete(self._next_id)
            self._next_id = max(self._next_id, key.id) + 1
            self._entities[key.kind][key.id] = Entity(key, copy.deepcopy(entity.properties))
            logger.debug("Saved %s/%s (%d properties)", key.kind, key.id, len(entity.properties))
            return key

    async def get(self, key: Key) -> Optional[Entity]:
        if not key.is_complete:
            return None
        stored = self._entities.get(key.kind, {}).get(key.id)
        return copy.deepcopy(stored) if stored is not None else None

    async def delete(self, key: Key) -> None:
        async with self._lock:
            self._entities.get(key.kind, {}).pop(key.id, None)

    async def run_query(self, query: Query) -> QueryResult:
        position = decode_cursor(query, query.start) if query.start else None

        matches: List[Tuple[Tuple[Any, ...], Entity]] = []
        for entity in self._entities.get(query.kind, {}).values():
            if not self._matches_filters(entity, query):
                continue
            sort_values = [entity.indexed_value(name) for name in query.order]
            if any(value is None for value in sort_values):
                continue
            sort_key = tuple(sort_values) + (entity.key.id,)
            if position is not None and sort_key <= position.sort_key():
                continue
            matches.append((sort_key, entity))

        matches.sort(key=lambda item: item[0])
        if query.limit is not None:
            matches = matches[: query.limit]

        entities = [copy.deepcopy(entity) for _, entity in matches]
        end_cursor = encode_cursor(query, entities[-1]) if entities else None
        return QueryResult(entities=entities, end_cursor=end_cursor)

    @staticmethod
    def _matches_filters(entity: Entity, query: Query) -> bool:
        for name, value in query.filters:
            wanted = index_value(value)
            if wanted is None or entity.indexed_value(name) != wanted:
                return False
        return True
