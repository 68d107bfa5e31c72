"""Chunked writes and queue-entry parsing shared by the jobs."""

import asyncio
import json
from typing import Any, Iterator, List, Sequence, Tuple, TypeVar

T = TypeVar("T")


async def yield_to_loop() -> None:
    """Let other timers and request handlers run before continuing."""
    await asyncio.sleep(0)


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def insert_in_chunks(store: Any, docs: Sequence[Any], chunk_size: int) -> int:
    """Insert ``docs`` in unordered chunks, yielding between chunks.

    Returns:
        Total number of documents the store accepted
    """
    inserted = 0
    for chunk in chunked(docs, chunk_size):
        inserted += await store.insert_many(chunk, ordered=False)
        await yield_to_loop()
    return inserted


def parse_entries(raw_entries: Sequence[Any]) -> Tuple[List[dict], int]:
    """Decode serialized queue entries.

    Entries that are not valid JSON, or do not decode to an object, are
    dropped individually.

    Returns:
        Parsed documents and the number of entries dropped
    """
    parsed: List[dict] = []
    discarded = 0
    for item in raw_entries:
        try:
            doc = json.loads(item)
        except (TypeError, ValueError):
            discarded += 1
            continue
        if not isinstance(doc, dict):
            discarded += 1
            continue
        parsed.append(doc)
    return parsed, discarded


async def pop_batch(queue: Any, key: str, count: int) -> List[Any]:
    """Pop up to ``count`` entries from the head of a Redis list."""
    data = await queue.lpop(key, count)
    if not data:
        return []
    return list(data) if isinstance(data, (list, tuple)) else [data]
