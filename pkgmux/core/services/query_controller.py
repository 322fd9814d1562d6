"""
Query controller: debounced, generation-tagged live querying.

Every ``submit`` bumps the generation and cancels whatever the previous
generation was doing: a pending debounce timer never fires, and a
pipeline run in progress stops delivering. Snapshots are tagged with
their generation and checked again on the way out, so nothing from an
older generation ever reaches the consumer.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from pkgmux.core.models.snapshot import ResultSnapshot
from pkgmux.core.services.aggregation import AggregationPipeline, CancellationToken

logger = logging.getLogger(__name__)


class QueryController:
    """Owns the query generation counter and the snapshot stream."""

    def __init__(self, pipeline: AggregationPipeline, *, debounce: float = 0.3):
        self.pipeline = pipeline
        self.debounce = debounce
        self.invocations = 0          # pipeline runs actually started
        self.last_query: str | None = None
        self._generation = 0
        self._token: CancellationToken | None = None
        self._task: asyncio.Task | None = None
        self._queue: asyncio.Queue[ResultSnapshot] = asyncio.Queue()

    @property
    def generation(self) -> int:
        return self._generation

    def submit(self, text: str) -> int:
        """Start a new generation for ``text``; returns its number."""
        self._generation += 1
        generation = self._generation
        self.last_query = text

        if self._token is not None:
            self._token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

        token = CancellationToken(generation)
        self._token = token
        self._task = asyncio.get_running_loop().create_task(self._run(text, token))
        logger.debug("Generation %d: %r (debounce %.0fms)", generation, text, self.debounce * 1000)
        return generation

    async def _run(self, text: str, token: CancellationToken) -> None:
        try:
            if self.debounce > 0:
                await asyncio.sleep(self.debounce)
            if token.cancelled:
                return
            self.invocations += 1
            async for snapshot in self.pipeline.run(text, token.generation, token):
                if token.cancelled:
                    return
                self._queue.put_nowait(snapshot)
        except asyncio.CancelledError:
            logger.debug("Generation %d abandoned", token.generation)
            raise

    async def stream(self) -> AsyncIterator[ResultSnapshot]:
        """Snapshots of the current generation, forever.

        The stream only ends when the consumer stops iterating. A new
        ``submit`` restarts it on a new generation.
        """
        while True:
            snapshot = await self._queue.get()
            if snapshot.generation != self._generation:
                logger.debug("Discarding late snapshot of generation %d", snapshot.generation)
                continue
            yield snapshot

    async def close(self) -> None:
        """Cancel pending work of the current generation."""
        if self._token is not None:
            self._token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
