"""
Runs one gate request as a chain of events.

Each handler result is dispatched again until a branch returns None or a
BreakEvent. Callers read events from ``EventChain.execute`` and may stop
early; work already scheduled (settlement, mostly) keeps running.
"""

import asyncio
from typing import AsyncGenerator, Set

from loguru import logger

from .events import BaseEvent, BreakEvent, EventBus, Dependencies

# Strong references to chains still running after their caller returned.
_background_tasks: Set[asyncio.Task] = set()


def _on_chain_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.opt(exception=exc).error("Event chain failed")


class EventChain:
    """Drives an EventBus from a starting event and streams what the handlers produce."""

    def __init__(self, event_bus: EventBus, deps: Dependencies) -> None:
        self.event_bus = event_bus
        self.deps = deps

    async def execute(self, initial_event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Yield every event derived from ``initial_event``, depth first.

        The chain runs on its own task. If a handler raises, the error
        surfaces here once the queue has been drained.
        """
        queue: asyncio.Queue = asyncio.Queue()

        async def producer():
            try:
                async for event in self._walk(initial_event):
                    await queue.put(event)
            finally:
                await queue.put(None)

        task = asyncio.create_task(producer())
        _background_tasks.add(task)
        task.add_done_callback(_on_chain_done)

        while True:
            event = await queue.get()
            if event is None:
                break
            yield event

        await task

    async def _walk(self, event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        if isinstance(event, BreakEvent):
            return

        logger.debug(f"dispatch {event!r}")
        async for result in self.event_bus.dispatch(event, self.deps):
            if result is None:
                continue
            if not isinstance(result, BaseEvent):
                raise TypeError(f"Handler returned unsupported type: {type(result).__name__}")
            yield result
            async for child in self._walk(result):
                yield child
