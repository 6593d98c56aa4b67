import asyncio
from typing import AsyncIterator, Optional


async def iter_queue_chunks(queue: asyncio.Queue) -> AsyncIterator[str]:
    """Yield relayed chunks from an asyncio.Queue until the `None` sentinel arrives."""
    while True:
        item = await queue.get()
        if item is None:
            break
        yield str(item)


class QueueChunkSink:
    """
    Turns the streaming relay's `on_chunk` callbacks into an async iterator.

    `attach(task)` pushes the end-of-stream sentinel once the relay task finishes; because the relay only
    returns after every fragment was delivered, the sentinel always lands after the last chunk.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()

    async def __call__(self, chunk: str) -> None:
        await self.queue.put(chunk)

    def attach(self, task: asyncio.Task) -> asyncio.Task:
        task.add_done_callback(lambda _t: self.queue.put_nowait(None))
        return task

    async def first(self) -> Optional[str]:
        """Wait for the first chunk, or None if the stream ended without producing one."""
        return await self.queue.get()

    def remaining(self) -> AsyncIterator[str]:
        return iter_queue_chunks(self.queue)
