"""
Coalescing of single-item calls into batched Spotify requests.

Several Spotify endpoints accept a list of ids ("get several albums",
"check saved albums", "save albums"). Items of the library, however, are
synced independently and each asks about exactly one id. BatchCoordinator
sits in between: it looks like a single-item coroutine to its callers and
forwards buffered ids to the batch endpoint.

Flushing:
    The buffer is dispatched as one batch call when either
        - it holds max_size inputs, or
        - timeout seconds have passed since the first buffered input.

Fate sharing:
    Every caller of a batch gets its own positional output, or, if the
    batch call fails, the same exception as every other caller of that batch.

Usage:
    async def albums_in_library(ids: list[str]) -> list[bool]:
        return await gateway.call("GET", "me/albums/contains", params={"ids": ",".join(ids)})

    album_in_library = BatchCoordinator(albums_in_library, max_size=50, timeout=0.01)
    saved = await album_in_library("4aawyAB9vmqN3uQ7FjRGTy")
"""

import asyncio
from typing import Awaitable, Callable, Generic, TypeVar

from spot_sync.core.exceptions import SpotifyError
from spot_sync.core.logger import get_logger

logger = get_logger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class BatchCoordinator(Generic[InputT, OutputT]):
    """
    Turns a batch coroutine into an awaitable single-item callable.

    Attributes:
        name: Label used in log messages.
        max_size: Inputs per batch call.
        timeout: Idle window in seconds before a partial batch is sent.
    """

    def __init__(
        self,
        batch_function: Callable[[list[InputT]], Awaitable[list[OutputT]]],
        max_size: int,
        timeout: float,
        name: str = "batch"
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.name = name
        self.max_size = max_size
        self.timeout = timeout
        self._batch_function = batch_function
        self._pending: list[tuple[InputT, asyncio.Future]] = []
        self._timer: asyncio.TimerHandle | None = None
        self._dispatches: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of buffered inputs not yet dispatched."""
        return len(self._pending)

    async def __call__(self, item: InputT) -> OutputT:
        """
        Queue one input and wait for its output.

        Raises:
            Whatever the batch function raised for the batch this input was part of.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._pending.append((item, future))

        if len(self._pending) >= self.max_size:
            self.flush()
        elif self._timer is None:
            self._timer = loop.call_later(self.timeout, self.flush)

        return await future

    def flush(self) -> None:
        """Dispatch the buffered inputs now, if there are any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        batch, self._pending = self._pending, []
        if not batch:
            return

        task = asyncio.ensure_future(self._dispatch(batch))
        # Keep a reference until done, the loop only holds weak ones
        self._dispatches.add(task)
        task.add_done_callback(self._dispatches.discard)

    async def _dispatch(self, batch: list[tuple[InputT, asyncio.Future]]) -> None:
        inputs = [item for item, _ in batch]
        logger.debug(f"Dispatching {self.name} batch of {len(inputs)}")

        try:
            results = await self._batch_function(inputs)
            if len(results) != len(inputs):
                raise SpotifyError(
                    f"Expected {len(inputs)} results from {self.name} batch, got {len(results)}",
                    details={"inputs": inputs}
                )
        except Exception as e:
            for _, future in batch:
                if not future.done():
                    future.set_exception(e)
            return

        for (_, future), result in zip(batch, results):
            if not future.done():
                future.set_result(result)
