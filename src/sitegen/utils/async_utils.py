"""
Async Utilities
===============

Bridges between Flask's synchronous request handlers and the asyncio based
generation services: run a single coroutine to completion, or drain an async
generator as a regular iterator (used for server-sent event responses).
"""

import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Coroutine, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def run_async_safely(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine safely from a synchronous context.

    If a loop is already running in this thread the coroutine is executed on
    a separate thread with its own loop; otherwise a fresh loop is created
    for the call and closed afterwards.

    Args:
        coro: The coroutine to run

    Returns:
        The result of the coroutine

    Raises:
        Any exception raised by the coroutine
    """
    try:
        asyncio.get_running_loop()
        logger.debug("Running async code via separate thread (event loop already running)")
        return _run_in_new_thread(coro)
    except RuntimeError:
        pass

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _run_in_new_thread(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine in a new thread with its own event loop."""
    result = None
    exception = None

    def _thread_runner():
        nonlocal result, exception
        loop = asyncio.new_event_loop()
        try:
            result = loop.run_until_complete(coro)
        except Exception as e:
            exception = e
        finally:
            loop.close()

    thread = threading.Thread(target=_thread_runner, daemon=True)
    thread.start()
    thread.join()

    if exception is not None:
        raise exception
    return result


def iterate_async(agen: AsyncIterator[T]) -> Iterator[T]:
    """Drain an async iterator from synchronous code, one item at a time.

    Each item is pulled on a private event loop owned by the calling thread,
    so a WSGI worker can stream it without an ambient loop. Closing the
    returned generator (for example when the client disconnects) closes the
    async generator too, which runs its ``finally`` blocks.

    Args:
        agen: Async iterator or async generator to drain

    Yields:
        Items produced by ``agen`` in order
    """
    loop = asyncio.new_event_loop()
    try:
        while True:
            try:
                item = loop.run_until_complete(agen.__anext__())
            except StopAsyncIteration:
                break
            yield item
    finally:
        aclose = getattr(agen, 'aclose', None)
        try:
            if aclose is not None:
                loop.run_until_complete(aclose())
            loop.run_until_complete(loop.shutdown_asyncgens())
        except Exception as e:
            logger.warning(f"Error while closing async stream: {e}")
        finally:
            loop.close()


__all__ = [
    'run_async_safely',
    'iterate_async',
]
