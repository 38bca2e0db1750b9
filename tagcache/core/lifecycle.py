"""Lifecycle management for the cache."""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Set, Tuple

from tagcache.core.config import Settings, settings as default_settings
from tagcache.core.container import CacheContainer, set_container
from tagcache.core.logging import get_logger, setup_logging

logger = get_logger(__name__)

SHUTDOWN_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT)


def install_shutdown_handlers(
    container: CacheContainer,
    main_task: Optional[asyncio.Task] = None,
) -> bool:
    """Flush and shut down the container on SIGTERM/SIGINT, then stop the host.

    Installing a loop signal handler replaces the default "terminate"
    behaviour, so once the container is shut down ``main_task`` is
    cancelled to let the process exit.

    Must be called from inside the running event loop.

    Args:
        container: Container to shut down.
        main_task: Task to cancel after shutdown. Defaults to the current task.

    Returns:
        True if handlers were installed, False where the loop does not
        support signal handlers (e.g. Windows).
    """
    loop = asyncio.get_running_loop()
    target = main_task or asyncio.current_task()
    shutdown_tasks: Set[asyncio.Task] = set()

    async def _shutdown_then_stop(sig: signal.Signals) -> None:
        try:
            await container.shutdown()
        finally:
            if target is not None and not target.done():
                logger.info(f"Cache shut down after {sig.name}, stopping main task")
                target.cancel()

    def _on_signal(sig: signal.Signals) -> None:
        if shutdown_tasks:
            logger.info(f"Received {sig.name}, shutdown already in progress")
            return
        logger.info(f"Received {sig.name}, flushing pending writes")
        task = loop.create_task(_shutdown_then_stop(sig))
        shutdown_tasks.add(task)
        task.add_done_callback(shutdown_tasks.discard)

    try:
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, _on_signal, sig)
    except NotImplementedError:
        logger.warning("Signal handlers not supported on this platform")
        return False
    return True


def remove_shutdown_handlers() -> None:
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except NotImplementedError:
            return


@asynccontextmanager
async def cache_lifespan(
    config: Optional[Settings] = None,
    container: Optional[CacheContainer] = None,
) -> AsyncIterator[CacheContainer]:
    """Run the cache for the duration of the block.

    With ``install_signal_handlers`` enabled, SIGTERM/SIGINT flush pending
    writes and then cancel the task running the block.

    Usage:
        async with cache_lifespan() as container:
            await container.cache.fetch(key, loader)
    """
    config = config or default_settings
    setup_logging(config)
    logger.info("Starting tagcache...")

    container = container or CacheContainer()
    try:
        await container.initialize(config)
        set_container(container)
    except Exception as e:
        logger.error(f"Failed to initialize cache: {e}")
        raise

    handlers_installed = False
    if config.install_signal_handlers:
        handlers_installed = install_shutdown_handlers(container)

    try:
        yield container
    finally:
        logger.info("Shutting down tagcache...")
        if handlers_installed:
            remove_shutdown_handlers()
        # A signal may already have shut the container down.
        if container.is_initialized:
            await container.shutdown()
        set_container(None)
        logger.info("tagcache shut down")
