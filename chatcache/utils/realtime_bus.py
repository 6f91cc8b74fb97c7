import asyncio
import logging
from typing import Awaitable, Callable, Optional

from chatcache.config import get_settings


logger = logging.getLogger(__name__)

CACHE_EVENTS_CHANNEL = "chatcache:cache-events"


class NoopBus:

    enabled = False

    async def publish(self, channel: str, message: str) -> None:
        return

    async def subscribe(self, channel: str, on_message: Callable[[str], Awaitable[None]]):
        class _Sub:
            async def run(self):
                await asyncio.Future()
            async def cancel(self):
                return
        return _Sub()

    async def close(self) -> None:
        return


class RedisBus:

    enabled = True

    def __init__(self, url: str) -> None:
        import redis.asyncio as redis

        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: Callable[[str], Awaitable[None]]):
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        class _Sub:
            _running = True

            async def run(self_inner):
                while self_inner._running:
                    try:
                        msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                    except Exception:
                        logger.warning("Redis subscription on %s failed, retrying", channel, exc_info=True)
                        await asyncio.sleep(0.5)
                        continue
                    if msg and msg.get("type") == "message":
                        data = msg.get("data")
                        try:
                            if isinstance(data, bytes):
                                data = data.decode("utf-8")
                            await on_message(data)
                        except Exception:
                            logger.warning("Dropped unreadable message on %s", channel, exc_info=True)

            async def cancel(self_inner):
                self_inner._running = False
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()

        return _Sub()

    async def close(self) -> None:
        await self._redis.aclose()


_bus = None


async def get_bus(url: Optional[str] = None):
    global _bus
    if _bus is not None:
        return _bus
    url = url or get_settings().redis_url
    if not url:
        logger.info("REDIS_URL not set, cache events stay local to this process")
        _bus = NoopBus()
        return _bus
    _bus = RedisBus(url)
    logger.info("Publishing cache events through Redis")
    return _bus


async def close_bus() -> None:
    global _bus
    if _bus is not None:
        await _bus.close()
        _bus = None
