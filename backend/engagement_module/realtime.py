import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable

from fastapi import WebSocket, WebSocketDisconnect


logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Subscription:
    user_id: str
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)


class ChangeFeed:
    """Fan-out of change events to connected clients.

    ``publish`` is called from sync route handlers running in worker threads,
    so delivery goes through ``call_soon_threadsafe`` on each subscriber's loop.
    """

    def __init__(self):
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, user_id: str) -> Subscription:
        subscription = Subscription(user_id=user_id, loop=asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, channel: str, action: str, data: dict[str, Any], recipients: Iterable[str] | None = None) -> int:
        """Queue an event for ``recipients`` (everyone when None). Returns deliveries."""
        event = {"channel": channel, "action": action, "data": data}
        targets = None if recipients is None else set(recipients)
        with self._lock:
            subscriptions = [s for s in self._subscriptions if targets is None or s.user_id in targets]
        delivered = 0
        for subscription in subscriptions:
            try:
                subscription.loop.call_soon_threadsafe(subscription.queue.put_nowait, event)
                delivered += 1
            except RuntimeError:
                # Loop already closed; the socket handler will clean up.
                logger.warning(f"Dropping {channel} event for closed subscriber {subscription.user_id}")
        return delivered


feed = ChangeFeed()


async def stream_updates(websocket: WebSocket, user_id: str) -> None:
    subscription = feed.subscribe(user_id)
    await websocket.accept()

    async def forward() -> None:
        while True:
            event = await subscription.queue.get()
            await websocket.send_json(event)

    sender = asyncio.create_task(forward())
    try:
        while True:
            # Clients may send pings; the read also surfaces disconnects.
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Realtime subscriber {user_id} disconnected")
    finally:
        feed.unsubscribe(subscription)
        sender.cancel()
        try:
            await sender
        except (asyncio.CancelledError, WebSocketDisconnect):
            pass
        except Exception as e:
            logger.warning(f"Realtime delivery to {user_id} failed: {e}")
