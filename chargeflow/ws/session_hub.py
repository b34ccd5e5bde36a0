# chargeflow/ws/session_hub.py
"""
Live charging progress hub.

One `SessionHub` is created per application. It owns two registries:

- subscribers: socket channels keyed by "{user_id}:{station_id}"
- timers: at most one progress task per ticket id

Timer tasks run their tick immediately and then once per interval. A tick
returning True ends the timer.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from fastapi.encoders import jsonable_encoder
from starlette.websockets import WebSocketState

from chargeflow.config.charging_config import charging_settings
from chargeflow.models.ticket import ChargingStatus

logger = logging.getLogger("chargeflow.hub")

Tick = Callable[[], Awaitable[bool]]


def _is_open(channel):
    return (
        getattr(channel, "client_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
        and getattr(channel, "application_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
    )


class SessionHub:
    def __init__(self, tick_interval_ms: Optional[int] = None):
        interval_ms = tick_interval_ms if tick_interval_ms is not None else charging_settings.progress_tick_ms
        self.tick_interval = interval_ms / 1000
        self.timers: Dict[str, asyncio.Task] = {}
        self.subscribers: Dict[str, Set[Any]] = {}
        self.closed = False

    @staticmethod
    def build_key(user_id: str, station_id: str) -> str:
        return f"{user_id}:{station_id}"

    # ---- subscribers ----

    def subscribe(self, key: str, channel: Any) -> None:
        self.subscribers.setdefault(key, set()).add(channel)
        logger.info(f"📡 Subscriber added | key={key} | total={len(self.subscribers[key])}")

    def unsubscribe(self, key: str, channel: Any) -> None:
        channels = self.subscribers.get(key)
        if not channels:
            return
        channels.discard(channel)
        if not channels:
            del self.subscribers[key]
        logger.info(f"👋 Subscriber removed | key={key}")

    def subscriber_count(self, key: str) -> int:
        return len(self.subscribers.get(key, ()))

    async def broadcast(self, key: str, payload: Dict[str, Any]) -> int:
        """
        Send a frame to every open subscriber of a key.

        Closed channels and channels whose send fails are dropped.

        Returns:
            int: Number of channels the frame was delivered to
        """
        channels = self.subscribers.get(key)
        if not channels:
            return 0

        message = json.dumps(jsonable_encoder(payload))
        delivered = 0
        for channel in list(channels):
            if not _is_open(channel):
                channels.discard(channel)
                continue
            try:
                await channel.send_text(message)
                delivered += 1
            except Exception as e:
                logger.debug(f"Dropping subscriber after failed send | key={key} | {str(e)}")
                channels.discard(channel)

        if not channels and self.subscribers.get(key) is channels:
            del self.subscribers[key]

        logger.debug(f"📤 {payload.get('type')} frame sent | key={key} | delivered={delivered}")
        return delivered

    # ---- timers ----

    def has_timer(self, ticket_id: str) -> bool:
        return ticket_id in self.timers

    def ensure_timer(self, ticket: Dict[str, Any], tick: Tick) -> bool:
        """
        Start the progress timer of an in-progress ticket unless one is running.

        Returns:
            bool: True if a new timer was started
        """
        if self.closed:
            return False
        if not ticket or not ticket.get("startedAt") or ticket.get("chargingStatus") != ChargingStatus.IN_PROGRESS.value:
            return False

        ticket_id = ticket.get("id")
        if not ticket_id or ticket_id in self.timers:
            return False

        self.timers[ticket_id] = asyncio.get_running_loop().create_task(self._run_timer(ticket_id, tick))
        logger.info(f"⏱️ Progress timer started | ticket={ticket_id}")
        return True

    async def _run_timer(self, ticket_id: str, tick: Tick) -> None:
        try:
            while True:
                try:
                    done = await tick()
                except Exception as e:
                    # Transient failure; the next tick retries
                    logger.error(f"❌ Progress tick failed | ticket={ticket_id} | {str(e)}", exc_info=True)
                    done = False
                if done:
                    break
                await asyncio.sleep(self.tick_interval)
        finally:
            if self.timers.get(ticket_id) is asyncio.current_task():
                del self.timers[ticket_id]

    def clear_timer(self, ticket_id: str) -> None:
        task = self.timers.pop(ticket_id, None)
        if task is None:
            return
        # A timer finishing its own session just unregisters; its loop ends on the tick result
        if task is not asyncio.current_task():
            task.cancel()
        logger.info(f"⏹️ Progress timer cleared | ticket={ticket_id}")

    async def shutdown(self) -> None:
        """Stop accepting timers and cancel every running one."""
        self.closed = True
        tasks = list(self.timers.values())
        self.timers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"🛑 Session hub stopped | timers cancelled={len(tasks)}")
