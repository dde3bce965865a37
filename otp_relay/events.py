"""
Lifecycle-event sinks.

The relay tells the outside world about expiries and delivery outcomes by
emitting LifecycleEvent objects; what, if anything, reaches a human is up to
the sink. Events never carry the code itself.
"""

from typing import Iterable, List, Protocol
from loguru import logger

from app.core.telegram_client import TelegramClient

from .models import LifecycleEvent

EVENT_MESSAGES = {
    "expired": "OTP request {request_id} expired before a code arrived.",
    "delivered": "OTP for request {request_id} was captured and delivered.",
    "delivery_failed": "OTP for request {request_id} was captured but could not be delivered. The agent must request a new code.",
}


class EventSink(Protocol):
    async def emit(self, event: LifecycleEvent) -> None: ...


def render_event(event: LifecycleEvent) -> str:
    """Human-readable text for a lifecycle event."""
    return EVENT_MESSAGES[event.event].format(request_id=event.request_id)


class LoggingEventSink:
    """Writes every event to the application log."""

    async def emit(self, event: LifecycleEvent) -> None:
        if event.event == "delivery_failed":
            logger.error(f"{render_event(event)} ({event.detail})")
        else:
            logger.info(render_event(event))


class TelegramEventSink:
    """Forwards events to a single Telegram chat."""

    def __init__(self, client: TelegramClient, chat_id: int):
        self.client = client
        self.chat_id = chat_id

    async def emit(self, event: LifecycleEvent) -> None:
        success, _ = await self.client.send_message(self.chat_id, render_event(event))
        if not success:
            logger.warning(
                f"Telegram notification for {event.event} on {event.request_id} was not sent"
            )


class CompositeEventSink:
    """Fans an event out to several sinks; one failing sink never blocks the rest."""

    def __init__(self, sinks: Iterable[EventSink]):
        self.sinks: List[EventSink] = list(sinks)

    async def emit(self, event: LifecycleEvent) -> None:
        for sink in self.sinks:
            try:
                await sink.emit(event)
            except Exception as e:
                logger.error(
                    f"Event sink {type(sink).__name__} failed for {event.event}: {e}"
                )
