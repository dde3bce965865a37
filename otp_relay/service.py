"""
Relay service: wires the registry, capture sources, dispatcher and sweeper
together and drives the periodic tasks with APScheduler.
"""

from typing import Dict, List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from app.core.settings import Config, get_config
from app.core.telegram_client import TelegramClient
from app.core.timezone_utils import now_utc_isoformat

from .api_client import PolicyApiClient
from .dispatcher import DeliveryDispatcher
from .email_client import EmailClient
from .events import CompositeEventSink, EventSink, LoggingEventSink, TelegramEventSink
from .lifecycle import LifecycleWebhookHandler
from .models import CaptureSource, SmsIngestRequest, SourceMessage
from .poller import CaptureSourceClient, IncrementalSourcePoller
from .registry import PendingRequestRegistry
from .sms_inbox import SmsInbox
from .sweeper import ExpirySweeper


class RelayService:
    """Owns the scheduler and every long-lived relay component."""

    def __init__(
        self,
        registry: PendingRequestRegistry,
        sources: List[CaptureSourceClient],
        dispatcher: DeliveryDispatcher,
        event_sink: EventSink,
        lifecycle_handler: LifecycleWebhookHandler,
        poll_interval_seconds: int = 10,
        sweep_interval_seconds: int = 30,
    ):
        self.scheduler = AsyncIOScheduler()
        self.registry = registry
        self.dispatcher = dispatcher
        self.lifecycle_handler = lifecycle_handler
        self.pollers = [
            IncrementalSourcePoller(source, registry, dispatcher) for source in sources
        ]
        self.sweeper = ExpirySweeper(registry, event_sink)
        self.poll_interval_seconds = poll_interval_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.running = False

        logger.info(
            f"Relay service initialized with sources: {[p.name for p in self.pollers]}"
        )

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "RelayService":
        """Build the service and its collaborators from application config."""
        config = config or get_config()
        registry = PendingRequestRegistry()

        sinks: List[EventSink] = [LoggingEventSink()]
        if config.telegram_bot_token and config.telegram_chat_id:
            sinks.append(
                TelegramEventSink(
                    TelegramClient(config.telegram_bot_token), config.telegram_chat_id
                )
            )
        event_sink = CompositeEventSink(sinks)

        sources: List[CaptureSourceClient] = []
        if config.email_capture_enabled:
            if config.email_address and (config.email_password or config.email_oauth_token):
                token = config.email_oauth_token
                sources.append(
                    EmailClient(
                        server=config.email_imap_server,
                        email=config.email_address,
                        password=config.email_password,
                        port=config.email_imap_port,
                        folder=config.email_folder,
                        timeout=config.email_imap_timeout,
                        token_provider=(lambda: token) if token else None,
                    )
                )
            else:
                logger.error(
                    "Email credentials not configured. Please set EMAIL_ADDRESS and EMAIL_PASSWORD or EMAIL_OAUTH_TOKEN"
                )
        if config.sms_capture_enabled:
            sources.append(SmsInbox(max_messages=config.sms_buffer_size))

        dispatcher = DeliveryDispatcher(
            PolicyApiClient(
                config.policy_api_url,
                config.policy_api_key,
                timeout=config.policy_api_timeout,
            ),
            event_sink,
        )
        lifecycle_handler = LifecycleWebhookHandler(
            registry,
            config.webhook_secret,
            default_sources=[CaptureSource(s) for s in config.default_sources],
            default_ttl_seconds=config.default_request_ttl_seconds,
        )

        return cls(
            registry,
            sources,
            dispatcher,
            event_sink,
            lifecycle_handler,
            poll_interval_seconds=config.poll_interval_seconds,
            sweep_interval_seconds=config.sweep_interval_seconds,
        )

    @property
    def sms_inbox(self) -> Optional[SmsInbox]:
        for poller in self.pollers:
            if isinstance(poller.source, SmsInbox):
                return poller.source
        return None

    def ingest_sms(self, sms: SmsIngestRequest) -> SourceMessage:
        """
        Buffer an SMS pushed by a forwarder for the next SMS poll.

        Raises:
            RuntimeError: If SMS capture is disabled
        """
        inbox = self.sms_inbox
        if inbox is None:
            raise RuntimeError("SMS capture is disabled")
        return inbox.push(
            sender=sms.sender,
            body=sms.body,
            received_at=sms.received_at,
            message_id=sms.id,
        )

    async def start(self) -> None:
        """Baseline every source cursor and start the periodic tasks."""
        if self.running:
            logger.warning("Relay service is already running")
            return

        logger.info("Starting relay service...")

        for poller in self.pollers:
            try:
                await poller.prime()
            except Exception as e:
                logger.error(f"Failed to baseline {poller.name}, will retry on first poll: {e}")

        for poller in self.pollers:
            self.scheduler.add_job(
                poller.tick,
                "interval",
                seconds=self.poll_interval_seconds,
                id=f"poll_{poller.name}",
                max_instances=1,  # Prevent overlapping executions
                coalesce=True,
            )
        self.scheduler.add_job(
            self.sweeper.tick,
            "interval",
            seconds=self.sweep_interval_seconds,
            id="sweep_expired",
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        self.running = True

        logger.info(
            f"Relay service started, polling every {self.poll_interval_seconds}s "
            f"and sweeping every {self.sweep_interval_seconds}s"
        )

    def stop(self) -> None:
        """Stop the periodic tasks."""
        if not self.running:
            return

        logger.info("Stopping relay service...")
        self.scheduler.shutdown()
        self.running = False
        logger.info("Relay service stopped")

    def get_status(self) -> Dict:
        """Snapshot for the health endpoint."""
        return {
            "status": "ok",
            "timestamp": now_utc_isoformat(),
            "running": self.running,
            "pending": len(self.registry),
            "sources": [p.name for p in self.pollers],
        }


# Global service instance
_relay_service = None


def get_relay_service() -> RelayService:
    """Get the global relay service instance."""
    global _relay_service
    if _relay_service is None:
        _relay_service = RelayService.from_config()
    return _relay_service


def reset_relay_service() -> None:
    """Drop the global relay service instance. Used for testing."""
    global _relay_service
    _relay_service = None
