"""
Stream Listener

One long-lived websocket session against the Solana `logsSubscribe` API,
with re-subscription on reconnect and capped exponential backoff.

Usage:
    listener = StreamListener(url, ledger, config_store, LogClassifier(...),
                              on_event=engine.handle_event)
    await listener.start()
    await listener.add_wallet("...")
    await listener.stop()
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed

from .classifier import EventClassifier
from .models import ClassifiedEvent, ListenerState
from ..ledger import Ledger
from ..notifications import NotificationQueue, NotificationType
from ...config import ConfigStore
from ...logging_config import event_context

logger = logging.getLogger(__name__)

EventHandler = Callable[[ClassifiedEvent], Awaitable[Any]]
FatalHandler = Callable[[str], Any]


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 30.0) -> float:
    """Delay before reconnect attempt `attempt` (1-based): min(base * 2**attempt, cap)."""
    return min(base * (2 ** attempt), cap)


class StreamListener:
    """
    Subscribes to log notifications mentioning each watched address.

    State machine:
        STOPPED -> CONNECTING -> SUBSCRIBED -> (CLOSED -> RECONNECTING -> CONNECTING)* -> STOPPED

    Classified events are awaited one at a time, in the order the transport
    delivers them.
    """

    def __init__(
        self,
        url: str,
        ledger: Ledger,
        config_store: ConfigStore,
        classifier: EventClassifier,
        on_event: Optional[EventHandler] = None,
        on_fatal: Optional[FatalHandler] = None,
        notifications: Optional[NotificationQueue] = None,
        connector: Callable[..., Any] = websockets.connect,
        commitment: str = "confirmed",
        reconnect_base: float = 1.0,
        reconnect_cap: float = 30.0,
        max_attempts: int = 10,
    ):
        self.url = url
        self.ledger = ledger
        self.config_store = config_store
        self.classifier = classifier
        self.on_event = on_event
        self.on_fatal = on_fatal
        self.notifications = notifications
        self._connector = connector
        self.commitment = commitment
        self.reconnect_base = reconnect_base
        self.reconnect_cap = reconnect_cap
        self.max_attempts = max_attempts

        self._state = ListenerState.STOPPED
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._ws: Any = None
        self._attempt = 0

        self._watched: Set[str] = {config_store.master_wallet}
        self._request_id = 0
        self._pending_requests: Dict[int, str] = {}  # request id -> address
        self._subscriptions: Dict[str, int] = {}  # address -> subscription id

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def master_wallet(self) -> str:
        return self.config_store.master_wallet

    def watched_wallets(self) -> List[str]:
        return sorted(self._watched)

    def subscription_ids(self) -> Dict[str, int]:
        return dict(self._subscriptions)

    def is_running(self) -> bool:
        return self._running

    def is_active(self) -> bool:
        return self._running and self._state == ListenerState.SUBSCRIBED

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        if self._running:
            return

        self._running = True
        self._attempt = 0
        self._task = asyncio.create_task(self._run(), name="stream-listener")
        logger.info(f"Stream listener started ({self.url})")

    async def stop(self) -> None:
        self._running = False

        task, self._task = self._task, None
        if task and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_transport()
        self._state = ListenerState.STOPPED
        logger.info("Stream listener stopped")

    async def _close_transport(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except Exception as e:
            logger.debug(f"Error closing websocket: {e}")

    async def _run(self) -> None:
        """Connect, subscribe and read until stopped or out of attempts."""
        while self._running:
            self._state = ListenerState.CONNECTING
            try:
                async with self._connector(self.url) as ws:
                    self._ws = ws
                    await self._on_open()
                    async for message in ws:
                        await self.handle_message(message)
            except asyncio.CancelledError:
                raise
            except ConnectionClosed as e:
                logger.warning(f"Websocket closed: {e}")
            except Exception as e:
                logger.error(f"Websocket error: {e}")
            finally:
                self._ws = None
                self._pending_requests.clear()
                self._subscriptions.clear()

            if not self._running:
                break

            self._state = ListenerState.CLOSED
            self._attempt += 1
            if self._attempt > self.max_attempts:
                await self._give_up()
                return

            delay = backoff_delay(self._attempt, self.reconnect_base, self.reconnect_cap)
            self._state = ListenerState.RECONNECTING
            logger.info(f"Reconnecting in {delay:.1f}s (attempt {self._attempt}/{self.max_attempts})")
            await asyncio.sleep(delay)

        self._state = ListenerState.STOPPED

    async def _on_open(self) -> None:
        self._attempt = 0
        self._watched = set(self.ledger.active_accounts()) | {self.master_wallet}
        logger.info(f"Websocket connected, subscribing to {len(self._watched)} wallets")

        for address in sorted(self._watched):
            await self._subscribe(address)
        self._state = ListenerState.SUBSCRIBED

    async def _give_up(self) -> None:
        reason = f"Reconnect attempts exhausted after {self.max_attempts} tries"
        self._running = False
        self._state = ListenerState.STOPPED
        self._task = None
        logger.error(f"Stream listener stopped: {reason}")

        if self.notifications:
            self.notifications.publish(NotificationType.LISTENER_FATAL, reason, url=self.url)
        if self.on_fatal:
            try:
                result = self.on_fatal(reason)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Fatal handler failed: {e}", exc_info=True)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def _subscribe(self, address: str) -> None:
        if self._ws is None:
            return

        self._request_id += 1
        request = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": "logsSubscribe",
            "params": [
                {"mentions": [address]},
                {"commitment": self.commitment},
            ],
        }
        self._pending_requests[self._request_id] = address
        await self._ws.send(json.dumps(request))
        logger.debug(f"logsSubscribe sent for {address[:8]}... (id={self._request_id})")

    async def add_wallet(self, address: str) -> bool:
        """Watch an address. Subscribes immediately when connected."""
        if address in self._watched:
            return False

        self._watched.add(address)
        if self._state == ListenerState.SUBSCRIBED and self._ws is not None:
            try:
                await self._subscribe(address)
            except Exception as e:
                logger.warning(f"Subscription for {address[:8]}... deferred to next connect: {e}")
        logger.info(f"Wallet watched: {address[:8]}...")
        return True

    def remove_wallet(self, address: str) -> bool:
        """
        Stop watching an address.

        Only the watch set changes; an existing subscription keeps delivering
        until the next reconnect.
        """
        if address == self.master_wallet or address not in self._watched:
            return False
        self._watched.discard(address)
        logger.info(f"Wallet unwatched: {address[:8]}...")
        return True

    # =========================================================================
    # Message handling
    # =========================================================================

    async def handle_message(self, raw: str | bytes) -> Optional[ClassifiedEvent]:
        """Dispatch one transport message. Malformed payloads are logged and dropped."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Invalid JSON received: {str(raw)[:100]}")
            return None

        if not isinstance(data, dict):
            return None

        method = data.get("method")
        if method is None and "id" in data and isinstance(data.get("result"), int):
            self._confirm_subscription(data["id"], data["result"])
            return None

        if method != "logsNotification":
            if "error" in data:
                logger.error(f"Subscription error: {data['error']}")
            return None

        try:
            value = data["params"]["result"]["value"]
            signature = value["signature"]
            logs = value.get("logs") or []
            failed = value.get("err")
        except (KeyError, TypeError, AttributeError):
            logger.warning("Malformed logsNotification dropped")
            return None

        if not (
            isinstance(signature, str)
            and isinstance(logs, list)
            and all(isinstance(line, str) for line in logs)
        ):
            logger.warning("logsNotification with unexpected field types dropped")
            return None

        if failed:
            return None

        try:
            event = self.classifier.classify(logs, signature)
        except Exception as e:
            logger.warning(f"Could not classify {signature[:16]}...: {e}")
            return None
        if event is None:
            return None

        logger.info(f"{event.type.value} detected in {signature[:16]}...")
        if self._running and self.on_event:
            with event_context(signature=signature, source_account=event.source_account):
                try:
                    await self.on_event(event)
                except Exception as e:
                    logger.error(f"Event handler failed for {signature[:16]}...: {e}", exc_info=True)
        return event

    def _confirm_subscription(self, request_id: Any, subscription_id: int) -> None:
        address = self._pending_requests.pop(request_id, None)
        if address is None:
            return
        self._subscriptions[address] = subscription_id
        logger.info(f"Subscribed to {address[:8]}... (subscription {subscription_id})")
