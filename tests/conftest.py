"""Shared fixtures: settings, config store, ledger and in-memory collaborators."""

import asyncio
import json

import pytest
from decimal import Decimal
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

from solcopy.config import ConfigStore, Settings
from solcopy.core.ledger import InMemoryStateStore, Ledger
from solcopy.core.notifications import NotificationQueue
from solcopy.runtime import BotRuntime

MASTER = "Mast3rWa11et".ljust(44, "1")
FOLLOWED = "Fo11owedWa11et".ljust(44, "2")
NEW_WALLET = "NewWa11etDest".ljust(44, "3")
TOKEN = "TokenMint".ljust(44, "4")


class FakeOracle:
    """Price oracle returning whatever the test sets."""

    def __init__(self, prices: Optional[Dict[str, Decimal]] = None):
        self.prices = dict(prices or {})
        self.calls = 0

    async def get_price(self, asset_id: str) -> Optional[Decimal]:
        self.calls += 1
        return self.prices.get(asset_id)

    async def health_check(self):
        return {"status": "healthy"}


@pytest.fixture
def addresses():
    return {"master": MASTER, "followed": FOLLOWED, "new": NEW_WALLET, "token": TOKEN}


@pytest.fixture
def launch_settings():
    """Launch settings that never read a .env file."""
    return Settings(
        _env_file=None,
        master_wallet=MASTER,
        solana_wss_url="wss://stream.test",
        solana_rpc_url="https://rpc.test",
        telegram_bot_token="",
        telegram_chat_id="",
    )


@pytest.fixture
def config_store(launch_settings):
    return ConfigStore(launch_settings)


@pytest.fixture
def state_store():
    return InMemoryStateStore()


@pytest.fixture
def ledger(state_store):
    return Ledger(MASTER, store=state_store)


@pytest.fixture
def notifications():
    return NotificationQueue(maxsize=100)


@pytest.fixture
def oracle():
    return FakeOracle({TOKEN: Decimal("1.0")})


class FakeWebSocket:
    """In-memory websocket. Push None to simulate the server closing the connection."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    def push(self, message):
        self._incoming.put_nowait(message)

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


async def wait_for(condition, timeout=2.0):
    async def _poll():
        while not condition():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)


class RecordingSink:
    """Notification sink that keeps everything it is given."""

    def __init__(self):
        self.delivered = []

    async def send(self, notification):
        self.delivered.append(notification)


class RuntimeHarness:
    """A BotRuntime wired to in-memory collaborators, plus handles to them."""

    def __init__(self, launch: Settings):
        self.sockets: List[FakeWebSocket] = []
        self.oracle = FakeOracle({TOKEN: Decimal("1.0")})
        self.rpc = AsyncMock()
        self.rpc.health_check.return_value = {"status": "healthy"}
        self.rpc.get_balance.return_value = 5 * 10**9
        self.rpc.get_signatures_for_address.return_value = [{"signature": "s1", "blockTime": 1}]
        self.sink = RecordingSink()
        self.store = InMemoryStateStore()
        self.runtime = BotRuntime(
            launch,
            store=self.store,
            oracle=self.oracle,
            rpc=self.rpc,
            sink=self.sink,
            connector=self._connect,
        )

    def _connect(self, url):
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


@pytest.fixture
def harness(launch_settings):
    return RuntimeHarness(launch_settings)
