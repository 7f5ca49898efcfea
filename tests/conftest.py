import asyncio
import itertools
import time

import pytest

from core.errors import StreamProviderError
from core.registrar import StreamRegistrar
from core.store import SubscriptionStore

ETH_ADDR = "0xde0B295669a9FD93d5F28D9Ec85E40f4cb697BAe"
ETH_ADDR_2 = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
SOL_ADDR = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
WEBHOOK_URL = "https://tracker.example.com/webhook/moralis"
SECRET = "test-webhook-secret"


def run(coro):
    return asyncio.run(coro)


class FakeStreamsClient:
    """Stands in for MoralisStreamsClient; records every call."""

    def __init__(self):
        self.created = []
        self.deleted = []
        self.updated = []
        self.fail_create = False
        self.fail_delete = False
        self.create_delay = 0.0
        self._ids = itertools.count(1)

    def create_stream(self, family, address, provider_chain, webhook_url, description="", tag=""):
        if self.fail_create:
            raise StreamProviderError("HTTP 503: unavailable", status_code=503)
        if self.create_delay:
            time.sleep(self.create_delay)
        stream_id = f"stream-{next(self._ids)}"
        self.created.append((family, address, provider_chain, webhook_url, stream_id))
        return {"id": stream_id}

    def delete_stream(self, stream_id, family):
        if self.fail_delete:
            raise StreamProviderError("timed out")
        self.deleted.append((stream_id, family))
        return True

    def update_stream(self, stream_id, family, address, provider_chain, webhook_url):
        self.updated.append((stream_id, webhook_url))
        return {"id": stream_id}


class FakeSender:
    """Collects alerts instead of calling Telegram."""

    def __init__(self, failing=()):
        self.sent = []
        self.failing = set(failing)

    async def deliver(self, chat_id, text):
        if chat_id in self.failing:
            raise RuntimeError(f"chat {chat_id} blocked the bot")
        self.sent.append((chat_id, text))


@pytest.fixture
def store(tmp_path):
    s = SubscriptionStore(str(tmp_path / "tracker.db"))
    run(s.init())
    return s


@pytest.fixture
def streams():
    return FakeStreamsClient()


@pytest.fixture
def registrar(store, streams):
    return StreamRegistrar(store, streams)


@pytest.fixture
def sender():
    return FakeSender()
