"""Shared fixtures: a fake relay network and a pool connected to it."""

from __future__ import annotations

import pytest
import pytest_asyncio

from fakes import FakeInvoices, FakeLnurlServer, FakeNetwork, eventually
from zapboard.config import ZapboardConfig
from zapboard.lnurl import LnurlClient
from zapboard.relay_pool import RelayPool

RELAY_A = "wss://relay.one.example"
RELAY_B = "wss://relay.two.example"


def make_config(**overrides) -> ZapboardConfig:
    defaults = dict(
        relays=(RELAY_A, RELAY_B),
        connect_timeout=0.5,
        publish_timeout=0.5,
        fetch_timeout=0.5,
        wallet_timeout=0.5,
        reconnect_base_delay=0.01,
        reconnect_max_delay=0.05,
    )
    defaults.update(overrides)
    return ZapboardConfig(**defaults)


@pytest.fixture()
def config() -> ZapboardConfig:
    return make_config()


@pytest.fixture()
def network() -> FakeNetwork:
    net = FakeNetwork()
    net.relay(RELAY_A)
    net.relay(RELAY_B)
    return net


@pytest_asyncio.fixture()
async def pool(network, config):
    relay_pool = RelayPool(config=config, connect=network.connect)
    await relay_pool.start()
    await eventually(lambda: len(relay_pool.connected_urls) == len(relay_pool.urls))
    yield relay_pool
    await relay_pool.close()


@pytest.fixture()
def invoices(monkeypatch) -> FakeInvoices:
    fake = FakeInvoices()
    monkeypatch.setattr("zapboard.invoice.decode", fake.decode)
    return fake


@pytest.fixture()
def lnurl_server(invoices) -> FakeLnurlServer:
    return FakeLnurlServer(invoices)


@pytest_asyncio.fixture()
async def lnurl(lnurl_server, config):
    client = lnurl_server.attach(LnurlClient(config=config))
    yield client
    await client.close()
