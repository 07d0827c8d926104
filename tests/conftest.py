"""Pytest configuration and shared fixtures."""

from unittest.mock import AsyncMock, Mock

import pytest

from relay.dispatcher import Dispatcher


@pytest.fixture
def daemon():
    """Daemon client double answering OK to everything."""
    client = AsyncMock()
    client.address = "127.0.0.1:11898"
    client.send_raw_transaction.return_value = {"status": "OK"}
    client.submit_block.return_value = {"status": "OK"}
    client.block_template.return_value = {"status": "OK", "height": 1000}
    client.random_outputs.return_value = {"status": "OK", "outs": []}
    return client


@pytest.fixture
def queue():
    """Queue client double recording reply/ack/nack."""
    return AsyncMock()


@pytest.fixture
def message():
    """An opaque incoming message."""
    return Mock(name="message")


@pytest.fixture
def dispatcher(daemon, queue):
    return Dispatcher(daemon=daemon, queue=queue, worker_id="1")
