"""Tests for request dispatch and ack/nack decisions."""

import pytest
from structlog.testing import capture_logs

from relay.dispatcher import Disposition
from relay.rpc import RPCError

OPERATIONS = ["send_raw_transaction", "submit_block", "block_template", "random_outputs"]

PAYLOADS = {
    "send_raw_transaction": {"rawTransaction": "01ab", "hash": "deadbeef"},
    "submit_block": {"blockBlob": "ff00"},
    "block_template": {"walletAddress": "abc", "reserveSize": 8},
    "random_outputs": {"randomOutputs": {"amounts": [100], "mixin": 3}},
}


def levels(logs, level):
    return [entry for entry in logs if entry["log_level"] == level]


class TestRouting:
    """Exactly one daemon call per recognized payload."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", OPERATIONS)
    async def test_one_call_one_terminal_action(self, dispatcher, daemon, queue, message, operation):
        result = await dispatcher.handle(message, PAYLOADS[operation])

        assert result is Disposition.ACK
        for name in OPERATIONS:
            expected = 1 if name == operation else 0
            assert getattr(daemon, name).await_count == expected
        queue.reply.assert_awaited_once()
        queue.ack.assert_awaited_once_with(message)
        queue.nack.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_arguments(self, dispatcher, daemon, message):
        await dispatcher.handle(message, PAYLOADS["send_raw_transaction"])
        await dispatcher.handle(message, PAYLOADS["submit_block"])
        await dispatcher.handle(message, PAYLOADS["block_template"])
        await dispatcher.handle(message, PAYLOADS["random_outputs"])

        daemon.send_raw_transaction.assert_awaited_once_with("01ab")
        daemon.submit_block.assert_awaited_once_with("ff00")
        daemon.block_template.assert_awaited_once_with("abc", 8)
        daemon.random_outputs.assert_awaited_once_with([100], 3)

    @pytest.mark.asyncio
    async def test_priority_order(self, dispatcher, daemon, message):
        await dispatcher.handle(message, {"rawTransaction": "01ab", "blockBlob": "ff00"})

        daemon.send_raw_transaction.assert_awaited_once_with("01ab")
        daemon.submit_block.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, {"walletAddress": "abc"}, None])
    async def test_unrecognized_is_nacked_without_call(self, dispatcher, daemon, queue, message, payload):
        with capture_logs() as logs:
            result = await dispatcher.handle(message, payload)

        assert result is Disposition.NACK
        for name in OPERATIONS:
            getattr(daemon, name).assert_not_awaited()
        queue.nack.assert_awaited_once_with(message)
        queue.reply.assert_not_awaited()
        queue.ack.assert_not_awaited()
        assert len(logs) == 1


class TestOutcomes:
    """Mapping daemon outcomes to queue actions."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", OPERATIONS)
    async def test_transport_failure_nacks(self, dispatcher, daemon, queue, message, operation):
        getattr(daemon, operation).side_effect = RPCError("connection refused")

        with capture_logs() as logs:
            result = await dispatcher.handle(message, PAYLOADS[operation])

        assert result is Disposition.NACK
        queue.nack.assert_awaited_once_with(message)
        queue.reply.assert_not_awaited()
        queue.ack.assert_not_awaited()
        assert len(levels(logs, "error")) == 1
        assert logs[0]["daemon"] == "127.0.0.1:11898"

    @pytest.mark.asyncio
    async def test_soft_failure_is_acked(self, dispatcher, daemon, queue, message):
        daemon.submit_block.return_value = {"status": "REJECTED", "error": "orphan"}

        with capture_logs() as logs:
            result = await dispatcher.handle(message, PAYLOADS["submit_block"])

        assert result is Disposition.ACK
        queue.reply.assert_awaited_once_with(message, {"status": "REJECTED", "error": "orphan"})
        queue.ack.assert_awaited_once_with(message)
        queue.nack.assert_not_awaited()
        assert len(levels(logs, "warning")) == 1
        assert logs[0]["error"] == "orphan"

    @pytest.mark.asyncio
    async def test_lowercase_ok_logs_info(self, dispatcher, daemon, message):
        daemon.send_raw_transaction.return_value = {"status": "ok"}

        with capture_logs() as logs:
            await dispatcher.handle(message, PAYLOADS["send_raw_transaction"])

        assert [entry["log_level"] for entry in logs] == ["info"]
        assert logs[0]["tx_hash"] == "deadbeef"

    @pytest.mark.asyncio
    async def test_reply_failure_nacks(self, dispatcher, queue, message):
        queue.reply.side_effect = ConnectionError("channel closed")

        with capture_logs() as logs:
            result = await dispatcher.handle(message, PAYLOADS["submit_block"])

        assert result is Disposition.NACK
        queue.nack.assert_awaited_once_with(message)
        queue.ack.assert_not_awaited()
        assert len(levels(logs, "error")) == 1


class TestScenarios:
    """End-to-end request scenarios."""

    @pytest.mark.asyncio
    async def test_relay_transaction_ok(self, dispatcher, daemon, queue, message):
        daemon.send_raw_transaction.return_value = {"status": "OK"}

        with capture_logs() as logs:
            await dispatcher.handle(message, {"rawTransaction": "01ab"})

        queue.reply.assert_awaited_once_with(message, {"status": "OK"})
        queue.ack.assert_awaited_once_with(message)
        queue.nack.assert_not_awaited()
        assert len(levels(logs, "info")) == 1
        assert len(logs) == 1

    @pytest.mark.asyncio
    async def test_submit_block_timeout(self, dispatcher, daemon, queue, message):
        daemon.submit_block.side_effect = Exception("timeout")

        with capture_logs() as logs:
            await dispatcher.handle(message, {"blockBlob": "ff00"})

        queue.nack.assert_awaited_once_with(message)
        queue.reply.assert_not_awaited()
        queue.ack.assert_not_awaited()
        errors = levels(logs, "error")
        assert len(errors) == 1
        assert "ff00" in str(errors[0])
        assert errors[0]["error"] == "timeout"

    @pytest.mark.asyncio
    async def test_random_outputs_default_mixin(self, dispatcher, daemon, message):
        await dispatcher.handle(message, {"randomOutputs": {"amounts": [100, 200]}})

        daemon.random_outputs.assert_awaited_once_with([100, 200], 0)

    @pytest.mark.asyncio
    async def test_block_template_busy(self, dispatcher, daemon, queue, message):
        daemon.block_template.return_value = {"status": "FAIL", "error": "busy"}

        with capture_logs() as logs:
            await dispatcher.handle(message, {"walletAddress": "abc", "reserveSize": 0})

        daemon.block_template.assert_awaited_once_with("abc", 0)
        queue.reply.assert_awaited_once_with(message, {"status": "FAIL", "error": "busy"})
        queue.ack.assert_awaited_once_with(message)
        queue.nack.assert_not_awaited()
        warnings = levels(logs, "warning")
        assert len(warnings) == 1
        assert "busy" in str(warnings[0])
