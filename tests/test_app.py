import asyncio

import pytest

from conftest import FakeRpc, node_responses
from bitcoin_tui.app import BitcoinTuiApp
from bitcoin_tui.config import AppConfig
from bitcoin_tui.errors import ProtocolError
from bitcoin_tui.models import LookupKind, Overlay
from bitcoin_tui.services.monitor import NodeMonitor
from bitcoin_tui.services.rpc import RpcConfig

TXID = "a1" * 32


def confirmed_tx(params):
    return {
        "txid": params[0],
        "vsize": 141,
        "blockhash": "00" * 32,
        "confirmations": 3,
        "vin": [{"txid": "b2" * 32, "vout": 0}],
        "vout": [{"value": 0.5, "scriptPubKey": {"type": "witness_v0_keyhash", "address": "bc1qexample"}}],
    }


async def press(pilot, key):
    await pilot.press(key)
    await pilot.pause()


@pytest.fixture
def monitor():
    rpc = FakeRpc(node_responses(
        getmempoolentry=ProtocolError("Transaction not in mempool", -5),
        getrawtransaction=confirmed_tx,
    ))
    monitor = NodeMonitor(RpcConfig(), refresh_interval=0.1, poll_rpc=rpc, search_rpc=rpc)
    yield monitor
    monitor.shutdown()


def test_escape_unwinds_one_level_per_press(monitor):
    app = BitcoinTuiApp(AppConfig(), monitor)
    exits = []

    async def scenario():
        async with app.run_test() as pilot:
            assert monitor.trigger_search(TXID, reset_context=True)
            monitor.lookup.join(2.0)
            assert monitor.lookup_view().result.kind is LookupKind.CONFIRMED
            assert monitor.open_overlay(Overlay.INPUTS)
            await pilot.pause()

            await press(pilot, "slash")
            assert app.search_input.display

            await press(pilot, "escape")
            assert not app.search_input.display
            assert monitor.lookup_view().result.overlay is Overlay.INPUTS

            await press(pilot, "escape")
            result = monitor.lookup_view().result
            assert result is not None
            assert result.overlay is Overlay.CLOSED

            await press(pilot, "escape")
            assert monitor.lookup_view().result is None
            assert exits == []

            app.exit = lambda *args, **kwargs: exits.append(True)
            try:
                await press(pilot, "escape")
            finally:
                del app.exit
            assert exits == [True]

    asyncio.run(scenario())


def test_search_box_submits_top_level_search(monitor):
    app = BitcoinTuiApp(AppConfig(), monitor)

    async def scenario():
        async with app.run_test() as pilot:
            await press(pilot, "slash")
            app.search_input.value = TXID
            await press(pilot, "enter")
            monitor.lookup.join(2.0)
            await pilot.pause()
            assert not app.search_input.display
            assert monitor.lookup_view().result.query == TXID
            assert monitor.active_view.value == "mempool"

    asyncio.run(scenario())
