import threading
import time

import pytest

from conftest import FakeRpc, node_responses
from bitcoin_tui.models import LookupKind, View
from bitcoin_tui.services.monitor import NodeMonitor
from bitcoin_tui.services.rpc import RpcConfig


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def monitor():
    rpc = FakeRpc(node_responses(
        getblockhash=lambda params: "ab" * 32,
        getblock=lambda params: {"hash": params[0], "height": 884000, "tx": []},
    ))
    monitor = NodeMonitor(RpcConfig(), refresh_interval=0.1, poll_rpc=rpc, search_rpc=rpc)
    yield monitor
    monitor.shutdown()


class TestNodeMonitor:
    def test_start_populates_snapshot(self, monitor):
        monitor.start()
        assert wait_for(lambda: len(monitor.snapshot().recent_blocks) == 20)
        assert monitor.snapshot().connected is True

    def test_top_level_search_switches_to_mempool_view(self, monitor):
        assert monitor.active_view is View.DASHBOARD
        assert monitor.trigger_search("884000", reset_context=True)
        monitor.lookup.join(2.0)
        assert monitor.active_view is View.MEMPOOL
        assert monitor.lookup_view().result.kind is LookupKind.BLOCK

    def test_drill_down_keeps_view(self, monitor):
        monitor.set_active_view(View.PEERS)
        monitor.trigger_search("884000", reset_context=False)
        monitor.lookup.join(2.0)
        assert monitor.active_view is View.PEERS

    def test_set_active_view_wakes_once(self, monitor):
        monitor.wake.consume()
        monitor.set_active_view(View.NETWORK)
        assert monitor.wake.consume() is True
        monitor.set_active_view(View.NETWORK)
        assert monitor.wake.consume() is False

    def test_shutdown_joins_workers_and_blocks_searches(self, monitor):
        monitor.start()
        started = time.monotonic()
        monitor.shutdown()
        assert time.monotonic() - started < 1.5
        assert not monitor.poller._thread.is_alive()
        assert not monitor.animator._thread.is_alive()
        assert monitor.trigger_search("1", reset_context=True) is False

    def test_start_is_idempotent(self, monitor):
        monitor.start()
        thread = monitor.poller._thread
        monitor.start()
        assert monitor.poller._thread is thread


class TestSearchWhileBusy:
    def test_dropped_search_keeps_active_view(self):
        gate = threading.Event()
        rpc = FakeRpc(node_responses(
            getblockhash=lambda params: gate.wait(2.0) and "ab" * 32,
            getblock=lambda params: {"hash": params[0], "height": 1, "tx": []},
        ))
        monitor = NodeMonitor(RpcConfig(), poll_rpc=rpc, search_rpc=rpc)
        try:
            assert monitor.trigger_search("1", reset_context=True)
            monitor.set_active_view(View.PEERS)
            monitor.wake.consume()
            before = monitor.lookup_view()

            assert monitor.trigger_search("2", reset_context=True) is False
            assert monitor.active_view is View.PEERS
            assert monitor.lookup_view() == before
            assert monitor.wake.consume() is False
        finally:
            gate.set()
            monitor.shutdown()
