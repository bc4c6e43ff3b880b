import threading
import time

import pytest

from conftest import FakeRpc, chain_info, node_responses
from bitcoin_tui.errors import TransportError
from bitcoin_tui.models import BlockStat
from bitcoin_tui.services.poller import Poller, hashrate_from_difficulty, parse_peers


class TestPollerRefresh:
    @pytest.fixture
    def rpc(self):
        return FakeRpc(node_responses())

    @pytest.fixture
    def poller(self, rpc, store, wake, shutdown):
        return Poller(rpc, store, wake, shutdown, interval=0.1)

    def test_initial_snapshot_is_zeroed(self, store):
        snap = store.read()
        assert snap.connected is False
        assert snap.chain.blocks == 0
        assert snap.network_hashps == 0.0
        assert snap.recent_blocks == []

    def test_phase_one_publishes_core_metrics(self, poller, store, rpc):
        poller.refresh()
        snap = store.read()
        assert snap.connected is True
        assert snap.error == ""
        assert snap.last_update != ""
        assert snap.chain.blocks == 884231
        assert snap.network.connections_out == 8
        assert snap.mempool.size == 1500
        assert [p.id for p in snap.peers] == [1, 7]
        assert snap.peers[0].ping_ms == pytest.approx(50.0)
        assert snap.peers[1].ping_ms == -1.0
        assert rpc.methods()[:4] == ["getblockchaininfo", "getnetworkinfo", "getmempoolinfo", "getpeerinfo"]

    def test_hash_rate_derived_from_difficulty(self, poller, store):
        poller.refresh()
        assert store.read().network_hashps == pytest.approx(1.0e14 * 2**32 / 600)
        assert hashrate_from_difficulty(600.0) == pytest.approx(2**32)

    def test_phase_two_fetches_twenty_blocks_newest_first(self, poller, store):
        poller.refresh()
        snap = store.read()
        assert [b.height for b in snap.recent_blocks] == list(range(884231, 884211, -1))
        assert snap.blocks_fetched_at == 884231
        assert snap.anim_active is False

    def test_phase_two_skipped_when_tip_unchanged(self, poller, rpc):
        poller.refresh()
        first = rpc.methods().count("getblockstats")
        poller.refresh()
        assert rpc.methods().count("getblockstats") == first

    def test_phase_two_skipped_for_zero_tip(self, store, wake, shutdown):
        rpc = FakeRpc(node_responses(blocks=0))
        Poller(rpc, store, wake, shutdown).refresh()
        assert "getblockstats" not in rpc.methods()
        assert store.read().connected is True

    def test_low_tip_never_requests_negative_heights(self, store, wake, shutdown):
        rpc = FakeRpc(node_responses(blocks=3))
        Poller(rpc, store, wake, shutdown).refresh()
        assert [b.height for b in store.read().recent_blocks] == [3, 2, 1, 0]

    def test_block_stat_error_keeps_partial_list(self, store, wake, shutdown):
        def stats(params):
            if params[0] < 884229:
                raise TransportError("timed out")
            return {"height": params[0], "txs": 1}

        rpc = FakeRpc(node_responses(getblockstats=stats))
        Poller(rpc, store, wake, shutdown).refresh()
        snap = store.read()
        assert snap.connected is True
        assert [b.height for b in snap.recent_blocks] == [884231, 884230, 884229]

    def test_failed_cycle_keeps_previous_snapshot(self, poller, rpc, store):
        poller.refresh()
        before = store.read()

        rpc.responses["getmempoolinfo"] = TransportError("connect to 127.0.0.1:8332 failed")
        poller.refresh()
        after = store.read()

        assert after.connected is False
        assert after.error == "connect to 127.0.0.1:8332 failed"
        after.connected = True
        after.error = ""
        assert after == before

    def test_recovery_clears_error(self, poller, rpc, store):
        rpc.responses["getblockchaininfo"] = TransportError("down")
        poller.refresh()
        assert store.read().error == "down"
        rpc.responses["getblockchaininfo"] = chain_info()
        poller.refresh()
        snap = store.read()
        assert snap.connected is True
        assert snap.error == ""

    def test_new_tip_arms_animation(self, poller, rpc, store):
        poller.refresh()
        old = store.read().recent_blocks

        rpc.responses["getblockchaininfo"] = chain_info(884232)
        poller.refresh()
        snap = store.read()
        assert snap.anim_active is True
        assert snap.anim_frame == 0
        assert snap.anim_old == old
        assert snap.recent_blocks[0].height == 884232

    def test_identical_block_list_does_not_animate(self, store, wake, shutdown):
        rpc = FakeRpc(node_responses(getblockstats=lambda params: {"height": 5}))
        poller = Poller(rpc, store, wake, shutdown)
        poller.refresh()
        store.modify(lambda s: setattr(s, "blocks_fetched_at", -1) or True)
        poller.refresh()
        assert store.read().anim_active is False

    def test_wake_after_each_phase(self, store, shutdown):
        rpc = FakeRpc(node_responses())
        notified = []

        class CountingWake:
            def notify(self):
                notified.append(store.read(lambda s: (s.connected, len(s.recent_blocks))))

        Poller(rpc, store, CountingWake(), shutdown).refresh()
        # core metrics are visible before any block stats arrive
        assert notified == [(True, 0), (True, 20)]

    def test_failure_signals_wake(self, store, wake, shutdown):
        rpc = FakeRpc(node_responses(getnetworkinfo=TransportError("HTTP 503")))
        Poller(rpc, store, wake, shutdown).refresh()
        assert wake.consume() is True

    def test_result_discarded_after_shutdown(self, store, wake, shutdown):
        def slow_peers(params):
            shutdown.set()
            return []

        rpc = FakeRpc(node_responses(getpeerinfo=slow_peers))
        Poller(rpc, store, wake, shutdown).refresh()
        assert store.read().connected is False
        assert "getblockstats" not in rpc.methods()


class TestPollerLoop:
    def test_loop_stops_promptly_on_shutdown(self, store, wake, shutdown):
        rpc = FakeRpc(node_responses())
        poller = Poller(rpc, store, wake, shutdown, interval=30)
        poller.start()
        assert wake.wait(2.0)
        deadline = time.monotonic() + 2.0
        while store.read(lambda s: s.refreshing) and time.monotonic() < deadline:
            time.sleep(0.01)

        started = time.monotonic()
        shutdown.set()
        poller.join(2.0)
        assert time.monotonic() - started < 1.0
        assert store.read().connected is True

    def test_loop_repeats_cycles(self, store, wake, shutdown):
        cycles = threading.Semaphore(0)

        def info(params):
            cycles.release()
            return chain_info()

        rpc = FakeRpc(node_responses(getblockchaininfo=info))
        poller = Poller(rpc, store, wake, shutdown, interval=0.1)
        poller.start()
        try:
            assert cycles.acquire(timeout=2.0)
            assert cycles.acquire(timeout=2.0)
        finally:
            shutdown.set()
            poller.join(2.0)
        assert store.read().refreshing is False


def test_parse_peers_ignores_garbage():
    assert parse_peers(None) == []
    assert parse_peers(["x", {"id": 3}])[0].id == 3


def test_block_stat_defaults():
    assert BlockStat() == BlockStat(height=0, txs=0, total_size=0, total_weight=0, time=0)
