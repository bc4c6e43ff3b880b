import logging
import threading
from datetime import datetime
from typing import Any, Optional

from bitcoin_tui.models import BlockStat, ChainInfo, DashboardSnapshot, MempoolInfo, NetworkInfo, PeerRecord
from bitcoin_tui.services.rpc import RpcClient, value_or
from bitcoin_tui.services.state import Guarded, WakeSignal

logger = logging.getLogger(__name__)

RECENT_BLOCK_COUNT = 20
BLOCK_STAT_FIELDS = ["height", "txs", "total_size", "total_weight", "time"]
SLEEP_STEP = 0.1


def hashrate_from_difficulty(difficulty: float) -> float:
    # expected hashes per second at this difficulty with a 600 s block target
    return difficulty * 4294967296.0 / 600.0


def _now_string() -> str:
    return datetime.now().strftime("%H:%M:%S")


def parse_chain(bc: Any) -> ChainInfo:
    return ChainInfo(
        chain=value_or(bc, "chain", "—"),
        blocks=value_or(bc, "blocks", 0),
        headers=value_or(bc, "headers", 0),
        difficulty=value_or(bc, "difficulty", 0.0),
        progress=value_or(bc, "verificationprogress", 0.0),
        pruned=value_or(bc, "pruned", False),
        ibd=value_or(bc, "initialblockdownload", False),
        best_block_hash=value_or(bc, "bestblockhash", ""),
    )


def parse_network(net: Any) -> NetworkInfo:
    return NetworkInfo(
        connections=value_or(net, "connections", 0),
        connections_in=value_or(net, "connections_in", 0),
        connections_out=value_or(net, "connections_out", 0),
        subversion=value_or(net, "subversion", ""),
        protocol_version=value_or(net, "protocolversion", 0),
        network_active=value_or(net, "networkactive", True),
        relay_fee=value_or(net, "relayfee", 0.0),
    )


def parse_mempool(mp: Any) -> MempoolInfo:
    return MempoolInfo(
        size=value_or(mp, "size", 0),
        bytes=value_or(mp, "bytes", 0),
        usage=value_or(mp, "usage", 0),
        max_usage=value_or(mp, "maxmempool", 300_000_000),
        min_fee=value_or(mp, "mempoolminfee", 0.0),
        total_fee=value_or(mp, "total_fee", 0.0),
    )


def parse_peers(peer_info: Any) -> list[PeerRecord]:
    peers: list[PeerRecord] = []
    if not isinstance(peer_info, list):
        return peers
    for p in peer_info:
        if not isinstance(p, dict):
            continue
        ping = p.get("pingtime")
        peers.append(
            PeerRecord(
                id=value_or(p, "id", 0),
                addr=value_or(p, "addr", ""),
                network=value_or(p, "network", ""),
                subver=value_or(p, "subver", ""),
                inbound=value_or(p, "inbound", False),
                bytes_sent=value_or(p, "bytessent", 0),
                bytes_recv=value_or(p, "bytesrecv", 0),
                ping_ms=float(ping) * 1000.0 if isinstance(ping, (int, float)) else -1.0,
                version=value_or(p, "version", 0),
                synced_blocks=value_or(p, "synced_blocks", 0),
            )
        )
    return peers


def parse_block_stat(bs: Any) -> BlockStat:
    return BlockStat(
        height=value_or(bs, "height", 0),
        txs=value_or(bs, "txs", 0),
        total_size=value_or(bs, "total_size", 0),
        total_weight=value_or(bs, "total_weight", 0),
        time=value_or(bs, "time", 0),
    )


class Poller:
    """Periodic two-phase fetch cycle publishing into the snapshot store."""

    def __init__(
        self,
        rpc: RpcClient,
        store: Guarded[DashboardSnapshot],
        wake: WakeSignal,
        shutdown: threading.Event,
        interval: float = 5.0,
    ) -> None:
        self.rpc = rpc
        self.store = store
        self.wake = wake
        self.shutdown = shutdown
        self.interval = interval
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="poller", daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        while not self.shutdown.is_set():
            self._set_refreshing(True)
            self.refresh()
            self._set_refreshing(False)
            steps = max(1, int(round(self.interval / SLEEP_STEP)))
            for _ in range(steps):
                if self.shutdown.wait(SLEEP_STEP):
                    return

    def _set_refreshing(self, value: bool) -> None:
        def apply(snap: DashboardSnapshot) -> bool:
            if snap.refreshing == value:
                return False
            snap.refreshing = value
            return True

        if self.store.modify(apply):
            self.wake.notify()

    def refresh(self) -> None:
        cached_tip = self.store.read(lambda s: s.blocks_fetched_at)
        try:
            bc = self.rpc.call("getblockchaininfo")
            net = self.rpc.call("getnetworkinfo")
            mp = self.rpc.call("getmempoolinfo")
            pi = self.rpc.call("getpeerinfo")

            chain = parse_chain(bc)
            network = parse_network(net)
            mempool = parse_mempool(mp)
            peers = parse_peers(pi)
            hashps = hashrate_from_difficulty(chain.difficulty)
            stamp = _now_string()
        except Exception as exc:
            logger.warning("refresh failed: %s", exc)
            self._publish_failure(str(exc) or exc.__class__.__name__)
            return

        if self.shutdown.is_set():
            return

        def publish_core(snap: DashboardSnapshot) -> bool:
            snap.chain = chain
            snap.network = network
            snap.mempool = mempool
            snap.network_hashps = hashps
            snap.peers = peers
            snap.connected = True
            snap.error = ""
            snap.last_update = stamp
            return True

        self.store.modify(publish_core)
        self.wake.notify()

        new_tip = chain.blocks
        if new_tip == cached_tip or new_tip <= 0:
            return

        fresh = self.fetch_recent_blocks(new_tip)
        if self.shutdown.is_set():
            return
        self._publish_blocks(fresh, new_tip)
        self.wake.notify()

    def fetch_recent_blocks(self, tip: int) -> list[BlockStat]:
        blocks: list[BlockStat] = []
        for i in range(RECENT_BLOCK_COUNT):
            height = tip - i
            if height < 0 or self.shutdown.is_set():
                break
            try:
                bs = self.rpc.call("getblockstats", [height, BLOCK_STAT_FIELDS])
            except Exception as exc:
                logger.info("getblockstats %d failed, keeping %d blocks: %s", height, len(blocks), exc)
                break
            blocks.append(parse_block_stat(bs))
        return blocks

    def _publish_blocks(self, fresh: list[BlockStat], tip: int) -> None:
        def apply(snap: DashboardSnapshot) -> bool:
            if snap.recent_blocks and fresh and snap.recent_blocks != fresh:
                snap.anim_old = snap.recent_blocks
                snap.anim_frame = 0
                snap.anim_active = True
            snap.recent_blocks = fresh
            snap.blocks_fetched_at = tip
            return True

        self.store.modify(apply)
        logger.debug("published %d recent blocks at tip %d", len(fresh), tip)

    def _publish_failure(self, message: str) -> None:
        def apply(snap: DashboardSnapshot) -> bool:
            snap.connected = False
            snap.error = message
            return True

        self.store.modify(apply)
        self.wake.notify()
