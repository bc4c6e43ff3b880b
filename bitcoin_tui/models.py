from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class View(str, Enum):
    DASHBOARD = "dashboard"
    MEMPOOL = "mempool"
    NETWORK = "network"
    PEERS = "peers"


@dataclass
class ChainInfo:
    chain: str = "—"
    blocks: int = 0
    headers: int = 0
    difficulty: float = 0.0
    progress: float = 0.0
    pruned: bool = False
    ibd: bool = False
    best_block_hash: str = ""


@dataclass
class NetworkInfo:
    connections: int = 0
    connections_in: int = 0
    connections_out: int = 0
    subversion: str = ""
    protocol_version: int = 0
    network_active: bool = True
    relay_fee: float = 0.0  # BTC/kvB


@dataclass
class MempoolInfo:
    size: int = 0
    bytes: int = 0
    usage: int = 0
    max_usage: int = 300_000_000
    min_fee: float = 0.0  # BTC/kvB
    total_fee: float = 0.0


@dataclass
class PeerRecord:
    id: int = 0
    addr: str = ""
    network: str = ""
    subver: str = ""
    inbound: bool = False
    bytes_sent: int = 0
    bytes_recv: int = 0
    ping_ms: float = -1.0
    version: int = 0
    synced_blocks: int = 0


@dataclass
class BlockStat:
    height: int = 0
    txs: int = 0
    total_size: int = 0
    total_weight: int = 0
    time: int = 0


@dataclass
class DashboardSnapshot:
    chain: ChainInfo = field(default_factory=ChainInfo)
    network: NetworkInfo = field(default_factory=NetworkInfo)
    mempool: MempoolInfo = field(default_factory=MempoolInfo)
    network_hashps: float = 0.0
    peers: list[PeerRecord] = field(default_factory=list)

    # index 0 is the tip
    recent_blocks: list[BlockStat] = field(default_factory=list)
    blocks_fetched_at: int = -1

    anim_active: bool = False
    anim_frame: int = 0
    anim_old: list[BlockStat] = field(default_factory=list)

    connected: bool = False
    refreshing: bool = False
    error: str = ""
    last_update: str = ""


class LookupKind(str, Enum):
    SEARCHING = "searching"
    BLOCK = "block"
    MEMPOOL = "mempool"
    CONFIRMED = "confirmed"
    ERROR = "error"


class Overlay(str, Enum):
    CLOSED = "closed"
    INPUTS = "inputs"
    OUTPUTS = "outputs"


@dataclass
class TxInput:
    txid: str = ""
    vout: int = 0
    is_coinbase: bool = False


@dataclass
class TxOutput:
    value: float = 0.0
    address: str = ""
    type: str = ""


@dataclass
class BlockDetail:
    hash: str = ""
    height: int = 0
    time: int = 0
    tx_count: int = 0
    size: int = 0
    weight: int = 0
    difficulty: float = 0.0
    miner: str = "—"
    confirmations: int = 0


@dataclass
class MempoolEntry:
    fee: float = 0.0  # BTC
    fee_rate: float = 0.0  # sat/vB
    vsize: int = 0
    weight: int = 0
    ancestors: int = 0
    descendants: int = 0
    entry_time: int = 0


@dataclass
class ConfirmedTx:
    confirmations: int = 0
    block_hash: str = ""
    block_height: int = -1
    block_time: int = 0
    vsize: int = 0
    weight: int = 0
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    total_output: float = 0.0


@dataclass
class LookupResult:
    query: str
    kind: LookupKind = LookupKind.SEARCHING
    error: str = ""
    block: BlockDetail | None = None
    mempool: MempoolEntry | None = None
    tx: ConfirmedTx | None = None

    # Row cursor over the confirmed view: -1 none, 0 block row, then io rows.
    selected: int = -1
    overlay: Overlay = Overlay.CLOSED
    input_sel: int = -1
    output_sel: int = -1

    @property
    def is_confirmed(self) -> bool:
        return self.kind is LookupKind.CONFIRMED and self.tx is not None

    @property
    def inputs_open(self) -> bool:
        return self.is_confirmed and self.overlay is Overlay.INPUTS

    @property
    def outputs_open(self) -> bool:
        return self.is_confirmed and self.overlay is Overlay.OUTPUTS

    def inputs_row(self) -> int:
        if not self.is_confirmed or not self.tx.inputs:
            return -1
        return 1

    def outputs_row(self) -> int:
        if not self.is_confirmed or not self.tx.outputs:
            return -1
        return 2 if self.tx.inputs else 1

    def row_count(self) -> int:
        """Number of io rows; the block row (index 0) is not counted."""
        if not self.is_confirmed:
            return 0
        return int(bool(self.tx.inputs)) + int(bool(self.tx.outputs))


@dataclass
class LookupView:
    result: LookupResult | None = None
    depth: int = 0
    in_flight: bool = False
