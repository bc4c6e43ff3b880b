"""Transaction and block lookups.

``perform_lookup`` is a pure function of an RPC client, a query and the tip
height. ``LookupCoordinator`` owns the displayed result, the back stack and
the single search worker thread.
"""
import logging
import threading
from typing import Any, Callable, Optional

from bitcoin_tui.errors import LookupNotFound
from bitcoin_tui.models import (
    BlockDetail,
    ConfirmedTx,
    LookupKind,
    LookupResult,
    LookupView,
    MempoolEntry,
    Overlay,
    TxInput,
    TxOutput,
)
from bitcoin_tui.services.rpc import RpcClient, value_or
from bitcoin_tui.services.state import Guarded, WakeSignal

logger = logging.getLogger(__name__)

MINER_TAG_MAX = 24


def is_height_query(query: str) -> bool:
    # A 64-digit all-numeric txid would also match; such a query is treated
    # as a height and fails at getblockhash.
    return bool(query) and query.isascii() and query.isdigit()


def is_txid(query: str) -> bool:
    return len(query) == 64 and all(c in "0123456789abcdefABCDEF" for c in query)


def is_searchable(query: str) -> bool:
    """What the search box accepts: a 64-hex txid/hash or a height of up to 8 digits."""
    return is_txid(query) or (is_height_query(query) and len(query) <= 8)


def extract_miner(coinbase_hex: str) -> str:
    """Longest printable ASCII run (4+ chars, no '/') in a coinbase scriptSig."""
    best = ""
    run = ""
    try:
        raw = bytes.fromhex(coinbase_hex)
    except ValueError:
        raw = b""
    for b in raw:
        if 0x20 <= b < 0x7F and b != ord("/"):
            run += chr(b)
            continue
        if len(run) >= 4 and len(run) > len(best):
            best = run
        run = ""
    if len(run) >= 4 and len(run) > len(best):
        best = run
    best = best[:MINER_TAG_MAX]
    return best or "—"


def parse_mempool_entry(entry: Any) -> MempoolEntry:
    fees = entry.get("fees") if isinstance(entry, dict) else None
    if isinstance(fees, dict):
        fee = value_or(fees, "base", 0.0)
    else:
        fee = value_or(entry, "fee", 0.0)
    vsize = value_or(entry, "vsize", 0)
    return MempoolEntry(
        fee=fee,
        fee_rate=fee * 1e8 / vsize if vsize > 0 else 0.0,
        vsize=vsize,
        weight=value_or(entry, "weight", 0),
        ancestors=value_or(entry, "ancestorcount", 0),
        descendants=value_or(entry, "descendantcount", 0),
        entry_time=value_or(entry, "time", 0),
    )


def parse_confirmed_tx(tx: Any, tip: int) -> ConfirmedTx:
    confirmations = value_or(tx, "confirmations", 0)
    result = ConfirmedTx(
        confirmations=confirmations,
        block_hash=value_or(tx, "blockhash", ""),
        block_time=value_or(tx, "blocktime", 0),
        vsize=value_or(tx, "vsize", 0),
        weight=value_or(tx, "weight", 0),
    )
    if tip > 0 and confirmations > 0:
        result.block_height = tip - confirmations + 1

    vin = tx.get("vin") if isinstance(tx, dict) else None
    for inp in vin if isinstance(vin, list) else []:
        if isinstance(inp, dict) and "coinbase" in inp:
            result.inputs.append(TxInput(is_coinbase=True))
        else:
            result.inputs.append(TxInput(txid=value_or(inp, "txid", ""), vout=value_or(inp, "vout", 0)))

    vout = tx.get("vout") if isinstance(tx, dict) else None
    for out in vout if isinstance(vout, list) else []:
        spk = out.get("scriptPubKey") if isinstance(out, dict) else None
        output = TxOutput(
            value=value_or(out, "value", 0.0),
            address=value_or(spk, "address", ""),
            type=value_or(spk, "type", ""),
        )
        result.outputs.append(output)
    result.total_output = sum(o.value for o in result.outputs)
    return result


def fetch_block(rpc: RpcClient, block_hash: str) -> BlockDetail:
    blk = rpc.call("getblock", [block_hash, 1])
    detail = BlockDetail(
        hash=value_or(blk, "hash", block_hash),
        height=value_or(blk, "height", 0),
        time=value_or(blk, "time", 0),
        tx_count=value_or(blk, "nTx", 0),
        size=value_or(blk, "size", 0),
        weight=value_or(blk, "weight", 0),
        difficulty=value_or(blk, "difficulty", 0.0),
        confirmations=value_or(blk, "confirmations", 0),
    )
    txs = blk.get("tx") if isinstance(blk, dict) else None
    if isinstance(txs, list) and txs and isinstance(txs[0], str):
        try:
            coinbase = rpc.call("getrawtransaction", [txs[0], True, detail.hash])
            vin = coinbase.get("vin") if isinstance(coinbase, dict) else None
            if isinstance(vin, list) and vin:
                detail.miner = extract_miner(value_or(vin[0], "coinbase", ""))
        except Exception as exc:
            logger.debug("coinbase fetch for %s failed: %s", detail.hash, exc)
    return detail


def perform_lookup(rpc: RpcClient, query: str, tip: int) -> LookupResult:
    result = LookupResult(query=query)
    try:
        if is_height_query(query):
            block_hash = rpc.call("getblockhash", [int(query)])
            result.block = fetch_block(rpc, str(block_hash))
            result.kind = LookupKind.BLOCK
            return result

        attempts: list[tuple[LookupKind, Callable[[], Any]]] = [
            (LookupKind.MEMPOOL, lambda: parse_mempool_entry(rpc.call("getmempoolentry", [query]))),
            (LookupKind.CONFIRMED, lambda: parse_confirmed_tx(rpc.call("getrawtransaction", [query, True]), tip)),
            (LookupKind.BLOCK, lambda: fetch_block(rpc, query)),
        ]
        last_error: Optional[Exception] = None
        for kind, attempt in attempts:
            try:
                found = attempt()
            except Exception as exc:
                logger.debug("lookup %s as %s failed: %s", query, kind.value, exc)
                last_error = exc
                continue
            result.kind = kind
            if kind is LookupKind.MEMPOOL:
                result.mempool = found
            elif kind is LookupKind.CONFIRMED:
                result.tx = found
            else:
                result.block = found
            return result
        raise LookupNotFound(str(last_error) if last_error else f"{query} not found")
    except Exception as exc:
        logger.info("lookup %s failed: %s", query, exc)
        result.kind = LookupKind.ERROR
        result.error = str(exc) or exc.__class__.__name__
        return result


class _LookupState:
    def __init__(self) -> None:
        self.current: Optional[LookupResult] = None
        self.history: list[LookupResult] = []


class LookupCoordinator:
    def __init__(
        self,
        rpc: RpcClient,
        wake: WakeSignal,
        shutdown: threading.Event,
        tip: Callable[[], int],
    ) -> None:
        self.rpc = rpc
        self.wake = wake
        self.shutdown = shutdown
        self._tip = tip
        self._state: Guarded[_LookupState] = Guarded(_LookupState())
        self._in_flight = threading.Lock()
        self._worker: Optional[threading.Thread] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def view(self) -> LookupView:
        state = self._state.read()
        return LookupView(result=state.current, depth=len(state.history), in_flight=self.in_flight)

    def current(self) -> Optional[LookupResult]:
        return self.view().result

    def search(self, query: str, reset_context: bool) -> bool:
        """Start a lookup unless one is already running. Returns True if started."""
        if not self._in_flight.acquire(blocking=False):
            logger.debug("search %s dropped, lookup in flight", query)
            return False
        try:
            if self._worker is not None:
                self._worker.join()

            def begin(state: _LookupState) -> bool:
                if reset_context:
                    state.history.clear()
                elif state.current is not None:
                    state.history.append(state.current)
                state.current = LookupResult(query=query)
                return True

            self._state.modify(begin)
            self.wake.notify()

            tip = self._tip()
            self._worker = threading.Thread(
                target=self._run, args=(query, tip), name="lookup", daemon=True
            )
            self._worker.start()
        except BaseException:
            self._in_flight.release()
            raise
        return True

    def _run(self, query: str, tip: int) -> None:
        try:
            result = perform_lookup(self.rpc, query, tip)
            if self.shutdown.is_set():
                return

            def publish(state: _LookupState) -> bool:
                current = state.current
                if current is None or current.kind is not LookupKind.SEARCHING or current.query != query:
                    return False
                state.current = result
                return True

            if self._state.modify(publish):
                self.wake.notify()
        finally:
            self._in_flight.release()

    def join(self, timeout: Optional[float] = None) -> None:
        worker = self._worker
        if worker is not None:
            worker.join(timeout)

    def navigate(self, delta: int) -> bool:
        def apply(state: _LookupState) -> bool:
            res = state.current
            if res is None or not res.is_confirmed:
                return False
            if res.overlay is Overlay.INPUTS:
                n = len(res.tx.inputs)
                new = max(-1, min(res.input_sel + delta, n - 1))
                changed = new != res.input_sel
                res.input_sel = new
                return changed
            if res.overlay is Overlay.OUTPUTS:
                n = len(res.tx.outputs)
                new = max(-1, min(res.output_sel + delta, n - 1))
                changed = new != res.output_sel
                res.output_sel = new
                return changed
            new = max(-1, min(res.selected + delta, res.row_count()))
            changed = new != res.selected
            res.selected = new
            return changed

        if self._state.modify(apply):
            self.wake.notify()
            return True
        return False

    def open_overlay(self, kind: Overlay) -> bool:
        def apply(state: _LookupState) -> bool:
            res = state.current
            if res is None or not res.is_confirmed:
                return False
            if kind is Overlay.INPUTS and res.tx.inputs:
                res.overlay = Overlay.INPUTS
                res.input_sel = -1
                return True
            if kind is Overlay.OUTPUTS and res.tx.outputs:
                res.overlay = Overlay.OUTPUTS
                res.output_sel = -1
                return True
            if kind is Overlay.CLOSED and res.overlay is not Overlay.CLOSED:
                res.overlay = Overlay.CLOSED
                return True
            return False

        if self._state.modify(apply):
            self.wake.notify()
            return True
        return False

    def close_overlay(self) -> bool:
        return self.open_overlay(Overlay.CLOSED)

    def activate(self) -> bool:
        """Enter on the current result: open an overlay or drill down."""
        res = self.current()
        if res is None or not res.is_confirmed:
            return False
        if res.overlay is Overlay.INPUTS:
            sel = res.input_sel
            if 0 <= sel < len(res.tx.inputs) and not res.tx.inputs[sel].is_coinbase:
                return self.search(res.tx.inputs[sel].txid, reset_context=False)
            return False
        if res.overlay is Overlay.OUTPUTS:
            return False
        if res.selected >= 0 and res.selected == res.inputs_row():
            return self.open_overlay(Overlay.INPUTS)
        if res.selected >= 0 and res.selected == res.outputs_row():
            return self.open_overlay(Overlay.OUTPUTS)
        if res.tx.block_hash:
            return self.search(res.tx.block_hash, reset_context=False)
        return False

    def dismiss(self) -> bool:
        """Go back one level. False means there is nothing left to dismiss."""

        def apply(state: _LookupState) -> bool:
            if state.history:
                state.current = state.history.pop()
                return True
            if state.current is not None:
                state.current = None
                return True
            return False

        if self._state.modify(apply):
            self.wake.notify()
            return True
        return False
