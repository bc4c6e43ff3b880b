import logging
import sys
import time

from rich.console import Group, RenderableType
from rich.table import Table
from rich.text import Text
from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, VerticalScroll
from textual.message import Message
from textual.widgets import Footer, Input, Static, TabbedContent, TabPane

from bitcoin_tui import __version__
from bitcoin_tui.config import AppConfig, load_config
from bitcoin_tui.errors import ConfigError
from bitcoin_tui.format import (
    abbreviate,
    fmt_age,
    fmt_btc,
    fmt_bytes,
    fmt_difficulty,
    fmt_hashrate,
    fmt_height,
    fmt_int,
    fmt_satsvb,
    fmt_time_ago,
    fmt_timestamp,
)
from bitcoin_tui.logging_config import setup_logging
from bitcoin_tui.models import DashboardSnapshot, LookupKind, LookupResult, LookupView, Overlay, View
from bitcoin_tui.services.animator import TOTAL_FRAMES, slide_offset
from bitcoin_tui.services.lookup import is_searchable
from bitcoin_tui.services.monitor import NodeMonitor

logger = logging.getLogger(__name__)

VIEW_ORDER = [View.DASHBOARD, View.MEMPOOL, View.NETWORK, View.PEERS]
VIEW_LABELS = {
    View.DASHBOARD: "Dashboard",
    View.MEMPOOL: "Mempool",
    View.NETWORK: "Network",
    View.PEERS: "Peers",
}

BAR_HEIGHT = 6
COL_WIDTH = 10
MAX_BLOCK_WEIGHT = 4_000_000
IO_WINDOW = 10


class Redraw(Message):
    """Posted from background threads when the wake signal becomes pending."""


def label_value(label: str, value: str, style: str = "bold") -> Text:
    return Text.assemble((f"{label:<13}: ", "grey50"), (value, style))


def dashboard_lines(s: DashboardSnapshot) -> tuple[list[Text], list[Text], list[Text]]:
    chain = s.chain
    chain_name = "mainnet" if chain.chain == "main" else chain.chain
    sync_pct = int(chain.progress * 100)
    blockchain = [
        label_value("Chain", chain_name, "bold green" if chain.chain == "main" else "bold yellow"),
        label_value("Height", fmt_height(chain.blocks)),
        label_value("Headers", fmt_height(chain.headers)),
        label_value("Difficulty", fmt_difficulty(chain.difficulty)),
        label_value("Hash Rate", fmt_hashrate(s.network_hashps)),
        label_value("Sync", f"{sync_pct}%", "bold green" if chain.progress >= 1.0 else "bold yellow"),
        label_value("IBD", "yes" if chain.ibd else "no", "bold yellow" if chain.ibd else "bold green"),
        label_value("Pruned", "yes" if chain.pruned else "no"),
    ]
    net = s.network
    network = [
        label_value("Active", "yes" if net.network_active else "no", "bold green" if net.network_active else "bold red"),
        label_value("Connections", str(net.connections)),
        label_value("  In", str(net.connections_in)),
        label_value("  Out", str(net.connections_out)),
        label_value("Client", net.subversion),
        label_value("Protocol", str(net.protocol_version)),
        label_value("Relay fee", fmt_satsvb(net.relay_fee)),
    ]
    return blockchain, network, mempool_lines(s)


def mempool_lines(s: DashboardSnapshot) -> list[Text]:
    mp = s.mempool
    usage = mp.usage / mp.max_usage if mp.max_usage > 0 else 0.0
    usage_style = "bold red" if usage > 0.8 else "bold yellow" if usage > 0.5 else "bold cyan"
    return [
        label_value("Transactions", fmt_int(mp.size)),
        label_value("Virtual size", fmt_bytes(mp.bytes)),
        label_value("Total fees", fmt_btc(mp.total_fee, 4)),
        label_value("Min fee", fmt_satsvb(mp.min_fee)),
        label_value("Memory", f"{fmt_bytes(mp.usage)} / {fmt_bytes(mp.max_usage)} ({usage:.0%})", usage_style),
    ]


def network_lines(s: DashboardSnapshot) -> list[Text]:
    net = s.network
    return [
        label_value("Network", "active" if net.network_active else "inactive",
                    "bold green" if net.network_active else "bold red"),
        label_value("Total peers", str(net.connections)),
        label_value("Inbound", str(net.connections_in)),
        label_value("Outbound", str(net.connections_out)),
        Text(""),
        label_value("Client", net.subversion),
        label_value("Protocol", str(net.protocol_version)),
        label_value("Relay fee", fmt_satsvb(net.relay_fee)),
    ]


def peers_table(s: DashboardSnapshot) -> RenderableType:
    if not s.peers:
        return Text("No peers connected.", style="grey50", justify="center")
    table = Table(expand=True, header_style="bold gold1", box=None, pad_edge=False)
    table.add_column("ID", width=5)
    table.add_column("Address", ratio=1, no_wrap=True)
    table.add_column("Net", width=5)
    table.add_column("I/O", width=4)
    table.add_column("Ping ms", justify="right", width=8)
    table.add_column("Recv", justify="right", width=10)
    table.add_column("Sent", justify="right", width=10)
    table.add_column("Height", justify="right", width=9)
    for p in s.peers:
        table.add_row(
            str(p.id),
            p.addr,
            p.network[:4] if p.network else "?",
            Text("in", style="cyan") if p.inbound else Text("out", style="green"),
            f"{p.ping_ms:.1f}" if p.ping_ms >= 0 else "—",
            fmt_bytes(p.bytes_recv),
            fmt_bytes(p.bytes_sent),
            fmt_height(p.synced_blocks),
        )
    return table


def render_blocks(s: DashboardSnapshot, width: int, total_frames: int = TOTAL_FRAMES) -> Text:
    if not s.recent_blocks:
        return Text("Fetching…", style="grey50")

    sliding = s.anim_active and bool(s.anim_old)
    # while sliding the old list moves right and its last block drops off
    source = s.anim_old if sliding else s.recent_blocks
    max_cols = max(1, (width - 4) // (COL_WIDTH + 1))
    count = min(max(0, len(source) - 1) if sliding else len(source), max_cols)
    pad = slide_offset(s.anim_frame, total_frames, COL_WIDTH + 1) if sliding else 0

    rows: list[Text] = [Text(" " * pad) for _ in range(BAR_HEIGHT + 4)]
    now = time.time()
    for i, block in enumerate(source[:count]):
        fill = min(1.0, block.total_weight / MAX_BLOCK_WEIGHT) if block.total_weight > 0 else 0.0
        bar_style = "dark_orange" if fill > 0.9 else "yellow" if fill > 0.7 else "green"
        filled = int(round(fill * BAR_HEIGHT))
        labels = [
            (fmt_height(block.height), "bold"),
            (f"{fmt_int(block.txs)} tx", "grey50"),
            (fmt_bytes(block.total_size), "grey50"),
            (fmt_time_ago(block.time, now) if block.time > 0 else "", "grey50"),
        ]
        for r in range(BAR_HEIGHT):
            if i:
                rows[r].append(" ")
            if r >= BAR_HEIGHT - filled:
                rows[r].append("█" * COL_WIDTH, style=bar_style)
            else:
                rows[r].append("░" * COL_WIDTH, style="grey30")
        for offset, (label, style) in enumerate(labels):
            row = rows[BAR_HEIGHT + offset]
            if i:
                row.append(" ")
            row.append(label[:COL_WIDTH].center(COL_WIDTH), style=style)
    return Text("\n").join(rows)


def _io_window(n: int, sel: int) -> tuple[int, int]:
    win = min(n, IO_WINDOW)
    top = 0
    if sel >= 0:
        top = min(max(0, sel - win // 2), n - win)
    return top, win


def _cursor_row(text: Text, selected: bool) -> Text:
    if selected:
        text.stylize("reverse")
    return text


def result_lines(res: LookupResult) -> tuple[str, list[Text]]:
    """Title and body rows for the lookup panel, including io overlays."""
    if res.inputs_open:
        inputs = res.tx.inputs
        top, win = _io_window(len(inputs), res.input_sel)
        rows = []
        for i in range(top, top + win):
            inp = inputs[i]
            label = "coinbase" if inp.is_coinbase else f"{inp.txid}:{inp.vout}"
            rows.append(_cursor_row(
                Text.assemble((f"[{i}] ", "grey50"), (label, "grey50" if inp.is_coinbase else "")),
                i == res.input_sel,
            ))
        if len(inputs) > win:
            rows.append(Text(f"{top + 1}–{top + win} / {len(inputs)}", style="grey50", justify="right"))
        return f"Inputs ({len(inputs)})", rows

    if res.outputs_open:
        outputs = res.tx.outputs
        top, win = _io_window(len(outputs), res.output_sel)
        rows = []
        for i in range(top, top + win):
            out = outputs[i]
            label = fmt_btc(out.value)
            if out.address:
                label += "  " + (abbreviate(out.address, 28, 28) if len(out.address) > 60 else out.address)
            elif out.type:
                label += f"  [{out.type}]"
            rows.append(_cursor_row(Text.assemble((f"[{i}] ", "grey50"), label), i == res.output_sel))
        if len(outputs) > win:
            rows.append(Text(f"{top + 1}–{top + win} / {len(outputs)}", style="grey50", justify="right"))
        return f"Outputs ({len(outputs)})", rows

    now = int(time.time())
    if res.kind is LookupKind.SEARCHING:
        return "Transaction Search", [Text("Searching…", style="yellow")]
    if res.kind is LookupKind.ERROR:
        return "Transaction Search", [Text(res.error, style="red")]
    if res.kind is LookupKind.BLOCK:
        b = res.block
        return "Block Search", [
            Text("⛏ BLOCK", style="bold cyan"),
            label_value("Height", fmt_height(b.height)),
            label_value("Hash", abbreviate(b.hash, 4, 44)),
            label_value("Time", fmt_timestamp(b.time)),
            label_value("Age", fmt_age(now - b.time) if b.time > 0 else "—"),
            label_value("Transactions", fmt_int(b.tx_count)),
            label_value("Size", f"{fmt_int(b.size)} B"),
            label_value("Weight", f"{fmt_int(b.weight)} WU"),
            label_value("Difficulty", f"{b.difficulty / 1e12:.2f} T"),
            label_value("Miner", b.miner),
            label_value("Confirmations", fmt_int(b.confirmations)),
        ]
    if res.kind is LookupKind.MEMPOOL:
        m = res.mempool
        return "Transaction Search", [
            Text("● MEMPOOL", style="bold yellow"),
            label_value("Fee", fmt_btc(m.fee), "bold green"),
            label_value("Fee rate", f"{m.fee_rate:.1f} sat/vB"),
            label_value("vsize", f"{fmt_int(m.vsize)} vB"),
            label_value("Weight", f"{fmt_int(m.weight)} WU"),
            label_value("Ancestors", fmt_int(m.ancestors)),
            label_value("Descendants", fmt_int(m.descendants)),
            label_value("In mempool", fmt_age(now - m.entry_time)),
        ]

    tx = res.tx
    rows = [
        Text("✔ CONFIRMED", style="bold green"),
        label_value("Confirmations", fmt_int(tx.confirmations)),
        _cursor_row(
            label_value("Block #", fmt_height(tx.block_height) if tx.block_height >= 0 else "—", "cyan underline"),
            res.selected == 0,
        ),
        label_value("Block hash", abbreviate(tx.block_hash, 4, 44)),
        label_value("Block age", fmt_age(now - tx.block_time) if tx.block_time > 0 else "—"),
        label_value("vsize", f"{fmt_int(tx.vsize)} vB"),
        label_value("Weight", f"{fmt_int(tx.weight)} WU"),
    ]
    if tx.inputs:
        rows.append(_cursor_row(
            label_value("Inputs", str(len(tx.inputs)), "cyan underline"), res.selected == res.inputs_row()
        ))
    if tx.outputs:
        rows.append(_cursor_row(
            label_value("Outputs", str(len(tx.outputs)), "cyan underline"), res.selected == res.outputs_row()
        ))
    rows.append(label_value("Total out", fmt_btc(tx.total_output), "bold green"))
    return "Transaction Search", rows


def key_hints(view: LookupView, searching: bool) -> str:
    res = view.result
    if searching:
        return "[Enter] search  [Esc] cancel"
    if res is None:
        return ""
    if res.outputs_open:
        return "[↑/↓] navigate  [Esc] back  [q] quit"
    if res.inputs_open:
        return "[↑/↓] navigate  [↵] lookup  [Esc] back  [q] quit"
    if res.is_confirmed:
        if res.selected >= 0 and res.selected == res.outputs_row():
            return "[↵] show outputs  [↑/↓] navigate  [Esc] dismiss  [q] quit"
        if res.selected >= 0 and res.selected == res.inputs_row():
            return "[↵] show inputs  [↑/↓] navigate  [Esc] dismiss  [q] quit"
        if res.selected == 0:
            return "[↵] view block  [↑/↓] navigate  [Esc] dismiss  [q] quit"
        return "[↑/↓] navigate  [Esc] dismiss  [q] quit"
    return "[Esc] dismiss  [q] quit"


class CardPanel(Static):
    def __init__(self, title: str, accent_class: str, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = title
        self.lines: list[Text] = []
        self.add_class("card")
        self.add_class(accent_class)

    def update_lines(self, lines: list[Text]) -> None:
        self.lines = lines
        self.update(Group(*lines) if lines else "... loading")


class BlocksStrip(Static):
    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = "Recent Blocks"
        self.add_class("card")
        self.add_class("blocks")

    def show(self, snap: DashboardSnapshot) -> None:
        width = self.size.width or 80
        self.update(render_blocks(snap, width))


class TitleBar(Static):
    def show(self, config: AppConfig, snap: DashboardSnapshot) -> None:
        grid = Table.grid(expand=True)
        grid.add_column()
        grid.add_column(justify="right")
        badge = Text("")
        if snap.chain.chain and snap.chain.chain != "—":
            style = "bold white on dark_green" if snap.chain.chain == "main" else "bold black on yellow"
            badge = Text(f" {snap.chain.chain} ", style=style)
        grid.add_row(
            Text.assemble((" ₿ Bitcoin Core TUI ", "bold gold1"), (f" {config.rpc.host}:{config.rpc.port} ", "grey50")),
            badge,
        )
        self.update(grid)


class StatusBar(Static):
    def show(self, snap: DashboardSnapshot, hints: str, refresh_secs: int) -> None:
        if not snap.connected and snap.error:
            left = Text.assemble((" ERROR ", "bold white on red"), (f" {snap.error}", "red"))
        else:
            state = ("● CONNECTED", "bold green") if snap.connected else ("○ CONNECTING…", "bold yellow")
            left = Text.assemble(" ", state, (f"  Last update: {snap.last_update or '—'}", "grey50"))
        if hints:
            right = Text(f"{hints} ", style="yellow")
        elif snap.refreshing:
            right = Text("↻ refreshing ", style="yellow")
        else:
            right = Text(f"↻ every {refresh_secs}s  [←/→] switch  [/] search  [q] quit ", style="grey50")
        grid = Table.grid(expand=True)
        grid.add_column(no_wrap=True, overflow="ellipsis")
        grid.add_column(justify="right", no_wrap=True)
        grid.add_row(left, right)
        self.update(grid)


class BitcoinTuiApp(App):
    TITLE = "bitcoin-tui"

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("slash", "open_search", "Search"),
        Binding("escape", "back", "Back", priority=True),
        Binding("enter", "activate", "Select", show=False),
        Binding("up", "cursor(-1)", "Up", show=False),
        Binding("down", "cursor(1)", "Down", show=False),
        Binding("left", "cycle_view(-1)", "Prev tab", show=False),
        Binding("right", "cycle_view(1)", "Next tab", show=False),
    ]

    CSS = """
    Screen {
        layout: vertical;
    }
    TitleBar {
        height: 1;
        background: $boost;
    }
    #search {
        dock: top;
        margin: 0 1;
        display: none;
    }
    TabbedContent,
    TabPane {
        width: 1fr;
        height: 1fr;
    }
    .card {
        border: round $primary;
        border-title-color: $accent;
        border-title-style: bold;
        padding: 0 1;
        height: auto;
    }
    #dashboard-row {
        height: auto;
    }
    #dashboard-row > .card {
        width: 1fr;
    }
    .blocks {
        height: 13;
        text-wrap: nowrap;
        overflow: hidden;
    }
    #lookup-panel {
        width: 86;
        display: none;
    }
    #mempool-body {
        align-horizontal: center;
    }
    #peers-table {
        height: 1fr;
    }
    StatusBar {
        height: 1;
        background: $panel;
    }
    """

    def __init__(self, config: AppConfig, monitor: NodeMonitor) -> None:
        super().__init__()
        self.config = config
        self.monitor = monitor
        self.title_bar = TitleBar()
        self.search_input = Input(placeholder="txid, block hash or height", id="search")
        self.blockchain_card = CardPanel("Blockchain", "chain")
        self.network_card = CardPanel("Network", "network")
        self.mempool_card = CardPanel("Mempool", "mempool")
        self.mempool_stats = CardPanel("Mempool", "mempool")
        self.blocks_strip = BlocksStrip()
        self.lookup_panel = CardPanel("Transaction Search", "lookup", id="lookup-panel")
        self.network_status = CardPanel("Network Status", "network")
        self.peers_card = CardPanel("Peers", "network", id="peers-table")
        self.status_bar = StatusBar()

    def compose(self) -> ComposeResult:
        yield self.title_bar
        yield self.search_input
        with TabbedContent(initial=self.monitor.active_view.value):
            with TabPane(VIEW_LABELS[View.DASHBOARD], id=View.DASHBOARD.value):
                with VerticalScroll():
                    with Horizontal(id="dashboard-row"):
                        yield self.blockchain_card
                        yield self.network_card
                    yield self.mempool_card
            with TabPane(VIEW_LABELS[View.MEMPOOL], id=View.MEMPOOL.value):
                with VerticalScroll(id="mempool-body"):
                    yield self.mempool_stats
                    yield self.blocks_strip
                    yield self.lookup_panel
            with TabPane(VIEW_LABELS[View.NETWORK], id=View.NETWORK.value):
                with Container():
                    yield self.network_status
            with TabPane(VIEW_LABELS[View.PEERS], id=View.PEERS.value):
                yield self.peers_card
        yield self.status_bar
        yield Footer()

    def on_mount(self) -> None:
        self.monitor.wake.subscribe(lambda: self.post_message(Redraw()))
        self.monitor.start()
        self.refresh_view()
        # relative ages ("12s ago") tick even without new data
        self.set_interval(1.0, self.refresh_view)

    def on_unmount(self) -> None:
        self.monitor.wake.subscribe(None)

    @on(Redraw)
    def handle_redraw(self) -> None:
        self.monitor.wake.consume()
        self.refresh_view()

    def refresh_view(self) -> None:
        snap = self.monitor.snapshot()
        view = self.monitor.lookup_view()

        tabs = self.query_one(TabbedContent)
        active = self.monitor.active_view.value
        if tabs.active != active:
            tabs.active = active

        self.title_bar.show(self.config, snap)
        blockchain, network, mempool = dashboard_lines(snap)
        self.blockchain_card.update_lines(blockchain)
        self.network_card.update_lines(network)
        self.mempool_card.update_lines(mempool)
        self.network_status.update_lines(network_lines(snap))
        self.peers_card.update(peers_table(snap))

        res = view.result
        self.mempool_stats.display = res is None
        self.blocks_strip.display = res is None
        self.lookup_panel.display = res is not None
        if res is None:
            self.mempool_stats.update_lines(mempool_lines(snap))
            self.blocks_strip.show(snap)
        else:
            title, rows = result_lines(res)
            self.lookup_panel.border_title = title
            self.lookup_panel.border_subtitle = abbreviate(res.query, 20, 20)
            self.lookup_panel.update_lines(rows)

        hints = key_hints(view, self.search_input.display)
        self.status_bar.show(snap, hints, self.config.refresh_secs)

    def on_tabbed_content_tab_activated(self, event: TabbedContent.TabActivated) -> None:
        pane_id = event.pane.id if event.pane is not None else None
        if pane_id:
            self.monitor.set_active_view(View(pane_id))

    def action_open_search(self) -> None:
        self.search_input.value = ""
        self.search_input.display = True
        self.search_input.focus()
        self.refresh_view()

    def _close_search(self) -> None:
        self.search_input.value = ""
        self.search_input.display = False
        self.set_focus(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        query = event.value.strip()
        self._close_search()
        if is_searchable(query):
            self.monitor.trigger_search(query, reset_context=True)
        elif query:
            self.notify("Enter a 64-character txid/block hash or a block height", severity="warning", timeout=3)
        self.refresh_view()

    def action_back(self) -> None:
        if self.search_input.display:
            self._close_search()
            self.refresh_view()
            return
        res = self.monitor.lookup_view().result
        if res is not None and res.overlay is not Overlay.CLOSED:
            self.monitor.close_overlay()
            return
        if not self.monitor.dismiss():
            self.exit()

    def action_activate(self) -> None:
        if not self.search_input.display:
            self.monitor.activate()

    def action_cursor(self, delta: int) -> None:
        if not self.search_input.display:
            self.monitor.navigate(delta)

    def action_cycle_view(self, step: int) -> None:
        if self.search_input.display:
            return
        idx = VIEW_ORDER.index(self.monitor.active_view)
        self.monitor.set_active_view(VIEW_ORDER[(idx + step) % len(VIEW_ORDER)])


def run(argv: list[str] | None = None) -> int:
    try:
        config = load_config(argv)
    except ConfigError as exc:
        print(f"bitcoin-tui: {exc}", file=sys.stderr)
        return 1
    setup_logging(config.log_file, config.log_level)
    logger.info("bitcoin-tui %s starting", __version__)

    monitor = NodeMonitor(config.rpc, refresh_interval=config.refresh_secs)
    try:
        BitcoinTuiApp(config, monitor).run()
    finally:
        monitor.shutdown()
    return 0


def main() -> None:
    sys.exit(run())
