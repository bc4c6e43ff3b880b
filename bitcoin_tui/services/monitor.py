import logging
import threading

from bitcoin_tui.models import DashboardSnapshot, LookupView, Overlay, View
from bitcoin_tui.services.animator import Animator
from bitcoin_tui.services.lookup import LookupCoordinator
from bitcoin_tui.services.poller import Poller
from bitcoin_tui.services.rpc import RpcClient, RpcConfig
from bitcoin_tui.services.state import Guarded, WakeSignal

logger = logging.getLogger(__name__)

SEARCH_TIMEOUT = 5


class NodeMonitor:
    """Owns the dashboard state and the threads that feed it.

    The renderer only talks to this object: it reads copies through
    ``snapshot`` and ``lookup_view`` and drives searches and navigation
    through the remaining methods. Every mutation ends in ``wake.notify``.
    """

    def __init__(
        self,
        config: RpcConfig,
        refresh_interval: float = 5.0,
        initial_view: View = View.DASHBOARD,
        poll_rpc: RpcClient | None = None,
        search_rpc: RpcClient | None = None,
    ) -> None:
        self.config = config
        self.refresh_interval = refresh_interval
        self.wake = WakeSignal()
        self.shutdown_flag = threading.Event()
        self.store: Guarded[DashboardSnapshot] = Guarded(DashboardSnapshot())
        self._view: Guarded[View] = Guarded(initial_view)

        poll_rpc = poll_rpc or RpcClient(config)
        search_rpc = search_rpc or poll_rpc.with_timeout(SEARCH_TIMEOUT)
        self.poller = Poller(poll_rpc, self.store, self.wake, self.shutdown_flag, refresh_interval)
        self.lookup = LookupCoordinator(
            search_rpc,
            self.wake,
            self.shutdown_flag,
            tip=lambda: self.store.read(lambda s: s.chain.blocks),
        )
        self.animator = Animator(self.store, self.wake, self.shutdown_flag)
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info("polling %s every %ss", self.config.url, self.refresh_interval)
        self.poller.start()
        self.animator.start()

    def shutdown(self) -> None:
        self.shutdown_flag.set()
        self.lookup.join()
        self.poller.join()
        self.animator.join()
        logger.info("monitor stopped")

    def snapshot(self) -> DashboardSnapshot:
        return self.store.read()

    def lookup_view(self) -> LookupView:
        return self.lookup.view()

    @property
    def active_view(self) -> View:
        return self._view.read()

    def set_active_view(self, view: View) -> None:
        if self._view.read() is view:
            return
        self._view.replace(view)
        self.wake.notify()

    def trigger_search(self, query: str, reset_context: bool) -> bool:
        if self.shutdown_flag.is_set():
            return False
        started = self.lookup.search(query, reset_context)
        if started and reset_context:
            self.set_active_view(View.MEMPOOL)
        return started

    def navigate(self, delta: int) -> bool:
        return self.lookup.navigate(delta)

    def open_overlay(self, kind: Overlay) -> bool:
        return self.lookup.open_overlay(kind)

    def close_overlay(self) -> bool:
        return self.lookup.close_overlay()

    def activate(self) -> bool:
        return self.lookup.activate()

    def dismiss(self) -> bool:
        return self.lookup.dismiss()
