import threading
from typing import Optional

from bitcoin_tui.models import DashboardSnapshot
from bitcoin_tui.services.state import Guarded, WakeSignal

TOTAL_FRAMES = 12
TICK_INTERVAL = 0.04  # 12 frames ~ 480 ms


def slide_offset(frame: int, total: int, column_width: int) -> int:
    if total <= 0:
        return 0
    frame = max(0, min(frame, total))
    return int(round(frame / total * column_width))


class Animator:
    """Advances the recent-blocks slide while ``anim_active`` is set."""

    def __init__(
        self,
        store: Guarded[DashboardSnapshot],
        wake: WakeSignal,
        shutdown: threading.Event,
        total_frames: int = TOTAL_FRAMES,
        interval: float = TICK_INTERVAL,
    ) -> None:
        self.store = store
        self.wake = wake
        self.shutdown = shutdown
        self.total_frames = total_frames
        self.interval = interval
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self.run, name="animator", daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        while not self.shutdown.wait(self.interval):
            self.tick()

    def tick(self) -> bool:
        if not self.store.read(lambda s: s.anim_active):
            return False

        def advance(snap: DashboardSnapshot) -> bool:
            if not snap.anim_active:
                return False
            snap.anim_frame += 1
            if snap.anim_frame >= self.total_frames:
                snap.anim_frame = self.total_frames
                snap.anim_active = False
                snap.anim_old = []
            return True

        if not self.store.modify(advance):
            return False
        self.wake.notify()
        return True
