import copy
import threading
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class Guarded(Generic[T]):
    """A value behind its own lock.

    Readers get a deep copy (or a projection computed under the lock), writers
    replace the whole value. Callers must not do I/O inside ``modify``.
    """

    def __init__(self, value: T) -> None:
        self._value = value
        self._lock = threading.Lock()

    def read(self, project: Optional[Callable[[T], Any]] = None) -> Any:
        with self._lock:
            if project is not None:
                return project(self._value)
            return copy.deepcopy(self._value)

    def replace(self, value: T) -> None:
        with self._lock:
            self._value = value

    def modify(self, fn: Callable[[T], bool]) -> bool:
        """Apply ``fn`` to a working copy; commit only if it returns True."""
        with self._lock:
            work = copy.deepcopy(self._value)
            changed = bool(fn(work))
            if changed:
                self._value = work
            return changed


class WakeSignal:
    """Single-slot, level-triggered redraw signal.

    Any number of ``notify`` calls between two ``consume`` calls collapse into
    one pending wake. The listener runs only when the slot goes from clear to
    set, so a consumer that always re-reads full state never falls behind.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending = False
        self._listener: Optional[Callable[[], None]] = None

    def subscribe(self, listener: Optional[Callable[[], None]]) -> None:
        with self._cond:
            self._listener = listener

    @property
    def pending(self) -> bool:
        with self._cond:
            return self._pending

    def notify(self) -> None:
        with self._cond:
            fire = not self._pending
            self._pending = True
            listener = self._listener
            self._cond.notify_all()
        if fire and listener is not None:
            listener()

    def consume(self) -> bool:
        with self._cond:
            was_set = self._pending
            self._pending = False
            return was_set

    def wait(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            self._cond.wait_for(lambda: self._pending, timeout=timeout)
            was_set = self._pending
            self._pending = False
            return was_set
