#!/usr/bin/env python3
"""
Shared per-server tracking state
Per-key atomic maps for players outside their fences and players who entered one
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from ..game.fence import Fence
from ..game.models import Grid, Session, Side


K = TypeVar('K')
V = TypeVar('V')


class SyncMap(Generic[K, V]):
    """Lock-guarded mapping whose operations are each atomic per call"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: Dict[K, V] = {}

    def load(self, key: K) -> Optional[V]:
        with self._lock:
            return self._data.get(key)

    def store(self, key: K, value: V) -> None:
        with self._lock:
            self._data[key] = value

    def load_or_store(self, key: K, value: V) -> Tuple[V, bool]:
        """Return (existing value, True) or store ``value`` and return (value, False)"""
        with self._lock:
            if key in self._data:
                return self._data[key], True
            self._data[key] = value
            return value, False

    def update(self, key: K, fn: Callable[[V], V]) -> bool:
        """Replace an existing value with ``fn(value)``; False when the key is absent"""
        with self._lock:
            if key not in self._data:
                return False
            self._data[key] = fn(self._data[key])
            return True

    def delete(self, key: K) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def delete_if(self, key: K, predicate: Callable[[V], bool]) -> bool:
        """Delete ``key`` only while ``predicate(current value)`` holds"""
        with self._lock:
            if key not in self._data or not predicate(self._data[key]):
                return False
            del self._data[key]
            return True

    def items(self) -> List[Tuple[K, V]]:
        """Snapshot of the current entries"""
        with self._lock:
            return list(self._data.items())

    def keys(self) -> List[K]:
        with self._lock:
            return list(self._data.keys())

    def delete_missing(self, keep: Iterable[K]) -> List[K]:
        """Delete every key not in ``keep`` and return the removed keys"""
        keep_set = set(keep)
        with self._lock:
            removed = [key for key in self._data if key not in keep_set]
            for key in removed:
                del self._data[key]
            return removed

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


@dataclass(frozen=True)
class OutsidePlayer:
    """A player currently outside every applicable fence"""
    name: str
    last_grid: Grid
    first_outside: float

    def elapsed(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.first_outside

    def same_episode(self, other: "OutsidePlayer") -> bool:
        # Grid updates keep first_outside; a re-entry starts a new episode
        return self.first_outside == other.first_outside


class WorkerState:
    """State shared by one server's polling loops"""

    def __init__(self) -> None:
        self.session: Optional[Session] = None
        self.last_map_change = time.time()
        self.started_at = time.time()
        self.outside_players: SyncMap[str, OutsidePlayer] = SyncMap()
        self.entered_fence: SyncMap[str, float] = SyncMap()
        self._fences: Dict[Side, Tuple[Fence, ...]] = {Side.AXIS: (), Side.ALLIES: ()}

    def set_fences(self, axis: Tuple[Fence, ...], allies: Tuple[Fence, ...]) -> None:
        # Single assignment so readers never see one side updated without the other
        self._fences = {Side.AXIS: tuple(axis), Side.ALLIES: tuple(allies)}

    def fences_for(self, side: Optional[Side]) -> Tuple[Fence, ...]:
        if side is None:
            return ()
        return self._fences.get(side, ())

    def has_fences(self) -> bool:
        fences = self._fences
        return bool(fences[Side.AXIS] or fences[Side.ALLIES])

    def forget_player(self, player_id: str) -> None:
        self.outside_players.delete(player_id)
        self.entered_fence.delete(player_id)

    def clear_tracking(self) -> None:
        self.outside_players.clear()
        self.entered_fence.clear()
