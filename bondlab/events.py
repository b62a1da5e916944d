from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional
from collections import defaultdict, deque
import json
import logging
import os
import time

from .constants import MAX_EVENT_HISTORY

logger = logging.getLogger(__name__)

# Event types
BOND_CREATED = "bond_created"
BOND_BROKEN = "bond_broken"
MOLECULE_FORMED = "molecule_formed"
MOLECULE_BROKEN = "molecule_broken"
REACTION_STARTED = "reaction_started"
REACTION_COMPLETED = "reaction_completed"
REACTION_CANCELLED = "reaction_cancelled"
ENERGY_ADDED = "energy_added"

EVENT_TYPES = (
    BOND_CREATED, BOND_BROKEN, MOLECULE_FORMED, MOLECULE_BROKEN,
    REACTION_STARTED, REACTION_COMPLETED, REACTION_CANCELLED, ENERGY_ADDED,
)

Listener = Callable[[Dict[str, Any]], None]


def ensure_parent_dir(path: str) -> None:
    d = os.path.dirname(path)
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


# -----------------------
# Event log
# -----------------------
class EventLog:
    """
    In-memory record of simulation events with listener fan-out.

    Events are plain JSON-serializable dicts:
        {"event_type": ..., "frame": ..., "sim_time": ..., "timestamp": ..., **payload}
    Listeners run synchronously in the emitting tick; a failing listener is
    logged and does not interrupt the simulation.
    """

    def __init__(self, max_history: int = MAX_EVENT_HISTORY):
        self.events: deque = deque(maxlen=max_history)
        self.counts: Dict[str, int] = defaultdict(int)
        self._listeners: List[tuple] = []
        self.frame: int = 0
        self.sim_time: float = 0.0

    def subscribe(self, listener: Listener, event_type: Optional[str] = None) -> None:
        """Register a listener for one event type, or for all events when None."""
        self._listeners.append((event_type, listener))

    def unsubscribe(self, listener: Listener) -> None:
        self._listeners = [(t, fn) for t, fn in self._listeners if fn is not listener]

    def emit(self, event_type: str, **payload: Any) -> Dict[str, Any]:
        ev: Dict[str, Any] = {
            "event_type": event_type,
            "frame": self.frame,
            "sim_time": round(self.sim_time, 6),
            "timestamp": time.strftime("%Y%m%dT%H%M%S"),
        }
        ev.update(payload)
        self.events.append(ev)
        self.counts[event_type] += 1
        for wanted, listener in list(self._listeners):
            if wanted is not None and wanted != event_type:
                continue
            try:
                listener(ev)
            except Exception:
                logger.exception(f"Event listener failed for {event_type}")
        return ev

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [ev for ev in self.events if ev.get("event_type") == event_type]

    def clear(self) -> None:
        self.events.clear()
        self.counts.clear()

    def __len__(self) -> int:
        return len(self.events)

    def export_jsonl(self, out_path: str) -> str:
        """
        Write current in-memory events to out_path as JSONL.
        Returns the path written.
        """
        ensure_parent_dir(out_path)
        try:
            with open(out_path, "w", encoding="utf-8") as fh:
                for ev in self.events:
                    fh.write(json.dumps(ev, ensure_ascii=False) + "\n")
            logger.info(f"Exported events to {out_path} ({len(self.events)} events)")
        except OSError:
            logger.exception("Failed to export events JSONL.")
        return out_path
