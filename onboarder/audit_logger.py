import threading
from pathlib import Path
from typing import List, Optional

from onboarder.event_bus import EventBus, OnboardingEvent


class AuditLogger:
    """
    Appends scheduler events to a JSONL file, one event per line.

    Subscribes on construction. Workers emit from their own threads, so
    writes are serialized.
    """

    def __init__(self, file_path: str, event_bus: EventBus, event_types: Optional[List[str]] = None):
        self.path = Path(file_path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.written = 0
        self._lock = threading.Lock()

        event_bus.subscribe(self.log_event, event_types)

    def log_event(self, event: OnboardingEvent) -> None:
        line = event.model_dump_json() + "\n"
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
            self.written += 1
