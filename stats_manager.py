import time
from typing import Any, Dict


class StatsManager:
    """
    Message counters for one node, read by the dashboard.
    """
    def __init__(self):
        self.start_time = time.time()
        self.sent: Dict[str, int] = {}
        self.received: Dict[str, int] = {}
        self.dropped = 0
        self.responses_produced = 0
        self.last_error = ""

    def add_sent(self, kind: str):
        self.sent[kind] = self.sent.get(kind, 0) + 1

    def add_received(self, kind: str):
        self.received[kind] = self.received.get(kind, 0) + 1

    def add_dropped(self):
        self.dropped += 1

    def add_response_produced(self):
        self.responses_produced += 1

    def record_error(self, message: str):
        self.last_error = message

    def get_stats(self) -> Dict[str, Any]:
        return {
            "uptime": int(time.time() - self.start_time),
            "sent": dict(self.sent),
            "received": dict(self.received),
            "dropped": self.dropped,
            "responses_produced": self.responses_produced,
            "last_error": self.last_error
        }
