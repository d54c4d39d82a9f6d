"""
Server-sent event fan-out.
"""

import queue
import logging
from typing import Dict, List

from config import log_event


class EventBroadcaster:
    """Per-client queues; the SSE endpoint drains one queue per connection."""

    def __init__(self):
        self.clients: List[queue.Queue] = []

    def connect(self) -> queue.Queue:
        client_queue = queue.Queue()
        self.clients.append(client_queue)
        return client_queue

    def disconnect(self, client_queue: queue.Queue):
        if client_queue in self.clients:
            self.clients.remove(client_queue)

    def broadcast(self, data: Dict):
        """Broadcast an event to all connected SSE clients."""
        for client_queue in list(self.clients):
            try:
                client_queue.put(data)
            except Exception as e:
                log_event(logging.DEBUG, "sse_client_send_failed", error=str(e))
        log_event(logging.DEBUG, "sse_broadcast", type=data.get("type"), clients=len(self.clients))
