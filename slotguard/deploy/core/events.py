"""
Deployment lifecycle events.

Listeners are observational: they receive keyword data and cannot affect the
workflow that emitted the event.
"""
from collections import defaultdict
from typing import Callable, DefaultDict, List
import logging

logger = logging.getLogger(__name__)

CONTRACT_LABELED = "contract_labeled"       # address, name
CONTRACT_DEPLOYED = "contract_deployed"     # contract_name, network_id, address, proxy_address
UPGRADE_COMPLETED = "upgrade_completed"     # attempt
UPGRADE_BLOCKED = "upgrade_blocked"         # attempt


class EventBus:
    """Synchronous in-process pub/sub."""

    def __init__(self):
        self.listeners: DefaultDict[str, List[Callable]] = defaultdict(list)

    def subscribe(self, event_type: str, callback: Callable) -> None:
        self.listeners[event_type].append(callback)

    def emit(self, event_type: str, **data) -> None:
        """Deliver `data` to every listener; a failing listener is logged and skipped."""
        for callback in list(self.listeners.get(event_type, ())):
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"Listener for {event_type} failed: {e}", exc_info=True)


# Default bus for callers that do not wire their own
event_bus = EventBus()
