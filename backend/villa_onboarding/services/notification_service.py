"""
Notification Service — Hands onboarding events to the messaging layer.

Delivery itself (email/WhatsApp/SMS) lives outside this backend; here events
are logged and acknowledged so the engine can fire and forget.
"""
import logging
import time
from collections import deque
from typing import Any, Deque, Dict, Protocol

logger = logging.getLogger(__name__)

SENT_HISTORY = 100


class Notifier(Protocol):
    def notify(self, event: str, payload: Dict[str, Any]) -> Any: ...


class NotificationService:
    """Default notifier: records recent events for the delivery worker."""

    def __init__(self, history: int = SENT_HISTORY):
        self.sent: Deque[Dict[str, Any]] = deque(maxlen=history)

    def notify(self, event: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("[NOTIFY] %s %s", event, payload)
        receipt = {
            "success": True,
            "event": event,
            "sid": f"EV{int(time.time())}",
            "status": "queued",
        }
        self.sent.append({"event": event, "payload": dict(payload)})
        return receipt
