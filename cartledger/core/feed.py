"""
In-process change feed
Ledgers publish after every write; subscribers re-run their read path
"""

from typing import Any, Awaitable, Callable, Dict, List
import logging

logger = logging.getLogger(__name__)

Subscriber = Callable[[Dict[str, Any]], Awaitable[None]]

ORDERS_TOPIC = "orders"
RETURNS_TOPIC = "returns"

class ChangeFeed:
    """Topic based invalidation feed"""
    
    def __init__(self):
        # {topic: [callback1, callback2]}
        self.subscriptions: Dict[str, List[Subscriber]] = {}
        
    def subscribe(self, topic: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns an unsubscribe function"""
        self.subscriptions.setdefault(topic, []).append(callback)
        
        def unsubscribe():
            callbacks = self.subscriptions.get(topic, [])
            if callback in callbacks:
                callbacks.remove(callback)
                
        return unsubscribe
    
    async def publish(self, topic: str, message: Dict[str, Any]) -> int:
        """
        Deliver a change notification to every subscriber of topic
        
        Returns:
            Number of subscribers that handled the message
        """
        delivered = 0
        for callback in list(self.subscriptions.get(topic, [])):
            try:
                await callback(message)
                delivered += 1
            except Exception:
                logger.exception(f"Subscriber failed handling {topic} change {message}")
        return delivered
