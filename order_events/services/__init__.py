"""
Domain services that change orders.

They persist through the order store and publish events; they never talk to
subscribers directly.
"""

from order_events.services.ordering import OrderingService

__all__ = ["OrderingService"]
