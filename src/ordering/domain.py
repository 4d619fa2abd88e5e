"""Ordering bounded context: Order Lifecycle and Courier Fulfillment.

Governs how an order moves between fulfillment statuses, how its contents,
address and pricing may be edited before fulfillment commits, and how a
courier booking is made idempotent against retries and concurrent operators.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
