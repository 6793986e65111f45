"""Ordering bounded context — Shopping Cart and Order Ledger.

Handles the per-user cart (CQRS), the order lifecycle (event-sourced), the
checkout flow that converts a cart into a price-frozen order, and payment
reconciliation against the external gateway.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
