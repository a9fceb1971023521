"""
Read-only view of the delivery-order and customer registries.

The registries belong to other parts of the console; billing only needs to
look up billable orders and customer contact details. InMemoryOrderRegistry
backs tests and local runs.
"""

import threading
from typing import Iterable, Protocol

from core.models import BillableOrder, CustomerRecord


class OrderRegistry(Protocol):
    """What the billing core needs from the order/customer registries."""

    def get_orders(self, order_ids: Iterable[str]) -> dict[str, BillableOrder]:
        """Known orders among the given ids, keyed by order id."""
        ...

    def get_customer(self, customer_id: str) -> CustomerRecord | None:
        """Customer record, or None if unknown."""
        ...


class InMemoryOrderRegistry:
    """Dictionary-backed OrderRegistry."""

    def __init__(
        self,
        orders: Iterable[BillableOrder] = (),
        customers: Iterable[CustomerRecord] = (),
    ):
        self._lock = threading.Lock()
        self._orders = {o.order_id: o for o in orders}
        self._customers = {c.customer_id: c for c in customers}

    def add_order(self, order: BillableOrder) -> None:
        with self._lock:
            self._orders[order.order_id] = order

    def add_customer(self, customer: CustomerRecord) -> None:
        with self._lock:
            self._customers[customer.customer_id] = customer

    def get_orders(self, order_ids: Iterable[str]) -> dict[str, BillableOrder]:
        with self._lock:
            return {oid: self._orders[oid] for oid in order_ids if oid in self._orders}

    def get_customer(self, customer_id: str) -> CustomerRecord | None:
        with self._lock:
            return self._customers.get(customer_id)
