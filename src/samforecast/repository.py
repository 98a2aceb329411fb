"""Purchase-order repositories.

All backends share :func:`apply_po_patch`, so the in-memory store used by tests
and the PostgreSQL store apply updates identically.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Callable, Iterable, Mapping

import psycopg2

from . import db
from .types import PurchaseOrder, PurchaseOrderField

logger = logging.getLogger("samforecast.repository")

STATUS_KEY = "PO_STATUS"


def ignored_update_keys(order: PurchaseOrder, updates: Mapping[str, Any] | None) -> list[str]:
    """Keys in ``updates`` that the order has no editable field for."""
    by_key = {f.key: f for f in order.fields}
    return [k for k in (updates or {}) if k not in by_key or by_key[k].read_only]


def apply_po_patch(
    order: PurchaseOrder,
    updates: Mapping[str, Any] | None = None,
    status: str | None = None,
) -> tuple[PurchaseOrder, list[str]]:
    """Return ``(patched_order, ignored_keys)``.

    Only existing, editable fields take ``updates``; unknown or read-only keys
    are reported back instead of applied. The data-lake PATCH this replaces
    wrote any existing key and treated ``readOnly`` as a display hint only;
    here the flag is enforced. ``status`` always lands in ``PO_STATUS``,
    appending the field when the row has none.
    """
    updates = dict(updates or {})
    ignored = ignored_update_keys(order, updates)
    by_key = {f.key: f for f in order.fields}

    fields: list[PurchaseOrderField] = []
    for f in order.fields:
        if f.key in updates and not f.read_only:
            f = replace(f, value=updates[f.key])
        if status and f.key == STATUS_KEY:
            f = replace(f, value=status)
        fields.append(f)
    if status and STATUS_KEY not in by_key:
        fields.append(PurchaseOrderField(key=STATUS_KEY, value=status, name="PO Status", type="STRING", read_only=True))

    if ignored:
        logger.info("PO %s: ignored updates for %s", order.po_number, ", ".join(sorted(ignored)))
    return PurchaseOrder(fields=tuple(fields)), ignored


class PurchaseOrderRepository(ABC):
    @abstractmethod
    def list(self) -> list[PurchaseOrder]:
        ...

    @abstractmethod
    def get(self, po_number: str) -> PurchaseOrder | None:
        ...

    @abstractmethod
    def update(
        self,
        po_number: str,
        updates: Mapping[str, Any] | None = None,
        status: str | None = None,
    ) -> PurchaseOrder | None:
        """Apply a patch; returns the stored order, or None if the PO is unknown."""


class InMemoryPurchaseOrderRepository(PurchaseOrderRepository):
    def __init__(self, orders: Iterable[PurchaseOrder] = ()) -> None:
        self._orders: dict[str, PurchaseOrder] = {}
        for order in orders:
            if order.po_number in self._orders:
                raise ValueError(f"Duplicate purchase order: {order.po_number}")
            self._orders[order.po_number] = order

    def list(self) -> list[PurchaseOrder]:
        return list(self._orders.values())

    def get(self, po_number: str) -> PurchaseOrder | None:
        return self._orders.get(po_number)

    def update(
        self,
        po_number: str,
        updates: Mapping[str, Any] | None = None,
        status: str | None = None,
    ) -> PurchaseOrder | None:
        current = self._orders.get(po_number)
        if current is None:
            return None
        patched, _ = apply_po_patch(current, updates, status)
        self._orders[po_number] = patched
        return patched


class PostgresPurchaseOrderRepository(PurchaseOrderRepository):
    def __init__(self, connect: Callable[[], psycopg2.extensions.connection] = db.get_connection) -> None:
        self._connect = connect

    def list(self) -> list[PurchaseOrder]:
        conn = self._connect()
        try:
            return db.list_purchase_orders(conn)
        finally:
            conn.close()

    def get(self, po_number: str) -> PurchaseOrder | None:
        conn = self._connect()
        try:
            return db.get_purchase_order(conn, po_number)
        finally:
            conn.close()

    def update(
        self,
        po_number: str,
        updates: Mapping[str, Any] | None = None,
        status: str | None = None,
    ) -> PurchaseOrder | None:
        conn = self._connect()
        try:
            with db.transaction(conn):
                current = db.get_purchase_order(conn, po_number, for_update=True)
                if current is None:
                    return None
                patched, _ = apply_po_patch(current, updates, status)
                db.save_purchase_order(conn, patched)
            return patched
        finally:
            conn.close()
