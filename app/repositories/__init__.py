"""Narrow data-access interfaces over the SQLAlchemy session."""

from app.repositories.revenue_items import OrderStore, TransactionStore
from app.repositories.vendors import VendorDirectory

__all__ = ["OrderStore", "TransactionStore", "VendorDirectory"]
