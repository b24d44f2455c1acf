"""Status vocabularies stored as plain strings on the models."""

from enum import Enum


class ItemSettlementStatus(str, Enum):
    """Denormalized settlement flag on charging transactions and orders.

    ``None`` in the database (never earmarked) is treated like PENDING.
    """

    PENDING = "pending"
    INCLUDED = "included_in_settlement"
    SETTLED = "settled"


class SettlementStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_SETTLEMENT_STATUSES = (
    SettlementStatus.PENDING.value,
    SettlementStatus.PROCESSING.value,
)


class RequestType(str, Enum):
    REGULAR = "regular"
    URGENT = "urgent"
    ADMIN_INITIATED = "admin_initiated"


class AdjustmentType(str, Enum):
    ADDITIONAL_CHARGE = "additional_charge"
    REFUND = "refund"


class AdjustmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    REJECTED = "rejected"


COMPLETED = "completed"
