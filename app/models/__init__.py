"""SQLAlchemy models for the Dockit settlement service."""

from app.models.vendor import Vendor
from app.models.station import ChargingStation
from app.models.restaurant import Restaurant
from app.models.charging_transaction import ChargingTransaction, PaymentAdjustment
from app.models.restaurant_order import RestaurantOrder
from app.models.settlement import SettlementRecord

__all__ = [
    "Vendor",
    "ChargingStation",
    "Restaurant",
    "ChargingTransaction",
    "PaymentAdjustment",
    "RestaurantOrder",
    "SettlementRecord",
]
