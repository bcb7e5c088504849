from .auth import User, SessionToken
from .clients import Zone, Tariff, Client
from .inventory import Equipment, Movement
from .billing import (
    Adjustment,
    AdjustmentArchive,
    Expense,
    CollectionBatch,
    CollectionItem,
    MonthlyClosing,
    Remittance,
)
from .shipments import Shipment, ShipmentLine
from .events import ChangeEvent

__all__ = [
    'User', 'SessionToken',
    'Zone', 'Tariff', 'Client',
    'Equipment', 'Movement',
    'Adjustment', 'AdjustmentArchive', 'Expense',
    'CollectionBatch', 'CollectionItem', 'MonthlyClosing', 'Remittance',
    'Shipment', 'ShipmentLine',
    'ChangeEvent',
]
