"""Warehouse-to-warehouse stock transfers."""

from .service import WarehouseTransferService, transfer_payload
from .status import TransferStatus
from .fees import compute_transfer_fee

__all__ = ["WarehouseTransferService", "transfer_payload", "TransferStatus", "compute_transfer_fee"]
