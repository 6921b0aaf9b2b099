"""
Warehouse Transfer Service - saga for moving stock between warehouses

Stages:
1. Validate both warehouses belong to the seller, are active, and sit on
   connected integrations (InvalidWarehouse otherwise)
2. Take the stock lock on (source warehouse, product) and check the available
   quantity (InsufficientStock otherwise; nothing written yet)
3. Compute the fee (free within one provider, per-unit across providers)
4. Future scheduledAt: persist as scheduled, release the lock, return
5. Call the source provider's transfer_stock; only after it confirms are the
   source debited and the target credited, in one commit, still under the lock
6. Provider failure: mark failed with the error message; stock is untouched

The lock is released on every path. A row stuck in processing past
TRANSFER_PROCESSING_TIMEOUT_SECONDS is failed by sweep_stuck.
"""

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit import log_audit_event
from errors import (
    StockBridgeError,
    InsufficientStock,
    InvalidWarehouse,
    ResourceLocked,
    TransferNotFound,
    TransferNotCancellable,
    ValidationFailed,
)
from models import Warehouse, WarehouseStock, WarehouseTransfer, utcnow
from notifications import NotificationRequest, NotificationSender, send_safely
from observability.metrics import transfers_total
from observability.request_id import ensure_request_id
from providers import ProviderRegistry
from sync.progress import SyncProgressTracker, stock_lock_key
from vault import CredentialVault
from .fees import compute_transfer_fee
from .status import TransferStatus, validate_transition


logger = logging.getLogger(__name__)


def transfer_payload(transfer: WarehouseTransfer) -> dict[str, Any]:
    """Event/notification payload for a transfer (camelCase, JSON-safe)."""
    return {
        "transferId": str(transfer.id),
        "productId": transfer.product_id,
        "sku": transfer.sku,
        "sourceWarehouseId": str(transfer.source_warehouse_id),
        "targetWarehouseId": str(transfer.target_warehouse_id),
        "quantity": transfer.quantity,
        "transferFee": str(transfer.transfer_fee),
        "status": transfer.status,
        "providerTransactionId": transfer.provider_transaction_id,
        "errorMessage": transfer.error_message,
    }


class WarehouseTransferService:
    """
    Creates, executes, schedules and cancels warehouse transfers.

    Usage:
        service = container.transfer_service(db)
        transfer = service.create_transfer(
            seller_id="seller-1",
            product_id="SKU-1",
            source_warehouse_id=source.id,
            target_warehouse_id=target.id,
            quantity=4,
        )
    """

    def __init__(
        self,
        db: Session,
        registry: ProviderRegistry,
        vault: CredentialVault,
        tracker: SyncProgressTracker,
        dispatcher=None,
        notifier: Optional[NotificationSender] = None,
        unit_fee: Decimal = Decimal("0.50"),
        stock_lease_seconds: int = 120,
        processing_timeout_seconds: int = 1800,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.registry = registry
        self.vault = vault
        self.tracker = tracker
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.unit_fee = unit_fee
        self.stock_lease_seconds = stock_lease_seconds
        self.processing_timeout_seconds = processing_timeout_seconds
        self.clock = clock

    # ------------------------------------------------------------------
    # Create / execute
    # ------------------------------------------------------------------

    def create_transfer(
        self,
        seller_id: str,
        product_id: str,
        source_warehouse_id: UUID,
        target_warehouse_id: UUID,
        quantity: int,
        scheduled_at: Optional[datetime] = None,
        request_id: Optional[str] = None,
    ) -> WarehouseTransfer:
        """
        Run the transfer saga (or schedule it).

        Raises:
            ValidationFailed: quantity not positive or product missing
            InvalidWarehouse: unknown, inactive, identical or unconnected warehouses
            ResourceLocked: another transfer holds the stock lock
            InsufficientStock: source has fewer available units than requested
        """
        request_id = ensure_request_id(request_id)
        now = self.clock()
        if not product_id:
            raise ValidationFailed("productId is required")
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationFailed("quantity must be a positive integer")
        if source_warehouse_id == target_warehouse_id:
            raise InvalidWarehouse("Source and target warehouse must differ")

        source = self._load_warehouse(seller_id, source_warehouse_id, "Source")
        target = self._load_warehouse(seller_id, target_warehouse_id, "Target")

        transfer_id = uuid.uuid4()
        lock_key = stock_lock_key(source.id, product_id)
        if not self.tracker.acquire_lock(lock_key, str(transfer_id), self.stock_lease_seconds, now):
            raise ResourceLocked(f"Stock for {product_id} in warehouse {source.id} is being transferred")

        try:
            source_line = self._stock_line(source.id, product_id)
            available = source_line.available_quantity if source_line else 0
            if available < quantity:
                self._reject(seller_id, product_id, source, target, quantity, available)

            transfer = WarehouseTransfer(
                id=transfer_id,
                seller_id=seller_id,
                product_id=product_id,
                sku=source_line.sku,
                source_warehouse_id=source.id,
                target_warehouse_id=target.id,
                quantity=quantity,
                transfer_fee=compute_transfer_fee(source.provider_name, target.provider_name, quantity, self.unit_fee),
                request_id=request_id,
                created_at=now,
            )

            if scheduled_at is not None and scheduled_at > now:
                transfer.status = TransferStatus.SCHEDULED.value
                transfer.scheduled_at = scheduled_at
                self.db.add(transfer)
                self.db.commit()
                self.tracker.release_lock(lock_key, str(transfer_id))
                transfers_total.labels(status="scheduled").inc()
                logger.info(
                    f"Transfer scheduled for {scheduled_at.isoformat()}",
                    extra={"seller_id": seller_id, "transfer_id": str(transfer.id), "status": "scheduled"},
                )
                return transfer

            transfer.status = TransferStatus.PENDING.value
            self._start_processing(transfer, now)
            self.db.add(transfer)
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.tracker.release_lock(lock_key, str(transfer_id))
            raise

        return self._execute(transfer, source, target)

    def _execute(self, transfer: WarehouseTransfer, source: Warehouse, target: Warehouse) -> WarehouseTransfer:
        """Provider call, then debit/credit on confirmed success. Caller holds the stock lock."""
        lock_key = stock_lock_key(source.id, transfer.product_id)
        holder = str(transfer.id)
        try:
            try:
                client = self.registry.get(source.provider_name)
                credential = self.vault.get(self.db, transfer.seller_id, source.provider_name)
                result = client.transfer_stock(
                    credential.for_client(),
                    transfer.sku or transfer.product_id,
                    source.provider_ref,
                    target.provider_ref,
                    transfer.quantity,
                )
            except StockBridgeError as e:
                self._mark_failed(transfer, e.message)
            except Exception as e:
                logger.error(
                    f"Unexpected error calling provider for transfer: {e}",
                    exc_info=True,
                    extra={"transfer_id": holder, "provider": source.provider_name},
                )
                self._mark_failed(transfer, "Unexpected error while calling the provider")
            else:
                self._apply_stock_move(transfer, source, target, result.provider_transaction_id)
        finally:
            self.tracker.release_lock(lock_key, holder)

        self._announce(transfer)
        return transfer

    def _apply_stock_move(
        self,
        transfer: WarehouseTransfer,
        source: Warehouse,
        target: Warehouse,
        provider_transaction_id: str,
    ) -> None:
        now = self.clock()
        try:
            source_line = self._stock_line(source.id, transfer.product_id, for_update=True)
            available = source_line.available_quantity if source_line is not None else 0
            if source_line is None or available < transfer.quantity or source_line.quantity < transfer.quantity:
                raise InsufficientStock(
                    f"Source line for {transfer.product_id} no longer covers the transferred quantity",
                    available=available,
                    requested=transfer.quantity,
                )
            source_line.quantity -= transfer.quantity
            source_line.available_quantity -= transfer.quantity

            target_line = self._stock_line(target.id, transfer.product_id, for_update=True)
            if target_line is None:
                target_line = WarehouseStock(
                    seller_id=transfer.seller_id,
                    warehouse_id=target.id,
                    product_id=transfer.product_id,
                    sku=transfer.sku or transfer.product_id,
                    quantity=0,
                    available_quantity=0,
                )
                self.db.add(target_line)
            target_line.quantity = (target_line.quantity or 0) + transfer.quantity
            target_line.available_quantity = (target_line.available_quantity or 0) + transfer.quantity

            validate_transition(TransferStatus(transfer.status), TransferStatus.COMPLETED)
            transfer.status = TransferStatus.COMPLETED.value
            transfer.provider_transaction_id = provider_transaction_id
            transfer.completed_at = now
            self.db.commit()
        except (SQLAlchemyError, InsufficientStock) as e:
            self.db.rollback()
            logger.error(
                f"Provider confirmed transfer {provider_transaction_id} but recording it failed: {e}",
                extra={"transfer_id": str(transfer.id), "seller_id": transfer.seller_id},
            )
            self._mark_failed(
                transfer,
                f"Provider confirmed transaction {provider_transaction_id} but local stock update failed",
            )
            return

        transfers_total.labels(status="completed").inc()
        logger.info(
            f"Transfer completed: {transfer.quantity} x {transfer.product_id}",
            extra={"seller_id": transfer.seller_id, "transfer_id": str(transfer.id), "status": "completed"},
        )

    def _mark_failed(self, transfer: WarehouseTransfer, message: str) -> None:
        validate_transition(TransferStatus(transfer.status), TransferStatus.FAILED)
        transfer.status = TransferStatus.FAILED.value
        transfer.error_message = message
        transfer.completed_at = self.clock()
        self.db.commit()
        transfers_total.labels(status="failed").inc()
        logger.warning(
            f"Transfer failed: {message}",
            extra={"seller_id": transfer.seller_id, "transfer_id": str(transfer.id), "status": "failed"},
        )

    def _start_processing(self, transfer: WarehouseTransfer, now: datetime) -> None:
        validate_transition(TransferStatus(transfer.status), TransferStatus.PROCESSING)
        transfer.status = TransferStatus.PROCESSING.value
        transfer.processing_started_at = now

    def _reject(
        self,
        seller_id: str,
        product_id: str,
        source: Warehouse,
        target: Warehouse,
        quantity: int,
        available: int,
    ) -> None:
        log_audit_event(
            self.db,
            action="transfer.rejected",
            seller_id=seller_id,
            entity_type="warehouse",
            entity_id=source.id,
            metadata={
                "reason": "insufficient_stock",
                "productId": product_id,
                "targetWarehouseId": str(target.id),
                "requested": quantity,
                "available": available,
            },
        )
        self.db.commit()
        transfers_total.labels(status="rejected").inc()
        raise InsufficientStock(available=available, requested=quantity)

    # ------------------------------------------------------------------
    # Background jobs
    # ------------------------------------------------------------------

    def run_due_transfers(self, now: Optional[datetime] = None) -> int:
        """Execute scheduled transfers whose scheduled_at has passed.

        Returns:
            Number of transfers that reached a terminal state
        """
        now = now or self.clock()
        due = self.db.query(WarehouseTransfer).filter(
            WarehouseTransfer.status == TransferStatus.SCHEDULED.value,
            WarehouseTransfer.scheduled_at <= now,
        ).order_by(WarehouseTransfer.scheduled_at).all()

        finished = 0
        for transfer in due:
            if self._run_scheduled(transfer, now):
                finished += 1
        return finished

    def _run_scheduled(self, transfer: WarehouseTransfer, now: datetime) -> bool:
        source = self.db.get(Warehouse, transfer.source_warehouse_id)
        target = self.db.get(Warehouse, transfer.target_warehouse_id)
        lock_key = stock_lock_key(transfer.source_warehouse_id, transfer.product_id)
        holder = str(transfer.id)
        if not self.tracker.acquire_lock(lock_key, holder, self.stock_lease_seconds, now):
            # Retried on the next pass
            return False

        try:
            problem = None
            if not source or not target or not source.active or not target.active:
                problem = "Warehouse is no longer active"
            else:
                line = self._stock_line(source.id, transfer.product_id)
                available = line.available_quantity if line else 0
                if available < transfer.quantity:
                    problem = f"Insufficient stock at execution time ({available} available, {transfer.quantity} requested)"

            if problem:
                self._mark_failed(transfer, problem)
                self.tracker.release_lock(lock_key, holder)
                self._announce(transfer)
                return True

            self._start_processing(transfer, now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.tracker.release_lock(lock_key, holder)
            raise

        self._execute(transfer, source, target)
        return True

    def sweep_stuck(self, now: Optional[datetime] = None) -> int:
        """Fail transfers left processing past the timeout and free their locks."""
        now = now or self.clock()
        cutoff = now - timedelta(seconds=self.processing_timeout_seconds)
        stuck = self.db.query(WarehouseTransfer).filter(
            WarehouseTransfer.status == TransferStatus.PROCESSING.value,
            WarehouseTransfer.processing_started_at <= cutoff,
        ).all()

        for transfer in stuck:
            self._mark_failed(transfer, "Transfer exceeded the processing timeout")
            self.tracker.release_lock(stock_lock_key(transfer.source_warehouse_id, transfer.product_id), str(transfer.id))
            self._announce(transfer)
        return len(stuck)

    # ------------------------------------------------------------------
    # Queries / cancel
    # ------------------------------------------------------------------

    def cancel(self, seller_id: str, transfer_id: UUID) -> WarehouseTransfer:
        """Cancel a transfer that is still scheduled (no provider call made yet)."""
        transfer = self.get(seller_id, transfer_id)
        if transfer.status != TransferStatus.SCHEDULED.value:
            raise TransferNotCancellable(
                f"Transfer is {transfer.status}; only scheduled transfers can be cancelled"
            )
        validate_transition(TransferStatus.SCHEDULED, TransferStatus.CANCELLED)
        transfer.status = TransferStatus.CANCELLED.value
        log_audit_event(
            self.db,
            action="transfer.cancelled",
            seller_id=seller_id,
            entity_type="warehouse_transfer",
            entity_id=transfer.id,
        )
        self.db.commit()
        transfers_total.labels(status="cancelled").inc()
        return transfer

    def get(self, seller_id: str, transfer_id: UUID) -> WarehouseTransfer:
        transfer = self.db.query(WarehouseTransfer).filter(
            WarehouseTransfer.id == transfer_id,
            WarehouseTransfer.seller_id == seller_id,
        ).first()
        if transfer is None:
            raise TransferNotFound(f"Transfer {transfer_id} not found")
        return transfer

    def list_transfers(self, seller_id: str, status: Optional[str] = None, limit: int = 100) -> list[WarehouseTransfer]:
        query = self.db.query(WarehouseTransfer).filter(WarehouseTransfer.seller_id == seller_id)
        if status:
            query = query.filter(WarehouseTransfer.status == status)
        return query.order_by(WarehouseTransfer.created_at.desc()).limit(limit).all()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_warehouse(self, seller_id: str, warehouse_id: UUID, label: str) -> Warehouse:
        warehouse = self.db.query(Warehouse).filter(
            Warehouse.id == warehouse_id,
            Warehouse.seller_id == seller_id,
        ).first()
        if warehouse is None:
            raise InvalidWarehouse(f"{label} warehouse {warehouse_id} not found")
        if not warehouse.active:
            raise InvalidWarehouse(f"{label} warehouse {warehouse_id} is inactive")
        if warehouse.provider_name not in self.registry:
            raise InvalidWarehouse(f"{label} warehouse uses unsupported provider '{warehouse.provider_name}'")
        if not self.vault.is_connected(self.db, seller_id, warehouse.provider_name):
            raise InvalidWarehouse(f"{label} warehouse's {warehouse.provider_name} integration is not connected")
        return warehouse

    def _stock_line(self, warehouse_id: UUID, product_id: str, for_update: bool = False) -> Optional[WarehouseStock]:
        query = self.db.query(WarehouseStock).filter(
            WarehouseStock.warehouse_id == warehouse_id,
            WarehouseStock.product_id == product_id,
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def _announce(self, transfer: WarehouseTransfer) -> None:
        """Notify the seller and fan the outcome out to webhook subscribers."""
        completed = transfer.status == TransferStatus.COMPLETED.value
        payload = transfer_payload(transfer)

        if completed:
            request = NotificationRequest(
                user_id=transfer.seller_id,
                type="warehouse_transfer",
                title="Warehouse transfer completed",
                message=f"{transfer.quantity} unit(s) of {transfer.product_id} moved between warehouses.",
                data=payload,
            )
        else:
            request = NotificationRequest(
                user_id=transfer.seller_id,
                type="warehouse_transfer_failed",
                title="Warehouse transfer failed",
                message=transfer.error_message or "The transfer could not be completed.",
                data=payload,
            )
        send_safely(self.notifier, request)

        if self.dispatcher is None:
            return
        event_type = "warehouse.transfer.completed" if completed else "warehouse.transfer.failed"
        try:
            self.dispatcher.dispatch(
                transfer.seller_id,
                event_type,
                payload,
                event_key=f"{event_type}:{transfer.id}",
            )
        except Exception:
            logger.warning(
                f"Failed to dispatch {event_type}",
                exc_info=True,
                extra={"transfer_id": str(transfer.id), "seller_id": transfer.seller_id},
            )
