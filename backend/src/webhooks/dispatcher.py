"""
Webhook Dispatcher - fan-out of events to seller-registered subscribers

Each (event, subscriber) pair gets exactly one WebhookDelivery row. Attempts
run concurrently on the worker pool so a slow or failing subscriber never
delays another. Failed attempts are retried on the shared backoff policy;
after the last attempt the delivery is dead-lettered and kept for manual
redelivery.
"""

import json
import logging
import secrets
import time
import uuid
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID

import httpx
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import NotFound, ValidationFailed
from models import WebhookDelivery, WebhookDeliveryStatus, WebhookSubscription, utcnow
from observability.metrics import webhook_deliveries_total, webhook_delivery_seconds
from sync.backoff import BackoffPolicy
from .signing import sign_delivery


logger = logging.getLogger(__name__)

WILDCARD_EVENT = "*"


def validate_subscriber_url(url: str) -> None:
    """Raise ValidationFailed unless url is an absolute http(s) URL httpx can send to."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise ValidationFailed(f"url is not a valid URL: {e}")
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValidationFailed("url must be an absolute http(s) URL")


@dataclass
class _AttemptOutcome:
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


class WebhookDispatcher:
    """
    Usage:
        dispatcher = container.dispatcher(db)
        dispatcher.dispatch("seller-1", "order.shipped", {"orderId": "o-1"}, event_id=event.id)
        dispatcher.retry_due()
    """

    def __init__(
        self,
        db: Session,
        http_client: httpx.Client,
        executor: Executor,
        backoff: BackoffPolicy,
        timeout_seconds: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.http_client = http_client
        self.executor = executor
        self.backoff = backoff
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def create_subscription(
        self,
        seller_id: str,
        event_type: str,
        url: str,
        secret: Optional[str] = None,
    ) -> WebhookSubscription:
        if not event_type:
            raise ValidationFailed("eventType is required")
        validate_subscriber_url(url)

        subscription = WebhookSubscription(
            seller_id=seller_id,
            event_type=event_type,
            url=url,
            secret=secret or secrets.token_hex(32),
            active=True,
        )
        self.db.add(subscription)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationFailed(f"A subscription for {event_type} at {url} already exists")
        return subscription

    def list_subscriptions(self, seller_id: str) -> list[WebhookSubscription]:
        return self.db.query(WebhookSubscription).filter(
            WebhookSubscription.seller_id == seller_id,
        ).order_by(WebhookSubscription.created_at).all()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(
        self,
        seller_id: str,
        event_type: str,
        payload: dict[str, Any],
        event_id: Optional[UUID] = None,
        event_key: Optional[str] = None,
    ) -> list[WebhookDelivery]:
        """
        Create one delivery per matching subscriber and attempt them.

        Dispatching the same event (same event_id or event_key) again creates
        no new deliveries.

        Returns:
            Deliveries created by this call
        """
        now = self.clock()
        key_base = event_key or (str(event_id) if event_id else uuid.uuid4().hex)
        subscriptions = self.db.query(WebhookSubscription).filter(
            WebhookSubscription.seller_id == seller_id,
            WebhookSubscription.active.is_(True),
            or_(
                WebhookSubscription.event_type == event_type,
                WebhookSubscription.event_type == WILDCARD_EVENT,
            ),
        ).all()

        envelope = {
            "eventType": event_type,
            "timestamp": now.isoformat(),
            "triggeredBy": "stockbridge",
            "data": payload,
        }

        created = []
        for subscription in subscriptions:
            dedupe_key = f"{key_base}:{subscription.id}"
            if self.db.query(WebhookDelivery).filter(WebhookDelivery.dedupe_key == dedupe_key).count():
                continue
            delivery = WebhookDelivery(
                seller_id=seller_id,
                event_id=event_id,
                subscription_id=subscription.id,
                subscriber_url=subscription.url,
                event_type=event_type,
                payload=envelope,
                dedupe_key=dedupe_key,
                attempt=0,
                status=WebhookDeliveryStatus.PENDING.value,
                next_attempt_at=now,
                created_at=now,
            )
            self.db.add(delivery)
            try:
                self.db.commit()
            except IntegrityError:
                # Concurrent dispatch of the same event created it first
                self.db.rollback()
                continue
            created.append(delivery)

        if created:
            self._attempt(created)
        logger.info(
            f"Dispatched {event_type} to {len(created)} subscriber(s)",
            extra={"seller_id": seller_id, "event_id": str(event_id) if event_id else None},
        )
        return created

    def retry_due(self, now: Optional[datetime] = None, limit: int = 500) -> int:
        """Attempt pending deliveries whose backoff window has elapsed."""
        now = now or self.clock()
        due = self.db.query(WebhookDelivery).filter(
            WebhookDelivery.status == WebhookDeliveryStatus.PENDING.value,
            WebhookDelivery.next_attempt_at <= now,
        ).order_by(WebhookDelivery.next_attempt_at).limit(limit).all()
        if due:
            self._attempt(due)
        return len(due)

    def redeliver(self, seller_id: str, delivery_id: UUID) -> WebhookDelivery:
        """Manually retry a delivery (typically a dead-lettered one) from attempt zero."""
        delivery = self.get_delivery(seller_id, delivery_id)
        if delivery.status == WebhookDeliveryStatus.DELIVERED.value:
            raise ValidationFailed("Delivery already succeeded")
        delivery.status = WebhookDeliveryStatus.PENDING.value
        delivery.attempt = 0
        delivery.next_attempt_at = self.clock()
        self.db.commit()
        self._attempt([delivery])
        return delivery

    def get_delivery(self, seller_id: str, delivery_id: UUID) -> WebhookDelivery:
        delivery = self.db.query(WebhookDelivery).filter(
            WebhookDelivery.id == delivery_id,
            WebhookDelivery.seller_id == seller_id,
        ).first()
        if delivery is None:
            raise NotFound(f"Delivery {delivery_id} not found")
        return delivery

    def list_deliveries(self, seller_id: str, status: Optional[str] = None, limit: int = 100) -> list[WebhookDelivery]:
        query = self.db.query(WebhookDelivery).filter(WebhookDelivery.seller_id == seller_id)
        if status:
            query = query.filter(WebhookDelivery.status == status)
        return query.order_by(WebhookDelivery.created_at.desc()).limit(limit).all()

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    def _attempt(self, deliveries: list[WebhookDelivery]) -> None:
        # Snapshot everything the worker threads need; ORM objects stay on this thread
        jobs = []
        for delivery in deliveries:
            subscription = self.db.get(WebhookSubscription, delivery.subscription_id)
            secret = subscription.secret if subscription is not None else ""
            future = self.executor.submit(
                self._post, str(delivery.id), delivery.subscriber_url, secret, delivery.event_type, delivery.payload
            )
            jobs.append((delivery, future))

        for delivery, future in jobs:
            try:
                outcome = future.result()
            except Exception as e:
                logger.error(
                    f"Delivery attempt raised: {e}",
                    exc_info=True,
                    extra={"delivery_id": str(delivery.id), "seller_id": delivery.seller_id},
                )
                outcome = _AttemptOutcome(error=f"{type(e).__name__}: {e}")
            self._record(delivery, outcome)
        self.db.commit()

    def _post(self, delivery_id: str, url: str, secret: str, event_type: str, envelope: dict[str, Any]) -> _AttemptOutcome:
        body = json.dumps(envelope, default=str).encode()
        timestamp = str(int(self.clock().timestamp()))
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Event": event_type,
            "X-Webhook-Delivery": delivery_id,
            "X-Webhook-Timestamp": timestamp,
            "X-Webhook-Signature": sign_delivery(secret, timestamp, body),
        }
        start = time.monotonic()
        try:
            response = self.http_client.post(url, content=body, headers=headers, timeout=self.timeout_seconds)
            return _AttemptOutcome(status_code=response.status_code)
        except httpx.TimeoutException:
            return _AttemptOutcome(error=f"Timed out after {self.timeout_seconds:g}s")
        except httpx.HTTPError as e:
            return _AttemptOutcome(error=f"{type(e).__name__}: {e}")
        finally:
            webhook_delivery_seconds.observe(time.monotonic() - start)

    def _record(self, delivery: WebhookDelivery, outcome: _AttemptOutcome) -> None:
        now = self.clock()
        delivery.attempt += 1
        delivery.last_attempt_at = now
        delivery.last_status_code = outcome.status_code
        delivery.last_error = outcome.error or (
            None if outcome.delivered else f"Subscriber responded {outcome.status_code}"
        )

        if outcome.delivered:
            delivery.status = WebhookDeliveryStatus.DELIVERED.value
            delivery.delivered_at = now
            delivery.next_attempt_at = None
            webhook_deliveries_total.labels(status="delivered").inc()
            return

        if self.backoff.exhausted(delivery.attempt):
            delivery.status = WebhookDeliveryStatus.DEAD_LETTERED.value
            delivery.next_attempt_at = None
            webhook_deliveries_total.labels(status="dead_lettered").inc()
            logger.warning(
                f"Delivery dead-lettered after {delivery.attempt} attempt(s): {delivery.last_error}",
                extra={"delivery_id": str(delivery.id), "seller_id": delivery.seller_id},
            )
            return

        delivery.next_attempt_at = self.backoff.next_attempt_at(now, delivery.attempt)
        webhook_deliveries_total.labels(status="retry").inc()
