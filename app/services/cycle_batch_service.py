import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (DomainError, InvalidStateTransition, NotFoundError, PersistenceConflict,
                             UnexpectedError, ValidationError)
from app.models.box_type import BoxType
from app.models.delivery_cycle import CycleStatus, DeliveryCycle
from app.models.order import Order
from app.models.side_effect import SideEffectIntent
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.subscription_history import HistoryAction
from app.services.eligibility_service import EligibilityOutcome, resolve_eligibility
from app.services.history_service import HistoryRecorder
from app.services.notification_service import enqueue_side_effects
from app.services.pricing_service import PricingService, round_money
from app.services.subscription_service import find_owned_address

logger = logging.getLogger(__name__)

GENERATABLE_CYCLE_STATUSES = (CycleStatus.UPCOMING, CycleStatus.DELIVERED)


class BatchError(BaseModel):
    subscription_id: str
    error: str
    reason_code: str = UnexpectedError.reason_code


class BatchResult(BaseModel):
    cycle_id: Optional[str] = None
    cycle_date: Optional[date] = None
    generated: int = 0
    skipped: int = 0
    excluded: int = 0
    errors: list[BatchError] = Field(default_factory=list)
    message: Optional[str] = None


class CycleBatchService:
    """Generates one order per eligible subscription for a delivery cycle.

    Each subscription is its own unit of work: order insert, subscription
    update, history row and outbox intent commit together. The unique index
    on orders(subscription_id, delivery_cycle_id) makes reruns and overlapping
    runs safe.
    """

    def __init__(self, pricing: Optional[PricingService] = None, history: Optional[HistoryRecorder] = None):
        self.pricing = pricing or PricingService()
        self.history = history or HistoryRecorder()
        self.logger = logging.getLogger(__name__)

    def _load_cycle(self, db: Session, cycle_id: str) -> DeliveryCycle:
        cycle = db.query(DeliveryCycle).filter(DeliveryCycle.id == cycle_id).first()
        if not cycle:
            raise NotFoundError(f"Delivery cycle not found: {cycle_id}")
        if cycle.status not in GENERATABLE_CYCLE_STATUSES:
            raise ValidationError(
                f"Orders can only be generated for upcoming or delivered cycles (cycle is {cycle.status.value})",
                reason_code="cycle_not_generatable"
            )
        return cycle

    def _resolve_price(self, db: Session, subscription: Subscription) -> tuple[Decimal, Decimal, Decimal, Optional[str]]:
        """(original, discount_percent, final, promo_code) for the next order"""
        quote = self.pricing.compute_price(db, subscription.box_type, subscription.promo_code)
        if subscription.promo_code and quote.resolved_code is None:
            # Stored promo no longer validates: keep charging what the subscriber signed up for
            return (
                round_money(subscription.base_price_eur),
                Decimal(subscription.discount_percent or 0),
                round_money(subscription.current_price_eur),
                subscription.promo_code,
            )
        return quote.original_price_eur, quote.discount_percent, quote.final_price_eur, quote.resolved_code

    def _create_order_unit(
        self,
        db: Session,
        subscription: Subscription,
        cycle: DeliveryCycle,
        performed_by: str,
        late_addition: bool = False
    ) -> Order:
        if not subscription.default_address_id:
            raise ValidationError("No default address configured", reason_code="missing_address")
        if find_owned_address(db, subscription.default_address_id, subscription.user_id) is None:
            raise ValidationError("Default address does not belong to the subscriber",
                                  reason_code="address_ownership_mismatch")

        original, discount, final, promo_code = self._resolve_price(db, subscription)
        now = datetime.utcnow()

        order = Order(
            id=str(uuid.uuid4()),
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            delivery_cycle_id=cycle.id,
            order_type="subscription",
            box_type=subscription.box_type,
            address_id=subscription.default_address_id,
            personalization=subscription.preferences_snapshot(),
            promo_code=promo_code,
            discount_percent=discount,
            original_price_eur=original,
            final_price_eur=final,
            status="pending",
            created_at=now
        )
        db.add(order)
        previous_cycle_id = subscription.last_delivered_cycle_id

        try:
            db.flush()
        except IntegrityError as e:
            db.rollback()
            raise PersistenceConflict(f"Order already exists for subscription {subscription.id} in cycle {cycle.id}") from e

        updated = db.query(Subscription).filter(
            Subscription.id == subscription.id,
            Subscription.status == SubscriptionStatus.ACTIVE
        ).update({'last_delivered_cycle_id': cycle.id, 'updated_at': now}, synchronize_session=False)
        if updated == 0:
            db.rollback()
            current = db.query(Subscription.status).filter(Subscription.id == subscription.id).scalar()
            raise InvalidStateTransition(current.value if current else "unknown", "generate an order for")

        details = {
            'cycle_id': cycle.id,
            'order_id': order.id,
            'before': {'last_delivered_cycle_id': previous_cycle_id},
            'after': {'last_delivered_cycle_id': cycle.id},
            'final_price_eur': final,
        }
        if late_addition:
            details['late_addition'] = True
        self.history.record(db, subscription.id, HistoryAction.ORDER_GENERATED, performed_by, details, created_at=now)

        enqueue_side_effects(db, [SideEffectIntent(
            kind="delivery_upcoming",
            subscription_id=subscription.id,
            payload={'user_id': subscription.user_id, 'order_id': order.id,
                     'delivery_date': cycle.delivery_date.isoformat()}
        )])
        db.commit()
        return order

    def _process_one(self, db: Session, subscription_id: str, cycle: DeliveryCycle,
                     has_order: bool, box_types: dict, performed_by: str) -> tuple[str, Optional[DomainError]]:
        """Run one subscription through eligibility and order creation; returns (outcome, error)"""
        try:
            subscription = db.query(Subscription).filter(Subscription.id == subscription_id).first()
            if subscription is None:
                return EligibilityOutcome.EXCLUDED.value, None

            decision = resolve_eligibility(subscription, cycle, has_order, box_types.get(subscription.box_type))
            if decision.outcome != EligibilityOutcome.ELIGIBLE:
                return decision.outcome.value, None

            self._create_order_unit(db, subscription, cycle, performed_by)
            return "generated", None
        except PersistenceConflict:
            self.logger.info(f"run_cycle_batch: Conflict - subscription: {subscription_id}, already generated")
            return EligibilityOutcome.SKIPPED.value, None
        except InvalidStateTransition as e:
            # Left the active state between the eligibility read and the write
            self.logger.info(f"run_cycle_batch: Excluded - subscription: {subscription_id}, {e}")
            return EligibilityOutcome.EXCLUDED.value, None
        except DomainError as e:
            db.rollback()
            self.logger.error(f"run_cycle_batch: Subscription failure - subscription: {subscription_id}, error: {e}")
            return "error", e
        except Exception as e:
            db.rollback()
            self.logger.error(f"run_cycle_batch: Subscription failure - subscription: {subscription_id}, error: {e}")
            return "error", UnexpectedError(str(e) or e.__class__.__name__)

    def run_cycle_batch(
        self,
        db: Session,
        cycle_id: str,
        performed_by: str = "system",
        session_factory: Optional[Callable[[], Session]] = None,
        max_workers: int = 1
    ) -> BatchResult:
        """
        Generate orders for every eligible subscription in a cycle.
        Per-subscription failures are collected in the result; only a missing
        or closed cycle raises.
        """
        self.logger.info(f"run_cycle_batch: Entry - cycle: {cycle_id}, by: {performed_by}, workers: {max_workers}")

        cycle = self._load_cycle(db, cycle_id)
        db.query(DeliveryCycle).filter(
            DeliveryCycle.id == cycle.id,
            DeliveryCycle.generated_at.is_(None)
        ).update({'generated_at': datetime.utcnow()}, synchronize_session=False)
        db.commit()
        db.refresh(cycle)

        result = BatchResult(cycle_id=cycle.id, cycle_date=cycle.delivery_date)

        subscription_ids = [row[0] for row in db.query(Subscription.id).order_by(Subscription.id).all()]
        ordered = {
            row[0] for row in db.query(Order.subscription_id).filter(
                Order.delivery_cycle_id == cycle.id,
                Order.subscription_id.isnot(None)
            ).all()
        }
        box_types = {box.id: box for box in db.query(BoxType).all()}

        outcomes = []
        if max_workers > 1 and session_factory is not None:
            # Workers get their own sessions; ORM objects are not shared across threads
            target_cycle_id = cycle.id

            def work(subscription_id: str):
                session = session_factory()
                try:
                    local_cycle = session.query(DeliveryCycle).filter(DeliveryCycle.id == target_cycle_id).one()
                    local_boxes = {box.id: box for box in session.query(BoxType).all()}
                    return subscription_id, self._process_one(
                        session, subscription_id, local_cycle, subscription_id in ordered, local_boxes, performed_by)
                finally:
                    session.close()

            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                outcomes = list(executor.map(work, subscription_ids))
        else:
            for subscription_id in subscription_ids:
                outcomes.append((subscription_id, self._process_one(
                    db, subscription_id, cycle, subscription_id in ordered, box_types, performed_by)))

        for subscription_id, (outcome, error) in outcomes:
            if outcome == "generated":
                result.generated += 1
            elif outcome == EligibilityOutcome.SKIPPED.value:
                result.skipped += 1
            elif outcome == EligibilityOutcome.EXCLUDED.value:
                result.excluded += 1
            else:
                result.errors.append(BatchError(
                    subscription_id=subscription_id, error=error.message, reason_code=error.reason_code))

        self._enqueue_summary(db, result, performed_by)
        self.logger.info(
            f"run_cycle_batch: Success - cycle: {cycle_id}, generated: {result.generated}, "
            f"skipped: {result.skipped}, excluded: {result.excluded}, errors: {len(result.errors)}")
        return result

    def _enqueue_summary(self, db: Session, result: BatchResult, performed_by: str):
        """Admin notifications about the run; never fails the run"""
        intents = []
        summary = result.model_dump(mode="json")
        summary['performed_by'] = performed_by
        if result.errors:
            intents.append(SideEffectIntent(kind="admin_batch_errors", payload=summary))
        if result.generated:
            intents.append(SideEffectIntent(kind="admin_batch_summary", payload=summary))
        if not intents:
            return
        try:
            enqueue_side_effects(db, intents)
            db.commit()
        except Exception as e:
            db.rollback()
            self.logger.error(f"_enqueue_summary: Failure - {e}")

    def find_active_cycle(self, db: Session, today: Optional[date] = None) -> Optional[DeliveryCycle]:
        """Earliest upcoming cycle whose delivery date has been reached"""
        today = today or date.today()
        return db.query(DeliveryCycle).filter(
            DeliveryCycle.status == CycleStatus.UPCOMING,
            DeliveryCycle.delivery_date <= today
        ).order_by(DeliveryCycle.delivery_date).first()

    def run_cycle_batch_for_active_cycle(
        self,
        db: Session,
        performed_by: str = "system",
        today: Optional[date] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        max_workers: int = 1
    ) -> BatchResult:
        cycle = self.find_active_cycle(db, today)
        if not cycle:
            self.logger.info("run_cycle_batch_for_active_cycle: No eligible cycle")
            return BatchResult(message="No upcoming cycle is due for generation")
        return self.run_cycle_batch(db, cycle.id, performed_by, session_factory=session_factory,
                                    max_workers=max_workers)

    def generate_single_order(
        self,
        db: Session,
        subscription_id: str,
        cycle_id: str,
        performed_by: str
    ) -> Optional[Order]:
        """
        Create the order for a subscription that joined after the cycle was
        processed. Returns None when the order already exists.
        """
        self.logger.info(f"generate_single_order: Entry - subscription: {subscription_id}, cycle: {cycle_id}")

        cycle = self._load_cycle(db, cycle_id)
        subscription = db.query(Subscription).filter(Subscription.id == subscription_id).first()
        if not subscription:
            raise NotFoundError(f"Subscription not found: {subscription_id}")

        has_order = db.query(Order.id).filter(
            Order.subscription_id == subscription_id,
            Order.delivery_cycle_id == cycle_id
        ).first() is not None
        box = db.query(BoxType).filter(BoxType.id == subscription.box_type).first()

        decision = resolve_eligibility(subscription, cycle, has_order, box)
        if decision.outcome == EligibilityOutcome.SKIPPED:
            self.logger.info(f"generate_single_order: Skipped - order exists for {subscription_id}")
            return None
        if decision.outcome == EligibilityOutcome.EXCLUDED:
            raise ValidationError(f"Subscription is not eligible for this cycle: {decision.reason}",
                                  reason_code=decision.reason)

        try:
            order = self._create_order_unit(db, subscription, cycle, performed_by, late_addition=True)
        except PersistenceConflict:
            return None
        except Exception as e:
            db.rollback()
            self.logger.error(f"generate_single_order: Failure - {e}")
            raise

        self.logger.info(f"generate_single_order: Success - order: {order.id}")
        return order
