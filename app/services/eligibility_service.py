import enum
import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.models.box_type import BoxType
from app.models.delivery_cycle import DeliveryCycle
from app.models.order import Order
from app.models.subscription import Frequency, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)


class EligibilityOutcome(str, enum.Enum):
    ELIGIBLE = "eligible"
    SKIPPED = "skipped"      # order already exists for this cycle
    EXCLUDED = "excluded"    # deliberately left out of this cycle


class EligibilityDecision(BaseModel):
    outcome: EligibilityOutcome
    reason: Optional[str] = None


def resolve_eligibility(
    subscription: Subscription,
    cycle: DeliveryCycle,
    has_order: bool,
    box_type: Optional[BoxType]
) -> EligibilityDecision:
    """
    Decide whether `subscription` gets an order in `cycle`. Rules run in order
    and the first one that fails decides the outcome:

    1. the subscription is active
    2. no order exists yet for (subscription, cycle)
    3. the cycle is not dated before the subscription's first cycle
    4. the cycle was not already processed while the subscription was paused
    5. seasonal subscriptions only ship in seasonal cycles
    6. the box type can still be sold
    """
    if subscription.status != SubscriptionStatus.ACTIVE:
        return EligibilityDecision(outcome=EligibilityOutcome.EXCLUDED, reason="not_active")

    if has_order:
        return EligibilityDecision(outcome=EligibilityOutcome.SKIPPED, reason="already_ordered")

    first_cycle = subscription.first_cycle
    if first_cycle is not None and cycle.delivery_date < first_cycle.delivery_date:
        return EligibilityDecision(outcome=EligibilityOutcome.EXCLUDED, reason="before_first_cycle")

    # Resume restarts delivery with the next unprocessed cycle
    if subscription.resumed_at is not None and cycle.generated_at is not None \
            and cycle.generated_at <= subscription.resumed_at:
        return EligibilityDecision(outcome=EligibilityOutcome.EXCLUDED, reason="missed_while_paused")

    if subscription.frequency == Frequency.SEASONAL and not cycle.is_seasonal:
        return EligibilityDecision(outcome=EligibilityOutcome.EXCLUDED, reason="not_seasonal_cycle")

    if box_type is None or not box_type.is_sellable:
        return EligibilityDecision(outcome=EligibilityOutcome.EXCLUDED, reason="box_not_sellable")

    return EligibilityDecision(outcome=EligibilityOutcome.ELIGIBLE)


class CycleEligibilityResolver:
    """Loads the state resolve_eligibility needs for a single pair"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def order_exists(self, db: Session, subscription_id: str, cycle_id: str) -> bool:
        return db.query(Order.id).filter(
            Order.subscription_id == subscription_id,
            Order.delivery_cycle_id == cycle_id
        ).first() is not None

    def resolve(self, db: Session, subscription: Subscription, cycle: DeliveryCycle) -> EligibilityDecision:
        box = db.query(BoxType).filter(BoxType.id == subscription.box_type).first()
        decision = resolve_eligibility(
            subscription,
            cycle,
            has_order=self.order_exists(db, subscription.id, cycle.id),
            box_type=box
        )
        self.logger.debug(
            f"resolve: subscription: {subscription.id}, cycle: {cycle.id}, "
            f"outcome: {decision.outcome.value}, reason: {decision.reason}")
        return decision
