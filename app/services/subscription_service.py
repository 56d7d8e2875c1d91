import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.orm import Session

from app.core.errors import DomainError, InvalidStateTransition, NotFoundError, ValidationError
from app.models.address import Address
from app.models.box_type import BoxType
from app.models.side_effect import MutationResult, SideEffectIntent
from app.models.subscription import PREFERENCE_FIELDS, Frequency, Subscription, SubscriptionStatus
from app.models.subscription_history import HistoryAction
from app.services.history_service import HistoryRecorder
from app.services.notification_service import enqueue_side_effects

logger = logging.getLogger(__name__)

CANCELLATION_REASON_MAX_LENGTH = 1000

ACTIVE = SubscriptionStatus.ACTIVE
PAUSED = SubscriptionStatus.PAUSED

# States each operation may start from
ALLOWED_FROM = {
    'pause': {ACTIVE},
    'resume': {PAUSED},
    'cancel': {ACTIVE, PAUSED},
    'expire': {ACTIVE},
    'update_preferences': {ACTIVE, PAUSED},
    'update_address': {ACTIVE, PAUSED},
    'update_frequency': {ACTIVE},
}


class SubscriptionPreferences(BaseModel):
    """Full replacement payload for a subscription's personalization fields"""
    wants_personalization: bool
    sports: Optional[list[str]] = Field(default=None, max_length=20)
    sport_other: Optional[str] = Field(default=None, max_length=200)
    colors: Optional[list[str]] = Field(default=None, max_length=20)
    flavors: Optional[list[str]] = Field(default=None, max_length=20)
    flavor_other: Optional[str] = Field(default=None, max_length=200)
    dietary: Optional[list[str]] = Field(default=None, max_length=20)
    dietary_other: Optional[str] = Field(default=None, max_length=200)
    size_upper: Optional[str] = Field(default=None, max_length=20)
    size_lower: Optional[str] = Field(default=None, max_length=20)
    additional_notes: Optional[str] = Field(default=None, max_length=1000)

    model_config = ConfigDict(extra="forbid")

    @field_validator('sports', 'colors', 'flavors', 'dietary', mode='after')
    @classmethod
    def clean_choices(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return v
        cleaned = [item.strip() for item in v if item and item.strip()]
        if any(len(item) > 100 for item in cleaned):
            raise ValueError("choice values must be at most 100 characters")
        return cleaned

    @field_validator('sport_other', 'flavor_other', 'dietary_other', 'size_upper', 'size_lower',
                     'additional_notes', mode='after')
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


def validate_preference_update(prefs: SubscriptionPreferences, is_premium: bool) -> list[str]:
    """
    Business rules for personalized boxes:
    - at least one sport, flavor and dietary choice
    - an 'other' choice needs its free-text field
    - premium boxes also need both sizes and at least one color
    """
    errors = []
    if not prefs.wants_personalization:
        return errors

    if not prefs.sports:
        errors.append("At least one sport is required")
    elif 'other' in prefs.sports and not prefs.sport_other:
        errors.append("Please specify the other sport")

    if is_premium:
        if not prefs.size_upper:
            errors.append("Upper body size is required for premium boxes")
        if not prefs.size_lower:
            errors.append("Lower body size is required for premium boxes")
        if not prefs.colors:
            errors.append("At least one color is required for premium boxes")

    if not prefs.flavors:
        errors.append("At least one flavor is required")
    elif 'other' in prefs.flavors and not prefs.flavor_other:
        errors.append("Please specify the other flavor")

    if not prefs.dietary:
        errors.append("Dietary preferences are required")
    elif 'other' in prefs.dietary and not prefs.dietary_other:
        errors.append("Please specify the other dietary restriction")

    return errors


def compute_subscription_state(subscription: Subscription) -> dict:
    """Which operations the subscription currently allows"""
    status = subscription.status
    return {
        'can_pause': status in ALLOWED_FROM['pause'],
        'can_resume': status in ALLOWED_FROM['resume'],
        'can_cancel': status in ALLOWED_FROM['cancel'],
        'can_edit_preferences': status in ALLOWED_FROM['update_preferences'],
        'can_edit_address': status in ALLOWED_FROM['update_address'],
        'can_change_frequency': status in ALLOWED_FROM['update_frequency'],
        'is_active': status == ACTIVE,
        'is_paused': status == PAUSED,
        'is_cancelled': status == SubscriptionStatus.CANCELLED,
    }


def find_owned_address(db: Session, address_id: str, user_id: str) -> Optional[Address]:
    return db.query(Address).filter(Address.id == address_id, Address.user_id == user_id).first()


@dataclass
class _Change:
    values: dict
    history_action: HistoryAction
    details: Optional[dict] = None
    intents: list[SideEffectIntent] = field(default_factory=list)


class SubscriptionService:
    """Subscription lifecycle state machine.

    Every operation reads the subscription, checks the requested transition
    against ALLOWED_FROM, then writes through an UPDATE guarded on the status it
    read. The status change, its history row and any outbox intents are
    committed together or not at all.
    """

    def __init__(
        self,
        history: Optional[HistoryRecorder] = None,
        address_lookup: Optional[Callable[[Session, str, str], Optional[Address]]] = None
    ):
        self.history = history or HistoryRecorder()
        self.address_lookup = address_lookup or find_owned_address
        self.logger = logging.getLogger(__name__)

    def get_subscription(self, db: Session, subscription_id: str, owner_id: Optional[str] = None) -> Subscription:
        """Load a subscription; with owner_id set, other users' subscriptions are reported as missing"""
        subscription = db.query(Subscription).filter(Subscription.id == subscription_id).first()
        if not subscription or (owner_id is not None and subscription.user_id != owner_id):
            raise NotFoundError("Subscription not found or access denied")
        return subscription

    def list_subscriptions(self, db: Session, user_id: str) -> list[Subscription]:
        return db.query(Subscription).filter(
            Subscription.user_id == user_id
        ).order_by(Subscription.created_at.desc()).all()

    def _ensure_allowed(self, subscription: Subscription, action: str):
        if subscription.status not in ALLOWED_FROM[action]:
            raise InvalidStateTransition(subscription.status.value, action)

    def _guarded_update(self, db: Session, subscription: Subscription, action: str, values: dict, now: datetime):
        expected = subscription.status
        updated = db.query(Subscription).filter(
            Subscription.id == subscription.id,
            Subscription.status == expected
        ).update({**values, 'updated_at': now}, synchronize_session=False)

        if updated == 0:
            # Someone else moved the subscription since we read it
            db.rollback()
            current = db.query(Subscription.status).filter(Subscription.id == subscription.id).scalar()
            raise InvalidStateTransition(current.value if current else "unknown", action)

    def _transition(
        self,
        db: Session,
        action: str,
        subscription_id: str,
        performed_by: str,
        owner_id: Optional[str],
        build: Callable[[Subscription], _Change],
        now: Optional[datetime] = None
    ) -> MutationResult:
        self.logger.info(f"{action}: Entry - subscription: {subscription_id}, by: {performed_by}")
        now = now or datetime.utcnow()

        try:
            subscription = self.get_subscription(db, subscription_id, owner_id)
            self._ensure_allowed(subscription, action)
            change = build(subscription)

            self._guarded_update(db, subscription, action, change.values, now)
            self.history.record(
                db,
                subscription_id=subscription_id,
                action=change.history_action,
                performed_by=performed_by,
                details=change.details,
                created_at=now
            )
            enqueue_side_effects(db, change.intents)
            db.commit()

            new_status = change.values.get('status', subscription.status)
            self.logger.info(f"{action}: Success - subscription: {subscription_id}, status: {new_status.value}")
            return MutationResult(
                success=True,
                subscription_id=subscription_id,
                action=action,
                status=new_status.value,
                side_effects=change.intents
            )
        except DomainError as e:
            db.rollback()
            self.logger.warning(f"{action}: Rejected - subscription: {subscription_id}, reason: {e.reason_code} - {e}")
            raise
        except Exception as e:
            db.rollback()
            self.logger.error(f"{action}: Failure - {e}")
            raise

    def pause_subscription(
        self, db: Session, subscription_id: str, performed_by: str,
        owner_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> MutationResult:
        now = now or datetime.utcnow()

        def build(sub: Subscription) -> _Change:
            return _Change(
                values={'status': PAUSED, 'paused_at': now},
                history_action=HistoryAction.PAUSED,
                details={'before': {'status': sub.status.value}, 'after': {'status': PAUSED.value, 'paused_at': now}},
                intents=[SideEffectIntent(kind="subscription_paused", subscription_id=sub.id,
                                          payload={'user_id': sub.user_id})]
            )

        return self._transition(db, 'pause', subscription_id, performed_by, owner_id, build, now)

    def resume_subscription(
        self, db: Session, subscription_id: str, performed_by: str,
        owner_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> MutationResult:
        """Cycles processed while paused are not backfilled; delivery restarts with the next cycle."""
        now = now or datetime.utcnow()

        def build(sub: Subscription) -> _Change:
            return _Change(
                values={'status': ACTIVE, 'paused_at': None, 'resumed_at': now},
                history_action=HistoryAction.RESUMED,
                details={'before': {'status': sub.status.value, 'paused_at': sub.paused_at},
                         'after': {'status': ACTIVE.value, 'paused_at': None, 'resumed_at': now}},
                intents=[SideEffectIntent(kind="subscription_resumed", subscription_id=sub.id,
                                          payload={'user_id': sub.user_id})]
            )

        return self._transition(db, 'resume', subscription_id, performed_by, owner_id, build, now)

    def cancel_subscription(
        self, db: Session, subscription_id: str, performed_by: str, reason: str,
        owner_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> MutationResult:
        now = now or datetime.utcnow()

        def build(sub: Subscription) -> _Change:
            cleaned = (reason or "").strip()
            if not cleaned or len(cleaned) > CANCELLATION_REASON_MAX_LENGTH:
                raise ValidationError(
                    f"Cancellation reason must be 1-{CANCELLATION_REASON_MAX_LENGTH} characters",
                    reason_code="invalid_cancellation_reason"
                )

            intents = [SideEffectIntent(kind="subscription_cancelled", subscription_id=sub.id,
                                        payload={'user_id': sub.user_id, 'reason': cleaned})]
            remaining = db.query(Subscription.id).filter(
                Subscription.user_id == sub.user_id,
                Subscription.status == ACTIVE,
                Subscription.id != sub.id
            ).first()
            if remaining is None:
                intents.append(SideEffectIntent(kind="contact_sync", subscription_id=sub.id,
                                                payload={'user_id': sub.user_id, 'is_subscriber': False}))

            return _Change(
                values={'status': SubscriptionStatus.CANCELLED, 'cancelled_at': now, 'cancellation_reason': cleaned},
                history_action=HistoryAction.CANCELLED,
                details={'before': {'status': sub.status.value},
                         'after': {'status': SubscriptionStatus.CANCELLED.value, 'cancelled_at': now},
                         'reason': cleaned},
                intents=intents
            )

        return self._transition(db, 'cancel', subscription_id, performed_by, owner_id, build, now)

    def expire_subscription(
        self, db: Session, subscription_id: str, performed_by: str = "system", now: Optional[datetime] = None
    ) -> MutationResult:
        """Terminal transition; callable by the system or by staff"""

        def build(sub: Subscription) -> _Change:
            return _Change(
                values={'status': SubscriptionStatus.EXPIRED},
                history_action=HistoryAction.EXPIRED,
                details={'before': {'status': sub.status.value}, 'after': {'status': SubscriptionStatus.EXPIRED.value}},
                intents=[SideEffectIntent(kind="subscription_expired", subscription_id=sub.id,
                                          payload={'user_id': sub.user_id})]
            )

        return self._transition(db, 'expire', subscription_id, performed_by, None, build, now)

    def update_preferences(
        self, db: Session, subscription_id: str, performed_by: str, preferences: SubscriptionPreferences,
        owner_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> MutationResult:
        def build(sub: Subscription) -> _Change:
            box = db.query(BoxType).filter(BoxType.id == sub.box_type).first()
            errors = validate_preference_update(preferences, is_premium=bool(box and box.is_premium))
            if errors:
                raise ValidationError("Invalid preferences", errors=errors, reason_code="invalid_preferences")

            after = preferences.model_dump()
            return _Change(
                values={name: after[name] for name in PREFERENCE_FIELDS},
                history_action=HistoryAction.PREFERENCES_UPDATED,
                details={'before': sub.preferences_snapshot(), 'after': after},
                intents=[SideEffectIntent(kind="preferences_updated", subscription_id=sub.id,
                                          payload={'user_id': sub.user_id})]
            )

        return self._transition(db, 'update_preferences', subscription_id, performed_by, owner_id, build, now)

    def update_address(
        self, db: Session, subscription_id: str, performed_by: str, address_id: str,
        owner_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> MutationResult:
        def build(sub: Subscription) -> _Change:
            address = self.address_lookup(db, address_id, sub.user_id)
            if not address:
                raise NotFoundError("Address not found or does not belong to this user")

            return _Change(
                values={'default_address_id': address_id},
                history_action=HistoryAction.ADDRESS_CHANGED,
                details={'before': {'address_id': sub.default_address_id}, 'after': {'address_id': address_id}},
                intents=[SideEffectIntent(kind="address_changed", subscription_id=sub.id,
                                          payload={'user_id': sub.user_id, 'address_id': address_id})]
            )

        return self._transition(db, 'update_address', subscription_id, performed_by, owner_id, build, now)

    def update_frequency(
        self, db: Session, subscription_id: str, performed_by: str, new_frequency: str,
        owner_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> MutationResult:
        def build(sub: Subscription) -> _Change:
            try:
                frequency = Frequency(new_frequency)
            except ValueError:
                raise ValidationError(f"Unsupported delivery frequency: {new_frequency}",
                                      reason_code="unsupported_frequency")
            if frequency == sub.frequency:
                raise ValidationError("New frequency is the same as the current one",
                                      reason_code="frequency_unchanged")

            return _Change(
                values={'frequency': frequency},
                history_action=HistoryAction.FREQUENCY_CHANGED,
                details={'before': {'frequency': sub.frequency.value}, 'after': {'frequency': frequency.value}},
                intents=[SideEffectIntent(kind="frequency_changed", subscription_id=sub.id,
                                          payload={'user_id': sub.user_id, 'frequency': frequency.value})]
            )

        return self._transition(db, 'update_frequency', subscription_id, performed_by, owner_id, build, now)
