import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.v1.deps import (get_history_recorder, get_subscription_service,
                             schedule_outbox_dispatch, to_http_exception)
from app.core.database import get_db
from app.core.errors import DomainError
from app.core.middleware import get_current_user
from app.models.side_effect import MutationResult
from app.models.subscription import Subscription
from app.services.history_service import HistoryRecorder
from app.services.subscription_service import (SubscriptionPreferences, SubscriptionService,
                                               compute_subscription_state)

router = APIRouter()
logger = logging.getLogger(__name__)


class CancelRequest(BaseModel):
    reason: str = Field(max_length=2000)


class AddressChangeRequest(BaseModel):
    address_id: str


class FrequencyChangeRequest(BaseModel):
    frequency: str


def serialize_subscription(subscription: Subscription) -> dict:
    return {
        'id': subscription.id,
        'box_type': subscription.box_type,
        'frequency': subscription.frequency.value,
        'status': subscription.status.value,
        'base_price_eur': str(subscription.base_price_eur),
        'current_price_eur': str(subscription.current_price_eur),
        'discount_percent': str(subscription.discount_percent) if subscription.discount_percent is not None else None,
        'promo_code': subscription.promo_code,
        'default_address_id': subscription.default_address_id,
        'started_at': subscription.started_at.isoformat() if subscription.started_at else None,
        'first_cycle_id': subscription.first_cycle_id,
        'paused_at': subscription.paused_at.isoformat() if subscription.paused_at else None,
        'resumed_at': subscription.resumed_at.isoformat() if subscription.resumed_at else None,
        'cancelled_at': subscription.cancelled_at.isoformat() if subscription.cancelled_at else None,
        'cancellation_reason': subscription.cancellation_reason,
        'last_delivered_cycle_id': subscription.last_delivered_cycle_id,
        'preferences': subscription.preferences_snapshot(),
        'state': compute_subscription_state(subscription),
    }


@router.get("")
async def list_subscriptions(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """List the current user's subscriptions"""
    user_id = current_user['uid']
    logger.info(f"list_subscriptions: Entry - user: {user_id}")

    subscriptions = subscription_service.list_subscriptions(db, user_id)
    logger.info(f"list_subscriptions: Success - user: {user_id}, count: {len(subscriptions)}")
    return {"subscriptions": [serialize_subscription(s) for s in subscriptions]}


@router.get("/{subscription_id}")
async def get_subscription(
    subscription_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    try:
        subscription = subscription_service.get_subscription(db, subscription_id, owner_id=current_user['uid'])
        return serialize_subscription(subscription)
    except DomainError as e:
        raise to_http_exception(e)


@router.get("/{subscription_id}/history")
async def get_subscription_history(
    subscription_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
    history: HistoryRecorder = Depends(get_history_recorder)
):
    try:
        subscription_service.get_subscription(db, subscription_id, owner_id=current_user['uid'])
        return {"history": history.get_subscription_history(db, subscription_id)}
    except DomainError as e:
        raise to_http_exception(e)


def _run_mutation(action: str, operation, background_tasks: BackgroundTasks) -> MutationResult:
    try:
        result = operation()
    except DomainError as e:
        logger.info(f"{action}: Rejected - {e.reason_code}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"{action}: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={'success': False, 'reason_code': 'unexpected_error', 'message': str(e)}
        )
    if result.side_effects:
        schedule_outbox_dispatch(background_tasks)
    return result


@router.post("/{subscription_id}/pause", response_model=MutationResult)
async def pause_subscription(
    subscription_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    user_id = current_user['uid']
    return _run_mutation("pause_subscription", lambda: subscription_service.pause_subscription(
        db, subscription_id, performed_by=user_id, owner_id=user_id), background_tasks)


@router.post("/{subscription_id}/resume", response_model=MutationResult)
async def resume_subscription(
    subscription_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    user_id = current_user['uid']
    return _run_mutation("resume_subscription", lambda: subscription_service.resume_subscription(
        db, subscription_id, performed_by=user_id, owner_id=user_id), background_tasks)


@router.post("/{subscription_id}/cancel", response_model=MutationResult)
async def cancel_subscription(
    subscription_id: str,
    request: CancelRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    user_id = current_user['uid']
    return _run_mutation("cancel_subscription", lambda: subscription_service.cancel_subscription(
        db, subscription_id, performed_by=user_id, reason=request.reason, owner_id=user_id), background_tasks)


@router.put("/{subscription_id}/preferences", response_model=MutationResult)
async def update_subscription_preferences(
    subscription_id: str,
    preferences: SubscriptionPreferences,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    user_id = current_user['uid']
    return _run_mutation("update_subscription_preferences", lambda: subscription_service.update_preferences(
        db, subscription_id, performed_by=user_id, preferences=preferences, owner_id=user_id), background_tasks)


@router.put("/{subscription_id}/address", response_model=MutationResult)
async def update_subscription_address(
    subscription_id: str,
    request: AddressChangeRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    user_id = current_user['uid']
    return _run_mutation("update_subscription_address", lambda: subscription_service.update_address(
        db, subscription_id, performed_by=user_id, address_id=request.address_id, owner_id=user_id),
        background_tasks)


@router.put("/{subscription_id}/frequency", response_model=MutationResult)
async def update_subscription_frequency(
    subscription_id: str,
    request: FrequencyChangeRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    user_id = current_user['uid']
    return _run_mutation("update_subscription_frequency", lambda: subscription_service.update_frequency(
        db, subscription_id, performed_by=user_id, new_frequency=request.frequency, owner_id=user_id),
        background_tasks)
