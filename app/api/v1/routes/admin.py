from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session
from typing import Optional
from app.api.v1.deps import get_subscription_service, get_history_recorder, schedule_outbox_dispatch, to_http_exception
from app.api.v1.routes.subscriptions import CancelRequest, serialize_subscription
from app.core.database import get_db
from app.core.errors import DomainError, ValidationError
from app.core.middleware import require_staff
from app.models.side_effect import MutationResult
from app.models.subscription import Subscription, SubscriptionStatus
from app.services.history_service import HistoryRecorder
from app.services.subscription_service import SubscriptionService
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/subscriptions")
async def list_all_subscriptions(
    status: Optional[SubscriptionStatus] = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
    staff: dict = Depends(require_staff)
):
    """List subscriptions for the admin table, optionally filtered by status"""
    logger.info(f"list_all_subscriptions: Entry - staff: {staff['uid']}, status: {status}")
    query = db.query(Subscription)
    if status:
        query = query.filter(Subscription.status == status)
    subscriptions = query.order_by(Subscription.created_at.desc()).offset(offset).limit(min(limit, 500)).all()
    return {"subscriptions": [serialize_subscription(s) for s in subscriptions]}


@router.get("/subscriptions/{subscription_id}")
async def get_subscription_detail(
    subscription_id: str,
    db: Session = Depends(get_db),
    staff: dict = Depends(require_staff),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
    history: HistoryRecorder = Depends(get_history_recorder)
):
    try:
        subscription = subscription_service.get_subscription(db, subscription_id)
    except DomainError as e:
        raise to_http_exception(e)
    return {
        "subscription": serialize_subscription(subscription),
        "history": history.get_subscription_history(db, subscription_id),
    }


@router.post("/subscriptions/{subscription_id}/cancel", response_model=MutationResult)
async def staff_cancel_subscription(
    subscription_id: str,
    request: CancelRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    staff: dict = Depends(require_staff),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    try:
        result = subscription_service.cancel_subscription(
            db, subscription_id, performed_by=staff['uid'], reason=request.reason)
    except DomainError as e:
        raise to_http_exception(e)
    schedule_outbox_dispatch(background_tasks)
    return result


@router.post("/subscriptions/{subscription_id}/{action}", response_model=MutationResult)
async def staff_transition(
    subscription_id: str,
    action: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    staff: dict = Depends(require_staff),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """Pause, resume or expire any subscription on behalf of its owner"""
    logger.info(f"staff_transition: Entry - staff: {staff['uid']}, subscription: {subscription_id}, action: {action}")
    operations = {
        'pause': subscription_service.pause_subscription,
        'resume': subscription_service.resume_subscription,
        'expire': subscription_service.expire_subscription,
    }
    if action not in operations:
        raise to_http_exception(ValidationError(f"Unknown action: {action}", reason_code="unknown_action"))

    try:
        result = operations[action](db, subscription_id, performed_by=staff['uid'])
    except DomainError as e:
        raise to_http_exception(e)
    schedule_outbox_dispatch(background_tasks)
    return result
