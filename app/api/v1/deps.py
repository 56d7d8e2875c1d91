from fastapi import BackgroundTasks, HTTPException, status
from app.core.config import settings
from app.core.database import SessionLocal
from app.core.errors import DomainError, InvalidStateTransition, NotFoundError, ValidationError
from app.services.cycle_batch_service import CycleBatchService
from app.services.history_service import HistoryRecorder
from app.services.notification_service import dispatch_outbox_in_background
from app.services.pricing_service import PricingService
from app.services.subscription_service import SubscriptionService
import logging

logger = logging.getLogger(__name__)


def get_subscription_service() -> SubscriptionService:
    """Dependency to get subscription service instance"""
    return SubscriptionService()


def get_history_recorder() -> HistoryRecorder:
    return HistoryRecorder()


def get_pricing_service() -> PricingService:
    return PricingService()


def get_cycle_batch_service() -> CycleBatchService:
    return CycleBatchService()


def to_http_exception(error: DomainError) -> HTTPException:
    """Map a domain error to a failure response carrying its reason code"""
    if isinstance(error, InvalidStateTransition):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(error, ValidationError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(error, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    detail = {
        'success': False,
        'reason_code': error.reason_code,
        'message': error.message,
    }
    if isinstance(error, ValidationError):
        detail['errors'] = error.errors
    return HTTPException(status_code=status_code, detail=detail)


def schedule_outbox_dispatch(background_tasks: BackgroundTasks):
    """Deliver pending notifications after the response has been sent"""
    background_tasks.add_task(
        dispatch_outbox_in_background,
        SessionLocal,
        settings.notification_webhook_url,
        settings.notification_timeout_seconds,
    )
