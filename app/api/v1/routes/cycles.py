import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.v1.deps import get_cycle_batch_service, schedule_outbox_dispatch, to_http_exception
from app.core.config import settings
from app.core.database import SessionLocal, get_db
from app.core.errors import DomainError
from app.core.middleware import require_staff, verify_cron_secret
from app.services.cycle_batch_service import BatchResult, CycleBatchService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/cron/generate-orders", response_model=BatchResult)
async def cron_generate_orders(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    performed_by: str = Depends(verify_cron_secret),
    batch_service: CycleBatchService = Depends(get_cycle_batch_service)
):
    """
    Scheduled trigger: generate orders for the earliest due cycle.
    Authenticated with the shared cron secret, not a user token.
    """
    logger.info("cron_generate_orders: Entry")

    try:
        result = batch_service.run_cycle_batch_for_active_cycle(
            db,
            performed_by=performed_by,
            session_factory=SessionLocal,
            max_workers=settings.batch_max_workers
        )
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"cron_generate_orders: Failure - {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={'success': False, 'reason_code': 'unexpected_error', 'message': str(e)}
        )

    schedule_outbox_dispatch(background_tasks)
    logger.info(f"cron_generate_orders: Success - cycle: {result.cycle_id}, generated: {result.generated}")
    return result


@router.post("/{cycle_id}/generate", response_model=BatchResult)
async def generate_orders_for_cycle(
    cycle_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    staff: dict = Depends(require_staff),
    batch_service: CycleBatchService = Depends(get_cycle_batch_service)
):
    """Staff-initiated run for an explicitly chosen cycle"""
    logger.info(f"generate_orders_for_cycle: Entry - cycle: {cycle_id}, staff: {staff['uid']}")

    try:
        result = batch_service.run_cycle_batch(
            db,
            cycle_id,
            performed_by=staff['uid'],
            session_factory=SessionLocal,
            max_workers=settings.batch_max_workers
        )
    except DomainError as e:
        raise to_http_exception(e)

    schedule_outbox_dispatch(background_tasks)
    return result


@router.post("/{cycle_id}/subscriptions/{subscription_id}/order")
async def generate_late_order(
    cycle_id: str,
    subscription_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    staff: dict = Depends(require_staff),
    batch_service: CycleBatchService = Depends(get_cycle_batch_service)
):
    """Add one subscription to a cycle that has already been generated"""
    try:
        order = batch_service.generate_single_order(db, subscription_id, cycle_id, performed_by=staff['uid'])
    except DomainError as e:
        raise to_http_exception(e)

    if order is None:
        return {"created": False, "order_id": None}
    schedule_outbox_dispatch(background_tasks)
    return {"created": True, "order_id": order.id}
