import click
from app.core.config import settings
from app.core.database import SessionLocal
from app.core.errors import DomainError
from app.models.promo_code import PromoCode
from app.services.cycle_batch_service import CycleBatchService
from app.services.notification_service import NotificationDispatcher
from app.services.subscription_service import SubscriptionService
from sqlalchemy import func
import logging

logger = logging.getLogger(__name__)


@click.group()
def cli():
    """BoxCycle CLI commands"""
    pass


@cli.command('run-cycle')
@click.option('--cycle-id', required=False, help='Delivery cycle id')
@click.option('--auto', 'auto_detect', is_flag=True, help='Use the earliest upcoming cycle that is due')
@click.option('--by', 'performed_by', default='system', show_default=True, help='Actor recorded in history')
@click.option('--workers', default=None, type=int, help='Parallel workers (defaults to BATCH_MAX_WORKERS)')
def run_cycle(cycle_id, auto_detect, performed_by, workers):
    """Generate orders for a delivery cycle"""
    if not cycle_id and not auto_detect:
        click.echo("❌ Please provide --cycle-id or --auto", err=True)
        return

    db = SessionLocal()
    try:
        service = CycleBatchService()
        max_workers = workers or settings.batch_max_workers
        if auto_detect:
            result = service.run_cycle_batch_for_active_cycle(
                db, performed_by=performed_by, session_factory=SessionLocal, max_workers=max_workers)
        else:
            result = service.run_cycle_batch(
                db, cycle_id, performed_by=performed_by, session_factory=SessionLocal, max_workers=max_workers)

        if result.message:
            click.echo(result.message)
            return

        click.echo(f"\nCycle {result.cycle_id} ({result.cycle_date}):")
        click.echo(f"  generated: {result.generated}")
        click.echo(f"  skipped:   {result.skipped}")
        click.echo(f"  excluded:  {result.excluded}")
        click.echo(f"  errors:    {len(result.errors)}")
        for error in result.errors:
            click.echo(f"    - {error.subscription_id}: {error.error}")
    except DomainError as e:
        click.echo(f"❌ {e.reason_code}: {e.message}", err=True)
    except Exception as e:
        db.rollback()
        logger.error(f"CLI error: {e}")
        click.echo(f"❌ Error: {e}", err=True)
    finally:
        db.close()


@cli.command()
@click.option('--subscription-id', required=True, help='Subscription to expire')
@click.option('--by', 'performed_by', default='system', show_default=True, help='Actor recorded in history')
def expire(subscription_id, performed_by):
    """Expire an active subscription"""
    db = SessionLocal()
    try:
        result = SubscriptionService().expire_subscription(db, subscription_id, performed_by=performed_by)
        click.echo(f"✓ Subscription {result.subscription_id} is now {result.status}")
    except DomainError as e:
        click.echo(f"❌ {e.reason_code}: {e.message}", err=True)
    finally:
        db.close()


@cli.command('dispatch-outbox')
@click.option('--limit', default=100, show_default=True, help='Maximum intents to send')
def dispatch_outbox(limit):
    """Deliver pending notification intents"""
    db = SessionLocal()
    try:
        dispatcher = NotificationDispatcher(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds
        )
        counts = dispatcher.dispatch_pending(db, limit=limit)
        click.echo(f"✓ Sent {counts['sent']}, failed {counts['failed']}")
    finally:
        db.close()


@cli.command('promo-status')
@click.option('--code', required=True, help='Promo code (case-insensitive)')
def promo_status(code):
    """Show usage of a promo code"""
    db = SessionLocal()
    try:
        promo = db.query(PromoCode).filter(func.upper(PromoCode.code) == code.strip().upper()).first()
        if not promo:
            click.echo(f"❌ Promo code not found: {code}", err=True)
            return
        cap = promo.max_uses if promo.max_uses is not None else "unlimited"
        state = "enabled" if promo.is_enabled else "disabled"
        click.echo(f"{promo.code.upper()}: {promo.discount_percent}% off, {state}, used {promo.current_uses}/{cap}")
    finally:
        db.close()


if __name__ == '__main__':
    cli()
