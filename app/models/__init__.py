from app.models.box_type import BoxType
from app.models.address import Address
from app.models.delivery_cycle import DeliveryCycle, CycleStatus
from app.models.subscription import Subscription, SubscriptionStatus, Frequency, PREFERENCE_FIELDS
from app.models.subscription_history import SubscriptionHistory, HistoryAction
from app.models.order import Order
from app.models.promo_code import PromoCode, PromoCodeUsage
from app.models.side_effect_outbox import SideEffectOutbox

__all__ = [
    "BoxType", "Address", "DeliveryCycle", "CycleStatus", "Subscription", "SubscriptionStatus",
    "Frequency", "PREFERENCE_FIELDS", "SubscriptionHistory", "HistoryAction", "Order",
    "PromoCode", "PromoCodeUsage", "SideEffectOutbox",
]
