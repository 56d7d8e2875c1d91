from pydantic import BaseModel, Field
from typing import Literal, Optional, Dict, Any


SideEffectKind = Literal[
    "subscription_paused",
    "subscription_resumed",
    "subscription_cancelled",
    "subscription_expired",
    "preferences_updated",
    "address_changed",
    "frequency_changed",
    "contact_sync",
    "delivery_upcoming",
    "admin_batch_summary",
    "admin_batch_errors",
]


class SideEffectIntent(BaseModel):
    """A notification or contact-sync request produced by a mutation.

    Intents are written to the outbox in the same transaction as the mutation
    and delivered later by NotificationDispatcher.
    """
    kind: SideEffectKind = Field(description="What should be dispatched")
    subscription_id: Optional[str] = Field(default=None, description="Subscription the intent relates to")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Data for the downstream consumer")


class MutationResult(BaseModel):
    """Outcome of a state-machine operation"""
    success: bool
    subscription_id: str
    action: str
    status: Optional[str] = None
    reason_code: Optional[str] = None
    message: Optional[str] = None
    side_effects: list[SideEffectIntent] = Field(default_factory=list)
