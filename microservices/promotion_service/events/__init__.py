"""
Promotion Service Events

Domain events published after a ledger operation commits.
"""

from .models import PromotionEventType
from .publishers import PromotionEventPublisher

__all__ = [
    "PromotionEventType",
    "PromotionEventPublisher",
]
