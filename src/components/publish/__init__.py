"""Publish component - fan-out of a post to its newsletter's active subscribers."""

from src.components.publish.component import PublishingOrchestrator
from src.components.publish.models import (
    DeliveryFailure,
    PartialDeliveryFailure,
    PublishCancelledError,
    PublishConfig,
    PublishOutput,
    PublishStatus,
)
from src.components.publish.ports import ActiveSubscribersPort, PostOwnershipPort

__all__ = [
    # Component
    "PublishingOrchestrator",
    # Models
    "DeliveryFailure",
    "PublishConfig",
    "PublishOutput",
    "PublishStatus",
    # Errors
    "PartialDeliveryFailure",
    "PublishCancelledError",
    # Ports
    "ActiveSubscribersPort",
    "PostOwnershipPort",
]
