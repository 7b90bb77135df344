import uuid
from datetime import datetime

from order_service.core.config import settings


def generate_order_number(now: datetime) -> str:
    """``ORD-<epoch millis>-<8 random hex>``; the random suffix keeps numbers unique."""
    millis = int(now.timestamp() * 1000)
    return f"{settings.ORDER_NUMBER_PREFIX}-{millis}-{uuid.uuid4().hex[:8]}"
