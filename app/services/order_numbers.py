"""
Procurement Orders - Order Number Generation

Human-readable order numbers:

    ORD-20260314-3FA2-482913
        |        |    |
        |        |    +-- 6 random digits (CSPRNG)
        |        +------- first 4 hex digits of the tenant id
        +---------------- UTC creation date

`generate_order_number` is a pure function of (timestamp, tenant, random
draw). Collisions are retried a bounded number of times by the caller and
then fail loudly.
"""

import secrets
import uuid
from datetime import datetime
from typing import Optional

from app.config import settings


SUFFIX_DIGITS = 6


def random_suffix() -> int:
    return secrets.randbelow(10 ** SUFFIX_DIGITS)


def generate_order_number(
    created_at: datetime,
    tenant_id: uuid.UUID,
    draw: Optional[int] = None,
    prefix: Optional[str] = None,
) -> str:
    """Build an order number; `draw` defaults to a fresh CSPRNG value."""
    draw = random_suffix() if draw is None else draw
    prefix = prefix or settings.order_number_prefix
    tenant_tag = tenant_id.hex[:4].upper()
    return f"{prefix}-{created_at.strftime('%Y%m%d')}-{tenant_tag}-{draw:0{SUFFIX_DIGITS}d}"
