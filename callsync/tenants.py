"""Explicit tenant resolution for inbound events: agent id, then business id, then the configured default."""

from __future__ import annotations

from typing import Optional

from callsync.agent_router import find_business_by_agent, get_business
from callsync.config import settings
from callsync.models import Business
from callsync.runtime import get_logger

logger = get_logger(__name__)


class BusinessNotFound(LookupError):
    """No business could be resolved for an inbound event."""


def resolve_business(agent_id: Optional[str] = None, business_id: Optional[str] = None) -> Business:
    if agent_id:
        business = find_business_by_agent(agent_id)
        if business is not None:
            return business
        logger.warning("No business owns agent %s; trying explicit/default business", agent_id)

    if business_id:
        business = get_business(business_id)
        if business is not None:
            return business
        raise BusinessNotFound(f"Business {business_id} not found")

    default_id = settings().DEFAULT_BUSINESS_ID
    if default_id:
        business = get_business(default_id)
        if business is not None:
            return business
        raise BusinessNotFound(f"Default business {default_id} not found")

    raise BusinessNotFound("No business found for this event")
