"""
Agent → Business Router
-----------------------
Maps Teli voice-agent ids to the business that owns them so an org-wide call
feed can be attributed to the right tenant.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from callsync.datastore import CONNECTOR, formula_equals, get_record, list_records, update_record
from callsync.models import Business
from callsync.runtime import get_logger
from callsync.schema import BUSINESSES_TABLE

logger = get_logger(__name__)

BIZ = BUSINESSES_TABLE.field_names()


@dataclass
class AgentRouter:
    routes: Dict[str, Business] = field(default_factory=dict)
    # agent id -> every business id that claimed it, in read order
    collisions: Dict[str, List[str]] = field(default_factory=dict)

    def lookup(self, agent_id: Optional[str]) -> Optional[Business]:
        if not agent_id:
            return None
        return self.routes.get(agent_id)

    def __len__(self) -> int:
        return len(self.routes)


def list_businesses() -> List[Business]:
    return [Business.from_record(r) for r in list_records(CONNECTOR.businesses())]


def get_business(business_id: str) -> Optional[Business]:
    record = get_record(CONNECTOR.businesses(), business_id)
    return Business.from_record(record) if record else None


def find_business_by_agent(agent_id: str) -> Optional[Business]:
    rows = list_records(CONNECTOR.businesses(), formula=formula_equals(BIZ["AGENT_ID"], agent_id))
    if len(rows) > 1:
        logger.warning("Agent %s is configured on %s businesses; using the last one read", agent_id, len(rows))
    return Business.from_record(rows[-1]) if rows else None


def build_agent_router() -> AgentRouter:
    """Read every business with an agent id once; a later-read duplicate wins."""
    router = AgentRouter()
    for business in list_businesses():
        if not business.agent_id:
            continue
        previous = router.routes.get(business.agent_id)
        if previous is not None:
            claimed = router.collisions.setdefault(business.agent_id, [previous.id])
            claimed.append(business.id)
            logger.warning(
                "Agent id %s claimed by businesses %s; routing to %s",
                business.agent_id,
                ", ".join(claimed),
                business.id,
            )
        router.routes[business.agent_id] = business
    logger.info("Agent router built: %s routable agents", len(router))
    return router


def assign_agent_id(business_id: str, agent_id: str) -> Business:
    """Attach ``agent_id`` to a business, refusing ids another business already owns."""
    if not agent_id:
        raise ValueError("agent_id is required")
    owner = find_business_by_agent(agent_id)
    if owner is not None and owner.id != business_id:
        raise ValueError(f"Agent {agent_id} is already assigned to business {owner.id}")
    record = update_record(CONNECTOR.businesses(), business_id, {BIZ["AGENT_ID"]: agent_id})
    return Business.from_record(record)
