import pytest

from callsync.agent_router import assign_agent_id, build_agent_router, find_business_by_agent


def test_router_maps_agent_ids_to_businesses(make_business):
    acme = make_business("Acme", agent_id="agentA")
    bolt = make_business("Bolt", agent_id="agentB")
    make_business("No Agent")

    router = build_agent_router()

    assert len(router) == 2
    assert router.lookup("agentA").id == acme.id
    assert router.lookup("agentB").id == bolt.id
    assert router.lookup("agentZ") is None
    assert router.lookup(None) is None
    assert router.collisions == {}


def test_later_business_wins_and_collision_is_recorded(make_business):
    first = make_business("First", agent_id="agentA")
    second = make_business("Second", agent_id="agentA")

    router = build_agent_router()

    assert router.lookup("agentA").id == second.id
    assert router.collisions == {"agentA": [first.id, second.id]}


def test_assign_agent_id_enforces_uniqueness(make_business):
    acme = make_business("Acme", agent_id="agentA")
    bolt = make_business("Bolt")

    with pytest.raises(ValueError):
        assign_agent_id(bolt.id, "agentA")

    updated = assign_agent_id(bolt.id, "agentB")
    assert updated.agent_id == "agentB"
    assert find_business_by_agent("agentB").id == bolt.id

    # re-assigning its own id is fine
    assert assign_agent_id(acme.id, "agentA").agent_id == "agentA"
