import pytest

from callsync.tenants import BusinessNotFound, resolve_business


def test_agent_id_wins(make_business):
    acme = make_business("Acme", agent_id="agentA")
    bolt = make_business("Bolt")

    assert resolve_business(agent_id="agentA", business_id=bolt.id).id == acme.id


def test_unknown_agent_falls_back_to_explicit_business(make_business):
    bolt = make_business("Bolt")

    assert resolve_business(agent_id="agentZ", business_id=bolt.id).id == bolt.id


def test_configured_default_business(make_business, configure):
    acme = make_business("Acme")
    configure(DEFAULT_BUSINESS_ID=acme.id)

    assert resolve_business().id == acme.id


def test_never_guesses_from_table_contents(make_business):
    make_business("Only Business")

    with pytest.raises(BusinessNotFound):
        resolve_business()


def test_unknown_explicit_business_raises():
    with pytest.raises(BusinessNotFound):
        resolve_business(business_id="recmissing")
