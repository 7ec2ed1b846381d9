from consultation.models import Conversation, Partner, User
from consultation.services.conversation.parties import PartnerParty, RequesterParty, party_for


def test_requester_capabilities():
    party = party_for(User(id="u1", full_name="Asha"))

    assert isinstance(party, RequesterParty)
    assert party.pays is True
    assert party.sees_context is False
    assert party.tracks_presence is False
    assert party.can_accept is False
    assert party.peer_model is Partner
    assert party.owner_column is Conversation.user_id
    assert party.pair_ids("p1") == ("u1", "p1")


def test_partner_capabilities():
    party = party_for(Partner(id="p1", name="Ravi"))

    assert isinstance(party, PartnerParty)
    assert party.pays is False
    assert party.sees_context is True
    assert party.tracks_presence is True
    assert party.can_accept is True
    assert party.peer_model is User
    assert party.owner_column is Conversation.partner_id
    assert party.pair_ids("u1") == ("u1", "p1")


def test_parties_resolve_their_side_of_a_conversation():
    conversation = Conversation(id="u1_p1_1", user_id="u1", partner_id="p1")
    user = RequesterParty(User(id="u1"))
    partner = PartnerParty(Partner(id="p1"))

    assert user.owns(conversation) and partner.owns(conversation)
    assert user.peer_id(conversation) == "p1"
    assert partner.peer_id(conversation) == "u1"
    assert not RequesterParty(User(id="u2")).owns(conversation)
