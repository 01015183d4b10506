"""
Unit tests for the offer ledger: submission, acceptance and declines.
"""

import threading

import pytest

from manufacturing_marketplace import (
    AccountType,
    Actor,
    ConflictError,
    ForbiddenError,
    OfferTerms,
    OrderStatus,
    ValidationError,
)
from manufacturing_marketplace.domain import EventType, NotificationType


@pytest.fixture
def competing_offers(service, manufacturer, rival_manufacturer, order, terms):
    first = service.create_offer(manufacturer, order.id, terms)
    second = service.create_offer(
        rival_manufacturer,
        order.id,
        OfferTerms(unit_cost=38.0, shipping_cost=60.0, projected_units=10, lead_time=21),
    )
    return first, second


# Tests for offer terms

class TestOfferTerms:
    def test_projected_cost_defaults_to_units_times_unit_cost(self, terms):
        assert terms.total_projected_cost == 400.0
        explicit = OfferTerms(unit_cost=40.0, shipping_cost=0, projected_units=10, lead_time=1, projected_cost=350.0)
        assert explicit.total_projected_cost == 350.0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"unit_cost": -1.0},
            {"shipping_cost": -0.5},
            {"projected_units": 0},
            {"projected_units": 2.5},
            {"lead_time": -3},
        ],
    )
    def test_invalid_terms(self, overrides):
        values = dict(unit_cost=10.0, shipping_cost=5.0, projected_units=4, lead_time=7)
        values.update(overrides)
        with pytest.raises(ValidationError):
            OfferTerms(**values).validate()


# Tests for offer submission

class TestCreateOffer:
    def test_first_offer_moves_order_to_offer_stage(
        self, service, creator, manufacturer, order, terms, dispatcher
    ):
        offer = service.create_offer(manufacturer, order.id, terms)
        stored = service.get_order(creator, order.id)
        assert stored.status == OrderStatus.MANUFACTURER_OFFER
        assert stored.offers == [offer.id]
        assert offer.projected_cost == 400.0
        assert offer.manufacturer_name == "Precision Parts GmbH"
        assert offer.manufacturer_email == "sales@precision.example"
        assert offer.is_pending

        notification = dispatcher.of_type(NotificationType.OFFER_CREATED)[0]
        assert notification.recipient_id == creator.user_id
        assert notification.offer_id == offer.id
        assert service.recent_events(creator)[0].event_type == EventType.OFFER
        assert service.recent_events(manufacturer)[0].event_type == EventType.SUCCESS

    def test_second_offer_keeps_status(self, service, creator, order, competing_offers):
        stored = service.get_order(creator, order.id)
        assert stored.status == OrderStatus.MANUFACTURER_OFFER
        assert stored.offers == [offer.id for offer in competing_offers]

    def test_creator_cannot_submit_offers(self, service, creator, order, terms):
        with pytest.raises(ForbiddenError):
            service.create_offer(creator, order.id, terms)

    def test_no_offers_after_acceptance(self, service, rival_manufacturer, accepted_order, terms):
        with pytest.raises(ValidationError):
            service.create_offer(rival_manufacturer, accepted_order.id, terms)

    def test_pending_offers_are_listed_oldest_first(self, service, creator, order, competing_offers):
        assert [offer.id for offer in service.list_pending_offers(creator, order.id)] == [
            offer.id for offer in competing_offers
        ]


# Tests for acceptance

class TestAcceptOffer:
    def test_accept_assigns_manufacturer_and_declines_siblings(
        self, service, creator, manufacturer, order, competing_offers, dispatcher
    ):
        winner, loser = competing_offers
        decision = service.accept_offer(creator, winner.id)

        assert decision.offer.is_accepted is True
        assert [offer.id for offer in decision.superseded] == [loser.id]

        stored = service.get_order(creator, order.id)
        assert stored.status == OrderStatus.ORDER_ACCEPTED
        assert stored.manufacturer == manufacturer.user_id
        assert stored.manufacturer_name == "Precision Parts GmbH"
        assert stored.selected_offer == winner.id
        assert stored.offers == [winner.id]
        assert stored.price.unit_cost == 40.0
        assert stored.price.projected_cost == 400.0
        assert stored.price.shipping_cost == 25.0

        offers = {offer.id: offer for offer in service.list_offers(creator, order.id)}
        assert offers[loser.id].is_declined is True
        assert offers[loser.id].superseded_by == winner.id
        assert service.list_pending_offers(creator, order.id) == []

        notification = dispatcher.of_type(NotificationType.OFFER_ACCEPTED)[0]
        assert notification.recipient_id == manufacturer.user_id

    def test_single_winner_among_three_offers(
        self, service, creator, admin, order, competing_offers, terms
    ):
        third_maker = Actor(user_id="maker-c", role=AccountType.MANUFACTURER)
        third = service.create_offer(third_maker, order.id, terms)
        offers = [*competing_offers, third]
        service.accept_offer(creator, offers[1].id)

        ledger = service.list_offers(creator, order.id)
        assert [offer.id for offer in ledger if offer.is_accepted] == [offers[1].id]
        for offer in (offers[0], offers[2]):
            with pytest.raises(ConflictError):
                service.accept_offer(admin, offer.id)

    def test_second_acceptance_conflicts(self, service, creator, order, competing_offers):
        winner, loser = competing_offers
        service.accept_offer(creator, winner.id)
        with pytest.raises(ConflictError):
            service.accept_offer(creator, loser.id)
        assert service.get_order(creator, order.id).selected_offer == winner.id

    def test_only_the_order_creator_accepts(
        self, service, other_creator, manufacturer, competing_offers
    ):
        with pytest.raises(ForbiddenError):
            service.accept_offer(other_creator, competing_offers[0].id)
        with pytest.raises(ForbiddenError):
            service.accept_offer(manufacturer, competing_offers[0].id)

    def test_admin_may_accept(self, service, admin, order, competing_offers):
        decision = service.accept_offer(admin, competing_offers[1].id)
        assert decision.order.selected_offer == competing_offers[1].id

    def test_concurrent_acceptance_selects_one_winner(self, service, creator, order, competing_offers):
        outcomes = []

        def accept(offer_id):
            try:
                service.accept_offer(creator, offer_id)
                outcomes.append("accepted")
            except ConflictError:
                outcomes.append("conflict")

        threads = [threading.Thread(target=accept, args=(offer.id,)) for offer in competing_offers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["accepted", "conflict"]
        accepted = [offer for offer in service.list_offers(creator, order.id) if offer.is_accepted]
        assert len(accepted) == 1
        assert service.get_order(creator, order.id).selected_offer == accepted[0].id


# Tests for declines

class TestDeclineOffer:
    def test_decline_keeps_order_status(self, service, creator, order, competing_offers):
        first, second = competing_offers
        decision = service.decline_offer(creator, first.id)
        assert decision.offer.is_declined is True
        assert decision.order.offers == [second.id]
        assert decision.order.status == OrderStatus.MANUFACTURER_OFFER

        service.decline_offer(creator, second.id)
        stored = service.get_order(creator, order.id)
        assert stored.offers == []
        assert stored.status == OrderStatus.MANUFACTURER_OFFER

    def test_declined_offer_cannot_be_accepted_or_declined_again(
        self, service, creator, competing_offers
    ):
        first, _ = competing_offers
        service.decline_offer(creator, first.id)
        with pytest.raises(ConflictError):
            service.decline_offer(creator, first.id)
        with pytest.raises(ConflictError):
            service.accept_offer(creator, first.id)
