"""Shared fixtures for the marketplace tests."""

import copy

import pytest

from manufacturing_marketplace import (
    AccountType,
    Actor,
    MarketplaceService,
    OfferTerms,
    SplitPart,
)
from manufacturing_marketplace.notifications import RecordingNotificationDispatcher
from manufacturing_marketplace.storage import MarketplaceDatabase

SPECIFICATION = {
    "version": 1,
    "material": {
        "category": "metal",
        "material": "Aluminium 6061-T6",
        "grade": "T6",
        "certificationRequired": True,
    },
    "process": {"type": "cnc_milling", "operations": ["facing", "pocketing"]},
    "tolerances": {"general": "ISO 2768-m", "criticalDimensions": ["bore 12H7"], "gdandt": []},
    "surfaceFinish": {"roughness": "Ra 1.6", "coatings": ["anodized"]},
    "heatTreatment": {"required": False, "type": None, "hardness": None},
    "secondaryOps": {"edgeBreak": "0.2 x 45", "weldingNotes": None},
    "inspection": {"methods": ["CMM"], "standards": ["ISO 9001"]},
    "compliance": {"regulatory": ["RoHS"], "documentation": ["Material certificate"]},
    "marking": {"required": True, "method": "laser", "content": ["part number"]},
}


# Fixtures

@pytest.fixture
def specification():
    """Return a fresh, complete specification payload."""
    return copy.deepcopy(SPECIFICATION)


@pytest.fixture
def dispatcher():
    return RecordingNotificationDispatcher()


@pytest.fixture
def service(dispatcher):
    """Service backed by the in-memory store."""
    return MarketplaceService(dispatcher=dispatcher)


@pytest.fixture
def sqlite_service(dispatcher):
    """Service backed by an in-memory SQLite database."""
    market = MarketplaceService(store=MarketplaceDatabase(":memory:"), dispatcher=dispatcher)
    yield market
    market.close()


@pytest.fixture
def creator():
    return Actor(user_id="creator-1", role=AccountType.CREATOR, display_name="Lena Brandt")


@pytest.fixture
def other_creator():
    return Actor(user_id="creator-2", role=AccountType.CREATOR, display_name="Tom Weber")


@pytest.fixture
def manufacturer():
    return Actor(
        user_id="maker-a",
        role=AccountType.MANUFACTURER,
        display_name="Precision Parts GmbH",
        email="sales@precision.example",
    )


@pytest.fixture
def rival_manufacturer():
    return Actor(user_id="maker-b", role=AccountType.MANUFACTURER, display_name="Fräswerk Nord")


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", role=AccountType.ADMIN, display_name="Operations")


@pytest.fixture
def order(service, creator):
    return service.create_order(creator, "Gimbal frame", quantity=10, description="Prototype run")


@pytest.fixture
def parts(service, creator, order):
    """Three parts: two inside the 'frame' folder and one at the top level."""
    return service.register_parts(
        creator,
        order.id,
        [
            SplitPart("yaw_arm.step", f"{order.id}/frame/yaw_arm.step", ("frame",)),
            SplitPart("roll_arm.step", f"{order.id}/frame/roll_arm.step", ("frame",)),
            SplitPart("bracket.step", f"{order.id}/bracket.step"),
        ],
    )


@pytest.fixture
def terms():
    return OfferTerms(unit_cost=40.0, shipping_cost=25.0, projected_units=10, lead_time=14)


@pytest.fixture
def accepted_order(service, creator, manufacturer, order, terms):
    """Order whose offer from ``manufacturer`` has been accepted."""
    offer = service.create_offer(manufacturer, order.id, terms)
    service.accept_offer(creator, offer.id)
    return service.get_order(creator, order.id)
