"""Demonstration script for the manufacturing marketplace."""

from __future__ import annotations

from pprint import pprint

from . import AccountType, Actor, MarketplaceService, OfferTerms, ShippingInfo, SplitPart
from .assemblies import format_part_breadcrumb
from .logging_config import setup_logging


def _specification(material: str, process: str) -> dict:
    return {
        "version": 1,
        "material": {"category": "metal", "material": material, "grade": None, "certificationRequired": False},
        "process": {"type": process, "operations": ["roughing", "finishing"]},
        "tolerances": {"general": "ISO 2768-m", "criticalDimensions": [], "gdandt": []},
        "surfaceFinish": {"roughness": "Ra 1.6", "coatings": ["anodized"]},
        "heatTreatment": {"required": False, "type": None, "hardness": None},
        "secondaryOps": {"edgeBreak": "0.2 x 45°", "weldingNotes": None},
        "inspection": {"methods": ["CMM"], "standards": ["ISO 9001"]},
        "compliance": {"regulatory": ["RoHS"], "documentation": ["Material certificate"]},
        "marking": {"required": True, "method": "laser", "content": ["part number"]},
    }


def main() -> None:
    setup_logging(log_level="WARNING")
    market = MarketplaceService()

    creator = Actor(user_id="creator-1", role=AccountType.CREATOR, display_name="Lena Brandt")
    shop_a = Actor(user_id="maker-a", role=AccountType.MANUFACTURER, display_name="Precision Parts GmbH")
    shop_b = Actor(user_id="maker-b", role=AccountType.MANUFACTURER, display_name="Fräswerk Nord")

    # Auftrag und Zerlegung
    order = market.create_order(
        creator,
        "Camera gimbal frame",
        quantity=25,
        description="Three-axis gimbal with motor mounts",
        tags=["cnc_machining"],
    )
    parts = market.register_parts(
        creator,
        order.id,
        [
            SplitPart("yaw_arm.step", f"{order.id}/frame/yaw_arm.step", ("frame",)),
            SplitPart("roll_arm.step", f"{order.id}/frame/roll_arm.step", ("frame",)),
            SplitPart("motor_mount.step", f"{order.id}/mounts/motor_mount.step", ("mounts",)),
        ],
    )
    print("Teile")
    for part in parts:
        print(f" - {format_part_breadcrumb(part)}")

    frame = market.create_assembly(creator, order.id, "Frame", [parts[0].id, parts[1].id])
    mounts = market.create_assembly(creator, order.id, "Mounts", [parts[2].id])
    market.reorder_assemblies(creator, order.id, [mounts.assembly.id, frame.assembly.id])

    # Spezifikation
    for assembly in (frame, mounts):
        for part_id in assembly.part_ids:
            market.save_part_specification(
                creator,
                order.id,
                assembly.assembly.id,
                part_id,
                25,
                _specification("6061-T6", "cnc_milling"),
            )
        market.mark_assembly_complete(creator, assembly.assembly.id)
    print("\nBereitschaft")
    pprint(market.order_readiness(creator, order.id))

    # Angebote
    offer_a = market.create_offer(
        shop_a, order.id, OfferTerms(unit_cost=42.0, shipping_cost=30.0, projected_units=25, lead_time=14)
    )
    market.create_offer(
        shop_b, order.id, OfferTerms(unit_cost=39.5, shipping_cost=55.0, projected_units=25, lead_time=21)
    )
    decision = market.accept_offer(creator, offer_a.id)
    print(f"\nAngebot angenommen: {decision.offer.id} ({len(decision.superseded)} abgelehnt)")

    # Fertigung
    while market.get_order(shop_a, order.id).status.value != "Quality Check":
        market.advance_order(shop_a, order.id)
    market.advance_order(shop_a, order.id, ShippingInfo(tracking_number="1Z999AA10123456784", carrier="UPS"))
    final = market.advance_order(shop_a, order.id)
    print(f"\nStatus: {final.status.value}")

    print("\nBenachrichtigungen")
    for event in market.dispatcher.events:
        print(f" - {event.type.value} -> {event.recipient_id}")

    print("\nAktivität (Ersteller)")
    for event in market.recent_events(creator, limit=5):
        print(f" - [{event.event_type.value}] {event.description}")


if __name__ == "__main__":
    main()
