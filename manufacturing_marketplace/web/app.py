"""FastAPI-based JSON interface for the manufacturing marketplace."""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import get_config
from ..domain import AccountType, Actor, ShippingAddress, ShippingInfo, SplitPart
from ..exceptions import MarketplaceError, UnauthorizedError
from ..logging_config import get_logger, setup_logging
from ..notifications import LoggingNotificationDispatcher
from ..offers import OfferTerms
from ..services import MarketplaceService
from ..specifications import PartSpecificationContent
from ..storage import MarketplaceDatabase

logger = get_logger(__name__)

ERROR_STATUS_CODES = {
    "unauthorized": 401,
    "forbidden": 403,
    "not_found": 404,
    "validation_error": 422,
    "conflict": 409,
    "persistence_error": 503,
}


# ----------------------------------------------------------------------
# Request bodies
# ----------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    title: str
    quantity: int
    description: str = ""
    due_date: Optional[date] = None
    file_urls: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    delivery_address: str = ""


class UpdateOrderRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[date] = None
    clear_due_date: bool = False


class AdvanceRequest(BaseModel):
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None


class ArchiveRequest(BaseModel):
    archived: bool = True


class SplitPartRequest(BaseModel):
    name: str
    storage_path: str
    hierarchy: List[str] = Field(default_factory=list)


class RegisterPartsRequest(BaseModel):
    parts: List[SplitPartRequest]


class CreateAssemblyRequest(BaseModel):
    name: str
    part_ids: List[str]


class MembershipRequest(BaseModel):
    part_ids: List[str]


class BuildOrderRequest(BaseModel):
    ordered_ids: List[str]


class PartSpecificationRequest(BaseModel):
    order_id: str
    part_id: str
    quantity: int
    specifications: PartSpecificationContent


class OfferRequest(BaseModel):
    unit_cost: float
    shipping_cost: float
    projected_units: int
    lead_time: int
    projected_cost: Optional[float] = None


class StartChatRequest(BaseModel):
    target_user_id: str
    order_id: Optional[str] = None


class ChatMessageRequest(BaseModel):
    content: str


class ShippingAddressRequest(BaseModel):
    recipient_name: str
    street1: str
    city: str
    state: str
    postal_code: str
    country: str
    phone_number: str
    company_name: Optional[str] = None
    street2: str = ""


# ----------------------------------------------------------------------
# Identity
# ----------------------------------------------------------------------
def current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_user_name: str = Header(""),
    x_user_email: str = Header(""),
) -> Actor:
    """Build the caller's identity from headers set by the identity provider."""
    if not x_user_id or not x_user_role:
        raise UnauthorizedError()
    try:
        role = AccountType(x_user_role.strip().lower())
    except ValueError as exc:
        raise UnauthorizedError(f"Unknown account type {x_user_role!r}") from exc
    return Actor(user_id=x_user_id, role=role, display_name=x_user_name, email=x_user_email)


def get_service(request: Request) -> MarketplaceService:
    return request.app.state.marketplace_service


def ensure_demo_data(service: MarketplaceService) -> None:
    """Seed one order with parts and an offer when the store is empty."""
    if len(service.store.orders) > 0:
        return
    creator = Actor(user_id="demo-creator", role=AccountType.CREATOR, display_name="Demo Creator")
    maker = Actor(user_id="demo-manufacturer", role=AccountType.MANUFACTURER, display_name="Demo Works")
    order = service.create_order(
        creator,
        "Gearbox housing prototype",
        quantity=10,
        description="Aluminium housing with cover and mounting bracket",
        tags=["cnc_machining", "metal"],
    )
    service.register_parts(
        creator,
        order.id,
        [
            SplitPart(name="housing.step", storage_path=f"{order.id}/gearbox/housing.step", hierarchy=("gearbox",)),
            SplitPart(name="cover.step", storage_path=f"{order.id}/gearbox/cover.step", hierarchy=("gearbox",)),
            SplitPart(name="bracket.step", storage_path=f"{order.id}/bracket.step"),
        ],
    )
    service.create_offer(
        maker,
        order.id,
        OfferTerms(unit_cost=85.0, shipping_cost=40.0, projected_units=10, lead_time=21),
    )
    logger.info("Seeded demo order %s", order.id)


def create_app(config: Optional[type] = None, *, service: Optional[MarketplaceService] = None) -> FastAPI:
    config = config or get_config()
    setup_logging(
        log_level=config.LOG_LEVEL,
        log_dir=Path(config.LOG_DIR) if config.LOG_DIR else None,
        enable_file_logging=config.ENABLE_FILE_LOGGING,
    )
    if service is None:
        database = MarketplaceDatabase(config.DATABASE_PATH)
        service = MarketplaceService(store=database, dispatcher=LoggingNotificationDispatcher())
    if config.SEED_DEMO_DATA:
        ensure_demo_data(service)

    app = FastAPI(title=config.APP_TITLE)
    app.state.marketplace_service = service

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        service.close()

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        status_code = ERROR_STATUS_CODES.get(exc.kind, 400)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
        return JSONResponse(
            status_code=status_code,
            content=jsonable_encoder(
                {"error": exc.kind, "message": exc.message, "details": exc.details}
            ),
        )

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    @app.post("/orders", status_code=201)
    async def create_order(
        body: CreateOrderRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        order = service.create_order(
            actor,
            body.title,
            quantity=body.quantity,
            description=body.description,
            due_date=body.due_date,
            file_urls=body.file_urls,
            tags=body.tags,
            delivery_address=body.delivery_address,
        )
        return jsonable_encoder({"order": order})

    @app.get("/orders")
    async def list_orders(
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"orders": service.list_orders(actor)})

    @app.get("/orders/unclaimed")
    async def list_unclaimed_orders(
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"orders": service.list_unclaimed_orders(actor)})

    @app.get("/orders/{order_id}")
    async def get_order(
        order_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"order": service.get_order(actor, order_id)})

    @app.patch("/orders/{order_id}")
    async def update_order(
        order_id: str,
        body: UpdateOrderRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        order = service.update_order_details(
            actor,
            order_id,
            title=body.title,
            description=body.description,
            due_date=body.due_date,
            clear_due_date=body.clear_due_date,
        )
        return jsonable_encoder({"order": order})

    @app.post("/orders/{order_id}/advance")
    async def advance_order(
        order_id: str,
        body: Optional[AdvanceRequest] = None,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        shipping = None
        if body is not None and (body.tracking_number or body.carrier):
            shipping = ShippingInfo(
                tracking_number=body.tracking_number or "",
                carrier=body.carrier or "",
            )
        order = service.advance_order(actor, order_id, shipping)
        return jsonable_encoder({"order": order})

    @app.post("/orders/{order_id}/archive")
    async def archive_order(
        order_id: str,
        body: ArchiveRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"order": service.archive_order(actor, order_id, body.archived)})

    @app.get("/orders/{order_id}/readiness")
    async def order_readiness(
        order_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        report = service.order_readiness(actor, order_id)
        return jsonable_encoder({"readiness": report, "ready": report.ready})

    @app.get("/orders/{order_id}/shipping-address")
    async def get_shipping_address(
        order_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"address": service.get_shipping_address(actor, order_id)})

    @app.put("/orders/{order_id}/shipping-address")
    async def save_shipping_address(
        order_id: str,
        body: ShippingAddressRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        address = service.save_shipping_address(
            actor, ShippingAddress(order_id=order_id, **body.model_dump())
        )
        return jsonable_encoder({"address": address})

    # ------------------------------------------------------------------
    # Parts and assemblies
    # ------------------------------------------------------------------
    @app.post("/orders/{order_id}/parts")
    async def register_parts(
        order_id: str,
        body: RegisterPartsRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        parts = service.register_parts(
            actor,
            order_id,
            [
                SplitPart(name=part.name, storage_path=part.storage_path, hierarchy=tuple(part.hierarchy))
                for part in body.parts
            ],
        )
        return jsonable_encoder({"parts": parts})

    @app.get("/orders/{order_id}/parts/tree")
    async def part_tree(
        order_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"tree": service.part_tree(actor, order_id)})

    @app.get("/orders/{order_id}/parts/unassigned")
    async def unassigned_parts(
        order_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"parts": service.unassigned_parts(actor, order_id)})

    @app.get("/orders/{order_id}/assemblies")
    async def list_assemblies(
        order_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"assemblies": service.list_assemblies(actor, order_id)})

    @app.post("/orders/{order_id}/assemblies", status_code=201)
    async def create_assembly(
        order_id: str,
        body: CreateAssemblyRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        assembly = service.create_assembly(actor, order_id, body.name, body.part_ids)
        return jsonable_encoder({"assembly": assembly})

    @app.put("/orders/{order_id}/assemblies/build-order")
    async def reorder_assemblies(
        order_id: str,
        body: BuildOrderRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        assemblies = service.reorder_assemblies(actor, order_id, body.ordered_ids)
        return jsonable_encoder({"assemblies": assemblies})

    @app.post("/assemblies/{assembly_id}/parts")
    async def add_parts(
        assembly_id: str,
        body: MembershipRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder(
            {"assembly": service.add_parts_to_assembly(actor, assembly_id, body.part_ids)}
        )

    @app.post("/assemblies/{assembly_id}/parts/remove")
    async def remove_parts(
        assembly_id: str,
        body: MembershipRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder(
            {"assembly": service.remove_parts_from_assembly(actor, assembly_id, body.part_ids)}
        )

    # ------------------------------------------------------------------
    # Specifications
    # ------------------------------------------------------------------
    @app.get("/assemblies/{assembly_id}/specifications")
    async def list_specifications(
        assembly_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        records = service.list_part_specifications(actor, assembly_id)
        return jsonable_encoder(
            {
                "specifications": [
                    {
                        "id": record.id,
                        "order_id": record.order_id,
                        "assembly_id": record.assembly_id,
                        "part_id": record.part_id,
                        "quantity": record.quantity,
                        "specifications": record.specifications.model_dump(by_alias=True),
                        "updated_at": record.updated_at,
                    }
                    for record in records
                ]
            }
        )

    @app.put("/assemblies/{assembly_id}/specifications")
    async def save_specification(
        assembly_id: str,
        body: PartSpecificationRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        record = service.save_part_specification(
            actor, body.order_id, assembly_id, body.part_id, body.quantity, body.specifications
        )
        return jsonable_encoder(
            {
                "specification": {
                    "id": record.id,
                    "part_id": record.part_id,
                    "quantity": record.quantity,
                    "specifications": record.specifications.model_dump(by_alias=True),
                }
            }
        )

    @app.post("/assemblies/{assembly_id}/complete")
    async def complete_assembly(
        assembly_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"assembly": service.mark_assembly_complete(actor, assembly_id)})

    @app.post("/assemblies/{assembly_id}/reopen")
    async def reopen_assembly(
        assembly_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"assembly": service.reopen_assembly(actor, assembly_id)})

    @app.get("/assemblies/{assembly_id}/progress")
    async def specification_progress(
        assembly_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        progress = service.specification_progress(actor, assembly_id)
        return jsonable_encoder({"progress": progress, "percent": progress.percent})

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------
    @app.post("/orders/{order_id}/offers", status_code=201)
    async def create_offer(
        order_id: str,
        body: OfferRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        offer = service.create_offer(actor, order_id, OfferTerms(**body.model_dump()))
        return jsonable_encoder({"offer": offer})

    @app.get("/orders/{order_id}/offers")
    async def list_pending_offers(
        order_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"offers": service.list_pending_offers(actor, order_id)})

    @app.post("/offers/{offer_id}/accept")
    async def accept_offer(
        offer_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        decision = service.accept_offer(actor, offer_id)
        return jsonable_encoder(
            {
                "offer": decision.offer,
                "order": decision.order,
                "superseded": [offer.id for offer in decision.superseded],
            }
        )

    @app.post("/offers/{offer_id}/decline")
    async def decline_offer(
        offer_id: str,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        decision = service.decline_offer(actor, offer_id)
        return jsonable_encoder({"offer": decision.offer, "order": decision.order})

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------
    @app.post("/chats", status_code=201)
    async def start_chat(
        body: StartChatRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        chat = service.start_direct_chat(actor, body.target_user_id, body.order_id)
        return jsonable_encoder({"chat": chat})

    @app.get("/chats")
    async def list_chats(
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"chats": service.list_chats(actor)})

    @app.get("/chats/{chat_id}/messages")
    async def chat_messages(
        chat_id: str,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        messages = service.get_chat_messages(actor, chat_id, limit=limit, before=before)
        return jsonable_encoder({"messages": messages})

    @app.post("/chats/{chat_id}/messages", status_code=201)
    async def send_chat_message(
        chat_id: str,
        body: ChatMessageRequest,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        message = service.send_chat_message(actor, chat_id, body.content)
        return jsonable_encoder({"message": message})

    # ------------------------------------------------------------------
    # Activity feed
    # ------------------------------------------------------------------
    @app.get("/events")
    async def recent_events(
        limit: int = 10,
        actor: Actor = Depends(current_actor),
        service: MarketplaceService = Depends(get_service),
    ):
        return jsonable_encoder({"events": service.recent_events(actor, limit=limit)})

    return app
