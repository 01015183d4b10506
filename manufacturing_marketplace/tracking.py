"""Per-part specification records and assembly-level completeness."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Union

from .base import MarketplaceComponent, require_order_creator, require_order_party
from .domain import Actor, Assembly, PartSpecification
from .exceptions import NotFoundError, ValidationError
from .logging_config import get_logger
from .specifications import PartSpecificationContent, parse_specification

logger = get_logger(__name__)

SpecificationPayload = Union[PartSpecificationContent, Mapping[str, Any]]


def specification_id(assembly_id: str, part_id: str) -> str:
    return f"{assembly_id}:{part_id}"


@dataclass(slots=True)
class SpecificationProgress:
    """Advisory completion view; distinct from the persisted flag."""

    assembly_id: str
    total_parts: int
    specified_parts: int

    @property
    def percent(self) -> float:
        if self.total_parts == 0:
            return 0.0
        return round(100.0 * self.specified_parts / self.total_parts, 1)


@dataclass(slots=True)
class ReadinessReport:
    order_id: str
    assemblies: int
    completed_assemblies: int
    unassigned_parts: int

    @property
    def ready(self) -> bool:
        return self.assemblies > 0 and self.completed_assemblies == self.assemblies


class SpecificationTracker(MarketplaceComponent):
    """Records specifications per (assembly, part) and gates assembly completion."""

    def _assembly(self, assembly_id: str) -> Assembly:
        return self._load(self.store.assemblies, assembly_id, "Assembly")

    def _member_part_ids(self, assembly_id: str) -> List[str]:
        return [
            link.part_id
            for link in self.store.assembly_parts.filter(
                lambda link: link.assembly_id == assembly_id
            )
        ]

    def save_part_specification(
        self,
        actor: Actor,
        order_id: str,
        assembly_id: str,
        part_id: str,
        quantity: int,
        specifications: SpecificationPayload,
    ) -> PartSpecification:
        """Create or replace the record for (assembly_id, part_id)."""
        order = self._load_order(order_id)
        require_order_creator(actor, order)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Quantity must be a positive whole number", {"quantity": quantity})
        content = parse_specification(specifications)

        with self._unit_of_work("save part specification"):
            assembly = self._assembly(assembly_id)
            if assembly.order_id != order_id:
                raise NotFoundError("Assembly", assembly_id)
            part = self._load(self.store.parts, part_id, "Part")
            if part.order_id != order_id:
                raise NotFoundError("Part", part_id)
            if part_id not in self._member_part_ids(assembly_id):
                raise ValidationError(
                    f"Part {part_id!r} is not a member of assembly {assembly_id!r}",
                    {"assembly_id": assembly_id, "part_id": part_id},
                )
            record = PartSpecification(
                id=specification_id(assembly_id, part_id),
                order_id=order_id,
                assembly_id=assembly_id,
                part_id=part_id,
                quantity=quantity,
                specifications=content,
                updated_at=datetime.utcnow(),
            )
            self.store.part_specifications.upsert(record.id, record)
        logger.info("Saved specification for part %s in assembly %s", part_id, assembly_id)
        return record

    def get_part_specification(self, assembly_id: str, part_id: str) -> PartSpecification:
        return self._load(
            self.store.part_specifications,
            specification_id(assembly_id, part_id),
            "Part specification",
        )

    def list_part_specifications(self, assembly_id: str) -> List[PartSpecification]:
        self._assembly(assembly_id)
        return self.store.part_specifications.filter(
            lambda record: record.assembly_id == assembly_id
        )

    def _unspecified_parts(self, assembly_id: str) -> List[str]:
        specified = {
            record.part_id for record in self.list_part_specifications(assembly_id)
        }
        return [
            part_id
            for part_id in self._member_part_ids(assembly_id)
            if part_id not in specified
        ]

    def mark_assembly_complete(self, actor: Actor, assembly_id: str) -> Assembly:
        require_order_creator(actor, self._load_order(self._assembly(assembly_id).order_id))
        with self._unit_of_work("mark assembly complete"):
            assembly = self._assembly(assembly_id)
            missing = self._unspecified_parts(assembly_id)
            if missing:
                logger.warning(
                    "Assembly %s has %d part(s) without specifications",
                    assembly_id,
                    len(missing),
                )
                raise ValidationError(
                    "Every part of the assembly needs a specification before it is complete",
                    {"assembly_id": assembly_id, "unspecified_part_ids": missing},
                )
            assembly.specifications_completed = True
            self.store.assemblies.upsert(assembly.id, assembly)
        logger.info("Assembly %s specifications completed", assembly_id)
        return assembly

    def reopen_assembly(self, actor: Actor, assembly_id: str) -> Assembly:
        require_order_creator(actor, self._load_order(self._assembly(assembly_id).order_id))
        with self._unit_of_work("reopen assembly"):
            assembly = self._assembly(assembly_id)
            assembly.specifications_completed = False
            self.store.assemblies.upsert(assembly.id, assembly)
        logger.info("Assembly %s reopened for specification changes", assembly_id)
        return assembly

    def specification_progress(self, assembly_id: str) -> SpecificationProgress:
        self._assembly(assembly_id)
        members = self._member_part_ids(assembly_id)
        missing = self._unspecified_parts(assembly_id)
        return SpecificationProgress(
            assembly_id=assembly_id,
            total_parts=len(members),
            specified_parts=len(members) - len(missing),
        )

    def order_readiness(self, actor: Actor, order_id: str) -> ReadinessReport:
        order = self._load_order(order_id)
        require_order_party(actor, order)
        assemblies = self.store.assemblies.for_order(order_id)
        assigned = {
            link.part_id
            for link in self.store.assembly_parts.for_order(order_id)
        }
        parts = self.store.parts.for_order(order_id)
        return ReadinessReport(
            order_id=order_id,
            assemblies=len(assemblies),
            completed_assemblies=sum(1 for item in assemblies if item.specifications_completed),
            unassigned_parts=sum(1 for part in parts if part.id not in assigned),
        )


__all__ = [
    "SpecificationTracker",
    "SpecificationProgress",
    "ReadinessReport",
    "specification_id",
]
