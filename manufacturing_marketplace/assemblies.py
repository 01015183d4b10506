"""Decomposition of an uploaded CAD assembly into parts and manufacturing assemblies."""

from __future__ import annotations

import re
import unicodedata
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set, Union
from uuid import uuid4

from .base import MarketplaceComponent, require_order_creator
from .domain import Actor, Assembly, AssemblyPart, AssemblyWithParts, Part, SplitPart
from .exceptions import NotFoundError, ValidationError
from .logging_config import get_logger

logger = get_logger(__name__)

PART_NAMESPACE = uuid.UUID("6f1c2d9e-3b7a-5c4e-9a2f-0d8e7b6a5c41")
DEFAULT_ASSEMBLY_NAME = "Assembly"

SplitPartInput = Union[SplitPart, Mapping[str, object], str]


def derive_part_id(order_id: str, storage_path: str) -> str:
    """Stable part id so re-decomposing the same file yields the same part."""
    return str(uuid.uuid5(PART_NAMESPACE, f"{order_id}:{storage_path}"))


def sanitize_label(value: str, default: str = DEFAULT_ASSEMBLY_NAME) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    normalized = re.sub(r"[^\w\s.-]", "", normalized, flags=re.ASCII)
    normalized = re.sub(r"\s+", " ", normalized).strip()
    return normalized or default


def coerce_split_part(entry: SplitPartInput) -> SplitPart:
    """Accept the shapes the CAD splitting service returns.

    A bare string is a storage path: its file name becomes the part name and
    its parent folders the hierarchy.
    """
    if isinstance(entry, SplitPart):
        return entry
    if isinstance(entry, str):
        segments = [segment for segment in entry.split("/") if segment]
        if not segments:
            raise ValidationError("Split part storage path is empty")
        return SplitPart(name=segments[-1], storage_path=entry, hierarchy=tuple(segments[:-1]))
    if isinstance(entry, Mapping):
        storage_path = entry.get("storage_path") or entry.get("storagePath")
        if not isinstance(storage_path, str) or not storage_path:
            raise ValidationError("Split part is missing its storage path", {"part": dict(entry)})
        name = entry.get("name")
        if not isinstance(name, str) or not name:
            name = storage_path.rstrip("/").rsplit("/", 1)[-1]
        hierarchy = entry.get("hierarchy") or ()
        if not isinstance(hierarchy, (list, tuple)):
            raise ValidationError("Split part hierarchy must be a list", {"part": dict(entry)})
        return SplitPart(
            name=name,
            storage_path=storage_path,
            hierarchy=tuple(str(segment) for segment in hierarchy if segment),
        )
    raise ValidationError(f"Unsupported split part entry {entry!r}")


# ----------------------------------------------------------------------
# Part tree
# ----------------------------------------------------------------------
@dataclass(slots=True)
class PartTreeNode:
    """Folder grouping (``part`` is None) or leaf wrapping a part."""

    id: str
    label: str
    path: str
    part: Optional[Part] = None
    children: List["PartTreeNode"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return self.part is not None


def _sort_nodes(nodes: List[PartTreeNode]) -> None:
    nodes.sort(key=lambda node: (node.is_leaf, node.label.casefold(), node.label))
    for node in nodes:
        _sort_nodes(node.children)


def build_part_tree(parts: Sequence[Part]) -> List[PartTreeNode]:
    """Build the display hierarchy from each part's folder path.

    Folders sort before parts at every level, then by label. The input is
    not modified.
    """
    root: List[PartTreeNode] = []
    folders: Dict[str, PartTreeNode] = {}

    for part in parts:
        parent_path = ""
        siblings = root
        for segment in part.hierarchy:
            current_path = f"{parent_path}/{segment}" if parent_path else segment
            parent_path = current_path
            node = folders.get(current_path)
            if node is None:
                node = PartTreeNode(id=current_path, label=segment, path=current_path)
                folders[current_path] = node
                siblings.append(node)
            siblings = node.children

        part_path = f"{parent_path}/{part.name}" if parent_path else part.name
        siblings.append(
            PartTreeNode(id=part.storage_path, label=part.name, path=part_path, part=part)
        )

    _sort_nodes(root)
    return root


def format_part_breadcrumb(part: Part) -> str:
    segments = [segment for segment in part.hierarchy if segment]
    if part.name:
        segments.append(part.name)
    if not segments:
        return "Unnamed part"
    return " / ".join(segments)


def format_part_location(part: Part) -> str:
    segments = [segment for segment in part.hierarchy if segment]
    if not segments:
        return "Top-level part"
    return " / ".join(segments)


# ----------------------------------------------------------------------
# Decomposer
# ----------------------------------------------------------------------
class AssemblyDecomposer(MarketplaceComponent):
    """Partitions an order's parts into named assemblies and sequences them."""

    def register_parts(
        self, actor: Actor, order_id: str, split_parts: Sequence[SplitPartInput]
    ) -> List[Part]:
        order = self._load_order(order_id)
        require_order_creator(actor, order)
        entries = [coerce_split_part(entry) for entry in split_parts]
        registered: List[Part] = []
        created = 0
        with self._unit_of_work("register parts"):
            for entry in entries:
                part_id = derive_part_id(order_id, entry.storage_path)
                if part_id in self.store.parts:
                    registered.append(self.store.parts.get(part_id))
                    continue
                part = Part(
                    id=part_id,
                    order_id=order_id,
                    name=entry.name,
                    storage_path=entry.storage_path,
                    hierarchy=entry.hierarchy,
                )
                self.store.parts.add(part.id, part)
                registered.append(part)
                created += 1
        logger.info(
            "Registered %d part(s) for order %s (%d new)", len(registered), order_id, created
        )
        return registered

    def list_parts(self, order_id: str) -> List[Part]:
        self._load_order(order_id)
        return self.store.parts.for_order(order_id)

    def part_tree(self, order_id: str) -> List[PartTreeNode]:
        return build_part_tree(self.list_parts(order_id))

    def _links_for_order(self, order_id: str) -> List[AssemblyPart]:
        return self.store.assembly_parts.for_order(order_id)

    def _assigned_parts(self, order_id: str) -> Dict[str, str]:
        return {link.part_id: link.assembly_id for link in self._links_for_order(order_id)}

    def unassigned_parts(self, order_id: str) -> List[Part]:
        assigned = self._assigned_parts(order_id)
        return [part for part in self.list_parts(order_id) if part.id not in assigned]

    def part_ids_for(self, assembly_id: str) -> List[str]:
        return [
            link.part_id
            for link in self.store.assembly_parts.filter(
                lambda link: link.assembly_id == assembly_id
            )
        ]

    def _validate_parts(self, order_id: str, part_ids: Sequence[str]) -> List[str]:
        unique_ids = list(dict.fromkeys(part_ids))
        if not unique_ids:
            raise ValidationError("An assembly requires at least one part")
        for part_id in unique_ids:
            part = self._load(self.store.parts, part_id, "Part")
            if part.order_id != order_id:
                raise NotFoundError("Part", part_id)
        return unique_ids

    def _ensure_unassigned(self, order_id: str, part_ids: Sequence[str]) -> None:
        assigned = self._assigned_parts(order_id)
        conflicts = {part_id: assigned[part_id] for part_id in part_ids if part_id in assigned}
        if conflicts:
            logger.warning(
                "Rejected assignment of %d already assigned part(s) in order %s",
                len(conflicts),
                order_id,
            )
            raise ValidationError(
                "Parts are already assigned to another assembly",
                {"assigned": conflicts},
            )

    def _link(self, order_id: str, assembly_id: str, part_ids: Sequence[str]) -> None:
        for part_id in part_ids:
            link = AssemblyPart(
                id=f"{assembly_id}:{part_id}",
                order_id=order_id,
                assembly_id=assembly_id,
                part_id=part_id,
            )
            self.store.assembly_parts.add(link.id, link)

    def create_assembly(
        self, actor: Actor, order_id: str, name: str, part_ids: Sequence[str]
    ) -> AssemblyWithParts:
        order = self._load_order(order_id)
        require_order_creator(actor, order)
        with self._unit_of_work("create assembly"):
            unique_ids = self._validate_parts(order_id, part_ids)
            self._ensure_unassigned(order_id, unique_ids)
            assembly = Assembly(id=str(uuid4()), order_id=order_id, name=sanitize_label(name))
            self.store.assemblies.add(assembly.id, assembly)
            self._link(order_id, assembly.id, unique_ids)
        logger.info(
            "Created assembly %s (%s) with %d part(s) for order %s",
            assembly.id,
            assembly.name,
            len(unique_ids),
            order_id,
        )
        return AssemblyWithParts(assembly=assembly, part_ids=unique_ids)

    def get_assembly(self, assembly_id: str) -> Assembly:
        return self._load(self.store.assemblies, assembly_id, "Assembly")

    def list_assemblies(self, order_id: str) -> List[AssemblyWithParts]:
        self._load_order(order_id)
        assemblies = self.store.assemblies.for_order(order_id)
        assemblies.sort(
            key=lambda item: (
                item.build_order is not None,
                item.build_order or 0,
                item.created_at,
            )
        )
        links = self._links_for_order(order_id)
        return [
            AssemblyWithParts(
                assembly=assembly,
                part_ids=[link.part_id for link in links if link.assembly_id == assembly.id],
            )
            for assembly in assemblies
        ]

    def add_parts_to_assembly(
        self, actor: Actor, assembly_id: str, part_ids: Sequence[str]
    ) -> AssemblyWithParts:
        order = self._load_order(self.get_assembly(assembly_id).order_id)
        require_order_creator(actor, order)
        with self._unit_of_work("add parts to assembly"):
            assembly = self.get_assembly(assembly_id)
            unique_ids = self._validate_parts(order.id, part_ids)
            self._ensure_unassigned(order.id, unique_ids)
            self._link(order.id, assembly.id, unique_ids)
            self._invalidate_completion(assembly)
            members = self.part_ids_for(assembly_id)
        logger.info("Added %d part(s) to assembly %s", len(unique_ids), assembly_id)
        return AssemblyWithParts(assembly=assembly, part_ids=members)

    def remove_parts_from_assembly(
        self, actor: Actor, assembly_id: str, part_ids: Sequence[str]
    ) -> AssemblyWithParts:
        order = self._load_order(self.get_assembly(assembly_id).order_id)
        require_order_creator(actor, order)
        to_remove = list(dict.fromkeys(part_ids))
        with self._unit_of_work("remove parts from assembly"):
            assembly = self.get_assembly(assembly_id)
            current = self.part_ids_for(assembly_id)
            missing = [part_id for part_id in to_remove if part_id not in current]
            if missing:
                raise ValidationError(
                    "Parts are not members of this assembly", {"part_ids": missing}
                )
            if len(to_remove) >= len(current):
                raise ValidationError(
                    "An assembly must keep at least one part",
                    {"assembly_id": assembly_id, "members": current},
                )
            for part_id in to_remove:
                self.store.assembly_parts.remove(f"{assembly_id}:{part_id}")
            self._invalidate_completion(assembly)
            members = self.part_ids_for(assembly_id)
        logger.info("Removed %d part(s) from assembly %s", len(to_remove), assembly_id)
        return AssemblyWithParts(assembly=assembly, part_ids=members)

    def _invalidate_completion(self, assembly: Assembly) -> None:
        if assembly.specifications_completed:
            assembly.specifications_completed = False
            logger.info(
                "Membership of assembly %s changed; specifications marked incomplete",
                assembly.id,
            )
        self.store.assemblies.upsert(assembly.id, assembly)

    def reorder_assemblies(
        self, actor: Actor, order_id: str, ordered_ids: Sequence[str]
    ) -> List[Assembly]:
        """Replace the full build sequence: ``ordered_ids[i]`` gets build order i + 1."""
        order = self._load_order(order_id)
        require_order_creator(actor, order)
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationError("Build order contains duplicate assemblies")
        with self._unit_of_work("reorder assemblies"):
            assemblies = {
                assembly.id: assembly
                for assembly in self.store.assemblies.for_order(order_id)
            }
            requested: Set[str] = set(ordered_ids)
            if requested != set(assemblies):
                raise ValidationError(
                    "Build order must list every assembly of the order exactly once",
                    {
                        "missing": sorted(set(assemblies) - requested),
                        "unknown": sorted(requested - set(assemblies)),
                    },
                )
            reordered: List[Assembly] = []
            for index, assembly_id in enumerate(ordered_ids):
                assembly = assemblies[assembly_id]
                assembly.build_order = index + 1
                self.store.assemblies.upsert(assembly.id, assembly)
                reordered.append(assembly)
        logger.info("Reordered %d assemblies for order %s", len(reordered), order_id)
        return reordered


__all__ = [
    "AssemblyDecomposer",
    "PartTreeNode",
    "build_part_tree",
    "coerce_split_part",
    "derive_part_id",
    "format_part_breadcrumb",
    "format_part_location",
    "sanitize_label",
]
