"""
Genealogy (Organisation Hierarchy) Service

Maintains direct parent -> child edges between managers and the derived
closure table used by the commission engine for downline lookups.

Rules for an edge parent -> child:
- parent is an active TEAM_LEADER, child an active TEAM_LEADER or SALES_REP
- a manager has at most one active parent
- no cycles: child must not already be an ancestor of parent

Every structural change rebuilds the closure in the same transaction,
under the hierarchy lock, so readers never see a partial closure.
"""

import logging
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, delete, insert
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ValidationError, NotFoundError
from app.core.locks import exclusive_lock, HIERARCHY_LOCK_KEY
from app.models.genealogy import OrgEdge, OrgRelation
from app.models.user import User, UserRole, MANAGER_ROLES


logger = logging.getLogger(__name__)

LEVEL_NAMES = {1: "A", 2: "B", 3: "C"}

ClosureRow = Tuple[uuid.UUID, uuid.UUID, int]


def compute_closure(
    root_ids: Iterable[uuid.UUID],
    edges: Iterable[Tuple[uuid.UUID, uuid.UUID]],
    max_depth: int = 3,
) -> List[ClosureRow]:
    """
    Breadth-first closure of (parent, child) edges.

    For every root, records each node reachable within max_depth hops with
    its minimum hop count. Nodes deeper than max_depth are neither recorded
    nor expanded.
    """
    adjacency: Dict[uuid.UUID, List[uuid.UUID]] = {}
    for parent_id, child_id in edges:
        adjacency.setdefault(parent_id, []).append(child_id)

    rows: List[ClosureRow] = []
    for root_id in root_ids:
        depths: Dict[uuid.UUID, int] = {}
        queue = deque([(root_id, 0)])
        visited = {root_id}

        while queue:
            node_id, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for child_id in adjacency.get(node_id, []):
                if child_id in visited:
                    continue
                visited.add(child_id)
                depths[child_id] = depth + 1
                queue.append((child_id, depth + 1))

        rows.extend((root_id, descendant_id, depth) for descendant_id, depth in depths.items())

    return rows


class HierarchyService:
    """Service for genealogy edges and the closure table."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.max_depth = settings.HIERARCHY_MAX_DEPTH

    # ========================================================================
    # Edge Mutation
    # ========================================================================

    async def create_edge(self, parent_id: uuid.UUID, child_id: uuid.UUID) -> OrgEdge:
        """
        Link child under parent and rebuild the closure.

        Raises:
            NotFoundError: parent or child does not exist
            ValidationError: role/activity mismatch, duplicate edge,
                child already has a parent, or the edge would close a cycle
        """
        if parent_id == child_id:
            raise ValidationError("Parent and child cannot be the same manager")

        async with exclusive_lock(self.db, HIERARCHY_LOCK_KEY):
            parent = await self._get_user(parent_id, "Parent")
            child = await self._get_user(child_id, "Child")

            if not parent.is_active:
                raise ValidationError("Parent manager is inactive", {"parent_id": str(parent_id)})
            if not child.is_active:
                raise ValidationError("Child manager is inactive", {"child_id": str(child_id)})
            if parent.role != UserRole.TEAM_LEADER.value:
                raise ValidationError("Parent must be a Team Leader", {"parent_role": parent.role})
            if child.role not in MANAGER_ROLES:
                raise ValidationError(
                    "Child must be a Team Leader or Sales Rep", {"child_role": child.role}
                )

            existing = await self.db.execute(
                select(OrgEdge.id).where(
                    OrgEdge.parent_id == parent_id,
                    OrgEdge.child_id == child_id,
                    OrgEdge.valid_to.is_(None),
                )
            )
            if existing.scalar_one_or_none():
                raise ValidationError("This edge already exists")

            current_parent = await self.get_active_parent_edge(child_id)
            if current_parent:
                raise ValidationError(
                    "Manager already has a parent Team Leader",
                    {"existing_edge_id": str(current_parent.id)},
                )

            if await self.would_create_cycle(parent_id, child_id):
                raise ValidationError(
                    "This edge would create a circular reporting line",
                    {"parent_id": str(parent_id), "child_id": str(child_id)},
                )

            edge = OrgEdge(
                id=uuid.uuid4(),
                parent_id=parent_id,
                child_id=child_id,
                valid_from=datetime.now(timezone.utc),
            )
            self.db.add(edge)
            await self.db.flush()

            relation_count = await self.rebuild_relations()
            await self.db.commit()

        logger.info(f"Org edge {edge.id} created: {parent.email} -> {child.email} "
                    f"({relation_count} closure rows)")
        return await self.get_edge(edge.id)

    async def remove_edge(self, edge_id: uuid.UUID) -> OrgEdge:
        """Deactivate an edge (valid_to = now) and rebuild the closure."""
        async with exclusive_lock(self.db, HIERARCHY_LOCK_KEY):
            edge = await self.db.get(OrgEdge, edge_id)
            if not edge:
                raise NotFoundError("Org edge not found", {"edge_id": str(edge_id)})
            if edge.valid_to is not None:
                raise ValidationError("Org edge is already inactive", {"edge_id": str(edge_id)})

            edge.valid_to = datetime.now(timezone.utc)
            await self.db.flush()

            relation_count = await self.rebuild_relations()
            await self.db.commit()

        logger.info(f"Org edge {edge_id} removed ({relation_count} closure rows)")
        return await self.get_edge(edge_id)

    async def rebuild_relations(self) -> int:
        """
        Regenerate the closure from active edges.

        Caller holds the hierarchy lock and owns the transaction.
        Returns the number of closure rows written.
        """
        await self.db.execute(delete(OrgRelation))

        edge_result = await self.db.execute(
            select(OrgEdge.parent_id, OrgEdge.child_id)
            .where(OrgEdge.valid_to.is_(None))
            .order_by(OrgEdge.valid_from, OrgEdge.id)
        )
        edges = [(row.parent_id, row.child_id) for row in edge_result.all()]

        root_result = await self.db.execute(
            select(User.id)
            .where(User.role.in_(MANAGER_ROLES), User.is_active.is_(True))
            .order_by(User.id)
        )
        root_ids = list(root_result.scalars().all())

        rows = compute_closure(root_ids, edges, self.max_depth)
        if rows:
            await self.db.execute(
                insert(OrgRelation),
                [
                    {"ancestor_id": ancestor_id, "descendant_id": descendant_id, "depth": depth}
                    for ancestor_id, descendant_id, depth in rows
                ],
            )
        await self.db.flush()

        logger.debug(f"Closure rebuilt: {len(edges)} edges, {len(root_ids)} managers, {len(rows)} rows")
        return len(rows)

    # ========================================================================
    # Queries
    # ========================================================================

    async def would_create_cycle(self, parent_id: uuid.UUID, child_id: uuid.UUID) -> bool:
        """
        An edge parent -> child closes a cycle iff child is already an ancestor of parent.

        The closure only covers the tracked depths, so the active parent chain
        above parent is walked to the top.
        """
        seen = set()
        current_id: Optional[uuid.UUID] = parent_id
        while current_id is not None and current_id not in seen:
            if current_id == child_id:
                return True
            seen.add(current_id)
            result = await self.db.execute(
                select(OrgEdge.parent_id).where(
                    OrgEdge.child_id == current_id,
                    OrgEdge.valid_to.is_(None),
                )
            )
            current_id = result.scalars().first()
        return False

    async def get_active_parent_edge(self, child_id: uuid.UUID) -> Optional[OrgEdge]:
        result = await self.db.execute(
            select(OrgEdge).where(
                OrgEdge.child_id == child_id,
                OrgEdge.valid_to.is_(None),
            )
        )
        return result.scalars().first()

    async def get_edge(self, edge_id: uuid.UUID) -> OrgEdge:
        result = await self.db.execute(
            select(OrgEdge)
            .options(selectinload(OrgEdge.parent), selectinload(OrgEdge.child))
            .where(OrgEdge.id == edge_id)
            .execution_options(populate_existing=True)
        )
        edge = result.scalar_one_or_none()
        if not edge:
            raise NotFoundError("Org edge not found", {"edge_id": str(edge_id)})
        return edge

    async def list_active_edges(self) -> Sequence[OrgEdge]:
        result = await self.db.execute(
            select(OrgEdge)
            .options(selectinload(OrgEdge.parent), selectinload(OrgEdge.child))
            .where(OrgEdge.valid_to.is_(None))
            .order_by(OrgEdge.valid_from)
        )
        edges = list(result.scalars().all())
        edges.sort(key=lambda e: (e.parent.name, e.child.name))
        return edges

    async def get_descendants(
        self,
        ancestor_id: uuid.UUID,
        depths: Sequence[int] = (1, 2, 3),
    ) -> List[Tuple[uuid.UUID, int]]:
        """(descendant_id, depth) pairs for an ancestor. Indexed read, no traversal."""
        result = await self.db.execute(
            select(OrgRelation.descendant_id, OrgRelation.depth)
            .where(
                OrgRelation.ancestor_id == ancestor_id,
                OrgRelation.depth.in_(list(depths)),
            )
            .order_by(OrgRelation.depth, OrgRelation.descendant_id)
        )
        return [(row.descendant_id, row.depth) for row in result.all()]

    async def list_relations(self, manager_id: uuid.UUID, direction: str = "descendants") -> List[dict]:
        """Closure rows around a manager with the related users loaded."""
        await self._get_user(manager_id, "Manager")

        if direction == "ancestors":
            other_id, own_id = OrgRelation.ancestor_id, OrgRelation.descendant_id
        else:
            other_id, own_id = OrgRelation.descendant_id, OrgRelation.ancestor_id

        result = await self.db.execute(
            select(User, OrgRelation.depth)
            .join(OrgRelation, other_id == User.id)
            .where(own_id == manager_id)
            .order_by(OrgRelation.depth, User.name)
        )
        return [
            {"manager": user, "depth": depth, "level": LEVEL_NAMES.get(depth, str(depth))}
            for user, depth in result.all()
        ]

    async def build_org_structure(self) -> List[dict]:
        """
        Nested org tree of active managers.

        Roots are active managers without an active parent.
        """
        users_result = await self.db.execute(
            select(User)
            .where(User.role.in_(MANAGER_ROLES), User.is_active.is_(True))
            .order_by(User.name)
        )
        users = {u.id: u for u in users_result.scalars().all()}

        edge_result = await self.db.execute(
            select(OrgEdge.parent_id, OrgEdge.child_id).where(OrgEdge.valid_to.is_(None))
        )
        children_map: Dict[uuid.UUID, List[uuid.UUID]] = {}
        has_parent = set()
        for parent_id, child_id in edge_result.all():
            children_map.setdefault(parent_id, []).append(child_id)
            has_parent.add(child_id)

        def build_node(user_id: uuid.UUID, level: int, seen: frozenset) -> Optional[dict]:
            user = users.get(user_id)
            if user is None or user_id in seen:
                return None
            children = [
                node for node in (
                    build_node(child_id, level + 1, seen | {user_id})
                    for child_id in children_map.get(user_id, [])
                ) if node
            ]
            children.sort(key=lambda n: n["user"].name)
            return {"user": user, "level": level, "children": children}

        return [
            node for node in (
                build_node(user_id, 0, frozenset())
                for user_id in users if user_id not in has_parent
            ) if node
        ]

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _get_user(self, user_id: uuid.UUID, label: str) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError(f"{label} user not found", {"user_id": str(user_id)})
        return user
