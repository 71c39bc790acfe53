"""Tests for genealogy edges and closure maintenance."""
import uuid

import pytest
from sqlalchemy import select

from app.core.exceptions import NotFoundError, ValidationError
from app.models.genealogy import OrgEdge, OrgRelation
from app.models.user import UserRole
from app.services.hierarchy_service import HierarchyService


async def relations(db):
    result = await db.execute(select(OrgRelation.ancestor_id, OrgRelation.descendant_id, OrgRelation.depth))
    return set(result.all())


async def active_edges(db):
    result = await db.execute(select(OrgEdge).where(OrgEdge.valid_to.is_(None)))
    return result.scalars().all()


@pytest.fixture
async def chain(db, make_user):
    """A -> B -> C, all Team Leaders."""
    a = await make_user("Alice")
    b = await make_user("Bob")
    c = await make_user("Carol")
    service = HierarchyService(db)
    await service.create_edge(a.id, b.id)
    await service.create_edge(b.id, c.id)
    return a, b, c


async def test_create_edge_rebuilds_closure(db, chain):
    a, b, c = chain

    assert await relations(db) == {
        (a.id, b.id, 1),
        (a.id, c.id, 2),
        (b.id, c.id, 1),
    }


async def test_created_edge_is_returned_with_users(db, make_user):
    a = await make_user("Alice")
    s = await make_user("Sam", UserRole.SALES_REP)

    edge = await HierarchyService(db).create_edge(a.id, s.id)

    assert edge.valid_to is None
    assert edge.parent.name == "Alice"
    assert edge.child.name == "Sam"


async def test_cycle_is_rejected_before_mutation(db, chain):
    a, b, c = chain

    with pytest.raises(ValidationError, match="circular"):
        await HierarchyService(db).create_edge(c.id, a.id)

    assert len(await active_edges(db)) == 2


async def test_second_parent_is_rejected(db, chain, make_user):
    a, b, c = chain
    d = await make_user("Dave")

    with pytest.raises(ValidationError, match="already has a parent"):
        await HierarchyService(db).create_edge(d.id, c.id)


async def test_duplicate_edge_is_rejected(db, chain):
    a, b, c = chain

    with pytest.raises(ValidationError, match="already exists"):
        await HierarchyService(db).create_edge(a.id, b.id)


async def test_parent_must_be_team_leader(db, make_user):
    sr = await make_user("Sam", UserRole.SALES_REP)
    tl = await make_user("Tina")

    with pytest.raises(ValidationError, match="Team Leader"):
        await HierarchyService(db).create_edge(sr.id, tl.id)


async def test_child_must_be_a_manager(db, make_user):
    tl = await make_user("Tina")
    admin = await make_user("Root", UserRole.ADMIN)

    with pytest.raises(ValidationError):
        await HierarchyService(db).create_edge(tl.id, admin.id)


async def test_self_edge_is_rejected(db, make_user):
    tl = await make_user("Tina")

    with pytest.raises(ValidationError):
        await HierarchyService(db).create_edge(tl.id, tl.id)


async def test_inactive_child_is_rejected(db, make_user):
    tl = await make_user("Tina")
    gone = await make_user("Gone", UserRole.SALES_REP, is_active=False)

    with pytest.raises(ValidationError, match="inactive"):
        await HierarchyService(db).create_edge(tl.id, gone.id)


async def test_unknown_user_is_not_found(db, make_user):
    tl = await make_user("Tina")

    with pytest.raises(NotFoundError):
        await HierarchyService(db).create_edge(tl.id, uuid.uuid4())


async def test_removing_top_edge_collapses_ancestors(db, chain):
    a, b, c = chain
    service = HierarchyService(db)
    edge = await service.get_active_parent_edge(b.id)

    removed = await service.remove_edge(edge.id)

    assert removed.valid_to is not None
    assert await relations(db) == {(b.id, c.id, 1)}
    ancestors = await service.list_relations(c.id, "ancestors")
    assert [r["manager"].id for r in ancestors] == [b.id]


async def test_removed_edge_is_kept_for_audit(db, chain):
    a, b, c = chain
    service = HierarchyService(db)
    edge = await service.get_active_parent_edge(b.id)
    await service.remove_edge(edge.id)

    result = await db.execute(select(OrgEdge).where(OrgEdge.id == edge.id))
    assert result.scalar_one().valid_to is not None

    with pytest.raises(ValidationError, match="already inactive"):
        await service.remove_edge(edge.id)


async def test_remove_unknown_edge(db):
    with pytest.raises(NotFoundError):
        await HierarchyService(db).remove_edge(uuid.uuid4())


async def test_child_can_be_reattached_after_removal(db, chain, make_user):
    a, b, c = chain
    d = await make_user("Dave")
    service = HierarchyService(db)
    edge = await service.get_active_parent_edge(c.id)
    await service.remove_edge(edge.id)

    await service.create_edge(d.id, c.id)

    assert (d.id, c.id, 1) in await relations(db)
    assert (a.id, c.id, 2) not in await relations(db)


async def test_depth_beyond_three_is_not_tracked(db, make_user):
    users = [await make_user(name) for name in ("L0", "L1", "L2", "L3", "L4")]
    service = HierarchyService(db)
    for parent, child in zip(users, users[1:]):
        await service.create_edge(parent.id, child.id)

    descendants = await service.get_descendants(users[0].id)

    assert descendants == sorted(
        [(users[1].id, 1), (users[2].id, 2), (users[3].id, 3)],
        key=lambda d: (d[1], d[0]),
    )


async def test_cycle_beyond_tracked_depth_is_rejected(db, make_user):
    users = [await make_user(name) for name in ("L0", "L1", "L2", "L3", "L4")]
    service = HierarchyService(db)
    for parent, child in zip(users, users[1:]):
        await service.create_edge(parent.id, child.id)

    with pytest.raises(ValidationError, match="circular"):
        await service.create_edge(users[4].id, users[0].id)

    assert len(await active_edges(db)) == 4


async def test_descendant_listing_has_levels(db, chain):
    a, b, c = chain

    items = await HierarchyService(db).list_relations(a.id)

    assert [(r["manager"].name, r["depth"], r["level"]) for r in items] == [
        ("Bob", 1, "A"),
        ("Carol", 2, "B"),
    ]


async def test_org_structure_nests_children(db, chain, make_user):
    a, b, c = chain
    await make_user("Zed", UserRole.SALES_REP)

    structure = await HierarchyService(db).build_org_structure()

    roots = {node["user"].name: node for node in structure}
    assert set(roots) == {"Alice", "Zed"}
    bob = roots["Alice"]["children"][0]
    assert bob["user"].name == "Bob"
    assert bob["level"] == 1
    assert bob["children"][0]["user"].name == "Carol"
