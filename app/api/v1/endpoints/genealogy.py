"""API endpoints for the organisation hierarchy (genealogy)."""
from uuid import UUID

from fastapi import APIRouter, status

from app.api.deps import DB, AdminUser
from app.schemas.genealogy import (
    OrgEdgeCreate,
    OrgEdgeResponse,
    OrgNode,
    GenealogyResponse,
    RelationResponse,
    RelationListResponse,
)
from app.services.hierarchy_service import HierarchyService

router = APIRouter()


@router.get("", response_model=GenealogyResponse)
async def get_genealogy(db: DB, admin: AdminUser):
    """Active edges and the nested org tree."""
    service = HierarchyService(db)
    edges = await service.list_active_edges()
    structure = await service.build_org_structure()
    return GenealogyResponse(
        edges=[OrgEdgeResponse.model_validate(e) for e in edges],
        structure=[OrgNode.model_validate(node) for node in structure],
    )


@router.post("/edges", response_model=OrgEdgeResponse, status_code=status.HTTP_201_CREATED)
async def create_edge(edge_in: OrgEdgeCreate, db: DB, admin: AdminUser):
    """Put child under parent. Rejects duplicates, second parents and cycles."""
    return await HierarchyService(db).create_edge(edge_in.parent_id, edge_in.child_id)


@router.delete("/edges/{edge_id}", response_model=OrgEdgeResponse)
async def remove_edge(edge_id: UUID, db: DB, admin: AdminUser):
    """Deactivate an edge (valid_to = now). Edges are never physically removed."""
    return await HierarchyService(db).remove_edge(edge_id)


@router.get("/{manager_id}/descendants", response_model=RelationListResponse)
async def list_descendants(manager_id: UUID, db: DB, admin: AdminUser):
    relations = await HierarchyService(db).list_relations(manager_id, "descendants")
    return RelationListResponse(
        manager_id=manager_id,
        items=[RelationResponse.model_validate(r) for r in relations],
    )


@router.get("/{manager_id}/ancestors", response_model=RelationListResponse)
async def list_ancestors(manager_id: UUID, db: DB, admin: AdminUser):
    relations = await HierarchyService(db).list_relations(manager_id, "ancestors")
    return RelationListResponse(
        manager_id=manager_id,
        items=[RelationResponse.model_validate(r) for r in relations],
    )
