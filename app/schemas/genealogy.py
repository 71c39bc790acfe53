"""Pydantic schemas for the organisation hierarchy."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel

from app.schemas.base import BaseResponseSchema, BaseCreateSchema
from app.schemas.user import UserBrief


class OrgEdgeCreate(BaseCreateSchema):
    parent_id: UUID
    child_id: UUID


class OrgEdgeResponse(BaseResponseSchema):
    id: UUID
    parent_id: UUID
    child_id: UUID
    valid_from: datetime
    valid_to: Optional[datetime] = None
    parent: Optional[UserBrief] = None
    child: Optional[UserBrief] = None


class OrgNode(BaseModel):
    """One manager in the org tree with nested reports."""
    user: UserBrief
    level: int
    children: List["OrgNode"] = []


OrgNode.model_rebuild()


class GenealogyResponse(BaseModel):
    edges: List[OrgEdgeResponse]
    structure: List[OrgNode]


class RelationResponse(BaseModel):
    """A closure row seen from one side."""
    manager: UserBrief
    depth: int
    level: str  # A, B, C


class RelationListResponse(BaseModel):
    manager_id: UUID
    items: List[RelationResponse]
