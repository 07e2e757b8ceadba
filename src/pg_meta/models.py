"""Request bodies accepted by the HTTP layer."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    query: str


class SchemaCreate(BaseModel):
    name: str
    owner: Optional[str] = None


class SchemaPatch(BaseModel):
    name: Optional[str] = None
    owner: Optional[str] = None


class ColumnSpec(BaseModel):
    name: str
    data_type: str
    is_identity: bool = False
    is_nullable: bool = True


class TableCreate(BaseModel):
    schema_name: str = Field(default="public", alias="schema")
    name: str
    columns: list[ColumnSpec] = Field(default_factory=list)
    primary_keys: list[str] = Field(default_factory=list)
    comment: Optional[str] = None

    model_config = {"populate_by_name": True}


class RoleCreate(BaseModel):
    name: str
    password: Optional[str] = None
    is_superuser: Optional[bool] = None
    can_create_db: Optional[bool] = None
    can_create_role: Optional[bool] = None
    can_login: Optional[bool] = None
    is_replication_role: Optional[bool] = None
    can_bypass_rls: Optional[bool] = None
    inherit_role: Optional[bool] = None
    connection_limit: Optional[int] = Field(default=None, ge=-1)
    valid_until: Optional[datetime] = None
