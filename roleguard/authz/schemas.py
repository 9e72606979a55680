from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RoleCreate(BaseModel):
    name: str = Field(min_length=1)
    slug: str | None = None
    description: str | None = None
    level: int = 1


class RoleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    slug: str | None = None
    description: str | None = None
    level: int | None = None


class RoleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    slug: str
    name: str
    description: str | None = None
    level: int = 1


class PermissionCreate(BaseModel):
    name: str = Field(min_length=1)
    slug: str | None = None
    description: str | None = None
    model: str | None = None


class PermissionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    slug: str
    name: str
    description: str | None = None
    model: str | None = None


class RolePermissionRead(BaseModel):
    role_id: int
    role_slug: str
    permission_id: int
    permission_slug: str
