from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CurrentUser(BaseModel):
    """Current authenticated user information."""

    id: UUID = Field(..., description="User ID (token subject)")
    tenant_id: UUID = Field(..., description="Tenant the user acts in")
    email: Optional[str] = Field(None, description="User email")
    role: str = Field(default="user", description="User role")
