"""
Authentication-related Pydantic schemas.
"""
from pydantic import BaseModel, Field


class Principal(BaseModel):
    """The authenticated identity behind a request."""
    id: str = Field(..., description="User unique identifier (Supabase auth id)")
    email: str = Field("", description="User email address")
