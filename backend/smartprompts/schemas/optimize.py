"""
Schemas for the optimize endpoint.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class OptimizeRequest(BaseModel):
    """Prompt submitted for optimization."""
    prompt: str = Field(..., min_length=1, max_length=10000, description="Prompt to optimize")
    model: Optional[str] = Field(None, description="Model the prompt will be used with")
    context: Optional[str] = Field(None, description="Extra context for the rewrite")


class OptimizationResult(BaseModel):
    """Output of the completion service."""
    original: str
    optimized: str
    improvements: List[str] = Field(default_factory=list)
    tokens_estimate: int = Field(0, serialization_alias="tokensEstimate")


class UsageSnapshot(BaseModel):
    remaining: int
    limit: int
    reset_at: datetime = Field(..., serialization_alias="resetAt")
    tier: str


class OptimizeResponse(BaseModel):
    success: bool = True
    data: OptimizationResult
    usage: UsageSnapshot
