"""Pydantic models for REST API responses."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class APIResponse(BaseModel):
    """Standard API response format."""

    success: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable message")
    data: Optional[Dict[str, Any]] = Field(None, description="Response data if any")


class GenerationTaskResponse(BaseModel):
    """Response model for a single generation task."""

    id: str = Field(..., description="Task UUID")
    website_id: str = Field(..., description="Website the task generated for")
    keyword_plan_id: Optional[str] = Field(None, description="Keyword plan UUID")
    type: str = Field(..., description="auto (scheduled) or manual")
    status: str = Field(..., description="pending, processing, completed or failed")
    model: Optional[str] = Field(None, description="AI model used")
    tokens_used: Optional[int] = Field(None, description="Total tokens reported by the provider")
    article_id: Optional[str] = Field(None, description="Generated article UUID")
    error_message: Optional[str] = Field(None, description="Failure reason")
    started_at: Optional[str] = Field(None, description="Claim timestamp")
    completed_at: Optional[str] = Field(None, description="Resolve timestamp")
    created_at: Optional[str] = Field(None, description="Creation timestamp")


class GenerationTaskListResponse(BaseModel):
    """Response model for list of generation tasks."""

    tasks: List[GenerationTaskResponse] = Field(..., description="List of tasks")
    total: int = Field(..., description="Number of tasks returned")
