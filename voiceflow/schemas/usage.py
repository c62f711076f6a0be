"""
Pydantic schemas for usage endpoints.
"""
from typing import Optional, List
from pydantic import BaseModel, Field


class ResourceUsageDetail(BaseModel):
    """Usage details for a single resource type."""
    resource: str = Field(..., description="Resource type (transcription_hours, projects, ...)")
    limit: Optional[int] = Field(None, description="Monthly limit (None for unlimited)")
    used: int = Field(..., description="Current month usage")
    remaining: Optional[int] = Field(None, description="Remaining quota (None for unlimited)")
    unlimited: bool
    can_use: bool


class UsageResponse(BaseModel):
    """Response schema for GET /me/usage."""
    plan: Optional[str] = Field(None, description="Effective plan name")
    tier: str = Field(..., description="free, pro or enterprise")
    month_key: str = Field(..., description="Current month in YYYY-MM format")
    resources: List[ResourceUsageDetail]
    
    class Config:
        json_schema_extra = {
            "example": {
                "plan": "Free",
                "tier": "free",
                "month_key": "2026-10",
                "resources": [
                    {
                        "resource": "transcription_hours",
                        "limit": 5,
                        "used": 2,
                        "remaining": 3,
                        "unlimited": False,
                        "can_use": True
                    }
                ]
            }
        }
