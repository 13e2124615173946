from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class ActivityEntryResponse(BaseModel):
    id: str
    action: str
    resourceType: str
    resourceName: str
    timestamp: str
    userId: Optional[str] = None
    details: Dict[str, Any] = {}

    model_config = ConfigDict(extra="allow")


class ActivityPageResponse(BaseModel):
    entries: List[ActivityEntryResponse]
    cursor: Optional[str] = None
    has_more: bool


class AnalyticsResponse(BaseModel):
    """Per-day series for the analytics charts plus headline numbers"""
    userActivity: List[Dict[str, Any]]
    resourceUsage: List[Dict[str, Any]]
    apiUsage: List[Dict[str, Any]]
    stats: Dict[str, int]
