from typing import Dict, Any, List, Optional, Literal
from pydantic import BaseModel, Field
from enum import Enum


class SessionEventType(str, Enum):
    """Host notifications that change the tab list"""
    ACTIVATED = "activated"
    UPDATED = "updated"
    REMOVED = "removed"


class SessionInfo(BaseModel):
    """A browser tab as reported by the host"""
    id: int
    url: str = ""
    title: str = ""
    active: bool = False
    window_id: int = 0
    status: Optional[Literal["loading", "complete"]] = None
    fav_icon_url: Optional[str] = None


class SessionEvent(BaseModel):
    type: SessionEventType
    session_id: Optional[int] = None


class PageAction(BaseModel):
    """UI action performed by the page-resident agent"""
    type: str
    target: Optional[str] = None
    value: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)


class SessionOperationResult(BaseModel):
    """Uniform outcome of every tab operation"""
    success: bool
    tab_id: Optional[int] = None
    error: Optional[str] = None
    data: Optional[Any] = None


class SessionContext(BaseModel):
    """Context gathered from one tab for a synthesis request"""
    tab_id: int
    url: str
    title: str
    content: Optional[str] = None
    extracted_data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ComparisonResult(BaseModel):
    similarities: List[str] = Field(default_factory=list)
    differences: List[str] = Field(default_factory=list)
    unique: Dict[int, List[str]] = Field(default_factory=dict)


class SynthesisOptions(BaseModel):
    tab_ids: Optional[List[int]] = Field(None, description="Tabs to analyze; all web tabs when empty")
    compare: bool = False
    synthesize: bool = False
    language: Literal["en", "zh"] = "en"
    parallel: bool = Field(False, description="Fetch tab contexts concurrently")


class SynthesisResult(BaseModel):
    success: bool
    tab_contexts: List[SessionContext] = Field(default_factory=list)
    synthesis: Optional[str] = None
    comparison: Optional[ComparisonResult] = None
    error: Optional[str] = None
