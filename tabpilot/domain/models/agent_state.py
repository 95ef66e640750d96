from typing import Dict, Any, List, Optional, Literal
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from enum import Enum

from .tool import ToolCall, ToolResult


MAX_CONTEXT_MEMORIES = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntentType(str, Enum):
    """Classification of a user utterance"""
    COMMAND = "command"
    QUERY = "query"
    CLARIFICATION = "clarification"
    CONFIRMATION = "confirmation"
    CHAT = "chat"


class ReferenceType(str, Enum):
    """Where a vague reference was resolved to"""
    PAGE = "page"
    SELECTION = "selection"
    PREVIOUS_MESSAGE = "previous_message"
    UNKNOWN = "unknown"


class ChatMessage(BaseModel):
    """One turn of the panel conversation"""
    id: str = Field(description="Message identifier")
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class PageContext(BaseModel):
    """Semantic summary of the page in the active tab"""
    url: str = ""
    title: str = ""
    main_content: str = Field(default="", description="Readable main text of the page")
    dom_tree: Optional[List[Dict[str, Any]]] = Field(None, description="Simplified DOM summary nodes")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SocialPost(BaseModel):
    """Post or item currently under discussion"""
    id: Optional[str] = None
    author: Optional[str] = None
    content: str = ""
    url: Optional[str] = None


class MemoryItem(BaseModel):
    """Knowledge-base entry selected as relevant for this turn"""
    id: str
    content: str
    tags: List[str] = Field(default_factory=list)
    score: Optional[float] = None


class Persona(BaseModel):
    """Writing style profile"""
    id: str
    name: str
    description: str = ""
    tone: Optional[str] = None


class AgentContext(BaseModel):
    """Context handed to tools for one agent turn"""
    chat_history: List[ChatMessage] = Field(default_factory=list)
    page_context: Optional[PageContext] = None
    selection: Optional[str] = Field(None, description="Text the user has highlighted")
    current_post: Optional[SocialPost] = None
    memories: List[MemoryItem] = Field(default_factory=list)
    personas: List[Persona] = Field(default_factory=list)
    active_persona_id: str = ""

    @field_validator("memories")
    @classmethod
    def bound_memories(cls, v: List[MemoryItem]) -> List[MemoryItem]:
        """Keep only the most relevant memories"""
        return v[:MAX_CONTEXT_MEMORIES]

    def get_active_persona(self) -> Optional[Persona]:
        for persona in self.personas:
            if persona.id == self.active_persona_id:
                return persona
        return None


class Intent(BaseModel):
    """Structured interpretation of a user utterance"""
    type: IntentType
    action: Optional[str] = Field(None, description="Canonical action, e.g. summarize")
    target: Optional[str] = Field(None, description="Canonical target, e.g. page")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)
    raw_message: str


class ResolvedReference(BaseModel):
    """Result of resolving a pronoun-like reference"""
    resolved: str
    type: ReferenceType
    original: str


class AgentTurnResult(BaseModel):
    """Outcome of driving one utterance through the agent"""
    intent: Intent
    tool_call: Optional[ToolCall] = None
    tool_result: Optional[ToolResult] = None
    fallback_to_chat: bool = Field(False, description="No tool matched; hand the message to the language backend")
    stopped: bool = False
