from typing import Dict, List, Any, Optional, Sequence
import re
import structlog

from tabpilot.domain.models.agent_state import (
    AgentContext, ChatMessage, Intent, IntentType, ReferenceType, ResolvedReference
)
from .keywords import (
    ACTION_KEYWORDS, TARGET_KEYWORDS, KeywordTable,
    PAGE_REFERENCE_WORDS, SELECTION_REFERENCE_WORDS, PREVIOUS_REFERENCE_WORDS,
    STOP_WORDS, CONFIRMATION_WORDS, NEGATION_WORDS, ENTITY_TYPES,
)

logger = structlog.get_logger(__name__)

_CONFIRMATION_RE = re.compile(r"^(yes|ok|sure|好|是|对|確認|はい)", re.IGNORECASE)
_CLARIFICATION_RE = re.compile(r"^(what|which|how|为什么|什么|哪个|なぜ|何)", re.IGNORECASE)
_QUERY_RE = re.compile(r"\?|？|what|how|why|when|where|who|是什么|怎么|为什么")
_NUMBER_RE = re.compile(r"[0-9]+")
_QUOTED_RE = re.compile(r"[\"'「」『』]([^\"'「」『』]+)[\"'「」『』]")

CLARIFICATION_MAX_LENGTH = 50
REFERENCE_LOOKBACK = 5
MIN_REFERENCED_MESSAGE_LENGTH = 20


class IntentTracker:
    """Tracks user intent across a multi-turn conversation.

    Classification is keyword/regex based. The tracker keeps the latest
    intent and a bounded history of previous ones.
    """

    def __init__(self, max_history: int = 10):
        self.max_history = max_history
        self.current_intent: Optional[Intent] = None
        self.intent_history: List[Intent] = []

    def analyze_intent(self, message: str, history: Sequence[ChatMessage]) -> Intent:
        """Classify a message and record it as the current intent"""

        message_lower = message.lower()

        intent_type = self.detect_intent_type(message_lower, history)
        action = self.detect_action(message_lower)
        target = self.detect_target(message_lower)

        intent = Intent(
            type=intent_type,
            action=action,
            target=target,
            parameters=self.extract_parameters(message, action),
            confidence=self.calculate_confidence(intent_type, action, target),
            raw_message=message
        )

        self._update_intent(intent)
        logger.debug("Intent analyzed", type=intent.type.value, action=action, target=target)
        return intent

    def detect_intent_type(self, message: str, history: Sequence[ChatMessage]) -> IntentType:
        if _CONFIRMATION_RE.match(message):
            return IntentType.CONFIRMATION

        if (_CLARIFICATION_RE.match(message)
                and len(message) < CLARIFICATION_MAX_LENGTH
                and len(history) > 0):
            return IntentType.CLARIFICATION

        if _first_match(ACTION_KEYWORDS, message) is not None:
            return IntentType.COMMAND

        if _QUERY_RE.search(message):
            return IntentType.QUERY

        return IntentType.CHAT

    def detect_action(self, message: str) -> Optional[str]:
        return _first_match(ACTION_KEYWORDS, message.lower())

    def detect_target(self, message: str) -> Optional[str]:
        return _first_match(TARGET_KEYWORDS, message.lower())

    def extract_parameters(self, message: str, action: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {}

        numbers = _NUMBER_RE.findall(message)
        if numbers:
            params["numbers"] = [int(n) for n in numbers]

        quoted = _QUOTED_RE.findall(message)
        if quoted:
            params["quoted"] = quoted

        if action == "extract":
            message_lower = message.lower()
            for keyword, entity_type in ENTITY_TYPES:
                if keyword in message_lower:
                    params["entity_type"] = entity_type
                    break

        return params

    def calculate_confidence(
        self,
        intent_type: IntentType,
        action: Optional[str] = None,
        target: Optional[str] = None
    ) -> float:
        confidence = 0.5

        if action:
            confidence += 0.2
        if target:
            confidence += 0.15
        if intent_type == IntentType.COMMAND:
            confidence += 0.1
        if intent_type == IntentType.CONFIRMATION:
            confidence = 0.95

        return max(0.0, min(confidence, 1.0))

    def resolve_reference(self, reference: str, context: AgentContext) -> ResolvedReference:
        """Substitute a vague pointer with concrete context"""

        ref_lower = reference.lower()

        if any(w in ref_lower for w in PAGE_REFERENCE_WORDS):
            if context.page_context and context.page_context.main_content:
                return ResolvedReference(
                    resolved=context.page_context.main_content,
                    type=ReferenceType.PAGE,
                    original=reference
                )

        if any(w in ref_lower for w in SELECTION_REFERENCE_WORDS):
            if context.selection:
                return ResolvedReference(
                    resolved=context.selection,
                    type=ReferenceType.SELECTION,
                    original=reference
                )

        if any(w in ref_lower for w in PREVIOUS_REFERENCE_WORDS):
            recent = context.chat_history[-REFERENCE_LOOKBACK:]
            for msg in reversed(recent):
                if msg.role == "assistant" and len(msg.content) > MIN_REFERENCED_MESSAGE_LENGTH:
                    return ResolvedReference(
                        resolved=msg.content,
                        type=ReferenceType.PREVIOUS_MESSAGE,
                        original=reference
                    )

        return ResolvedReference(resolved=reference, type=ReferenceType.UNKNOWN, original=reference)

    def get_current_intent(self) -> Optional[Intent]:
        return self.current_intent

    def get_intent_history(self) -> List[Intent]:
        return list(self.intent_history)

    def clear(self):
        self.current_intent = None
        self.intent_history = []

    def is_stop_command(self, message: str) -> bool:
        return _contains_any(message, STOP_WORDS)

    def is_confirmation(self, message: str) -> bool:
        return _contains_any(message, CONFIRMATION_WORDS)

    def is_negation(self, message: str) -> bool:
        return _contains_any(message, NEGATION_WORDS)

    def _update_intent(self, intent: Intent):
        self.current_intent = intent
        self.intent_history.append(intent)

        if len(self.intent_history) > self.max_history:
            self.intent_history = self.intent_history[-self.max_history:]


def _first_match(table: KeywordTable, message: str) -> Optional[str]:
    for key, keywords in table:
        if any(kw in message for kw in keywords):
            return key
    return None


def _contains_any(message: str, words: Sequence[str]) -> bool:
    message_lower = message.lower()
    return any(w in message_lower for w in words)
