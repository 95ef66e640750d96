from typing import Dict, Any, List, Optional
import asyncio
import structlog
from pydantic import ValidationError

from tabpilot.domain.models.session import (
    ComparisonResult, SessionContext, SessionInfo, SynthesisOptions, SynthesisResult
)
from tabpilot.infrastructure.observability.logging import agent_logger
from .session_controller import SessionController, DEFAULT_CONTEXT_TIMEOUT

logger = structlog.get_logger(__name__)

MAX_SIMILARITIES = 20
MAX_UNIQUE_PER_SESSION = 10
MAX_DIFFERENCE_TOKENS = 5
PREVIEW_LENGTH = 200

_REPORT_LABELS = {
    "en": {
        "heading": "## Multi-Page Synthesis Report",
        "analyzed": "Analyzed {count} pages:\n",
        "summary": "Summary",
        "error": "Error",
    },
    "zh": {
        "heading": "## 多页面综合报告",
        "analyzed": "共分析 {count} 个页面：\n",
        "summary": "摘要",
        "error": "错误",
    },
}


def tokenize(content: str) -> List[str]:
    """Lowercased words longer than three characters, first-seen order, no repeats"""
    return list(dict.fromkeys(w for w in content.lower().split() if len(w) > 3))


class SessionContextSynthesizer:
    """Collects page context from several tabs and reduces it to a comparison or report"""

    def __init__(self, controller: SessionController, timeout: float = DEFAULT_CONTEXT_TIMEOUT):
        self.controller = controller
        self.timeout = timeout

    async def collect_contexts(
        self,
        tab_ids: Optional[List[int]] = None,
        parallel: bool = False
    ) -> List[SessionContext]:
        """Gather one SessionContext per target tab, in tab enumeration order.

        A failing tab yields a context with ``error`` set; it never aborts the
        remaining tabs.
        """

        all_tabs = await self.controller.list_tabs()
        if tab_ids is not None:
            wanted = set(tab_ids)
            targets = [t for t in all_tabs if t.id in wanted]
        else:
            targets = [t for t in all_tabs if t.url.startswith("http")]

        if parallel:
            contexts = list(await asyncio.gather(*(self._get_tab_context(t) for t in targets)))
        else:
            contexts = []
            for tab in targets:
                contexts.append(await self._get_tab_context(tab))

        agent_logger.tabs_collected(
            tab_ids=[c.tab_id for c in contexts],
            failed=[c.tab_id for c in contexts if c.error],
            parallel=parallel
        )
        return contexts

    async def _get_tab_context(self, tab: SessionInfo) -> SessionContext:
        result = await self.controller.request_page_context(tab.id, timeout=self.timeout)

        if not result.success:
            logger.warning("Tab context unavailable", tab_id=tab.id, error=result.error)
            return SessionContext(tab_id=tab.id, url=tab.url, title=tab.title, error=result.error)

        context = result.data or {}
        try:
            return SessionContext(
                tab_id=tab.id,
                url=tab.url,
                title=tab.title,
                content=context.get("main_content") or "",
                extracted_data=context.get("metadata")
            )
        except (AttributeError, TypeError, ValidationError) as e:
            logger.warning("Malformed tab context", tab_id=tab.id, error=str(e))
            return SessionContext(tab_id=tab.id, url=tab.url, title=tab.title, error=f"Malformed page context: {e}")

    async def synthesize(self, options: Optional[SynthesisOptions] = None) -> SynthesisResult:
        options = options or SynthesisOptions()

        try:
            contexts = await self.collect_contexts(options.tab_ids, parallel=options.parallel)
        except Exception as e:
            logger.error("Context collection failed", error=str(e))
            return SynthesisResult(success=False, error=str(e))

        if not contexts:
            return SynthesisResult(success=False, error="No valid tabs found")

        result = SynthesisResult(success=True, tab_contexts=contexts)

        if options.compare and len(contexts) > 1:
            result.comparison = self.compare_contexts(contexts)

        if options.synthesize:
            result.synthesis = self.build_synthesis(contexts, options)

        return result

    def compare_contexts(self, contexts: List[SessionContext]) -> ComparisonResult:
        """Token-level similarities, per-tab unique tokens and difference lines"""

        comparison = ComparisonResult()
        participants = [c for c in contexts if not c.error and c.content]
        if not participants:
            return comparison

        token_lists = [tokenize(c.content) for c in participants]
        token_sets = [set(tokens) for tokens in token_lists]

        if len(participants) > 1:
            common = [t for t in token_lists[0] if all(t in s for s in token_sets[1:])]
            comparison.similarities = common[:MAX_SIMILARITIES]

        for i, ctx in enumerate(participants):
            others = [s for j, s in enumerate(token_sets) if j != i]
            unique = [t for t in token_lists[i] if not any(t in s for s in others)]
            comparison.unique[ctx.tab_id] = unique[:MAX_UNIQUE_PER_SESSION]
            if unique:
                comparison.differences.append(
                    f"{ctx.title}: {', '.join(unique[:MAX_DIFFERENCE_TOKENS])}"
                )

        return comparison

    def build_synthesis(self, contexts: List[SessionContext], options: Optional[SynthesisOptions] = None) -> str:
        language = options.language if options else "en"
        labels = _REPORT_LABELS.get(language, _REPORT_LABELS["en"])

        lines = [labels["heading"], labels["analyzed"].format(count=len(contexts))]

        for i, ctx in enumerate(contexts, start=1):
            lines.append(f"### {i}. {ctx.title}")
            lines.append(f"- URL: {ctx.url}")
            if ctx.content:
                preview = ctx.content[:PREVIEW_LENGTH].replace("\n", " ")
                lines.append(f"- {labels['summary']}: {preview}...")
            if ctx.error:
                lines.append(f"- {labels['error']}: {ctx.error}")
            lines.append("")

        return "\n".join(lines)

    async def compare_two_pages(self, tab_id_a: int, tab_id_b: int) -> SynthesisResult:
        return await self.synthesize(SynthesisOptions(
            tab_ids=[tab_id_a, tab_id_b],
            compare=True,
            synthesize=True
        ))

    async def extract_from_all(self) -> Dict[int, Dict[str, Any]]:
        """Structured page metadata of every reachable tab, keyed by tab id"""

        contexts = await self.collect_contexts()
        return {c.tab_id: c.extracted_data for c in contexts if c.extracted_data}
