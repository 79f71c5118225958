"""
Base Analyzer

Every domain analyzer subclasses BaseAnalyzer and implements _do_analyze().
analyze() wraps the call with timing, metadata stamping and failure
isolation: an exception or timeout in one analyzer yields that analyzer's
empty result and never reaches the others.
"""
import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from marketing_copilot.analyzers.types import (
    AnalysisMetadata,
    AnalysisResult,
    PRIORITY_IMPORTANT,
    PRIORITY_INFO,
    PRIORITY_URGENT,
    Suggestion,
)
from marketing_copilot.config import Settings, get_settings
from marketing_copilot.connectors.base import AccountDataSource
from marketing_copilot.utils.logger import log


class BaseAnalyzer(ABC):
    """
    Base class for all analyzers

    Subclasses set `name` and implement `_do_analyze`. They may override
    `_create_empty_result` when their empty shape carries extra details.
    """

    name: str = "base"

    def __init__(self, data_source: AccountDataSource, settings: Optional[Settings] = None):
        self.data_source = data_source
        self.settings = settings or get_settings()

    async def analyze(self, account_id: str) -> AnalysisResult:
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._do_analyze(account_id),
                timeout=self.settings.analyzer_timeout_seconds,
            )
        except Exception as e:
            log.error(f"[{self.name}] analysis failed for account {account_id}: {e!r}")
            result = self._create_empty_result(account_id)
            result.has_data = False

        result.metadata = AnalysisMetadata(
            analyzed_at=datetime.utcnow(),
            duration_ms=int((time.perf_counter() - start) * 1000),
            source=self.name,
            account_id=account_id,
        )
        return result

    @abstractmethod
    async def _do_analyze(self, account_id: str) -> AnalysisResult:
        pass

    def _create_empty_result(self, account_id: str) -> AnalysisResult:
        return AnalysisResult(has_data=False)

    def _suggestion(self, id: str, text: str, **options: Any) -> Suggestion:
        """Build a suggestion with this analyzer's id prefix and defaults."""
        options.setdefault("priority", PRIORITY_INFO)
        options.setdefault("category", "optimization")
        options.setdefault("confidence", 50)
        return Suggestion(id=f"{self.name}_{id}", text=text, source=self.name, **options)


async def run_analyzers(analyzers: Sequence[BaseAnalyzer], account_id: str) -> List[AnalysisResult]:
    """Run analyzers concurrently; results come back in input order."""
    if not analyzers:
        return []
    return list(await asyncio.gather(*(a.analyze(account_id) for a in analyzers)))


# ---------------------------------------------------------------------------
# Unified view across analyzers
# ---------------------------------------------------------------------------

@dataclass
class UnifiedAnalysis:
    account_id: str
    suggestions: List[Suggestion] = field(default_factory=list)
    results: Dict[str, AnalysisResult] = field(default_factory=dict)
    summary: Dict[str, Any] = field(default_factory=dict)


def combine_results(account_id: str, results: Sequence[AnalysisResult]) -> UnifiedAnalysis:
    """Merge analyzer results into one priority-ordered suggestion list."""
    unified = UnifiedAnalysis(account_id=account_id)
    total_duration = 0
    for result in results:
        if result.metadata:
            unified.results[result.metadata.source] = result
            total_duration += result.metadata.duration_ms
        unified.suggestions.extend(result.suggestions)

    unified.suggestions.sort(key=lambda s: (s.priority, -s.confidence))
    unified.summary = {
        "total": len(unified.suggestions),
        "urgent": sum(1 for s in unified.suggestions if s.priority == PRIORITY_URGENT),
        "important": sum(1 for s in unified.suggestions if s.priority == PRIORITY_IMPORTANT),
        "info": sum(1 for s in unified.suggestions if s.priority == PRIORITY_INFO),
        "top_confidence": max((s.confidence for s in unified.suggestions), default=0),
        "analyzers_run": len(results),
        "analyzers_with_data": sum(1 for r in results if r.has_data),
        "total_duration_ms": total_duration,
    }
    return unified
