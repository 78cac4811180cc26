# src/answerguard/estimators/difficulty.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from answerguard.core.difficulty import DifficultyEstimate
from answerguard.core.validation import supports
from answerguard.errors import Result

MAX_QUERY_LENGTH = 50_000


class DifficultyEstimator:
    """Estimates how hard a query is before any answer is sampled."""

    name: str = "base"

    async def estimate(self, query: str, context: Optional[Dict[str, Any]] = None) -> Result[DifficultyEstimate]:
        raise NotImplementedError

    async def estimate_batch(
        self,
        queries: Sequence[str],
        context: Optional[Dict[str, Any]] = None,
    ) -> Result[List[DifficultyEstimate]]:
        """Sequential default; the first failure is returned as-is."""
        out: List[DifficultyEstimate] = []
        for query in queries:
            res = await self.estimate(query, context)
            if not res.ok:
                return Result.from_failure(res.error)
            out.append(res.value)
        return Result.success(out)


def is_difficulty_estimator(obj: Any) -> bool:
    return supports(obj, "estimate")
