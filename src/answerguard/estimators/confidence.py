# src/answerguard/estimators/confidence.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from answerguard.core.candidate import Candidate
from answerguard.core.confidence import ConfidenceEstimate
from answerguard.core.validation import supports
from answerguard.errors import Result


class ConfidenceEstimator:
    """Scores how likely a candidate answer is to be correct."""

    name: str = "base"

    async def estimate(self, candidate: Candidate, context: Optional[Dict[str, Any]] = None) -> Result[ConfidenceEstimate]:
        raise NotImplementedError

    async def estimate_batch(
        self,
        candidates: Sequence[Candidate],
        context: Optional[Dict[str, Any]] = None,
    ) -> Result[List[ConfidenceEstimate]]:
        out: List[ConfidenceEstimate] = []
        for candidate in candidates:
            res = await self.estimate(candidate, context)
            if not res.ok:
                return Result.from_failure(res.error)
            out.append(res.value)
        return Result.success(out)


def is_confidence_estimator(obj: Any) -> bool:
    return supports(obj, "estimate")
