"""
Metrics Aggregator

Pure, deterministic recompute of corpus-wide performance metrics.
Always runs over the full committed corpus; nothing is patched incrementally.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ...models.learning import ModelMetrics, TrainingCase


MIN_ARGUMENT_SAMPLE = 5
TOP_ARGUMENTS = 5

# Confidence blend
DATA_SIZE_WEIGHT = 0.4
SUCCESS_RATE_WEIGHT = 0.4
ARGUMENT_WEIGHT = 0.2
DATA_SIZE_SATURATION = 1000


@dataclass
class ArgumentStats:
    """Occurrence counts for one key argument across the corpus."""
    argument: str
    total: int = 0
    successful: int = 0

    @property
    def success_ratio(self) -> float:
        return self.successful / self.total if self.total else 0.0


def _mean(values: Iterable[Optional[float]]) -> float:
    present = [v for v in values if v is not None]
    return sum(present) / len(present) if present else 0.0


def argument_stats(cases: List[TrainingCase]) -> Dict[str, ArgumentStats]:
    """Group every key-argument occurrence with its outcome."""
    stats: Dict[str, ArgumentStats] = {}
    for case in cases:
        for argument in case.key_arguments:
            entry = stats.setdefault(argument, ArgumentStats(argument=argument))
            entry.total += 1
            if case.is_successful:
                entry.successful += 1
    return stats


class MetricsAggregator:
    """
    Recomputes ModelMetrics from a case list.

    Arguments seen fewer than MIN_ARGUMENT_SAMPLE times are ignored when
    ranking. Ties on success ratio go to the larger sample, then to the
    argument text, so the ranking is stable across runs.
    """

    def recompute(self, cases: List[TrainingCase], now: Optional[datetime] = None) -> ModelMetrics:
        total = len(cases)
        successful = sum(1 for c in cases if c.is_successful)
        success_rate = successful / total if total else 0.0

        eligible = [
            s for s in argument_stats(cases).values()
            if s.total >= MIN_ARGUMENT_SAMPLE
        ]
        most = sorted(eligible, key=lambda s: (-s.success_ratio, -s.total, s.argument))
        least = sorted(eligible, key=lambda s: (s.success_ratio, -s.total, s.argument))
        most_successful = [s.argument for s in most[:TOP_ARGUMENTS]]
        least_successful = [s.argument for s in least[:TOP_ARGUMENTS]]

        confidence = (
            DATA_SIZE_WEIGHT * min(total / DATA_SIZE_SATURATION, 1.0)
            + SUCCESS_RATE_WEIGHT * success_rate
            + ARGUMENT_WEIGHT * (len(most_successful) / 10)
        )

        return ModelMetrics(
            total_cases=total,
            successful_cases=successful,
            success_rate=success_rate,
            most_successful_arguments=most_successful,
            least_successful_arguments=least_successful,
            average_fine_reduction=_mean(c.fine_reduction for c in cases),
            average_processing_time=_mean(c.processing_time for c in cases),
            confidence_score=confidence,
            computed_at=now or datetime.utcnow(),
        )
