from dataclasses import dataclass
from datetime import timedelta

from orchestrator.config.settings import Settings
from orchestrator.submissions.models import Stage


@dataclass(frozen=True)
class StagePolicy:
    max_retries: int
    deadline: timedelta


class RetryPolicy:
    """Per-stage retry limits and stall deadlines."""

    def __init__(self, stages: dict[Stage, StagePolicy]) -> None:
        missing = [stage.value for stage in Stage if stage not in stages]
        if missing:
            raise ValueError(f"No retry policy configured for stages: {missing}")
        self._stages = dict(stages)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            {
                Stage.UPLOAD: StagePolicy(
                    settings.upload_max_retries,
                    timedelta(seconds=settings.upload_deadline_seconds),
                ),
                Stage.EXTRACTION: StagePolicy(
                    settings.extraction_max_retries,
                    timedelta(seconds=settings.extraction_deadline_seconds),
                ),
                Stage.INTERPRETATION: StagePolicy(
                    settings.interpretation_max_retries,
                    timedelta(seconds=settings.interpretation_deadline_seconds),
                ),
                Stage.REPORT: StagePolicy(
                    settings.report_max_retries,
                    timedelta(seconds=settings.report_deadline_seconds),
                ),
            }
        )

    def max_retries(self, stage: Stage) -> int:
        return self._stages[stage].max_retries

    def deadline(self, stage: Stage) -> timedelta:
        return self._stages[stage].deadline
