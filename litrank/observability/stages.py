"""Per-stage timing for the search pipeline.

Each stage produces one immutable StageMetrics record, appended in
execution order. Memory deltas come from tracemalloc and are only
recorded while tracing is active.
"""

import time
import tracemalloc
from contextlib import contextmanager
from typing import Iterator, List, Tuple

import structlog

from litrank.models.audit import StageMetrics
from litrank.observability.metrics import STAGE_DURATION, STAGE_OUTPUT

logger = structlog.get_logger()


class StageOutput:
    """Set `count` inside a `StageRecorder.stage` block."""

    def __init__(self) -> None:
        self.count = 0


class StageRecorder:
    """Collects StageMetrics for one request."""

    def __init__(self) -> None:
        self._stages: List[StageMetrics] = []

    @property
    def stages(self) -> Tuple[StageMetrics, ...]:
        return tuple(self._stages)

    @staticmethod
    def _traced_bytes() -> int:
        if not tracemalloc.is_tracing():
            return 0
        current, _ = tracemalloc.get_traced_memory()
        return current

    @contextmanager
    def stage(self, name: str, input_count: int) -> Iterator[StageOutput]:
        """Time the enclosed block; nothing is recorded if it raises.

        Example:
            with recorder.stage("dedup", len(papers)) as out:
                papers = dedup.dedupe(papers)
                out.count = len(papers)
        """
        output = StageOutput()
        memory_before = self._traced_bytes()
        start = time.perf_counter()
        yield output
        duration = time.perf_counter() - start
        self.record(
            name,
            input_count,
            output.count,
            duration * 1000,
            self._traced_bytes() - memory_before,
        )

    def record(
        self,
        name: str,
        input_count: int,
        output_count: int,
        duration_ms: float,
        memory_delta_bytes: int = 0,
    ) -> StageMetrics:
        metrics = StageMetrics(
            name=name,
            input_count=input_count,
            output_count=output_count,
            duration_ms=round(max(0.0, duration_ms), 3),
            memory_delta_bytes=memory_delta_bytes,
        )
        self._stages.append(metrics)
        STAGE_DURATION.labels(stage=name).observe(metrics.duration_ms / 1000)
        STAGE_OUTPUT.labels(stage=name).observe(output_count)
        logger.info(
            "stage_complete",
            stage=name,
            input=input_count,
            output=output_count,
            duration_ms=metrics.duration_ms,
        )
        return metrics
