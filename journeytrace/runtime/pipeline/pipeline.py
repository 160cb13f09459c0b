"""
pipeline.py - Routes every clip of a log to the processor for its kind.

Usage:
    from journeytrace.runtime.pipeline import ClipPipeline

    pipeline = ClipPipeline(registry, dedup_threshold_ms=1000)
    for log in sorted_logs:
        pipeline.process_log(log, ctx)
    pipeline.lifecycle.finalize_current_step(ctx)
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from ..interpreters.registry import InterpreterRegistry
from ..types import ClipKind, TraceLogInput
from .context import ClipProcessingContext, reset_log_context
from .lifecycle import StepLifecycleManager
from .processors import (
    ActionProcessor,
    ClipProcessor,
    ExceptionProcessor,
    HandlerResultProcessor,
    HeadersProcessor,
    PredicateProcessor,
    TransitionProcessor,
)

logger = logging.getLogger(__name__)


class ClipPipeline:
    def __init__(self, registry: InterpreterRegistry, dedup_threshold_ms: Optional[int] = None) -> None:
        self.lifecycle = StepLifecycleManager(dedup_threshold_ms=dedup_threshold_ms)
        processors = [
            HeadersProcessor(self.lifecycle),
            TransitionProcessor(),
            PredicateProcessor(),
            ActionProcessor(),
            HandlerResultProcessor(registry, self.lifecycle),
            ExceptionProcessor(),
        ]
        self._processors: Dict[str, ClipProcessor] = {p.kind.value: p for p in processors}

    def process_log(self, log: TraceLogInput, ctx: ClipProcessingContext) -> None:
        reset_log_context(ctx, log)
        for index, clip in enumerate(log.clips):
            kind = clip.kind.value if isinstance(clip.kind, ClipKind) else clip.kind
            processor = self._processors.get(kind)
            if processor is None:
                logger.debug("Skipping clip of unknown kind %r in log %s", kind, log.id)
                continue
            ctx.current_clip_index = index
            processor.process(clip, ctx)
