# journeytrace/runtime/pipeline package
# Sequential clip processing: per-kind processors sharing one mutable
# ClipProcessingContext, with the step lifecycle state machine applying
# interpreter results.

from .context import (
    ClipProcessingContext,
    PendingStepData,
    StepRecord,
    begin_new_session,
    create_initial_context,
    reset_log_context,
)
from .lifecycle import StepLifecycleManager, dedupe_flow_children, merge_children_into_node
from .pipeline import ClipPipeline
from .processors import (
    ActionProcessor,
    ClipProcessor,
    ExceptionProcessor,
    HandlerResultProcessor,
    HeadersProcessor,
    PredicateProcessor,
    TransitionProcessor,
)

__all__ = [
    "ClipProcessingContext",
    "PendingStepData",
    "StepRecord",
    "begin_new_session",
    "create_initial_context",
    "reset_log_context",
    "StepLifecycleManager",
    "dedupe_flow_children",
    "merge_children_into_node",
    "ClipPipeline",
    "ActionProcessor",
    "ClipProcessor",
    "ExceptionProcessor",
    "HandlerResultProcessor",
    "HeadersProcessor",
    "PredicateProcessor",
    "TransitionProcessor",
]
