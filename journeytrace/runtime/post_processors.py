"""
post_processors.py - Passes over the finished tree.

Run in order once every log has been processed:

    StepDurationPostProcessor         milliseconds from each step to the next
    HrdSelectionResolverPostProcessor  selected provider for steps that offered
                                       a choice but never reported one

Usage:
    from journeytrace.runtime.post_processors import run_post_processors

    result = run_post_processors(tree)
    if not result.success:
        errors.extend(result.errors)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .flow_tree import collect_step_nodes, get_step_tp_names
from .types import FlowNode, HomeRealmDiscoveryFlowData, StepFlowData
from .types._time import millis_between

logger = logging.getLogger(__name__)


@dataclass
class PostProcessorResult:
    success: bool = True
    errors: List[str] = field(default_factory=list)


class BasePostProcessor(ABC):
    name: str = ""

    @abstractmethod
    def process(self, tree: FlowNode) -> PostProcessorResult:
        """Mutate `tree` in place."""
        ...


class StepDurationPostProcessor(BasePostProcessor):
    """Duration of a step = time until the next step (in tree order) started.

    The last step has no duration.
    """

    name = "StepDuration"

    def process(self, tree: FlowNode) -> PostProcessorResult:
        steps = collect_step_nodes(tree)
        for current, following in zip(steps, steps[1:]):
            if current.context is None or following.context is None:
                continue
            current.data.duration = millis_between(current.context.timestamp, following.context.timestamp)
        return PostProcessorResult()


class HrdSelectionResolverPostProcessor(BasePostProcessor):
    """Infer which offered provider was picked.

    A step offering two or more options without a matching selected option
    takes the first option among its own technical profiles, else among the
    next step's. The provider-selection child gets the same value.
    """

    name = "HrdSelectionResolver"

    def process(self, tree: FlowNode) -> PostProcessorResult:
        steps = collect_step_nodes(tree)
        for index, step in enumerate(steps):
            data: StepFlowData = step.data
            if len(data.selectable_options) < 2 or data.selected_option in data.selectable_options:
                continue

            selected = self._match(data.selectable_options, step)
            if selected is None and index + 1 < len(steps):
                selected = self._match(data.selectable_options, steps[index + 1])
            if selected is None:
                continue

            data.selected_option = selected
            for child in step.children:
                if isinstance(child.data, HomeRealmDiscoveryFlowData):
                    child.data.selected_option = selected
            logger.debug("Resolved selected option %s for %s", selected, step.id)
        return PostProcessorResult()

    @staticmethod
    def _match(options: Sequence[str], source: FlowNode) -> Optional[str]:
        for tp_id in get_step_tp_names(source):
            if tp_id in options:
                return tp_id
        return None


def default_post_processors() -> List[BasePostProcessor]:
    return [StepDurationPostProcessor(), HrdSelectionResolverPostProcessor()]


def run_post_processors(
    tree: FlowNode,
    processors: Optional[Sequence[BasePostProcessor]] = None,
) -> PostProcessorResult:
    """Run each processor in order; a failing processor does not stop the rest."""
    combined = PostProcessorResult()
    for processor in processors if processors is not None else default_post_processors():
        try:
            result = processor.process(tree)
        except Exception as e:
            logger.warning("Post-processor %s failed: %s", processor.name, e)
            result = PostProcessorResult(success=False, errors=[f"Post-processor {processor.name} failed: {e}"])
        if not result.success:
            combined.success = False
            combined.errors.extend(result.errors)
    return combined
