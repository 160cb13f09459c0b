"""
flow_tree.py - Builds and queries the execution tree.

The builder keeps an ancestry stack (root, then any open sub-journey nodes);
steps are always added under the top of that stack. Child payload trees
produced by interpreters are turned into nodes by `attach_children`.

Node ids:
    root                   the single root node
    sj-{journeyId}         sub-journey
    step-{journeyId}-{n}   orchestration step
    error-{journeyId}-{s}  standalone error step (fatal exception)
    tp-{id} / ct-{id}      technical profile / claims transformation
    hrd-{parentId}         provider selection under a step
    dc-{id}-{action}       display control
    sc-{tpId}              token issuance

Usage:
    from journeytrace.runtime.flow_tree import FlowTreeBuilder, collect_step_nodes

    builder = FlowTreeBuilder()
    builder.set_root_info("SignUpOrSignIn", "B2C_1A_SignUpOrSignIn")
    node = builder.add_step("SignUpOrSignIn", StepFlowData(1, "SignUpOrSignIn"), ctx)
    steps = collect_step_nodes(builder.get_tree())
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .errors import FlowTreeError
from .types import (
    ClaimsTransformationFlowData,
    DisplayControlFlowData,
    FlowNode,
    FlowNodeChild,
    FlowNodeContext,
    FlowNodeType,
    HomeRealmDiscoveryFlowData,
    RootFlowData,
    SendClaimsFlowData,
    StepFlowData,
    SubJourneyFlowData,
    TechnicalProfileFlowData,
)

logger = logging.getLogger(__name__)


def _new_root() -> FlowNode:
    return FlowNode(
        id="root",
        name="UserJourney",
        type=FlowNodeType.ROOT,
        triggered_at_step=0,
        last_step=0,
        data=RootFlowData(),
    )


class FlowTreeBuilder:
    """Owns the tree for one parse and the currently open journey nodes."""

    def __init__(self) -> None:
        self._root = _new_root()
        self._stack: List[FlowNode] = [self._root]

    def get_tree(self) -> FlowNode:
        return self._root

    @property
    def current(self) -> FlowNode:
        """Innermost open journey node (root or sub-journey)."""
        return self._stack[-1]

    def depth(self) -> int:
        return len(self._stack) - 1

    def set_root_info(self, journey_name: str, policy_id: str) -> None:
        self._root.name = journey_name
        self._root.data = RootFlowData(policy_id=policy_id)

    def reset(self) -> None:
        self._root = _new_root()
        self._stack = [self._root]

    # -------------------------------------------------------------------------
    # Journey nesting
    # -------------------------------------------------------------------------

    def push_sub_journey(
        self,
        journey_id: str,
        journey_name: str,
        orch_step: int,
        context: FlowNodeContext,
    ) -> FlowNode:
        node = FlowNode(
            id=f"sj-{journey_id}",
            name=journey_name or journey_id,
            type=FlowNodeType.SUB_JOURNEY,
            triggered_at_step=orch_step,
            last_step=orch_step,
            data=SubJourneyFlowData(journey_id=journey_id),
            context=context,
        )
        self.current.children.append(node)
        self._stack.append(node)
        return node

    def pop_sub_journey(self) -> FlowNode:
        """Close the innermost sub-journey node.

        Raises:
            FlowTreeError: If no sub-journey node is open.
        """
        if len(self._stack) <= 1:
            raise FlowTreeError("Cannot pop flow tree past the root node")
        return self._stack.pop()

    def pop_all_sub_journeys(self) -> int:
        count = len(self._stack) - 1
        del self._stack[1:]
        return count

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def add_step(self, journey_id: str, data: StepFlowData, context: FlowNodeContext) -> FlowNode:
        node = FlowNode(
            id=f"step-{journey_id}-{data.step_order}",
            name=f"Step {data.step_order}",
            type=FlowNodeType.STEP,
            triggered_at_step=data.step_order,
            last_step=data.step_order,
            data=data,
            context=context,
        )
        self.current.children.append(node)
        self._raise_last_step(data.step_order)
        return node

    def add_error_step(self, journey_id: str, data: StepFlowData, context: FlowNodeContext) -> FlowNode:
        node = FlowNode(
            id=f"error-{journey_id}-{context.sequence_number}",
            name="Error",
            type=FlowNodeType.STEP,
            triggered_at_step=data.step_order,
            last_step=data.step_order,
            data=data,
            context=context,
        )
        self.current.children.append(node)
        return node

    def _raise_last_step(self, orch_step: int) -> None:
        for node in self._stack:
            if node.last_step < orch_step:
                node.last_step = orch_step

    # -------------------------------------------------------------------------
    # Step children
    # -------------------------------------------------------------------------

    def _add_child(self, parent: FlowNode, node_id: str, name: str, data, context: FlowNodeContext) -> FlowNode:
        node = FlowNode(
            id=node_id,
            name=name,
            type=data.type,
            triggered_at_step=parent.triggered_at_step,
            last_step=parent.triggered_at_step,
            data=data,
            context=context,
        )
        parent.children.append(node)
        return node

    def add_child(self, parent: FlowNode, data, context: FlowNodeContext) -> Optional[FlowNode]:
        """Add one child payload below `parent`; returns None for unknown payloads."""
        if isinstance(data, TechnicalProfileFlowData):
            return self._add_child(parent, f"tp-{data.technical_profile_id}", data.technical_profile_id, data, context)
        if isinstance(data, ClaimsTransformationFlowData):
            return self._add_child(parent, f"ct-{data.transformation_id}", data.transformation_id, data, context)
        if isinstance(data, HomeRealmDiscoveryFlowData):
            return self._add_child(parent, f"hrd-{parent.id}", "Home Realm Discovery", data, context)
        if isinstance(data, DisplayControlFlowData):
            return self._add_child(
                parent,
                f"dc-{data.display_control_id}-{data.action}",
                f"{data.display_control_id}:{data.action}",
                data,
                context,
            )
        if isinstance(data, SendClaimsFlowData):
            return self._add_child(
                parent, f"sc-{data.technical_profile_id}", f"SendClaims: {data.technical_profile_id}", data, context
            )
        logger.warning("Ignoring child payload of unexpected type %s", type(data).__name__)
        return None

    def attach_children(self, parent: FlowNode, children: Iterable[FlowNodeChild], context: FlowNodeContext) -> None:
        for child in children:
            node = self.add_child(parent, child.data, context)
            if node is not None and child.children:
                self.attach_children(node, child.children, context)


# =============================================================================
# Tree queries
# =============================================================================


def collect_step_nodes(tree: FlowNode) -> List[FlowNode]:
    """Step nodes in tree (pre-order) order."""
    return [node for node in tree.walk() if node.type == FlowNodeType.STEP]


def find_step_node_by_id(tree: FlowNode, node_id: str) -> Optional[FlowNode]:
    for node in tree.walk():
        if node.id == node_id:
            return node
    return None


def find_parent_node(root: FlowNode, target: FlowNode) -> Optional[FlowNode]:
    for child in root.children:
        if child is target:
            return root
        parent = find_parent_node(child, target)
        if parent is not None:
            return parent
    return None


def find_child_node(step: FlowNode, node_type: FlowNodeType, item_id: str) -> Optional[FlowNode]:
    """First descendant of `step` with this type and payload id (any HRD matches)."""
    for child in step.children:
        if child.type == node_type:
            data = child.data
            if isinstance(data, HomeRealmDiscoveryFlowData):
                return child
            if isinstance(data, TechnicalProfileFlowData) and data.technical_profile_id == item_id:
                return child
            if isinstance(data, ClaimsTransformationFlowData) and data.transformation_id == item_id:
                return child
            if isinstance(data, DisplayControlFlowData) and data.display_control_id == item_id:
                return child
        nested = find_child_node(child, node_type, item_id)
        if nested is not None:
            return nested
    return None


def get_step_tp_names(step: FlowNode) -> List[str]:
    """TP ids directly under a step, plus TPs nested one level below them."""
    names: List[str] = []
    for child in step.children:
        if child.type != FlowNodeType.TECHNICAL_PROFILE:
            continue
        names.append(child.data.technical_profile_id)
        for grandchild in child.children:
            if grandchild.type == FlowNodeType.TECHNICAL_PROFILE:
                names.append(grandchild.data.technical_profile_id)
    return names


def get_step_ct_names(step: FlowNode) -> List[str]:
    names: List[str] = []
    for child in step.children:
        if child.type == FlowNodeType.CLAIMS_TRANSFORMATION:
            names.append(child.data.transformation_id)
        elif child.type == FlowNodeType.TECHNICAL_PROFILE:
            for grandchild in child.children:
                if grandchild.type == FlowNodeType.CLAIMS_TRANSFORMATION:
                    names.append(grandchild.data.transformation_id)
    return names
