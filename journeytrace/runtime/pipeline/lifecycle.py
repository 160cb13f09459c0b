"""
lifecycle.py - Step lifecycle state machine.

States:
    Idle          no step open (ctx.pending.active is False)
    Accumulating  a step is open, collecting updates and buffered children

Transitions driven by an InterpretResult, applied in this order:

    create_step      finalize the open step (in its own journey), apply pops,
                     sync the journey counter from ORCH_CS, clear the
                     statebag (claims kept), apply updates, open a new step
                     in the post-pop journey
    push_sub_journey discard the open step (it only carried the dispatch),
                     push the journey stack and add a SubJourney node
    finalize_step    close the open step without opening another
    pop_sub_journey  (without create_step) pops after finalization; the
                     parent journey takes over the child's last counter

Finalization discards steps with order <= 0 unless they carry an error, and
merges a step into the node already recorded for the same (journey, order)
when it was opened within the dedup window.

Usage:
    lifecycle = StepLifecycleManager(dedup_threshold_ms=1000)
    lifecycle.buffer(result, ctx, handler_name)   # children for the open step
    lifecycle.apply(result, ctx)
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from journeytrace.config.trace_config import get_dedup_threshold_ms

from .. import handlers
from ..execution_map import merge_status
from ..flow_tree import FlowTreeBuilder
from ..interpreters.base import InterpretResult
from ..keys import StatebagKey, parse_orch_step
from ..types import (
    ClaimsTransformationFlowData,
    FlowNode,
    FlowNodeChild,
    FlowNodeContext,
    FlowNodeType,
    HomeRealmDiscoveryFlowData,
    StepError,
    StepErrorKind,
    StepFlowData,
    StepResult,
    TechnicalProfileFlowData,
)
from ..types._time import millis_between
from .context import ClipProcessingContext, PendingStepData, StepRecord

logger = logging.getLogger(__name__)

# Step-scoped values an interpreter may report while no step is open
_STEP_DETAILS = ("selected_option", "sso_session_participant", "sso_session_activated")


# =============================================================================
# Child payload merging
# =============================================================================


def _child_key(data) -> Optional[tuple]:
    if isinstance(data, TechnicalProfileFlowData):
        return (FlowNodeType.TECHNICAL_PROFILE.value, data.technical_profile_id)
    if isinstance(data, ClaimsTransformationFlowData):
        return (FlowNodeType.CLAIMS_TRANSFORMATION.value, data.transformation_id)
    if isinstance(data, HomeRealmDiscoveryFlowData):
        return (FlowNodeType.HOME_REALM_DISCOVERY.value, "")
    return None


def _merge_tp_metadata(existing: TechnicalProfileFlowData, incoming: TechnicalProfileFlowData) -> None:
    if existing.provider_type in ("", "Unknown") and incoming.provider_type not in ("", "Unknown"):
        existing.provider_type = incoming.provider_type
    if not existing.protocol_type and incoming.protocol_type:
        existing.protocol_type = incoming.protocol_type
    if not existing.claim_mappings and incoming.claim_mappings:
        existing.claim_mappings = incoming.claim_mappings


def _extend_unique(target: List[str], values: Iterable[str]) -> None:
    for value in values:
        if value not in target:
            target.append(value)


def dedupe_flow_children(children: Iterable[FlowNodeChild]) -> List[FlowNodeChild]:
    """Collapse repeated TP children (by id) and provider-selection children.

    A repeated TP keeps the richer provider/protocol metadata and gains the
    nested children it did not have; repeated selections union their options.
    """
    result: List[FlowNodeChild] = []
    seen = {}
    for child in children:
        key = _child_key(child.data)
        if key is None or key[0] == FlowNodeType.CLAIMS_TRANSFORMATION.value:
            result.append(child)
            continue
        existing = seen.get(key)
        if existing is None:
            seen[key] = child
            result.append(child)
            continue
        if isinstance(child.data, TechnicalProfileFlowData):
            _merge_tp_metadata(existing.data, child.data)
            known = {_child_key(c.data) for c in existing.children}
            for nested in child.children:
                nested_key = _child_key(nested.data)
                if nested_key is None or nested_key not in known:
                    existing.children.append(nested)
                    known.add(nested_key)
        else:
            _extend_unique(existing.data.selectable_options, child.data.selectable_options)
    return result


def merge_children_into_node(
    builder: FlowTreeBuilder,
    node: FlowNode,
    children: Iterable[FlowNodeChild],
    context: FlowNodeContext,
) -> None:
    """Attach payloads below an existing node, merging into same-id children."""
    for child in children:
        key = _child_key(child.data)
        match = None
        if key is not None:
            for existing in node.children:
                if _child_key(existing.data) == key:
                    match = existing
                    break
        if match is None:
            builder.attach_children(node, [child], context)
        elif isinstance(child.data, TechnicalProfileFlowData):
            _merge_tp_metadata(match.data, child.data)
            merge_children_into_node(builder, match, child.children, context)
        elif isinstance(child.data, HomeRealmDiscoveryFlowData):
            _extend_unique(match.data.selectable_options, child.data.selectable_options)


# =============================================================================
# Lifecycle manager
# =============================================================================


class StepLifecycleManager:
    """Applies InterpretResults to the step state machine."""

    def __init__(self, dedup_threshold_ms: Optional[int] = None) -> None:
        self.dedup_threshold_ms = (
            get_dedup_threshold_ms() if dedup_threshold_ms is None else dedup_threshold_ms
        )

    # -------------------------------------------------------------------------
    # Buffering
    # -------------------------------------------------------------------------

    def buffer(self, result: InterpretResult, ctx: ClipProcessingContext, handler_name: str = "") -> None:
        """Record step-scoped details of a result on the pending step.

        Called before apply() for results that do not open a step (details
        belong to the open step) and after it for results that do.
        """
        if not result.success:
            return
        pending = ctx.pending

        if result.flow_children:
            concrete_tp = any(isinstance(c.data, TechnicalProfileFlowData) for c in result.flow_children)
            if concrete_tp and handlers.is_claims_exchange_protocol_handler(handler_name):
                pending.flow_children = [
                    c for c in pending.flow_children if not isinstance(c.data, HomeRealmDiscoveryFlowData)
                ]
            pending.flow_children.extend(result.flow_children)

        if result.step_errors:
            pending.step_errors.extend(result.step_errors)
        if result.action_handler and not result.create_step:
            pending.action_handler = result.action_handler
        if result.ui_settings is not None:
            pending.ui_settings = result.ui_settings
        for call in result.backend_api_calls:
            if all(call.request_uri != existing.request_uri for existing in pending.backend_api_calls):
                pending.backend_api_calls.append(call)
        for name in _STEP_DETAILS:
            value = getattr(result, name)
            if value is not None:
                setattr(pending, name, value)

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def apply(self, result: InterpretResult, ctx: ClipProcessingContext) -> None:
        if not result.success:
            if result.error:
                ctx.errors.append(result.error)
            return

        pops = result.pop_sub_journey

        if result.create_step:
            self.finalize_current_step(ctx)
            if pops:
                self._pop_sub_journeys(pops, ctx)
            self._sync_orch_step(result, ctx)
            ctx.statebag.clear_statebag_keep_claims()
            ctx.statebag.apply_updates(result.statebag_updates)
            ctx.statebag.apply_claims_updates(result.claims_updates)
            self._open_step(result, ctx)
        else:
            ctx.statebag.apply_updates(result.statebag_updates)
            ctx.statebag.apply_claims_updates(result.claims_updates)
            if ctx.pending.active and result.step_result is not None:
                if result.step_result == StepResult.ERROR:
                    ctx.pending.set_error(result.error, result.error_h_result)
                else:
                    ctx.pending.result = result.step_result

        if result.push_sub_journey is not None:
            self._discard_active_step(ctx)
            push = result.push_sub_journey
            ctx.journey_stack.push(push.journey_id, push.journey_name, ctx.current_timestamp)
            ctx.tree_builder.push_sub_journey(
                push.journey_id,
                push.journey_name,
                ctx.journey_stack.current().last_orch_step,
                self._node_context(ctx, ctx.pending),
            )
            logger.debug("Entered sub-journey %s", push.journey_id)

        if result.finalize_step and ctx.pending.active:
            if result.step_result is not None:
                ctx.pending.result = result.step_result
            if result.error:
                ctx.pending.set_error(result.error, result.error_h_result)
            self.finalize_current_step(ctx)

        if pops and not result.create_step:
            self._pop_sub_journeys(pops, ctx)

    def _open_step(self, result: InterpretResult, ctx: ClipProcessingContext) -> None:
        previous = ctx.pending
        journey = ctx.journey_stack.current()
        pending = PendingStepData(
            active=True,
            journey_id=journey.journey_id,
            journey_name=journey.journey_name,
            step_order=journey.last_orch_step,
            sequence_number=ctx.sequence_number,
            timestamp=ctx.current_timestamp,
            log_id=ctx.current_log_id,
            event_type=ctx.current_event_type,
            action_handler=result.action_handler,
        )
        # Details buffered while idle belong to the step being opened
        if not previous.active:
            pending.flow_children = previous.flow_children
            pending.step_errors = previous.step_errors
            for name in _STEP_DETAILS:
                setattr(pending, name, getattr(previous, name))
        ctx.sequence_number += 1

        if result.step_result == StepResult.ERROR and result.error:
            pending.set_error(result.error, result.error_h_result)
        elif result.step_result is not None:
            pending.result = result.step_result
        ctx.pending = pending

    def _sync_orch_step(self, result: InterpretResult, ctx: ClipProcessingContext) -> None:
        orch_step = parse_orch_step(result.statebag_updates.get(StatebagKey.ORCH_CS.value))
        if orch_step > 0:
            ctx.journey_stack.update_orch_step(orch_step)

    def _pop_sub_journeys(self, count: int, ctx: ClipProcessingContext) -> None:
        last_orch_step = 0
        for _ in range(count):
            popped = ctx.journey_stack.pop()
            ctx.tree_builder.pop_sub_journey()
            last_orch_step = popped.last_orch_step
            logger.debug("Left sub-journey %s at step %d", popped.journey_id, popped.last_orch_step)
        ctx.journey_stack.current().last_orch_step = last_orch_step

    def _discard_active_step(self, ctx: ClipProcessingContext) -> None:
        if ctx.pending.active:
            logger.debug(
                "Discarding step %d of %s opened for sub-journey dispatch",
                ctx.pending.step_order,
                ctx.pending.journey_id,
            )
        ctx.pending = PendingStepData()

    # -------------------------------------------------------------------------
    # Finalization
    # -------------------------------------------------------------------------

    def finalize_current_step(self, ctx: ClipProcessingContext) -> Optional[FlowNode]:
        """Close the open step, adding (or merging) it into the tree."""
        pending = ctx.pending
        if not pending.active:
            return None
        ctx.pending = PendingStepData()

        is_error_step = pending.result == StepResult.ERROR and bool(pending.error_message)
        if pending.step_order <= 0 and not is_error_step:
            logger.debug("Discarding step with order %d in %s", pending.step_order, pending.journey_id)
            return None

        data = self._step_data(pending)
        context = self._node_context(ctx, pending)
        children = dedupe_flow_children(pending.flow_children)

        key = (pending.journey_id, pending.step_order)
        record = ctx.step_records.get(key)
        if record is not None and millis_between(record.first_seen, pending.timestamp) <= self.dedup_threshold_ms:
            self._merge_into(record.node, data, children, context, ctx)
            return record.node

        node = ctx.tree_builder.add_step(pending.journey_id, data, context)
        ctx.tree_builder.attach_children(node, children, context)
        ctx.execution_map.add_step(node.id, data.result, pending.sequence_number)
        ctx.step_records[key] = StepRecord(node=node, first_seen=pending.timestamp)
        if ctx.sessions:
            ctx.sessions[-1].step_count += 1
        return node

    def _step_data(self, pending: PendingStepData) -> StepFlowData:
        errors = list(pending.step_errors)
        if pending.error_message and all(e.message != pending.error_message for e in errors):
            errors.append(
                StepError(
                    kind=StepErrorKind.UNHANDLED,
                    h_result=pending.error_h_result or "",
                    message=pending.error_message,
                )
            )

        options = list(pending.selectable_options)
        for child in pending.flow_children:
            if isinstance(child.data, HomeRealmDiscoveryFlowData):
                _extend_unique(options, child.data.selectable_options)

        return StepFlowData(
            step_order=pending.step_order,
            current_journey_name=pending.journey_name,
            result=pending.result,
            errors=errors,
            action_handler=pending.action_handler,
            ui_settings=pending.ui_settings,
            selectable_options=options,
            selected_option=pending.selected_option,
            backend_api_calls=list(pending.backend_api_calls) or None,
            sso_session_participant=pending.sso_session_participant,
            sso_session_activated=pending.sso_session_activated,
        )

    def _merge_into(
        self,
        node: FlowNode,
        incoming: StepFlowData,
        children: List[FlowNodeChild],
        context: FlowNodeContext,
        ctx: ClipProcessingContext,
    ) -> None:
        existing: StepFlowData = node.data
        logger.debug("Merging repeated %s into existing node", node.id)

        existing.result = merge_status(existing.result, incoming.result)
        for error in incoming.errors:
            if all(e.message != error.message for e in existing.errors):
                existing.errors.append(error)
        _extend_unique(existing.selectable_options, incoming.selectable_options)
        if incoming.backend_api_calls:
            existing.backend_api_calls = (existing.backend_api_calls or []) + [
                call
                for call in incoming.backend_api_calls
                if all(call.request_uri != c.request_uri for c in existing.backend_api_calls or [])
            ]
        for name in ("action_handler", "ui_settings", "selected_option", "sso_session_participant", "sso_session_activated"):
            if getattr(existing, name) is None and getattr(incoming, name) is not None:
                setattr(existing, name, getattr(incoming, name))

        merge_children_into_node(ctx.tree_builder, node, children, context)
        if node.context is not None:
            node.context.statebag_snapshot = context.statebag_snapshot
            node.context.claims_snapshot = context.claims_snapshot
        ctx.execution_map.update_status(node.id, existing.result)

    def _node_context(self, ctx: ClipProcessingContext, pending: PendingStepData) -> FlowNodeContext:
        if pending.active:
            return FlowNodeContext(
                timestamp=pending.timestamp,
                sequence_number=pending.sequence_number,
                log_id=pending.log_id,
                event_type=pending.event_type,
                statebag_snapshot=ctx.statebag.get_statebag_snapshot(),
                claims_snapshot=ctx.statebag.get_claims_snapshot(),
            )
        return FlowNodeContext(
            timestamp=ctx.current_timestamp,
            sequence_number=ctx.sequence_number,
            log_id=ctx.current_log_id,
            event_type=ctx.current_event_type,
            statebag_snapshot=ctx.statebag.get_statebag_snapshot(),
            claims_snapshot=ctx.statebag.get_claims_snapshot(),
        )
