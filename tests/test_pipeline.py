"""
Tests for the clip pipeline and the step lifecycle state machine.

These tests verify:
1. Claims persist across step boundaries while the statebag is cleared
2. A second authentication event starts a fresh session
3. Repeated (journey, step) occurrences merge inside the dedup window only
4. Leaving a sub-journey hands its last counter to the parent
5. Handler slots, buffering while idle, and validation errors behave per step
"""

from __future__ import annotations

from conftest import (
    POLICY_ID,
    PipelineHarness,
    action,
    handler_result,
    headers,
    make_log,
    orch,
    predicate,
    record,
    sb,
    step_invoked,
    transition,
)
from journeytrace.runtime import handlers
from journeytrace.runtime.flow_tree import get_step_tp_names
from journeytrace.runtime.interpreters.registry import create_default_registry
from journeytrace.runtime.trace_parser import TraceParser
from journeytrace.runtime.types import ClipKind, FlowNodeType, StepErrorKind, StepResult, decode_logs


def _enqueue(journey_id: str):
    return [
        action(handlers.ENQUEUE_NEW_JOURNEY),
        handler_result(recorder_record=record(("SubJourney", journey_id))),
    ]


# =============================================================================
# Statebag and claims across steps
# =============================================================================


class TestClaimsPersistence:
    """Claims accumulate across steps; the statebag is per step."""

    def test_claims_carry_forward(self, parse):
        logs = [
            make_log("log-1", 0, [headers(), *orch(1, claims={"email": "a@contoso.com"})]),
            make_log("log-2", 2000, [headers("Event:API"), *orch(2, claims={"displayName": "Ann"})]),
            make_log("log-3", 4000, [headers("Event:API"), *orch(3, claims={"email": "b@contoso.com"})]),
        ]

        result = parse(logs)

        snapshots = [s.context.claims_snapshot for s in result.steps]
        assert snapshots[0] == {"email": "a@contoso.com"}
        assert snapshots[1] == {"email": "a@contoso.com", "displayName": "Ann"}
        assert snapshots[2] == {"email": "b@contoso.com", "displayName": "Ann"}
        assert result.final_claims == {"email": "b@contoso.com", "displayName": "Ann"}

    def test_statebag_cleared_at_step_boundary(self, parse):
        logs = [
            make_log("log-1", 0, [headers(), *orch(1, EID="api.signuporsignin")]),
            make_log("log-2", 2000, [headers("Event:API"), *orch(2)]),
        ]

        result = parse(logs)

        assert result.steps[0].context.statebag_snapshot == {"ORCH_CS": "1", "EID": "api.signuporsignin"}
        assert result.steps[1].context.statebag_snapshot == {"ORCH_CS": "2"}
        assert result.final_statebag == {"ORCH_CS": "2"}

    def test_snapshots_are_independent_copies(self, parse):
        logs = [
            make_log("log-1", 0, [headers(), *orch(1, claims={"email": "a@contoso.com"})]),
            make_log("log-2", 2000, [headers("Event:API"), *orch(2, claims={"email": "b@contoso.com"})]),
        ]

        result = parse(logs)
        result.steps[1].context.claims_snapshot["email"] = "changed"

        assert result.steps[0].context.claims_snapshot == {"email": "a@contoso.com"}
        assert result.final_claims == {"email": "b@contoso.com"}


# =============================================================================
# Sessions
# =============================================================================


class TestSessionReset:
    """A repeated Event:AUTH within one trace starts a new session."""

    def test_claims_do_not_cross_sessions(self, parse):
        logs = [
            make_log("log-1", 0, [headers(), *orch(1, claims={"email": "a@contoso.com"})]),
            make_log("log-2", 5000, [headers(), *orch(1)]),
        ]

        result = parse(logs)

        assert len(result.steps) == 2
        assert result.steps[0].context.claims_snapshot == {"email": "a@contoso.com"}
        assert result.steps[1].context.claims_snapshot == {}
        assert result.final_claims == {}

    def test_sessions_recorded_with_step_counts(self, parse):
        logs = [
            make_log("log-1", 0, [headers(), *orch(1)]),
            make_log("log-2", 1000, [headers("Event:API"), *orch(2)]),
            make_log("log-3", 5000, [headers(), *orch(1)]),
        ]

        result = parse(logs)

        assert [s.session_index for s in result.sessions] == [0, 1]
        assert [s.step_count for s in result.sessions] == [2, 1]

    def test_same_step_in_new_session_is_a_revisit(self, parse):
        logs = [
            make_log("log-1", 0, [headers(), *orch(1)]),
            make_log("log-2", 500, [headers(), *orch(1)]),
        ]

        result = parse(logs)

        status = result.execution_map[f"step-{POLICY_ID}-1"]
        assert status.visit_count == 2
        assert status.step_indices == [0, 1]

    def test_new_session_closes_open_sub_journeys(self, harness):
        harness.run(
            make_log("log-1", 0, [headers(), *orch(1), *_enqueue("PasswordReset"), *orch(1)]),
            make_log("log-2", 5000, [headers(), *orch(1)]),
        ).finish()

        assert harness.ctx.journey_stack.depth() == 0
        assert harness.tree.depth() == 0
        root = harness.tree.get_tree()
        assert [c.id for c in root.children] == ["sj-PasswordReset", f"step-{POLICY_ID}-1"]
        assert [c.id for c in root.children[0].children] == ["step-PasswordReset-1"]


# =============================================================================
# Step dedup / merge
# =============================================================================


class TestStepMerge:
    """Same (journey, step) seen again shortly after is one node."""

    def _parser(self):
        # A short retry gap makes the repeated counter open a second step.
        registry = create_default_registry(fallback_enabled=True, retry_threshold_ms=100)
        return TraceParser(registry=registry, dedup_threshold_ms=1000)

    def _logs(self, second_offset_ms: int):
        return decode_logs(
            [
                make_log("log-1", 0, [headers(), *orch(1), *step_invoked("AAD-UserReadUsingObjectId")]),
                make_log(
                    "log-2",
                    second_offset_ms,
                    [headers("Event:API"), *orch(1), *step_invoked("AAD-UserWriteUsingLogonEmail")],
                ),
            ]
        )

    def test_merged_within_window(self):
        result = self._parser().parse(self._logs(500))

        assert len(result.steps) == 1
        step = result.steps[0]
        assert get_step_tp_names(step) == ["AAD-UserReadUsingObjectId", "AAD-UserWriteUsingLogonEmail"]
        assert result.execution_map[step.id].visit_count == 1

    def test_separate_nodes_beyond_window(self):
        result = self._parser().parse(self._logs(1500))

        assert len(result.steps) == 2
        assert [get_step_tp_names(s) for s in result.steps] == [
            ["AAD-UserReadUsingObjectId"],
            ["AAD-UserWriteUsingLogonEmail"],
        ]
        assert result.execution_map[result.steps[0].id].visit_count == 2

    def test_merge_keeps_most_severe_status(self):
        logs = decode_logs(
            [
                make_log("log-1", 0, [headers(), *orch(1)]),
                make_log(
                    "log-2",
                    300,
                    [
                        headers("Event:API"),
                        action(handlers.ORCHESTRATION_MANAGER),
                        handler_result(
                            statebag=sb(ORCH_CS="1"),
                            exception={"Message": "Timeout", "HResult": "-1"},
                        ),
                    ],
                ),
            ]
        )

        result = self._parser().parse(logs)

        assert len(result.steps) == 1
        assert result.steps[0].data.result == StepResult.ERROR
        assert result.execution_map[result.steps[0].id].status == StepResult.ERROR

    def test_repeated_profiles_in_one_step_collapse(self, parse):
        clips = [
            headers(),
            *orch(1),
            *step_invoked("AAD-UserReadUsingObjectId"),
            predicate(handlers.CLAIMS_EXCHANGE_SERVICE_CALL),
            handler_result(
                predicate_result="True",
                recorder_record=record(
                    (
                        "InitiatingClaimsExchange",
                        record(
                            ("TechnicalProfileId", "AAD-UserReadUsingObjectId"),
                            ("ProtocolProviderType", "AzureActiveDirectoryProvider"),
                        ),
                    ),
                )
            ),
        ]

        result = parse([make_log("log-1", 0, clips)])

        step = result.steps[0]
        assert len(step.children) == 1
        assert step.children[0].data.provider_type == "AzureActiveDirectoryProvider"


# =============================================================================
# Sub-journeys
# =============================================================================


class TestSubJourneyRoundTrip:
    """Parent counters after leaving a sub-journey."""

    def test_parent_takes_child_counter_on_implicit_exit(self, harness):
        harness.run(
            make_log(
                "log-1",
                0,
                [headers(), *orch(3), *_enqueue("PasswordReset"), *orch(1), *orch(2), *orch(None)],
            )
        ).finish()

        stack = harness.ctx.journey_stack
        assert stack.depth() == 0
        assert stack.root().last_orch_step == 2

    def test_dispatch_step_is_discarded(self, harness):
        harness.run(make_log("log-1", 0, [headers(), *orch(3), *_enqueue("PasswordReset")])).finish()

        root = harness.tree.get_tree()
        assert [c.type for c in root.children] == [FlowNodeType.SUB_JOURNEY]
        assert harness.ctx.pending.active is False
        assert harness.ctx.journey_stack.current().journey_id == "PasswordReset"

    def test_explicit_exit_pops_one_level(self, harness):
        harness.run(
            make_log(
                "log-1",
                0,
                [
                    headers(),
                    *orch(3),
                    *_enqueue("PasswordReset"),
                    *orch(1),
                    action(handlers.SUBJOURNEY_EXIT),
                    handler_result(),
                ],
            )
        )

        assert harness.ctx.errors == []
        assert harness.ctx.journey_stack.depth() == 0
        assert harness.ctx.journey_stack.root().last_orch_step == 1

    def test_nested_sub_journeys_close_on_decrease(self, harness):
        harness.run(
            make_log(
                "log-1",
                0,
                [
                    headers(),
                    *orch(4),
                    *_enqueue("Outer"),
                    *orch(6),
                    *_enqueue("Inner"),
                    *orch(1),
                    *orch(8),
                    *orch(5),
                ],
            )
        ).finish()

        # counters [4, 6, 8] -> 5 closes Inner and Outer
        stack = harness.ctx.journey_stack
        assert stack.depth() == 0
        assert stack.root().last_orch_step == 5
        root = harness.tree.get_tree()
        assert [c.id for c in root.children] == ["sj-Outer", f"step-{POLICY_ID}-5"]
        outer = root.children[0]
        assert [c.id for c in outer.children] == ["sj-Inner"]
        assert [c.id for c in outer.children[0].children] == ["step-Inner-1", "step-Inner-8"]

    def test_gap_to_parent_successor_closes_sub_journey(self, harness):
        harness.run(
            make_log(
                "log-1",
                0,
                [headers(), *orch(4), *_enqueue("Outer"), *orch(6), *_enqueue("Inner"), *orch(7)],
            )
        )

        # 7 follows Outer's 6, so Inner is done
        stack = harness.ctx.journey_stack
        assert stack.depth() == 1
        assert stack.current().journey_id == "Outer"
        assert stack.current().last_orch_step == 7


# =============================================================================
# Processors
# =============================================================================


class TestProcessors:
    """Per-kind processor bookkeeping."""

    def test_headers_populate_context(self, harness):
        harness.run(make_log("log-1", 0, [headers(correlation_id="corr-42")]))

        ctx = harness.ctx
        assert ctx.correlation_id == "corr-42"
        assert ctx.tenant_id == "contoso.onmicrosoft.com"
        assert ctx.policy_id == POLICY_ID
        assert ctx.current_event_type == "AUTH"
        assert ctx.session_flow_count == 1

    def test_action_and_predicate_clear_each_other(self, harness):
        harness.run(
            make_log("log-1", 0, [headers(), action(handlers.ORCHESTRATION_MANAGER), predicate(handlers.SSO_PARTICIPANT)])
        )
        assert harness.ctx.last_predicate == handlers.SSO_PARTICIPANT
        assert harness.ctx.last_action is None

        harness.run(make_log("log-2", 10, [predicate(handlers.SSO_PARTICIPANT), action(handlers.SSO_ACTIVATE)]))
        assert harness.ctx.last_action == handlers.SSO_ACTIVATE
        assert harness.ctx.last_predicate is None

    def test_handler_slots_reset_per_log(self, harness):
        harness.run(make_log("log-1", 0, [headers(), transition(), action(handlers.ORCHESTRATION_MANAGER)]))
        harness.run(make_log("log-2", 10, []))

        assert harness.ctx.last_action is None
        assert harness.ctx.last_transition is None

    def test_transition_is_recorded(self, harness):
        harness.run(make_log("log-1", 0, [headers(), transition("ClaimsExchange", "AwaitingNextStep")]))

        assert harness.ctx.last_transition.state_name == "AwaitingNextStep"
        assert harness.ctx.last_clip_kind == ClipKind.TRANSITION

    def test_predicate_result_recorded(self, harness):
        harness.run(
            make_log(
                "log-1",
                0,
                [headers(), predicate(handlers.SSO_PARTICIPANT), handler_result(predicate_result="False", result=False)],
            )
        )

        assert harness.ctx.last_predicate_result is False
        assert harness.ctx.last_predicate_result_string == "False"

    def test_result_without_handler_is_ignored(self, harness):
        harness.run(make_log("log-1", 0, [headers(), handler_result(statebag=sb(ORCH_CS="1"))]))

        assert harness.ctx.pending.active is False
        assert harness.ctx.statebag.get_statebag_snapshot() == {}


class TestPendingStep:
    """Details recorded on the open step."""

    def test_validation_failure_keeps_step_open(self, harness):
        message = "A user with the specified credential could not be found."
        harness.run(
            make_log(
                "log-1",
                0,
                [
                    headers(),
                    *orch(1),
                    action(handlers.SELF_ASSERTED_VALIDATION),
                    handler_result(exception={"Message": message, "HResult": "-2147467259"}),
                ],
            )
        )

        pending = harness.ctx.pending
        assert pending.active is True
        assert pending.result == StepResult.ERROR
        assert [e.kind for e in pending.step_errors] == [StepErrorKind.HANDLED]
        assert pending.step_errors[0].message == message
        assert harness.tree.get_tree().children == []

    def test_self_asserted_action_finalizes(self, harness):
        harness.run(
            make_log(
                "log-1",
                0,
                [
                    headers(),
                    *orch(1),
                    action(handlers.SELF_ASSERTED_REDIRECT),
                    handler_result(),
                    action(handlers.SELF_ASSERTED_ACTION),
                    handler_result(),
                ],
            )
        )

        assert harness.ctx.pending.active is False
        step = harness.tree.get_tree().children[0]
        assert step.data.result == StepResult.SUCCESS
        assert step.data.action_handler == handlers.SELF_ASSERTED_ACTION

    def test_children_buffered_while_idle_join_next_step(self, harness):
        harness.run(
            make_log(
                "log-1",
                0,
                [headers(), *step_invoked("SelfAsserted-LocalAccountSignin-Email"), *orch(1)],
            )
        ).finish()

        step = harness.tree.get_tree().children[0]
        assert get_step_tp_names(step) == ["SelfAsserted-LocalAccountSignin-Email"]

    def test_sso_flags_recorded(self, harness):
        harness.run(
            make_log(
                "log-1",
                0,
                [
                    headers(),
                    *orch(1),
                    predicate(handlers.SSO_PARTICIPANT),
                    handler_result(predicate_result="True"),
                    action(handlers.SSO_ACTIVATE),
                    handler_result(result=True),
                ],
            )
        ).finish()

        data = harness.tree.get_tree().children[0].data
        assert data.sso_session_participant is True
        assert data.sso_session_activated is True

    def test_details_reported_while_idle_join_next_step(self, harness):
        """SSO flags and the selected option seen before the step opens are kept."""
        harness.run(
            make_log(
                "log-1",
                0,
                [
                    headers(),
                    predicate(handlers.SSO_PARTICIPANT),
                    handler_result(predicate_result="True"),
                    action(handlers.VALIDATE_API_RESPONSE),
                    handler_result(statebag=sb(TAGE="Google-OAUTH")),
                    *orch(1),
                ],
            )
        ).finish()

        data = harness.tree.get_tree().children[0].data
        assert data.sso_session_participant is True
        assert data.selected_option == "Google-OAUTH"

    def test_step_zero_is_discarded_without_error(self, harness):
        harness.run(make_log("log-1", 0, [headers(), *orch(0)])).finish()

        assert harness.tree.get_tree().children == []

    def test_early_validation_error_is_kept(self, harness):
        harness.run(
            make_log(
                "log-1",
                0,
                [
                    headers(),
                    action(handlers.INITIATING_MESSAGE_VALIDATION),
                    handler_result(
                        result=False,
                        exception={"Message": "The request is missing client_id.", "HResult": "-2146233088"},
                    ),
                ],
            )
        ).finish()

        steps = harness.tree.get_tree().children
        assert len(steps) == 1
        assert steps[0].data.step_order == 0
        assert steps[0].data.result == StepResult.ERROR
        assert steps[0].data.action_handler == "InitiatingMessageValidationHandler"
        assert steps[0].data.errors[0].message == "The request is missing client_id."


def test_unknown_handler_skipped_without_fallback():
    harness = PipelineHarness(create_default_registry(fallback_enabled=False, retry_threshold_ms=1000))
    harness.run(make_log("log-1", 0, [headers(), *orch(1), action("Web.TPEngine.Unknown.Handler"), handler_result()]))

    assert harness.ctx.errors == []
    assert harness.ctx.pending.step_order == 1
