"""
Tests for trace_parser.py - end-to-end reconstruction of journey traces.

These tests verify:
1. Single-step, multi-log and sub-journey traces build the expected tree
2. Display control actions and validation errors attach to their step
3. Fatal exceptions and interpreter failures are reported, not raised
4. Logs are filtered by event instance and sorted stably by timestamp
5. Interleaved users are parsed one flow at a time
"""

from __future__ import annotations

import pytest

from conftest import (
    JOURNEY_NAME,
    POLICY_ID,
    action,
    enabled_profiles,
    fatal_exception,
    handler_result,
    headers,
    make_log,
    orch,
    record,
    sb,
    step_invoked,
)
from journeytrace.runtime import handlers
from journeytrace.runtime.flow_tree import find_child_node, get_step_tp_names
from journeytrace.runtime.trace_parser import NO_LOGS_ERROR, parse_trace
from journeytrace.runtime.types import (
    FlowNodeType,
    StepErrorKind,
    StepResult,
    decode_logs,
)

STEP_1 = f"step-{POLICY_ID}-1"
STEP_2 = f"step-{POLICY_ID}-2"


# =============================================================================
# Scenario Tests
# =============================================================================


class TestSingleStep:
    """One AUTH log with one orchestration step."""

    def test_one_step_directly_under_root(self, parse):
        """Headers(AUTH) + Orchestration(1) gives exactly one step under the root."""
        result = parse([make_log("log-1", 0, [headers(), *orch(1)])])

        assert result.success is True
        assert result.errors == []
        assert len(result.flow_tree.children) == 1

        step = result.flow_tree.children[0]
        assert step.type == FlowNodeType.STEP
        assert step.id == STEP_1
        assert step.data.step_order == 1
        assert step.data.current_journey_name == JOURNEY_NAME

    def test_root_carries_journey_info(self, parse):
        """Root is named after the policy, with the policy id in its payload."""
        result = parse([make_log("log-1", 0, [headers(), *orch(1)])])

        assert result.main_journey_id == POLICY_ID
        assert result.flow_tree.name == JOURNEY_NAME
        assert result.flow_tree.data.policy_id == POLICY_ID
        assert result.flow_tree.last_step == 1

    def test_execution_map_and_session(self, parse):
        """The step is recorded once in the execution map and counted in its session."""
        result = parse([make_log("log-1", 0, [headers(), *orch(1)])])

        status = result.execution_map[STEP_1]
        assert status.status == StepResult.SUCCESS
        assert status.visit_count == 1
        assert status.step_indices == [0]
        assert len(result.sessions) == 1
        assert result.sessions[0].step_count == 1


class TestMultipleLogs:
    """Steps spread over several logs."""

    def test_steps_follow_timestamps_not_input_order(self, parse):
        """Logs given out of order still produce steps in ascending order."""
        log_1 = make_log("log-1", 0, [headers(), *orch(1)])
        log_2 = make_log("log-2", 1000, [headers("Event:API"), *orch(2)])

        result = parse([log_2, log_1])

        assert [s.data.step_order for s in result.steps] == [1, 2]
        assert [s.context.sequence_number for s in result.steps] == [0, 1]
        assert [s.context.log_id for s in result.steps] == ["log-1", "log-2"]

    def test_event_type_taken_from_headers(self, parse):
        log_1 = make_log("log-1", 0, [headers(), *orch(1)])
        log_2 = make_log("log-2", 1000, [headers("Event:SELFASSERTED"), *orch(2)])

        result = parse([log_1, log_2])

        assert [s.context.event_type for s in result.steps] == ["AUTH", "SELFASSERTED"]

    def test_step_duration_is_time_to_next_step(self, parse):
        log_1 = make_log("log-1", 0, [headers(), *orch(1)])
        log_2 = make_log("log-2", 1500, [headers("Event:API"), *orch(2)])

        result = parse([log_1, log_2])

        assert result.steps[0].data.duration == 1500
        assert result.steps[1].data.duration is None

    def test_equal_timestamps_keep_input_order(self, parse):
        """Sorting is stable: equal timestamps keep the order they were given in."""
        log_a = make_log("log-a", 0, [headers(), *orch(1)])
        log_b = make_log("log-b", 0, [headers("Event:API"), *orch(2)])

        result = parse([log_a, log_b])

        assert [s.data.step_order for s in result.steps] == [1, 2]

    def test_repeated_counter_in_quick_succession_is_same_step(self, parse):
        """An unchanged counter within the retry window continues the open step."""
        log_1 = make_log("log-1", 0, [headers(), *orch(1)])
        log_2 = make_log("log-2", 400, [headers("Event:API"), *orch(1)])

        result = parse([log_1, log_2])

        assert len(result.steps) == 1


class TestSubJourneyTrace:
    """Sub-journey entered by EnqueueNewJourney and left without a counter."""

    def _enqueue(self, journey_id: str):
        return [
            action(handlers.ENQUEUE_NEW_JOURNEY),
            handler_result(recorder_record=record(("SubJourney", journey_id))),
        ]

    def test_sub_journey_node_holds_its_step(self, parse):
        clips = [headers(), *orch(1), *self._enqueue("PasswordReset"), *orch(1), *orch(None)]

        result = parse([make_log("log-1", 0, clips)])

        assert result.success is True
        assert len(result.flow_tree.children) == 1
        sub_journey = result.flow_tree.children[0]
        assert sub_journey.type == FlowNodeType.SUB_JOURNEY
        assert sub_journey.id == "sj-PasswordReset"
        assert sub_journey.name == "PasswordReset"
        assert len(sub_journey.children) == 1

        step = sub_journey.children[0]
        assert step.id == "step-PasswordReset-1"
        assert step.data.current_journey_name == "PasswordReset"

    def test_gap_returns_to_parent(self, parse):
        """A counter jump closes the sub-journey and opens the parent's next step."""
        clips = [headers(), *orch(2), *self._enqueue("PasswordReset"), *orch(1), *orch(3)]

        result = parse([make_log("log-1", 0, clips)])

        assert [c.id for c in result.flow_tree.children] == ["sj-PasswordReset", f"step-{POLICY_ID}-3"]
        assert [s.id for s in result.flow_tree.children[0].children] == ["step-PasswordReset-1"]


class TestDisplayControlTrace:
    """Display control response with two technical profiles."""

    def test_display_control_children_in_input_order(self, parse):
        response = record(
            ("Id", "emailVerificationControl/SendCode"),
            ("Result", "200"),
            (
                "DisplayControlAction",
                [
                    record(("TechnicalProfileId", "AAD-UserReadUsingEmailAddress")),
                    record(("TechnicalProfileId", "AadSspr-SendCode")),
                ],
            ),
        )
        clips = [
            headers(),
            *orch(1),
            action(handlers.DISPLAY_CONTROL_ACTION_RESPONSE),
            handler_result(recorder_record=response),
        ]

        result = parse([make_log("log-1", 0, clips)])

        step = result.steps[0]
        control = find_child_node(step, FlowNodeType.DISPLAY_CONTROL, "emailVerificationControl")
        assert control is not None
        assert control.id == "dc-emailVerificationControl-SendCode"
        assert control.data.action == "SendCode"
        assert control.data.result_code == "200"
        assert [c.type for c in control.children] == [FlowNodeType.TECHNICAL_PROFILE] * 2
        assert [c.data.technical_profile_id for c in control.children] == [
            "AAD-UserReadUsingEmailAddress",
            "AadSspr-SendCode",
        ]


class TestValidationErrorTrace:
    """Self-asserted validation failure."""

    MESSAGE = "A user with the specified credential could not be found."

    def _validation_failure(self):
        return [
            action(handlers.SELF_ASSERTED_VALIDATION),
            handler_result(
                statebag=sb(CTP="SelfAsserted-LocalAccountSignin-Email:1"),
                exception={"Message": self.MESSAGE, "HResult": "-2147467259"},
            ),
        ]

    def test_handled_error_on_step(self, parse):
        clips = [headers(), *orch(1), *self._validation_failure()]

        result = parse([make_log("log-1", 0, clips)])

        step = result.steps[0]
        assert step.data.result == StepResult.ERROR
        assert len(step.data.errors) == 1
        error = step.data.errors[0]
        assert error.kind == StepErrorKind.HANDLED
        assert error.message == self.MESSAGE
        assert error.h_result == "-2147467259"
        assert "SelfAsserted-LocalAccountSignin-Email" in get_step_tp_names(step)

    def test_validation_error_is_not_a_parse_error(self, parse):
        clips = [headers(), *orch(1), *self._validation_failure()]

        result = parse([make_log("log-1", 0, clips)])

        assert result.success is True


class TestFatalException:
    """Exception clips end the log with a standalone error step."""

    def test_error_step_and_parse_error(self, parse):
        clips = [headers(), *orch(1), fatal_exception("The service is unavailable")]

        result = parse([make_log("log-1", 0, clips)])

        assert result.success is False
        assert result.errors == ["The service is unavailable"]

        error_nodes = [n for n in result.steps if n.id.startswith("error-")]
        assert len(error_nodes) == 1
        error_node = error_nodes[0]
        assert error_node.context.event_type == "AUTH"
        assert error_node.data.result == StepResult.ERROR
        assert error_node.data.errors[0].kind == StepErrorKind.UNHANDLED

    def test_open_step_is_marked_as_errored(self, parse):
        clips = [headers(), *orch(1), fatal_exception("The service is unavailable")]

        result = parse([make_log("log-1", 0, clips)])

        step = next(s for s in result.steps if s.id == STEP_1)
        assert step.data.result == StepResult.ERROR
        assert step.data.errors[0].message == "The service is unavailable"

    def test_parsing_continues_after_exception(self, parse):
        log_1 = make_log("log-1", 0, [headers(), *orch(1), fatal_exception("boom")])
        log_2 = make_log("log-2", 2000, [headers("Event:API"), *orch(2)])

        result = parse([log_1, log_2])

        assert STEP_2 in [s.id for s in result.steps]


class TestInterpreterFailure:
    """Failures while applying a result are recorded per clip."""

    def test_exit_at_root_is_reported_and_parse_continues(self, parse):
        clips = [
            headers(),
            *orch(1),
            action(handlers.SUBJOURNEY_EXIT),
            handler_result(),
            *orch(2),
        ]

        result = parse([make_log("log-1", 0, clips)])

        assert result.success is False
        assert len(result.errors) == 1
        assert result.errors[0].startswith(f"Interpreter error in {handlers.SUBJOURNEY_EXIT}:")
        assert [s.data.step_order for s in result.steps] == [1, 2]


class TestInputFiltering:
    """Event instance filtering and empty input."""

    def test_no_logs(self, parser):
        result = parser.parse([])

        assert result.success is False
        assert result.errors == [NO_LOGS_ERROR]
        assert result.flow_tree.children == []
        assert result.execution_map == {}

    def test_unsupported_event_instances_are_ignored(self, parse):
        result = parse([make_log("log-1", 0, [headers("Event:Unknown"), *orch(1)])])

        assert result.success is False
        assert result.errors == [NO_LOGS_ERROR]

    def test_logs_without_headers_are_ignored(self, parse):
        log_1 = make_log("log-1", 0, [headers(), *orch(1)])
        log_2 = make_log("log-2", 1000, [*orch(2)])

        result = parse([log_1, log_2])

        assert [s.data.step_order for s in result.steps] == [1]

    def test_unknown_clip_kinds_are_skipped(self, parse):
        clips = [headers(), {"Kind": "Telemetry", "Content": {"x": 1}}, *orch(1)]

        result = parse([make_log("log-1", 0, clips)])

        assert result.success is True
        assert len(result.steps) == 1


class TestSelectionResolution:
    """Provider options and the option finally used."""

    def test_protocol_handler_supersedes_offered_options(self, parse):
        clips = [
            headers(),
            *orch(1),
            *step_invoked("Facebook-OAUTH", "Google-OAUTH"),
            action(handlers.CLAIMS_EXCHANGE_REDIRECTION),
            handler_result(
                recorder_record=record(
                    (
                        "InitiatingClaimsExchange",
                        record(("TechnicalProfileId", "Google-OAUTH"), ("ProtocolProviderType", "OAuth2")),
                    ),
                )
            ),
        ]

        result = parse([make_log("log-1", 0, clips)])

        step = result.steps[0]
        assert [c.type for c in step.children] == [FlowNodeType.TECHNICAL_PROFILE]
        assert step.children[0].data.technical_profile_id == "Google-OAUTH"
        assert step.children[0].data.provider_type == "OAuth2"

    def test_selected_option_from_target_entity(self, parse):
        clips = [
            headers(),
            *orch(1),
            action(handlers.CLAIMS_EXCHANGE_SELECT),
            handler_result(
                recorder_record=record(("EnabledForUserJourneysTrue", enabled_profiles("Facebook-OAUTH", "Google-OAUTH")))
            ),
            action(handlers.VALIDATE_API_RESPONSE),
            handler_result(statebag=sb(TAGE="Google-OAUTH")),
        ]

        result = parse([make_log("log-1", 0, clips)])

        step = result.steps[0]
        assert step.data.selectable_options == ["Facebook-OAUTH", "Google-OAUTH"]
        assert step.data.selected_option == "Google-OAUTH"
        assert step.data.action_handler == handlers.CLAIMS_EXCHANGE_SELECT


class TestResultSerialization:
    """to_dict() output of a parse."""

    def test_to_dict_shape(self, parse):
        result = parse([make_log("log-1", 0, [headers(), *orch(1, claims={"email": "a@contoso.com"})])])

        body = result.to_dict()

        assert body["success"] is True
        assert body["main_journey_id"] == POLICY_ID
        assert body["final_claims"] == {"email": "a@contoso.com"}
        assert body["execution_map"][STEP_1]["status"] == "Success"
        assert body["flow_tree"]["children"][0]["data"]["type"] == "step"
        assert body["sessions"][0]["start_timestamp"].endswith("Z")


class TestInterleavedFlows:
    """Logs from several users parsed one flow at a time."""

    @staticmethod
    def _interleaved_logs():
        return decode_logs(
            [
                make_log(
                    "a-1",
                    0,
                    [headers(correlation_id="corr-A"), *orch(1, claims={"email": "a@contoso.com"})],
                    correlation_id="corr-A",
                ),
                make_log(
                    "b-1",
                    100,
                    [headers(correlation_id="corr-B"), *orch(1, claims={"email": "b@contoso.com"})],
                    correlation_id="corr-B",
                ),
                make_log(
                    "a-2",
                    2500,
                    [headers("Event:API", correlation_id="corr-A"), *orch(2)],
                    correlation_id="corr-A",
                ),
            ]
        )

    def test_each_flow_keeps_its_own_steps_and_claims(self, parser):
        """A's second step stays in A's flow and carries A's claims."""
        flow_a, flow_b = parser.parse_flows(self._interleaved_logs())

        assert flow_a.flow.id == "corr-A-0"
        assert flow_a.flow.log_ids == ["a-1", "a-2"]
        assert [s.data.step_order for s in flow_a.result.steps] == [1, 2]
        assert [s.context.claims_snapshot["email"] for s in flow_a.result.steps] == [
            "a@contoso.com",
            "a@contoso.com",
        ]
        assert [s.step_count for s in flow_a.result.sessions] == [2]

        assert flow_b.flow.id == "corr-B-1"
        assert [s.data.step_order for s in flow_b.result.steps] == [1]
        assert flow_b.result.final_claims == {"email": "b@contoso.com"}

    def test_flow_filled_in_from_its_parse(self, parser):
        flow_a, flow_b = parser.parse_flows(self._interleaved_logs())

        assert flow_a.flow.step_count == 2
        assert flow_a.flow.user_email == "a@contoso.com"
        assert flow_a.flow.has_errors is False
        assert flow_b.flow.user_email == "b@contoso.com"
        assert flow_b.to_dict()["flow"]["correlation_id"] == "corr-B"

    def test_second_auth_starts_a_new_flow(self, parser):
        logs = decode_logs(
            [
                make_log("log-1", 0, [headers(), *orch(1)]),
                make_log("log-2", 1000, [headers("Event:API"), *orch(2)]),
                make_log("log-3", 5000, [headers(), *orch(1)]),
            ]
        )

        results = parser.parse_flows(logs)

        assert [r.flow.id for r in results] == ["corr-1-0", "corr-1-1"]
        assert [r.flow.step_count for r in results] == [2, 1]

    def test_mixed_correlation_ids_in_one_parse_warn(self, parser, caplog):
        parser.parse(self._interleaved_logs())

        assert "use parse_flows()" in caplog.text


class TestParseTraceFunction:
    def test_parse_trace_uses_a_fresh_parser(self):
        logs = decode_logs([make_log("log-1", 0, [headers(), *orch(1)])])

        result = parse_trace(logs, dedup_threshold_ms=1000, retry_threshold_ms=1000)

        assert len(result.steps) == 1

    def test_parser_is_reusable(self, parser):
        logs = decode_logs([make_log("log-1", 0, [headers(), *orch(1)])])

        first = parser.parse(logs)
        second = parser.parse(logs)

        assert first.to_dict() == second.to_dict()


@pytest.mark.parametrize("event", ["Event:AUTH", "Event:API", "Event:SELFASSERTED", "Event:ClaimsExchange"])
def test_supported_event_instances(parse, event):
    result = parse([make_log("log-1", 0, [headers(event), *orch(1)])])

    assert len(result.steps) == 1
