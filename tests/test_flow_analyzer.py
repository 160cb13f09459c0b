"""
Tests for grouping recorder logs into user flows.
"""

from conftest import POLICY_ID, headers, make_log, orch
from journeytrace.runtime.flow_analyzer import (
    FlowAnalyzer,
    filter_by_correlation_id,
    get_correlation_ids_from_flows,
    get_logs_for_flow,
    group_logs_into_flows,
    log_correlation_id,
    split_by_auth_session_boundaries,
)
from journeytrace.runtime.types import decode_logs


def _log(log_id, offset_ms, event="Event:AUTH", correlation_id="corr-1"):
    return make_log(
        log_id,
        offset_ms,
        [headers(event, correlation_id=correlation_id), *orch(1)],
        correlation_id=correlation_id,
    )


class TestSplitByAuthSessionBoundaries:
    def test_split_before_each_later_auth(self):
        logs = decode_logs(
            [
                _log("log-1", 0, "Event:API"),
                _log("log-2", 10),
                _log("log-3", 20, "Event:SELFASSERTED"),
                _log("log-4", 30),
            ]
        )

        segments = split_by_auth_session_boundaries(logs)

        assert [[log.id for log in s] for s in segments] == [["log-1", "log-2", "log-3"], ["log-4"]]

    def test_no_auth_is_one_segment(self):
        logs = decode_logs([_log("log-1", 0, "Event:API"), _log("log-2", 10, "Event:API")])
        assert len(split_by_auth_session_boundaries(logs)) == 1

    def test_empty(self):
        assert split_by_auth_session_boundaries([]) == []


class TestFlowAnalyzer:
    def test_grouped_by_correlation_id_in_first_seen_order(self):
        logs = decode_logs(
            [
                _log("b-1", 50, correlation_id="corr-B"),
                _log("a-2", 900, "Event:API", correlation_id="corr-A"),
                _log("a-1", 0, correlation_id="corr-A"),
            ]
        )

        flows = FlowAnalyzer().analyze(logs)

        assert [(f.id, f.log_ids) for f in flows] == [("corr-A-0", ["a-1", "a-2"]), ("corr-B-1", ["b-1"])]
        assert flows[0].policy_id == POLICY_ID
        assert flows[0].start_time < flows[0].end_time
        assert flows[1].start_time == flows[1].end_time

    def test_flow_numbering_runs_across_correlation_ids(self):
        logs = decode_logs(
            [
                _log("a-1", 0, correlation_id="corr-A"),
                _log("a-2", 1000, correlation_id="corr-A"),
                _log("b-1", 1500, correlation_id="corr-B"),
            ]
        )

        assert [f.id for f in group_logs_into_flows(logs)] == ["corr-A-0", "corr-A-1", "corr-B-2"]

    def test_correlation_id_from_headers(self):
        log = decode_logs([make_log("log-1", 0, [headers(correlation_id="from-headers")], correlation_id="")])[0]

        assert log_correlation_id(log) == "from-headers"
        assert group_logs_into_flows([log])[0].correlation_id == "from-headers"

    def test_empty(self):
        assert group_logs_into_flows([]) == []

    def test_to_dict(self):
        flow = group_logs_into_flows(decode_logs([_log("log-1", 0)]))[0]

        out = flow.to_dict()

        assert out["id"] == "corr-1-0"
        assert out["start_time"] == "2024-03-01T09:00:00.000Z"
        assert out["log_ids"] == ["log-1"]
        assert out["step_count"] == 0


class TestFlowLookups:
    def _logs(self):
        return decode_logs(
            [
                _log("a-2", 900, "Event:API", correlation_id="corr-A"),
                _log("b-1", 50, correlation_id="corr-B"),
                _log("a-1", 0, correlation_id="corr-A"),
            ]
        )

    def test_logs_for_flow_keep_input_order(self):
        logs = self._logs()
        assert [log.id for log in get_logs_for_flow(logs, "corr-A-0")] == ["a-2", "a-1"]

    def test_precomputed_flows(self):
        logs = self._logs()
        flows = group_logs_into_flows(logs)

        assert [log.id for log in get_logs_for_flow(logs, "corr-B-1", flows)] == ["b-1"]
        assert get_logs_for_flow(logs, "corr-C-9", flows) == []

    def test_correlation_ids(self):
        flows = group_logs_into_flows(self._logs())
        assert get_correlation_ids_from_flows(flows) == ["corr-A", "corr-B"]

    def test_filter_by_correlation_id(self):
        assert [log.id for log in filter_by_correlation_id(self._logs(), "corr-B")] == ["b-1"]
