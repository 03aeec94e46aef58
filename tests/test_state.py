import dataclasses

import pytest

from coding_agent_planner.core.models import PatchFormat, PatchPayload, Plan, Step
from coding_agent_planner.core.state import SessionState, load_session, new_request_token, reduce


def _plan():
    return Plan(task="t", steps=[
        Step(id="step_1", title="One", description="d1"),
        Step(id="step_2", title="Two", description="d2"),
    ])


def _execution(diff, step_id="ignored"):
    return PatchPayload(step_id, PatchFormat.UNIFIED_DIFF, diff, "x")


def _run(state, step_id, diff):
    token = new_request_token()
    state = reduce(state, ("start_execution", {"step_id": step_id, "token": token}))
    return reduce(state, ("complete_execution", {
        "step_id": step_id, "token": token, "execution": _execution(diff),
    }))


@pytest.fixture
def state():
    s = reduce(SessionState(), ("set_context", {"code_context": "File: app.py\n```python\na\nb\nc\n```"}))
    return reduce(s, ("set_plan", {"plan": _plan()}))


def test_tokens_increase():
    assert new_request_token() < new_request_token()


def test_last_started_request_wins(state):
    t1, t2 = new_request_token(), new_request_token()
    state = reduce(state, ("start_execution", {"step_id": "step_1", "token": t1}))
    state = reduce(state, ("start_execution", {"step_id": "step_1", "token": t2}))

    stale = reduce(state, ("complete_execution", {
        "step_id": "step_1", "token": t1, "execution": _execution("+old"),
    }))
    assert stale is state
    assert stale.is_executing("step_1")

    fresh = reduce(state, ("complete_execution", {
        "step_id": "step_1", "token": t2, "execution": _execution("+new"),
    }))
    assert fresh.executions["step_1"].diff_text == "+new"
    assert fresh.executions["step_1"].step_id == "step_1"
    assert not fresh.is_executing("step_1")


def test_stale_failure_is_ignored(state):
    t1, t2 = new_request_token(), new_request_token()
    state = reduce(state, ("start_execution", {"step_id": "step_1", "token": t1}))
    state = reduce(state, ("start_execution", {"step_id": "step_1", "token": t2}))
    assert reduce(state, ("fail_execution", {"step_id": "step_1", "token": t1, "error": "x"})) is state

    failed = reduce(state, ("fail_execution", {"step_id": "step_1", "token": t2, "error": "boom"}))
    assert failed.error == "boom"
    assert not failed.is_executing("step_1")


def test_cancel_execution(state):
    token = new_request_token()
    state = reduce(state, ("start_execution", {"step_id": "step_1", "token": token}))
    state = reduce(state, ("cancel_execution", {"step_id": "step_1"}))
    late = reduce(state, ("complete_execution", {
        "step_id": "step_1", "token": token, "execution": _execution("+x"),
    }))
    assert "step_1" not in late.executions


def test_accept_requires_execution(state):
    assert reduce(state, ("accept", {"step_id": "step_1"})).accepted == ()


def test_acceptance_order_drives_reconstruction(state):
    state = _run(state, "step_1", "@@ -2,1 +2,1 @@\n-b\n+B1")
    state = _run(state, "step_2", "@@ -2,1 +2,1 @@\n-b\n+B2")
    state = reduce(state, ("accept", {"step_id": "step_2"}))
    state = reduce(state, ("accept", {"step_id": "step_1"}))
    state = reduce(state, ("accept", {"step_id": "step_1"}))

    assert state.accepted == ("step_2", "step_1")
    assert [e.step_id for e in state.accepted_executions()] == ["step_2", "step_1"]
    assert [a.step.id for a in state.accepted_steps()] == ["step_1", "step_2"]
    assert state.reconstructed_files()[0].corrected_content == "a\nB1\nc"


def test_new_result_clears_acceptance(state):
    state = _run(state, "step_1", "+x")
    state = reduce(state, ("accept", {"step_id": "step_1"}))
    state = _run(state, "step_1", "+y")
    assert state.accepted == ()


def test_unaccept(state):
    state = _run(state, "step_1", "+x")
    state = reduce(state, ("accept", {"step_id": "step_1"}))
    state = reduce(state, ("unaccept", {"step_id": "step_1"}))
    assert not any(a.participates for a in state.accepted_steps())


def test_set_plan_clears_results(state):
    state = _run(state, "step_1", "+x")
    state = reduce(state, ("set_plan", {"plan": _plan()}))
    assert state.executions == {}
    assert state.accepted == ()


def test_reset_and_unknown_action(state):
    assert reduce(state, ("reset", {})) == SessionState()
    with pytest.raises(ValueError):
        reduce(state, ("explode", {}))


def test_state_is_immutable(state):
    with pytest.raises(dataclasses.FrozenInstanceError):
        state.code_context = "x"


class TestLoadSession:

    CONTEXT = "File: app.py\n```python\na\nb\nc\n```"

    def _stored(self, step_id, diff):
        return PatchPayload(step_id, PatchFormat.UNIFIED_DIFF, diff, "x")

    def test_accepts_all_results_in_given_order(self):
        state = load_session(self.CONTEXT, _plan(), [
            self._stored("step_2", "@@ -1,0 +1,1 @@\n+two"),
            self._stored("step_1", "@@ -1,0 +1,1 @@\n+one"),
        ])
        assert state.accepted == ("step_2", "step_1")
        assert [a.step.id for a in state.accepted_steps()] == ["step_1", "step_2"]
        assert all(a.accepted for a in state.accepted_steps())
        (f,) = state.reconstructed_files()
        assert f.corrected_content == "one\ntwo\na\nb\nc"

    def test_explicit_acceptance_order_and_subset(self):
        executions = [
            self._stored("step_1", "@@ -1,0 +1,1 @@\n+one"),
            self._stored("step_2", "@@ -1,0 +1,1 @@\n+two"),
        ]
        state = load_session(self.CONTEXT, _plan(), executions, accepted=["step_2", "step_1"])
        assert state.accepted == ("step_2", "step_1")
        assert state.reconstructed_files()[0].corrected_content == "one\ntwo\na\nb\nc"

        only_one = load_session(self.CONTEXT, _plan(), executions, accepted=["step_1", "step_9"])
        assert only_one.accepted == ("step_1",)
        assert [a.accepted for a in only_one.accepted_steps()] == [True, False]

    def test_later_result_replaces_earlier_one(self):
        state = load_session(self.CONTEXT, executions=[
            self._stored("step_1", "@@ -1,0 +1,1 @@\n+old"),
            self._stored("step_1", "@@ -1,0 +1,1 @@\n+new"),
        ])
        assert state.executions["step_1"].diff_text.endswith("+new")
        assert state.accepted == ("step_1",)
        assert state.reconstructed_files()[0].corrected_content == "new\na\nb\nc"
        assert not state.in_flight
