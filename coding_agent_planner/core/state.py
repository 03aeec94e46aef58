"""
Session state for one planning session: the plan, the code context, step
results and which results the user accepted.

State objects are never mutated; ``reduce(state, action)`` returns a new one.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .models import AcceptedStep, PatchPayload, Plan, ReconstructedFile
from .reconstruction import reconstruct_files

_tokens = itertools.count(1)


def new_request_token() -> int:
    return next(_tokens)


@dataclass(frozen=True)
class SessionState:
    code_context: str = ""
    plan: Optional[Plan] = None
    executions: Mapping[str, PatchPayload] = field(default_factory=dict)
    # Step ids in the order the user accepted them
    accepted: Tuple[str, ...] = ()
    in_flight: Mapping[str, int] = field(default_factory=dict)
    error: Optional[str] = None

    def accepted_steps(self) -> List[AcceptedStep]:
        """One entry per plan step, in plan order."""
        if self.plan is None:
            return []
        return [
            AcceptedStep(
                step=step,
                execution=self.executions.get(step.id),
                accepted=step.id in self.accepted,
            )
            for step in self.plan.steps
        ]

    def accepted_executions(self) -> List[PatchPayload]:
        """Accepted results in acceptance order."""
        return [self.executions[s] for s in self.accepted if s in self.executions]

    def reconstructed_files(self) -> List[ReconstructedFile]:
        return reconstruct_files(self.code_context, self.accepted_executions())

    def is_executing(self, step_id: str) -> bool:
        return step_id in self.in_flight


def _without(mapping: Mapping[str, Any], key: str) -> Dict[str, Any]:
    return {k: v for k, v in mapping.items() if k != key}


def _drop(ids: Tuple[str, ...], step_id: str) -> Tuple[str, ...]:
    return tuple(i for i in ids if i != step_id)


def reduce(state: SessionState, action: Tuple[str, Dict[str, Any]]) -> SessionState:
    """Apply one action and return the new state.

    Actions are ``(name, payload)`` pairs:

    - ``set_context`` {code_context}
    - ``set_plan`` {plan}: clears results, acceptances and in-flight requests
    - ``start_execution`` {step_id, token}: the newest token per step wins
    - ``complete_execution`` {step_id, token, execution}: ignored unless
      token is still the newest for that step
    - ``fail_execution`` {step_id, token, error}
    - ``cancel_execution`` {step_id}
    - ``accept`` / ``unaccept`` {step_id}
    - ``reset``
    """
    name, payload = action

    if name == "set_context":
        return replace(state, code_context=payload["code_context"])

    if name == "set_plan":
        return replace(state, plan=payload["plan"], executions={}, accepted=(),
                       in_flight={}, error=None)

    if name == "start_execution":
        in_flight = dict(state.in_flight)
        in_flight[payload["step_id"]] = payload["token"]
        return replace(state, in_flight=in_flight, error=None)

    if name == "complete_execution":
        step_id = payload["step_id"]
        if state.in_flight.get(step_id) != payload["token"]:
            return state
        execution: PatchPayload = payload["execution"]
        execution = replace(execution, step_id=step_id)
        executions = dict(state.executions)
        executions[step_id] = execution
        # A new result has to be accepted again
        return replace(state, executions=executions, in_flight=_without(state.in_flight, step_id),
                       accepted=_drop(state.accepted, step_id))

    if name == "fail_execution":
        step_id = payload["step_id"]
        if state.in_flight.get(step_id) != payload["token"]:
            return state
        return replace(state, in_flight=_without(state.in_flight, step_id),
                       error=str(payload.get("error", "")))

    if name == "cancel_execution":
        return replace(state, in_flight=_without(state.in_flight, payload["step_id"]))

    if name == "accept":
        step_id = payload["step_id"]
        if step_id not in state.executions:
            return state
        if step_id in state.accepted:
            return state
        return replace(state, accepted=state.accepted + (step_id,))

    if name == "unaccept":
        return replace(state, accepted=_drop(state.accepted, payload["step_id"]))

    if name == "reset":
        return SessionState()

    raise ValueError(f"Unknown action: {name}")


def load_session(
    code_context: str = "",
    plan: Optional[Plan] = None,
    executions: Iterable[PatchPayload] = (),
    accepted: Optional[Iterable[str]] = None,
) -> SessionState:
    """Build a state by replaying stored results through ``reduce``.

    Each execution is started and completed under a fresh token, so a later
    result for the same step replaces an earlier one. ``accepted`` gives the
    acceptance order; None accepts every result in the order given.
    """
    executions = list(executions)
    state = reduce(SessionState(), ("set_context", {"code_context": code_context}))
    if plan is not None:
        state = reduce(state, ("set_plan", {"plan": plan}))

    for execution in executions:
        token = new_request_token()
        state = reduce(state, ("start_execution", {"step_id": execution.step_id, "token": token}))
        state = reduce(state, ("complete_execution", {
            "step_id": execution.step_id, "token": token, "execution": execution,
        }))

    order = [e.step_id for e in executions] if accepted is None else list(accepted)
    for step_id in order:
        state = reduce(state, ("accept", {"step_id": step_id}))
    return state
