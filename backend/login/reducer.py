"""
Pure login reducer.

(state, input) -> (new_state, effects)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every input is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Union

from login.commands import (
    FederatedLogin,
    ForceRelinkIfAlreadyLinked,
    RequestExternalToken,
    SessionCommand,
    StartAnonymous,
)
from login.effects import (
    Effect,
    LogEvent,
    SeedDefaultTags,
    StartAnonymousAuth,
    StartFederatedAuth,
)
from login.errors import AlreadyLinkedError
from login.events import AuthFailed, AuthSucceeded, ProviderEvent
from login.state_dataclass import CoordinatorState
from login.states import (
    Authenticated,
    AuthenticatingAnonymously,
    AuthenticatingWithFederatedIdentity,
    Failed,
    SessionState,
    WaitingForExternalToken,
)
from observability.logger import describe_exception


ReducerInput = Union[SessionCommand, ProviderEvent]
ReducerResult = tuple[CoordinatorState, tuple[Effect, ...]]


# =============================================================================
# Invariants
# =============================================================================
# - auth_run_id is bumped ONLY when an attempt starts or is abandoned
# - Provider outcomes apply only while their run_id is current AND the
#   public state is still authenticating
# - Failed / Authenticated are only ever entered from an authenticating state
# - last_federated_token survives a failure only when the cause is
#   AlreadyLinkedError


# =============================================================================
# Small helpers
# =============================================================================

def _input_type(item: ReducerInput) -> str:
    if isinstance(item, SessionCommand):
        return item.command_type.value
    return type(item).__name__


def _log(
    state: CoordinatorState,
    item: ReducerInput,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "event_type": _input_type(item),
            "state": state.session_state.kind.value,
            "run_id": state.auth_run_id,
            "decision": decision,
            "details": details or {},
        }
    )


def _transition(
    old: CoordinatorState,
    new: CoordinatorState,
    item: ReducerInput,
    effects: tuple[Effect, ...] = (),
    details: dict[str, Any] | None = None,
) -> ReducerResult:
    log = _log(
        new,
        item,
        "state_changed",
        {
            "from_state": old.session_state.kind.value,
            "to_state": new.session_state.kind.value,
            **(details or {}),
        },
    )
    return new, effects + (log,)


def _ignore(
    state: CoordinatorState,
    item: ReducerInput,
    reason: str,
) -> ReducerResult:
    return state, (_log(state, item, "ignore", {"reason": reason}),)


def _start_attempt(
    state: CoordinatorState,
    session_state: SessionState,
    **changes: Any,
) -> CoordinatorState:
    return replace(
        state,
        session_state=session_state,
        auth_run_id=state.auth_run_id + 1,
        **changes,
    )


def _can_force_relink(state: CoordinatorState) -> bool:
    current = state.session_state
    return (
        isinstance(current, Failed)
        and isinstance(current.cause, AlreadyLinkedError)
        and state.last_federated_token is not None
    )


# =============================================================================
# Command handlers
# =============================================================================

def _on_start_anonymous(state: CoordinatorState, cmd: StartAnonymous) -> ReducerResult:
    new_state = _start_attempt(
        state,
        AuthenticatingAnonymously(),
        last_federated_token=None,
    )
    return _transition(
        state,
        new_state,
        cmd,
        (StartAnonymousAuth(run_id=new_state.auth_run_id),),
    )


def _on_request_external_token(
    state: CoordinatorState,
    cmd: RequestExternalToken,
) -> ReducerResult:
    if isinstance(state.session_state, WaitingForExternalToken):
        return _ignore(state, cmd, "already_waiting_for_token")

    # Abandons any in-flight attempt: its outcome must not land on
    # WaitingForExternalToken. A pending relink is abandoned too.
    new_state = _start_attempt(
        state,
        WaitingForExternalToken(),
        last_federated_token=None,
    )
    return _transition(state, new_state, cmd)


def _on_federated_login(state: CoordinatorState, cmd: FederatedLogin) -> ReducerResult:
    new_state = _start_attempt(
        state,
        AuthenticatingWithFederatedIdentity(),
        last_federated_token=cmd.token,
    )
    return _transition(
        state,
        new_state,
        cmd,
        (
            StartFederatedAuth(
                run_id=new_state.auth_run_id,
                token=cmd.token,
                force_overwrite=False,
            ),
        ),
        {"token": cmd.token.preview()},
    )


def _on_force_relink(
    state: CoordinatorState,
    cmd: ForceRelinkIfAlreadyLinked,
) -> ReducerResult:
    if not _can_force_relink(state):
        return _ignore(state, cmd, "no_already_linked_failure")

    token = state.last_federated_token
    assert token is not None
    new_state = _start_attempt(state, AuthenticatingWithFederatedIdentity())
    return _transition(
        state,
        new_state,
        cmd,
        (
            StartFederatedAuth(
                run_id=new_state.auth_run_id,
                token=token,
                force_overwrite=True,
            ),
        ),
        {"token": token.preview()},
    )


# =============================================================================
# Provider outcome handlers
# =============================================================================

def _is_stale(state: CoordinatorState, event: ProviderEvent) -> bool:
    return (
        event.run_id != state.auth_run_id
        or not state.session_state.is_authenticating
    )


def _on_auth_succeeded(state: CoordinatorState, event: AuthSucceeded) -> ReducerResult:
    if _is_stale(state, event):
        return _ignore(state, event, "stale_run")

    new_state = replace(
        state,
        session_state=Authenticated(),
        last_federated_token=None,
    )
    return _transition(
        state,
        new_state,
        event,
        (SeedDefaultTags(run_id=event.run_id),),
        {"provider": event.provider.value},
    )


def _on_auth_failed(state: CoordinatorState, event: AuthFailed) -> ReducerResult:
    if _is_stale(state, event):
        return _ignore(state, event, "stale_run")

    keep_token = isinstance(event.cause, AlreadyLinkedError)
    new_state = replace(
        state,
        session_state=Failed(cause=event.cause),
        last_federated_token=state.last_federated_token if keep_token else None,
    )
    return _transition(
        state,
        new_state,
        event,
        details={
            "provider": event.provider.value,
            "already_linked": keep_token,
            **describe_exception(event.cause),
        },
    )


# =============================================================================
# Entry point
# =============================================================================

def reduce(state: CoordinatorState, item: ReducerInput) -> ReducerResult:
    """
    Apply one command or provider outcome.

    Returns the new state (the same object when nothing changed) and the
    effects to execute, in order.
    """
    if isinstance(item, StartAnonymous):
        return _on_start_anonymous(state, item)
    if isinstance(item, RequestExternalToken):
        return _on_request_external_token(state, item)
    if isinstance(item, FederatedLogin):
        return _on_federated_login(state, item)
    if isinstance(item, ForceRelinkIfAlreadyLinked):
        return _on_force_relink(state, item)
    if isinstance(item, AuthSucceeded):
        return _on_auth_succeeded(state, item)
    if isinstance(item, AuthFailed):
        return _on_auth_failed(state, item)

    return _ignore(state, item, "unknown_input")
