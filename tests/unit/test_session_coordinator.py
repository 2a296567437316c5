# pylint: disable=missing-module-docstring,missing-function-docstring
"""
SessionCoordinator behavior.

Mirrors how observers use the coordinator: subscribe at various points,
submit commands, resolve provider calls, and compare the states each
subscriber received.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable

import pytest

from login.commands import (
    FederatedLogin,
    ForceRelinkIfAlreadyLinked,
    RequestExternalToken,
    StartAnonymous,
)
import login.coordinator as coordinator_mod
from login.coordinator import SessionCoordinator
from login.errors import AlreadyLinkedError, AuthFailure
from login.states import (
    Authenticated,
    AuthenticatingAnonymously,
    AuthenticatingWithFederatedIdentity,
    Failed,
    Idle,
    WaitingForExternalToken,
)
from models.identity import ExternalToken
from models.tags import Tag, TagTemplate


DEFAULT_TAGS = [
    TagTemplate(title="Food", color=1, order=0),
    TagTemplate(title="Transport", color=2, order=1),
    TagTemplate(title="Bills", color=3, order=2),
]

TOKEN = ExternalToken("google-token")


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

class ControlledProvider:
    """
    Auth provider whose calls stay pending until the test resolves them.

    Argument tuples listed in `immediate` resolve right away instead
    (None = success, exception = failure).
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.immediate: dict[tuple[Any, ...], BaseException | None] = {}
        self._pending: list[asyncio.Future[None]] = []

    async def __call__(self, *args: Any) -> None:
        self.calls.append(args)
        if args in self.immediate:
            outcome = self.immediate[args]
            if outcome is not None:
                raise outcome
            return
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._pending.append(fut)
        await fut

    def succeed(self, index: int = -1) -> None:
        self._pending[index].set_result(None)

    def fail(self, exc: BaseException, index: int = -1) -> None:
        self._pending[index].set_exception(exc)

    def succeed_all(self) -> None:
        for fut in self._pending:
            if not fut.done():
                fut.set_result(None)


class FakeTagsSource:
    def __init__(self, tags: list[Tag] | None = None, error: BaseException | None = None) -> None:
        self.tags = tags or []
        self.error = error
        self.reads = 0

    async def read(self) -> list[Tag]:
        self.reads += 1
        if self.error is not None:
            raise self.error
        return list(self.tags)


class BlockingTagsSource:
    """Existing-tags read that waits for release()."""

    def __init__(self) -> None:
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def read(self) -> list[Tag]:
        await self._gate.wait()
        return []


class SharedTagStore:
    """
    Tags source and writer over one list.

    Reads wait for release(); writes land immediately.
    """

    def __init__(self) -> None:
        self.tags: list[Tag] = []
        self.writes: list[list[TagTemplate]] = []
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def read(self) -> list[Tag]:
        await self._gate.wait()
        return list(self.tags)

    def write(self, templates: list[TagTemplate]) -> None:
        self.writes.append(templates)
        self.tags.extend(
            Tag(tag_id=f"t{len(self.tags) + i}", title=t.title, color=t.color, order=t.order)
            for i, t in enumerate(templates)
        )


class FakeTemplatesSource:
    def __init__(self, templates: list[TagTemplate]) -> None:
        self.templates = templates

    async def read(self) -> list[TagTemplate]:
        return list(self.templates)


class RecordingTagWriter:
    def __init__(self, error: BaseException | None = None) -> None:
        self.writes: list[list[TagTemplate]] = []
        self.error = error

    def write(self, templates: list[TagTemplate]) -> None:
        self.writes.append(templates)
        if self.error is not None:
            raise self.error


class RejectingAsyncTagWriter:
    def __init__(self) -> None:
        self.writes = 0

    async def write(self, templates: list[TagTemplate]) -> None:
        self.writes += 1
        raise RuntimeError("quota exceeded")


class Harness:
    def __init__(
        self,
        *,
        existing_tags: Any = None,
        tag_writer: Any = None,
    ) -> None:
        self.anonymous = ControlledProvider()
        self.federated = ControlledProvider()
        self.existing_tags = existing_tags or FakeTagsSource()
        self.default_tags = FakeTemplatesSource(DEFAULT_TAGS)
        self.writer = tag_writer or RecordingTagWriter()
        self.coordinator = SessionCoordinator(
            anonymous_auth=self.anonymous,
            federated_auth=self.federated,
            existing_tags=self.existing_tags,
            default_tags=self.default_tags,
            tag_writer=self.writer,
            coordinator_id="login_test",
        )

    def submit(self, *commands: Any) -> None:
        for command in commands:
            self.coordinator.submit(command)

    async def settle(self) -> None:
        await self.coordinator.wait_until_settled()


def run_scenario(scenario: Callable[[Harness], Awaitable[None]], **harness_kwargs: Any) -> None:
    async def main() -> None:
        h = Harness(**harness_kwargs)
        h.coordinator.start()
        try:
            await scenario(h)
        finally:
            await h.coordinator.shutdown()

    asyncio.run(main())


# ---------------------------------------------------------------------
# Initial state
# ---------------------------------------------------------------------

def test_initially_emits_idle():
    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()
        await h.settle()

        assert sub.drain() == (Idle(),)
        assert h.coordinator.state == Idle()

    run_scenario(scenario)


# ---------------------------------------------------------------------
# Anonymous login
# ---------------------------------------------------------------------

def test_can_login_anonymously_and_writes_default_tags():
    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(StartAnonymous())
        await h.settle()
        another = h.coordinator.observe_state()

        h.anonymous.succeed()
        await h.settle()
        another2 = h.coordinator.observe_state()

        assert sub.drain() == (Idle(), AuthenticatingAnonymously(), Authenticated())
        assert another.drain() == (AuthenticatingAnonymously(), Authenticated())
        assert another2.drain() == (Authenticated(),)
        assert h.anonymous.calls == [()]
        assert h.writer.writes == [DEFAULT_TAGS]

    run_scenario(scenario)


def test_anonymous_login_can_fail():
    error = AuthFailure("offline")

    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(StartAnonymous())
        await h.settle()
        h.anonymous.fail(error)
        await h.settle()
        late = h.coordinator.observe_state()

        assert sub.drain() == (Idle(), AuthenticatingAnonymously(), Failed(cause=error))
        assert late.drain() == (Failed(cause=error),)
        assert h.writer.writes == []

    run_scenario(scenario)


def test_any_provider_exception_becomes_failed_state():
    error = ValueError("unexpected")

    async def scenario(h: Harness) -> None:
        h.submit(StartAnonymous())
        await h.settle()
        h.anonymous.fail(error)
        await h.settle()

        state = h.coordinator.state
        assert isinstance(state, Failed)
        assert state.cause is error
        assert state.already_linked is False

    run_scenario(scenario)


# ---------------------------------------------------------------------
# Federated login
# ---------------------------------------------------------------------

def test_can_login_with_federated_identity_and_writes_default_tags():
    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(RequestExternalToken())
        await h.settle()
        another = h.coordinator.observe_state()

        h.submit(FederatedLogin(token=TOKEN))
        await h.settle()
        another2 = h.coordinator.observe_state()

        h.federated.succeed()
        await h.settle()
        another3 = h.coordinator.observe_state()

        assert sub.drain() == (
            Idle(),
            WaitingForExternalToken(),
            AuthenticatingWithFederatedIdentity(),
            Authenticated(),
        )
        assert another.drain() == (
            WaitingForExternalToken(),
            AuthenticatingWithFederatedIdentity(),
            Authenticated(),
        )
        assert another2.drain() == (AuthenticatingWithFederatedIdentity(), Authenticated())
        assert another3.drain() == (Authenticated(),)
        assert h.federated.calls == [(TOKEN, False)]
        assert h.writer.writes == [DEFAULT_TAGS]

    run_scenario(scenario)


def test_federated_login_can_fail():
    error = AuthFailure("revoked")

    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(FederatedLogin(token=TOKEN))
        await h.settle()
        h.federated.fail(error)
        await h.settle()
        late = h.coordinator.observe_state()

        assert sub.drain() == (
            Idle(),
            AuthenticatingWithFederatedIdentity(),
            Failed(cause=error),
        )
        assert late.drain() == (Failed(cause=error),)

    run_scenario(scenario)


def test_can_force_federated_login_if_it_failed_because_already_linked():
    error = AlreadyLinkedError(cause=RuntimeError("credential in use"))

    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(
            ForceRelinkIfAlreadyLinked(),
            FederatedLogin(token=TOKEN),
            ForceRelinkIfAlreadyLinked(),
        )
        await h.settle()
        h.federated.fail(error)
        await h.settle()

        h.federated.immediate[(TOKEN, True)] = None
        h.submit(ForceRelinkIfAlreadyLinked())
        await h.settle()

        assert sub.drain() == (
            Idle(),
            AuthenticatingWithFederatedIdentity(),
            Failed(cause=error),
            AuthenticatingWithFederatedIdentity(),
            Authenticated(),
        )
        assert h.federated.calls == [(TOKEN, False), (TOKEN, True)]

    run_scenario(scenario)


def test_force_relink_without_already_linked_failure_does_nothing():
    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(ForceRelinkIfAlreadyLinked())
        await h.settle()

        assert sub.drain() == (Idle(),)
        assert h.federated.calls == []
        assert h.anonymous.calls == []

    run_scenario(scenario)


def test_force_relink_after_ordinary_failure_does_nothing():
    error = AuthFailure("bad token")

    async def scenario(h: Harness) -> None:
        h.submit(FederatedLogin(token=TOKEN))
        await h.settle()
        h.federated.fail(error)
        await h.settle()
        sub = h.coordinator.observe_state()

        h.submit(ForceRelinkIfAlreadyLinked())
        await h.settle()

        assert sub.drain() == (Failed(cause=error),)
        assert h.federated.calls == [(TOKEN, False)]

    run_scenario(scenario)


def test_force_relink_after_anonymous_already_linked_failure_does_nothing():
    error = AlreadyLinkedError()

    async def scenario(h: Harness) -> None:
        h.submit(StartAnonymous())
        await h.settle()
        h.anonymous.fail(error)
        await h.settle()

        h.submit(ForceRelinkIfAlreadyLinked())
        await h.settle()

        assert h.coordinator.state == Failed(cause=error)
        assert h.federated.calls == []

    run_scenario(scenario)


# ---------------------------------------------------------------------
# Default tag seeding
# ---------------------------------------------------------------------

def test_does_not_write_default_tags_when_tags_already_exist():
    existing = FakeTagsSource(tags=[
        Tag(tag_id="t1", title="Rent", color=1, order=0),
        Tag(tag_id="t2", title="Fuel", color=2, order=1),
    ])

    async def scenario(h: Harness) -> None:
        h.submit(StartAnonymous())
        await h.settle()
        h.anonymous.succeed()
        await h.settle()

        assert h.coordinator.state == Authenticated()
        assert existing.reads == 1
        assert h.writer.writes == []

    run_scenario(scenario, existing_tags=existing)


def test_ignores_current_tag_checking_errors():
    existing = FakeTagsSource(error=RuntimeError("permission denied"))

    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(StartAnonymous())
        await h.settle()
        h.anonymous.succeed()
        await h.settle()

        assert h.writer.writes == []
        assert sub.drain() == (Idle(), AuthenticatingAnonymously(), Authenticated())

    run_scenario(scenario, existing_tags=existing)


def test_ignores_tag_creating_errors():
    writer = RecordingTagWriter(error=RuntimeError("write failed"))

    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(StartAnonymous())
        await h.settle()
        h.anonymous.succeed()
        await h.settle()

        assert writer.writes == [DEFAULT_TAGS]
        assert sub.drain() == (Idle(), AuthenticatingAnonymously(), Authenticated())

    run_scenario(scenario, tag_writer=writer)


def test_ignores_async_tag_writer_rejections():
    writer = RejectingAsyncTagWriter()

    async def scenario(h: Harness) -> None:
        h.submit(StartAnonymous())
        await h.settle()
        h.anonymous.succeed()
        await h.settle()

        assert writer.writes == 1
        assert h.coordinator.state == Authenticated()

    run_scenario(scenario, tag_writer=writer)


def test_seeding_in_flight_does_not_block_later_commands():
    existing = BlockingTagsSource()

    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(StartAnonymous())
        await h.settle()
        h.anonymous.succeed()
        for _ in range(10):
            await asyncio.sleep(0)

        # Authenticated while the existing-tags read is still blocked
        assert h.coordinator.state == Authenticated()

        h.submit(RequestExternalToken())
        for _ in range(10):
            await asyncio.sleep(0)
        assert h.coordinator.state == WaitingForExternalToken()

        existing.release()
        await h.settle()

        assert sub.drain() == (
            Idle(),
            AuthenticatingAnonymously(),
            Authenticated(),
            WaitingForExternalToken(),
        )
        assert h.writer.writes == [DEFAULT_TAGS]

    run_scenario(scenario, existing_tags=existing)


# ---------------------------------------------------------------------
# Supersession
# ---------------------------------------------------------------------

def test_newer_login_supersedes_in_flight_attempt():
    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(StartAnonymous())
        await h.settle()
        h.submit(FederatedLogin(token=TOKEN))
        await h.settle()

        h.anonymous.succeed()
        await h.settle()
        assert h.coordinator.state == AuthenticatingWithFederatedIdentity()

        h.federated.succeed()
        await h.settle()

        assert sub.drain() == (
            Idle(),
            AuthenticatingAnonymously(),
            AuthenticatingWithFederatedIdentity(),
            Authenticated(),
        )
        assert h.writer.writes == [DEFAULT_TAGS]

    run_scenario(scenario)


def test_superseded_failure_is_discarded():
    async def scenario(h: Harness) -> None:
        h.submit(FederatedLogin(token=TOKEN))
        await h.settle()
        h.submit(StartAnonymous())
        await h.settle()

        h.federated.fail(AlreadyLinkedError())
        await h.settle()

        assert h.coordinator.state == AuthenticatingAnonymously()

        h.anonymous.succeed()
        await h.settle()
        assert h.coordinator.state == Authenticated()

    run_scenario(scenario)


def test_requesting_token_abandons_in_flight_attempt():
    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(StartAnonymous(), RequestExternalToken())
        await h.settle()
        h.anonymous.succeed()
        await h.settle()

        assert sub.drain() == (
            Idle(),
            AuthenticatingAnonymously(),
            WaitingForExternalToken(),
        )
        assert h.writer.writes == []

    run_scenario(scenario)


def test_only_latest_of_many_attempts_applies():
    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(*[StartAnonymous() for _ in range(5)])
        await h.settle()
        assert len(h.anonymous.calls) == 5

        h.anonymous.succeed_all()
        await h.settle()

        states = sub.drain()
        assert states[0] == Idle()
        assert states[-1] == Authenticated()
        assert states.count(Authenticated()) == 1
        assert h.writer.writes == [DEFAULT_TAGS]

    run_scenario(scenario)


# ---------------------------------------------------------------------
# Multicast / concurrency
# ---------------------------------------------------------------------

def test_all_subscribers_converge_on_current_state():
    async def scenario(h: Harness) -> None:
        subs = [h.coordinator.observe_state()]

        h.submit(RequestExternalToken())
        await h.settle()
        subs.append(h.coordinator.observe_state())

        h.submit(FederatedLogin(token=TOKEN))
        await h.settle()
        subs.append(h.coordinator.observe_state())

        h.federated.fail(AlreadyLinkedError())
        await h.settle()
        subs.append(h.coordinator.observe_state())

        received = [sub.drain() for sub in subs]
        for states in received:
            assert states[-1] == h.coordinator.state
        # Late subscribers see a suffix of what early ones saw
        for states in received[1:]:
            assert received[0][-len(states):] == states

    run_scenario(scenario)


def test_subscription_is_async_iterable():
    async def scenario(h: Harness) -> None:
        seen: list[Any] = []
        sub = h.coordinator.observe_state()

        async def consume() -> None:
            async for state in sub:
                seen.append(state)
                if state == Authenticated():
                    return

        consumer = asyncio.create_task(consume())

        h.submit(StartAnonymous())
        await h.settle()
        h.anonymous.succeed()
        await h.settle()
        await asyncio.wait_for(consumer, timeout=1.0)

        assert seen == [Idle(), AuthenticatingAnonymously(), Authenticated()]

    run_scenario(scenario)


def test_submit_from_other_threads_is_serialized():
    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()
        loop = asyncio.get_running_loop()

        with ThreadPoolExecutor(max_workers=4) as pool:
            await asyncio.gather(*[
                loop.run_in_executor(pool, h.coordinator.submit, StartAnonymous())
                for _ in range(20)
            ])
        await h.settle()

        assert len(h.anonymous.calls) == 20
        assert h.coordinator.state == AuthenticatingAnonymously()

        h.anonymous.succeed_all()
        await h.settle()

        states = sub.drain()
        assert states[-1] == Authenticated()
        assert states.count(Authenticated()) == 1

    run_scenario(scenario)


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

def test_submit_rejects_non_commands():
    async def scenario(h: Harness) -> None:
        with pytest.raises(TypeError):
            h.coordinator.submit("START_ANONYMOUS")  # type: ignore[arg-type]

    run_scenario(scenario)


def test_commands_submitted_before_start_are_processed_after_start():
    async def main() -> None:
        h = Harness()
        h.submit(RequestExternalToken(), FederatedLogin(token=TOKEN))
        sub = h.coordinator.observe_state()

        h.coordinator.start()
        await h.settle()

        assert sub.drain() == (
            Idle(),
            WaitingForExternalToken(),
            AuthenticatingWithFederatedIdentity(),
        )
        assert h.federated.calls == [(TOKEN, False)]

        await h.coordinator.shutdown()

    asyncio.run(main())


def test_submit_before_start_still_rejects_non_commands():
    h = Harness()

    with pytest.raises(TypeError):
        h.coordinator.submit(None)  # type: ignore[arg-type]


def test_effect_error_still_publishes_new_state(monkeypatch: pytest.MonkeyPatch):
    logged: list[dict[str, Any]] = []

    def flaky_log_event(event: dict[str, Any]) -> None:
        if event.get("decision") == "state_changed":
            raise RuntimeError("log sink down")
        logged.append(event)

    monkeypatch.setattr(coordinator_mod, "log_event", flaky_log_event)

    async def scenario(h: Harness) -> None:
        sub = h.coordinator.observe_state()

        h.submit(StartAnonymous())
        await h.settle()

        assert h.coordinator.state == AuthenticatingAnonymously()
        assert sub.drain() == (Idle(), AuthenticatingAnonymously())
        assert h.anonymous.calls == [()]
        assert any(e["event_type"] == "COORDINATOR_APPLY_ERROR" for e in logged)

    run_scenario(scenario)


def test_back_to_back_logins_seed_default_tags_once():
    store = SharedTagStore()

    async def scenario(h: Harness) -> None:
        h.anonymous.immediate[()] = None

        h.submit(StartAnonymous())
        for _ in range(10):
            await asyncio.sleep(0)
        assert h.coordinator.state == Authenticated()

        h.submit(StartAnonymous())
        for _ in range(10):
            await asyncio.sleep(0)
        assert h.coordinator.state == Authenticated()

        store.release()
        await h.settle()

        assert store.writes == [DEFAULT_TAGS]
        assert len(store.tags) == len(DEFAULT_TAGS)

    run_scenario(scenario, existing_tags=store, tag_writer=store)


def test_shutdown_ends_subscriptions_and_drops_commands():
    async def main() -> None:
        h = Harness()
        h.coordinator.start()
        sub = h.coordinator.observe_state()

        h.submit(StartAnonymous())
        await h.settle()
        await h.coordinator.shutdown()

        # No raise after shutdown; command dropped
        h.submit(StartAnonymous())

        assert [s async for s in sub] == [Idle(), AuthenticatingAnonymously()]
        assert h.coordinator.state == AuthenticatingAnonymously()
        assert len(h.anonymous.calls) == 1

    asyncio.run(main())
