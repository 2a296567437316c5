"""
Runtime execution shell for one application login session.

Responsibilities:
- Own the coordinator state
- Serialize commands and provider outcomes through one inbox
- Call the pure reducer
- Execute emitted effects (provider calls, seeding, logging)
- Broadcast public state transitions to observers

Non-responsibilities:
- No transition decisions (reducer only)
- No transport concerns (see session.gateway)
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from typing import Awaitable, Callable, Union
from uuid import uuid4

from constants import COORDINATOR_ID_PREFIX, ID_HEX_CHARS, SETTLE_LOOP_YIELDS
from login.broadcast import StateBroadcaster, StateSubscription
from login.collaborators import (
    AnonymousAuthProvider,
    FederatedAuthProvider,
    TagTemplatesSource,
    TagsSource,
    TagWriter,
)
from login.commands import SessionCommand
from login.effects import (
    Effect,
    LogEvent,
    SeedDefaultTags,
    StartAnonymousAuth,
    StartFederatedAuth,
)
from login.enums.provider import AuthProvider
from login.events import AuthFailed, AuthSucceeded, ProviderEvent
from login.reducer import reduce
from login.seeding import seed_default_tags
from login.state_dataclass import CoordinatorState
from login.states import SessionState
from observability.logger import describe_exception, log_event
from observability.metrics import timed


InboxItem = Union[SessionCommand, ProviderEvent]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_coordinator_id() -> str:
    return f"{COORDINATOR_ID_PREFIX}{uuid4().hex[:ID_HEX_CHARS]}"


class SessionCoordinator:
    """
    Command sink + replay-latest state source for login.

    Architectural role:
    SessionCoordinator is the bridge between the pure login reducer
    (immutable CoordinatorState) and the imperative world
    (auth providers, tag storage, logging, observers).

    Guarantees:
    - Reducer is called exactly once per inbox item, on a single worker task
    - submit() never blocks and may be called from any thread
    - Provider outcomes re-enter through the inbox (single entry point)
    - Outcomes of superseded attempts are discarded by run_id
    - Seeding is launched before Authenticated is published and is never
      awaited by transition logic; its failures never reach observers
    - Every observer receives the current state first, then each later
      transition in the same order as every other observer

    Lifecycle:
        coordinator = SessionCoordinator(...)
        coordinator.start()          # inside a running event loop
        ...
        await coordinator.shutdown()
    """

    def __init__(
        self,
        *,
        anonymous_auth: AnonymousAuthProvider,
        federated_auth: FederatedAuthProvider,
        existing_tags: TagsSource,
        default_tags: TagTemplatesSource,
        tag_writer: TagWriter,
        coordinator_id: str | None = None,
    ) -> None:
        self.coordinator_id = coordinator_id or _new_coordinator_id()

        self._anonymous_auth = anonymous_auth
        self._federated_auth = federated_auth
        self._existing_tags = existing_tags
        self._default_tags = default_tags
        self._tag_writer = tag_writer

        self._state = CoordinatorState()
        self._broadcaster: StateBroadcaster[SessionState] = StateBroadcaster(
            self._state.session_state
        )

        self._loop: asyncio.AbstractEventLoop | None = None
        self._inbox: asyncio.Queue[InboxItem] | None = None
        self._bind_lock = threading.Lock()
        # Items submitted before start(); moved into the inbox on start
        self._early: deque[InboxItem] = deque()
        self._worker: asyncio.Task[None] | None = None

        self._auth_tasks: set[asyncio.Task[None]] = set()
        self._seed_tasks: set[asyncio.Task[object]] = set()

        # Count of inbox items applied; used by wait_until_settled()
        self._applied = 0
        self._stopped = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Bind to the running event loop and start the inbox worker.

        Idempotent. Must be called from inside a running loop.
        """
        if self._worker is not None:
            return

        loop = asyncio.get_running_loop()
        inbox: asyncio.Queue[InboxItem] = asyncio.Queue()
        with self._bind_lock:
            while self._early:
                inbox.put_nowait(self._early.popleft())
            self._loop = loop
            self._inbox = inbox
        self._worker = asyncio.create_task(self._process_inbox())

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "COORDINATOR_STARTED",
            "coordinator_id": self.coordinator_id,
            "state": self.state.kind.value,
        })

    async def shutdown(self) -> None:
        """
        Stop processing.

        Abandons in-flight provider calls and seeding, ends every state
        subscription. Later submissions are dropped (and logged).
        """
        if self._stopped:
            return
        self._stopped = True

        tasks: list[asyncio.Task[object]] = [
            *self._auth_tasks,
            *self._seed_tasks,
        ]
        if self._worker is not None:
            tasks.append(self._worker)  # type: ignore[arg-type]

        for task in tasks:
            task.cancel()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._auth_tasks.clear()
        self._seed_tasks.clear()
        self._broadcaster.close()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "COORDINATOR_STOPPED",
            "coordinator_id": self.coordinator_id,
            "state": self.state.kind.value,
        })

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """
        Current public session state (the last value broadcast).

        Read-only; mutated internally via the reducer only.
        """
        return self._broadcaster.current

    def observe_state(self) -> StateSubscription[SessionState]:
        """
        Subscribe to session states.

        The subscription's first value is the current state; every later
        transition follows. Failures arrive as Failed values, never as
        stream termination. Consume on the coordinator's event loop.
        """
        return self._broadcaster.subscribe()

    def submit(self, command: SessionCommand) -> None:
        """
        Enqueue a command. Never blocks; processing is asynchronous.

        Raises:
            TypeError if `command` is not a SessionCommand.

        Commands submitted before start() are buffered and processed, in
        order, once the worker starts.
        """
        if not isinstance(command, SessionCommand):
            raise TypeError(f"Not a SessionCommand: {command!r}")

        if self._stopped:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "COMMAND_AFTER_SHUTDOWN",
                "coordinator_id": self.coordinator_id,
                "command_type": command.command_type.value,
            })
            return

        self._post(command)

    async def wait_until_settled(self) -> None:
        """
        Wait until no more transitions are pending.

        Settled means: inbox empty, every seeding task finished, and no
        provider call resolved since the previous pass. Provider calls that
        are still running are NOT waited for.
        """
        while True:
            applied = self._applied

            for _ in range(SETTLE_LOOP_YIELDS):
                await asyncio.sleep(0)

            if self._inbox is not None and not self._stopped:
                await self._inbox.join()

            pending_seeds = [t for t in self._seed_tasks if not t.done()]
            if pending_seeds:
                await asyncio.gather(*pending_seeds, return_exceptions=True)
                continue

            inbox_empty = self._inbox is None or self._inbox.empty()
            if applied == self._applied and inbox_empty:
                return

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    def _post(self, item: InboxItem) -> None:
        """Enqueue from any thread. Buffers until start() binds the loop."""
        with self._bind_lock:
            if self._loop is None or self._inbox is None:
                self._early.append(item)
                return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._inbox.put_nowait(item)
        else:
            self._loop.call_soon_threadsafe(self._inbox.put_nowait, item)

    async def _process_inbox(self) -> None:
        assert self._inbox is not None
        while True:
            item = await self._inbox.get()
            try:
                self._apply(item)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                # The worker must outlive a bad item. A state the reducer
                # returned is already swapped in and published (see _apply).
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "COORDINATOR_APPLY_ERROR",
                    "coordinator_id": self.coordinator_id,
                    "item_type": type(item).__name__,
                    **describe_exception(exc),
                })
            finally:
                self._applied += 1
                self._inbox.task_done()

    def _apply(self, item: InboxItem) -> None:
        """
        Process a single inbox item.

        1. Reduce
        2. Swap in the new coordinator state
        3. Execute effects in reducer-emitted order
        4. Broadcast the public state if it changed

        Step 4 runs even when an effect raises, so observers never lag
        behind the coordinator state.
        """
        previous = self._state.session_state
        new_state, effects = reduce(self._state, item)
        self._state = new_state

        try:
            for effect in effects:
                self._execute_effect(effect)
        finally:
            if new_state.session_state is not previous:
                self._broadcaster.publish(new_state.session_state)

    # ------------------------------------------------------------------
    # Effect execution (side effects)
    # ------------------------------------------------------------------

    def _execute_effect(self, effect: Effect) -> None:
        if isinstance(effect, LogEvent):
            log_event({
                "ts_ms": _now_ms(),
                **effect.event,
                "coordinator_id": self.coordinator_id,
            })

        elif isinstance(effect, StartAnonymousAuth):
            self._spawn_auth(
                provider=AuthProvider.ANONYMOUS,
                run_id=effect.run_id,
                call=self._anonymous_auth,
            )

        elif isinstance(effect, StartFederatedAuth):
            token = effect.token
            force = effect.force_overwrite
            self._spawn_auth(
                provider=AuthProvider.FEDERATED,
                run_id=effect.run_id,
                call=lambda: self._federated_auth(token, force),
                details={"force_overwrite": force},
            )

        elif isinstance(effect, SeedDefaultTags):
            previous = tuple(t for t in self._seed_tasks if not t.done())
            task: asyncio.Task[object] = asyncio.create_task(
                self._run_seed(run_id=effect.run_id, after=previous)
            )
            self._seed_tasks.add(task)
            task.add_done_callback(self._seed_tasks.discard)

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "EFFECT_NOT_IMPLEMENTED",
                "coordinator_id": self.coordinator_id,
                "effect_type": type(effect).__name__,
            })

    async def _run_seed(
        self,
        *,
        run_id: int,
        after: tuple[asyncio.Task[object], ...],
    ) -> object:
        """
        Seed once every earlier seeding task has finished.

        Serialized so a later run reads the tags an earlier run wrote and
        the defaults are created at most once per account.
        """
        if after:
            await asyncio.gather(*after, return_exceptions=True)
        return await seed_default_tags(
            existing_tags=self._existing_tags,
            default_tags=self._default_tags,
            tag_writer=self._tag_writer,
            coordinator_id=self.coordinator_id,
            run_id=run_id,
        )

    def _spawn_auth(
        self,
        *,
        provider: AuthProvider,
        run_id: int,
        call: Callable[[], Awaitable[None]],
        details: dict[str, object] | None = None,
    ) -> None:
        """
        Run a provider call as a detached task.

        Superseded calls are not cancelled; their outcome is discarded by
        the reducer when it comes back with an old run_id.
        """
        task = asyncio.create_task(
            self._run_auth(provider=provider, run_id=run_id, call=call, details=details)
        )
        self._auth_tasks.add(task)
        task.add_done_callback(self._auth_tasks.discard)

    async def _run_auth(
        self,
        *,
        provider: AuthProvider,
        run_id: int,
        call: Callable[[], Awaitable[None]],
        details: dict[str, object] | None,
    ) -> None:
        try:
            with timed(
                "auth_latency",
                coordinator_id=self.coordinator_id,
                details={"provider": provider.value, "run_id": run_id, **(details or {})},
            ):
                await call()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._post(AuthFailed(provider=provider, run_id=run_id, cause=exc))
            return

        self._post(AuthSucceeded(provider=provider, run_id=run_id))
