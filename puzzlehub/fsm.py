from __future__ import annotations

from statemachine import State, StateMachine

from puzzlehub.api.models import BootstrapState


class BootstrapFSM(StateMachine):
    """Guards the identity bootstrap sequence.

    uninitialized -> loading_local -> (creating_remote | loading_remote) -> ready,
    with `degraded` as the fallback from any step before ready. The session layer
    performs the I/O; this machine only rejects out-of-order transitions.
    """

    uninitialized = State(BootstrapState.uninitialized.value, value=BootstrapState.uninitialized.value, initial=True)
    loading_local = State(BootstrapState.loading_local.value, value=BootstrapState.loading_local.value)
    creating_remote = State(BootstrapState.creating_remote.value, value=BootstrapState.creating_remote.value)
    loading_remote = State(BootstrapState.loading_remote.value, value=BootstrapState.loading_remote.value)
    ready = State(BootstrapState.ready.value, value=BootstrapState.ready.value)
    degraded = State(BootstrapState.degraded.value, value=BootstrapState.degraded.value)

    begin = uninitialized.to(loading_local)
    identity_missing = loading_local.to(creating_remote)
    identity_found = loading_local.to(loading_remote)
    created = creating_remote.to(ready)
    loaded = loading_remote.to(ready)
    fail = (
        uninitialized.to(degraded)
        | loading_local.to(degraded)
        | creating_remote.to(degraded)
        | loading_remote.to(degraded)
    )
    override = ready.to(loading_remote)
    reset = ready.to(uninitialized) | degraded.to(uninitialized)

    @property
    def phase(self) -> BootstrapState:
        return BootstrapState(str(self.current_state.value))
