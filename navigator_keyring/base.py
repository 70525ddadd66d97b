"""
Base Controller — state holder that notifies subscribers on every change.

Every stateful component of Navigator Keyring derives from ``BaseController``:
it owns a ``dict`` state, and each ``update()`` synchronously calls the
registered listeners (in registration order) with a snapshot of the full
new state.
"""
import copy
from typing import Any, Callable, Optional
from collections.abc import Mapping

Listener = Callable[[dict[str, Any]], None]


class BaseController:
    """Holds a state mapping and publishes it to subscribers.

    Snapshots handed out by ``state`` and to listeners are deep copies;
    mutating them never reaches the controller.
    """

    name: str = "BaseController"
    default_state: dict[str, Any] = {}

    def __init__(self, state: Optional[Mapping[str, Any]] = None) -> None:
        self._state: dict[str, Any] = copy.deepcopy(self.default_state)
        if state:
            self._state.update(copy.deepcopy(dict(state)))
        self._listeners: list[Listener] = []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} listeners={len(self._listeners)}>"

    @property
    def state(self) -> dict[str, Any]:
        """Independent snapshot of the current state."""
        return copy.deepcopy(self._state)

    def subscribe(self, listener: Listener) -> None:
        """Register a listener, called with the full state after each update."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> bool:
        """Remove a listener.

        Returns:
            True if the listener was registered, False otherwise.
        """
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def update(self, state: Mapping[str, Any], overwrite: bool = False) -> None:
        """Merge (or replace) the current state and notify listeners.

        Args:
            state: Partial state to merge into the current state.
            overwrite: Replace the whole state instead of merging.
        """
        new_state = copy.deepcopy(dict(state))
        if overwrite:
            self._state = new_state
        else:
            self._state.update(new_state)
        self.notify()

    def notify(self) -> None:
        """Call every listener with its own snapshot of the state."""
        # listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            listener(self.state)
