"""
Composable Controller — merges several controllers into one published state.
"""
import logging
from typing import Any
from collections.abc import Sequence

from .base import BaseController

logger = logging.getLogger("navigator.keyring")


class ComposableController(BaseController):
    """Observe a fixed set of controllers and republish their states.

    The state is a mapping of ``controller.name`` to that controller's
    current state. It is rebuilt from *all* children whenever any one of
    them publishes. Children are never mutated and keep no reference back
    to the aggregator beyond the listener registered here.
    """

    name = "ComposableController"

    def __init__(self, controllers: Sequence[BaseController]) -> None:
        names = [controller.name for controller in controllers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(
                f"Duplicate controller names: {', '.join(duplicates)}"
            )
        self._controllers: tuple[BaseController, ...] = tuple(controllers)
        super().__init__(state=self._compose())
        for controller in self._controllers:
            controller.subscribe(self._on_child_update)
        logger.debug("Composed controllers: %s", names)

    @property
    def controllers(self) -> tuple[BaseController, ...]:
        return self._controllers

    @property
    def flat_state(self) -> dict[str, Any]:
        """All child states merged into one mapping (later children win)."""
        flat: dict[str, Any] = {}
        for controller in self._controllers:
            flat.update(controller.state)
        return flat

    def _compose(self) -> dict[str, Any]:
        return {
            controller.name: controller.state
            for controller in self._controllers
        }

    def _on_child_update(self, _state: dict[str, Any]) -> None:
        self.update(self._compose(), overwrite=True)

    def close(self) -> None:
        """Stop observing the children."""
        for controller in self._controllers:
            controller.unsubscribe(self._on_child_update)
