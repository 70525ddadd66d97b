"""
Preferences Controller — account identities, labels and the selected address.

Identities follow the keyring accounts once the listener is registered::

    keyring.subscribe(preferences.on_keyring_update)
"""
from typing import Any, Optional
from collections.abc import Iterable, Mapping

from .base import BaseController
from .exceptions import NotFoundError


def _normalize(address: str) -> str:
    return address.lower()


class PreferencesController(BaseController):
    """Keeps a label per account and tracks the selected account."""

    name = "PreferencesController"
    default_state: dict[str, Any] = {
        "identities": {},
        "selected_address": "",
    }

    def __init__(self, state: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(state=state)

    def _identities(self) -> dict[str, dict[str, str]]:
        return self.state["identities"]

    def add_identities(self, addresses: Iterable[str]) -> None:
        """Add identities for new addresses, labelled "Account N"."""
        identities = self._identities()
        for address in map(_normalize, addresses):
            if address in identities:
                continue
            identities[address] = {
                "address": address,
                "name": f"Account {len(identities) + 1}",
            }
        self.update({"identities": identities})

    def remove_identity(self, address: str) -> None:
        address = _normalize(address)
        identities = self._identities()
        if address not in identities:
            return
        del identities[address]
        update: dict[str, Any] = {"identities": identities}
        if self.state["selected_address"] == address:
            update["selected_address"] = next(iter(identities), "")
        self.update(update)

    def set_account_label(self, address: str, label: str) -> None:
        address = _normalize(address)
        identities = self._identities()
        if address not in identities:
            raise NotFoundError(f"No identity for address {address}")
        identities[address]["name"] = label
        self.update({"identities": identities})

    def set_selected_address(self, address: str) -> None:
        address = _normalize(address)
        if address not in self._identities():
            raise NotFoundError(f"No identity for address {address}")
        self.update({"selected_address": address})

    def sync_identities(self, addresses: Iterable[str]) -> None:
        """Keep exactly the given addresses, preserving existing labels.

        When the selected address is dropped, the first remaining address
        becomes selected.
        """
        addresses = [_normalize(a) for a in addresses]
        current = self._identities()
        identities = {}
        for address in addresses:
            identities[address] = current.get(address) or {
                "address": address,
                "name": f"Account {len(identities) + 1}",
            }
        selected = self.state["selected_address"]
        if selected not in identities:
            selected = addresses[0] if addresses else ""
        self.update({"identities": identities, "selected_address": selected})

    def on_keyring_update(self, state: Mapping[str, Any]) -> None:
        """Keyring controller listener: sync identities with its accounts.

        Locked states list no accounts and leave identities untouched.
        """
        if not state.get("is_unlocked"):
            return
        self.sync_identities(
            address
            for keyring in state["keyrings"]
            for address in keyring["accounts"]
        )
