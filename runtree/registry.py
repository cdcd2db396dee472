"""Ordered set of adapters known to the client and position-to-adapter resolution."""

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from runtree.adapters.base import Adapter
from runtree.state import StateStore

log = logging.getLogger(__name__)

type FileAdapterLookup = Callable[[str], Adapter | None]


@dataclass(kw_only=True)
class AdapterRegistry:
    """Adapters in registration order; earlier adapters take precedence."""

    state: StateStore
    find_file_adapter: FileAdapterLookup
    _adapters: list[Adapter] = field(default_factory=list)

    @property
    def adapters(self) -> Sequence[Adapter]:
        return tuple(self._adapters)

    def names(self) -> Sequence[str]:
        return [adapter.name for adapter in self._adapters]

    def get(self, adapter_id: str) -> Adapter | None:
        for adapter in self._adapters:
            if adapter.name == adapter_id:
                return adapter
        return None

    def register(self, adapter: Adapter) -> bool:
        """Append adapter unless one with the same name is already registered."""
        if self.get(adapter.name) is not None:
            return False
        self._adapters.append(adapter)
        log.info("Registered adapter %s", adapter.name)
        return True

    def extend(self, adapters: Iterable[Adapter]) -> None:
        for adapter in adapters:
            self.register(adapter)

    def resolve(
        self, position_id: str | None, adapter_id: str | None = None
    ) -> tuple[str, Adapter] | None:
        """Find the adapter responsible for position_id.

        Args:
            position_id: Position to find an adapter for
            adapter_id: Explicit adapter choice, used as-is when registered

        Returns:
            Adapter id and adapter, or None when no adapter applies

        """
        if position_id is None and adapter_id is None:
            if not self._adapters:
                return None
            adapter_id = self._adapters[0].name

        if adapter_id is not None and (adapter := self.get(adapter_id)) is not None:
            return adapter.name, adapter

        if position_id is None:
            return None

        for adapter in self._adapters:
            if self.state.positions(
                adapter.name, position_id
            ) is not None or adapter.is_test_file(position_id):
                return adapter.name, adapter

        if not Path(position_id).exists():
            return None

        new_adapter = self.find_file_adapter(position_id)
        if new_adapter is None:
            return None

        self.register(new_adapter)
        registered = self.get(new_adapter.name) or new_adapter
        return registered.name, registered
