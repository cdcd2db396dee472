"""Adapter manifest definition for the plugin system."""

from collections.abc import Callable
from dataclasses import dataclass

from pydantic import BaseModel

from runtree.adapters.base import Adapter


@dataclass(frozen=True, kw_only=True)
class AdapterManifest[ConfigT: BaseModel]:
    """Manifest describing an adapter plugin.

    The manifest contains references to the configuration class and the
    adapter factory so adapters are only built once their key is requested.
    """

    config_cls: type[ConfigT]
    adapter_factory: Callable[[ConfigT], Adapter]

    def create(self, config: object = None) -> Adapter:
        """Validate raw configuration and build the adapter."""
        return self.adapter_factory(self.config_cls.model_validate(config or {}))
