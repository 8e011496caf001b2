"""Stage registry — lets plugins self-register and be looked up by name."""

from __future__ import annotations

from typing import Any

_KINDS = ("extractor", "transformer", "loader")


class StageRegistry:
    """A simple name → class registry for pipeline stages.

    Plugins register themselves with::

        @registry.loader("elasticsearch")
        class ElasticsearchLoader(Loader[ElasticsearchLoaderConfig]):
            ...

    And are retrieved later::

        cls = registry.get_loader("elasticsearch")
    """

    def __init__(self) -> None:
        self._stages: dict[str, dict[str, type]] = {kind: {} for kind in _KINDS}

    # ------------------------------------------------------------------ #
    #  Registration decorators                                             #
    # ------------------------------------------------------------------ #

    def _register(self, kind: str, name: str) -> Any:
        def _decorator(cls: type) -> type:
            self._stages[kind][name] = cls
            cls._registry_name = name  # type: ignore[attr-defined]
            return cls

        return _decorator

    def extractor(self, name: str) -> Any:
        return self._register("extractor", name)

    def transformer(self, name: str) -> Any:
        return self._register("transformer", name)

    def loader(self, name: str) -> Any:
        return self._register("loader", name)

    # ------------------------------------------------------------------ #
    #  Lookup                                                              #
    # ------------------------------------------------------------------ #

    def _get(self, kind: str, name: str) -> type:
        try:
            return self._stages[kind][name]
        except KeyError:
            available = sorted(self._stages[kind])
            raise KeyError(f"Unknown {kind} '{name}'. Available: {available}") from None

    def get_extractor(self, name: str) -> type:
        return self._get("extractor", name)

    def get_transformer(self, name: str) -> type:
        return self._get("transformer", name)

    def get_loader(self, name: str) -> type:
        return self._get("loader", name)

    # ------------------------------------------------------------------ #
    #  Introspection                                                       #
    # ------------------------------------------------------------------ #

    def all_stages(self) -> dict[str, list[str]]:
        return {f"{kind}s": sorted(names) for kind, names in self._stages.items()}


registry = StageRegistry()
