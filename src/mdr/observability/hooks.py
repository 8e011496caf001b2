"""Event hooks — publish/subscribe for forwarding lifecycle events.

Hooks let monitoring or alerting code follow a run without touching the
pipeline itself. A failing handler is logged and never interrupts the run.

Example::

    hooks = HookManager()

    @hooks.on("batch.loaded")
    def on_loaded(batch, result):
        shipped_counter.inc(len(batch))

    pipeline = Pipeline(config, extractor, loader=loader, hooks=hooks)
"""

from __future__ import annotations

import contextlib
from collections.abc import Callable

import structlog

log = structlog.get_logger(__name__)

EventHandler = Callable[..., None]


class EventHook:
    """A named event that can have multiple handlers attached."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[EventHandler] = []

    def register(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def unregister(self, handler: EventHandler) -> None:
        with contextlib.suppress(ValueError):
            self._handlers.remove(handler)

    def fire(self, *args: object, **kwargs: object) -> None:
        """Invoke every handler; a raising handler is logged and skipped."""
        for handler in list(self._handlers):
            try:
                handler(*args, **kwargs)
            except Exception as exc:
                log.warning(
                    "hook.handler_failed",
                    hook=self.name,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(exc),
                )

    def __len__(self) -> int:
        return len(self._handlers)


class HookManager:
    """Registry of named EventHooks.

    Built-in events and their handler arguments
    -------------------------------------------
    ``pipeline.start(name)``             before the extractor begins
    ``pipeline.complete(result)``        after the last batch
    ``batch.extracted(batch)``           after each extractor yield
    ``batch.transformed(batch)``         after the transformers ran on a batch
    ``batch.loaded(batch, result)``      after the loader shipped a batch
    ``stage.error(stage_name, exc)``     whenever a stage fails
    """

    BUILTIN_EVENTS = (
        "pipeline.start",
        "pipeline.complete",
        "batch.extracted",
        "batch.transformed",
        "batch.loaded",
        "stage.error",
    )

    def __init__(self) -> None:
        self._hooks: dict[str, EventHook] = {
            event_name: EventHook(event_name) for event_name in self.BUILTIN_EVENTS
        }

    def on(self, event: str) -> Callable[[EventHandler], EventHandler]:
        """Decorator to register a handler for a named event."""

        def _decorator(handler: EventHandler) -> EventHandler:
            self.register(event, handler)
            return handler

        return _decorator

    def register(self, event: str, handler: EventHandler) -> None:
        if event not in self._hooks:
            self._hooks[event] = EventHook(event)
        self._hooks[event].register(handler)

    def fire(self, event: str, *args: object, **kwargs: object) -> None:
        if event in self._hooks:
            self._hooks[event].fire(*args, **kwargs)

    def get_hook(self, event: str) -> EventHook | None:
        return self._hooks.get(event)

    def registered_events(self) -> list[str]:
        return [name for name, hook in self._hooks.items() if len(hook) > 0]
