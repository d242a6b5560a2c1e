"""Transform hook pipeline.

Hooks are plain functions registered under a hook name with a priority.
apply() runs them in ascending priority order (registration order breaks
ties); each receives the previous value plus a context dict and returns
the next value. Returning None keeps the previous value. A hook that
raises is logged and skipped.

Usage:
    from sync_engine.hooks import HookName, HookPipeline

    hooks = HookPipeline()
    hooks.register(HookName.RECORD_BEFORE_PUSH, strip_tracking_params, priority=5)
    payload = hooks.apply(HookName.RECORD_BEFORE_PUSH, payload, {"record_id": 101})
"""

from dataclasses import dataclass
from enum import Enum
from itertools import count
from typing import Any, Callable, Dict, List, Optional

from core.observability.logging import get_logger

logger = get_logger(__name__)

HookFn = Callable[[Any, Dict[str, Any]], Any]

DEFAULT_PRIORITY = 10


class HookName(str, Enum):
    RECORD_BEFORE_SYNC = "record_before_sync"   # RemoteRecord
    RECORD_BEFORE_PUSH = "record_before_push"   # update payload dict
    RECORD_AFTER_PUSH = "record_after_push"     # PushResult
    SYNC_COMPLETE = "sync_complete"             # SyncResult


@dataclass
class _Registration:
    priority: int
    order: int
    fn: HookFn
    name: str


class HookPipeline:
    """Ordered, priority-sorted transform functions per hook name."""

    def __init__(self):
        self._hooks: Dict[HookName, List[_Registration]] = {}
        self._order = count()

    def register(
        self,
        hook: HookName,
        fn: HookFn,
        priority: int = DEFAULT_PRIORITY,
        name: Optional[str] = None,
    ) -> Callable[[], None]:
        """Register a transform; returns a function that unregisters it."""
        registration = _Registration(
            priority, next(self._order), fn, name or getattr(fn, "__name__", repr(fn))
        )
        registrations = self._hooks.setdefault(hook, [])
        registrations.append(registration)
        registrations.sort(key=lambda r: (r.priority, r.order))

        def unregister() -> None:
            if registration in self._hooks.get(hook, []):
                self._hooks[hook].remove(registration)

        return unregister

    def has_hooks(self, hook: HookName) -> bool:
        return bool(self._hooks.get(hook))

    def apply(self, hook: HookName, value: Any, context: Optional[Dict[str, Any]] = None) -> Any:
        context = context or {}
        for registration in list(self._hooks.get(hook, [])):
            try:
                result = registration.fn(value, context)
            except Exception as e:
                logger.error(
                    f"Hook {registration.name} failed on {hook.value}: {e}",
                    exc_info=True,
                )
                continue
            if result is not None:
                value = result
        return value
