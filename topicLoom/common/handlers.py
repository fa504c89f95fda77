"""
Named callback registry.

The bridge never calls its host or its transport directly: hosts register
callables such as ``set_variables`` or ``check_feedbacks``, connections route
``connect``/``error``/``offline``/``message`` events, and the core looks the
callables up by key when something happens.
"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional


class HandlerRegistry:
    """Callables keyed by name, optionally restricted to a fixed key set."""

    def __init__(self, name: str = "default", allowed_keys: Optional[Iterable[str]] = None):
        self.name = name
        self._allowed_keys = frozenset(allowed_keys) if allowed_keys is not None else None
        self._handlers: Dict[str, Callable] = {}
        self._logger = logging.getLogger(f"HandlerRegistry.{name}")

    def register_handler(self, key: str, handler: Callable) -> None:
        """Bind ``handler`` to ``key``, replacing whatever was bound before.

        Raises:
            ValueError: ``key`` is not one of the registry's allowed keys
        """
        if self._allowed_keys is not None and key not in self._allowed_keys:
            raise ValueError(
                f"Unknown handler key '{key}' for registry '{self.name}'. "
                f"Expected one of {sorted(self._allowed_keys)}"
            )
        self._handlers[key] = handler
        self._logger.debug(f"Bound '{key}' in registry '{self.name}'")

    def has_handler(self, key: str) -> bool:
        return key in self._handlers

    def dispatch_handler(self, key: str, *args, **kwargs) -> Any:
        """Call the handler bound to ``key``; its exceptions are logged and re-raised.

        Returns None when nothing is bound.
        """
        handler = self._handlers.get(key)
        if handler is None:
            self._logger.debug(f"Nothing bound to '{key}' in registry '{self.name}'")
            return None

        try:
            return handler(*args, **kwargs)
        except Exception as e:
            self._logger.exception(f"Handler '{key}' in registry '{self.name}' failed: {e}")
            raise

    def notify(self, key: str, *args, **kwargs) -> Any:
        """Like ``dispatch_handler``, but a failing handler only gets logged.

        Used for fan-out to collaborators, where one broken consumer must not
        stop delivery to the others.
        """
        try:
            return self.dispatch_handler(key, *args, **kwargs)
        except Exception:
            return None
