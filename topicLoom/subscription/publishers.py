"""
Debounced publishing of variable definitions.

Registration churn (for example the host re-registering every consumer after
a reconnect) would otherwise publish the definition list once per call. The
publisher arms a timer on each trigger and publishes a full rebuild from the
registry only once the window passes without further triggers.
"""

import asyncio
from typing import Optional

from topicLoom.common.constants import HandlerConstants, TimeConstants
from topicLoom.common.handlers import HandlerRegistry
from topicLoom.log_utils.logger import setup_logger

from .registry import TopicSubscriptionRegistry

logger = setup_logger(name="variable_publisher")


class VariableDefinitionPublisher:
    """Trailing-edge debounce around ``set_variable_definitions``."""

    def __init__(
        self,
        registry: TopicSubscriptionRegistry,
        host_handlers: HandlerRegistry,
        wait: float = TimeConstants.VARIABLE_DEBOUNCE,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._registry = registry
        self._host_handlers = host_handlers
        self._wait = wait
        self._loop = loop
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False
        self.publish_count = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def trigger(self) -> None:
        """Arm (or re-arm) the timer."""
        if self._closed:
            return

        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop, publishing variable definitions now")
                self.flush()
                return

        self.cancel()
        self._timer = loop.call_later(self._wait, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._closed:
            return
        self.flush()

    def flush(self) -> None:
        """Publish the current definitions immediately."""
        self.cancel()
        definitions = self._registry.variable_definitions()
        logger.debug(
            f"Refreshing variable definitions: {[d.name for d in definitions]}"
        )
        self.publish_count += 1
        self._host_handlers.notify(HandlerConstants.SET_VARIABLE_DEFINITIONS, definitions)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self) -> None:
        """Cancel any pending publish; later triggers are ignored."""
        self._closed = True
        self.cancel()
