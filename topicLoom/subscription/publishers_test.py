"""
Unit tests for the debounced variable definition publisher.
"""

import asyncio
from unittest.mock import Mock

import pytest

from topicLoom.common.constants import HandlerConstants
from topicLoom.common.handlers import HandlerRegistry
from topicLoom.common.status_types import Interest, VariableDefinition
from topicLoom.subscription.publishers import VariableDefinitionPublisher
from topicLoom.subscription.registry import TopicSubscriptionRegistry

WAIT = 0.05


class TestVariableDefinitionPublisher:
    def setup_method(self):
        self.registry = TopicSubscriptionRegistry(Mock())
        self.host = HandlerRegistry("test_host")
        self.set_definitions = Mock()
        self.host.register_handler(
            HandlerConstants.SET_VARIABLE_DEFINITIONS, self.set_definitions
        )

    @pytest.mark.asyncio
    async def test_burst_publishes_once_with_final_set(self):
        publisher = VariableDefinitionPublisher(self.registry, self.host, wait=WAIT)
        self.registry.set_variables_changed_callback(publisher.trigger)

        for index in range(5):
            self.registry.register(f"t/{index}", Interest.variable(f"v{index}", f"var{index}"))
        self.registry.unregister("t/0", "v0")

        assert publisher.pending
        self.set_definitions.assert_not_called()

        await asyncio.sleep(WAIT * 4)

        self.set_definitions.assert_called_once()
        definitions = self.set_definitions.call_args.args[0]
        assert sorted(d.name for d in definitions) == ["var1", "var2", "var3", "var4"]
        assert publisher.publish_count == 1
        assert not publisher.pending

    @pytest.mark.asyncio
    async def test_trigger_rearms_timer(self):
        publisher = VariableDefinitionPublisher(self.registry, self.host, wait=0.2)
        publisher.trigger()
        await asyncio.sleep(0.1)
        publisher.trigger()
        await asyncio.sleep(0.15)
        # first deadline has passed but the second trigger pushed it back
        self.set_definitions.assert_not_called()
        await asyncio.sleep(0.2)
        self.set_definitions.assert_called_once_with([])

    @pytest.mark.asyncio
    async def test_close_cancels_pending_publish(self):
        publisher = VariableDefinitionPublisher(self.registry, self.host, wait=WAIT)
        publisher.trigger()
        publisher.close()
        publisher.trigger()

        await asyncio.sleep(WAIT * 3)

        self.set_definitions.assert_not_called()
        assert not publisher.pending

    def test_flush_without_loop(self):
        publisher = VariableDefinitionPublisher(self.registry, self.host)
        self.registry.register("home/temp", Interest.variable("v1", "temp"))

        publisher.trigger()

        self.set_definitions.assert_called_once_with(
            [VariableDefinition("temp", "MQTT value from topic: home/temp")]
        )
