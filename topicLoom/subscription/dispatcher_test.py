"""
Unit tests for inbound message routing.
"""

from unittest.mock import Mock

from topicLoom.common.constants import HandlerConstants
from topicLoom.common.handlers import HandlerRegistry
from topicLoom.common.status_types import Interest
from topicLoom.subscription.dispatcher import MessageDispatcher
from topicLoom.subscription.registry import TopicSubscriptionRegistry


class TestMessageDispatcher:
    def setup_method(self):
        self.registry = TopicSubscriptionRegistry(Mock())
        self.host = HandlerRegistry("test_host")
        self.set_variables = Mock()
        self.check_feedbacks = Mock()
        self.host.register_handler(HandlerConstants.SET_VARIABLES, self.set_variables)
        self.host.register_handler(HandlerConstants.CHECK_FEEDBACKS, self.check_feedbacks)
        self.dispatcher = MessageDispatcher(self.registry, self.host)

    def test_message_is_cached_and_fanned_out_in_batches(self):
        self.registry.register("home/env", Interest.variable("v1", "temp", path="t"))
        self.registry.register("home/env", Interest.variable("v2", "hum", path="h"))
        self.registry.register("home/env", Interest.feedback("fb1"))
        self.registry.register("home/env", Interest.feedback("fb2", path="t"))

        assert self.dispatcher.handle_message("home/env", '{"t": 21.5, "h": 40}') is True

        assert self.registry.get_cached_value("home/env") == '{"t": 21.5, "h": 40}'
        self.set_variables.assert_called_once_with({"temp": 21.5, "hum": 40})
        self.check_feedbacks.assert_called_once_with("fb1", "fb2")

    def test_raw_payload_without_path(self):
        self.registry.register("home/door", Interest.variable("v1", "door"))
        self.dispatcher.handle_message("home/door", "open")
        self.set_variables.assert_called_once_with({"door": "open"})
        self.check_feedbacks.assert_not_called()

    def test_bytes_payload_is_decoded(self):
        self.registry.register("home/door", Interest.variable("v1", "door"))
        self.dispatcher.handle_message("home/door", b"closed")
        assert self.registry.get_cached_value("home/door") == "closed"
        self.set_variables.assert_called_once_with({"door": "closed"})

    def test_structured_value_is_serialized(self):
        self.registry.register("home/env", Interest.variable("v1", "env", path="a"))
        self.dispatcher.handle_message("home/env", '{"a": {"b": [1, 2]}}')
        self.set_variables.assert_called_once_with({"env": '{"b":[1,2]}'})

    def test_message_without_interests_is_dropped(self):
        assert self.dispatcher.handle_message("nobody/cares", "1") is False
        assert self.dispatcher.messages_dropped == 1
        assert self.registry.get_cached_value("nobody/cares") is None
        self.set_variables.assert_not_called()
        self.check_feedbacks.assert_not_called()

    def test_message_after_last_unregister_is_dropped(self):
        self.registry.register("a", Interest.feedback("fb1"))
        self.registry.unregister("a", "fb1")
        assert self.dispatcher.handle_message("a", "late") is False
        assert self.registry.get_cached_value("a") is None

    def test_malformed_payload_skips_only_path_interests(self):
        self.registry.register("a", Interest.variable("v1", "raw"))
        self.registry.register("a", Interest.variable("v2", "parsed", path="x"))
        self.registry.register("a", Interest.feedback("fb1", path="x"))

        self.dispatcher.handle_message("a", "{not json")

        self.set_variables.assert_called_once_with({"raw": "{not json"})
        self.check_feedbacks.assert_called_once_with("fb1")
        assert self.registry.get_cached_value("a") == "{not json"

    def test_missing_path_skips_variable(self):
        self.registry.register("a", Interest.variable("v1", "temp", path="missing"))
        self.dispatcher.handle_message("a", '{"t": 1}')
        self.set_variables.assert_not_called()

    def test_host_handler_failure_is_contained(self):
        self.registry.register("a", Interest.variable("v1", "temp"))
        self.set_variables.side_effect = RuntimeError("host crashed")
        assert self.dispatcher.handle_message("a", "1") is True
        assert self.registry.get_cached_value("a") == "1"

    def test_empty_topic(self):
        assert self.dispatcher.handle_message("", "1") is False

    def test_deliver_to_subset(self):
        fb = Interest.feedback("late")
        self.dispatcher.deliver("a", "1", [fb])
        self.check_feedbacks.assert_called_once_with("late")
        self.set_variables.assert_not_called()
