import cmd
import io
import time
from unittest.mock import Mock, patch

import pytest

from topicLoom.cli import Consumer, ShellHost, TopicLoomShell, build_parser, config_from_args, main
from topicLoom.common.config import BrokerConfig

from conftest import FakeConnectionFactory


@pytest.fixture
def shell():
    """A shell whose bridge talks to an auto-connecting fake broker."""
    factory = FakeConnectionFactory(auto_connect=True)
    output = io.StringIO()
    topic_shell = TopicLoomShell(BrokerConfig(), connection_factory=factory, stdout=output)
    topic_shell.factory = factory
    topic_shell.output = output
    yield topic_shell
    if topic_shell._loop.is_running():
        topic_shell.do_quit("")


def send(shell, topic, payload):
    shell._call(shell.factory.current.simulate_message, topic, payload)


class TestTopicLoomShell:
    def test_cli_initialization(self, shell):
        assert isinstance(shell, cmd.Cmd)
        assert shell.prompt == "topicLoom> "
        assert shell.intro.startswith("Welcome to topicLoom")
        assert shell.factory.current.started

    def test_do_quit(self, shell):
        assert shell.do_quit("") is True
        assert shell.factory.current.closed
        assert "Exit the CLI" in shell.do_quit.__doc__

    def test_status(self, shell):
        shell._call(lambda: None)
        shell.do_status("")
        assert shell.output.getvalue().splitlines()[-1] == "ok"

    def test_feedback_and_check(self, shell):
        shell.onecmd("feedback status/device1 gte 40")
        consumer = next(iter(shell.host.consumers.values()))

        send(shell, "status/device1", "42")
        shell.do_check(consumer.id)

        lines = shell.output.getvalue().splitlines()
        assert f"[{consumer.id}] status/device1 -> True" in lines
        assert lines[-1] == "True"

    def test_watch_updates_variable(self, shell):
        shell.onecmd('watch home/env temp "t"')
        send(shell, "home/env", '{"t": 21}')

        assert shell.host.variables == {"temp": 21}
        assert "$(temp) = 21" in shell.output.getvalue()

        time.sleep(0.3)
        shell.do_vars("")
        assert "temp = 21  (MQTT value from topic: home/env)" in shell.output.getvalue()

    def test_unwatch(self, shell):
        shell.onecmd("watch home/temp temp")
        consumer_id = next(iter(shell.host.consumers))

        shell.onecmd(f"unwatch {consumer_id}")

        assert shell.host.consumers == {}
        assert shell.factory.current.unsubscribe_calls == ["home/temp"]

    def test_publish(self, shell):
        shell.onecmd("publish cmd/light on 1 retain")
        assert shell.factory.current.published == [("cmd/light", "on", 1, True)]

    def test_publish_rejects_bad_qos(self, shell):
        shell.onecmd("publish cmd/light on 5")
        assert shell.factory.current.published == []

    def test_cache(self, shell):
        shell.onecmd("feedback a eq 1")
        send(shell, "a", "1")
        shell.onecmd("cache")
        assert "a: 1" in shell.output.getvalue()

    def test_emptyline(self, shell):
        assert shell.emptyline() is None


class TestShellHost:
    def test_reconnect_reregisters_consumers(self):
        bridge = Mock()
        host = ShellHost(bridge, output=Mock())
        host.add(Consumer(id="fb1", kind="feedback", topic="a"))
        bridge.reset_mock()

        host.subscribe_feedbacks()

        bridge.subscribe_feedback.assert_called_once_with("fb1", "a", "")


class TestArgs:
    def test_config_from_args(self):
        args = build_parser().parse_args(
            ["--host", "broker", "--port", "1884", "--matching", "wildcard", "--user", "u"]
        )
        config = config_from_args(args)
        assert config.url == "mqtt://broker:1884"
        assert config.topic_matching == "wildcard"
        assert config.user == "u"

    def test_main_rejects_invalid_config(self):
        with patch("topicLoom.cli.TopicLoomShell") as mock_shell:
            assert main(["--port", "0"]) == 2
        mock_shell.assert_not_called()
