import argparse
import asyncio
import cmd
import shlex
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from topicLoom.bridge.bridge import TopicBridge
from topicLoom.bridge.lifecycle import ConnectionFactory
from topicLoom.common.config import BrokerConfig
from topicLoom.common.constants import (
    BrokerConstants,
    ComparisonConstants,
    HandlerConstants,
    LoggerConstants,
    MatchingConstants,
)
from topicLoom.common.errors import ConfigError
from topicLoom.common.status_types import ConnectionStatus, VariableDefinition
from topicLoom.log_utils.logger import setup_logger
from topicLoom.transport import create_connection

logger = setup_logger(name="topicLoom_cli", log_file=LoggerConstants.TOPICLOOM_CLI_LOG_FILE)


@dataclass
class Consumer:
    """A watch or feedback created from the shell."""

    id: str
    kind: str
    topic: str
    path: str = ""
    variable: Optional[str] = None
    comparison: str = ComparisonConstants.EQ
    value: str = ""


class ShellHost:
    """Host side of the bridge: owns consumers and renders what the bridge reports."""

    def __init__(self, bridge: TopicBridge, output=print):
        self.bridge = bridge
        self.consumers: Dict[str, Consumer] = {}
        self.variables: Dict[str, Any] = {}
        self.definitions: List[VariableDefinition] = []
        self._output = output

        bridge.set_host_handler(HandlerConstants.SET_VARIABLES, self.set_variables)
        bridge.set_host_handler(HandlerConstants.CHECK_FEEDBACKS, self.check_feedbacks)
        bridge.set_host_handler(
            HandlerConstants.SET_VARIABLE_DEFINITIONS, self.set_variable_definitions
        )
        bridge.set_host_handler(HandlerConstants.STATUS, self.status_changed)
        bridge.set_host_handler(HandlerConstants.SUBSCRIBE_FEEDBACKS, self.subscribe_feedbacks)

    def add(self, consumer: Consumer) -> None:
        self.consumers[consumer.id] = consumer
        self._subscribe(consumer)

    def remove(self, consumer_id: str) -> bool:
        consumer = self.consumers.pop(consumer_id, None)
        if consumer is None:
            return False
        self.bridge.unsubscribe_consumer(consumer.id, consumer.topic)
        return True

    def evaluate(self, consumer: Consumer) -> bool:
        return self.bridge.check_feedback(
            consumer.topic, consumer.path, consumer.comparison, consumer.value
        )

    def _subscribe(self, consumer: Consumer) -> None:
        if consumer.kind == "variable":
            self.bridge.subscribe_variable(
                consumer.id, consumer.topic, consumer.variable, consumer.path
            )
        else:
            self.bridge.subscribe_feedback(consumer.id, consumer.topic, consumer.path)

    # bridge callbacks

    def set_variables(self, values: Dict[str, Any]) -> None:
        self.variables.update(values)
        for name, value in values.items():
            self._output(f"$({name}) = {value}")

    def check_feedbacks(self, *feedback_ids: str) -> None:
        for feedback_id in feedback_ids:
            consumer = self.consumers.get(feedback_id)
            if consumer is not None:
                self._output(f"[{feedback_id}] {consumer.topic} -> {self.evaluate(consumer)}")

    def set_variable_definitions(self, definitions: List[VariableDefinition]) -> None:
        self.definitions = list(definitions)

    def status_changed(self, status: ConnectionStatus, message: Optional[str] = None) -> None:
        self._output(f"status: {status.value}" + (f" ({message})" if message else ""))

    def subscribe_feedbacks(self) -> None:
        for consumer in list(self.consumers.values()):
            self._subscribe(consumer)


class TopicLoomShell(cmd.Cmd):
    """Interactive shell for topicLoom."""

    prompt = "topicLoom> "

    def __init__(
        self,
        config: BrokerConfig,
        connection_factory: ConnectionFactory = create_connection,
        completekey="tab",
        stdin=None,
        stdout=None,
    ):
        super().__init__(completekey, stdin, stdout)
        self.config = config
        self._connection_factory = connection_factory
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="topicLoom_loop", daemon=True
        )
        self._thread.start()
        self.bridge: TopicBridge = self._run_sync(self._create_bridge())
        self.host = ShellHost(self.bridge, output=self._print)
        self._run_sync(self.bridge.initialize())
        self.intro = f"Welcome to topicLoom CLI. Broker: {config.url}"
        logger.info(f"topicLoom CLI initialized for {config.url}")

    async def _create_bridge(self) -> TopicBridge:
        return TopicBridge(
            self.config, connection_factory=self._connection_factory, loop=self._loop
        )

    def _run_sync(self, coro, timeout: Optional[float] = 10.0):
        """Run ``coro`` on the bridge loop and wait for its result."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout)

    def _call(self, func, *args):
        async def runner():
            return func(*args)

        return self._run_sync(runner())

    def _print(self, text: str) -> None:
        self.stdout.write(text + "\n")
        self.stdout.flush()

    def do_watch(self, line):
        """watch <topic> <variable> [json.path] -- mirror a topic into a variable."""
        args = shlex.split(line)
        if len(args) < 2:
            logger.error("Usage: watch <topic> <variable> [json.path]")
            return
        consumer = Consumer(
            id=f"var-{uuid.uuid4().hex[:8]}",
            kind="variable",
            topic=args[0],
            variable=args[1],
            path=args[2] if len(args) > 2 else "",
        )
        self._call(self.host.add, consumer)
        self._print(f"{consumer.id}: $({consumer.variable}) <- {consumer.topic}")

    def do_feedback(self, line):
        """feedback <topic> <eq|ne|lt|lte|gt|gte> <value> [json.path] -- boolean feedback."""
        args = shlex.split(line)
        if len(args) < 3:
            logger.error("Usage: feedback <topic> <comparison> <value> [json.path]")
            return
        if args[1] not in ComparisonConstants.CHOICES:
            logger.error(f"Unknown comparison '{args[1]}'")
            return
        consumer = Consumer(
            id=f"fb-{uuid.uuid4().hex[:8]}",
            kind="feedback",
            topic=args[0],
            comparison=args[1],
            value=args[2],
            path=args[3] if len(args) > 3 else "",
        )
        self._call(self.host.add, consumer)
        self._print(
            f"{consumer.id}: {consumer.topic} "
            f"{ComparisonConstants.CHOICES[consumer.comparison]} {consumer.value}"
        )

    def do_unwatch(self, line):
        """unwatch <id> -- remove a watch or feedback."""
        consumer_id = line.strip()
        if not self._call(self.host.remove, consumer_id):
            logger.warning(f"No consumer with id '{consumer_id}'")

    def do_check(self, line):
        """check <id> -- evaluate a feedback now."""
        consumer = self.host.consumers.get(line.strip())
        if consumer is None or consumer.kind != "feedback":
            logger.warning(f"No feedback with id '{line.strip()}'")
            return
        self._print(str(self._call(self.host.evaluate, consumer)))

    def do_publish(self, line):
        """publish <topic> <payload> [qos] [retain] -- publish a message."""
        args = shlex.split(line)
        if len(args) < 2:
            logger.error("Usage: publish <topic> <payload> [qos] [retain]")
            return
        try:
            qos = int(args[2]) if len(args) > 2 else 0
        except ValueError:
            logger.error(f"Invalid qos '{args[2]}'")
            return
        if qos not in BrokerConstants.QOS_LEVELS:
            logger.error(f"QoS must be one of {BrokerConstants.QOS_LEVELS}")
            return
        retain = len(args) > 3 and args[3].lower() in ("true", "1", "yes", "retain")
        sent = self._run_sync(self.bridge.publish(args[0], args[1], qos, retain), timeout=None)
        if not sent:
            self._print("publish dropped")

    def do_cache(self, line):
        """cache [topic] -- show cached values."""
        topic = line.strip()
        topics = [topic] if topic else self._call(self.bridge.cache.topics)
        for cached_topic in topics:
            self._print(f"{cached_topic}: {self._call(self.bridge.get_cached_value, cached_topic)}")

    def do_vars(self, line):
        """vars -- list variable definitions and values."""
        for definition in self.host.definitions:
            value = self.host.variables.get(definition.name)
            self._print(f"{definition.name} = {value}  ({definition.label})")

    def do_status(self, line):
        """status -- show the connection status."""
        message = self.bridge.lifecycle.status_message
        self._print(self.bridge.status.value + (f" ({message})" if message else ""))

    def do_quit(self, line):
        """Exit the CLI and close the broker connection."""
        logger.info("Exiting topicLoom CLI")
        try:
            self._run_sync(self.bridge.destroy())
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=2.0)
        return True

    do_exit = do_quit
    do_EOF = do_quit

    def default(self, line):
        logger.warning(f"Unknown command: {line}")

    def emptyline(self):
        """Do nothing on empty line."""
        return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="topicLoom CLI")
    parser.add_argument(
        "--protocol",
        type=str,
        default=BrokerConstants.DEFAULT_PROTOCOL,
        choices=BrokerConstants.PROTOCOLS,
        help="Broker protocol",
    )
    parser.add_argument("--host", type=str, default=BrokerConstants.DEFAULT_HOST, help="Broker host")
    parser.add_argument("--port", type=int, default=BrokerConstants.DEFAULT_PORT, help="Broker port")
    parser.add_argument("--user", type=str, default=None, help="Username")
    parser.add_argument("--password", type=str, default=None, help="Password")
    parser.add_argument("--client-id", type=str, default=None, help="Client identifier")
    parser.add_argument(
        "--matching",
        type=str,
        default=MatchingConstants.EXACT,
        choices=MatchingConstants.STRATEGIES,
        help="Topic matching strategy",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> BrokerConfig:
    return BrokerConfig(
        protocol=args.protocol,
        broker_ip=args.host,
        port=args.port,
        user=args.user,
        password=args.password,
        client_id=args.client_id,
        topic_matching=args.matching,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = config_from_args(args)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    logger.info("Starting topicLoom CLI")
    TopicLoomShell(config).cmdloop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
