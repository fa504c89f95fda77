import unittest

from topicLoom.common.config import BrokerConfig, TypeConverter
from topicLoom.common.errors import ConfigError


class TestBrokerConfig(unittest.TestCase):
    def test_defaults(self):
        config = BrokerConfig()
        self.assertEqual(config.url, "mqtt://localhost:1883")
        self.assertEqual(config.connect_options(), {})
        self.assertTrue(config.is_mqtt)
        self.assertEqual(config.topic_matching, "exact")

    def test_from_form_values(self):
        config = BrokerConfig.from_dict(
            {
                "protocol": "mqtts://",
                "broker_ip": "broker.example.com",
                "port": "8883",
                "user": "alice",
                "password": "secret",
                "client_id": "",
                "unrelated": "ignored",
            }
        )
        self.assertEqual(config.url, "mqtts://broker.example.com:8883")
        self.assertEqual(config.port, 8883)
        self.assertEqual(
            config.connect_options(), {"username": "alice", "password": "secret"}
        )

    def test_nats_protocol(self):
        config = BrokerConfig(protocol="nats://", port=4222)
        self.assertFalse(config.is_mqtt)
        self.assertEqual(config.url, "nats://localhost:4222")

    def test_password_redacted(self):
        config = BrokerConfig(user="alice", password="secret")
        self.assertNotIn("secret", repr(config))
        self.assertIn("REDACTED", str(config))

    def test_invalid_values(self):
        with self.assertRaises(ConfigError):
            BrokerConfig(protocol="http://")
        with self.assertRaises(ConfigError):
            BrokerConfig(port=70000)
        with self.assertRaises(ConfigError):
            BrokerConfig(broker_ip="")
        with self.assertRaises(ConfigError):
            BrokerConfig(topic_matching="regex")
        with self.assertRaises(ConfigError):
            BrokerConfig.from_dict({"port": "not-a-port"})


class TestTypeConverter(unittest.TestCase):
    def test_conversions(self):
        self.assertEqual(TypeConverter.validate_and_convert_value("port", "1883.0", int), 1883)
        self.assertTrue(TypeConverter.validate_and_convert_value("flag", "yes", bool))
        self.assertFalse(TypeConverter.validate_and_convert_value("flag", "off", bool))
        self.assertEqual(TypeConverter.validate_and_convert_value("name", 5, str), "5")

    def test_bool_is_not_an_int(self):
        self.assertEqual(TypeConverter.validate_and_convert_value("port", True, int), 1)


if __name__ == "__main__":
    unittest.main()
