import pytest

from topicLoom.common.errors import ConfigError
from topicLoom.subscription.matcher import (
    ExactMatcher,
    WildcardMatcher,
    create_matcher,
)


class TestExactMatcher:
    def test_literal_only(self):
        matcher = ExactMatcher()
        assert matcher.matches("a/b", "a/b")
        assert not matcher.matches("a/+", "a/b")
        assert not matcher.is_pattern("a/+")


class TestWildcardMatcher:
    def setup_method(self):
        self.matcher = WildcardMatcher()

    @pytest.mark.parametrize(
        "pattern,topic,expected",
        [
            ("a/b", "a/b", True),
            ("a/+", "a/b", True),
            ("a/+", "a/b/c", False),
            ("a/+/c", "a/x/c", True),
            ("a/#", "a/b/c", True),
            ("a/#", "a", True),
            ("#", "a/b", True),
            ("+/b", "a/b", True),
            ("a/b", "a/c", False),
            ("a/b/c", "a/b", False),
            ("#", "$SYS/broker", False),
            ("+/broker", "$SYS/broker", False),
            ("$SYS/#", "$SYS/broker", True),
        ],
    )
    def test_matches(self, pattern, topic, expected):
        assert self.matcher.matches(pattern, topic) is expected

    def test_is_pattern(self):
        assert self.matcher.is_pattern("a/+/c")
        assert self.matcher.is_pattern("#")
        assert not self.matcher.is_pattern("a/b")
        assert not self.matcher.is_pattern("a+b/c")


def test_create_matcher():
    assert isinstance(create_matcher("exact"), ExactMatcher)
    assert isinstance(create_matcher("wildcard"), WildcardMatcher)
    with pytest.raises(ConfigError):
        create_matcher("regex")
