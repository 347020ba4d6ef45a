"""Tests for MessageLog."""
import pytest

from roomchat.chat.errors import InvalidMessage
from roomchat.chat.message_log import MessageLog


@pytest.fixture
def log(clock):
    return MessageLog(clock=clock)


class TestAppend:
    """Tests for MessageLog.append."""

    def test_append_stores_escaped_body(self, log):
        message = log.append("c1", "Alice", "<b>hi</b>")
        assert message.body == "&lt;b&gt;hi&lt;/b&gt;"
        assert log.recent(1)[0].body == "&lt;b&gt;hi&lt;/b&gt;"

    def test_append_trims_body(self, log):
        assert log.append("c1", "Alice", "  hello  ").body == "hello"

    def test_append_assigns_unique_ids_and_timestamp(self, log, clock):
        first = log.append("c1", "Alice", "one")
        second = log.append("c1", "Alice", "two")
        assert first.id != second.id
        assert first.timestamp == clock.now

    def test_invalid_body_is_not_stored(self, log):
        with pytest.raises(InvalidMessage):
            log.append("c1", "Alice", "   ")
        with pytest.raises(InvalidMessage):
            log.append("c1", "Alice", "x" * 501)
        assert log.count() == 0

    def test_fifo_eviction_keeps_latest_hundred(self, log):
        for i in range(1, 106):
            log.append("c1", "Alice", f"message {i}")
        retained = log.recent(100)
        assert log.count() == 100
        assert retained[0].body == "message 6"
        assert retained[-1].body == "message 105"

    def test_custom_capacity(self, clock):
        log = MessageLog(max_messages=2, clock=clock)
        for body in ["a", "b", "c"]:
            log.append("c1", "Alice", body)
        assert [m.body for m in log.recent(10)] == ["b", "c"]


class TestReads:
    """Tests for recent, since, between and by_connection."""

    def test_recent_is_oldest_first(self, log):
        for body in ["one", "two", "three"]:
            log.append("c1", "Alice", body)
        assert [m.body for m in log.recent(2)] == ["two", "three"]
        assert [m.body for m in log.recent(50)] == ["one", "two", "three"]

    def test_recent_clamps_limit_to_one(self, log):
        log.append("c1", "Alice", "one")
        log.append("c1", "Alice", "two")
        assert [m.body for m in log.recent(0)] == ["two"]
        assert [m.body for m in log.recent(-5)] == ["two"]

    def test_recent_on_empty_log(self, log):
        assert log.recent(10) == []

    def test_since_is_strictly_greater(self, log, clock):
        first = log.append("c1", "Alice", "one")
        clock.advance(1)
        log.append("c1", "Alice", "two")
        clock.advance(1)
        log.append("c1", "Alice", "three")
        assert [m.body for m in log.since(first.timestamp)] == ["two", "three"]
        assert log.since(clock.now) == []

    def test_between_is_inclusive(self, log, clock):
        start = clock.now
        log.append("c1", "Alice", "one")
        clock.advance(1)
        log.append("c1", "Alice", "two")
        clock.advance(1)
        log.append("c1", "Alice", "three")
        assert [m.body for m in log.between(start, start + 1)] == ["one", "two"]

    def test_by_connection(self, log):
        log.append("c1", "Alice", "a1")
        log.append("c2", "Bob", "b1")
        log.append("c1", "Alice", "a2")
        log.append("c1", "Alice", "a3")
        assert [m.body for m in log.by_connection("c1")] == ["a1", "a2", "a3"]
        assert [m.body for m in log.by_connection("c1", limit=2)] == ["a2", "a3"]
        assert log.by_connection("c3") == []


class TestSearch:
    """Tests for MessageLog.search."""

    def test_search_matches_body_case_insensitively(self, log):
        log.append("c1", "Alice", "Hello World")
        log.append("c2", "Bob", "goodbye")
        results = log.search("hello", 10)
        assert [m.body for m in results] == ["Hello World"]

    def test_search_matches_nickname(self, log):
        log.append("c1", "Alice", "first")
        log.append("c2", "Bob", "second")
        assert [m.body for m in log.search("BOB", 10)] == ["second"]

    def test_search_is_most_recent_first_and_limited(self, log):
        for i in range(5):
            log.append("c1", "Alice", f"ping {i}")
        results = log.search("ping", 3)
        assert [m.body for m in results] == ["ping 4", "ping 3", "ping 2"]

    @pytest.mark.parametrize("term", ["", "   ", None])
    def test_blank_term_matches_nothing(self, log, term):
        log.append("c1", "Alice", "anything")
        assert log.search(term, 10) == []


class TestStatistics:
    """Tests for MessageLog.statistics."""

    def test_empty_statistics(self, log):
        stats = log.statistics()
        assert stats.count == 0
        assert stats.oldest is None
        assert stats.newest is None
        assert stats.avgLength == 0
        assert stats.perNicknameCounts == {}

    def test_statistics(self, log, clock):
        start = clock.now
        log.append("c1", "Alice", "ab")
        clock.advance(5)
        log.append("c2", "Bob", "abcd")
        log.append("c1", "Alice", "abcdefg")
        stats = log.statistics()
        assert stats.count == 3
        assert stats.oldest == start
        assert stats.newest == start + 5
        assert stats.avgLength == 4  # round(13 / 3)
        assert stats.perNicknameCounts == {"Alice": 2, "Bob": 1}

    def test_clear(self, log):
        log.append("c1", "Alice", "one")
        log.clear()
        assert log.count() == 0
        assert log.statistics().count == 0
