"""Tests for structured logging formatters."""
import json
import logging

import pytest

from qpolicy.logging_config import HumanFormatter, JSONFormatter, StructuredLogger, get_logger


def make_record(msg="Q-value updated", **attrs):
    record = logging.LogRecord("qpolicy.engine", logging.INFO, "", 0, msg, (), None)
    for name, value in attrs.items():
        setattr(record, name, value)
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(make_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "qpolicy.engine"
        assert data["message"] == "Q-value updated"
        assert "ts" in data

    def test_structured_fields(self):
        record = make_record(
            policy_key="rl-policy",
            state_key='{"task":"lint"}',
            action="retry",
            subsystem="learning",
            event_type="policy_updated",
            latency_ms=1.5,
            extra_data={"reward": 1.0},
        )
        data = json.loads(JSONFormatter().format(record))
        assert data["policy_key"] == "rl-policy"
        assert data["state_key"] == '{"task":"lint"}'
        assert data["action"] == "retry"
        assert data["subsystem"] == "learning"
        assert data["event"] == "policy_updated"
        assert data["latency_ms"] == 1.5
        assert data["reward"] == 1.0


class TestHumanFormatter:
    """Tests for HumanFormatter."""

    def test_prefix_and_latency(self):
        record = make_record(subsystem="persistence", policy_key="rl-policy", latency_ms=2.0)
        line = HumanFormatter(use_colors=False).format(record)
        assert "[persistence]" in line
        assert "policy=rl-policy" in line
        assert line.endswith("Q-value updated (2.0ms)")


class Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    base = logging.getLogger("qpolicy.test.structured")
    handler = Capture()
    base.addHandler(handler)
    base.setLevel(logging.DEBUG)
    base.propagate = False
    yield base, handler.records
    base.removeHandler(handler)


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_event_sets_attributes(self, captured):
        base, records = captured
        logger = StructuredLogger(base)
        logger.event("episode_ended", "Episode closed", policy_key="rl-policy", steps=3)
        logger.latency("save", 4.2)

        assert records[0].event_type == "episode_ended"
        assert records[0].policy_key == "rl-policy"
        assert records[0].extra_data == {"steps": 3}
        assert records[0].levelno == logging.INFO
        assert records[1].latency_ms == 4.2
        assert records[1].levelno == logging.DEBUG

    def test_bound_fields_on_every_record(self, captured):
        base, records = captured
        logger = get_logger(base.name, policy_key="rl-policy", subsystem="learning")
        logger.info("plain message", extra={"state_key": "s1"})
        logger.event("policy_saved", "saved", subsystem="persistence")

        assert records[0].policy_key == "rl-policy"
        assert records[0].subsystem == "learning"
        assert records[0].state_key == "s1"
        assert records[1].policy_key == "rl-policy"
        assert records[1].subsystem == "persistence"

    def test_event_level_override(self, captured):
        base, records = captured
        StructuredLogger(base).event("policy_updated", "updated", level=logging.DEBUG)
        assert records[0].levelno == logging.DEBUG

    def test_disabled_level_skipped(self, captured):
        base, records = captured
        base.setLevel(logging.INFO)
        StructuredLogger(base).latency("save", 1.0)
        assert records == []

    def test_formats_as_json(self, captured):
        base, records = captured
        get_logger(base.name, policy_key="rl-policy").event(
            "policy_updated", "updated", state_key="s", action="a", reward=1.0,
        )
        data = json.loads(JSONFormatter().format(records[0]))
        assert data["policy_key"] == "rl-policy"
        assert data["event"] == "policy_updated"
        assert data["action"] == "a"
        assert data["reward"] == 1.0
