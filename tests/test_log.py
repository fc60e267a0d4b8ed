"""Tests for logging configuration."""

import pytest
import structlog

from stackplan import GraphBuilder
from stackplan.log import configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def test_json_events_on_stderr(network_ctx, capsys):
    """Build events are rendered as JSON lines with key-value fields."""
    configure_logging("INFO", json=True)
    GraphBuilder().build(network_ctx)
    err = capsys.readouterr().err
    assert '"event": "Built plan"' in err
    assert '"resources": 5' in err


def test_level_filters_events(network_ctx, capsys):
    configure_logging("WARNING")
    GraphBuilder().build(network_ctx)
    assert "Built plan" not in capsys.readouterr().err


def test_unknown_level():
    with pytest.raises(ValueError, match="Unknown log level"):
        configure_logging("LOUD")
