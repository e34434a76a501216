import logging

import pytest
from unittest.mock import patch
from rich.logging import RichHandler

from llm_relay.service import logging as service_logging
from llm_relay.service.logging import get_service_logger, setup_service_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    service_logging._verbose = False
    service_logging._debug = False


def test_setup_uses_rich_handler():
    setup_service_logging()
    root = logging.getLogger()
    assert root.level == logging.INFO
    assert any(isinstance(h, RichHandler) for h in root.handlers)
    assert logging.getLogger("openai").level == logging.WARNING
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_debug_mode_uses_plain_format():
    setup_service_logging(debug=True)
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert not any(isinstance(h, RichHandler) for h in root.handlers)
    assert logging.getLogger("anthropic").level == logging.INFO


def test_run_events_are_logged(caplog):
    slog = get_service_logger("llm_relay.test")
    with caplog.at_level(logging.INFO, logger="llm_relay.test"):
        slog.run_started("0123456789abcdef", "my-chain", 2)
        slog.step_routed("0123456789abcdef", "gpt-4o", "user_openai", "user_key_first", "user_key", 42, 12.0)
        slog.run_failed("0123456789abcdef", "model gpt-4o failed", 30.0)

    messages = [r.getMessage() for r in caplog.records]
    assert "my-chain" in messages[0]
    assert "01234567" in messages[0]
    assert "user_openai" in messages[1] and "billed to user_key" in messages[1]
    assert caplog.records[2].levelno == logging.ERROR


def test_payloads_only_in_verbose_mode():
    slog = get_service_logger("llm_relay.test")
    with patch.object(slog, "_console") as console:
        slog.step_payload("Request", {"messages": ["x" * 1000]})
        console.print.assert_not_called()

        service_logging._verbose = True
        slog.step_payload("Request", {"messages": ["x" * 1000]})
        printed = console.print.call_args_list[-1].args[0]
        assert "..." in printed
        assert len(printed) < 1000
