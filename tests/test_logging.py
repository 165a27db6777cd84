"""Tests for routing the cody logger through Rich."""

import logging

from cody import fmt


def test_debug_toggle_sets_level():
    logger = logging.getLogger("cody")
    fmt.configure_logging(True)
    assert logger.level == logging.DEBUG
    fmt.configure_logging(False)
    assert logger.level == logging.WARNING


def test_single_handler_installed():
    fmt.configure_logging(False)
    fmt.configure_logging(True)
    fmt.configure_logging(False)
    handlers = [h for h in logging.getLogger("cody").handlers if h is fmt._log_handler]
    assert len(handlers) == 1


def test_module_loggers_are_children():
    from cody import agent, gate

    assert agent.logger.name.startswith("cody.")
    assert gate.logger.name.startswith("cody.")
