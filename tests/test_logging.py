"""
Tests for structured logging functionality.

This module tests the formatter, the command tracking filter and the logging
setup helpers used by the shell.
"""

import json
import logging
from io import StringIO
from unittest.mock import Mock, patch

import pytest

from cbshell.config import get_settings
from cbshell.utils.logging import (
    CommandTrackingFilter,
    LogContext,
    StructuredFormatter,
    clear_command_context,
    configure_logger_levels,
    get_command_context,
    get_logger,
    set_command_context,
    setup_logging
)


@pytest.fixture
def restore_root_logger():
    """Put the root logger's handlers and level back after the test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield root_logger
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)


class TestStructuredLogging:
    """Test structured logging functionality."""

    def setup_method(self):
        """Set up test environment."""
        clear_command_context()

        self.log_buffer = StringIO()
        self.test_logger = logging.getLogger('cbshell.tests.structured')
        self.test_logger.setLevel(logging.DEBUG)
        self.test_logger.propagate = False

        for handler in self.test_logger.handlers[:]:
            self.test_logger.removeHandler(handler)

        handler = logging.StreamHandler(self.log_buffer)
        handler.setFormatter(StructuredFormatter())
        self.test_logger.addHandler(handler)

    def teardown_method(self):
        """Clean up test environment."""
        clear_command_context()

    def last_entry(self):
        return json.loads(self.log_buffer.getvalue().strip().splitlines()[-1])

    def test_structured_formatter(self):
        """Test structured JSON formatter."""
        self.test_logger.info("Fan-out finished", extra={'targets': 3, 'kind': 'query'})

        entry = self.last_entry()
        assert entry['level'] == 'INFO'
        assert entry['logger'] == 'cbshell.tests.structured'
        assert entry['message'] == 'Fan-out finished'
        assert entry['function'] == 'test_structured_formatter'
        assert entry['targets'] == 3
        assert entry['kind'] == 'query'
        assert 'timestamp' in entry
        assert 'command_context' not in entry

    def test_command_context_is_included(self):
        set_command_context(command_id='cmd-1', command='buckets')

        self.test_logger.warning("prod-b: timeout")

        assert self.last_entry()['command_context'] == {'command_id': 'cmd-1', 'command': 'buckets'}

    def test_exception_is_formatted(self):
        try:
            raise ValueError("bad payload")
        except ValueError:
            self.test_logger.exception("Operation failed")

        entry = self.last_entry()
        assert entry['exception']['type'] == 'ValueError'
        assert entry['exception']['message'] == 'bad payload'
        assert 'Traceback' in entry['exception']['traceback']

    def test_non_serializable_extras(self):
        self.test_logger.info("object extra", extra={'target': object()})

        assert self.last_entry()['target'].startswith('<object object')


class TestCommandContext:
    """Test command context helpers."""

    def teardown_method(self):
        clear_command_context()

    def test_set_merges_context(self):
        set_command_context(command_id='cmd-2')
        set_command_context(command='doc get')

        assert get_command_context() == {'command_id': 'cmd-2', 'command': 'doc get'}

    def test_clear(self):
        set_command_context(command_id='cmd-3')
        clear_command_context()

        assert get_command_context() == {}

    def test_tracking_filter_adds_context(self):
        set_command_context(command_id='cmd-4', command='nodes')
        record = logging.LogRecord('cbshell', logging.INFO, __file__, 1, "message", None, None)

        assert CommandTrackingFilter().filter(record) is True
        assert record.command_id == 'cmd-4'
        assert record.command == 'nodes'

    def test_tracking_filter_keeps_existing_attributes(self):
        set_command_context(command='nodes')
        record = logging.LogRecord('cbshell', logging.INFO, __file__, 1, "message", None, None)
        record.command = 'users'

        CommandTrackingFilter().filter(record)

        assert record.command == 'users'


class TestLogContext:
    """Test LogContext context manager."""

    @patch('cbshell.utils.logging.get_logger')
    def test_log_context_success(self, mock_get_logger):
        """Test successful operation is logged at debug level."""
        mock_logger = Mock()
        mock_get_logger.return_value = mock_logger

        with LogContext("fan_out", command_id="abc", targets=2):
            pass

        mock_logger.debug.assert_called_once()
        extra = mock_logger.debug.call_args.kwargs['extra']
        assert extra['operation'] == 'fan_out'
        assert extra['command_id'] == 'abc'
        assert extra['status'] == 'success'
        assert extra['targets'] == 2
        assert extra['duration_ms'] >= 0

    @patch('cbshell.utils.logging.get_logger')
    def test_log_context_error(self, mock_get_logger):
        """Test failed operation is logged as a warning and the error propagates."""
        mock_logger = Mock()
        mock_get_logger.return_value = mock_logger

        with pytest.raises(RuntimeError):
            with LogContext("fan_out"):
                raise RuntimeError("registry unavailable")

        mock_logger.warning.assert_called_once()
        extra = mock_logger.warning.call_args.kwargs['extra']
        assert extra['status'] == 'error'
        assert extra['error_type'] == 'RuntimeError'
        assert extra['error_message'] == 'registry unavailable'
        assert len(extra['command_id']) == 8


class TestSetupLogging:
    """Test logging setup."""

    def test_plain_setup(self, restore_root_logger):
        setup_logging(log_level="INFO", structured=False)

        assert restore_root_logger.level == logging.INFO
        assert len(restore_root_logger.handlers) == 1
        handler = restore_root_logger.handlers[0]
        assert not isinstance(handler.formatter, StructuredFormatter)
        assert any(isinstance(f, CommandTrackingFilter) for f in handler.filters)

    def test_structured_setup_without_tracking(self, restore_root_logger):
        setup_logging(log_level="debug", structured=True, enable_command_tracking=False)

        handler = restore_root_logger.handlers[0]
        assert restore_root_logger.level == logging.DEBUG
        assert isinstance(handler.formatter, StructuredFormatter)
        assert handler.filters == []

    def test_defaults_come_from_settings(self, restore_root_logger):
        setup_logging()

        assert logging.getLevelName(restore_root_logger.level) == get_settings().effective_log_level()

    def test_noisy_loggers_are_quieted(self):
        logging.getLogger('httpx').setLevel(logging.DEBUG)

        configure_logger_levels()

        assert logging.getLogger('httpx').level == logging.WARNING
        assert logging.getLogger('httpcore').level == logging.WARNING

    def test_get_logger(self):
        assert get_logger('cbshell.shell') is logging.getLogger('cbshell.shell')
