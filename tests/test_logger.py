"""Test the logging system."""
from typing import Iterator
from io import StringIO
from logging import Logger, getLogger as stdlib_getlogger
import logging

import pytest

from wadtools import logger as wad_logger
from wadtools.logger import CTX_STACK, context, get_logger, init_logging


@pytest.fixture
def pkg_logger(monkeypatch: pytest.MonkeyPatch) -> Iterator[Logger]:
    """Restore the package logger after the test."""
    log = stdlib_getlogger('wadtools')
    old_level = log.level
    monkeypatch.setattr(log, 'handlers', [])
    monkeypatch.setattr(wad_logger, '_console_handler', None)
    monkeypatch.delenv('WADTOOLS_DEBUG', raising=False)
    yield log
    log.setLevel(old_level)


def function(logger: Logger) -> None:
    """Test detecting different methods."""
    logger.info('Starting other function')
    logger.warning('Used wrong logic')
    logger.info('Finishing.')


def test_logging_output(pkg_logger: Logger) -> None:
    """Test the output of logging to the console."""
    stream = StringIO()
    root = init_logging(stream)
    root.info('hello there')
    root.debug('Not shown')
    root.error('Root error!:\n- Something failed.')
    get_logger('another').warning('A problem: {}', 45)
    function(get_logger('wad'))
    with context('First'):
        root.info('Message')
        with context('Second'):
            root.info('More messages, {name}!', name='E1M1')
        root.warning('A warning, with {braces} kept.')

    assert stream.getvalue().splitlines() == [
        '[I] wadtools: hello there',
        '[E] wadtools: Root error!:',
        ' | - Something failed.',
        ' |___',
        '',
        '[W] wadtools.another: A problem: 45',
        '[I] wadtools.wad: Starting other function',
        '[W] wadtools.wad: Used wrong logic',
        '[I] wadtools.wad: Finishing.',
        '[I] (First) wadtools: Message',
        '[I] (First, Second) wadtools: More messages, E1M1!',
        '[W] (First) wadtools: A warning, with {braces} kept.',
    ]


def test_other_loggers_ignored(pkg_logger: Logger) -> None:
    """Only messages from this package are shown."""
    stream = StringIO()
    init_logging(stream)
    logging.getLogger('some_app').warning('Not ours')
    get_logger('level').warning('Ours')
    assert stream.getvalue() == '[W] wadtools.level: Ours\n'


def test_reinit_replaces_handler(pkg_logger: Logger) -> None:
    """Calling init_logging() twice doesn't duplicate messages."""
    first, second = StringIO(), StringIO()
    init_logging(first)
    init_logging(second)
    assert len(pkg_logger.handlers) == 1
    get_logger().info('Once')
    assert first.getvalue() == ''
    assert second.getvalue() == '[I] wadtools: Once\n'


def test_debug_env(pkg_logger: Logger, monkeypatch: pytest.MonkeyPatch) -> None:
    """The environment variable enables debug output."""
    stream = StringIO()
    monkeypatch.setenv('WADTOOLS_DEBUG', '1')
    root = init_logging(stream)
    root.debug('Now shown')
    assert stream.getvalue() == '[D] wadtools: Now shown\n'


def test_logger_namespace() -> None:
    """Loggers are placed in the wadtools namespace."""
    assert get_logger('tool').name == 'wadtools.tool'
    assert get_logger('wadtools.wad').name == 'wadtools.wad'
    assert get_logger().name == 'wadtools'


def test_context_nesting() -> None:
    """Contexts are removed when the block exits, even on errors."""
    with pytest.raises(KeyError):
        with context('Outer'):
            with context('Inner'):
                assert CTX_STACK.get() == ['Outer', 'Inner']
                raise KeyError
    assert CTX_STACK.get() == []
