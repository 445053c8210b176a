"""
Wrapper around logging to provide our own functionality.

Messages are formatted with str.format() instead of %, and a context stack can tag messages
with the file or level currently being read.
"""
from typing import (
    IO, TYPE_CHECKING, Any, Dict, Generator, List, Mapping, Optional, Tuple, Type, Union, cast,
)
from types import TracebackType
import contextlib
import contextvars
import logging
import os
import sys


__all__ = ['LoggerAdapter', 'get_logger', 'init_logging', 'context', 'DEBUG_ENV']
# Only generic in stubs!
CTX_STACK: 'contextvars.ContextVar[List[str]]' = contextvars.ContextVar('wadtools_logger')
#: Set this environment variable to ``1`` to show debug messages from :py:func:`init_logging`.
DEBUG_ENV: str = 'WADTOOLS_DEBUG'
#: The root of our logger hierarchy.
ROOT_NAME: str = 'wadtools'

# The handler added by init_logging(), so it can be replaced.
_console_handler: Optional[logging.Handler] = None


class LogMessage:
    """Allow using str.format() in logging messages.

    The __str__() method performs the joining.
    """
    fmt: str
    args: Tuple[object, ...]
    kwargs: Dict[str, object]
    has_args: bool

    def __init__(
        self,
        fmt: str,
        args: Tuple[object, ...],
        kwargs: Dict[str, object],
    ) -> None:
        self.fmt = fmt
        self.args = args
        self.kwargs = kwargs
        self.has_args = bool(kwargs or args)

    def __str__(self) -> str:
        """Format the string, indenting continuation lines."""
        # Only format if we have arguments, so { or } can be used in regular messages.
        if self.has_args:
            self.fmt = str(self.fmt).format(*self.args, **self.kwargs)
            # Don't repeat the formatting, and don't keep refs to the args.
            del self.args, self.kwargs
            self.has_args = False
        msg = str(self.fmt)

        if '\n' not in msg:
            return msg
        lines = msg.split('\n')
        if lines[-1].isspace():
            del lines[-1]
        return '\n | '.join(lines) + '\n |___\n'


_SysExcInfoType = Union[
    Tuple[Type[BaseException], BaseException, Optional[TracebackType]],
    Tuple[None, None, None]
]
if TYPE_CHECKING:  # Only generic in stubs.
    _AdapterBase = logging.LoggerAdapter[logging.Logger]
else:
    _AdapterBase = logging.LoggerAdapter


class LoggerAdapter(_AdapterBase):
    """Fix loggers to use str.format(), and tag messages with the current context."""
    logger: logging.Logger

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        logging.LoggerAdapter.__init__(self, logger, extra={})

    def log(
        self,
        level: int,
        msg: Any,
        *args: Any,
        exc_info: Union[None, bool, _SysExcInfoType, BaseException] = None,
        stack_info: bool = False,
        extra: Optional[Mapping[str, object]] = None,
        stacklevel: int = 0,
        **kwargs: Any,
    ) -> None:
        """This version of :external:py:meth:`~logging.Logger.log()` is for :external:py:meth:`str.format()` compatibility.

        The message is wrapped in a :py:class:`LogMessage` object, which is given the
        ``args`` and ``kwargs``.
        """
        if not self.isEnabledFor(level):
            return
        new_extra = {} if extra is None else dict(extra)
        new_extra['wadtools_context'] = _current_context()

        # Handle some extra indirection in 3.10+
        if sys.version_info >= (3, 10):
            stacklevel += 2

        # noinspection PyProtectedMember
        self.logger._log(
            level,
            LogMessage(str(msg), args, kwargs),
            (),  # No positional arguments, we do the formatting through LogMessage.
            extra=new_extra,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=stacklevel,
        )

    def __getattr__(self, attr: str) -> Any:
        """Delegate unknown methods to the logger."""
        return getattr(self.logger, attr)


def _current_context() -> str:
    """Produce the context tag to put in front of messages."""
    stack = CTX_STACK.get(None)
    return f' ({", ".join(stack)})' if stack else ''


class Formatter(logging.Formatter):
    """Ensure a default context is set in every record, including ones from other libraries."""
    def format(self, record: logging.LogRecord) -> str:
        record.__dict__.setdefault('wadtools_context', '')
        return super().format(record)


def init_logging(stream: Optional[IO[str]] = None) -> logging.Logger:
    """Show messages from this package on the console.

    A single handler is attached to the ``wadtools`` logger, so the application's own root
    handlers are left alone. Calling this again replaces the handler. Debug messages are only
    shown if :py:data:`DEBUG_ENV` is set to ``1``.

    :param stream: Where to write messages, by default :external:py:data:`sys.stderr`.
    """
    global _console_handler
    pkg_logger = logging.getLogger(ROOT_NAME)
    if _console_handler is not None:
        pkg_logger.removeHandler(_console_handler)

    handler = logging.StreamHandler(sys.stderr if stream is None else stream)
    handler.setFormatter(Formatter(
        # One letter for level name, then the module the message came from.
        '[{levelname[0]}]{wadtools_context} {name}: {message}',
        style='{',
    ))
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(
        logging.DEBUG
        if os.environ.get(DEBUG_ENV, '0') == '1' else
        logging.INFO
    )
    _console_handler = handler
    return get_logger()


def get_logger(name: str = '') -> logging.Logger:
    """Get the named logger object.

    This puts the logger into the ``wadtools`` namespace, and wraps it to
    use :external:py:meth:`str.format()` instead of ``%`` formatting.
    Module names already inside the namespace are used as-is.
    """
    if not name:
        log = logging.getLogger(ROOT_NAME)
    elif name == ROOT_NAME or name.startswith(ROOT_NAME + '.'):
        log = logging.getLogger(name)
    else:
        log = logging.getLogger(f'{ROOT_NAME}.{name}')
    return cast(logging.Logger, LoggerAdapter(log))


@contextlib.contextmanager
def context(name: str) -> Generator[str, None, None]:
    """Context manager to allow specifying additional information for any logs contained in this block.

    The specified string gets included in the log messages.
    """
    try:
        stack = CTX_STACK.get()
    except LookupError:
        stack = []
        CTX_STACK.set(stack)
    stack.append(name)
    try:
        yield name
    finally:
        popped = stack.pop()
        assert popped is name, f'Popped incorrect value: pop({popped!r}) != ctx({name!r})!'
