#!/usr/bin/env python3
"""
Error Handling Utilities
Shared error types and decorators for the conversation intelligence pipeline.
"""

import logging
import os
import sys
import time
import traceback
from functools import wraps
from typing import Any, Callable, Dict, Optional, Type

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Raised when a remote HTTP API call fails"""
    def __init__(self, message: str, status_code: Optional[int] = None, api_response: Optional[Dict[str, Any]] = None):
        self.message = message
        self.status_code = status_code
        self.api_response = api_response
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.status_code:
            return f"API Error ({self.status_code}): {self.message}"
        return f"API Error: {self.message}"


class DatabaseError(Exception):
    """Raised when a SQLite operation fails"""
    def __init__(self, message: str, query: Optional[str] = None):
        self.message = message
        self.query = query
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.query:
            query_str = self.query[:100] + "..." if len(self.query) > 100 else self.query
            return f"Database Error in query '{query_str}': {self.message}"
        return f"Database Error: {self.message}"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing"""
    pass


def retry(max_attempts: int = 3, delay: float = 1, backoff: float = 2.0,
          exceptions: tuple = (Exception,)):
    """
    Retry decorator with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay in seconds
        backoff: Multiplier applied to the delay after each failure
        exceptions: Exception types that trigger a retry

    Returns:
        Decorated function
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    logger.warning(f"Retry attempt {attempt}/{max_attempts} for {func.__name__}: {str(e)}")
                    if attempt == max_attempts:
                        raise
                    time.sleep(wait)
                    wait *= backoff
        return wrapper
    return decorator


def graceful_exit(error_code: int = 1, cleanup_func: Optional[Callable] = None):
    """
    Decorator for CLI entry points: exit cleanly on Ctrl+C, log and exit
    with error_code on anything else.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt:
                logger.info("Interrupted by user")
                if cleanup_func:
                    cleanup_func()
                sys.exit(0)
            except Exception as e:
                logger.error(f"Fatal error in {func.__name__}: {str(e)}")
                logger.debug(traceback.format_exc())
                if cleanup_func:
                    cleanup_func()
                sys.exit(error_code)
        return wrapper
    return decorator


def setup_logger(log_file: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Configure root logging with a console handler and an optional file handler.

    Args:
        log_file: Path to log file
        level: Logging level

    Returns:
        The root logger
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )
    return logging.getLogger()


def exception_mapper(exception_map: Dict[Type[Exception], Type[Exception]]):
    """
    Decorator that re-raises selected exception types as another type

    Args:
        exception_map: Source exception type -> target exception type
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                for source_exception, target_exception in exception_map.items():
                    if isinstance(e, source_exception) and not isinstance(e, target_exception):
                        raise target_exception(str(e)) from e
                raise
        return wrapper
    return decorator
