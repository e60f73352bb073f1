#!/usr/bin/env python3
"""
Common utility functions
Helper functions used across the geofence monitoring system
"""

import asyncio
import functools
from typing import Any, Callable, TypeVar


T = TypeVar('T')


class _KeepMissing(dict):
    """format_map mapping that leaves unknown placeholders untouched"""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_message(template: str, **values: Any) -> str:
    """
    Fill ``{name}`` placeholders in a player-facing message template

    Unknown placeholders survive as literal text instead of raising.

    Args:
        template: Message template from configuration
        **values: Placeholder values

    Returns:
        Rendered message
    """
    try:
        return template.format_map(_KeepMissing(values))
    except (ValueError, IndexError, AttributeError, KeyError, TypeError):
        # Stray braces, positional or attribute fields; send the template verbatim
        return template


def format_duration(seconds: float) -> str:
    """
    Format duration in seconds to human readable string

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "2h 30m 15s")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        remaining_seconds = int(seconds % 60)
        return f"{minutes}m {remaining_seconds}s"
    else:
        hours = int(seconds // 3600)
        remaining_minutes = int((seconds % 3600) // 60)
        remaining_seconds = int(seconds % 60)
        return f"{hours}h {remaining_minutes}m {remaining_seconds}s"


def validate_port(port: int) -> bool:
    """
    Validate if port number is in valid range

    Args:
        port: Port number to validate

    Returns:
        True if valid, False otherwise
    """
    return 1 <= port <= 65535


def retry_async(max_retries: int = 3, delay: float = 1.0,
                exceptions: tuple = (Exception,)):
    """
    Decorator for async function retry logic

    Args:
        max_retries: Maximum number of retry attempts
        delay: Delay between retries in seconds
        exceptions: Exception types that trigger a retry
    """
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_retries:
                        await asyncio.sleep(delay * (2 ** attempt))  # Exponential backoff
                    else:
                        break

            raise last_exception

        return wrapper
    return decorator


async def wait_for_stop(stop_event: asyncio.Event, interval: float) -> bool:
    """
    Sleep for one tick unless the stop event fires first

    Returns:
        True when the stop event is set and the caller should exit
    """
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=interval)
        return True
    except asyncio.TimeoutError:
        return False


__all__ = [
    'render_message',
    'format_duration',
    'validate_port',
    'retry_async',
    'wait_for_stop',
]
