"""
Utility functions and helpers
Message rendering, retry and loop timing helpers
"""

from .helpers import (
    render_message, format_duration, validate_port, retry_async, wait_for_stop
)

__all__ = [
    'render_message', 'format_duration', 'validate_port', 'retry_async',
    'wait_for_stop'
]
