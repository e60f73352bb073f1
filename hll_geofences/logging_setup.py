#!/usr/bin/env python3
"""
structlog + emoji logging system setup
Structured logging for the geofence monitoring workers
"""

import os
import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from structlog.types import EventDict
import colorama


LEVEL_EMOJIS = {
    "DEBUG": "🔍",
    "INFO": "ℹ️",
    "WARNING": "⚠️",
    "ERROR": "❌",
    "CRITICAL": "🚨",
}

EVENT_EMOJIS = {
    "startup": "🏁",
    "shutdown": "🔚",
    "config_load": "⚙️",
    "rcon_connect": "🖥️",
    "rcon_disconnect": "🔌",
    "api_success": "✅",
    "api_fail": "🔴",
    "map_changed": "🗺️",
    "fences_resolved": "🧭",
    "player_outside": "🚧",
    "player_warned": "📣",
    "player_punished": "💀",
    "player_returned": "↩️",
    "restart_requested": "🔄",
    "idle_restart": "⏰",
    "metrics": "📊",
    "health_check": "🩺",
}


class EmojiEventProcessor:
    """Processor to add emojis based on events"""

    def __call__(self, logger: Any, name: str, event_dict: EventDict) -> EventDict:
        level = event_dict.get("level", "info").upper()
        level_emoji = LEVEL_EMOJIS.get(level, "📝")

        event_emoji = ""
        event_type = event_dict.get("event_type")
        if event_type and event_type in EVENT_EMOJIS:
            event_emoji = EVENT_EMOJIS[event_type]
        else:
            event_msg = str(event_dict.get("event", "")).lower()
            for keyword, emoji in EVENT_EMOJIS.items():
                if keyword.replace("_", " ") in event_msg:
                    event_emoji = emoji
                    break

        emoji_prefix = event_emoji or level_emoji

        original_event = event_dict.get("event", "")
        event_dict["event"] = f"{emoji_prefix} {original_event}"

        return event_dict


class ContextProcessor:
    """Processor to add context information"""

    def __call__(self, logger: Any, name: str, event_dict: EventDict) -> EventDict:
        event_dict["pid"] = os.getpid()
        event_dict["logger"] = name

        container_name = os.getenv("HOSTNAME")
        if container_name:
            event_dict["container"] = container_name

        return event_dict


class CustomConsoleRenderer:
    """Compact colored console renderer: level, message, then key=value pairs"""

    HIDDEN_KEYS = ("event", "level", "pid", "logger", "container", "event_type", "exception")

    def __call__(self, logger, name, event_dict):
        level = event_dict.get("level", "info").upper()
        event = event_dict.get("event", "")

        level_colors = {
            "DEBUG": colorama.Fore.CYAN,
            "INFO": colorama.Fore.BLUE,
            "WARNING": colorama.Fore.YELLOW,
            "ERROR": colorama.Fore.RED,
            "CRITICAL": colorama.Fore.MAGENTA,
        }

        color = level_colors.get(level, "")
        reset_color = colorama.Style.RESET_ALL

        extras = " ".join(
            f"{key}={value}" for key, value in event_dict.items()
            if key not in self.HIDDEN_KEYS
        )

        formatted_message = f"{color}[{level}]{reset_color} {event}"
        if extras:
            formatted_message = f"{formatted_message} {extras}"

        exception = event_dict.get("exception")
        if exception:
            formatted_message = f"{formatted_message}\n{exception}"

        return formatted_message


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[Union[str, Path]] = None,
    enable_console: bool = True,
    enable_file: bool = True,
    enable_json: bool = False,
    log_format_style: str = "simple",
) -> None:
    """Setup structlog logging system"""
    colorama.init()

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    handlers = []

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        handlers.append(console_handler)

    if enable_file and log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path / "geofences.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(numeric_level)
        handlers.append(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_path / "geofences_error.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=3,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(numeric_level)

    processors = [
        structlog.contextvars.merge_contextvars,
        ContextProcessor(),
        structlog.processors.add_log_level,
        EmojiEventProcessor(),
    ]

    if log_format_style == "simple":
        processors.append(structlog.processors.format_exc_info)
        processors.append(CustomConsoleRenderer())
    else:
        processors.append(structlog.processors.TimeStamper(fmt="ISO"))
        if enable_json:
            processors.append(structlog.processors.format_exc_info)
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(
                structlog.dev.ConsoleRenderer(
                    colors=enable_console and not os.getenv("NO_COLOR")
                )
            )

    # Route rendered lines through stdlib handlers so the rotating files see them
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Return structured logger instance"""
    return structlog.get_logger(name)


def log_server_event(logger: structlog.BoundLogger, event_type: str, message: str, **kwargs) -> None:
    """Log server event"""
    logger.info(message, event_type=event_type, **kwargs)


def log_player_event(logger: structlog.BoundLogger, event_type: str, player_name: str, **kwargs) -> None:
    """Log player event"""
    logger.info(f"Player {event_type.replace('player_', '').replace('_', ' ')}",
                event_type=event_type,
                player_name=player_name,
                **kwargs)


def log_api_call(logger: structlog.BoundLogger, command: str, status_code: int, duration_ms: float, **kwargs) -> None:
    """Log RCON command round trip"""
    event_type = "api_success" if 200 <= status_code < 300 else "api_fail"

    logger.debug(f"RCON command completed {command}",
                 event_type=event_type,
                 command=command,
                 status_code=status_code,
                 duration_ms=round(duration_ms, 1),
                 **kwargs)
