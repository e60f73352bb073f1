"""
Client management package
RCON communication with Hell Let Loose servers
"""

from .rcon_client import RconConnection, RconError, RconConnectionError, RconCommandError
from .connection_pool import ConnectionPool

__all__ = [
    'RconConnection', 'RconError', 'RconConnectionError', 'RconCommandError',
    'ConnectionPool'
]
