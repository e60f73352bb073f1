"""
Hell Let Loose geofence enforcement
Main package initialization
"""

__version__ = "1.0.0"

from .config_loader import get_config, GeofenceConfig

__all__ = ['get_config', 'GeofenceConfig']
