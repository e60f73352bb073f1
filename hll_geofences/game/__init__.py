"""
Game model package
Sessions, players, grid projection and fences
"""

from .models import Faction, Grid, Player, Session, Side, WorldPosition
from .fence import Fence, FenceCondition, applicable_fences, fence_from_dict

__all__ = [
    'Faction', 'Grid', 'Player', 'Session', 'Side', 'WorldPosition',
    'Fence', 'FenceCondition', 'applicable_fences', 'fence_from_dict'
]
