#!/usr/bin/env python3
"""
Hell Let Loose game model
Session, player snapshots and grid projection of world positions
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


GRID_COLUMNS = "ABCDEFGHIJ"
GRID_ROWS = 10
# World units are centimeters; a grid cell is 200m wide
GRID_CELL_SIZE = 20000.0
MAP_HALF_EXTENT = GRID_CELL_SIZE * GRID_ROWS / 2

# Keypad layout inside a cell, north row first
NUMPAD_LAYOUT = (
    (7, 8, 9),
    (4, 5, 6),
    (1, 2, 3),
)


class Side(Enum):
    """Team side a fence list applies to"""
    AXIS = "axis"
    ALLIES = "allies"


class Faction(Enum):
    """Factions as reported by the server's team index"""
    GER = 0
    US = 1
    RUS = 2
    GB = 3
    DAK = 4
    B8A = 5
    CW = 6
    UNKNOWN = -1

    @classmethod
    def from_index(cls, value: Any) -> "Faction":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.UNKNOWN

    @property
    def side(self) -> Optional[Side]:
        return FACTION_SIDES.get(self)


FACTION_SIDES = {
    Faction.GER: Side.AXIS,
    Faction.DAK: Side.AXIS,
    Faction.US: Side.ALLIES,
    Faction.RUS: Side.ALLIES,
    Faction.GB: Side.ALLIES,
    Faction.B8A: Side.ALLIES,
    Faction.CW: Side.ALLIES,
}


@dataclass(frozen=True)
class WorldPosition:
    """Player position in world units"""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WorldPosition":
        data = data or {}
        return cls(
            x=float(data.get("x", 0.0) or 0.0),
            y=float(data.get("y", 0.0) or 0.0),
            z=float(data.get("z", 0.0) or 0.0),
        )

    def is_spawned(self) -> bool:
        """The server reports the origin for dead, redeploying or spectating players"""
        return not (self.x == 0 and self.y == 0 and self.z == 0)


@dataclass(frozen=True)
class Grid:
    """Position on the map's reporting grid, e.g. ``E5-7``"""
    column: str
    row: int
    numpad: int

    def __str__(self) -> str:
        return f"{self.column}{self.row}-{self.numpad}"


def _cell_index(value: float) -> int:
    index = math.floor((value + MAP_HALF_EXTENT) / GRID_CELL_SIZE)
    return min(max(index, 0), GRID_ROWS - 1)


def _numpad_index(value: float) -> int:
    offset = (value + MAP_HALF_EXTENT) % GRID_CELL_SIZE
    index = math.floor(offset / (GRID_CELL_SIZE / 3))
    return min(max(index, 0), 2)


@dataclass
class Session:
    """Snapshot of the server's current match"""
    map_name: str
    map_id: str = ""
    server_name: str = ""
    game_mode: str = ""
    player_count: int = 0
    max_player_count: int = 0
    allied_player_count: int = 0
    axis_player_count: int = 0
    remaining_match_time: int = 0
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            map_name=str(data.get("mapName", "")),
            map_id=str(data.get("mapId", "")),
            server_name=str(data.get("serverName", "")),
            game_mode=str(data.get("gameMode", "")),
            player_count=int(data.get("playerCount", 0) or 0),
            max_player_count=int(data.get("maxPlayerCount", 0) or 0),
            allied_player_count=int(data.get("alliedPlayerCount", 0) or 0),
            axis_player_count=int(data.get("axisPlayerCount", 0) or 0),
            remaining_match_time=int(data.get("remainingMatchTime", 0) or 0),
            raw=dict(data),
        )

    def value(self, key: str) -> Any:
        """Look up a session field by its config name (snake_case or server camelCase)"""
        if key in self.__dataclass_fields__ and key != "raw":
            return getattr(self, key)
        return self.raw.get(key)

    def grid(self, position: WorldPosition) -> Grid:
        """Project a world position onto this map's grid"""
        column = GRID_COLUMNS[_cell_index(position.x)]
        row = _cell_index(position.y) + 1
        numpad = NUMPAD_LAYOUT[_numpad_index(position.y)][_numpad_index(position.x)]
        return Grid(column=column, row=row, numpad=numpad)


@dataclass
class Player:
    """Per-poll player snapshot"""
    id: str
    name: str
    faction: Faction
    position: WorldPosition

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Player":
        return cls(
            id=str(data.get("iD") or data.get("id") or data.get("playerId") or ""),
            name=str(data.get("name", "")),
            faction=Faction.from_index(data.get("team")),
            position=WorldPosition.from_dict(data.get("worldPosition")),
        )

    @property
    def side(self) -> Optional[Side]:
        return self.faction.side
