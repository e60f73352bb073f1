from hll_geofences.game.models import Faction, Grid, Player, Session, Side, WorldPosition

from conftest import cell_center


def test_cell_center_projects_to_numpad_five():
    session = Session(map_name="foy_warfare")
    assert session.grid(cell_center("A", 1)) == Grid("A", 1, 5)
    assert session.grid(cell_center("E", 7)) == Grid("E", 7, 5)
    assert session.grid(cell_center("J", 10)) == Grid("J", 10, 5)


def test_grid_string_form():
    assert str(Grid("E", 5, 7)) == "E5-7"


def test_grid_numpad_corners():
    session = Session(map_name="foy_warfare")
    # Lowest x and y inside cell A1
    assert session.grid(WorldPosition(-99000, -99000, 1)).numpad == 7
    # Highest x, lowest y inside cell A1
    assert session.grid(WorldPosition(-81000, -99000, 1)).numpad == 9
    assert session.grid(WorldPosition(-99000, -81000, 1)).numpad == 1


def test_grid_clamps_positions_outside_the_map():
    session = Session(map_name="foy_warfare")
    grid = session.grid(WorldPosition(500000, -500000, 1))
    assert grid.column == "J"
    assert grid.row == 1


def test_origin_is_not_spawned():
    assert not WorldPosition(0, 0, 0).is_spawned()
    assert WorldPosition(0, 0, 1).is_spawned()
    assert not WorldPosition.from_dict(None).is_spawned()


def test_faction_sides():
    assert Faction.from_index(0).side is Side.AXIS
    assert Faction.from_index(4).side is Side.AXIS
    assert Faction.from_index(1).side is Side.ALLIES
    assert Faction.from_index("3").side is Side.ALLIES
    assert Faction.from_index(None) is Faction.UNKNOWN
    assert Faction.from_index(42).side is None


def test_player_from_dict():
    player = Player.from_dict({
        "iD": "76561198000000000",
        "name": "Able",
        "team": 1,
        "worldPosition": {"x": 1.5, "y": -2.0, "z": 3.0},
    })
    assert player.id == "76561198000000000"
    assert player.name == "Able"
    assert player.side is Side.ALLIES
    assert player.position == WorldPosition(1.5, -2.0, 3.0)


def test_session_from_dict_and_value_lookup():
    session = Session.from_dict({
        "mapName": "Carentan",
        "mapId": "carentan_warfare",
        "playerCount": 42,
        "maxPlayerCount": 100,
        "weather": "rain",
    })
    assert session.map_name == "Carentan"
    assert session.value("player_count") == 42
    assert session.value("mapId") == "carentan_warfare"
    assert session.value("weather") == "rain"
    assert session.value("missing") is None


def test_north_africa_factions_are_opposed():
    # DAK and B8A face each other on the same maps
    assert Faction.DAK.side is not Faction.B8A.side
