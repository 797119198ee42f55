from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple


DIVISIONS: Tuple[str, ...] = ("Division 1", "Division 2", "Division 3", "Division 4", "New")
RACE_TYPES: Tuple[str, ...] = ("qualification", "heat", "final")
CHANGE_TYPES: Tuple[str, ...] = ("promotion", "demotion", "division_start", "mid_season_join")
DRIVER_STATUSES: Tuple[str, ...] = ("ACTIVE", "INACTIVE", "BANNED")
ROUND_STATUSES: Tuple[str, ...] = ("upcoming", "completed", "cancelled")

OPEN_DIVISION = "Open"
OPEN_RACE_DIVISIONS = frozenset({"Open", "Division 3 (Open)", "Division 4 (Open)"})
OPEN_DRIVER_DIVISIONS = frozenset({"Division 3", "Division 4", "New", "Open"})
ALL_FILTER = "All"

PRE_SEASON_PREFIX = "pre-season-"
POINTS_DECIMALS = 2


@dataclass(frozen=True)
class PointsRow:
    standard: int
    major: int
    minor: int


# Position -> (standard, major, minor).
# standard: final with no heat in the round, major: final after heats, minor: heats.
POINTS_TABLE: Dict[int, PointsRow] = {
    1: PointsRow(75, 60, 15),
    2: PointsRow(70, 58, 12),
    3: PointsRow(65, 56, 10),
    4: PointsRow(62, 54, 9),
    5: PointsRow(60, 52, 8),
    6: PointsRow(58, 50, 7),
    7: PointsRow(56, 48, 6),
    8: PointsRow(54, 46, 5),
    9: PointsRow(52, 44, 4),
    10: PointsRow(50, 42, 3),
    11: PointsRow(48, 40, 2),
    12: PointsRow(46, 38, 1),
    13: PointsRow(44, 36, 1),
    14: PointsRow(42, 34, 1),
    15: PointsRow(40, 32, 1),
    16: PointsRow(38, 30, 1),
    17: PointsRow(36, 28, 1),
    18: PointsRow(34, 26, 1),
    19: PointsRow(32, 24, 1),
    20: PointsRow(30, 22, 1),
    21: PointsRow(28, 20, 1),
    22: PointsRow(26, 18, 1),
    23: PointsRow(24, 16, 1),
    24: PointsRow(22, 15, 1),
    25: PointsRow(20, 14, 1),
    26: PointsRow(19, 13, 1),
    27: PointsRow(18, 12, 1),
    28: PointsRow(17, 11, 1),
    29: PointsRow(16, 10, 1),
    30: PointsRow(15, 9, 1),
    31: PointsRow(14, 8, 1),
    32: PointsRow(13, 7, 1),
    33: PointsRow(12, 6, 1),
    34: PointsRow(11, 5, 1),
    35: PointsRow(10, 4, 1),
    36: PointsRow(9, 3, 1),
    37: PointsRow(8, 2, 1),
    38: PointsRow(7, 1, 1),
    39: PointsRow(6, 1, 1),
    40: PointsRow(5, 1, 1),
    41: PointsRow(4, 1, 1),
    42: PointsRow(3, 1, 1),
    43: PointsRow(2, 1, 1),
    44: PointsRow(2, 1, 1),
    45: PointsRow(2, 1, 1),
    46: PointsRow(2, 1, 1),
    47: PointsRow(2, 1, 1),
    48: PointsRow(2, 1, 1),
    49: PointsRow(2, 1, 1),
    50: PointsRow(2, 1, 1),
}
MAX_POINTS_POSITION = max(POINTS_TABLE)


def _last_position_with_min(column: str) -> int:
    """
    Last table position that still awards the column's minimum value.
    Anything past it scores nothing.
    """
    minimum = min(getattr(row, column) for row in POINTS_TABLE.values())
    for position in sorted(POINTS_TABLE, reverse=True):
        if getattr(POINTS_TABLE[position], column) == minimum:
            return position
    return 0


LAST_POINTS_POSITION: Dict[str, int] = {
    column: _last_position_with_min(column) for column in ("standard", "major", "minor")
}


def points_column(race_type: str, round_has_heat: bool) -> Optional[str]:
    if race_type == "final":
        return "major" if round_has_heat else "standard"
    if race_type == "heat":
        return "minor"
    return None


def points_for_position(position: int, race_type: str = "qualification", round_has_heat: bool = False) -> int:
    """
    Table points for a finishing position.
    Qualification never scores; finals use the major scale when the round also ran heats.
    """
    column = points_column(race_type, round_has_heat)
    if column is None or position < 1 or position > MAX_POINTS_POSITION:
        return 0
    if position > LAST_POINTS_POSITION[column]:
        return 0
    return getattr(POINTS_TABLE[position], column)


def all_points_for_position(position: int) -> Optional[PointsRow]:
    return POINTS_TABLE.get(position)


def race_type_priority(race_type: str, final_type: str = "") -> int:
    """
    Tie-break order for points ranking: Final A < Final B < ... < heat < qualification < unknown.
    """
    if race_type == "final" and final_type:
        return ord(final_type.upper()[0]) - ord("A") + 1
    if race_type == "heat":
        return 100
    if race_type == "qualification":
        return 200
    return 300


def is_pre_season(round_id: str) -> bool:
    return round_id.startswith(PRE_SEASON_PREFIX)


def pre_season_round_id(season_id: str) -> str:
    return f"{PRE_SEASON_PREFIX}{season_id}"


def race_division_matches(value: str, wanted: Optional[str]) -> bool:
    if not wanted or wanted == ALL_FILTER:
        return True
    if wanted == OPEN_DIVISION:
        return value in OPEN_RACE_DIVISIONS
    return value == wanted


def driver_division_matches(value: Optional[str], wanted: Optional[str]) -> bool:
    if not wanted or wanted == ALL_FILTER:
        return True
    if wanted == OPEN_DIVISION:
        return value in OPEN_DRIVER_DIVISIONS
    return value == wanted


def letter_matches(value: str, wanted: Optional[str]) -> bool:
    if not wanted:
        return True
    return bool(value) and value.upper() == wanted.upper()


def drop_round_index(round_points: Sequence[float]) -> Optional[int]:
    """
    Pick the one round a driver drops from their season total.

    Missed exactly one round -> drop that zero round.
    Attended every round -> drop the lowest scoring round.
    Missed several rounds -> drop the first zero round.
    """
    if not round_points:
        return None
    missed = [idx for idx, value in enumerate(round_points) if value <= 0]
    if not missed:
        lowest = 0
        for idx, value in enumerate(round_points):
            if value < round_points[lowest]:
                lowest = idx
        return lowest
    return missed[0]


def round_points(value: float) -> float:
    return round(float(value), POINTS_DECIMALS)
