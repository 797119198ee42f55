"""
Points and standings calculation.

Everything here is a pure function over immutable snapshots: no I/O, no
caching and no mutation of inputs, so callers can recompute on every change.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from kartleague.rules import (
    driver_division_matches,
    drop_round_index,
    is_pre_season,
    letter_matches,
    points_for_position,
    race_division_matches,
    race_type_priority,
    round_points,
)


UNKNOWN_DRIVER = "Unknown Driver"
UNKNOWN_ROUND_NAME = "TBD"


@dataclass(frozen=True)
class Round:
    id: str
    round_number: int
    season_id: str = ""
    date: str = ""
    location: str = ""
    status: str = "upcoming"


@dataclass(frozen=True)
class Driver:
    id: str
    name: str
    division: str
    status: str = "ACTIVE"
    team_name: str = ""
    aliases: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DivisionChange:
    id: str
    driver_id: str
    round_id: str
    change_type: str
    from_division: Optional[str] = None
    to_division: Optional[str] = None
    division_start: Optional[str] = None


@dataclass(frozen=True)
class RaceResult:
    round_id: str
    driver_id: str
    race_division: str
    race_type: str = "qualification"
    final_type: str = ""
    position: int = 0
    overall_position: Optional[int] = None
    fastest_lap: str = ""
    driver_name: str = ""


@dataclass(frozen=True)
class SavedPoint:
    round_id: str
    driver_id: str
    race_type: str
    final_type: str
    points: float
    division: str
    overall_position: Optional[int] = None
    race_division: str = ""
    note: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class Team:
    id: str
    name: str
    division: str = ""


@dataclass(frozen=True)
class DriverPoints:
    driver_id: str
    driver_name: str
    round_id: str
    round_number: int
    round_name: str
    race_division: str
    division: Optional[str]
    race_type: str
    final_type: str
    position: int
    overall_position: int
    points_position: int
    points: float
    round_has_heat: bool = False
    saved: bool = False
    note: Optional[str] = None

    @property
    def key(self) -> str:
        return points_key(self.round_id, self.driver_id, self.race_type, self.final_type)


@dataclass(frozen=True)
class PointsFilter:
    round_id: Optional[str] = None
    race_division: Optional[str] = None
    driver_division: Optional[str] = None
    race_type: Optional[str] = None
    heat_type: Optional[str] = None
    final_type: Optional[str] = None


@dataclass
class PointsView:
    rows: List[DriverPoints]
    driver_totals: Dict[str, float] = field(default_factory=dict)


@dataclass
class RoundPoints:
    round_id: str
    round_number: int
    round_name: str
    points: float


@dataclass
class DriverStanding:
    driver_id: str
    driver_name: str
    division: str
    team_name: str
    round_points: List[RoundPoints]
    drop_round: Optional[RoundPoints]
    raw_total_points: float
    total_points: float
    rank: int = 0


@dataclass
class TeamStanding:
    team_name: str
    division: str
    driver_ids: List[str]
    round_points: List[RoundPoints]
    total_points: float
    rank: int = 0


def points_key(round_id: str, driver_id: str, race_type: str, final_type: str = "") -> str:
    return f"{round_id}-{driver_id}-{race_type}-{final_type or ''}"


def index_saved_points(saved: Iterable[SavedPoint]) -> Dict[str, SavedPoint]:
    return {points_key(s.round_id, s.driver_id, s.race_type, s.final_type): s for s in saved}


def sort_rounds(rounds: Iterable[Round]) -> List[Round]:
    """Pre-season pseudo-rounds first, then ascending round number."""
    return sorted(rounds, key=lambda r: (0 if is_pre_season(r.id) else 1, r.round_number or 0))


def _change_round_number(change: DivisionChange, rounds: Mapping[str, Round]) -> int:
    found = rounds.get(change.round_id)
    return found.round_number if found and found.round_number else 0


def division_at(
    driver_id: str,
    round_id: str,
    round_number: int,
    changes: Sequence[DivisionChange],
    rounds: Mapping[str, Round],
    drivers: Mapping[str, Driver],
) -> Optional[str]:
    """
    Division a driver belonged to at a given round.

    Pre-season changes always apply first; regular changes apply when their
    round number is at or before the target round. Without any applicable
    change the driver's current division is returned.
    """
    driver = drivers.get(driver_id)
    current = driver.division if driver else None

    own = [c for c in changes if c.driver_id == driver_id]
    if not own:
        return current

    pre_season = [c for c in own if is_pre_season(c.round_id)]
    regular = sorted(
        (c for c in own if not is_pre_season(c.round_id)),
        key=lambda c: _change_round_number(c, rounds),
    )

    selected: Optional[DivisionChange] = None
    if is_pre_season(round_id):
        selected = pre_season[-1] if pre_season else None
    else:
        for change in pre_season + regular:
            if is_pre_season(change.round_id):
                selected = change
                continue
            if _change_round_number(change, rounds) <= round_number:
                selected = change
            else:
                break

    if selected is None:
        return current
    if selected.change_type in ("promotion", "demotion"):
        return selected.to_division or current
    return selected.division_start or current


def _finish_key(result: RaceResult) -> int:
    return result.overall_position or result.position or 0


def calculate_round_points(
    round_: Round,
    results: Sequence[RaceResult],
    drivers: Mapping[str, Driver],
    changes: Sequence[DivisionChange],
    rounds: Mapping[str, Round],
    saved_points: Mapping[str, SavedPoint],
) -> List[DriverPoints]:
    """
    Turn one round's raw results into points rows.

    Each (race division, race type, letter) group is ranked on its own. A
    saved point for the same entry replaces the computed points, division
    and overall position outright.
    """
    round_results = [r for r in results if r.round_id == round_.id]
    round_has_heat = any(r.race_type == "heat" for r in round_results)

    groups: Dict[Tuple[str, str, str], List[RaceResult]] = {}
    for result in round_results:
        group_key = (result.race_division, result.race_type or "qualification", result.final_type or "")
        groups.setdefault(group_key, []).append(result)

    rows: List[DriverPoints] = []
    for (_, race_type, final_type), group in groups.items():
        for idx, result in enumerate(sorted(group, key=_finish_key), start=1):
            overall_position = result.overall_position or idx
            points: float = points_for_position(overall_position, race_type, round_has_heat)
            division = division_at(
                result.driver_id, round_.id, round_.round_number, changes, rounds, drivers
            )

            key = points_key(round_.id, result.driver_id, race_type, final_type)
            saved = saved_points.get(key)
            note = None
            if saved is not None:
                points = saved.points
                division = saved.division
                if saved.overall_position is not None:
                    overall_position = saved.overall_position
                note = saved.note

            driver = drivers.get(result.driver_id)
            rows.append(
                DriverPoints(
                    driver_id=result.driver_id,
                    driver_name=(driver.name if driver else "") or result.driver_name or UNKNOWN_DRIVER,
                    round_id=round_.id,
                    round_number=round_.round_number or 0,
                    round_name=round_.location or UNKNOWN_ROUND_NAME,
                    race_division=result.race_division,
                    division=division,
                    race_type=race_type,
                    final_type=final_type,
                    position=result.position or 0,
                    overall_position=overall_position,
                    points_position=overall_position,
                    points=points,
                    round_has_heat=round_has_heat,
                    saved=saved is not None,
                    note=note,
                )
            )
    return rows


def calculate_season_points(
    rounds: Sequence[Round],
    drivers: Sequence[Driver],
    changes: Sequence[DivisionChange],
    results: Sequence[RaceResult],
    saved_points: Mapping[str, SavedPoint],
) -> List[DriverPoints]:
    rounds_by_id = {r.id: r for r in rounds}
    drivers_by_id = {d.id: d for d in drivers}
    rows: List[DriverPoints] = []
    for round_ in sort_rounds(rounds):
        rows.extend(
            calculate_round_points(round_, results, drivers_by_id, changes, rounds_by_id, saved_points)
        )
    return rows


def filter_points(rows: Iterable[DriverPoints], filters: PointsFilter) -> List[DriverPoints]:
    selected: List[DriverPoints] = []
    for row in rows:
        if filters.round_id and row.round_id != filters.round_id:
            continue
        if filters.race_type and row.race_type != filters.race_type:
            continue
        if filters.race_type == "heat" and not letter_matches(row.final_type, filters.heat_type):
            continue
        if filters.race_type == "final" and not letter_matches(row.final_type, filters.final_type):
            continue
        if not race_division_matches(row.race_division, filters.race_division):
            continue
        if not driver_division_matches(row.division, filters.driver_division):
            continue
        selected.append(row)
    return selected


def resolved_points(
    row: DriverPoints,
    saved_points: Mapping[str, SavedPoint],
    edits: Mapping[str, float],
) -> Tuple[float, bool]:
    """
    Current points for a row and whether they are fixed.
    Saved points win over pending edits, which win over the computed value.
    """
    key = row.key
    saved = saved_points.get(key)
    if saved is not None:
        return saved.points, True
    if key in edits:
        return edits[key], True
    return row.points, False


# Live rows reuse the row's round-wide round_has_heat flag, so a final in a
# division without heats still takes the major column when another division
# of that round ran heats. A per (round, race division) heat check would
# score that final on the single-final column instead.
def _rank_group(
    group: List[DriverPoints],
    saved_points: Mapping[str, SavedPoint],
    edits: Mapping[str, float],
) -> List[DriverPoints]:
    # Pass 1: resolve every row's current value; saved and edited rows are fixed.
    current = {id(row): resolved_points(row, saved_points, edits) for row in group}

    if all(row.race_type == "final" for row in group):
        ordered = sorted(
            group,
            key=lambda r: ((r.final_type or "").upper(), r.overall_position, r.driver_name),
        )
    else:
        ordered = sorted(
            group,
            key=lambda r: (
                -current[id(r)][0],
                race_type_priority(r.race_type, r.final_type),
                r.driver_name,
            ),
        )

    # Pass 2: only live rows take table points from their new rank.
    ranked: List[DriverPoints] = []
    for idx, row in enumerate(ordered, start=1):
        value, fixed = current[id(row)]
        if not fixed:
            value = points_for_position(idx, row.race_type, row.round_has_heat)
        ranked.append(replace(row, points_position=idx, points=value))
    return ranked


def rank_points(
    rows: Sequence[DriverPoints],
    filters: Optional[PointsFilter] = None,
    saved_points: Optional[Mapping[str, SavedPoint]] = None,
    edits: Optional[Mapping[str, float]] = None,
) -> PointsView:
    """
    Filter points rows and re-rank them within each (round, race division).

    Groups made only of finals rank by final letter then overall position, so
    every Final A finisher outranks every Final B finisher. Other groups rank
    by current points. Rows without a saved value or pending edit have their
    table points recomputed from that rank.
    """
    saved_points = saved_points or {}
    edits = edits or {}
    selected = filter_points(rows, filters or PointsFilter())

    grouped: Dict[Tuple[str, str], List[DriverPoints]] = {}
    for row in selected:
        grouped.setdefault((row.round_id, row.race_division), []).append(row)

    ranked: List[DriverPoints] = []
    for group in grouped.values():
        ranked.extend(_rank_group(group, saved_points, edits))

    ranked.sort(key=lambda r: (-r.round_number, r.points_position))
    return PointsView(rows=ranked, driver_totals=driver_totals(ranked, saved_points, edits))


def driver_totals(
    rows: Iterable[DriverPoints],
    saved_points: Optional[Mapping[str, SavedPoint]] = None,
    edits: Optional[Mapping[str, float]] = None,
) -> Dict[str, float]:
    saved_points = saved_points or {}
    edits = edits or {}
    totals: Dict[str, float] = defaultdict(float)
    for row in rows:
        value, _ = resolved_points(row, saved_points, edits)
        totals[row.driver_id] += value
    return {driver_id: round_points(total) for driver_id, total in totals.items()}


def _round_breakdown(
    rounds: Sequence[Round], points_by_round: Mapping[str, float]
) -> List[RoundPoints]:
    return [
        RoundPoints(
            round_id=r.id,
            round_number=r.round_number or 0,
            round_name=r.location or UNKNOWN_ROUND_NAME,
            points=round_points(points_by_round.get(r.id, 0.0)),
        )
        for r in rounds
    ]


def season_standings(
    rounds: Sequence[Round],
    drivers: Sequence[Driver],
    point_records: Iterable,
    division: str,
) -> List[DriverStanding]:
    """
    Division table for active drivers, one drop round applied per driver.

    ``point_records`` is any iterable of objects with ``driver_id``,
    ``round_id`` and ``points`` (saved points or calculated rows). Points
    count for the driver whatever division they were earned in.
    """
    real_rounds = [r for r in sort_rounds(rounds) if not is_pre_season(r.id)]
    per_driver: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for record in point_records:
        per_driver[record.driver_id][record.round_id] += float(record.points or 0)

    rows: List[DriverStanding] = []
    for driver in drivers:
        if driver.division != division or driver.status != "ACTIVE":
            continue
        breakdown = _round_breakdown(real_rounds, per_driver.get(driver.id, {}))
        drop_idx = drop_round_index([rp.points for rp in breakdown])
        drop = breakdown[drop_idx] if drop_idx is not None else None
        raw_total = sum(rp.points for rp in breakdown)
        total = raw_total - drop.points if drop else raw_total
        rows.append(
            DriverStanding(
                driver_id=driver.id,
                driver_name=driver.name,
                division=driver.division,
                team_name=driver.team_name,
                round_points=breakdown,
                drop_round=drop,
                raw_total_points=round_points(raw_total),
                total_points=round_points(total),
            )
        )

    rows.sort(key=lambda s: -s.total_points)
    for idx, row in enumerate(rows, start=1):
        row.rank = idx
    return rows


def team_standings(
    rounds: Sequence[Round],
    teams: Sequence[Team],
    drivers: Sequence[Driver],
    standings: Sequence[DriverStanding],
    division: str,
) -> List[TeamStanding]:
    """
    Team table: per round, the sum of the member drivers' round points.

    Members are the drivers currently in ``division``; a teammate racing in
    another division counts towards that division's table instead.

    A team's own division decides where it is listed; teams without one are
    listed under the requested division. Drivers with standings but a team
    missing from ``teams`` still form a team.
    """
    real_rounds = [r for r in sort_rounds(rounds) if not is_pre_season(r.id)]
    team_division = {t.name: (t.division.strip() or division) for t in teams}

    members: Dict[str, List[DriverStanding]] = {}
    for team in teams:
        if team_division[team.name] == division:
            members.setdefault(team.name, [])
    for standing in standings:
        if not standing.team_name:
            continue
        if team_division.get(standing.team_name, division) != division:
            continue
        members.setdefault(standing.team_name, []).append(standing)

    rows: List[TeamStanding] = []
    for team_name, team_rows in members.items():
        points_by_round: Dict[str, float] = defaultdict(float)
        for standing in team_rows:
            for rp in standing.round_points:
                points_by_round[rp.round_id] += rp.points
        breakdown = _round_breakdown(real_rounds, points_by_round)
        rows.append(
            TeamStanding(
                team_name=team_name,
                division=division,
                driver_ids=[d.id for d in drivers if d.team_name == team_name and d.division == division],
                round_points=breakdown,
                total_points=round_points(sum(rp.points for rp in breakdown)),
            )
        )

    rows.sort(key=lambda t: -t.total_points)
    for idx, row in enumerate(rows, start=1):
        row.rank = idx
    return rows
