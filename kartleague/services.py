from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from fastapi import HTTPException
from sqlalchemy import delete, event, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kartleague import standings
from kartleague.cache import cache
from kartleague.models import (
    CheckIn,
    DivisionChange,
    Driver,
    Location,
    Points,
    RaceResult,
    Round,
    Season,
    Team,
)
from kartleague.rules import (
    CHANGE_TYPES,
    DIVISIONS,
    DRIVER_STATUSES,
    RACE_TYPES,
    ROUND_STATUSES,
    is_pre_season,
    pre_season_round_id,
    round_points,
)


logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "snapshot:"
STALE_SEASONS_KEY = "stale_seasons"


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def get_or_404(db: Session, model: Any, obj_id: Any, label: str):
    obj = db.get(model, obj_id)
    if not obj:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


def get_season_or_404(db: Session, season_id: str) -> Season:
    return get_or_404(db, Season, season_id, "Season")


def get_round_or_404(db: Session, round_id: str) -> Round:
    return get_or_404(db, Round, round_id, "Round")


def get_driver_or_404(db: Session, driver_id: str) -> Driver:
    return get_or_404(db, Driver, driver_id, "Driver")


def get_team_or_404(db: Session, team_id: str) -> Team:
    return get_or_404(db, Team, team_id, "Team")


def get_location_or_404(db: Session, location_id: str) -> Location:
    return get_or_404(db, Location, location_id, "Location")


def get_points_or_404(db: Session, points_id: str) -> Points:
    return get_or_404(db, Points, points_id, "Points")


def get_division_change_or_404(db: Session, change_id: str) -> DivisionChange:
    return get_or_404(db, DivisionChange, change_id, "Division change")


def invalidate_season(db: Session, season_id: str) -> None:
    """
    Drop the season's cached snapshot now, and again once the transaction ends.

    The second drop covers readers on other sessions that cached the
    pre-commit state while this transaction was still open.
    """
    cache.invalidate(f"{SNAPSHOT_PREFIX}{season_id}")
    db.info.setdefault(STALE_SEASONS_KEY, set()).add(season_id)


@event.listens_for(Session, "after_commit")
@event.listens_for(Session, "after_soft_rollback")
def _drop_stale_snapshots(session: Session, *args: Any) -> None:
    for season_id in session.info.pop(STALE_SEASONS_KEY, ()):
        cache.invalidate(f"{SNAPSHOT_PREFIX}{season_id}")


def require_choice(value: str, choices: tuple[str, ...], label: str) -> str:
    if value not in choices:
        raise HTTPException(status_code=400, detail=f"Invalid {label}: {value}")
    return value


# Seasons


def create_season(
    db: Session,
    name: str,
    start_date: str = "",
    end_date: str = "",
    number_of_rounds: int = 0,
    season_id: Optional[str] = None,
) -> Season:
    season_id = season_id or new_id("season")
    if db.get(Season, season_id):
        raise HTTPException(status_code=400, detail="Season id already exists")
    season = Season(
        id=season_id,
        name=name.strip(),
        start_date=start_date,
        end_date=end_date,
        number_of_rounds=number_of_rounds,
    )
    db.add(season)
    logger.info("Created season %s (%s)", season_id, season.name)
    return season


def list_seasons(db: Session) -> list[Season]:
    return list(db.scalars(select(Season).order_by(Season.start_date.desc(), Season.id.asc())).all())


def update_season(db: Session, season_id: str, **fields: Any) -> Season:
    season = get_season_or_404(db, season_id)
    if fields.get("name") is not None:
        season.name = fields["name"].strip()
    for name in ("start_date", "end_date", "number_of_rounds"):
        if fields.get(name) is not None:
            setattr(season, name, fields[name])
    invalidate_season(db, season_id)
    return season


def delete_season(db: Session, season_id: str) -> None:
    season = get_season_or_404(db, season_id)
    db.delete(season)
    invalidate_season(db, season_id)
    logger.info("Deleted season %s", season_id)


# Locations


def create_location(db: Session, name: str, address: str = "", location_id: Optional[str] = None) -> Location:
    existing = db.scalar(select(Location).where(Location.name == name.strip()))
    if existing:
        raise HTTPException(status_code=400, detail="Location name already exists")
    location = Location(id=location_id or new_id("location"), name=name.strip(), address=address.strip())
    db.add(location)
    logger.info("Created location %s (%s)", location.id, location.name)
    return location


def list_locations(db: Session) -> list[Location]:
    return list(db.scalars(select(Location).order_by(Location.name.asc())).all())


def _invalidate_location_seasons(db: Session, location: Location) -> None:
    for season_id in {r.season_id for r in location.rounds}:
        invalidate_season(db, season_id)


def update_location(db: Session, location_id: str, **fields: Any) -> Location:
    location = get_location_or_404(db, location_id)
    name = fields.get("name")
    if name is not None and name.strip() != location.name:
        clash = db.scalar(select(Location).where(Location.name == name.strip(), Location.id != location_id))
        if clash:
            raise HTTPException(status_code=400, detail="Location name already exists")
        location.name = name.strip()
    if fields.get("address") is not None:
        location.address = fields["address"].strip()
    _invalidate_location_seasons(db, location)
    return location


def delete_location(db: Session, location_id: str) -> None:
    """Rounds held there keep the venue as free text."""
    location = get_location_or_404(db, location_id)
    for round_ in location.rounds:
        if not round_.location:
            round_.location = location.name
            round_.address = round_.address or location.address
    _invalidate_location_seasons(db, location)
    db.delete(location)
    logger.info("Deleted location %s", location_id)


# Rounds


def add_round(
    db: Session,
    season_id: str,
    round_number: int,
    date: str = "",
    location: str = "",
    address: str = "",
    status: str = "upcoming",
    round_id: Optional[str] = None,
    location_id: Optional[str] = None,
) -> Round:
    get_season_or_404(db, season_id)
    venue = get_location_or_404(db, location_id) if location_id else None
    require_choice(status, ROUND_STATUSES, "round status")
    existing = db.scalar(
        select(Round).where(Round.season_id == season_id, Round.round_number == round_number)
    )
    if existing:
        raise HTTPException(status_code=400, detail=f"Round {round_number} already exists in this season")
    round_id = round_id or new_id("round")
    if is_pre_season(round_id):
        raise HTTPException(status_code=400, detail="Round ids may not use the pre-season prefix")
    round_ = Round(
        id=round_id,
        season_id=season_id,
        round_number=round_number,
        date=date,
        venue=venue,
        location=location.strip(),
        address=address.strip(),
        status=status,
    )
    db.add(round_)
    invalidate_season(db, season_id)
    logger.info("Added round %s (#%s) to season %s", round_id, round_number, season_id)
    return round_


def update_round(db: Session, round_id: str, **fields: Any) -> Round:
    round_ = get_round_or_404(db, round_id)
    if fields.get("status") is not None:
        require_choice(fields["status"], ROUND_STATUSES, "round status")
    number = fields.get("round_number")
    if number is not None and number != round_.round_number:
        clash = db.scalar(
            select(Round).where(
                Round.season_id == round_.season_id,
                Round.round_number == number,
                Round.id != round_id,
            )
        )
        if clash:
            raise HTTPException(status_code=400, detail=f"Round {number} already exists in this season")
    if "location_id" in fields:
        location_id = fields["location_id"]
        round_.venue = get_location_or_404(db, location_id) if location_id else None
    for name in ("round_number", "date", "location", "address", "status"):
        if fields.get(name) is not None:
            setattr(round_, name, fields[name])
    invalidate_season(db, round_.season_id)
    return round_


def list_rounds(db: Session, season_id: str) -> list[Round]:
    get_season_or_404(db, season_id)
    return list(
        db.scalars(
            select(Round).where(Round.season_id == season_id).order_by(Round.round_number.asc())
        ).all()
    )


def delete_round(db: Session, round_id: str) -> None:
    round_ = get_round_or_404(db, round_id)
    season_id = round_.season_id
    db.delete(round_)
    invalidate_season(db, season_id)
    logger.info("Deleted round %s from season %s", round_id, season_id)


# Drivers


def _season_has_results(db: Session, season_id: str) -> bool:
    count = db.scalar(
        select(func.count(RaceResult.id))
        .join(Round, RaceResult.round_id == Round.id)
        .where(Round.season_id == season_id)
    )
    return (count or 0) > 0


def add_driver(
    db: Session,
    season_id: str,
    name: str,
    division: str,
    email: str = "",
    mobile_number: str = "",
    team_name: str = "",
    status: str = "ACTIVE",
    aliases: Optional[list[str]] = None,
    driver_id: Optional[str] = None,
) -> Driver:
    """
    Register a driver and record where their division history starts.

    Before any results exist the driver starts on the pre-season round;
    afterwards they join on the season's first round.
    """
    get_season_or_404(db, season_id)
    require_choice(division, DIVISIONS, "division")
    require_choice(status, DRIVER_STATUSES, "driver status")
    driver_id = driver_id or new_id("driver")
    if db.get(Driver, driver_id):
        raise HTTPException(status_code=400, detail="Driver id already exists")

    driver = Driver(
        id=driver_id,
        season_id=season_id,
        name=name.strip(),
        division=division,
        email=email,
        mobile_number=mobile_number,
        team_name=team_name.strip(),
        status=status,
        aliases=",".join(a.strip() for a in (aliases or []) if a.strip()),
    )
    db.add(driver)
    db.flush()

    if _season_has_results(db, season_id):
        first_round = db.scalar(
            select(Round).where(Round.season_id == season_id).order_by(Round.round_number.asc()).limit(1)
        )
        round_id = first_round.id if first_round else pre_season_round_id(season_id)
        change_type = "mid_season_join"
    else:
        round_id = pre_season_round_id(season_id)
        change_type = "division_start"

    upsert_division_change(
        db,
        season_id=season_id,
        round_id=round_id,
        driver_id=driver_id,
        change_type=change_type,
        division_start=division,
    )
    logger.info("Added driver %s (%s) to season %s via %s", driver_id, driver.name, season_id, change_type)
    return driver


def update_driver(db: Session, driver_id: str, **fields: Any) -> Driver:
    driver = get_driver_or_404(db, driver_id)
    if fields.get("division") is not None:
        require_choice(fields["division"], DIVISIONS, "division")
    if fields.get("status") is not None:
        require_choice(fields["status"], DRIVER_STATUSES, "driver status")
    for name in ("name", "division", "email", "mobile_number", "team_name", "status"):
        if fields.get(name) is not None:
            setattr(driver, name, fields[name])
    if fields.get("aliases") is not None:
        driver.aliases = ",".join(a.strip() for a in fields["aliases"] if a.strip())
    invalidate_season(db, driver.season_id)
    return driver


def list_drivers(db: Session, season_id: str) -> list[Driver]:
    get_season_or_404(db, season_id)
    return list(db.scalars(select(Driver).where(Driver.season_id == season_id).order_by(Driver.name.asc())).all())


def delete_driver(db: Session, driver_id: str) -> None:
    driver = get_driver_or_404(db, driver_id)
    season_id = driver.season_id
    db.delete(driver)
    invalidate_season(db, season_id)
    logger.info("Deleted driver %s and their results, points, check-ins and division changes", driver_id)


# Teams


def add_team(db: Session, season_id: str, name: str, division: str = "", team_id: Optional[str] = None) -> Team:
    get_season_or_404(db, season_id)
    existing = db.scalar(select(Team).where(Team.season_id == season_id, Team.name == name.strip()))
    if existing:
        raise HTTPException(status_code=400, detail="Team name already exists")
    team = Team(id=team_id or new_id("team"), season_id=season_id, name=name.strip(), division=division.strip())
    db.add(team)
    invalidate_season(db, season_id)
    return team


def update_team(db: Session, team_id: str, name: Optional[str] = None, division: Optional[str] = None) -> Team:
    """Renaming a team moves its drivers along with it."""
    team = get_team_or_404(db, team_id)
    if name is not None and name.strip() != team.name:
        new_name = name.strip()
        clash = db.scalar(
            select(Team).where(Team.season_id == team.season_id, Team.name == new_name, Team.id != team_id)
        )
        if clash:
            raise HTTPException(status_code=400, detail="Team name already exists")
        members = db.scalars(
            select(Driver).where(Driver.season_id == team.season_id, Driver.team_name == team.name)
        ).all()
        for driver in members:
            driver.team_name = new_name
        team.name = new_name
    if division is not None:
        team.division = division.strip()
    invalidate_season(db, team.season_id)
    return team


def list_teams(db: Session, season_id: str) -> list[dict[str, Any]]:
    get_season_or_404(db, season_id)
    teams = db.scalars(select(Team).where(Team.season_id == season_id).order_by(Team.name.asc())).all()
    drivers = db.scalars(select(Driver).where(Driver.season_id == season_id)).all()
    return [
        {
            "id": t.id,
            "name": t.name,
            "division": t.division or None,
            "driver_ids": [d.id for d in drivers if d.team_name == t.name],
        }
        for t in teams
    ]


def delete_team(db: Session, team_id: str) -> None:
    team = get_team_or_404(db, team_id)
    db.delete(team)
    invalidate_season(db, team.season_id)


# Race results


def upsert_race_result(
    db: Session,
    round_id: str,
    driver_id: str,
    race_division: str,
    race_type: str = "qualification",
    final_type: str = "",
    position: int = 0,
    overall_position: Optional[int] = None,
    fastest_lap: str = "",
    driver_alias: str = "",
    kart_number: str = "",
    confirmed: bool = False,
) -> RaceResult:
    round_ = get_round_or_404(db, round_id)
    driver = db.get(Driver, driver_id)
    if not driver or driver.season_id != round_.season_id:
        raise HTTPException(status_code=400, detail="Driver is not registered in this season")
    require_choice(race_type, RACE_TYPES, "race type")

    final_type = (final_type or "").strip().upper()
    existing = db.scalar(
        select(RaceResult).where(
            RaceResult.round_id == round_id,
            RaceResult.driver_id == driver_id,
            RaceResult.race_type == race_type,
            RaceResult.final_type == final_type,
        )
    )
    target = existing or RaceResult(
        round_id=round_id,
        driver_id=driver_id,
        race_type=race_type,
        final_type=final_type,
    )
    target.division = driver.division
    target.race_division = race_division
    target.position = position
    target.overall_position = overall_position
    target.fastest_lap = fastest_lap
    target.driver_alias = driver_alias
    target.kart_number = kart_number
    target.confirmed = confirmed
    if not existing:
        db.add(target)
    invalidate_season(db, round_.season_id)
    return target


def race_results_by_round(db: Session, round_id: str) -> list[dict[str, Any]]:
    """Results of a round grouped by the division the race was run in."""
    get_round_or_404(db, round_id)
    rows = db.scalars(
        select(RaceResult)
        .where(RaceResult.round_id == round_id)
        .order_by(RaceResult.race_division.asc(), RaceResult.position.asc())
    ).all()
    if not rows:
        return []
    drivers = {
        d.id: d
        for d in db.scalars(select(Driver).where(Driver.id.in_({r.driver_id for r in rows}))).all()
    }

    grouped: dict[str, list[dict[str, Any]]] = {}
    for r in rows:
        driver = drivers.get(r.driver_id)
        grouped.setdefault(r.race_division, []).append(
            {
                "driver_id": r.driver_id,
                "driver_name": driver.name if driver else standings.UNKNOWN_DRIVER,
                "driver_alias": r.driver_alias,
                "kart_number": r.kart_number,
                "division": r.division,
                "race_division": r.race_division,
                "race_type": r.race_type,
                "final_type": r.final_type,
                "position": r.position,
                "overall_position": r.overall_position,
                "fastest_lap": r.fastest_lap,
                "confirmed": r.confirmed,
            }
        )
    return [{"division": division, "results": results} for division, results in grouped.items()]


def delete_race_result(
    db: Session,
    round_id: str,
    driver_id: str,
    race_type: Optional[str] = None,
    final_type: Optional[str] = None,
) -> int:
    round_ = get_round_or_404(db, round_id)
    conditions = [RaceResult.round_id == round_id, RaceResult.driver_id == driver_id]
    if race_type:
        conditions.append(RaceResult.race_type == race_type)
        if final_type is not None:
            conditions.append(RaceResult.final_type == final_type.upper())
    removed = db.execute(delete(RaceResult).where(*conditions)).rowcount or 0
    invalidate_season(db, round_.season_id)
    return removed


def delete_race_results_by_race_type(
    db: Session,
    round_id: str,
    race_type: str,
    race_division: Optional[str] = None,
    final_type: Optional[str] = None,
) -> int:
    round_ = get_round_or_404(db, round_id)
    conditions = [RaceResult.round_id == round_id, RaceResult.race_type == race_type]
    if race_division:
        conditions.append(RaceResult.race_division == race_division)
    if final_type:
        conditions.append(RaceResult.final_type == final_type.upper())
    removed = db.execute(delete(RaceResult).where(*conditions)).rowcount or 0
    invalidate_season(db, round_.season_id)
    logger.info("Removed %s %s results from round %s", removed, race_type, round_id)
    return removed


# Saved points


def points_id(round_id: str, driver_id: str, race_type: str, final_type: str = "") -> str:
    return f"points-{round_id}-{driver_id}-{race_type}-{final_type or ''}"


def upsert_points(
    db: Session,
    round_id: str,
    driver_id: str,
    division: str,
    points: float,
    race_type: str = "qualification",
    final_type: str = "",
    overall_position: Optional[int] = None,
    race_division: str = "",
    note: Optional[str] = None,
) -> Points:
    """Save points for one race entry, replacing any earlier save for the same entry."""
    round_ = get_round_or_404(db, round_id)
    get_driver_or_404(db, driver_id)
    require_choice(race_type, RACE_TYPES, "race type")
    final_type = (final_type or "").strip().upper()

    existing = db.scalar(
        select(Points).where(
            Points.round_id == round_id,
            Points.driver_id == driver_id,
            Points.race_type == race_type,
            Points.final_type == final_type,
        )
    )
    target = existing or Points(
        id=points_id(round_id, driver_id, race_type, final_type),
        season_id=round_.season_id,
        round_id=round_id,
        driver_id=driver_id,
        race_type=race_type,
        final_type=final_type,
    )
    target.division = division
    target.race_division = race_division
    target.overall_position = overall_position
    target.points = round_points(points)
    target.note = note or None
    if not existing:
        db.add(target)
    invalidate_season(db, round_.season_id)
    return target


def update_points(db: Session, points_id_: str, **fields: Any) -> Points:
    row = get_points_or_404(db, points_id_)
    if fields.get("division") is not None:
        row.division = fields["division"]
    if fields.get("overall_position") is not None:
        row.overall_position = fields["overall_position"]
    if fields.get("points") is not None:
        row.points = round_points(fields["points"])
    if "note" in fields:
        row.note = fields["note"] or None
    invalidate_season(db, row.season_id)
    return row


def delete_points(db: Session, points_id_: str) -> None:
    row = get_points_or_404(db, points_id_)
    db.delete(row)
    invalidate_season(db, row.season_id)


def list_points(
    db: Session,
    round_id: Optional[str] = None,
    driver_id: Optional[str] = None,
    season_id: Optional[str] = None,
) -> list[Points]:
    if round_id:
        query = select(Points).where(Points.round_id == round_id).order_by(Points.points.desc())
    elif driver_id:
        query = select(Points).where(Points.driver_id == driver_id)
        if season_id:
            query = query.where(Points.season_id == season_id)
        query = query.order_by(Points.created_at.desc())
    elif season_id:
        query = select(Points).where(Points.season_id == season_id).order_by(
            Points.round_id.asc(), Points.points.desc()
        )
    else:
        raise HTTPException(status_code=400, detail="round_id, driver_id, or season_id required")
    return list(db.scalars(query).all())


# Check-ins


def upsert_check_in(db: Session, round_id: str, driver_id: str, checked_in: bool = True) -> CheckIn:
    round_ = get_round_or_404(db, round_id)
    get_driver_or_404(db, driver_id)
    existing = db.scalar(
        select(CheckIn).where(CheckIn.round_id == round_id, CheckIn.driver_id == driver_id)
    )
    if existing:
        existing.checked_in = checked_in
        existing.season_id = round_.season_id
        return existing
    created = CheckIn(
        id=f"checkin-{round_id}-{driver_id}",
        season_id=round_.season_id,
        round_id=round_id,
        driver_id=driver_id,
        checked_in=checked_in,
    )
    db.add(created)
    return created


def list_check_ins(db: Session, round_id: str) -> list[CheckIn]:
    get_round_or_404(db, round_id)
    return list(db.scalars(select(CheckIn).where(CheckIn.round_id == round_id)).all())


def delete_check_ins_by_round(db: Session, round_id: str) -> int:
    get_round_or_404(db, round_id)
    return db.execute(delete(CheckIn).where(CheckIn.round_id == round_id)).rowcount or 0


# Division changes


def upsert_division_change(
    db: Session,
    season_id: str,
    round_id: str,
    driver_id: str,
    change_type: str,
    from_division: Optional[str] = None,
    to_division: Optional[str] = None,
    division_start: Optional[str] = None,
    change_id: Optional[str] = None,
) -> DivisionChange:
    """A driver has at most one division change per round; a second one replaces it."""
    driver = get_driver_or_404(db, driver_id)
    if driver.season_id != season_id:
        raise HTTPException(status_code=400, detail="Driver is not registered in this season")
    if not is_pre_season(round_id):
        round_ = get_round_or_404(db, round_id)
        if round_.season_id != season_id:
            raise HTTPException(status_code=400, detail="Round does not belong to this season")
    elif round_id != pre_season_round_id(season_id):
        raise HTTPException(status_code=400, detail="Pre-season round does not belong to this season")

    require_choice(change_type, CHANGE_TYPES, "change type")
    if change_type in ("promotion", "demotion") and not to_division:
        raise HTTPException(status_code=400, detail=f"to_division is required for {change_type}")
    if change_type in ("division_start", "mid_season_join") and not division_start:
        raise HTTPException(status_code=400, detail=f"division_start is required for {change_type}")

    existing = db.scalar(
        select(DivisionChange).where(
            DivisionChange.driver_id == driver_id,
            DivisionChange.round_id == round_id,
        )
    )
    target = existing or DivisionChange(
        id=change_id or new_id(f"div-change-{driver_id}"),
        season_id=season_id,
        round_id=round_id,
        driver_id=driver_id,
    )
    target.driver_name = driver.name
    target.change_type = change_type
    target.from_division = from_division
    target.to_division = to_division
    target.division_start = division_start
    if not existing:
        db.add(target)
    invalidate_season(db, season_id)
    return target


def list_division_changes(
    db: Session, season_id: Optional[str] = None, round_id: Optional[str] = None
) -> list[DivisionChange]:
    query = select(DivisionChange)
    if season_id:
        query = query.where(DivisionChange.season_id == season_id)
    if round_id:
        query = query.where(DivisionChange.round_id == round_id)
    return list(db.scalars(query.order_by(DivisionChange.created_at.desc())).all())


def delete_division_change(db: Session, change_id: str) -> None:
    change = get_division_change_or_404(db, change_id)
    db.delete(change)
    invalidate_season(db, change.season_id)


# Calculation


@dataclass(frozen=True)
class SeasonSnapshot:
    rounds: tuple[standings.Round, ...]
    drivers: tuple[standings.Driver, ...]
    teams: tuple[standings.Team, ...]
    changes: tuple[standings.DivisionChange, ...]
    results: tuple[standings.RaceResult, ...]
    saved: tuple[standings.SavedPoint, ...]

    @property
    def saved_by_key(self) -> Dict[str, standings.SavedPoint]:
        return standings.index_saved_points(self.saved)


def _load_snapshot(db: Session, season_id: str) -> SeasonSnapshot:
    rounds = db.scalars(select(Round).where(Round.season_id == season_id)).all()
    drivers = db.scalars(select(Driver).where(Driver.season_id == season_id)).all()
    teams = db.scalars(select(Team).where(Team.season_id == season_id)).all()
    changes = db.scalars(
        select(DivisionChange)
        .where(DivisionChange.season_id == season_id)
        .order_by(DivisionChange.created_at.asc())
    ).all()
    results = db.scalars(
        select(RaceResult)
        .join(Round, RaceResult.round_id == Round.id)
        .where(Round.season_id == season_id)
        .order_by(RaceResult.id.asc())
    ).all()
    saved = db.scalars(select(Points).where(Points.season_id == season_id)).all()
    driver_names = {d.id: d.name for d in drivers}

    return SeasonSnapshot(
        rounds=tuple(
            standings.Round(
                id=r.id,
                round_number=r.round_number,
                season_id=r.season_id,
                date=r.date,
                location=r.location_name,
                status=r.status,
            )
            for r in rounds
        ),
        drivers=tuple(
            standings.Driver(
                id=d.id,
                name=d.name,
                division=d.division,
                status=d.status,
                team_name=d.team_name,
                aliases=tuple(d.alias_list),
            )
            for d in drivers
        ),
        teams=tuple(standings.Team(id=t.id, name=t.name, division=t.division) for t in teams),
        changes=tuple(
            standings.DivisionChange(
                id=c.id,
                driver_id=c.driver_id,
                round_id=c.round_id,
                change_type=c.change_type,
                from_division=c.from_division,
                to_division=c.to_division,
                division_start=c.division_start,
            )
            for c in changes
        ),
        results=tuple(
            standings.RaceResult(
                round_id=r.round_id,
                driver_id=r.driver_id,
                race_division=r.race_division,
                race_type=r.race_type,
                final_type=r.final_type,
                position=r.position,
                overall_position=r.overall_position,
                fastest_lap=r.fastest_lap,
                driver_name=driver_names.get(r.driver_id, ""),
            )
            for r in results
        ),
        saved=tuple(
            standings.SavedPoint(
                id=p.id,
                round_id=p.round_id,
                driver_id=p.driver_id,
                race_type=p.race_type,
                final_type=p.final_type,
                points=p.points,
                division=p.division,
                overall_position=p.overall_position,
                race_division=p.race_division,
                note=p.note,
            )
            for p in saved
        ),
    )


def season_snapshot(db: Session, season_id: str) -> SeasonSnapshot:
    get_season_or_404(db, season_id)
    key = f"{SNAPSHOT_PREFIX}{season_id}"
    snapshot = cache.get(key)
    if snapshot is None:
        snapshot = _load_snapshot(db, season_id)
        cache.set(key, snapshot)
    return snapshot


def season_points_view(
    db: Session,
    season_id: str,
    filters: Optional[standings.PointsFilter] = None,
    edits: Optional[Mapping[str, float]] = None,
) -> standings.PointsView:
    snapshot = season_snapshot(db, season_id)
    saved = snapshot.saved_by_key
    rows = standings.calculate_season_points(
        snapshot.rounds, snapshot.drivers, snapshot.changes, snapshot.results, saved
    )
    return standings.rank_points(rows, filters, saved, edits)


def save_points_view(
    db: Session,
    season_id: str,
    filters: Optional[standings.PointsFilter] = None,
    edits: Optional[Mapping[str, float]] = None,
) -> int:
    """Persist every row of the current points view as saved points."""
    view = season_points_view(db, season_id, filters, edits)
    try:
        for row in view.rows:
            upsert_points(
                db,
                round_id=row.round_id,
                driver_id=row.driver_id,
                division=row.division or row.race_division,
                points=row.points,
                race_type=row.race_type,
                final_type=row.final_type,
                overall_position=row.points_position,
                race_division=row.race_division,
                note=row.note,
            )
            db.flush()
    except SQLAlchemyError:
        logger.exception("Saving points failed for season %s", season_id)
        raise
    logger.info("Saved %s points records for season %s", len(view.rows), season_id)
    return len(view.rows)


def season_driver_standings(db: Session, season_id: str, division: str) -> List[standings.DriverStanding]:
    snapshot = season_snapshot(db, season_id)
    return standings.season_standings(snapshot.rounds, snapshot.drivers, snapshot.saved, division)


def season_team_standings(db: Session, season_id: str, division: str) -> List[standings.TeamStanding]:
    snapshot = season_snapshot(db, season_id)
    # Only members currently racing in the division count towards it.
    member_rows = standings.season_standings(snapshot.rounds, snapshot.drivers, snapshot.saved, division)
    return standings.team_standings(snapshot.rounds, snapshot.teams, snapshot.drivers, member_rows, division)


def driver_division_at(db: Session, driver_id: str, round_id: str) -> Optional[str]:
    driver = get_driver_or_404(db, driver_id)
    snapshot = season_snapshot(db, driver.season_id)
    rounds = {r.id: r for r in snapshot.rounds}
    if not is_pre_season(round_id) and round_id not in rounds:
        raise HTTPException(status_code=404, detail="Round not found")
    round_number = rounds[round_id].round_number if round_id in rounds else 0
    return standings.division_at(
        driver_id,
        round_id,
        round_number,
        snapshot.changes,
        rounds,
        {d.id: d for d in snapshot.drivers},
    )
