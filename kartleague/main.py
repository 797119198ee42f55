from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from kartleague import services
from kartleague.cache import cache
from kartleague.config import CORS_ORIGINS, LOG_LEVEL
from kartleague.database import Base, engine, get_db
from kartleague.models import CheckIn, DivisionChange, Driver, Location, Points, Round, Season
from kartleague.rules import DIVISIONS
from kartleague.schemas import (
    CheckInUpsert,
    DivisionChangeCreate,
    DriverCreate,
    DriverPointsOut,
    DriverUpdate,
    LocationCreate,
    LocationUpdate,
    PointsFilterIn,
    PointsUpdate,
    PointsUpsert,
    PointsViewOut,
    PointsViewRequest,
    RaceResultUpsert,
    RoundCreate,
    RoundUpdate,
    SeasonCreate,
    SeasonUpdate,
    TeamCreate,
    TeamUpdate,
)
from kartleague.standings import PointsFilter, PointsView


logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Kart League - Points and Standings",
    version="1.0.0",
    description=(
        "Season management for a kart racing league: race results, points "
        "per race, historical divisions, and driver and team standings."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")


def _season_out(s: Season) -> dict[str, Any]:
    return {
        "id": s.id,
        "name": s.name,
        "start_date": s.start_date,
        "end_date": s.end_date,
        "number_of_rounds": s.number_of_rounds,
    }


def _location_out(loc: Location) -> dict[str, Any]:
    return {"id": loc.id, "name": loc.name, "address": loc.address}


def _round_out(r: Round) -> dict[str, Any]:
    return {
        "id": r.id,
        "season_id": r.season_id,
        "round_number": r.round_number,
        "date": r.date,
        "location_id": r.location_id,
        "location": r.location_name,
        "address": r.location_address,
        "status": r.status,
    }


def _driver_out(d: Driver) -> dict[str, Any]:
    return {
        "id": d.id,
        "season_id": d.season_id,
        "name": d.name,
        "email": d.email,
        "mobile_number": d.mobile_number,
        "division": d.division,
        "team_name": d.team_name or None,
        "status": d.status,
        "aliases": d.alias_list,
    }


def _points_out(p: Points) -> dict[str, Any]:
    return {
        "id": p.id,
        "season_id": p.season_id,
        "round_id": p.round_id,
        "driver_id": p.driver_id,
        "division": p.division,
        "race_division": p.race_division,
        "race_type": p.race_type,
        "final_type": p.final_type or None,
        "overall_position": p.overall_position,
        "points": p.points,
        "note": p.note,
    }


def _check_in_out(c: CheckIn) -> dict[str, Any]:
    return {"id": c.id, "round_id": c.round_id, "driver_id": c.driver_id, "checked_in": c.checked_in}


def _change_out(c: DivisionChange) -> dict[str, Any]:
    return {
        "id": c.id,
        "season_id": c.season_id,
        "round_id": c.round_id,
        "driver_id": c.driver_id,
        "driver_name": c.driver_name,
        "change_type": c.change_type,
        "from_division": c.from_division,
        "to_division": c.to_division,
        "division_start": c.division_start,
    }


def _to_filter(payload: PointsFilterIn) -> PointsFilter:
    return PointsFilter(**payload.model_dump())


def _view_out(view: PointsView) -> PointsViewOut:
    rows = [DriverPointsOut(key=row.key, **asdict(row)) for row in view.rows]
    return PointsViewOut(rows=rows, driver_totals=view.driver_totals)


def _require_division(division: str) -> str:
    return services.require_choice(division, DIVISIONS, "division")


@app.get("/health")
def health() -> dict[str, Any]:
    return {"status": "ok", "cache": cache.stats()}


@app.post("/seasons")
def create_season(payload: SeasonCreate, db: Session = Depends(get_db)):
    season = services.create_season(
        db,
        name=payload.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        number_of_rounds=payload.number_of_rounds,
        season_id=payload.id,
    )
    db.commit()
    db.refresh(season)
    return _season_out(season)


@app.get("/seasons")
def list_seasons(db: Session = Depends(get_db)):
    return [_season_out(s) for s in services.list_seasons(db)]


@app.get("/seasons/{season_id}")
def get_season(season_id: str, db: Session = Depends(get_db)):
    return _season_out(services.get_season_or_404(db, season_id))


@app.patch("/seasons/{season_id}")
def update_season(season_id: str, payload: SeasonUpdate, db: Session = Depends(get_db)):
    season = services.update_season(db, season_id, **payload.model_dump(exclude_unset=True))
    db.commit()
    return _season_out(season)


@app.delete("/seasons/{season_id}")
def delete_season(season_id: str, db: Session = Depends(get_db)):
    services.delete_season(db, season_id)
    db.commit()
    return {"deleted": season_id}


@app.post("/locations")
def create_location(payload: LocationCreate, db: Session = Depends(get_db)):
    location = services.create_location(db, payload.name, payload.address, location_id=payload.id)
    db.commit()
    return _location_out(location)


@app.get("/locations")
def list_locations(db: Session = Depends(get_db)):
    return [_location_out(loc) for loc in services.list_locations(db)]


@app.patch("/locations/{location_id}")
def update_location(location_id: str, payload: LocationUpdate, db: Session = Depends(get_db)):
    location = services.update_location(db, location_id, **payload.model_dump(exclude_unset=True))
    db.commit()
    return _location_out(location)


@app.delete("/locations/{location_id}")
def delete_location(location_id: str, db: Session = Depends(get_db)):
    services.delete_location(db, location_id)
    db.commit()
    return {"deleted": location_id}


@app.post("/seasons/{season_id}/rounds")
def add_round(season_id: str, payload: RoundCreate, db: Session = Depends(get_db)):
    round_ = services.add_round(
        db,
        season_id=season_id,
        round_number=payload.round_number,
        date=payload.date,
        location=payload.location,
        address=payload.address,
        status=payload.status,
        round_id=payload.id,
        location_id=payload.location_id,
    )
    db.commit()
    db.refresh(round_)
    return _round_out(round_)


@app.get("/seasons/{season_id}/rounds")
def list_rounds(season_id: str, db: Session = Depends(get_db)):
    return [_round_out(r) for r in services.list_rounds(db, season_id)]


@app.patch("/rounds/{round_id}")
def update_round(round_id: str, payload: RoundUpdate, db: Session = Depends(get_db)):
    round_ = services.update_round(db, round_id, **payload.model_dump(exclude_unset=True))
    db.commit()
    return _round_out(round_)


@app.delete("/rounds/{round_id}")
def delete_round(round_id: str, db: Session = Depends(get_db)):
    services.delete_round(db, round_id)
    db.commit()
    return {"deleted": round_id}


@app.post("/seasons/{season_id}/drivers")
def add_driver(season_id: str, payload: DriverCreate, db: Session = Depends(get_db)):
    driver = services.add_driver(
        db,
        season_id=season_id,
        name=payload.name,
        division=payload.division,
        email=payload.email,
        mobile_number=payload.mobile_number,
        team_name=payload.team_name,
        status=payload.status,
        aliases=payload.aliases,
        driver_id=payload.id,
    )
    db.commit()
    db.refresh(driver)
    return _driver_out(driver)


@app.get("/seasons/{season_id}/drivers")
def list_drivers(season_id: str, db: Session = Depends(get_db)):
    return [_driver_out(d) for d in services.list_drivers(db, season_id)]


@app.patch("/drivers/{driver_id}")
def update_driver(driver_id: str, payload: DriverUpdate, db: Session = Depends(get_db)):
    driver = services.update_driver(db, driver_id, **payload.model_dump(exclude_unset=True))
    db.commit()
    return _driver_out(driver)


@app.delete("/drivers/{driver_id}")
def delete_driver(driver_id: str, db: Session = Depends(get_db)):
    services.delete_driver(db, driver_id)
    db.commit()
    return {"deleted": driver_id}


@app.get("/drivers/{driver_id}/division")
def get_driver_division(driver_id: str, round_id: str = Query(...), db: Session = Depends(get_db)):
    return {
        "driver_id": driver_id,
        "round_id": round_id,
        "division": services.driver_division_at(db, driver_id, round_id),
    }


@app.post("/seasons/{season_id}/teams")
def add_team(season_id: str, payload: TeamCreate, db: Session = Depends(get_db)):
    team = services.add_team(db, season_id, payload.name, payload.division, team_id=payload.id)
    db.commit()
    return {"id": team.id, "name": team.name, "division": team.division or None}


@app.get("/seasons/{season_id}/teams")
def list_teams(season_id: str, db: Session = Depends(get_db)):
    return services.list_teams(db, season_id)


@app.patch("/teams/{team_id}")
def update_team(team_id: str, payload: TeamUpdate, db: Session = Depends(get_db)):
    team = services.update_team(db, team_id, **payload.model_dump(exclude_unset=True))
    db.commit()
    return {"id": team.id, "name": team.name, "division": team.division or None}


@app.delete("/teams/{team_id}")
def delete_team(team_id: str, db: Session = Depends(get_db)):
    services.delete_team(db, team_id)
    db.commit()
    return {"deleted": team_id}


@app.post("/rounds/{round_id}/results")
def upsert_race_result(round_id: str, payload: RaceResultUpsert, db: Session = Depends(get_db)):
    services.upsert_race_result(db, round_id=round_id, **payload.model_dump())
    db.commit()
    return {"round_id": round_id, "results": services.race_results_by_round(db, round_id)}


@app.get("/rounds/{round_id}/results")
def get_race_results(round_id: str, db: Session = Depends(get_db)):
    return {"round_id": round_id, "results": services.race_results_by_round(db, round_id)}


@app.delete("/rounds/{round_id}/results/{driver_id}")
def delete_race_result(
    round_id: str,
    driver_id: str,
    race_type: Optional[str] = Query(default=None),
    final_type: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    removed = services.delete_race_result(db, round_id, driver_id, race_type, final_type)
    db.commit()
    return {"round_id": round_id, "removed": removed}


@app.delete("/rounds/{round_id}/results")
def delete_race_results_by_race_type(
    round_id: str,
    race_type: str = Query(...),
    race_division: Optional[str] = Query(default=None),
    final_type: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    removed = services.delete_race_results_by_race_type(db, round_id, race_type, race_division, final_type)
    db.commit()
    return {"round_id": round_id, "removed": removed}


@app.post("/points")
def upsert_points(payload: PointsUpsert, db: Session = Depends(get_db)):
    row = services.upsert_points(db, **payload.model_dump())
    db.commit()
    db.refresh(row)
    return _points_out(row)


@app.get("/points")
def list_points(
    round_id: Optional[str] = Query(default=None),
    driver_id: Optional[str] = Query(default=None),
    season_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    return [_points_out(p) for p in services.list_points(db, round_id, driver_id, season_id)]


@app.patch("/points/{points_id}")
def update_points(points_id: str, payload: PointsUpdate, db: Session = Depends(get_db)):
    row = services.update_points(db, points_id, **payload.model_dump(exclude_unset=True))
    db.commit()
    return _points_out(row)


@app.delete("/points/{points_id}")
def delete_points(points_id: str, db: Session = Depends(get_db)):
    services.delete_points(db, points_id)
    db.commit()
    return {"deleted": points_id}


@app.post("/rounds/{round_id}/check-ins")
def upsert_check_in(round_id: str, payload: CheckInUpsert, db: Session = Depends(get_db)):
    row = services.upsert_check_in(db, round_id, payload.driver_id, payload.checked_in)
    db.commit()
    return _check_in_out(row)


@app.get("/rounds/{round_id}/check-ins")
def list_check_ins(round_id: str, db: Session = Depends(get_db)):
    return [_check_in_out(c) for c in services.list_check_ins(db, round_id)]


@app.delete("/rounds/{round_id}/check-ins")
def delete_check_ins(round_id: str, db: Session = Depends(get_db)):
    removed = services.delete_check_ins_by_round(db, round_id)
    db.commit()
    return {"round_id": round_id, "removed": removed}


@app.post("/seasons/{season_id}/division-changes")
def upsert_division_change(season_id: str, payload: DivisionChangeCreate, db: Session = Depends(get_db)):
    change = services.upsert_division_change(
        db,
        season_id=season_id,
        round_id=payload.round_id,
        driver_id=payload.driver_id,
        change_type=payload.change_type,
        from_division=payload.from_division,
        to_division=payload.to_division,
        division_start=payload.division_start,
        change_id=payload.id,
    )
    db.commit()
    return _change_out(change)


@app.get("/seasons/{season_id}/division-changes")
def list_division_changes(
    season_id: str,
    round_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    services.get_season_or_404(db, season_id)
    return [_change_out(c) for c in services.list_division_changes(db, season_id, round_id)]


@app.delete("/division-changes/{change_id}")
def delete_division_change(change_id: str, db: Session = Depends(get_db)):
    services.delete_division_change(db, change_id)
    db.commit()
    return {"deleted": change_id}


@app.post("/seasons/{season_id}/points/view", response_model=PointsViewOut)
def points_view(season_id: str, payload: PointsViewRequest, db: Session = Depends(get_db)):
    view = services.season_points_view(db, season_id, _to_filter(payload.filters), payload.edits)
    return _view_out(view)


@app.post("/seasons/{season_id}/points/save")
def save_points(season_id: str, payload: PointsViewRequest, db: Session = Depends(get_db)):
    saved = services.save_points_view(db, season_id, _to_filter(payload.filters), payload.edits)
    db.commit()
    return {"season_id": season_id, "saved": saved}


@app.get("/seasons/{season_id}/standings")
def get_driver_standings(season_id: str, division: str = Query(...), db: Session = Depends(get_db)):
    rows = services.season_driver_standings(db, season_id, _require_division(division))
    return {"season_id": season_id, "division": division, "standings": [asdict(r) for r in rows]}


@app.get("/seasons/{season_id}/team-standings")
def get_team_standings(season_id: str, division: str = Query(...), db: Session = Depends(get_db)):
    rows = services.season_team_standings(db, season_id, _require_division(division))
    return {"season_id": season_id, "division": division, "standings": [asdict(r) for r in rows]}
