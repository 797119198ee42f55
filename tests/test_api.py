from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kartleague.cache import cache
from kartleague.database import Base, get_db
from kartleague.main import app


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def _override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def _client() -> TestClient:
    cache.clear()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_db] = _override_get_db
    return TestClient(app)


def _seed(client: TestClient) -> None:
    assert client.post("/seasons", json={"id": "s1", "name": "2025 Season"}).status_code == 200
    for number, location in ((1, "Lakeside"), (2, "Hilltop")):
        res = client.post(
            "/seasons/s1/rounds",
            json={"id": f"r{number}", "round_number": number, "location": location},
        )
        assert res.status_code == 200
    for driver_id, name in (("ana", "Ana"), ("ben", "Ben")):
        res = client.post(
            "/seasons/s1/drivers",
            json={"id": driver_id, "name": name, "division": "Division 1", "team_name": "Red"},
        )
        assert res.status_code == 200


def test_health():
    client = _client()
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_season_flow_from_results_to_standings():
    client = _client()
    _seed(client)

    for round_id, order in (("r1", ["ana", "ben"]), ("r2", ["ben", "ana"])):
        for position, driver_id in enumerate(order, start=1):
            res = client.post(
                f"/rounds/{round_id}/results",
                json={
                    "driver_id": driver_id,
                    "race_division": "Division 1",
                    "race_type": "final",
                    "final_type": "A",
                    "position": position,
                },
            )
            assert res.status_code == 200

    grouped = client.get("/rounds/r1/results").json()["results"]
    assert grouped[0]["division"] == "Division 1"
    assert [r["driver_id"] for r in grouped[0]["results"]] == ["ana", "ben"]

    view = client.post("/seasons/s1/points/view", json={"filters": {"round_id": "r1"}}).json()
    assert [(r["driver_id"], r["points"]) for r in view["rows"]] == [("ana", 75), ("ben", 70)]
    assert view["rows"][0]["key"] == "r1-ana-final-A"

    edited = client.post(
        "/seasons/s1/points/view",
        json={"filters": {"round_id": "r1"}, "edits": {"r1-ben-final-A": 80}},
    ).json()
    assert edited["driver_totals"] == {"ana": 75, "ben": 80}

    saved = client.post("/seasons/s1/points/save", json={})
    assert saved.json() == {"season_id": "s1", "saved": 4}

    standings = client.get("/seasons/s1/standings", params={"division": "Division 1"}).json()
    totals = {row["driver_id"]: row["total_points"] for row in standings["standings"]}
    assert totals == {"ana": 75, "ben": 75}

    teams = client.get("/seasons/s1/team-standings", params={"division": "Division 1"}).json()
    assert teams["standings"][0]["team_name"] == "Red"
    assert teams["standings"][0]["total_points"] == 290


def test_points_crud():
    client = _client()
    _seed(client)

    created = client.post(
        "/points",
        json={
            "round_id": "r1",
            "driver_id": "ana",
            "division": "Division 1",
            "race_type": "heat",
            "points": 9.5,
        },
    )
    assert created.status_code == 200
    points_id = created.json()["id"]
    assert points_id == "points-r1-ana-heat-"

    updated = client.patch(f"/points/{points_id}", json={"points": 11.257, "note": "recount"})
    assert updated.json()["points"] == 11.26
    assert updated.json()["note"] == "recount"

    assert len(client.get("/points", params={"driver_id": "ana"}).json()) == 1
    assert client.get("/points").status_code == 400

    assert client.delete(f"/points/{points_id}").status_code == 200
    assert client.delete(f"/points/{points_id}").status_code == 404


def test_division_changes_and_lookup():
    client = _client()
    _seed(client)

    changes = client.get("/seasons/s1/division-changes").json()
    assert {c["round_id"] for c in changes} == {"pre-season-s1"}

    res = client.post(
        "/seasons/s1/division-changes",
        json={
            "round_id": "r2",
            "driver_id": "ben",
            "change_type": "demotion",
            "from_division": "Division 1",
            "to_division": "Division 2",
        },
    )
    assert res.status_code == 200

    r1 = client.get("/drivers/ben/division", params={"round_id": "r1"}).json()
    r2 = client.get("/drivers/ben/division", params={"round_id": "r2"}).json()
    assert r1["division"] == "Division 1"
    assert r2["division"] == "Division 2"


def test_validation_and_missing_records():
    client = _client()
    _seed(client)

    assert client.get("/seasons/nope").status_code == 404
    assert client.post("/seasons/s1/rounds", json={"round_number": 1}).status_code == 400
    assert client.post("/seasons/s1/rounds", json={"round_number": 0}).status_code == 422
    assert (
        client.post("/seasons/s1/drivers", json={"name": "Zed", "division": "Division 9"}).status_code
        == 422
    )
    assert client.get("/seasons/s1/standings", params={"division": "Premier"}).status_code == 400
    assert client.get("/drivers/ana/division", params={"round_id": "r9"}).status_code == 404


def test_check_ins_and_driver_delete():
    client = _client()
    _seed(client)

    assert client.post("/rounds/r1/check-ins", json={"driver_id": "ana"}).status_code == 200
    assert client.post("/rounds/r1/check-ins", json={"driver_id": "ana", "checked_in": False}).status_code == 200
    rows = client.get("/rounds/r1/check-ins").json()
    assert [(r["driver_id"], r["checked_in"]) for r in rows] == [("ana", False)]

    assert client.delete("/drivers/ana").status_code == 200
    assert client.get("/rounds/r1/check-ins").json() == []
    assert [d["id"] for d in client.get("/seasons/s1/drivers").json()] == ["ben"]


def test_partial_updates_keep_unsent_fields():
    client = _client()
    _seed(client)

    assert client.patch("/drivers/ana", json={"status": "BANNED", "aliases": ["A1"]}).status_code == 200
    driver = client.patch("/drivers/ana", json={"name": "Ana B", "division": "Division 1"}).json()
    assert (driver["name"], driver["team_name"], driver["status"], driver["aliases"]) == (
        "Ana B",
        "Red",
        "BANNED",
        ["A1"],
    )

    round_ = client.patch("/rounds/r1", json={"round_number": 1, "status": "completed"}).json()
    assert (round_["location"], round_["status"]) == ("Lakeside", "completed")
    assert client.patch("/rounds/r1", json={"status": "postponed"}).status_code == 422


def test_location_season_and_team_routes():
    client = _client()
    _seed(client)

    created = client.post("/locations", json={"id": "lake", "name": "Lakeside Raceway", "address": "1 Shore Rd"})
    assert created.status_code == 200
    assert client.post("/locations", json={"name": "Lakeside Raceway"}).status_code == 400

    round_ = client.post("/seasons/s1/rounds", json={"id": "r3", "round_number": 3, "location_id": "lake"}).json()
    assert (round_["location_id"], round_["location"], round_["address"]) == ("lake", "Lakeside Raceway", "1 Shore Rd")

    renamed = client.patch("/locations/lake", json={"name": "Lake Circuit"}).json()
    assert renamed == {"id": "lake", "name": "Lake Circuit", "address": "1 Shore Rd"}
    assert client.delete("/locations/lake").status_code == 200
    assert client.get("/locations").json() == []
    rounds = {r["id"]: r for r in client.get("/seasons/s1/rounds").json()}
    assert (rounds["r3"]["location_id"], rounds["r3"]["location"]) == (None, "Lake Circuit")
    assert rounds["r1"]["location"] == "Lakeside"

    season = client.patch("/seasons/s1", json={"end_date": "2025-10-01"}).json()
    assert (season["name"], season["end_date"]) == ("2025 Season", "2025-10-01")

    assert client.post("/seasons/s1/teams", json={"id": "red", "name": "Red"}).status_code == 200
    team = client.patch("/teams/red", json={"name": "Crimson"}).json()
    assert team == {"id": "red", "name": "Crimson", "division": None}
    assert {d["team_name"] for d in client.get("/seasons/s1/drivers").json()} == {"Crimson"}
