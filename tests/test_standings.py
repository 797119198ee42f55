from kartleague.standings import (
    UNKNOWN_DRIVER,
    DivisionChange,
    Driver,
    PointsFilter,
    RaceResult,
    Round,
    SavedPoint,
    Team,
    calculate_round_points,
    calculate_season_points,
    division_at,
    driver_totals,
    index_saved_points,
    points_key,
    rank_points,
    season_standings,
    sort_rounds,
    team_standings,
)


def _rounds(*numbers):
    return [Round(id=f"r{n}", round_number=n, season_id="s1", location=f"Track {n}") for n in numbers]


def _by_id(items):
    return {item.id: item for item in items}


def test_division_at_walks_changes_in_round_order():
    rounds = _rounds(1, 2, 3, 4, 5, 6, 7)
    drivers = [Driver(id="d1", name="Ana", division="Division 1")]
    changes = [
        DivisionChange(id="c2", driver_id="d1", round_id="r5", change_type="promotion",
                       from_division="Division 2", to_division="Division 1"),
        DivisionChange(id="c1", driver_id="d1", round_id="r1", change_type="division_start",
                       division_start="Division 2"),
    ]
    args = (changes, _by_id(rounds), _by_id(drivers))
    assert division_at("d1", "r3", 3, *args) == "Division 2"
    assert division_at("d1", "r5", 5, *args) == "Division 1"
    assert division_at("d1", "r7", 7, *args) == "Division 1"


def test_division_at_without_changes_uses_current_division():
    drivers = {"d1": Driver(id="d1", name="Ana", division="Division 4")}
    assert division_at("d1", "r1", 1, [], {}, drivers) == "Division 4"
    assert division_at("ghost", "r1", 1, [], {}, drivers) is None


def test_pre_season_change_applies_to_round_one():
    rounds = _rounds(1, 2)
    drivers = _by_id([Driver(id="d1", name="Ana", division="Division 1")])
    changes = [
        DivisionChange(id="c1", driver_id="d1", round_id="pre-season-s1", change_type="division_start",
                       division_start="Division 3"),
    ]
    assert division_at("d1", "r1", 1, changes, _by_id(rounds), drivers) == "Division 3"
    assert division_at("d1", "pre-season-s1", 0, changes, _by_id(rounds), drivers) == "Division 3"


def test_regular_change_at_round_one_beats_pre_season():
    rounds = _rounds(1, 2)
    drivers = _by_id([Driver(id="d1", name="Ana", division="Division 1")])
    changes = [
        DivisionChange(id="c2", driver_id="d1", round_id="r1", change_type="mid_season_join",
                       division_start="Division 2"),
        DivisionChange(id="c1", driver_id="d1", round_id="pre-season-s1", change_type="division_start",
                       division_start="Division 3"),
    ]
    assert division_at("d1", "r1", 1, changes, _by_id(rounds), drivers) == "Division 2"
    assert division_at("d1", "pre-season-s1", 0, changes, _by_id(rounds), drivers) == "Division 3"


def test_change_on_unknown_round_counts_as_round_zero():
    drivers = _by_id([Driver(id="d1", name="Ana", division="Division 1")])
    changes = [
        DivisionChange(id="c1", driver_id="d1", round_id="gone", change_type="demotion",
                       to_division="Division 2"),
    ]
    assert division_at("d1", "r1", 1, changes, {}, drivers) == "Division 2"


def test_sort_rounds_puts_pre_season_first():
    rounds = [Round(id="r2", round_number=2), Round(id="pre-season-s1", round_number=9), Round(id="r1", round_number=1)]
    assert [r.id for r in sort_rounds(rounds)] == ["pre-season-s1", "r1", "r2"]


def test_single_final_without_heats_scores_maximum():
    rounds = _rounds(1)
    drivers = [Driver(id="x", name="Xavi", division="Division 1")]
    results = [RaceResult(round_id="r1", driver_id="x", race_division="Division 1",
                          race_type="final", final_type="A", overall_position=1)]

    rows = calculate_season_points(rounds, drivers, [], results, {})
    assert len(rows) == 1
    assert rows[0].points == 75

    view = rank_points(rows)
    assert view.rows[0].points == 75
    assert view.driver_totals == {"x": 75}


def test_final_after_heats_uses_major_scale():
    rounds = _rounds(1)
    drivers = [Driver(id="a", name="Ana", division="Division 1"), Driver(id="b", name="Ben", division="Division 1")]
    results = [
        RaceResult(round_id="r1", driver_id="a", race_division="Division 1", race_type="heat", final_type="A", position=1),
        RaceResult(round_id="r1", driver_id="a", race_division="Division 1", race_type="final", final_type="A", position=2),
        RaceResult(round_id="r1", driver_id="b", race_division="Division 1", race_type="final", final_type="A", position=1),
    ]
    rows = calculate_round_points(rounds[0], results, _by_id(drivers), [], _by_id(rounds), {})
    finals = {r.driver_id: r for r in rows if r.race_type == "final"}
    assert finals["b"].points == 60
    assert finals["a"].points == 58
    assert all(r.round_has_heat for r in rows)



def test_heat_in_one_division_moves_whole_round_to_major_scale():
    rounds = _rounds(1)
    drivers = [Driver(id="a", name="Ana", division="Division 1"), Driver(id="c", name="Cy", division="Division 2")]
    results = [
        RaceResult(round_id="r1", driver_id="a", race_division="Division 1", race_type="heat", final_type="A", position=1),
        RaceResult(round_id="r1", driver_id="a", race_division="Division 1", race_type="final", final_type="A", position=1),
        RaceResult(round_id="r1", driver_id="c", race_division="Division 2", race_type="final", final_type="A", position=1),
    ]
    rows = calculate_round_points(rounds[0], results, _by_id(drivers), [], _by_id(rounds), {})
    cy = next(r for r in rows if r.driver_id == "c")
    assert cy.round_has_heat
    assert cy.points == 60

    view = rank_points(rows)
    assert next(r for r in view.rows if r.driver_id == "c").points == 60

def test_missing_overall_position_falls_back_to_finish_order():
    rounds = _rounds(1)
    results = [
        RaceResult(round_id="r1", driver_id="b", race_division="Division 2", race_type="heat", position=2),
        RaceResult(round_id="r1", driver_id="a", race_division="Division 2", race_type="heat", position=1),
        RaceResult(round_id="r1", driver_id="c", race_division="Division 2", race_type="heat", position=0,
                   driver_name="Carla"),
    ]
    rows = calculate_round_points(rounds[0], results, {}, [], _by_id(rounds), {})
    by_driver = {r.driver_id: r for r in rows}
    # Position 0 sorts first.
    assert by_driver["c"].overall_position == 1
    assert by_driver["a"].overall_position == 2
    assert by_driver["b"].overall_position == 3
    assert by_driver["c"].driver_name == "Carla"
    assert by_driver["a"].driver_name == UNKNOWN_DRIVER
    assert by_driver["a"].round_name == "Track 1"


def test_saved_point_overrides_points_division_and_position():
    rounds = _rounds(1)
    drivers = [Driver(id="x", name="Xavi", division="Division 1")]
    results = [RaceResult(round_id="r1", driver_id="x", race_division="Division 1",
                          race_type="final", final_type="A", overall_position=1)]
    saved = index_saved_points([
        SavedPoint(round_id="r1", driver_id="x", race_type="final", final_type="A", points=12.5,
                   division="Division 2", overall_position=4, note="penalty"),
    ])

    rows = calculate_season_points(rounds, drivers, [], results, saved)
    row = rows[0]
    assert row.points == 12.5
    assert row.division == "Division 2"
    assert row.overall_position == 4
    assert row.saved
    assert row.note == "penalty"

    view = rank_points(rows, saved_points=saved, edits={row.key: 99})
    assert view.rows[0].points == 12.5
    assert view.driver_totals["x"] == 12.5


def test_final_groups_rank_by_letter_before_finish_order():
    rounds = _rounds(1)
    drivers = [
        Driver(id="a1", name="Zed", division="Division 1"),
        Driver(id="a2", name="Yan", division="Division 1"),
        Driver(id="b1", name="Abe", division="Division 1"),
    ]
    results = [
        RaceResult(round_id="r1", driver_id="b1", race_division="Division 1", race_type="final",
                   final_type="B", position=1, fastest_lap="0:41.002"),
        RaceResult(round_id="r1", driver_id="a2", race_division="Division 1", race_type="final",
                   final_type="A", position=2, fastest_lap="0:42.900"),
        RaceResult(round_id="r1", driver_id="a1", race_division="Division 1", race_type="final",
                   final_type="A", position=1, fastest_lap="0:42.100"),
    ]
    rows = calculate_season_points(rounds, drivers, [], results, {})
    view = rank_points(rows)

    assert [r.driver_id for r in view.rows] == ["a1", "a2", "b1"]
    assert [r.points_position for r in view.rows] == [1, 2, 3]
    assert [r.points for r in view.rows] == [75, 70, 65]


def test_mixed_group_ranks_by_points_then_race_type():
    rounds = _rounds(1)
    drivers = [Driver(id="a", name="Ana", division="Division 1"), Driver(id="b", name="Ben", division="Division 1")]
    results = [
        RaceResult(round_id="r1", driver_id="a", race_division="Division 1", race_type="heat", position=1),
        RaceResult(round_id="r1", driver_id="b", race_division="Division 1", race_type="final", final_type="A", position=1),
    ]
    rows = calculate_season_points(rounds, drivers, [], results, {})
    edits = {points_key("r1", "a", "heat"): 30.0, points_key("r1", "b", "final", "A"): 30.0}
    view = rank_points(rows, edits=edits)

    # Equal points: the final outranks the heat.
    assert [r.driver_id for r in view.rows] == ["b", "a"]
    assert [r.points for r in view.rows] == [30.0, 30.0]


def test_live_rows_take_points_from_their_rank():
    rounds = _rounds(1)
    results = [
        RaceResult(round_id="r1", driver_id="a", race_division="Division 2", race_type="heat", position=1),
        RaceResult(round_id="r1", driver_id="b", race_division="Division 2", race_type="heat", position=2),
    ]
    rows = calculate_season_points(rounds, [], [], results, {})
    # Pinning the second driver above the first pushes the live row down a place.
    view = rank_points(rows, edits={points_key("r1", "b", "heat"): 20.0})
    assert [(r.driver_id, r.points) for r in view.rows] == [("b", 20.0), ("a", 12)]


def test_rank_points_is_idempotent():
    rounds = _rounds(1, 2)
    drivers = [Driver(id="a", name="Ana", division="Division 3"), Driver(id="b", name="Ben", division="Division 4")]
    results = [
        RaceResult(round_id="r1", driver_id="a", race_division="Open", race_type="heat", position=2),
        RaceResult(round_id="r1", driver_id="b", race_division="Open", race_type="heat", position=1),
        RaceResult(round_id="r2", driver_id="a", race_division="Open", race_type="final", final_type="A", position=1),
        RaceResult(round_id="r2", driver_id="b", race_division="Open", race_type="final", final_type="B", position=1),
    ]
    first = rank_points(calculate_season_points(rounds, drivers, [], results, {}))
    second = rank_points(calculate_season_points(rounds, drivers, [], results, {}))
    assert first == second
    # Later rounds come first.
    assert first.rows[0].round_id == "r2"


def test_filters_select_rows():
    rounds = _rounds(1, 2)
    drivers = [
        Driver(id="a", name="Ana", division="Division 3"),
        Driver(id="b", name="Ben", division="Division 1"),
    ]
    results = [
        RaceResult(round_id="r1", driver_id="a", race_division="Division 3 (Open)", race_type="heat",
                   final_type="A", position=1),
        RaceResult(round_id="r1", driver_id="b", race_division="Division 1", race_type="heat",
                   final_type="B", position=1),
        RaceResult(round_id="r2", driver_id="a", race_division="Division 3 (Open)", race_type="final",
                   final_type="A", position=1),
    ]
    rows = calculate_season_points(rounds, drivers, [], results, {})

    open_rows = rank_points(rows, PointsFilter(race_division="Open")).rows
    assert {r.driver_id for r in open_rows} == {"a"}

    heat_b = rank_points(rows, PointsFilter(race_type="heat", heat_type="B")).rows
    assert [r.driver_id for r in heat_b] == ["b"]

    round_one_open_drivers = rank_points(rows, PointsFilter(round_id="r1", driver_division="Open")).rows
    assert [r.driver_id for r in round_one_open_drivers] == ["a"]


def test_driver_total_sums_resolved_values():
    rounds = _rounds(1)
    drivers = [Driver(id="d", name="Dee", division="Division 2")]
    results = [
        RaceResult(round_id="r1", driver_id="d", race_division="Division 2", race_type="heat", position=8),
        RaceResult(round_id="r1", driver_id="d", race_division="Division 2", race_type="final",
                   final_type="A", position=3),
    ]
    saved = index_saved_points([
        SavedPoint(round_id="r1", driver_id="d", race_type="heat", final_type="", points=5,
                   division="Division 2"),
    ])
    rows = calculate_season_points(rounds, drivers, [], results, saved)
    edits = {points_key("r1", "d", "final", "A"): 25}

    assert driver_totals(rows, saved, edits) == {"d": 30}
    assert rank_points(rows, saved_points=saved, edits=edits).driver_totals == {"d": 30}


def test_season_standings_apply_drop_round():
    rounds = _rounds(1, 2, 3)
    drivers = [
        Driver(id="a", name="Ana", division="Division 1", team_name="Red"),
        Driver(id="b", name="Ben", division="Division 1", team_name="Red"),
        Driver(id="c", name="Cy", division="Division 1", status="INACTIVE"),
        Driver(id="d", name="Dee", division="Division 2"),
    ]
    records = [
        SavedPoint(round_id="r1", driver_id="a", race_type="final", final_type="A", points=75, division="Division 1"),
        SavedPoint(round_id="r2", driver_id="a", race_type="final", final_type="A", points=60, division="Division 1"),
        SavedPoint(round_id="r3", driver_id="a", race_type="final", final_type="A", points=70, division="Division 1"),
        SavedPoint(round_id="r1", driver_id="b", race_type="final", final_type="A", points=70, division="Division 1"),
        SavedPoint(round_id="r3", driver_id="b", race_type="final", final_type="A", points=75, division="Division 1"),
        SavedPoint(round_id="r3", driver_id="b", race_type="heat", final_type="", points=15, division="Division 1"),
    ]
    table = season_standings(rounds, drivers, records, "Division 1")

    assert [s.driver_id for s in table] == ["b", "a"]
    ana = table[1]
    assert ana.raw_total_points == 205
    assert ana.drop_round.round_id == "r2"
    assert ana.total_points == 145
    ben = table[0]
    assert [rp.points for rp in ben.round_points] == [70, 0, 90]
    assert ben.drop_round.round_id == "r2"
    assert ben.total_points == 160
    assert [s.rank for s in table] == [1, 2]


def test_team_standings_sum_member_rounds():
    rounds = _rounds(1, 2)
    drivers = [
        Driver(id="a", name="Ana", division="Division 1", team_name="Red"),
        Driver(id="b", name="Ben", division="Division 1", team_name="Red"),
        Driver(id="c", name="Cy", division="Division 1", team_name="Blue"),
    ]
    records = [
        SavedPoint(round_id="r1", driver_id="a", race_type="final", final_type="A", points=75, division="Division 1"),
        SavedPoint(round_id="r2", driver_id="b", race_type="final", final_type="A", points=70, division="Division 1"),
        SavedPoint(round_id="r1", driver_id="c", race_type="final", final_type="A", points=60, division="Division 1"),
    ]
    teams = [Team(id="t1", name="Red"), Team(id="t2", name="Blue", division="Division 1"), Team(id="t3", name="Gold", division="Division 2")]
    driver_rows = season_standings(rounds, drivers, records, "Division 1")
    table = team_standings(rounds, teams, drivers, driver_rows, "Division 1")

    assert [t.team_name for t in table] == ["Red", "Blue"]
    assert table[0].total_points == 145
    assert [rp.points for rp in table[0].round_points] == [75, 70]
    assert table[0].driver_ids == ["a", "b"]
    assert table[1].rank == 2


def test_team_standings_count_only_members_in_division():
    rounds = _rounds(1)
    drivers = [
        Driver(id="a", name="Ana", division="Division 1", team_name="Red"),
        Driver(id="d", name="Dee", division="Division 2", team_name="Red"),
    ]
    records = [
        SavedPoint(round_id="r1", driver_id="a", race_type="final", final_type="A", points=75, division="Division 1"),
        SavedPoint(round_id="r1", driver_id="d", race_type="final", final_type="A", points=75, division="Division 2"),
    ]
    teams = [Team(id="t1", name="Red")]

    division_one = team_standings(rounds, teams, drivers, season_standings(rounds, drivers, records, "Division 1"), "Division 1")
    assert [(t.team_name, t.total_points, t.driver_ids) for t in division_one] == [("Red", 75, ["a"])]

    division_two = team_standings(rounds, teams, drivers, season_standings(rounds, drivers, records, "Division 2"), "Division 2")
    assert [(t.team_name, t.total_points, t.driver_ids) for t in division_two] == [("Red", 75, ["d"])]
