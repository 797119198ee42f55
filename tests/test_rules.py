from kartleague.rules import (
    all_points_for_position,
    driver_division_matches,
    drop_round_index,
    letter_matches,
    points_for_position,
    pre_season_round_id,
    race_division_matches,
    race_type_priority,
    round_points,
)


def test_final_points_use_standard_scale_without_heats():
    assert points_for_position(1, "final", False) == 75
    assert points_for_position(2, "final", False) == 70
    assert points_for_position(10, "final", False) == 50
    assert points_for_position(50, "final", False) == 2


def test_final_points_use_major_scale_after_heats():
    assert points_for_position(1, "final", True) == 60
    assert points_for_position(5, "final", True) == 52
    assert points_for_position(38, "final", True) == 1


def test_heat_points_use_minor_scale():
    assert points_for_position(1, "heat") == 15
    assert points_for_position(8, "heat") == 5
    assert points_for_position(12, "heat") == 1
    # Heats score on the same scale whether or not the round has heats.
    assert points_for_position(3, "heat", True) == points_for_position(3, "heat", False)


def test_qualification_and_out_of_range_positions_score_nothing():
    assert points_for_position(1, "qualification") == 0
    assert points_for_position(1) == 0
    assert points_for_position(0, "final") == 0
    assert points_for_position(-3, "heat") == 0
    assert points_for_position(51, "final") == 0


def test_all_points_for_position():
    row = all_points_for_position(3)
    assert row is not None
    assert (row.standard, row.major, row.minor) == (65, 56, 10)
    assert all_points_for_position(99) is None


def test_race_type_priority_orders_finals_before_heats_and_qualification():
    assert race_type_priority("final", "A") == 1
    assert race_type_priority("final", "b") == 2
    assert race_type_priority("final", "A") < race_type_priority("final", "C")
    assert race_type_priority("final", "Z") < race_type_priority("heat", "A")
    assert race_type_priority("heat") == 100
    assert race_type_priority("qualification") == 200
    assert race_type_priority("practice") == 300


def test_open_filter_in_race_division_context():
    assert race_division_matches("Open", "Open")
    assert race_division_matches("Division 3 (Open)", "Open")
    assert race_division_matches("Division 4 (Open)", "Open")
    assert not race_division_matches("Division 3", "Open")
    assert race_division_matches("Division 1", "Division 1")
    assert not race_division_matches("Division 2", "Division 1")
    assert race_division_matches("Division 2", "All")
    assert race_division_matches("Division 2", None)


def test_open_filter_in_driver_division_context():
    for division in ("Division 3", "Division 4", "New", "Open"):
        assert driver_division_matches(division, "Open")
    assert not driver_division_matches("Division 1", "Open")
    assert not driver_division_matches(None, "Division 1")
    assert driver_division_matches(None, "")


def test_letter_matches_is_case_insensitive():
    assert letter_matches("A", "a")
    assert not letter_matches("B", "A")
    assert not letter_matches("", "A")
    assert letter_matches("", None)


def test_drop_round_single_missed_round():
    assert drop_round_index([40.0, 0.0, 55.0]) == 1


def test_drop_round_full_attendance_drops_lowest():
    assert drop_round_index([40.0, 35.5, 55.0]) == 1
    assert drop_round_index([30.0, 30.0]) == 0


def test_drop_round_several_missed_rounds_drops_first_zero():
    assert drop_round_index([0.0, 20.0, 0.0, 0.0]) == 0
    assert drop_round_index([10.0, 0.0, 0.0]) == 1
    assert drop_round_index([]) is None


def test_pre_season_round_id_and_rounding():
    assert pre_season_round_id("s2025") == "pre-season-s2025"
    assert round_points(12.3456) == 12.35
    assert round_points(5) == 5.0
