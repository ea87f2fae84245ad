"""Derived metrics, computed on read and never stored.

Every division is guarded: a zero denominator yields 0, and an absent
optional field yields the sport's placeholder string.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

Counters = Mapping[str, Any]
Formula = Callable[[Counters], Any]

NO_MARK = "-"
NO_MARK_IMPERIAL = "—"
NO_TIME = "--:--:--"
NO_PACE = "--:--"

FRAMES_PER_SERIES = 30  # 10 frames x 3 games
OUTS_PER_NINE = 27


def _ratio(num: float, den: float) -> float:
    return num / den if den > 0 else 0


def _pct(made: float, attempted: float) -> float:
    return made / attempted * 100 if attempted > 0 else 0


def _per_nine(count: int, outs: int) -> float:
    return count * OUTS_PER_NINE / outs if outs > 0 else 0


def _is_faster_or_equal(time_ms: int | None, best_ms: int | None) -> bool:
    return time_ms is not None and best_ms is not None and time_ms <= best_ms


def _metres(cm: int | None) -> str:
    if cm is None:
        return NO_MARK
    return f"{cm / 100:.2f}m"


def _feet_inches(inches: float | None) -> str:
    if inches is None:
        return NO_MARK_IMPERIAL
    feet = int(inches // 12)
    return f"{feet}'-{inches % 12:.2f}\""


def _minutes_seconds(total_seconds: int) -> str:
    return f"{(total_seconds // 60) % 60:02d}:{total_seconds % 60:02d}"


def _passer_rating(c: Counters) -> float:
    attempts = c["pass_att"]
    if attempts == 0:
        return 0
    comp_pct = c["pass_comp"] / attempts * 100
    yds_per_att = c["pass_yds"] / attempts
    td_pct = c["pass_td"] / attempts * 100
    int_pct = c["pass_int"] / attempts * 100
    return (comp_pct + yds_per_att + td_pct - int_pct) / 4


def _swim_time(c: Counters) -> str:
    if c["final_time_ms"] is None:
        return NO_TIME
    return _minutes_seconds(c["final_time_ms"] // 1000)


def _race_time(c: Counters) -> str:
    final_ms = c["final_time_ms"]
    if final_ms is None:
        return NO_TIME
    minutes, rest = divmod(final_ms, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{minutes}:{seconds:02d}.{millis // 10:02d}"


def _average_pace(c: Counters) -> str:
    final_ms = c["final_time_ms"]
    distance_km = c["race_distance_km"]
    if final_ms is None or not distance_km:
        return NO_PACE
    pace = final_ms / 60_000 / distance_km
    minutes = int(pace)
    seconds = int((pace - minutes) * 60)
    return f"{minutes}:{seconds:02d}/km"


def _track_personal_best(distance: str, height: str, best: str) -> Formula:
    def formula(c: Counters) -> bool:
        if c["final_time_ms"] is not None and c["personal_best_ms"] is not None:
            return c["final_time_ms"] <= c["personal_best_ms"]
        if c[distance] is not None and c[best] is not None:
            return c[distance] >= c[best]
        if c[height] is not None and c[best] is not None:
            return c[height] >= c[best]
        return False

    return formula


def _bowling_strike_percentage(c: Counters) -> float:
    return _pct(c["strikes"], FRAMES_PER_SERIES)


def _bowling_spare_conversion(c: Counters) -> float:
    return _pct(c["spares"], FRAMES_PER_SERIES - c["strikes"])


def _diamond_formulas() -> dict[str, Formula]:
    return {
        "batting_average": lambda c: _ratio(c["hits"], c["at_bats"]),
        "on_base_percentage": lambda c: _ratio(
            c["hits"] + c["walks"] + c["hit_by_pitch"],
            c["at_bats"] + c["walks"] + c["hit_by_pitch"] + c["sacrifice_flies"],
        ),
        "stolen_bases_percentage": lambda c: _pct(
            c["stolen_bases"], c["stolen_bases"] + c["caught_stealing"]
        ),
        "innings_pitched": lambda c: c["outs_recorded"] / 3,
        "era": lambda c: _per_nine(c["earned_runs"], c["outs_recorded"]),
        "strikeouts_per_nine": lambda c: _per_nine(c["strikeouts_pitched"], c["outs_recorded"]),
        "walks_per_nine": lambda c: _per_nine(c["walks_allowed"], c["outs_recorded"]),
        "total_chances": lambda c: c["putouts"] + c["assists"] + c["errors"],
        "fielding_percentage": lambda c: _ratio(
            c["putouts"] + c["assists"], c["putouts"] + c["assists"] + c["errors"]
        ),
    }


FORMULAS: dict[str, dict[str, Formula]] = {
    "Basketball": {
        "fg_percentage": lambda c: _pct(c["two_pm"] + c["three_pm"], c["two_pa"] + c["three_pa"]),
        "total_rebounds": lambda c: c["rebounds_off"] + c["rebounds_def"],
        "two_point_percentage": lambda c: _pct(c["two_pm"], c["two_pa"]),
        "three_point_percentage": lambda c: _pct(c["three_pm"], c["three_pa"]),
        "ft_percentage": lambda c: _pct(c["ftm"], c["fta"]),
    },
    "Football": {
        "passer_rating": _passer_rating,
        "rush_avg": lambda c: _ratio(c["rush_yds"], c["rush_att"]),
        "rec_avg": lambda c: _ratio(c["rec_yds"], c["receptions"]),
        "fg_percentage": lambda c: _pct(c["fgm"], c["fga"]),
    },
    "Volleyball": {
        "hitting_percentage": lambda c: _ratio(c["kills"] - c["hitting_errors"], c["attempts"]),
        "total_blocks": lambda c: c["blocks_solo"] + c["blocks_assist"],
        "pass_efficiency": lambda c: _pct(c["receptions"], c["receptions"] + c["reception_errors"]),
    },
    "Soccer": {
        "shot_accuracy": lambda c: _pct(c["shots_on_target"], c["shots"]),
        "save_percentage": lambda c: _pct(c["saves"], c["saves"] + c["goals_against"]),
    },
    "Tennis": {
        "first_serve_percentage": lambda c: _pct(c["first_serves_in"], c["first_serves_attempted"]),
        "break_point_conversion": lambda c: _pct(
            c["break_points_won"], c["break_points_opportunities"]
        ),
        "winner_to_error_ratio": lambda c: (
            c["winners"] // c["unforced_errors"] if c["unforced_errors"] > 0 else 0
        ),
    },
    "Swimming": {
        "final_time_formatted": _swim_time,
        "is_personal_best": lambda c: _is_faster_or_equal(c["final_time_ms"], c["personal_best_ms"]),
    },
    "TrackField": {
        "best_distance_formatted": lambda c: _metres(c["best_distance_cm"]),
        "best_height_formatted": lambda c: _metres(c["best_height_cm"]),
        "is_personal_best": _track_personal_best(
            "best_distance_cm", "best_height_cm", "personal_best_cm"
        ),
    },
    "TrackFieldHS": {
        "best_distance_formatted": lambda c: _feet_inches(c["best_distance_inches"]),
        "best_height_formatted": lambda c: _feet_inches(c["best_height_inches"]),
        "is_personal_best": _track_personal_best(
            "best_distance_inches", "best_height_inches", "personal_best_inches"
        ),
    },
    "Wrestling": {
        "total_points_scored": lambda c: (
            c["takedowns"] * 2
            + c["escapes"]
            + c["reversals"] * 2
            + c["near_falls2"] * 2
            + c["near_falls3"] * 3
            + (1 if c["riding_time_point_awarded"] else 0)
        ),
        "riding_time_formatted": lambda c: _minutes_seconds(c["riding_time_seconds"]),
        "win_percentage": lambda c: _pct(c["season_wins"], c["season_wins"] + c["season_losses"]),
    },
    "CrossCountry": {
        "final_time_formatted": _race_time,
        "average_pace_formatted": _average_pace,
        "is_personal_best": lambda c: _is_faster_or_equal(c["final_time_ms"], c["personal_best_ms"]),
        "placement_formatted": lambda c: (
            f"{c['finish_position']}/{c['total_runners'] if c['total_runners'] is not None else ''}"
            if c["finish_position"] is not None
            else NO_MARK
        ),
    },
    "Golf": {
        "score_to_par": lambda c: (
            c["round_score"] - c["course_par"]
            if c["round_score"] is not None and c["course_par"] is not None
            else NO_MARK
        ),
        "fairway_accuracy": lambda c: _pct(c["fairways_hit"], c["fairways_total"]),
        "gir_percentage": lambda c: _pct(c["greens_in_regulation"], c["greens_in_regulation_total"]),
        "putts_per_round": lambda c: float(c["total_putts"]),
        "putts_per_gir": lambda c: _ratio(c["total_putts"], c["greens_in_regulation"]),
        "sand_save_percentage": lambda c: _pct(c["sand_saves"], c["sand_save_opportunities"]),
    },
    "Bowling": {
        "series_total": lambda c: c["game1_score"] + c["game2_score"] + c["game3_score"],
        "series_average": lambda c: (c["game1_score"] + c["game2_score"] + c["game3_score"]) / 3,
        "strike_percentage": _bowling_strike_percentage,
        "spare_conversion_rate": _bowling_spare_conversion,
        "split_conversion_rate": lambda c: _pct(c["splits"], c["splits_attempted"]),
    },
    "Baseball": _diamond_formulas(),
    "Softball": _diamond_formulas(),
}


def evaluate(sport: str, counters: Counters) -> dict[str, Any]:
    return {name: formula(counters) for name, formula in FORMULAS[sport].items()}
