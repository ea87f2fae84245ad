"""Counter schemas for every supported sport.

Each sport is a tag selecting one ``SportSchema``: the fixed list of stored
fields for that sport's ``<sport>_stats`` table. Derived metrics live in
``broadcast.stats.formulas``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from broadcast.errors import ValidationError

INT = "int"
FLOAT = "float"
OPT_INT = "opt_int"
OPT_FLOAT = "opt_float"
TEXT = "text"
FLAG = "flag"

NUMERIC_KINDS = frozenset({INT, FLOAT, OPT_INT, OPT_FLOAT})


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str = INT
    length: int | None = None

    @property
    def default(self) -> Any:
        if self.kind == INT:
            return 0
        if self.kind == FLOAT:
            return 0.0
        if self.kind == FLAG:
            return False
        return None

    @property
    def is_counter(self) -> bool:
        return self.kind in NUMERIC_KINDS


@dataclass(frozen=True)
class SportSchema:
    sport: str
    table_name: str
    fields: tuple[FieldSpec, ...]
    family: str | None = None

    def field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise ValidationError(
            f"Unknown {self.sport} stat field: {name}",
            {name: "unknown field"},
        )

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)

    def defaults(self) -> dict[str, Any]:
        return {spec.name: spec.default for spec in self.fields}


def _ints(*names: str) -> tuple[FieldSpec, ...]:
    return tuple(FieldSpec(name) for name in names)


_DIAMOND_FIELDS = _ints(
    # batting
    "at_bats", "hits", "singles", "doubles", "triples", "home_runs", "runs",
    "rbi", "walks", "strikeouts", "hit_by_pitch", "sacrifice_flies",
    "sacrifice_hits", "stolen_bases", "caught_stealing",
    # pitching; innings are stored as outs
    "wins", "losses", "saves", "games_started", "games_finished",
    "complete_games", "shutouts", "outs_recorded", "hits_allowed",
    "runs_allowed", "earned_runs", "walks_allowed", "strikeouts_pitched",
    "hit_batsmen", "wild_pitches", "balks",
    # fielding
    "putouts", "assists", "errors", "double_plays",
)

_TRACK_EVENT_FIELDS = (
    FieldSpec("event_name", TEXT, 50),
    FieldSpec("event_category", TEXT, 20),
    FieldSpec("reaction_time_ms", OPT_INT),
    FieldSpec("final_time_ms", OPT_INT),
    FieldSpec("split_times_json", TEXT),
)

_TRACK_MEET_FIELDS = (
    FieldSpec("attempts_json", TEXT),
    FieldSpec("fouls"),
    FieldSpec("placement", OPT_INT),
    FieldSpec("meet_points"),
    FieldSpec("wind_speed", OPT_FLOAT),
    FieldSpec("personal_best_ms", OPT_INT),
)


SPORT_SCHEMAS: dict[str, SportSchema] = {
    schema.sport: schema
    for schema in (
        SportSchema(
            "Basketball",
            "basketball_stats",
            _ints(
                "points", "assists", "rebounds_off", "rebounds_def", "steals",
                "blocks", "turnovers", "fouls", "two_pm", "two_pa", "three_pm",
                "three_pa", "ftm", "fta",
            ),
        ),
        SportSchema(
            "Football",
            "football_stats",
            _ints(
                "pass_yds", "pass_td", "pass_int", "pass_comp", "pass_att",
                "rush_yds", "rush_td", "rush_att",
                "rec_yds", "rec_td", "receptions",
                "fumbles", "fumbles_lost",
                "tackles", "tfl", "sacks", "interceptions", "pass_deflections",
                "forced_fumbles", "fumble_recoveries",
                "kr_yds", "kr_td", "pr_yds", "pr_td",
                "fgm", "fga", "xpm", "xpa",
                "punts", "punt_yds",
            ),
            family="gridiron",
        ),
        SportSchema(
            "Volleyball",
            "volleyball_stats",
            _ints(
                "kills", "attempts", "hitting_errors", "assists", "aces",
                "service_errors", "digs", "blocks_solo", "blocks_assist",
                "blocking_errors", "receptions", "reception_errors",
            ),
            family="sets",
        ),
        SportSchema(
            "Soccer",
            "soccer_stats",
            _ints(
                "goals", "assists", "shots", "shots_on_target", "key_passes",
                "tackles", "interceptions", "clearances", "fouls_committed",
                "fouls_drawn", "yellow_cards", "red_cards", "saves",
                "goals_against",
            ),
        ),
        SportSchema(
            "Tennis",
            "tennis_stats",
            _ints(
                "aces", "double_faults", "first_serves_in",
                "first_serves_attempted", "second_serves_in",
                "second_serves_attempted", "service_games_won",
                "service_games_played", "break_points_won",
                "break_points_opportunities", "return_games_won",
                "return_games_played", "winners", "unforced_errors",
                "forced_errors", "total_points_won", "total_points_played",
                "games_won", "sets_won",
            )
            + (FieldSpec("match_result", TEXT, 20),),
            family="sets",
        ),
        SportSchema(
            "Swimming",
            "swimming_stats",
            (
                FieldSpec("event_name", TEXT, 50),
                FieldSpec("event_type", TEXT, 20),
                FieldSpec("reaction_time_ms", OPT_INT),
                FieldSpec("final_time_ms", OPT_INT),
                FieldSpec("personal_best_ms", OPT_INT),
                FieldSpec("split_times_json", TEXT),
                FieldSpec("meet_points"),
                FieldSpec("placement", OPT_INT),
                FieldSpec("degree_of_difficulty", OPT_FLOAT),
                FieldSpec("judges_scores_json", TEXT),
                FieldSpec("total_dive_score", FLOAT),
            ),
        ),
        SportSchema(
            "TrackField",
            "track_field_stats",
            _TRACK_EVENT_FIELDS
            + (
                FieldSpec("best_distance_cm", OPT_INT),
                FieldSpec("best_height_cm", OPT_INT),
            )
            + _TRACK_MEET_FIELDS
            + (FieldSpec("personal_best_cm", OPT_INT),),
        ),
        SportSchema(
            "TrackFieldHS",
            "track_field_hs_stats",
            _TRACK_EVENT_FIELDS
            + (
                FieldSpec("best_distance_inches", OPT_FLOAT),
                FieldSpec("best_height_inches", OPT_FLOAT),
            )
            + _TRACK_MEET_FIELDS
            + (FieldSpec("personal_best_inches", OPT_FLOAT),),
        ),
        SportSchema(
            "Wrestling",
            "wrestling_stats",
            (
                FieldSpec("weight_class", TEXT, 20),
                FieldSpec("match_result", TEXT, 20),
                FieldSpec("victory_method", TEXT, 30),
                FieldSpec("match_time_seconds", OPT_INT),
            )
            + _ints(
                "takedowns", "escapes", "reversals", "near_falls2",
                "near_falls3", "penalties", "riding_time_seconds",
            )
            + (FieldSpec("riding_time_point_awarded", FLAG),)
            + _ints("team_points_earned", "season_wins", "season_losses", "season_pins"),
        ),
        SportSchema(
            "CrossCountry",
            "cross_country_stats",
            (
                FieldSpec("race_name", TEXT, 50),
                FieldSpec("race_distance_km", OPT_FLOAT),
                FieldSpec("final_time_ms", OPT_INT),
                FieldSpec("personal_best_ms", OPT_INT),
                FieldSpec("split_times_json", TEXT),
                FieldSpec("finish_position", OPT_INT),
                FieldSpec("total_runners", OPT_INT),
            )
            + _ints("team_points", "races_run", "top10_finishes"),
        ),
        SportSchema(
            "Golf",
            "golf_stats",
            (
                FieldSpec("course_name", TEXT, 50),
                FieldSpec("course_par", OPT_INT),
                FieldSpec("round_score", OPT_INT),
            )
            + _ints(
                "eagles", "birdies", "pars", "bogeys", "double_bogeys",
                "triple_bogeys_or_worse", "fairways_hit", "fairways_total",
                "greens_in_regulation", "greens_in_regulation_total",
                "total_putts", "one_putts", "two_putts", "three_putts",
                "sand_saves", "sand_save_opportunities",
                "average_drive_yards", "longest_drive_yards",
            )
            + (
                FieldSpec("handicap", FLOAT),
                FieldSpec("net_score"),
                FieldSpec("placement", OPT_INT),
                FieldSpec("total_players", OPT_INT),
            ),
        ),
        SportSchema(
            "Bowling",
            "bowling_stats",
            _ints("game1_score", "game2_score", "game3_score")
            + (
                FieldSpec("game1_frames_json", TEXT),
                FieldSpec("game2_frames_json", TEXT),
                FieldSpec("game3_frames_json", TEXT),
            )
            + _ints(
                "strikes", "spares", "splits", "splits_attempted",
                "open_frames", "total_pinfall",
            )
            + (FieldSpec("season_average", FLOAT),)
            + _ints("high_game", "high_series", "games_played"),
        ),
        SportSchema("Baseball", "baseball_stats", _DIAMOND_FIELDS),
        SportSchema("Softball", "softball_stats", _DIAMOND_FIELDS),
    )
}

SPORTS: tuple[str, ...] = tuple(SPORT_SCHEMAS)


def get_schema(sport: str) -> SportSchema:
    schema = SPORT_SCHEMAS.get(sport)
    if schema is None:
        raise ValidationError(
            f"Unsupported sport: {sport}. Supported: {', '.join(SPORTS)}",
            {"sport": "unsupported"},
        )
    return schema


def coerce_value(spec: FieldSpec, value: Any, *, delta: bool = False) -> Any:
    """Check ``value`` against the field kind; return it normalized.

    Raises ``ValidationError`` for a type mismatch. With ``delta=True`` only
    numeric fields are accepted and ``None`` is rejected.
    """

    if delta and not spec.is_counter:
        raise ValidationError(
            f"Field {spec.name} is not a counter",
            {spec.name: "not a counter"},
        )
    if value is None:
        if delta or spec.kind in {INT, FLOAT, FLAG}:
            raise ValidationError(
                f"Field {spec.name} cannot be null",
                {spec.name: "null not allowed"},
            )
        return None
    if spec.kind in {INT, OPT_INT}:
        if isinstance(value, bool) or not isinstance(value, int):
            if isinstance(value, float) and value.is_integer():
                return int(value)
            raise ValidationError(
                f"Field {spec.name} expects an integer",
                {spec.name: "expected integer"},
            )
        return value
    if spec.kind in {FLOAT, OPT_FLOAT}:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(
                f"Field {spec.name} expects a number",
                {spec.name: "expected number"},
            )
        return float(value)
    if spec.kind == FLAG:
        if not isinstance(value, bool):
            raise ValidationError(
                f"Field {spec.name} expects true/false",
                {spec.name: "expected boolean"},
            )
        return value
    if not isinstance(value, str):
        raise ValidationError(
            f"Field {spec.name} expects text",
            {spec.name: "expected text"},
        )
    if spec.length is not None and len(value) > spec.length:
        raise ValidationError(
            f"Field {spec.name} longer than {spec.length} characters",
            {spec.name: f"max length {spec.length}"},
        )
    return value
