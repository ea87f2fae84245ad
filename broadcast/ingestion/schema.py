"""Internal data contract for roster feed rows."""

import hashlib
import json
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from broadcast.models import TEAM_CODES

_TEXT_FIELDS = (
    "first_name",
    "last_name",
    "position_offense",
    "position_defense",
    "grade",
    "info1",
    "info2",
    "info3",
    "info4",
    "stat1",
    "stat2",
    "stat3",
    "stat4",
    "stat5",
    "stat6",
    "height",
    "weight",
)


class RosterRowIn(BaseModel):
    """
    One row of the roster sheet. Accepts the sheet headers or snake_case names.
    """

    # Required fields
    team_code: str = Field(alias="TeamCode")
    number: int = Field(alias="Number")

    # Optional fields
    first_name: Optional[str] = Field(default=None, alias="FirstName", max_length=50)
    last_name: Optional[str] = Field(default=None, alias="LastName", max_length=50)
    position_offense: Optional[str] = Field(default=None, alias="POST_OF", max_length=20)
    position_defense: Optional[str] = Field(default=None, alias="POST_DEF", max_length=20)
    grade: Optional[str] = Field(default=None, alias="Grade", max_length=10)
    info1: Optional[str] = Field(default=None, alias="Info1")
    info2: Optional[str] = Field(default=None, alias="Info2")
    info3: Optional[str] = Field(default=None, alias="Info3")
    info4: Optional[str] = Field(default=None, alias="Info4")
    stat1: Optional[str] = Field(default=None, alias="Stat1")
    stat2: Optional[str] = Field(default=None, alias="Stat2")
    stat3: Optional[str] = Field(default=None, alias="Stat3")
    stat4: Optional[str] = Field(default=None, alias="Stat4")
    stat5: Optional[str] = Field(default=None, alias="Stat5")
    stat6: Optional[str] = Field(default=None, alias="Stat6")
    height: Optional[str] = Field(default=None, alias="HT", max_length=10)
    weight: Optional[str] = Field(default=None, alias="WT", max_length=10)

    # Provenance, not content
    row_number: Optional[int] = Field(default=None, alias="RowNumber")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("team_code", mode="before")
    @classmethod
    def _normalize_team_code(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().upper()
            if value not in TEAM_CODES:
                raise ValueError(f"team code must be one of {','.join(TEAM_CODES)}")
        return value

    @field_validator("number", mode="before")
    @classmethod
    def _parse_number(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                value = int(value.strip())
            except ValueError:
                raise ValueError("number must be an integer") from None
        if isinstance(value, int) and not isinstance(value, bool) and not 0 < value < 1000:
            raise ValueError("number must be between 1 and 999")
        return value

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            value = str(int(value))
        elif isinstance(value, (int, float)):
            value = str(value)
        if isinstance(value, str):
            return value.strip() or None
        return value

    @property
    def display_id(self) -> str:
        return f"{self.team_code}{self.number:03d}"

    def content_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude={"row_number"})


def row_hash(fields: dict[str, Any]) -> str:
    """SHA-256 over the row content; key order does not matter."""

    canonical = json.dumps(
        {key: "" if value is None else str(value) for key, value in fields.items()},
        ensure_ascii=False,
        separators=(",", ":"),
        sort_keys=True,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
