"""
Data models: the structure of our data.
Every rating, whether it came from the server or was just typed in locally,
gets converted into these shapes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from dateutil.parser import isoparse

from portfolio_ratings.errors import ValidationError

# Ratings that have not been confirmed by the server carry this id prefix
TEMP_ID_PREFIX = "local_"

# Records without a usable timestamp sort after everything else
OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def coerce_project_id(value) -> int:
    """Project ids arrive as ints or numeric strings ("3")."""
    if value is None or value == "":
        raise ValidationError("No project selected")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid project id: {value!r}")


def coerce_stars(value) -> int:
    """
    Turn whatever the caller or the server gave us into 1..5.
    Missing, zero or negative means no rating was chosen.
    """
    if value is None or value == "":
        raise ValidationError("Please select a rating by clicking on the stars")
    try:
        stars = int(float(value))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"Invalid star value: {value!r}")
    if stars < 1:
        raise ValidationError("Please select a rating by clicking on the stars")
    return min(stars, 5)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = isoparse(str(value))
        except (TypeError, ValueError, OverflowError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Rating:
    """A single star rating (with optional comment) for one project."""
    id: Union[str, int]
    project_id: int
    user_id: str
    stars: int                          # 1 to 5
    comment: str = ""
    created_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        """True while this is still the optimistic local copy."""
        return isinstance(self.id, str) and self.id.startswith(TEMP_ID_PREFIX)

    @property
    def has_text(self) -> bool:
        return bool(self.comment and self.comment.strip())

    @property
    def sort_key(self) -> datetime:
        return self.created_at or OLDEST

    @classmethod
    def from_api(cls, raw: dict) -> "Rating":
        """
        Build a Rating from one server record.
        Raises ValidationError when a required field is missing or unusable.
        """
        if not isinstance(raw, dict):
            raise ValidationError(f"Expected a rating object, got {type(raw).__name__}")
        if raw.get("id") is None:
            raise ValidationError("Rating has no id")
        user_id = raw.get("user_id")
        if not user_id:
            raise ValidationError("Rating has no user_id")
        return cls(
            id=raw["id"],
            project_id=coerce_project_id(raw.get("project_id")),
            user_id=str(user_id),
            stars=coerce_stars(raw.get("stars")),
            comment=str(raw.get("comment") or ""),
            created_at=parse_timestamp(raw.get("created_at")),
        )

    def to_payload(self) -> dict:
        """The body POSTed to the API. The local id is never sent."""
        return {
            "project_id": self.project_id,
            "user_id": self.user_id,
            "stars": self.stars,
            "comment": self.comment,
        }


@dataclass
class Selection:
    """The rating the visitor is composing right now."""
    project_id: Optional[int] = None
    stars: int = 0
    comment: str = ""


@dataclass
class SubmitResult:
    """What submit_rating reports back to the UI."""
    success: bool
    local_only: bool = False
    message: Optional[str] = None
    rating: Optional[Rating] = None


@dataclass
class SessionState:
    """Ephemeral UI-facing state. Never holds canonical data."""
    selected_project_id: Optional[int] = None
    selected_stars: int = 0
    draft_comment: str = ""
    rating_modal_open: bool = False
    comments_modal_open: bool = False
    loading: bool = False
    last_error: str = ""


@dataclass
class FetchResult:
    """Outcome of one logical request across all candidate endpoints."""
    ok: bool
    data: object = None
    url: Optional[str] = None           # candidate that succeeded
    degraded: bool = False              # 2xx but body unusable
    error: Optional[Exception] = None
    attempts: list[str] = field(default_factory=list)
