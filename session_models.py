"""
Data model shared by the session engine, the sync layer and analytics.

All models speak the backend's snake_case wire vocabulary. Legacy names the
backend still returns (start_time, end_time, total_duration,
effective_duration) are accepted on input. Absent or null fields default
rather than fail.
"""

import enum
from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from completion_survey import CompletionSurvey


class SessionStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def terminal(self):
        return self in TERMINAL_STATUSES

    @property
    def active(self):
        return self in ACTIVE_STATUSES


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.ABANDONED})
ACTIVE_STATUSES = frozenset({SessionStatus.IN_PROGRESS, SessionStatus.PAUSED})


# --- Catalog input ---


def _lift_exercise_name(data):
    """Take the name from a nested {"exercise": {"name": ...}} when missing."""
    if isinstance(data, dict) and not data.get("name"):
        nested = data.get("exercise") or {}
        if isinstance(nested, dict) and nested.get("name"):
            data = {**data, "name": nested["name"]}
    return data


class RoutineExercise(BaseModel):
    """One exercise of a routine as supplied by the catalog."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | str | None = None
    exercise_id: int | str | None = None
    name: str = ""
    sets: int = Field(0, ge=0, validation_alias=AliasChoices("sets", "planned_sets"))
    reps: int = Field(0, ge=0, validation_alias=AliasChoices("reps", "planned_reps"))
    order: int = 0

    @model_validator(mode="before")
    @classmethod
    def name_from_nested_exercise(cls, data):
        return _lift_exercise_name(data)


class Routine(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | str | None = None
    name: str = ""
    exercises: list[RoutineExercise] = Field(
        default_factory=list, validation_alias=AliasChoices("exercises", "routine_exercises")
    )

    @field_validator("exercises", mode="before")
    @classmethod
    def none_exercises(cls, v):
        return [] if v is None else v


# --- Session contents ---


class SetRecord(BaseModel):
    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    set_number: int = 1
    weight: float = Field(0.0, ge=0)
    reps: int = Field(0, ge=0)
    completed: bool = False


class ExerciseAttempt(BaseModel):
    """Planned vs. performed sets for one exercise, owned by one session."""

    model_config = ConfigDict(extra="ignore")

    routine_exercise_id: int | str | None = None
    exercise_id: int | str | None = None
    name: str = ""
    planned_sets: int = 0
    planned_reps: int = 0
    sets: list[SetRecord] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def name_from_nested_exercise(cls, data):
        return _lift_exercise_name(data)

    @field_validator("sets", mode="before")
    @classmethod
    def none_sets(cls, v):
        return [] if v is None else v

    @property
    def completed_sets(self):
        return sum(1 for s in self.sets if s.completed)

    @classmethod
    def from_routine_exercise(cls, rex):
        return cls(
            routine_exercise_id=rex.id,
            exercise_id=rex.exercise_id,
            name=rex.name,
            planned_sets=rex.sets,
            planned_reps=rex.reps,
            sets=[SetRecord(set_number=i + 1, reps=rex.reps) for i in range(rex.sets)],
        )


class PauseRecord(BaseModel):
    """One pause interval. Frozen: closing produces a new record."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    started_at: datetime
    ended_at: datetime | None = None
    reason: str = ""

    @property
    def open(self):
        return self.ended_at is None

    def duration_seconds(self, now=None):
        end = self.ended_at or now
        if end is None:
            return 0
        return max(0, int((end - self.started_at).total_seconds()))


# --- Session snapshot / history record ---

SURVEY_FIELDS = ("perceived_intensity", "energy_level", "mood", "notes")


class SessionRecord(BaseModel):
    """Wire and presentation snapshot of one workout session."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | str | None = None
    routine_id: int | str | None = None
    routine_name: str = ""
    status: SessionStatus = SessionStatus.NOT_STARTED
    started_at: datetime | None = Field(None, validation_alias=AliasChoices("started_at", "start_time"))
    ended_at: datetime | None = Field(None, validation_alias=AliasChoices("ended_at", "end_time"))
    elapsed_seconds: int = Field(
        0, validation_alias=AliasChoices("elapsed_seconds", "total_duration", "total_duration_seconds")
    )
    effective_seconds: int = Field(0, validation_alias=AliasChoices("effective_seconds", "effective_duration"))
    pauses: list[PauseRecord] = Field(default_factory=list)
    exercises: list[ExerciseAttempt] = Field(default_factory=list)
    survey: CompletionSurvey | None = None
    unsynced: bool = False

    @model_validator(mode="before")
    @classmethod
    def survey_from_flat_fields(cls, data):
        """The backend stores survey answers as top-level session columns."""
        if isinstance(data, dict) and data.get("survey") is None:
            flat = {k: data[k] for k in SURVEY_FIELDS if data.get(k) is not None}
            if flat:
                data = {**data, "survey": flat}
        return data

    @field_validator("elapsed_seconds", "effective_seconds", mode="before")
    @classmethod
    def none_counters(cls, v):
        return 0 if v is None else v

    @field_validator("pauses", "exercises", mode="before")
    @classmethod
    def none_lists(cls, v):
        return [] if v is None else v

    @field_validator("routine_name", mode="before")
    @classmethod
    def none_name(cls, v):
        return "" if v is None else v

    @classmethod
    def from_wire(cls, data):
        return cls.model_validate(data or {})

    def to_wire(self):
        """Backend payload: JSON-safe, without local-only flags."""
        d = self.model_dump(mode="json", exclude={"unsynced", "survey"})
        d["survey"] = self.survey.to_wire() if self.survey else None
        return d


# --- Analytics output ---


class AdherenceStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_sessions: int = 0
    completed_sessions: int = 0
    total_effective_seconds: int = 0
    avg_sessions_per_week: float = 0.0
    current_streak_days: int = 0
    best_streak_days: int = 0
