"""Subjective completion metadata captured when a workout is finished."""

import enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

SCALE_MIN = 1
SCALE_MAX = 10


class Mood(str, enum.Enum):
    GREAT = "great"
    GOOD = "good"
    NEUTRAL = "neutral"
    BAD = "bad"
    TERRIBLE = "terrible"


class CompletionSurvey(BaseModel):
    """Survey answers attached to a completed session.

    Field names are the wire vocabulary; ``perceivedIntensity`` and
    ``energyLevel`` are accepted too so a form payload can be passed through.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    perceived_intensity: int = Field(5, ge=SCALE_MIN, le=SCALE_MAX, alias="perceivedIntensity")
    energy_level: int = Field(5, ge=SCALE_MIN, le=SCALE_MAX, alias="energyLevel")
    mood: Mood = Mood.NEUTRAL
    notes: str = ""

    @field_validator("notes", mode="before")
    @classmethod
    def none_notes(cls, v):
        return "" if v is None else v

    def to_wire(self):
        return {
            "perceived_intensity": self.perceived_intensity,
            "energy_level": self.energy_level,
            "mood": self.mood.value,
            "notes": self.notes.strip(),
        }

    @classmethod
    def from_wire(cls, data):
        """Build from a backend payload; absent fields take their defaults."""
        if data is None:
            return None
        if isinstance(data, cls):
            return data
        return cls.model_validate(data)


DEFAULT_SURVEY = CompletionSurvey()
