"""Typed analysis records produced by the extraction stages.

Model output is loose JSON; these pydantic models are the single place where
it is coerced into finite, non-negative numbers and well-formed lists. The
records are frozen: enrichment and reconciliation build new instances.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from .numbers import clamp_unit, finite_sum, non_negative

VENUE_SOURCE_PREFIX = "venue_menu:"
VENUE_CONFIDENCE_CAP = 0.6

_RECORD_CONFIG = ConfigDict(extra="ignore", frozen=True)


def as_assumptions(value: Any) -> list[str]:
    """Normalise an assumptions field; a bare string becomes a one-item list."""

    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(entry) for entry in value if entry is not None and str(entry).strip()]
    return [str(value)]


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_confidence(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return clamp_unit(value)


def _mappings_only(value: Any) -> list[Any]:
    if not isinstance(value, (list, tuple)):
        return []
    return [entry for entry in value if isinstance(entry, (dict, BaseModel))]


class Macros(BaseModel):
    protein: float = 0.0
    fat: float = 0.0
    carbs: float = 0.0

    model_config = _RECORD_CONFIG

    @field_validator("protein", "fat", "carbs", mode="before")
    @classmethod
    def _coerce_grams(cls, value: Any) -> float:
        return non_negative(value)


class FoodItem(BaseModel):
    item: str = ""
    quantity: float = 0.0
    unit: str = ""
    calories: float = 0.0
    macros: Macros = Field(default_factory=Macros)
    brand: str = ""
    source: str = ""
    confidence: float = 0.0
    assumptions: list[str] = Field(default_factory=list)

    model_config = _RECORD_CONFIG

    @model_validator(mode="before")
    @classmethod
    def _normalise_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        if not payload.get("item") and payload.get("name"):
            payload["item"] = payload["name"]
        if not isinstance(payload.get("macros"), (dict, Macros)):
            payload["macros"] = {}
        source = _as_text(payload.get("source"))
        if source.startswith(VENUE_SOURCE_PREFIX):
            payload["confidence"] = min(
                clamp_unit(payload.get("confidence")), VENUE_CONFIDENCE_CAP
            )
        return payload

    @field_validator("item", "unit", "brand", "source", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("quantity", "calories", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> float:
        return non_negative(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> float:
        return clamp_unit(value)

    @field_validator("assumptions", mode="before")
    @classmethod
    def _coerce_assumptions(cls, value: Any) -> list[str]:
        return as_assumptions(value)


class WorkoutActivity(BaseModel):
    activity: str = "workout"
    duration_min: float = 0.0
    calories_burned: float = 0.0
    intensity: str = "unknown"
    assumptions: list[str] = Field(default_factory=list)
    confidence: Optional[float] = None

    model_config = _RECORD_CONFIG

    @model_validator(mode="before")
    @classmethod
    def _normalise_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        payload["activity"] = _as_text(payload.get("activity")) or _as_text(payload.get("name")) or "workout"
        if payload.get("duration_min") is None:
            payload["duration_min"] = payload.get("duration")
        if payload.get("calories_burned") is None:
            payload["calories_burned"] = payload.get("calories")
        payload["intensity"] = _as_text(payload.get("intensity")) or "unknown"
        return payload

    @field_validator("duration_min", "calories_burned", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> float:
        return non_negative(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> Optional[float]:
        return _optional_confidence(value)

    @field_validator("assumptions", mode="before")
    @classmethod
    def _coerce_assumptions(cls, value: Any) -> list[str]:
        return as_assumptions(value)


class FoodTotals(BaseModel):
    calories: float = 0.0
    assumptions: list[str] = Field(default_factory=list)
    confidence: Optional[float] = None

    model_config = _RECORD_CONFIG

    @field_validator("calories", mode="before")
    @classmethod
    def _coerce_calories(cls, value: Any) -> float:
        return non_negative(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> Optional[float]:
        return _optional_confidence(value)

    @field_validator("assumptions", mode="before")
    @classmethod
    def _coerce_assumptions(cls, value: Any) -> list[str]:
        return as_assumptions(value)


class WorkoutTotals(BaseModel):
    calories_burned: float = 0.0
    assumptions: list[str] = Field(default_factory=list)
    confidence: Optional[float] = None

    model_config = _RECORD_CONFIG

    @model_validator(mode="before")
    @classmethod
    def _accept_calories_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("calories_burned") is None and "calories" in data:
            return {**data, "calories_burned": data.get("calories")}
        return data

    @field_validator("calories_burned", mode="before")
    @classmethod
    def _coerce_calories(cls, value: Any) -> float:
        return non_negative(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> Optional[float]:
        return _optional_confidence(value)

    @field_validator("assumptions", mode="before")
    @classmethod
    def _coerce_assumptions(cls, value: Any) -> list[str]:
        return as_assumptions(value)


class FoodRecord(BaseModel):
    type: Literal["food"] = "food"
    details: list[FoodItem] = Field(default_factory=list)
    totals: FoodTotals = Field(default_factory=FoodTotals)

    model_config = _RECORD_CONFIG

    @field_validator("details", mode="before")
    @classmethod
    def _coerce_details(cls, value: Any) -> list[Any]:
        return _mappings_only(value)

    @field_validator("totals", mode="before")
    @classmethod
    def _coerce_totals(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, FoodTotals)) else {}

    @property
    def detail_calories(self) -> float:
        return finite_sum(item.calories for item in self.details)


class WorkoutRecord(BaseModel):
    type: Literal["workout"] = "workout"
    details: list[WorkoutActivity] = Field(default_factory=list)
    totals: WorkoutTotals = Field(default_factory=WorkoutTotals)

    model_config = _RECORD_CONFIG

    @field_validator("details", mode="before")
    @classmethod
    def _coerce_details(cls, value: Any) -> list[Any]:
        return _mappings_only(value)

    @field_validator("totals", mode="before")
    @classmethod
    def _coerce_totals(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, WorkoutTotals)) else {}

    @property
    def detail_calories(self) -> float:
        return finite_sum(activity.calories_burned for activity in self.details)


class CompositeRecord(BaseModel):
    """Voice-note result: both sub-records plus the transcript they came from."""

    food: FoodRecord = Field(default_factory=FoodRecord)
    workout: WorkoutRecord = Field(default_factory=WorkoutRecord)
    transcript: str = ""

    model_config = _RECORD_CONFIG

    @field_validator("food", "workout", mode="before")
    @classmethod
    def _coerce_section(cls, value: Any) -> Any:
        if isinstance(value, BaseModel):
            return value
        return value if isinstance(value, dict) else {}

    @field_validator("transcript", mode="before")
    @classmethod
    def _coerce_transcript(cls, value: Any) -> str:
        return _as_text(value)

    @property
    def has_food(self) -> bool:
        return bool(self.food.details)

    @property
    def has_workout(self) -> bool:
        return bool(self.workout.details) or self.workout.totals.calories_burned > 0


TypedRecord = Annotated[Union[FoodRecord, WorkoutRecord], Field(discriminator="type")]
AnalysisRecord = Union[FoodRecord, WorkoutRecord, CompositeRecord]

_TYPED_RECORD_ADAPTER: TypeAdapter[Union[FoodRecord, WorkoutRecord]] = TypeAdapter(TypedRecord)


def empty_food_record(*assumptions: str) -> FoodRecord:
    return FoodRecord(totals=FoodTotals(assumptions=list(assumptions)))


def empty_workout_record(*assumptions: str) -> WorkoutRecord:
    return WorkoutRecord(
        totals=WorkoutTotals(calories_burned=0, assumptions=list(assumptions), confidence=0.0)
    )


def record_from_payload(payload: Any) -> AnalysisRecord | None:
    """Rebuild a record from its serialised JSON form, or None for unknown shapes."""

    if not isinstance(payload, dict):
        return None
    if payload.get("type") in ("food", "workout"):
        return _TYPED_RECORD_ADAPTER.validate_python(payload)
    if "food" in payload or "workout" in payload:
        return CompositeRecord.model_validate(payload)
    return None


__all__ = [
    "AnalysisRecord",
    "CompositeRecord",
    "FoodItem",
    "FoodRecord",
    "FoodTotals",
    "Macros",
    "TypedRecord",
    "VENUE_CONFIDENCE_CAP",
    "VENUE_SOURCE_PREFIX",
    "WorkoutActivity",
    "WorkoutRecord",
    "WorkoutTotals",
    "as_assumptions",
    "empty_food_record",
    "empty_workout_record",
    "record_from_payload",
]
