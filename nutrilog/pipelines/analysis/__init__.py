"""Food and workout analysis pipeline.

Modules are organised by the order in which a webhook message flows through
them; ``flow.AnalysisPipeline.describe()`` lists the stages. Only the shared
leaf modules are re-exported here because the service adapters import them
and the stage modules import the adapters.
"""

from .errors import (
    AnalysisFailed,
    DeliveryFailed,
    ErrorKind,
    MalformedExtraction,
    MediaUnavailable,
    PersistenceFailed,
    PipelineError,
    PreprocessDegraded,
)
from .flow import AnalysisPipeline, PipelineStage
from .records import (
    AnalysisRecord,
    CompositeRecord,
    FoodItem,
    FoodRecord,
    WorkoutActivity,
    WorkoutRecord,
    record_from_payload,
)
from .types import FetchedMedia, InboundTask, MessageKind, MessageState, Route, TaskOutcome

__all__ = [
    "AnalysisFailed",
    "AnalysisPipeline",
    "AnalysisRecord",
    "CompositeRecord",
    "DeliveryFailed",
    "ErrorKind",
    "FetchedMedia",
    "FoodItem",
    "FoodRecord",
    "InboundTask",
    "MalformedExtraction",
    "MediaUnavailable",
    "MessageKind",
    "MessageState",
    "PersistenceFailed",
    "PipelineError",
    "PipelineStage",
    "PreprocessDegraded",
    "Route",
    "TaskOutcome",
    "WorkoutActivity",
    "WorkoutRecord",
    "record_from_payload",
]
