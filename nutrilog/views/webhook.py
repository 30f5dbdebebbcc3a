"""WhatsApp Cloud API webhook payloads.

Only the envelope is modelled; individual messages stay plain dicts because
their shape varies by type and ingestion reads them defensively.
"""

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class WebhookValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    messages: List[Dict[str, Any]] = Field(default_factory=list)


class WebhookChange(BaseModel):
    model_config = ConfigDict(extra="allow")

    field: str = ""
    value: WebhookValue = Field(default_factory=WebhookValue)


class WebhookEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = ""
    changes: List[WebhookChange] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    object: str = ""
    entry: List[WebhookEntry] = Field(default_factory=list)

    def messages(self) -> List[Dict[str, Any]]:
        """Every message in the delivery, in arrival order."""

        return [
            message
            for entry in self.entry
            for change in entry.changes
            for message in change.value.messages
        ]
