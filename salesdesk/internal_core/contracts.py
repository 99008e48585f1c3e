from __future__ import annotations

import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

CustomerStatus = Literal["unrecognized", "recognized", "corrected"]
StartedReason = Literal["intro_phrase_detected", "implicit_start"]

UNKNOWN_CUSTOMER = "미인식"


class LogRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def to_log_dict(self) -> dict:
        return self.model_dump(by_alias=True)

    def to_json_line(self) -> str:
        return json.dumps(self.to_log_dict(), ensure_ascii=False) + "\n"


class SessionSnapshot(LogRecord):
    session_id: str = Field(alias="sessionId", min_length=1)
    started_at: str = Field(alias="startedAt")
    started_reason: StartedReason = Field(alias="startedReason")
    customer_name: str = Field(default=UNKNOWN_CUSTOMER, alias="customerName")
    customer_status: CustomerStatus = Field(default="unrecognized", alias="customerStatus")
    message_count: int = Field(default=0, ge=0, alias="messageCount")
    last_message_at: Optional[str] = Field(default=None, alias="lastMessageAt")


class MessageRecord(LogRecord):
    type: Literal["stt"] = "stt"
    logged_at: str = Field(alias="loggedAt")
    client: str = ""
    payload: str
    # Records written before session tracking existed carry no snapshot.
    session: Optional[SessionSnapshot] = None


class SessionStartRecord(LogRecord):
    type: Literal["session_start"] = "session_start"
    session_id: str = Field(alias="sessionId", min_length=1)
    started_at: str = Field(alias="startedAt")
    reason: StartedReason
    client: str = ""


class CustomerDetectedRecord(LogRecord):
    type: Literal["customer_detected"] = "customer_detected"
    session_id: str = Field(alias="sessionId", min_length=1)
    detected_at: str = Field(alias="detectedAt")
    customer_name: str = Field(alias="customerName", min_length=1)
    customer_status: Literal["recognized"] = Field(default="recognized", alias="customerStatus")
    source_text: str = Field(default="", alias="sourceText")


class CorrectionRecord(LogRecord):
    type: Literal["session_correction"] = "session_correction"
    corrected_at: str = Field(alias="correctedAt")
    corrected_by: str = Field(alias="correctedBy")
    day: str
    session_id: str = Field(alias="sessionId", min_length=1)
    customer_name: str = Field(alias="customerName", min_length=1)


LifecycleRecord = Annotated[
    Union[SessionStartRecord, CustomerDetectedRecord],
    Field(discriminator="type"),
]

LIFECYCLE_RECORD_ADAPTER: TypeAdapter[LifecycleRecord] = TypeAdapter(LifecycleRecord)
