from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from citetally.api.schemas.common import ApiMeta


class UpdateRequest(BaseModel):
    record_ids: list[int] = Field(min_length=1)
    databases: list[str] | None = None
    silent: bool = False

    model_config = ConfigDict(extra="forbid")


class RunSummaryData(BaseModel):
    mode: str
    total: int
    processed: int
    updated: int
    stop_reason: str | None = None
    aborted: bool

    model_config = ConfigDict(extra="forbid")


class UpdateResultData(BaseModel):
    summary: RunSummaryData | None = None
    notices: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class UpdateResultEnvelope(BaseModel):
    data: UpdateResultData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class RetallyData(BaseModel):
    accepted: bool

    model_config = ConfigDict(extra="forbid")


class RetallyEnvelope(BaseModel):
    data: RetallyData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class LatestRunData(BaseModel):
    auto_update_in_progress: bool
    summary: RunSummaryData | None = None
    notices: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class LatestRunEnvelope(BaseModel):
    data: LatestRunData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class ColumnEntryData(BaseModel):
    database: str
    display_name: str
    count: str
    color: str

    model_config = ConfigDict(extra="forbid")


class RecordCitationsData(BaseModel):
    record_id: int
    identifier: str | None = None
    columns: list[ColumnEntryData]

    model_config = ConfigDict(extra="forbid")


class RecordCitationsEnvelope(BaseModel):
    data: RecordCitationsData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class RecordEventRequest(BaseModel):
    event: str
    type: str
    ids: list[int]

    model_config = ConfigDict(extra="forbid")


class RecordEventData(BaseModel):
    handled: bool
    summary: RunSummaryData | None = None

    model_config = ConfigDict(extra="forbid")


class RecordEventEnvelope(BaseModel):
    data: RecordEventData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")
