from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from citetally.api.schemas.common import ApiMeta


class PreferencesData(BaseModel):
    database_order: list[str]
    rate_limits_ms: dict[str, int]
    auto_update: str
    auto_update_cutoff: int
    use_colors: bool

    model_config = ConfigDict(extra="forbid")


class PreferencesEnvelope(BaseModel):
    data: PreferencesData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class PreferencesUpdateRequest(BaseModel):
    rate_limits_ms: dict[str, int] | None = None
    auto_update: str | None = None
    auto_update_cutoff: int | None = None
    use_colors: bool | None = None

    model_config = ConfigDict(extra="forbid")


class DatabaseOrderRequest(BaseModel):
    value: str

    model_config = ConfigDict(extra="forbid")


class DatabaseOrderData(BaseModel):
    valid: bool
    message: str
    databases: list[str]

    model_config = ConfigDict(extra="forbid")


class DatabaseOrderEnvelope(BaseModel):
    data: DatabaseOrderData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")
