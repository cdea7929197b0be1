"""HTTP request/response bodies for the agent and Mini App APIs.

Field names follow the agent and Mini App wire format (camelCase where the
clients send camelCase). Payloads are passthrough JSON.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool


class PairVerifyParams(BaseModel):
    code: str | None = None


# sync_state integer columns are 32-bit.
PgInt = Annotated[int, Field(ge=0, le=2_147_483_647)]


class HeartbeatState(BaseModel):
    """Agent state fields, typed like the sync_state columns they land in.

    Unknown keys are dropped. Null and absent fields are both "not reported".
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    url: str | None = None
    anime: dict[str, Any] | None = None
    season: PgInt | None = None
    episode: PgInt | None = None
    video_time: float | None = Field(None, alias="videoTime")
    video_duration: float | None = Field(None, alias="videoDuration")
    playing: StrictBool | None = None
    marathon_on: StrictBool | None = Field(None, alias="marathonOn")
    marathon_idx: PgInt | None = Field(None, alias="marathonIdx")
    marathon_queue: list[Any] | None = Field(None, alias="marathonQueue")
    history: Any = None
    binge: PgInt | None = None
    binge_date: str | None = Field(None, alias="bingeDate", max_length=16)
    watch_minutes: PgInt | None = Field(None, alias="watchMinutes")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class HeartbeatParams(BaseModel):
    """Partial state report; any subset of the agent's state fields."""

    state: HeartbeatState | None = None


class EventParams(BaseModel):
    type: str | None = Field(None, max_length=64)
    payload: dict[str, Any] | None = None


class ControlParams(BaseModel):
    """Base for Mini App bodies, which may carry initData instead of the header."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    init_data: str | None = Field(None, alias="initData")


class CommandParams(ControlParams):
    type: str | None = Field(None, max_length=64)
    payload: Any = None


class MarathonParams(ControlParams):
    action: str | None = None
    payload: Any = None


class SettingsParams(ControlParams):
    notify_crash: bool | None = None
    notify_marathon: bool | None = None
    notify_offline: bool | None = None
    notify_digest: bool | None = None


class ErrorBody(BaseModel):
    error: str
    code: str
