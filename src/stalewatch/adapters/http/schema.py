"""Pydantic models describing the remote runner API payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

AssetRunState = Literal["queued", "running", "succeeded", "failed", "skipped", "cancelled"]

TERMINAL_STATES: frozenset[str] = frozenset({"succeeded", "failed", "skipped", "cancelled"})


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class RunnerBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SubmitRunRequest(RunnerBaseModel):
    submission_id: str
    assets: list[str]


class SubmitRunResponse(RunnerBaseModel):
    run_id: str = Field(alias="id")
    assets: list[str] = Field(default_factory=list)


class AssetRunPayload(RunnerBaseModel):
    key: str
    state: AssetRunState
    data_version: str | None = None
    completed_at: datetime | None = None
    error: str | None = None

    _normalize_data_version = field_validator("data_version", "error", mode="before")(
        _blank_to_none
    )

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class RunStatusResponse(RunnerBaseModel):
    run_id: str = Field(alias="id")
    assets: list[AssetRunPayload] = Field(default_factory=list)


class ErrorResponse(RunnerBaseModel):
    error: str
    detail: str | None = None
