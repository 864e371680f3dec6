"""Pydantic models describing a declarations document."""

from __future__ import annotations

from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stalewatch.domain.model import AssetDefinition, FreshnessPolicy


class DeclarationBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class FreshnessPayload(DeclarationBaseModel):
    """``maximum_lag`` accepts seconds or an ISO-8601 duration such as ``PT5M``."""

    maximum_lag: timedelta | None = None
    maximum_lag_minutes: float | None = None

    @model_validator(mode="after")
    def _exactly_one_lag(self) -> FreshnessPayload:
        given = (self.maximum_lag, self.maximum_lag_minutes)
        if sum(value is not None for value in given) != 1:
            raise ValueError("Specify exactly one of maximum_lag or maximum_lag_minutes")
        return self

    def to_policy(self) -> FreshnessPolicy:
        if self.maximum_lag is not None:
            return FreshnessPolicy(maximum_lag=self.maximum_lag)
        return FreshnessPolicy(maximum_lag=timedelta(minutes=self.maximum_lag_minutes or 0))


class AssetPayload(DeclarationBaseModel):
    deps: list[str] = Field(default_factory=list)
    code_version: str | None = None
    freshness: FreshnessPayload | None = None

    @field_validator("code_version", mode="before")
    @classmethod
    def _stringify_code_version(cls, value: object) -> object:
        if isinstance(value, int | float) and not isinstance(value, bool):
            return str(value)
        return value


class DeclarationDocument(DeclarationBaseModel):
    assets: dict[str, AssetPayload] = Field(default_factory=dict)

    def to_definitions(self) -> list[AssetDefinition]:
        return [
            AssetDefinition(
                key=key,
                deps=frozenset(payload.deps),
                policy=payload.freshness.to_policy() if payload.freshness else None,
                code_version=payload.code_version,
            )
            for key, payload in sorted(self.assets.items())
        ]
