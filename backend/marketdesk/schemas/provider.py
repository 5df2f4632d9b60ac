from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from marketdesk.schemas.canonical import SCHEMA_BY_ENDPOINT, CanonicalData, Endpoint


class ProviderSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    endpoints: tuple[Endpoint, ...]
    credential_setting: str | None = None

    def supports(self, endpoint: Endpoint) -> bool:
        return endpoint in self.endpoints


class FailureRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    reason: str
    detail: str = ""


class CascadeResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    endpoint: Endpoint
    data: CanonicalData
    source: str
    last_updated: dt.datetime = Field(alias="lastUpdated")
    failures: list[FailureRecord] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _data_matches_endpoint(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        data = values.get("data")
        endpoint = values.get("endpoint")
        if isinstance(data, dict) and endpoint is not None:
            schema = SCHEMA_BY_ENDPOINT[Endpoint(endpoint)]
            values = {**values, "data": schema.model_validate(data)}
        return values

    def to_response(self) -> dict[str, Any]:
        body = self.data.model_dump(mode="json")
        body["source"] = self.source
        body["lastUpdated"] = self.last_updated.isoformat()
        return body
