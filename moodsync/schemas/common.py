"""
Shared schema primitives used across the API and the persisted records.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Persisted records use camelCase JSON names; Python code uses snake_case."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ErrorResponse(BaseModel):
    """Standard error envelope returned for all 4xx/5xx responses."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
