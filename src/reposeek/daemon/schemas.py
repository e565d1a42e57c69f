"""Request payload models for the HTTP API.

Payloads use camelCase keys on the wire; models use snake_case attributes.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from starlette.requests import Request

from reposeek.core.errors import RequestValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )


class CreateProjectRequest(_CamelModel):
    name: str = Field(min_length=1)
    repository_url: str = Field(min_length=1)
    branch: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    request_id: str = Field(min_length=1)


class ReindexRequest(_CamelModel):
    project_id: str = Field(min_length=1)
    repository_url: str = Field(min_length=1)
    commit_ids: list[str]
    credential: str | None = None


class HistorySyncRequest(_CamelModel):
    is_project_creation: bool = False
    credential: str | None = None


def _format_errors(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {
            "loc": [str(part) for part in item["loc"]],
            "msg": item["msg"],
            "type": item["type"],
        }
        for item in error.errors()
    ]


async def parse_body(request: Request, model: type[ModelT], *, allow_empty: bool = False) -> ModelT:
    """Decode and validate a JSON body.

    Raises:
        RequestValidationError: body is not JSON or fails validation.
    """
    raw = await request.body()
    if not raw and allow_empty:
        payload: Any = {}
    else:
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RequestValidationError.from_errors(
                [{"loc": ["body"], "msg": f"Invalid JSON: {e}", "type": "json_invalid"}]
            ) from e

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError.from_errors(_format_errors(e)) from e
