import typing as t

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class CallDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    method: str = "GET"
    url: str
    query_params: dict[str, str] = Field(default_factory=dict, alias="qs")
    json_body: t.Any | None = Field(default=None, alias="json")

    @field_validator("method")
    @classmethod
    def normalize_method(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("query_params", mode="before")
    @classmethod
    def stringify_query_values(cls, value: t.Any) -> t.Any:
        if isinstance(value, dict):
            return {str(key): str(item) for key, item in value.items()}
        return value


call_descriptor_list_adapter = TypeAdapter(list[CallDescriptor])


class ParsedSubResponse(BaseModel):
    """One HTTP response extracted from a multipart batch response."""

    content_id: int | None = None
    status_code: int | None = None
    status_message: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""


class DecodeErrorResult(BaseModel):
    """A sub-response whose body could not be decoded as JSON."""

    model_config = ConfigDict(frozen=True)

    body: str
    error: str


Result = t.Any | DecodeErrorResult
