"""
Client configuration schema - one entry per client in config/clients.yaml.
All models are frozen: configuration is immutable for the process lifetime.
"""
import re
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hookrelay.exceptions import InvalidIdentifier
from hookrelay.services.value_transforms import get_transform

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

DEFAULT_SCHEMA = "public"
DEFAULT_TABLE = "property_updates"


def validate_identifier(kind: str, value: str) -> str:
    """Reject schema/table names outside [A-Za-z_][A-Za-z0-9_]{0,62}."""
    if not isinstance(value, str) or not IDENTIFIER_PATTERN.match(value):
        raise InvalidIdentifier(kind, str(value))
    return value


class TransformationRule(BaseModel):
    """Copy the value at `source` to `target`, optionally converting it."""
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    transform: Optional[Callable[[Any], Any]] = None

    @field_validator("source", "target")
    @classmethod
    def _non_empty_path(cls, value: str) -> str:
        if not value or any(not part for part in value.split(".")):
            raise ValueError(f"Invalid field path: {value!r}")
        return value

    @field_validator("transform", mode="before")
    @classmethod
    def _resolve_named_transform(cls, value: Any) -> Any:
        if isinstance(value, str):
            return get_transform(value)
        return value


class Destination(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["http", "postgres"]
    url: Optional[str] = None
    schema_name: str = Field(default=DEFAULT_SCHEMA, alias="schema")
    table: str = DEFAULT_TABLE

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if value == "postgres-table":
            return "postgres"
        return value

    @model_validator(mode="after")
    def _check_target(self) -> "Destination":
        if self.type == "http":
            if not self.url:
                raise ValueError("http destination requires a url")
        else:
            try:
                validate_identifier("schema", self.schema_name)
                validate_identifier("table", self.table)
            except InvalidIdentifier as e:
                raise ValueError(e.message) from e
        return self

    @property
    def identifier(self) -> str:
        """URL for http, schema.table for postgres. Keys the delivery audit row."""
        if self.type == "http":
            return self.url or ""
        return f"{self.schema_name}.{self.table}"


class ClientConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    secret: Optional[str] = None
    transformations: list[TransformationRule] = Field(default_factory=list)
    destinations: list[Destination] = Field(default_factory=list)

    @field_validator("transformations", "destinations", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ClientsFile(BaseModel):
    clients: list[ClientConfig] = Field(default_factory=list)
