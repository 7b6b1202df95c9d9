"""Wire models shared by the plugin and the host."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PropertyType(str, Enum):
    """Type of a column, in inference priority order."""

    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    STRING = "string"


class Property(BaseModel):
    """A named, typed column."""

    name: str
    type: PropertyType


class Schema(BaseModel):
    """Shape of one or more tabular sources sharing a header."""

    name: str
    properties: list[Property] = Field(default_factory=list)
    settings: list[str] = Field(default_factory=list)
    """Locations of the source files contributing to this schema."""

    @property
    def signature(self) -> tuple[str, ...]:
        """Ordered property names, the key schemas are merged by."""
        return tuple(p.name for p in self.properties)

    @property
    def types(self) -> list[PropertyType]:
        """Declared property types, in column order."""
        return [p.type for p in self.properties]

    def same_signature(self, other: "Schema") -> bool:
        """Check whether both schemas have the same property names in order."""
        return self.signature == other.signature

    def same_shape(self, other: "Schema") -> bool:
        """Check whether both schemas have the same property names and types."""
        return self.same_signature(other) and self.types == other.types


class PublishRecord(BaseModel):
    """One published row.

    ``data`` follows the owning schema's property order. Cells that failed
    validation are ``None``.
    """

    invalid: bool = False
    error: str | None = None
    data: list[Any] = Field(default_factory=list)
