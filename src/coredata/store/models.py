"""Pydantic models for the documents persisted by the data store client.

Timestamps are integer milliseconds since the epoch. Identifiers are the
hex form of a bson ObjectId and are stored under ``_id`` in each document.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

ModelT = TypeVar("ModelT", bound="StoredModel")


class StoredModel(BaseModel):
    """Common behaviour for models that round-trip through a collection."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None

    def to_document(self, *, exclude: Iterable[str] = ()) -> Dict[str, Any]:
        """Return the document representation used by the backends."""

        data = self.model_dump(by_alias=True, exclude={"id", *exclude})
        data["_id"] = self.id
        return data

    @classmethod
    def from_document(cls: Type[ModelT], document: Dict[str, Any]) -> ModelT:
        """Build a model from a stored document."""

        data = dict(document)
        data["id"] = data.pop("_id", None)
        return cls.model_validate(data)


class Reading(StoredModel):
    """A single sensor value reported by a device."""

    pushed: int = 0
    created: int = 0
    origin: int = 0
    modified: int = 0
    device: str = ""
    name: str = ""
    value: str = ""


class Event(StoredModel):
    """A batch of readings reported by one device at one point in time."""

    pushed: int = 0
    device: str = ""
    created: int = 0
    modified: int = 0
    origin: int = 0
    readings: List[Reading] = Field(default_factory=list)

    def to_document(self, *, exclude: Iterable[str] = ()) -> Dict[str, Any]:
        """Serialise the event with its readings replaced by their identifiers."""

        data = super().to_document(exclude={"readings", *exclude})
        if "readings" not in set(exclude):
            data["readings"] = [reading.id for reading in self.readings]
        return data


class ValueDescriptor(StoredModel):
    """Describes the name, type and unit of a reading value."""

    created: int = 0
    description: str = ""
    modified: int = 0
    origin: int = 0
    name: str = ""
    min: Any = None
    max: Any = None
    default_value: Any = Field(default=None, alias="defaultValue")
    type: str = ""
    uom_label: str = Field(default="", alias="uomLabel")
    formatting: str = ""
    labels: List[str] = Field(default_factory=list)


__all__ = ["StoredModel", "Reading", "Event", "ValueDescriptor"]
