"""
Property Entities

Pydantic models for declared properties, their dimensions and the
ingestion report returned by every value write.
"""

import time
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dcd_store.properties import types as type_catalog


TEXT_TYPE = "TEXT"


def to_id(name: str) -> str:
    """Derive an entity id from a display name, e.g. "My Sensor" -> "my-sensor-3fa2"."""
    return "-".join(name.strip().split(" ")).lower() + "-" + uuid.uuid4().hex[:4]


def now_ms() -> int:
    return int(time.time() * 1000)


class Dimension(BaseModel):
    """One named, unit-tagged channel of a property's value rows"""
    model_config = ConfigDict(extra="ignore")
    
    name: str = ""
    description: str = ""
    unit: str = ""
    type: Optional[str] = None


class PropertyClass(BaseModel):
    """Label attached to one value of a CLASS property"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")
    
    name: str
    description: str = ""
    value: Optional[int] = None
    property_id: Optional[str] = Field(default=None, alias="propertyId")


class Property(BaseModel):
    """
    A declared measurement stream attached to an entity.
    
    When only a known type is given, name, description and dimensions are
    filled in from the type catalog. The id is derived from the name when
    absent. `values` is a transient buffer of raw rows
    [timestamp?, v1, v2, ...] consumed by one ingestion call.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")
    
    id: str = ""
    name: str = ""
    description: str = ""
    type: str = ""
    entity_id: Optional[str] = Field(default=None, alias="entityId")
    index_id: Optional[int] = Field(default=None, alias="indexId")
    dimensions: List[Dimension] = Field(default_factory=list)
    classes: List[PropertyClass] = Field(default_factory=list)
    values: List[Any] = Field(default_factory=list)
    registered_at: Optional[int] = Field(default=None, alias="registeredAt")
    read_at: int = Field(default_factory=now_ms, alias="readAt")
    
    @model_validator(mode="before")
    @classmethod
    def enrich_from_type(cls, data: Any) -> Any:
        """Apply the type catalog and derive the id before field validation"""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("type") is None:
            data["type"] = ""
        
        if not data.get("dimensions"):
            definition = type_catalog.resolve(data["type"])
            if definition is not None:
                data.setdefault("name", definition["name"])
                data.setdefault("description", definition["description"])
                data["dimensions"] = definition["dimensions"]
        
        if not data.get("id"):
            data["id"] = to_id(data.get("name") or "")
        return data
    
    @property
    def is_text(self) -> bool:
        """Text-valued properties are stored in the text shard"""
        if self.type == TEXT_TYPE:
            return True
        return bool(self.dimensions) and self.dimensions[0].type == TEXT_TYPE
    
    @property
    def cache_key(self) -> str:
        return f"{self.entity_id}_{self.id}"
    
    def add_values(self, values: List[List[Any]]) -> None:
        self.values.extend(values)
    
    def add_dimension(self, dimension: Dimension) -> None:
        self.dimensions.append(dimension)
    
    def to_message(self) -> Dict[str, Any]:
        """JSON-ready payload for the publish channel"""
        return self.model_dump(by_alias=True, exclude_none=True)


class IngestionReport(BaseModel):
    """
    Outcome of one value-write call.
    
    duplicates = received - malformed - stored. malformed_rows lists the
    zero-based input positions of rows dropped for having the wrong length.
    """
    model_config = ConfigDict(populate_by_name=True)
    
    received: int = 0
    stored: int = 0
    duplicates: int = 0
    malformed: int = 0
    timestamp_added: int = Field(default=0, alias="timestampAdded")
    malformed_rows: List[int] = Field(default_factory=list, alias="malformedRows")
