"""
Property Storage Module
"""
from .entities import Dimension, IngestionReport, Property, PropertyClass
from .errors import (
    BackendUnavailableError,
    ConflictError,
    InvalidQueryError,
    NotFoundError,
    PropertyStoreError,
    SchemaError,
)
from .relational import RelationalValueStore
from .resolver import DimensionIndex, DimensionIndexResolver
from .service import PropertyService
from .timeseries import InfluxClient, TimeSeriesValueStore

__all__ = [
    "Dimension",
    "IngestionReport",
    "Property",
    "PropertyClass",
    "BackendUnavailableError",
    "ConflictError",
    "InvalidQueryError",
    "NotFoundError",
    "PropertyStoreError",
    "SchemaError",
    "RelationalValueStore",
    "DimensionIndex",
    "DimensionIndexResolver",
    "PropertyService",
    "InfluxClient",
    "TimeSeriesValueStore",
]
