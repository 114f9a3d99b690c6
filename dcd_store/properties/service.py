"""
Property Service

Dispatches property requests to the value stores and forwards created
properties and ingested values to the publish channel.

Publishing is best-effort: a failed publish is logged and never undoes the
catalog or value write that preceded it.
"""

from typing import Any, Callable, Dict, List, Optional

import structlog

from dcd_store.config import get_settings
from dcd_store.properties.entities import IngestionReport, Property, PropertyClass, now_ms
from dcd_store.properties.errors import (
    BackendUnavailableError,
    InvalidQueryError,
    PropertyStoreError,
    SchemaError,
)
from dcd_store.properties.relational import RelationalValueStore
from dcd_store.properties.rows import prepare_rows
from dcd_store.properties.timeseries import TimeSeriesValueStore
from dcd_store.streaming.publisher import NullPublisher, Publisher, PublishError

logger = structlog.get_logger(__name__)

BACKENDS = ("relational", "timeseries")


class PropertyService:
    """
    Create, read and ingest properties.
    
    Example:
        service = PropertyService(RelationalValueStore(engine), publisher=create_publisher())
        await service.create(Property(type="THREE_DIMENSIONS", entity_id="E1"))
        report = await service.update_values(Property(id=prop_id, entity_id="E1", values=rows))
    """
    
    def __init__(
        self,
        relational: RelationalValueStore,
        publisher: Optional[Publisher] = None,
        timeseries: Optional[TimeSeriesValueStore] = None,
        mirror_writes: Optional[bool] = None,
        clock: Callable[[], int] = now_ms,
    ):
        settings = get_settings()
        self.relational = relational
        self.timeseries = timeseries
        self.publisher = publisher or NullPublisher()
        self.mirror_writes = settings.timeseries.mirror_writes if mirror_writes is None else mirror_writes
        self.default_backend = settings.default_backend
        self._clock = clock
        self._topics_properties = settings.kafka.topics_properties
        self._topics_values = settings.kafka.topics_values
        # entityId_propertyId -> catalog row, for callers sending values only
        self._hydrated: Dict[str, Property] = {}
    
    async def _publish(self, topic: str, messages: List[Any], key: str) -> None:
        try:
            await self.publisher.publish(topic, messages, partition_key=key)
        except PublishError as e:
            logger.warning("Publish failed, continuing", topic=topic, key=key, error=str(e))
    
    async def create(self, property: Property) -> Property:
        """Persist the catalog row, then publish the property"""
        await self.relational.create_property(property)
        await self._publish(self._topics_properties, [property.to_message()], property.id)
        return property
    
    async def read(
        self,
        entity_id: str,
        property_id: str,
        from_ts: Optional[int] = None,
        to_ts: Optional[int] = None,
        interval: Optional[str] = None,
        fill: str = "none",
        aggregate_fn: str = "MEAN",
        backend: Optional[str] = None,
    ) -> Property:
        """
        Read a property, with its values when a time range is given.
        
        Args:
            from_ts: Range start, epoch milliseconds
            to_ts: Range end, epoch milliseconds
            interval: Downsampling bucket (time-series backend only), e.g. "1m"
            fill: Empty bucket policy (time-series backend only)
            aggregate_fn: Bucket aggregate (time-series backend only)
            backend: "relational" or "timeseries"; defaults to settings
        
        Raises:
            NotFoundError: No such property for this entity
        """
        property = await self.relational.read_property(entity_id, property_id)
        if from_ts is None and to_ts is None:
            return property
        
        backend = backend or self.default_backend
        if backend == "relational":
            return await self.relational.read_values(property, from_ts, to_ts)
        if backend == "timeseries":
            if self.timeseries is None:
                raise BackendUnavailableError("No time-series backend configured")
            return await self.timeseries.read_values(property, from_ts, to_ts, interval, aggregate_fn, fill)
        raise InvalidQueryError(f"Unknown backend {backend}", hint=f"Use one of {BACKENDS}")
    
    async def list(self, entity_id: str) -> List[Property]:
        return await self.relational.list_properties(entity_id)
    
    async def update(self, property: Property) -> bool:
        """Update name/description; publishes only when a row changed"""
        updated = await self.relational.update_property(property)
        if updated:
            await self._publish(self._topics_properties, [property.to_message()], property.id)
        return updated
    
    async def _hydrate(self, property: Property) -> None:
        key = property.cache_key
        known = self._hydrated.get(key)
        if known is None:
            known = await self.read(property.entity_id, property.id)
            self._hydrated[key] = known
            logger.debug("Hydrated property dimensions", key=key, num_dimensions=len(known.dimensions))
        
        property.dimensions = [dimension.model_copy() for dimension in known.dimensions]
        property.index_id = known.index_id
        if not property.type:
            property.type = known.type
    
    async def update_values(self, property: Property) -> IngestionReport:
        """
        Ingest buffered value rows.
        
        Dimensions missing from the request are first read from the catalog
        and remembered per entity/property pair. Rows are then validated and
        stamped once, so the relational store, the time-series mirror and the
        values topic all see the same timestamps. With mirror_writes on, the
        rows are also written to the time-series store when the type has a
        registered schema. Only accepted rows are published.
        
        Returns:
            The relational ingestion report
        """
        if not property.values:
            return IngestionReport()
        
        if not property.dimensions:
            await self._hydrate(property)
        
        index = await self.relational.resolver.resolve(property.id)
        batch = prepare_rows(property.values, index.num_dimensions, clock=self._clock)
        report = await self.relational.update_values(property, batch)
        
        if self.mirror_writes and self.timeseries is not None and self.timeseries.has_schema(property.type):
            try:
                await self.timeseries.write_values(property, batch)
            except PropertyStoreError as e:
                logger.warning("Time-series mirror write failed", property_id=property.id, error=str(e))
        
        if batch.rows:
            # one message per accepted row
            await self._publish(self._topics_values, batch.rows, property.cache_key)
        return report
    
    async def delete(self, property_id: str) -> bool:
        return await self.relational.delete_property(property_id)
    
    async def count_by_type(self, property_type: str) -> int:
        return await self.relational.count_properties_by_type(property_type)
    
    async def create_classes(
        self,
        entity_id: str,
        property_id: str,
        classes: List[PropertyClass],
    ) -> List[PropertyClass]:
        """
        Attach class labels to a CLASS property.
        
        New classes get values above the highest existing one, starting at 0.
        
        Raises:
            SchemaError: The property is not of type CLASS
        """
        property = await self.read(entity_id, property_id)
        if property.type != "CLASS":
            raise SchemaError(f"Property {property_id} must be of type CLASS")
        
        existing = await self.relational.list_classes(property_id)
        value = max((clazz.value for clazz in existing), default=-1) + 1
        for clazz in classes:
            clazz.value = value
            clazz.property_id = property_id
            value += 1
        
        await self.relational.insert_classes(property_id, classes)
        return classes
