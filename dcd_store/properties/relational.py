"""
Relational Value Store

Persists property catalog rows and value rows through async SQLAlchemy.

Values are sharded on dimension count: a property with N numeric
dimensions writes to shard_N, a text property to shard_text. The shard is
fixed by the dimension count recorded at creation time; widths outside
1..15 are rejected when the property is created.

Value writes are insert-ignore: a row whose (index id, timestamp) key
already exists is skipped, never overwritten. The number of rows the
database reports as inserted is the authoritative `stored` count.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog
from sqlalchemy import Table, and_, case, delete, func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from dcd_store.config import get_settings
from dcd_store.database.models import (
    MAX_DIMENSIONS,
    MIN_DIMENSIONS,
    SHARD_TABLES,
    TEXT_SHARD_KEY,
    Base,
    ClassRecord,
    DimensionRecord,
    PropertyRecord,
    value_columns,
)
from dcd_store.properties.entities import (
    TEXT_TYPE,
    Dimension,
    IngestionReport,
    Property,
    PropertyClass,
)
from dcd_store.properties.errors import (
    BackendUnavailableError,
    ConflictError,
    NotFoundError,
    SchemaError,
)
from dcd_store.properties.metrics import record_ingestion
from dcd_store.properties.resolver import DimensionIndex, DimensionIndexResolver
from dcd_store.properties.rows import PreparedBatch, prepare_rows

logger = structlog.get_logger(__name__)

properties_table = PropertyRecord.__table__
dimensions_table = DimensionRecord.__table__
classes_table = ClassRecord.__table__


def shard_for(num_dimensions: int, text: bool = False) -> Table:
    """
    Select the shard table for a dimension count.
    
    Raises:
        SchemaError: No shard is provisioned for this width
    """
    if text:
        if num_dimensions != 1:
            raise SchemaError(f"Text properties have exactly one dimension, got {num_dimensions}")
        return SHARD_TABLES[TEXT_SHARD_KEY]
    if not MIN_DIMENSIONS <= num_dimensions <= MAX_DIMENSIONS:
        raise SchemaError(
            f"Unsupported dimension count {num_dimensions}",
            hint=f"Properties support {MIN_DIMENSIONS} to {MAX_DIMENSIONS} dimensions",
        )
    return SHARD_TABLES[num_dimensions]


def _to_ms(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class RelationalValueStore:
    """
    Catalog and value storage on a relational database.
    
    Example:
        store = RelationalValueStore(engine)
        await store.create_property(property)
        report = await store.update_values(property)
    """
    
    def __init__(
        self,
        engine: AsyncEngine,
        resolver: Optional[DimensionIndexResolver] = None,
        chunk_size: Optional[int] = None,
    ):
        self._engine = engine
        self.resolver = resolver or DimensionIndexResolver(self.lookup_dimension_index)
        self._chunk_size = chunk_size or get_settings().database.insert_chunk_size
    
    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[AsyncConnection]:
        """Transaction scope; transport failures surface as BackendUnavailableError"""
        try:
            async with self._engine.begin() as conn:
                yield conn
        except (OperationalError, InterfaceError) as e:
            logger.error("Relational backend failure", error=str(e), error_type=type(e).__name__)
            raise BackendUnavailableError("Relational backend unavailable") from e
    
    async def create_schema(self) -> None:
        """Create catalog and shard tables if missing"""
        async with self._connect() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Property store schema created", shards=len(SHARD_TABLES))
    
    # =========================================================================
    # CATALOG
    # =========================================================================
    
    async def create_property(self, property: Property) -> str:
        """
        Insert the catalog row and one row per dimension.
        
        Returns:
            The property id
        
        Raises:
            SchemaError: Unsupported width, missing entity, or a width that
                differs from the one already resolved for this id
            ConflictError: A property with this id already exists
        """
        if not property.entity_id:
            raise SchemaError(f"Property {property.id} has no owning entity")
        
        width = len(property.dimensions)
        if width:
            shard_for(width, property.is_text)
        
        async with self._connect() as conn:
            try:
                result = await conn.execute(
                    insert(properties_table).values(
                        id=property.id,
                        name=property.name,
                        description=property.description,
                        type=property.type,
                        entity_id=property.entity_id,
                    )
                )
            except IntegrityError as e:
                logger.warning("Duplicate property id", property_id=property.id)
                raise ConflictError(f"Property {property.id} already exists") from e
            
            # id is free; a re-created id keeps the width it was first resolved with
            cached = self.resolver.peek(property.id)
            if cached is not None and (cached.num_dimensions != width or cached.text != property.is_text):
                raise SchemaError(
                    f"Property {property.id} was previously stored with {cached.num_dimensions} dimensions",
                    hint="Dimension count cannot change for an existing property id",
                )
            
            index_id = result.inserted_primary_key[0]
            if width:
                await conn.execute(
                    insert(dimensions_table),
                    [
                        {
                            "property_index_id": index_id,
                            "position": position,
                            "name": dimension.name,
                            "description": dimension.description,
                            "unit": dimension.unit,
                            "type": dimension.type,
                        }
                        for position, dimension in enumerate(property.dimensions)
                    ],
                )
        
        property.index_id = index_id
        if width:
            self.resolver.prime(property.id, DimensionIndex(index_id, width, property.is_text))
        
        logger.info(
            "Property created",
            property_id=property.id,
            entity_id=property.entity_id,
            index_id=index_id,
            num_dimensions=width,
        )
        return property.id
    
    async def lookup_dimension_index(self, property_id: str) -> Optional[DimensionIndex]:
        """Catalog query behind the resolver: index id and dimension count"""
        p, d = properties_table, dimensions_table
        first_is_text = func.max(
            case((and_(d.c.position == 0, d.c.type == TEXT_TYPE), 1), else_=0)
        )
        stmt = (
            select(
                p.c.index_id,
                p.c.type,
                func.count(d.c.id).label("num_dimensions"),
                first_is_text.label("first_is_text"),
            )
            .select_from(p.join(d, p.c.index_id == d.c.property_index_id))
            .where(p.c.id == property_id)
            .group_by(p.c.index_id, p.c.type)
        )
        async with self._connect() as conn:
            row = (await conn.execute(stmt)).first()
        
        if row is None:
            return None
        return DimensionIndex(
            index_id=row.index_id,
            num_dimensions=row.num_dimensions,
            text=row.type == TEXT_TYPE or bool(row.first_is_text),
        )
    
    async def read_property(self, entity_id: str, property_id: str) -> Property:
        """
        Read one catalog row with its ordered dimensions.
        
        Raises:
            NotFoundError: No property with this id belongs to the entity
        """
        properties = await self._read_catalog(
            and_(properties_table.c.entity_id == entity_id, properties_table.c.id == property_id)
        )
        if not properties:
            raise NotFoundError(f"Property {property_id} not found for entity {entity_id}")
        return properties[0]
    
    async def list_properties(self, entity_id: str) -> List[Property]:
        """All properties owned by an entity, ordered by name"""
        properties = await self._read_catalog(properties_table.c.entity_id == entity_id)
        class_properties = [prop for prop in properties if prop.type == "CLASS"]
        for prop in class_properties:
            prop.classes = await self.list_classes(prop.id)
        return properties
    
    async def _read_catalog(self, criteria) -> List[Property]:
        p, d = properties_table, dimensions_table
        stmt = (
            select(
                p.c.index_id,
                p.c.id,
                p.c.name,
                p.c.description,
                p.c.type,
                p.c.entity_id,
                p.c.registered_at,
                d.c.name.label("dimension_name"),
                d.c.description.label("dimension_description"),
                d.c.unit.label("dimension_unit"),
                d.c.type.label("dimension_type"),
            )
            .select_from(p.outerjoin(d, p.c.index_id == d.c.property_index_id))
            .where(criteria)
            .order_by(p.c.name, p.c.index_id, d.c.position)
        )
        async with self._connect() as conn:
            rows = (await conn.execute(stmt)).all()
        
        grouped: Dict[int, Dict[str, Any]] = {}
        for row in rows:
            entry = grouped.get(row.index_id)
            if entry is None:
                entry = grouped[row.index_id] = {
                    "id": row.id,
                    "name": row.name,
                    "description": row.description,
                    "type": row.type,
                    "entity_id": row.entity_id,
                    "index_id": row.index_id,
                    "registered_at": _to_ms(row.registered_at),
                    "dimensions": [],
                }
            if row.dimension_name is not None:
                entry["dimensions"].append(
                    Dimension(
                        name=row.dimension_name,
                        description=row.dimension_description,
                        unit=row.dimension_unit,
                        type=row.dimension_type,
                    )
                )
        return [Property(**entry) for entry in grouped.values()]
    
    async def update_property(self, property: Property) -> bool:
        """
        Update name and description of an existing property.
        
        Dimensions are never reshaped; any supplied dimensions are ignored.
        
        Returns:
            True if a catalog row was updated
        """
        changes = {
            field: getattr(property, field)
            for field in ("name", "description")
            if field in property.model_fields_set
        }
        if not changes:
            return False
        
        async with self._connect() as conn:
            result = await conn.execute(
                update(properties_table)
                .where(properties_table.c.id == property.id)
                .values(**changes)
            )
        return result.rowcount > 0
    
    async def delete_property(self, property_id: str) -> bool:
        """
        Delete the catalog row with its dimensions and classes.
        
        Value rows in the shard tables are left in place.
        """
        index_ids = select(properties_table.c.index_id).where(properties_table.c.id == property_id)
        async with self._connect() as conn:
            await conn.execute(
                delete(dimensions_table).where(dimensions_table.c.property_index_id.in_(index_ids))
            )
            await conn.execute(delete(classes_table).where(classes_table.c.property_id == property_id))
            result = await conn.execute(delete(properties_table).where(properties_table.c.id == property_id))
        
        deleted = result.rowcount > 0
        logger.info("Property deleted", property_id=property_id, deleted=deleted)
        return deleted
    
    async def count_properties_by_type(self, property_type: str) -> int:
        stmt = select(func.count()).select_from(properties_table).where(properties_table.c.type == property_type)
        async with self._connect() as conn:
            return (await conn.execute(stmt)).scalar_one()
    
    async def insert_classes(self, property_id: str, classes: List[PropertyClass]) -> None:
        if not classes:
            return
        async with self._connect() as conn:
            try:
                await conn.execute(
                    insert(classes_table),
                    [
                        {
                            "property_id": property_id,
                            "name": clazz.name,
                            "description": clazz.description,
                            "value": clazz.value,
                        }
                        for clazz in classes
                    ],
                )
            except IntegrityError as e:
                raise ConflictError(f"Class value already used for property {property_id}") from e
    
    async def list_classes(self, property_id: str) -> List[PropertyClass]:
        stmt = (
            select(classes_table.c.name, classes_table.c.description, classes_table.c.value)
            .where(classes_table.c.property_id == property_id)
            .order_by(classes_table.c.value)
        )
        async with self._connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [
            PropertyClass(name=row.name, description=row.description, value=row.value, property_id=property_id)
            for row in rows
        ]
    
    # =========================================================================
    # VALUES
    # =========================================================================
    
    def _insert_ignore(self, table: Table, records: List[Dict[str, Any]]):
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            return pg_insert(table).values(records).on_conflict_do_nothing()
        if dialect == "sqlite":
            return sqlite_insert(table).values(records).on_conflict_do_nothing()
        if dialect in ("mysql", "mariadb"):
            return insert(table).values(records).prefix_with("IGNORE")
        raise SchemaError(f"Insert-ignore is not supported on dialect {dialect}")
    
    async def update_values(
        self,
        property: Property,
        batch: Optional[PreparedBatch] = None,
    ) -> IngestionReport:
        """
        Ingest the property's buffered value rows.
        
        Rows with one value per dimension get the server timestamp, rows with
        a leading timestamp are stored as given, others are counted as
        malformed. Surviving rows are inserted with insert-ignore semantics
        in one transaction.
        
        Args:
            batch: Rows already validated and stamped by the caller; when
                given, property.values is not read
        
        Returns:
            IngestionReport with received/stored/duplicates/malformed/timestampAdded
        
        Raises:
            NotFoundError: Unknown property or property without dimensions
        """
        if batch is None and not property.values:
            return IngestionReport()
        
        start = time.perf_counter()
        index = await self.resolver.resolve(property.id)
        if batch is None:
            batch = prepare_rows(property.values, index.num_dimensions)
        
        stored = 0
        if batch.rows:
            table = shard_for(index.num_dimensions, index.text)
            columns = ["property_index_id", "timestamp"] + [column.name for column in value_columns(table)]
            records = [dict(zip(columns, [index.index_id] + row)) for row in batch.rows]
            
            async with self._connect() as conn:
                for i in range(0, len(records), self._chunk_size):
                    chunk = records[i:i + self._chunk_size]
                    result = await conn.execute(self._insert_ignore(table, chunk))
                    stored += max(result.rowcount, 0)
        
        report = batch.report(stored)
        record_ingestion("relational", report, time.perf_counter() - start)
        logger.debug(
            "Values ingested",
            property_id=property.id,
            shard=shard_for(index.num_dimensions, index.text).name,
            received=report.received,
            stored=report.stored,
            duplicates=report.duplicates,
            malformed=report.malformed,
        )
        return report
    
    async def read_values(
        self,
        property: Property,
        from_ts: Optional[int] = None,
        to_ts: Optional[int] = None,
    ) -> Property:
        """
        Read value rows of a property.
        
        With no bounds only the most recent row is returned. With bounds the
        rows in [from_ts, to_ts] (or the open-ended range for a single bound)
        are returned in ascending timestamp order.
        
        Returns:
            A copy of the property with values [[timestamp, v1, ..., vN], ...]
        """
        index = await self.resolver.resolve(property.id)
        table = shard_for(index.num_dimensions, index.text)
        
        stmt = select(table.c.timestamp, *value_columns(table)).where(
            table.c.property_index_id == index.index_id
        )
        if from_ts is not None and to_ts is not None:
            stmt = stmt.where(table.c.timestamp.between(from_ts, to_ts)).order_by(table.c.timestamp)
        elif from_ts is not None:
            stmt = stmt.where(table.c.timestamp >= from_ts).order_by(table.c.timestamp)
        elif to_ts is not None:
            stmt = stmt.where(table.c.timestamp <= to_ts).order_by(table.c.timestamp)
        else:
            stmt = stmt.order_by(table.c.timestamp.desc()).limit(1)
        
        async with self._connect() as conn:
            rows = (await conn.execute(stmt)).all()
        
        return property.model_copy(
            update={"values": [list(row) for row in rows], "index_id": index.index_id},
            deep=True,
        )
