"""
Database Models - Property Catalog and Value Shards

The catalog describes every declared property and its ordered dimensions.
Values live in fixed-width shard tables, one per supported dimension count,
plus one table for text-valued properties:

Catalog Tables:
- properties: one row per property, assigns the numeric index_id
- dimensions: one row per dimension, ordered by position
- classes: labelled values of CLASS-typed properties

Shard Tables:
- shard_1 .. shard_15: (property_index_id, timestamp, value1 .. valueN)
- shard_text: (property_index_id, timestamp, value1 TEXT)

A value row is identified by (property_index_id, timestamp).
"""

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


MIN_DIMENSIONS = 1
MAX_DIMENSIONS = 15
TEXT_SHARD_KEY = "text"


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# CATALOG TABLES
# =============================================================================

class PropertyRecord(Base):
    """
    Property Catalog Table
    
    index_id is the internal handle addressing the property's shard rows.
    """
    __tablename__ = "properties"
    
    index_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(191), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    entity_id: Mapped[str] = mapped_column(String(191), nullable=False)
    registered_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    
    __table_args__ = (
        Index("ix_properties_entity", "entity_id"),
        Index("ix_properties_type", "type"),
    )


class DimensionRecord(Base):
    """Dimension Table - position is the column order of value rows"""
    __tablename__ = "dimensions"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_index_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.index_id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    unit: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    type: Mapped[Optional[str]] = mapped_column(String(32))
    
    __table_args__ = (
        UniqueConstraint("property_index_id", "position", name="uq_dimensions_position"),
    )


class ClassRecord(Base):
    """Class labels of CLASS-typed properties"""
    __tablename__ = "classes"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[str] = mapped_column(String(191), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    
    __table_args__ = (
        UniqueConstraint("property_id", "value", name="uq_classes_value"),
    )


# =============================================================================
# VALUE SHARDS
# =============================================================================

def _shard_table(name: str, width: int, text: bool = False) -> Table:
    value_type = Text if text else Float
    columns = [
        Column("property_index_id", Integer, primary_key=True, autoincrement=False),
        Column("timestamp", BigInteger, primary_key=True, autoincrement=False),
    ]
    columns.extend(
        Column(f"value{position}", value_type, nullable=True)
        for position in range(1, width + 1)
    )
    return Table(name, Base.metadata, *columns)


def value_columns(table: Table) -> list:
    """Value columns of a shard table, in dimension order."""
    return [column for column in table.columns if column.name.startswith("value")]


# Built once at import: dimension count (or "text") -> shard table
SHARD_TABLES: Dict[object, Table] = {
    width: _shard_table(f"shard_{width}", width)
    for width in range(MIN_DIMENSIONS, MAX_DIMENSIONS + 1)
}
SHARD_TABLES[TEXT_SHARD_KEY] = _shard_table("shard_text", 1, text=True)
