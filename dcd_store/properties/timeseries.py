"""
Time-Series Value Store

Writes and reads property values on InfluxDB (1.x HTTP API). A property's
values live in the measurement named after its type, tagged with
entity_id and property_id, one field per dimension.

Every measurement needs a registered schema (field names and types); the
schemas of all catalog types are registered up front. Writing a property
whose type has no schema raises SchemaError, so such properties are only
ever stored relationally.

Ranged reads can be downsampled: with an interval each field is wrapped in
the aggregate function and results are bucketed with GROUP BY time().

Timestamps are epoch milliseconds on both sides of this module. Points are
written at the configured precision; queries and results stay in
milliseconds.
"""

import math
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
import structlog

from dcd_store.config import get_settings
from dcd_store.properties import types as type_catalog
from dcd_store.properties.entities import TEXT_TYPE, IngestionReport, Property
from dcd_store.properties.errors import (
    BackendUnavailableError,
    InvalidQueryError,
    SchemaError,
)
from dcd_store.properties.metrics import record_ingestion
from dcd_store.properties.rows import PreparedBatch, mark_malformed, prepare_rows

logger = structlog.get_logger(__name__)


AGGREGATE_FUNCTIONS = {
    "COUNT", "FIRST", "LAST", "MAX", "MEAN", "MEDIAN", "MIN", "MODE", "SPREAD", "STDDEV", "SUM",
}
FILL_POLICIES = {"none", "null", "previous", "linear"}
INTERVAL_PATTERN = re.compile(r"^\d+(ns|u|µ|ms|s|m|h|d|w)$")
NUMERIC_PATTERN = re.compile(r"^-?\d+(\.\d+)?$")
SERIES_TAGS = ("entity_id", "property_id")

# Write precision -> (multiplier, divisor) applied to a millisecond timestamp
PRECISION_SCALE = {
    "ns": (1_000_000, 1),
    "u": (1_000, 1),
    "ms": (1, 1),
    "s": (1, 1_000),
    "m": (1, 60_000),
    "h": (1, 3_600_000),
}


class FieldType(str, Enum):
    """InfluxDB field types"""
    FLOAT = "float"
    INTEGER = "integer"
    STRING = "string"
    BOOLEAN = "boolean"


@dataclass
class MeasurementSchema:
    """Field names and types accepted by one measurement"""
    measurement: str
    fields: Dict[str, FieldType]
    tags: tuple = SERIES_TAGS


# =============================================================================
# LINE PROTOCOL
# =============================================================================

def _escape_key(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _escape_measurement(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")


def _format_field(value: Any, field_type: FieldType) -> str:
    """Render a field value; raises ValueError/TypeError/OverflowError when it does not fit the type"""
    if field_type == FieldType.STRING:
        escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if field_type == FieldType.BOOLEAN:
        if not isinstance(value, bool):
            raise TypeError(f"Expected boolean, got {value!r}")
        return "true" if value else "false"
    if field_type == FieldType.INTEGER:
        return f"{int(value)}i"
    if isinstance(value, bool):
        raise TypeError(f"Expected number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Line protocol has no representation for {value!r}")
    return repr(number)


@dataclass
class Point:
    """A single time-series point"""
    measurement: str
    timestamp: int
    tags: Dict[str, str]
    fields: Dict[str, str] = field(default_factory=dict)
    
    def to_line(self) -> str:
        """Line protocol representation; field values are already rendered"""
        tags = "".join(
            f",{_escape_key(key)}={_escape_key(str(value))}"
            for key, value in sorted(self.tags.items())
        )
        fields = ",".join(f"{_escape_key(key)}={value}" for key, value in self.fields.items())
        return f"{_escape_measurement(self.measurement)}{tags} {fields} {int(self.timestamp)}"


def _quote_identifier(name: str) -> str:
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _quote_literal(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


# =============================================================================
# HTTP CLIENT
# =============================================================================

class InfluxClient:
    """
    Minimal async InfluxDB 1.x client over httpx.
    
    Example:
        client = InfluxClient("http://localhost:8086", "dcd")
        await client.write_points(points, precision="ms")
        data = await client.query('SELECT * FROM "LIGHT"')
    """
    
    def __init__(
        self,
        url: str,
        database: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.database = database
        auth = (username, password or "") if username else None
        self._client = httpx.AsyncClient(base_url=url, timeout=timeout, auth=auth, transport=transport)
    
    @classmethod
    def from_settings(cls) -> "InfluxClient":
        settings = get_settings().timeseries
        return cls(
            url=settings.url,
            database=settings.database,
            username=settings.username,
            password=settings.password.get_secret_value() if settings.password else None,
            timeout=settings.timeout,
        )
    
    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.error("InfluxDB transport failure", path=path, error=str(e))
            raise BackendUnavailableError("Time-series backend unavailable") from e
        
        if response.status_code >= 500:
            logger.error("InfluxDB server error", path=path, status=response.status_code)
            raise BackendUnavailableError(f"Time-series backend error {response.status_code}")
        if response.status_code >= 400:
            try:
                message = response.json().get("error", response.text)
            except ValueError:
                message = response.text
            logger.warning("InfluxDB rejected request", path=path, status=response.status_code, error=message)
            raise SchemaError(f"Time-series backend rejected request: {message}")
        return response
    
    async def write_points(
        self,
        points: List[Point],
        precision: str = "ms",
        database: Optional[str] = None,
    ) -> None:
        body = "\n".join(point.to_line() for point in points)
        await self._request(
            "POST",
            "/write",
            params={"db": database or self.database, "precision": precision},
            content=body.encode("utf-8"),
        )
    
    async def query(
        self,
        query: str,
        precision: str = "ms",
        database: Optional[str] = None,
        method: str = "GET",
        scoped: bool = True,
    ) -> Dict[str, Any]:
        """Run a raw InfluxQL query; returns {"results": [{"series": [...]}]}"""
        params = {"q": query, "epoch": precision}
        if scoped:
            params["db"] = database or self.database
        response = await self._request(method, "/query", params=params)
        return response.json()
    
    async def aclose(self) -> None:
        await self._client.aclose()


# =============================================================================
# VALUE STORE
# =============================================================================

def _schema_from_type(type_name: str, definition: Dict[str, Any]) -> MeasurementSchema:
    fields = {
        dimension["name"]: FieldType.STRING if dimension.get("type") == TEXT_TYPE else FieldType.FLOAT
        for dimension in definition["dimensions"]
    }
    return MeasurementSchema(measurement=type_name, fields=fields)


class TimeSeriesValueStore:
    """
    Property values on InfluxDB, addressed by (type, entity_id, property_id).
    
    Example:
        store = TimeSeriesValueStore(InfluxClient.from_settings())
        report = await store.write_values(property)
        prop = await store.read_values(property, 0, 3000, interval="1s")
    """
    
    def __init__(self, client: InfluxClient, precision: Optional[str] = None):
        self._client = client
        self._precision = precision or get_settings().timeseries.precision
        if self._precision not in PRECISION_SCALE:
            raise ValueError(f"Unsupported write precision {self._precision}")
        self._schemas: Dict[str, MeasurementSchema] = {
            type_name: _schema_from_type(type_name, definition)
            for type_name, definition in type_catalog.list_types().items()
        }
    
    def _to_precision(self, timestamp_ms: int) -> int:
        multiplier, divisor = PRECISION_SCALE[self._precision]
        return timestamp_ms * multiplier // divisor
    
    def register_schema(self, measurement: str, fields: Dict[str, FieldType]) -> None:
        self._schemas[measurement] = MeasurementSchema(measurement=measurement, fields=dict(fields))
        logger.info("Registered time-series schema", measurement=measurement, fields=list(fields))
    
    def has_schema(self, type_name: Optional[str]) -> bool:
        return bool(type_name) and type_name in self._schemas
    
    def _schema_for(self, property: Property) -> MeasurementSchema:
        schema = self._schemas.get(property.type) if property.type else None
        if schema is None:
            raise SchemaError(
                f"No time-series schema registered for type '{property.type}'",
                hint="Properties of unregistered types are stored relationally only",
            )
        unknown = [dimension.name for dimension in property.dimensions if dimension.name not in schema.fields]
        if unknown:
            raise SchemaError(f"Measurement {schema.measurement} has no fields {unknown}")
        return schema
    
    async def create_store(self) -> None:
        await self._client.query(
            f"CREATE DATABASE {_quote_identifier(self._client.database)}", method="POST", scoped=False
        )
        logger.info("Time-series database created", database=self._client.database)
    
    async def delete_store(self) -> None:
        await self._client.query(
            f"DROP DATABASE {_quote_identifier(self._client.database)}", method="POST", scoped=False
        )
        logger.info("Time-series database dropped", database=self._client.database)
    
    async def write_values(
        self,
        property: Property,
        batch: Optional[PreparedBatch] = None,
    ) -> IngestionReport:
        """
        Write the property's buffered value rows as points.
        
        Rows follow the same length rules as the relational store. A row whose
        values do not fit the measurement's field types is counted as
        malformed. The store overwrites a point with the same series and
        timestamp, so duplicates is always 0.
        
        Args:
            batch: Rows already validated and stamped by the caller; it is
                copied, not modified
        
        Raises:
            SchemaError: The property's type has no registered schema
        """
        if batch is None and not property.values:
            return IngestionReport()
        
        start = time.perf_counter()
        schema = self._schema_for(property)
        names = [dimension.name for dimension in property.dimensions] or list(schema.fields)
        batch = prepare_rows(property.values, len(names)) if batch is None else batch.copy()
        tags = {"entity_id": property.entity_id or "", "property_id": property.id}
        
        points = []
        for row, position in zip(batch.rows, batch.positions):
            try:
                fields = {
                    name: _format_field(value, schema.fields[name])
                    for name, value in zip(names, row[1:])
                    if value is not None
                }
                timestamp = self._to_precision(int(row[0]))
            except (TypeError, ValueError, OverflowError):
                mark_malformed(batch, position)
                continue
            if not fields:
                mark_malformed(batch, position)
                continue
            points.append(Point(schema.measurement, timestamp, tags, fields))
        
        if points:
            await self._client.write_points(points, precision=self._precision)
        
        report = batch.report(len(points))
        record_ingestion("timeseries", report, time.perf_counter() - start)
        logger.debug(
            "Values written to time-series store",
            property_id=property.id,
            measurement=schema.measurement,
            received=report.received,
            stored=report.stored,
            malformed=report.malformed,
        )
        return report
    
    def build_query(
        self,
        property: Property,
        from_ts: Optional[int] = None,
        to_ts: Optional[int] = None,
        interval: Optional[str] = None,
        aggregate_fn: str = "MEAN",
        fill: str = "none",
    ) -> str:
        """
        Build the InfluxQL range query for a property.
        
        Raises:
            InvalidQueryError: Unknown aggregate function, fill policy or interval
        """
        aggregate_fn = aggregate_fn.upper()
        if aggregate_fn not in AGGREGATE_FUNCTIONS:
            raise InvalidQueryError(f"Unsupported aggregate function {aggregate_fn}")
        if fill not in FILL_POLICIES and not NUMERIC_PATTERN.match(str(fill)):
            raise InvalidQueryError(f"Unsupported fill policy {fill}")
        if interval is not None and not INTERVAL_PATTERN.match(interval):
            raise InvalidQueryError(f"Malformed interval {interval}")
        
        names = [dimension.name for dimension in property.dimensions]
        if not names:
            raise SchemaError(f"Property {property.id} has no dimensions")
        
        if interval is not None:
            columns = ", ".join(f"{aggregate_fn}({_quote_identifier(name)})" for name in names)
        else:
            columns = ", ".join(_quote_identifier(name) for name in names)
        
        conditions = [
            f"{_quote_identifier('entity_id')} = {_quote_literal(property.entity_id or '')}",
            f"{_quote_identifier('property_id')} = {_quote_literal(property.id)}",
        ]
        if from_ts is not None:
            conditions.append(f"time >= {int(from_ts)}ms")
        if to_ts is not None:
            conditions.append(f"time <= {int(to_ts)}ms")
        
        query = f"SELECT {columns} FROM {_quote_identifier(property.type)} WHERE {' AND '.join(conditions)}"
        if interval is not None:
            query += f" GROUP BY time({interval}) fill({fill})"
        elif from_ts is None and to_ts is None:
            query += " ORDER BY time DESC LIMIT 1"
        return query
    
    async def read_values(
        self,
        property: Property,
        from_ts: Optional[int] = None,
        to_ts: Optional[int] = None,
        interval: Optional[str] = None,
        aggregate_fn: str = "MEAN",
        fill: str = "none",
    ) -> Property:
        """
        Read value rows, optionally downsampled.
        
        Returns:
            A copy of the property with values from the first result series,
            or an empty list when the store reports no series
        """
        query = self.build_query(property, from_ts, to_ts, interval, aggregate_fn, fill)
        logger.debug("Time-series query", property_id=property.id, query=query)
        data = await self._client.query(query, precision="ms")
        
        values: List[List[Any]] = []
        results = data.get("results") or []
        if results:
            first = results[0]
            if first.get("error"):
                raise InvalidQueryError(f"Time-series query failed: {first['error']}")
            series = first.get("series") or []
            if series:
                values = [list(row) for row in series[0].get("values") or []]
        
        return property.model_copy(update={"values": values}, deep=True)
