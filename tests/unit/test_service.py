"""
Unit Tests - Property Service
"""
import itertools

import pytest

from dcd_store.properties.entities import Property, PropertyClass
from dcd_store.properties.errors import (
    BackendUnavailableError,
    InvalidQueryError,
    NotFoundError,
    SchemaError,
)
from dcd_store.properties.service import PropertyService

pytestmark = pytest.mark.asyncio


async def create_three_d(service: PropertyService) -> Property:
    return await service.create(Property(type="THREE_DIMENSIONS", entity_id="E1"))


class TestCreate:
    """Tests for property creation"""
    
    async def test_create_publishes_property(self, service, publisher):
        prop = await create_three_d(service)
        
        assert prop.index_id is not None
        assert len(publisher.published) == 1
        published = publisher.published[0]
        assert published["topic"] == "properties"
        assert published["key"] == prop.id
        assert published["messages"][0]["entityId"] == "E1"
        assert len(published["messages"][0]["dimensions"]) == 3
    
    async def test_publish_failure_keeps_property(self, service, publisher):
        publisher.fail = True
        
        prop = await create_three_d(service)
        
        assert (await service.read("E1", prop.id)).id == prop.id
    
    async def test_failed_create_not_published(self, service, publisher):
        with pytest.raises(SchemaError):
            await service.create(Property(name="orphan"))
        
        assert publisher.published == []


class TestRead:
    """Tests for reads and backend dispatch"""
    
    async def test_read_without_range_has_no_values(self, service):
        prop = await create_three_d(service)
        await service.update_values(Property(id=prop.id, entity_id="E1", values=[[1000, 1, 2, 3]]))
        
        read = await service.read("E1", prop.id)
        
        assert read.values == []
        assert [d.name for d in read.dimensions] == ["Value1", "Value2", "Value3"]
    
    async def test_relational_range(self, service):
        prop = await create_three_d(service)
        await service.update_values(
            Property(id=prop.id, entity_id="E1", values=[[1000, 1, 2, 3], [2000, 4, 5, 6]])
        )
        
        read = await service.read("E1", prop.id, 0, 3000)
        
        assert read.values == [[1000, 1, 2, 3], [2000, 4, 5, 6]]
    
    async def test_timeseries_range(self, service, fake_influx):
        prop = await create_three_d(service)
        fake_influx.series_values = [[0, 2.5, 3.5, 4.5]]
        
        read = await service.read("E1", prop.id, 0, 3000, interval="1h", backend="timeseries")
        
        assert read.values == [[0, 2.5, 3.5, 4.5]]
        assert 'MEAN("Value1")' in fake_influx.queries[0]
        assert "fill(none)" in fake_influx.queries[0]
    
    async def test_timeseries_not_configured(self, store):
        service = PropertyService(store)
        prop = await create_three_d(service)
        
        with pytest.raises(BackendUnavailableError):
            await service.read("E1", prop.id, 0, 1, backend="timeseries")
    
    async def test_unknown_backend(self, service):
        prop = await create_three_d(service)
        
        with pytest.raises(InvalidQueryError):
            await service.read("E1", prop.id, 0, 1, backend="cassandra")
    
    async def test_unknown_property(self, service):
        with pytest.raises(NotFoundError):
            await service.read("E1", "missing", 0, 1)


class TestUpdateValues:
    """Tests for value ingestion through the service"""
    
    async def test_values_published(self, service, publisher):
        prop = await create_three_d(service)
        
        report = await service.update_values(Property(id=prop.id, entity_id="E1", values=[[1000, 1, 2, 3]]))
        
        assert report.stored == 1
        published = publisher.published[-1]
        assert published["topic"] == "values"
        assert published["key"] == f"E1_{prop.id}"
        assert published["messages"] == [[1000, 1, 2, 3]]
    
    async def test_hydration_reads_catalog_once(self, service, store, monkeypatch):
        prop = await create_three_d(service)
        calls = []
        read_property = store.read_property
        
        async def counting_read(entity_id, property_id):
            calls.append(property_id)
            return await read_property(entity_id, property_id)
        
        monkeypatch.setattr(store, "read_property", counting_read)
        
        for timestamp in (1000, 2000, 3000):
            await service.update_values(
                Property(id=prop.id, entity_id="E1", values=[[timestamp, 1, 2, 3]])
            )
        
        assert calls == [prop.id]
    
    async def test_supplied_dimensions_skip_hydration(self, service, store, monkeypatch):
        prop = await create_three_d(service)
        
        async def fail_read(entity_id, property_id):
            raise AssertionError("catalog should not be read")
        
        monkeypatch.setattr(store, "read_property", fail_read)
        
        report = await service.update_values(
            Property(id=prop.id, type="THREE_DIMENSIONS", entity_id="E1", values=[[1, 1, 1, 1]])
        )
        
        assert report.stored == 1
    
    async def test_empty_values(self, service, publisher):
        report = await service.update_values(Property(id="unknown", entity_id="E1"))
        
        assert report.received == 0
        assert report.stored == 0
        assert publisher.published == []
    
    async def test_unknown_property(self, service):
        with pytest.raises(NotFoundError):
            await service.update_values(Property(id="unknown", entity_id="E1", values=[[1, 2, 3, 4]]))
    
    async def test_mirror_writes(self, store, publisher, ts_store, fake_influx):
        service = PropertyService(store, publisher=publisher, timeseries=ts_store, mirror_writes=True)
        prop = await create_three_d(service)
        
        await service.update_values(Property(id=prop.id, entity_id="E1", values=[[1000, 1, 2, 3]]))
        
        assert len(fake_influx.writes) == 1
        assert fake_influx.writes[0].startswith("THREE_DIMENSIONS,entity_id=E1")
    
    async def test_mirror_failure_keeps_report(self, store, publisher, ts_store, fake_influx):
        service = PropertyService(store, publisher=publisher, timeseries=ts_store, mirror_writes=True)
        prop = await create_three_d(service)
        fake_influx.status_code = 503
        
        report = await service.update_values(Property(id=prop.id, entity_id="E1", values=[[1000, 1, 2, 3]]))
        
        assert report.stored == 1
    
    async def test_mirror_skips_unregistered_type(self, store, publisher, ts_store, fake_influx):
        service = PropertyService(store, publisher=publisher, timeseries=ts_store, mirror_writes=True)
        prop = await service.create(
            Property(name="Custom", type="CUSTOM", entity_id="E1", dimensions=[{"name": "a"}])
        )
        
        report = await service.update_values(Property(id=prop.id, entity_id="E1", values=[[1, 5]]))
        
        assert report.stored == 1
        assert fake_influx.writes == []
    
    async def test_one_timestamp_across_backends(self, store, publisher, ts_store, fake_influx):
        ticks = itertools.count(1_700_000_000_000, 3000)
        service = PropertyService(
            store, publisher=publisher, timeseries=ts_store, mirror_writes=True, clock=lambda: next(ticks)
        )
        prop = await create_three_d(service)
        
        report = await service.update_values(
            Property(id=prop.id, entity_id="E1", values=[[1, 2, 3], [4, 5], [2000, 4, 5, 6]])
        )
        
        stored = (await store.read_values(prop, 0, 2_000_000_000_000)).values
        stamped = stored[1][0]
        assert stamped == 1_700_000_000_000
        assert report.timestamp_added == 1
        assert report.malformed_rows == [1]
        assert [row[0] for row in stored] == [2000, stamped]
        assert fake_influx.writes[0].split("\n")[0].endswith(f" {stamped}")
        assert publisher.published[-1]["messages"] == [[stamped, 1, 2, 3], [2000, 4, 5, 6]]
    
    async def test_mirror_malformed_does_not_alter_report(self, store, publisher, ts_store, fake_influx):
        service = PropertyService(store, publisher=publisher, timeseries=ts_store, mirror_writes=True)
        prop = await create_three_d(service)
        
        report = await service.update_values(
            Property(id=prop.id, entity_id="E1", values=[[1000, float("nan"), 2, 3], [2000, 4, 5, 6]])
        )
        
        assert report.stored == 2
        assert report.malformed == 0
        assert len(fake_influx.writes[0].split("\n")) == 1


class TestCatalogOperations:
    """Tests for list, update, delete and classes"""
    
    async def test_update_publishes_when_changed(self, service, publisher):
        prop = await create_three_d(service)
        
        assert await service.update(Property(id=prop.id, name="Renamed"))
        assert not await service.update(Property(id="missing", name="Renamed"))
        
        assert [p["topic"] for p in publisher.published] == ["properties", "properties"]
        assert (await service.list("E1"))[0].name == "Renamed"
    
    async def test_delete_and_count(self, service):
        prop = await create_three_d(service)
        await create_three_d(service)
        
        assert await service.count_by_type("THREE_DIMENSIONS") == 2
        assert await service.delete(prop.id)
        assert await service.count_by_type("THREE_DIMENSIONS") == 1
        assert not await service.delete(prop.id)
    
    async def test_create_classes(self, service):
        prop = await service.create(Property(type="CLASS", entity_id="E1"))
        
        first = await service.create_classes("E1", prop.id, [PropertyClass(name="sit"), PropertyClass(name="walk")])
        second = await service.create_classes("E1", prop.id, [PropertyClass(name="run")])
        
        assert [c.value for c in first] == [0, 1]
        assert [c.value for c in second] == [2]
        assert second[0].property_id == prop.id
        listed = await service.list("E1")
        assert [c.name for c in listed[0].classes] == ["sit", "walk", "run"]
    
    async def test_classes_require_class_type(self, service):
        prop = await create_three_d(service)
        
        with pytest.raises(SchemaError):
            await service.create_classes("E1", prop.id, [PropertyClass(name="sit")])
