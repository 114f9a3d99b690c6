"""
Unit Tests - Type Catalog and Property Entity
"""
import pytest

from dcd_store.properties import types as type_catalog
from dcd_store.properties.entities import IngestionReport, Property, to_id


class TestTypeCatalog:
    """Tests for the static type catalog"""
    
    def test_resolve_known_type(self):
        definition = type_catalog.resolve("ACCELEROMETER")
        
        assert definition["name"] == "Accelerometer"
        assert [d["name"] for d in definition["dimensions"]] == ["x", "y", "z"]
        assert all(d["unit"] == "m/s2" for d in definition["dimensions"])
    
    def test_resolve_returns_deep_copy(self):
        first = type_catalog.resolve("THREE_DIMENSIONS")
        first["dimensions"][0]["name"] = "mutated"
        first["dimensions"].pop()
        
        second = type_catalog.resolve("THREE_DIMENSIONS")
        
        assert [d["name"] for d in second["dimensions"]] == ["Value1", "Value2", "Value3"]
    
    @pytest.mark.parametrize("type_name", ["UNKNOWN_SENSOR", "", None])
    def test_unknown_type_yields_nothing(self, type_name):
        assert type_catalog.resolve(type_name) is None
        assert not type_catalog.is_known(type_name)
    
    def test_generic_dimension_types(self):
        catalog = type_catalog.list_types()
        
        assert len(catalog["TWELVE_DIMENSIONS"]["dimensions"]) == 12
        assert "SEVEN_DIMENSIONS" not in catalog
        assert catalog["TEXT"]["dimensions"][0]["type"] == "TEXT"


class TestProperty:
    """Tests for the Property model"""
    
    def test_type_enriches_missing_dimensions(self):
        prop = Property(type="GYROSCOPE", entity_id="thing-1")
        
        assert prop.name == "Gyroscope"
        assert [d.unit for d in prop.dimensions] == ["rad/s"] * 3
        assert prop.id.startswith("gyroscope-")
    
    def test_explicit_dimensions_are_kept(self):
        prop = Property(
            name="Custom",
            type="ACCELEROMETER",
            dimensions=[{"name": "magnitude", "unit": "m/s2"}],
        )
        
        assert [d.name for d in prop.dimensions] == ["magnitude"]
    
    def test_explicit_name_wins_over_type_name(self):
        prop = Property(name="Wrist Accel", type="ACCELEROMETER")
        
        assert prop.name == "Wrist Accel"
        assert len(prop.dimensions) == 3
    
    def test_unknown_type_keeps_caller_shape(self):
        prop = Property(name="Odd", type="NOT_A_TYPE")
        
        assert prop.dimensions == []
        assert prop.type == "NOT_A_TYPE"
    
    def test_aliases_accepted(self):
        prop = Property.model_validate({"id": "p1", "entityId": "E1", "indexId": 4, "values": [[1, 2]]})
        
        assert prop.entity_id == "E1"
        assert prop.index_id == 4
        assert prop.cache_key == "E1_p1"
    
    def test_text_detection(self):
        assert Property(type="TEXT").is_text
        assert Property(name="Notes", dimensions=[{"name": "note", "type": "TEXT"}]).is_text
        assert not Property(type="LIGHT").is_text
    
    def test_to_id_format(self):
        generated = to_id("  My Heart Sensor ")
        
        assert generated.startswith("my-heart-sensor-")
        assert len(generated.rsplit("-", 1)[1]) == 4
    
    def test_message_uses_camel_case(self):
        message = Property(id="p1", type="LIGHT", entity_id="E1").to_message()
        
        assert message["entityId"] == "E1"
        assert "indexId" not in message


class TestIngestionReport:
    def test_defaults_are_zero(self):
        report = IngestionReport()
        
        assert report.model_dump(by_alias=True) == {
            "received": 0,
            "stored": 0,
            "duplicates": 0,
            "malformed": 0,
            "timestampAdded": 0,
            "malformedRows": [],
        }
