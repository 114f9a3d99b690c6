"""
Property Type Catalog

Static registry of known property types. A type gives a property its
canonical name, description and ordered dimensions when the caller only
supplies the type key.
"""

import copy
from typing import Any, Dict, List, Optional


def _dim(name: str, description: str = "", unit: str = "", type: Optional[str] = None) -> Dict[str, Any]:
    dimension = {"name": name, "description": description, "unit": unit}
    if type is not None:
        dimension["type"] = type
    return dimension


def _xyz(description: str, unit: str) -> List[Dict[str, Any]]:
    return [_dim(axis, description.format(axis=axis), unit) for axis in ("x", "y", "z")]


def _generic(count: int) -> List[Dict[str, Any]]:
    return [_dim(f"Value{position}") for position in range(1, count + 1)]


_TYPES: Dict[str, Dict[str, Any]] = {
    "TEXT": {
        "name": "Text",
        "description": "",
        "dimensions": [_dim("Text", type="TEXT")],
    },
    "ACCELEROMETER": {
        "name": "Accelerometer",
        "description": "Acceleration force that is applied to a device on all three physical axes x, y and z, "
                       "including the force of gravity.",
        "dimensions": _xyz(
            "Acceleration force that is applied to a device on physical axe {axis}, including the force of gravity.",
            "m/s2",
        ),
    },
    "GYROSCOPE": {
        "name": "Gyroscope",
        "description": "Rate of rotation around the three axis x, y and z.",
        "dimensions": _xyz("Rate of rotation around the {axis} axis.", "rad/s"),
    },
    "BINARY": {
        "name": "Binary",
        "description": "Can take value 0 or 1.",
        "dimensions": [_dim("state", "Binary State")],
    },
    "MAGNETIC_FIELD": {
        "name": "Magnetic Field",
        "description": "Geomagnetic field strength along the x, y and z axis.",
        "dimensions": _xyz("Geomagnetic field strength along the {axis} axis.", "uT"),
    },
    "GRAVITY": {
        "name": "Gravity",
        "description": "Force of gravity along x, y and z axis.",
        "dimensions": _xyz("Force of gravity along the {axis} axis.", "m/s2"),
    },
    "ROTATION_VECTOR": {
        "name": "Rotation Vector",
        "description": "",
        "dimensions": _xyz("Rotation vector component along the {axis} axis ({axis} * sin(theta/2)).", ""),
    },
    "LIGHT": {
        "name": "Light",
        "description": "Light level",
        "dimensions": [_dim("Illuminance", unit="lx")],
    },
    "LOCATION": {
        "name": "Location",
        "description": "Longitude and latitude in degrees",
        "dimensions": [_dim("Longitude", unit="°"), _dim("Latitude", unit="°")],
    },
    "ALTITUDE": {
        "name": "Altitude",
        "description": "Altitude in meters above the WGS 84 reference ellipsoid.",
        "dimensions": [_dim("Altitude", unit="m")],
    },
    "BEARING": {
        "name": "Bearing",
        "description": "Bearing in degrees",
        "dimensions": [_dim("Bearing", unit="°")],
    },
    "SPEED": {
        "name": "Speed",
        "description": "",
        "dimensions": [_dim("Speed")],
    },
    "PRESSURE": {
        "name": "Pressure",
        "description": "Atmospheric pressure in hPa (millibar)",
        "dimensions": [_dim("Pressure", unit="hPa")],
    },
    "PROXIMITY": {
        "name": "Proximity",
        "description": "Proximity from object (binary or in cm)",
        "dimensions": [_dim("Proximity", unit="cm")],
    },
    "RELATIVE_HUMIDITY": {
        "name": "Relative Humidity",
        "description": "Relative ambient air humidity in percent",
        "dimensions": [_dim("Relative Humidity", unit="H%")],
    },
    "COUNT": {
        "name": "Count",
        "description": "",
        "dimensions": [_dim("Count")],
    },
    "FORCE": {
        "name": "Force",
        "description": "",
        "dimensions": [_dim("Force", unit="kg")],
    },
    "TEMPERATURE": {
        "name": "Temperature",
        "description": "",
        "dimensions": [_dim("Temperature", unit="°C")],
    },
    "STATE": {
        "name": "State",
        "description": "",
        "dimensions": [_dim("Value")],
    },
    "CLASS": {
        "name": "Class",
        "description": "",
        "dimensions": [_dim("Class", "Values of this dimension represents the classes of the property")],
    },
    "VIDEO": {
        "name": "Video",
        "description": "",
        "dimensions": [_dim("Duration", "Duration of the video record.", "ms")],
    },
    "HEART_RATE": {
        "name": "Heart Rate",
        "description": "Heart Rate Measurement (HRM)",
        "dimensions": [
            _dim("Heart Rate", "Heart rate in beats per minutes", "BPM"),
            _dim("RR-Interval", "RR-Interval in seconds", "s"),
        ],
    },
    "WIFI": {
        "name": "WiFi",
        "description": "WiFi interaction",
        "dimensions": [
            _dim("Session duration", "Session duration", "ms"),
            _dim("RSSI", "Received Signal Strength Indicator"),
            _dim("SNR", "Signal-to-Noise Ratio"),
        ],
    },
    "ONE_DIMENSION": {
        "name": "1 Dimension",
        "description": "",
        "dimensions": [_dim("Value")],
    },
}

for _count, _key in [
    (2, "TWO_DIMENSIONS"),
    (3, "THREE_DIMENSIONS"),
    (4, "FOUR_DIMENSIONS"),
    (5, "FIVE_DIMENSIONS"),
    (6, "SIX_DIMENSIONS"),
    (9, "NINE_DIMENSIONS"),
    (10, "TEN_DIMENSIONS"),
    (11, "ELEVEN_DIMENSIONS"),
    (12, "TWELVE_DIMENSIONS"),
]:
    _TYPES[_key] = {"name": f"{_count} Dimensions", "description": "", "dimensions": _generic(_count)}


def resolve(type_name: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Look up a property type.
    
    Args:
        type_name: Catalog key, e.g. "ACCELEROMETER"
    
    Returns:
        A deep copy of {name, description, dimensions}, or None for
        unknown and empty type names
    """
    if not type_name or type_name not in _TYPES:
        return None
    return copy.deepcopy(_TYPES[type_name])


def is_known(type_name: Optional[str]) -> bool:
    return bool(type_name) and type_name in _TYPES


def list_types() -> Dict[str, Dict[str, Any]]:
    """Deep copy of the whole catalog, keyed by type."""
    return copy.deepcopy(_TYPES)
