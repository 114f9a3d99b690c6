"""
DCD Property Store

Storage and retrieval engine for typed, multi-dimensional property values
collected from things, persons and interactions.
"""

__version__ = "1.0.0"
