"""
Dimension-Index Resolver

Translates a property id into the (index id, dimension count) pair that
addresses its value shard. Results are memoized for the lifetime of the
resolver: a property's width is fixed at creation, so an entry is never
invalidated or evicted.

Concurrent first lookups of the same id may both reach the catalog; both
resolve to the same value, so the duplicate query is harmless.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

import structlog

from dcd_store.properties.errors import NotFoundError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DimensionIndex:
    """Storage address of a property's values"""
    index_id: int
    num_dimensions: int
    text: bool = False


DimensionLookup = Callable[[str], Awaitable[Optional[DimensionIndex]]]


class DimensionIndexResolver:
    """
    Read-through cache in front of a catalog lookup.
    
    Example:
        resolver = DimensionIndexResolver(store.lookup_dimension_index)
        index = await resolver.resolve("accelerometer-1a2b")
    """
    
    def __init__(self, lookup: DimensionLookup):
        self._lookup = lookup
        self._cache: Dict[str, DimensionIndex] = {}
    
    async def resolve(self, property_id: str) -> DimensionIndex:
        """
        Resolve a property id.
        
        Raises:
            NotFoundError: The property has no catalog row or no dimensions
        """
        cached = self._cache.get(property_id)
        if cached is not None:
            return cached
        
        index = await self._lookup(property_id)
        if index is None or index.num_dimensions == 0:
            raise NotFoundError(f"Property {property_id} not found or has no dimensions")
        
        self._cache[property_id] = index
        logger.debug(
            "Resolved dimension index",
            property_id=property_id,
            index_id=index.index_id,
            num_dimensions=index.num_dimensions,
        )
        return index
    
    def peek(self, property_id: str) -> Optional[DimensionIndex]:
        """Cached entry without touching the catalog"""
        return self._cache.get(property_id)
    
    def prime(self, property_id: str, index: DimensionIndex) -> None:
        self._cache[property_id] = index
    
    def reset(self) -> None:
        self._cache.clear()
    
    def __len__(self) -> int:
        return len(self._cache)
