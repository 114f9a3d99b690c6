"""
Value Row Validation

Shared by both value stores. A raw row is accepted when its length is the
property's dimension count (the server timestamp is prepended) or the
dimension count plus one (explicit leading timestamp). Anything else is
dropped and counted as malformed; a malformed row is never partially
ingested.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Optional, Sequence

from dcd_store.properties.entities import IngestionReport, now_ms


@dataclass
class PreparedBatch:
    """Rows ready for storage, their input positions and the pre-storage counters"""
    rows: List[List[Any]] = field(default_factory=list)
    positions: List[int] = field(default_factory=list)
    received: int = 0
    malformed: int = 0
    timestamp_added: int = 0
    malformed_rows: List[int] = field(default_factory=list)
    
    def copy(self) -> "PreparedBatch":
        return replace(
            self,
            rows=list(self.rows),
            positions=list(self.positions),
            malformed_rows=list(self.malformed_rows),
        )
    
    def report(self, stored: int) -> IngestionReport:
        """Build the ingestion report once the backend says how many rows it kept"""
        return IngestionReport(
            received=self.received,
            stored=stored,
            duplicates=self.received - self.malformed - stored,
            malformed=self.malformed,
            timestamp_added=self.timestamp_added,
            malformed_rows=list(self.malformed_rows),
        )


def prepare_rows(
    values: Optional[Sequence[Any]],
    num_dimensions: int,
    clock: Callable[[], int] = now_ms,
) -> PreparedBatch:
    """
    Validate raw rows against a dimension count.
    
    Input rows are not mutated; accepted rows are copied with the timestamp
    in first position.
    
    Args:
        values: Raw rows [timestamp?, v1, ..., vN]
        num_dimensions: The property's dimension count N
        clock: Millisecond clock used for missing timestamps
    
    Returns:
        PreparedBatch with accepted rows in input order
    """
    batch = PreparedBatch()
    if not values:
        return batch
    
    for position, raw in enumerate(values):
        batch.received += 1
        if not isinstance(raw, (list, tuple)):
            batch.malformed += 1
            batch.malformed_rows.append(position)
            continue
        
        if len(raw) == num_dimensions:
            batch.rows.append([clock()] + list(raw))
            batch.positions.append(position)
            batch.timestamp_added += 1
        elif len(raw) == num_dimensions + 1:
            batch.rows.append(list(raw))
            batch.positions.append(position)
        else:
            batch.malformed += 1
            batch.malformed_rows.append(position)
    
    return batch


def mark_malformed(batch: PreparedBatch, position: int) -> None:
    """Count an accepted row as malformed after a backend-specific check rejected it"""
    batch.malformed += 1
    batch.malformed_rows.append(position)
    batch.malformed_rows.sort()
