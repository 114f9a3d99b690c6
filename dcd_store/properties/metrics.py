"""
Ingestion Metrics

Prometheus counters fed from every ingestion report, labelled by backend.
"""

from prometheus_client import Counter, Histogram

from dcd_store.properties.entities import IngestionReport


VALUES_RECEIVED = Counter(
    "dcd_property_values_received_total",
    "Raw value rows received for ingestion",
    ["backend"],
)

VALUES_STORED = Counter(
    "dcd_property_values_stored_total",
    "Value rows written to a backend",
    ["backend"],
)

VALUES_DUPLICATE = Counter(
    "dcd_property_values_duplicate_total",
    "Value rows skipped because their key already existed",
    ["backend"],
)

VALUES_MALFORMED = Counter(
    "dcd_property_values_malformed_total",
    "Value rows dropped for having the wrong length",
    ["backend"],
)

INGESTION_TIME = Histogram(
    "dcd_property_ingestion_seconds",
    "Time spent ingesting one batch of value rows",
    ["backend"],
)


def record_ingestion(backend: str, report: IngestionReport, duration: float) -> None:
    VALUES_RECEIVED.labels(backend=backend).inc(report.received)
    VALUES_STORED.labels(backend=backend).inc(report.stored)
    VALUES_DUPLICATE.labels(backend=backend).inc(report.duplicates)
    VALUES_MALFORMED.labels(backend=backend).inc(report.malformed)
    INGESTION_TIME.labels(backend=backend).observe(duration)
