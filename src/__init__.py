"""
Electricity Price Store - hourly price ingestion and gap-free range queries

Ingests hourly electricity prices from an upstream feed, stores one record per
hour slot, and serves date-range queries as a contiguous hourly sequence.

Main components:
- Price store with duplicate check, bulk insert, range query and range cache
- Range completion that pads missing hour slots
- Interval ingestion scheduler and one-shot startup backfill
- Domain exceptions for clear error handling
"""

__version__ = "1.0.0"
