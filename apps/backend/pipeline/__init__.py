"""
Job normalization and persistence pipeline.

Raw connector listings are normalized into canonical job records
(canonical.py), detail-page text is classified into sections
(sections.py), and records pass the upsert gate into PostgreSQL
(db_insert.py).
"""

__version__ = "0.1.0"
