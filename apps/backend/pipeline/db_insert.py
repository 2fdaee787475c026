"""
Database persistence for canonical jobs.

Upserts jobs keyed by (employer_id, source_job_id). New rows are inserted
with is_active = false; the downstream classifier owns that flag, so
updates never touch it. A stored slug is never rewritten.
"""

import logging
from typing import Dict, Optional, Any, List, Tuple
from datetime import datetime

import psycopg2
from psycopg2.extras import RealDictCursor

from app.db_config import DBConfig
from core.errors import PersistenceError
from core.pre_upsert_validator import validate_job_data
from pipeline.canonical import CanonicalJob, EMPLOYER_FIELDS, STORED_DETAIL_FIELDS, calculate_expiry

logger = logging.getLogger(__name__)

# Columns an UPDATE must never write
PROTECTED_COLUMNS = ('id', 'is_active', 'slug', 'created_at')


def build_insert(table: str, record: Dict[str, Any]) -> Tuple[str, List[Any]]:
    """
    Build an INSERT for a new job row.

    is_active is always written as false, whatever the record says.
    """
    fields = [k for k in record if k not in ('id', 'created_at', 'is_active')]
    values = [record[k] for k in fields]
    fields.append('is_active')
    values.append(False)
    query = (
        f"INSERT INTO {table} ({', '.join(fields)}, created_at, updated_at) "
        f"VALUES ({', '.join(['%s'] * len(fields))}, NOW(), NOW()) RETURNING id"
    )
    return query, values


def build_update(table: str, record: Dict[str, Any], job_id: Any) -> Tuple[str, List[Any]]:
    """Build an UPDATE for an existing row, skipping PROTECTED_COLUMNS."""
    fields = [k for k in record if k not in PROTECTED_COLUMNS]
    values = [record[k] for k in fields]
    values.append(job_id)
    query = (
        f"UPDATE {table} SET {', '.join(f'{k} = %s' for k in fields)}, updated_at = NOW() "
        f"WHERE id = %s RETURNING id"
    )
    return query, values


class JobStore:
    """Persistence gate for canonical jobs and employers."""

    def __init__(self, db_url: Optional[str] = None, jobs_table: Optional[str] = None,
                 employers_table: Optional[str] = None):
        """
        Initialize the store.

        Args:
            db_url: PostgreSQL connection string (default: SUPABASE_DB_URL / DATABASE_URL)
            jobs_table: Table name (default: JOBS_TABLE env var or 'jobs')
            employers_table: Table name (default: EMPLOYERS_TABLE env var or 'employers')
        """
        db_config = DBConfig()
        self.db_url = db_url or db_config.db_url
        self.jobs_table = jobs_table or db_config.jobs_table
        self.employers_table = employers_table or db_config.employers_table
        self.connect_timeout = db_config.connect_timeout

        logger.info(f"[db_insert] JobStore initialized: jobs={self.jobs_table}, employers={self.employers_table}")

    def _get_db_conn(self):
        """Get database connection."""
        if not self.db_url:
            raise PersistenceError("No database URL configured (set SUPABASE_DB_URL or DATABASE_URL)")
        try:
            return psycopg2.connect(self.db_url, connect_timeout=self.connect_timeout)
        except psycopg2.Error as e:
            logger.error(f"[db_insert] Failed to connect to database: {e}")
            raise PersistenceError(f"Database connection failed: {e}") from e

    def get_or_create_employer(self, config) -> Dict[str, Any]:
        """
        Find the employer by slug, then by name; create it otherwise.

        Touches last_scraped_at on every call.

        Returns:
            Employer row with at least id, name, slug

        Raises:
            PersistenceError: on connection or query failure
        """
        record = config.to_employer_record()
        conn = None
        try:
            conn = self._get_db_conn()
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"SELECT id, name, slug FROM {self.employers_table} WHERE slug = %s",
                    (record['slug'],)
                )
                employer = cur.fetchone()
                if not employer:
                    cur.execute(
                        f"SELECT id, name, slug FROM {self.employers_table} WHERE name = %s",
                        (record['name'],)
                    )
                    employer = cur.fetchone()

                if employer:
                    cur.execute(
                        f"UPDATE {self.employers_table} SET last_scraped_at = NOW() WHERE id = %s",
                        (employer['id'],)
                    )
                    logger.info(f"[db_insert] Found employer {employer['slug']} (id={employer['id']})")
                else:
                    cur.execute(
                        f"""
                        INSERT INTO {self.employers_table} (name, slug, career_page_url, ats_platform, last_scraped_at)
                        VALUES (%s, %s, %s, %s, NOW())
                        RETURNING id, name, slug
                        """,
                        (record['name'], record['slug'], record['career_page_url'], record['ats_platform'])
                    )
                    employer = cur.fetchone()
                    logger.info(f"[db_insert] Created employer {employer['slug']} (id={employer['id']})")
            conn.commit()
            return dict(employer)
        except psycopg2.Error as e:
            if conn:
                conn.rollback()
            raise PersistenceError(f"Employer lookup failed for {record['slug']}: {e}") from e
        finally:
            if conn:
                conn.close()

    def get_existing_job(self, employer_id: Any, source_job_id: str) -> Optional[Dict[str, Any]]:
        """Fetch id, slug and the detail-derived columns of a stored job, or None."""
        columns = ', '.join(('id', 'slug') + STORED_DETAIL_FIELDS)
        conn = None
        try:
            conn = self._get_db_conn()
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"SELECT {columns} FROM {self.jobs_table} "
                    f"WHERE employer_id = %s AND source_job_id = %s",
                    (employer_id, source_job_id)
                )
                row = cur.fetchone()
                return dict(row) if row else None
        except psycopg2.Error as e:
            raise PersistenceError(f"Lookup failed for job {source_job_id}: {e}") from e
        finally:
            if conn:
                conn.close()

    @staticmethod
    def calculate_expiry(scraped_at: Optional[datetime] = None, explicit: Optional[datetime] = None) -> datetime:
        return calculate_expiry(scraped_at, explicit)

    def upsert_job(self, job: Any) -> Dict[str, Any]:
        """
        Validate and upsert a single job in its own transaction.

        Args:
            job: CanonicalJob or dict with the same keys

        Returns:
            Dict: {success, job_id, action, error, errors}; action is
            'created', 'updated', 'rejected' or 'failed'
        """
        record = job.to_dict() if isinstance(job, CanonicalJob) else dict(job)

        validation = validate_job_data(record)
        if not validation['valid']:
            logger.warning(
                f"[db_insert] Rejected job {record.get('source_job_id')}: {'; '.join(validation['errors'])}"
            )
            return {
                'success': False, 'job_id': None, 'action': 'rejected',
                'error': validation['errors'][0], 'errors': validation['errors'],
            }

        row = {k: v for k, v in record.items() if k not in EMPLOYER_FIELDS}
        employer_id = row.get('employer_id')
        source_job_id = row.get('source_job_id')

        conn = None
        try:
            conn = self._get_db_conn()
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"SELECT id, slug FROM {self.jobs_table} "
                    f"WHERE employer_id = %s AND source_job_id = %s FOR UPDATE",
                    (employer_id, source_job_id)
                )
                existing = cur.fetchone()

                if existing:
                    job_id = existing['id']
                    query, values = build_update(self.jobs_table, row, job_id)
                    cur.execute(query, values)
                    action = 'updated'
                else:
                    query, values = build_insert(self.jobs_table, row)
                    cur.execute(query, values)
                    job_id = cur.fetchone()['id']
                    action = 'created'
            conn.commit()
            logger.debug(f"[db_insert] {action.capitalize()} job {job_id} ({source_job_id})")
            return {'success': True, 'job_id': str(job_id), 'action': action, 'error': None, 'errors': []}

        except psycopg2.IntegrityError as e:
            logger.warning(f"[db_insert] Integrity error upserting job {source_job_id}: {e}")
            if conn:
                conn.rollback()
            return self._failure(source_job_id, f'Integrity error: {e}')
        except psycopg2.Error as e:
            logger.error(f"[db_insert] Error upserting job {source_job_id}: {e}", exc_info=True)
            if conn:
                conn.rollback()
            return self._failure(source_job_id, str(e))
        except PersistenceError as e:
            return self._failure(source_job_id, str(e))
        finally:
            if conn:
                conn.close()

    @staticmethod
    def _failure(source_job_id: Optional[str], message: str) -> Dict[str, Any]:
        error = PersistenceError(f"Job {source_job_id}: {message}")
        logger.error(f"[db_insert] {error}")
        return {'success': False, 'job_id': None, 'action': 'failed', 'error': str(error), 'errors': [str(error)]}

    def upsert_jobs_batch(self, jobs: List[Any]) -> Dict[str, Any]:
        """
        Upsert many jobs; one bad record never aborts the batch.

        Returns:
            Dict with counts: {created, updated, rejected, failed, total, errors}
        """
        counts = {'created': 0, 'updated': 0, 'rejected': 0, 'failed': 0}
        errors = []

        for job in jobs:
            status = self.upsert_job(job)
            counts[status['action']] += 1
            if not status['success']:
                source_id = job.source_job_id if isinstance(job, CanonicalJob) else job.get('source_job_id')
                errors.append({'source_job_id': source_id, 'errors': status['errors']})

        logger.info(
            f"[db_insert] Batch: {counts['created']} created, {counts['updated']} updated, "
            f"{counts['rejected']} rejected, {counts['failed']} failed"
        )
        return {**counts, 'total': len(jobs), 'errors': errors}
