#!/usr/bin/env python3
"""
Drink Product Synchronizer

Reconciles scraped drink records against the products table. Each record is
fingerprinted from its href, price and image; unchanged records only get their
availability refreshed, changed records get their price/image/checksum
updated, and new records are inserted and counted in their subcategory.

Usage:
    python drink_sync.py --input output/alko_products.csv --retailer Alko
"""

import os
import sys
import math
import time
import struct
import numbers
import argparse
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import List, Dict, Optional, Union, Tuple, Iterable, Any
from dataclasses import dataclass, asdict
from enum import Enum

import pandas as pd
from dotenv import load_dotenv

# Database support - PostgreSQL or SQLite fallback
import sqlite3  # Always available for fallback/reconnect
try:
    import psycopg2
    HAS_POSTGRES = True
except ImportError:
    HAS_POSTGRES = False


# =============================================================================
# Configuration
# =============================================================================

# .env next to this file (DATABASE_URL=postgresql://...)
ENV_PATH = Path(__file__).parent / ".env"

DATABASE_FILE = "drinks.db"  # SQLite fallback
USE_POSTGRES = True  # Set to False to force SQLite

# Checksum constants
CHECKSUM_PREFIX = "C"
CHECKSUM_SEPARATOR = ";"

# Fields of a drink record, in column order
REQUIRED_FIELDS = ('name', 'href', 'price', 'img', 'volume', 'category')
OPTIONAL_FIELDS = ('abv', 'subcategory', 'retailer')
DRINK_FIELDS = REQUIRED_FIELDS + OPTIONAL_FIELDS + ('checksum',)

_UINT32 = 0xFFFFFFFF


# =============================================================================
# Errors
# =============================================================================

class DrinkSyncError(Exception):
    """Base class for reconciliation failures."""


class ValidationError(DrinkSyncError, ValueError):
    """A drink failed validation and was never sent to the database.

    Stricter than the scrapers' own null/NaN check: blank strings in
    name, href, img, price and volume are rejected as well.
    """

    def __init__(self, fields: List[str], href: Optional[str] = None):
        self.fields = list(fields)
        self.href = href
        super().__init__(f"Invalid drink {href or '<no href>'}: bad field(s) {', '.join(self.fields)}")


class DrinkLookupError(DrinkSyncError, LookupError):
    """Reading from the database failed."""


class WriteError(DrinkSyncError):
    """Writing to the database failed; the record's transaction was rolled back."""


# =============================================================================
# Types
# =============================================================================

class DatabaseAction(Enum):
    """Outcome of reconciling a single drink."""
    INSERTED = "inserted"  # new row, subcategory product_count bumped
    UPDATED = "updated"    # href existed, price/img/checksum refreshed
    TOUCHED = "touched"    # checksum matched, only availability refreshed


@dataclass
class Drink:
    """Drink record as produced by a scraper."""
    name: str
    href: str
    price: Union[str, float, int]
    img: str
    volume: Union[str, float, int]
    category: int
    abv: Optional[float] = None
    subcategory: Optional[int] = None
    retailer: Optional[str] = None
    checksum: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Drink':
        """Build a drink from a dict (CSV row, JSON object, API body).

        Unknown keys are ignored and missing keys become None, so an
        incomplete row fails validation instead of raising KeyError.
        """
        values = {}
        for name in DRINK_FIELDS:
            value = data.get(name)
            if hasattr(value, 'item') and not isinstance(value, (str, bytes)):
                value = value.item()  # numpy scalar from pandas
            if name in ('category', 'subcategory') and isinstance(value, float) and value.is_integer():
                value = int(value)
            values[name] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SyncResult:
    """Counts for one batch. checked == inserted + updated + skipped."""
    checked: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class AlertType(Enum):
    """Types of alerts that can be raised during a sync."""
    NEW_DRINK = "new_drink"
    DRINK_UPDATED = "drink_updated"
    INVALID_DRINK = "invalid_drink"
    UNAVAILABLE = "unavailable"
    DB_ERROR = "db_error"


class AlertSeverity(Enum):
    """Severity levels for alerts."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


ALERT_SEVERITY = {
    AlertType.NEW_DRINK: AlertSeverity.INFO,
    AlertType.DRINK_UPDATED: AlertSeverity.INFO,
    AlertType.INVALID_DRINK: AlertSeverity.WARNING,
    AlertType.UNAVAILABLE: AlertSeverity.WARNING,
    AlertType.DB_ERROR: AlertSeverity.CRITICAL,
}


@dataclass
class Alert:
    """Individual alert record."""
    alert_type: AlertType
    severity: AlertSeverity
    href: Optional[str] = None
    drink_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    message: str = ""


# =============================================================================
# Checksums
# =============================================================================

def _imul(a: int, b: int) -> int:
    """32-bit wrapping multiply."""
    return (a * b) & _UINT32


def generate_checksum(text: Union[str, bytes], seed: int = 0) -> str:
    """General purpose 53-bit checksum of a string.

    Two 32-bit multiply/xor accumulators run over the UTF-16 code units of
    `text` and are cross-mixed at the end. The low 21 bits of the second
    accumulator and all 32 bits of the first form the number, so the result
    always fits in a double without precision loss.

    Examples:
    - generate_checksum("") → "C3338908027751811"
    - generate_checksum("hello", 1) → "C6922249475667011"
    """
    if isinstance(text, bytes):
        text = text.decode('utf-8')

    seed &= _UINT32
    h1 = 0xDEADBEEF ^ seed
    h2 = 0x41C6CE57 ^ seed

    data = text.encode('utf-16-le', 'surrogatepass')
    for (ch,) in struct.iter_unpack('<H', data):
        h1 = _imul(h1 ^ ch, 2654435761)
        h2 = _imul(h2 ^ ch, 1597334677)

    h1 = _imul(h1 ^ (h1 >> 16), 2246822507)
    h1 ^= _imul(h2 ^ (h2 >> 13), 3266489909)
    h2 = _imul(h2 ^ (h2 >> 16), 2246822507)
    h2 ^= _imul(h1 ^ (h1 >> 13), 3266489909)

    return f"{CHECKSUM_PREFIX}{4294967296 * (h2 & 0x1FFFFF) + h1}"


def _number_text(value) -> str:
    """Format a number like JavaScript's String(number).

    10.0 → "10", 1e21 → "1e+21", 1e-7 → "1e-7", Decimal("10.0") → "10".
    """
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, numbers.Integral):
        number = Decimal(int(value))
    else:
        number = Decimal(repr(float(value)))

    if number.is_nan():
        return "NaN"
    if number.is_infinite():
        return "Infinity" if number > 0 else "-Infinity"
    if number.is_zero():
        return "0"

    sign, digit_tuple, exponent = number.normalize().as_tuple()
    digits = ''.join(str(d) for d in digit_tuple)
    k = len(digits)
    n = k + exponent  # position of the decimal point

    if k <= n <= 21:
        text = digits + '0' * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = '0.' + '0' * -n + digits
    else:
        mantissa = digits[0] + (f".{digits[1:]}" if k > 1 else '')
        text = f"{mantissa}e{'+' if n - 1 >= 0 else '-'}{abs(n - 1)}"

    return ('-' if sign else '') + text


def _field_text(value) -> str:
    """Render a field the way checksums have always been built.

    Strings are used verbatim, numbers are formatted like JavaScript does.
    This is also the text price and volume are stored as.
    """
    if isinstance(value, (numbers.Real, Decimal)) and not isinstance(value, bool):
        return _number_text(value)
    return str(value)


def checksum_text(href, price, img) -> str:
    """'href;price;img' - the string a drink checksum is built from."""
    return CHECKSUM_SEPARATOR.join(_field_text(v) for v in (href, price, img))


def generate_drink_checksum(drink: Drink) -> str:
    """Checksum of the fields that matter for change detection (href, price, img)."""
    return generate_checksum(checksum_text(drink.href, drink.price, drink.img))


fingerprint = generate_drink_checksum


# =============================================================================
# Validation
# =============================================================================

def _is_number(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    return isinstance(value, numbers.Real) and math.isfinite(value)


def _is_integer(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def validate_drink(drink: Drink) -> List[str]:
    """Return the names of fields that are missing or badly typed."""
    invalid = []

    for name in ('name', 'href', 'img'):
        value = getattr(drink, name)
        if not isinstance(value, str) or not value.strip():
            invalid.append(name)

    # price and volume come from scrapers as either numbers or strings
    for name in ('price', 'volume'):
        value = getattr(drink, name)
        if isinstance(value, str):
            if not value.strip():
                invalid.append(name)
        elif not _is_number(value):
            invalid.append(name)

    if not _is_integer(drink.category):
        invalid.append('category')

    if drink.abv is not None and not _is_number(drink.abv):
        invalid.append('abv')
    if drink.subcategory is not None and not _is_integer(drink.subcategory):
        invalid.append('subcategory')
    if drink.retailer is not None and not isinstance(drink.retailer, str):
        invalid.append('retailer')

    return invalid


def ensure_valid(drink: Drink) -> None:
    """Raise ValidationError if the drink cannot be stored."""
    invalid = validate_drink(drink)
    if invalid:
        href = drink.href if isinstance(drink.href, str) else None
        raise ValidationError(invalid, href)


# =============================================================================
# Database Functions
# =============================================================================

# Database connection type
DbConnection = Union['psycopg2.extensions.connection', 'sqlite3.Connection'] if HAS_POSTGRES else 'sqlite3.Connection'


def get_postgres_url() -> Optional[str]:
    """Get PostgreSQL connection URL from environment (.env is loaded first)."""
    load_dotenv(ENV_PATH)
    return os.environ.get('DATABASE_URL')


def is_postgres(conn) -> bool:
    """Check if connection is PostgreSQL."""
    return HAS_POSTGRES and hasattr(conn, 'info')


def db_placeholder(conn) -> str:
    """Return the correct placeholder for the database type."""
    return '%s' if is_postgres(conn) else '?'


def utc_now() -> str:
    """Current UTC time as an ISO string (stored in last_available)."""
    return datetime.now(timezone.utc).isoformat()


def _rollback(conn) -> None:
    try:
        conn.rollback()
    except Exception as e:
        print(f"  Rollback failed: {e}", flush=True)


def _row_to_dict(cursor, row) -> Dict[str, Any]:
    columns = [col[0] for col in cursor.description]
    return dict(zip(columns, row))


def init_database(db_path: str = None) -> DbConnection:
    """
    Initialize the subcategories and products tables.
    Uses PostgreSQL if available, falls back to SQLite.
    """
    postgres_url = get_postgres_url()
    if USE_POSTGRES and HAS_POSTGRES and postgres_url:
        return init_postgres_database(postgres_url)
    else:
        if not HAS_POSTGRES:
            print("  (psycopg2 not installed, using SQLite)")
        elif not postgres_url:
            print("  (DATABASE_URL not set, using SQLite)")
        return init_sqlite_database(db_path or DATABASE_FILE)


def init_postgres_database(db_url: str):
    """Initialize PostgreSQL database with schema."""
    conn = psycopg2.connect(db_url)
    cursor = conn.cursor()

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS subcategories (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            category_id INTEGER NOT NULL,
            product_count INTEGER NOT NULL DEFAULT 0
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS products (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            href TEXT NOT NULL UNIQUE,
            price TEXT NOT NULL,
            img TEXT NOT NULL,
            volume TEXT NOT NULL,
            category_id INTEGER NOT NULL,
            subcategory_id INTEGER REFERENCES subcategories(id),
            abv REAL,
            retailer TEXT,
            checksum TEXT,
            currently_available BOOLEAN NOT NULL DEFAULT TRUE,
            last_available TIMESTAMP
        )
    ''')

    cursor.execute('CREATE INDEX IF NOT EXISTS products_checksum_idx ON products (checksum)')

    conn.commit()
    print("  PostgreSQL database initialized")
    return conn


def init_sqlite_database(db_path: str, check_same_thread: bool = True):
    """Initialize SQLite database with schema (fallback).

    Pass check_same_thread=False when the connection is shared with worker
    threads (the API); callers then serialize access themselves.
    """
    conn = sqlite3.connect(db_path, check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    cursor = conn.cursor()

    cursor.execute('''CREATE TABLE IF NOT EXISTS subcategories (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL UNIQUE, category_id INTEGER NOT NULL, product_count INTEGER NOT NULL DEFAULT 0)''')
    cursor.execute('''CREATE TABLE IF NOT EXISTS products (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL, href TEXT NOT NULL UNIQUE, price TEXT NOT NULL, img TEXT NOT NULL, volume TEXT NOT NULL, category_id INTEGER NOT NULL, subcategory_id INTEGER REFERENCES subcategories(id), abv REAL, retailer TEXT, checksum TEXT, currently_available INTEGER NOT NULL DEFAULT 1, last_available TEXT)''')
    cursor.execute('CREATE INDEX IF NOT EXISTS products_checksum_idx ON products (checksum)')

    conn.commit()
    print(f"  SQLite database initialized: {db_path}")
    return conn


def construct_category_map(conn) -> Dict[str, Tuple[int, int]]:
    """Map subcategory name → (subcategory_id, category_id).

    Scrapers usually only know the subcategory name; the category is
    resolved from the subcategories table.
    """
    try:
        cursor = conn.cursor()
        cursor.execute('SELECT id, name, category_id FROM subcategories')
        rows = cursor.fetchall()
    except Exception as e:
        _rollback(conn)
        raise DrinkLookupError(f"Could not read subcategories: {e}") from e
    return {row[1]: (row[0], row[2]) for row in rows}


def resolve_subcategory(data: Dict[str, Any], category_map: Dict[str, Tuple[int, int]]) -> Dict[str, Any]:
    """Fill subcategory/category ids from a 'subcategory_name' key, if known."""
    resolved = dict(data)
    name = resolved.get('subcategory_name')
    if name in category_map:
        resolved['subcategory'], resolved['category'] = category_map[name]
    return resolved


def get_drink_by_checksum(conn, checksum: str) -> Optional[Dict[str, Any]]:
    """Return the stored drink with a matching checksum, or None."""
    ph = db_placeholder(conn)
    try:
        cursor = conn.cursor()
        cursor.execute(f'SELECT * FROM products WHERE checksum = {ph} LIMIT 1', (checksum,))
        row = cursor.fetchone()
    except Exception as e:
        _rollback(conn)
        raise DrinkLookupError(f"Could not look up checksum {checksum}: {e}") from e
    return _row_to_dict(cursor, row) if row else None


find_by_fingerprint = get_drink_by_checksum


def insert_drink(conn, drink: Drink) -> DatabaseAction:
    """
    Insert or update a drink.

    - Checksum already stored → availability refreshed, TOUCHED
    - href already stored (checksum changed) → price/img/checksum updated, UPDATED
    - href not stored → row inserted, subcategory product_count + 1, INSERTED

    Each call is its own transaction. Raises ValidationError before any
    database access, DrinkLookupError if the checksum lookup fails and
    WriteError (after rolling back) if any write fails.
    """
    ensure_valid(drink)

    drink.checksum = generate_drink_checksum(drink)
    stored = get_drink_by_checksum(conn, drink.checksum)

    ph = db_placeholder(conn)
    now = utc_now()
    # price and volume are stored as the text they are fingerprinted with
    price = _field_text(drink.price)
    volume = _field_text(drink.volume)
    abv = float(drink.abv) if drink.abv is not None else None

    try:
        cursor = conn.cursor()
        if stored:
            cursor.execute(
                f'''UPDATE products SET last_available = {ph}, currently_available = {ph}
                   WHERE checksum = {ph}''',
                (now, True, drink.checksum)
            )
            conn.commit()
            return DatabaseAction.TOUCHED

        cursor.execute(
            f'''INSERT INTO products
               (name, href, price, img, volume, category_id, subcategory_id, abv, retailer,
                checksum, currently_available, last_available)
               VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph}, {ph})
               ON CONFLICT (href) DO NOTHING''',
            (drink.name, drink.href, price, drink.img, volume,
             drink.category, drink.subcategory, abv, drink.retailer,
             drink.checksum, True, now)
        )

        if cursor.rowcount == 1:
            # Counter and row commit together
            if drink.subcategory is not None:
                cursor.execute(
                    f'UPDATE subcategories SET product_count = product_count + 1 WHERE id = {ph}',
                    (drink.subcategory,)
                )
            conn.commit()
            return DatabaseAction.INSERTED

        cursor.execute(
            f'''UPDATE products SET price = {ph}, img = {ph}, checksum = {ph},
               last_available = {ph}, currently_available = {ph}
               WHERE href = {ph}''',
            (price, drink.img, drink.checksum, now, True, drink.href)
        )
        conn.commit()
        return DatabaseAction.UPDATED

    except Exception as e:
        _rollback(conn)
        raise WriteError(f"Could not write drink {drink.href}: {e}") from e


reconcile_one = insert_drink


def insert_drinks(conn, drinks: Iterable[Union[Drink, Dict[str, Any]]],
                  stats: Optional['SyncStats'] = None,
                  progress: Optional['ProgressTracker'] = None) -> SyncResult:
    """
    Run insert_drink for every drink, in order, and count the outcomes.

    Touched, invalid and failed drinks all count as skipped; a failing drink
    never stops the batch. `conn` may be a DatabaseConnection, in which case
    each drink is retried after a reconnect on connection loss.
    """
    result = SyncResult()

    for item in drinks:
        result.checked += 1
        drink = None
        try:
            drink = item if isinstance(item, Drink) else Drink.from_dict(item)
            if isinstance(conn, DatabaseConnection):
                action = conn.execute_with_retry(insert_drink, drink)
            else:
                action = insert_drink(conn, drink)
        except ValidationError as e:
            result.skipped += 1
            if stats:
                stats.record_invalid(e.href, _drink_name(drink), e.fields)
            if progress:
                progress.update(success=False, item_name=e.href or "", status="SKIPPED-INVALID")
            continue
        except Exception as e:
            result.skipped += 1
            href = drink.href if drink else None
            if stats:
                stats.record_failure(href, type(e).__name__, str(e))
            if progress:
                progress.update(success=False, item_name=str(href or ""), status="ERROR")
            continue

        if action == DatabaseAction.INSERTED:
            result.inserted += 1
        elif action == DatabaseAction.UPDATED:
            result.updated += 1
        else:
            result.skipped += 1

        if stats:
            stats.record_action(action, drink)
        if progress:
            progress.update(success=True, item_name=drink.href, status=action.value.upper())

    return result


reconcile_all = insert_drinks


def _drink_name(drink: Optional[Drink]) -> Optional[str]:
    if drink is None or not isinstance(drink.name, str):
        return None
    return drink.name


def mark_unavailable(conn, sync_start_time: str, retailer: Optional[str] = None,
                     stats: Optional['SyncStats'] = None) -> List[Dict]:
    """Mark drinks not seen in this sync as no longer available.

    Call this after a FULL sync (not --max-records) so drinks removed from
    the retailer's site stop showing as available.

    Returns list of drink info for reporting.
    """
    cursor = conn.cursor()
    ph = db_placeholder(conn)

    where = f'''currently_available = {ph}
           AND (last_available IS NULL OR last_available < {ph})'''
    params: Tuple = (True, sync_start_time)
    if retailer:
        where += f' AND retailer = {ph}'
        params += (retailer,)

    cursor.execute(f'SELECT href, name, last_available FROM products WHERE {where}', params)
    rows = cursor.fetchall()

    unavailable = []
    for row in rows:
        unavailable.append({
            'href': row[0],
            'name': row[1],
            'last_available': str(row[2]) if row[2] else None
        })

    if not unavailable:
        return []

    cursor.execute(f'UPDATE products SET currently_available = {ph} WHERE {where}', (False,) + params)
    conn.commit()

    if stats:
        for d in unavailable:
            stats.record_unavailable(d['href'], d['name'], d['last_available'])

    print(f"  Marked {len(unavailable)} drinks as unavailable", flush=True)
    return unavailable


# =============================================================================
# Database Connection Wrapper (auto-reconnect)
# =============================================================================

class DatabaseConnection:
    """
    Drink store connection that reconnects after connection loss.

    insert_drinks, mark_unavailable and the lookups run through
    execute_with_retry. A drink whose lookup or write failed because the
    connection dropped (DrinkLookupError / WriteError caused by a
    connection error) is retried once the connection is re-established;
    validation failures and other database errors are raised unchanged.
    """

    def __init__(self, db_path: str = None, check_same_thread: bool = True):
        self.db_path = db_path or DATABASE_FILE
        self.check_same_thread = check_same_thread
        self.postgres_url = None
        self._conn = None
        self._is_postgres = False
        self.reconnects = 0

    def connect(self):
        """Open the store and make sure the drink tables exist."""
        self.postgres_url = get_postgres_url()
        self._is_postgres = bool(USE_POSTGRES and HAS_POSTGRES and self.postgres_url)
        self._conn = self._open()
        return self._conn

    def _open(self):
        if self._is_postgres:
            return init_postgres_database(self.postgres_url)
        return init_sqlite_database(self.db_path, check_same_thread=self.check_same_thread)

    def reconnect(self):
        """Reconnect to database after connection loss."""
        print("  Reconnecting to database...", flush=True)
        self.close()
        self._conn = self._open()
        self.reconnects += 1
        return self._conn

    def is_connection_error(self, error: BaseException) -> bool:
        """Check if a failure means the connection is gone.

        Sync errors are judged by the database error that caused them.
        """
        if isinstance(error, ValidationError):
            return False
        if isinstance(error, DrinkSyncError) and error.__cause__ is not None:
            error = error.__cause__
        if HAS_POSTGRES and isinstance(error, psycopg2.InterfaceError):
            return True

        error_str = str(error).lower()
        connection_errors = [
            'connection already closed',
            'connection is closed',
            'server closed the connection',
            'could not receive data',
            'ssl syscall error',
            'operation timed out',
            'connection refused',
            'connection reset',
            'broken pipe',
            'network is unreachable',
            'cannot operate on a closed database',
        ]
        return any(err in error_str for err in connection_errors)

    def execute_with_retry(self, func, *args, max_retries: int = 3, **kwargs):
        """
        Run a drink store function with automatic reconnection on failure.

        Args:
            func: Function taking the raw connection first
                  (insert_drink, get_drink_by_checksum, mark_unavailable, ...)
            *args: Additional arguments to pass to func
            max_retries: Maximum number of attempts
            **kwargs: Keyword arguments to pass to func

        Returns:
            Result of func
        """
        for attempt in range(max_retries):
            try:
                return func(self._conn, *args, **kwargs)
            except Exception as e:
                if self.is_connection_error(e) and attempt < max_retries - 1:
                    print(f"  Database error: {e}", flush=True)
                    self.reconnect()
                    time.sleep(1)  # Brief pause before retry
                else:
                    raise

    @property
    def conn(self):
        """Get the underlying connection (for direct access when needed)."""
        return self._conn

    def close(self):
        """Close the database connection."""
        if self._conn:
            try:
                self._conn.close()
            except Exception as e:
                print(f"  Error closing database: {e}", flush=True)
            self._conn = None


# =============================================================================
# Progress Tracking
# =============================================================================

class ProgressTracker:
    """Track and display progress with ETA."""

    def __init__(self, total: int):
        self.total = total
        self.completed = 0
        self.failed = 0
        self.skipped = 0
        self.start_time = time.time()

    def update(self, success: bool = True, item_name: str = "", status: str = None):
        """Update progress and print status."""
        self.completed += 1
        if status and status.startswith("SKIPPED"):
            self.skipped += 1
        elif not success:
            self.failed += 1

        elapsed = time.time() - self.start_time
        rate = self.completed / elapsed if elapsed > 0 else 0
        remaining = self.total - self.completed
        eta_seconds = remaining / rate if rate > 0 else 0
        eta = str(timedelta(seconds=int(eta_seconds)))

        pct = (self.completed / self.total) * 100 if self.total else 100.0
        if status is None:
            status = "OK" if success else "ERROR"
        timestamp = datetime.now().strftime("%H:%M:%S")

        print(f"[{timestamp}] [{self.completed}/{self.total}] ({pct:5.1f}%) "
              f"{item_name[-50:]:<50} [{status}] "
              f"| {rate:.1f}/s | ETA: {eta}", flush=True)

    def summary(self):
        """Print final summary."""
        elapsed = time.time() - self.start_time
        elapsed_str = str(timedelta(seconds=int(elapsed)))
        successful = self.completed - self.failed - self.skipped
        print(f"\n{'='*60}")
        print(f"Completed: {successful}/{self.total} "
              f"({self.skipped} skipped, {self.failed} errors) in {elapsed_str}")
        print(f"{'='*60}", flush=True)


# =============================================================================
# Statistics Tracker
# =============================================================================

class SyncStats:
    """
    Track sync statistics and alerts for reporting.
    Collects outcomes during a batch, then prints a report at the end.
    """

    def __init__(self, retailer: Optional[str] = None, is_full_sync: bool = True,
                 max_records_limit: Optional[int] = None):
        self.retailer = retailer
        self.is_full_sync = is_full_sync
        self.max_records_limit = max_records_limit
        self.started_at = datetime.now()
        self.completed_at: Optional[datetime] = None

        # Counters
        self.drinks_loaded = 0
        self.drinks_inserted = 0
        self.drinks_updated = 0
        self.drinks_touched = 0
        self.drinks_invalid = 0
        self.drinks_failed = 0
        self.drinks_unavailable = 0

        self.alerts: List[Alert] = []

    def record_action(self, action: DatabaseAction, drink: Drink):
        """Record the outcome of a successful insert_drink call."""
        if action == DatabaseAction.INSERTED:
            self.drinks_inserted += 1
            self.alerts.append(Alert(
                alert_type=AlertType.NEW_DRINK,
                severity=ALERT_SEVERITY[AlertType.NEW_DRINK],
                href=drink.href,
                drink_name=drink.name,
                new_value=drink.checksum,
                message=f"New drink: {drink.name}"
            ))
        elif action == DatabaseAction.UPDATED:
            self.drinks_updated += 1
            self.alerts.append(Alert(
                alert_type=AlertType.DRINK_UPDATED,
                severity=ALERT_SEVERITY[AlertType.DRINK_UPDATED],
                href=drink.href,
                drink_name=drink.name,
                new_value=drink.checksum,
                message=f"Updated: {drink.name} (price {drink.price})"
            ))
        else:
            self.drinks_touched += 1

    def record_invalid(self, href: Optional[str], name: Optional[str], fields: List[str]):
        """Record a drink rejected by validation."""
        self.drinks_invalid += 1
        self.alerts.append(Alert(
            alert_type=AlertType.INVALID_DRINK,
            severity=ALERT_SEVERITY[AlertType.INVALID_DRINK],
            href=href,
            drink_name=name,
            message=f"Invalid field(s): {', '.join(fields)}"
        ))

    def record_failure(self, href: Optional[str], error_type: str, error_msg: str):
        """Record a database failure for a drink."""
        self.drinks_failed += 1
        self.alerts.append(Alert(
            alert_type=AlertType.DB_ERROR,
            severity=ALERT_SEVERITY[AlertType.DB_ERROR],
            href=href,
            message=f"[{error_type}] {href or '<unknown>'}: {error_msg}"
        ))

    def record_unavailable(self, href: str, name: Optional[str], last_available: Optional[str] = None):
        """Record a drink marked as no longer available."""
        self.drinks_unavailable += 1
        self.alerts.append(Alert(
            alert_type=AlertType.UNAVAILABLE,
            severity=ALERT_SEVERITY[AlertType.UNAVAILABLE],
            href=href,
            drink_name=name,
            old_value=last_available,
            message=f"Unavailable: {name} (last available: {last_available or 'unknown'})"
        ))

    def get_alert_counts(self) -> Dict[str, int]:
        """Get counts of each alert type."""
        counts: Dict[str, int] = {}
        for alert in self.alerts:
            key = alert.alert_type.value
            counts[key] = counts.get(key, 0) + 1
        return counts

    def get_alerts_by_type(self, alert_type: AlertType) -> List[Alert]:
        """Get all alerts of a specific type."""
        return [a for a in self.alerts if a.alert_type == alert_type]

    def print_report(self, result: Optional[SyncResult] = None):
        """Print the final sync statistics report to console."""
        self.completed_at = datetime.now()
        duration = self.completed_at - self.started_at
        duration_str = str(timedelta(seconds=int(duration.total_seconds())))

        print("\n" + "=" * 70)
        print("SYNC STATISTICS REPORT")
        print("=" * 70)
        print(f"\nRun Duration: {duration_str}")
        print(f"Retailer: {self.retailer or 'any'}")
        print(f"Full Sync: {'Yes' if self.is_full_sync else 'No'}")
        if self.max_records_limit:
            print(f"Max Records Limit: {self.max_records_limit}")

        if result:
            print("\n--- BATCH ---")
            print(f"  Checked:       {result.checked:>6}")
            print(f"  Inserted:      {result.inserted:>6}")
            print(f"  Updated:       {result.updated:>6}")
            print(f"  Skipped:       {result.skipped:>6}")

        print("\n--- DRINKS ---")
        print(f"  Loaded:        {self.drinks_loaded:>6}")
        print(f"  Unchanged:     {self.drinks_touched:>6}")
        print(f"  Invalid:       {self.drinks_invalid:>6}")
        print(f"  Failed:        {self.drinks_failed:>6}")
        print(f"  Unavailable:   {self.drinks_unavailable:>6}")

        alert_counts = self.get_alert_counts()
        if alert_counts:
            print("\n--- ALERTS ---")
            for alert_type, count in sorted(alert_counts.items()):
                print(f"  {alert_type:<25} {count:>6}")

        invalid = self.get_alerts_by_type(AlertType.INVALID_DRINK)
        if invalid:
            print("\n--- INVALID DRINKS ---")
            for alert in invalid[:10]:
                href = (alert.href or "N/A")[-45:]
                print(f"  {href:<45} {alert.message}")
            if len(invalid) > 10:
                print(f"  ... ({len(invalid)} total)")

        unavailable = self.get_alerts_by_type(AlertType.UNAVAILABLE)
        if unavailable:
            print("\n--- NO LONGER AVAILABLE ---")
            for alert in unavailable[:10]:
                name = (alert.drink_name or "Unknown")[:40]
                print(f"  {name:<40} Last available: {alert.old_value or 'unknown'}")
            if len(unavailable) > 10:
                print(f"  ... ({len(unavailable)} total)")

        failures = self.get_alerts_by_type(AlertType.DB_ERROR)
        if failures:
            print("\n--- FAILURES ---")
            for alert in failures[:10]:
                print(f"  {alert.message}")
            if len(failures) > 10:
                print(f"  ... ({len(failures)} total)")

        print("\n" + "=" * 70, flush=True)


# =============================================================================
# Input
# =============================================================================

def load_drinks(path: str) -> List[Dict[str, Any]]:
    """Load scraped drinks from a CSV or JSON file as a list of dicts."""
    if path.lower().endswith('.json'):
        df = pd.read_json(path)
    else:
        df = pd.read_csv(path)

    # NaN → None so empty cells fail validation instead of hashing as "nan"
    df = df.astype(object).where(pd.notnull(df), None)
    return df.to_dict('records')


# =============================================================================
# Main
# =============================================================================

def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Sync scraped drinks into the products table'
    )
    parser.add_argument('--input', required=True,
                        help='CSV or JSON file of scraped drinks')
    parser.add_argument('--db-path', default=DATABASE_FILE,
                        help='SQLite database file (used when DATABASE_URL is not set)')
    parser.add_argument('--retailer', default=None,
                        help='Retailer name for drinks that do not carry one')
    parser.add_argument('--max-records', type=int, default=None,
                        help='Maximum drinks to sync (for testing)')
    parser.add_argument('--mark-unavailable', action='store_true',
                        help='After a full sync, mark drinks not seen as unavailable')
    args = parser.parse_args()

    print("=" * 60, flush=True)
    print("Drink Product Synchronizer", flush=True)
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", flush=True)
    print("=" * 60, flush=True)

    if not os.path.exists(args.input):
        print(f"Input file not found: {args.input}", flush=True)
        sys.exit(1)

    records = load_drinks(args.input)
    if args.max_records:
        records = records[:args.max_records]
        print(f"Limited to {args.max_records} drinks for testing", flush=True)
    print(f"Loaded {len(records)} drinks from {args.input}", flush=True)

    print(f"\nInitializing database: {args.db_path}")
    db = DatabaseConnection(args.db_path)
    db.connect()
    print("Database initialized")

    category_map = db.execute_with_retry(construct_category_map)
    records = [resolve_subcategory(r, category_map) for r in records]
    if args.retailer:
        for r in records:
            if not r.get('retailer'):
                r['retailer'] = args.retailer

    stats = SyncStats(
        retailer=args.retailer,
        is_full_sync=(args.max_records is None),
        max_records_limit=args.max_records
    )
    stats.drinks_loaded = len(records)

    # last_available of every drink seen in this run will be >= this
    sync_start_time = utc_now()

    print("\n" + "=" * 60, flush=True)
    print("Syncing drinks", flush=True)
    print("=" * 60, flush=True)

    progress = ProgressTracker(len(records))
    result = insert_drinks(db, records, stats, progress)
    progress.summary()

    if args.mark_unavailable:
        if args.max_records:
            print("\nSkipping availability sweep (--max-records set)", flush=True)
        else:
            print("\nChecking for unavailable drinks...", flush=True)
            db.execute_with_retry(mark_unavailable, sync_start_time, args.retailer, stats)

    stats.print_report(result)
    db.close()


if __name__ == "__main__":
    main()
