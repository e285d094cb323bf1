"""
Pytest fixtures and test infrastructure for drink sync database tests.
"""
import pytest
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from drink_sync import Drink, db_placeholder, init_sqlite_database  # noqa: E402


# (id, name, category_id)
TEST_SUBCATEGORIES = [
    (1, 'Lager', 1),
    (2, 'IPA', 1),
    (3, 'Red wine', 2),
]


@pytest.fixture
def sqlite_conn():
    """In-memory SQLite database for isolated testing.

    Not bound to the creating thread: API routes run on FastAPI's threadpool.
    """
    conn = init_sqlite_database(':memory:', check_same_thread=False)
    seed_subcategories(conn)
    yield conn
    conn.close()


@pytest.fixture
def postgres_conn():
    """Test PostgreSQL connection (requires TEST_DATABASE_URL env var)."""
    url = os.environ.get('TEST_DATABASE_URL')
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    from drink_sync import init_postgres_database
    conn = init_postgres_database(url)
    cursor = conn.cursor()
    cursor.execute('TRUNCATE products, subcategories RESTART IDENTITY CASCADE')
    conn.commit()
    seed_subcategories(conn)
    yield conn
    conn.rollback()
    cursor = conn.cursor()
    cursor.execute('TRUNCATE products, subcategories RESTART IDENTITY CASCADE')
    conn.commit()
    conn.close()


def seed_subcategories(conn):
    """Insert the test subcategories with product_count = 0."""
    cursor = conn.cursor()
    ph = db_placeholder(conn)
    for row in TEST_SUBCATEGORIES:
        cursor.execute(
            f'INSERT INTO subcategories (id, name, category_id, product_count) VALUES ({ph}, {ph}, {ph}, 0)',
            row
        )
    conn.commit()


# Helper functions for tests
def make_drink(**overrides) -> Drink:
    """Helper to build a valid drink; keyword arguments override fields."""
    values = {
        'name': 'Beer',
        'href': '/a',
        'price': 10,
        'img': 'x.png',
        'volume': 330,
        'category': 1,
        'subcategory': 2,
    }
    values.update(overrides)
    return Drink(**values)


def get_product(conn, href):
    """Helper to fetch a product row as a dict (None if missing)."""
    cursor = conn.cursor()
    ph = db_placeholder(conn)
    cursor.execute(f'SELECT * FROM products WHERE href = {ph}', (href,))
    row = cursor.fetchone()
    if row is None:
        return None
    return dict(zip([col[0] for col in cursor.description], row))


def count_products(conn):
    cursor = conn.cursor()
    cursor.execute('SELECT COUNT(*) FROM products')
    return cursor.fetchone()[0]


def get_product_count(conn, subcategory_id):
    """Helper to read subcategories.product_count."""
    cursor = conn.cursor()
    ph = db_placeholder(conn)
    cursor.execute(f'SELECT product_count FROM subcategories WHERE id = {ph}', (subcategory_id,))
    return cursor.fetchone()[0]
