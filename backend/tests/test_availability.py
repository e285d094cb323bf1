"""
Tests for mark_unavailable (drinks not seen in a full sync).
"""
import time

from conftest import make_drink, get_product
from drink_sync import SyncStats, insert_drink, mark_unavailable, utc_now


def start_sync():
    """Sync start time strictly after everything written so far."""
    time.sleep(0.01)
    start = utc_now()
    time.sleep(0.01)
    return start


class TestMarkUnavailable:
    """Drinks not touched since the sync started become unavailable."""

    def test_unseen_drink_marked(self, sqlite_conn):
        insert_drink(sqlite_conn, make_drink(href='/seen'))
        insert_drink(sqlite_conn, make_drink(href='/gone'))

        start = start_sync()
        insert_drink(sqlite_conn, make_drink(href='/seen'))  # touched in this sync

        unavailable = mark_unavailable(sqlite_conn, start)

        assert [d['href'] for d in unavailable] == ['/gone']
        assert get_product(sqlite_conn, '/gone')['currently_available'] == 0
        assert get_product(sqlite_conn, '/seen')['currently_available'] == 1

    def test_nothing_to_mark(self, sqlite_conn):
        start = start_sync()
        insert_drink(sqlite_conn, make_drink())
        assert mark_unavailable(sqlite_conn, start) == []

    def test_already_unavailable_not_reported_again(self, sqlite_conn):
        insert_drink(sqlite_conn, make_drink(href='/gone'))
        start = start_sync()

        assert len(mark_unavailable(sqlite_conn, start)) == 1
        assert mark_unavailable(sqlite_conn, start) == []

    def test_retailer_filter(self, sqlite_conn):
        """Only drinks of the synced retailer are swept."""
        insert_drink(sqlite_conn, make_drink(href='/alko', retailer='Alko'))
        insert_drink(sqlite_conn, make_drink(href='/other', retailer='Other'))
        start = start_sync()

        unavailable = mark_unavailable(sqlite_conn, start, retailer='Alko')

        assert [d['href'] for d in unavailable] == ['/alko']
        assert get_product(sqlite_conn, '/other')['currently_available'] == 1

    def test_reappearing_drink_available_again(self, sqlite_conn):
        insert_drink(sqlite_conn, make_drink())
        mark_unavailable(sqlite_conn, start_sync())

        insert_drink(sqlite_conn, make_drink())
        assert get_product(sqlite_conn, '/a')['currently_available'] == 1

    def test_stats_recorded(self, sqlite_conn, capsys):
        insert_drink(sqlite_conn, make_drink())
        stats = SyncStats()

        mark_unavailable(sqlite_conn, start_sync(), stats=stats)

        assert stats.drinks_unavailable == 1
        assert stats.alerts[0].drink_name == 'Beer'
        assert 'Marked 1 drinks as unavailable' in capsys.readouterr().out
