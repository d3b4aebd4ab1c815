"""Tests for the append-only query log."""

from dashgen.querylog import NullQueryLog, SqliteQueryLog
from dashgen.types import QueryLogEntry


def test_sqlite_log_appends_entries(tmp_path):
    log = SqliteQueryLog(path=str(tmp_path / "queries.db"))

    log.log(QueryLogEntry(user_id="user-1", query="Spending?", response_type="pie_chart", title="Spending"))
    log.log(QueryLogEntry(user_id="user-2", query="Rome", response_type="timeline", title="Rome"))
    log.log(QueryLogEntry(user_id="user-1", query="Trends?", response_type="line_chart", title="Trends"))

    mine = log.list_entries(user_id="user-1")
    assert [entry.query for entry in mine] == ["Trends?", "Spending?"]
    assert mine[0].timestamp.tzinfo is not None
    assert len(log.list_entries()) == 3


def test_sqlite_log_survives_reopen(tmp_path):
    path = str(tmp_path / "queries.db")
    SqliteQueryLog(path=path).log(QueryLogEntry(user_id="u", query="q", response_type="text"))

    assert len(SqliteQueryLog(path=path).list_entries()) == 1


def test_null_log_accepts_entries():
    NullQueryLog().log(QueryLogEntry(user_id="u", query="q", response_type="text"))
