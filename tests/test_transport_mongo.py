"""Tests for MongoStreamReader, QueryWindow and MongoConnection."""

from datetime import datetime
import logging
import threading
import time
from typing import Any
from unittest.mock import Mock

from conftest import daily_headers, january_1992_weekdays
import mongomock
import pytest

from subscription_transport.errors import (
    ConfigurationError,
    MissingHeaderError,
    UnsupportedResolutionError,
)
from subscription_transport.subscription import Resolution, TransportMedium
from subscription_transport.transport.mongo import (
    REQUIRED_HEADERS,
    SCALE_FACTOR,
    MongoConnection,
    MongoStreamReader,
    QueryWindow,
    render_daily_bar,
)


def _read_all(reader: MongoStreamReader) -> list[str]:
    lines = []
    while not reader.end_of_stream:
        lines.append(reader.read_line())
    return lines


def test_query_window_from_headers() -> None:
    """Test QueryWindow derives code, collection and period from headers."""
    window = QueryWindow.from_headers(daily_headers())

    assert window.code == "000001.SZ"
    assert window.collection == "SZ_TRADEBAR_DAILY"
    assert window.resolution is Resolution.DAILY
    assert window.period_start == datetime(1992, 1, 2)
    assert window.period_finish == datetime(1992, 2, 9)
    assert window.current_date == "19920101 00:00:00"
    assert window.to_filter() == {
        "code": "000001.SZ",
        "trade_date": {"$gte": datetime(1992, 1, 2), "$lte": datetime(1992, 2, 9)},
    }


def test_query_window_accepts_mapping() -> None:
    """Test QueryWindow accepts headers as a dict."""
    window = QueryWindow.from_headers(dict(daily_headers(ticker="600000", market="sh")))
    assert window.code == "600000.SH"
    assert window.collection == "SH_TRADEBAR_DAILY"


@pytest.mark.parametrize("key", REQUIRED_HEADERS)
def test_query_window_missing_header(key: str) -> None:
    """Test that every required header is enforced."""
    headers = [(k, v) for k, v in daily_headers() if k != key]

    with pytest.raises(MissingHeaderError, match=key):
        QueryWindow.from_headers(headers)


@pytest.mark.parametrize("resolution", ["Tick", "Second", "Minute", "Hour"])
def test_query_window_rejects_intraday_resolutions(resolution: str) -> None:
    """Test that only daily resolution is served."""
    with pytest.raises(UnsupportedResolutionError, match=f"'{resolution}' not supported"):
        QueryWindow.from_headers(daily_headers(resolution=resolution))


def test_query_window_rejects_bad_dates() -> None:
    """Test that period bounds must be yyyyMMdd dates."""
    with pytest.raises(ConfigurationError, match="PeriodStart"):
        QueryWindow.from_headers(daily_headers(PeriodStart="1992-01-02"))


def test_render_daily_bar_scales_prices() -> None:
    """Test that prices are scaled by 10000 and volume is written as stored."""
    document = {
        "trade_date": datetime(1992, 1, 2),
        "open": 9.38,
        "high": 9.63,
        "low": 9.13,
        "close": 9.48,
        "volume": 123456,
    }
    line = render_daily_bar(document)
    day, open_, high, low, close, volume = line.split(",")

    assert day == "19920102 00:00"
    assert float(open_) == 9.38 * SCALE_FACTOR
    assert float(high) == 9.63 * SCALE_FACTOR
    assert float(low) == 9.13 * SCALE_FACTOR
    assert float(close) == 9.48 * SCALE_FACTOR
    assert volume == "123456"


def test_render_daily_bar_integral_values() -> None:
    """Test that integral floats are written without a fractional part."""
    document = {
        "trade_date": "1992-01-03T00:00:00",
        "open": 10.0,
        "high": 11.5,
        "low": 9.0,
        "close": 10.0,
        "volume": 1500.0,
    }
    assert render_daily_bar(document) == "19920103 00:00,100000,115000,90000,100000,1500"


def test_reader_reads_window_in_date_order(mongo_connection: MongoConnection) -> None:
    """Test the 000001.SZ scenario: 22 bars, ascending, inside the window."""
    reader = MongoStreamReader.create(
        "localhost", 27017, daily_headers(), connection=mongo_connection
    )
    lines = _read_all(reader)

    assert len(lines) == 22
    days = [line.split(" ")[0] for line in lines]
    assert days == [day.strftime("%Y%m%d") for day in january_1992_weekdays()]
    assert days == sorted(days)
    assert all("19920102" <= day <= "19920209" for day in days)
    assert lines[0] == render_daily_bar(
        {
            "trade_date": datetime(1992, 1, 2),
            "open": 9.38,
            "high": 9.38 + 0.25,
            "low": 9.38 - 0.25,
            "close": 9.38 + 0.1,
            "volume": 1002,
        }
    )


def test_reader_window_is_inclusive(mongo_client: mongomock.MongoClient) -> None:
    """Test that bars on PeriodStart and PeriodFinish are both included."""
    connection = MongoConnection(client_factory=lambda *a, **k: mongo_client)
    reader = MongoStreamReader.create(
        "localhost",
        27017,
        daily_headers(PeriodStart="19911231", PeriodFinish="19920210"),
        connection=connection,
    )
    days = [line.split(" ")[0] for line in _read_all(reader)]

    assert days[0] == "19911231"
    assert days[-1] == "19920210"
    assert len(days) == 24


def test_reader_end_of_stream_is_idempotent(mongo_connection: MongoConnection) -> None:
    """Test that end_of_stream does not consume lines."""
    reader = MongoStreamReader.create(
        "localhost", 27017, daily_headers(), connection=mongo_connection
    )

    for _ in range(5):
        assert reader.end_of_stream is False
    first = reader.read_line()
    assert first.startswith("19920102 ")

    remaining = _read_all(reader)
    assert len(remaining) == 21
    for _ in range(5):
        assert reader.end_of_stream is True


def test_reader_empty_query(mongo_connection: MongoConnection) -> None:
    """Test that a query matching nothing is at end of stream immediately."""
    reader = MongoStreamReader.create(
        "localhost",
        27017,
        daily_headers(ticker="999999"),
        connection=mongo_connection,
    )
    assert reader.end_of_stream is True
    with pytest.raises(EOFError):
        reader.read_line()


def test_reader_properties(mongo_connection: MongoConnection) -> None:
    """Test the reader's contract properties."""
    with MongoStreamReader.create(
        "localhost", 27017, daily_headers(), connection=mongo_connection
    ) as reader:
        assert reader.transport_medium is TransportMedium.MONGODB
        assert reader.should_be_rate_limited is False
        assert len(list(reader)) == 22

    # close() leaves the shared client usable.
    again = MongoStreamReader.create(
        "localhost", 27017, daily_headers(), connection=mongo_connection
    )
    assert again.end_of_stream is False


def test_reader_not_started_before_fetch(mongo_client: mongomock.MongoClient) -> None:
    """Test that constructing the reader alone runs no query."""
    reader = MongoStreamReader(mongo_client["quant"], QueryWindow.from_headers(daily_headers()))
    assert reader.end_of_stream is True

    reader.fetch_data()
    assert reader.end_of_stream is False


def test_create_rejects_resolution_before_connecting() -> None:
    """Test that an unsupported resolution fails before any connection is made."""
    factory = Mock()
    connection = MongoConnection(client_factory=factory)

    with pytest.raises(UnsupportedResolutionError):
        MongoStreamReader.create(
            "localhost", 27017, daily_headers(resolution="Minute"), connection=connection
        )

    factory.assert_not_called()


def test_create_logs_and_reraises_connection_failure(caplog: pytest.LogCaptureFixture) -> None:
    """Test that a connection failure is logged and propagated unchanged."""
    failure = ConnectionError("server unreachable")
    client = Mock()
    client.admin.command.side_effect = failure
    connection = MongoConnection(client_factory=Mock(return_value=client))

    with caplog.at_level(logging.ERROR), pytest.raises(ConnectionError) as exc_info:
        MongoStreamReader.create("db.example", 27018, daily_headers(), connection=connection)

    assert exc_info.value is failure
    assert "Connect mongodb failed: host=db.example, port=27018" in caplog.text
    client.close.assert_called_once()


def test_connection_retries_after_failure() -> None:
    """Test that a failed connection attempt is not cached."""
    broken = Mock()
    broken.admin.command.side_effect = ConnectionError("down")
    healthy = Mock()
    factory = Mock(side_effect=[broken, healthy])
    connection = MongoConnection(client_factory=factory)

    with pytest.raises(ConnectionError):
        connection.get_client("localhost", 27017)

    assert connection.get_client("localhost", 27017) is healthy
    assert factory.call_count == 2


def test_connection_is_created_once() -> None:
    """Test that sequential callers share one client."""
    factory = Mock(return_value=Mock())
    connection = MongoConnection(client_factory=factory, server_selection_timeout_ms=250)

    first = connection.get_client("localhost", 27017)
    second = connection.get_client("other-host", 1)

    assert first is second
    factory.assert_called_once_with("localhost", 27017, serverSelectionTimeoutMS=250)


def test_connection_concurrent_first_use() -> None:
    """Test that readers racing on first use observe one shared client."""
    created: list[Any] = []

    def slow_factory(*args: Any, **kwargs: Any) -> Any:
        time.sleep(0.05)
        client = Mock()
        created.append(client)
        return client

    connection = MongoConnection(client_factory=slow_factory)
    barrier = threading.Barrier(8)
    results: list[Any] = []
    results_lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        client = connection.get_client("localhost", 27017)
        with results_lock:
            results.append(client)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(created) == 1
    assert len(results) == 8
    assert all(client is created[0] for client in results)


def test_connection_get_database(mongo_client: mongomock.MongoClient) -> None:
    """Test that databases are looked up on the shared client."""
    connection = MongoConnection(client_factory=lambda *a, **k: mongo_client)

    database = connection.get_database("localhost", 27017, "quant")
    assert database.name == "quant"
    assert "SZ_TRADEBAR_DAILY" in database.list_collection_names()


def test_connection_close() -> None:
    """Test that close releases the client and allows reconnecting."""
    first, second = Mock(), Mock()
    connection = MongoConnection(client_factory=Mock(side_effect=[first, second]))

    assert connection.get_client("localhost", 27017) is first
    connection.close()
    first.close.assert_called_once()
    assert connection.get_client("localhost", 27017) is second
