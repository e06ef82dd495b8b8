"""Shared fixtures for subscription transport tests."""

from datetime import datetime, timedelta
from typing import Any

import mongomock
import pytest

from subscription_transport.config import TransportSettings
from subscription_transport.transport.mongo import MongoConnection


def daily_headers(**overrides: str) -> list[tuple[str, str]]:
    """Headers of the 000001.SZ daily trade bar subscription."""
    headers = {
        "date": "19920101 00:00:00",
        "ticker": "000001 2S1",
        "market": "sz",
        "ticktype": "Trade",
        "resolution": "Daily",
        "PeriodStart": "19920102",
        "PeriodFinish": "19920209",
    }
    headers.update(overrides)
    return list(headers.items())


def january_1992_weekdays() -> list[datetime]:
    """The 22 weekdays between 1992-01-02 and 1992-01-31."""
    day = datetime(1992, 1, 2)
    days = []
    while day.month == 1:
        if day.weekday() < 5:
            days.append(day)
        day += timedelta(days=1)
    return days


def make_bar(code: str, trade_date: datetime, base: float) -> dict[str, Any]:
    return {
        "code": code,
        "trade_date": trade_date,
        "open": base,
        "high": base + 0.25,
        "low": base - 0.25,
        "close": base + 0.1,
        "volume": 1000 + trade_date.day,
    }


@pytest.fixture
def mongo_client() -> mongomock.MongoClient:
    """In-memory MongoDB holding daily bars for 000001.SZ around January 1992."""
    client = mongomock.MongoClient()
    collection = client["quant"]["SZ_TRADEBAR_DAILY"]

    bars = [
        make_bar("000001.SZ", day, 9.38 + i * 0.01)
        for i, day in enumerate(january_1992_weekdays())
    ]
    # Stored newest first so the query's sort is what orders the stream.
    collection.insert_many(list(reversed(bars)))
    collection.insert_many(
        [
            make_bar("000001.SZ", datetime(1991, 12, 31), 9.0),
            make_bar("000001.SZ", datetime(1992, 2, 10), 9.9),
            make_bar("000002.SZ", datetime(1992, 1, 6), 20.0),
        ]
    )
    return client


@pytest.fixture
def mongo_connection(mongo_client: mongomock.MongoClient) -> MongoConnection:
    """Connection whose shared client is the in-memory ``mongo_client``."""
    return MongoConnection(client_factory=lambda *args, **kwargs: mongo_client)


@pytest.fixture
def settings(tmp_path: Any) -> TransportSettings:
    return TransportSettings(cache_directory=tmp_path / "cache")
