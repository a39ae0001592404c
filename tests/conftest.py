# tests/conftest.py
import os

# must be set before fipecache.db is imported
os.environ["POSTGRES_URL"] = "sqlite://"
os.environ["FIPE_SCHEDULER_ENABLED"] = "0"

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fipecache.db import Base
from fipecache.exceptions import UpstreamError
import fipecache.models  # noqa: F401

NOW = datetime(2024, 7, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

    @event.listens_for(eng, "connect")
    def _enable_fks(dbapi_conn, _record):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def make_value(brand, model, year, price="85000.00"):
    return {
        "price": Decimal(price),
        "brand_name": brand,
        "model_name": model,
        "model_year": year.split(" ")[0],
        "fuel": "Gasolina",
        "fipe_code": "005340-6",
        "reference_month": "julho de 2024",
        "vehicle_type": 1,
        "fuel_abbreviation": "G",
    }


class FakeFipeClient:
    """In-memory stand-in for FipeClient.

    `failures` holds keys that raise UpstreamError: "brands",
    ("models", brand), ("years", brand, model), ("value", brand, model, year).
    """

    def __init__(self, brands, models=None, years=None, failures=()):
        self._brands = brands
        self._models = models or {}
        self._years = years or {}
        self.failures = set(failures)
        self.calls = []
        self.closed = False

    def close(self):
        self.closed = True

    def _check(self, key):
        self.calls.append(key)
        if key in self.failures:
            raise UpstreamError(f"{key} unavailable")

    def brands(self):
        self._check("brands")
        return [dict(b) for b in self._brands]

    def models(self, brand_code):
        self._check(("models", brand_code))
        return [dict(m) for m in self._models.get(brand_code, [])]

    def years(self, brand_code, model_code):
        self._check(("years", brand_code, model_code))
        return [dict(y) for y in self._years.get((brand_code, model_code), [])]

    def value(self, brand_code, model_code, year_code):
        self._check(("value", brand_code, model_code, year_code))
        return make_value(brand_code, model_code, year_code)


@pytest.fixture
def fake_client():
    return FakeFipeClient(
        brands=[
            {"code": "59", "name": "VW - VolksWagen"},
            {"code": "21", "name": "Fiat"},
            {"code": "22", "name": "Ford"},
        ],
        models={
            "59": [{"code": "5940", "name": "Golf"}, {"code": "5941", "name": "Polo"}],
            "21": [{"code": "4828", "name": "Uno"}],
            "22": [{"code": "6001", "name": "Ka"}, {"code": "6002", "name": "Fiesta"}],
        },
        years={
            ("59", "5940"): [{"code": "2020-1", "name": "2020 Gasolina"}, {"code": "2019-1", "name": "2019 Gasolina"}],
            ("59", "5941"): [{"code": "2020-1", "name": "2020 Gasolina"}],
            ("21", "4828"): [{"code": "2015-5", "name": "2015 Flex"}],
            ("22", "6001"): [{"code": "2018-1", "name": "2018 Gasolina"}],
            ("22", "6002"): [{"code": "2017-1", "name": "2017 Gasolina"}],
        },
    )
