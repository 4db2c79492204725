"""
Shared fixtures for margin timeline tests

Each test gets its own SQLite database with one currency and one user.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from fxrates.core.constants import *
from fxrates.margins.models.currency_rate import CurrencyRate
from fxrates.margins.timeline import relink, windows_overlap
from server import build_application_context


def make_config(database_url):
    return {
        CONFIG_DATABASE_URL: database_url,
        CONFIG_TIMEZONE: "UTC",
        CONFIG_MAX_MARGIN_PCT: 100,
        CONFIG_API_PREFIX: "/api",
        CONFIG_AUTH_HEADER: DEFAULT_AUTH_HEADER,
    }


def daterange(first, last, step=1):
    day = first
    while day <= last:
        yield day
        day += timedelta(days=step)


def seed_rates(database_manager, currency_id, days, exchange_rate=Decimal("1.085")):
    """Insert unlinked rate observations in one transaction"""
    session = database_manager.get_session()
    try:
        session.add_all([CurrencyRate(date=day, to_currency_id=currency_id, exchange_rate=exchange_rate)
                         for day in days])
        session.commit()
    finally:
        session.close()


def rate_links(database_manager):
    """Return {date: margin_id} for every observation"""
    session = database_manager.get_session()
    try:
        return {o.date: o.margin_id for o in database_manager.load_observations(session)}
    finally:
        session.close()


def check_timeline(database_manager):
    """Assert non-overlap and linkage consistency by brute force"""
    session = database_manager.get_session()
    try:
        spans = database_manager.load_spans(session)
        observations = database_manager.load_observations(session)
    finally:
        session.close()

    for i, first in enumerate(spans):
        for second in spans[i + 1:]:
            assert not windows_overlap(first.window, second.window), f"{first} overlaps {second}"

    starts = [s.start for s in spans]
    assert len(starts) == len(set(starts))

    expected = relink(spans, [(o.id, o.date) for o in observations])
    for observation in observations:
        assert observation.margin_id == expected[observation.id], \
            f"rate {observation.date} linked to {observation.margin_id}, expected {expected[observation.id]}"


@pytest.fixture
def application_context(tmp_path):
    return build_application_context(make_config(f"sqlite:///{tmp_path / 'margins.db'}"))


@pytest.fixture
def database_manager(application_context):
    return application_context.database_manager


@pytest.fixture
def margin_service(application_context):
    return application_context.margin_service


@pytest.fixture
def currency_id(database_manager):
    return database_manager.save_currency("USD")


@pytest.fixture
def user_id(database_manager):
    return database_manager.save_user("admin@example.com", first_name="Ada", last_name="Admin", role="admin")


@pytest.fixture
def rates_2024(database_manager, currency_id):
    """Daily observations from 2023-12-25 through 2024-08-10"""
    seed_rates(database_manager, currency_id, daterange(date(2023, 12, 25), date(2024, 8, 10)))
