import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Fetch and activate the domains. The storefront context is pushed so it can be referred to elsewhere as
    `current_domain`; each context's conftest pushes its own domain around every test.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env

    from billing.domain import billing
    from storefront.domain import storefront

    storefront.init()
    billing.init()
    storefront.domain_context().push()


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session", autouse=True)
def setup_db(request):
    from billing.domain import billing
    from shared.db import drop_db, setup_db
    from storefront.domain import storefront

    setup_db(storefront)
    setup_db(billing)

    yield

    drop_db(billing)
    drop_db(storefront)


@pytest.fixture(autouse=True)
def run_around_tests():
    """Fixture to automatically cleanup infrastructure after every test"""
    yield

    from billing.domain import billing
    from billing.gateway import reset_gateway
    from storefront.domain import storefront
    from storefront.menu.catalog import reset_catalog
    from storefront.provider import reset_providers

    for domain in (storefront, billing):
        # Clear all databases
        for _, provider in domain.providers.items():
            provider._data_reset()

        # Drain event stores
        domain.event_store.store._data_reset()

    # Fakes hold sessions and menus between calls
    reset_providers()
    reset_catalog()
    reset_gateway()
