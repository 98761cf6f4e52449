import json

import pytest
from protean.integrations.pytest import DomainFixture

ALL_WEEK = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield


@pytest.fixture()
def menu_items():
    """Catalog JSON for a small pizzeria menu."""
    return [
        {
            "id": "margherita",
            "name": "Margherita",
            "price": 1299,
            "option_groups": [
                {
                    "id": "size",
                    "name": "Size",
                    "type": "single_select",
                    "is_required": True,
                    "min_selections": 1,
                    "choices": [
                        {"id": "regular", "name": "Regular", "price_modifier": 0, "is_default": True},
                        {"id": "large", "name": "Large", "price_modifier": 300},
                    ],
                },
                {
                    "id": "toppings",
                    "name": "Toppings",
                    "type": "multi_select",
                    "max_selections": 3,
                    "num_free_options": 1,
                    "choices": [
                        {"id": "basil", "name": "Basil", "price_modifier": 0},
                        {"id": "olives", "name": "Olives", "price_modifier": 200},
                        {"id": "truffle", "name": "Truffle", "price_modifier": 400},
                    ],
                },
            ],
        },
        {
            "id": "wings",
            "name": "Chicken Wings",
            "price": 899,
            "option_groups": [
                {
                    "id": "dips",
                    "name": "Dips",
                    "type": "quantity_select",
                    "aggregate_min_quantity": 3,
                    "aggregate_max_quantity": 6,
                    "choices": [
                        {"id": "bbq", "name": "BBQ", "price_modifier": 50},
                        {"id": "ranch", "name": "Ranch", "price_modifier": 75},
                        {"id": "hot", "name": "Hot Sauce", "price_modifier": 100, "max_quantity": 4},
                    ],
                },
            ],
        },
        {"id": "soda", "name": "Soda", "price": 250},
    ]


@pytest.fixture()
def make_store(menu_items):
    """Register a store and record its provider accounts.

    By default the store is open around the clock, both providers are
    onboarded and the menu is loaded into the in-memory catalog.
    """
    from protean import current_domain
    from storefront.menu.catalog import get_catalog
    from storefront.merchant.onboarding import RegisterStore, SyncConnectAccount, SyncOAuthAccount

    counter = {"n": 0}

    def _make(connect=True, oauth=True, open_days=ALL_WEEK, preferred_provider=None, timezone="UTC"):
        counter["n"] += 1
        merchant_id = f"merchant-{counter['n']:03d}"
        store_id = current_domain.process(
            RegisterStore(
                merchant_id=merchant_id,
                name="Luigi's",
                timezone=timezone,
                preferred_provider=preferred_provider,
                opening_periods=json.dumps(
                    [{"day_of_week": day, "open_time": "00:00", "close_time": "24:00"} for day in open_days]
                ),
            ),
            asynchronous=False,
        )
        if connect:
            current_domain.process(
                SyncConnectAccount(
                    merchant_id=merchant_id,
                    account_id=f"acct_{counter['n']:03d}",
                    onboarding_complete=True,
                    requirements_status="none",
                    capabilities_status="active",
                ),
                asynchronous=False,
            )
        if oauth:
            current_domain.process(
                SyncOAuthAccount(
                    merchant_id=merchant_id,
                    organization_id=f"org_{counter['n']:03d}",
                    access_token=f"access_{counter['n']:03d}",
                    profile_id=f"pfl_{counter['n']:03d}",
                    onboarding_status="completed",
                    can_receive_payments=True,
                    can_receive_settlements=True,
                ),
                asynchronous=False,
            )
        get_catalog().load(store_id, menu_items)
        return store_id

    return _make


@pytest.fixture()
def store_id(make_store):
    return make_store()
