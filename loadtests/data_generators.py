"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the domain's validation rules
and match the field names expected by the API's Pydantic request schemas.
"""

import random
import uuid
from datetime import UTC, datetime, timedelta

from faker import Faker

fake = Faker()

ALL_WEEK = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


# ---------- Stores & accounts ----------


def store_data() -> dict:
    """RegisterStoreRequest payload for a store that is always open."""
    return {
        "merchant_id": f"merchant-lt-{uuid.uuid4().hex[:8]}",
        "name": f"{fake.last_name()} {random.choice(['Trattoria', 'Bistro', 'Kitchen', 'Diner'])}"[:200],
        "timezone": "UTC",
        "opening_periods": [{"day_of_week": day, "open_time": "00:00", "close_time": "24:00"} for day in ALL_WEEK],
    }


def connect_account_data() -> dict:
    """An onboarded connect account that can take payments."""
    return {
        "provider": "stripe",
        "account_id": f"acct_lt_{uuid.uuid4().hex[:12]}",
        "onboarding_complete": True,
        "requirements_status": "none",
        "capabilities_status": "active",
    }


def oauth_account_data() -> dict:
    return {
        "provider": "mollie",
        "organization_id": f"org_lt_{uuid.uuid4().hex[:10]}",
        "onboarding_status": "completed",
        "can_receive_payments": True,
        "can_receive_settlements": True,
        "access_token": f"access_lt_{uuid.uuid4().hex}",
        "profile_id": f"pfl_lt{uuid.uuid4().hex[:8]}",
    }


# ---------- Menu ----------


def menu_items(count: int = 3) -> list[dict]:
    """Menu items in catalog JSON, each with a size and a toppings group."""
    items = []
    for index in range(count):
        item_id = f"item-{index}-{uuid.uuid4().hex[:6]}"
        items.append(
            {
                "id": item_id,
                "name": fake.word().title()[:200],
                "price": random.choice([899, 1099, 1299, 1499]),
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
                        "type": "quantity_select",
                        "aggregate_max_quantity": 6,
                        "num_free_options": 1,
                        "choices": [
                            {"id": "olives", "name": "Olives", "price_modifier": 100, "max_quantity": 3},
                            {"id": "mushrooms", "name": "Mushrooms", "price_modifier": 150, "max_quantity": 3},
                            {"id": "basil", "name": "Basil", "price_modifier": 0, "max_quantity": 2},
                        ],
                    },
                ],
            }
        )
    return items


def selections() -> dict:
    """A valid selection for the items from ``menu_items``."""
    return {
        "size": [random.choice(["regular", "large"])],
        "toppings": {
            "olives": random.randint(0, 2),
            "mushrooms": random.randint(0, 2),
        },
    }


# ---------- Checkout ----------


def checkout_data() -> dict:
    data = {
        "order_type": random.choice(["takeaway", "dine_in"]),
        "customer_name": fake.first_name()[:100],
        "customer_email": fake.free_email(),
        "tip_amount": random.choice([0, 0, 100, 200]),
    }
    if data["order_type"] == "takeaway":
        # Takeaway needs a pickup slot at least 30 minutes ahead
        slot = datetime.now(UTC) + timedelta(minutes=random.randint(45, 180))
        data["scheduled_pickup_time"] = slot.isoformat()
    return data
