"""Shared BDD fixtures and step definitions for the Storefront domain."""

import json
from dataclasses import replace

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then, when
from storefront.menu.options import MenuItemChoice, MenuItemOptionGroup, OptionGroupType
from storefront.menu.validation import validate_selections
from storefront.order.creation import CreateOrder
from storefront.order.order import Order
from storefront.payment.sessions import OpenPaymentSession


def _prices(text):
    return [int(price) for price in text.split(",")]


@pytest.fixture()
def selections():
    """Selections made in a When step, keyed by group id."""
    return {}


# ---------------------------------------------------------------------------
# Given steps: option groups
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a toppings group with choice prices "{prices}"'), target_fixture="group")
def toppings_group(prices):
    return MenuItemOptionGroup(
        id="toppings",
        name="Toppings",
        type=OptionGroupType.MULTI_SELECT,
        choices=tuple(
            MenuItemChoice(id=f"topping-{position}", name=f"Topping {position}", price_modifier=price)
            for position, price in enumerate(_prices(prices))
        ),
    )


@given(parsers.cfparse("{free:d} of its options are free"), target_fixture="group")
def free_options(group, free):
    return replace(group, num_free_options=free)


@given(
    parsers.cfparse("a dips group that takes between {low:d} and {high:d} dips in total"),
    target_fixture="group",
)
def dips_group(low, high):
    return MenuItemOptionGroup(
        id="dips",
        name="Dips",
        type=OptionGroupType.QUANTITY_SELECT,
        aggregate_min_quantity=low,
        aggregate_max_quantity=high,
        choices=(
            MenuItemChoice(id="bbq", name="BBQ", price_modifier=50),
            MenuItemChoice(id="ranch", name="Ranch", price_modifier=75),
        ),
    )


@given("a required size group", target_fixture="group")
def size_group():
    return MenuItemOptionGroup(
        id="size",
        name="Size",
        type=OptionGroupType.SINGLE_SELECT,
        is_required=True,
        min_selections=1,
        choices=(MenuItemChoice(id="regular", name="Regular"), MenuItemChoice(id="large", name="Large")),
    )


# ---------------------------------------------------------------------------
# Given steps: stores and orders
# ---------------------------------------------------------------------------
@given("an open store that accepts online payments", target_fixture="store")
def open_store(make_store):
    return make_store()


@given(parsers.cfparse('an order for a margherita with checkout key "{key}"'), target_fixture="order_id")
def margherita_order(store, key):
    return current_domain.process(
        CreateOrder(
            store_id=store,
            idempotency_key=key,
            order_type="dine_in",
            items=json.dumps([{"item_id": "margherita", "quantity": 1, "selections": {"size": ["regular"]}}]),
            customer_name="Ada",
        ),
        asynchronous=False,
    )


@given(parsers.cfparse('a payment session with "{provider}"'), target_fixture="session")
def payment_session(order_id, provider):
    return current_domain.process(OpenPaymentSession(order_id=order_id, provider=provider), asynchronous=False)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("no choices are selected")
def no_choices(selections):
    selections.clear()


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the selection is {verdict}"))
def selection_verdict(group, selections, verdict):
    check = validate_selections([group], selections)
    assert check.valid == (verdict == "valid")


@then(parsers.cfparse('the "{group_id}" group is reported'))
def group_reported(group, selections, group_id):
    check = validate_selections([group], selections)
    assert [failure.group_id for failure in check.failures] == [group_id]


@then(parsers.cfparse('the payment status is "{status}"'))
def payment_status_is(order_id, status):
    assert current_domain.repository_for(Order).get(order_id).payment_status == status


@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order_id, status):
    assert current_domain.repository_for(Order).get(order_id).order_status == status


@then(parsers.cfparse("the order total is {amount:d}"))
def order_total_is(order_id, amount):
    assert current_domain.repository_for(Order).get(order_id).total_amount == amount
