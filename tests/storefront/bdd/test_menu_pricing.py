"""BDD tests for option group pricing."""

from pytest_bdd import parsers, scenarios, then, when
from storefront.menu.pricing import price_of
from storefront.menu.selection import build_selection

scenarios("features/option_pricing.feature")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the choices priced "{prices}" are selected'))
def select_by_price(group, selections, prices):
    wanted = [int(price) for price in prices.split(",")]
    chosen = [choice.id for choice in group.choices if choice.price_modifier in wanted]
    selections[group.id] = build_selection(group, chosen)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the options cost {amount:d}"))
def options_cost(group, selections, amount):
    assert price_of(group, selections.get(group.id)) == amount
