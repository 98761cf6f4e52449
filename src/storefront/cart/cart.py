"""Cart aggregate (CQRS): the shopper's priced lines before checkout.

Lines are frozen snapshots of a configured item. A line's id is derived from
the item id and its selected choices, so adding an identical configuration
again only raises that line's quantity. Re-configuring an item means
removing the line and adding a new one.

A cart also owns its checkout attempt: the idempotency key used to create
the order. The attempt is started on first checkout, reused on every retry,
and dropped when the cart changes or is cleared.
"""

import json
from datetime import UTC, datetime
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text, ValueObject

from storefront.domain import storefront


@storefront.value_object(part_of="Cart")
class CheckoutAttempt:
    idempotency_key = String(required=True, max_length=64)
    started_at = DateTime(required=True)
    order_id = Identifier()


@storefront.entity(part_of="Cart")
class CartLine:
    line_key = String(required=True, max_length=500)
    item_id = Identifier(required=True)
    name = String(required=True, max_length=200)
    quantity = Integer(required=True, min_value=1)
    base_price = Integer(required=True, min_value=0)
    options_price = Integer(default=0, min_value=0)
    selected_options = Text()  # JSON: [{group_id, group_name, choices: [...]}]
    selections = Text()  # JSON: raw selections, replayed when the order is priced

    @property
    def total_price(self) -> int:
        return (self.base_price + (self.options_price or 0)) * self.quantity


@storefront.aggregate
class Cart:
    store_id = Identifier(required=True)
    lines = HasMany(CartLine)
    checkout = ValueObject(CheckoutAttempt)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, store_id):
        now = datetime.now(UTC)
        return cls(store_id=str(store_id), created_at=now, updated_at=now)

    # -------------------------------------------------------------------
    # Totals
    # -------------------------------------------------------------------
    @property
    def subtotal(self) -> int:
        return sum(line.total_price for line in self.lines)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def line(self, line_key):
        return next((line for line in self.lines if line.line_key == line_key), None)

    # -------------------------------------------------------------------
    # Lines
    # -------------------------------------------------------------------
    def add_line(self, priced, selections=None):
        """Add a priced line (``storefront.menu.quote.PricedLine``)."""
        existing = self.line(priced.line_key)
        if existing:
            existing.quantity += priced.quantity
        else:
            self.add_lines(
                CartLine(
                    line_key=priced.line_key,
                    item_id=priced.item_id,
                    name=priced.name,
                    quantity=priced.quantity,
                    base_price=priced.base_price,
                    options_price=priced.options_price,
                    selected_options=json.dumps(list(priced.selected_options)),
                    selections=json.dumps(selections or {}),
                )
            )
        self._touch()
        return priced.line_key

    def update_quantity(self, line_key, quantity):
        """Change a line's quantity. Zero or less removes the line."""
        line = self.line(line_key)
        if line is None:
            raise ValidationError({"line_id": ["Line not found in cart"]})
        if quantity < 1:
            self.remove_lines(line)
        else:
            line.quantity = quantity
        self._touch()

    def remove_line(self, line_key):
        line = self.line(line_key)
        if line is None:
            raise ValidationError({"line_id": ["Line not found in cart"]})
        self.remove_lines(line)
        self._touch()

    def clear(self):
        for line in list(self.lines):
            self.remove_lines(line)
        self._touch()

    # -------------------------------------------------------------------
    # Checkout attempt
    # -------------------------------------------------------------------
    def begin_checkout(self) -> str:
        """Return the current checkout key, starting an attempt if needed."""
        if not self.lines:
            raise ValidationError({"cart": ["Cart is empty"]})
        if self.checkout is None:
            self.checkout = CheckoutAttempt(idempotency_key=uuid4().hex, started_at=datetime.now(UTC))
        return self.checkout.idempotency_key

    def attach_order(self, order_id):
        if self.checkout is None:
            raise ValidationError({"cart": ["No checkout in progress"]})
        self.checkout = CheckoutAttempt(
            idempotency_key=self.checkout.idempotency_key,
            started_at=self.checkout.started_at,
            order_id=str(order_id),
        )

    def end_checkout(self):
        self.checkout = None

    def _touch(self):
        # Any change to the lines invalidates an in-flight checkout
        self.checkout = None
        self.updated_at = datetime.now(UTC)
