"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """A new order was accepted for a store and awaits payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    store_id = Identifier(required=True)
    order_type = String(required=True)
    total_amount = Integer(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class PaymentStatusChanged:
    """The order's payment status moved forward."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    payment_provider = String()
    payment_reference = String()
    source = String()  # provider, webhook, merchant


@storefront.event(part_of="Order")
class OrderStatusChanged:
    """The order moved through its preparation lifecycle."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    reason = String()
