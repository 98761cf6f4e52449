"""Read helpers for orders."""

from protean.utils.globals import current_domain

from storefront.order.order import Order


def orders_for_store(store_id, order_status=None, payment_status=None) -> list[Order]:
    filters = {"store_id": str(store_id)}
    if order_status:
        filters["order_status"] = order_status
    if payment_status:
        filters["payment_status"] = payment_status
    results = current_domain.repository_for(Order)._dao.query.filter(**filters).all()
    return sorted(results.items, key=lambda o: o.created_at)


def kitchen_orders(store_id) -> list[Order]:
    """Orders the kitchen should be working on: paid and not yet finished."""
    return [order for order in orders_for_store(store_id) if order.is_kitchen_visible]


def find_order_by_payment_reference(reference: str) -> Order | None:
    results = current_domain.repository_for(Order)._dao.query.filter(payment_reference=str(reference)).all()
    return results.items[0] if results.items else None
