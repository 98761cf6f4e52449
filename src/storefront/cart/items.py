"""Cart management: commands and handler."""

import json

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.domain import storefront
from storefront.menu.quote import quote


@storefront.command(part_of="Cart")
class CreateCart:
    store_id = Identifier(required=True)


@storefront.command(part_of="Cart")
class AddToCart:
    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    selections = Text()  # JSON: {group_id: [choice_id, ...] | {choice_id: quantity}}


@storefront.command(part_of="Cart")
class UpdateCartLine:
    cart_id = Identifier(required=True)
    line_id = String(required=True, max_length=500)
    quantity = Integer(required=True)


@storefront.command(part_of="Cart")
class RemoveCartLine:
    cart_id = Identifier(required=True)
    line_id = String(required=True, max_length=500)


@storefront.command(part_of="Cart")
class ClearCart:
    cart_id = Identifier(required=True)


@storefront.command_handler(part_of=Cart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        cart = Cart.create(store_id=command.store_id)
        current_domain.repository_for(Cart).add(cart)
        return str(cart.id)

    @handle(AddToCart)
    def add_to_cart(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)

        selections = json.loads(command.selections) if command.selections else {}
        priced = quote(cart.store_id, command.item_id, command.quantity, selections)
        line_id = cart.add_line(priced, selections)
        repo.add(cart)
        return line_id

    @handle(UpdateCartLine)
    def update_cart_line(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.update_quantity(command.line_id, command.quantity)
        repo.add(cart)

    @handle(RemoveCartLine)
    def remove_cart_line(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.remove_line(command.line_id)
        repo.add(cart)

    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.clear()
        repo.add(cart)
