# Overview: Cart store; per-user staging lines ahead of checkout.

from __future__ import annotations

from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import CartItemNotFound, InactiveProduct, ValidationError
from ..models import CartItem, Product
from ..models.orders import CART_MAX_COUNT, CART_MIN_COUNT
from .concurrency import unit_of_work
from .inventory_service import get_product


def _validate_count(count) -> int:
    if isinstance(count, bool) or not isinstance(count, int):
        raise ValidationError("count must be an integer", details={"count": count})
    if count < CART_MIN_COUNT or count > CART_MAX_COUNT:
        raise ValidationError(
            f"count must be between {CART_MIN_COUNT} and {CART_MAX_COUNT}",
            details={"count": count},
        )
    return count


def _check_available(product: Product, count: int) -> None:
    # Advisory only; checkout's reservation is authoritative
    if count > product.stock:
        raise ValidationError(
            f"Not enough stock. Available: {product.stock}",
            details={"product_id": product.id, "available": product.stock, "requested": count},
        )


def _get_owned_item(session: Session, user_id: int, cart_item_id: int) -> CartItem:
    item = session.execute(
        select(CartItem).where(CartItem.id == cart_item_id, CartItem.user_id == user_id)
    ).scalar_one_or_none()
    if item is None:
        raise CartItemNotFound(cart_item_id)
    return item


def list_items(session: Session, user_id: int) -> list[CartItem]:
    return list(
        session.scalars(
            select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.product_id)
        )
    )


def add_item(session: Session, user_id: int, product_id: int, count: int) -> CartItem:
    """
    Add a product to the cart, merging into an existing line.

    The merged count must stay within the per-line limit.
    """
    count = _validate_count(count)

    with unit_of_work(session, operation="add to cart"):
        product = get_product(session, product_id)
        if not product.is_active:
            raise InactiveProduct(product_id)

        item = session.execute(
            select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
        ).scalar_one_or_none()

        if item is None:
            _check_available(product, count)
            item = CartItem(user_id=user_id, product_id=product_id, count=count)
            session.add(item)
        else:
            merged = item.count + count
            if merged > CART_MAX_COUNT:
                raise ValidationError(
                    f"count must be between {CART_MIN_COUNT} and {CART_MAX_COUNT}",
                    details={"count": merged, "in_cart": item.count},
                )
            _check_available(product, merged)
            item.count = merged

    current_app.logger.info("User %s added product %s to cart (count %s)", user_id, product_id, count)
    return item


def update_item(session: Session, user_id: int, cart_item_id: int, count: int) -> CartItem:
    count = _validate_count(count)

    with unit_of_work(session, operation="update cart item"):
        item = _get_owned_item(session, user_id, cart_item_id)
        product = get_product(session, item.product_id)
        if not product.is_active:
            raise InactiveProduct(item.product_id)
        _check_available(product, count)
        item.count = count

    return item


def remove_item(session: Session, user_id: int, cart_item_id: int) -> None:
    with unit_of_work(session, operation="remove cart item"):
        item = _get_owned_item(session, user_id, cart_item_id)
        session.delete(item)


def clear_cart(session: Session, user_id: int) -> int:
    """Delete every line for the user. Returns the number removed."""
    with unit_of_work(session, operation="clear cart"):
        removed = _delete_lines(session, user_id)
    return removed


def _delete_lines(session: Session, user_id: int) -> int:
    """Delete cart lines without committing; used by checkout."""
    items = list_items(session, user_id)
    for item in items:
        session.delete(item)
    return len(items)


def get_cart_summary(session: Session, user_id: int) -> dict:
    """Cart lines priced at the live catalog price."""
    rows = session.execute(
        select(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.product_id)
    ).all()

    lines = []
    for item, product in rows:
        line = item.to_dict()
        line.update({
            "product_name": product.name,
            "unit_price_cents": product.price_cents,
            "subtotal_cents": product.price_cents * item.count,
            "is_active": product.is_active,
        })
        lines.append(line)

    return {
        "items": lines,
        "total_items": sum(line["count"] for line in lines),
        "total_price_cents": sum(line["subtotal_cents"] for line in lines),
    }
