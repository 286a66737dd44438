# Overview: Inventory ledger; the only code path that changes Product.stock.

"""
Inventory Invariants (authoritative)

- Product.stock is never negative (DB check constraint backs this up).
- reserve is a single conditional UPDATE:
      UPDATE products SET stock = stock - :q WHERE id = :id AND stock >= :q
  One affected row means the reservation happened; zero means it did not and
  nothing changed. No read-then-write, no application lock.
- release is a single UPDATE stock = stock + :q. It never decrements.
- reserve/release do not commit. They join the caller's storage transaction
  so a rollback undoes every reservation made in it.
- "Below critical" means stock < critical_stock_level.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..errors import ConflictError, InsufficientStock, ProductNotFound, ValidationError
from ..models import Product
from .concurrency import unit_of_work


def _require_positive(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})


def _expire_cached_stock(session: Session, product_id: int) -> None:
    # The UPDATE bypasses the identity map; drop any stale loaded value
    cached = session.identity_map.get(session.identity_key(Product, product_id))
    if cached is not None:
        session.expire(cached, ["stock"])


def get_product(session: Session, product_id: int) -> Product:
    """Catalog lookup used by the cart and checkout."""
    product = session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return product


def reserve(session: Session, product_id: int, quantity: int) -> None:
    """
    Atomically take `quantity` units of stock.

    Raises InsufficientStock (no state change) when stock < quantity,
    ProductNotFound when the product does not exist.
    """
    _require_positive(quantity)

    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        _expire_cached_stock(session, product_id)
        return

    exists = session.execute(select(Product.id).where(Product.id == product_id)).first()
    if exists is None:
        raise ProductNotFound(product_id)
    raise InsufficientStock(product_id, requested=quantity)


def release(session: Session, product_id: int, quantity: int) -> None:
    """Atomically give `quantity` units back to stock."""
    _require_positive(quantity)

    result = session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ProductNotFound(product_id)
    _expire_cached_stock(session, product_id)


def is_below_critical(session: Session, product_id: int) -> bool:
    row = session.execute(
        select(Product.stock, Product.critical_stock_level).where(Product.id == product_id)
    ).first()
    if row is None:
        raise ProductNotFound(product_id)
    return row.stock < row.critical_stock_level


def list_low_stock(session: Session) -> list[Product]:
    """Active products whose stock is below their critical level, emptiest first."""
    return list(
        session.scalars(
            select(Product)
            .where(Product.is_active.is_(True), Product.stock < Product.critical_stock_level)
            .order_by(Product.stock.asc(), Product.id.asc())
        )
    )


def restock(session: Session, product_id: int, quantity: int, actor_user_id: int | None = None) -> Product:
    """Receive goods into stock (admin). Commits."""
    with unit_of_work(session, operation="restock"):
        release(session, product_id, quantity)

    product = get_product(session, product_id)
    current_app.logger.info(
        "Restocked product %s by %s (now %s) actor=%s",
        product_id, quantity, product.stock, actor_user_id,
    )
    return product


def set_critical_stock_level(session: Session, product_id: int, level: int) -> Product:
    if isinstance(level, bool) or not isinstance(level, int) or level < 0:
        raise ValidationError("Critical stock level must be a non-negative integer", details={"level": level})

    with unit_of_work(session, operation="set critical stock level"):
        product = get_product(session, product_id)
        product.critical_stock_level = level

    return product


def create_product(
    session: Session,
    sku: str,
    name: str,
    price_cents: int,
    stock: int = 0,
    critical_stock_level: int = 0,
) -> Product:
    """Catalog seeding (CLI / tests). Commits."""
    sku = (sku or "").strip()
    name = (name or "").strip()
    if not sku or not name:
        raise ValidationError("sku and name are required")
    for field, value in (("price_cents", price_cents), ("stock", stock), ("critical_stock_level", critical_stock_level)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"{field} must be a non-negative integer", details={field: value})

    with unit_of_work(session, operation="create product"):
        if session.execute(select(Product.id).where(Product.sku == sku)).first() is not None:
            raise ConflictError(f"SKU {sku} already exists", details={"sku": sku})
        product = Product(
            sku=sku,
            name=name,
            price_cents=price_cents,
            stock=stock,
            critical_stock_level=critical_stock_level,
            is_active=True,
        )
        session.add(product)

    current_app.logger.info("Created product %s (%s) with stock %s", product.id, sku, stock)
    return product
