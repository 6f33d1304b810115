# Overview: Service-layer operations for the product catalog; never touches stock quantities directly.

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import CategoryNotFound, DuplicateRecord, ValidationError
from ..extensions import db
from ..models import Category, Product
from ..money import Money, require_non_negative
from ..validation import enforce_rules_product
from . import stock_ledger
from .concurrency import begin_write, run_with_retry


logger = logging.getLogger(__name__)

# Stock is owned by the stock ledger; these are the only catalog-editable fields
PRODUCT_EDITABLE_FIELDS = {
    "name",
    "category_id",
    "description",
    "image_url",
    "barcode",
    "volume",
    "price_cents",
    "cost_cents",
    "min_stock_quantity",
    "is_active",
}


# =============================================================================
# CATEGORIES
# =============================================================================

def create_category(name: str, description: str | None = None) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    existing = db.session.query(Category).filter(db.func.lower(Category.name) == name.lower()).first()
    if existing:
        raise DuplicateRecord(f"Category '{name}' already exists", details={"category_id": existing.id})

    category = Category(name=name, description=description)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateRecord(f"Category '{name}' already exists") from exc
    return category


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name).all()


def _ensure_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if db.session.get(Category, category_id) is None:
        raise CategoryNotFound("Category not found", details={"category_id": category_id})


def _ensure_barcode_free(barcode: str | None, product_id: int | None = None) -> None:
    if not barcode:
        return
    query = db.session.query(Product).filter_by(barcode=barcode)
    if product_id is not None:
        query = query.filter(Product.id != product_id)
    if query.first() is not None:
        raise DuplicateRecord(f"Barcode '{barcode}' is already in use", details={"barcode": barcode})


# =============================================================================
# PRODUCTS
# =============================================================================

def create_product(
    *,
    name: str,
    price: Money,
    cost: Money,
    employee_id: str,
    category_id: int | None = None,
    description: str | None = None,
    image_url: str | None = None,
    barcode: str | None = None,
    volume: str | None = None,
    min_stock_quantity: int = 0,
    initial_stock: int = 0,
) -> Product:
    """
    Create a product and its opening stock balance in one transaction.

    The product row starts at zero; initial_stock is recorded as an
    "initial stock" movement so the ledger explains every unit.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    require_non_negative(price, "price")
    require_non_negative(cost, "cost")
    enforce_rules_product({
        "price_cents": price.cents,
        "cost_cents": cost.cents,
        "min_stock_quantity": min_stock_quantity,
    })
    stock_ledger.validate_quantity(initial_stock, allow_zero=True)

    def _op():
        begin_write()
        _ensure_category(category_id)
        _ensure_barcode_free(barcode)

        product = Product(
            name=name,
            category_id=category_id,
            description=description,
            image_url=image_url,
            barcode=barcode or None,
            volume=volume,
            price_cents=price.cents,
            cost_cents=cost.cents,
            stock_quantity=0,
            min_stock_quantity=min_stock_quantity,
            is_active=True,
        )
        db.session.add(product)
        db.session.flush()

        stock_ledger.apply_opening_balance(product, initial_stock, employee_id)

        db.session.commit()
        logger.info("Product %s created by %s with %s units", product.id, employee_id, initial_stock)
        return product

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    return stock_ledger.load_product(product_id)


def list_products(*, include_inactive: bool = False, search: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.barcode == search.strip()))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def update_product(product_id: int, patch: dict) -> Product:
    """
    Apply a validated catalog patch.

    Price edits do not affect past sales: sale items snapshot the unit
    price at checkout.
    """
    illegal = set(patch) - PRODUCT_EDITABLE_FIELDS
    if illegal:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(illegal))}")
    enforce_rules_product(patch)

    def _op():
        begin_write()
        product = stock_ledger.load_product(product_id, lock=True)
        if "category_id" in patch:
            _ensure_category(patch["category_id"])
        if patch.get("barcode"):
            _ensure_barcode_free(patch["barcode"], product_id=product.id)

        for key, value in patch.items():
            setattr(product, key, value)

        db.session.commit()
        return product

    return run_with_retry(_op)


def deactivate_product(product_id: int) -> Product:
    """
    Soft delete.

    Products are never deleted: their movements and sale items keep
    referencing them.
    """
    return update_product(product_id, {"is_active": False})
