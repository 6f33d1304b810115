# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

# backend/deposito/routes/products.py
"""
Catalog API routes (categories and products)

Stock quantity is read-only here: it only moves through /api/stock
movements and sales. Amounts are integer cents.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import EngineError, ValidationError
from ..extensions import db
from ..models import Product
from ..money import Money
from ..services import catalog_service
from ..validation import ModelValidationPolicy, coerce_int, validate_payload
from ..decorators import require_employee, require_role


products_bp = Blueprint("products", __name__, url_prefix="/api")


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(catalog_service.PRODUCT_EDITABLE_FIELDS),
    required_on_create={"name", "price_cents"},
)


# =============================================================================
# CATEGORIES
# =============================================================================

@products_bp.get("/categories")
@require_employee
def list_categories_route():
    categories = catalog_service.list_categories()
    return jsonify({"categories": [c.to_dict() for c in categories]}), 200


@products_bp.post("/categories")
@require_employee
@require_role("gestor")
def create_category_route():
    """
    Request body:
    {
        "name": "Cervejas",
        "description": "optional"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        category = catalog_service.create_category(data.get("name"), data.get("description"))
        return jsonify({"category": category.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PRODUCTS
# =============================================================================

@products_bp.get("/products")
@require_employee
def list_products_route():
    """
    Query params:
    - search: name fragment or exact barcode
    - include_inactive: "true" to include deactivated products
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    products = catalog_service.list_products(
        include_inactive=include_inactive,
        search=request.args.get("search"),
    )
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.post("/products")
@require_employee
@require_role("gestor")
def create_product_route():
    """
    Create a product with its opening stock.

    Request body:
    {
        "name": "Heineken 350ml",
        "price_cents": 699,
        "cost_cents": 420,             (optional, default 0)
        "category_id": 1,              (optional)
        "barcode": "7891234567890",    (optional)
        "volume": "350ml",             (optional)
        "min_stock_quantity": 24,      (optional)
        "initial_stock": 48            (optional, recorded as a movement)
    }
    """
    try:
        data = dict(request.get_json(silent=True) or {})
        initial_stock = coerce_int("initial_stock", data.pop("initial_stock", 0))
        patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
        if "is_active" in patch:
            raise ValidationError("Field not allowed: is_active")

        product = catalog_service.create_product(
            name=patch["name"],
            price=Money(patch["price_cents"]),
            cost=Money(patch.get("cost_cents") or 0),
            employee_id=g.employee_id,
            category_id=patch.get("category_id"),
            description=patch.get("description"),
            image_url=patch.get("image_url"),
            barcode=patch.get("barcode"),
            volume=patch.get("volume"),
            min_stock_quantity=patch.get("min_stock_quantity") or 0,
            initial_stock=initial_stock,
        )
        return jsonify({"product": product.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/products/<int:product_id>")
@require_employee
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.patch("/products/<int:product_id>")
@require_employee
@require_role("gestor")
def update_product_route(product_id: int):
    """
    Partial update of catalog fields.

    stock_quantity is not writable: use /api/stock/movements.
    """
    try:
        patch = validate_payload(
            model=Product,
            payload=request.get_json(silent=True),
            policy=PRODUCT_POLICY,
            partial=True,
        )
        product = catalog_service.update_product(product_id, patch)
        return jsonify({"product": product.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/products/<int:product_id>")
@require_employee
@require_role("gestor")
def deactivate_product_route(product_id: int):
    try:
        product = catalog_service.deactivate_product(product_id)
        return jsonify({"product": product.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate product")
        return jsonify({"error": "Internal server error"}), 500
