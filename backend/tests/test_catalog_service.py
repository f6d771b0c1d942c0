"""
Catalog service tests: product master data and barcode linking.
"""

import pytest

from stocksnap.errors import ConflictError, ProductNotFound, ValidationError
from stocksnap.extensions import db
from stocksnap.models import StockMovement
from stocksnap.services import catalog_service, sales_service


class TestFormatSku:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Espresso Beans 1kg", "ESPRESSO-BEANS-1KG"),
            ("  oat   milk ", "OAT-MILK"),
            ("Mug (blue)!", "MUG-BLUE"),
            ("", ""),
        ],
    )
    def test_format(self, text, expected):
        assert catalog_service.format_sku(text) == expected


class TestCreateProduct:
    def test_defaults(self, app, admin):
        product = catalog_service.create_product({"name": "Tea Pot", "price": 18.0}, admin.id)

        assert product.sku == "TEA-POT"
        assert product.stock_quantity == 0
        assert product.cost_price == 0.0
        assert product.low_stock_threshold == app.config["DEFAULT_LOW_STOCK_THRESHOLD"]
        assert product.created_by == admin.id
        assert product.is_active is True

    def test_initial_stock_is_a_movement(self, admin):
        product = catalog_service.create_product({"name": "Tea Pot", "price": 18.0}, admin.id, initial_stock=12)

        movements = db.session.query(StockMovement).filter_by(product_id=product.id).all()
        assert product.stock_quantity == 12
        assert [(m.type, m.quantity, m.reason) for m in movements] == [
            ("in", 12, catalog_service.INITIAL_STOCK_REASON),
        ]

    def test_duplicate_sku(self, product_a, admin):
        with pytest.raises(ConflictError):
            catalog_service.create_product({"name": "Other", "sku": product_a.sku, "price": 1.0}, admin.id)

    def test_duplicate_barcode(self, product_a, admin):
        with pytest.raises(ConflictError):
            catalog_service.create_product(
                {"name": "Other", "barcode": product_a.barcode, "price": 1.0}, admin.id,
            )

    def test_negative_initial_stock(self, admin):
        with pytest.raises(ValidationError):
            catalog_service.create_product({"name": "Tea Pot", "price": 18.0}, admin.id, initial_stock=-1)

    def test_unnamed_product_needs_sku(self, admin):
        with pytest.raises(ValidationError):
            catalog_service.create_product({"name": "!!!", "price": 1.0}, admin.id)

    @pytest.mark.parametrize(
        "patch",
        [
            {"name": "Tea Pot", "price": -1.0},
            {"name": "Tea Pot", "price": 0},
            {"name": "Tea Pot"},
            {"name": "Tea Pot", "price": 18.0, "cost_price": -0.5},
            {"name": "Tea Pot", "price": 18.0, "low_stock_threshold": -1},
        ],
    )
    def test_business_rules_enforced(self, admin, patch):
        with pytest.raises(ValidationError):
            catalog_service.create_product(patch, admin.id)
        assert catalog_service.list_products() == []


class TestUpdateProduct:
    def test_update_fields(self, product_a):
        product = catalog_service.update_product(product_a.id, {"price": 12.5, "category": "Coffee"})
        assert product.price == 12.5
        assert product.category == "Coffee"

    def test_stock_quantity_is_not_patchable(self, product_a):
        with pytest.raises(ValidationError):
            catalog_service.update_product(product_a.id, {"stock_quantity": 99})
        assert catalog_service.get_product(product_a.id).stock_quantity == 20

    def test_sku_collision(self, product_a, product_b):
        with pytest.raises(ConflictError):
            catalog_service.update_product(product_b.id, {"sku": product_a.sku})

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            catalog_service.update_product(123456, {"name": "x"})

    @pytest.mark.parametrize(
        "patch",
        [{"price": 0}, {"price": -3.0}, {"cost_price": -1.0}, {"low_stock_threshold": -1}],
    )
    def test_business_rules_enforced(self, product_a, patch):
        with pytest.raises(ValidationError):
            catalog_service.update_product(product_a.id, patch)

        product = catalog_service.get_product(product_a.id)
        assert product.price == 10.0
        assert product.low_stock_threshold == 5


class TestDeleteProduct:
    def test_soft_delete_hides_product(self, product_a):
        catalog_service.delete_product(product_a.id)

        with pytest.raises(ProductNotFound):
            catalog_service.get_product(product_a.id)
        assert catalog_service.get_product(product_a.id, include_inactive=True).is_active is False
        assert product_a.id not in [p.id for p in catalog_service.list_products()]

    def test_history_keeps_snapshots(self, product_a, seller):
        sale = sales_service.record_sale([{"product_id": product_a.id, "quantity": 1}], "cash", seller.id)

        catalog_service.delete_product(product_a.id)

        assert sales_service.get_sale(sale.id).items[0].product_name == "Product A"
        movement = db.session.query(StockMovement).filter_by(sale_id=sale.id).one()
        assert movement.product_name == "Product A"

    def test_barcode_released(self, product_a, product_b):
        code = product_a.barcode
        catalog_service.delete_product(product_a.id)

        assert catalog_service.find_by_barcode(code) is None
        assert catalog_service.link_barcode(product_b.id, code).barcode == code


class TestListAndBarcode:
    def test_search_and_category(self, product_a, product_b, product_factory):
        product_factory("Oat Milk", 2.8, category="Dairy")

        assert [p.name for p in catalog_service.list_products(search="product")] == ["Product A", "Product B"]
        assert [p.name for p in catalog_service.list_products(category="dairy")] == ["Oat Milk"]
        assert [p.name for p in catalog_service.list_products(search=product_a.barcode[:6])] == ["Product A"]

    def test_sort_by_stock(self, product_a, product_b):
        assert [p.id for p in catalog_service.list_products(sort="stock_quantity")] == [product_b.id, product_a.id]

    def test_unknown_sort(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.list_products(sort="drop table")

    def test_find_by_barcode(self, product_a):
        assert catalog_service.find_by_barcode(product_a.barcode).id == product_a.id
        assert catalog_service.find_by_barcode("0000") is None
        assert catalog_service.find_by_barcode("  ") is None

    def test_link_barcode_in_use(self, product_a, product_b):
        with pytest.raises(ConflictError):
            catalog_service.link_barcode(product_b.id, product_a.barcode)

    def test_link_blank_barcode(self, product_a):
        with pytest.raises(ValidationError):
            catalog_service.link_barcode(product_a.id, " ")
