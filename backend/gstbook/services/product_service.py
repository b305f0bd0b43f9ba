"""
Product Service
"""
from typing import Optional, List
from sqlalchemy.orm import Session

from gstbook.core.errors import NotFound, ValidationError
from gstbook.models import Product, GSTClassification
from gstbook.schemas import ProductCreate, ProductUpdate
from gstbook.services.calculations import classify_gst
from gstbook.services.feature_service import FeatureService


class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, product_id: int, team_id: int) -> Optional[Product]:
        return self.db.query(Product).filter(
            Product.id == product_id,
            Product.team_id == team_id
        ).first()

    def get_or_404(self, product_id: int, team_id: int) -> Product:
        product = self.get_by_id(product_id, team_id)
        if not product:
            raise NotFound("Product", product_id)
        return product

    def get_by_team(self, team_id: int, include_inactive: bool = False) -> List[Product]:
        query = self.db.query(Product).filter(Product.team_id == team_id)
        if not include_inactive:
            query = query.filter(Product.is_active == True)
        return query.order_by(Product.name).all()

    def is_sku_unique(self, sku: str, team_id: int, exclude_product_id: int = None) -> bool:
        query = self.db.query(Product.id).filter(Product.team_id == team_id, Product.sku == sku)
        if exclude_product_id:
            query = query.filter(Product.id != exclude_product_id)
        return query.first() is None

    def create(self, product_data: ProductCreate, team_id: int) -> Product:
        FeatureService(self.db).enforce_usage_limit(team_id, "products")
        if product_data.sku and not self.is_sku_unique(product_data.sku, team_id):
            raise ValidationError(f"SKU '{product_data.sku}' already exists",
                                  [{"field": "sku", "message": "SKU already exists"}])

        data = product_data.model_dump(exclude={"is_exempt"})
        product = Product(
            team_id=team_id,
            gst_classification=classify_gst(product_data.gst_rate, product_data.is_exempt),
            **data
        )
        self.db.add(product)
        self.db.flush()
        return product

    def update(self, product_id: int, team_id: int, product_data: ProductUpdate) -> Product:
        product = self.get_or_404(product_id, team_id)
        update_data = product_data.model_dump(exclude_unset=True)
        is_exempt = update_data.pop("is_exempt", None)

        sku = update_data.get("sku")
        if sku and not self.is_sku_unique(sku, team_id, exclude_product_id=product_id):
            raise ValidationError(f"SKU '{sku}' already exists",
                                  [{"field": "sku", "message": "SKU already exists"}])

        for key, value in update_data.items():
            setattr(product, key, value)

        if is_exempt is None:
            is_exempt = product.gst_classification == GSTClassification.EXEMPT.value
        product.gst_classification = classify_gst(product.gst_rate, is_exempt)
        self.db.flush()
        return product

    def delete(self, product_id: int, team_id: int) -> None:
        product = self.get_or_404(product_id, team_id)
        # Invoice lines keep their own copy of description and price
        product.is_active = False
        self.db.flush()
