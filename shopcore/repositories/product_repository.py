"""
Product Repository - Data Access Layer
"""
from typing import Optional
from sqlalchemy.orm import Session

from shopcore.models.product import Product, ProductVariant


class ProductRepository:
    """Repository for Product and ProductVariant reads and row locks"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, product_id: int) -> Optional[Product]:
        """Get product by ID"""
        return self.db.query(Product).filter(Product.id == product_id).first()

    def get_variant(self, variant_id: int) -> Optional[ProductVariant]:
        """Get variant by ID"""
        return self.db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()

    def lock_product(self, product_id: int) -> Optional[Product]:
        """
        Load a product with a row lock held until the transaction ends

        populate_existing makes sure the snapshot is re-read from the row
        even when the product is already in the identity map.
        """
        return (
            self.db.query(Product)
            .filter(Product.id == product_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def lock_variant(self, variant_id: int) -> Optional[ProductVariant]:
        """Load a variant with a row lock held until the transaction ends"""
        return (
            self.db.query(ProductVariant)
            .filter(ProductVariant.id == variant_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
