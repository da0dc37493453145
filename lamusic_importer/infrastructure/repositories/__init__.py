from .category_repository import CategoryRepository
from .product_log_repository import ProductLogRepository
from .product_repository import ProductRepository
from .supplier_repository import SupplierRepository

__all__ = [
    "CategoryRepository",
    "ProductLogRepository",
    "ProductRepository",
    "SupplierRepository",
]
