from .catalog import Category, Supplier, Employee, PaymentMethod, Product
from .supplies import Supply, SupplyDetail
from .stockouts import Stockout, StockoutDetail
from .sales import Sale, SaleDetail
from .adjustments import StockAdjustment, StockAdjustmentDetail
from .returns import ReturnAndReplacement

__all__ = [
    'Category', 'Supplier', 'Employee', 'PaymentMethod', 'Product',
    'Supply', 'SupplyDetail',
    'Stockout', 'StockoutDetail',
    'Sale', 'SaleDetail',
    'StockAdjustment', 'StockAdjustmentDetail',
    'ReturnAndReplacement',
]
