from .catalog import Currency, Customer, ProductCategory, User
from .inventory import Product, InventoryMovement
from .invoices import Invoice, InvoiceItem, InvoiceSequence

__all__ = [
    'Currency', 'Customer', 'ProductCategory', 'User',
    'Product', 'InventoryMovement',
    'Invoice', 'InvoiceItem', 'InvoiceSequence',
]
