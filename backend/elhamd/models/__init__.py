from .branches import Branch
from .customers import Customer
from .documents import DocumentSequence
from .inventory import InventoryItem, Vehicle
from .invoices import Invoice, InvoiceItem
from .finance import Transaction, Payment

__all__ = [
    'Branch',
    'Customer',
    'DocumentSequence',
    'InventoryItem', 'Vehicle',
    'Invoice', 'InvoiceItem',
    'Transaction', 'Payment',
]
