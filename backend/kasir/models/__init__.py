from .catalog import Product, Fee
from .inventory import StockHistory
from .contacts import Contact, LedgerEntry
from .sales import Transaction, PendingTransaction, SettlementEffect
from .settings import Setting
from .sync import SyncQueueItem

__all__ = [
    'Product', 'Fee',
    'StockHistory',
    'Contact', 'LedgerEntry',
    'Transaction', 'PendingTransaction', 'SettlementEffect',
    'Setting',
    'SyncQueueItem',
]
