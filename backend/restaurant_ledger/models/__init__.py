from .tenancy import Restaurant
from .accounting import Account, JournalEntry, JournalLine, ImmutableRecordError
from .inventory import Product, StockLedgerEntry
from .pos import PosTransaction, PosTransactionItem
from .reconciliation import ReconciliationSession, ReconciliationLock

__all__ = [
    'Restaurant',
    'Account', 'JournalEntry', 'JournalLine', 'ImmutableRecordError',
    'Product', 'StockLedgerEntry',
    'PosTransaction', 'PosTransactionItem',
    'ReconciliationSession', 'ReconciliationLock',
]
