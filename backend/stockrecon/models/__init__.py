from .inventory import InventoryBatch, ProductSummary, BATCH_ACTIVE, BATCH_INACTIVE
from .tracking import (
    SaleTrackingEntry,
    ReconciliationLogEntry,
    TRACKING_PENDING,
    TRACKING_RECONCILED,
    TRACKING_ERROR,
    TRACKING_STATUSES,
    RECORDED_VIA_LEGACY,
    RECORDED_VIA_RECONCILIATION,
    LOG_ACTION_DEDUCT,
    LOG_ACTION_PARTIAL,
    LOG_ACTION_ERROR,
)
from .devices import InvoiceSeries

__all__ = [
    'InventoryBatch', 'ProductSummary', 'BATCH_ACTIVE', 'BATCH_INACTIVE',
    'SaleTrackingEntry', 'ReconciliationLogEntry',
    'TRACKING_PENDING', 'TRACKING_RECONCILED', 'TRACKING_ERROR', 'TRACKING_STATUSES',
    'RECORDED_VIA_LEGACY', 'RECORDED_VIA_RECONCILIATION',
    'LOG_ACTION_DEDUCT', 'LOG_ACTION_PARTIAL', 'LOG_ACTION_ERROR',
    'InvoiceSeries',
]
