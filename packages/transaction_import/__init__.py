"""Public interface for the ``transaction_import`` package.

This module exposes the package's entry points and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import categorize_transactions, import_file, import_transactions
from .categories import Category
from .config import ImportSettings
from .models import (
    CanonicalTransaction,
    ImportReport,
    ImportStats,
    PipelineState,
    TransactionType,
)
from .pipeline import ImportPipeline

__all__ = [
    # API
    "categorize_transactions",
    "import_file",
    "import_transactions",
    "ImportPipeline",
    # Models
    "CanonicalTransaction",
    "Category",
    "ImportReport",
    "ImportSettings",
    "ImportStats",
    "PipelineState",
    "TransactionType",
]
