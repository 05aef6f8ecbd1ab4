"""
Supplier file parsing and row normalization.
"""

from parsers.spreadsheet_parser import (
    parse_spreadsheet,
    suggest_column_mapping,
    SpreadsheetParseResult,
)
from parsers.data_normalizer import (
    DataNormalizer,
    NormalizedRow,
)

__all__ = [
    "parse_spreadsheet",
    "suggest_column_mapping",
    "SpreadsheetParseResult",
    "DataNormalizer",
    "NormalizedRow",
]
