"""
Spreadsheet reader for supplier uploads.

Reads CSV or Excel into raw row dicts (header -> cell text) and suggests
a column mapping from the header names.
"""

from dataclasses import dataclass, field
from io import BytesIO, StringIO
from pathlib import Path
from typing import Optional, Union
import structlog

import pandas as pd

from exceptions import SpreadsheetParseError
from models.import_session import FileType
from models.product import ColumnMapping
from utils.text_utils import normalize_header

logger = structlog.get_logger(__name__)


EXCEL_EXTENSIONS = {".xlsx", ".xlsm", ".xls"}
CSV_EXTENSIONS = {".csv", ".txt"}

# Header aliases per canonical field (compared after normalize_header)
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "brand": ("brand", "brand name", "merk", "marque", "manufacturer"),
    "product_name": (
        "product name", "product", "name", "description", "title",
        "item", "item name", "productnaam", "designation",
    ),
    "wholesale_price": (
        "wholesale price", "wholesale", "price", "unit price", "cost",
        "cost price", "net price", "buy price", "prix", "prijs",
    ),
    "variant_size": ("size", "variant size", "variant", "volume", "content", "inhoud", "contenance"),
    "ean": ("ean", "ean13", "ean code", "barcode", "gtin", "upc"),
    "currency": ("currency", "cur", "valuta", "devise"),
    "pack_size": ("pack size", "pack", "units per pack", "qty per pack", "multipack"),
    "supplier_name": ("supplier", "supplier name", "vendor", "leverancier", "fournisseur"),
    "last_purchase_price": ("last purchase price", "last price", "previous price"),
    "availability": ("availability", "available", "stock", "in stock", "status"),
    "notes": ("notes", "note", "remarks", "comments", "comment"),
}


@dataclass
class SpreadsheetParseResult:
    """Rows read from one uploaded file."""
    filename: str
    file_type: FileType
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, Optional[str]]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def has_data(self) -> bool:
        """True if any data row was read."""
        return len(self.rows) > 0


def detect_file_type(filename: str) -> FileType:
    """
    Pick the reader from the file extension.

    Raises:
        SpreadsheetParseError: Unsupported extension
    """
    suffix = Path(filename).suffix.lower()
    if suffix in EXCEL_EXTENSIONS:
        return FileType.EXCEL
    if suffix in CSV_EXTENSIONS:
        return FileType.CSV
    raise SpreadsheetParseError(
        message=f"Unsupported file type: {suffix or 'none'}",
        details={"filename": filename, "supported": sorted(EXCEL_EXTENSIONS | CSV_EXTENSIONS)}
    )


def parse_spreadsheet(
    file: Union[str, Path, bytes, BytesIO],
    filename: str,
    sheet_name: Union[str, int] = 0
) -> SpreadsheetParseResult:
    """
    Parse a supplier CSV or Excel file.

    Every cell is kept as text so the cleaning rules see what the
    supplier typed (no float EANs, no locale-mangled prices).

    Args:
        file: Path, raw bytes or file-like object
        filename: Original filename (used to pick the reader)
        sheet_name: Excel sheet to read (first sheet by default)

    Returns:
        SpreadsheetParseResult with headers and rows

    Raises:
        SpreadsheetParseError: If the file cannot be read
    """
    file_type = detect_file_type(filename)
    logger.info("parsing_spreadsheet", filename=filename, file_type=file_type.value)

    if isinstance(file, bytes):
        file = BytesIO(file)

    try:
        if file_type == FileType.EXCEL:
            df = pd.read_excel(file, sheet_name=sheet_name, dtype=str, engine="openpyxl")
        else:
            df = _read_csv(file)
    except SpreadsheetParseError:
        raise
    except Exception as e:
        logger.error("spreadsheet_read_failed", filename=filename, error=str(e))
        raise SpreadsheetParseError(
            message="Failed to read spreadsheet",
            details={"filename": filename, "original_error": str(e)}
        )

    # Drop fully blank rows and unnamed filler columns
    df = df.dropna(how="all")
    df = df.loc[:, [not str(c).startswith("Unnamed:") for c in df.columns]]
    df.columns = [str(c).strip() for c in df.columns]

    df = df.astype(object).where(pd.notna(df), None)

    rows = [
        {column: _cell_text(value) for column, value in record.items()}
        for record in df.to_dict(orient="records")
    ]

    result = SpreadsheetParseResult(
        filename=filename,
        file_type=file_type,
        headers=list(df.columns),
        rows=rows,
    )

    logger.info(
        "spreadsheet_parsed",
        filename=filename,
        headers=len(result.headers),
        rows=result.row_count
    )

    return result


def _read_csv(file: Union[str, Path, BytesIO]) -> pd.DataFrame:
    """Read CSV text, sniffing ',' vs ';' delimiters and common encodings."""
    if isinstance(file, (str, Path)):
        raw = Path(file).read_bytes()
    else:
        raw = file.read()

    for encoding in ("utf-8-sig", "cp1252", "latin-1"):
        try:
            text = raw.decode(encoding)
            break
        except UnicodeDecodeError:
            continue
    else:
        raise SpreadsheetParseError(message="Could not decode CSV file")

    header = text.splitlines()[0] if text else ""
    delimiter = ";" if header.count(";") > header.count(",") else ","

    return pd.read_csv(
        StringIO(text),
        sep=delimiter,
        dtype=str,
        keep_default_na=False,
        na_values=[""],
        skip_blank_lines=True,
    )


def _cell_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ===================
# COLUMN MAPPING
# ===================

def suggest_column_mapping(headers: list[str]) -> ColumnMapping:
    """
    Suggest canonical field -> header from header names.

    Exact alias matches win over partial ones; a header is used for at
    most one field.
    """
    normalized = {header: normalize_header(header) for header in headers}
    used: set[str] = set()
    suggestion: dict[str, str] = {}

    # Two passes: exact alias matches, then aliases contained in the header
    for exact in (True, False):
        for canonical, aliases in COLUMN_ALIASES.items():
            if canonical in suggestion:
                continue
            for header, key in normalized.items():
                if header in used or not key:
                    continue
                matched = key in aliases if exact else any(
                    len(alias) > 3 and alias in key for alias in aliases
                )
                if matched:
                    suggestion[canonical] = header
                    used.add(header)
                    break

    logger.debug("column_mapping_suggested", mapped=len(suggestion), headers=len(headers))

    return ColumnMapping(**suggestion)
