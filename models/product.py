"""
Catalog schemas: column mappings, cleaning rules and normalized products.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from enum import Enum
from decimal import Decimal

from models.base import BaseSchema, TimestampMixin


# Canonical fields that must map to a source column
REQUIRED_FIELDS = ("brand", "product_name", "wholesale_price")

OPTIONAL_FIELDS = (
    "variant_size",
    "ean",
    "currency",
    "pack_size",
    "supplier_name",
    "last_purchase_price",
    "availability",
    "notes",
)


class CaseStyle(str, Enum):
    """Case folding applied to free-text fields."""
    LOWER = "lower"
    UPPER = "upper"
    TITLE = "title"


class ColumnMapping(BaseSchema):
    """
    Canonical field name -> source spreadsheet column name.
    
    Required: brand, product_name, wholesale_price
    """
    
    brand: Optional[str] = Field(None, description="Column holding the brand")
    product_name: Optional[str] = Field(None, description="Column holding the product name")
    wholesale_price: Optional[str] = Field(None, description="Column holding the wholesale price")
    variant_size: Optional[str] = None
    ean: Optional[str] = None
    currency: Optional[str] = None
    pack_size: Optional[str] = None
    supplier_name: Optional[str] = None
    last_purchase_price: Optional[str] = None
    availability: Optional[str] = None
    notes: Optional[str] = None
    
    def missing_required(self) -> list[str]:
        """Required canonical fields with no usable source column."""
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]
    
    @property
    def is_usable(self) -> bool:
        return not self.missing_required()
    
    def mapped_columns(self) -> dict[str, str]:
        """Only the fields that point at a column."""
        return {
            name: column
            for name, column in self.model_dump().items()
            if column
        }


class CleaningRules(BaseSchema):
    """Options for the cleaning rules applied to every row."""
    
    trim_whitespace: bool = True
    normalize_case: Optional[CaseStyle] = Field(
        CaseStyle.TITLE,
        description="Case applied to brand, product name, supplier and notes"
    )
    remove_special_chars: bool = False
    normalize_sizes: bool = True
    parse_multipacks: bool = True


class NormalizedProductRecord(BaseModel):
    """
    Canonical product produced by the normalizer.
    
    Frozen: once validated, a record is only ever copied, never edited.
    """
    
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)
    
    supplier_id: Optional[str] = None
    brand: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1)
    variant_size: Optional[str] = None
    ean: Optional[str] = Field(None, pattern=r"^(\d{8}|\d{12,14})$")
    wholesale_price: Decimal = Field(..., ge=0, decimal_places=2)
    currency: str = "EUR"
    pack_size: int = Field(1, ge=1)
    supplier_name: str = ""
    last_purchase_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    availability: bool = True
    notes: Optional[str] = None
    
    def to_row(self, import_session_id: Optional[str] = None) -> dict:
        """Serialize for the normalized_products table."""
        row = self.model_dump(mode="json")
        if import_session_id:
            row["import_session_id"] = import_session_id
        return row


class NormalizedProductResponse(NormalizedProductRecord, TimestampMixin):
    """Normalized product as stored."""
    
    model_config = ConfigDict(frozen=False, from_attributes=True)
    
    id: str
    import_session_id: Optional[str] = None
    updated_by_session_id: Optional[str] = None
    
    @field_validator("ean", mode="before")
    @classmethod
    def blank_ean_is_none(cls, v):
        """Stored rows may carry an empty string instead of null."""
        return v or None
