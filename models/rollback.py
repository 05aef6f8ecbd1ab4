"""
Rollback and backup schemas.
"""

from pydantic import BaseModel, Field
from typing import Any, Optional
from enum import Enum
from datetime import datetime


class RollbackStrategy(str, Enum):
    """Which session entities a rollback removes."""
    ALL = "all"
    FAILED_ONLY = "failed_only"
    SELECTIVE = "selective"


class ImpactLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RollbackRequest(BaseModel):
    """Rollback trigger payload."""
    rollback_strategy: RollbackStrategy = RollbackStrategy.ALL
    backup_before_rollback: bool = True
    reason: Optional[str] = Field(None, max_length=500)


class RollbackResult(BaseModel):
    """
    Outcome of a rollback.
    
    Deletions are independent, so a partial failure lists what was and
    was not removed instead of stopping.
    """
    success: bool
    message: str
    rolled_back_products: int = 0
    restored_products: int = 0
    removed_ids: list[str] = Field(default_factory=list)
    failed_ids: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    backup_id: Optional[str] = None


class RollbackPreview(BaseModel):
    """What a rollback would touch, without touching it."""
    import_session_id: str
    strategy: RollbackStrategy
    total_products: int
    products_to_rollback: int
    products_to_restore: int = 0
    estimated_impact: ImpactLevel
    warnings: list[str] = Field(default_factory=list)


class ImportBackup(BaseModel):
    """Serialized copy of entities taken right before a rollback."""
    id: str
    import_session_id: str
    backup_data: list[dict[str, Any]] = Field(default_factory=list)
    product_count: int = 0
    created_at: Optional[datetime] = None


class ImportBackupSummary(BaseModel):
    """Backup listing entry (without the payload)."""
    id: str
    import_session_id: str
    product_count: int
    created_at: Optional[datetime] = None


class RestoreResult(BaseModel):
    """Outcome of restoring a backup."""
    success: bool
    backup_id: str
    restored_products: int
    restored_ids: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
