"""
Shared Pydantic models for migration router
"""
from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ...config import Settings
from ...migration import MigrationFilters, MigrationRunOptions, SafetyOptions, TransferMode


class MigrationFilterFields(BaseModel):
    search: Optional[str] = None
    artist_name: Optional[str] = None
    start_date: Optional[date] = None  # YYYY-MM-DD, inclusive
    end_date: Optional[date] = None  # YYYY-MM-DD, inclusive
    external_id: Optional[str] = None
    exact_match: bool = False

    def to_filters(self) -> MigrationFilters:
        return MigrationFilters(
            search=self.search or None,
            artist_name=self.artist_name or None,
            start_date=self.start_date,
            end_date=self.end_date,
            external_id=self.external_id or None,
            exact_match=self.exact_match
        )


class PrecheckRequest(MigrationFilterFields):
    target_ids: Optional[List[int]] = None


class StartMigrationRequest(MigrationFilterFields):
    target_ids: Optional[List[int]] = None
    batch_size: Optional[int] = Field(None, ge=1, le=1000)
    concurrency: Optional[int] = Field(None, ge=1, le=10)
    start_after_id: int = Field(0, ge=0)  # Resume the open scan after this artwork id
    transfer_mode: TransferMode = TransferMode.MOVE
    verify_after_copy: bool = True
    cleanup_source: bool = True

    def to_run_options(self, settings: Settings) -> MigrationRunOptions:
        return MigrationRunOptions(
            target_ids=self.target_ids or None,
            batch_size=self.batch_size or settings.migration_batch_size,
            concurrency=self.concurrency or settings.migration_concurrency,
            start_after_id=self.start_after_id,
            filters=self.to_filters(),
            safety=SafetyOptions(
                transfer_mode=self.transfer_mode,
                verify_after_copy=self.verify_after_copy,
                cleanup_source=self.cleanup_source
            )
        )


class MigrationControlRequest(BaseModel):
    action: Literal["pause", "resume", "cancel"]
    job_id: Optional[str] = None  # Defaults to the active migration job
