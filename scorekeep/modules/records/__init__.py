"""
Record store adapter over the persisted gameplay, profile and reward tables.
"""

from scorekeep.modules.records.repository import RecordStore, UpsertResult, Watermark

__all__ = ["RecordStore", "UpsertResult", "Watermark"]
