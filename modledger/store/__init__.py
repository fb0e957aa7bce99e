"""
ModLedger 记录库
"""

from modledger.store.record_store import RecordStore

__all__ = ["RecordStore"]
