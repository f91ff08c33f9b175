"""SQLite-backed key-value model for the monitor's persisted state.

Holds the latest tag, the last check time and the trigger event log when the
service runs without Redis.
"""

import time
from typing import Optional
from sqlmodel import SQLModel, Field


class StateEntry(SQLModel, table=True):
    """Generic key-value entry with optional expiration.

    Expiration is only used by the check lease; state and log entries never expire.
    """

    __tablename__ = "state_entries"

    key: str = Field(primary_key=True, max_length=512)
    value: str = Field(max_length=1000000)
    expires_at: Optional[float] = Field(default=None, index=True)  # Unix timestamp
    created_at: float = Field(default_factory=time.time)
