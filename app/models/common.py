from datetime import UTC, datetime

from sqlalchemy import Column, DateTime


def utc_now() -> datetime:
    """Timezone-aware UTC for TIMESTAMP WITH TIME ZONE columns."""
    return datetime.now(UTC)


def timestamp_column() -> Column:
    # A fresh Column per table; SQLAlchemy columns cannot be shared.
    return Column(DateTime(timezone=True), nullable=False)
