"""DateTime utilities for timestamp columns."""

from datetime import datetime, timezone

# Offset-naive UTC, for SQLAlchemy ``default=`` on TIMESTAMP WITHOUT TIME ZONE columns
utc_now_lambda = lambda: datetime.now(timezone.utc).replace(tzinfo=None)
