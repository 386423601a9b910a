from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every table in this service stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
