"""ID generation utilities."""

from datetime import datetime, timezone
from uuid import uuid4


def generate_run_id() -> str:
    """Generate unique run ID (UTC timestamp + short UUID)."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    uid = str(uuid4())[:8]
    return f"{timestamp}_{uid}"
