import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from shielded_launchpad.allocation import to_display

class LaunchpadEncoder(json.JSONEncoder):
    """JSON encoder for launchpad snapshots: datetimes, decimals, enums and dataclasses"""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return to_display(obj)
        if isinstance(obj, Enum):
            return obj.value
        if is_dataclass(obj) and not isinstance(obj, type):
            return asdict(obj)
        return super().default(obj)
