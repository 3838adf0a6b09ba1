"""
Default status catalog.

These four entries are seeded with is_default=True: they can be renamed,
recoloured or deactivated by an admin, but never deleted.
"""

from machine_monitor.models.status import StatusColor

DEFAULT_STATUS_TYPES: list[dict] = [
    {"name": "Running", "color": StatusColor.GREEN, "display_order": 1},
    {"name": "Idle", "color": StatusColor.YELLOW, "display_order": 2},
    {"name": "Fault", "color": StatusColor.RED, "display_order": 3},
    {"name": "Under Maintenance", "color": StatusColor.BLUE, "display_order": 4},
]
