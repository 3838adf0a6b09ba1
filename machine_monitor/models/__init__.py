# Import all models here so Alembic's env.py can discover them via Base.metadata
from machine_monitor.models.base import Base  # noqa: F401
from machine_monitor.models.profile import Profile, UserRole  # noqa: F401
from machine_monitor.models.department import Department, DepartmentLeader  # noqa: F401
from machine_monitor.models.machine import Machine, MachineOperator  # noqa: F401
from machine_monitor.models.status import StatusColor, StatusHistory, StatusType  # noqa: F401
from machine_monitor.models.audit import AuditEvent  # noqa: F401
