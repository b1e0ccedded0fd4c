# backend/trainingdb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in trainingdb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models            # clients / users / employees
from .apps.editions import models as editions_models            # courses, editions, registrations
from .apps.lessons import models as lessons_models              # lesson ledger
from .apps.attendance import models as attendance_models        # attendance rows
from .apps.certificates import models as certificates_models    # issued certificates
from .apps.tickets import models as tickets_models              # support tickets + messages
from .apps.notifications import models as notifications_models  # notifications + email log

__all__ = [
    "accounts_models",
    "editions_models",
    "lessons_models",
    "attendance_models",
    "certificates_models",
    "tickets_models",
    "notifications_models",
]
