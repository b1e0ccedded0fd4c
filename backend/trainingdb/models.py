# backend/trainingdb/models.py
"""
Flat access to every ORM model.

Scripts and the Alembic environment import from here instead of reaching into
each app. Model classes themselves live in trainingdb.apps.<app>.models.
"""

from .database import Base  # noqa: F401
from .apps.accounts.models import AccountRole, Client, Employee, User  # noqa: F401
from .apps.editions.models import (  # noqa: F401
    Course,
    CourseCategory,
    CourseEdition,
    CourseRegistration,
    EditionCounter,
    EditionStatus,
    RegistrationStatus,
)
from .apps.lessons.models import Lesson  # noqa: F401
from .apps.attendance.models import Attendance, AttendanceStatus  # noqa: F401
from .apps.certificates.models import Certificate  # noqa: F401
from .apps.tickets.models import (  # noqa: F401
    Ticket,
    TicketCategory,
    TicketMessage,
    TicketPriority,
    TicketStatus,
)
from .apps.notifications.models import (  # noqa: F401
    EmailLog,
    EmailStatus,
    Notification,
    NotificationRead,
    NotificationType,
)
