"""Deadline and certificate-expiry reminder runner.

Safe to run from cron: every sweep skips editions and clients already
notified today, so repeated runs on the same day send nothing new.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from trainingdb.database import WriteSessionLocal
from trainingdb.apps.notifications import fanout


def run(now: Optional[datetime] = None, session_factory=WriteSessionLocal) -> dict:
    now = now or datetime.now(timezone.utc)
    db = session_factory()
    try:
        summary = {}
        for name, sweep in (
            ("deadline_reminders", fanout.run_deadline_sweep),
            ("expired_deadlines", fanout.run_expired_deadline_sweep),
            ("certificate_expiry", fanout.run_certificate_expiry_sweep),
        ):
            result = sweep(db, now=now)
            summary[name] = {
                "notifications": len(result.notification_ids),
                "emails_sent": result.emails_sent,
                "errors": list(result.errors),
            }
        return summary
    finally:
        db.close()


if __name__ == "__main__":
    result = run()
    print("Reminder runner completed:", result)
