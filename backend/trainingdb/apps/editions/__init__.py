# backend/trainingdb/apps/editions/__init__.py
"""
Edition registry: course catalogue, per-client editions and registrations.

Models are registered through `trainingdb/__init__.py`; importing this
package has no side effects.
"""
