from __future__ import annotations

from sqlalchemy import DateTime

from trainingdb.database import Base


def _timestamp_defaults():
    for table in Base.metadata.sorted_tables:
        for column in table.columns:
            if not isinstance(column.type, DateTime) or not column.type.timezone:
                continue
            for default in (column.default, column.onupdate):
                if default is not None and default.is_callable:
                    yield f"{table.name}.{column.name}", default


def test_timezone_aware_columns_default_to_aware_datetimes():
    checked = []
    for name, default in _timestamp_defaults():
        value = default.arg(None)
        assert value.tzinfo is not None, name
        assert value.utcoffset().total_seconds() == 0, name
        checked.append(name)

    assert "course_editions.created_at" in checked
    assert "course_editions.updated_at" in checked
