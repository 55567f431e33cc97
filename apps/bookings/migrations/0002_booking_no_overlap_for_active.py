"""No two active bookings of one machine may share a calendar day.

PostgreSQL gets a real exclusion constraint over inclusive date ranges.
SQLite, used in development and tests, gets triggers that abort with the
same name so callers can detect the violation the same way.
"""

from django.db import migrations

CONSTRAINT = 'booking_no_overlap_for_active'

POSTGRES_FORWARD = [
    'CREATE EXTENSION IF NOT EXISTS btree_gist;',
    f"""
    ALTER TABLE bookings_booking
    ADD CONSTRAINT {CONSTRAINT}
    EXCLUDE USING gist (
        machine_id WITH =,
        daterange(start_date, end_date, '[]') WITH &&
    )
    WHERE (status IN ('pending', 'confirmed'));
    """,
]

POSTGRES_REVERSE = [
    f'ALTER TABLE bookings_booking DROP CONSTRAINT IF EXISTS {CONSTRAINT};',
]

SQLITE_FORWARD = [
    f"""
    CREATE TRIGGER {CONSTRAINT}_insert
    BEFORE INSERT ON bookings_booking
    FOR EACH ROW WHEN NEW.status IN ('pending', 'confirmed')
    BEGIN
        SELECT RAISE(ABORT, '{CONSTRAINT}')
        WHERE EXISTS (
            SELECT 1 FROM bookings_booking AS b
            WHERE b.machine_id = NEW.machine_id
              AND b.status IN ('pending', 'confirmed')
              AND b.start_date <= NEW.end_date
              AND b.end_date >= NEW.start_date
        );
    END;
    """,
    f"""
    CREATE TRIGGER {CONSTRAINT}_update
    BEFORE UPDATE OF machine_id, start_date, end_date, status ON bookings_booking
    FOR EACH ROW WHEN NEW.status IN ('pending', 'confirmed')
    BEGIN
        SELECT RAISE(ABORT, '{CONSTRAINT}')
        WHERE EXISTS (
            SELECT 1 FROM bookings_booking AS b
            WHERE b.id <> NEW.id
              AND b.machine_id = NEW.machine_id
              AND b.status IN ('pending', 'confirmed')
              AND b.start_date <= NEW.end_date
              AND b.end_date >= NEW.start_date
        );
    END;
    """,
]

SQLITE_REVERSE = [
    f'DROP TRIGGER IF EXISTS {CONSTRAINT}_insert;',
    f'DROP TRIGGER IF EXISTS {CONSTRAINT}_update;',
]


def _run(schema_editor, statements):
    for statement in statements:
        schema_editor.execute(statement)


def add_exclusion(apps, schema_editor):
    vendor = schema_editor.connection.vendor
    if vendor == 'postgresql':
        _run(schema_editor, POSTGRES_FORWARD)
    elif vendor == 'sqlite':
        _run(schema_editor, SQLITE_FORWARD)


def drop_exclusion(apps, schema_editor):
    vendor = schema_editor.connection.vendor
    if vendor == 'postgresql':
        _run(schema_editor, POSTGRES_REVERSE)
    elif vendor == 'sqlite':
        _run(schema_editor, SQLITE_REVERSE)


class Migration(migrations.Migration):

    dependencies = [
        ('bookings', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(add_exclusion, reverse_code=drop_exclusion),
    ]
