#!/usr/bin/env python3
"""
Schema bootstrap for the PostgreSQL pricing store.
Idempotent: creates missing tables and indexes, leaves existing ones alone.
Run once: python init_schema.py
"""
import sys

import psycopg2

from pricing_store import DB_CONFIG

TABLES = {
    'accommodations': """
        CREATE TABLE accommodations (
            id UUID PRIMARY KEY,
            price_per_night DECIMAL(12,2) NOT NULL CHECK (price_per_night >= 0),
            cleaning_fee DECIMAL(12,2) CHECK (cleaning_fee >= 0),
            min_stay INTEGER NOT NULL DEFAULT 1,
            max_stay INTEGER
        );""",
    'vehicles': """
        CREATE TABLE vehicles (
            id UUID PRIMARY KEY,
            price_per_day DECIMAL(12,2) NOT NULL CHECK (price_per_day >= 0),
            cleaning_fee DECIMAL(12,2) CHECK (cleaning_fee >= 0),
            insurance_included BOOLEAN NOT NULL DEFAULT FALSE
        );""",
    'rooms': """
        CREATE TABLE rooms (
            id UUID PRIMARY KEY,
            accommodation_id UUID NOT NULL REFERENCES accommodations(id),
            room_number VARCHAR(20),
            price_per_night DECIMAL(12,2) NOT NULL CHECK (price_per_night >= 0),
            is_active BOOLEAN NOT NULL DEFAULT TRUE
        );""",
    'availability_calendar': """
        CREATE TABLE availability_calendar (
            id SERIAL PRIMARY KEY,
            accommodation_id UUID,
            vehicle_id UUID,
            room_id UUID,
            date DATE NOT NULL,
            is_available BOOLEAN NOT NULL DEFAULT TRUE,
            price_override DECIMAL(12,2),
            minimum_stay INTEGER,
            maximum_stay INTEGER
        );""",
    'supplier_pricing_rules': """
        CREATE TABLE supplier_pricing_rules (
            id UUID PRIMARY KEY,
            accommodation_id UUID,
            vehicle_id UUID,
            room_id UUID,
            rule_type VARCHAR(20) NOT NULL CHECK (rule_type IN ('discount', 'seasonal', 'weekend')),
            adjustment_type VARCHAR(20) NOT NULL CHECK (adjustment_type IN ('percentage', 'fixed')),
            adjustment_value DECIMAL(12,2) NOT NULL,
            start_date DATE,
            end_date DATE,
            days_of_week INTEGER[],
            min_nights INTEGER,
            max_nights INTEGER,
            priority INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            CHECK (accommodation_id IS NULL OR vehicle_id IS NULL),
            CHECK (room_id IS NULL OR accommodation_id IS NOT NULL)
        );""",
    'admin_fees': """
        CREATE TABLE admin_fees (
            id SERIAL PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            fee_type VARCHAR(20) NOT NULL CHECK (fee_type IN ('percentage', 'fixed')),
            amount DECIMAL(12,2) NOT NULL DEFAULT 0,
            applies_to VARCHAR(20) NOT NULL DEFAULT 'both'
                CHECK (applies_to IN ('accommodation', 'vehicle', 'both')),
            calculation_type VARCHAR(20) NOT NULL DEFAULT 'booking'
                CHECK (calculation_type IN ('booking', 'listing')),
            is_active BOOLEAN NOT NULL DEFAULT TRUE
        );""",
}

# At most one calendar entry per (unit, date)
INDEXES = [
    ('availability_accommodation_date_unique',
     "CREATE UNIQUE INDEX availability_accommodation_date_unique ON availability_calendar "
     "(accommodation_id, date) WHERE room_id IS NULL AND accommodation_id IS NOT NULL;"),
    ('availability_vehicle_date_unique',
     "CREATE UNIQUE INDEX availability_vehicle_date_unique ON availability_calendar "
     "(vehicle_id, date) WHERE vehicle_id IS NOT NULL;"),
    ('availability_room_date_unique',
     "CREATE UNIQUE INDEX availability_room_date_unique ON availability_calendar "
     "(room_id, date) WHERE room_id IS NOT NULL;"),
    ('pricing_rules_active_scope',
     "CREATE INDEX pricing_rules_active_scope ON supplier_pricing_rules "
     "(accommodation_id, vehicle_id, room_id) WHERE is_active = TRUE;"),
]


def check_table_exists(cursor, table_name):
    cursor.execute("SELECT EXISTS (SELECT 1 FROM information_schema.tables WHERE table_name = %s);", (table_name,))
    return cursor.fetchone()[0]

def check_index_exists(cursor, index_name):
    cursor.execute("SELECT EXISTS (SELECT 1 FROM pg_indexes WHERE indexname = %s);", (index_name,))
    return cursor.fetchone()[0]

def create_tables(conn):
    cursor = conn.cursor()
    changes = []
    print("\n" + "="*70)
    print("TABLES")
    print("="*70)

    for table, ddl in TABLES.items():
        if check_table_exists(cursor, table):
            print(f"  ✅ {table} exists")
            continue
        print(f"  ❌ Creating {table}")
        cursor.execute(ddl)
        changes.append(f"Created {table}")
        print("  ✅ Created")

    cursor.close()
    return changes

def create_indexes(conn):
    cursor = conn.cursor()
    changes = []
    print("\n" + "="*70)
    print("INDEXES")
    print("="*70)

    for index_name, ddl in INDEXES:
        if check_index_exists(cursor, index_name):
            print(f"  ✅ {index_name} exists")
            continue
        print(f"  ❌ Creating {index_name}")
        cursor.execute(ddl)
        changes.append(f"Created {index_name}")
        print("  ✅ Created")

    cursor.close()
    return changes

def main():
    print("\n" + "="*70)
    print("RENTAL PRICING SCHEMA BOOTSTRAP")
    print("="*70)
    print(f"\nDatabase: {DB_CONFIG['database']}@{DB_CONFIG['host']}")

    conn = None
    try:
        conn = psycopg2.connect(**DB_CONFIG)
        print("\n✅ Connected to database")

        all_changes = []
        all_changes.extend(create_tables(conn))
        all_changes.extend(create_indexes(conn))

        if all_changes:
            conn.commit()
            print("\n✅ Committed")
            print("\nChanges Made:")
            for i, change in enumerate(all_changes, 1):
                print(f"  {i:2d}. {change}")
        else:
            print("\n✅ No changes needed - schema already up to date")
        return 0

    except psycopg2.Error as e:
        print(f"\n❌ Error: {e}")
        if conn is not None:
            conn.rollback()
        return 1
    finally:
        if conn is not None:
            conn.close()

if __name__ == '__main__':
    sys.exit(main())
