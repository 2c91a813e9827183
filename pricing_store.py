"""
Read-only access to the rental data store.

Two backends expose the same interface:
  - PostgresStore: direct SQL over psycopg2 (DB_CONFIG)
  - RestStore:     PostgREST / Supabase REST API over requests

Both return parsed model objects; the pricing engine never sees rows,
connections or HTTP responses.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import os

import psycopg2
import requests
from dotenv import load_dotenv

from pricing_engine import (
    PricingEngineError,
    InvalidConfigurationError,
    RangePricer,
    UnitNotFoundError,
    load_calendar,
    load_fees,
    load_rooms,
    load_rules,
)
from pricing_models import AdminFee, AvailabilityEntry, BookableUnit, PricingRule, Room, UnitType

load_dotenv()

logger = logging.getLogger(__name__)


# =====================================================
# CONFIGURATION
# =====================================================

DB_CONFIG = {
    'host': os.environ.get('DB_HOST', 'localhost'),
    'port': int(os.environ.get('DB_PORT', 5432)),
    'database': os.environ.get('DB_NAME', 'rental_pricing'),
    'user': os.environ.get('DB_USER', 'postgres'),
    'password': os.environ.get('DB_PASS', ''),
}

STORE_BACKEND = os.environ.get('PRICING_STORE', 'postgres').lower().strip()
SUPABASE_URL = os.environ.get('SUPABASE_URL', '').rstrip('/')
SUPABASE_ANON_KEY = os.environ.get('SUPABASE_ANON_KEY', '')
STORE_TIMEOUT = int(os.environ.get('STORE_TIMEOUT', 10))

UNIT_TABLES = {
    UnitType.ACCOMMODATION: 'accommodations',
    UnitType.VEHICLE: 'vehicles',
}

SCOPE_COLUMNS = {
    UnitType.ACCOMMODATION: 'accommodation_id',
    UnitType.VEHICLE: 'vehicle_id',
    UnitType.ROOM: 'room_id',
}

CALENDAR_COLUMNS = 'id, date, is_available, price_override, minimum_stay, maximum_stay'


class StoreError(PricingEngineError):
    """The data store could not be reached or answered with an error."""
    pass


def parse_unit_type(value) -> UnitType:
    try:
        return UnitType(str(value).strip().lower())
    except ValueError:
        raise InvalidConfigurationError(f"Unknown unit type: {value!r}")


# =====================================================
# STORE INTERFACE
# =====================================================

class PricingStore:
    """Read-only collaborator that supplies engine snapshots."""

    def close(self) -> None:
        pass

    def fetch_unit(self, unit_type: UnitType, unit_id: str) -> BookableUnit:
        raise NotImplementedError

    def fetch_rooms(self, accommodation_id: str) -> List[Room]:
        raise NotImplementedError

    def fetch_calendar(
        self, unit_type: UnitType, unit_id: str, start: date, end: date
    ) -> List[AvailabilityEntry]:
        raise NotImplementedError

    def fetch_pricing_rules(self, unit_type: UnitType, unit_id: str) -> List[PricingRule]:
        raise NotImplementedError

    def fetch_admin_fees(self, unit_type: UnitType) -> List[AdminFee]:
        raise NotImplementedError

    def pricer_for(
        self,
        unit_type: UnitType,
        unit_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> RangePricer:
        """
        Assemble a RangePricer from one read of each collection.
        The calendar is only fetched when a date window is given.
        """
        unit = self.fetch_unit(unit_type, unit_id)
        calendar = self.fetch_calendar(unit_type, unit_id, start, end) if start and end else []
        rooms = self.fetch_rooms(unit.id) if unit_type is UnitType.ACCOMMODATION else []
        rules = self.fetch_pricing_rules(unit_type, unit_id)
        fees = self.fetch_admin_fees(unit_type)
        return RangePricer(unit, calendar=calendar, rules=rules, fees=fees, rooms=rooms)


# =====================================================
# POSTGRESQL BACKEND
# =====================================================

class PostgresStore(PricingStore):

    def __init__(self, db_connection):
        self.db = db_connection

    @classmethod
    def connect(cls, config: Optional[Dict[str, Any]] = None) -> 'PostgresStore':
        try:
            return cls(psycopg2.connect(**(config or DB_CONFIG)))
        except psycopg2.Error as e:
            raise StoreError(f"Database connection failed: {e}") from e

    def close(self) -> None:
        self.db.close()

    def _fetch_all(self, query: str, params: Sequence) -> List[Dict[str, Any]]:
        try:
            cursor = self.db.cursor()
            cursor.execute(query, params)
            columns = [desc[0] for desc in cursor.description]
            rows = cursor.fetchall()
        except psycopg2.Error as e:
            raise StoreError(f"Query failed: {e}") from e
        return [dict(zip(columns, row)) for row in rows]

    def fetch_unit(self, unit_type: UnitType, unit_id: str) -> BookableUnit:
        table = UNIT_TABLES.get(unit_type)
        if table is None:
            raise InvalidConfigurationError(f"Unit type {unit_type.value} cannot be booked directly")

        if unit_type is UnitType.VEHICLE:
            columns = 'id, price_per_day, cleaning_fee, insurance_included'
        else:
            columns = 'id, price_per_night, cleaning_fee, min_stay, max_stay'

        rows = self._fetch_all(f"SELECT {columns} FROM {table} WHERE id = %s", (unit_id,))
        if not rows:
            raise UnitNotFoundError(f"{unit_type.value.capitalize()} {unit_id} not found")
        try:
            return BookableUnit.from_row(rows[0], unit_type)
        except ValueError as e:
            raise InvalidConfigurationError(f"Malformed {table} row: {e}") from e

    def fetch_rooms(self, accommodation_id: str) -> List[Room]:
        rows = self._fetch_all(
            """SELECT id, accommodation_id, price_per_night, is_active
               FROM rooms
               WHERE accommodation_id = %s AND is_active = TRUE
               ORDER BY room_number""",
            (accommodation_id,)
        )
        return load_rooms(rows)

    def fetch_calendar(
        self, unit_type: UnitType, unit_id: str, start: date, end: date
    ) -> List[AvailabilityEntry]:
        column = SCOPE_COLUMNS[unit_type]
        query = f"""
            SELECT {CALENDAR_COLUMNS}
            FROM availability_calendar
            WHERE {column} = %s AND date >= %s AND date <= %s
        """
        if unit_type is UnitType.ACCOMMODATION:
            query += " AND room_id IS NULL"
        query += " ORDER BY date"

        rows = self._fetch_all(query, (unit_id, start, end))
        logger.info(f"Calendar {unit_type.value}:{unit_id} {start}..{end}: {len(rows)} entries")
        return load_calendar(rows)

    def fetch_pricing_rules(self, unit_type: UnitType, unit_id: str) -> List[PricingRule]:
        """Active rules touching the unit, room rules included, priority DESC."""
        column = SCOPE_COLUMNS[unit_type]
        rows = self._fetch_all(
            f"""SELECT id, accommodation_id, vehicle_id, room_id,
                       rule_type, adjustment_type, adjustment_value,
                       start_date, end_date, days_of_week,
                       min_nights, max_nights, priority, is_active
                FROM supplier_pricing_rules
                WHERE {column} = %s AND is_active = TRUE
                ORDER BY priority DESC""",
            (unit_id,)
        )
        logger.info(f"Pricing rules {unit_type.value}:{unit_id}: {len(rows)} loaded")
        return load_rules(rows)

    def fetch_admin_fees(self, unit_type: UnitType) -> List[AdminFee]:
        applies_to = 'vehicle' if unit_type is UnitType.VEHICLE else 'accommodation'
        rows = self._fetch_all(
            """SELECT name, fee_type, amount, applies_to, calculation_type, is_active
               FROM admin_fees
               WHERE is_active = TRUE AND calculation_type = 'booking'
               AND applies_to IN ('both', %s)""",
            (applies_to,)
        )
        return load_fees(rows)


# =====================================================
# POSTGREST / SUPABASE BACKEND
# =====================================================

class RestStore(PricingStore):

    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        api_key: str = SUPABASE_ANON_KEY,
        timeout: int = STORE_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        if not base_url:
            raise InvalidConfigurationError(
                "REST store is not configured. Set the SUPABASE_URL environment variable."
            )
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Accept': 'application/json',
        })

    def close(self) -> None:
        self.session.close()

    def _get(self, table: str, params: List[Tuple[str, str]]) -> List[Dict[str, Any]]:
        url = f'{self.base_url}/rest/v1/{table}'
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            logger.warning(f"Store request to {table} failed: {e}")
            raise StoreError(f"Store unreachable: {e}") from e

        if not resp.ok:
            logger.warning(f"Store request to {table} failed: HTTP {resp.status_code}")
            raise StoreError(f"Store answered HTTP {resp.status_code} for {table}")

        return resp.json() or []

    def fetch_unit(self, unit_type: UnitType, unit_id: str) -> BookableUnit:
        table = UNIT_TABLES.get(unit_type)
        if table is None:
            raise InvalidConfigurationError(f"Unit type {unit_type.value} cannot be booked directly")

        rows = self._get(table, [('select', '*'), ('id', f'eq.{unit_id}'), ('limit', '1')])
        if not rows:
            raise UnitNotFoundError(f"{unit_type.value.capitalize()} {unit_id} not found")
        try:
            return BookableUnit.from_row(rows[0], unit_type)
        except ValueError as e:
            raise InvalidConfigurationError(f"Malformed {table} row: {e}") from e

    def fetch_rooms(self, accommodation_id: str) -> List[Room]:
        rows = self._get('rooms', [
            ('select', 'id,accommodation_id,price_per_night,is_active'),
            ('accommodation_id', f'eq.{accommodation_id}'),
            ('is_active', 'eq.true'),
            ('order', 'room_number'),
        ])
        return load_rooms(rows)

    def fetch_calendar(
        self, unit_type: UnitType, unit_id: str, start: date, end: date
    ) -> List[AvailabilityEntry]:
        params = [
            ('select', CALENDAR_COLUMNS.replace(' ', '')),
            (SCOPE_COLUMNS[unit_type], f'eq.{unit_id}'),
            ('date', f'gte.{start.isoformat()}'),
            ('date', f'lte.{end.isoformat()}'),
            ('order', 'date'),
        ]
        if unit_type is UnitType.ACCOMMODATION:
            params.append(('room_id', 'is.null'))

        rows = self._get('availability_calendar', params)
        logger.info(f"Calendar {unit_type.value}:{unit_id} {start}..{end}: {len(rows)} entries")
        return load_calendar(rows)

    def fetch_pricing_rules(self, unit_type: UnitType, unit_id: str) -> List[PricingRule]:
        rows = self._get('supplier_pricing_rules', [
            ('select', '*'),
            (SCOPE_COLUMNS[unit_type], f'eq.{unit_id}'),
            ('is_active', 'eq.true'),
            ('order', 'priority.desc'),
        ])
        logger.info(f"Pricing rules {unit_type.value}:{unit_id}: {len(rows)} loaded")
        return load_rules(rows)

    def fetch_admin_fees(self, unit_type: UnitType) -> List[AdminFee]:
        applies_to = 'vehicle' if unit_type is UnitType.VEHICLE else 'accommodation'
        rows = self._get('admin_fees', [
            ('select', '*'),
            ('is_active', 'eq.true'),
            ('calculation_type', 'eq.booking'),
            ('applies_to', f'in.(both,{applies_to})'),
        ])
        return load_fees(rows)


def get_store() -> PricingStore:
    if STORE_BACKEND == 'rest':
        return RestStore()
    return PostgresStore.connect()
