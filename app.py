"""
Rental Pricing Engine - Flask Backend
=====================================
Thin HTTP shell around pricing_engine.py.

Each request reads one snapshot (unit, calendar window, pricing rules,
rooms, admin fees) from the configured store and hands it to the engine.
No pricing arithmetic happens in this file.

Routes:
  POST /calculate                              stay quote + price breakdown
  POST /api/availability                       date range bookability
  GET  /api/listing-price/<unit_type>/<id>     browse-time display price
  POST /api/display-coordinates                privacy-aware map pin
  POST /api/map-bounds                         bounds for a set of pins
"""

from flask import Flask, request, jsonify
from flask_cors import CORS
from functools import wraps
import json
import os
import logging

from pricing_engine import (
    CalendarResolver,
    InvalidConfigurationError,
    InvalidDateRangeError,
    PricingEngineError,
    UnitNotFoundError,
    count_nights,
)
from pricing_models import InvalidRowError, UnitType, parse_day
from pricing_store import StoreError, get_store, parse_unit_type
from location_privacy import display_coordinates, map_bounds

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)


# =====================================================
# ERROR HANDLING
# =====================================================

def error_response(message: str, status: int):
    return jsonify({
        'success': False,
        'error': message,
        'bookable': False,
        'reasons': [],
        'breakdown': None,
    }), status


def json_errors(f):
    """Map engine and store failures to JSON error responses."""
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except UnitNotFoundError as e:
            logger.warning(f"{request.path}: {e}")
            return error_response(str(e), 404)
        except StoreError as e:
            logger.error(f"{request.path}: store error: {e}", exc_info=True)
            return error_response('Data store unavailable. Please try again later.', 503)
        except PricingEngineError as e:
            logger.warning(f"{request.path}: rejected: {e}")
            return error_response(str(e), 400)
        except Exception as e:
            logger.error(f"{request.path}: unexpected error: {e}", exc_info=True)
            return error_response(f'Internal error: {str(e)}', 500)
    return decorated


# =====================================================
# PAYLOAD HELPERS
# =====================================================

def _extract_stay_block(payload: dict) -> dict:
    """
    Validate the unit/date part of a request payload.
    Raises PricingEngineError subclasses on caller misuse.
    """
    missing = [f for f in ('unit_type', 'unit_id', 'check_in', 'check_out')
               if payload.get(f) in (None, '')]
    if missing:
        raise InvalidConfigurationError(f"Missing required fields: {', '.join(missing)}")

    unit_type = parse_unit_type(payload['unit_type'])
    if unit_type is UnitType.ROOM:
        raise InvalidConfigurationError("Rooms are booked through their accommodation (selected_rooms)")

    try:
        check_in = parse_day(payload['check_in'])
        check_out = parse_day(payload['check_out'])
    except InvalidRowError as e:
        raise InvalidDateRangeError(str(e)) from e
    count_nights(check_in, check_out)

    selected_rooms = payload.get('selected_rooms') or []
    if not isinstance(selected_rooms, list):
        raise InvalidConfigurationError("selected_rooms must be a list of room ids")

    return {
        'unit_type': unit_type,
        'unit_id': str(payload['unit_id']).strip(),
        'check_in': check_in,
        'check_out': check_out,
        'selected_rooms': [str(r) for r in selected_rooms],
    }


# =====================================================
# CALCULATION ENDPOINT
# =====================================================

@app.route('/calculate', methods=['POST'])
@json_errors
def calculate():
    payload = request.get_json(silent=True)
    if not payload:
        logger.error("Empty payload received")
        return error_response('No data provided', 400)

    logger.info(f"Calculate request: {json.dumps(payload, default=str)}")
    stay = _extract_stay_block(payload)

    store = get_store()
    try:
        pricer = store.pricer_for(
            stay['unit_type'], stay['unit_id'], stay['check_in'], stay['check_out']
        )
        quote = pricer.quote(stay['check_in'], stay['check_out'], stay['selected_rooms'])
    finally:
        store.close()

    if not quote.bookable:
        logger.info(f"Stay not bookable for {stay['unit_type'].value}:{stay['unit_id']}: {quote.reasons}")

    return jsonify({'success': True, **quote.as_dict()})


@app.route('/api/availability', methods=['POST'])
@json_errors
def availability():
    payload = request.get_json(silent=True) or {}
    stay = _extract_stay_block(payload)

    store = get_store()
    try:
        calendar = store.fetch_calendar(
            stay['unit_type'], stay['unit_id'], stay['check_in'], stay['check_out']
        )
    finally:
        store.close()

    available = CalendarResolver(calendar).is_date_range_available(stay['check_in'], stay['check_out'])
    return jsonify({'success': True, 'available': available})


@app.route('/api/listing-price/<unit_type>/<unit_id>', methods=['GET'])
@json_errors
def listing_price(unit_type, unit_id):
    store = get_store()
    try:
        pricer = store.pricer_for(parse_unit_type(unit_type), unit_id)
    finally:
        store.close()

    return jsonify({'success': True, **pricer.listing_price().as_dict()})


# =====================================================
# MAP DISPLAY
# =====================================================

@app.route('/api/display-coordinates', methods=['POST'])
def display_coords():
    data = request.get_json(silent=True) or {}
    try:
        coords = display_coordinates(
            data.get('latitude'),
            data.get('longitude'),
            data.get('show_exact_location', True),
            str(data.get('unit_id', '')),
        )
        return jsonify({'coordinates': coords})
    except (TypeError, ValueError) as e:
        logger.error(f"Display coordinates error: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 400


@app.route('/api/map-bounds', methods=['POST'])
def bounds():
    data = request.get_json(silent=True) or {}
    try:
        return jsonify({'bounds': map_bounds(data.get('points', []))})
    except (TypeError, ValueError, AttributeError) as e:
        logger.error(f"Map bounds error: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 400


# =====================================================
# ENTRY POINT
# =====================================================

if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=int(os.environ.get('PORT', 5001)))
