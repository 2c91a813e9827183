"""Tests for approximate map pins and map bounds."""

import pytest

from location_privacy import OFFSET_DEGREES, display_coordinates, map_bounds


def test_exact_location_passes_through():
    assert display_coordinates(48.85, 2.35, True, 'acc-1') == {
        'latitude': 48.85, 'longitude': 2.35, 'isApproximate': False,
    }


@pytest.mark.parametrize('lat, lng', [(None, 2.35), (48.85, None), (None, None)])
def test_missing_coordinates(lat, lng):
    assert display_coordinates(lat, lng, False, 'acc-1') is None


def test_approximate_pin_stays_within_offset():
    coords = display_coordinates(48.85, 2.35, False, 'acc-1')
    assert coords['isApproximate'] is True
    assert abs(coords['latitude'] - 48.85) <= OFFSET_DEGREES / 2
    assert abs(coords['longitude'] - 2.35) <= OFFSET_DEGREES / 2


def test_approximate_pin_is_stable_per_unit():
    first = display_coordinates(48.85, 2.35, False, 'acc-1')
    again = display_coordinates(48.85, 2.35, False, 'acc-1')
    other = display_coordinates(48.85, 2.35, False, 'acc-2')

    assert first == again
    assert first != other


def test_bounds_cover_all_pins():
    bounds = map_bounds([
        {'id': 'a', 'latitude': 10.0, 'longitude': 20.0},
        {'id': 'b', 'latitude': 12.0, 'longitude': 18.0},
        {'id': 'c', 'latitude': None, 'longitude': 19.0},
    ])
    assert bounds['southwest'] == {'latitude': 10.0, 'longitude': 18.0}
    assert bounds['northeast'] == {'latitude': 12.0, 'longitude': 20.0}
    assert bounds['center'] == {'latitude': 11.0, 'longitude': 19.0}


def test_bounds_use_displayed_positions():
    point = {'id': 'hidden', 'latitude': 10.0, 'longitude': 20.0, 'show_exact_location': False}
    shown = display_coordinates(10.0, 20.0, False, 'hidden')
    bounds = map_bounds([point])
    assert bounds['southwest'] == {'latitude': shown['latitude'], 'longitude': shown['longitude']}


def test_bounds_of_nothing():
    assert map_bounds([]) is None


@pytest.mark.parametrize('flag', ['false', 'no', 1, None])
def test_non_boolean_flag_is_rejected(flag):
    with pytest.raises(TypeError):
        display_coordinates(48.85, 2.35, flag, 'acc-1')
