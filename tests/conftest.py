"""
Shared fixtures for the trajcore test suite.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest

from trajcore.constants import AU, EARTH_MASS, EARTH_RADIUS, SOLAR_MASS, SOLAR_RADIUS
from trajcore.data_models import Body, BodyArena, BodyKind
from trajcore.orbit import OrbitModel
from trajcore.physics import KeplerPropagator
from trajcore.settings import PipelineSettings
from trajcore.utils import reset_warnings


LEO_RADIUS = 7.0e6
CRAFT_MASS = 1000.0
MOON_MASS = 7.342e22
MOON_DISTANCE = 3.844e8


@pytest.fixture(autouse=True)
def fresh_warnings():
    """warn_once state is module-global; give every test a clean slate."""
    reset_warnings()
    yield
    reset_warnings()


@pytest.fixture
def small_settings():
    """Settings with low segment floors so sampling-heavy tests stay fast."""
    return PipelineSettings(
        min_orbit_segments=16,
        max_orbit_segments=1_000_000,
        min_arc_segments=8,
        max_arc_segments=1_000_000,
    )


@pytest.fixture
def earth_arena():
    """Earth at the origin with a 1000 kg craft on a 7000 km circular orbit."""
    arena = BodyArena()
    earth = arena.add(Body("Earth", BodyKind.TERRESTRIAL, EARTH_MASS, EARTH_RADIUS))
    arena.add(Body(
        "Craft", BodyKind.CRAFT, CRAFT_MASS, 10.0,
        parent=earth,
        orbit=OrbitModel.from_elements(LEO_RADIUS, 0.0, 0.0, earth),
    ))
    KeplerPropagator(arena).place_all()
    return arena


@pytest.fixture
def sun_earth_moon():
    """Static Sun / Earth / Moon / craft layout for SOI queries (no orbits)."""
    arena = BodyArena()
    sun = arena.add(Body("Sun", BodyKind.STAR, SOLAR_MASS, SOLAR_RADIUS))
    earth = arena.add(Body("Earth", BodyKind.TERRESTRIAL, EARTH_MASS, EARTH_RADIUS,
                           position=(AU, 0.0), parent=sun))
    arena.add(Body("Moon", BodyKind.MOON, MOON_MASS, 1.7374e6,
                   position=(AU + MOON_DISTANCE, 0.0), parent=earth))
    arena.add(Body("Craft", BodyKind.CRAFT, CRAFT_MASS, 10.0,
                   position=(AU + LEO_RADIUS, 0.0), parent=earth))
    return arena
