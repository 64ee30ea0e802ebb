#!/usr/bin/env python3
"""
Shared constants for the trajectory pipeline (SI units unless stated otherwise).

Keeping constants in one place helps ensure values are consistent across the
codebase and makes tuning easier. PipelineSettings copies its defaults from here.
"""
import math

TWO_PI = 2.0 * math.pi

# Physical constants
G = 6.67430e-11  # m^3 kg^-1 s^-2
EARTH_MASS = 5.972e24  # kg
SOLAR_MASS = 1.98847e30  # kg
EARTH_RADIUS = 6.371e6  # m
SOLAR_RADIUS = 6.96342e8  # m
AU = 1.495978707e11  # m

# Kepler solver
KEPLER_ITERATIONS = 10
HIGH_ECCENTRICITY_GUESS = 0.8  # above this the initial guess is E = pi

# Orbit sampling (full ellipses)
TARGET_CHORD_LENGTH = 1.0e6  # m; ~1000 km between consecutive samples
MIN_ORBIT_SEGMENTS = 16384
MAX_ORBIT_SEGMENTS = 200000

# Arc sampling (maneuver segments)
MIN_ARC_SEGMENTS = 64
MAX_ARC_SEGMENTS = 20000

# Sphere of influence
SOI_SCALE_FACTOR = 0.75
SOI_MASS_EXPONENT = 0.4  # (m / M)^(2/5)
SOI_RELEVANCE_MULTIPLE = 2.0
SOI_OPACITY_INSIDE = 0.8
SOI_OPACITY_BOUNDARY = 0.6
SOI_OPACITY_FLOOR = 0.2
FUTURE_PATH_SAMPLES = 32

# Rendering (viewport)
MOON_SCALE = 1.0  # visual multiplier for moon offsets from their parent
VIEW_WIDTH = 1100
VIEW_HEIGHT = 800
BACKGROUND_COLOR = (10, 12, 18)
PRE_BURN_COLOR = (0, 255, 255)
POST_BURN_COLOR = (255, 136, 0)
ORBIT_COLOR = (255, 255, 255)
MOON_ORBIT_COLOR = (170, 170, 170)
CRAFT_ORBIT_COLOR = (0, 255, 0)

# Camera zoom bounds (screen units per meter)
DEFAULT_SCALE = 1e-9
MIN_SCALE = 1e-13
MAX_SCALE = 1.0


# Safety: avoid drawing outside reasonable integer pixel ranges
SAFE_COORD_LIMIT = 30000
