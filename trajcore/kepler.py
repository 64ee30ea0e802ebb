#!/usr/bin/env python3
"""
Kepler equation solver and anomaly conversions.

Kepler's equation M = E - e*sin(E) has no closed-form inverse, so the eccentric
anomaly E is found with Newton-Raphson. The iteration count is fixed rather than
convergence-checked: this runs per trajectory point per frame, and a bounded,
predictable cost matters more than squeezing out the last digits.

Numerical notes
- For e <= 0.8 the initial guess is E = M; above that it is E = pi, because the
  linear guess converges poorly near periapsis for very elongated orbits.
- Ten iterations reproduce M to well under 1e-3 rad for e in [0, 0.95]. Nothing
  is raised if an orbit closer to parabolic under-converges; that is a known
  approximation of the model, not a failure mode.

Units: radians throughout.
"""
import math

from .constants import TWO_PI, KEPLER_ITERATIONS, HIGH_ECCENTRICITY_GUESS


def normalize_angle(angle: float) -> float:
    """Wrap an angle into [0, 2*pi)."""
    a = math.fmod(angle, TWO_PI)
    if a < 0.0:
        a += TWO_PI
    # fmod of a tiny negative value can round back up to exactly 2*pi
    if a >= TWO_PI:
        a = 0.0
    return a


def solve_kepler(mean_anomaly: float, e: float, iterations: int = KEPLER_ITERATIONS) -> float:
    """
    Solve Kepler's equation for the eccentric anomaly.

    Args:
        mean_anomaly: Mean anomaly M in radians (any real value; normalized first).
        e: Eccentricity, 0 <= e < 1.
        iterations: Fixed number of Newton-Raphson steps.

    Returns:
        Eccentric anomaly E in radians for the normalized M.
    """
    M = normalize_angle(mean_anomaly)
    E = math.pi if e > HIGH_ECCENTRICITY_GUESS else M
    for _ in range(iterations):
        f = E - e * math.sin(E) - M
        df = 1.0 - e * math.cos(E)
        E = E - f / df
    return E


def unwrapped_eccentric_anomaly(mean_anomaly: float, e: float,
                                iterations: int = KEPLER_ITERATIONS) -> float:
    """
    Eccentric anomaly for an unbounded mean anomaly, keeping whole revolutions.

    E - M is 2*pi periodic, so the revolution count carries over unchanged. Arc
    sampling uses this so a window spanning periapsis (or several orbits) maps
    to a monotonically increasing range of E.
    """
    revolutions = math.floor(mean_anomaly / TWO_PI)
    return solve_kepler(mean_anomaly, e, iterations) + revolutions * TWO_PI


def mean_anomaly_from_eccentric(E: float, e: float) -> float:
    return E - e * math.sin(E)


def eccentric_to_true_anomaly(E: float, e: float) -> float:
    # tan(nu/2) = sqrt((1+e)/(1-e)) * tan(E/2)
    return 2.0 * math.atan2(math.sqrt(1.0 + e) * math.sin(E / 2.0),
                            math.sqrt(1.0 - e) * math.cos(E / 2.0))


def true_to_eccentric_anomaly(nu: float, e: float) -> float:
    # tan(E/2) = sqrt((1-e)/(1+e)) * tan(nu/2)
    return 2.0 * math.atan2(math.sqrt(1.0 - e) * math.sin(nu / 2.0),
                            math.sqrt(1.0 + e) * math.cos(nu / 2.0))
