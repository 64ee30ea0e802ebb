#!/usr/bin/env python3
"""
Keplerian orbit model for a body moving around a single parent.

What this module does
- OrbitModel stores the elements of one bound 2D ellipse (a, b, e, omega, focus
  offset) together with the parent handle and the mean anomaly at an epoch.
- position_at_angle evaluates the ellipse at an eccentric anomaly; position_at_time
  advances the mean anomaly, solves Kepler's equation, and delegates to it.
- orbit_from_state rebuilds elements from a parent-relative position and velocity
  (vis-viva plus the eccentricity vector). The propagator and the maneuver
  predictor both use it.

Units and conventions
- Positions in meters, velocities in m/s, angles in radians, time in seconds.
- All coordinates are parent-relative: the parent sits at the focus (0, 0) and
  focus_offset points from it to the ellipse center.
- direction is +1 for counter-clockwise motion and -1 for clockwise. The ellipse
  is parameterized as (a cos E, direction * b sin E) before rotation by omega.

Lifecycle
- OrbitModel is frozen. The physics step replaces a body's orbit instead of
  editing it, and every new instance receives a fresh version number. Caches
  compare versions, so two numerically equal orbits built separately are still
  treated as different sources.
"""
import itertools
import math
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

import numpy as np

from .constants import TWO_PI
from .errors import UnsupportedOrbitError
from .kepler import (
    normalize_angle,
    solve_kepler,
    true_to_eccentric_anomaly,
    mean_anomaly_from_eccentric,
)
from .vector_utils import Vec2, vec_cross, vec_dot, vec_len

_versions = itertools.count(1)


def _next_version() -> int:
    return next(_versions)


@dataclass(frozen=True)
class OrbitModel:
    """
    A bound elliptical orbit around a parent body.

    Fields:
    - semi_major_axis / semi_minor_axis: a and b in meters
    - eccentricity: e, 0 <= e < 1 for a sampleable orbit
    - argument_of_periapsis: omega, angle of the periapsis direction in radians
    - focus_offset: vector from the parent (focus) to the ellipse center, meters
    - parent: handle of the gravitating body in the BodyArena
    - mean_anomaly_at_epoch: M at time `epoch` (seconds on the simulation clock)
    - direction: +1 counter-clockwise, -1 clockwise
    - version: generation number, assigned on construction and never copied
    """
    semi_major_axis: float
    semi_minor_axis: float
    eccentricity: float
    argument_of_periapsis: float
    focus_offset: Vec2
    parent: Optional[int]
    mean_anomaly_at_epoch: float = 0.0
    epoch: float = 0.0
    direction: int = 1
    version: int = field(init=False, default_factory=_next_version, compare=False)

    @classmethod
    def from_elements(cls, a: float, e: float, omega: float, parent: Optional[int],
                      mean_anomaly: float = 0.0, epoch: float = 0.0,
                      direction: int = 1) -> "OrbitModel":
        """Build an orbit from (a, e, omega), deriving b and the focus offset."""
        b = a * math.sqrt(max(0.0, 1.0 - e * e))
        c = a * e
        focus_offset = (-c * math.cos(omega), -c * math.sin(omega))
        return cls(
            semi_major_axis=a,
            semi_minor_axis=b,
            eccentricity=e,
            argument_of_periapsis=omega,
            focus_offset=focus_offset,
            parent=parent,
            mean_anomaly_at_epoch=normalize_angle(mean_anomaly),
            epoch=epoch,
            direction=1 if direction >= 0 else -1,
        )

    # ------------------------------------------------------------------
    # Validity and derived quantities
    # ------------------------------------------------------------------

    @property
    def is_sampleable(self) -> bool:
        """True for a finite bound ellipse that has a parent."""
        a = self.semi_major_axis
        e = self.eccentricity
        return (
            self.parent is not None
            and math.isfinite(a) and a > 0.0
            and math.isfinite(self.semi_minor_axis)
            and math.isfinite(e) and 0.0 <= e < 1.0
            and math.isfinite(self.argument_of_periapsis)
            and math.isfinite(self.focus_offset[0]) and math.isfinite(self.focus_offset[1])
        )

    @property
    def linear_eccentricity(self) -> float:
        """Distance from the ellipse center to the focus (c = a*e)."""
        return self.semi_major_axis * self.eccentricity

    @property
    def periapsis(self) -> float:
        return self.semi_major_axis * (1.0 - self.eccentricity)

    @property
    def apoapsis(self) -> float:
        return self.semi_major_axis * (1.0 + self.eccentricity)

    def mean_motion(self, mu: float) -> float:
        """n = sqrt(mu / a^3) in rad/s."""
        return math.sqrt(mu / self.semi_major_axis ** 3)

    def period(self, mu: float) -> float:
        return TWO_PI / self.mean_motion(mu)

    def mean_anomaly_at(self, mu: float, elapsed: float,
                        mean_anomaly_at_epoch: Optional[float] = None) -> float:
        """Mean anomaly `elapsed` seconds after the epoch, wrapped to [0, 2*pi)."""
        m0 = self.mean_anomaly_at_epoch if mean_anomaly_at_epoch is None else mean_anomaly_at_epoch
        return normalize_angle(m0 + self.mean_motion(mu) * elapsed)

    def rebased(self, mean_anomaly: float, epoch: float = 0.0) -> "OrbitModel":
        """Same ellipse, anchored at a different clock time. Gets a new version."""
        return replace(self, mean_anomaly_at_epoch=normalize_angle(mean_anomaly), epoch=epoch)

    # ------------------------------------------------------------------
    # Positions and velocities
    # ------------------------------------------------------------------

    def position_at_angle(self, E: float) -> Vec2:
        """
        Parent-relative position at eccentric anomaly E.

        The unrotated point (a cos E, b sin E) is measured from the ellipse center;
        rotating by omega and adding focus_offset moves it into the focus frame.
        This is the same point as a*(cos E - e) in focus-relative form.
        """
        x = self.semi_major_axis * math.cos(E)
        y = self.direction * self.semi_minor_axis * math.sin(E)
        cos_o = math.cos(self.argument_of_periapsis)
        sin_o = math.sin(self.argument_of_periapsis)
        rot_x = x * cos_o - y * sin_o
        rot_y = x * sin_o + y * cos_o
        return (rot_x + self.focus_offset[0], rot_y + self.focus_offset[1])

    def positions_at_angles(self, angles: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Vectorized position_at_angle.

        Args:
            angles: 1D float64 array of eccentric anomalies.
            out: Optional (N, 2) float64 array to write into.

        Returns:
            (N, 2) float64 array of parent-relative positions.
        """
        angles = np.asarray(angles, dtype=np.float64)
        if out is None:
            out = np.empty((angles.shape[0], 2), dtype=np.float64)
        x = self.semi_major_axis * np.cos(angles)
        y = (self.direction * self.semi_minor_axis) * np.sin(angles)
        cos_o = math.cos(self.argument_of_periapsis)
        sin_o = math.sin(self.argument_of_periapsis)
        out[:, 0] = x * cos_o - y * sin_o + self.focus_offset[0]
        out[:, 1] = x * sin_o + y * cos_o + self.focus_offset[1]
        return out

    def velocity_at_angle(self, E: float, mu: float) -> Vec2:
        """
        Parent-relative velocity at eccentric anomaly E.

        dE/dt = n / (1 - e cos E), so the derivative of the parameterization is
        (-a n sin E, direction * b n cos E) / (1 - e cos E), rotated by omega.
        """
        n = self.mean_motion(mu)
        factor = n / (1.0 - self.eccentricity * math.cos(E))
        vx = -self.semi_major_axis * math.sin(E) * factor
        vy = self.direction * self.semi_minor_axis * math.cos(E) * factor
        cos_o = math.cos(self.argument_of_periapsis)
        sin_o = math.sin(self.argument_of_periapsis)
        return (vx * cos_o - vy * sin_o, vx * sin_o + vy * cos_o)

    def position_at_time(self, mu: float, elapsed: float,
                         mean_anomaly_at_epoch: Optional[float] = None) -> Vec2:
        """
        Parent-relative position `elapsed` seconds after the epoch.

        Args:
            mu: Gravitational parameter of the parent system (m^3/s^2).
            elapsed: Seconds since the epoch (may be negative).
            mean_anomaly_at_epoch: Override for M0; defaults to the stored value.
        """
        M = self.mean_anomaly_at(mu, elapsed, mean_anomaly_at_epoch)
        E = solve_kepler(M, self.eccentricity)
        return self.position_at_angle(E)

    def state_at_time(self, mu: float, elapsed: float) -> Tuple[Vec2, Vec2]:
        """(position, velocity) `elapsed` seconds after the epoch."""
        M = self.mean_anomaly_at(mu, elapsed)
        E = solve_kepler(M, self.eccentricity)
        return self.position_at_angle(E), self.velocity_at_angle(E, mu)


def mean_anomaly_from_position(r: Vec2, e: float, omega: float, direction: int = 1) -> float:
    """Mean anomaly of a parent-relative position on an orbit with (e, omega)."""
    nu = direction * (math.atan2(r[1], r[0]) - omega)
    E = true_to_eccentric_anomaly(nu, e)
    return normalize_angle(mean_anomaly_from_eccentric(E, e))


def orbit_from_state(r: Vec2, v: Vec2, mu: float, parent: Optional[int],
                     epoch: float = 0.0) -> OrbitModel:
    """
    Reconstruct orbital elements from a parent-relative state vector.

    Uses the specific orbital energy for a (epsilon = v^2/2 - mu/r = -mu/2a) and
    the eccentricity vector e = ((v^2 - mu/r) r - (r.v) v) / mu for e and omega.
    The sign of the angular momentum r x v gives the direction of motion.

    Args:
        r: Position relative to the parent (m).
        v: Velocity relative to the parent (m/s).
        mu: Gravitational parameter G*(M + m) (m^3/s^2).
        parent: Parent handle stored on the result.
        epoch: Clock time at which this state holds.

    Returns:
        A new OrbitModel whose mean anomaly at `epoch` reproduces r.

    Raises:
        UnsupportedOrbitError: if the state is parabolic, hyperbolic or degenerate.
    """
    r_mag = vec_len(r)
    v_mag = vec_len(v)
    if not (r_mag > 0.0 and math.isfinite(r_mag) and math.isfinite(v_mag) and mu > 0.0):
        raise UnsupportedOrbitError(f"degenerate state r={r} v={v} mu={mu}")

    energy = v_mag * v_mag / 2.0 - mu / r_mag
    if energy >= 0.0:
        raise UnsupportedOrbitError(f"unbound state (specific energy {energy:.6g} J/kg)")
    a = -mu / (2.0 * energy)

    r_dot_v = vec_dot(r, v)
    k = v_mag * v_mag - mu / r_mag
    e_vec = ((k * r[0] - r_dot_v * v[0]) / mu, (k * r[1] - r_dot_v * v[1]) / mu)
    e = vec_len(e_vec)
    if not (math.isfinite(a) and a > 0.0 and math.isfinite(e) and e < 1.0):
        raise UnsupportedOrbitError(f"not a bound ellipse (a={a:.6g}, e={e:.6g})")

    omega = math.atan2(e_vec[1], e_vec[0])
    direction = 1 if vec_cross(r, v) >= 0.0 else -1
    M = mean_anomaly_from_position(r, e, omega, direction)
    return OrbitModel.from_elements(a, e, omega, parent, mean_anomaly=M,
                                    epoch=epoch, direction=direction)
