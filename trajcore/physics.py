#!/usr/bin/env python3
"""
On-rails body propagation for the trajectory pipeline.

Responsibilities
- Advance each orbiting body's mean anomaly by n * dt and place it on its Kepler
  ellipse relative to its parent (parents are placed before their children).
- Rebuild a body's OrbitModel from its current state vector, replacing the orbit
  object so downstream caches notice the change.
- Apply instantaneous velocity changes to a body (executing a burn).

Units and conventions
- World space positions are in meters [m].
- Velocities are in meters per second [m/s].
- Masses are in kilograms [kg].
- Time steps are in seconds [s].

Numerical notes
- Motion is analytic: any dt gives the same answer as many small ones, so there
  is no substepping and no integration drift. Gravity from anything other than
  the parent is ignored (patched conics, one gravitational center at a time).
- Bodies without an orbit (stars, or a craft whose state is unbound) coast in a
  straight line at their current velocity.
"""
import logging
import math
from typing import Optional, Tuple

from .constants import G
from .data_models import BodyArena
from .errors import UnsupportedOrbitError
from .kepler import normalize_angle, solve_kepler
from .orbit import OrbitModel, orbit_from_state
from .vector_utils import vec_add, vec_sub

logger = logging.getLogger(__name__)


class KeplerPropagator:
    """
    Keplerian "on rails" propagator over a BodyArena.

    This is the only writer of body position, velocity, mean_anomaly and orbit.
    """

    def __init__(self, arena: BodyArena):
        """
        Initialize the propagator.

        Args:
            arena: Bodies to advance; updated in place.
        """
        self.arena = arena
        self.time = 0.0

    def place(self, handle: int) -> None:
        """
        Set a body's position and velocity from its orbit and mean anomaly.

        The parent must already be placed for the current time.
        """
        body = self.arena.get(handle)
        orbit = body.orbit
        if orbit is None or body.parent is None or not orbit.is_sampleable:
            return
        parent = self.arena.get(body.parent)
        mu = self.arena.mu_of(handle)
        E = solve_kepler(body.mean_anomaly, orbit.eccentricity)
        rx, ry = orbit.position_at_angle(E)
        vx, vy = orbit.velocity_at_angle(E, mu)
        body.position = vec_add(parent.position, (rx, ry))
        body.velocity = vec_add(parent.velocity, (vx, vy))

    def place_all(self) -> None:
        for handle in self.arena.iter_parent_first():
            self.place(handle)

    def step(self, dt: float) -> None:
        """
        Advance every body by dt seconds.

        Args:
            dt: Time step in seconds (>= 0).
        """
        if dt <= 0.0:
            return
        for handle in self.arena.iter_parent_first():
            body = self.arena.get(handle)
            orbit = body.orbit
            if orbit is not None and body.parent is not None and orbit.is_sampleable:
                n = orbit.mean_motion(self.arena.mu_of(handle))
                body.mean_anomaly = normalize_angle(body.mean_anomaly + n * dt)
                self.place(handle)
            else:
                body.position = (body.position[0] + body.velocity[0] * dt,
                                 body.position[1] + body.velocity[1] * dt)
        self.time += dt

    def recompute_orbit(self, handle: int) -> Optional[OrbitModel]:
        """
        Rebuild a body's orbit from its state relative to its parent.

        A state that is not a bound ellipse clears the orbit rather than raising:
        a body briefly losing a valid orbit must not stop the frame.

        Returns:
            The new orbit, or None if the state is unbound or the body has no parent.
        """
        body = self.arena.get(handle)
        if body.parent is None:
            body.orbit = None
            return None
        parent = self.arena.get(body.parent)
        r = vec_sub(body.position, parent.position)
        v = vec_sub(body.velocity, parent.velocity)
        try:
            orbit = orbit_from_state(r, v, self.arena.mu_of(handle), body.parent)
        except UnsupportedOrbitError as exc:
            logger.warning("%s has no bound orbit around %s: %s", body.name, parent.name, exc)
            body.orbit = None
            return None
        body.orbit = orbit
        body.mean_anomaly = orbit.mean_anomaly_at_epoch
        return orbit

    def apply_impulse(self, handle: int, delta_v: Tuple[float, float]) -> Optional[OrbitModel]:
        """Add delta_v (world frame, m/s) to a body's velocity and rebuild its orbit."""
        body = self.arena.get(handle)
        body.velocity = vec_add(body.velocity, delta_v)
        return self.recompute_orbit(handle)

    def reparent(self, handle: int, parent: Optional[int]) -> Optional[OrbitModel]:
        """Move a body into another SOI and rebuild its orbit around the new parent."""
        self.arena.set_parent(handle, parent)
        return self.recompute_orbit(handle)


def circular_orbit_velocity(central_mass: float, orbital_radius: float) -> float:
    """
    Calculate the velocity needed for a circular orbit.

    For a circular orbit, the gravitational force provides exactly the
    centripetal force needed. This gives us:
    G * M / r = v^2 / r
    Therefore: v = sqrt(G * M / r)

    Args:
        central_mass: Mass of the central body in kg
        orbital_radius: Orbital radius in meters

    Returns:
        Orbital velocity in m/s for a circular orbit
    """
    if orbital_radius <= 0:
        return 0.0

    return math.sqrt(G * central_mass / orbital_radius)
