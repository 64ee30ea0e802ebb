#!/usr/bin/env python3
"""
Scene template JSON loading utilities.

Schema
======
Template JSON (templates/*.json):
{
  "name": "Human-friendly preset name",
  "description": "Optional description",
  "settings": {"moon_scale": 1.0},        # optional, PipelineSettings fields
  "bodies": [
    {
      "name": "Sun",
      "kind": "star",
      "mass": 1.98847e30,
      "radius": 6.96342e8,
      "position": [0.0, 0.0],             # used only by bodies without "orbit"
      "velocity": [0.0, 0.0],
      "color": [255, 204, 0]
    },
    {
      "name": "Earth",
      "kind": "terrestrial",
      "parent": "Sun",
      "mass": 5.972e24,
      "radius": 6.371e6,
      "orbit": {"a": 1.496e11, "e": 0.0167, "omega": 1.8,
                "mean_anomaly": 0.0, "direction": 1}
    }
  ]
}

Bodies are listed parent-first. A body with "orbit" is placed on that orbit
around its parent; one without keeps its explicit position and velocity.

Users can add their own JSON files into the templates folder and they'll be
picked up by the loader.
"""
import json
import logging
import math
import os
from typing import List, Optional, Tuple

from .data_models import Body, BodyArena, BodyKind
from .errors import SceneError
from .orbit import OrbitModel
from .physics import KeplerPropagator
from .settings import PipelineSettings
from .utils import try_float

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")


def _read_json(path: str) -> Optional[dict]:
  try:
    with open(path, "r", encoding="utf-8") as f:
      return json.load(f)
  except (OSError, ValueError) as exc:
    logger.warning("could not read template %s: %s", path, exc)
    return None


def _coerce_color(c) -> Tuple[int, int, int]:
  try:
    r, g, b = int(c[0]), int(c[1]), int(c[2])
  except (TypeError, ValueError, IndexError):
    return (200, 200, 255)
  r = max(0, min(255, r)); g = max(0, min(255, g)); b = max(0, min(255, b))
  return (r, g, b)


def _coerce_vec(v, default=(0.0, 0.0)) -> Tuple[float, float]:
  try:
    x, y = try_float(v[0]), try_float(v[1])
  except (TypeError, IndexError):
    return default
  if x is None or y is None:
    return default
  return (x, y)


def _required_float(b: dict, key: str) -> float:
  val = try_float(b.get(key))
  if val is None:
    raise SceneError(f"body {b.get('name', '?')!r}: {key} must be a number, got {b.get(key)!r}")
  return val


def _orbit_from_json(o: dict, parent: int, name: str) -> OrbitModel:
  a = try_float(o.get("a"))
  if a is None or not math.isfinite(a) or a <= 0.0:
    raise SceneError(f"body {name!r}: orbit.a must be a positive finite number")
  e = try_float(o.get("e", 0.0))
  if e is None or not 0.0 <= e < 1.0:
    raise SceneError(f"body {name!r}: orbit.e must be in [0, 1)")
  omega = try_float(o.get("omega", 0.0)) or 0.0
  mean_anomaly = try_float(o.get("mean_anomaly", 0.0)) or 0.0
  if not math.isfinite(omega) or not math.isfinite(mean_anomaly):
    raise SceneError(f"body {name!r}: orbit angles must be finite")
  direction = -1 if (try_float(o.get("direction", 1)) or 1) < 0 else 1
  return OrbitModel.from_elements(a, e, omega, parent, mean_anomaly=mean_anomaly,
                                  direction=direction)


def build_arena(data: dict) -> BodyArena:
  """
  Build a BodyArena from template data and place orbiting bodies.

  Raises:
    SceneError: on unknown kinds, unknown or later-listed parents, duplicate
      names, or bodies missing mass/radius.
  """
  arena = BodyArena()
  for b in data.get("bodies", []):
    name = str(b.get("name", "Body"))
    kind = BodyKind.parse(b.get("kind", "terrestrial"))
    parent: Optional[int] = None
    if b.get("parent") is not None:
      parent = arena.find(str(b["parent"]))
      if parent is None:
        raise SceneError(f"body {name!r}: parent {b['parent']!r} is not defined before it")
    body = Body(
      name=name,
      kind=kind,
      mass=_required_float(b, "mass"),
      radius=_required_float(b, "radius"),
      position=_coerce_vec(b.get("position", (0.0, 0.0))),
      velocity=_coerce_vec(b.get("velocity", (0.0, 0.0))),
      parent=parent,
      color=_coerce_color(b.get("color", [200, 200, 255])),
    )
    if b.get("orbit") is not None:
      if parent is None:
        raise SceneError(f"body {name!r} has an orbit but no parent")
      body.orbit = _orbit_from_json(b["orbit"], parent, name)
      body.mean_anomaly = body.orbit.mean_anomaly_at_epoch
    arena.add(body)

  KeplerPropagator(arena).place_all()
  logger.debug("built arena with %d bodies", len(arena))
  return arena


def list_templates() -> List[Tuple[str, str]]:
  """Return list of (file_name, display_name) for available templates."""
  items: List[Tuple[str, str]] = []
  if not os.path.isdir(TEMPLATES_DIR):
    return items
  for fn in sorted(os.listdir(TEMPLATES_DIR)):
    if not fn.lower().endswith(".json"):
      continue
    path = os.path.join(TEMPLATES_DIR, fn)
    data = _read_json(path) or {}
    display = data.get("name") or os.path.splitext(fn)[0]
    items.append((fn, display))
  return items


def load_template(file_name: str,
                  templates_dir: Optional[str] = None) -> Tuple[BodyArena, PipelineSettings, str]:
  """
  Load a template JSON by file name.
  Returns (arena, settings, display_name)
  """
  path = os.path.join(templates_dir or TEMPLATES_DIR, file_name)
  data = _read_json(path)
  if data is None:
    raise SceneError(f"template {file_name!r} could not be loaded")
  display_name = data.get("name") or os.path.splitext(file_name)[0]
  settings = PipelineSettings.from_dict(data.get("settings"))
  return build_arena(data), settings, display_name
