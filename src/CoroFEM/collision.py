"""Collision scenes and the per-step collision correction.

A scene is one of Plane, Sphere, MovingPlatform or Composite. All of them
expose

    check_collisions(pos) -> (hit, corrected)
    advance(dt)

where `pos` is (N, dim) (or a single (dim,) point), `hit` flags points
that violate the shape and `corrected` holds the projected positions.
Up is +y in both 2-D and 3-D.
"""

from dataclasses import dataclass, field, fields
from typing import ClassVar, Union

import numpy as np


def _as_positions(pos) -> np.ndarray:
    return np.array(pos, dtype=np.float64, copy=True)


@dataclass
class Plane:
    """Horizontal ground at y = height, infinite unless half_extent is set."""
    kind: ClassVar[str] = "plane"
    height: float = 0.0
    half_extent: float = None
    center: list = None  # horizontal centre of a finite plane

    def check_collisions(self, pos):
        corrected = _as_positions(pos)
        hit = corrected[..., 1] < self.height
        if self.half_extent is not None:
            center = np.zeros(corrected.shape[-1]) if self.center is None else np.asarray(self.center, dtype=np.float64)
            for axis in range(corrected.shape[-1]):
                if axis == 1:
                    continue
                hit &= np.abs(corrected[..., axis] - center[axis]) < self.half_extent
        corrected[..., 1] = np.where(hit, self.height, corrected[..., 1])
        return hit, corrected

    def advance(self, dt):
        pass


@dataclass
class Sphere:
    kind: ClassVar[str] = "sphere"
    center: list = field(default_factory=lambda: [0.0, 0.0, 0.0])
    radius: float = 0.5

    def check_collisions(self, pos):
        corrected = _as_positions(pos)
        c = np.asarray(self.center, dtype=np.float64)[: corrected.shape[-1]]
        d = corrected - c
        dist = np.linalg.norm(d, axis=-1)
        hit = dist < self.radius
        # a point exactly at the centre is pushed straight up
        up = np.zeros(corrected.shape[-1])
        up[1] = 1.0
        safe = np.where(dist > 1e-12, dist, 1.0)
        normal = np.where((dist > 1e-12)[..., None], d / safe[..., None], up)
        surface = c + self.radius * normal
        corrected = np.where(hit[..., None], surface, corrected)
        return hit, corrected

    def advance(self, dt):
        pass


@dataclass
class MovingPlatform:
    """Axis-aligned box translating at constant velocity.

    Penetrating points are pushed out through the nearest face.
    """
    kind: ClassVar[str] = "platform"
    center: list = field(default_factory=lambda: [0.0, 0.0, 0.0])
    half_extents: list = field(default_factory=lambda: [0.5, 0.1, 0.5])
    velocity: list = field(default_factory=lambda: [0.0, 0.0, 0.0])

    def __post_init__(self):
        self.center = np.asarray(self.center, dtype=np.float64)
        self.half_extents = np.asarray(self.half_extents, dtype=np.float64)
        self.velocity = np.asarray(self.velocity, dtype=np.float64)

    def check_collisions(self, pos):
        corrected = _as_positions(pos)
        dim = corrected.shape[-1]
        c = self.center[:dim]
        h = self.half_extents[:dim]
        d = corrected - c
        depth = h - np.abs(d)
        hit = np.all(depth > 0.0, axis=-1)
        axis = np.argmin(depth, axis=-1)[..., None]
        side = np.where(np.take_along_axis(d, axis, axis=-1) < 0.0, -1.0, 1.0)
        face = np.take(c, axis) + side * np.take(h, axis)
        pushed = corrected.copy()
        np.put_along_axis(pushed, axis, face, axis=-1)
        corrected = np.where(hit[..., None], pushed, corrected)
        return hit, corrected

    def advance(self, dt):
        self.center = self.center + self.velocity * dt


@dataclass
class Composite:
    """Shapes checked in order, each one sees the corrections of the previous ones."""
    kind: ClassVar[str] = "composite"
    shapes: list = field(default_factory=list)

    def check_collisions(self, pos):
        corrected = _as_positions(pos)
        hit = np.zeros(corrected.shape[:-1], dtype=bool)
        for shape in self.shapes:
            h, corrected = shape.check_collisions(corrected)
            hit |= h
        return hit, corrected

    def advance(self, dt):
        for shape in self.shapes:
            shape.advance(dt)


Scene = Union[Plane, Sphere, MovingPlatform, Composite]

SHAPE_TYPES = {cls.kind: cls for cls in (Plane, Sphere, MovingPlatform, Composite)}


def describe_scene(scene: Scene) -> dict:
    """Current scene geometry as a JSON-ready dict that `build_scene` accepts back."""
    if isinstance(scene, Composite):
        return {"type": scene.kind, "shapes": [describe_scene(s) for s in scene.shapes]}
    out = {"type": scene.kind}
    for fld in fields(scene):
        value = getattr(scene, fld.name)
        out[fld.name] = value.tolist() if isinstance(value, np.ndarray) else value
    return out


def _pad(vec, dim):
    return list(vec)[:dim]


def build_scene(spec, dim: int = 3) -> Scene:
    """Scene from a preset name or a dict like {"type": "sphere", "center": [...], "radius": 0.3}."""
    if spec is None:
        return Composite([])
    if isinstance(spec, dict):
        spec = dict(spec)
        kind = spec.pop("type", None)
        if kind not in SHAPE_TYPES:
            raise ValueError(f"Unknown scene type '{kind}', expected one of {sorted(SHAPE_TYPES)}")
        if kind == "composite":
            return Composite([build_scene(s, dim) for s in spec.get("shapes", [])])
        return SHAPE_TYPES[kind](**spec)

    name = str(spec).lower()
    if name == "none":
        return Composite([])
    if name == "default":
        return Plane(height=0.0)
    if name == "plinko":
        pegs = [[0.25, 0.35, 0.5], [0.75, 0.35, 0.5], [0.5, 0.1, 0.5]]
        return Composite([Plane(height=0.0)] + [Sphere(center=_pad(p, dim), radius=0.1) for p in pegs])
    if name == "bulldoze":
        platform = MovingPlatform(
            center=_pad([-0.6, 0.2, 0.5], dim),
            half_extents=_pad([0.3, 0.2, 1.0], dim),
            velocity=_pad([0.5, 0.0, 0.0], dim),
        )
        return Composite([Plane(height=0.0), platform])
    raise ValueError(f"Unknown scene preset '{spec}'")


def apply_collisions(scene: Scene, positions, velocities, prev_positions, dt, response="revert"):
    """Correct positions/velocities in place for every particle the scene rejects.

    "revert": back to the position before the step, velocity zeroed.
    "project": move to the scene's corrected position, velocity from the displacement.
    Returns the boolean hit mask.
    """
    hit, corrected = scene.check_collisions(positions)
    if not np.any(hit):
        return hit
    if response == "revert":
        positions[hit] = prev_positions[hit]
        velocities[hit] = 0.0
    else:
        positions[hit] = corrected[hit]
        velocities[hit] = (corrected[hit] - prev_positions[hit]) / dt
    return hit
