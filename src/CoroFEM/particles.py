from dataclasses import dataclass

import numpy as np


@dataclass
class Particles:
    """Per-vertex state arena, indexed by vertex id.

    Arrays are contiguous float64 so the Taichi kernels can write into them
    in place. `mass` is only written by the mass distribution pass;
    `fixed` marks vertices the integrators leave untouched.
    """
    positions: np.ndarray
    velocities: np.ndarray
    forces: np.ndarray
    mass: np.ndarray
    fixed: np.ndarray

    @classmethod
    def from_positions(cls, positions: np.ndarray, mass: np.ndarray, pinned=None) -> "Particles":
        positions = np.ascontiguousarray(positions, dtype=np.float64).copy()
        n = positions.shape[0]
        fixed = np.zeros(n, dtype=np.int32)
        if pinned:
            fixed[np.asarray(pinned, dtype=np.int64)] = 1
        # vertices that received no mass cannot be accelerated
        fixed[mass <= 0.0] = 1
        return cls(
            positions=positions,
            velocities=np.zeros_like(positions),
            forces=np.zeros_like(positions),
            mass=np.ascontiguousarray(mass, dtype=np.float64),
            fixed=fixed,
        )

    @property
    def n_verts(self) -> int:
        return int(self.positions.shape[0])

    @property
    def dim(self) -> int:
        return int(self.positions.shape[1])

    def zero_forces(self):
        self.forces.fill(0.0)

    def kinetic_energy(self) -> float:
        return float(0.5 * np.sum(self.mass[:, None] * self.velocities ** 2))
