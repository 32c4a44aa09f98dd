import numpy as np

from .element import Elements
from .kernels import elastic_force_kernel
from .material import clamp_small, piola_stress, polar_decomposition
from .particles import Particles


def deformation_gradient(positions: np.ndarray, elements: Elements, eps: float = 1e-9) -> np.ndarray:
    """F = Ds DmInv for every element, small entries clamped to zero. Shape (M, dim, dim)."""
    dim = elements.dim
    elem_pos = positions[elements.indices]
    Ds = np.transpose(elem_pos[:, :dim, :] - elem_pos[:, dim:dim + 1, :], (0, 2, 1))
    return clamp_small(Ds @ elements.dm_inv, eps)


def nodal_forces(F: np.ndarray, elements: Elements, mu: float, la: float, R: np.ndarray = None) -> np.ndarray:
    """G = -volume * P * DmInv^T, column j is the force on element vertex j. Shape (M, dim, dim)."""
    P = piola_stress(F, mu, la, R)
    G = -elements.volume[:, None, None] * (P @ np.transpose(elements.dm_inv, (0, 2, 1)))
    # degenerate elements keep a zero DmInv, mask anyway so nothing leaks through P
    return G * elements.valid[:, None, None]


class ForceAssembler:
    """Accumulates elastic nodal forces of all elements into the particle force buffer.

    backend "taichi" runs `elastic_force_kernel` with atomic scatter-adds,
    backend "numpy" does the same pass batched with `np.add.at`.
    """

    def __init__(self, elements: Elements, mu: float, la: float, eps: float = 1e-9, backend: str = "taichi"):
        self.elements = elements
        self.mu = mu
        self.la = la
        self.eps = eps
        self.backend = backend

    def assemble(self, particles: Particles):
        if self.elements.n_elements == 0:
            return
        if self.backend == "taichi":
            self._assemble_taichi(particles)
        else:
            self._assemble_numpy(particles)

    def _assemble_taichi(self, particles: Particles):
        e = self.elements
        elastic_force_kernel(
            particles.positions, particles.forces,
            e.indices, e.dm_inv, e.volume, e.valid,
            self.mu, self.la, self.eps, e.dim,
        )

    def _assemble_numpy(self, particles: Particles):
        e = self.elements
        dim = e.dim
        F = deformation_gradient(particles.positions, e, self.eps)
        G = nodal_forces(F, e, self.mu, self.la)
        for j in range(dim):
            np.add.at(particles.forces, e.indices[:, j], G[:, :, j])
        np.add.at(particles.forces, e.indices[:, dim], -G.sum(axis=2))

    def element_state(self, positions: np.ndarray):
        """F, S, R for all elements at the given positions."""
        F = deformation_gradient(positions, self.elements, self.eps)
        S, R = polar_decomposition(F)
        return F, S, R
