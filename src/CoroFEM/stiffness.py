"""Implicit path: element stiffness blocks, global K and the backward Euler system.

The global system solved every implicit step is

    (M / dt^2 - K) dx = M v / dt + f_int + M g

where K = df_int/dx. Gravity enters only through the right-hand side, the
particle force buffer holds elastic forces alone.
"""

import logging

import numpy as np
import scipy.sparse
import scipy.sparse.linalg

from .element import Elements, shape_gradients
from .material import stress_derivative
from .particles import Particles

log = logging.getLogger("corofem")


def element_dofs(indices: np.ndarray, dim: int) -> np.ndarray:
    """Global dof ids of each element, vertex-major: (M, (dim+1)*dim)."""
    return (indices[:, :, None].astype(np.int64) * dim + np.arange(dim)).reshape(indices.shape[0], -1)


def element_stiffness(F, S, R, elements: Elements, mu: float, la: float) -> np.ndarray:
    """Per-element blocks K_e[(a,i),(b,r)] = df_{a,i}/dx_{b,r}, shape (M, nd, nd), nd = (dim+1)*dim.

    K_e = -V * sum_jl H[a,j] dP_ij/dF_rl H[b,l], with H from `shape_gradients`.
    """
    dim = elements.dim
    dPdF = stress_derivative(F, mu, la, S, R)
    H = shape_gradients(elements.dm_inv)
    Ke = np.einsum("eaj,eijrl,ebl->eaibr", H, dPdF, H, optimize=True)
    Ke *= -(elements.volume * elements.valid)[:, None, None, None, None]
    nd = (dim + 1) * dim
    return Ke.reshape(-1, nd, nd)


class StiffnessAssembler:
    def __init__(self, elements: Elements, mu: float, la: float, n_verts: int):
        self.elements = elements
        self.mu = mu
        self.la = la
        self.n_dofs = n_verts * elements.dim
        dofs = element_dofs(elements.indices, elements.dim)
        nd = dofs.shape[1]
        shape = (dofs.shape[0], nd, nd)
        self._rows = np.broadcast_to(dofs[:, :, None], shape).ravel()
        self._cols = np.broadcast_to(dofs[:, None, :], shape).ravel()

    def assemble(self, F, S, R) -> scipy.sparse.csr_matrix:
        """Global K, element blocks summed into shared dofs."""
        Ke = element_stiffness(F, S, R, self.elements, self.mu, self.la)
        # duplicate (row, col) entries are summed
        return scipy.sparse.csr_matrix((Ke.ravel(), (self._rows, self._cols)), shape=(self.n_dofs, self.n_dofs))


def build_implicit_system(K, particles: Particles, dt: float, gravity: float):
    """Left-hand matrix and right-hand side of the backward Euler step.

    Fixed vertices get identity rows and a zero right-hand side so their dx is zero.
    """
    dim = particles.dim
    m = np.repeat(particles.mass, dim)
    g = np.zeros(dim)
    g[1] = gravity

    A = scipy.sparse.diags(m / (dt * dt)) - K
    b = m * particles.velocities.ravel() / dt + particles.forces.ravel() + (particles.mass[:, None] * g).ravel()

    fixed = np.repeat(particles.fixed, dim) != 0
    if np.any(fixed):
        keep = scipy.sparse.diags((~fixed).astype(np.float64))
        A = keep @ A @ keep + scipy.sparse.diags(fixed.astype(np.float64))
        b[fixed] = 0.0
    return scipy.sparse.csr_matrix(A), b


def solve_implicit_system(A, b, x0=None, tol: float = 1e-8, maxiter: int = 500) -> np.ndarray:
    """MINRES solve, A may be indefinite away from rest.

    A non-converged solve is not fatal: the last iterate is returned and a
    warning is logged.
    """
    dx, info = scipy.sparse.linalg.minres(A, b, x0=x0, rtol=tol, maxiter=maxiter)
    if info != 0:
        residual = float(np.linalg.norm(A @ dx - b))
        log.warning(f"MINRES did not converge (info={info}, residual={residual:.3e}), using last iterate")
    return dx
