"""Time integrators. The strategy is picked once from the config name.

Both expect `particles.forces` to hold the elastic forces of the current
positions when `step` is called.
"""

import numpy as np

from .forces import ForceAssembler
from .kernels import explicit_integrate_kernel
from .particles import Particles
from .stiffness import StiffnessAssembler, build_implicit_system, solve_implicit_system


class ExplicitIntegrator:
    """Symplectic Euler: v += (f/m + g) dt, then x += v dt."""

    def __init__(self, gravity: float, backend: str = "taichi"):
        self.gravity = gravity
        self.backend = backend

    def step(self, particles: Particles, dt: float):
        if self.backend == "taichi":
            explicit_integrate_kernel(
                particles.positions, particles.velocities, particles.forces,
                particles.mass, particles.fixed, self.gravity, dt, particles.dim,
            )
            return
        free = particles.fixed == 0
        acc = particles.forces[free] / particles.mass[free, None]
        acc[:, 1] += self.gravity
        particles.velocities[free] += acc * dt
        particles.positions[free] += particles.velocities[free] * dt


class ImplicitIntegrator:
    """Linearized backward Euler.

    Solves (M/dt^2 - K) dx = M v/dt + f + M g around the current positions,
    then sets v = dx/dt and x += dx.
    """

    def __init__(self, gravity: float, forces: ForceAssembler, stiffness: StiffnessAssembler,
                 tol: float = 1e-8, maxiter: int = 500):
        self.gravity = gravity
        self.forces = forces
        self.stiffness = stiffness
        self.tol = tol
        self.maxiter = maxiter

    def step(self, particles: Particles, dt: float):
        F, S, R = self.forces.element_state(particles.positions)
        K = self.stiffness.assemble(F, S, R)
        A, b = build_implicit_system(K, particles, dt, self.gravity)

        # warm start from the explicit guess
        x0 = (particles.velocities * dt).ravel()
        x0[np.repeat(particles.fixed, particles.dim) != 0] = 0.0
        dx = solve_implicit_system(A, b, x0=x0, tol=self.tol, maxiter=self.maxiter)

        dx = dx.reshape(particles.positions.shape)
        particles.velocities[:] = dx / dt
        particles.positions += dx


def make_integrator(name: str, gravity: float, forces: ForceAssembler, stiffness: StiffnessAssembler = None,
                    backend: str = "taichi", tol: float = 1e-8, maxiter: int = 500):
    if name == "explicit":
        return ExplicitIntegrator(gravity, backend=backend)
    if name == "implicit":
        if stiffness is None:
            raise ValueError("Implicit integration needs a StiffnessAssembler")
        return ImplicitIntegrator(gravity, forces, stiffness, tol=tol, maxiter=maxiter)
    raise ValueError(f"Unknown integrator '{name}'")
