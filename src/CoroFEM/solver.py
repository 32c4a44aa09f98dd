"""Orchestrating solver: owns the particle arena, the element constants and the time loop."""

import logging
import time

import numpy as np
import taichi as ti

from .collision import apply_collisions, build_scene
from .config import SimConfig, get_config_path, load_config, pick_arch, validate_config
from .element import distribute_mass, precompute_rest
from .forces import ForceAssembler
from .frames import MeshioFrameWriter
from .integrator import make_integrator
from .material import energy_density, lame_parameters
from .mesh import check_mesh, load_mesh, make_builtin_mesh
from .particles import Particles
from .stiffness import StiffnessAssembler

log = logging.getLogger("corofem")


class FEMSolver:
    """Corotational FEM simulation of one elastic body.

    Per step: zero forces, assemble elastic forces, integrate, move the
    scene, correct collisions. `run` repeats that `cfg.nsteps` times and
    hands the positions to a frame sink every `cfg.steps_per_frame` steps.
    """

    def __init__(self, cfg: SimConfig, positions: np.ndarray = None, elements: np.ndarray = None):
        validate_config(cfg)
        self.cfg = cfg
        if cfg.backend == "taichi":
            ti.init(arch=pick_arch(cfg.arch), default_fp=ti.f64, log_level=cfg.log_level)

        if positions is None or elements is None:
            positions, elements = self._load_mesh()
        positions, elements = check_mesh(positions, elements, cfg.dim)
        if cfg.pinned_vertices:
            pinned = np.asarray(cfg.pinned_vertices)
            if pinned.min() < 0 or pinned.max() >= positions.shape[0]:
                raise ValueError("Pinned vertex index out of range.")

        self.mu, self.la = lame_parameters(cfg.k, cfg.nu)
        self.elements = precompute_rest(positions, elements)
        mass = distribute_mass(self.elements, cfg.density, positions.shape[0])
        self.particles = Particles.from_positions(positions, mass, cfg.pinned_vertices)
        self.rest_positions = self.particles.positions.copy()
        self.total_rest_volume = float(self.elements.volume.sum())

        self.forces = ForceAssembler(self.elements, self.mu, self.la, eps=cfg.eps_clamp, backend=cfg.backend)
        self.stiffness = None
        if cfg.integrator == "implicit":
            self.stiffness = StiffnessAssembler(self.elements, self.mu, self.la, self.particles.n_verts)
        self.integrator = make_integrator(
            cfg.integrator, cfg.gravity, self.forces, self.stiffness,
            backend=cfg.backend, tol=cfg.solver_tol, maxiter=cfg.solver_maxiter,
        )
        self.scene = build_scene(cfg.scene, cfg.dim)
        self.step_cnt = 0

        log.info(
            f"{cfg.name}: {self.particles.n_verts} vertices, {self.elements.n_elements} elements, "
            f"{cfg.integrator} integrator, {cfg.backend} backend, mu={self.mu:.4g}, lambda={self.la:.4g}"
        )
        if self.elements.n_degenerate:
            log.warning(f"{self.elements.n_degenerate} degenerate elements ignored")

    def _load_mesh(self):
        cfg = self.cfg
        if cfg.mesh_path is not None:
            return load_mesh(cfg.mesh_path, cfg.dim)
        if cfg.mesh is None:
            return load_mesh(None, cfg.dim)
        return make_builtin_mesh(cfg.mesh, cfg.dim, cfg.mesh_resolution, cfg.mesh_size, cfg.mesh_origin)

    def step(self):
        cfg = self.cfg
        p = self.particles
        p.zero_forces()
        self.forces.assemble(p)
        prev_positions = p.positions.copy()
        self.integrator.step(p, cfg.dt)
        self.scene.advance(cfg.dt)
        apply_collisions(self.scene, p.positions, p.velocities, prev_positions, cfg.dt, cfg.collision_response)
        self.step_cnt += 1

    def run(self, sink=None, nsteps: int = None):
        """Advance `nsteps` (default cfg.nsteps) steps, calling sink(frame, positions) at the frame stride."""
        nsteps = self.cfg.nsteps if nsteps is None else nsteps
        spf = self.cfg.steps_per_frame
        for _ in range(nsteps):
            self.step_start_time = time.perf_counter()
            self.step()
            self.step_end_time = time.perf_counter()
            if self.step_cnt % spf == 0:
                frame = self.step_cnt // spf
                log.debug(f"frame {frame} at step {self.step_cnt}, fps {self.get_fps():.1f}")
                if sink is not None:
                    sink(frame, self.particles.positions)

    # diagnostics

    def elastic_energy(self) -> float:
        F, _, _ = self.forces.element_state(self.particles.positions)
        psi = energy_density(F, self.mu, self.la)
        return float(np.sum(psi * self.elements.volume))

    def kinetic_energy(self) -> float:
        return self.particles.kinetic_energy()

    def calc_vol_error(self) -> float:
        """Relative change of the total (unsigned) element volume against the rest volume."""
        if self.total_rest_volume == 0.0:
            return 0.0
        F, _, _ = self.forces.element_state(self.particles.positions)
        J = np.abs(np.linalg.det(F))
        total_vol = float(np.sum(J * self.elements.volume))
        return (total_vol - self.total_rest_volume) / self.total_rest_volume

    def get_fps(self):
        if not hasattr(self, "step_start_time") or not hasattr(self, "step_end_time"):
            return 0.0
        dur = self.step_end_time - self.step_start_time
        if dur == 0:
            return 0.0
        else:
            return 1.0 / dur


def run_config(cfg: SimConfig):
    """Run a full simulation, writing frames to cfg.output_dir and printing per-frame diagnostics."""
    solver = FEMSolver(cfg)
    writer = MeshioFrameWriter(cfg.output_dir, solver.elements, cfg.frame_format, scene=solver.scene)

    def sink(frame, positions):
        writer(frame, positions)
        print(
            f"frame {frame:4d}  min y {positions[:, 1].min():+.4f}  "
            f"elastic {solver.elastic_energy():.4e}  kinetic {solver.kinetic_energy():.4e}  "
            f"vol err {solver.calc_vol_error() * 100:.2f} %"
        )

    solver.run(sink)
    print(f"Finished {solver.step_cnt} steps, wrote {len(writer.paths)} frames to {cfg.output_dir}")
    return solver


def main():
    logging.basicConfig(level=logging.INFO)
    run_config(load_config(get_config_path()))


if __name__ == "__main__":
    main()
