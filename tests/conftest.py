"""Shared pytest configuration for the test suite."""
import sys
from pathlib import Path

import numpy as np
import pytest

# Allow imports like `from CoroFEM.solver import FEMSolver` from test files.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from CoroFEM.config import SimConfig  # noqa: E402
from CoroFEM.mesh import load_mesh_one_tet, make_box_mesh, make_rect_mesh  # noqa: E402


@pytest.fixture(scope="session")
def taichi_cpu():
    import taichi as ti
    ti.init(arch=ti.cpu, default_fp=ti.f64, log_level="warn")
    return ti


@pytest.fixture
def one_tet():
    return load_mesh_one_tet()


@pytest.fixture
def small_box():
    """8 vertices, 6 tetrahedra."""
    return make_box_mesh(resolution=1, size=0.5, origin=(0.0, 0.0, 0.0))


@pytest.fixture
def box_mesh():
    return make_box_mesh(resolution=2, size=0.2, origin=(0.0, 0.05, 0.0))


@pytest.fixture
def square_mesh():
    return make_rect_mesh(resolution=3, size=0.3, origin=(0.0, 0.05))


@pytest.fixture
def deform():
    """Positions with a smooth non-rigid deformation plus seeded noise."""
    def _deform(positions, amount=0.05, seed=0):
        rng = np.random.default_rng(seed)
        x = positions.copy()
        x[:, 0] *= 1.1
        x[:, 1] += 0.2 * positions[:, 0]
        return x + amount * rng.standard_normal(x.shape) * np.ptp(positions)
    return _deform


@pytest.fixture
def make_cfg():
    """SimConfig with small, fast defaults; keyword arguments override."""
    def _make(**overrides):
        base = dict(
            name="Test",
            nsteps=10,
            steps_per_frame=5,
            dt=1e-3,
            k=10000.0,
            nu=0.3,
            backend="numpy",
            scene="none",
            log_level="warn",
        )
        base.update(overrides)
        return SimConfig(**base)
    return _make
