import logging

import numpy as np
import scipy.sparse
import pytest

from CoroFEM.element import distribute_mass, precompute_rest
from CoroFEM.forces import ForceAssembler
from CoroFEM.material import lame_parameters
from CoroFEM.particles import Particles
from CoroFEM.stiffness import (
    StiffnessAssembler,
    build_implicit_system,
    element_dofs,
    solve_implicit_system,
)

MU, LA = lame_parameters(10000.0, 0.3)


def setup(pos, elems, pinned=None):
    elements = precompute_rest(pos, elems)
    mass = distribute_mass(elements, 1000.0, pos.shape[0])
    particles = Particles.from_positions(pos, mass, pinned)
    forces = ForceAssembler(elements, MU, LA, backend="numpy")
    stiffness = StiffnessAssembler(elements, MU, LA, particles.n_verts)
    return particles, forces, stiffness


def stiffness_at(forces, stiffness, x):
    F, S, R = forces.element_state(x)
    return stiffness.assemble(F, S, R)


def test_element_dofs_vertex_major():
    dofs = element_dofs(np.array([[2, 0, 1]]), 2)
    assert dofs.tolist() == [[4, 5, 0, 1, 2, 3]]


@pytest.mark.parametrize("mesh", ["small_box", "square_mesh"])
def test_stiffness_is_symmetric(mesh, deform, request):
    pos, elems = request.getfixturevalue(mesh)
    particles, forces, stiffness = setup(pos, elems)
    K = stiffness_at(forces, stiffness, deform(pos)).toarray()
    assert K.shape == (pos.size, pos.size)
    np.testing.assert_allclose(K, K.T, atol=1e-8 * np.abs(K).max())


@pytest.mark.parametrize("mesh", ["small_box", "square_mesh"])
def test_stiffness_matches_force_finite_difference(mesh, deform, request):
    pos, elems = request.getfixturevalue(mesh)
    particles, forces, stiffness = setup(pos, elems)
    x = deform(pos, amount=0.02, seed=2)
    K = stiffness_at(forces, stiffness, x).toarray()

    def force(y):
        particles.positions[:] = y
        particles.zero_forces()
        forces.assemble(particles)
        return particles.forces.ravel().copy()

    h = 1e-6
    fd = np.zeros_like(K)
    for j in range(x.size):
        xp = x.ravel().copy()
        xm = x.ravel().copy()
        xp[j] += h
        xm[j] -= h
        fd[:, j] = (force(xp.reshape(x.shape)) - force(xm.reshape(x.shape))) / (2 * h)
    np.testing.assert_allclose(K, fd, rtol=1e-4, atol=1e-4 * np.abs(K).max())


def test_rest_stiffness_is_negative_semidefinite(small_box):
    pos, tets = small_box
    particles, forces, stiffness = setup(pos, tets)
    K = stiffness_at(forces, stiffness, pos).toarray()
    eig = np.linalg.eigvalsh(0.5 * (K + K.T))
    assert eig.max() < 1e-6 * np.abs(eig).max()
    # rigid translations are in the null space
    ones = np.tile(np.eye(3)[0], pos.shape[0])
    np.testing.assert_allclose(K @ ones, 0.0, atol=1e-8 * np.abs(K).max())


def test_implicit_system_at_rest_has_zero_step(small_box):
    pos, tets = small_box
    particles, forces, stiffness = setup(pos, tets)
    forces.assemble(particles)
    K = stiffness_at(forces, stiffness, particles.positions)
    A, b = build_implicit_system(K, particles, dt=1e-2, gravity=0.0)
    assert isinstance(A, scipy.sparse.csr_matrix)
    np.testing.assert_allclose(b, 0.0, atol=1e-8)
    dx = solve_implicit_system(A, b)
    np.testing.assert_allclose(dx, 0.0, atol=1e-10)


def test_implicit_system_free_fall(small_box):
    pos, tets = small_box
    particles, forces, stiffness = setup(pos, tets)
    dt = 1e-2
    K = stiffness_at(forces, stiffness, particles.positions)
    A, b = build_implicit_system(K, particles, dt=dt, gravity=-9.8)
    dx = solve_implicit_system(A, b, tol=1e-12, maxiter=1000).reshape(pos.shape)
    np.testing.assert_allclose(dx[:, 1], -9.8 * dt * dt, rtol=1e-6)
    np.testing.assert_allclose(dx[:, [0, 2]], 0.0, atol=1e-10)


def test_fixed_vertices_get_identity_rows(small_box):
    pos, tets = small_box
    particles, forces, stiffness = setup(pos, tets, pinned=[0, 3])
    K = stiffness_at(forces, stiffness, particles.positions)
    A, b = build_implicit_system(K, particles, dt=1e-2, gravity=-9.8)
    A = A.toarray()
    for dof in (0, 1, 2, 9, 10, 11):
        expected = np.zeros(A.shape[0])
        expected[dof] = 1.0
        np.testing.assert_array_equal(A[dof], expected)
        np.testing.assert_array_equal(A[:, dof], expected)
        assert b[dof] == 0.0
    dx = solve_implicit_system(scipy.sparse.csr_matrix(A), b).reshape(pos.shape)
    np.testing.assert_array_equal(dx[[0, 3]], 0.0)


def test_non_convergence_only_warns(caplog):
    n = 24
    A = scipy.sparse.diags(np.arange(1.0, n + 1.0)).tocsr()
    b = np.ones(n)
    with caplog.at_level(logging.WARNING, logger="corofem"):
        dx = solve_implicit_system(A, b, maxiter=1)
    assert dx.shape == (n,)
    assert np.all(np.isfinite(dx))
    assert "did not converge" in caplog.text
