"""Corotational material model, batched over leading axes with numpy.

Every function takes deformation gradients of shape (..., dim, dim) with
dim 2 or 3. The same math runs inside the Taichi force kernel
(`kernels.py`); this module is what the stiffness assembly and the numpy
backend use.

Energy density: psi(F) = mu * |F - R|^2 + lambda / 2 * (det F - 1)^2
"""

import numpy as np


def lame_parameters(k: float, nu: float):
    """mu and lambda from stiffness k and Poisson ratio nu."""
    mu = k / (2.0 * (1.0 + nu))
    la = k * nu / ((1.0 + nu) * (1.0 - 2.0 * nu))
    return mu, la


def clamp_small(F: np.ndarray, eps: float = 1e-9) -> np.ndarray:
    """Snap entries with magnitude below eps to exactly zero."""
    return np.where(np.abs(F) < eps, 0.0, F)


def ssvd(F: np.ndarray):
    """SVD with U and V forced to proper rotations.

    A reflection in U or V is removed by flipping its last column and the
    last singular value, so sigma[-1] may come back negative.
    Returns U, sigma (..., dim), V with F = U diag(sigma) V^T.
    """
    U, sigma, Vt = np.linalg.svd(F)
    V = np.swapaxes(Vt, -1, -2).copy()
    U = U.copy()
    sigma = sigma.copy()

    sign_u = np.where(np.linalg.det(U) < 0.0, -1.0, 1.0)
    U[..., :, -1] *= sign_u[..., None]
    sigma[..., -1] *= sign_u

    sign_v = np.where(np.linalg.det(V) < 0.0, -1.0, 1.0)
    V[..., :, -1] *= sign_v[..., None]
    sigma[..., -1] *= sign_v
    return U, sigma, V


def polar_decomposition(F: np.ndarray):
    """F = R S with R a rotation (det +1) and S symmetric. Returns S, R."""
    U, sigma, V = ssvd(F)
    Vt = np.swapaxes(V, -1, -2)
    R = U @ Vt
    S = (V * sigma[..., None, :]) @ Vt
    return S, R


def cofactor(F: np.ndarray) -> np.ndarray:
    """det(F) * F^-T from the closed-form adjugate, valid for singular F."""
    dim = F.shape[-1]
    if dim == 2:
        return np.stack([
            np.stack([F[..., 1, 1], -F[..., 1, 0]], axis=-1),
            np.stack([-F[..., 0, 1], F[..., 0, 0]], axis=-1),
        ], axis=-2)
    if dim == 3:
        f = lambda i, j: F[..., i, j]
        return np.stack([
            np.stack([f(1, 1) * f(2, 2) - f(1, 2) * f(2, 1),
                      f(1, 2) * f(2, 0) - f(1, 0) * f(2, 2),
                      f(1, 0) * f(2, 1) - f(1, 1) * f(2, 0)], axis=-1),
            np.stack([f(0, 2) * f(2, 1) - f(0, 1) * f(2, 2),
                      f(0, 0) * f(2, 2) - f(0, 2) * f(2, 0),
                      f(0, 1) * f(2, 0) - f(0, 0) * f(2, 1)], axis=-1),
            np.stack([f(0, 1) * f(1, 2) - f(0, 2) * f(1, 1),
                      f(0, 2) * f(1, 0) - f(0, 0) * f(1, 2),
                      f(0, 0) * f(1, 1) - f(0, 1) * f(1, 0)], axis=-1),
        ], axis=-2)
    raise ValueError(f"Dimension must be 2 or 3, got {dim}")


def piola_stress(F: np.ndarray, mu: float, la: float, R: np.ndarray = None) -> np.ndarray:
    """First Piola-Kirchhoff stress P = 2 mu (F - R) + lambda (J - 1) J F^-T."""
    if R is None:
        _, R = polar_decomposition(F)
    J = np.linalg.det(F)
    return 2.0 * mu * (F - R) + la * (J - 1.0)[..., None, None] * cofactor(F)


def energy_density(F: np.ndarray, mu: float, la: float) -> np.ndarray:
    _, R = polar_decomposition(F)
    J = np.linalg.det(F)
    return mu * np.sum((F - R) ** 2, axis=(-2, -1)) + 0.5 * la * (J - 1.0) ** 2


# ---------------------------------------------------------------------------
# Second derivative of psi
# ---------------------------------------------------------------------------

LEVI_CIVITA = np.zeros((3, 3, 3))
LEVI_CIVITA[0, 1, 2] = LEVI_CIVITA[1, 2, 0] = LEVI_CIVITA[2, 0, 1] = 1.0
LEVI_CIVITA[0, 2, 1] = LEVI_CIVITA[2, 1, 0] = LEVI_CIVITA[1, 0, 2] = -1.0

# dC_ij / dF_mn for the 3x3 cofactor C, keyed by (m, n).
# Entries are (i, j, sign, a, b): dC_ij/dF_mn = sign * F[a, b].
# Row m and column n of every pattern are zero.
COFACTOR_DERIVATIVE_3D = {
    (0, 0): ((1, 1, +1, 2, 2), (1, 2, -1, 2, 1), (2, 1, -1, 1, 2), (2, 2, +1, 1, 1)),
    (0, 1): ((1, 0, -1, 2, 2), (1, 2, +1, 2, 0), (2, 0, +1, 1, 2), (2, 2, -1, 1, 0)),
    (0, 2): ((1, 0, +1, 2, 1), (1, 1, -1, 2, 0), (2, 0, -1, 1, 1), (2, 1, +1, 1, 0)),
    (1, 0): ((0, 1, -1, 2, 2), (0, 2, +1, 2, 1), (2, 1, +1, 0, 2), (2, 2, -1, 0, 1)),
    (1, 1): ((0, 0, +1, 2, 2), (0, 2, -1, 2, 0), (2, 0, -1, 0, 2), (2, 2, +1, 0, 0)),
    (1, 2): ((0, 0, -1, 2, 1), (0, 1, +1, 2, 0), (2, 0, +1, 0, 1), (2, 1, -1, 0, 0)),
    (2, 0): ((0, 1, +1, 1, 2), (0, 2, -1, 1, 1), (1, 1, -1, 0, 2), (1, 2, +1, 0, 1)),
    (2, 1): ((0, 0, -1, 1, 2), (0, 2, +1, 1, 0), (1, 0, +1, 0, 2), (1, 2, -1, 0, 0)),
    (2, 2): ((0, 0, +1, 1, 1), (0, 1, -1, 1, 0), (1, 0, -1, 0, 1), (1, 1, +1, 0, 0)),
}

# 2x2 cofactor is linear in F: (i, j, sign).
COFACTOR_DERIVATIVE_2D = {
    (0, 0): ((1, 1, +1),),
    (0, 1): ((1, 0, -1),),
    (1, 0): ((0, 1, -1),),
    (1, 1): ((0, 0, +1),),
}


def cofactor_derivative(F: np.ndarray) -> np.ndarray:
    """dC_ij/dF_mn as an array indexed [..., i, j, m, n]."""
    dim = F.shape[-1]
    dC = np.zeros(F.shape[:-2] + (dim, dim, dim, dim))
    if dim == 2:
        for (m, n), entries in COFACTOR_DERIVATIVE_2D.items():
            for i, j, sign in entries:
                dC[..., i, j, m, n] = sign
    elif dim == 3:
        for (m, n), entries in COFACTOR_DERIVATIVE_3D.items():
            for i, j, sign, a, b in entries:
                dC[..., i, j, m, n] = sign * F[..., a, b]
    else:
        raise ValueError(f"Dimension must be 2 or 3, got {dim}")
    return dC


def _safe_inverse(A: np.ndarray, tol: float = 1e-12) -> np.ndarray:
    # pseudo-inverse where A is singular (collapsed element)
    det = np.linalg.det(A)
    ok = np.abs(det) > tol
    Ainv = np.zeros_like(A)
    if np.any(ok):
        Ainv[ok] = np.linalg.inv(A[ok])
    if np.any(~ok):
        Ainv[~ok] = np.linalg.pinv(A[~ok])
    return Ainv


def rotation_derivative(R: np.ndarray, S: np.ndarray) -> np.ndarray:
    """dR_ab/dF_cd of the polar rotation, indexed [..., a, b, c, d].

    3-D: with A = tr(S) I - S = eps_kab eps_mcb S_ac,
        dR_ab/dF_cd = R_ai eps_ibk A^-1_km eps_pdm R_cp
    2-D: R = rot(theta), dtheta/dF_cd = (R_c1 delta_d0 - R_c0 delta_d1) / tr(S).
    """
    dim = R.shape[-1]
    if dim == 3:
        eps = LEVI_CIVITA
        A = np.einsum("kab,mcb,...ac->...km", eps, eps, S)
        Ainv = _safe_inverse(A.reshape(-1, 3, 3)).reshape(A.shape)
        return np.einsum("...ai,ibk,...km,pdm,...cp->...abcd", R, eps, Ainv, eps, R, optimize=True)
    if dim == 2:
        J = np.array([[0.0, -1.0], [1.0, 0.0]])
        trace = S[..., 0, 0] + S[..., 1, 1]
        inv_trace = 1.0 / np.where(np.abs(trace) > 1e-12, trace, np.inf)
        dtheta = np.zeros(R.shape)
        dtheta[..., :, 0] = R[..., :, 1]
        dtheta[..., :, 1] = -R[..., :, 0]
        dtheta *= inv_trace[..., None, None]
        return np.einsum("...ab,...cd->...abcd", R @ J, dtheta)
    raise ValueError(f"Dimension must be 2 or 3, got {dim}")


def stress_derivative(F: np.ndarray, mu: float, la: float, S: np.ndarray = None, R: np.ndarray = None) -> np.ndarray:
    """dP_ij/dF_kl, indexed [..., i, j, k, l].

    Sum of three analytic terms: the identity term of 2 mu (F - R), the
    polar rotation derivative, and the volume terms lambda C (x) C +
    lambda (J - 1) dC/dF.
    """
    dim = F.shape[-1]
    if S is None or R is None:
        S, R = polar_decomposition(F)
    eye = np.eye(dim)
    identity = np.einsum("ik,jl->ijkl", eye, eye)
    C = cofactor(F)
    J = np.linalg.det(F)

    dR = rotation_derivative(R, S)
    dC = cofactor_derivative(F)
    return (
        2.0 * mu * (identity - dR)
        + la * np.einsum("...ij,...kl->...ijkl", C, C)
        + la * (J - 1.0)[..., None, None, None, None] * dC
    )
