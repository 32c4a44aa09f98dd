from dataclasses import dataclass
from math import factorial

import numpy as np


@dataclass
class Elements:
    """Rest-state constants of every element, set once by `precompute_rest`.

    indices: (M, dim+1) vertex ids, the last vertex is the reference vertex of Dm.
    dm_inv: (M, dim, dim) inverse rest-shape matrix, zero for degenerate elements.
    volume: (M,) unsigned rest volume (area in 2-D).
    signed_volume: (M,) det(Dm)/dim!, sign follows vertex ordering.
    valid: (M,) 1 for usable elements, 0 for degenerate ones.
    """
    indices: np.ndarray
    dm_inv: np.ndarray
    volume: np.ndarray
    signed_volume: np.ndarray
    valid: np.ndarray

    @property
    def n_elements(self) -> int:
        return int(self.indices.shape[0])

    @property
    def dim(self) -> int:
        return int(self.indices.shape[1]) - 1

    @property
    def n_degenerate(self) -> int:
        return int(self.n_elements - np.count_nonzero(self.valid))


def compute_rest_shape(positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Dm with columns x_i - x_last for the first dim vertices, shape (M, dim, dim)."""
    dim = indices.shape[1] - 1
    elem_pos = positions[indices]                                   # (M, dim+1, dim)
    rows = elem_pos[:, :dim, :] - elem_pos[:, dim:dim + 1, :]       # rows are edges
    return np.transpose(rows, (0, 2, 1))                            # columns are edges


def precompute_rest(positions: np.ndarray, indices: np.ndarray) -> Elements:
    """Batch compute DmInv and rest volume for all elements.

    Elements whose rest volume is zero are flagged invalid and keep a zero
    DmInv, so they add no force, stiffness or mass for the rest of the run.
    """
    indices = np.ascontiguousarray(indices, dtype=np.int32)
    dim = indices.shape[1] - 1
    n_elem = indices.shape[0]

    Dm = compute_rest_shape(positions, indices)
    dets = np.linalg.det(Dm) if n_elem else np.zeros(0)
    signed_volume = dets / factorial(dim)
    valid = np.abs(dets) > 1e-30

    dm_inv = np.zeros((n_elem, dim, dim), dtype=np.float64)
    if np.any(valid):
        dm_inv[valid] = np.linalg.inv(Dm[valid])
    volume = np.where(valid, np.abs(signed_volume), 0.0)

    return Elements(
        indices=indices,
        dm_inv=np.ascontiguousarray(dm_inv),
        volume=np.ascontiguousarray(volume, dtype=np.float64),
        signed_volume=signed_volume.astype(np.float64),
        valid=valid.astype(np.int32),
    )


def distribute_mass(elements: Elements, density: float, n_verts: int) -> np.ndarray:
    """Lumped vertex mass: every valid element gives 1/(dim+1) of its mass to each vertex."""
    mass = np.zeros(n_verts, dtype=np.float64)
    share = elements.volume * density / (elements.dim + 1)
    for i in range(elements.dim + 1):
        np.add.at(mass, elements.indices[:, i], share)
    return mass


def shape_gradients(dm_inv: np.ndarray) -> np.ndarray:
    """dF/dx weights H, shape (M, dim+1, dim).

    F_kl depends on vertex b through dF_kl/dx_{b,r} = delta_kr * H[b, l];
    H[b] = DmInv[b] for the independent vertices and the last vertex gets
    minus their sum.
    """
    H = np.concatenate([dm_inv, -dm_inv.sum(axis=1, keepdims=True)], axis=1)
    return H
