import json
from itertools import permutations
from pathlib import Path

import numpy as np


def load_mesh_json(path, dim=3):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    positions = np.array(data["P"], dtype=np.float64).reshape(-1, dim).copy()
    key = "tet" if dim == 3 else "tri"
    elements = np.array(data[key], dtype=np.int32).reshape(-1, dim + 1).copy()
    return positions, elements


def load_mesh_meshio(path, dim=3):
    import meshio

    def read_cells(filename):
        if Path(filename).suffix == "":
            filename += ".node"
        mesh = meshio.read(filename)
        cell_type = "tetra" if dim == 3 else "triangle"
        if cell_type not in mesh.cells_dict:
            raise ValueError(f"Mesh {filename} has no '{cell_type}' cells")
        return mesh.points, mesh.cells_dict[cell_type]

    positions, elements = read_cells(str(path))
    positions = np.asarray(positions, dtype=np.float64)[:, :dim].copy()
    return positions, np.asarray(elements, dtype=np.int32)


# just for testing
def load_mesh_one_tet():
    positions = np.array([
        [0.0, 0.0, 0.0],
        [1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)
    tets = np.array([
        [0, 2, 1, 3],
    ], dtype=np.int32)
    return positions, tets


def load_mesh_one_tri():
    positions = np.array([
        [0.0, 0.0],
        [1.0, 0.0],
        [0.0, 1.0],
    ], dtype=np.float64)
    tris = np.array([[0, 1, 2]], dtype=np.int32)
    return positions, tris


def make_box_mesh(resolution=2, size=1.0, origin=(0.0, 0.0, 0.0)):
    """Cube of `resolution`^3 cells, each split into 6 tetrahedra around its main diagonal.

    All cells share the same diagonal direction so the faces between
    neighbouring cells match.
    """
    n = int(resolution)
    if n < 1:
        raise ValueError(f"Mesh resolution must be >= 1, got {resolution}")
    grid = np.stack(
        np.meshgrid(np.arange(n + 1), np.arange(n + 1), np.arange(n + 1), indexing="ij"),
        axis=-1,
    ).reshape(-1, 3)
    positions = np.asarray(origin, dtype=np.float64) + grid.astype(np.float64) * (size / n)

    def vid(i, j, k):
        return (i * (n + 1) + j) * (n + 1) + k

    tets = []
    for i in range(n):
        for j in range(n):
            for k in range(n):
                corner = np.array([i, j, k])
                for perm in permutations(range(3)):
                    path = [corner.copy()]
                    cur = corner.copy()
                    for axis in perm:
                        cur = cur.copy()
                        cur[axis] += 1
                        path.append(cur)
                    tets.append([vid(*p) for p in path])
    return positions, np.asarray(tets, dtype=np.int32)


def make_rect_mesh(resolution=2, size=1.0, origin=(0.0, 0.0)):
    """Square of `resolution`^2 cells, each split into 2 triangles."""
    n = int(resolution)
    if n < 1:
        raise ValueError(f"Mesh resolution must be >= 1, got {resolution}")
    grid = np.stack(np.meshgrid(np.arange(n + 1), np.arange(n + 1), indexing="ij"), axis=-1).reshape(-1, 2)
    positions = np.asarray(origin, dtype=np.float64) + grid.astype(np.float64) * (size / n)

    tris = []
    for i in range(n):
        for j in range(n):
            v00 = i * (n + 1) + j
            v10 = (i + 1) * (n + 1) + j
            v01 = i * (n + 1) + j + 1
            v11 = (i + 1) * (n + 1) + j + 1
            tris.append([v00, v10, v11])
            tris.append([v00, v11, v01])
    return positions, np.asarray(tris, dtype=np.int32)


def make_builtin_mesh(name, dim=3, resolution=2, size=1.0, origin=None):
    name = name.lower()
    if origin is None:
        origin = [0.0] * dim
    origin = list(origin)[:dim]
    if name == "one_tet" and dim == 3:
        return load_mesh_one_tet()
    if name == "one_tri" and dim == 2:
        return load_mesh_one_tri()
    if name == "cube" and dim == 3:
        return make_box_mesh(resolution, size, origin)
    if name == "square" and dim == 2:
        return make_rect_mesh(resolution, size, origin)
    raise ValueError(f"No built-in {dim}-D mesh named '{name}'")


def load_mesh(path, dim=3):
    if path is None:
        print("Using built-in one-tet mesh for testing.")
        return load_mesh_one_tet() if dim == 3 else load_mesh_one_tri()
    suffix = Path(path).suffix
    if suffix == ".json":
        return load_mesh_json(str(path), dim)
    if suffix in ("", ".node", ".msh", ".vtk", ".vtu", ".mesh"):
        return load_mesh_meshio(str(path), dim)
    raise ValueError(f"Unsupported mesh file format: {path}")


def check_mesh(positions: np.ndarray, elements: np.ndarray, dim: int):
    positions = np.ascontiguousarray(positions, dtype=np.float64)
    elements = np.ascontiguousarray(elements, dtype=np.int32)
    if positions.ndim != 2 or positions.shape[1] != dim:
        raise ValueError(f"Expected positions shape (N,{dim}), got {positions.shape}.")
    if elements.ndim != 2 or elements.shape[1] != dim + 1:
        raise ValueError(f"Expected elements shape (M,{dim + 1}), got {elements.shape}.")
    if elements.size and (elements.min() < 0 or elements.max() >= positions.shape[0]):
        raise ValueError("Element vertex index out of range.")
    return positions, elements
