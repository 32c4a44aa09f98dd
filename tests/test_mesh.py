import json

import meshio
import numpy as np
import pytest

from CoroFEM.mesh import load_mesh, make_box_mesh, make_builtin_mesh


def test_load_json_mesh(tmp_path):
    path = tmp_path / "tet.json"
    path.write_text(json.dumps({
        "P": [0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 1],
        "tet": [0, 1, 2, 3],
    }))
    pos, tets = load_mesh(path)
    assert pos.shape == (4, 3)
    assert tets.tolist() == [[0, 1, 2, 3]]


def test_load_meshio_mesh(tmp_path):
    pos, tets = make_box_mesh(resolution=2)
    path = tmp_path / "box.vtu"
    meshio.write_points_cells(str(path), pos, [("tetra", tets.astype(np.int64))])
    loaded_pos, loaded_tets = load_mesh(path)
    np.testing.assert_allclose(loaded_pos, pos)
    np.testing.assert_array_equal(loaded_tets, tets)
    assert loaded_tets.dtype == np.int32


def test_load_meshio_2d_drops_z(tmp_path):
    pos = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
    path = tmp_path / "tri.vtk"
    meshio.write_points_cells(str(path), pos, [("triangle", np.array([[0, 1, 2]]))])
    loaded_pos, loaded_tris = load_mesh(path, dim=2)
    assert loaded_pos.shape == (3, 2)
    assert loaded_tris.shape == (1, 3)


def test_load_mesh_without_path_gives_single_element():
    pos, tets = load_mesh(None)
    assert tets.shape == (1, 4)
    pos, tris = load_mesh(None, dim=2)
    assert tris.shape == (1, 3)


def test_unsupported_mesh_format(tmp_path):
    with pytest.raises(ValueError):
        load_mesh(tmp_path / "mesh.obj")


def test_builtin_mesh_dim_mismatch():
    with pytest.raises(ValueError):
        make_builtin_mesh("cube", dim=2)
    pos, tris = make_builtin_mesh("square", dim=2, resolution=2, size=1.0, origin=[0.0, 0.5, 0.0])
    assert pos.shape == (9, 2)
    assert pos[:, 1].min() == pytest.approx(0.5)
