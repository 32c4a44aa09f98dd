"""Frame sinks. A sink is any callable `sink(frame_index, positions)`."""

import json
import logging
from pathlib import Path

import meshio
import numpy as np

from .collision import describe_scene
from .element import Elements

log = logging.getLogger("corofem")


class FrameRecorder:
    """Keeps a copy of the positions of every frame in memory."""

    def __init__(self):
        self.frames = []
        self.positions = []

    def __call__(self, frame: int, positions: np.ndarray):
        self.frames.append(int(frame))
        self.positions.append(np.array(positions, copy=True))

    def __len__(self):
        return len(self.frames)


class MeshioFrameWriter:
    """Writes one mesh file per frame, e.g. output/frames/frame_0003.vtu.

    With a scene, its geometry at that frame goes next to the mesh as
    frame_0003.scene.json, so moving obstacles can be replayed.
    """

    def __init__(self, output_dir: Path, elements: Elements, fmt: str = "vtu", prefix: str = "frame", scene=None):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.fmt = fmt.lstrip(".")
        self.prefix = prefix
        self.scene = scene
        cell_type = "tetra" if elements.dim == 3 else "triangle"
        self.cells = [(cell_type, np.asarray(elements.indices, dtype=np.int64))]
        self.paths = []
        self.scene_paths = []

    def __call__(self, frame: int, positions: np.ndarray):
        points = np.asarray(positions, dtype=np.float64)
        if points.shape[1] == 2:
            points = np.hstack([points, np.zeros((points.shape[0], 1))])
        path = self.output_dir / f"{self.prefix}_{frame:04d}.{self.fmt}"
        meshio.write(str(path), meshio.Mesh(points=points, cells=self.cells))
        self.paths.append(path)
        if self.scene is not None:
            scene_path = self.output_dir / f"{self.prefix}_{frame:04d}.scene.json"
            with open(scene_path, "w", encoding="utf-8") as f:
                json.dump(describe_scene(self.scene), f, indent=2)
            self.scene_paths.append(scene_path)
        log.debug(f"wrote frame {frame} to {path}")
