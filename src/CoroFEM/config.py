import argparse
import json
from dataclasses import dataclass, field, fields
from pathlib import Path

import taichi as ti


@dataclass
class SimConfig:
    name: str = "JelloSim"
    dim: int = 3
    mesh: str = "cube"  # built-in mesh: "one_tet", "cube", "square"; ignored when mesh_path is set
    mesh_path: Path = None
    mesh_resolution: int = 3
    mesh_size: float = 1.0
    mesh_origin: list = field(default_factory=lambda: [0.0, 0.5, 0.0])
    # material, values are for rubber
    k: float = 10000.0
    nu: float = 0.2
    density: float = 1000.0
    gravity: float = -9.8  # acceleration along y
    dt: float = 1.0 / (24 * 600)
    nsteps: int = 6000
    steps_per_frame: int = 600
    integrator: str = "explicit"  # "explicit" or "implicit"
    backend: str = "taichi"  # "taichi" or "numpy"
    arch: str = "cpu"
    log_level: str = "warn"
    scene: object = "default"  # preset name or dict, see collision.build_scene
    collision_response: str = "revert"  # "revert" or "project"
    pinned_vertices: list = None
    eps_clamp: float = 1e-9
    solver_tol: float = 1e-8
    solver_maxiter: int = 500
    output_dir: Path = Path("output/frames")
    frame_format: str = "vtu"


INTEGRATORS = ("explicit", "implicit")
BACKENDS = ("taichi", "numpy")
COLLISION_RESPONSES = ("revert", "project")


def pick_arch(name: str):
    name = name.lower()
    if name == "vulkan":
        return ti.vulkan
    if name == "cpu":
        return ti.cpu
    if name == "cuda":
        return ti.cuda
    return ti.cpu


def load_config(path: Path) -> SimConfig:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    # defaults live in SimConfig, only override provided keys
    path_fields = {"mesh_path", "output_dir"}
    kwargs = {}
    for fld in fields(SimConfig):
        name = fld.name
        if name in data:
            value = data[name]
            if name in path_fields:
                kwargs[name] = Path(value) if value else None
            else:
                kwargs[name] = value
    return SimConfig(**kwargs)


def validate_config(cfg: SimConfig) -> None:
    """Reject configurations the solver cannot run. Called before the time loop."""
    if cfg.dim not in (2, 3):
        raise ValueError(f"Dimension must be 2 or 3, got {cfg.dim}")
    if cfg.dt <= 0:
        raise ValueError(f"Time step dt must be positive, got {cfg.dt}")
    if cfg.nsteps <= 0:
        raise ValueError(f"nsteps must be positive, got {cfg.nsteps}")
    if cfg.steps_per_frame <= 0:
        raise ValueError(f"steps_per_frame must be positive, got {cfg.steps_per_frame}")
    if cfg.integrator not in INTEGRATORS:
        raise ValueError(f"Unknown integrator '{cfg.integrator}', expected one of {INTEGRATORS}")
    if cfg.backend not in BACKENDS:
        raise ValueError(f"Unknown backend '{cfg.backend}', expected one of {BACKENDS}")
    if cfg.collision_response not in COLLISION_RESPONSES:
        raise ValueError(
            f"Unknown collision response '{cfg.collision_response}', expected one of {COLLISION_RESPONSES}"
        )
    if not (-1.0 < cfg.nu < 0.5):
        raise ValueError(f"Poisson ratio must lie in (-1, 0.5), got {cfg.nu}")
    if cfg.k <= 0:
        raise ValueError(f"Stiffness k must be positive, got {cfg.k}")


def get_config_path():
    parser = argparse.ArgumentParser(description="Corotational jello simulation.")
    parser.add_argument("--config", type=Path, default=Path("data/config/cube_drop.json"), help="Path to JSON config.")
    return parser.parse_args().config
