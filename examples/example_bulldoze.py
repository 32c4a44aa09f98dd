"""2-D jello square pushed along the ground by a moving platform."""

import argparse
import logging
from pathlib import Path

from CoroFEM.config import load_config
from CoroFEM.frames import FrameRecorder
from CoroFEM.solver import FEMSolver


def main():
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Moving platform pushing a 2-D jello square.")
    parser.add_argument("--config", type=Path, default=Path("data/config/bulldoze_2d.json"))
    args, _ = parser.parse_known_args()

    cfg = load_config(args.config)
    solver = FEMSolver(cfg)
    recorder = FrameRecorder()
    solver.run(recorder)
    for frame, pos in zip(recorder.frames, recorder.positions):
        print(f"frame {frame:4d}  centroid x {pos[:, 0].mean():+.4f}  y {pos[:, 1].mean():+.4f}")


if __name__ == "__main__":
    main()
