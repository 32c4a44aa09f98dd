"""Drop a subdivided jello cube onto the ground plane with explicit integration.

Writes one .vtu per frame to the configured output_dir and prints energies per frame.

Usage:
    python examples/example_cube_drop.py
    python examples/example_cube_drop.py --config data/config/cube_drop.json
"""

import argparse
import logging
from pathlib import Path

from CoroFEM.config import load_config
from CoroFEM.solver import run_config


def main():
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Jello cube drop.")
    parser.add_argument("--config", type=Path, default=Path("data/config/cube_drop.json"))
    args, _ = parser.parse_known_args()
    run_config(load_config(args.config))


if __name__ == "__main__":
    main()
