import os
from dotenv import load_dotenv

def main():
    load_dotenv()
    example_to_run = os.environ.get("RUN", "cube_drop")
    print(f"Running example: {example_to_run}")

    if example_to_run == "cube_drop":
        from examples import example_cube_drop
        example_cube_drop.main()
    elif example_to_run == "implicit_drop":
        from examples import example_implicit_drop
        example_implicit_drop.main()
    elif example_to_run == "bulldoze":
        from examples import example_bulldoze
        example_bulldoze.main()
    elif example_to_run == "solver":
        from CoroFEM import solver
        solver.main()
    else:
        raise ValueError(f"Unknown example '{example_to_run}'")

if __name__ == "__main__":
    main()
