"""Headless run of an experiment preset with optional result export.

Usage: python scripts/headless_run.py --preset water --steps 600 --mode educational
"""
import argparse
import json
import logging
import os
import sys

# Ensure project root is on sys.path when running from scripts/
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from bondlab.config import SIMULATION_MODES, list_presets
from bondlab.constants import LOGGING_LEVEL
from bondlab.simulation_manager import SimulationManager


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run a bonding experiment without a UI.")
    parser.add_argument("--preset", choices=list_presets(), default="water")
    parser.add_argument("--mode", choices=sorted(SIMULATION_MODES), default="educational")
    parser.add_argument("--steps", type=int, default=600)
    parser.add_argument("--energy", type=float, default=0.0, help="extra heat pulse after loading")
    parser.add_argument("--seed", type=int, default=12345)
    parser.add_argument("--export-dir", default=None, help="write atoms/bonds/molecules/events here")
    parser.add_argument("--registry", default=None, help="discovered-molecules JSON to load and update")
    parser.add_argument("--log-level", default=LOGGING_LEVEL)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.INFO),
                        format="%(asctime)s [%(levelname)s] %(message)s")

    mgr = SimulationManager(preset=args.preset, mode=args.mode, seed=args.seed, registry_path=args.registry)
    if args.energy > 0:
        mgr.sim.add_energy(args.energy)
    mgr.run_steps(n_steps=args.steps)

    print(json.dumps(mgr.summary(), indent=2, ensure_ascii=False))
    if args.export_dir:
        print("Exported results to:", mgr.export_results(args.export_dir))
    if args.registry:
        mgr.save_registry()
    return 0


if __name__ == "__main__":
    sys.exit(main())
