"""Entry point for the PBD / XPBD cloth simulation demo."""
from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import List, Sequence

_MODULE_DIR = pathlib.Path(__file__).resolve().parent
if str(_MODULE_DIR) not in sys.path:
    sys.path.insert(0, str(_MODULE_DIR))

from cloth3d import Cloth3D, SphereCollider
from logging_config import setup_logging
from mesh3d import Mesh3D
from simulation3d import DEFAULT_ITERATIONS, SimulationContext, SimulationMode

logger = logging.getLogger(__name__)

# Each extra particle row adds a row of constraints to every Gauss-Seidel sweep;
# 20x20 with 20 sweeps keeps the viewer interactive in pure Python.
DEFAULT_RESOLUTION = 20

# (radius, x, y, z) of the spheres roughly approximating a human torso and arms.
BODY_SPHERES = (
    (0.1, -0.00964272, 0.00487864, -0.00019705296),
    (0.08, 0.00054020714, -0.095394075, -0.0036351085),
    (0.100999996, 0.15198378, -0.22183715, -0.017068058),
    (0.0845, 0.07931688, -0.18869743, -0.011383),
    (0.068, 0.006649964, -0.1555577, -0.005697942),
    (0.100999996, -0.131352, -0.20754479, -0.043588962),
    (0.0845, -0.062351022, -0.18155125, -0.024643453),
    (0.093399994, 0.2420846, -0.21270585, -0.040538955),
    (0.0866, 0.33278927, -0.23020619, -0.059466075),
    (0.08, 0.42082617, -0.24719185, -0.07783651),
    (0.093399994, -0.21404074, -0.20185287, -0.055183973),
    (0.0866, -0.29637498, -0.22534016, -0.059819847),
    (0.08, -0.37628764, -0.24813664, -0.06431937),
    (0.07339999, 0.50924724, -0.25322366, -0.08937363),
    (0.066599995, 0.60034776, -0.25943828, -0.10126037),
    (0.06, 0.68876886, -0.2654701, -0.1127975),
    (0.07339999, -0.47129363, -0.2560258, -0.07179497),
    (0.066599995, -0.5691786, -0.26415402, -0.079497114),
    (0.06, -0.6641846, -0.2720432, -0.08697271),
    (0.105000004, 0.08969513, -0.3231805, -0.0020129606),
    (0.11, 0.09738652, -0.45480677, 0.02527158),
    (0.114999995, 0.1050779, -0.58643305, 0.05255612),
    (0.12, 0.11276928, -0.7180593, 0.07984066),
    (0.105000004, -0.066214666, -0.3246228, -0.009860255),
    (0.11, -0.07034518, -0.4660233, 0.023834959),
    (0.114999995, -0.07447569, -0.6074238, 0.057530172),
    (0.12, -0.07860621, -0.74882424, 0.091225386),
)


def create_body_colliders() -> List[SphereCollider]:
    return [SphereCollider(center=(x, y, z), radius=radius) for radius, x, y, z in BODY_SPHERES]


def create_context(mode: SimulationMode, iterations: int = DEFAULT_ITERATIONS) -> SimulationContext:
    """Start in plain PBD and switch to ``mode``, so PBD is the mode to return to."""
    context = SimulationContext(mode=SimulationMode.PBD, iteration_count=iterations)
    context.set_mode(mode)
    return context


def run_headless(
    cloth: Cloth3D,
    context: SimulationContext,
    colliders: Sequence[SphereCollider],
    frames: int,
    dt: float,
) -> List[int]:
    """Step the cloth ``frames`` times with a fixed ``dt`` and no window.

    Returns the solve time of every frame in milliseconds.
    """
    solve_times: List[int] = []
    for frame in range(frames):
        cloth.step(context, dt, colliders)
        solve_times.append(context.last_solve_duration_ms)
        logger.debug("frame %d: %s", frame, ", ".join(context.status_lines()))

    if frames:
        logger.info(
            "%d frames in %s: mean solve %.1f ms, max constraint error %.3g",
            frames,
            context.current_mode_label,
            sum(solve_times) / frames,
            cloth.max_violation(),
        )
    return solve_times


def _positive_timestep(value: str) -> float:
    if "/" in value:
        numerator, denominator = value.split("/", 1)
        timestep = float(numerator) / float(denominator)
    else:
        timestep = float(value)
    if timestep <= 0:
        raise argparse.ArgumentTypeError("timestep must be positive")
    return timestep


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="PBD / XPBD cloth simulation demo")
    parser.add_argument("--width", type=float, default=1.5, help="Physical width of the cloth")
    parser.add_argument("--height", type=float, default=1.5, help="Physical height of the cloth")
    parser.add_argument(
        "--resolution", type=int, default=DEFAULT_RESOLUTION, help="Particles along each side of the cloth"
    )
    parser.add_argument("--iterations", type=int, default=DEFAULT_ITERATIONS, help="Solver sweeps per frame")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in SimulationMode],
        default=SimulationMode.XPBD_FAT.value,
        help="Solver mode: plain PBD or XPBD with a material compliance",
    )
    parser.add_argument(
        "--scenario",
        choices=("body", "none"),
        default="body",
        help="Drop the cloth onto the sphere body or let it fall freely",
    )
    parser.add_argument("--headless", action="store_true", help="Run without a window")
    parser.add_argument("--frames", type=int, default=120, help="Frames to simulate in headless mode")
    parser.add_argument(
        "--timestep",
        type=_positive_timestep,
        default=1 / 60.0,
        help="Fixed time step for headless mode (e.g. 0.016 or 1/60)",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default="INFO",
        help="Logging verbosity",
    )
    parser.add_argument("--log-file", default=None, help="Optional file to copy the log into")
    args = parser.parse_args(argv)

    if args.resolution < 2:
        parser.error("--resolution must be at least 2")
    if args.iterations < 1:
        parser.error("--iterations must be at least 1")
    if args.frames < 0:
        parser.error("--frames must be >= 0")
    return args


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(level=getattr(logging, args.log_level), log_file=args.log_file)

    mesh = Mesh3D.build_grid(args.width, args.height, args.resolution, args.resolution)
    cloth = Cloth3D(mesh=mesh)
    context = create_context(SimulationMode(args.mode), args.iterations)
    colliders = create_body_colliders() if args.scenario == "body" else []

    if args.headless:
        run_headless(cloth, context, colliders, args.frames, args.timestep)
        return

    from draw3d import Draw3D

    viewer = Draw3D(cloth=cloth, context=context, colliders=colliders)
    viewer.run()


if __name__ == "__main__":
    main()
