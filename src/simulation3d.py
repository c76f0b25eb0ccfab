"""Simulation modes, material compliance and per-run solver settings."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, NamedTuple, Optional

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 20
MAX_TIME_STEP = 0.033


class SimulationMode(Enum):
    PBD = "pbd"
    XPBD_CONCRETE = "concrete"
    XPBD_WOOD = "wood"
    XPBD_LEATHER = "leather"
    XPBD_TENDON = "tendon"
    XPBD_RUBBER = "rubber"
    XPBD_MUSCLE = "muscle"
    XPBD_FAT = "fat"

    @property
    def is_xpbd(self) -> bool:
        return self is not SimulationMode.PBD


class ModeInfo(NamedTuple):
    label: str
    compliance: float


# Compliance in m^2/N. PBD ignores compliance and uses per-constraint stiffness.
_MODE_TABLE = {
    SimulationMode.PBD: ModeInfo("PBD", 0.0),
    SimulationMode.XPBD_CONCRETE: ModeInfo("XPBD(Concrete)", 0.04e-9),
    SimulationMode.XPBD_WOOD: ModeInfo("XPBD(Wood)", 0.16e-9),
    SimulationMode.XPBD_LEATHER: ModeInfo("XPBD(Leather)", 1.0e-9),
    SimulationMode.XPBD_TENDON: ModeInfo("XPBD(Tendon)", 2.0e-9),
    SimulationMode.XPBD_RUBBER: ModeInfo("XPBD(Rubber)", 1.0e-7),
    SimulationMode.XPBD_MUSCLE: ModeInfo("XPBD(Muscle)", 2.0e-5),
    SimulationMode.XPBD_FAT: ModeInfo("XPBD(Fat)", 1.0e-4),
}


def mode_info(mode: SimulationMode) -> ModeInfo:
    """Return the display label and material compliance for ``mode``."""
    return _MODE_TABLE[mode]


@dataclass
class SimulationContext:
    """Solver settings shared between the frame driver, the cloth and the HUD.

    The context is owned by whoever runs the frame loop and is handed to
    :meth:`cloth3d.Cloth3D.step` every frame.  Input handlers mutate it between
    frames; the cloth writes ``last_solve_duration_ms`` back into it.
    """

    mode: SimulationMode = SimulationMode.XPBD_FAT
    iteration_count: int = DEFAULT_ITERATIONS
    previous_mode: Optional[SimulationMode] = None
    last_solve_duration_ms: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.mode, SimulationMode):
            raise ValueError(f"unknown simulation mode: {self.mode!r}")
        if self.iteration_count < 1:
            raise ValueError("iteration_count must be >= 1")

    # ------------------------------------------------------------------

    @property
    def current_mode_label(self) -> str:
        return mode_info(self.mode).label

    @property
    def compliance(self) -> float:
        return mode_info(self.mode).compliance

    def set_mode(self, mode: SimulationMode) -> None:
        if mode is self.mode:
            return
        self.previous_mode = self.mode
        self.mode = mode
        logger.info("Switched solver mode %s -> %s", mode_info(self.previous_mode).label, self.current_mode_label)

    def select_next_mode(self) -> None:
        modes = list(SimulationMode)
        index = modes.index(self.mode)
        if index < len(modes) - 1:
            self.set_mode(modes[index + 1])

    def select_previous_mode(self) -> None:
        modes = list(SimulationMode)
        index = modes.index(self.mode)
        if index > 0:
            self.set_mode(modes[index - 1])

    def increment_iteration_count(self) -> None:
        self.iteration_count += 1
        logger.debug("Iteration count raised to %d", self.iteration_count)

    def decrement_iteration_count(self) -> None:
        if self.iteration_count > 1:
            self.iteration_count -= 1
            logger.debug("Iteration count lowered to %d", self.iteration_count)

    def status_lines(self) -> List[str]:
        """HUD text, top to bottom."""
        return [
            f"ITERATION {self.iteration_count}",
            self.current_mode_label,
            f"TIME {self.last_solve_duration_ms}(ms)",
        ]


@dataclass
class FrameClock:
    """Wall-clock frame timer handing out clamped time steps.

    Large gaps between frames (window drags, slow frames) are clamped to
    ``max_time_step`` so the integrator never sees a step it cannot handle.
    The first tick only establishes the reference time and returns ``0.0``.
    """

    max_time_step: float = MAX_TIME_STEP
    source: Callable[[], float] = time.perf_counter
    _last: Optional[float] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_time_step <= 0:
            raise ValueError("max_time_step must be positive")

    def reset(self) -> None:
        self._last = None

    def tick(self) -> float:
        now = self.source()
        if self._last is None:
            self._last = now
            return 0.0
        elapsed = now - self._last
        self._last = now
        if elapsed <= 0.0:
            return 0.0
        return min(elapsed, self.max_time_step)
