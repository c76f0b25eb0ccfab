"""Distance constraint relaxed by the PBD and XPBD position solvers."""
from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence

import numpy as np

from mesh3d import EdgeFamily
from simulation3d import SimulationMode

if TYPE_CHECKING:
    from cloth3d import Particle

DEFAULT_STIFFNESS = 0.1
# Guards the XPBD gradient against coincident endpoints.
SEPARATION_EPSILON = float(np.finfo(np.float32).eps)


class DistanceConstraint:
    """Keeps two particles of a cloth at their initial separation.

    The endpoints are indices into the particle list owned by the cloth, so a
    constraint never holds on to particle objects itself.  ``rest_length`` is
    captured at construction and cannot be changed afterwards.

    ``lagrange_multiplier`` is the XPBD force accumulator.  It only has a
    meaning inside one frame: :meth:`reset_accumulator` must be called before
    the first sweep of every frame.
    """

    __slots__ = ("first", "second", "family", "stiffness", "compliance", "lagrange_multiplier", "_rest_length")

    def __init__(
        self,
        particles: Sequence["Particle"],
        first: int,
        second: int,
        family: EdgeFamily = EdgeFamily.STRUCTURAL,
        stiffness: float = DEFAULT_STIFFNESS,
    ) -> None:
        if first == second:
            raise ValueError("a constraint needs two distinct particles")
        if not 0.0 <= stiffness <= 1.0:
            raise ValueError("stiffness must be in the range [0, 1]")

        self.first = first
        self.second = second
        self.family = family
        self.stiffness = float(stiffness)
        self.compliance = 0.0
        self.lagrange_multiplier = 0.0
        delta = particles[second].position - particles[first].position
        self._rest_length = float(np.linalg.norm(delta))

    def __repr__(self) -> str:
        return (
            f"DistanceConstraint({self.first}, {self.second}, family={self.family.value}, "
            f"rest_length={self._rest_length:.6g})"
        )

    @property
    def rest_length(self) -> float:
        return self._rest_length

    def reset_accumulator(self) -> None:
        self.lagrange_multiplier = 0.0

    def violation(self, particles: Sequence["Particle"]) -> float:
        """Signed constraint error, positive when the edge is stretched."""
        delta = particles[self.first].position - particles[self.second].position
        return float(np.linalg.norm(delta)) - self._rest_length

    def relax(
        self,
        particles: Sequence["Particle"],
        mode: SimulationMode,
        material_compliance: float,
        dt: float,
    ) -> None:
        """Project both endpoints once towards the rest length.

        In PBD mode the correction is scaled by ``stiffness`` and the result
        depends on the iteration count and the time step.  In any XPBD mode the
        material compliance is rescaled by ``dt**2`` and the Lagrange multiplier
        is accumulated, which gives a stiffness independent of both.
        Corrections are applied immediately, so constraints relaxed later in
        the same sweep already see them.
        """

        particle1 = particles[self.first]
        particle2 = particles[self.second]
        w1 = particle1.inverse_mass
        w2 = particle2.inverse_mass
        w_sum = w1 + w2
        if w_sum == 0.0:
            return

        delta = particle1.position - particle2.position
        distance = math.sqrt(float(np.dot(delta, delta)))
        constraint = distance - self._rest_length

        if not mode.is_xpbd:
            if distance == 0.0:
                return
            correction = self.stiffness * (delta / distance) * -constraint / w_sum
        else:
            self.compliance = material_compliance
            alpha_tilde = material_compliance / (dt * dt)
            delta_lambda = (-constraint - alpha_tilde * self.lagrange_multiplier) / (w_sum + alpha_tilde)
            correction = delta_lambda * delta / (distance + SEPARATION_EPSILON)
            self.lagrange_multiplier += delta_lambda

        particle1.apply_correction(w1 * correction)
        particle2.apply_correction(-w2 * correction)
