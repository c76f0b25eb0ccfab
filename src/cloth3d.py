"""Position-based cloth simulation (PBD / XPBD)."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

import numpy as np

from constraint3d import DEFAULT_STIFFNESS, DistanceConstraint
from mesh3d import EdgeFamily, Mesh3D
from simulation3d import SimulationContext, SimulationMode

logger = logging.getLogger(__name__)

DEFAULT_INVERSE_MASS = 0.1
DEFAULT_GRAVITY = (0.0, -0.8, 0.0)
# Colliders push particles out to a slightly inflated sphere.
COLLISION_MARGIN = 1.1


def _vec3(value, name: str) -> np.ndarray:
    array = np.array(value, dtype=np.float64)
    if array.shape != (3,):
        raise ValueError(f"{name} must be a 3D vector")
    return array


@dataclass
class Particle:
    """Point mass advanced with position Verlet.

    An ``inverse_mass`` of zero pins the particle: it is not integrated and
    ignores constraint corrections, but forced corrections still move it.
    """

    inverse_mass: float
    position: np.ndarray
    acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    previous_position: np.ndarray = field(init=False)

    def __post_init__(self) -> None:
        if self.inverse_mass < 0:
            raise ValueError("inverse_mass must be >= 0")
        self.inverse_mass = float(self.inverse_mass)
        self.position = _vec3(self.position, "position")
        self.acceleration = _vec3(self.acceleration, "acceleration")
        self.previous_position = self.position.copy()

    @property
    def is_pinned(self) -> bool:
        return self.inverse_mass == 0.0

    def bind(self, position: np.ndarray, previous_position: np.ndarray) -> None:
        """Move the Verlet state into rows of an externally owned store.

        Both arrays must be writable float64 views of shape (3,); they take the
        particle's current state and are updated in place from then on.
        """
        position[:] = self.position
        previous_position[:] = self.previous_position
        self.position = position
        self.previous_position = previous_position

    def integrate(self, dt: float) -> None:
        if self.inverse_mass > 0.0:
            current = self.position.copy()
            self.position += (self.position - self.previous_position) + self.acceleration * dt * dt
            self.previous_position[:] = current

    def apply_correction(self, delta: np.ndarray, forced: bool = False) -> None:
        """Shift the particle in place by ``delta``.

        Unforced corrections leave pinned particles where they are.
        """
        if self.inverse_mass > 0.0 or forced:
            self.position += delta


@dataclass
class SphereCollider:
    center: np.ndarray
    radius: float

    def __post_init__(self) -> None:
        self.center = np.asarray(self.center, dtype=np.float64)
        if self.center.shape != (3,):
            raise ValueError("center must be a 3D vector")
        if self.radius <= 0:
            raise ValueError("radius must be positive")


@dataclass
class Cloth3D:
    """Particle grid held together by structural, shear and bend constraints.

    One particle is created per mesh vertex and one constraint per mesh edge,
    in the mesh's edge order.  The cloth owns both lists; constraints refer to
    particles by index.  Particle positions live in one contiguous (N, 3)
    array owned by the cloth; every particle reads and writes its own row.
    """

    mesh: Mesh3D
    inverse_mass: float = DEFAULT_INVERSE_MASS
    gravity: np.ndarray = field(default_factory=lambda: np.array(DEFAULT_GRAVITY, dtype=np.float64))
    stiffness: float = DEFAULT_STIFFNESS

    def __post_init__(self) -> None:
        if self.inverse_mass < 0:
            raise ValueError("inverse_mass must be >= 0")
        if not 0.0 <= self.stiffness <= 1.0:
            raise ValueError("stiffness must be in the range [0, 1]")
        self.gravity = _vec3(self.gravity, "gravity")

        self._positions = self.mesh.positions.copy()
        self._previous_positions = self.mesh.positions.copy()
        self.particles: List[Particle] = []
        for index, position in enumerate(self.mesh.positions):
            particle = Particle(self.inverse_mass, position, self.gravity)
            particle.bind(self._positions[index], self._previous_positions[index])
            self.particles.append(particle)
        self.constraints: List[DistanceConstraint] = [
            DistanceConstraint(self.particles, i, j, family=family, stiffness=self.stiffness)
            for (i, j), family in zip(self.mesh.edges, self.mesh.edge_families)
        ]

        counts = self.constraint_counts()
        logger.info(
            "Built %dx%d cloth: %d particles, %d structural / %d shear / %d bend constraints",
            self.mesh.num_width,
            self.mesh.num_height,
            len(self.particles),
            counts[EdgeFamily.STRUCTURAL],
            counts[EdgeFamily.SHEAR],
            counts[EdgeFamily.BEND],
        )

    @classmethod
    def from_dimensions(
        cls,
        width: float,
        height: float,
        num_width: int,
        num_height: int,
        **kwargs,
    ) -> "Cloth3D":
        return cls(mesh=Mesh3D.build_grid(width, height, num_width, num_height), **kwargs)

    # ------------------------------------------------------------------

    def particle(self, col: int, row: int) -> Particle:
        return self.particles[self.mesh.index(col, row)]

    def positions(self) -> np.ndarray:
        """Snapshot of all particle positions as an (N, 3) array."""
        return self._positions.copy()

    def constraint_counts(self) -> Dict[EdgeFamily, int]:
        counts = {family: 0 for family in EdgeFamily}
        for constraint in self.constraints:
            counts[constraint.family] += 1
        return counts

    def max_violation(self) -> float:
        return max(abs(constraint.violation(self.particles)) for constraint in self.constraints)

    def step(
        self,
        context: SimulationContext,
        dt: float,
        colliders: Iterable[SphereCollider] = (),
    ) -> None:
        """Advance the simulation by one frame."""
        if dt <= 0:
            raise ValueError("dt must be positive")

        colliders = list(colliders)
        mode = context.mode
        compliance = context.compliance

        for particle in self.particles:
            particle.integrate(dt)

        for constraint in self.constraints:
            constraint.reset_accumulator()

        solve_time = 0.0
        for _ in range(context.iteration_count):
            self.resolve_collisions(colliders)
            before = time.perf_counter()
            self.relax_constraints(mode, compliance, dt)
            solve_time += time.perf_counter() - before

        context.last_solve_duration_ms = int(solve_time * 1000.0)
        logger.debug(
            "Solved %d sweeps in %d ms (%s)",
            context.iteration_count,
            context.last_solve_duration_ms,
            context.current_mode_label,
        )

    def resolve_collisions(self, colliders: Iterable[SphereCollider]) -> None:
        """Push particles out of the (inflated) collider spheres.

        The push is a forced correction, so pinned particles are moved too.
        Colliders are handled one after another; each one sees the pushes of
        the colliders before it.
        """
        positions = self._positions
        for collider in colliders:
            radius = collider.radius * COLLISION_MARGIN
            offsets = positions - collider.center
            distances = np.linalg.norm(offsets, axis=1)
            inside = np.flatnonzero(distances < radius)
            if inside.size == 0:
                continue

            offsets = offsets[inside]
            distances = distances[inside]
            normals = np.tile(np.array([0.0, 1.0, 0.0]), (inside.size, 1))
            separated = distances >= 1e-12
            normals[separated] = offsets[separated] / distances[separated, None]

            positions[inside] += normals * (radius - distances)[:, None]

    def relax_constraints(self, mode: SimulationMode, compliance: float, dt: float) -> None:
        """One Gauss-Seidel sweep over every constraint in construction order."""
        particles = self.particles
        for constraint in self.constraints:
            constraint.relax(particles, mode, compliance, dt)
