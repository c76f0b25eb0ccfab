"""Grid topology for the cloth simulation."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple

import numpy as np

CHECKER_COLORS: Tuple[Tuple[float, float, float], Tuple[float, float, float]] = (
    (1.0, 0.6, 0.6),
    (1.0, 1.0, 1.0),
)


class EdgeFamily(Enum):
    STRUCTURAL = "structural"
    SHEAR = "shear"
    BEND = "bend"


@dataclass
class Mesh3D:
    """Regular particle grid tailored for cloth simulations.

    The mesh stores the initial vertex layout, the constraint edges (tagged
    with the family they belong to) and the triangles used for rendering.
    Vertex ``(col, row)`` lives at the flat index ``row * num_width + col``.
    Edges are kept in construction order; the solver relaxes them in exactly
    that order.
    """

    num_width: int
    num_height: int
    positions: np.ndarray
    edges: List[Tuple[int, int]]
    edge_families: List[EdgeFamily]
    faces: List[Tuple[int, int, int]] = field(default_factory=list)
    face_colors: List[Tuple[float, float, float]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.positions = np.asarray(self.positions, dtype=np.float64)
        if self.positions.ndim != 2 or self.positions.shape[1] != 3:
            raise ValueError("positions must be an (N, 3) array")
        if self.positions.shape[0] != self.num_width * self.num_height:
            raise ValueError("positions must hold num_width * num_height vertices")

        if len(self.edges) == 0:
            raise ValueError("At least one edge is required for the simulation")
        if len(self.edge_families) != len(self.edges):
            raise ValueError("edge_families must tag every edge")

        n = self.n_vertices
        for i, j in self.edges:
            if not (0 <= i < n and 0 <= j < n) or i == j:
                raise ValueError(f"edge ({i}, {j}) does not join two grid vertices")

        self.faces = [tuple(face) for face in self.faces]
        if self.face_colors and len(self.face_colors) != len(self.faces):
            raise ValueError("face_colors must match the number of faces")

    @property
    def n_vertices(self) -> int:
        return self.positions.shape[0]

    def index(self, col: int, row: int) -> int:
        return row * self.num_width + col

    @staticmethod
    def build_grid(
        width: float,
        height: float,
        num_width: int,
        num_height: int,
        elevation: float = 0.3,
    ) -> "Mesh3D":
        """Builds a flat cloth grid lying on the horizontal XZ plane.

        The grid spans ``width`` along x and ``height`` along z, centered on
        the vertical axis at ``y = elevation``.  Rows advance towards -z.
        """

        if num_width < 2 or num_height < 2:
            raise ValueError("the grid needs at least 2 x 2 particles")
        if width <= 0 or height <= 0:
            raise ValueError("width and height must be positive")

        step_x = width / (num_width - 1)
        step_z = height / (num_height - 1)

        positions: List[Tuple[float, float, float]] = []
        for row in range(num_height):
            for col in range(num_width):
                x = -width / 2.0 + col * step_x
                z = height / 2.0 - row * step_z
                positions.append((x, elevation, z))

        def idx(col: int, row: int) -> int:
            return row * num_width + col

        edges: List[Tuple[int, int]] = []
        families: List[EdgeFamily] = []

        def connect(a: int, b: int, family: EdgeFamily) -> None:
            edges.append((a, b))
            families.append(family)

        for col in range(num_width):
            for row in range(num_height):
                # structural
                if col < num_width - 1:
                    connect(idx(col, row), idx(col + 1, row), EdgeFamily.STRUCTURAL)
                if row < num_height - 1:
                    connect(idx(col, row), idx(col, row + 1), EdgeFamily.STRUCTURAL)
                # shear
                if col < num_width - 1 and row < num_height - 1:
                    connect(idx(col, row), idx(col + 1, row + 1), EdgeFamily.SHEAR)
                    connect(idx(col + 1, row), idx(col, row + 1), EdgeFamily.SHEAR)

        for col in range(num_width):
            for row in range(num_height):
                if col < num_width - 2:
                    connect(idx(col, row), idx(col + 2, row), EdgeFamily.BEND)
                if row < num_height - 2:
                    connect(idx(col, row), idx(col, row + 2), EdgeFamily.BEND)
                if col < num_width - 2 and row < num_height - 2:
                    connect(idx(col, row), idx(col + 2, row + 2), EdgeFamily.BEND)
                    connect(idx(col + 2, row), idx(col, row + 2), EdgeFamily.BEND)

        faces: List[Tuple[int, int, int]] = []
        face_colors: List[Tuple[float, float, float]] = []
        for col in range(num_width - 1):
            for row in range(num_height - 1):
                color = CHECKER_COLORS[(col + row) % 2]
                faces.append((idx(col + 1, row), idx(col, row), idx(col, row + 1)))
                faces.append((idx(col + 1, row + 1), idx(col + 1, row), idx(col, row + 1)))
                face_colors.extend((color, color))

        return Mesh3D(
            num_width,
            num_height,
            np.array(positions),
            edges,
            families,
            faces,
            face_colors,
        )

    def compute_vertex_normals(self, positions: np.ndarray) -> np.ndarray:
        """Compute per-vertex normals of ``positions`` from the mesh faces."""

        positions = np.asarray(positions, dtype=np.float64)
        normals = np.zeros_like(positions)
        for face in self.faces:
            i0, i1, i2 = face
            p0, p1, p2 = positions[[i0, i1, i2]]
            edge1 = p1 - p0
            edge2 = p2 - p0
            face_normal = np.cross(edge1, edge2)
            norm = np.linalg.norm(face_normal)
            if norm == 0:
                continue
            face_normal /= norm
            normals[i0] += face_normal
            normals[i1] += face_normal
            normals[i2] += face_normal

        norms = np.linalg.norm(normals, axis=1)
        nonzero = norms > 0
        normals[nonzero] /= norms[nonzero][:, None]
        # Default normal for isolated vertices.
        normals[~nonzero] = np.array([0.0, 1.0, 0.0])
        return normals
