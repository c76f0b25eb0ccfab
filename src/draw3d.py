"""OpenGL visualization and input handling for the cloth simulation."""
from __future__ import annotations

import logging
import math
import sys
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
from OpenGL.GL import (
    glBegin,
    glClear,
    glClearColor,
    glColor3f,
    glColor3fv,
    glDisable,
    glEnable,
    glEnd,
    glLightfv,
    glLightModeli,
    glLoadIdentity,
    glMatrixMode,
    glNormal3fv,
    glPopMatrix,
    glPushMatrix,
    glRasterPos2f,
    glShadeModel,
    glViewport,
    glVertex3f,
    GL_AMBIENT,
    GL_COLOR_BUFFER_BIT,
    GL_COLOR_MATERIAL,
    GL_DEPTH_BUFFER_BIT,
    GL_DEPTH_TEST,
    GL_DIFFUSE,
    GL_LIGHT0,
    GL_LIGHT_MODEL_TWO_SIDE,
    GL_LIGHTING,
    GL_MODELVIEW,
    GL_NORMALIZE,
    GL_POSITION,
    GL_PROJECTION,
    GL_SMOOTH,
    GL_SPECULAR,
    GL_TRIANGLES,
    GL_TRIANGLE_STRIP,
    GL_TRUE,
)
from OpenGL.GLU import gluLookAt, gluOrtho2D, gluPerspective
from OpenGL.GLUT import (
    GLUT_BITMAP_9_BY_15,
    GLUT_DEPTH,
    GLUT_DOUBLE,
    GLUT_KEY_DOWN,
    GLUT_KEY_LEFT,
    GLUT_KEY_RIGHT,
    GLUT_KEY_UP,
    GLUT_LEFT_BUTTON,
    GLUT_RGBA,
    GLUT_UP,
    glutBitmapCharacter,
    glutCreateWindow,
    glutDisplayFunc,
    glutGet,
    glutIdleFunc,
    glutInit,
    glutInitDisplayMode,
    glutInitWindowPosition,
    glutInitWindowSize,
    glutKeyboardFunc,
    glutMainLoop,
    glutMotionFunc,
    glutMouseFunc,
    glutPostRedisplay,
    glutReshapeFunc,
    glutSpecialFunc,
    glutSwapBuffers,
    GLUT_WINDOW_HEIGHT,
    GLUT_WINDOW_WIDTH,
)

from cloth3d import Cloth3D, SphereCollider
from simulation3d import FrameClock, SimulationContext

logger = logging.getLogger(__name__)

WINDOW_TITLE = b"XPBD: Position-Based Simulation of Compliant Constrained Dynamics"
ESCAPE_KEY = b"\x1b"


@dataclass
class Draw3D:
    cloth: Cloth3D
    context: SimulationContext
    colliders: List[SphereCollider] = field(default_factory=list)
    clock: FrameClock = field(default_factory=FrameClock)
    window_size: Tuple[int, int] = (640, 480)
    fov_y: float = 30.0

    theta: float = 0.0
    phi: float = 0.0
    radius: float = 5.0
    center: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))

    _left_button_down: bool = False
    _last_mouse_pos: Optional[Tuple[int, int]] = None

    def __post_init__(self) -> None:
        self.center = np.asarray(self.center, dtype=np.float64)

    # -- OpenGL setup -----------------------------------------------------
    def run(self) -> None:
        glutInit(sys.argv)
        glutInitDisplayMode(GLUT_DOUBLE | GLUT_RGBA | GLUT_DEPTH)
        glutInitWindowSize(*self.window_size)
        glutInitWindowPosition(100, 100)
        glutCreateWindow(WINDOW_TITLE)

        glClearColor(0.7, 0.7, 0.65, 1.0)
        glEnable(GL_DEPTH_TEST)
        glEnable(GL_LIGHTING)
        glEnable(GL_LIGHT0)
        glEnable(GL_COLOR_MATERIAL)
        glEnable(GL_NORMALIZE)
        glLightModeli(GL_LIGHT_MODEL_TWO_SIDE, GL_TRUE)
        glShadeModel(GL_SMOOTH)

        glLightfv(GL_LIGHT0, GL_AMBIENT, (0.25, 0.25, 0.25, 1.0))
        glLightfv(GL_LIGHT0, GL_DIFFUSE, (1.0, 1.0, 1.0, 1.0))
        glLightfv(GL_LIGHT0, GL_SPECULAR, (1.0, 1.0, 1.0, 1.0))

        glutDisplayFunc(self.display)
        glutIdleFunc(self.idle)
        glutReshapeFunc(self.reshape)
        glutMouseFunc(self.mouse_button)
        glutMotionFunc(self.mouse_motion)
        glutKeyboardFunc(self.keyboard)
        glutSpecialFunc(self.special)

        logger.info("Starting viewer in %s mode with %d iterations", self.context.current_mode_label, self.context.iteration_count)
        self.clock.reset()
        self.clock.tick()
        glutMainLoop()

    # -- Camera handling --------------------------------------------------
    def _compute_camera(self) -> Tuple[np.ndarray, np.ndarray]:
        theta = self.theta
        phi = np.clip(self.phi, -math.pi / 2 + 1e-3, math.pi / 2 - 1e-3)
        r = max(self.radius, 0.1)

        cos_phi = math.cos(phi)
        eye = np.array(
            [
                self.center[0] + r * math.sin(theta) * cos_phi,
                self.center[1] + r * math.sin(phi),
                self.center[2] + r * math.cos(theta) * cos_phi,
            ],
            dtype=np.float64,
        )

        forward = self.center - eye
        forward /= np.linalg.norm(forward)

        world_up = np.array([0.0, 1.0, 0.0])
        right = np.cross(forward, world_up)
        right /= np.linalg.norm(right)
        up = np.cross(right, forward)
        up /= np.linalg.norm(up)
        return eye, up

    def mouse_button(self, button: int, state: int, x: int, y: int) -> None:
        if button == GLUT_LEFT_BUTTON:
            self._left_button_down = state != GLUT_UP
            self._last_mouse_pos = (x, y)
        elif state == GLUT_UP:
            self._last_mouse_pos = None

        # Scroll wheel (zoom) is encoded as buttons 3 (up) and 4 (down) in GLUT
        if button == 3 and state != GLUT_UP:
            self.radius = max(0.2, self.radius * 0.9)
        elif button == 4 and state != GLUT_UP:
            self.radius = min(100.0, self.radius * 1.1)

        glutPostRedisplay()

    def mouse_motion(self, x: int, y: int) -> None:
        if not self._left_button_down or self._last_mouse_pos is None:
            return

        dx = x - self._last_mouse_pos[0]
        dy = y - self._last_mouse_pos[1]
        self._last_mouse_pos = (x, y)

        sensitivity = 0.005
        self.theta -= dx * sensitivity
        self.phi += dy * sensitivity
        self.phi = np.clip(self.phi, -math.pi / 2 + 1e-3, math.pi / 2 - 1e-3)

        glutPostRedisplay()

    # -- Input --------------------------------------------------------------
    def keyboard(self, key: bytes, x: int, y: int) -> None:
        if key == ESCAPE_KEY:
            logger.info("Viewer closed")
            sys.exit(0)

    def special(self, key: int, x: int, y: int) -> None:
        if key == GLUT_KEY_UP:
            self.context.increment_iteration_count()
        elif key == GLUT_KEY_DOWN:
            self.context.decrement_iteration_count()
        elif key == GLUT_KEY_LEFT:
            self.context.select_previous_mode()
        elif key == GLUT_KEY_RIGHT:
            self.context.select_next_mode()

    # -- GLUT callbacks ---------------------------------------------------
    def reshape(self, width: int, height: int) -> None:
        if height == 0:
            height = 1
        glViewport(0, 0, width, height)
        glMatrixMode(GL_PROJECTION)
        glLoadIdentity()
        aspect = width / float(height)
        gluPerspective(self.fov_y, aspect, 0.0001, 1000.0)
        glMatrixMode(GL_MODELVIEW)

    def idle(self) -> None:
        dt = self.clock.tick()
        if dt > 0.0:
            self.cloth.step(self.context, dt, self.colliders)
        glutPostRedisplay()

    def display(self) -> None:
        glClear(GL_COLOR_BUFFER_BIT | GL_DEPTH_BUFFER_BIT)
        glLoadIdentity()

        eye, up = self._compute_camera()
        gluLookAt(
            eye[0], eye[1], eye[2],
            self.center[0], self.center[1], self.center[2],
            up[0], up[1], up[2],
        )
        glLightfv(GL_LIGHT0, GL_POSITION, (0.0, 2.5, 5.5, 1.0))

        self._draw_cloth_surface()
        self._draw_colliders()
        self._draw_status()

        glutSwapBuffers()

    def _draw_colliders(self) -> None:
        if not self.colliders:
            return

        glColor3f(0.0, 0.0, 1.0)
        for collider in self.colliders:
            self._draw_sphere(collider.center, collider.radius)

    def _draw_cloth_surface(self) -> None:
        mesh = self.cloth.mesh
        positions = self.cloth.positions()
        normals = mesh.compute_vertex_normals(positions)
        glBegin(GL_TRIANGLES)
        for face, color in zip(mesh.faces, mesh.face_colors):
            glColor3fv(color)
            for vertex_index in face:
                glNormal3fv(normals[vertex_index])
                glVertex3f(*positions[vertex_index])
        glEnd()

    def _draw_status(self) -> None:
        width = glutGet(GLUT_WINDOW_WIDTH)
        height = glutGet(GLUT_WINDOW_HEIGHT)
        glColor3f(1.0, 1.0, 1.0)
        for line_index, text in enumerate(self.context.status_lines()):
            self._render_string(text, width, height, 10, 20 + 20 * line_index)

    def _render_string(self, text: str, width: int, height: int, x0: int, y0: int) -> None:
        glDisable(GL_LIGHTING)
        glMatrixMode(GL_PROJECTION)
        glPushMatrix()
        glLoadIdentity()
        gluOrtho2D(0, width, height, 0)
        glMatrixMode(GL_MODELVIEW)
        glPushMatrix()
        glLoadIdentity()
        glRasterPos2f(x0, y0)
        for char in text:
            glutBitmapCharacter(GLUT_BITMAP_9_BY_15, ord(char))
        glPopMatrix()
        glMatrixMode(GL_PROJECTION)
        glPopMatrix()
        glMatrixMode(GL_MODELVIEW)
        glEnable(GL_LIGHTING)

    def _draw_sphere(self, center: np.ndarray, radius: float, slices: int = 30, stacks: int = 15) -> None:
        for stack in range(stacks):
            v0 = stack / stacks
            v1 = (stack + 1) / stacks
            lat0 = math.pi * (v0 - 0.5)
            lat1 = math.pi * (v1 - 0.5)

            sin_lat0 = math.sin(lat0)
            cos_lat0 = math.cos(lat0)
            sin_lat1 = math.sin(lat1)
            cos_lat1 = math.cos(lat1)

            glBegin(GL_TRIANGLE_STRIP)
            for slice_idx in range(slices + 1):
                u = slice_idx / slices
                lon = 2.0 * math.pi * u
                sin_lon = math.sin(lon)
                cos_lon = math.cos(lon)

                normal0 = np.array([cos_lon * cos_lat0, sin_lat0, sin_lon * cos_lat0], dtype=np.float64)
                normal1 = np.array([cos_lon * cos_lat1, sin_lat1, sin_lon * cos_lat1], dtype=np.float64)

                glNormal3fv(normal1)
                glVertex3f(*(center + radius * normal1))
                glNormal3fv(normal0)
                glVertex3f(*(center + radius * normal0))
            glEnd()
