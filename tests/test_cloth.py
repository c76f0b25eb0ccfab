import numpy as np
import pytest

from cloth3d import COLLISION_MARGIN, Cloth3D, SphereCollider
from mesh3d import EdgeFamily, Mesh3D
from simulation3d import SimulationContext, SimulationMode


def _cloth(m=4, n=4, **kwargs):
    return Cloth3D.from_dimensions(1.5, 1.5, m, n, **kwargs)


def test_cloth_builds_one_particle_per_vertex_and_one_constraint_per_edge():
    cloth = _cloth(4, 4)

    assert len(cloth.particles) == 16
    assert len(cloth.constraints) == len(cloth.mesh.edges)
    assert cloth.constraint_counts() == {
        EdgeFamily.STRUCTURAL: 24,
        EdgeFamily.SHEAR: 18,
        EdgeFamily.BEND: 24,
    }
    for p in cloth.particles:
        assert p.inverse_mass == 0.1
        assert np.allclose(p.acceleration, [0.0, -0.8, 0.0])
        assert not p.is_pinned


def test_constraints_follow_mesh_edges_with_exact_rest_lengths():
    cloth = _cloth(3, 5)
    for constraint, (i, j) in zip(cloth.constraints, cloth.mesh.edges):
        assert (constraint.first, constraint.second) == (i, j)
        p = cloth.particles[i].position
        q = cloth.particles[j].position
        assert constraint.rest_length == float(np.linalg.norm(q - p))
    assert cloth.max_violation() == pytest.approx(0.0, abs=1e-12)


def test_particles_own_independent_state():
    cloth = _cloth(2, 2)
    cloth.particles[0].position += 1.0
    cloth.particles[0].acceleration[1] = 5.0
    assert np.allclose(cloth.particles[1].acceleration, [0.0, -0.8, 0.0])
    assert np.allclose(cloth.mesh.positions[0, 1], 0.3)


def test_particle_lookup_by_grid_coordinates():
    cloth = _cloth(3, 4)
    assert cloth.particle(2, 1) is cloth.particles[1 * 3 + 2]
    assert cloth.positions().shape == (12, 3)


def test_free_fall_keeps_cloth_undeformed():
    """Uniform gravity translates the whole cloth: y = 0.3 - g dt^2 after one frame."""
    dt = 1 / 60
    cloth = _cloth(4, 4)
    before = cloth.positions()
    context = SimulationContext(mode=SimulationMode.XPBD_FAT, iteration_count=5)

    cloth.step(context, dt)

    after = cloth.positions()
    assert np.allclose(after[:, 1], 0.3 - 0.8 * dt * dt, atol=1e-9)
    assert np.allclose(after[:, [0, 2]], before[:, [0, 2]], atol=1e-9)
    assert cloth.max_violation() < 1e-9


def test_step_resets_lagrange_multipliers():
    cloth = _cloth(3, 3)
    for constraint in cloth.constraints:
        constraint.lagrange_multiplier = 5.0

    cloth.step(SimulationContext(mode=SimulationMode.PBD, iteration_count=2), 1 / 60)

    assert all(c.lagrange_multiplier == 0.0 for c in cloth.constraints)


def test_step_records_solve_duration():
    cloth = _cloth(4, 4)
    context = SimulationContext(iteration_count=3)
    context.last_solve_duration_ms = -1

    cloth.step(context, 1 / 60)

    assert isinstance(context.last_solve_duration_ms, int)
    assert context.last_solve_duration_ms >= 0


@pytest.mark.parametrize("dt", [0.0, -0.01])
def test_step_rejects_non_positive_dt(dt):
    with pytest.raises(ValueError):
        _cloth(2, 2).step(SimulationContext(), dt)


@pytest.mark.parametrize("inverse_mass", [0.1, 0.0])
def test_collider_pushes_particle_to_inflated_radius(inverse_mass):
    cloth = _cloth(2, 2)
    target = cloth.particles[0]
    target.inverse_mass = inverse_mass
    start = target.position.copy()
    direction = np.array([0.6, 0.8, 0.0])
    collider = SphereCollider(center=start - 0.05 * direction, radius=0.1)
    others = [p.position.copy() for p in cloth.particles[1:]]

    cloth.resolve_collisions([collider])

    offset = target.position - collider.center
    assert np.linalg.norm(offset) == pytest.approx(COLLISION_MARGIN * collider.radius)
    assert np.allclose(offset / np.linalg.norm(offset), direction)
    for p, before in zip(cloth.particles[1:], others):
        assert np.array_equal(p.position, before)


def test_particle_outside_inflated_radius_is_untouched():
    cloth = _cloth(2, 2)
    target = cloth.particles[0]
    start = target.position.copy()
    collider = SphereCollider(center=start - np.array([0.0, 0.115, 0.0]), radius=0.1)

    cloth.resolve_collisions([collider])

    assert np.array_equal(target.position, start)


def test_particle_at_collider_center_is_pushed_up():
    cloth = _cloth(2, 2)
    target = cloth.particles[0]
    collider = SphereCollider(center=target.position.copy(), radius=0.1)

    cloth.resolve_collisions([collider])

    assert np.allclose(target.position - collider.center, [0.0, 0.11, 0.0])


def test_cloth_does_not_fall_through_sphere():
    cloth = _cloth(8, 8)
    collider = SphereCollider(center=(0.0, 0.0, 0.0), radius=0.2)
    context = SimulationContext(mode=SimulationMode.XPBD_LEATHER, iteration_count=4)

    for _ in range(30):
        cloth.step(context, 1 / 30, [collider])

    positions = cloth.positions()
    assert np.all(np.isfinite(positions))
    distances = np.linalg.norm(positions - collider.center, axis=1)
    assert distances.min() > 0.5 * collider.radius
    # the middle of the cloth rests on top of the sphere
    middle = positions[[cloth.mesh.index(c, r) for c in (3, 4) for r in (3, 4)]]
    assert np.all(middle[:, 1] > 0.0)


def test_pinned_pair_in_cloth_stays_put():
    cloth = _cloth(3, 3)
    for p in cloth.particles:
        p.inverse_mass = 0.0
    before = cloth.positions()

    cloth.step(SimulationContext(mode=SimulationMode.XPBD_FAT, iteration_count=10), 1 / 60)

    assert np.array_equal(cloth.positions(), before)


def test_xpbd_cloth_is_stiffer_than_pbd_with_few_iterations():
    """A hanging cloth stretches less with near-rigid XPBD than with PBD at the same
    iteration budget."""
    results = {}
    for mode in (SimulationMode.PBD, SimulationMode.XPBD_CONCRETE):
        cloth = _cloth(5, 5)
        for col in range(5):
            cloth.particle(col, 0).inverse_mass = 0.0
        context = SimulationContext(mode=mode, iteration_count=3)
        for _ in range(30):
            cloth.step(context, 1 / 60)
        results[mode] = cloth.max_violation()

    assert results[SimulationMode.XPBD_CONCRETE] < results[SimulationMode.PBD]


def test_invalid_cloth_parameters_are_rejected():
    mesh = Mesh3D.build_grid(1.0, 1.0, 2, 2)
    with pytest.raises(ValueError):
        Cloth3D(mesh=mesh, inverse_mass=-0.1)
    with pytest.raises(ValueError):
        Cloth3D(mesh=mesh, stiffness=2.0)
    with pytest.raises(ValueError):
        Cloth3D(mesh=mesh, gravity=(0.0, -1.0))
    with pytest.raises(ValueError):
        SphereCollider(center=(0.0, 0.0, 0.0), radius=0.0)


def test_particle_edits_show_up_in_cloth_positions():
    cloth = _cloth(3, 3)
    cloth.particles[4].position[:] = (1.0, 2.0, 3.0)
    cloth.particle(0, 0).position += (0.0, 1.0, 0.0)

    positions = cloth.positions()
    assert np.array_equal(positions[4], [1.0, 2.0, 3.0])
    assert positions[0, 1] == pytest.approx(1.3)

    positions[:] = 0.0
    assert np.array_equal(cloth.particles[4].position, [1.0, 2.0, 3.0])


def test_integration_keeps_particle_state_in_place():
    cloth = _cloth(2, 2)
    particle = cloth.particles[0]
    position = particle.position
    previous = particle.previous_position

    cloth.step(SimulationContext(iteration_count=1), 1 / 60)

    assert particle.position is position
    assert particle.previous_position is previous
    assert previous[1] == pytest.approx(0.3)
    assert cloth.positions()[0, 1] == pytest.approx(0.3 - 0.8 / 3600)


def test_collider_pushes_every_particle_inside_at_once():
    cloth = _cloth(4, 4)
    collider = SphereCollider(center=(0.0, 0.3, 0.0), radius=0.4)
    before = cloth.positions()
    inside = [cloth.mesh.index(c, r) for c in (1, 2) for r in (1, 2)]

    cloth.resolve_collisions([collider])

    after = cloth.positions()
    for index in range(16):
        if index in inside:
            offset = after[index] - collider.center
            assert np.linalg.norm(offset) == pytest.approx(COLLISION_MARGIN * collider.radius)
            assert offset[1] == pytest.approx(0.0)
            direction = before[index] - collider.center
            assert np.allclose(offset / np.linalg.norm(offset), direction / np.linalg.norm(direction))
        else:
            assert np.array_equal(after[index], before[index])


def test_later_collider_sees_earlier_push():
    cloth = _cloth(2, 2)
    target = cloth.particles[0]
    start = target.position.copy()
    first = SphereCollider(center=start - (0.0, 0.05, 0.0), radius=0.1)
    second = SphereCollider(center=start + (0.0, 0.03, 0.0), radius=0.05)

    cloth.resolve_collisions([first, second])

    # the first sphere lifts it above the centre of the second, which lifts it further
    assert target.position[1] == pytest.approx(start[1] + 0.03 + 0.055)


def _chain(edges):
    mesh = Mesh3D(
        num_width=3,
        num_height=1,
        positions=[(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0)],
        edges=edges,
        edge_families=[EdgeFamily.STRUCTURAL] * len(edges),
    )
    cloth = Cloth3D(mesh=mesh, inverse_mass=1.0, gravity=(0.0, 0.0, 0.0))
    cloth.particles[0].position[0] = -1.0
    return cloth


def test_sweep_applies_corrections_sequentially():
    """With the first link stretched to 2, relaxing it moves the middle particle to 0.5,
    and the second link then sees a stretch of 0.5 and splits it evenly."""
    cloth = _chain([(0, 1), (1, 2)])

    cloth.relax_constraints(SimulationMode.XPBD_CONCRETE, 0.0, 1 / 60)

    assert cloth.positions()[:, 0] == pytest.approx([-0.5, 0.75, 1.75], abs=1e-6)
    assert np.allclose(cloth.positions()[:, 1:], 0.0)


def test_sweep_result_depends_on_constraint_order():
    cloth = _chain([(1, 2), (0, 1)])

    cloth.relax_constraints(SimulationMode.XPBD_CONCRETE, 0.0, 1 / 60)

    assert cloth.positions()[:, 0] == pytest.approx([-0.5, 0.5, 2.0], abs=1e-6)
