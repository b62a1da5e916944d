import numpy as np
import pytest

from bondlab.energy import EnergyModel
from bondlab.physics import Body, PhysicsWorld


def test_heat_pulses_accumulate_and_cap():
    model = EnergyModel(decay_rate=0.96, seed=1)
    model.add_energy(5)
    model.add_energy(5)
    assert model.transient_heat == pytest.approx(10.0)
    model.add_energy(500)
    assert model.transient_heat == pytest.approx(model.max_energy)


def test_negative_energy_rejected():
    with pytest.raises(ValueError):
        EnergyModel().add_energy(-1)


def test_decay_is_monotonic_and_snaps_to_zero():
    model = EnergyModel(decay_rate=0.96)
    model.add_energy(10)
    previous = model.transient_heat
    for _ in range(400):
        current = model.decay()
        assert 0.0 <= current <= previous
        previous = current
    assert model.transient_heat == 0.0


def test_consume_never_goes_negative():
    model = EnergyModel()
    model.add_energy(6)
    assert model.consume(4) == pytest.approx(4)
    assert model.consume(10) == pytest.approx(2)
    assert model.transient_heat == 0.0


def test_temperature_tracks_transient_heat():
    model = EnergyModel()
    assert model.temperature() == pytest.approx(300.0)
    model.add_energy(5)
    assert model.temperature() == pytest.approx(350.0)


def test_system_energy_includes_scaled_kinetic_term():
    model = EnergyModel()
    model.add_energy(3)
    body = Body(mass=2.0)
    body.velocity[:] = [1.0, 0.0, 0.0]
    # 0.5 * 2 * 1 * 10 = 10
    assert model.system_energy([body]) == pytest.approx(13.0)


def test_heat_pulse_jitter_is_bounded_and_seeded():
    bodies_a = [Body() for _ in range(4)]
    bodies_b = [Body() for _ in range(4)]
    EnergyModel(seed=7).add_energy(4, bodies_a)
    EnergyModel(seed=7).add_energy(4, bodies_b)
    for a, b in zip(bodies_a, bodies_b):
        assert np.all(np.abs(a.velocity) <= 2.0)
        assert np.allclose(a.velocity, b.velocity)


def test_limit_velocities():
    fast, slow = Body(), Body()
    fast.velocity[:] = [30.0, 40.0, 0.0]
    slow.velocity[:] = [1.0, 0.0, 0.0]
    assert EnergyModel.limit_velocities([fast, slow], 5.0) == 1
    assert fast.speed() == pytest.approx(5.0)
    assert slow.speed() == pytest.approx(1.0)


def test_physics_world_damping_and_kinematic_bodies():
    world = PhysicsWorld(dt=0.1)
    moving = world.add_body(Body(linear_damping=0.5))
    frozen = world.add_body(Body())
    frozen.kinematic = True
    moving.apply_force([10.0, 0.0, 0.0])
    frozen.apply_force([10.0, 0.0, 0.0])
    world.step()
    assert moving.velocity[0] == pytest.approx(1.0 * 0.5 ** 0.1)
    assert moving.position[0] > 0
    assert np.allclose(frozen.position, 0.0)
    assert np.allclose(moving.force, 0.0)
    assert world.remove_body(frozen) is True
    assert world.remove_body(frozen) is False
