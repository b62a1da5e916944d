import numpy as np
import pytest

from bondlab.events import MOLECULE_BROKEN, MOLECULE_FORMED
from bondlab.lifecycle import BondRequestResult, BondState
from bondlab.simulation import Simulation


def build_water(sim):
    o = sim.add_atom(8, position=[0.0, 0.0, 0.0])
    h1 = sim.add_atom(1, position=[1.5, 0.0, 0.0])
    h2 = sim.add_atom(1, position=[-1.5, 0.0, 0.0])
    sim.energy.transient_heat = 12.0
    assert sim.create_manual_bond(o.uid, h1.uid) is BondRequestResult.CREATED
    assert sim.create_manual_bond(o.uid, h2.uid) is BondRequestResult.CREATED
    return o, h1, h2


def test_oxygen_with_two_hydrogens_is_water():
    sim = Simulation(mode="sandbox", seed=2)
    o, h1, h2 = build_water(sim)
    assert len(sim.molecules) == 1
    water = sim.molecules[f"{o.uid}-{h1.uid}-{h2.uid}"]
    assert water.name == "Water (H₂O)"
    assert water.formula == "H₂O"
    assert water.geometry == "bent"
    assert water.central_uid == o.uid
    for h in (h1, h2):
        assert sim.state.distance(o.uid, h.uid) == pytest.approx(2.0)
    assert sim.discovered_molecules()[-1] == "Water (H₂O)"
    assert sim.events.of_type(MOLECULE_FORMED)[-1]["newly_discovered"] is True


def test_nearby_oxygen_and_hydrogens_bond_into_water():
    sim = Simulation(mode="sandbox", seed=4)
    o = sim.add_atom(8, position=[0.0, 0.0, 0.0])
    h1 = sim.add_atom(1, position=[2.0, 0.0, 0.0])
    h2 = sim.add_atom(1, position=[-2.0, 0.0, 0.0])
    sim.energy.transient_heat = 12.0
    sim.step()
    # both hydrogens are committed to the oxygen, so they never pair up
    assert sim.lifecycle.bond_state(h1.uid, h2.uid) is BondState.UNBONDED
    assert sim.lifecycle.bond_state(o.uid, h1.uid) is BondState.FORMING

    sim.run(200)
    molecules = list(sim.molecules.values())
    assert len(molecules) == 1
    assert molecules[0].name == "Water (H₂O)"
    assert molecules[0].geometry == "bent"
    assert molecules[0].central_uid == o.uid
    assert sim.free_atoms() == []
    assert "Hydrogen Gas (H₂)" not in sim.discovered_molecules()


def test_identification_is_idempotent():
    sim = Simulation(mode="sandbox", seed=2)
    build_water(sim)
    before = sorted(sim.molecules)
    assert sim.identifier.identify() == []
    assert sorted(sim.molecules) == before


def test_restoring_bonds_rebuilds_same_molecule():
    sim = Simulation(mode="sandbox", seed=2)
    build_water(sim)
    (mol_id, molecule), = sim.molecules.items()
    sim.state.dissolve_molecule(mol_id, restore_bonds=True)
    assert len(sim.molecules) == 0
    rebuilt = sim.identifier.identify()
    assert [m.uid for m in rebuilt] == [mol_id]
    assert rebuilt[0].name == molecule.name
    assert sim.registry.names.count("Water (H₂O)") == 1


def test_delete_member_atom_releases_molecule():
    sim = Simulation(mode="sandbox", seed=2)
    o, h1, h2 = build_water(sim)
    assert sim.delete_atom(h1.uid) is True
    assert h1.uid not in sim.atoms
    assert len(sim.molecules) == 0
    assert sim.bond_count(o.uid) == 0
    assert {a.uid for a in sim.free_atoms()} == {o.uid, h2.uid}
    assert sim.delete_atom(h1.uid) is False


def test_delete_internal_bond_keeps_the_rest():
    sim = Simulation(mode="sandbox", seed=2)
    o, h1, h2 = build_water(sim)
    assert sim.delete_bond(f"{o.uid}-{h1.uid}") is True
    assert len(sim.molecules) == 1
    remaining = next(iter(sim.molecules.values()))
    assert remaining.atom_uids == [o.uid, h2.uid]
    assert not h1.is_molecule_member
    assert sim.delete_bond("missing") is False


def test_break_molecule_arms_cooldowns():
    sim = Simulation(mode="sandbox", seed=2)
    o, h1, h2 = build_water(sim)
    mol_id = next(iter(sim.molecules))
    assert sim.break_molecule(mol_id) is True
    assert len(sim.molecules) == 0
    assert all(not a.is_molecule_member for a in sim.atoms.values())
    assert sim.events.of_type(MOLECULE_BROKEN)[-1]["reason"] == "broken_apart"
    assert sim.lifecycle.cooldowns[f"{o.uid}-{h1.uid}"].eligible is False
    # members fly apart
    assert np.linalg.norm(h1.velocity) > 0
    assert sim.break_molecule(mol_id) is False


def test_nucleus_edits():
    sim = Simulation(mode="sandbox", seed=2)
    h = sim.add_atom(1)
    assert sim.remove_proton(h.uid) is False
    assert sim.add_proton(h.uid) is True
    assert h.symbol == "He"
    assert h.electrons == 2
    assert sim.add_neutron(h.uid) is True
    assert h.body.mass == pytest.approx(3.0)
    assert sim.add_electron(h.uid) is True
    assert h.charge == -1
    assert sim.remove_electron(h.uid) is True
    assert sim.add_proton(999) is False


def test_proton_edit_drops_bonds():
    sim = Simulation(mode="sandbox", seed=2)
    o, h1, h2 = build_water(sim)
    sim.add_proton(h1.uid)
    assert h1.symbol == "He"
    assert sim.bond_count(h1.uid) == 0
    sim.step()
    names = [m.name for m in sim.molecules.values()]
    assert names == ["hydrogen oxygen (HO)"]


def test_modes():
    sim = Simulation(mode="sandbox")
    assert sim.auto_reactions is False
    sim.set_mode("realistic")
    assert sim.energy.decay_rate == pytest.approx(0.96)
    assert sim.auto_reactions is True
    with pytest.raises(KeyError):
        sim.set_mode("warp-speed")
    assert sim.toggle_auto_reactions() is False
    assert sim.toggle_global_heating(2.0) is True
    assert sim.heat_intensity == 2.0


def test_random_scene_keeps_invariants():
    rng = np.random.default_rng(8)
    sim = Simulation(mode="educational", seed=8)
    for z in rng.choice([1, 1, 1, 6, 7, 8], size=14):
        sim.add_atom(int(z), position=rng.uniform(-6, 6, size=3))
    sim.add_energy(40)
    sim.toggle_global_heating()
    for _ in range(400):
        sim.step()
        assert sim.energy.transient_heat >= 0.0
        assert sim.system_energy() >= 0.0
        for uid, atom in sim.atoms.items():
            assert sim.bond_count(uid) <= atom.element.max_bonds
        members = [u for m in sim.molecules.values() for u in m.atom_uids]
        assert len(members) == len(set(members))
        for molecule in sim.molecules.values():
            for uid in molecule.atom_uids:
                assert sim.atoms[uid].molecule_id == molecule.uid
    assert sim.frame == 400


def test_reset_clears_scene_but_keeps_registry():
    sim = Simulation(mode="sandbox", seed=2)
    build_water(sim)
    sim.run(3)
    sim.reset()
    assert sim.atoms == {}
    assert sim.molecules == {}
    assert sim.physics.bodies == []
    assert sim.frame == 0
    assert "Water (H₂O)" in sim.discovered_molecules()
