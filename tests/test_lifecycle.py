import numpy as np
import pytest

from bondlab.events import BOND_BROKEN
from bondlab.lifecycle import BondRequestResult, BondState, ease_in_out
from bondlab.simulation import Simulation


def make_sim(**kwargs):
    return Simulation(mode="sandbox", seed=11, **kwargs)


def test_ease_in_out_curve():
    assert ease_in_out(0.0) == 0.0
    assert ease_in_out(0.25) == pytest.approx(0.125)
    assert ease_in_out(0.5) == pytest.approx(0.5)
    assert ease_in_out(0.75) == pytest.approx(0.875)
    assert ease_in_out(1.0) == pytest.approx(1.0)


def test_two_hydrogens_form_hydrogen_gas():
    sim = make_sim()
    h1 = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    h2 = sim.add_atom(1, position=[2.0, 0.0, 0.0])
    sim.add_energy(5)
    sim.step()
    assert sim.lifecycle.bond_state(h1.uid, h2.uid) is BondState.FORMING
    assert sim.bond_count(h1.uid) == 0

    sim.run(150)
    assert sim.lifecycle.bond_state(h1.uid, h2.uid) is BondState.BONDED
    assert len(sim.molecules) == 1
    molecule = next(iter(sim.molecules.values()))
    assert molecule.name == "Hydrogen Gas (H₂)"
    assert molecule.uid == f"{h1.uid}-{h2.uid}"
    assert sim.bond_count(h1.uid) == 1
    assert sim.bond_count(h2.uid) == 1
    assert "Hydrogen Gas (H₂)" in sim.discovered_molecules()


def test_no_bond_without_activation_energy():
    sim = make_sim()
    h1 = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    h2 = sim.add_atom(1, position=[2.0, 0.0, 0.0])
    sim.run(10)
    assert sim.lifecycle.bond_state(h1.uid, h2.uid) is BondState.UNBONDED


def test_cooldown_caches_failed_evaluation():
    sim = make_sim()
    h1 = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    h2 = sim.add_atom(1, position=[2.0, 0.0, 0.0])
    sim.step()
    sim.energy.transient_heat = 5.0
    sim.step()
    assert sim.lifecycle.bond_state(h1.uid, h2.uid) is BondState.UNBONDED
    sim.run(65)
    assert sim.lifecycle.bond_state(h1.uid, h2.uid) is not BondState.UNBONDED


def test_preference_rule_blocks_hydrogen_pair_near_oxygen():
    sim = make_sim()
    h1 = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    h2 = sim.add_atom(1, position=[2.0, 0.0, 0.0])
    sim.add_atom(8, position=[1.0, 4.0, 0.0])
    sim.energy.transient_heat = 10.0
    sim.step()
    assert sim.lifecycle.bond_state(h1.uid, h2.uid) is BondState.UNBONDED


def test_forming_bonds_reserve_valence():
    sim = make_sim()
    h1 = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    sim.add_atom(1, position=[1.0, 0.0, 0.0])
    sim.add_atom(1, position=[-1.0, 0.0, 0.0])
    sim.energy.transient_heat = 10.0
    sim.step()
    assert len(sim.lifecycle.transitions) == 1
    assert sim.lifecycle.effective_bond_count(h1) == 1

    sim.run(150)
    assert len(sim.molecules) == 1
    assert len(sim.free_atoms()) == 1
    for uid in sim.atoms:
        assert sim.bond_count(uid) <= 1


def test_manual_bond_valence_and_duplicate():
    sim = make_sim()
    h1 = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    h2 = sim.add_atom(1, position=[1.0, 0.0, 0.0])
    h3 = sim.add_atom(1, position=[0.0, 2.0, 0.0])
    sim.energy.transient_heat = 5.0
    assert sim.create_manual_bond(h1.uid, h2.uid) is BondRequestResult.CREATED
    assert sim.create_manual_bond(h3.uid, h1.uid) is BondRequestResult.VALENCE_EXCEEDED
    assert sim.create_manual_bond(h2.uid, h1.uid) is BondRequestResult.DUPLICATE
    assert sim.bond_count(h1.uid) == 1
    assert sim.bond_count(h3.uid) == 0


def test_manual_bond_refusals():
    sim = make_sim()
    h1 = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    h2 = sim.add_atom(1, position=[1.0, 0.0, 0.0])
    odd = sim.add_atom(50, position=[0.0, 1.0, 0.0])
    assert sim.create_manual_bond(h1.uid, h2.uid) is BondRequestResult.INSUFFICIENT_ENERGY
    assert sim.create_manual_bond(h1.uid, odd.uid) is BondRequestResult.INVALID_ELEMENT
    assert sim.create_manual_bond(h1.uid, 999) is BondRequestResult.STALE_REFERENCE
    with pytest.raises(ValueError):
        sim.create_manual_bond(h1.uid, h1.uid)

    sim.set_mode("realistic")
    assert sim.create_manual_bond(h1.uid, h2.uid) is BondRequestResult.MANUAL_BONDING_DISABLED


def test_stretched_free_bond_breaks():
    sim = make_sim()
    a = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    b = sim.add_atom(1, position=[1.0, 0.0, 0.0])
    assert sim.lifecycle.create_bond(a.uid, b.uid) is BondRequestResult.CREATED
    key = f"{a.uid}-{b.uid}"
    assert key in sim.state.bonds

    b.body.position[:] = [10.0, 0.0, 0.0]
    broken = sim.lifecycle.check_stress()
    assert [bond.uid for bond in broken] == [key]
    assert key not in sim.state.bonds
    assert sim.events.of_type(BOND_BROKEN)[-1]["bond"] == key


def test_stretched_molecule_releases_members():
    sim = make_sim()
    a = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    b = sim.add_atom(1, position=[1.0, 0.0, 0.0])
    sim.energy.transient_heat = 5.0
    assert sim.create_manual_bond(a.uid, b.uid) is BondRequestResult.CREATED
    molecule = next(iter(sim.molecules.values()))
    assert sim.lifecycle.stress_ratio(next(iter(molecule.bonds.values()))) < 1.0

    molecule.offsets[b.uid] = molecule.offsets[b.uid] + np.array([10.0, 0.0, 0.0])
    sim.step()
    assert len(sim.molecules) == 0
    assert not a.is_molecule_member and not b.is_molecule_member
    assert sim.bond_count(a.uid) == 0


def test_bond_query_reports_stress():
    sim = make_sim()
    a = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    b = sim.add_atom(1, position=[1.0, 0.0, 0.0])
    sim.energy.transient_heat = 5.0
    sim.create_manual_bond(a.uid, b.uid)
    records = sim.bonds()
    assert len(records) == 1
    assert records[0]["stress_ratio"] == pytest.approx(1.2 / records[0]["break_length"], rel=1e-3)
    assert records[0]["stressed"] is False


def test_chain_molecule_keeps_its_bonds():
    sim = make_sim()
    na = sim.add_atom(11, position=[0.0, 0.0, 0.0])
    o1 = sim.add_atom(8, position=[2.0, 0.0, 0.0])
    o2 = sim.add_atom(8, position=[4.0, 0.0, 0.0])
    h = sim.add_atom(1, position=[6.0, 0.0, 0.0])
    sim.energy.transient_heat = 5.0
    for a, b in ((na, o1), (o1, o2), (o2, h)):
        assert sim.create_manual_bond(a.uid, b.uid) is BondRequestResult.CREATED

    (molecule,) = sim.molecules.values()
    assert molecule.name == "sodium hydrogen dioxygen (NaHO₂)"
    assert all(record["stress_ratio"] < 1.0 for record in sim.bonds())

    sim.run(120)
    assert sim.events.of_type(BOND_BROKEN) == []
    assert [m.name for m in sim.molecules.values()] == ["sodium hydrogen dioxygen (NaHO₂)"]
    assert sim.bond_count(h.uid) == 1
    assert sim.bond_count(o2.uid) == 2


def test_internal_bond_never_snaps_below_rest_span():
    sim = make_sim()
    a = sim.add_atom(1, position=[0.0, 0.0, 0.0])
    b = sim.add_atom(1, position=[1.0, 0.0, 0.0])
    sim.energy.transient_heat = 5.0
    sim.create_manual_bond(a.uid, b.uid)
    molecule = next(iter(sim.molecules.values()))
    bond = next(iter(molecule.bonds.values()))
    assert molecule.rest_lengths[bond.uid] == pytest.approx(1.2)
    molecule.rest_lengths[bond.uid] = 50.0
    molecule.offsets[b.uid] = molecule.offsets[b.uid] + np.array([10.0, 0.0, 0.0])
    assert sim.lifecycle.check_stress() == []
    assert len(sim.molecules) == 1
