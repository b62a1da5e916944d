from types import SimpleNamespace

import numpy as np
import pytest

from bondlab.atoms import Atom
from bondlab.events import REACTION_CANCELLED, REACTION_COMPLETED
from bondlab.lifecycle import BondRequestResult
from bondlab.reactions import (
    ReactionStage,
    atom_molecule_activation_energy,
    is_chemically_stable,
    plan_bonds,
    regroup_atoms,
)
from bondlab.simulation import Simulation


def mk_atoms(*protons):
    return [Atom(i + 1, z) for i, z in enumerate(protons)]


def diatomic(sim, protons, origin):
    x, y, z = origin
    a = sim.add_atom(protons, position=[x, y, z])
    b = sim.add_atom(protons, position=[x + 1.5, y, z])
    assert sim.create_manual_bond(a.uid, b.uid) is BondRequestResult.CREATED
    return sim.state.molecule_of(a.uid)


def test_stability_predicate():
    assert is_chemically_stable(mk_atoms(6, 8, 8))
    assert is_chemically_stable(mk_atoms(1, 9))
    assert is_chemically_stable(mk_atoms(8, 1, 1))
    assert not is_chemically_stable(mk_atoms(1))
    assert not is_chemically_stable(mk_atoms(*([1] * 7)))


def test_plan_bonds_builds_valence_respecting_tree():
    o, h1, h2 = mk_atoms(8, 1, 1)
    plan = plan_bonds([h1, o, h2])
    assert sorted(plan) == [(1, 2), (1, 3)]
    assert plan_bonds(mk_atoms(1, 1, 1)) is None
    assert plan_bonds(mk_atoms(2, 1)) is None


def test_regroup_priority():
    atoms = mk_atoms(7, 1, 1, 1, 1, 1, 1)
    groups = regroup_atoms(atoms)
    assert [sorted(a.protons for a in g) for g in groups] == [[1, 1, 1, 7], [1, 1]]

    water_first = regroup_atoms(mk_atoms(8, 6, 1, 1, 1, 1, 1, 1))
    assert sorted(a.protons for a in water_first[0]) == [1, 1, 8]
    assert sorted(a.protons for a in water_first[1]) == [1, 1, 1, 1, 6]


def test_atom_molecule_activation_energy():
    carbon, hydrogen, nitrogen = mk_atoms(6, 1, 7)
    o2 = SimpleNamespace(name="Oxygen Gas (O₂)", formula="O₂", atom_uids=[10, 11])
    n2 = SimpleNamespace(name="Nitrogen Gas (N₂)", formula="N₂", atom_uids=[12, 13])
    assert atom_molecule_activation_energy(carbon, o2) == 15.0
    assert atom_molecule_activation_energy(hydrogen, o2) == 8.0
    assert atom_molecule_activation_energy(nitrogen, n2) == 16.0


def test_no_reaction_below_heat_threshold():
    sim = Simulation(mode="sandbox", seed=3)
    sim.energy.transient_heat = 15.0
    diatomic(sim, 8, (0.0, 0.0, 0.0))
    diatomic(sim, 1, (0.0, 3.0, 0.0))
    diatomic(sim, 1, (0.0, -3.0, 0.0))
    assert sim.reactions.check(sim.system_energy()) is None


def test_hydrogen_and_oxygen_molecules_make_water():
    sim = Simulation(mode="sandbox", seed=3)
    sim.energy.transient_heat = 30.0
    diatomic(sim, 8, (0.0, 0.0, 0.0))
    diatomic(sim, 1, (0.0, 3.0, 0.0))
    diatomic(sim, 1, (0.0, -3.0, 0.0))
    assert len(sim.molecules) == 3

    reaction = sim.reactions.check(sim.system_energy())
    assert reaction is not None
    assert reaction.name == "2H₂ + O₂ → 2H₂O"
    assert sim.reactions.locked
    assert sim.reactions.check(sim.system_energy()) is None
    assert sim.create_manual_bond(1, 3) is BondRequestResult.REACTION_IN_PROGRESS

    sim.run(5)
    assert not sim.reactions.locked
    assert reaction.stage is ReactionStage.DONE
    names = sorted(m.name for m in sim.molecules.values())
    assert names == ["Water (H₂O)", "Water (H₂O)"]
    assert sim.energy.transient_heat < 30.0
    assert sim.events.of_type(REACTION_COMPLETED)[-1]["products"] == names
    for molecule in sim.molecules.values():
        assert molecule.geometry == "bent"
        for bond in molecule.bonds.values():
            assert sim.lifecycle.stress_ratio(bond) < 1.0


def test_free_atom_joins_molecule():
    sim = Simulation(mode="sandbox", seed=5)
    sim.energy.transient_heat = 30.0
    diatomic(sim, 1, (0.0, 0.0, 0.0))
    sim.add_atom(8, position=[0.0, 4.0, 0.0])

    reaction = sim.reactions.check(sim.system_energy())
    assert reaction.kind == "atom_molecule"
    assert reaction.cost == pytest.approx(16.0)
    sim.run(5)
    assert [m.name for m in sim.molecules.values()] == ["Water (H₂O)"]
    assert sim.free_atoms() == []


def test_cluster_reaction_from_free_atoms():
    sim = Simulation(mode="sandbox", seed=5)
    sim.energy.transient_heat = 30.0
    sim.add_atom(6, position=[0.0, 0.0, 0.0])
    sim.add_atom(8, position=[4.0, 0.0, 0.0])
    reaction = sim.reactions.check(sim.system_energy())
    assert reaction.kind == "multi_atom"
    sim.run(5)
    names = [m.name for m in sim.molecules.values()]
    assert len(names) == 1
    assert names[0] == "carbon oxygen (CO)"


def test_reaction_cancelled_when_reactant_deleted():
    sim = Simulation(mode="sandbox", seed=5)
    sim.energy.transient_heat = 30.0
    molecule = diatomic(sim, 1, (0.0, 0.0, 0.0))
    oxygen = sim.add_atom(8, position=[0.0, 4.0, 0.0])
    assert sim.reactions.check(sim.system_energy()) is not None

    sim.delete_atom(oxygen.uid)
    sim.step()
    assert not sim.reactions.locked
    assert sim.events.of_type(REACTION_CANCELLED)
    assert molecule.uid in sim.molecules
    assert np.isfinite(sim.system_energy())
