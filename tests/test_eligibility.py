import pytest

from bondlab.atoms import Atom
from bondlab.bonds import Bond, bond_key
from bondlab.eligibility import (
    PreferenceFilter,
    activation_energy,
    can_form_bond,
    minimum_activation_energy,
    should_form_bond,
)
from bondlab.elements_data import get_element


def mk_atom(uid, protons, pos=(0.0, 0.0, 0.0)):
    return Atom(uid, protons, position=pos)


def test_activation_energy_values():
    h, o = get_element(1), get_element(8)
    assert activation_energy(h, h) == pytest.approx(1.36)
    # polar pair drops below the floor
    assert activation_energy(h, o) == pytest.approx(1.0)


def test_minimum_activation_energy():
    h, o = get_element(1), get_element(8)
    assert minimum_activation_energy(h, o) == pytest.approx(7.52 - 4.5)
    assert minimum_activation_energy(None, None) >= 1.0


def test_can_form_bond_rejects_unknown_element():
    a = mk_atom(1, 1)
    b = mk_atom(2, 50)
    assert can_form_bond(a, b, 100.0) is False


def test_can_form_bond_energy_gate():
    a = mk_atom(1, 1)
    b = mk_atom(2, 1, (1.0, 0.0, 0.0))
    assert can_form_bond(a, b, 1.0) is False
    assert can_form_bond(a, b, 1.36) is True


def test_can_form_bond_respects_valence():
    a = mk_atom(1, 1)
    b = mk_atom(2, 1)
    saturated = {1}
    assert can_form_bond(a, b, 50.0, lambda atom: 1 if atom.uid in saturated else 0) is False


def test_hydrogen_pair_vetoed_by_nearby_oxygen():
    h1 = mk_atom(1, 1)
    h2 = mk_atom(2, 1, (2.0, 0.0, 0.0))
    o = mk_atom(3, 8, (0.0, 3.0, 0.0))
    prefs = PreferenceFilter()
    assert prefs.allows(h1, h2, [h1, h2, o]) is False
    o.body.position[:] = [0.0, 20.0, 0.0]
    assert prefs.allows(h1, h2, [h1, h2, o]) is True


def test_oxygen_pair_vetoed_by_nearby_heteroatom():
    o1 = mk_atom(1, 8)
    o2 = mk_atom(2, 8, (2.0, 0.0, 0.0))
    n = mk_atom(3, 7, (1.0, 1.0, 0.0))
    o3 = mk_atom(4, 8, (1.0, -1.0, 0.0))
    prefs = PreferenceFilter()
    assert prefs.allows(o1, o2, [o1, o2, o3]) is True
    assert prefs.allows(o1, o2, [o1, o2, o3, n]) is False


def test_custom_rule_table():
    h1 = mk_atom(1, 1)
    h2 = mk_atom(2, 1, (2.0, 0.0, 0.0))
    o = mk_atom(3, 8, (0.0, 1.0, 0.0))
    assert PreferenceFilter(rules=[]).allows(h1, h2, [h1, h2, o]) is True
    assert should_form_bond(h1, h2, 10.0, [h1, h2, o], preferences=PreferenceFilter(rules=[])) is True
    assert should_form_bond(h1, h2, 10.0, [h1, h2, o]) is False


def test_bond_properties_hydrogen_type():
    h = mk_atom(1, 1)
    o = mk_atom(2, 8)
    bond = Bond(o, h)
    assert bond.uid == "1-2"
    assert bond.atom_uids == (1, 2)
    assert bond.bond_type == "hydrogen"
    assert bond.order == 1
    assert bond.energy == pytest.approx(126.9)
    assert bond.ideal_length == pytest.approx(1.32)
    assert bond.break_length == pytest.approx(3.3)


def test_bond_properties_ionic_and_double():
    na, cl = mk_atom(1, 11), mk_atom(2, 17)
    ionic = Bond(na, cl)
    assert ionic.bond_type == "ionic"
    assert ionic.energy == pytest.approx(460.125)

    c, o = mk_atom(3, 6), mk_atom(4, 8)
    double = Bond(c, o)
    assert double.bond_type == "covalent"
    assert double.order == 2
    assert double.polarity == pytest.approx(0.89)


def test_bond_rejects_self_and_key_is_symmetric():
    a = mk_atom(7, 1)
    with pytest.raises(ValueError):
        Bond(a, a)
    assert bond_key(5, 2) == bond_key(2, 5) == "2-5"
