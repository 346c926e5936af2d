"""
Tests for ordinal remapping of path-keyed maps.

Tests cover:
- remove / insert shifting
- swap involution
- reorder permutations
- bulk replace truncation
- keys outside the array are left alone
"""

from formstate import MutationKind, StructuralMutation, apply_mutation, remap_keys


class TestRemove:
    """Test REMOVE descriptors."""

    def test_removed_element_dropped_and_rest_shift_down(self):
        touched = {'items.0.name': True, 'items.1.name': True}
        remap_keys(touched, StructuralMutation.remove('items', 0, 1))
        assert touched == {'items.0.name': True}

    def test_remove_range(self):
        errors = {f'items.{i}': [f'e{i}'] for i in range(5)}
        changed = remap_keys(errors, StructuralMutation.remove('items', 1, 2))
        assert errors == {'items.0': ['e0'], 'items.1': ['e3'], 'items.2': ['e4']}
        assert changed == 4

    def test_bare_ordinal_and_descendants_move_together(self):
        touched = {'items.2': True, 'items.2.tags.0': True, 'items.2.name': True}
        remap_keys(touched, StructuralMutation.remove('items', 0, 1))
        assert touched == {'items.1': True, 'items.1.tags.0': True, 'items.1.name': True}


class TestInsert:
    """Test INSERT descriptors."""

    def test_shifts_up_from_start(self):
        touched = {'items.0.name': True, 'items.1.name': True, 'items.2.name': True}
        remap_keys(touched, StructuralMutation.insert('items', 1, 2))
        assert touched == {'items.0.name': True, 'items.3.name': True, 'items.4.name': True}

    def test_no_collision_when_shifting_adjacent_keys(self):
        """Shifting by one must not let items.0 overwrite items.1 before it moves."""
        errors = {'items.0': ['a'], 'items.1': ['b']}
        remap_keys(errors, StructuralMutation.insert('items', 0, 1))
        assert errors == {'items.1': ['a'], 'items.2': ['b']}


class TestSwap:
    """Test SWAP descriptors."""

    def test_swap_exchanges_families(self):
        errors = {'items.0.name': ['x'], 'items.2.name': ['y'], 'items.2': ['z']}
        remap_keys(errors, StructuralMutation.swap('items', 0, 2))
        assert errors == {'items.2.name': ['x'], 'items.0.name': ['y'], 'items.0': ['z']}

    def test_swap_is_an_involution(self):
        original = {'items.0.name': True, 'items.1.qty': True, 'items.3': True}
        touched = dict(original)
        mutation = StructuralMutation.swap('items', 1, 3)
        remap_keys(touched, mutation)
        assert touched != original
        remap_keys(touched, mutation)
        assert touched == original

    def test_swap_with_itself_is_noop(self):
        assert StructuralMutation.swap('items', 1, 1).is_noop
        touched = {'items.1': True}
        assert remap_keys(touched, StructuralMutation.swap('items', 1, 1)) == 0


class TestReorderAndReplace:
    """Test REORDER and REPLACE descriptors."""

    def test_reorder_follows_permutation(self):
        """order[new] == old: reversing three elements."""
        touched = {'items.0': True, 'items.2.name': True}
        remap_keys(touched, StructuralMutation.reorder('items', [2, 1, 0]))
        assert touched == {'items.2': True, 'items.0.name': True}

    def test_replace_drops_ordinals_beyond_new_length(self):
        errors = {'items.0.name': ['a'], 'items.1.name': ['b'], 'items.3': ['c'], 'items': ['d']}
        remap_keys(errors, StructuralMutation.replace('items', 1))
        assert errors == {'items.0.name': ['a'], 'items': ['d']}


def test_keys_outside_array_are_untouched():
    """Siblings sharing a textual prefix and non-ordinal children are not remapped."""
    touched = {'items_extra.0': True, 'items.meta': True, 'customer': True, 'items.1': True}
    remap_keys(touched, StructuralMutation.remove('items', 0, 1))
    assert touched == {'items_extra.0': True, 'items.meta': True, 'customer': True, 'items.0': True}


def test_nested_array_remap_leaves_parent_ordinals():
    touched = {'orders.1.items.0': True, 'orders.1.items.1': True, 'orders.0.items.1': True}
    remap_keys(touched, StructuralMutation.remove('orders.1.items', 0, 1))
    assert touched == {'orders.1.items.0': True, 'orders.0.items.1': True}


def test_apply_mutation_covers_every_map():
    touched = {'items.1': True}
    errors = {'items.1.name': ['e']}
    custom = {'items.1.name': ['c']}
    changed = apply_mutation((touched, errors, custom), StructuralMutation.remove('items', 0, 1))
    assert changed == 3
    assert touched == {'items.0': True}
    assert errors == {'items.0.name': ['e']}
    assert custom == {'items.0.name': ['c']}


def test_mutation_kind_values():
    assert StructuralMutation.insert('a', 0, 1).kind is MutationKind.INSERT
    assert StructuralMutation.replace('a', 0).kind is MutationKind.REPLACE
