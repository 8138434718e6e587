"""Tests for collapsing oscillating address runs."""

from walkaround.dedup import filter_repeated, visible_mask
from walkaround.models import AddressBreakpoint


class TestVisibleMask:
    def test_short_lists_untouched(self):
        assert visible_mask([]) == []
        assert visible_mask(["A", "B", "A"]) == [True, True, True]

    def test_abab_c_leaves_one_pair(self):
        labels = ["A", "B", "A", "B", "C"]
        visible = [label for label, keep in zip(labels, visible_mask(labels)) if keep]
        assert visible == ["A", "B", "C"]

    def test_hides_current_and_previous_visible(self):
        assert visible_mask(["A", "B", "A", "B", "C"]) == [True, True, False, False, True]

    def test_no_oscillation(self):
        assert visible_mask(["A", "B", "C", "D", "E"]) == [True] * 5

    def test_hidden_elements_skipped_in_lookback(self):
        # After hiding 2 and 3, index 4 and 5 see A, B as their predecessors
        labels = ["A", "B", "A", "B", "A", "B"]
        visible = [label for label, keep in zip(labels, visible_mask(labels)) if keep]
        assert visible == ["A", "B"]

    def test_needs_three_visible_predecessors(self):
        # Index 3 is "A" but only A, B, A precede it: A == B fails, nothing hidden
        assert visible_mask(["A", "B", "C", "A"]) == [True] * 4

    def test_missing_labels_never_match(self):
        assert visible_mask(["A", None, "A", None, "A"]) == [True] * 5
        assert visible_mask(["A", "B", "A", None, "B"]) == [True] * 5


class TestFilterRepeated:
    def test_uses_city_display(self):
        records = [
            AddressBreakpoint(timestamp=t, locality="Town", thoroughfare=street)
            for t, street in enumerate(["North St", "South St", "North St", "South St", "East St"])
        ]
        kept = filter_repeated(records)
        assert [r.thoroughfare for r in kept] == ["North St", "South St", "East St"]

    def test_custom_label(self):
        items = [("x", 1), ("y", 2), ("x", 3), ("y", 4)]
        kept = filter_repeated(items, label=lambda item: item[0])
        assert kept == [("x", 1), ("y", 2)]
