"""Tests for field operations and their merge table."""
import unittest

from hypothesis import given
from hypothesis import strategies as st

from parseclient.core.exceptions import ErrorCode, ValidationError
from parseclient.core.operations import (AddOperation, AddUniqueOperation,
                                         IncrementOperation, RelationOperation,
                                         RemoveOperation, SetOperation,
                                         UnsetOperation, merge_operations)


class Ref:
    """Minimal stand-in for an object reference."""

    def __init__(self, class_name, name):
        self.class_name = class_name
        self.name = name

    def __repr__(self):
        return f"Ref({self.name})"


class TestApply(unittest.TestCase):
    def test_set_and_unset(self):
        self.assertEqual(SetOperation(5).apply(1), 5)
        self.assertIsNone(UnsetOperation().apply(1))

    def test_increment(self):
        self.assertEqual(IncrementOperation(3).apply(None), 3)
        self.assertEqual(IncrementOperation(3).apply(4), 7)
        self.assertEqual(IncrementOperation(0.5).apply(1), 1.5)

    def test_increment_non_numeric_prior_fails(self):
        with self.assertRaises(ValidationError) as cm:
            IncrementOperation(1).apply("x")
        self.assertEqual(cm.exception.code, ErrorCode.INCORRECT_TYPE)

    def test_increment_amount_must_be_number(self):
        with self.assertRaises(ValidationError):
            IncrementOperation("1")
        with self.assertRaises(ValidationError):
            IncrementOperation(True)

    def test_add(self):
        self.assertEqual(AddOperation((1, 2)).apply(None), [1, 2])
        self.assertEqual(AddOperation((2,)).apply([1, 2]), [1, 2, 2])
        with self.assertRaises(ValidationError):
            AddOperation((1,)).apply("nope")

    def test_add_unique(self):
        self.assertEqual(AddUniqueOperation((1, 1, 2)).apply(None), [1, 2])
        self.assertEqual(AddUniqueOperation((2, 3)).apply([1, 2]), [1, 2, 3])

    def test_remove(self):
        self.assertEqual(RemoveOperation((1,)).apply(None), [])
        self.assertEqual(RemoveOperation((1, 3)).apply([1, 2, 3, 1]), [2])

    def test_relation_leaves_prior_untouched(self):
        prior = object()
        op = RelationOperation(objects_to_add=(Ref("Post", "a"),))
        self.assertIs(op.apply(prior), prior)

    def test_relation_requires_one_class(self):
        with self.assertRaises(ValidationError):
            RelationOperation(objects_to_add=(Ref("Post", "a"), Ref("Comment", "b")))
        with self.assertRaises(ValidationError):
            RelationOperation(objects_to_add=("not an object",))

    def test_relation_target_class_name(self):
        op = RelationOperation(objects_to_remove=(Ref("Post", "a"),))
        self.assertEqual(op.target_class_name, "Post")
        self.assertIsNone(RelationOperation().target_class_name)


class TestMerge(unittest.TestCase):
    def test_no_earlier_returns_later(self):
        op = AddOperation((1,))
        self.assertIs(merge_operations(op, None), op)

    def test_set_and_unset_win(self):
        earlier = IncrementOperation(2)
        self.assertEqual(merge_operations(SetOperation(1), earlier), SetOperation(1))
        self.assertEqual(merge_operations(UnsetOperation(), earlier), UnsetOperation())

    def test_increment_merges(self):
        self.assertEqual(
            merge_operations(IncrementOperation(2), IncrementOperation(3)),
            IncrementOperation(5),
        )
        self.assertEqual(
            merge_operations(IncrementOperation(2), SetOperation(10)), SetOperation(12)
        )
        self.assertEqual(
            merge_operations(IncrementOperation(2), UnsetOperation()), SetOperation(2)
        )

    def test_increment_after_non_numeric_set_fails(self):
        with self.assertRaises(ValidationError):
            merge_operations(IncrementOperation(1), SetOperation("x"))

    def test_add_merges(self):
        self.assertEqual(
            merge_operations(AddOperation((2,)), AddOperation((1,))), AddOperation((1, 2))
        )
        self.assertEqual(
            merge_operations(AddOperation((2,)), SetOperation([1])), SetOperation([1, 2])
        )
        self.assertEqual(
            merge_operations(AddOperation((2,)), UnsetOperation()), SetOperation([2])
        )

    def test_add_unique_merges(self):
        self.assertEqual(
            merge_operations(AddUniqueOperation((1, 2)), AddUniqueOperation((1,))),
            AddUniqueOperation((1, 2)),
        )
        self.assertEqual(
            merge_operations(AddUniqueOperation((1, 2)), SetOperation([1])),
            SetOperation([1, 2]),
        )
        self.assertEqual(
            merge_operations(AddUniqueOperation((1, 1)), UnsetOperation()),
            SetOperation([1]),
        )

    def test_remove_merges(self):
        self.assertEqual(
            merge_operations(RemoveOperation((2,)), RemoveOperation((1,))),
            RemoveOperation((1, 2)),
        )
        self.assertEqual(
            merge_operations(RemoveOperation((1,)), SetOperation([1, 2])),
            SetOperation([2]),
        )
        self.assertEqual(
            merge_operations(RemoveOperation((1,)), UnsetOperation()), UnsetOperation()
        )

    def test_incompatible_pairs_fail(self):
        with self.assertRaises(ValidationError):
            merge_operations(AddOperation((1,)), RemoveOperation((1,)))
        with self.assertRaises(ValidationError):
            merge_operations(RemoveOperation((1,)), IncrementOperation(1))
        with self.assertRaises(ValidationError):
            merge_operations(RelationOperation(), AddOperation((1,)))

    def test_explicit_null_counts_as_cleared(self):
        null = SetOperation(None)
        self.assertEqual(merge_operations(IncrementOperation(2), null), SetOperation(2))
        self.assertEqual(merge_operations(AddOperation((1,)), null), SetOperation([1]))
        self.assertEqual(
            merge_operations(AddUniqueOperation((1, 1)), null), SetOperation([1])
        )
        self.assertEqual(merge_operations(RemoveOperation((1,)), null), null)

    def test_add_after_add_unique_fails(self):
        with self.assertRaises(ValidationError) as cm:
            merge_operations(AddOperation((2,)), AddUniqueOperation((1,)))
        self.assertEqual(cm.exception.code, ErrorCode.INCORRECT_TYPE)

    def test_relation_add_then_remove(self):
        a, b, c = Ref("Post", "a"), Ref("Post", "b"), Ref("Post", "c")
        merged = merge_operations(
            RelationOperation(objects_to_remove=(b,)),
            RelationOperation(objects_to_add=(a, b, c)),
        )
        self.assertEqual(merged.objects_to_add, (a, c))
        self.assertEqual(merged.objects_to_remove, (b,))

    def test_relation_remove_then_add(self):
        a, b = Ref("Post", "a"), Ref("Post", "b")
        merged = merge_operations(
            RelationOperation(objects_to_add=(a,)),
            RelationOperation(objects_to_remove=(a, b)),
        )
        self.assertEqual(merged.objects_to_add, (a,))
        self.assertEqual(merged.objects_to_remove, (b,))

    @given(st.lists(st.integers(min_value=-1000, max_value=1000), min_size=1, max_size=20))
    def test_increments_merge_to_their_sum(self, amounts):
        merged = None
        for amount in amounts:
            merged = merge_operations(IncrementOperation(amount), merged)
        self.assertEqual(merged, IncrementOperation(sum(amounts)))
        self.assertEqual(merged.apply(10), 10 + sum(amounts))

    @given(
        st.lists(st.integers(), max_size=10),
        st.lists(st.integers(), max_size=10),
        st.lists(st.integers(), max_size=10),
    )
    def test_merged_apply_matches_sequential_apply(self, start, first, second):
        earlier = SetOperation(list(start))
        for op_cls in (AddOperation, AddUniqueOperation, RemoveOperation):
            merged = merge_operations(op_cls(tuple(second)), merge_operations(op_cls(tuple(first)), earlier))
            expected = op_cls(tuple(second)).apply(op_cls(tuple(first)).apply(list(start)))
            self.assertEqual(merged.apply(None), expected)


if __name__ == "__main__":
    unittest.main()
