import unittest

from vrpbb.branching.variable_selection import current_bounds, pick_branch_variable, split_bounds
from vrpbb.core.types import BranchingRule, Formulation, Variable


def _formulation(n, integral=True):
    variables = tuple(
        Variable(index=i, name=f"x{i}", lb=0.0, ub=2.0 if i == 0 else 1.0, cost=1.0, integral=integral)
        for i in range(n)
    )
    return Formulation(name="f", variables=variables, constraints=())


class TestVariableSelection(unittest.TestCase):
    def test_integral_point_has_no_candidate(self):
        f = _formulation(3)
        self.assertIsNone(pick_branch_variable(f, [2.0, 0.0, 1.0 - 1e-8]))

    def test_most_fractional(self):
        f = _formulation(4)
        self.assertEqual(pick_branch_variable(f, [1.0, 0.2, 0.45, 0.9]), 2)

    def test_most_fractional_tie_takes_lowest_index(self):
        f = _formulation(4)
        self.assertEqual(pick_branch_variable(f, [0.0, 0.25, 0.75, 0.75]), 1)
        self.assertEqual(pick_branch_variable(f, [1.5, 0.5, 0.5, 0.0]), 0)

    def test_first_fractional(self):
        f = _formulation(4)
        rule = BranchingRule.FIRST_FRACTIONAL
        self.assertEqual(pick_branch_variable(f, [1.0, 0.1, 0.5, 0.9], rule), 1)

    def test_continuous_variables_ignored(self):
        f = _formulation(2, integral=False)
        self.assertIsNone(pick_branch_variable(f, [0.5, 0.5]))

    def test_split_bounds(self):
        down, up = split_bounds(0, 1.4, (0.0, 2.0))
        self.assertEqual((down.var_index, down.lb, down.ub), (0, 0.0, 1.0))
        self.assertEqual((up.var_index, up.lb, up.ub), (0, 2.0, 2.0))

    def test_current_bounds(self):
        f = _formulation(2)
        self.assertEqual(current_bounds(f, {}, 0), (0.0, 2.0))
        self.assertEqual(current_bounds(f, {1: (1.0, 1.0)}, 1), (1.0, 1.0))


if __name__ == "__main__":
    unittest.main()
