import unittest

from vrpbb.cuts.definitions import CutPool
from vrpbb.cuts.separators import CapacityCutSeparator, make_capacity_cut
from vrpbb.data.loader import build_instance
from vrpbb.model.builder import build_model, capacity_rhs
from vrpbb.model.initializer import build_initial_routes, nearest_neighbor_tour


def _line_instance(demands=(4, 4, 4, 4), capacity=10, vehicles=2):
    return build_instance(
        "line",
        (0, 0),
        list(demands),
        [(10, 0), (11, 0), (-10, 0), (-11, 0)],
        capacity=capacity,
        num_vehicles=vehicles,
    )


def _values(model, counts):
    values = [0.0] * len(model.edges)
    for edge, k in counts.items():
        values[model.edge_index[edge]] = float(k)
    return values


class TestModelBuilder(unittest.TestCase):
    def test_formulation_shape(self):
        model = build_model(_line_instance())
        f = model.formulation
        self.assertEqual(f.num_variables, 10)
        self.assertEqual(model.edges[0], (0, 1))
        self.assertEqual(model.edges[-1], (3, 4))
        self.assertEqual(f.variables[model.edge_index[(0, 3)]].ub, 2.0)
        self.assertEqual(f.variables[model.edge_index[(1, 3)]].ub, 1.0)
        self.assertAlmostEqual(f.variables[model.edge_index[(2, 4)]].cost, 22.0)
        rows = {row.name: row for row in f.constraints}
        self.assertEqual(len(rows), 6)
        self.assertEqual(rows["degree_1"].rhs, 2.0)
        self.assertEqual(len(rows["degree_1"].coeffs), 4)
        self.assertEqual(rows["fleet"].rhs, 4.0)
        self.assertEqual(rows["rcc_all"].rhs, 4.0)

    def test_capacity_rhs(self):
        instance = _line_instance()
        self.assertEqual(capacity_rhs(instance, 0.0), 2.0)
        self.assertEqual(capacity_rhs(instance, 10.0), 2.0)
        self.assertEqual(capacity_rhs(instance, 10.5), 4.0)

    def test_encode_decode_routes(self):
        model = build_model(_line_instance())
        values = model.encode_routes([(1, 2), (3, 4)])
        self.assertAlmostEqual(model.formulation.objective(values), 44.0)
        self.assertTrue(model.formulation.is_integral(values))
        for row in model.formulation.constraints:
            self.assertEqual(row.violation(values), 0.0)
        routes = model.decode_routes(values)
        self.assertEqual(sorted(frozenset(r) for r in routes), sorted([frozenset({1, 2}), frozenset({3, 4})]))

    def test_oversized_customer_gets_root_row(self):
        instance = build_instance("big", (0, 0), [11, 1], [(1, 0), (2, 0)], capacity=10, num_vehicles=2)
        model = build_model(instance)
        rows = {row.name: row for row in model.formulation.constraints}
        self.assertIn("rcc_1", rows)
        self.assertNotIn("rcc_2", rows)
        self.assertEqual(rows["rcc_1"].sense, ">=")
        self.assertEqual(rows["rcc_1"].rhs, 4.0)
        self.assertEqual(rows["rcc_1"].coeffs, rows["degree_1"].coeffs)
        self.assertEqual(rows["rcc_all"].rhs, 4.0)

    def test_no_extra_rows_when_demands_fit(self):
        model = build_model(_line_instance(demands=(10, 10, 0, 0)))
        names = [row.name for row in model.formulation.constraints]
        self.assertEqual(len(names), 6)
        self.assertFalse(any(n.startswith("rcc_") and n != "rcc_all" for n in names))

    def test_empty_instance(self):
        model = build_model(build_instance("empty", (0, 0), [], [], capacity=5, num_vehicles=1))
        self.assertEqual(model.formulation.num_variables, 0)
        self.assertEqual(model.formulation.constraints, ())


class TestCapacityCuts(unittest.TestCase):
    def test_disconnected_subtour_is_cut(self):
        model = build_model(_line_instance())
        values = _values(model, {(0, 1): 1, (0, 2): 1, (1, 2): 1, (3, 4): 1})
        cuts = CapacityCutSeparator(model)(values, True)
        self.assertEqual(len(cuts), 1)
        self.assertEqual(cuts[0].members, frozenset({3, 4}))
        self.assertEqual(cuts[0].cut_id, "rcc_3_4")
        self.assertEqual(cuts[0].rhs, 2.0)
        self.assertEqual(cuts[0].constraint.violation(values), 2.0)

    def test_overloaded_route_is_cut(self):
        model = build_model(_line_instance())
        values = _values(model, {(0, 1): 1, (1, 2): 1, (2, 3): 1, (0, 3): 1, (0, 4): 2})
        cuts = CapacityCutSeparator(model)(values, True)
        self.assertEqual([c.members for c in cuts], [frozenset({1, 2, 3})])
        self.assertEqual(cuts[0].rhs, 4.0)

    def test_feasible_point_has_no_cut(self):
        model = build_model(_line_instance())
        values = model.encode_routes([(1, 2), (3, 4)])
        self.assertEqual(CapacityCutSeparator(model)(values, True), [])

    def test_fractional_separation_switch(self):
        model = build_model(_line_instance())
        values = _values(model, {(0, 1): 1, (0, 2): 1, (1, 2): 1, (3, 4): 0.5})
        self.assertEqual(CapacityCutSeparator(model, separate_fractional=False)(values, False), [])
        self.assertEqual(len(CapacityCutSeparator(model)(values, False)), 1)

    def test_cut_pool_dedup(self):
        model = build_model(_line_instance())
        pool = CutPool()
        cut = make_capacity_cut(model, [4, 3])
        self.assertEqual(pool.add([cut]), 1)
        self.assertEqual(pool.add([make_capacity_cut(model, {3, 4})]), 0)
        self.assertEqual(len(pool), 1)
        self.assertEqual([row.name for row in pool.snapshot()], ["rcc_3_4"])


class TestInitialRoutes(unittest.TestCase):
    def test_nearest_neighbor_tour(self):
        self.assertEqual(nearest_neighbor_tour(_line_instance()), [1, 2, 3, 4])

    def test_partition_is_feasible(self):
        routes, cost = build_initial_routes(_line_instance())
        self.assertEqual(sorted(frozenset(r) for r in routes), sorted([frozenset({1, 2}), frozenset({3, 4})]))
        self.assertAlmostEqual(cost, 44.0)

    def test_no_partition(self):
        self.assertIsNone(build_initial_routes(_line_instance(demands=(6, 5, 5, 5))))

    def test_empty_instance(self):
        instance = build_instance("empty", (0, 0), [], [], capacity=5, num_vehicles=1)
        self.assertEqual(build_initial_routes(instance), ([], 0.0))


if __name__ == "__main__":
    unittest.main()
