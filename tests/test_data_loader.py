import sqlite3
import tempfile
import unittest
from pathlib import Path

from vrpbb.core.errors import MalformedInstance
from vrpbb.data.loader import build_instance, load_batch_instances, load_instance, load_instance_file


class TestDataLoader(unittest.TestCase):
    def _write_csv(self, path: Path, header: str, rows):
        content = [header] + rows
        path.write_text("\n".join(content) + "\n", encoding="utf-8")

    def _build_minimal_fixture(self, base: Path):
        inst_dir = base / "instA"
        inst_dir.mkdir(parents=True, exist_ok=True)

        self._write_csv(
            inst_dir / "customers.csv",
            "id,demand,x,y",
            ["0,0,0,0", "1,2,3,4", "2,3,0,5"],
        )

        db_path = base / "instances.db"
        conn = sqlite3.connect(str(db_path))
        conn.execute(
            "CREATE TABLE instances (instance_id TEXT PRIMARY KEY, csv_dir TEXT, capacity REAL, vehicles INTEGER)"
        )
        conn.execute(
            "INSERT INTO instances(instance_id,csv_dir,capacity,vehicles) VALUES (?,?,?,?)",
            ("instA", str(inst_dir), 10.0, 2),
        )
        conn.execute("CREATE TABLE batch_instances (batch_id TEXT, instance_id TEXT)")
        conn.execute("INSERT INTO batch_instances(batch_id,instance_id) VALUES (?,?)", ("b1", "instA"))
        conn.commit()
        conn.close()
        return db_path, inst_dir

    def test_load_instance_success(self):
        with tempfile.TemporaryDirectory() as td:
            base = Path(td)
            db_path, _ = self._build_minimal_fixture(base)
            ins = load_instance("instA", str(db_path))
            self.assertEqual(ins.name, "instA")
            self.assertEqual(ins.num_customers, 2)
            self.assertEqual(ins.num_vehicles, 2)
            self.assertEqual(ins.capacity, 10.0)
            self.assertEqual(ins.total_demand, 5.0)
            self.assertAlmostEqual(ins.dist[0][1], 5.0)
            self.assertAlmostEqual(ins.dist[2][0], 5.0)
            self.assertAlmostEqual(ins.dist[1][2], ins.dist[2][1])

    def test_dist_matrix_overrides_coordinates(self):
        with tempfile.TemporaryDirectory() as td:
            base = Path(td)
            db_path, inst_dir = self._build_minimal_fixture(base)
            self._write_csv(inst_dir / "dist_matrix.csv", "from,to,value", ["0,1,7", "0,2,8", "1,2,9"])
            ins = load_instance("instA", str(db_path))
            self.assertEqual(ins.dist[1][0], 7.0)
            self.assertEqual(ins.dist[0][2], 8.0)
            self.assertEqual(ins.dist[2][1], 9.0)
            self.assertEqual(ins.dist[1][1], 0.0)

    def test_load_instance_missing_col(self):
        with tempfile.TemporaryDirectory() as td:
            base = Path(td)
            db_path, inst_dir = self._build_minimal_fixture(base)
            (inst_dir / "customers.csv").write_text("id,demand\n0,0\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_instance("instA", str(db_path))

    def test_header_only_customers(self):
        with tempfile.TemporaryDirectory() as td:
            db_path, inst_dir = self._build_minimal_fixture(Path(td))
            (inst_dir / "customers.csv").write_text("id,demand,x,y\n", encoding="utf-8")
            with self.assertRaises(MalformedInstance):
                load_instance("instA", str(db_path))

    def test_missing_depot_row(self):
        with tempfile.TemporaryDirectory() as td:
            db_path, inst_dir = self._build_minimal_fixture(Path(td))
            self._write_csv(inst_dir / "customers.csv", "id,demand,x,y", ["1,2,3,4", "2,3,0,5"])
            with self.assertRaises(MalformedInstance):
                load_instance("instA", str(db_path))

    def test_unknown_instance_id(self):
        with tempfile.TemporaryDirectory() as td:
            db_path, _ = self._build_minimal_fixture(Path(td))
            with self.assertRaises(MalformedInstance):
                load_instance("nope", str(db_path))

    def test_batch_listing(self):
        with tempfile.TemporaryDirectory() as td:
            db_path, _ = self._build_minimal_fixture(Path(td))
            self.assertEqual(load_batch_instances(str(db_path), "b1"), ["instA"])
            self.assertEqual(load_batch_instances(str(db_path), "b2"), [])


class TestInstanceFile(unittest.TestCase):
    def _write(self, td: str, text: str) -> str:
        path = Path(td) / "tiny.txt"
        path.write_text(text, encoding="utf-8")
        return str(path)

    def test_text_format(self):
        with tempfile.TemporaryDirectory() as td:
            path = self._write(td, "3 2 10\n0 0 0\n4 3 4\n6 -3 -4\n")
            ins = load_instance_file(path)
            self.assertEqual(ins.name, "tiny")
            self.assertEqual(ins.num_customers, 2)
            self.assertEqual(ins.num_vehicles, 2)
            self.assertEqual(ins.demand(0), 0.0)
            self.assertEqual(ins.demand(2), 6.0)
            self.assertAlmostEqual(ins.dist[0][1], 5.0)
            self.assertAlmostEqual(ins.dist[1][2], 10.0)

    def test_row_count_mismatch(self):
        with tempfile.TemporaryDirectory() as td:
            path = self._write(td, "4 2 10\n0 0 0\n4 3 4\n")
            with self.assertRaises(MalformedInstance):
                load_instance_file(path)

    def test_bad_header(self):
        with tempfile.TemporaryDirectory() as td:
            path = self._write(td, "three 2 10\n0 0 0\n")
            with self.assertRaises(MalformedInstance):
                load_instance_file(path)

    def test_demand_above_capacity_still_loads(self):
        with tempfile.TemporaryDirectory() as td:
            path = self._write(td, "2 1 10\n0 0 0\n11 1 1\n")
            ins = load_instance_file(path)
            self.assertEqual(ins.demand(1), 11.0)
            self.assertEqual(ins.capacity, 10.0)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_instance_file("/nonexistent/instance.txt")


class TestInstanceValidation(unittest.TestCase):
    def test_non_positive_capacity(self):
        with self.assertRaises(MalformedInstance):
            build_instance("x", (0, 0), [1], [(1, 1)], capacity=0, num_vehicles=1)

    def test_no_vehicles(self):
        with self.assertRaises(MalformedInstance):
            build_instance("x", (0, 0), [1], [(1, 1)], capacity=5, num_vehicles=0)

    def test_negative_demand(self):
        with self.assertRaises(MalformedInstance):
            build_instance("x", (0, 0), [-1], [(1, 1)], capacity=5, num_vehicles=1)

    def test_asymmetric_matrix(self):
        with self.assertRaises(MalformedInstance):
            build_instance("x", (0, 0), [1], [(1, 1)], capacity=5, num_vehicles=1, dist=[[0, 1], [2, 0]])

    def test_empty_instance_is_valid(self):
        ins = build_instance("x", (0, 0), [], [], capacity=5, num_vehicles=1)
        self.assertEqual(ins.num_customers, 0)
        self.assertEqual(ins.total_demand, 0.0)


if __name__ == "__main__":
    unittest.main()
