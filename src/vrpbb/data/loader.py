from __future__ import annotations

"""实例数据加载模块（文本文件 / SQLite + CSV）。

数据组织约定：
- 文本格式: 首行 `<节点数(含仓库)> <车辆数> <容量>`，其后每行 `<需求> <x> <y>`，
  第一行节点为仓库；距离取欧氏距离。
- SQLite `instances` 表提供实例索引与全局参数 (capacity, vehicles)，
  CSV 提供节点坐标与需求，可选 dist_matrix.csv 覆盖欧氏距离。

加载流程：
1) 读元信息；
2) 读节点并做字段/类型校验；
3) 构建距离矩阵；
4) 返回 InstanceData（构造时再做一致性校验）。
"""

import csv
import logging
import math
import sqlite3
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from vrpbb.core.errors import MalformedInstance
from vrpbb.core.types import Customer, InstanceData

logger = logging.getLogger(__name__)

REQUIRED_NODE_COLS = {"id", "demand", "x", "y"}
REQUIRED_MATRIX_COLS = {"from", "to", "value"}


def _require_columns(path: Path, actual, required):
    """校验 CSV 必要列。"""
    missing = set(required) - set(actual or [])
    if missing:
        raise MalformedInstance(f"Missing columns {sorted(missing)} in {path}")


def euclidean_matrix(points: List[Tuple[float, float]]) -> Tuple[Tuple[float, ...], ...]:
    """由坐标生成对称欧氏距离矩阵。"""
    return tuple(
        tuple(math.hypot(a[0] - b[0], a[1] - b[1]) for b in points)
        for a in points
    )


def build_instance(
    name: str,
    depot: Tuple[float, float],
    demands: List[float],
    coords: List[Tuple[float, float]],
    capacity: float,
    num_vehicles: int,
    dist: Optional[List[List[float]]] = None,
) -> InstanceData:
    """由内存数据构建实例；dist 为空时按坐标计算欧氏距离。"""
    if len(demands) != len(coords):
        raise MalformedInstance(f"demands/coords length mismatch: {len(demands)} vs {len(coords)}")
    customers = tuple(
        Customer(customer_id=i, demand=float(q), x=float(xy[0]), y=float(xy[1]))
        for i, (q, xy) in enumerate(zip(demands, coords), start=1)
    )
    if dist is None:
        matrix = euclidean_matrix([depot, *coords])
    else:
        matrix = tuple(tuple(float(v) for v in row) for row in dist)
    return InstanceData(
        name=name,
        depot=(float(depot[0]), float(depot[1])),
        customers=customers,
        capacity=float(capacity),
        num_vehicles=int(num_vehicles),
        dist=matrix,
    )


def load_instance_file(path: str) -> InstanceData:
    """读取文本格式实例。"""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"instance file not found: {p}")

    lines = [ln.strip() for ln in p.read_text(encoding="utf-8").splitlines()]
    lines = [ln for ln in lines if ln]
    if not lines:
        raise MalformedInstance(f"empty instance file: {p}")

    try:
        header = lines[0].split()
        num_nodes = int(header[0])
        num_vehicles = int(header[1])
        capacity = float(header[2])
    except (IndexError, ValueError) as exc:
        raise MalformedInstance(f"invalid header at {p}:1") from exc

    rows: List[Tuple[float, float, float]] = []
    for idx, line in enumerate(lines[1:], start=2):
        parts = line.split()
        try:
            rows.append((float(parts[0]), float(parts[1]), float(parts[2])))
        except (IndexError, ValueError) as exc:
            raise MalformedInstance(f"invalid node row at {p}:{idx}") from exc

    if len(rows) != num_nodes:
        raise MalformedInstance(f"header declares {num_nodes} nodes but {len(rows)} rows found in {p}")
    if num_nodes < 1:
        raise MalformedInstance(f"instance has no depot: {p}")

    depot = (rows[0][1], rows[0][2])
    demands = [r[0] for r in rows[1:]]
    coords = [(r[1], r[2]) for r in rows[1:]]
    instance = build_instance(p.stem, depot, demands, coords, capacity, num_vehicles)
    logger.info(
        "loaded %s: customers=%d vehicles=%d capacity=%g",
        instance.name, instance.num_customers, instance.num_vehicles, instance.capacity,
    )
    return instance


def _load_meta(instance_id: str, db_path: Path) -> dict:
    """读取实例元信息（csv_dir, capacity, vehicles）。"""
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    try:
        cur = conn.execute(
            """
            SELECT instance_id, csv_dir, capacity, vehicles
            FROM instances
            WHERE instance_id = ?
            """,
            (instance_id,),
        )
        row = cur.fetchone()
        if row is None:
            raise MalformedInstance(f"instance_id not found in DB: {instance_id}")
        return dict(row)
    finally:
        conn.close()


def _load_matrix(path: Path, size: int) -> List[List[float]]:
    """读取边矩阵文件 (from,to,value) -> size x size 矩阵，缺失项按对称补齐。"""
    matrix: List[List[Optional[float]]] = [[None] * size for _ in range(size)]
    with path.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        _require_columns(path, reader.fieldnames, REQUIRED_MATRIX_COLS)
        for idx, row in enumerate(reader, start=2):
            try:
                u = int(row["from"])
                v = int(row["to"])
                val = float(row["value"])
            except (TypeError, ValueError) as exc:
                raise MalformedInstance(f"Invalid value at {path}:{idx}") from exc
            if not (0 <= u < size and 0 <= v < size):
                raise MalformedInstance(f"node id out of range at {path}:{idx}")
            matrix[u][v] = val

    out: List[List[float]] = []
    for u in range(size):
        row_out = []
        for v in range(size):
            val = matrix[u][v] if matrix[u][v] is not None else matrix[v][u]
            if val is None:
                val = 0.0 if u == v else None
            if val is None:
                raise MalformedInstance(f"distance missing for ({u}, {v}) in {path}")
            row_out.append(val)
        out.append(row_out)
    return out


def load_instance(instance_id: str, db_path: str, csv_dir: str = "") -> InstanceData:
    """从 SQLite + CSV 加载并验证一个实例。

    关键验证：
    - 必需文件存在；
    - 列头完整；
    - 节点编号连续且仓库编号为 0；
    - 其余一致性（容量、需求、距离对称）由 InstanceData 校验。
    """
    db = Path(db_path)
    if not db.exists():
        raise FileNotFoundError(f"db_path not found: {db}")

    meta = _load_meta(instance_id, db)
    base = Path(csv_dir) if csv_dir else Path(meta["csv_dir"])
    if not base.is_absolute():
        base = db.parent / base

    nodes_path = base / "customers.csv"
    if not nodes_path.exists():
        raise FileNotFoundError(f"required file missing: {nodes_path}")

    nodes: Dict[int, Tuple[float, float, float]] = {}
    with nodes_path.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        _require_columns(nodes_path, reader.fieldnames, REQUIRED_NODE_COLS)
        for idx, row in enumerate(reader, start=2):
            try:
                nid = int(row["id"])
                nodes[nid] = (float(row["demand"]), float(row["x"]), float(row["y"]))
            except (TypeError, ValueError) as exc:
                raise MalformedInstance(f"invalid node row at {nodes_path}:{idx}") from exc

    if 0 not in nodes:
        raise MalformedInstance(f"depot row (id 0) missing in {nodes_path}")
    if sorted(nodes) != list(range(len(nodes))):
        raise MalformedInstance(f"node ids must be 0..n with depot 0 in {nodes_path}")

    depot = (nodes[0][1], nodes[0][2])
    ids = sorted(i for i in nodes if i != 0)
    demands = [nodes[i][0] for i in ids]
    coords = [(nodes[i][1], nodes[i][2]) for i in ids]

    dist_path = base / "dist_matrix.csv"
    dist = _load_matrix(dist_path, len(nodes)) if dist_path.exists() else None

    return build_instance(
        instance_id,
        depot,
        demands,
        coords,
        capacity=float(meta["capacity"]),
        num_vehicles=int(meta["vehicles"]),
        dist=dist,
    )


def load_batch_instances(db_path: str, batch_id: str) -> List[str]:
    """按 batch_id 从数据库读取实例列表。"""
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.execute(
            """
            SELECT bi.instance_id
            FROM batch_instances bi
            WHERE bi.batch_id = ?
            ORDER BY bi.instance_id
            """,
            (batch_id,),
        )
        return [r[0] for r in cur.fetchall()]
    finally:
        conn.close()
