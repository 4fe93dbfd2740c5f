"""
Script lineage aggregation

Scripts form a forest through parent_id. A "source" script (no parent)
is credited with everything its descendant iterations acquired; an
"iteration" script (has a parent) is ranked on its own ROI.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session, joinedload

from scriptboard.models.script import Script

TOP_N = 3


@dataclass
class LineageNode:
    id: int
    name: str
    parent_id: Optional[int]
    customers: float = 0.0
    total_cost: float = 0.0
    roi: Optional[float] = None
    matched_rows: int = 0
    has_stat: bool = False


class LineageAggregator:
    """
    Arena of scripts indexed by id, with parent -> children back-references.

    Usage:
        lineage = LineageAggregator.from_db(db)
        lineage.aggregate(script_id)    # {"customers": ..., "total_cost": ...}
        lineage.top_source_scripts()
        lineage.top_iteration_scripts()
    """

    def __init__(self, nodes: Iterable[LineageNode]):
        self.nodes: Dict[int, LineageNode] = {}
        self.children: Dict[int, List[int]] = {}

        for node in nodes:
            self.nodes[node.id] = node
        for node in self.nodes.values():
            if node.parent_id is not None:
                self.children.setdefault(node.parent_id, []).append(node.id)

    @classmethod
    def from_db(cls, db: Session) -> "LineageAggregator":
        scripts = db.query(Script).options(joinedload(Script.stat)).order_by(Script.id).all()
        return cls(
            LineageNode(
                id=s.id,
                name=s.name,
                parent_id=s.parent_id,
                customers=s.stat.customers if s.stat else 0.0,
                total_cost=s.stat.total_cost if s.stat else 0.0,
                roi=s.stat.roi if s.stat else None,
                matched_rows=s.stat.matched_rows if s.stat else 0,
                has_stat=s.stat is not None,
            )
            for s in scripts
        )

    def aggregate(self, script_id: int, visited: Optional[Set[int]] = None) -> Dict[str, float]:
        """
        Own customers/cost plus those of every descendant, to any depth.

        visited is shared across the whole traversal; a script reached a
        second time (a cycle, or a malformed graph) contributes zero.
        """
        if visited is None:
            visited = set()
        if script_id in visited:
            return {"customers": 0.0, "total_cost": 0.0}
        visited.add(script_id)

        node = self.nodes.get(script_id)
        customers = node.customers if node else 0.0
        total_cost = node.total_cost if node else 0.0

        for child_id in self.children.get(script_id, []):
            child = self.aggregate(child_id, visited)
            customers += child["customers"]
            total_cost += child["total_cost"]

        return {"customers": customers, "total_cost": total_cost}

    def top_source_scripts(self, limit: int = TOP_N) -> List[Dict]:
        """Root scripts ranked by downstream-inclusive customers (ties keep input order)."""
        ranked = []
        for node in self.nodes.values():
            if node.parent_id is not None:
                continue
            agg = self.aggregate(node.id)
            if agg["customers"] <= 0:
                continue
            ranked.append({
                "id": node.id,
                "name": node.name,
                "children_count": len(self.children.get(node.id, [])),
                "own_customers": node.customers,
                "own_total_cost": node.total_cost,
                "aggregated_customers": agg["customers"],
                "aggregated_cost": agg["total_cost"],
            })

        ranked.sort(key=lambda s: s["aggregated_customers"], reverse=True)
        return ranked[:limit]

    def top_iteration_scripts(self, limit: int = TOP_N) -> List[Dict]:
        """Matched iteration scripts ranked by their own ROI, null ROI last."""
        candidates = [
            n for n in self.nodes.values()
            if n.parent_id is not None and n.has_stat and n.matched_rows > 0
        ]
        candidates.sort(
            key=lambda n: n.roi if n.roi is not None else float("-inf"),
            reverse=True,
        )

        results = []
        for node in candidates[:limit]:
            parent = self.nodes.get(node.parent_id)
            results.append({
                "id": node.id,
                "name": node.name,
                "parent_name": parent.name if parent else None,
                "customers": node.customers,
                "total_cost": node.total_cost,
                "roi": node.roi,
            })
        return results
