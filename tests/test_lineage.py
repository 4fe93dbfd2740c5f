"""
Lineage aggregation tests: source roll-up, iteration ranking, cycle safety.
"""
from scriptboard.models.stats import ScriptStat
from scriptboard.services.lineage import LineageAggregator, LineageNode


def _node(id, parent=None, customers=0.0, cost=0.0, roi=None, matched=1, has_stat=True):
    return LineageNode(
        id=id, name=f"脚本{id}", parent_id=parent,
        customers=customers, total_cost=cost, roi=roi,
        matched_rows=matched, has_stat=has_stat,
    )


# ---------------------------------------------------------------------------
# aggregate()
# ---------------------------------------------------------------------------

class TestAggregate:

    def test_sums_descendants_to_any_depth(self):
        lineage = LineageAggregator([
            _node(1, customers=1, cost=10),
            _node(2, parent=1, customers=2, cost=20),
            _node(3, parent=2, customers=4, cost=40),
            _node(4, parent=1, customers=8, cost=80),
        ])
        assert lineage.aggregate(1) == {"customers": 15, "total_cost": 150}
        assert lineage.aggregate(2) == {"customers": 6, "total_cost": 60}

    def test_unknown_script_contributes_zero(self):
        assert LineageAggregator([]).aggregate(99) == {"customers": 0.0, "total_cost": 0.0}

    def test_two_node_cycle_terminates(self):
        lineage = LineageAggregator([
            _node(1, parent=2, customers=1, cost=10),
            _node(2, parent=1, customers=2, cost=20),
        ])
        assert lineage.aggregate(1) == {"customers": 3, "total_cost": 30}

    def test_self_parent_terminates(self):
        lineage = LineageAggregator([_node(1, parent=1, customers=5, cost=50)])
        assert lineage.aggregate(1) == {"customers": 5, "total_cost": 50}

    def test_cycle_scripts_are_not_sources(self):
        lineage = LineageAggregator([
            _node(1, parent=2, customers=1),
            _node(2, parent=1, customers=2),
        ])
        assert lineage.top_source_scripts() == []


# ---------------------------------------------------------------------------
# Rankings
# ---------------------------------------------------------------------------

class TestTopSourceScripts:

    def test_ranks_roots_by_downstream_customers(self):
        lineage = LineageAggregator([
            _node(1, customers=10),
            _node(2, customers=1),
            _node(3, parent=2, customers=30),
            _node(4, customers=0),
            _node(5, customers=5),
            _node(6, customers=7),
        ])
        top = lineage.top_source_scripts()

        assert [s["id"] for s in top] == [2, 1, 6]
        assert top[0]["aggregated_customers"] == 31
        assert top[0]["own_customers"] == 1
        assert top[0]["children_count"] == 1

    def test_zero_customer_roots_are_excluded(self):
        lineage = LineageAggregator([_node(1, customers=0), _node(2, parent=1, customers=0)])
        assert lineage.top_source_scripts() == []

    def test_ties_keep_input_order(self):
        lineage = LineageAggregator([_node(i, customers=3) for i in (5, 2, 9, 1)])
        assert [s["id"] for s in lineage.top_source_scripts()] == [5, 2, 9]


class TestTopIterationScripts:

    def test_ranks_by_roi_with_null_last(self):
        lineage = LineageAggregator([
            _node(1),
            _node(2, parent=1, roi=None),
            _node(3, parent=1, roi=0.5),
            _node(4, parent=1, roi=2.0),
            _node(5, parent=3, roi=1.0),
        ])
        top = lineage.top_iteration_scripts()

        assert [s["id"] for s in top] == [4, 5, 3]
        assert top[0]["parent_name"] == "脚本1"
        assert top[1]["parent_name"] == "脚本3"

    def test_null_roi_included_when_few_candidates(self):
        lineage = LineageAggregator([_node(1), _node(2, parent=1, roi=None), _node(3, parent=1, roi=0.1)])
        assert [s["id"] for s in lineage.top_iteration_scripts()] == [3, 2]

    def test_requires_matched_rows(self):
        lineage = LineageAggregator([
            _node(1),
            _node(2, parent=1, roi=3.0, matched=0),
            _node(3, parent=1, has_stat=False),
        ])
        assert lineage.top_iteration_scripts() == []

    def test_roots_are_not_iterations(self):
        assert LineageAggregator([_node(1, roi=9.0)]).top_iteration_scripts() == []


# ---------------------------------------------------------------------------
# Loading from the database
# ---------------------------------------------------------------------------

def test_from_db_reads_stats(db, make_script):
    root = make_script("威塔课程")
    child = make_script("威塔课程二版", parent=root)
    make_script("无数据脚本", parent=root)
    db.add(ScriptStat(script_id=root.id, matched_rows=1, customers=2, total_cost=20))
    db.add(ScriptStat(script_id=child.id, matched_rows=1, customers=3, total_cost=30, roi=1.5))
    db.commit()

    lineage = LineageAggregator.from_db(db)

    assert lineage.aggregate(root.id) == {"customers": 5, "total_cost": 50}
    assert [s["name"] for s in lineage.top_source_scripts()] == ["威塔课程"]
    assert lineage.top_source_scripts()[0]["children_count"] == 2
    assert [s["name"] for s in lineage.top_iteration_scripts()] == ["威塔课程二版"]
