import unittest
from datetime import datetime, timedelta, timezone

from ordertrack.modules.analytics.service import dashboard, order_stats, worker_performance
from tests.fakes import make_profile

NOW = datetime(2024, 6, 30, tzinfo=timezone.utc)


def order(order_id, status="new", priority="medium", days_ago=1, workers=()):
    return {
        "id": order_id,
        "company_id": "company-1",
        "status": status,
        "priority": priority,
        "created_at": (NOW - timedelta(days=days_ago)).isoformat(),
        "order_assignments": [{"worker_id": w} for w in workers],
    }


class OrderStatsTests(unittest.TestCase):
    def test_counts(self) -> None:
        orders = [
            order("1", status="completed", priority="high"),
            order("2", status="in_progress", priority="urgent"),
            order("3", status="new", priority="high", days_ago=45),
            order("4", status="new", priority="low"),
        ]
        stats = order_stats(orders, now=NOW)
        self.assertEqual(stats.total, 4)
        self.assertEqual(stats.completed, 1)
        self.assertEqual(stats.pending, 3)
        self.assertEqual(stats.high_priority_open, 2)
        self.assertEqual(stats.by_status["new"], 2)
        self.assertEqual(stats.by_status["cancelled"], 0)
        self.assertEqual(stats.by_priority["high"], 2)
        self.assertEqual(stats.recent_30_days, 3)
        self.assertEqual(stats.completion_rate, 25)

    def test_empty(self) -> None:
        stats = order_stats([], now=NOW)
        self.assertEqual(stats.total, 0)
        self.assertEqual(stats.completion_rate, 0)


class WorkerPerformanceTests(unittest.TestCase):
    def test_sorted_by_completion_rate(self) -> None:
        rows = [
            {"id": "w1", "full_name": "Ann", "order_assignments": [
                {"id": "a1", "orders": {"status": "new"}},
                {"id": "a2", "orders": {"status": "completed"}},
            ]},
            {"id": "w2", "full_name": "Bo", "order_assignments": [
                {"id": "a3", "orders": {"status": "completed"}},
            ]},
            {"id": "w3", "full_name": "Cy", "order_assignments": []},
        ]
        result = worker_performance(rows)
        self.assertEqual([w.id for w in result], ["w2", "w1", "w3"])
        self.assertEqual(result[1].completion_rate, 50)
        self.assertEqual(result[2].total_orders, 0)


class DashboardTests(unittest.TestCase):
    def test_manager_dashboard(self) -> None:
        orders = [order(str(i), priority="high" if i == 2 else "low") for i in range(5)]
        view = dashboard(make_profile("m1"), orders, [])
        self.assertEqual(view.stats["total"], 5)
        self.assertEqual(view.stats["high_priority"], 1)
        self.assertEqual([o["id"] for o in view.recent_orders], ["0", "1", "2"])
        self.assertEqual([o["id"] for o in view.highlighted_orders], ["2"])

    def test_worker_dashboard(self) -> None:
        orders = [
            order("1", workers=["w1"]),
            order("2", status="completed", workers=["w1"]),
            order("3", workers=["w2"]),
        ]
        assignments = [
            {"id": "a1", "worker_id": "w1", "starred": True, "orders": orders[0]},
            {"id": "a2", "worker_id": "w1", "starred": False, "orders": orders[1]},
        ]
        view = dashboard(make_profile("w1", role="worker"), orders, assignments)
        self.assertEqual(view.stats, {"my_orders": 2, "pending": 1, "completed": 1, "starred": 1})
        self.assertEqual([o["id"] for o in view.recent_orders], ["1"])
        self.assertEqual([o["id"] for o in view.highlighted_orders], ["1"])


if __name__ == "__main__":
    unittest.main()
