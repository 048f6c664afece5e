import asyncio
import unittest

from ordertrack.core.change_feed import ChangeFeed
from ordertrack.core.errors import NotAuthorizedError, NotFoundError, ValidationError
from ordertrack.modules.assignments.service import AssignmentsResource, replace_assignments
from tests.fakes import FakeSupabase, make_profile


def assignment(assignment_id, order_id, worker_id, starred=False, marked_done=False):
    return {
        "id": assignment_id,
        "order_id": order_id,
        "worker_id": worker_id,
        "starred": starred,
        "marked_done": marked_done,
    }


class AssignmentsTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.supabase = FakeSupabase()
        self.supabase.seed(
            "orders",
            {"id": "o1", "title": "Door", "company_id": "company-1", "assignment_type": "specific"},
            {"id": "o2", "title": "Stock", "company_id": "company-1", "assignment_type": "general"},
            {"id": "o3", "title": "Elsewhere", "company_id": "company-2", "assignment_type": "general"},
        )
        self.supabase.seed(
            "profiles",
            {"id": "A", "role": "worker", "company_id": "company-1"},
            {"id": "B", "role": "worker", "company_id": "company-1"},
            {"id": "C", "role": "worker", "company_id": "company-1"},
            {"id": "Z", "role": "worker", "company_id": "company-2"},
        )
        self.supabase.seed(
            "order_assignments",
            assignment("a-A", "o1", "A", starred=True),
            assignment("a-B", "o1", "B", starred=True, marked_done=True),
        )
        self.resources = []

    async def asyncTearDown(self) -> None:
        for resource in self.resources:
            await resource.unmount()

    def resource_for(self, profile) -> AssignmentsResource:
        resource = AssignmentsResource(self.supabase, ChangeFeed(self.supabase), profile, timeout=1.0)
        self.resources.append(resource)
        return resource

    def workers_of(self, order_id):
        return sorted(a["worker_id"] for a in self.supabase.rows("order_assignments") if a["order_id"] == order_id)

    async def test_replace_is_destructive_and_resets_flags(self) -> None:
        manager = self.resource_for(make_profile("m1"))
        await manager.assign_workers("o1", ["B", "C"])

        rows = [a for a in self.supabase.rows("order_assignments") if a["order_id"] == "o1"]
        self.assertEqual(sorted(a["worker_id"] for a in rows), ["B", "C"])
        for row in rows:
            self.assertFalse(row["starred"])
            self.assertFalse(row["marked_done"])

    async def test_duplicates_collapse(self) -> None:
        rows = await replace_assignments(self.supabase, "o1", ["C", "C", "A"], timeout=1.0)
        self.assertEqual([r["worker_id"] for r in rows], ["C", "A"])
        self.assertEqual(self.workers_of("o1"), ["A", "C"])

    async def test_empty_list_clears_assignments(self) -> None:
        await replace_assignments(self.supabase, "o1", [], timeout=1.0)
        self.assertEqual(self.workers_of("o1"), [])

    async def test_only_managers_assign(self) -> None:
        worker = self.resource_for(make_profile("A", role="worker"))
        with self.assertRaises(NotAuthorizedError):
            await worker.assign_workers("o1", ["A"])
        self.assertEqual(self.workers_of("o1"), ["A", "B"])

    async def test_workers_from_other_companies_are_rejected(self) -> None:
        manager = self.resource_for(make_profile("m1"))
        with self.assertRaises(ValidationError):
            await manager.assign_workers("o1", ["B", "Z"])
        self.assertEqual(self.workers_of("o1"), ["A", "B"])

    async def test_assigning_to_foreign_order_is_not_found(self) -> None:
        manager = self.resource_for(make_profile("m1"))
        with self.assertRaises(NotFoundError):
            await manager.assign_workers("o3", ["B"])

    async def test_worker_only_sees_own_assignments(self) -> None:
        self.supabase.seed("order_assignments", assignment("a-Z", "o3", "Z"))
        worker = self.resource_for(make_profile("A", role="worker"))
        await worker.mount()
        self.assertEqual([a["id"] for a in worker.items], ["a-A"])
        self.assertEqual(worker.starred_count(), 1)

        manager = self.resource_for(make_profile("m1"))
        await manager.mount()
        self.assertEqual(sorted(a["id"] for a in manager.items), ["a-A", "a-B"])

    async def test_star_toggles_own_row_only(self) -> None:
        worker = self.resource_for(make_profile("A", role="worker"))
        await worker.mount()
        row = await worker.toggle_starred("a-A")
        self.assertFalse(row["starred"])
        row = await worker.toggle_starred("a-A", True)
        self.assertTrue(row["starred"])
        with self.assertRaises(NotFoundError):
            await worker.toggle_starred("a-B", False)

    async def test_mark_done_on_specific_order_updates_existing_row(self) -> None:
        worker = self.resource_for(make_profile("A", role="worker"))
        row = await worker.set_marked_done("o1")
        self.assertEqual(row["id"], "a-A")
        self.assertTrue(row["marked_done"])
        self.assertEqual(len(self.supabase.rows("order_assignments")), 2)

    async def test_mark_done_on_general_order_reuses_row(self) -> None:
        worker = self.resource_for(make_profile("C", role="worker"))
        first = await worker.set_marked_done("o2", True)
        second = await worker.set_marked_done("o2", False)
        third = await worker.set_marked_done("o2", True)

        self.assertEqual(first["id"], second["id"])
        self.assertEqual(second["id"], third["id"])
        own = [a for a in self.supabase.rows("order_assignments") if a["order_id"] == "o2" and a["worker_id"] == "C"]
        self.assertEqual(len(own), 1)
        self.assertTrue(own[0]["marked_done"])

    async def test_mark_done_needs_an_assignment_or_general_order(self) -> None:
        worker = self.resource_for(make_profile("C", role="worker"))
        with self.assertRaises(NotFoundError):
            await worker.set_marked_done("o1")
        with self.assertRaises(NotFoundError):
            await worker.set_marked_done("o3")

    async def test_assignment_change_triggers_refetch(self) -> None:
        manager = self.resource_for(make_profile("m1"))
        await manager.mount()
        self.supabase.seed("order_assignments", assignment("a-C", "o1", "C"))
        self.supabase.emit("order_assignments", "INSERT", {"id": "a-C"})
        while manager._refresh_tasks:
            await asyncio.gather(*list(manager._refresh_tasks))
        self.assertEqual(len(manager.items), 3)


if __name__ == "__main__":
    unittest.main()
