import unittest

from ordertrack.core.errors import NotAuthorizedError, NotFoundError, ValidationError
from ordertrack.modules.team.schemas import InvitationCreate
from ordertrack.modules.team.service import CODE_ALPHABET, TeamService, generate_invitation_code
from tests.fakes import FakeSupabase, make_profile


class TeamServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.supabase = FakeSupabase()
        self.supabase.seed("companies", {"id": "company-1", "name": "Acme"})
        self.supabase.seed(
            "profiles",
            {"id": "m1", "role": "manager", "company_id": "company-1", "full_name": "Mia"},
            {"id": "w1", "role": "worker", "company_id": "company-1", "full_name": "Wes"},
            {"id": "w2", "role": "worker", "company_id": "company-2", "full_name": "Out"},
        )
        self.supabase.seed(
            "order_assignments",
            {"id": "a1", "order_id": "o1", "worker_id": "w1", "starred": False, "marked_done": False},
        )
        self.team = TeamService(self.supabase, timeout=1.0)
        self.manager = make_profile("m1")

    async def test_workers_are_not_allowed(self) -> None:
        with self.assertRaises(NotAuthorizedError):
            await self.team.list_members(make_profile("w1", role="worker"))

    async def test_company_and_members(self) -> None:
        company = await self.team.get_company(self.manager)
        self.assertEqual(company["name"], "Acme")
        members = await self.team.list_members(self.manager)
        self.assertEqual([m["id"] for m in members], ["w1"])
        workers = await self.team.list_workers(self.manager)
        self.assertEqual([w["id"] for w in workers], ["w1"])

    async def test_create_and_delete_invitation(self) -> None:
        invitation = await self.team.create_invitation(
            self.manager, InvitationCreate(email="New.Person@Example.com", role="manager")
        )
        self.assertEqual(invitation["email"], "new.person@example.com")
        self.assertEqual(len(invitation["code"]), 9)
        self.assertEqual(invitation["company_id"], "company-1")
        self.assertEqual(invitation["invited_by"], "m1")

        listed = await self.team.list_invitations(self.manager)
        self.assertEqual([i["id"] for i in listed], [invitation["id"]])

        await self.team.delete_invitation(self.manager, invitation["id"])
        self.assertEqual(self.supabase.rows("invitations"), [])
        with self.assertRaises(NotFoundError):
            await self.team.delete_invitation(self.manager, invitation["id"])

    async def test_remove_member_unassigns_then_detaches(self) -> None:
        await self.team.remove_member(self.manager, "w1")
        self.assertEqual(self.supabase.rows("order_assignments"), [])
        w1 = next(p for p in self.supabase.rows("profiles") if p["id"] == "w1")
        self.assertIsNone(w1["company_id"])

    async def test_remove_member_of_other_company(self) -> None:
        with self.assertRaises(NotFoundError):
            await self.team.remove_member(self.manager, "w2")
        w2 = next(p for p in self.supabase.rows("profiles") if p["id"] == "w2")
        self.assertEqual(w2["company_id"], "company-2")

    async def test_cannot_remove_self(self) -> None:
        with self.assertRaises(ValidationError):
            await self.team.remove_member(self.manager, "m1")


class InvitationCodeTests(unittest.TestCase):
    def test_code_shape(self) -> None:
        code = generate_invitation_code()
        self.assertEqual(len(code), 9)
        self.assertTrue(all(c in CODE_ALPHABET for c in code))
        self.assertEqual(code, code.upper())


if __name__ == "__main__":
    unittest.main()
