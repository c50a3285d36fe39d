import pytest
import httpx

from src.tutor_booking_backend.database import models as db_models
from tests.constants import DEFAULT_STUDENT_CREDITS


def proposal(tutor_id) -> dict:
    return {
        "tutor_id": str(tutor_id),
        "start_date": "2024-01-01",
        "end_date": "2024-01-14",
        "weekdays": [0, 2],
        "start_time": "09:00:00",
        "slot_count": 1,
        "topic": "Physics"
    }


@pytest.mark.anyio
class TestContractsAPI:

    async def test_propose_accept_cancel(
        self,
        client: httpx.AsyncClient,
        student_headers: dict,
        tutor_headers: dict,
        funded_ledger_orm: db_models.CreditLedgers
    ):
        response = await client.post("/contracts/", json=proposal(funded_ledger_orm.tutor_id), headers=student_headers)
        assert response.status_code == 201, response.text
        contract = response.json()
        assert contract["status"] == "PENDING"
        assert contract["total_credits"] == 4
        assert len(contract["occurrences"]) == 4

        response = await client.post(f"/contracts/{contract['id']}/respond", json={"accept": True}, headers=tutor_headers)
        assert response.status_code == 200, response.text
        result = response.json()
        assert result["sessions_created"] == 4
        assert result["contract"]["status"] == "ACCEPTED"
        assert result["contract"]["reserved_credits"] == 4

        ledger = await client.get("/credits/ledger", params={"tutor_id": str(funded_ledger_orm.tutor_id)}, headers=student_headers)
        assert (ledger.json()["reserved"], ledger.json()["available"]) == (4, DEFAULT_STUDENT_CREDITS - 4)

        response = await client.post(f"/contracts/{contract['id']}/respond", json={"accept": True}, headers=tutor_headers)
        assert response.status_code == 409

        response = await client.patch(f"/contracts/{contract['id']}/cancel", json={"reason": "Schedule change"}, headers=student_headers)
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "CANCELLED"
        assert response.json()["reserved_credits"] == 0

        sessions = await client.get("/sessions/", headers=student_headers)
        assert {s["status"] for s in sessions.json()} == {"CANCELLED"}

    async def test_only_the_addressed_tutor_can_respond(
        self,
        client: httpx.AsyncClient,
        student_headers: dict,
        admin_headers: dict,
        funded_ledger_orm: db_models.CreditLedgers
    ):
        contract = (await client.post("/contracts/", json=proposal(funded_ledger_orm.tutor_id), headers=student_headers)).json()
        response = await client.post(f"/contracts/{contract['id']}/respond", json={"accept": False}, headers=student_headers)
        assert response.status_code == 403
        response = await client.post(f"/contracts/{contract['id']}/respond", json={"accept": False}, headers=admin_headers)
        assert response.status_code == 403

    async def test_empty_schedule_is_422(
        self,
        client: httpx.AsyncClient,
        student_headers: dict,
        funded_ledger_orm: db_models.CreditLedgers
    ):
        body = proposal(funded_ledger_orm.tutor_id) | {"end_date": "2024-01-02", "weekdays": [4]}
        response = await client.post("/contracts/", json=body, headers=student_headers)
        assert response.status_code == 422
        assert response.json()["error"] == "EmptyScheduleError"

    async def test_edit_and_list(
        self,
        client: httpx.AsyncClient,
        student_headers: dict,
        other_student_headers: dict,
        funded_ledger_orm: db_models.CreditLedgers
    ):
        contract = (await client.post("/contracts/", json=proposal(funded_ledger_orm.tutor_id), headers=student_headers)).json()
        response = await client.put(f"/contracts/{contract['id']}", json={"weekdays": [0]}, headers=student_headers)
        assert response.status_code == 200, response.text
        assert len(response.json()["occurrences"]) == 2
        assert response.json()["total_credits"] == 2

        assert (await client.get(f"/contracts/{contract['id']}", headers=other_student_headers)).status_code == 403
        listed = await client.get("/contracts/", params={"status": "PENDING"}, headers=student_headers)
        assert [c["id"] for c in listed.json()] == [contract["id"]]
