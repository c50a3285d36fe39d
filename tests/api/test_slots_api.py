import pytest
import httpx
from datetime import datetime

from src.tutor_booking_backend.database import models as db_models
from tests.constants import MONDAY, TEST_STUDENT_ID, at


def parse_instant(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.mark.anyio
class TestSlotsAPI:

    async def test_list_slots(
        self,
        client: httpx.AsyncClient,
        student_headers: dict,
        test_tutor_orm: db_models.TutorProfiles
    ):
        response = await client.get(
            f"/tutors/{test_tutor_orm.id}/slots",
            params={"date": MONDAY.isoformat(), "slot_count": 3},
            headers=student_headers
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["credits_per_session"] == 3
        assert [parse_instant(s) for s in body["starts"]][:2] == [at(MONDAY, 9), at(MONDAY, 9, 20)]
        assert parse_instant(body["starts"][-1]) == at(MONDAY, 11)

    async def test_requires_a_token(self, client: httpx.AsyncClient, test_tutor_orm: db_models.TutorProfiles):
        response = await client.get(f"/tutors/{test_tutor_orm.id}/slots", params={"date": MONDAY.isoformat()})
        assert response.status_code == 401

    async def test_unknown_tutor_is_404(self, client: httpx.AsyncClient, student_headers: dict):
        response = await client.get(
            f"/tutors/{TEST_STUDENT_ID}/slots", params={"date": MONDAY.isoformat()}, headers=student_headers
        )
        assert response.status_code == 404
