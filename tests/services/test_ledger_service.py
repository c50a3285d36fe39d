import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.tutor_booking_backend.database import models as db_models
from src.tutor_booking_backend.services.ledger_service import CreditLedgerService
from src.tutor_booking_backend.common.exceptions import InsufficientCreditsError, ValidationError
from tests.constants import TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID, DEFAULT_STUDENT_CREDITS


def assert_balanced(ledger: db_models.CreditLedgers):
    assert ledger.total_purchased == ledger.used + ledger.reserved + ledger.available
    assert ledger.used >= 0 and ledger.reserved >= 0 and ledger.available >= 0


@pytest.mark.anyio
class TestCreditLedgerService:

    async def test_reserve_consume_release_cycle(
        self,
        ledger_service: CreditLedgerService,
        funded_ledger_orm: db_models.CreditLedgers
    ):
        tutor_id = funded_ledger_orm.tutor_id

        ledger = await ledger_service.reserve(TEST_STUDENT_ID, tutor_id, 10)
        assert (ledger.reserved, ledger.used, ledger.available) == (10, 0, DEFAULT_STUDENT_CREDITS - 10)

        ledger = await ledger_service.consume(TEST_STUDENT_ID, tutor_id, 4)
        assert (ledger.reserved, ledger.used) == (6, 4)

        ledger = await ledger_service.release(TEST_STUDENT_ID, tutor_id, 6)
        assert (ledger.reserved, ledger.used, ledger.available) == (0, 4, DEFAULT_STUDENT_CREDITS - 4)
        assert_balanced(ledger)

    async def test_debit_and_refund_direct(
        self,
        ledger_service: CreditLedgerService,
        funded_ledger_orm: db_models.CreditLedgers
    ):
        tutor_id = funded_ledger_orm.tutor_id
        ledger = await ledger_service.debit_direct(TEST_STUDENT_ID, tutor_id, 3)
        assert (ledger.used, ledger.reserved, ledger.available) == (3, 0, DEFAULT_STUDENT_CREDITS - 3)

        ledger = await ledger_service.refund_direct(TEST_STUDENT_ID, tutor_id, 3)
        assert ledger.available == DEFAULT_STUDENT_CREDITS
        assert_balanced(ledger)

    async def test_reserve_more_than_available_reports_shortfall(
        self,
        ledger_service: CreditLedgerService,
        funded_ledger_orm: db_models.CreditLedgers
    ):
        with pytest.raises(InsufficientCreditsError) as e:
            await ledger_service.reserve(TEST_STUDENT_ID, funded_ledger_orm.tutor_id, DEFAULT_STUDENT_CREDITS + 5)
        assert e.value.shortfall == 5
        assert e.value.available == DEFAULT_STUDENT_CREDITS
        assert funded_ledger_orm.reserved == 0

    async def test_missing_ledger_has_nothing_available(
        self,
        ledger_service: CreditLedgerService,
        test_tutor_orm: db_models.TutorProfiles
    ):
        with pytest.raises(InsufficientCreditsError) as e:
            await ledger_service.debit_direct(TEST_OTHER_STUDENT_ID, test_tutor_orm.id, 2)
        assert e.value.shortfall == 2

    async def test_consume_and_release_require_a_reservation(
        self,
        ledger_service: CreditLedgerService,
        funded_ledger_orm: db_models.CreditLedgers
    ):
        tutor_id = funded_ledger_orm.tutor_id
        await ledger_service.reserve(TEST_STUDENT_ID, tutor_id, 2)
        with pytest.raises(InsufficientCreditsError):
            await ledger_service.consume(TEST_STUDENT_ID, tutor_id, 3)
        with pytest.raises(InsufficientCreditsError):
            await ledger_service.release(TEST_STUDENT_ID, tutor_id, 3)
        with pytest.raises(InsufficientCreditsError):
            await ledger_service.refund_direct(TEST_STUDENT_ID, tutor_id, 1)
        assert funded_ledger_orm.reserved == 2

    async def test_negative_amount_is_rejected(
        self,
        ledger_service: CreditLedgerService,
        funded_ledger_orm: db_models.CreditLedgers
    ):
        with pytest.raises(ValidationError):
            await ledger_service.reserve(TEST_STUDENT_ID, funded_ledger_orm.tutor_id, -1)

    async def test_add_purchased_credits_creates_the_ledger(
        self,
        ledger_service: CreditLedgerService,
        test_tutor_orm: db_models.TutorProfiles
    ):
        ledger = await ledger_service.add_purchased_credits(TEST_OTHER_STUDENT_ID, test_tutor_orm.id, 12)
        assert ledger.total_purchased == 12
        ledger = await ledger_service.add_purchased_credits(TEST_OTHER_STUDENT_ID, test_tutor_orm.id, 8)
        assert ledger.available == 20

        with pytest.raises(ValidationError):
            await ledger_service.add_purchased_credits(TEST_OTHER_STUDENT_ID, test_tutor_orm.id, 0)

    async def test_summaries(
        self,
        ledger_service: CreditLedgerService,
        funded_ledger_orm: db_models.CreditLedgers
    ):
        summary = await ledger_service.get_summary(TEST_STUDENT_ID, funded_ledger_orm.tutor_id)
        assert summary.available == DEFAULT_STUDENT_CREDITS

        empty = await ledger_service.get_summary(TEST_OTHER_STUDENT_ID, funded_ledger_orm.tutor_id)
        assert (empty.total_purchased, empty.available) == (0, 0)

        summaries = await ledger_service.list_summaries_for_student(TEST_STUDENT_ID)
        assert [s.tutor_id for s in summaries] == [funded_ledger_orm.tutor_id]
