from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from storefront.db.enums import CodeType
from storefront.redeem import (
    REJECTION_MESSAGES,
    SUCCESS_MESSAGE,
    CodeDraft,
    CodeScope,
    DiscountPayload,
    RedemptionCoordinator,
    RejectionReason,
    StorageUnavailableError,
)
from tests.conftest import NOW, make_draft


@pytest.fixture
def coordinator(repository, clock):
    return RedemptionCoordinator(repository, clock=clock)


async def _usage(repository, code: str) -> int:
    return (await repository.find_by_code(code)).usage_count


async def test_master_code_limit_scenario(repository, coordinator):
    await repository.create(make_draft("MASTER1", usage_limit=2))

    first = await coordinator.redeem("MASTER1", "A")
    assert first.success
    assert first.code_type == CodeType.master
    assert await _usage(repository, "MASTER1") == 1

    second = await coordinator.redeem("MASTER1", "B")
    assert second.success
    assert await _usage(repository, "MASTER1") == 2

    third = await coordinator.redeem("MASTER1", "C")
    assert not third.success
    assert third.reason == RejectionReason.usage_limit_reached
    assert third.message == REJECTION_MESSAGES[RejectionReason.usage_limit_reached]
    assert await _usage(repository, "MASTER1") == 2


async def test_product_code_scenario(repository, coordinator):
    await repository.create(make_draft("PCODE1", product_id="X"))

    wrong = await coordinator.redeem("PCODE1", "Y")
    assert wrong.reason == RejectionReason.scope_mismatch
    assert await _usage(repository, "PCODE1") == 0

    for _ in range(5):
        result = await coordinator.redeem("PCODE1", "X")
        assert result.success
        assert result.code_type == CodeType.product
    assert await _usage(repository, "PCODE1") == 5


async def test_success_carries_download_descriptor(repository, coordinator):
    await repository.create(
        make_draft(
            "GETIT",
            product_id="X",
            download_url="https://cdn.example.com/theme.zip",
            file_name="theme.zip",
        )
    )

    result = await coordinator.redeem("GETIT", "X")

    assert result.success
    assert result.message == SUCCESS_MESSAGE
    assert result.reason is None
    assert result.download.download_url == "https://cdn.example.com/theme.zip"
    assert result.download.file_name == "theme.zip"


async def test_expired_code_scenario(repository, coordinator):
    await repository.create(make_draft("OLD1", expires_at=NOW - timedelta(days=3)))

    result = await coordinator.redeem("OLD1", "ANY")

    assert result.reason == RejectionReason.expired
    assert await _usage(repository, "OLD1") == 0


async def test_expiry_boundary(repository, coordinator, clock):
    await repository.create(make_draft("EDGE", expires_at=NOW + timedelta(seconds=1)))

    clock.now = NOW
    assert (await coordinator.redeem("EDGE", "P")).success

    clock.now = NOW + timedelta(seconds=2)
    assert (await coordinator.redeem("EDGE", "P")).reason == RejectionReason.expired


async def test_redeem_is_case_insensitive(repository, coordinator):
    await repository.create(make_draft("SAVE20", product_id="P1"))

    assert (await coordinator.redeem("save20", "P1")).success
    assert (await coordinator.redeem("  SaVe20  ", " P1 ")).success
    assert await _usage(repository, "SAVE20") == 2


async def test_unknown_and_empty_codes_are_not_found(repository, coordinator):
    assert (await coordinator.redeem("NOPE", "P1")).reason == RejectionReason.not_found
    assert (await coordinator.redeem("   ", "P1")).reason == RejectionReason.not_found


async def test_inactive_reported_before_expired(repository, coordinator):
    await repository.create(
        make_draft("DEAD", is_active=False, expires_at=NOW - timedelta(days=1))
    )

    result = await coordinator.redeem("DEAD", "P1")

    assert result.reason == RejectionReason.inactive
    assert result.message == "This code is no longer active."


async def test_rejections_never_change_usage(repository, coordinator):
    await repository.create(make_draft("ONLYX", product_id="X", usage_limit=3))

    for product in ("Y", "Z", "Y"):
        assert not (await coordinator.redeem("ONLYX", product)).success

    assert await _usage(repository, "ONLYX") == 0
    record = await repository.find_by_code("ONLYX")
    assert await repository.list_redemptions(record.id) == []


async def test_reserved_kind_is_not_redeemable(repository, coordinator):
    await repository.create(
        CodeDraft(
            code="TENOFF",
            payload=DiscountPayload(discount_percent=10),
            scope=CodeScope.master(),
            created_by="admin-1",
        )
    )

    result = await coordinator.redeem("TENOFF", "P1")

    assert result.reason == RejectionReason.not_found
    assert await _usage(repository, "TENOFF") == 0


async def test_concurrent_redemptions_respect_limit(repository, coordinator):
    await repository.create(make_draft("RUSH", usage_limit=3))

    results = await asyncio.gather(*(coordinator.redeem("RUSH", f"P{i}") for i in range(10)))

    assert sum(r.success for r in results) == 3
    losers = [r for r in results if not r.success]
    assert len(losers) == 7
    assert all(r.reason == RejectionReason.usage_limit_reached for r in losers)
    assert await _usage(repository, "RUSH") == 3


async def test_lost_race_reports_usage_limit(memory_repository, clock):
    record = await memory_repository.create(make_draft("LAST", usage_limit=1))

    class StaleReadRepository:
        # отдаёт запись, прочитанную до того, как кто-то забрал последний слот
        def __getattr__(self, name):
            return getattr(memory_repository, name)

        async def find_by_code(self, code):
            return record

    assert await memory_repository.increment_usage(record.id, product_id="other")

    result = await RedemptionCoordinator(StaleReadRepository(), clock=clock).redeem("LAST", "P1")

    assert result.reason == RejectionReason.usage_limit_reached
    assert (await memory_repository.get(record.id)).usage_count == 1


async def test_storage_failure_propagates(clock):
    class BrokenRepository:
        async def find_by_code(self, code):
            raise StorageUnavailableError("connection refused")

    with pytest.raises(StorageUnavailableError):
        await RedemptionCoordinator(BrokenRepository(), clock=clock).redeem("ANY", "P1")
