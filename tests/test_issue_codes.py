from __future__ import annotations

import pytest

from scripts import issue_codes as issue_module
from scripts.issue_codes import MAX_ATTEMPTS_PER_CODE, issue_codes
from storefront.db.enums import CodeType
from storefront.redeem import CodeValidationError

DEFAULTS = dict(
    download_url="https://cdn.example.com/pack.zip",
    file_name="pack.zip",
    usage_limit=1,
    expires_at=None,
    prefix="promo-",
    admin_id="cli",
)


async def test_issues_product_codes(repository):
    codes = await issue_codes(repository, count=3, product_id="P1", **DEFAULTS)

    assert len(set(codes)) == 3
    for code in codes:
        assert code.startswith("PROMO-")
        record = await repository.find_by_code(code)
        assert record.scope.product_id == "P1"
        assert record.usage_limit == 1
        assert record.created_by == "cli"


async def test_issues_master_codes_without_product(memory_repository):
    codes = await issue_codes(memory_repository, count=2, product_id=None, **DEFAULTS)

    masters = await memory_repository.find_master_codes()
    assert {m.code for m in masters} == set(codes)
    assert all(m.code_type == CodeType.master for m in masters)


async def test_retries_collisions(memory_repository, monkeypatch):
    await issue_codes(memory_repository, count=1, product_id="P1", **{**DEFAULTS, "prefix": ""})
    taken = (await memory_repository.list_all())[0].code

    suggestions = iter([taken, taken, "FRESH001"])
    monkeypatch.setattr(issue_module.AdminCodeManager, "suggest_code", staticmethod(lambda prefix="": next(suggestions)))

    codes = await issue_codes(memory_repository, count=1, product_id="P1", **DEFAULTS)

    assert codes == ["FRESH001"]


async def test_gives_up_after_max_attempts(memory_repository, monkeypatch):
    monkeypatch.setattr(issue_module.AdminCodeManager, "suggest_code", staticmethod(lambda prefix="": "SAME"))

    await issue_codes(memory_repository, count=1, product_id="P1", **DEFAULTS)
    with pytest.raises(CodeValidationError) as exc:
        await issue_codes(memory_repository, count=1, product_id="P1", **DEFAULTS)

    assert set(exc.value.errors) == {"code"}
    assert MAX_ATTEMPTS_PER_CODE > 1


async def test_bad_input_is_not_retried(memory_repository):
    with pytest.raises(CodeValidationError) as exc:
        await issue_codes(memory_repository, count=1, product_id="P1", **{**DEFAULTS, "file_name": " "})

    assert "value.fileName" in exc.value.errors
