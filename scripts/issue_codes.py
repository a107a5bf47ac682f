# scripts/issue_codes.py
from __future__ import annotations

import argparse
import asyncio
from datetime import datetime
from typing import List, Optional

from storefront.db import engine, init_db
from storefront.db.repositories.redeem_codes import SqlRedeemCodeRepository
from storefront.redeem import (
    AdminCodeManager,
    AdminIdentity,
    CodeInput,
    CodeValidationError,
    RedeemCodeRepository,
)

# сколько раз пробуем новый случайный код, если наткнулись на существующий
MAX_ATTEMPTS_PER_CODE = 5


async def issue_codes(
    repository: RedeemCodeRepository,
    *,
    count: int,
    download_url: str,
    file_name: str,
    product_id: Optional[str],
    usage_limit: Optional[int],
    expires_at: Optional[datetime],
    prefix: str,
    admin_id: str,
) -> List[str]:
    """
    Выпускает пачку кодов на скачивание со случайным текстом.
    product_id=None -> мастер-коды.
    """
    manager = AdminCodeManager(repository)
    admin = AdminIdentity(admin_id=admin_id)
    codes: List[str] = []

    for _ in range(count):
        for attempt in range(MAX_ATTEMPTS_PER_CODE):
            data = CodeInput(
                code=manager.suggest_code(prefix=prefix),
                value={"downloadUrl": download_url, "fileName": file_name},
                product_id=product_id,
                is_master_code=product_id is None,
                usage_limit=usage_limit,
                expires_at=expires_at,
            )
            try:
                record = await manager.create(admin, data)
            except CodeValidationError as e:
                # коллизия случайного кода: пробуем ещё раз, всё остальное пробрасываем
                if set(e.errors) == {"code"} and attempt + 1 < MAX_ATTEMPTS_PER_CODE:
                    continue
                raise
            codes.append(record.code)
            break

    return codes


def main() -> None:
    parser = argparse.ArgumentParser(description="Bulk-issue download redeem codes.")
    parser.add_argument("--count", type=int, default=1, help="How many codes to issue (default: 1)")
    parser.add_argument("--download-url", required=True, help="Download link unlocked by the codes")
    parser.add_argument("--file-name", required=True, help="File name shown to the customer")
    parser.add_argument(
        "--product-id",
        default=None,
        help="Bind codes to this product. Without it master codes are issued.",
    )
    parser.add_argument("--usage-limit", type=int, default=None, help="Uses per code (default: unlimited)")
    parser.add_argument(
        "--expires-at",
        type=datetime.fromisoformat,
        default=None,
        help="Expiry in ISO format, e.g. 2026-12-31T23:59:59+00:00",
    )
    parser.add_argument("--prefix", default="", help="Prefix for generated codes")
    parser.add_argument("--admin-id", default="cli", help="Recorded as created_by")

    args = parser.parse_args()
    if args.count <= 0:
        raise SystemExit("--count must be > 0")

    async def runner() -> None:
        await init_db()
        try:
            codes = await issue_codes(
                SqlRedeemCodeRepository(),
                count=args.count,
                download_url=args.download_url,
                file_name=args.file_name,
                product_id=args.product_id,
                usage_limit=args.usage_limit,
                expires_at=args.expires_at,
                prefix=args.prefix,
                admin_id=args.admin_id,
            )
        except CodeValidationError as e:
            raise SystemExit(f"Invalid code data: {e}")
        finally:
            await engine.dispose()

        for code in codes:
            print(code)

    asyncio.run(runner())


if __name__ == "__main__":
    main()
