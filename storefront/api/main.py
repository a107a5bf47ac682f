# storefront/api/main.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from storefront.api.admin_auth import require_admin
from storefront.config import settings
from storefront.constants import CODE_MAX_LENGTH, PRODUCT_ID_MAX_LENGTH
from storefront.db.enums import CodeKind, CodeType
from storefront.db.repositories.redeem_codes import SqlRedeemCodeRepository
from storefront.redeem import (
    AdminCodeManager,
    AdminIdentity,
    CodeInput,
    CodeUpdateInput,
    CodeValidationError,
    RedeemCodeRecord,
    RedeemCodeRepository,
    RedemptionCoordinator,
    RedemptionEntry,
    RejectionReason,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
# Общая настройка приложения
# -------------------------------------------------------------------

app = FastAPI(
    title="Storefront Redeem API",
    version="1.0.0",
    description="Redeem-коды витрины: выдача в админке и получение скачиваний по коду.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.repository = SqlRedeemCodeRepository()

REDEEM_PATH = "/api/redeem"

# not_found -> 404, остальные отказы -> 400
REJECTION_STATUS = {
    RejectionReason.not_found: 404,
    RejectionReason.inactive: 400,
    RejectionReason.expired: 400,
    RejectionReason.usage_limit_reached: 400,
    RejectionReason.scope_mismatch: 400,
}


# -------------------------------------------------------------------
# Модели / схемы
# -------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class RedeemRequest(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    code: str = Field(..., min_length=1, max_length=CODE_MAX_LENGTH)
    product_id: str = Field(..., min_length=1, max_length=PRODUCT_ID_MAX_LENGTH)


class RedeemSuccessResponse(_CamelModel):
    success: bool = True
    message: str
    download_url: str
    file_name: str
    code_type: CodeType


class RedeemCodeResponse(_CamelModel):
    id: str
    code: str
    type: CodeKind
    value: Dict[str, Any]
    product_id: Optional[str] = None
    is_master_code: bool
    is_active: bool
    usage_limit: Optional[int] = None
    usage_count: int
    expires_at: Optional[str] = None
    created_by: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class RedemptionResponse(_CamelModel):
    id: int
    product_id: str
    redeemed_at: Optional[str] = None


class SuggestCodeResponse(_CamelModel):
    code: str


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _code_response(record: RedeemCodeRecord) -> RedeemCodeResponse:
    return RedeemCodeResponse(
        id=record.id,
        code=record.code,
        type=record.kind,
        value=record.payload.model_dump(by_alias=True, exclude={"kind"}),
        product_id=record.scope.product_id,
        is_master_code=record.scope.is_master,
        is_active=record.is_active,
        usage_limit=record.usage_limit,
        usage_count=record.usage_count,
        expires_at=_iso(record.expires_at),
        created_by=record.created_by,
        created_at=_iso(record.created_at),
        updated_at=_iso(record.updated_at),
    )


def _redemption_response(entry: RedemptionEntry) -> RedemptionResponse:
    return RedemptionResponse(
        id=entry.id,
        product_id=entry.product_id,
        redeemed_at=_iso(entry.redeemed_at),
    )


# -------------------------------------------------------------------
# Зависимости
# -------------------------------------------------------------------


def get_repository(request: Request) -> RedeemCodeRepository:
    return request.app.state.repository


def get_coordinator(
    repository: RedeemCodeRepository = Depends(get_repository),
) -> RedemptionCoordinator:
    return RedemptionCoordinator(repository)


def get_code_manager(
    repository: RedeemCodeRepository = Depends(get_repository),
) -> AdminCodeManager:
    return AdminCodeManager(repository)


# -------------------------------------------------------------------
# Обработчики ошибок
# -------------------------------------------------------------------


def _error_fields(exc: RequestValidationError) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        fields[".".join(loc) or "body"] = err.get("msg", "invalid")
    return fields


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    if request.url.path == REDEEM_PATH:
        too_long = any(err.get("type") == "string_too_long" for err in exc.errors())
        message = (
            f"Code and product ID must be at most {CODE_MAX_LENGTH} characters"
            if too_long
            else "Code and product ID are required"
        )
        return JSONResponse(status_code=400, content={"success": False, "message": message})
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid redeem code data", "errors": _error_fields(exc)},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    # у всех ошибок админки одна форма: {"message": ...}
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(CodeValidationError)
async def code_validation_handler(request: Request, exc: CodeValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid redeem code data", "errors": exc.errors},
    )


@app.exception_handler(StorageUnavailableError)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError) -> JSONResponse:
    logger.error("Storage unavailable on %s: %s", request.url.path, exc)
    if request.url.path == REDEEM_PATH:
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Failed to process redeem code. Please try again."},
        )
    return JSONResponse(
        status_code=503,
        content={"message": "Storage is temporarily unavailable. Please try again."},
    )


# -------------------------------------------------------------------
# Служебный эндпоинт
# -------------------------------------------------------------------


@app.get("/api/health")
async def health_check() -> dict:
    return {"status": "ok"}


# -------------------------------------------------------------------
# Применение кода (витрина)
# -------------------------------------------------------------------


@app.post(REDEEM_PATH, response_model=RedeemSuccessResponse)
async def redeem_code(
    body: RedeemRequest,
    coordinator: RedemptionCoordinator = Depends(get_coordinator),
):
    result = await coordinator.redeem(body.code, body.product_id)

    if not result.success:
        return JSONResponse(
            status_code=REJECTION_STATUS[result.reason],
            content={
                "success": False,
                "message": result.message,
                "reason": result.reason.value,
            },
        )

    return RedeemSuccessResponse(
        message=result.message,
        download_url=result.download.download_url,
        file_name=result.download.file_name,
        code_type=result.code_type,
    )


# -------------------------------------------------------------------
# Коды: админка
# -------------------------------------------------------------------


@app.get("/api/admin/redeem-codes", response_model=List[RedeemCodeResponse])
async def admin_list_redeem_codes(
    admin: AdminIdentity = Depends(require_admin),
    manager: AdminCodeManager = Depends(get_code_manager),
) -> List[RedeemCodeResponse]:
    rows = await manager.list_all(admin)
    return [_code_response(r) for r in rows]


@app.get("/api/admin/redeem-codes/product/{product_id}", response_model=List[RedeemCodeResponse])
async def admin_list_product_redeem_codes(
    product_id: str,
    admin: AdminIdentity = Depends(require_admin),
    manager: AdminCodeManager = Depends(get_code_manager),
) -> List[RedeemCodeResponse]:
    rows = await manager.list_by_product(admin, product_id)
    return [_code_response(r) for r in rows]


@app.get("/api/admin/redeem-codes/master", response_model=List[RedeemCodeResponse])
async def admin_list_master_redeem_codes(
    admin: AdminIdentity = Depends(require_admin),
    manager: AdminCodeManager = Depends(get_code_manager),
) -> List[RedeemCodeResponse]:
    rows = await manager.list_master(admin)
    return [_code_response(r) for r in rows]


@app.get("/api/admin/redeem-codes/by-code", response_model=RedeemCodeResponse)
async def admin_get_redeem_code_by_code(
    code: str = Query(..., min_length=1, max_length=CODE_MAX_LENGTH),
    admin: AdminIdentity = Depends(require_admin),
    manager: AdminCodeManager = Depends(get_code_manager),
) -> RedeemCodeResponse:
    record = await manager.get_by_code(admin, code)
    if record is None:
        raise HTTPException(status_code=404, detail="Redeem code not found")
    return _code_response(record)


@app.get("/api/admin/redeem-codes/suggest", response_model=SuggestCodeResponse)
async def admin_suggest_redeem_code(
    prefix: str = Query(default="", max_length=16),
    admin: AdminIdentity = Depends(require_admin),
) -> SuggestCodeResponse:
    return SuggestCodeResponse(code=AdminCodeManager.suggest_code(prefix=prefix))


@app.get("/api/admin/redeem-codes/{code_id}", response_model=RedeemCodeResponse)
async def admin_get_redeem_code(
    code_id: str,
    admin: AdminIdentity = Depends(require_admin),
    manager: AdminCodeManager = Depends(get_code_manager),
) -> RedeemCodeResponse:
    record = await manager.get(admin, code_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Redeem code not found")
    return _code_response(record)


@app.get("/api/admin/redeem-codes/{code_id}/redemptions", response_model=List[RedemptionResponse])
async def admin_list_redemptions(
    code_id: str,
    admin: AdminIdentity = Depends(require_admin),
    manager: AdminCodeManager = Depends(get_code_manager),
) -> List[RedemptionResponse]:
    entries = await manager.list_redemptions(admin, code_id)
    if entries is None:
        raise HTTPException(status_code=404, detail="Redeem code not found")
    return [_redemption_response(e) for e in entries]


@app.post("/api/admin/redeem-codes", response_model=RedeemCodeResponse, status_code=201)
async def admin_create_redeem_code(
    body: CodeInput,
    admin: AdminIdentity = Depends(require_admin),
    manager: AdminCodeManager = Depends(get_code_manager),
) -> RedeemCodeResponse:
    record = await manager.create(admin, body)
    return _code_response(record)


@app.put("/api/admin/redeem-codes/{code_id}", response_model=RedeemCodeResponse)
async def admin_update_redeem_code(
    code_id: str,
    body: CodeUpdateInput,
    admin: AdminIdentity = Depends(require_admin),
    manager: AdminCodeManager = Depends(get_code_manager),
) -> RedeemCodeResponse:
    updated = await manager.update(admin, code_id, body)
    if updated is None:
        raise HTTPException(status_code=404, detail="Redeem code not found")
    return _code_response(updated)


@app.delete("/api/admin/redeem-codes/{code_id}")
async def admin_delete_redeem_code(
    code_id: str,
    admin: AdminIdentity = Depends(require_admin),
    manager: AdminCodeManager = Depends(get_code_manager),
) -> JSONResponse:
    ok = await manager.delete(admin, code_id)
    if not ok:
        raise HTTPException(status_code=404, detail="Redeem code not found")
    return JSONResponse({"message": "Redeem code deleted successfully"})
