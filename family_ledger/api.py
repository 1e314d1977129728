"""
HTTP Request Layer

A thin FastAPI mapping of LedgerService onto the /api routes. The caller
is identified by the X-User-Id header; everything else is the service's job.

Error mapping:
    LedgerError   -> status from its kind, body {"message", "kind", ...}
    StorageError  -> 503
    bad JSON body -> 400 invalid_input
"""

from typing import Optional

import structlog
from fastapi import Body, Depends, FastAPI, Header, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from family_ledger.config import get_settings
from family_ledger.errors import ErrorKind, LedgerError
from family_ledger.orchestrator import LedgerService, create_ledger_service
from family_ledger.services.storage import StorageError

logger = structlog.get_logger(__name__)

STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
}


def caller_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_user_id


def create_app(service: Optional[LedgerService] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: LedgerService to serve. Defaults to create_ledger_service().
    """
    service = service or create_ledger_service()
    api_settings = get_settings().api

    app = FastAPI(title="Family Ledger", version="1.0.0")
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        return JSONResponse(status_code=STATUS_BY_KIND[exc.kind], content=exc.to_dict())

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("storage_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"message": "Storage is unavailable", "kind": "storage_error"},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "message": "Malformed request",
                "kind": ErrorKind.INVALID_INPUT.value,
                "code": "invalid_input",
            },
        )

    # USERS

    @app.post("/api/register", status_code=status.HTTP_201_CREATED)
    async def register(data: dict = Body(...)):
        return await service.register_user(data)

    @app.get("/api/me")
    async def me(user_id: Optional[str] = Depends(caller_id)):
        return await service.get_profile(user_id)

    # BILLS

    @app.get("/api/bills")
    async def list_bills(user_id: Optional[str] = Depends(caller_id)):
        return await service.list_bills(user_id)

    @app.post("/api/bills", status_code=status.HTTP_201_CREATED)
    async def create_bill(data: dict = Body(...), user_id: Optional[str] = Depends(caller_id)):
        return await service.create_bill(
            user_id, data.get("name", ""), data.get("description", "")
        )

    @app.put("/api/bills/{bill_id}")
    async def update_bill(
        bill_id: str,
        data: dict = Body(...),
        user_id: Optional[str] = Depends(caller_id),
    ):
        return await service.update_bill(user_id, bill_id, data)

    @app.delete("/api/bills/{bill_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_bill(bill_id: str, user_id: Optional[str] = Depends(caller_id)):
        await service.delete_bill(user_id, bill_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # TRANSACTIONS

    @app.get("/api/transactions")
    async def list_transactions(
        bill_id: Optional[str] = None,
        user_id: Optional[str] = Depends(caller_id),
    ):
        return await service.list_transactions(user_id, bill_id)

    @app.post("/api/transactions", status_code=status.HTTP_201_CREATED)
    async def create_transaction(
        data: dict = Body(...),
        user_id: Optional[str] = Depends(caller_id),
    ):
        return await service.create_transaction(user_id, data)

    @app.put("/api/transactions/{tx_id}")
    async def update_transaction(
        tx_id: str,
        data: dict = Body(...),
        user_id: Optional[str] = Depends(caller_id),
    ):
        return await service.update_transaction(user_id, tx_id, data)

    @app.delete("/api/transactions/{tx_id}")
    async def delete_transaction(tx_id: str, user_id: Optional[str] = Depends(caller_id)):
        return await service.delete_transaction(user_id, tx_id)

    # CATEGORIES

    @app.get("/api/categories")
    async def list_categories(user_id: Optional[str] = Depends(caller_id)):
        return await service.list_categories(user_id)

    @app.post("/api/categories", status_code=status.HTTP_201_CREATED)
    async def create_category(
        data: dict = Body(...),
        user_id: Optional[str] = Depends(caller_id),
    ):
        return await service.create_category(user_id, data)

    @app.put("/api/categories/{category_id}")
    async def update_category(
        category_id: str,
        data: dict = Body(...),
        user_id: Optional[str] = Depends(caller_id),
    ):
        return await service.update_category(user_id, category_id, data)

    @app.delete("/api/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_category(category_id: str, user_id: Optional[str] = Depends(caller_id)):
        await service.delete_category(user_id, category_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # SHARES

    @app.get("/api/billShares")
    async def list_shares(user_id: Optional[str] = Depends(caller_id)):
        return await service.list_shares(user_id)

    @app.post("/api/billShares", status_code=status.HTTP_201_CREATED)
    async def create_share(data: dict = Body(...), user_id: Optional[str] = Depends(caller_id)):
        return await service.create_share(
            user_id,
            data.get("bill_id") or data.get("billId"),
            data.get("email"),
            data.get("permission"),
        )

    @app.put("/api/billShares/{share_id}")
    async def update_share(
        share_id: str,
        data: dict = Body(...),
        user_id: Optional[str] = Depends(caller_id),
    ):
        return await service.update_share(user_id, share_id, data)

    @app.delete("/api/billShares/{share_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_share(share_id: str, user_id: Optional[str] = Depends(caller_id)):
        await service.delete_share(user_id, share_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # ASSETS

    @app.get("/api/assets")
    async def list_assets(user_id: Optional[str] = Depends(caller_id)):
        return await service.list_assets(user_id)

    @app.post("/api/assets", status_code=status.HTTP_201_CREATED)
    async def create_asset(data: dict = Body(...), user_id: Optional[str] = Depends(caller_id)):
        return await service.create_asset(user_id, data)

    @app.put("/api/assets/{asset_id}")
    async def update_asset(
        asset_id: str,
        data: dict = Body(...),
        user_id: Optional[str] = Depends(caller_id),
    ):
        return await service.update_asset(user_id, asset_id, data)

    @app.delete("/api/assets/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_asset(asset_id: str, user_id: Optional[str] = Depends(caller_id)):
        await service.delete_asset(user_id, asset_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/api/assets/{asset_id}/reconciliation")
    async def check_asset_balance(asset_id: str, user_id: Optional[str] = Depends(caller_id)):
        return await service.check_asset_balance(user_id, asset_id)

    return app
