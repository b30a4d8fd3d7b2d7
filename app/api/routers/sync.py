from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException

from app.api.deps import get_background_runner, get_sync_api_key, get_sync_pool_use_case
from app.api.schemas.sync import SyncRequest, SyncResponse
from app.application.dto.sync import SyncPoolInput
from app.application.sync.background import BackgroundTaskRunner
from app.application.use_cases.sync_pool import SyncPoolUseCase
from app.domain.exceptions import ClientInputError, SyncUnauthorizedError

router = APIRouter()


def _authorize(authorization: str | None, expected: str) -> None:
    if not expected:
        return
    if not authorization or not authorization.startswith("Bearer "):
        raise SyncUnauthorizedError("Invalid authorization header.")
    token = authorization.replace("Bearer ", "", 1).strip()
    if not hmac.compare_digest(token.encode(), expected.encode()):
        raise SyncUnauthorizedError("Invalid sync API key.")


@router.post("/v1/sync", response_model=SyncResponse)
async def sync(
    req: SyncRequest,
    authorization: str | None = Header(None),
    sync_api_key: str = Depends(get_sync_api_key),
    use_case: SyncPoolUseCase = Depends(get_sync_pool_use_case),
    background: BackgroundTaskRunner = Depends(get_background_runner),
):
    try:
        _authorize(authorization, sync_api_key)
    except SyncUnauthorizedError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    if req.action == "sync_all":
        targets = await use_case.list_targets()
        background.submit(use_case.sync_all(), label="sync-all")
        return SyncResponse(success=True, count=len(targets))

    if not req.chain_id or not req.pool_address:
        raise HTTPException(status_code=400, detail="chain_id and pool_address are required.")
    try:
        result = await use_case.execute(
            SyncPoolInput(chain=req.chain_id, pool_address=req.pool_address, force=req.force)
        )
    except ClientInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SyncResponse(success=result.success, count=result.count, error=result.error)
