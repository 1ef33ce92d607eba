"""Account management API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request

from wallet_accounts.services.accounts import (
    AccountError,
    AccountLifecycleManager,
    AccountValidationError,
    AmbiguousImportError,
    DerivationError,
    DetectionError,
    LastAccountError,
    UnknownAccountError,
)
from wallet_accounts.services.accounts.validation import validate_mnemonic
from wallet_accounts.schemas.account import (
    AccountCreate,
    AccountImport,
    AccountListResponse,
    AccountResponse,
    AccountUpdate,
    ActiveAddressSchema,
    ActivePathSchema,
    DetectionResponse,
    DetectRequest,
    RepairResponse,
    TaprootVariantSchema,
)

router = APIRouter()


def get_account_manager(request: Request) -> AccountLifecycleManager:
    return request.app.state.account_manager


def _http_error(error: AccountError) -> HTTPException:
    """Map an account error to its HTTP response."""
    if isinstance(error, AccountValidationError):
        return HTTPException(status_code=422, detail={"message": str(error), "field": error.field})
    if isinstance(error, AmbiguousImportError):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(error),
                "candidates": [
                    TaprootVariantSchema.from_variant(c).model_dump() for c in error.candidates
                ],
            },
        )
    if isinstance(error, LastAccountError):
        return HTTPException(status_code=409, detail={"message": str(error)})
    if isinstance(error, UnknownAccountError):
        return HTTPException(status_code=404, detail={"message": str(error)})
    if isinstance(error, (DerivationError, DetectionError)):
        return HTTPException(status_code=502, detail={"message": str(error)})
    return HTTPException(status_code=500, detail={"message": str(error)})


def _account_list(manager: AccountLifecycleManager) -> AccountListResponse:
    accounts = manager.list_accounts()
    return AccountListResponse(
        accounts=[AccountResponse.from_record(a) for a in accounts],
        total=len(accounts),
        current_account_id=manager.store.current_account_id,
    )


@router.get("", response_model=AccountListResponse)
async def list_accounts(
    manager: AccountLifecycleManager = Depends(get_account_manager),
) -> AccountListResponse:
    """List all accounts in display order."""
    return _account_list(manager)


@router.get("/current", response_model=AccountResponse)
async def get_current_account(
    manager: AccountLifecycleManager = Depends(get_account_manager),
) -> AccountResponse:
    """Get the current account."""
    record = manager.current_account()
    if record is None:
        raise HTTPException(status_code=404, detail="No accounts")
    return AccountResponse.from_record(record)


@router.post("", response_model=AccountResponse, status_code=201)
async def create_account(
    request: AccountCreate,
    manager: AccountLifecycleManager = Depends(get_account_manager),
) -> AccountResponse:
    """Create an account from a freshly generated mnemonic and make it current."""
    try:
        record = await manager.create(request.name, request.mnemonic)
    except AccountError as e:
        raise _http_error(e) from e

    return AccountResponse.from_record(record)


@router.post("/import", response_model=AccountResponse, status_code=201)
async def import_account(
    request: AccountImport,
    manager: AccountLifecycleManager = Depends(get_account_manager),
) -> AccountResponse:
    """Import an account from an existing mnemonic.

    When several wallet providers have activity for the mnemonic, responds
    409 with the candidates. Repeat the request with one of them as
    ``selected_variant`` to finish the import.
    """
    selected = request.selected_variant.to_variant() if request.selected_variant else None
    try:
        record = await manager.import_account(
            request.name,
            request.mnemonic,
            detect=request.detect,
            wallet_type_hint=request.wallet_type_hint,
            selected_variant=selected,
            known_address=request.known_address,
        )
    except AccountError as e:
        raise _http_error(e) from e

    return AccountResponse.from_record(record)


@router.post("/detect", response_model=DetectionResponse)
async def detect_wallet_type(
    request: DetectRequest,
    manager: AccountLifecycleManager = Depends(get_account_manager),
) -> DetectionResponse:
    """Scan known wallet provider paths for activity without importing."""
    try:
        mnemonic = validate_mnemonic(request.mnemonic)
        result = await manager.detector.detect(mnemonic, request.known_address)
    except AccountError as e:
        raise _http_error(e) from e

    return DetectionResponse(
        detected=result.detected,
        wallet_type=result.wallet_type,
        wallet_name=result.wallet_name,
        active_paths=[
            ActivePathSchema(
                wallet_id=p.wallet_id,
                wallet_name=p.wallet_name,
                path=p.path,
                balance=p.balance,
                addresses=[
                    ActiveAddressSchema(address=a.address, index=a.index, path=a.path, balance=a.balance)
                    for a in p.addresses
                ],
            )
            for p in result.active_paths
        ],
        suggested_path=result.suggested_path,
        candidates=[TaprootVariantSchema.from_variant(c) for c in result.candidates()],
    )


@router.post("/repair", response_model=RepairResponse)
async def repair_accounts(
    manager: AccountLifecycleManager = Depends(get_account_manager),
) -> RepairResponse:
    """Run an address repair pass now."""
    fixed = await manager.repair_missing_addresses()
    return RepairResponse(
        fixed=fixed,
        incomplete_accounts=sum(1 for a in manager.list_accounts() if not a.is_complete),
    )


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: str,
    manager: AccountLifecycleManager = Depends(get_account_manager),
) -> AccountResponse:
    """Get a specific account."""
    record = manager.get_account(account_id)
    if record is None:
        raise _http_error(UnknownAccountError(account_id))
    return AccountResponse.from_record(record)


@router.post("/{account_id}/switch", response_model=AccountResponse)
async def switch_account(
    account_id: str,
    manager: AccountLifecycleManager = Depends(get_account_manager),
) -> AccountResponse:
    """Make an account current."""
    if not await manager.switch_account(account_id):
        raise _http_error(UnknownAccountError(account_id))
    return AccountResponse.from_record(manager.current_account())


@router.patch("/{account_id}", response_model=AccountResponse)
async def update_account(
    account_id: str,
    request: AccountUpdate,
    manager: AccountLifecycleManager = Depends(get_account_manager),
) -> AccountResponse:
    """Rename, recolor or refresh the cached balances of an account."""
    if manager.get_account(account_id) is None:
        raise _http_error(UnknownAccountError(account_id))

    try:
        if request.name is not None:
            await manager.rename(account_id, request.name)
        if request.color is not None:
            await manager.recolor(account_id, request.color)
        if request.balances is not None:
            await manager.update_balances(account_id, request.balances)
    except AccountError as e:
        raise _http_error(e) from e

    record = manager.get_account(account_id)
    if record is None:
        raise _http_error(UnknownAccountError(account_id))
    return AccountResponse.from_record(record)


@router.delete("/{account_id}", response_model=AccountListResponse)
async def delete_account(
    account_id: str,
    manager: AccountLifecycleManager = Depends(get_account_manager),
) -> AccountListResponse:
    """Delete an account. The last remaining account cannot be deleted."""
    try:
        deleted = await manager.delete(account_id)
    except AccountError as e:
        raise _http_error(e) from e

    if not deleted:
        raise _http_error(UnknownAccountError(account_id))
    return _account_list(manager)
