"""Account lifecycle errors."""

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from wallet_accounts.models.account import TaprootVariant
    from wallet_accounts.services.accounts.import_workflow import ImportWorkflow


class AccountError(Exception):
    """Base class for account lifecycle errors."""
    pass


class AccountValidationError(AccountError):
    """Bad name, mnemonic or color. Raised before any network call."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class DerivationError(AccountError):
    """Address derivation failed or timed out."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DetectionError(AccountError):
    """Wallet type detection failed or timed out."""
    pass


class LastAccountError(AccountError):
    """Attempted to delete the only remaining account."""
    pass


class UnknownAccountError(AccountError):
    """No account with the given id."""

    def __init__(self, account_id: str):
        super().__init__(f"Unknown account: {account_id}")
        self.account_id = account_id


class AmbiguousImportError(AccountError):
    """Detection found several wallet providers with activity.

    Not a failure: the import is suspended until the caller picks one of
    ``candidates`` and passes it to ``workflow.select_variant``.
    """

    def __init__(
        self,
        candidates: Sequence["TaprootVariant"],
        workflow: Optional["ImportWorkflow"] = None,
    ):
        super().__init__(
            f"{len(candidates)} wallet variants have activity; a selection is required"
        )
        self.candidates = list(candidates)
        self.workflow = workflow
