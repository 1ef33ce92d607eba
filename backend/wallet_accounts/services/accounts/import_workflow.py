"""Import state machine.

    IDLE -> VALIDATING -> DETECTING -> [DISAMBIGUATING] -> DERIVING -> MERGING -> PERSISTED
                     \\            \\                           \\
                      +------------+---------------------------+--> FAILED

DISAMBIGUATING is a suspension point, not a retry: the workflow waits, with
no timeout, until ``select_variant`` is called with one of the candidates.
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

import structlog

from wallet_accounts.models.account import AccountRecord, AccountType, TaprootVariant
from wallet_accounts.services.accounts.errors import AccountError, AccountValidationError
from wallet_accounts.services.accounts.validation import (
    validate_mnemonic,
    validate_name,
    validate_taproot_variant,
)

if TYPE_CHECKING:
    from wallet_accounts.services.accounts.lifecycle import AccountLifecycleManager
    from wallet_accounts.services.derivation.wallet_detector import DetectionResult

logger = structlog.get_logger()


class ImportState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    DETECTING = "detecting"
    DISAMBIGUATING = "disambiguating"
    DERIVING = "deriving"
    MERGING = "merging"
    PERSISTED = "persisted"
    FAILED = "failed"


class ImportWorkflow:
    """One import attempt, driven by an AccountLifecycleManager."""

    def __init__(
        self,
        manager: "AccountLifecycleManager",
        name: str,
        mnemonic: str,
        detect: bool = True,
        wallet_type_hint: Optional[str] = None,
        selected_variant: Optional[TaprootVariant] = None,
        known_address: Optional[str] = None,
    ):
        self._manager = manager
        self._raw_name = name
        self._raw_mnemonic = mnemonic
        self._name: Optional[str] = None
        self._mnemonic: Optional[str] = None
        self.detect = detect
        self.wallet_type_hint = wallet_type_hint
        self.selected_variant = selected_variant
        self.known_address = known_address

        self.state = ImportState.IDLE
        self.detection: Optional["DetectionResult"] = None
        self.candidates: List[TaprootVariant] = []
        self.record: Optional[AccountRecord] = None
        self.error: Optional[Exception] = None

    @property
    def awaiting_selection(self) -> bool:
        return self.state == ImportState.DISAMBIGUATING

    def _transition(self, state: ImportState) -> None:
        logger.debug("Import state", previous=self.state.value, state=state.value)
        self.state = state

    def _fail(self, error: Exception) -> None:
        self.error = error
        self._transition(ImportState.FAILED)

    async def run(self) -> Optional[AccountRecord]:
        """Run until the record is persisted or a selection is required.

        Returns the new record, or None when the workflow is suspended in
        DISAMBIGUATING (see ``candidates``).
        """
        if self.state != ImportState.IDLE:
            raise RuntimeError(f"Import already started (state={self.state.value})")

        try:
            self._transition(ImportState.VALIDATING)
            self._name = validate_name(self._raw_name)
            self._mnemonic = validate_mnemonic(self._raw_mnemonic)
            self._manager.check_duplicate_seed(self._mnemonic)

            if self.selected_variant is not None:
                validate_taproot_variant(self.selected_variant)
                if self.wallet_type_hint is None:
                    self.wallet_type_hint = self.selected_variant.wallet_type
            if self.detect and self.selected_variant is None:
                self._transition(ImportState.DETECTING)
                self.detection = await self._manager.detector.detect(self._mnemonic, self.known_address)
                if self._resolve_detection():
                    self._transition(ImportState.DISAMBIGUATING)
                    logger.info(
                        "Import awaiting wallet selection",
                        candidates=[c.wallet_name for c in self.candidates],
                    )
                    return None
        except AccountError as e:
            self._fail(e)
            raise

        return await self._finish()

    def _resolve_detection(self) -> bool:
        """Apply the detection result. True when the caller must choose."""
        detection = self.detection
        if detection is None or not detection.detected:
            return False

        self.candidates = detection.candidates()
        if len(self.candidates) > 1:
            return True
        if self.wallet_type_hint is None:
            if self.candidates and self.candidates[0].wallet_type:
                self.wallet_type_hint = self.candidates[0].wallet_type
            else:
                self.wallet_type_hint = detection.wallet_type
        return False

    async def select_variant(self, variant: TaprootVariant) -> AccountRecord:
        """Resume a suspended import with the caller's choice."""
        if self.state != ImportState.DISAMBIGUATING:
            raise RuntimeError(f"Import is not awaiting a selection (state={self.state.value})")

        chosen = next((c for c in self.candidates if c.matches(variant)), None)
        if chosen is None:
            raise AccountValidationError(
                "Selected variant is not one of the detected candidates",
                field="selected_variant",
            )
        self.selected_variant = chosen
        if self.wallet_type_hint is None:
            self.wallet_type_hint = chosen.wallet_type
        return await self._finish()

    async def _finish(self) -> AccountRecord:
        try:
            self._transition(ImportState.DERIVING)
            layer2, bitcoin = await self._manager.derive_addresses(self._mnemonic, self.wallet_type_hint)
            await self._manager.remember_seed(True, self._mnemonic)

            self._transition(ImportState.MERGING)
            record = self._manager.add_account(
                name=self._name,
                mnemonic=self._mnemonic,
                layer2=layer2,
                bitcoin=bitcoin,
                account_type=AccountType.IMPORTED,
                wallet_type=self.wallet_type_hint,
                selected_variant=self.selected_variant,
            )
            await self._manager.persist()
        except AccountError as e:
            self._fail(e)
            raise

        self.record = record
        self._transition(ImportState.PERSISTED)
        return record
