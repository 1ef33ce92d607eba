"""Tests for account import, wallet detection handling and disambiguation."""

import pytest

from wallet_accounts.models.account import AccountType, TaprootVariant
from wallet_accounts.services.accounts import (
    AccountValidationError,
    AmbiguousImportError,
    DerivationError,
    DetectionError,
    ImportState,
)
from wallet_accounts.services.accounts.validation import seed_hash
from wallet_accounts.services.derivation.wallet_detector import (
    ActiveAddress,
    ActivePath,
    DetectionResult,
)

from conftest import MNEMONIC, ambiguous_detection, make_record


def single_provider_detection() -> DetectionResult:
    return DetectionResult(
        detected=True,
        wallet_type="xverse",
        wallet_name="Xverse",
        suggested_path="m/86'/0'/0'",
        active_paths=[
            ActivePath(
                "xverse", "Xverse", "m/86'/0'/0'", 0.2,
                [ActiveAddress("bc1pxverse", 0, "m/86'/0'/0'/0/0", 0.2)],
            ),
        ],
    )


class TestImportWithoutAmbiguity:
    """Nothing or one provider detected: import runs straight through."""

    @pytest.mark.asyncio
    async def test_nothing_detected_is_standard_import(self, manager, detector, derivation_client):
        record = await manager.import_account("Imported", MNEMONIC)

        assert detector.calls == [(MNEMONIC, None)]
        assert ("bitcoin", MNEMONIC, None) in derivation_client.calls
        assert record.type == AccountType.IMPORTED
        assert record.is_import
        assert record.wallet_type == "standard"
        assert record.addresses["taproot"] == "bc1pataproot"
        assert manager.current_account().id == record.id

    @pytest.mark.asyncio
    async def test_single_provider_uses_its_taproot(self, manager, detector, derivation_client):
        detector.result = single_provider_detection()
        derivation_client.bitcoin.taproot_variants = {
            "xverse": TaprootVariant("bc1pxversevariant", "m/86'/0'/0'/0/0", "xverse", "xverse"),
        }

        record = await manager.import_account("Xverse wallet", MNEMONIC)

        assert ("bitcoin", MNEMONIC, "xverse") in derivation_client.calls
        assert record.wallet_type == "xverse"
        assert record.addresses["taproot"] == "bc1pxversevariant"
        assert record.addresses["segwit"] == "bc1qasegwit"

    @pytest.mark.asyncio
    async def test_hint_without_matching_variant_keeps_standard_taproot(self, manager):
        record = await manager.import_account("Hinted", MNEMONIC, detect=False, wallet_type_hint="ledger")

        assert record.wallet_type == "ledger"
        assert record.addresses["taproot"] == "bc1pataproot"

    @pytest.mark.asyncio
    async def test_detect_false_skips_detection(self, manager, detector):
        await manager.import_account("Imported", MNEMONIC, detect=False)
        assert detector.calls == []

    @pytest.mark.asyncio
    async def test_selected_variant_skips_detection(self, manager, detector):
        variant = TaprootVariant("bc1pchosen", "m/86'/0'/0'/0/0")

        record = await manager.import_account("Imported", MNEMONIC, selected_variant=variant)

        assert detector.calls == []
        assert record.addresses["taproot"] == "bc1pchosen"
        assert record.paths["taproot"] == "m/86'/0'/0'/0/0"

    @pytest.mark.asyncio
    async def test_selected_variant_provider_becomes_hint(self, manager, derivation_client):
        variant = TaprootVariant("bc1pvariantB", "m/86'/0'/1'/0/0", "trezor", "Trezor")

        record = await manager.import_account("Imported", MNEMONIC, selected_variant=variant)

        assert record.wallet_type == "trezor"
        assert ("bitcoin", MNEMONIC, "trezor") in derivation_client.calls

    @pytest.mark.asyncio
    async def test_known_address_passed_to_detector(self, manager, detector):
        await manager.import_account("Imported", MNEMONIC, known_address="bc1qknown")
        assert detector.calls == [(MNEMONIC, "bc1qknown")]


class TestAmbiguousImport:
    """Several providers with activity suspend the import."""

    @pytest.mark.asyncio
    async def test_suspends_then_selected_variant_is_used(self, manager, detector, kv_store):
        """Choosing variant B puts B's address in the taproot field."""
        detector.result = ambiguous_detection()

        with pytest.raises(AmbiguousImportError) as exc:
            await manager.import_account("Shared seed", MNEMONIC)

        err = exc.value
        assert [c.address for c in err.candidates] == ["bc1pvariantA", "bc1pvariantB"]
        assert manager.list_accounts() == []
        assert kv_store.writes == []
        assert err.workflow.state == ImportState.DISAMBIGUATING
        assert err.workflow.awaiting_selection

        variant_b = TaprootVariant("bc1pvariantB", "m/86'/0'/1'/0/0")
        record = await err.workflow.select_variant(variant_b)

        assert record.addresses["taproot"] == "bc1pvariantB"
        assert record.paths["taproot"] == "m/86'/0'/1'/0/0"
        assert record.wallet_type == "trezor"
        assert err.workflow.state == ImportState.PERSISTED
        assert manager.current_account().id == record.id
        assert kv_store.data["accounts"]["accounts"][0]["addresses"]["taproot"] == "bc1pvariantB"

    @pytest.mark.asyncio
    async def test_run_returns_none_while_suspended(self, manager, detector):
        detector.result = ambiguous_detection()
        workflow = manager.begin_import("Shared seed", MNEMONIC)

        assert await workflow.run() is None
        assert len(workflow.candidates) == 2
        assert workflow.detection is detector.result

    @pytest.mark.asyncio
    async def test_selection_must_be_a_candidate(self, manager, detector):
        detector.result = ambiguous_detection()
        workflow = manager.begin_import("Shared seed", MNEMONIC)
        await workflow.run()

        with pytest.raises(AccountValidationError):
            await workflow.select_variant(TaprootVariant("bc1pother", "m/86'/0'/9'/0/0"))

        assert workflow.state == ImportState.DISAMBIGUATING
        assert manager.list_accounts() == []

    @pytest.mark.asyncio
    async def test_select_only_when_suspended(self, manager):
        workflow = manager.begin_import("Plain", MNEMONIC, detect=False)

        with pytest.raises(RuntimeError):
            await workflow.select_variant(TaprootVariant("a", "b"))

        await workflow.run()
        with pytest.raises(RuntimeError):
            await workflow.run()

    @pytest.mark.asyncio
    async def test_segwit_activity_is_not_a_taproot_candidate(self, manager, detector):
        """Activity on a non-taproot path never becomes a taproot choice."""
        detector.result = DetectionResult(
            detected=True,
            wallet_type="xverse",
            wallet_name="Xverse",
            active_paths=[
                ActivePath("xverse", "Xverse", "m/84'/0'/0'", 0.1,
                           [ActiveAddress("bc1qshared", 0, "m/84'/0'/0'/0/0", 0.1)]),
                ActivePath("ledger", "Ledger", "m/84'/0'/0'", 0.1,
                           [ActiveAddress("bc1qshared", 0, "m/84'/0'/0'/0/0", 0.1)]),
            ],
        )

        record = await manager.import_account("Shared path", MNEMONIC)

        assert record.wallet_type == "xverse"
        assert record.addresses["taproot"] == "bc1pataproot"

    @pytest.mark.asyncio
    async def test_segwit_and_taproot_activity_is_not_ambiguous(self, manager, detector):
        """One taproot address across active providers imports straight through."""
        same = TaprootVariant("bc1pxverse", "m/86'/0'/0'/0/0")
        detector.result = DetectionResult(
            detected=True,
            wallet_type="electrum",
            wallet_name="Electrum",
            active_paths=[
                ActivePath("electrum", "Electrum", "m/84'/0'/0'", 0.1,
                           [ActiveAddress("bc1qused", 0, "m/84'/0'/0'/0/0", 0.1)]),
                ActivePath("xverse", "Xverse", "m/84'/0'/0'", 0.1,
                           [ActiveAddress("bc1qused", 0, "m/84'/0'/0'/0/0", 0.1)]),
                ActivePath("xverse", "Xverse", "m/86'/0'/0'", 0.2,
                           [ActiveAddress("bc1pxverse", 0, "m/86'/0'/0'/0/0", 0.2)]),
            ],
            taproot_variants={"xverse": same, "trezor": same},
        )

        record = await manager.import_account("Xverse", MNEMONIC)

        assert record.wallet_type == "xverse"
        assert not record.addresses["taproot"].startswith("bc1q")

    @pytest.mark.asyncio
    async def test_non_taproot_selection_rejected(self, manager, derivation_client):
        segwit = TaprootVariant("bc1qused", "m/84'/0'/0'/0/0", "electrum", "Electrum")

        with pytest.raises(AccountValidationError) as exc:
            await manager.import_account("Imported", MNEMONIC, selected_variant=segwit)

        assert exc.value.field == "selected_variant"
        assert derivation_client.calls == []
        assert manager.list_accounts() == []


class TestImportFailures:
    """Failures leave the collection untouched and the workflow FAILED."""

    @pytest.mark.asyncio
    async def test_validation_failure(self, manager, detector):
        workflow = manager.begin_import("", MNEMONIC)

        with pytest.raises(AccountValidationError):
            await workflow.run()

        assert workflow.state == ImportState.FAILED
        assert isinstance(workflow.error, AccountValidationError)
        assert detector.calls == []

    @pytest.mark.asyncio
    async def test_detection_failure(self, manager, detector, derivation_client):
        detector.error = DetectionError("Wallet detection timed out")
        workflow = manager.begin_import("Imported", MNEMONIC)

        with pytest.raises(DetectionError):
            await workflow.run()

        assert workflow.state == ImportState.FAILED
        assert derivation_client.calls == []
        assert manager.list_accounts() == []

    @pytest.mark.asyncio
    async def test_derivation_failure_after_selection(self, manager, detector, derivation_client):
        detector.result = ambiguous_detection()
        workflow = manager.begin_import("Shared seed", MNEMONIC)
        await workflow.run()
        derivation_client.layer2_error = DerivationError("service down")

        with pytest.raises(DerivationError):
            await workflow.select_variant(workflow.candidates[0])

        assert workflow.state == ImportState.FAILED
        assert manager.list_accounts() == []


class TestDuplicateImports:
    """Seed fingerprints flag re-imports of the same phrase."""

    @pytest.mark.asyncio
    async def test_duplicates_allowed_by_default(self, manager):
        first = await manager.import_account("First", MNEMONIC, detect=False)
        second = await manager.import_account("Second", MNEMONIC, detect=False)

        assert first.seed_hash == second.seed_hash
        assert len(manager.list_accounts()) == 2

    @pytest.mark.asyncio
    async def test_duplicates_rejected_when_disabled(self, manager, settings, derivation_client):
        settings.allow_duplicate_imports = False
        manager.store.commit([make_record("a", seed_hash=seed_hash(MNEMONIC))], "a")

        with pytest.raises(AccountValidationError, match="already used"):
            await manager.import_account("Again", MNEMONIC, detect=False)

        assert derivation_client.calls == []
        assert len(manager.list_accounts()) == 1
