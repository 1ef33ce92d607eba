"""In-memory account store with typed change notifications.

The store is the only owner of the canonical account list and the current
account pointer. Everything that changes either of them goes through
``set`` or ``commit`` so every observer sees every change.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from wallet_accounts.models.account import AccountRecord

logger = structlog.get_logger()


class StoreKey(str, Enum):
    """State slots held by the store."""
    ACCOUNTS = "accounts"
    CURRENT_ACCOUNT_ID = "currentAccountId"


class AccountEvent(str, Enum):
    """Notifications published by the store."""
    ACCOUNTS_CHANGED = "accountsChanged"
    CURRENT_ACCOUNT_CHANGED = "currentAccountChanged"
    ACCOUNT_SWITCHED = "accountSwitched"


@dataclass(frozen=True)
class AccountsChanged:
    accounts: List[AccountRecord]


@dataclass(frozen=True)
class CurrentAccountChanged:
    current_account_id: Optional[str]
    previous_account_id: Optional[str]


@dataclass(frozen=True)
class AccountSwitched:
    account: AccountRecord


EventPayload = Union[AccountsChanged, CurrentAccountChanged, AccountSwitched]
Observer = Callable[[EventPayload], Any]

_KEY_EVENTS = {
    StoreKey.ACCOUNTS: AccountEvent.ACCOUNTS_CHANGED,
    StoreKey.CURRENT_ACCOUNT_ID: AccountEvent.CURRENT_ACCOUNT_CHANGED,
}


class AccountStore:
    """Authoritative in-memory account collection plus current pointer."""

    def __init__(self) -> None:
        self._accounts: List[AccountRecord] = []
        self._index: Dict[str, AccountRecord] = {}
        self._current_account_id: Optional[str] = None
        self._observers: Dict[AccountEvent, List[Observer]] = {
            event: [] for event in AccountEvent
        }

    # ==================== State access ====================

    def get(self, key: StoreKey) -> Any:
        """Get a state slot. The account list is returned as a copy."""
        if key == StoreKey.ACCOUNTS:
            return list(self._accounts)
        if key == StoreKey.CURRENT_ACCOUNT_ID:
            return self._current_account_id
        raise KeyError(key)

    def set(self, key: StoreKey, value: Any) -> None:
        """Replace a state slot and notify observers of that slot."""
        if key == StoreKey.ACCOUNTS:
            self._replace_accounts(value)
            self._publish(AccountEvent.ACCOUNTS_CHANGED, AccountsChanged(list(self._accounts)))
        elif key == StoreKey.CURRENT_ACCOUNT_ID:
            previous = self._current_account_id
            self._current_account_id = value
            if previous != value:
                self._publish(
                    AccountEvent.CURRENT_ACCOUNT_CHANGED,
                    CurrentAccountChanged(value, previous),
                )
        else:
            raise KeyError(key)

    def commit(self, accounts: List[AccountRecord], current_account_id: Optional[str]) -> None:
        """Replace the list and the pointer together, then notify.

        Observers never see a pointer to an account that is not in the list.
        """
        if current_account_id is not None and not any(a.id == current_account_id for a in accounts):
            raise ValueError(f"Current account {current_account_id} is not in the collection")
        previous = self._current_account_id
        self._replace_accounts(accounts)
        self._current_account_id = current_account_id

        self._publish(AccountEvent.ACCOUNTS_CHANGED, AccountsChanged(list(self._accounts)))
        if previous != current_account_id:
            self._publish(
                AccountEvent.CURRENT_ACCOUNT_CHANGED,
                CurrentAccountChanged(current_account_id, previous),
            )

    def _replace_accounts(self, accounts: List[AccountRecord]) -> None:
        index: Dict[str, AccountRecord] = {}
        for account in accounts:
            if account.id in index:
                raise ValueError(f"Duplicate account id: {account.id}")
            index[account.id] = account
        self._accounts = list(accounts)
        self._index = index

    @property
    def accounts(self) -> List[AccountRecord]:
        return list(self._accounts)

    @property
    def current_account_id(self) -> Optional[str]:
        return self._current_account_id

    @property
    def current_account(self) -> Optional[AccountRecord]:
        if self._current_account_id is None:
            return None
        return self._index.get(self._current_account_id)

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        return self._index.get(account_id)

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._index

    # ==================== Observers ====================

    def subscribe(self, event: AccountEvent, callback: Observer) -> Callable[[], None]:
        """Register an observer. Returns a callable that unsubscribes it."""
        observers = self._observers[AccountEvent(event)]
        observers.append(callback)

        def unsubscribe() -> None:
            if callback in observers:
                observers.remove(callback)

        return unsubscribe

    def subscribe_key(self, key: StoreKey, callback: Observer) -> Callable[[], None]:
        """Register an observer for changes to one state slot."""
        return self.subscribe(_KEY_EVENTS[key], callback)

    def emit(self, event: AccountEvent, payload: EventPayload) -> None:
        """Publish a cross-cutting notification such as ACCOUNT_SWITCHED."""
        self._publish(AccountEvent(event), payload)

    def _publish(self, event: AccountEvent, payload: EventPayload) -> None:
        for callback in list(self._observers[event]):
            try:
                callback(payload)
            except Exception as e:
                logger.error(
                    "Account observer failed",
                    store_event=event.value,
                    observer=getattr(callback, "__qualname__", repr(callback)),
                    error=str(e),
                    exc_info=True,
                )
