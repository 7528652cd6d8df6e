from dataclasses import dataclass, field


@dataclass
class FolderSyncResult:
    """Counters for one folder sync pass."""

    folder: str
    fetched: int = 0
    saved: int = 0
    updated: int = 0
    errors: int = 0
    notification_errors: int = 0
    duration_ms: int = 0
    # The pass gave up because the server kept throttling us; the cursor was not moved.
    throttled: bool = False
    # The folder does not exist on the server.
    skipped: bool = False
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None and not self.throttled


@dataclass
class AccountSyncResult:
    account_id: int
    email: str
    folders: list[FolderSyncResult] = field(default_factory=list)
    status: str = "idle"
    error: str | None = None

    @property
    def saved(self) -> int:
        return sum(folder.saved for folder in self.folders)

    @property
    def errors(self) -> int:
        return sum(folder.errors for folder in self.folders)


@dataclass
class CycleResult:
    accounts: list[AccountSyncResult] = field(default_factory=list)
    skipped: int = 0
    error: str | None = None

    @property
    def saved(self) -> int:
        return sum(account.saved for account in self.accounts)
