# caller.py
from dataclasses import dataclass

ACCOUNT = "account"
ANONYMOUS = "anonymous"

# where an anonymous key came from, most to least trustworthy
SOURCE_ACCOUNT = "account"
SOURCE_HEADER = "header"
SOURCE_REMOTE_ADDR = "remote_addr"
SOURCE_FINGERPRINT = "fingerprint"
SOURCE_UNKNOWN = "unknown"

UNKNOWN_BUCKET = "unknown"


@dataclass(frozen=True)
class CallerKey:
    kind: str
    value: str
    source: str = SOURCE_ACCOUNT

    @classmethod
    def account(cls, account_id: str) -> "CallerKey":
        account_id = (account_id or "").strip()
        if not account_id:
            raise ValueError("account id must be non-empty")
        return cls(ACCOUNT, account_id, SOURCE_ACCOUNT)

    @classmethod
    def anonymous(cls, ip_or_fingerprint: str, source: str = SOURCE_REMOTE_ADDR) -> "CallerKey":
        return cls(ANONYMOUS, ip_or_fingerprint or UNKNOWN_BUCKET, source)

    @property
    def is_account(self) -> bool:
        return self.kind == ACCOUNT

    @property
    def trusted(self) -> bool:
        return self.source not in (SOURCE_FINGERPRINT, SOURCE_UNKNOWN)

    @property
    def storage_key(self) -> str:
        return f"{self.kind}:{self.value}"

    def __str__(self):
        return self.storage_key
