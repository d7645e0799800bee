import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path

from .models import UnknownTypePolicy


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    log_level: str = "INFO"
    base_url: str = "http://localhost:8000"
    unknown_type_policy: UnknownTypePolicy = UnknownTypePolicy.INCLUDE
    # signs the session cookie; a random one logs everybody out on restart
    session_secret: str = field(default_factory=lambda: secrets.token_hex(32), repr=False)


def get_settings() -> Settings:
    data_dir = Path(os.environ.get("LOANBOOK_DATA_DIR", Path.cwd() / ".data"))
    return Settings(
        data_dir=data_dir,
        db_path=data_dir / "loanbook.sqlite",
        log_level=os.environ.get("LOANBOOK_LOG_LEVEL", "INFO").upper(),
        base_url=os.environ.get("LOANBOOK_BASE_URL", "http://localhost:8000").rstrip("/"),
        unknown_type_policy=UnknownTypePolicy(
            os.environ.get("LOANBOOK_UNKNOWN_TYPE_POLICY", "include").lower()
        ),
        session_secret=os.environ.get("LOANBOOK_SESSION_SECRET") or secrets.token_hex(32),
    )
