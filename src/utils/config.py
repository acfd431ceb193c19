import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env_flag(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() not in ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration, read once from the environment at startup.

    Fields:
      - db_path: SQLite file standing in for the hosted database
      - token_path: JSON file holding the guest session token
      - storage_dir: root directory of the object store
      - public_url: base URL objects are served from
      - seed: load the starter catalog into a fresh database
      - log_file: send logs to this file instead of stderr
      - debug: verbose logging
    """

    db_path: str
    token_path: str
    storage_dir: str
    public_url: str
    seed: bool = True
    log_file: Optional[str] = None
    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = os.getenv("STOREFRONT_DATA_DIR", "data")
        storage_dir = os.getenv(
            "STOREFRONT_STORAGE_DIR", os.path.join(data_dir, "storage")
        )
        public_url = os.getenv("STOREFRONT_PUBLIC_URL") or Path(
            storage_dir
        ).resolve().as_uri()
        return cls(
            db_path=os.getenv(
                "STOREFRONT_DB_PATH", os.path.join(data_dir, "storefront.sqlite")
            ),
            token_path=os.getenv(
                "STOREFRONT_TOKEN_PATH", os.path.join(data_dir, "session.json")
            ),
            storage_dir=storage_dir,
            public_url=public_url,
            seed=_env_flag("STOREFRONT_SEED", True),
            log_file=os.getenv("STOREFRONT_LOG_FILE") or None,
            debug=bool(os.getenv("DEBUG")),
        )
