import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


@dataclass
class Settings:
    api_url: str = "http://localhost:3000"
    api_token: Optional[str] = None
    customer_id: Optional[str] = None
    proxy: Optional[str] = None
    poll_interval: float = 3.0
    timeout: float = 120.0
    verify_tls: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_url=os.getenv("AUTOTRACK_API_URL", cls.api_url),
            api_token=os.getenv("AUTOTRACK_API_TOKEN") or None,
            customer_id=os.getenv("AUTOTRACK_CUSTOMER_ID") or None,
            proxy=os.getenv("AUTOTRACK_PROXY") or None,
            poll_interval=float(os.getenv("AUTOTRACK_POLL_INTERVAL", cls.poll_interval)),
            timeout=float(os.getenv("AUTOTRACK_TIMEOUT", cls.timeout)),
            verify_tls=_env_bool("AUTOTRACK_VERIFY_TLS", cls.verify_tls),
        )

    def override(self, **values) -> "Settings":
        """Copy with every non-None value applied (CLI flags win over env)."""
        data = dict(self.__dict__)
        data.update({k: v for k, v in values.items() if v is not None})
        return Settings(**data)
