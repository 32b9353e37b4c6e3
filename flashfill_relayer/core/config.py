#!/usr/bin/env python3
"""
Configuration Management Module

Responsibilities:
- Load the relayer environment file exactly ONCE
- Validate addresses, keys and numeric knobs with format checks
- Provide structured config access
- Keep the filler private key out of logs

Create ONCE in main.py and pass everywhere (service, executor, scheduler).
Values resolve in this order: explicit overrides > process environment > env file.
"""
import os
import logging
from pathlib import Path
from typing import Optional, Dict, Any

from dotenv import dotenv_values
from eth_utils import is_address, to_checksum_address

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://arb1.arbitrum.io/rpc"
DEFAULT_CHAIN_ID = 42161
UNISWAP_V3_ROUTER = "0xE592427A0AEce92De3Edee1F18E0157C05861564"

DEV_ENVIRONMENTS = ("local", "development", "dev", "test")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


class Config:
    """
    Central relayer configuration object.

    All knobs come from env; there is no runtime logic here.
    """

    def __init__(
        self,
        env_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ):
        self._explicit_env = env_path is not None
        self.env_path: Path = Path(env_path) if env_path else (
            Path(__file__).resolve().parents[2] / "config_env" / "relayer.env"
        )
        self._values: Dict[str, str] = {}
        self._load_env(overrides or {})
        self._load_values()
        self._validate()

    # ------------------------------------------------------------------
    # ENV LOADING
    # ------------------------------------------------------------------

    def _load_env(self, overrides: Dict[str, Any]) -> None:
        """Merge env file, process environment and overrides."""
        file_values: Dict[str, Optional[str]] = {}

        if self.env_path.exists():
            if os.name != "nt":
                mode = self.env_path.stat().st_mode
                if mode & 0o004:
                    logger.warning(
                        "⚠️ SECURITY: Environment file is world-readable. "
                        "Run: chmod 600 %s", self.env_path
                    )
            file_values = dotenv_values(self.env_path)
            logger.info("Environment configuration loaded successfully")
        elif self._explicit_env:
            raise FileNotFoundError(f".env file not found: {self.env_path}")
        else:
            logger.info("No env file found, using process environment only")

        merged: Dict[str, str] = {
            k: v for k, v in file_values.items() if v is not None
        }
        merged.update(os.environ)
        merged.update({k: str(v) for k, v in overrides.items() if v is not None})
        self._values = merged

    def _get(self, key: str, default: str = "") -> str:
        return self._strip_comment(self._values.get(key, default))

    # ------------------------------------------------------------------
    # VALUE LOADING
    # ------------------------------------------------------------------

    def _load_values(self) -> None:
        """Load configuration values from the merged environment."""

        # === Runtime ===
        self.app_env: str = self._get("APP_ENV", "production").lower()

        # === Persistence ===
        self.db_path: Optional[str] = self._get("RELAYER_DB_PATH") or None

        # === Chain ===
        self.rpc_url: str = self._get("ARBITRUM_RPC_URL", DEFAULT_RPC_URL)
        self.chain_id: int = self._parse_int(
            self._get("CHAIN_ID", str(DEFAULT_CHAIN_ID)), "CHAIN_ID", 1
        )
        self.relayer_private_key: Optional[str] = self._get("RELAYER_PRIVATE_KEY") or None
        self.relayer_address: Optional[str] = self._get("RELAYER_ADDRESS") or None
        self.settlement_address: Optional[str] = self._get("MARGIN_SETTLER_ADDRESS") or None

        # === Swap routing ===
        self.swap_router_address: str = self._get("SWAP_ROUTER_ADDRESS", UNISWAP_V3_ROUTER)
        self.swap_fee_tier: int = self._parse_int(
            self._get("SWAP_FEE_TIER", "3000"), "SWAP_FEE_TIER", 1, 2**24 - 1
        )
        self.swap_deadline_seconds: int = self._parse_int(
            self._get("SWAP_DEADLINE_SECONDS", "1800"), "SWAP_DEADLINE_SECONDS", 1
        )

        # === Fill execution ===
        self.fill_gas_limit: int = self._parse_int(
            self._get("FILL_GAS_LIMIT", "1000000"), "FILL_GAS_LIMIT", 21000
        )
        self.receipt_timeout_seconds: float = self._parse_float(
            self._get("RECEIPT_TIMEOUT_SECONDS", "120"), "RECEIPT_TIMEOUT_SECONDS", 1
        )

        # === Batch scheduling ===
        self.drain_batch_size: int = self._parse_int(
            self._get("DRAIN_BATCH_SIZE", "10"), "DRAIN_BATCH_SIZE", 1, 100
        )
        self.cycle_max_batches: int = self._parse_int(
            self._get("CYCLE_MAX_BATCHES", "5"), "CYCLE_MAX_BATCHES", 1, 100
        )
        self.batch_delay_seconds: float = self._parse_float(
            self._get("BATCH_DELAY_SECONDS", "2"), "BATCH_DELAY_SECONDS", 0
        )
        self.fill_delay_seconds: float = self._parse_float(
            self._get("FILL_DELAY_SECONDS", "1"), "FILL_DELAY_SECONDS", 0
        )

        # === Cron ===
        self.cron_secret: Optional[str] = self._get("CRON_SECRET") or None
        self.cron_interval_minutes: int = self._parse_int(
            self._get("CRON_INTERVAL_MINUTES", "0"), "CRON_INTERVAL_MINUTES", 0, 1440
        )

        # === Server ===
        self.host: str = self._get("HOST", "0.0.0.0")
        self.port: int = self._parse_port(self._get("PORT", "8000"))

        # === Logging ===
        self.log_dir: str = self._get("LOG_DIR", "logs")
        self.log_level: str = self._get("LOG_LEVEL", "INFO").upper()

    # ------------------------------------------------------------------
    # PARSING HELPERS
    # ------------------------------------------------------------------

    def _parse_port(self, value: str) -> int:
        """Parse and validate port number, stripping comments."""
        try:
            port = int(self._strip_comment(value))
            if not (1024 <= port <= 65535):
                raise ValueError(f"Port must be between 1024-65535, got: {port}")
            return port
        except ValueError as e:
            raise ConfigValidationError(f"Invalid PORT value '{value}': {e}")

    @staticmethod
    def _strip_comment(value: str) -> str:
        """Strip comments from config values (everything after #)."""
        if '#' in value:
            return value.split('#')[0].strip()
        return value.strip()

    def _parse_float(
        self,
        value: str,
        name: str,
        min_val: Optional[float] = None,
        max_val: Optional[float] = None
    ) -> float:
        """Parse and validate float with optional bounds, stripping comments."""
        try:
            num = float(self._strip_comment(value))
            if min_val is not None and num < min_val:
                raise ValueError(f"{name} must be >= {min_val}, got: {num}")
            if max_val is not None and num > max_val:
                raise ValueError(f"{name} must be <= {max_val}, got: {num}")
            return num
        except ValueError as e:
            raise ConfigValidationError(f"Invalid {name} value '{value}': {e}")

    def _parse_int(
        self,
        value: str,
        name: str,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None
    ) -> int:
        """Parse and validate integer with optional bounds, stripping comments."""
        try:
            num = int(self._strip_comment(value))
            if min_val is not None and num < min_val:
                raise ValueError(f"{name} must be >= {min_val}, got: {num}")
            if max_val is not None and num > max_val:
                raise ValueError(f"{name} must be <= {max_val}, got: {num}")
            return num
        except ValueError as e:
            raise ConfigValidationError(f"Invalid {name} value '{value}': {e}")

    # ------------------------------------------------------------------
    # VALIDATION
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        """
        Validates:
        - Address formats (settlement, router, allowed sender)
        - Private key format
        - Cron secret presence outside dev mode
        """
        for name in ("relayer_address", "settlement_address", "swap_router_address"):
            value = getattr(self, name)
            if value is None:
                continue
            if not is_address(value):
                raise ConfigValidationError(
                    f"{name.upper()} is not a valid address: {value}"
                )
            setattr(self, name, to_checksum_address(value))

        if self.relayer_private_key:
            key = self.relayer_private_key
            raw = key[2:] if key.startswith("0x") else key
            if len(raw) != 64:
                raise ConfigValidationError(
                    "RELAYER_PRIVATE_KEY appears invalid. Expected 32 bytes hex"
                )
            try:
                int(raw, 16)
            except ValueError:
                raise ConfigValidationError("RELAYER_PRIVATE_KEY is not hex")
        else:
            logger.warning(
                "⚠️ RELAYER_PRIVATE_KEY not configured. Fill attempts will fail."
            )

        if not self.is_dev_mode and not self.cron_secret:
            logger.warning(
                "⚠️ CRON_SECRET not configured. Cron endpoint will reject all calls."
            )

        if self.settlement_address is None:
            logger.info("MARGIN_SETTLER_ADDRESS not set, falling back to order receiver")

        logger.info("✅ Configuration validated successfully")

    # ------------------------------------------------------------------
    # ACCESSORS
    # ------------------------------------------------------------------

    @property
    def is_dev_mode(self) -> bool:
        return self.app_env in DEV_ENVIRONMENTS

    def summary(self) -> Dict[str, Any]:
        """Loggable view of the config. Secrets are reported as flags only."""
        return {
            "app_env": self.app_env,
            "rpc_url": self.rpc_url,
            "chain_id": self.chain_id,
            "settlement_address": self.settlement_address,
            "relayer_address": self.relayer_address,
            "swap_router_address": self.swap_router_address,
            "has_private_key": bool(self.relayer_private_key),
            "has_cron_secret": bool(self.cron_secret),
            "drain_batch_size": self.drain_batch_size,
            "cycle_max_batches": self.cycle_max_batches,
            "cron_interval_minutes": self.cron_interval_minutes,
        }
