"""
Configuration module for SecureVault.

Centralizes configuration with environment variable support and validation.
"""

import os
from pathlib import Path
from typing import Dict, Optional

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("SECUREVAULT_ENV", "dev")  # dev|stage|prod

# State storage: memory|sqlite
STORE_BACKEND = os.getenv("SECUREVAULT_STORE", "memory")
DB_PATH = os.getenv("SECUREVAULT_DB_PATH", "data/securevault.db")

# Identities
VAULT_ID = os.getenv("SECUREVAULT_VAULT_ID", "securevault-001")
REGISTRY_ID = os.getenv("SECUREVAULT_REGISTRY_ID", "authorization-registry-001")

# Network the service executes on; bound into every authorization
NETWORK_ID = int(os.getenv("SECUREVAULT_NETWORK_ID", "31337"))

# Public key of the signing authority (compressed secp256k1, hex)
SIGNER_PUBKEY = os.getenv("SECUREVAULT_SIGNER_PUBKEY", "")

# Logging
LOG_LEVEL = os.getenv("SECUREVAULT_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("SECUREVAULT_LOG_JSON", "1").lower() in ("1", "true", "yes")
LOG_FILE: Optional[str] = os.getenv("SECUREVAULT_LOG_FILE") or None


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Check configuration values.
    Returns dict of setting -> valid.
    """
    checks = {
        "store_backend": STORE_BACKEND in ("memory", "sqlite"),
        "network_id": NETWORK_ID >= 0,
        "vault_id": bool(VAULT_ID),
        "registry_id": bool(REGISTRY_ID),
        "signer_pubkey": bool(SIGNER_PUBKEY),
    }

    if STORE_BACKEND == "sqlite":
        checks["db_dir"] = Path(DB_PATH).parent.exists() or not Path(DB_PATH).parent.is_file()

    return checks


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("SECUREVAULT_DEBUG", "").lower() in ("1", "true", "yes")
