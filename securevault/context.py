"""
SecureVault Execution Context

The caller identity and network identifier are passed explicitly into every
operation rather than read from ambient state.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .encoding import UINT256_MAX


@dataclass(frozen=True)
class ExecutionContext:
    """Who is calling, and on which network."""
    network_id: int
    caller: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.network_id, bool) or not isinstance(self.network_id, int):
            raise ValueError("network_id must be an integer")
        if not 0 <= self.network_id <= UINT256_MAX:
            raise ValueError(f"network_id out of range: {self.network_id}")

    def with_caller(self, caller: Optional[str]) -> "ExecutionContext":
        return ExecutionContext(network_id=self.network_id, caller=caller)

    def to_dict(self) -> Dict[str, Any]:
        return {"network_id": self.network_id, "caller": self.caller}
