"""Small value objects shared by services and pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# markdown palette has no purple/yellow
_STREAMLIT_COLORS = {"purple": "violet", "yellow": "orange"}


@dataclass(frozen=True)
class Badge:
    label: str
    color: str

    def markdown(self) -> str:
        """Streamlit colored-text badge, e.g. ``:green-background[Accepted]``."""
        color = _STREAMLIT_COLORS.get(self.color, self.color)
        return f":{color}-background[{self.label}]"


@dataclass
class AcceptResult:
    bid: Dict[str, Any]
    project: Dict[str, Any]
    conversation_id: Optional[str] = None
    rejected_bid_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TokenBalances:
    total: int
    free: int
    paid: int
