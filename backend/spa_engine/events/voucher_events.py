"""Gift voucher domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass
class VoucherPurchased:
    """Fired after a voucher is issued from a template."""

    voucher_id: str
    template_id: str
    code: str
    purchased_by_id: str
    original_value: Decimal
    expires_at: datetime
    recipient_name: Optional[str] = None
    recipient_email: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VoucherRedeemed:
    """Fired after a usage row is appended to a voucher's ledger."""

    voucher_id: str
    usage_id: str
    amount_used: Decimal
    remaining_value: Decimal
    status: str
    used_at: datetime
    booking_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
