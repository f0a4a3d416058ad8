from __future__ import annotations

import re
from datetime import datetime
from uuid import uuid4

LOCAL_MEMBER_ID_PREFIX = "WEB-"
NON_DIGITS_RE = re.compile(r"\D")


def issue_local_member_id(phone: str) -> str:
    return f"{LOCAL_MEMBER_ID_PREFIX}{NON_DIGITS_RE.sub('', phone)}"


def new_transaction_id() -> str:
    return f"TXN-{uuid4().hex}"


def new_purchase_order_number(now_utc: datetime) -> str:
    return f"PUR-{now_utc:%Y%m%d%H%M%S}-{uuid4().hex[:8].upper()}"


def new_withdrawal_order_number(now_utc: datetime) -> str:
    return f"WD{now_utc:%Y%m%d%H%M%S}{uuid4().hex[:8].upper()}"
