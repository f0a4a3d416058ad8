from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.config import LedgerConfig
from loyalty.core.validation import clean_message, require_identity, require_positive_points
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.economy.errors import (
    InsufficientBalanceError,
    ReceiverNotFoundError,
    SelfTransferError,
    SenderNotFoundError,
    TransferLimitExceededError,
)
from loyalty.economy.ledger.postings import (
    Party,
    append_transaction,
    apply_balance_change,
    ensure_active,
)
from loyalty.economy.ledger.types import TransactionType, TransferResult
from loyalty.services.member_cache import invalidate_after_write

logger = structlog.get_logger(__name__)


async def transfer(
    session: AsyncSession,
    *,
    config: LedgerConfig,
    sender_id: str,
    receiver_id: str,
    points: int,
    now_utc: datetime,
    message: str | None = None,
) -> TransferResult:
    clean_sender_id = require_identity(sender_id, field="senderId")
    clean_receiver_id = require_identity(receiver_id, field="receiverId")
    require_positive_points(points)
    if clean_sender_id == clean_receiver_id:
        raise SelfTransferError
    if config.max_transfer_points is not None and points > config.max_transfer_points:
        raise TransferLimitExceededError(
            f"transfers are limited to {config.max_transfer_points} points"
        )
    note = clean_message(message)

    locked = await MembersRepo.list_by_ids_for_update(session, (clean_sender_id, clean_receiver_id))
    sender = locked.get(clean_sender_id)
    if sender is None:
        raise SenderNotFoundError
    receiver = locked.get(clean_receiver_id)
    if receiver is None:
        raise ReceiverNotFoundError
    ensure_active(sender, role="sender")
    ensure_active(receiver, role="receiver")
    if not config.allow_negative_balance and sender.points < points:
        raise InsufficientBalanceError

    apply_balance_change(sender, delta=-points, config=config, now_utc=now_utc)
    apply_balance_change(receiver, delta=points, config=config, now_utc=now_utc)

    out_transaction = await append_transaction(
        session,
        transaction_type=TransactionType.TRANSFER_OUT,
        member=sender,
        points=-points,
        now_utc=now_utc,
        message=note,
        sender=Party.of(sender),
        receiver=Party.of(receiver),
        counterparty=receiver,
    )
    in_transaction = await append_transaction(
        session,
        transaction_type=TransactionType.TRANSFER_IN,
        member=receiver,
        points=points,
        now_utc=now_utc,
        message=note,
        sender=Party.of(sender),
        receiver=Party.of(receiver),
        counterparty=sender,
    )
    invalidate_after_write(session, sender.id, receiver.id)

    logger.info(
        "points_transferred",
        sender_id=sender.id,
        receiver_id=receiver.id,
        points=points,
    )
    return TransferResult(
        sender_id=sender.id,
        receiver_id=receiver.id,
        points=points,
        sender_balance=sender.points,
        receiver_balance=receiver.points,
        sender_tier=sender.tier,
        receiver_tier=receiver.tier,
        out_transaction_id=out_transaction.transaction_id,
        in_transaction_id=in_transaction.transaction_id,
    )
