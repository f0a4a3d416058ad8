from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.config import LedgerConfig
from loyalty.core.identifiers import issue_local_member_id
from loyalty.core.passwords import hash_password
from loyalty.core.validation import (
    normalize_email,
    normalize_phone,
    require_identity,
    require_login_name,
    require_name,
    require_password,
)
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.economy.errors import (
    AlreadyRegisteredError,
    DuplicateIdentityError,
    DuplicatePhoneError,
    InvalidReferralCodeError,
    PhoneInUseError,
)
from loyalty.economy.ledger.postings import Party, append_transaction, find_replay
from loyalty.economy.ledger.tiers import compute_tier
from loyalty.economy.ledger.types import RegisterResult, TransactionType
from loyalty.economy.referrals.service import ReferralService
from loyalty.services.member_cache import invalidate_after_write
from loyalty.services.member_directory import MemberDirectory, to_snapshot

logger = structlog.get_logger(__name__)

REGISTER_MESSAGE = "Registration grant"


async def register(
    session: AsyncSession,
    *,
    config: LedgerConfig,
    member_id: str | None,
    display_name: str,
    phone: str,
    now_utc: datetime,
    email: str | None = None,
    referral_code: str | None = None,
    login_name: str | None = None,
    password: str | None = None,
    idempotency_key: str | None = None,
) -> RegisterResult:
    clean_name = require_name(display_name)
    clean_phone = normalize_phone(phone)
    clean_email = normalize_email(email)
    clean_member_id = (
        require_identity(member_id) if member_id else issue_local_member_id(clean_phone)
    )
    clean_login_name: str | None = None
    password_hash: str | None = None
    if login_name or password:
        clean_login_name = require_login_name(login_name)
        password_hash = hash_password(require_password(password))
    clean_referral_code = (referral_code or "").strip() or None

    replay = await find_replay(
        session,
        idempotency_key=idempotency_key,
        transaction_type=TransactionType.REGISTER,
        member_id=None,
    )
    if replay is not None:
        existing = await MembersRepo.get_by_id(session, replay.member_id)
        if existing is None:
            raise AlreadyRegisteredError
        return RegisterResult(
            member=to_snapshot(existing),
            transaction_id=replay.transaction_id,
            referrer_id=await ReferralService.get_referrer_id(session, referee_id=existing.id),
            idempotent_replay=True,
        )

    if await MembersRepo.get_by_id(session, clean_member_id) is not None:
        raise AlreadyRegisteredError
    if await MembersRepo.get_by_phone(session, clean_phone) is not None:
        raise PhoneInUseError
    if clean_referral_code is not None:
        if await MemberDirectory.find_by_referral_code(session, clean_referral_code) is None:
            raise InvalidReferralCodeError

    try:
        member = await MemberDirectory.create(
            session,
            member_id=clean_member_id,
            display_name=clean_name,
            phone=clean_phone,
            email=clean_email,
            points=config.initial_grant,
            tier=compute_tier(config.initial_grant, config.tier_thresholds),
            referred_by=None,
            login_name=clean_login_name,
            password_hash=password_hash,
            now_utc=now_utc,
        )
    except DuplicatePhoneError as exc:
        raise PhoneInUseError from exc
    except DuplicateIdentityError as exc:
        raise AlreadyRegisteredError from exc

    transaction = await append_transaction(
        session,
        transaction_type=TransactionType.REGISTER,
        member=member,
        points=config.initial_grant,
        now_utc=now_utc,
        message=REGISTER_MESSAGE,
        receiver=Party.of(member),
        idempotency_key=idempotency_key or None,
    )

    referrer_id: str | None = None
    if clean_referral_code is not None:
        bind_result = await ReferralService.bind(
            session,
            referee_id=member.id,
            referral_code=clean_referral_code,
            now_utc=now_utc,
        )
        referrer_id = bind_result.referrer_id

    invalidate_after_write(session, member.id)
    logger.info(
        "member_registered",
        member_id=member.id,
        initial_grant=config.initial_grant,
        referrer_id=referrer_id,
    )
    return RegisterResult(
        member=to_snapshot(member),
        transaction_id=transaction.transaction_id,
        referrer_id=referrer_id,
    )
