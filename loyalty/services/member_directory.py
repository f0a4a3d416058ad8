from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.core.passwords import hash_password, verify_password
from loyalty.core.referral_codes import (
    FALLBACK_REFERRAL_CODE_LENGTH,
    REFERRAL_CODE_LENGTH,
    generate_referral_code,
    is_well_formed_referral_code,
)
from loyalty.core.validation import (
    normalize_email,
    normalize_phone,
    require_login_name,
    require_name,
    require_password,
)
from loyalty.db.models.members import Member
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.economy.errors import (
    DuplicateIdentityError,
    DuplicateLoginNameError,
    DuplicatePhoneError,
    InvalidCredentialsError,
    MemberNotActiveError,
    MemberNotFoundError,
    ReferralCodeExhaustedError,
    ValidationFailedError,
)
from loyalty.economy.ledger.types import MemberSnapshot, MemberStatus

logger = structlog.get_logger(__name__)

REFERRAL_CODE_ATTEMPTS_PER_LENGTH = 10


def to_snapshot(member: Member) -> MemberSnapshot:
    return MemberSnapshot(
        member_id=member.id,
        display_name=member.display_name,
        phone=member.phone,
        email=member.email,
        points=member.points,
        tier=member.tier,
        lifetime_earned=member.lifetime_earned,
        lifetime_spent=member.lifetime_spent,
        referral_code=member.referral_code,
        referred_by=member.referred_by,
        status=member.status,
        login_name=member.login_name,
        created_at=member.created_at,
        updated_at=member.updated_at,
        last_login_at=member.last_login_at,
    )


class MemberDirectory:
    @staticmethod
    async def find_by_id(session: AsyncSession, member_id: str) -> Member | None:
        return await MembersRepo.get_by_id(session, member_id)

    @staticmethod
    async def find_by_phone(session: AsyncSession, phone: str) -> Member | None:
        return await MembersRepo.get_by_phone(session, normalize_phone(phone))

    @staticmethod
    async def find_by_referral_code(session: AsyncSession, referral_code: str) -> Member | None:
        code = (referral_code or "").strip()
        if not is_well_formed_referral_code(code):
            return None
        return await MembersRepo.get_by_referral_code(session, code)

    @staticmethod
    async def find_by_login_name(session: AsyncSession, login_name: str) -> Member | None:
        name = (login_name or "").strip()
        if not name:
            return None
        return await MembersRepo.get_by_login_name(session, name)

    @staticmethod
    async def _generate_unique_referral_code(session: AsyncSession) -> str:
        for length in (REFERRAL_CODE_LENGTH, FALLBACK_REFERRAL_CODE_LENGTH):
            for _ in range(REFERRAL_CODE_ATTEMPTS_PER_LENGTH):
                referral_code = generate_referral_code(length)
                if not await MembersRepo.referral_code_exists(session, referral_code):
                    return referral_code
            logger.warning("referral_code_collisions_exhausted", length=length)
        raise ReferralCodeExhaustedError

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        member_id: str,
        display_name: str,
        phone: str,
        email: str | None,
        points: int,
        tier: str,
        referred_by: str | None,
        login_name: str | None,
        password_hash: str | None,
        now_utc: datetime,
    ) -> Member:
        if await MembersRepo.get_by_id(session, member_id) is not None:
            raise DuplicateIdentityError
        if await MembersRepo.get_by_phone(session, phone) is not None:
            raise DuplicatePhoneError
        if login_name is not None and await MembersRepo.get_by_login_name(session, login_name):
            raise DuplicateLoginNameError

        referral_code = await MemberDirectory._generate_unique_referral_code(session)
        member = Member(
            id=member_id,
            display_name=display_name,
            phone=phone,
            email=email,
            points=points,
            tier=tier,
            lifetime_earned=max(0, points),
            lifetime_spent=0,
            referral_code=referral_code,
            referred_by=referred_by,
            status=MemberStatus.ACTIVE.value,
            login_name=login_name,
            password_hash=password_hash,
            created_at=now_utc,
            updated_at=now_utc,
            last_login_at=None,
        )
        try:
            async with session.begin_nested():
                await MembersRepo.create(session, member=member)
        except IntegrityError as exc:
            # A concurrent registration won the race on one of the unique columns.
            if await MembersRepo.get_by_phone(session, phone) is not None:
                raise DuplicatePhoneError from exc
            if login_name is not None and await MembersRepo.get_by_login_name(session, login_name):
                raise DuplicateLoginNameError from exc
            raise DuplicateIdentityError from exc
        return member

    @staticmethod
    async def update_profile(
        session: AsyncSession,
        *,
        member_id: str,
        display_name: str | None,
        phone: str | None,
        email: str | None,
        now_utc: datetime,
    ) -> Member:
        member = await MembersRepo.get_by_id_for_update(session, member_id)
        if member is None:
            raise MemberNotFoundError

        if display_name is not None:
            member.display_name = require_name(display_name)
        if phone is not None:
            normalized_phone = normalize_phone(phone)
            if normalized_phone != member.phone:
                owner = await MembersRepo.get_by_phone(session, normalized_phone)
                if owner is not None and owner.id != member.id:
                    raise DuplicatePhoneError
                member.phone = normalized_phone
        if email is not None:
            member.email = normalize_email(email)
        member.updated_at = now_utc

        try:
            async with session.begin_nested():
                await session.flush()
        except IntegrityError as exc:
            raise DuplicatePhoneError from exc
        return member

    @staticmethod
    def update_balance_fields(
        member: Member,
        *,
        points: int,
        tier: str,
        now_utc: datetime,
        earned: int = 0,
        spent: int = 0,
    ) -> None:
        """Writes the denormalized balance columns of a row the caller holds locked."""
        member.points = points
        member.tier = tier
        member.lifetime_earned += earned
        member.lifetime_spent += spent
        member.updated_at = now_utc

    @staticmethod
    async def set_credentials(
        session: AsyncSession,
        *,
        member_id: str,
        login_name: str,
        password: str,
        now_utc: datetime,
    ) -> Member:
        clean_login_name = require_login_name(login_name)
        clean_password = require_password(password)

        member = await MembersRepo.get_by_id_for_update(session, member_id)
        if member is None:
            raise MemberNotFoundError

        owner = await MembersRepo.get_by_login_name(session, clean_login_name)
        if owner is not None and owner.id != member.id:
            raise DuplicateLoginNameError

        member.login_name = clean_login_name
        member.password_hash = hash_password(clean_password)
        member.updated_at = now_utc
        try:
            async with session.begin_nested():
                await session.flush()
        except IntegrityError as exc:
            raise DuplicateLoginNameError from exc
        return member

    @staticmethod
    async def authenticate(
        session: AsyncSession,
        *,
        login: str,
        password: str,
        now_utc: datetime,
    ) -> Member:
        login_value = (login or "").strip()
        if not login_value or not password:
            raise InvalidCredentialsError

        member = await MembersRepo.get_by_login_name(session, login_value)
        if member is None:
            try:
                member = await MembersRepo.get_by_phone(session, normalize_phone(login_value))
            except ValidationFailedError:
                member = None
        if member is None or not verify_password(password, member.password_hash):
            raise InvalidCredentialsError
        if member.status != MemberStatus.ACTIVE.value:
            raise MemberNotActiveError

        member.last_login_at = now_utc
        member.updated_at = now_utc
        await session.flush()
        return member
