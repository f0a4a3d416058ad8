from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from loyalty.economy.errors import MemberNotFoundError
from loyalty.economy.ledger.service import LedgerService, snapshot_to_dict
from loyalty.economy.ledger.types import PurchaseResult, WithdrawResult
from loyalty.economy.referrals.service import ReferralService
from loyalty.services import member_cache
from loyalty.services.member_directory import MemberDirectory, to_snapshot

from .actions_helpers import ActionContext, ActionOutcome, run_in_transaction, to_payload
from .actions_models import (
    AdjustPointsRequest,
    BindReferralRequest,
    CheckUserRequest,
    EmptyRequest,
    LoginRequest,
    MemberRequest,
    PagedMemberRequest,
    PagedRequest,
    PurchaseListRequest,
    PurchaseRequest,
    PurchaseStatsRequest,
    RegisterRequest,
    SetCredentialsRequest,
    StatusUpdateRequest,
    TransferRequest,
    UpdateProfileRequest,
    VerifyReferralRequest,
    WithdrawalListRequest,
    WithdrawRequest,
)

REFERRAL_REWARD_PENDING_MESSAGE = "referral reward pending"


def _referrer_reward_fields(result: PurchaseResult | WithdrawResult) -> dict[str, object]:
    if result.referrer_id is None:
        return {}
    return {
        "referrerId": result.referrer_id,
        "referrerReward": result.referrer_reward,
        "referrerRewardStatus": result.referrer_reward_status,
    }


async def handle_register(payload: RegisterRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.register(
            session,
            config=context.ledger_config,
            member_id=payload.identity,
            display_name=payload.name,
            phone=payload.phone,
            email=payload.email,
            referral_code=payload.referral_code,
            login_name=payload.username,
            password=payload.password,
            idempotency_key=payload.idempotency_key,
            now_utc=context.now_utc,
        )

    result = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(
        data={
            "memberId": result.member.member_id,
            "points": result.member.points,
            "tier": result.member.tier,
            "referralCode": result.member.referral_code,
            "referrerId": result.referrer_id,
            "transactionId": result.transaction_id,
            "idempotent_replay": result.idempotent_replay,
        }
    )


async def handle_transfer(payload: TransferRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.transfer(
            session,
            config=context.ledger_config,
            sender_id=payload.sender_id,
            receiver_id=payload.receiver_id,
            points=payload.points,
            message=payload.message,
            now_utc=context.now_utc,
        )

    result = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data=to_payload(result))


async def handle_adjust_points(
    payload: AdjustPointsRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.admin_adjust(
            session,
            config=context.ledger_config,
            member_id=payload.member_id,
            delta=payload.delta,
            reason=payload.reason,
            now_utc=context.now_utc,
        )

    result = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data=to_payload(result))


async def handle_purchase(payload: PurchaseRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.purchase(
            session,
            config=context.ledger_config,
            member_id=payload.member_id,
            points=payload.points,
            payment_method=payload.payment_method,
            amount=payload.amount,
            payment_status=payload.payment_status,
            invoice_number=payload.invoice_number,
            notes=payload.notes,
            payment_meta=payload.payment_meta,
            client_ip=context.client_ip,
            idempotency_key=payload.idempotency_key,
            now_utc=context.now_utc,
        )

    result = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(
        data={
            "orderNumber": result.order_number,
            "memberId": result.member_id,
            "points": result.points,
            "amount": result.amount,
            "newBalance": result.new_balance,
            "tier": result.tier,
            "transactionId": result.transaction_id,
            **_referrer_reward_fields(result),
            "idempotent_replay": result.idempotent_replay,
        },
        degraded=result.degraded,
        message=f"purchase completed, {REFERRAL_REWARD_PENDING_MESSAGE}" if result.degraded else None,
    )


async def handle_withdraw(payload: WithdrawRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.withdraw(
            session,
            config=context.ledger_config,
            member_id=payload.member_id,
            points=payload.points,
            bank_name=payload.bank_name,
            bank_code=payload.bank_code,
            bank_account=payload.bank_account,
            account_holder=payload.account_holder,
            notes=payload.notes,
            client_ip=context.client_ip,
            idempotency_key=payload.idempotency_key,
            now_utc=context.now_utc,
        )

    result = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(
        data={
            "orderNumber": result.order_number,
            "memberId": result.member_id,
            "points": result.points,
            "payoutAmount": result.payout_amount,
            "fee": result.fee,
            "amountBeforeFee": result.amount_before_fee,
            "newBalance": result.new_balance,
            "tier": result.tier,
            "status": result.status,
            "transactionId": result.transaction_id,
            **_referrer_reward_fields(result),
            "idempotent_replay": result.idempotent_replay,
        },
        degraded=result.degraded,
        message=(
            f"withdrawal requested, {REFERRAL_REWARD_PENDING_MESSAGE}" if result.degraded else None
        ),
    )


async def handle_profile(payload: MemberRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await member_cache.get_or_load(session, payload.member_id)

    snapshot = await run_in_transaction(_operation, settings=context.settings)
    if snapshot is None:
        raise MemberNotFoundError
    return ActionOutcome(data={"member": snapshot_to_dict(snapshot)})


async def handle_check(payload: MemberRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await MemberDirectory.find_by_id(session, payload.member_id)

    member = await run_in_transaction(_operation, settings=context.settings)
    if member is None:
        return ActionOutcome(data={"exists": False, "memberId": payload.member_id})
    return ActionOutcome(
        data={
            "exists": True,
            "memberId": member.id,
            "name": member.display_name,
            "status": member.status,
        }
    )


async def handle_check_user(payload: CheckUserRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await MemberDirectory.find_by_phone(session, payload.phone)

    member = await run_in_transaction(_operation, settings=context.settings)
    if member is None:
        return ActionOutcome(data={"exists": False})
    return ActionOutcome(
        data={"exists": True, "memberId": member.id, "name": member.display_name}
    )


async def handle_transactions(
    payload: PagedMemberRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.list_transactions(
            session,
            member_id=payload.member_id,
            page=payload.page,
            page_size=payload.page_size,
        )

    page = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"page": page})


async def handle_purchase_history(
    payload: PagedMemberRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.list_purchases(
            session,
            member_id=payload.member_id,
            page=payload.page,
            page_size=payload.page_size,
        )

    page = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"page": page})


async def handle_withdrawal_history(
    payload: PagedMemberRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.list_withdrawals(
            session,
            member_id=payload.member_id,
            page=payload.page,
            page_size=payload.page_size,
        )

    page = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"page": page})


async def handle_update_profile(
    payload: UpdateProfileRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        member = await MemberDirectory.update_profile(
            session,
            member_id=payload.member_id,
            display_name=payload.name,
            phone=payload.phone,
            email=payload.email,
            now_utc=context.now_utc,
        )
        member_cache.invalidate_after_write(session, member.id)
        return to_snapshot(member)

    snapshot = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"member": snapshot_to_dict(snapshot)})


async def handle_set_credentials(
    payload: SetCredentialsRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        member = await MemberDirectory.set_credentials(
            session,
            member_id=payload.member_id,
            login_name=payload.username,
            password=payload.password,
            now_utc=context.now_utc,
        )
        member_cache.invalidate_after_write(session, member.id)
        return member.id, member.login_name

    member_id, login_name = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"memberId": member_id, "username": login_name})


async def handle_login(payload: LoginRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        member = await MemberDirectory.authenticate(
            session,
            login=payload.username,
            password=payload.password,
            now_utc=context.now_utc,
        )
        return to_snapshot(member)

    snapshot = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"member": snapshot_to_dict(snapshot)})


async def handle_verify_referral(
    payload: VerifyReferralRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await ReferralService.verify_referral_code(
            session,
            referral_code=payload.referral_code,
        )

    referrer = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"valid": True, "referrer": referrer})


async def handle_my_referrals(payload: MemberRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await ReferralService.get_overview(session, member_id=payload.member_id)

    overview = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"referrals": overview})


async def handle_bind_referral(
    payload: BindReferralRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await ReferralService.bind(
            session,
            referee_id=payload.member_id,
            referral_code=payload.referral_code,
            now_utc=context.now_utc,
        )

    result = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"referral": result})


async def handle_update_withdrawal_status(
    payload: StatusUpdateRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.update_withdrawal_status(
            session,
            order_number=payload.order_number,
            status=payload.status,
            notes=payload.notes,
            now_utc=context.now_utc,
        )

    result = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data=to_payload(result))


async def handle_update_purchase_status(
    payload: StatusUpdateRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.update_purchase_status(
            session,
            order_number=payload.order_number,
            status=payload.status,
            notes=payload.notes,
            now_utc=context.now_utc,
        )

    result = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data=to_payload(result))


async def handle_admin_stats(payload: EmptyRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.admin_stats(session, now_utc=context.now_utc)

    stats = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"stats": stats})


async def handle_admin_members(payload: PagedRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.admin_members(
            session,
            page=payload.page,
            page_size=payload.page_size,
        )

    page = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"page": page})


async def handle_all_purchases(
    payload: PurchaseListRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.list_all_purchases(
            session,
            page=payload.page,
            page_size=payload.page_size,
            status=payload.status,
            payment_status=payload.payment_status,
        )

    page = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"page": page})


async def handle_all_withdrawals(
    payload: WithdrawalListRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.list_all_withdrawals(
            session,
            page=payload.page,
            page_size=payload.page_size,
            status=payload.status,
        )

    page = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"page": page})


async def handle_purchase_stats(
    payload: PurchaseStatsRequest,
    context: ActionContext,
) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await LedgerService.purchase_stats(session, member_id=payload.member_id)

    stats = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"stats": stats})


async def handle_referral_stats(payload: EmptyRequest, context: ActionContext) -> ActionOutcome:
    async def _operation(session: AsyncSession):
        return await ReferralService.get_program_stats(session)

    stats = await run_in_transaction(_operation, settings=context.settings)
    return ActionOutcome(data={"stats": stats})
