from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MEMBER_ID_ALIASES = AliasChoices("memberId", "member_id", "identity", "userId", "user_id")


class ActionRequest(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    action: str = Field(min_length=1, max_length=64)


class EmptyRequest(ActionRequest):
    pass


class MemberRequest(ActionRequest):
    member_id: str = Field(min_length=1, max_length=64, validation_alias=MEMBER_ID_ALIASES)


class PagedMemberRequest(MemberRequest):
    page: int = 1
    page_size: int = 20


class PagedRequest(ActionRequest):
    page: int = 1
    page_size: int = 20


class PurchaseListRequest(PagedRequest):
    status: str | None = Field(default=None, max_length=16)
    payment_status: str | None = Field(default=None, max_length=32)


class WithdrawalListRequest(PagedRequest):
    status: str | None = Field(default=None, max_length=16)


class PurchaseStatsRequest(ActionRequest):
    member_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=64,
        validation_alias=MEMBER_ID_ALIASES,
    )


class RegisterRequest(ActionRequest):
    identity: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=MEMBER_ID_ALIASES,
    )
    name: str = Field(
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices("name", "displayName", "display_name"),
    )
    phone: str = Field(min_length=1, max_length=32)
    email: str | None = Field(default=None, max_length=254)
    referral_code: str | None = Field(default=None, max_length=16)
    username: str | None = Field(default=None, max_length=64)
    password: str | None = Field(default=None, max_length=128)
    idempotency_key: str | None = Field(default=None, max_length=96)


class RegisterPasswordRequest(RegisterRequest):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=128)


class TransferRequest(ActionRequest):
    sender_id: str = Field(min_length=1, max_length=64)
    receiver_id: str = Field(min_length=1, max_length=64)
    points: int
    message: str | None = Field(default=None, max_length=256)


class AdjustPointsRequest(MemberRequest):
    delta: int = Field(validation_alias=AliasChoices("delta", "points"))
    reason: str | None = Field(default=None, max_length=256)


class PurchaseRequest(MemberRequest):
    points: int
    payment_method: str | None = Field(default=None, max_length=32)
    amount: Decimal | None = None
    payment_status: str | None = Field(default=None, max_length=32)
    invoice_number: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=256)
    payment_meta: dict[str, Any] | None = None
    idempotency_key: str | None = Field(default=None, max_length=96)


class WithdrawRequest(MemberRequest):
    points: int
    bank_name: str | None = Field(default=None, max_length=64)
    bank_code: str | None = Field(default=None, max_length=16)
    bank_account: str | None = Field(default=None, max_length=64)
    account_holder: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("accountHolder", "account_holder", "accountName"),
    )
    notes: str | None = Field(default=None, max_length=256)
    idempotency_key: str | None = Field(default=None, max_length=96)


class UpdateProfileRequest(MemberRequest):
    name: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("name", "displayName", "display_name"),
    )
    phone: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=254)


class SetCredentialsRequest(MemberRequest):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=128)


class LoginRequest(ActionRequest):
    username: str = Field(
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices("username", "login", "phone"),
    )
    password: str = Field(min_length=1, max_length=128)


class CheckUserRequest(ActionRequest):
    phone: str = Field(min_length=1, max_length=32)


class VerifyReferralRequest(ActionRequest):
    referral_code: str = Field(min_length=1, max_length=16)


class BindReferralRequest(MemberRequest):
    referral_code: str = Field(min_length=1, max_length=16)


class StatusUpdateRequest(ActionRequest):
    order_number: str = Field(min_length=1, max_length=40)
    status: str = Field(min_length=1, max_length=16)
    notes: str | None = Field(default=None, max_length=256)
