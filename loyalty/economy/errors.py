from __future__ import annotations

KIND_NOT_FOUND = "NotFound"
KIND_DUPLICATE = "Duplicate"
KIND_INSUFFICIENT_BALANCE = "InsufficientBalance"
KIND_INVALID_AMOUNT = "InvalidAmount"
KIND_RATE_LIMITED = "RateLimited"
KIND_VALIDATION_FAILED = "ValidationFailed"
KIND_STORE_UNAVAILABLE = "StoreUnavailable"


class LedgerError(Exception):
    kind: str = KIND_VALIDATION_FAILED
    code: str = "LedgerError"
    default_message: str = "request failed"
    retryable: bool = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(LedgerError):
    kind = KIND_NOT_FOUND
    code = "NotFound"
    default_message = "record not found"


class MemberNotFoundError(NotFoundError):
    code = "MemberNotFound"
    default_message = "member not found"


class SenderNotFoundError(MemberNotFoundError):
    code = "SenderNotFound"
    default_message = "sender not found"


class ReceiverNotFoundError(MemberNotFoundError):
    code = "ReceiverNotFound"
    default_message = "receiver not found"


class ReferrerNotFoundError(MemberNotFoundError):
    code = "ReferrerNotFound"
    default_message = "referrer not found"


class RecordNotFoundError(NotFoundError):
    code = "RecordNotFound"
    default_message = "order not found"


class DuplicateError(LedgerError):
    kind = KIND_DUPLICATE
    code = "Duplicate"
    default_message = "record already exists"


class DuplicateIdentityError(DuplicateError):
    code = "DuplicateIdentity"
    default_message = "a member with this identity already exists"


class DuplicatePhoneError(DuplicateError):
    code = "DuplicatePhone"
    default_message = "a member with this phone already exists"


class DuplicateLoginNameError(DuplicateError):
    code = "DuplicateLoginName"
    default_message = "this login name is already taken"


class AlreadyRegisteredError(DuplicateIdentityError):
    code = "AlreadyRegistered"
    default_message = "this account is already registered"


class PhoneInUseError(DuplicatePhoneError):
    code = "PhoneInUse"
    default_message = "this phone number is already in use"


class AlreadyBoundError(DuplicateError):
    code = "AlreadyBound"
    default_message = "this member is already bound to a referrer"


class InsufficientBalanceError(LedgerError):
    kind = KIND_INSUFFICIENT_BALANCE
    code = "InsufficientBalance"
    default_message = "insufficient points balance"


class NegativeResultingBalanceError(InsufficientBalanceError):
    code = "NegativeResultingBalance"
    default_message = "adjustment would make the balance negative"


class InvalidAmountError(LedgerError):
    kind = KIND_INVALID_AMOUNT
    code = "InvalidAmount"
    default_message = "points must be a positive integer"


class BelowMinimumWithdrawalError(InvalidAmountError):
    code = "BelowMinimumWithdrawal"
    default_message = "withdrawal is below the minimum amount"


class TransferLimitExceededError(InvalidAmountError):
    code = "TransferLimitExceeded"
    default_message = "transfer exceeds the maximum allowed points"


class ValidationFailedError(LedgerError):
    kind = KIND_VALIDATION_FAILED
    code = "ValidationFailed"
    default_message = "request validation failed"


class SelfTransferError(ValidationFailedError):
    code = "SelfTransfer"
    default_message = "cannot transfer points to yourself"


class SelfReferralError(ValidationFailedError):
    code = "SelfReferral"
    default_message = "cannot use your own referral code"


class InvalidReferralCodeError(ValidationFailedError):
    code = "InvalidReferralCode"
    default_message = "referral code is invalid"


class MemberNotActiveError(ValidationFailedError):
    code = "MemberNotActive"
    default_message = "member account is not active"


class InvalidStatusTransitionError(ValidationFailedError):
    code = "InvalidStatusTransition"
    default_message = "status transition is not allowed"


class InvalidCredentialsError(ValidationFailedError):
    code = "InvalidCredentials"
    default_message = "invalid username or password"


class RateLimitedError(LedgerError):
    kind = KIND_RATE_LIMITED
    code = "RateLimited"
    default_message = "too many requests, please retry later"
    retryable = True

    def __init__(self, retry_after_seconds: int, message: str | None = None) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)


class StoreUnavailableError(LedgerError):
    kind = KIND_STORE_UNAVAILABLE
    code = "StoreUnavailable"
    default_message = "storage is temporarily unavailable, please retry"
    retryable = True


class ReferralCodeExhaustedError(StoreUnavailableError):
    code = "ReferralCodeExhausted"
    default_message = "unable to allocate a unique referral code"
