from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TransactionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    REFERRAL_BONUS = "referral_bonus"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserResponse(CamelModel):
    id: int
    username: str
    wallet_balance: Decimal = Decimal("0")
    refer_code: str
    referred_by: Optional[str] = None
    referral_reward_claimed: bool = False
    is_admin: bool = False


class User(UserResponse):
    password_hash: str = Field(exclude=True, repr=False)


class Transaction(CamelModel):
    id: int
    user_id: int
    amount: Decimal
    utr_number: str
    status: TransactionStatus
    created_at: datetime
    type: TransactionType = TransactionType.DEPOSIT


class PendingTransaction(Transaction):
    username: Optional[str] = None


class Service(CamelModel):
    id: int
    name: str
    price: Decimal
    icon: str


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    referral_code: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {"username": "ravi", "password": "s3cret", "referralCode": "9F2A11C0"}
    })


class LoginRequest(CamelModel):
    username: str
    password: str


class DepositRequest(CamelModel):
    amount: Decimal = Field(..., gt=0)
    utr_number: str = Field(..., min_length=1, description="Payment reference from the UPI app")

    model_config = ConfigDict(json_schema_extra={
        "example": {"amount": "150.00", "utrNumber": "412345678901"}
    })


class UpdateTransactionRequest(CamelModel):
    status: TransactionStatus

    @field_validator("status")
    @classmethod
    def must_be_terminal(cls, value: TransactionStatus) -> TransactionStatus:
        if value == TransactionStatus.PENDING:
            raise ValueError("status must be approved or rejected")
        return value


class BalanceResponse(CamelModel):
    balance: Decimal


class DepositResponse(CamelModel):
    transaction: Transaction
    user: UserResponse


class ReferralStats(CamelModel):
    total_invites: int
    successful_referrals: int
    total_earned: Decimal


class ReferralValidation(CamelModel):
    valid: bool


class AdminStats(CamelModel):
    total_users: int
    total_deposits: Decimal
    today_deposits: Decimal


class MessageResponse(CamelModel):
    message: str
