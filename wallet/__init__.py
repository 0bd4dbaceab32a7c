"""
Wallet and Referral System for the OTP Marketplace

This module provides:
- In-memory record store for users, transactions and the OTP catalog
- Balance ledger: credits recorded against user wallets
- Referral engine: one-time bonus for referrer and referee on a qualifying deposit
- Admin approval workflow: pending → approved / rejected
"""

from .errors import (
    WalletServiceError,
    NotFoundError,
    UserNotFoundError,
    TransactionNotFoundError,
    UsernameTakenError,
    InvalidReferralCodeError,
    InvalidDepositError,
    UpstreamUnavailableError,
)
from .models import (
    TransactionStatus,
    TransactionType,
    User,
    Transaction,
    PendingTransaction,
    Service,
)
from .service import WalletService
from .storage import InMemoryStorage

__all__ = [
    "WalletServiceError",
    "NotFoundError",
    "UserNotFoundError",
    "TransactionNotFoundError",
    "UsernameTakenError",
    "InvalidReferralCodeError",
    "InvalidDepositError",
    "UpstreamUnavailableError",
    "TransactionStatus",
    "TransactionType",
    "User",
    "Transaction",
    "PendingTransaction",
    "Service",
    "WalletService",
    "InMemoryStorage",
]
