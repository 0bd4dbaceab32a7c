import secrets
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from .errors import TransactionNotFoundError, UserNotFoundError, UsernameTakenError
from .models import (
    PendingTransaction,
    Service,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
)


OTP_SERVICES = [
    {"id": 1, "name": "Google Photos", "price": Decimal("4.53"), "icon": "SiGooglephotos"},
    {"id": 2, "name": "Adobe Scan", "price": Decimal("1.22"), "icon": "SiAdobeacrobatreader"},
    {"id": 3, "name": "WhatsApp", "price": Decimal("3.52"), "icon": "SiWhatsapp"},
    {"id": 4, "name": "Telegram", "price": Decimal("2.75"), "icon": "SiTelegram"},
    {"id": 5, "name": "Instagram", "price": Decimal("3.10"), "icon": "SiInstagram"},
    {"id": 6, "name": "Facebook", "price": Decimal("2.40"), "icon": "SiFacebook"},
    {"id": 7, "name": "Amazon", "price": Decimal("5.05"), "icon": "SiAmazon"},
    {"id": 8, "name": "Paytm", "price": Decimal("3.80"), "icon": "SiPaytm"},
    {"id": 9, "name": "PhonePe", "price": Decimal("3.65"), "icon": "SiPhonepe"},
    {"id": 10, "name": "Swiggy", "price": Decimal("2.20"), "icon": "SiSwiggy"},
    {"id": 11, "name": "Zomato", "price": Decimal("2.15"), "icon": "SiZomato"},
]


class InMemoryStorage:
    """
    Process-local record store for users, transactions and the OTP catalog.

    Records are kept as plain dicts; every accessor returns a fresh model so
    callers never hold a reference into the store. All writers (and the
    composite flows in WalletService) serialise on ``lock``.
    """

    def __init__(self, services: Optional[list[dict]] = None):
        self.lock = threading.RLock()
        self.users: dict[int, dict] = {}
        self.transactions: dict[int, dict] = {}
        self.otp_services: dict[int, dict] = {}
        self.username_index: dict[str, int] = {}
        self.refer_code_index: dict[str, int] = {}
        self._next_user_id = 1
        self._next_transaction_id = 1
        self._seed_services(OTP_SERVICES if services is None else services)

    def _seed_services(self, services: list[dict]) -> None:
        for service in services:
            self.otp_services[service["id"]] = dict(service)

    def _generate_refer_code(self) -> str:
        while True:
            code = secrets.token_hex(4).upper()
            if code not in self.refer_code_index:
                return code

    # --- users ---

    def create_user(
        self,
        username: str,
        password_hash: str,
        referred_by: Optional[str] = None,
        is_admin: bool = False,
    ) -> User:
        with self.lock:
            if username in self.username_index:
                raise UsernameTakenError(f"Username {username!r} already exists")

            user_id = self._next_user_id
            self._next_user_id += 1
            user_data = {
                "id": user_id,
                "username": username,
                "password_hash": password_hash,
                "wallet_balance": Decimal("0"),
                "refer_code": self._generate_refer_code(),
                "referred_by": referred_by,
                "referral_reward_claimed": False,
                "is_admin": is_admin,
            }
            self.users[user_id] = user_data
            self.username_index[username] = user_id
            self.refer_code_index[user_data["refer_code"]] = user_id
            return User(**user_data)

    def get_user(self, user_id: int) -> Optional[User]:
        user_data = self.users.get(user_id)
        return User(**user_data) if user_data else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        user_id = self.username_index.get(username)
        return self.get_user(user_id) if user_id is not None else None

    def get_user_by_refer_code(self, code: str) -> Optional[User]:
        user_id = self.refer_code_index.get(code)
        return self.get_user(user_id) if user_id is not None else None

    def update_user(self, user_id: int, **changes: Any) -> User:
        with self.lock:
            user_data = self.users.get(user_id)
            if not user_data:
                raise UserNotFoundError(f"User {user_id} not found")
            user_data.update(changes)
            return User(**user_data)

    def list_referred_users(self, refer_code: str) -> list[User]:
        with self.lock:
            return [User(**u) for u in self.users.values() if u["referred_by"] == refer_code]

    def count_users(self) -> int:
        return len(self.users)

    # --- transactions ---

    def create_transaction(
        self,
        user_id: int,
        amount: Decimal,
        utr_number: str,
        type: TransactionType = TransactionType.DEPOSIT,
        status: TransactionStatus = TransactionStatus.PENDING,
    ) -> Transaction:
        with self.lock:
            transaction_id = self._next_transaction_id
            self._next_transaction_id += 1
            transaction_data = {
                "id": transaction_id,
                "user_id": user_id,
                "amount": amount,
                "utr_number": utr_number,
                "status": status,
                "created_at": datetime.now(timezone.utc),
                "type": type,
            }
            self.transactions[transaction_id] = transaction_data
            return Transaction(**transaction_data)

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        transaction_data = self.transactions.get(transaction_id)
        return Transaction(**transaction_data) if transaction_data else None

    def update_transaction(self, transaction_id: int, **changes: Any) -> Transaction:
        with self.lock:
            transaction_data = self.transactions.get(transaction_id)
            if not transaction_data:
                raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
            transaction_data.update(changes)
            return Transaction(**transaction_data)

    def list_transactions(self, user_id: int) -> list[Transaction]:
        with self.lock:
            return self._newest_first(
                Transaction(**t) for t in self.transactions.values() if t["user_id"] == user_id
            )

    def list_all_transactions(self) -> list[Transaction]:
        with self.lock:
            return self._newest_first(Transaction(**t) for t in self.transactions.values())

    def list_pending_transactions(self) -> list[PendingTransaction]:
        pending = []
        with self.lock:
            for t in self.transactions.values():
                if t["status"] != TransactionStatus.PENDING:
                    continue
                owner = self.users.get(t["user_id"])
                pending.append(PendingTransaction(**t, username=owner["username"] if owner else None))
        return self._newest_first(pending)

    @staticmethod
    def _newest_first(transactions) -> list:
        return sorted(transactions, key=lambda t: (t.created_at, t.id), reverse=True)

    # --- catalog ---

    def list_services(self) -> list[Service]:
        return [Service(**s) for s in sorted(self.otp_services.values(), key=lambda s: s["id"])]
