import hmac
import threading
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterator, Optional

from rules import ActionType, RuleEngine, TriggerEvent, referral_rules

from .config import Settings, get_settings
from .errors import (
    InvalidDepositError,
    InvalidReferralCodeError,
    TransactionNotFoundError,
    UserNotFoundError,
    UsernameTakenError,
)
from .logger import get_logger
from .models import (
    AdminStats,
    PendingTransaction,
    ReferralStats,
    Service,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
)
from .security import check_password, hash_password
from .sheets import SheetsClient
from .storage import InMemoryStorage

logger = get_logger(__name__)


def _referral_reference(counterparty: str) -> str:
    return f"REFERRAL-{counterparty}"


class WalletService:
    """
    Balance ledger, referral engine and deposit approval workflow on top of
    an InMemoryStorage.

    Composite flows hold the storage lock for their whole duration, so a
    balance credit and the records that explain it are applied together.
    Spreadsheet notifications raised inside a flow are queued and sent once
    the outermost flow has released the lock.
    """

    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        settings: Optional[Settings] = None,
        sheets: Optional[SheetsClient] = None,
        rule_engine: Optional[RuleEngine] = None,
    ):
        self.storage = storage or InMemoryStorage()
        self.settings = settings or get_settings()
        self.sheets = sheets or SheetsClient()
        self.rule_engine = rule_engine or RuleEngine(
            referral_rules(self.settings.qualifying_deposit, self.settings.referral_bonus)
        )
        self._local = threading.local()

    @contextmanager
    def _write_scope(self) -> Iterator[list[Callable[[], None]]]:
        outbox = getattr(self._local, "outbox", None)
        if outbox is not None:
            with self.storage.lock:
                yield outbox
            return

        outbox = self._local.outbox = []
        try:
            with self.storage.lock:
                yield outbox
        finally:
            self._local.outbox = None
            for notify in outbox:
                notify()

    # --- accounts ---

    def register_user(self, username: str, password: str, referral_code: Optional[str] = None) -> User:
        # The admin account only comes into being through an admin credential login
        if username == self.settings.admin_username:
            raise UsernameTakenError("Username already exists")

        with self._write_scope() as outbox:
            if self.storage.get_user_by_username(username):
                raise UsernameTakenError("Username already exists")

            referrer = None
            if referral_code:
                referrer = self.storage.get_user_by_refer_code(referral_code)
                if not referrer:
                    raise InvalidReferralCodeError("Invalid referral code")

            user = self.storage.create_user(
                username,
                hash_password(password),
                referred_by=referrer.refer_code if referrer else None,
            )
            logger.info("user_registered", user_id=user.id, referred_by=user.referred_by)
            outbox.append(lambda: self.sheets.record_referral(
                user.username, user.refer_code, referred_by=referrer.username if referrer else ""
            ))

        return user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        if username == self.settings.admin_username:
            if not self._is_admin_credentials(password):
                return None
            return self._provision_admin(username, password)

        if self.sheets.validates_credentials and not self.sheets.validate_credentials(username, password):
            return None

        user = self.storage.get_user_by_username(username)
        if user:
            return user if check_password(password, user.password_hash) else None

        if not self.sheets.validates_credentials:
            return None

        # Known upstream but not yet local
        try:
            user = self.storage.create_user(username, hash_password(password))
        except UsernameTakenError:
            user = self.storage.get_user_by_username(username)
            return user if user and check_password(password, user.password_hash) else None
        logger.info("user_imported_from_sheet", user_id=user.id)
        self.sheets.record_referral(user.username, user.refer_code)
        return user

    def _is_admin_credentials(self, password: str) -> bool:
        admin_password = self.settings.admin_password
        if admin_password is None:
            return False
        return hmac.compare_digest(password.encode(), admin_password.encode())

    def _provision_admin(self, username: str, password: str) -> User:
        with self.storage.lock:
            admin = self.storage.get_user_by_username(username)
            if not admin:
                admin = self.storage.create_user(username, hash_password(password), is_admin=True)
                logger.info("admin_provisioned", user_id=admin.id)
            return admin

    def get_user(self, user_id: int) -> Optional[User]:
        return self.storage.get_user(user_id)

    def validate_referral_code(self, code: str) -> bool:
        return self.storage.get_user_by_refer_code(code) is not None

    # --- balance ledger ---

    def credit(self, user_id: int, amount: Decimal) -> User:
        with self.storage.lock:
            user = self.storage.get_user(user_id)
            if not user:
                raise UserNotFoundError(f"User {user_id} not found")
            return self.storage.update_user(user_id, wallet_balance=user.wallet_balance + amount)

    def get_balance(self, user_id: int) -> Decimal:
        user = self.storage.get_user(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user.wallet_balance

    def submit_deposit(self, user_id: int, amount: Decimal, utr_number: str) -> tuple[Transaction, User]:
        if amount < self.settings.min_deposit:
            raise InvalidDepositError(f"Minimum amount is {self.settings.min_deposit}")

        with self._write_scope():
            user = self.storage.get_user(user_id)
            if not user:
                raise UserNotFoundError(f"User {user_id} not found")

            transaction = self.storage.create_transaction(user_id, amount, utr_number)
            logger.info("deposit_submitted", user_id=user_id, transaction_id=transaction.id, amount=str(amount))

            if self.settings.credit_on_submit:
                user = self.credit(user_id, amount)
                if self._apply_referral_rules(transaction, user):
                    user = self.storage.get_user(user_id)

        return transaction, user

    def list_transactions(self, user_id: int) -> list[Transaction]:
        return self.storage.list_transactions(user_id)

    def list_services(self) -> list[Service]:
        return self.storage.list_services()

    # --- referral engine ---

    def maybe_grant_referral_reward(self, user_id: int, bonus: Optional[Decimal] = None) -> bool:
        """
        Pay the referral bonus to the user and their referrer, once.

        Returns True when the bonus was paid by this call.
        """
        bonus = self.settings.referral_bonus if bonus is None else bonus

        with self._write_scope() as outbox:
            user = self.storage.get_user(user_id)
            if not user or not user.referred_by or user.referral_reward_claimed:
                return False

            referrer = self.storage.get_user_by_refer_code(user.referred_by)
            if not referrer:
                return False

            self.credit(referrer.id, bonus)
            self.storage.create_transaction(
                referrer.id, bonus, _referral_reference(user.username),
                type=TransactionType.REFERRAL_BONUS, status=TransactionStatus.APPROVED,
            )
            self.credit(user.id, bonus)
            self.storage.create_transaction(
                user.id, bonus, _referral_reference(referrer.username),
                type=TransactionType.REFERRAL_BONUS, status=TransactionStatus.APPROVED,
            )
            self.storage.update_user(user.id, referral_reward_claimed=True)
            logger.info("referral_reward_granted", user_id=user.id, referrer_id=referrer.id, bonus=str(bonus))
            outbox.append(lambda: self.sheets.mark_referral_bonus(user.username))
            outbox.append(lambda: self.sheets.mark_referral_bonus(referrer.username))

        return True

    def _apply_referral_rules(self, transaction: Transaction, user: User) -> bool:
        context = {
            "transaction": {
                "amount": transaction.amount,
                "type": transaction.type.value,
                "status": transaction.status.value,
            },
            "user": {
                "referred_by": user.referred_by,
                "referral_reward_claimed": user.referral_reward_claimed,
            },
        }
        granted = False
        for action in self.rule_engine.matching_actions(
            TriggerEvent.DEPOSIT_CREDITED, context, ActionType.GRANT_REFERRAL_BONUS
        ):
            granted = self.maybe_grant_referral_reward(user.id, action.params.get("amount")) or granted
        return granted

    def referral_stats(self, user_id: int) -> ReferralStats:
        user = self.storage.get_user(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        invited = self.storage.list_referred_users(user.refer_code)
        successful = [u for u in invited if u.referral_reward_claimed]
        # Bonuses earned as referrer carry the referee's username as reference
        references = {_referral_reference(u.username) for u in successful}
        earned = sum(
            (
                t.amount for t in self.storage.list_transactions(user_id)
                if t.type == TransactionType.REFERRAL_BONUS and t.utr_number in references
            ),
            Decimal("0"),
        )
        return ReferralStats(
            total_invites=len(invited),
            successful_referrals=len(successful),
            total_earned=earned,
        )

    # --- admin approval workflow ---

    def update_transaction_status(self, transaction_id: int, status: TransactionStatus) -> Transaction:
        with self.storage.lock:
            transaction = self.storage.get_transaction(transaction_id)
            if not transaction:
                raise TransactionNotFoundError(f"Transaction {transaction_id} not found")

            previous = transaction.status
            transaction = self.storage.update_transaction(transaction_id, status=status)
            if status == TransactionStatus.APPROVED and previous != TransactionStatus.APPROVED:
                self.credit(transaction.user_id, transaction.amount)

        logger.info(
            "transaction_status_updated",
            transaction_id=transaction_id, previous=previous.value, status=status.value,
        )
        return transaction

    def review_transaction(self, transaction_id: int, status: TransactionStatus) -> Transaction:
        """Admin decision on a transaction; an approval that credits may pay the referral bonus."""
        with self._write_scope():
            existing = self.storage.get_transaction(transaction_id)
            if not existing:
                raise TransactionNotFoundError(f"Transaction {transaction_id} not found")

            credits = status == TransactionStatus.APPROVED and existing.status != TransactionStatus.APPROVED
            if credits and self.settings.credit_on_submit and existing.type == TransactionType.DEPOSIT:
                logger.warning(
                    "deposit_credited_twice",
                    transaction_id=transaction_id,
                    detail="deposit was already credited at submission",
                )

            transaction = self.update_transaction_status(transaction_id, status)
            if credits:
                user = self.storage.get_user(transaction.user_id)
                if not user:
                    raise UserNotFoundError(f"User {transaction.user_id} not found")
                self._apply_referral_rules(transaction, user)

        return transaction

    def list_pending_transactions(self) -> list[PendingTransaction]:
        return self.storage.list_pending_transactions()

    def admin_stats(self, now: Optional[datetime] = None) -> AdminStats:
        now = (now or datetime.now()).astimezone()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

        approved = [
            t for t in self.storage.list_all_transactions()
            if t.status == TransactionStatus.APPROVED
        ]
        return AdminStats(
            total_users=self.storage.count_users(),
            total_deposits=sum((t.amount for t in approved), Decimal("0")),
            today_deposits=sum((t.amount for t in approved if t.created_at >= midnight), Decimal("0")),
        )
