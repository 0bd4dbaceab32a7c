class WalletServiceError(Exception):
    pass


class NotFoundError(WalletServiceError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class TransactionNotFoundError(NotFoundError):
    pass


class UsernameTakenError(WalletServiceError):
    pass


class InvalidReferralCodeError(WalletServiceError):
    pass


class UpstreamUnavailableError(WalletServiceError):
    pass


class InvalidDepositError(WalletServiceError):
    pass
