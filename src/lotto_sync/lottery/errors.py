"""Error taxonomy for the lottery client.

Every error is caught at the boundary of the operation that raised it and
turned into a status message; none of them is fatal to the process.
"""


class LotteryClientError(Exception):
    """Base class for all client-side lottery errors."""


class NoWalletError(LotteryClientError):
    """No wallet capability is available to request accounts from."""


class UserRejectedError(LotteryClientError):
    """The user (or the wallet on their behalf) denied the request."""


class NotConnectedError(LotteryClientError):
    """An action needs a connected wallet session."""


class DataLoadError(LotteryClientError):
    """One or more reads of the bulk load failed; previous state is kept."""


class TxRevertedError(LotteryClientError):
    """The contract rejected the transaction."""


class TxNetworkError(LotteryClientError):
    """The transaction could not be submitted or confirmed."""
