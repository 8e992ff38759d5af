# faucet_errors.py
"""
Error taxonomy for the faucet flow.

Every FaucetError carries a short `reason` code and a message that is safe to
show to the Discord user. They are raised by the eligibility engine and turned
into replies at the dispatch boundary; none of them is fatal to the process.
"""


class FaucetError(Exception):
    reason = "faucet_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidAddress(FaucetError):
    reason = "invalid_address"


class NodeUnreachable(FaucetError):
    reason = "node_unreachable"


class PeerInfoUnavailable(FaucetError):
    reason = "peer_info_unavailable"


class AlreadyClaimed(FaucetError):
    reason = "already_claimed"

    def __init__(self, message: str, validator_address: str = ""):
        super().__init__(message)
        self.validator_address = validator_address


class NotSynced(FaucetError):
    reason = "not_synced"

    def __init__(self, message: str, lag: int = 0):
        super().__init__(message)
        self.lag = lag


class InsufficientFaucetBalance(FaucetError):
    reason = "insufficient_faucet_balance"


class TransferFailed(FaucetError):
    reason = "transfer_failed"


class StoreWriteFailed(FaucetError):
    reason = "store_write_failed"


# Lower-level errors raised by the collaborators

class NodeConnectionError(Exception):
    """Node transport could not be opened, timed out, or returned an RPC error."""


class PeerNotFound(Exception):
    """No connected peer advertises the requested consensus address."""


class AlreadyExists(Exception):
    """A claim record for this peer identity is already stored."""
