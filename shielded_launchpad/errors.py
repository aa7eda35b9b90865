"""Errors raised by launchpad operations"""

class LaunchpadError(Exception):
    """Base exception for launchpad operation errors"""
    pass

class ValidationError(LaunchpadError):
    """Input or project state does not allow the operation"""
    pass

class NotFoundError(LaunchpadError):
    """Referenced project does not exist"""
    pass

class TransactionError(LaunchpadError):
    """A chain transaction was not confirmed"""
    pass

class ConflictError(LaunchpadError):
    """Operation conflicts with the current ledger state"""
    pass

class OperationTimeoutError(LaunchpadError):
    """Caller deadline passed before the transfer was submitted"""
    pass
