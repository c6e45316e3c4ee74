from .user import User
from .two_factor_session import TwoFactorSession

__all__ = [
    "User",
    "TwoFactorSession",
]
