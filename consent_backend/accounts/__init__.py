"""
Accounts: the auth collaborator of the consent engine
"""

from .models import AccountInfo, AuthResult, UserProfile
from .service import AccountService

__all__ = ["AccountInfo", "AuthResult", "UserProfile", "AccountService"]
