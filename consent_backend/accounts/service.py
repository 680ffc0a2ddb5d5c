"""
Account collaborator
Signup, credential check and profile lookup; supplies the principal to the consent engine
"""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..crypto.hash import hash_password, verify_password
from ..crypto.jwt import create_access_token, verify_access_token
from ..exceptions import (
    AuthenticationError,
    EmailAlreadyRegisteredError,
    NotFoundError,
    ValidationError,
)
from ..ledger import Ledger
from ..storage import Database, UserDB
from .models import AccountInfo, AuthResult, UserProfile

logger = structlog.get_logger(__name__)

MIN_PASSWORD_LENGTH = 6


class AccountService:
    """Users table access plus token issuance"""

    def __init__(self, database: Database, ledger: Ledger, jwt_secret: str,
                 jwt_algorithm: str = "HS256", jwt_expiry_minutes: int = 60,
                 bcrypt_rounds: int = 12):
        self.database = database
        self.ledger = ledger
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.jwt_expiry_minutes = jwt_expiry_minutes
        self.bcrypt_rounds = bcrypt_rounds

    def signup(self, email: str, password: str,
               first_name: Optional[str] = None, last_name: Optional[str] = None,
               date_of_birth: Optional[datetime] = None,
               photo_url: Optional[str] = None) -> AuthResult:
        email = email.strip().lower()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password"
            )
        password_hash = hash_password(password, rounds=self.bcrypt_rounds)

        try:
            with self.database.unit_of_work() as uow:
                session = uow.session
                existing = session.execute(
                    select(UserDB.id).where(UserDB.email == email)
                ).first()
                if existing is not None:
                    raise EmailAlreadyRegisteredError()

                user = UserDB(
                    email=email,
                    password_hash=password_hash,
                    first_name=first_name,
                    last_name=last_name,
                    date_of_birth=date_of_birth,
                    photo_url=photo_url,
                    is_subscribed=False,
                    score=0,
                )
                session.add(user)
                session.flush()
                profile = UserProfile.model_validate(user)
        except IntegrityError as e:
            # concurrent signup with the same email
            raise EmailAlreadyRegisteredError() from e

        logger.info("User signed up", user_id=profile.id)
        return AuthResult(token=self.issue_token(profile), user=profile)

    def authenticate(self, email: str, password: str) -> AuthResult:
        """Same failure for unknown email and wrong password"""
        email = email.strip().lower()
        with self.database.session() as session:
            user = session.execute(
                select(UserDB).where(UserDB.email == email)
            ).scalar_one_or_none()
            if user is None or not verify_password(password, user.password_hash):
                logger.info("Login rejected")
                raise AuthenticationError()
            profile = UserProfile.model_validate(user)

        logger.info("User logged in", user_id=profile.id)
        return AuthResult(token=self.issue_token(profile), user=profile)

    def get_profile(self, user_id: int) -> AccountInfo:
        with self.database.session() as session:
            user = session.get(UserDB, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            profile = UserProfile.model_validate(user)

        balance = self.ledger.get_balance(user_id)
        return AccountInfo(user=profile, pack_quantity=balance.quantity)

    def issue_token(self, profile: UserProfile) -> str:
        return create_access_token(
            profile.id,
            profile.email,
            self.jwt_secret,
            algorithm=self.jwt_algorithm,
            expires_in_minutes=self.jwt_expiry_minutes,
        )

    def resolve_principal(self, token: str) -> int:
        """User id of a valid access token"""
        claims = verify_access_token(token, self.jwt_secret, algorithm=self.jwt_algorithm)
        return claims["user_id"]
