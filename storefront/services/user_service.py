import secrets

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.models.user import UserModel
from storefront.domain.errors import ConflictError, NotFoundError
from storefront.domain.schemas import UserCreate, UserRead
from storefront.repos.user_repo import UserRepo
from storefront.services.token_store import TokenStore
from storefront.utils.settings import RESET_TOKEN_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

RESET_ACK = {"email_sent": True}


class UserService:
    def __init__(self, db: Session, token_store: TokenStore | None = None):
        self.db = db
        self.repo = UserRepo(db)
        self.token_store = token_store

    def create_user(self, payload: UserCreate) -> UserRead:
        email = payload.email.strip().lower()
        if self.repo.get_user_by_email(email):
            raise ConflictError(f"User with email {email} already exists")

        try:
            with transaction(self.db):
                created = self.repo.create_user(UserModel(name=payload.name, email=email))
        except IntegrityError:
            raise ConflictError(f"User with email {email} already exists") from None

        logger.info(f"Created user {created.id}")
        return UserRead.model_validate(created)

    def get_user(self, user_id: int) -> UserRead:
        user = self.repo.get_user(user_id)
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")
        return UserRead.model_validate(user)

    def request_password_reset(self, email: str) -> dict:
        """
        Issues a reset token for a known email. The response is the same
        either way so the endpoint cannot be used to enumerate users.
        """
        user = self.repo.get_user_by_email(email.strip().lower())
        if user:
            token = secrets.token_hex(32)
            self.token_store.set(token, {"user_id": user.id}, ttl=RESET_TOKEN_TTL_SECONDS)
            # no mail client yet, the token only goes to the log
            logger.info(f"Password reset token issued for user {user.id}: {token}")
        else:
            logger.info("Password reset requested for unknown email")
        return dict(RESET_ACK)

    def consume_reset_token(self, token: str) -> int | None:
        data = self.token_store.get(token)
        if not data:
            return None
        self.token_store.delete(token)
        return data["user_id"]
