"""Account service - trainer accounts and client dashboard login codes"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import (
    TOKEN_TYPE_CLIENT,
    TOKEN_TYPE_TRAINER,
    hash_password,
    issue_access_token,
    verify_password,
)
from ...config import APP_EMAIL, APP_NAME, CLIENT_LOGIN_CODE_TTL_MINUTES
from ...email_service import queue_mail
from ...email_templates import client_login_code_template
from ...errors import BadRequest, EmailAlreadyInUse, InvalidCredentials, InvalidLoginCode
from ...models import AccessToken, Client, ClientLoginRequest, Mission, Trainer, User
from ...shared.dates import utcnow
from .schemas import (
    ClientLoginCodeCheck,
    ClientSessionCreate,
    LoginRequest,
    TrainerSignup,
    TrainerUpdate,
)

logger = logging.getLogger(__name__)

MISSION_CREATE_ACTIVE_SUBSCRIPTION = "createActiveSubscription"
MAX_FAILED_CODE_ATTEMPTS = 3


def generate_login_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


class AccountService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Trainers
    # ------------------------------------------------------------------

    def signup(self, data: TrainerSignup) -> tuple[Trainer, AccessToken]:
        if self.db.query(Trainer).filter(Trainer.email == data.email).first():
            raise EmailAlreadyInUse()

        try:
            user = User(email=data.email, password_hash=hash_password(data.password), user_type="trainer")
            self.db.add(user)
            self.db.flush()

            trainer = Trainer(
                user_id=user.id,
                email=data.email,
                first_name=data.firstName,
                last_name=data.lastName,
                business_name=data.businessName,
                country=data.country,
                timezone=data.timezone,
                locale=data.locale,
            )
            self.db.add(trainer)
            self.db.flush()

            self.db.add(Mission(id=MISSION_CREATE_ACTIVE_SUBSCRIPTION, trainer_id=trainer.id))
            token = issue_access_token(self.db, user.id, TOKEN_TYPE_TRAINER)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Trainer signed up: {trainer.id} ({trainer.country})")
        return trainer, token

    def login(self, data: LoginRequest) -> tuple[Trainer, AccessToken]:
        trainer = self.db.query(Trainer).filter(Trainer.email == data.email).first()
        user = trainer.user if trainer else None
        if not user or not verify_password(data.password, user.password_hash):
            logger.warning(f"⚠️ Failed login for {data.email}")
            raise InvalidCredentials()

        token = issue_access_token(self.db, user.id, TOKEN_TYPE_TRAINER)
        self.db.commit()
        return trainer, token

    def update_trainer(self, trainer: Trainer, data: TrainerUpdate) -> Trainer:
        updates = {
            "first_name": data.firstName,
            "last_name": data.lastName,
            "business_name": data.businessName,
            "contact_email": data.contactEmail,
            "timezone": data.timezone,
            "locale": data.locale,
            "send_receipts": data.sendReceipts,
        }
        for key, value in updates.items():
            if value is not None:
                setattr(trainer, key, value)
        self.db.commit()
        self.db.refresh(trainer)
        return trainer

    # ------------------------------------------------------------------
    # Client dashboard login
    # ------------------------------------------------------------------

    def request_client_login_code(self, email: str) -> None:
        """Email a login code when any client uses this address. Silent otherwise."""
        has_client = self.db.query(Client.id).filter(Client.email == email).first() is not None
        if not has_client:
            logger.info(f"🔒 Login code requested for unknown client email {email}")
            return

        code = generate_login_code()
        try:
            self.db.add(
                ClientLoginRequest(
                    email=email,
                    code=code,
                    expires_at=utcnow() + timedelta(minutes=CLIENT_LOGIN_CODE_TTL_MINUTES),
                )
            )
            queue_mail(
                self.db,
                to_email=email,
                subject=f"{code} is your client dashboard login code",
                mjml_content=client_login_code_template(code),
                from_email=APP_EMAIL,
                from_name=f"{APP_NAME} Team",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _live_requests(self, email: str):
        return self.db.query(ClientLoginRequest).filter(
            ClientLoginRequest.email == email,
            ClientLoginRequest.expires_at > utcnow(),
            ClientLoginRequest.authenticated.is_(False),
        )

    def _find_valid_request(self, email: str, code: str) -> Optional[ClientLoginRequest]:
        return (
            self._live_requests(email)
            .filter(
                ClientLoginRequest.code == code,
                ClientLoginRequest.failed_authentication_count < MAX_FAILED_CODE_ATTEMPTS,
            )
            .with_for_update()
            .first()
        )

    def _record_failed_attempt(self, email: str) -> None:
        for login_request in self._live_requests(email).all():
            login_request.failed_authentication_count += 1
        self.db.commit()
        logger.warning(f"⚠️ Invalid client login code for {email}")

    def list_client_logins(self, data: ClientLoginCodeCheck) -> list[Client]:
        if not self._find_valid_request(data.email, data.code):
            self._record_failed_attempt(data.email)
            raise InvalidLoginCode()

        return (
            self.db.query(Client)
            .filter(Client.email == data.email)
            .order_by(Client.created_at)
            .all()
        )

    def create_client_session(self, data: ClientSessionCreate) -> tuple[Client, AccessToken]:
        login_request = self._find_valid_request(data.email, data.code)
        if not login_request:
            self._record_failed_attempt(data.email)
            raise InvalidLoginCode()

        try:
            login_request.authenticated = True
            self.db.flush()
            now = utcnow()
            for other in self._live_requests(data.email).all():
                other.expires_at = now

            client = (
                self.db.query(Client)
                .filter(Client.id == data.clientId, Client.email == data.email)
                .first()
            )
            if not client:
                raise BadRequest(title="Unable to create access token for client")

            token = issue_access_token(self.db, client.user_id, TOKEN_TYPE_CLIENT)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🔑 Client dashboard session created for client {client.id}")
        return client, token
