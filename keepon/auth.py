import base64
import binascii
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request
from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import CLIENT_TOKEN_TTL_DAYS, TRAINER_TOKEN_TTL_DAYS
from .database import get_db
from .errors import InvalidAccessToken, NoAccessToken
from .models import AccessToken, Client, Trainer
from .shared.dates import utcnow

logger = logging.getLogger(__name__)

TOKEN_TYPE_TRAINER = "api"
TOKEN_TYPE_CLIENT = "client_dashboard"

TOKEN_TTL = {
    TOKEN_TYPE_TRAINER: timedelta(days=TRAINER_TOKEN_TTL_DAYS),
    TOKEN_TYPE_CLIENT: timedelta(days=CLIENT_TOKEN_TTL_DAYS),
}

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def issue_access_token(db: Session, user_id: str, token_type: str) -> AccessToken:
    """Create a token in the caller's transaction"""
    token = AccessToken(
        id=secrets.token_urlsafe(32),
        user_id=user_id,
        type=token_type,
        expires_at=utcnow() + TOKEN_TTL[token_type],
    )
    db.add(token)
    db.flush()
    return token


def extract_access_token(request: Request) -> Optional[str]:
    """
    Pull the access token from the request.

    Order: ``Authorization: Bearer <token>``, ``Authorization: Basic base64(<token>:)``,
    a raw ``Authorization`` value, then the ``access_token`` query parameter.
    """
    header = (request.headers.get("authorization") or "").strip()
    if header:
        scheme, _, value = header.partition(" ")
        scheme = scheme.lower()
        value = value.strip()
        if scheme == "bearer" and value:
            return value
        if scheme == "basic" and value:
            try:
                decoded = base64.b64decode(value, validate=True).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError):
                decoded = ""
            username = decoded.split(":", 1)[0].strip()
            if username:
                return username
        elif scheme not in ("bearer", "basic"):
            return header

    query_token = (request.query_params.get("access_token") or "").strip()
    return query_token or None


def _authenticate(db: Session, request: Request, token_type: str) -> AccessToken:
    token_value = extract_access_token(request)
    if not token_value:
        raise NoAccessToken()

    now = utcnow()
    access_token = (
        db.query(AccessToken)
        .filter(
            AccessToken.id == token_value,
            AccessToken.type == token_type,
            AccessToken.expires_at > now,
        )
        .first()
    )
    if not access_token:
        raise InvalidAccessToken()

    # Sliding expiry; a failure here must not fail the request
    try:
        access_token.expires_at = now + TOKEN_TTL[token_type]
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"⚠️ Failed to extend access token expiry for user {access_token.user_id}: {e}")

    return access_token


def get_current_trainer(request: Request, db: Session = Depends(get_db)) -> Trainer:
    access_token = _authenticate(db, request, TOKEN_TYPE_TRAINER)
    trainer = db.query(Trainer).filter(Trainer.user_id == access_token.user_id).first()
    if not trainer:
        raise InvalidAccessToken()
    return trainer


def get_current_client(request: Request, db: Session = Depends(get_db)) -> Client:
    access_token = _authenticate(db, request, TOKEN_TYPE_CLIENT)
    client = db.query(Client).filter(Client.user_id == access_token.user_id).first()
    if not client:
        raise InvalidAccessToken()
    return client


@dataclass
class Actor:
    """Whoever is calling an endpoint that both trainers and clients may use"""

    trainer_id: str
    client: Optional[Client] = None

    @property
    def is_client(self) -> bool:
        return self.client is not None


def get_current_actor(request: Request, db: Session = Depends(get_db)) -> Actor:
    token_value = extract_access_token(request)
    if not token_value:
        raise NoAccessToken()

    token_type = (
        db.query(AccessToken.type).filter(AccessToken.id == token_value).scalar()
    )
    if token_type == TOKEN_TYPE_CLIENT:
        client = get_current_client(request, db)
        return Actor(trainer_id=client.trainer_id, client=client)

    trainer = get_current_trainer(request, db)
    return Actor(trainer_id=trainer.id)
