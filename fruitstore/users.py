import logging
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session
from . import models
from .errors import NotFoundError, DuplicateError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def _email_taken(db: Session, email, exclude_id=None) -> bool:
    stmt = select(models.User.id).where(models.User.email == email)
    if exclude_id is not None:
        stmt = stmt.where(models.User.id != exclude_id)
    return db.execute(stmt).first() is not None


def create_user(db: Session, data):
    if _email_taken(db, data.email):
        raise DuplicateError("User with this email already exists")

    user = models.User(
        name=data.name,
        email=data.email,
        password=hash_password(data.password),
        role=data.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("created user %s", user.id)
    return user


def update_user(db: Session, data):
    user = db.get(models.User, data.id)
    if user is None:
        raise NotFoundError("User not found")
    if data.email and _email_taken(db, data.email, exclude_id=data.id):
        raise DuplicateError("User with this email already exists")

    changes = data.model_dump(exclude={"id"}, exclude_none=True)
    if "password" in changes:
        changes["password"] = hash_password(changes["password"])
    for field, value in changes.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user_id):
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    db.delete(user)
    db.commit()
    logger.info("deleted user %s", user_id)


def get_users(db: Session):
    return db.execute(select(models.User).order_by(models.User.created_at.desc())).scalars().all()


def get_user(db: Session, user_id):
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user
