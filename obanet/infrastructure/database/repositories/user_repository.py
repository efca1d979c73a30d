"""User repository implementation."""

import functools
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from obanet.core.auth.entities import DiasporaProfile, LoginRecord, User
from obanet.core.auth.exceptions import EmailExistsException, UsernameExistsException
from obanet.core.auth.interfaces import UserRepositoryInterface
from obanet.core.domain.enums import UserRole, UserStatus
from obanet.core.exceptions import ServiceUnavailableException
from obanet.infrastructure.database.models import UserModel
from obanet.utils.clock import ensure_utc

logger = logging.getLogger("obanet.database")


def store_operation(func):
    """Translate driver and connection errors into ServiceUnavailableException."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error("User store operation %s failed: %s", func.__name__, e)
            raise ServiceUnavailableException(func.__name__) from e

    return wrapper


class SqlUserRepository(UserRepositoryInterface):
    """SQLAlchemy implementation of user repository."""

    def __init__(self, session: AsyncSession):
        """
        Initialize user repository.

        Args:
            session: Database session
        """
        self._session = session

    async def _get_one(self, *criteria) -> Optional[User]:
        result = await self._session.execute(select(UserModel).where(*criteria))
        user_model = result.scalar_one_or_none()

        if user_model:
            return self._model_to_entity(user_model)
        return None

    @store_operation
    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """
        Get user by ID.

        Args:
            user_id: User ID

        Returns:
            User entity if found, None otherwise
        """
        return await self._get_one(UserModel.id == user_id)

    @store_operation
    async def get_user_by_username(self, username: str) -> Optional[User]:
        """
        Get user by username.

        Args:
            username: Username, matched case-insensitively

        Returns:
            User entity if found, None otherwise
        """
        return await self._get_one(UserModel.username == username.strip().lower())

    @store_operation
    async def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Get user by email.

        Args:
            email: Email address, matched case-insensitively

        Returns:
            User entity if found, None otherwise
        """
        return await self._get_one(UserModel.email == email.strip().lower())

    @store_operation
    async def get_user_by_reset_token(self, token_hash: str) -> Optional[User]:
        return await self._get_one(UserModel.password_reset_token == token_hash)

    @store_operation
    async def get_user_by_verification_token(self, token_hash: str) -> Optional[User]:
        return await self._get_one(UserModel.email_verification_token == token_hash)

    @store_operation
    async def create_user(self, user: User) -> User:
        """
        Create new user.

        Args:
            user: User entity to create

        Returns:
            Created user entity

        Raises:
            EmailExistsException: If the email is already taken
            UsernameExistsException: If the username is already taken
        """
        user_model = UserModel(id=user.id)
        self._update_model_from_entity(user_model, user)

        try:
            self._session.add(user_model)
            await self._session.flush()
            return self._model_to_entity(user_model)
        except IntegrityError as e:
            await self._session.rollback()
            if "email" in str(e.orig).lower():
                raise EmailExistsException(user.email)
            raise UsernameExistsException(user.username)

    @store_operation
    async def update_user(self, user: User) -> User:
        """
        Update existing user.

        Args:
            user: User entity to update

        Returns:
            Updated user entity
        """
        result = await self._session.execute(
            select(UserModel).where(UserModel.id == user.id)
        )
        user_model = result.scalar_one_or_none()

        if user_model:
            self._update_model_from_entity(user_model, user)
            await self._session.flush()
            return self._model_to_entity(user_model)
        return user

    @store_operation
    async def delete_user(self, user_id: str) -> bool:
        """
        Delete user by ID.

        Args:
            user_id: User ID

        Returns:
            True if user was deleted, False if not found
        """
        result = await self._session.execute(
            select(UserModel).where(UserModel.id == user_id)
        )
        user_model = result.scalar_one_or_none()

        if user_model:
            await self._session.delete(user_model)
            await self._session.flush()
            return True
        return False

    @store_operation
    async def touch_last_active(self, user_id: str, when: datetime) -> None:
        await self._session.execute(
            update(UserModel).where(UserModel.id == user_id).values(last_active=when)
        )

    @store_operation
    async def commit(self) -> None:
        await self._session.commit()

    @store_operation
    async def clear_expired_one_time_tokens(self, now: datetime) -> int:
        """
        Clear expired reset and verification token fields.

        Args:
            now: Reference time

        Returns:
            Number of user rows touched
        """
        result = await self._session.execute(
            select(UserModel).where(
                or_(
                    UserModel.password_reset_expires.is_not(None),
                    UserModel.email_verification_expires.is_not(None),
                )
            )
        )

        cleared = 0
        for user_model in result.scalars():
            changed = False
            if user_model.password_reset_expires and ensure_utc(user_model.password_reset_expires) <= now:
                user_model.password_reset_token = None
                user_model.password_reset_expires = None
                changed = True
            if user_model.email_verification_expires and ensure_utc(user_model.email_verification_expires) <= now:
                user_model.email_verification_token = None
                user_model.email_verification_expires = None
                changed = True
            if changed:
                cleared += 1

        await self._session.flush()
        return cleared

    def _model_to_entity(self, model: UserModel) -> User:
        """
        Convert database model to domain entity.

        Args:
            model: User database model

        Returns:
            User domain entity
        """
        return User(
            id=model.id,
            first_name=model.first_name,
            last_name=model.last_name,
            username=model.username,
            email=model.email,
            hashed_password=model.hashed_password,
            diaspora_profile=DiasporaProfile.from_dict(model.diaspora_profile),
            status=UserStatus(model.status),
            role=UserRole(model.role),
            is_email_verified=model.is_email_verified,
            email_verification_token=model.email_verification_token,
            email_verification_expires=ensure_utc(model.email_verification_expires),
            password_reset_token=model.password_reset_token,
            password_reset_expires=ensure_utc(model.password_reset_expires),
            profile=dict(model.profile or {}),
            stats=dict(model.stats or {}),
            privacy=dict(model.privacy or {}),
            login_history=[LoginRecord.from_dict(item) for item in model.login_history or []],
            last_active=ensure_utc(model.last_active),
            deactivated_at=ensure_utc(model.deactivated_at),
            deactivation_reason=model.deactivation_reason,
            created_at=ensure_utc(model.created_at),
            updated_at=ensure_utc(model.updated_at),
        )

    def _update_model_from_entity(self, model: UserModel, entity: User) -> None:
        """
        Update database model from domain entity.

        Args:
            model: User database model
            entity: User domain entity
        """
        model.first_name = entity.first_name
        model.last_name = entity.last_name
        model.username = entity.username
        model.email = entity.email
        model.hashed_password = entity.hashed_password
        model.status = UserStatus(entity.status).value
        model.role = UserRole(entity.role).value
        model.is_email_verified = entity.is_email_verified
        model.email_verification_token = entity.email_verification_token
        model.email_verification_expires = entity.email_verification_expires
        model.password_reset_token = entity.password_reset_token
        model.password_reset_expires = entity.password_reset_expires
        model.diaspora_profile = entity.diaspora_profile.to_dict()
        model.profile = dict(entity.profile)
        model.stats = dict(entity.stats)
        model.privacy = dict(entity.privacy)
        model.login_history = [record.to_dict() for record in entity.login_history]
        model.last_active = entity.last_active
        model.deactivated_at = entity.deactivated_at
        model.deactivation_reason = entity.deactivation_reason
        model.created_at = entity.created_at
        model.updated_at = entity.updated_at
