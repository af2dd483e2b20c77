"""User persistence: profiles, roles, activation and refresh-token fields."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from marketplace.database import get_pool
from marketplace.models.user import Role, User

logger = structlog.get_logger(__name__)

USER_COLUMNS = """
    id, first_name, last_name, email, phone, image, role, is_active,
    created_at, updated_at
"""


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        email=row["email"],
        phone=row["phone"],
        image=row["image"],
        role=Role(row["role"]),
        is_active=row["is_active"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserService:
    """Service for user CRUD operations and credential fields.

    Password hashes are only ever returned by get_by_email; every other
    read excludes them. Refresh tokens are stored as SHA-256 digests and
    looked up by digest.
    """

    async def create_user(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password_hash: str,
        phone: Optional[str] = None,
        role: Role = Role.USER,
    ) -> User:
        """Insert a new active user.

        Args:
            first_name: Given name
            last_name: Family name
            email: Lower-cased unique email
            password_hash: Bcrypt hash of the password
            phone: Optional contact number
            role: Account role

        Returns:
            Created User model

        Raises:
            asyncpg.UniqueViolationError: If the email is already registered
        """
        user_id = uuid4()
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO users (id, first_name, last_name, email, phone, password_hash,
                                   role, is_active, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, TRUE, $8, $9)
                """,
                user_id,
                first_name,
                last_name,
                email,
                phone,
                password_hash,
                role.value,
                now,
                now,
            )

        logger.info("user_created", user_id=str(user_id), role=role.value)

        return User(
            id=user_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            role=role,
            is_active=True,
            created_at=now,
            updated_at=now,
        )

    async def get_by_email(self, email: str) -> Optional[tuple[User, str]]:
        """Get a user and password hash by email (case-insensitive).

        Returns:
            Tuple of (User, password_hash) or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS}, password_hash
                FROM users
                WHERE LOWER(email) = LOWER($1)
                """,
                email,
            )

        if row is None:
            return None

        return _row_to_user(row), row["password_hash"]

    async def email_exists(self, email: str) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            found = await conn.fetchval(
                "SELECT 1 FROM users WHERE LOWER(email) = LOWER($1)",
                email,
            )

        return found is not None

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Get a user by id, without credential fields."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        if row is None:
            return None

        return _row_to_user(row)

    async def list_users(self, limit: Optional[int] = None) -> list[User]:
        """Return users, newest first.

        Args:
            limit: Maximum number of users; all users when None
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                ORDER BY created_at DESC
                LIMIT $1
                """,
                limit,
            )

        return [_row_to_user(row) for row in rows]

    async def update_profile(
        self,
        user_id: UUID,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
        image: Optional[str] = None,
    ) -> Optional[User]:
        """Update profile fields that are not None.

        Returns:
            Updated User model, or None if user not found
        """
        fields = {
            "first_name": first_name,
            "last_name": last_name,
            "phone": phone,
            "image": image,
        }
        set_clauses = []
        params = []

        for column, value in fields.items():
            if value is not None:
                params.append(value)
                set_clauses.append(f"{column} = ${len(params)}")

        if not set_clauses:
            return await self.get_by_id(user_id)

        params.append(datetime.now(timezone.utc))
        set_clauses.append(f"updated_at = ${len(params)}")
        params.append(user_id)

        query = f"""
            UPDATE users
            SET {', '.join(set_clauses)}
            WHERE id = ${len(params)}
            RETURNING {USER_COLUMNS}
        """

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(query, *params)

        if row is None:
            return None

        logger.info(
            "user_profile_updated",
            user_id=str(user_id),
            fields_updated=[c.split(" = ")[0] for c in set_clauses[:-1]],
        )

        return _row_to_user(row)

    async def set_role(self, user_id: UUID, role: Role) -> Optional[User]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET role = $1, updated_at = $2
                WHERE id = $3
                RETURNING {USER_COLUMNS}
                """,
                role.value,
                datetime.now(timezone.utc),
                user_id,
            )

        if row is None:
            return None

        logger.info("user_role_changed", user_id=str(user_id), role=role.value)
        return _row_to_user(row)

    async def deactivate(self, user_id: UUID) -> Optional[User]:
        """Soft-delete a user.

        Clears the active flag and the refresh token in one update, so the
        account can neither authenticate nor refresh afterwards.

        Returns:
            The deactivated User, or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET is_active = FALSE,
                    refresh_token_hash = NULL,
                    refresh_token_expires_at = NULL,
                    updated_at = $1
                WHERE id = $2
                RETURNING {USER_COLUMNS}
                """,
                datetime.now(timezone.utc),
                user_id,
            )

        if row is None:
            logger.warning("user_deactivate_not_found", user_id=str(user_id))
            return None

        logger.info("user_deactivated", user_id=str(user_id))
        return _row_to_user(row)

    async def store_refresh_token(
        self, user_id: UUID, token_hash: str, expires_at: datetime
    ) -> None:
        """Overwrite the user's refresh token digest and expiry."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE users
                SET refresh_token_hash = $1, refresh_token_expires_at = $2
                WHERE id = $3
                """,
                token_hash,
                expires_at,
                user_id,
            )

    async def find_by_refresh_token(
        self, token_hash: str, now: datetime
    ) -> Optional[User]:
        """Find the active user holding an unexpired refresh token digest."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                WHERE refresh_token_hash = $1
                  AND refresh_token_expires_at > $2
                  AND is_active = TRUE
                """,
                token_hash,
                now,
            )

        if row is None:
            return None

        return _row_to_user(row)

    async def swap_refresh_token(
        self,
        old_hash: str,
        new_hash: str,
        new_expires_at: datetime,
        now: datetime,
    ) -> Optional[User]:
        """Replace a refresh token only if it is still current.

        The match on the old digest and expiry happens inside the same
        UPDATE, so of two concurrent swaps for one token only one finds a row.

        Returns:
            The user whose token was replaced, or None if the old token did
            not match an active user's unexpired token
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET refresh_token_hash = $1, refresh_token_expires_at = $2
                WHERE refresh_token_hash = $3
                  AND refresh_token_expires_at > $4
                  AND is_active = TRUE
                RETURNING {USER_COLUMNS}
                """,
                new_hash,
                new_expires_at,
                old_hash,
                now,
            )

        if row is None:
            return None

        return _row_to_user(row)

    async def clear_refresh_token(self, user_id: UUID) -> None:
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE users
                SET refresh_token_hash = NULL, refresh_token_expires_at = NULL
                WHERE id = $1
                """,
                user_id,
            )

    async def count_users(self) -> int:
        pool = await get_pool()

        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT COUNT(*) FROM users")
