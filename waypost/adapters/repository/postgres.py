"""
PostgreSQL repository adapter - Implements IdentityStore protocol.

This module provides the PostgreSQL implementation of the domain's
identity store port using psycopg3 with raw SQL.

Atomicity Design:
-----------------
1. **atomic_update()**: Every mutation set and its precondition become a
   single ``UPDATE ... WHERE id = %s AND <precondition> RETURNING *``.
   Nested provider-link fields are rewritten with ``jsonb_set`` and ``#-``
   inside the same statement, so no read-modify-write happens in Python.

2. **redeem_email_token()**: The token lookup locks the row
   (``SELECT ... FOR UPDATE`` in a sub-select) and the clear-and-set runs in
   the same statement. A concurrent redemption blocks on the lock, then
   re-checks ``email_token`` and finds nothing.

3. **create()**: Uniqueness of username, email and token is enforced by
   database constraints; violations become ``ConflictError``.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from waypost.domain.exceptions import ConflictError, StorageError
from waypost.domain.identity import Identity, ProviderLink, ProviderName
from waypost.domain.ports import Mutations, Precondition, Present, Set, Unset

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "first_name",
    "last_name",
    "username",
    "display_name",
    "display_username",
    "email",
    "email_temporary",
    "email_token",
    "email_token_expires",
    "email_hash",
    "password_hash",
    "salt",
    "is_public",
    "provider",
    "roles",
    "profile",
    "linked_providers",
    "public_reminder_count",
    "public_reminder_sent",
    "created",
    "updated",
)
_JSON_COLUMNS = frozenset({"profile", "linked_providers"})
_LINK_FIELDS = frozenset({"access_token", "access_token_expires"})


class PostgresIdentityStore:
    """
    Implements IdentityStore protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def find_by_id(self, identity_id: UUID) -> Identity | None:
        return self._fetch_one("SELECT * FROM identities WHERE id = %s", (identity_id,))

    def find_by_username(self, username: str) -> Identity | None:
        return self._fetch_one("SELECT * FROM identities WHERE username = %s", (username,))

    def find_by_email(self, email: str) -> Identity | None:
        return self._fetch_one(
            "SELECT * FROM identities WHERE LOWER(email) = LOWER(%s)", (email,)
        )

    def find_by_token(self, token: str, now: datetime | None = None) -> Identity | None:
        query = """
            SELECT * FROM identities
            WHERE email_token = %s
              AND (%s::timestamptz IS NULL
                   OR email_token_expires IS NULL
                   OR email_token_expires > %s::timestamptz)
        """
        return self._fetch_one(query, (token, now, now))

    def create(self, identity: Identity) -> Identity:
        """
        Insert a new identity.

        Raises:
            ConflictError: Username, email or token already taken
            StorageError: Any other database failure
        """
        values = _to_row(identity)
        query = sql.SQL("INSERT INTO identities ({columns}) VALUES ({values}) RETURNING *").format(
            columns=sql.SQL(", ").join(sql.Identifier(column) for column in _COLUMNS),
            values=sql.SQL(", ").join(sql.Placeholder() for _ in _COLUMNS),
        )

        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(query, [values[column] for column in _COLUMNS])
                row = cursor.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as e:
            raise ConflictError(_conflict_message(e)) from e
        except psycopg.Error as e:
            logger.error("Failed to create identity %s: %s", identity.id, e)
            raise StorageError("Failed to create identity") from e

        return _from_row(row)

    def atomic_update(
        self,
        identity_id: UUID,
        mutations: Mutations,
        precondition: Precondition | None = None,
    ) -> Identity:
        """
        Apply ``mutations`` in a single UPDATE guarded by ``precondition``.

        Raises:
            StorageError: Identity missing, precondition failed or database error
            ConflictError: Update would violate a uniqueness constraint
        """
        assignments, params = _assignments(mutations)
        conditions, condition_params = _conditions(precondition or {})

        query = sql.SQL("UPDATE identities SET {assignments} WHERE {conditions} RETURNING *").format(
            assignments=sql.SQL(", ").join(assignments),
            conditions=sql.SQL(" AND ").join([sql.SQL("id = %s"), *conditions]),
        )

        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(query, [*params, identity_id, *condition_params])
                row = cursor.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as e:
            raise ConflictError(_conflict_message(e)) from e
        except psycopg.Error as e:
            logger.error("Failed to update identity %s: %s", identity_id, e)
            raise StorageError("Failed to update identity") from e

        if row is None:
            raise StorageError(f"Identity {identity_id} not found or precondition failed")
        return _from_row(row)

    def redeem_email_token(self, token: str, now: datetime) -> tuple[Identity, bool] | None:
        """
        Consume ``token`` and promote ``email_temporary`` in one statement.

        Returns:
            (updated identity, profile_made_public) or None for an unknown,
            expired or already used token
        """
        query = """
            UPDATE identities AS i
            SET email = prev.email_temporary,
                email_hash = md5(lower(trim(prev.email_temporary))),
                is_public = TRUE,
                email_temporary = NULL,
                email_token = NULL,
                email_token_expires = NULL,
                public_reminder_count = NULL,
                public_reminder_sent = NULL,
                updated = %s
            FROM (
                SELECT id, is_public, email_temporary
                FROM identities
                WHERE email_token = %s
                  AND email_temporary IS NOT NULL
                  AND (email_token_expires IS NULL OR email_token_expires > %s)
                FOR UPDATE
            ) AS prev
            WHERE i.id = prev.id
            RETURNING i.*, NOT prev.is_public AS profile_made_public
        """

        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(query, (now, token, now))
                row = cursor.fetchone()
                conn.commit()
        except psycopg.errors.UniqueViolation as e:
            raise ConflictError(_conflict_message(e)) from e
        except psycopg.Error as e:
            logger.error("Failed to redeem email token: %s", e)
            raise StorageError("Failed to confirm email") from e

        if row is None:
            return None
        profile_made_public = row.pop("profile_made_public")
        return _from_row(row), profile_made_public

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> Identity | None:
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(query, params)
                row = cursor.fetchone()
        except psycopg.Error as e:
            logger.error("Identity lookup failed: %s", e)
            raise StorageError("Identity lookup failed") from e
        return _from_row(row) if row is not None else None


def _assignments(mutations: Mutations) -> tuple[list[sql.Composable], list[Any]]:
    assignments: list[sql.Composable] = []
    params: list[Any] = []

    link_expression: sql.Composable = sql.Identifier("linked_providers")
    link_params: list[Any] = []
    links_touched = False

    for path, mutation in mutations.items():
        parts = path.split(".")
        if parts[0] != "linked_providers" or len(parts) == 1:
            if parts[0] not in _COLUMNS or parts[0] == "id":
                raise StorageError(f"Unknown field {path}")
            assignments.append(sql.SQL("{} = %s").format(sql.Identifier(path)))
            value = mutation.value if isinstance(mutation, Set) else None
            params.append(_column_value(path, value))
            continue

        links_touched = True
        if len(parts) > 3 or (len(parts) == 3 and parts[2] not in _LINK_FIELDS):
            raise StorageError(f"Cannot update {path}")

        # Nested link updates compose left to right: params are collected in
        # the order their placeholders appear in the final expression.
        key_path = parts[1:]
        if isinstance(mutation, Unset):
            link_expression = sql.SQL("({} #- %s::text[])").format(link_expression)
            link_params.append(key_path)
        else:
            value = mutation.value
            if len(parts) == 2:
                value = _link_to_json(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            link_expression = sql.SQL("jsonb_set({}, %s::text[], %s)").format(link_expression)
            link_params.extend([key_path, Jsonb(value)])

    if links_touched:
        assignments.append(sql.SQL("linked_providers = {}").format(link_expression))
        params.extend(link_params)

    return assignments, params


def _conditions(precondition: Precondition) -> tuple[list[sql.Composable], list[Any]]:
    conditions: list[sql.Composable] = []
    params: list[Any] = []

    for path, expected in precondition.items():
        parts = path.split(".")
        if parts[0] == "linked_providers" and len(parts) > 1:
            target: sql.Composable = sql.SQL("(linked_providers #> %s::text[])")
            params.append(parts[1:])
        else:
            target = sql.Identifier(path)

        if isinstance(expected, Present):
            conditions.append(sql.SQL("{} IS NOT NULL").format(target))
        elif expected is None:
            conditions.append(sql.SQL("{} IS NULL").format(target))
        else:
            conditions.append(sql.SQL("{} = %s").format(target))
            params.append(_column_value(path, expected))

    return conditions, params


def _column_value(column: str, value: Any) -> Any:
    if column == "linked_providers":
        return Jsonb({name: _link_to_json(link) for name, link in (value or {}).items()})
    if column in _JSON_COLUMNS:
        return Jsonb(value or {})
    return value


def _to_row(identity: Identity) -> dict[str, Any]:
    return {column: _column_value(column, getattr(identity, column)) for column in _COLUMNS}


def _from_row(row: dict[str, Any]) -> Identity:
    values = {column: row[column] for column in _COLUMNS}
    values["roles"] = list(values["roles"] or [])
    values["profile"] = dict(values["profile"] or {})
    values["linked_providers"] = {
        name: _link_from_json(data) for name, data in (values["linked_providers"] or {}).items()
    }
    return Identity(**values)


def _link_to_json(link: ProviderLink) -> dict[str, Any]:
    expires = link.access_token_expires
    return {
        "provider": link.provider.value,
        "profile": link.profile,
        "access_token": link.access_token,
        "access_token_expires": expires.isoformat() if expires else None,
    }


def _link_from_json(data: dict[str, Any]) -> ProviderLink:
    expires = data.get("access_token_expires")
    return ProviderLink(
        provider=ProviderName(data["provider"]),
        profile=data.get("profile") or {},
        access_token=data.get("access_token"),
        access_token_expires=datetime.fromisoformat(expires) if expires else None,
    )


def _conflict_message(error: psycopg.errors.UniqueViolation) -> str:
    constraint = getattr(error.diag, "constraint_name", None) or ""
    if "email_token" in constraint:
        return "Identity already exists."
    if "username" in constraint:
        return "Username already exists."
    if "email" in constraint:
        return "Email already exists."
    return "Identity already exists."


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: waypost/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))
    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
            logger.info("Migration complete: %s", sql_file.name)
        except psycopg.Error as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
