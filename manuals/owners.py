"""
manuals/owners.py
-----------------
Owner resolution: which storage key a conversation's manual lives under.

    conversation in a project  -> Owner(project_id,      project)
    standalone conversation    -> Owner(conversation_id, conversation)
    unknown, no principal      -> Owner(conversation_id, guest)

Manuals are therefore shared by every conversation of a project, while
guest and standalone manuals stay per conversation. Conversations and
projects are owned by another part of the system; they are read here
through the `ConversationDirectory` protocol.
"""

import sqlite3
from pathlib import Path
from typing import NamedTuple, Optional, Protocol

from manuals.errors import BadRequest, Forbidden, NotFound
from manuals.logging_config import get_logger
from manuals.models import Owner, OwnerType

log = get_logger(__name__)


class ConversationRow(NamedTuple):
    id:               str
    user_id:          str
    project_id:       Optional[str] = None
    project_owner_id: Optional[str] = None


class ConversationDirectory(Protocol):
    def find(self, conversation_id: str) -> Optional[ConversationRow]:
        ...

    def project_owner(self, project_id: str) -> Optional[str]:
        ...


class SqliteConversationDirectory:
    """
    Reads conversations and their projects from the application database.

    Schema (owned by the conversation/project services):
      conversations(id TEXT PRIMARY KEY, user_id TEXT, project_id TEXT NULL, ...)
      projects(id TEXT PRIMARY KEY, user_id TEXT, ...)
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def ensure_schema(self) -> None:
        """Creates the minimal tables the lookup needs, for standalone use."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    project_id TEXT NULL,
                    FOREIGN KEY(project_id) REFERENCES projects(id)
                )
                """
            )
            conn.commit()

    def find(self, conversation_id: str) -> Optional[ConversationRow]:
        if not self.db_path.exists():
            return None
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT c.id, c.user_id, c.project_id, p.user_id AS project_owner_id
                FROM conversations c
                LEFT JOIN projects p ON c.project_id = p.id
                WHERE c.id = ?
                LIMIT 1
                """,
                (conversation_id,),
            ).fetchone()
        return ConversationRow(*row) if row else None

    def project_owner(self, project_id: str) -> Optional[str]:
        if not self.db_path.exists():
            return None
        with self._connect() as conn:
            row = conn.execute(
                "SELECT user_id FROM projects WHERE id = ? LIMIT 1", (project_id,)
            ).fetchone()
        return row[0] if row else None


class OwnerResolver:
    def __init__(self, directory: ConversationDirectory):
        self.directory = directory

    def resolve(self, conversation_id: str, principal: Optional[str] = None) -> Owner:
        """
        Resolves the owner of a conversation's manual.

        Args:
            conversation_id: Conversation (or guest session) identifier.
            principal:       Authenticated user id, or None on the guest path.

        Raises:
            BadRequest: If conversation_id is blank.
            NotFound:   If an authenticated caller names an unknown conversation.
            Forbidden:  If the owner belongs to another user.
        """
        conversation_id = (conversation_id or "").strip()
        if not conversation_id:
            raise BadRequest("conversationId is required.")

        row = self.directory.find(conversation_id)
        if row is None:
            if principal:
                raise NotFound("Conversation not found.")
            return Owner(owner_id=conversation_id, owner_type=OwnerType.GUEST)

        owner_user_id = row.project_owner_id or row.user_id
        if principal and owner_user_id and owner_user_id != principal:
            log.warning("User %s denied access to conversation %s",
                        principal, conversation_id)
            raise Forbidden("You do not have access to this conversation.")

        if row.project_id:
            return Owner(owner_id=row.project_id, owner_type=OwnerType.PROJECT)
        return Owner(owner_id=conversation_id, owner_type=OwnerType.CONVERSATION)

    def resolve_project(self, project_id: str, principal: Optional[str] = None) -> Owner:
        """
        Owner for project-level manual routes.

        Without a principal (internal callers such as the project lifecycle)
        no ownership check is made.

        Raises:
            BadRequest: If project_id is blank.
            NotFound:   If an authenticated caller names an unknown project.
            Forbidden:  If the project belongs to another user.
        """
        project_id = (project_id or "").strip()
        if not project_id:
            raise BadRequest("projectId is required.")

        if principal:
            owner_user_id = self.directory.project_owner(project_id)
            if owner_user_id is None:
                raise NotFound("Project not found.")
            if owner_user_id != principal:
                log.warning("User %s denied access to project %s", principal, project_id)
                raise Forbidden("You do not have access to this project.")

        return Owner(owner_id=project_id, owner_type=OwnerType.PROJECT)
