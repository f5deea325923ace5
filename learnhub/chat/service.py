"""Chat session storage and search orchestration.

``ChatSessionService`` owns the durable session rows. ``ChatSearchService``
opens a search: it stores the session, answers immediately, and runs the
agent stream in a detached task that publishes onto the relay.
"""

import asyncio
import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from learnhub.analytics.models import EventType

from .models import ChatSession
from .stream import stream_and_publish


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from learnhub.analytics.emitter import AnalyticsEmitter

    from .relay import SessionRelay
    from .stream import AgentStreamClient


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ChatSessionError(Exception):
    """Base chat session error."""

    def __init__(self, message: str, code: str = "chat_session_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ChatSessionNotFoundError(ChatSessionError):
    def __init__(self, message: str = "Session not found"):
        super().__init__(message, "session_not_found")


class AgentNotConfiguredError(ChatSessionError):
    def __init__(self, message: str = "Agent API is not configured"):
        super().__init__(message, "agent_not_configured")


# ==============================================================================
# Session Storage
# ==============================================================================


class ChatSessionService:
    """CRUD for chat sessions and the per-user history index."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_session = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.chat_sessions WHERE id = ?"
        )
        self._upsert_session = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.chat_sessions
            (id, user_id, title, initial_query, attached_jd_id,
             conversation_history, tool_results, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._delete_session = self.session.prepare(
            f"DELETE FROM {self.keyspace}.chat_sessions WHERE id = ?"
        )
        self._upsert_user_session = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.chat_sessions_by_user
            (user_id, session_id, title, initial_query, message_count,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)
        self._delete_user_session = self.session.prepare(
            f"DELETE FROM {self.keyspace}.chat_sessions_by_user "
            "WHERE user_id = ? AND session_id = ?"
        )
        self._get_user_sessions = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.chat_sessions_by_user WHERE user_id = ?"
        )

    async def create_session(
        self,
        user_id: str,
        query: str,
        attached_jd_id: str | None = None,
    ) -> ChatSession:
        """Create a session whose history starts with the user's query."""
        now = datetime.now(UTC)
        chat_session = ChatSession(
            user_id=user_id,
            initial_query=query,
            attached_jd_id=attached_jd_id,
            conversation_history=[
                {"role": "user", "content": query, "timestamp": now.isoformat()}
            ],
            created_at=now,
        )
        await self._save(chat_session)

        logger.info(
            "chat_session_created",
            session_id=str(chat_session.id),
            user_id=user_id,
        )
        return chat_session

    async def get_session(self, session_id: UUID) -> ChatSession | None:
        result = await self.session.aexecute(self._get_session, [session_id])
        row = result.one()
        return ChatSession.from_row(row) if row else None

    async def _require(self, session_id: UUID) -> ChatSession:
        chat_session = await self.get_session(session_id)
        if not chat_session:
            raise ChatSessionNotFoundError
        return chat_session

    async def update_conversation(
        self, session_id: UUID, conversation_history: list[dict[str, Any]]
    ) -> ChatSession:
        """Replace the conversation history.

        Raises:
            ChatSessionNotFoundError: If the session does not exist
        """
        chat_session = await self._require(session_id)
        chat_session.conversation_history = conversation_history
        chat_session.updated_at = datetime.now(UTC)
        await self._save(chat_session)
        return chat_session

    async def save_tool_results(
        self, session_id: UUID, results: dict[str, Any]
    ) -> ChatSession:
        """Store the latest agent tool results on the session."""
        chat_session = await self._require(session_id)
        now = datetime.now(UTC)
        chat_session.tool_results = {**results, "timestamp": now.isoformat()}
        chat_session.updated_at = now
        await self._save(chat_session)

        logger.info(
            "chat_tool_results_saved",
            session_id=str(session_id),
            keys=sorted(results),
        )
        return chat_session

    async def delete_session(self, session_id: UUID) -> None:
        chat_session = await self._require(session_id)
        await self.session.aexecute(self._delete_session, [session_id])
        await self.session.aexecute(
            self._delete_user_session, [chat_session.user_id, session_id]
        )
        logger.info("chat_session_deleted", session_id=str(session_id))

    async def list_user_sessions(
        self, user_id: str, limit: int = 50
    ) -> list[dict[str, Any]]:
        """History entries, most recently updated first."""
        rows = await self.session.aexecute(self._get_user_sessions, [user_id])
        entries = [
            {
                "session_id": row.session_id,
                "title": row.title,
                "initial_query": row.initial_query,
                "message_count": row.message_count or 0,
                "created_at": row.created_at,
                "last_updated": row.updated_at,
            }
            for row in rows
        ]
        epoch = datetime.min
        entries.sort(
            key=lambda e: (e["last_updated"] or epoch).replace(tzinfo=None),
            reverse=True,
        )
        return entries[:limit]

    async def _save(self, chat_session: ChatSession) -> None:
        await self.session.aexecute(
            self._upsert_session,
            [
                chat_session.id,
                chat_session.user_id,
                chat_session.title,
                chat_session.initial_query,
                chat_session.attached_jd_id,
                json.dumps(chat_session.conversation_history, default=str),
                (
                    json.dumps(chat_session.tool_results, default=str)
                    if chat_session.tool_results is not None
                    else None
                ),
                chat_session.created_at,
                chat_session.updated_at,
            ],
        )
        await self.session.aexecute(
            self._upsert_user_session,
            [
                chat_session.user_id,
                chat_session.id,
                chat_session.title,
                chat_session.initial_query,
                chat_session.message_count,
                chat_session.created_at,
                chat_session.updated_at,
            ],
        )


# ==============================================================================
# Search Orchestration
# ==============================================================================


class ChatSearchService:
    """Starts searches and keeps their producer tasks alive."""

    def __init__(
        self,
        sessions: ChatSessionService,
        relay: "SessionRelay",
        agent_client: "AgentStreamClient | None",
        agent_id: str,
        start_delay: float = 0.1,
        analytics: "AnalyticsEmitter | None" = None,
    ):
        self.sessions = sessions
        self.relay = relay
        self.agent_client = agent_client
        self.agent_id = agent_id
        self.start_delay = start_delay
        self.analytics = analytics
        self._tasks: set[asyncio.Task] = set()

    async def start_search(
        self,
        user_id: str,
        user_email: str,
        query: str,
        user_name: str | None = None,
        attached_jd_id: str | None = None,
        organization_id: UUID | None = None,
    ) -> ChatSession:
        """Create the session and schedule the agent stream.

        Returns before any upstream traffic so the client can open the SSE
        stream first.

        Raises:
            AgentNotConfiguredError: If no agent client or agent id is set
        """
        if not self.agent_client or not self.agent_id:
            raise AgentNotConfiguredError

        chat_session = await self.sessions.create_session(
            user_id=user_id, query=query, attached_jd_id=attached_jd_id
        )
        session_id = str(chat_session.id)

        system_prompt_variables = {
            "user_name": user_name or user_email.split("@")[0],
            "datetime": datetime.now(UTC).isoformat(),
        }
        self.schedule_stream(
            session_id,
            message=query,
            user_id=user_id,
            system_prompt_variables=system_prompt_variables,
        )

        if self.analytics and organization_id:
            self.analytics.track(
                organization_id=organization_id,
                event_type=EventType.CHAT_SEARCH_STARTED.value,
                event_name="Chat Search Started",
                properties={"chatSessionId": session_id, "userId": user_id},
                session_id=session_id,
            )
        return chat_session

    def schedule_stream(
        self,
        session_id: str,
        message: str,
        user_id: str,
        system_prompt_variables: dict[str, Any],
    ) -> asyncio.Task:
        task = asyncio.create_task(
            self._run_stream(session_id, message, user_id, system_prompt_variables),
            name=f"chat_stream:{session_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_stream(
        self,
        session_id: str,
        message: str,
        user_id: str,
        system_prompt_variables: dict[str, Any],
    ) -> None:
        # Give the browser a moment to attach its EventSource
        await asyncio.sleep(self.start_delay)

        logger.info(
            "chat_stream_started",
            session_id=session_id,
            subscribers=self.relay.subscriber_count(session_id),
        )
        await stream_and_publish(
            self.relay,
            session_id,
            self.agent_client.stream_chat(
                agent_id=self.agent_id,
                message=message,
                user_id=user_id,
                session_id=session_id,
                system_prompt_variables=system_prompt_variables,
            ),
        )

    @property
    def active_streams(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        """Cancel in-flight producer tasks and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("chat_streams_cancelled", count=len(tasks))
