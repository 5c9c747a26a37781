"""
Database service for direct PostgreSQL access.

Documents are stored whole in JSONB `data` columns. Every read and write on
tenant-owned tables takes a tenant_id and filters on it; there is no method
that can reach another tenant's rows.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Dict, Any, Optional, Tuple, Type, TypeVar

import psycopg2
from psycopg2.extras import RealDictCursor, Json
from pydantic import BaseModel

from app.config import settings
from app.models.schemas import (
    Tenant,
    User,
    UserProfile,
    EmotionConversation,
    QuestionEntry,
    OverallEmotion,
    ConversationInsights,
    EmotionAnalyticsRecord,
    ConversationAnalytics,
    to_document,
    utcnow,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _window_clause(column: str, since: Optional[datetime], until: Optional[datetime], params: list) -> str:
    clause = ""
    if since is not None:
        clause += f" AND {column} >= %s"
        params.append(since)
    if until is not None:
        clause += f" AND {column} <= %s"
        params.append(until)
    return clause


class DatabaseService:
    """Service for direct database access"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.DATABASE_URL

    @contextmanager
    def get_db_context(self):
        """Context manager for database connections that commits on success and always closes"""
        conn = None
        try:
            conn = self.get_connection()
            yield conn
            conn.commit()
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    def get_connection(self):
        """Get raw database connection (internal use)"""
        return psycopg2.connect(self.database_url, connect_timeout=5)

    def _fetch_one(self, model: Type[M], query: str, params: tuple) -> Optional[M]:
        with self.get_db_context() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(query, params)
                row = cursor.fetchone()
        return model.model_validate(row["data"]) if row else None

    def _fetch_all(self, model: Type[M], query: str, params: tuple) -> List[M]:
        with self.get_db_context() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(query, params)
                rows = cursor.fetchall()
        return [model.model_validate(row["data"]) for row in rows]

    # ------------------------------------------------------------------
    # Tenants
    # ------------------------------------------------------------------

    def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        return self._fetch_one(Tenant, "SELECT data FROM tenants WHERE id = %s;", (tenant_id,))

    def get_tenant_by_subdomain(self, subdomain: str) -> Optional[Tenant]:
        return self._fetch_one(
            Tenant, "SELECT data FROM tenants WHERE subdomain = %s;", (subdomain.lower(),)
        )

    def get_tenant_by_domain(self, domain: str) -> Optional[Tenant]:
        return self._fetch_one(Tenant, "SELECT data FROM tenants WHERE domain = %s;", (domain.lower(),))

    def create_tenant(self, tenant: Tenant) -> Tenant:
        """Insert a tenant; if the domain is already taken, return the existing one."""
        tenant.domain = tenant.domain.lower()
        if tenant.subdomain:
            tenant.subdomain = tenant.subdomain.lower()
        created = self._fetch_one(Tenant, """
            INSERT INTO tenants (id, domain, subdomain, is_active, data, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (domain) DO NOTHING
            RETURNING data;
        """, (tenant.id, tenant.domain, tenant.subdomain, tenant.is_active,
              Json(to_document(tenant)), tenant.created_at))
        if created:
            logger.info(f"✅ Created tenant {tenant.name} ({tenant.domain})")
            return created
        return self.get_tenant_by_domain(tenant.domain)

    # ------------------------------------------------------------------
    # Users & profiles
    # ------------------------------------------------------------------

    def get_user(self, tenant_id: str, user_id: str) -> Optional[User]:
        return self._fetch_one(
            User, "SELECT data FROM users WHERE tenant_id = %s AND id = %s;", (tenant_id, user_id)
        )

    def get_user_by_email(self, tenant_id: str, email: str) -> Optional[User]:
        return self._fetch_one(
            User, "SELECT data FROM users WHERE tenant_id = %s AND email = %s;",
            (tenant_id, email.lower())
        )

    def create_user(self, user: User) -> User:
        user.email = user.email.lower()
        return self._fetch_one(User, """
            INSERT INTO users (tenant_id, id, email, data, created_at)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING data;
        """, (user.tenant_id, user.id, user.email, Json(to_document(user)), user.created_at))

    def get_user_profile(self, tenant_id: str, user_id: str) -> Optional[UserProfile]:
        return self._fetch_one(
            UserProfile, "SELECT data FROM user_profiles WHERE tenant_id = %s AND user_id = %s;",
            (tenant_id, user_id)
        )

    def list_user_profiles(self, tenant_id: str) -> List[UserProfile]:
        return self._fetch_all(
            UserProfile, "SELECT data FROM user_profiles WHERE tenant_id = %s;", (tenant_id,)
        )

    def upsert_user_profile(self, profile: UserProfile) -> UserProfile:
        return self._fetch_one(UserProfile, """
            INSERT INTO user_profiles (tenant_id, id, user_id, data)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (tenant_id, user_id) DO UPDATE SET data = EXCLUDED.data
            RETURNING data;
        """, (profile.tenant_id, profile.id, profile.user_id, Json(to_document(profile))))

    # ------------------------------------------------------------------
    # Emotion conversations
    # ------------------------------------------------------------------

    def create_conversation(self, conversation: EmotionConversation) -> EmotionConversation:
        return self._fetch_one(EmotionConversation, """
            INSERT INTO emotion_conversations
                (tenant_id, id, user_id, session_id, conversation_type, status, created_at, data)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING data;
        """, (conversation.tenant_id, conversation.id, conversation.user_id, conversation.session_id,
              conversation.conversation_type, conversation.status, conversation.created_at,
              Json(to_document(conversation))))

    def get_conversation(self, tenant_id: str, conversation_id: str) -> Optional[EmotionConversation]:
        return self._fetch_one(
            EmotionConversation,
            "SELECT data FROM emotion_conversations WHERE tenant_id = %s AND id = %s;",
            (tenant_id, conversation_id)
        )

    def get_conversation_by_session(
        self, tenant_id: str, session_id: str, status: Optional[str] = None
    ) -> Optional[EmotionConversation]:
        query = "SELECT data FROM emotion_conversations WHERE tenant_id = %s AND session_id = %s"
        params: list = [tenant_id, session_id]
        if status:
            query += " AND status = %s"
            params.append(status)
        return self._fetch_one(EmotionConversation, query + ";", tuple(params))

    def append_question(
        self, tenant_id: str, session_id: str, entry: QuestionEntry
    ) -> Optional[EmotionConversation]:
        """Append an answered question. Returns None unless the conversation is in progress."""
        return self._fetch_one(EmotionConversation, """
            UPDATE emotion_conversations
            SET data = jsonb_set(data, '{questions}', COALESCE(data->'questions', '[]'::jsonb) || %s::jsonb)
            WHERE tenant_id = %s AND session_id = %s AND status = 'in_progress'
            RETURNING data;
        """, (Json([to_document(entry)]), tenant_id, session_id))

    def complete_conversation(
        self,
        tenant_id: str,
        session_id: str,
        overall_emotion: OverallEmotion,
        insights: ConversationInsights,
        completed_at: Optional[datetime] = None,
    ) -> Optional[EmotionConversation]:
        """Claim the in-progress conversation and mark it completed.

        Single conditional UPDATE: exactly one concurrent caller gets the
        document back, every other caller gets None.
        """
        completed_at = completed_at or utcnow()
        patch = {
            "status": "completed",
            "completed_at": completed_at.isoformat(),
            "overall_emotion": to_document(overall_emotion),
            "insights": to_document(insights),
        }
        return self._fetch_one(EmotionConversation, """
            UPDATE emotion_conversations
            SET status = 'completed', completed_at = %s, data = data || %s::jsonb
            WHERE tenant_id = %s AND session_id = %s AND status = 'in_progress'
            RETURNING data;
        """, (completed_at, Json(patch), tenant_id, session_id))

    def abandon_conversation(self, tenant_id: str, session_id: str) -> Optional[EmotionConversation]:
        return self._fetch_one(EmotionConversation, """
            UPDATE emotion_conversations
            SET status = 'abandoned', data = data || '{"status": "abandoned"}'::jsonb
            WHERE tenant_id = %s AND session_id = %s AND status = 'in_progress'
            RETURNING data;
        """, (tenant_id, session_id))

    def list_user_conversations(
        self,
        tenant_id: str,
        user_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> List[EmotionConversation]:
        """A user's conversations, newest first."""
        params: list = [tenant_id, user_id]
        query = "SELECT data FROM emotion_conversations WHERE tenant_id = %s AND user_id = %s"
        query += _window_clause("created_at", since, until, params)
        if status:
            query += " AND status = %s"
            params.append(status)
        query += " ORDER BY created_at DESC;"
        return self._fetch_all(EmotionConversation, query, tuple(params))

    def list_tenant_conversations(
        self,
        tenant_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> List[EmotionConversation]:
        params: list = [tenant_id]
        query = "SELECT data FROM emotion_conversations WHERE tenant_id = %s"
        query += _window_clause("created_at", since, until, params)
        if status:
            query += " AND status = %s"
            params.append(status)
        query += " ORDER BY created_at DESC;"
        return self._fetch_all(EmotionConversation, query, tuple(params))

    def get_conversation_history(
        self,
        tenant_id: str,
        user_id: str,
        limit: int = 10,
        offset: int = 0,
        conversation_type: Optional[str] = None,
    ) -> Tuple[List[EmotionConversation], int]:
        """Completed conversations for a user, newest first, with the total count."""
        where = "WHERE tenant_id = %s AND user_id = %s AND status = 'completed'"
        params: list = [tenant_id, user_id]
        if conversation_type:
            where += " AND conversation_type = %s"
            params.append(conversation_type)

        items = self._fetch_all(
            EmotionConversation,
            f"SELECT data FROM emotion_conversations {where} ORDER BY created_at DESC LIMIT %s OFFSET %s;",
            tuple(params + [limit, offset]),
        )
        with self.get_db_context() as conn:
            with conn.cursor() as cursor:
                cursor.execute(f"SELECT COUNT(*) FROM emotion_conversations {where};", tuple(params))
                total = cursor.fetchone()[0]
        return items, total

    # ------------------------------------------------------------------
    # Emotion analytics snapshots
    # ------------------------------------------------------------------

    def insert_emotion_analytics(self, record: EmotionAnalyticsRecord) -> EmotionAnalyticsRecord:
        return self._fetch_one(EmotionAnalyticsRecord, """
            INSERT INTO emotion_analytics (tenant_id, id, user_id, conversation_id, date, data)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING data;
        """, (record.tenant_id, record.id, record.user_id, record.conversation_id, record.date,
              Json(to_document(record))))

    def list_emotion_analytics(
        self,
        tenant_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> List[EmotionAnalyticsRecord]:
        """Snapshots in the window, oldest first."""
        params: list = [tenant_id]
        query = "SELECT data FROM emotion_analytics WHERE tenant_id = %s"
        query += _window_clause("date", since, until, params)
        if user_id:
            query += " AND user_id = %s"
            params.append(user_id)
        query += " ORDER BY date ASC;"
        return self._fetch_all(EmotionAnalyticsRecord, query, tuple(params))

    # ------------------------------------------------------------------
    # Conversation analytics
    # ------------------------------------------------------------------

    def insert_conversation_analytics(self, record: ConversationAnalytics) -> ConversationAnalytics:
        """Insert unless a record for (tenant_id, conversation_id) exists; return the stored one."""
        created = self._fetch_one(ConversationAnalytics, """
            INSERT INTO conversation_analytics
                (tenant_id, id, user_id, conversation_id, conversation_type, date, data)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (tenant_id, conversation_id) DO NOTHING
            RETURNING data;
        """, (record.tenant_id, record.id, record.user_id, record.conversation_id,
              record.conversation_type, record.date, Json(to_document(record))))
        if created:
            return created
        logger.info(f"📊 Analytics for conversation {record.conversation_id} already exist")
        return self.get_conversation_analytics(record.tenant_id, record.conversation_id)

    def get_conversation_analytics(self, tenant_id: str, conversation_id: str) -> Optional[ConversationAnalytics]:
        return self._fetch_one(
            ConversationAnalytics,
            "SELECT data FROM conversation_analytics WHERE tenant_id = %s AND conversation_id = %s;",
            (tenant_id, conversation_id)
        )

    def _analytics_filters(
        self,
        tenant_id: str,
        since: Optional[datetime],
        until: Optional[datetime],
        user_id: Optional[str],
        conversation_type: Optional[str],
    ) -> Tuple[str, list]:
        params: list = [tenant_id]
        where = "WHERE tenant_id = %s" + _window_clause("date", since, until, params)
        if user_id:
            where += " AND user_id = %s"
            params.append(user_id)
        if conversation_type:
            where += " AND conversation_type = %s"
            params.append(conversation_type)
        return where, params

    def list_conversation_analytics(
        self,
        tenant_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        user_id: Optional[str] = None,
        conversation_type: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ConversationAnalytics]:
        """Analytics records, newest first."""
        where, params = self._analytics_filters(tenant_id, since, until, user_id, conversation_type)
        query = f"SELECT data FROM conversation_analytics {where} ORDER BY date DESC"
        if limit is not None:
            query += " LIMIT %s OFFSET %s"
            params.extend([limit, offset])
        return self._fetch_all(ConversationAnalytics, query + ";", tuple(params))

    def count_conversation_analytics(
        self,
        tenant_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        user_id: Optional[str] = None,
        conversation_type: Optional[str] = None,
    ) -> int:
        where, params = self._analytics_filters(tenant_id, since, until, user_id, conversation_type)
        with self.get_db_context() as conn:
            with conn.cursor() as cursor:
                cursor.execute(f"SELECT COUNT(*) FROM conversation_analytics {where};", tuple(params))
                return cursor.fetchone()[0]

    def get_conversation_types(self, tenant_id: str) -> List[str]:
        with self.get_db_context() as conn:
            with conn.cursor() as cursor:
                cursor.execute("""
                    SELECT DISTINCT conversation_type FROM conversation_analytics
                    WHERE tenant_id = %s ORDER BY conversation_type;
                """, (tenant_id,))
                return [row[0] for row in cursor.fetchall()]

    def get_analytics_date_range(self, tenant_id: str) -> Tuple[Optional[datetime], Optional[datetime]]:
        with self.get_db_context() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute("""
                    SELECT MIN(date) AS min_date, MAX(date) AS max_date
                    FROM conversation_analytics WHERE tenant_id = %s;
                """, (tenant_id,))
                row: Dict[str, Any] = cursor.fetchone()
        return row["min_date"], row["max_date"]
