import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite


def utc_now() -> str:
    return datetime.utcnow().isoformat() + "Z"


AGENT_COLUMNS = (
    "id, user_id, name, description, system_prompt, model, provider, temperature, max_tokens, "
    "max_iterations, tools_json, created_at, updated_at"
)
TEAM_COLUMNS = (
    "id, user_id, name, description, coordinator_agent_id, member_agent_ids_json, execution_mode, "
    "created_at, updated_at"
)
CONVERSATION_COLUMNS = "id, user_id, title, agent_id, model, provider, created_at, updated_at"


def _agent_row(row: aiosqlite.Row) -> dict:
    data = dict(row)
    data["tools"] = json.loads(data.pop("tools_json") or "[]")
    return data


def _team_row(row: aiosqlite.Row) -> dict:
    data = dict(row)
    data["member_agent_ids"] = json.loads(data.pop("member_agent_ids_json") or "[]")
    return data


class Database:
    def __init__(self, path: str):
        self.path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(
                """
                PRAGMA journal_mode=WAL;
                CREATE TABLE IF NOT EXISTS agents(
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    system_prompt TEXT,
                    model TEXT,
                    provider TEXT,
                    temperature REAL,
                    max_tokens INTEGER,
                    max_iterations INTEGER,
                    tools_json TEXT,
                    created_at TEXT,
                    updated_at TEXT
                );
                CREATE TABLE IF NOT EXISTS teams(
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    coordinator_agent_id TEXT,
                    member_agent_ids_json TEXT,
                    execution_mode TEXT DEFAULT 'sequential',
                    created_at TEXT,
                    updated_at TEXT
                );
                CREATE TABLE IF NOT EXISTS conversations(
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT,
                    agent_id TEXT,
                    model TEXT,
                    provider TEXT,
                    created_at TEXT,
                    updated_at TEXT
                );
                CREATE TABLE IF NOT EXISTS messages(
                    id TEXT PRIMARY KEY,
                    conversation_id TEXT NOT NULL,
                    role TEXT,
                    content TEXT,
                    created_at TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_agents_user ON agents(user_id);
                CREATE INDEX IF NOT EXISTS idx_teams_user ON teams(user_id);
                CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id);
                CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id);
                """
            )
            await db.commit()

    async def execute(self, query: str, params: Tuple[Any, ...] = ()) -> int:
        async with aiosqlite.connect(self.path) as db:
            cursor = await db.execute(query, params)
            await db.commit()
            return cursor.rowcount

    async def fetchall(self, query: str, params: Tuple[Any, ...] = ()) -> List[aiosqlite.Row]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
            return rows

    async def fetchone(self, query: str, params: Tuple[Any, ...] = ()) -> Optional[aiosqlite.Row]:
        rows = await self.fetchall(query, params)
        return rows[0] if rows else None

    # Agents

    async def create_agent(self, user_id: str, payload: Dict[str, Any]) -> dict:
        agent_id = uuid.uuid4().hex
        created_at = utc_now()
        await self.execute(
            f"INSERT INTO agents({AGENT_COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)",
            (
                agent_id,
                user_id,
                payload["name"],
                payload.get("description"),
                payload.get("system_prompt") or "",
                payload.get("model"),
                payload.get("provider"),
                payload.get("temperature", 0.7),
                payload.get("max_tokens", 2000),
                payload.get("max_iterations", 5),
                json.dumps(payload.get("tools") or []),
                created_at,
                created_at,
            ),
        )
        return await self.get_agent(agent_id, user_id)

    async def get_agent(self, agent_id: str, user_id: str) -> Optional[dict]:
        row = await self.fetchone(
            f"SELECT {AGENT_COLUMNS} FROM agents WHERE id=? AND user_id=?",
            (agent_id, user_id),
        )
        return _agent_row(row) if row else None

    async def get_agents(self, agent_ids: List[str], user_id: str) -> Dict[str, dict]:
        if not agent_ids:
            return {}
        marks = ",".join("?" for _ in agent_ids)
        rows = await self.fetchall(
            f"SELECT {AGENT_COLUMNS} FROM agents WHERE user_id=? AND id IN ({marks})",
            (user_id, *agent_ids),
        )
        return {row["id"]: _agent_row(row) for row in rows}

    async def list_agents(self, user_id: str) -> List[dict]:
        rows = await self.fetchall(
            f"SELECT {AGENT_COLUMNS} FROM agents WHERE user_id=? ORDER BY created_at DESC",
            (user_id,),
        )
        return [_agent_row(r) for r in rows]

    async def update_agent(self, agent_id: str, user_id: str, changes: Dict[str, Any]) -> Optional[dict]:
        current = await self.get_agent(agent_id, user_id)
        if not current:
            return None
        merged = {**current, **{k: v for k, v in changes.items() if v is not None}}
        await self.execute(
            "UPDATE agents SET name=?, description=?, system_prompt=?, model=?, provider=?, temperature=?, "
            "max_tokens=?, max_iterations=?, tools_json=?, updated_at=? WHERE id=? AND user_id=?",
            (
                merged["name"],
                merged["description"],
                merged["system_prompt"],
                merged["model"],
                merged["provider"],
                merged["temperature"],
                merged["max_tokens"],
                merged["max_iterations"],
                json.dumps(merged["tools"] or []),
                utc_now(),
                agent_id,
                user_id,
            ),
        )
        return await self.get_agent(agent_id, user_id)

    async def delete_agent(self, agent_id: str, user_id: str) -> bool:
        return await self.execute("DELETE FROM agents WHERE id=? AND user_id=?", (agent_id, user_id)) > 0

    # Teams

    async def create_team(self, user_id: str, payload: Dict[str, Any]) -> dict:
        team_id = uuid.uuid4().hex
        created_at = utc_now()
        await self.execute(
            f"INSERT INTO teams({TEAM_COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?)",
            (
                team_id,
                user_id,
                payload["name"],
                payload.get("description"),
                payload["coordinator_agent_id"],
                json.dumps(payload.get("member_agent_ids") or []),
                payload.get("execution_mode") or "sequential",
                created_at,
                created_at,
            ),
        )
        return await self.get_team(team_id, user_id)

    async def get_team(self, team_id: str, user_id: str) -> Optional[dict]:
        row = await self.fetchone(
            f"SELECT {TEAM_COLUMNS} FROM teams WHERE id=? AND user_id=?",
            (team_id, user_id),
        )
        return _team_row(row) if row else None

    async def list_teams(self, user_id: str) -> List[dict]:
        rows = await self.fetchall(
            f"SELECT {TEAM_COLUMNS} FROM teams WHERE user_id=? ORDER BY created_at DESC",
            (user_id,),
        )
        return [_team_row(r) for r in rows]

    async def update_team(self, team_id: str, user_id: str, changes: Dict[str, Any]) -> Optional[dict]:
        current = await self.get_team(team_id, user_id)
        if not current:
            return None
        merged = {**current, **{k: v for k, v in changes.items() if v is not None}}
        await self.execute(
            "UPDATE teams SET name=?, description=?, coordinator_agent_id=?, member_agent_ids_json=?, "
            "execution_mode=?, updated_at=? WHERE id=? AND user_id=?",
            (
                merged["name"],
                merged["description"],
                merged["coordinator_agent_id"],
                json.dumps(merged["member_agent_ids"] or []),
                merged["execution_mode"],
                utc_now(),
                team_id,
                user_id,
            ),
        )
        return await self.get_team(team_id, user_id)

    async def delete_team(self, team_id: str, user_id: str) -> bool:
        return await self.execute("DELETE FROM teams WHERE id=? AND user_id=?", (team_id, user_id)) > 0

    # Conversations

    async def create_conversation(
        self,
        user_id: str,
        title: Optional[str] = None,
        agent_id: Optional[str] = None,
        model: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> dict:
        convo_id = uuid.uuid4().hex
        created_at = utc_now()
        await self.execute(
            f"INSERT INTO conversations({CONVERSATION_COLUMNS}) VALUES (?,?,?,?,?,?,?,?)",
            (convo_id, user_id, title or "New chat", agent_id, model, provider, created_at, created_at),
        )
        return await self.get_conversation(convo_id, user_id)

    async def get_conversation(self, conversation_id: str, user_id: str) -> Optional[dict]:
        row = await self.fetchone(
            f"SELECT {CONVERSATION_COLUMNS} FROM conversations WHERE id=? AND user_id=?",
            (conversation_id, user_id),
        )
        return dict(row) if row else None

    async def list_conversations(self, user_id: str, limit: int = 200) -> List[dict]:
        rows = await self.fetchall(
            f"SELECT {CONVERSATION_COLUMNS} FROM conversations WHERE user_id=? "
            "ORDER BY updated_at DESC, created_at DESC LIMIT ?",
            (user_id, limit),
        )
        return [dict(r) for r in rows]

    async def update_conversation(
        self, conversation_id: str, user_id: str, changes: Dict[str, Any]
    ) -> Optional[dict]:
        current = await self.get_conversation(conversation_id, user_id)
        if not current:
            return None
        merged = {**current, **{k: v for k, v in changes.items() if v is not None}}
        await self.execute(
            "UPDATE conversations SET title=?, agent_id=?, model=?, provider=?, updated_at=? WHERE id=? AND user_id=?",
            (merged["title"], merged["agent_id"], merged["model"], merged["provider"], utc_now(), conversation_id, user_id),
        )
        return await self.get_conversation(conversation_id, user_id)

    async def touch_conversation(self, conversation_id: str, updated_at: Optional[str] = None) -> str:
        stamp = updated_at or utc_now()
        await self.execute("UPDATE conversations SET updated_at=? WHERE id=?", (stamp, conversation_id))
        return stamp

    async def ensure_conversation_title(self, conversation_id: str, title: str) -> None:
        row = await self.fetchone("SELECT title FROM conversations WHERE id=?", (conversation_id,))
        if not row:
            return
        current = (row["title"] or "").strip()
        if current and current.lower() != "new chat":
            return
        await self.execute(
            "UPDATE conversations SET title=?, updated_at=? WHERE id=?",
            (title, utc_now(), conversation_id),
        )

    async def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        if not await self.get_conversation(conversation_id, user_id):
            return False
        await self.execute("DELETE FROM messages WHERE conversation_id=?", (conversation_id,))
        await self.execute("DELETE FROM conversations WHERE id=? AND user_id=?", (conversation_id, user_id))
        return True

    # Messages

    async def append_message(self, conversation_id: str, role: str, content: str) -> dict:
        message_id = uuid.uuid4().hex
        created_at = utc_now()
        await self.execute(
            "INSERT INTO messages(id, conversation_id, role, content, created_at) VALUES (?,?,?,?,?)",
            (message_id, conversation_id, role, content, created_at),
        )
        await self.touch_conversation(conversation_id, updated_at=created_at)
        return {
            "id": message_id,
            "conversation_id": conversation_id,
            "role": role,
            "content": content,
            "created_at": created_at,
        }

    async def list_messages(self, conversation_id: str, limit: int = 200) -> List[dict]:
        rows = await self.fetchall(
            "SELECT id, conversation_id, role, content, created_at FROM messages "
            "WHERE conversation_id=? ORDER BY created_at ASC, rowid ASC LIMIT ?",
            (conversation_id, limit),
        )
        return [dict(r) for r in rows]
