"""
Planning board storage backend (SQLite).

Persists the MutationSets produced by the engine and loads board snapshots
back into a BoardController. Each MutationSet is applied in one transaction.
"""
import logging
import sqlite3
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .board import BoardSnapshot
from .errors import NotFound
from .schema import Board, DependencyEdge, Mutation, MutationOp, MutationSet, Task, TaskList, make_id

logger = logging.getLogger(__name__)

# entity -> (table, writable columns)
TABLES: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "board": ("boards", ("name", "color")),
    "list": ("task_lists", ("board_id", "name", "position")),
    "task": ("tasks", (
        "title", "list_id", "parent_id", "plan_id", "description", "notes",
        "status", "priority", "category", "progress", "position",
        "start_date", "due_date", "assignee_id", "created_at", "updated_at",
    )),
    "dependency": ("task_dependencies", ("blocking_id", "dependent_id")),
}

_BOARD_TASKS = """
    WITH RECURSIVE board_tasks(id) AS (
        SELECT t.id FROM tasks t JOIN task_lists l ON t.list_id = l.id WHERE l.board_id = ?
        UNION
        SELECT t.id FROM tasks t JOIN board_tasks b ON t.parent_id = b.id
    )
"""


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class PlanStore:
    """SQLite-backed store for boards, lists, tasks and dependency edges."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "planboard" / "planboard.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS boards (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    color TEXT DEFAULT '#6366f1'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS task_lists (
                    id TEXT PRIMARY KEY,
                    board_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    position REAL NOT NULL DEFAULT 0,
                    FOREIGN KEY (board_id) REFERENCES boards(id) ON DELETE CASCADE
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    list_id TEXT,
                    parent_id TEXT,
                    plan_id TEXT,
                    description TEXT DEFAULT '',
                    notes TEXT DEFAULT '',
                    status TEXT DEFAULT 'pending',
                    priority TEXT DEFAULT 'medium',
                    category TEXT DEFAULT 'other',
                    progress INTEGER DEFAULT 0,
                    position REAL NOT NULL DEFAULT 0,
                    start_date TEXT,
                    due_date TEXT,
                    assignee_id TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS task_dependencies (
                    blocking_id TEXT NOT NULL,
                    dependent_id TEXT NOT NULL,
                    PRIMARY KEY (blocking_id, dependent_id),
                    FOREIGN KEY (blocking_id) REFERENCES tasks(id) ON DELETE CASCADE,
                    FOREIGN KEY (dependent_id) REFERENCES tasks(id) ON DELETE CASCADE
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_lists_board ON task_lists(board_id, position)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_list ON tasks(list_id, parent_id, position)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_parent ON tasks(parent_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_plan ON tasks(plan_id)")
            conn.commit()

    # ── Writes ───────────────────────────────────────────────────────────

    def apply(self, mutations: MutationSet) -> int:
        """Persist a MutationSet atomically. Returns the number of rows touched."""
        if not mutations:
            return 0
        try:
            with _connect(self.db_path) as conn:
                for mutation in mutations:
                    self._apply_one(conn, mutation)
                conn.commit()
        except sqlite3.Error as e:
            logger.error("Failed to apply %d mutation(s): %s", len(mutations), e)
            raise
        logger.debug("Applied %d mutation(s)", len(mutations))
        return len(mutations)

    def create_board(self, name: str, color: Optional[str] = None) -> Board:
        board = Board(id=make_id("board"), name=name)
        if color:
            board.color = color
        self.apply(MutationSet().create("board", board.id, **board.to_dict()))
        logger.info("Created board %s (%s)", board.id, name)
        return board

    def _apply_one(self, conn: sqlite3.Connection, mutation: Mutation) -> None:
        try:
            table, columns = TABLES[mutation.entity]
        except KeyError:
            raise ValueError(f"Unknown entity in mutation: {mutation.entity}")
        fields = {k: v for k, v in mutation.fields.items() if k in columns}

        if mutation.entity == "dependency":
            blocking, dependent = fields.get("blocking_id"), fields.get("dependent_id")
            if blocking is None or dependent is None:
                blocking, dependent = mutation.entity_id.split("->", 1)
            if mutation.op == MutationOp.DELETE:
                conn.execute(
                    "DELETE FROM task_dependencies WHERE blocking_id = ? AND dependent_id = ?",
                    (blocking, dependent),
                )
            else:
                conn.execute(
                    "INSERT OR IGNORE INTO task_dependencies (blocking_id, dependent_id) VALUES (?, ?)",
                    (blocking, dependent),
                )
            return

        if mutation.op == MutationOp.DELETE:
            conn.execute(f"DELETE FROM {table} WHERE id = ?", (mutation.entity_id,))
        elif mutation.op == MutationOp.CREATE:
            names = ["id"] + list(fields)
            placeholders = ", ".join("?" for _ in names)
            conn.execute(
                f"INSERT OR REPLACE INTO {table} ({', '.join(names)}) VALUES ({placeholders})",
                [mutation.entity_id] + list(fields.values()),
            )
        elif fields:
            assignments = ", ".join(f"{name} = ?" for name in fields)
            conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?",
                list(fields.values()) + [mutation.entity_id],
            )

    # ── Reads ────────────────────────────────────────────────────────────

    def list_boards(self) -> List[Board]:
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute("SELECT * FROM boards ORDER BY name, id").fetchall()
        except sqlite3.Error as e:
            logger.error("Error listing boards: %s", e)
            raise
        return [Board.from_dict(dict(row)) for row in rows]

    def load_board(self, board_id: str) -> BoardSnapshot:
        """Everything BoardController.from_snapshot needs for one board."""
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute("SELECT * FROM boards WHERE id = ?", (board_id,)).fetchone()
                if not row:
                    raise NotFound("board", board_id)
                list_rows = conn.execute(
                    "SELECT * FROM task_lists WHERE board_id = ? ORDER BY position, id", (board_id,)
                ).fetchall()
                task_rows = conn.execute(
                    _BOARD_TASKS + "SELECT tasks.* FROM tasks JOIN board_tasks USING (id)", (board_id,)
                ).fetchall()
                edge_rows = conn.execute(
                    _BOARD_TASKS + """
                    SELECT d.blocking_id, d.dependent_id FROM task_dependencies d
                    WHERE d.blocking_id IN (SELECT id FROM board_tasks)
                      AND d.dependent_id IN (SELECT id FROM board_tasks)
                    """,
                    (board_id,),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error("Error loading board %s: %s", board_id, e)
            raise

        lists = [TaskList.from_dict(dict(r)) for r in list_rows]
        board = Board.from_dict(dict(row))
        board.list_ids = [l.id for l in lists]
        return BoardSnapshot(
            board=board,
            lists=lists,
            tasks=[Task.from_dict(dict(r)) for r in task_rows],
            edges=[DependencyEdge(r["blocking_id"], r["dependent_id"]) for r in edge_rows],
        )

    def get_task(self, task_id: str) -> Optional[Task]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return Task.from_dict(dict(row)) if row else None
