"""SQLite 数据库初始化

PRAGMA 配置 + 各集合 DDL + 索引创建。
金额列统一为整数分（*_cents）。
"""

import aiosqlite

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id             TEXT PRIMARY KEY,
    title               TEXT NOT NULL,
    description         TEXT NOT NULL DEFAULT '',
    category            TEXT NOT NULL DEFAULT '',
    location            TEXT NOT NULL DEFAULT '',
    price_cents         INTEGER NOT NULL DEFAULT 0 CHECK (price_cents >= 0),
    estimated_time      TEXT NOT NULL DEFAULT '',
    created_by          TEXT NOT NULL,
    accepted_by         TEXT,
    status              TEXT NOT NULL DEFAULT 'open',
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    completed_at        TEXT,
    cancelled_at        TEXT,
    cancelled_by        TEXT,
    cancellation_reason TEXT,

    CHECK (accepted_by IS NULL OR accepted_by <> created_by)
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_by ON tasks(created_by);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_accepted_by ON tasks(accepted_by);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at DESC);",
]

# progress_entries 表 DDL（append-only）
_PROGRESS_DDL = """
CREATE TABLE IF NOT EXISTS progress_entries (
    entry_id    TEXT PRIMARY KEY,
    task_id     TEXT NOT NULL,
    task_seq    INTEGER NOT NULL,
    status      TEXT NOT NULL,
    notes       TEXT,
    actor_id    TEXT NOT NULL,
    created_at  TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_PROGRESS_INDEXES = [
    # 任务内序号唯一约束（确保 task_seq 严格单调递增）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_progress_task_seq "
        "ON progress_entries(task_id, task_seq);"
    ),
]

# wallets 表 DDL
_WALLETS_DDL = """
CREATE TABLE IF NOT EXISTS wallets (
    user_id        TEXT PRIMARY KEY,
    balance_cents  INTEGER NOT NULL DEFAULT 0,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);
"""

# transactions 表 DDL（账本，append-only）
_TRANSACTIONS_DDL = """
CREATE TABLE IF NOT EXISTS transactions (
    transaction_id   TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    task_id          TEXT,
    amount_cents     INTEGER NOT NULL,
    type             TEXT NOT NULL,
    description      TEXT NOT NULL DEFAULT '',
    idempotency_key  TEXT,
    created_at       TEXT NOT NULL,

    FOREIGN KEY (user_id) REFERENCES wallets(user_id)
);
"""

_TRANSACTIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_transactions_task ON transactions(task_id);",
    # 幂等键唯一约束（仅对非 NULL 值生效）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_transactions_idempotency_key "
        "ON transactions(idempotency_key) WHERE idempotency_key IS NOT NULL;"
    ),
]

# chat_threads 表 DDL
_CHAT_THREADS_DDL = """
CREATE TABLE IF NOT EXISTS chat_threads (
    thread_id          TEXT PRIMARY KEY,
    participant_key    TEXT NOT NULL,
    participant_a      TEXT NOT NULL,
    participant_b      TEXT NOT NULL,
    last_task_id       TEXT,
    last_message       TEXT,
    last_message_time  TEXT,
    last_sender        TEXT,
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL
);
"""

_CHAT_THREADS_INDEXES = [
    # 同一对用户至多一个会话
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_chat_threads_participants "
        "ON chat_threads(participant_key);"
    ),
    "CREATE INDEX IF NOT EXISTS idx_chat_threads_a ON chat_threads(participant_a);",
    "CREATE INDEX IF NOT EXISTS idx_chat_threads_b ON chat_threads(participant_b);",
]

# 会话消息（规范写入）
_CHAT_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS chat_messages (
    message_id      TEXT PRIMARY KEY,
    thread_id       TEXT NOT NULL,
    sender_id       TEXT NOT NULL,
    recipient_id    TEXT NOT NULL,
    content         TEXT NOT NULL,
    attachment_ref  TEXT,
    task_id         TEXT,
    is_read         INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL,

    FOREIGN KEY (thread_id) REFERENCES chat_threads(thread_id)
);
"""

# 任务维度消息投影（兼容按任务读取消息的旧读者），message_id 与规范写入一致
_TASK_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS task_messages (
    message_id      TEXT PRIMARY KEY,
    task_id         TEXT NOT NULL,
    thread_id       TEXT NOT NULL,
    sender_id       TEXT NOT NULL,
    recipient_id    TEXT NOT NULL,
    content         TEXT NOT NULL,
    attachment_ref  TEXT,
    is_read         INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL,

    FOREIGN KEY (message_id) REFERENCES chat_messages(message_id)
);
"""

_MESSAGES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_chat_messages_thread ON chat_messages(thread_id, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_task_messages_task ON task_messages(task_id, created_at);",
]

# notifications 表 DDL
_NOTIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS notifications (
    notification_id  TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    type             TEXT NOT NULL,
    title            TEXT NOT NULL,
    content          TEXT NOT NULL,
    task_id          TEXT,
    read             INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT NOT NULL
);
"""

_NOTIFICATIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at DESC);",
]

# user_stats 表 DDL（取消计数与完成计数随业务事务维护）
_USER_STATS_DDL = """
CREATE TABLE IF NOT EXISTS user_stats (
    user_id               TEXT PRIMARY KEY,
    tasks_completed       INTEGER NOT NULL DEFAULT 0,
    total_earnings_cents  INTEGER NOT NULL DEFAULT 0,
    cancellation_count    INTEGER NOT NULL DEFAULT 0,
    rating_sum            INTEGER NOT NULL DEFAULT 0,
    review_count          INTEGER NOT NULL DEFAULT 0,
    updated_at            TEXT NOT NULL
);
"""

# reviews 表 DDL
_REVIEWS_DDL = """
CREATE TABLE IF NOT EXISTS reviews (
    review_id    TEXT PRIMARY KEY,
    task_id      TEXT NOT NULL,
    reviewer_id  TEXT NOT NULL,
    reviewee_id  TEXT NOT NULL,
    rating       INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
    comment      TEXT NOT NULL DEFAULT '',
    created_at   TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_REVIEWS_INDEXES = [
    # 每位评价者对每个任务只能评价一次
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_reviews_task_reviewer ON reviews(task_id, reviewer_id);",
    "CREATE INDEX IF NOT EXISTS idx_reviews_reviewee ON reviews(reviewee_id);",
]

_ALL_DDL = [
    _TASKS_DDL,
    _PROGRESS_DDL,
    _WALLETS_DDL,
    _TRANSACTIONS_DDL,
    _CHAT_THREADS_DDL,
    _CHAT_MESSAGES_DDL,
    _TASK_MESSAGES_DDL,
    _NOTIFICATIONS_DDL,
    _USER_STATS_DDL,
    _REVIEWS_DDL,
]

_ALL_INDEXES = (
    _TASKS_INDEXES
    + _PROGRESS_INDEXES
    + _TRANSACTIONS_INDEXES
    + _CHAT_THREADS_INDEXES
    + _MESSAGES_INDEXES
    + _NOTIFICATIONS_INDEXES
    + _REVIEWS_INDEXES
)


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    for ddl in _ALL_DDL:
        await conn.execute(ddl)

    for idx_sql in _ALL_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效"""
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
