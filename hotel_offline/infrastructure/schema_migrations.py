from __future__ import annotations

from collections.abc import Sequence

from hotel_offline.infrastructure.engine import SQLiteEngine
from hotel_offline.infrastructure.migrations import Migration

_SYNC_COLUMNS = """
    synced_at TEXT DEFAULT NULL,
    needs_sync INTEGER NOT NULL DEFAULT 0
"""

_INITIAL_TABLES = (
    f"""
    CREATE TABLE IF NOT EXISTS rooms (
        id INTEGER PRIMARY KEY,
        room_number TEXT NOT NULL,
        type TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'Available',
        price REAL NOT NULL,
        capacity INTEGER NOT NULL,
        amenities TEXT,
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS guests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT,
        phone TEXT,
        room TEXT,
        check_in_date TEXT,
        check_out_date TEXT,
        status TEXT DEFAULT 'Pending',
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS reservations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        guest_id INTEGER REFERENCES guests(id),
        room_id INTEGER REFERENCES rooms(id),
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        status TEXT DEFAULT 'Confirmed',
        total_amount REAL DEFAULT 0,
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS invoices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        guest_name TEXT NOT NULL,
        room_number TEXT NOT NULL,
        check_in_date TEXT NOT NULL,
        check_out_date TEXT NOT NULL,
        room_type TEXT NOT NULL DEFAULT 'Standard',
        nights INTEGER NOT NULL DEFAULT 1,
        room_rate REAL NOT NULL DEFAULT 0,
        room_total REAL NOT NULL DEFAULT 0,
        service_total REAL NOT NULL DEFAULT 0,
        amount REAL NOT NULL DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'Pending',
        has_service_items INTEGER DEFAULT 0,
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS invoice_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_id INTEGER NOT NULL REFERENCES invoices(id),
        service_id INTEGER,
        item_name TEXT NOT NULL,
        item_price REAL NOT NULL DEFAULT 0,
        item_date TEXT,
        item_type TEXT DEFAULT 'service',
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS user_profiles (
        user_id TEXT PRIMARY KEY,
        full_name TEXT,
        position TEXT,
        department TEXT,
        contact_number TEXT,
        role TEXT DEFAULT 'staff',
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS access_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        full_name TEXT NOT NULL,
        email TEXT NOT NULL,
        position TEXT NOT NULL,
        department TEXT NOT NULL,
        reason TEXT,
        contact_number TEXT,
        request_date TEXT,
        status TEXT DEFAULT 'pending',
        processed_by TEXT,
        processed_at TEXT,
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS services (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        price REAL NOT NULL DEFAULT 0,
        category TEXT,
        available INTEGER DEFAULT 1,
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS service_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        guest_id INTEGER REFERENCES guests(id),
        room_number TEXT,
        service_id INTEGER REFERENCES services(id),
        description TEXT,
        status TEXT DEFAULT 'pending',
        priority TEXT DEFAULT 'normal',
        assigned_to TEXT,
        requested_at TEXT,
        completed_at TEXT,
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        assigned_to TEXT,
        status TEXT DEFAULT 'pending',
        priority TEXT DEFAULT 'normal',
        due_date TEXT,
        completed_at TEXT,
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS inventory_categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        description TEXT,
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS inventory_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        category_id INTEGER REFERENCES inventory_categories(id),
        quantity INTEGER DEFAULT 0,
        unit TEXT DEFAULT 'piece',
        min_quantity INTEGER DEFAULT 0,
        price REAL DEFAULT 0,
        supplier TEXT,
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS reports (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        type TEXT NOT NULL,
        data TEXT,
        parameters TEXT,
        generated_at TEXT,
        generated_by TEXT,
        created_at TEXT,
        updated_at TEXT,
        {_SYNC_COLUMNS}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_queue (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        table_name TEXT NOT NULL,
        record_id TEXT NOT NULL,
        operation TEXT NOT NULL CHECK (operation IN ('INSERT', 'UPDATE', 'DELETE')),
        data TEXT,
        timestamp TEXT NOT NULL,
        sync_status TEXT NOT NULL DEFAULT 'pending'
            CHECK (sync_status IN ('pending', 'syncing', 'completed', 'failed')),
        retry_count INTEGER NOT NULL DEFAULT 0,
        error_message TEXT,
        priority INTEGER NOT NULL DEFAULT 2
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS conflict_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        table_name TEXT NOT NULL,
        record_id TEXT NOT NULL,
        local_data TEXT,
        server_data TEXT,
        conflict_type TEXT,
        resolution TEXT CHECK (resolution IS NULL OR resolution IN ('local_wins', 'server_wins', 'manual', 'merged')),
        resolved_data TEXT,
        created_at TEXT NOT NULL,
        resolved_at TEXT,
        resolved_by TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS offline_sessions (
        session_id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        user_data TEXT,
        start_time TEXT,
        last_activity TEXT,
        is_active INTEGER DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS local_settings (
        key TEXT PRIMARY KEY,
        value TEXT,
        type TEXT NOT NULL DEFAULT 'string' CHECK (type IN ('string', 'number', 'boolean', 'json')),
        updated_at TEXT
    )
    """,
)

_INITIAL_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_rooms_status ON rooms(status)",
    "CREATE INDEX IF NOT EXISTS idx_rooms_type ON rooms(type)",
    "CREATE INDEX IF NOT EXISTS idx_rooms_needs_sync ON rooms(needs_sync)",
    "CREATE INDEX IF NOT EXISTS idx_guests_room ON guests(room)",
    "CREATE INDEX IF NOT EXISTS idx_guests_status ON guests(status)",
    "CREATE INDEX IF NOT EXISTS idx_guests_needs_sync ON guests(needs_sync)",
    "CREATE INDEX IF NOT EXISTS idx_reservations_dates ON reservations(start_date, end_date)",
    "CREATE INDEX IF NOT EXISTS idx_reservations_guest ON reservations(guest_id)",
    "CREATE INDEX IF NOT EXISTS idx_reservations_room ON reservations(room_id)",
    "CREATE INDEX IF NOT EXISTS idx_reservations_needs_sync ON reservations(needs_sync)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_status ON invoices(status)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_needs_sync ON invoices(needs_sync)",
    "CREATE INDEX IF NOT EXISTS idx_invoice_items_invoice ON invoice_items(invoice_id)",
    "CREATE INDEX IF NOT EXISTS idx_sync_queue_status ON sync_queue(sync_status)",
    "CREATE INDEX IF NOT EXISTS idx_sync_queue_priority ON sync_queue(priority, timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_sync_queue_table ON sync_queue(table_name)",
)


def _run_all(engine: SQLiteEngine, statements: Sequence[str]) -> None:
    for statement in statements:
        engine.execute(statement)


def create_initial_schema(engine: SQLiteEngine) -> None:
    _run_all(engine, _INITIAL_TABLES)
    _run_all(engine, _INITIAL_INDEXES)


def add_sync_queue_prior_payload(engine: SQLiteEngine) -> None:
    engine.execute("ALTER TABLE sync_queue ADD COLUMN old_data TEXT")


def add_conflict_log_lookup_index(engine: SQLiteEngine) -> None:
    _run_all(
        engine,
        (
            "CREATE INDEX IF NOT EXISTS idx_conflict_log_record ON conflict_log(table_name, record_id)",
            "CREATE INDEX IF NOT EXISTS idx_conflict_log_unresolved ON conflict_log(resolved_at)",
            "CREATE INDEX IF NOT EXISTS idx_sync_queue_record ON sync_queue(table_name, record_id)",
        ),
    )


DEFAULT_MIGRATIONS: tuple[Migration, ...] = (
    Migration("001_initial_schema", create_initial_schema),
    Migration("002_sync_queue_prior_payload", add_sync_queue_prior_payload),
    Migration("003_conflict_log_lookup_index", add_conflict_log_lookup_index),
)
