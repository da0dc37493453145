import contextlib
import re
import sqlite3
import uuid
from typing import Iterable

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


_SAVEPOINT_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


DEFAULT_CATEGORIES = (
    ("Instrumentos de Corda", "cordas", "Guitarras, violoes, baixos, violinos e cellos."),
    ("Equipamentos de Audio", "audio", "Amplificadores, mixers, microfones, interfaces e monitores."),
    ("Instrumentos de Percussao", "percussao", "Baterias, tambores, pratos e percussao em geral."),
    ("Acessorios Musicais", "acessorios", "Cordas, palhetas, estantes, cabos, cases e suportes."),
    ("Teclas e Sopro", "teclas-e-sopro", "Pianos, teclados, orgaos, flautas, saxofones e trompetes."),
)


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._in_transaction = False

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, tuple(params or ()))

    @contextlib.contextmanager
    def transaction(self):
        """Run the block inside a single BEGIN/COMMIT; any exception rolls everything back."""
        if self._in_transaction:
            raise RuntimeError("Transacao ja aberta nesta conexao.")
        # sqlite takes the write lock up front so concurrent imports queue on busy_timeout.
        self.execute("BEGIN IMMEDIATE" if self.backend == "sqlite" else "BEGIN")
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self._in_transaction = False
            self.execute("ROLLBACK")
            raise
        self._in_transaction = False
        try:
            self.execute("COMMIT")
        except Exception:
            self.execute("ROLLBACK")
            raise

    @contextlib.contextmanager
    def savepoint(self, name: str):
        if not _SAVEPOINT_NAME.match(name or ""):
            raise ValueError(f"Nome de savepoint invalido: {name!r}")
        self.execute(f"SAVEPOINT {name}")
        try:
            yield self
        except BaseException:
            self.execute(f"ROLLBACK TO SAVEPOINT {name}")
            self.execute(f"RELEASE SAVEPOINT {name}")
            raise
        self.execute(f"RELEASE SAVEPOINT {name}")

    def commit(self):
        if self.backend == "postgres":
            return
        self._conn.commit()

    def close(self):
        self._conn.close()


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def new_id() -> str:
    return str(uuid.uuid4())


def is_unique_violation(exc: BaseException) -> bool:
    if isinstance(exc, sqlite3.IntegrityError):
        return "unique" in str(exc).lower()
    if psycopg2 is not None and isinstance(exc, psycopg2.IntegrityError):
        return getattr(exc, "pgcode", None) == "23505"
    return False


def is_database_error(exc: BaseException) -> bool:
    if isinstance(exc, sqlite3.Error):
        return True
    return psycopg2 is not None and isinstance(exc, psycopg2.Error)


def connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 nao instalado.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path, timeout=30.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
        return

    _init_db_sqlite(db)


def _init_db_sqlite(db: Database):
    db.execute(
        """
        CREATE TABLE IF NOT EXISTS suppliers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            cnpj TEXT NOT NULL,
            email TEXT,
            phone TEXT,
            address TEXT,
            city TEXT,
            state TEXT,
            zip_code TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            deleted_at TEXT
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS categories (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            description TEXT,
            parent_id TEXT REFERENCES categories(id),
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            deleted_at TEXT
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            sku TEXT,
            description TEXT,
            short_description TEXT,
            price TEXT NOT NULL DEFAULT '0.00',
            compare_price TEXT,
            cost_price TEXT,
            barcode TEXT,
            stock_quantity INTEGER NOT NULL DEFAULT 0 CHECK (stock_quantity >= 0),
            min_stock_alert INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('draft','active','inactive')),
            featured INTEGER NOT NULL DEFAULT 0,
            meta_title TEXT,
            meta_description TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            deleted_at TEXT
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS product_categories (
            product_id TEXT NOT NULL REFERENCES products(id),
            category_id TEXT NOT NULL REFERENCES categories(id),
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (product_id, category_id)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS product_logs (
            id TEXT PRIMARY KEY,
            product_id TEXT NOT NULL REFERENCES products(id),
            action TEXT NOT NULL CHECK (action IN ('created','updated','deleted','stock_changed')),
            old_values TEXT,
            new_values TEXT,
            responsible_user_id TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    _create_indexes(db)
    db.commit()


def _init_db_postgres(db: Database) -> None:
    db.execute(
        """
        CREATE TABLE IF NOT EXISTS suppliers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            cnpj VARCHAR(14) NOT NULL,
            email TEXT,
            phone TEXT,
            address TEXT,
            city TEXT,
            state TEXT,
            zip_code TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS categories (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            description TEXT,
            parent_id TEXT REFERENCES categories(id),
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            slug VARCHAR(255) NOT NULL UNIQUE,
            sku VARCHAR(255),
            description TEXT,
            short_description TEXT,
            price NUMERIC(12, 2) NOT NULL DEFAULT 0,
            compare_price NUMERIC(12, 2),
            cost_price NUMERIC(12, 2),
            barcode TEXT,
            stock_quantity INTEGER NOT NULL DEFAULT 0 CHECK (stock_quantity >= 0),
            min_stock_alert INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('draft','active','inactive')),
            featured BOOLEAN NOT NULL DEFAULT FALSE,
            meta_title VARCHAR(255),
            meta_description TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS product_categories (
            product_id TEXT NOT NULL REFERENCES products(id),
            category_id TEXT NOT NULL REFERENCES categories(id),
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (product_id, category_id)
        )
        """
    )

    db.execute(
        """
        CREATE TABLE IF NOT EXISTS product_logs (
            id TEXT PRIMARY KEY,
            product_id TEXT NOT NULL REFERENCES products(id),
            action TEXT NOT NULL CHECK (action IN ('created','updated','deleted','stock_changed')),
            old_values JSONB,
            new_values JSONB,
            responsible_user_id TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    _create_indexes(db)


def _create_indexes(db: Database) -> None:
    db.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_suppliers_cnpj_live
        ON suppliers (cnpj)
        WHERE deleted_at IS NULL
        """
    )
    db.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_products_sku_live
        ON products (sku)
        WHERE deleted_at IS NULL AND sku IS NOT NULL
        """
    )
    db.execute("CREATE INDEX IF NOT EXISTS idx_categories_parent ON categories (parent_id)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_product_logs_product ON product_logs (product_id, created_at)")


def seed_default_categories(db: Database) -> int:
    created = 0
    for sort_order, (name, slug, description) in enumerate(DEFAULT_CATEGORIES):
        row = db.execute("SELECT 1 FROM categories WHERE slug = ?", (slug,)).fetchone()
        if row:
            continue
        db.execute(
            """
            INSERT INTO categories (id, name, slug, description, sort_order, is_active)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (new_id(), name, slug, description, sort_order, True),
        )
        created += 1
    db.commit()
    return created
