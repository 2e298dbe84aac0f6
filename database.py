import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from config import settings
from errors import StorageError

logger = logging.getLogger(__name__)


class Database:
    """Tüm depoların paylaştığı SQLite bağlantı havuzunu yönetir.

    Havuz ilk kullanımda oluşturulur. ``connect()`` havuzu hemen açar ve
    dosya açılamazsa hemen hata verir; ``close()`` havuzu boşaltır.
    Bağlantılar otomatik commit kipinde çalışır, çok adımlı yazmalar
    ``transaction()`` üzerinden yapılır. Dosya yolu zorunludur: ``:memory:``
    ile her havuz bağlantısı kendi boş veritabanını görürdü.
    """

    def __init__(self, db_file: Optional[str] = None, pool_size: Optional[int] = None) -> None:
        self.db_file = db_file or settings.database_file
        self.pool_size = pool_size or settings.database_pool_size
        self._pool: Optional[queue.Queue] = None
        self._pool_lock = threading.Lock()
        self._closed = False

    # ------------------------- Yaşam Döngüsü ------------------------- #
    def connect(self) -> None:
        """Havuzu açar, dosyanın kullanılabilir olduğunu doğrular ve şemayı oluşturur."""
        try:
            self._ensure_pool()
            with self.connection() as conn:
                conn.execute("SELECT 1")
            self.create_tables()
        except sqlite3.Error as exc:
            logger.error(f"Could not open database {self.db_file}: {exc}")
            raise StorageError("Database unavailable") from exc
        logger.info(f"Database ready at {self.db_file}")

    def close(self) -> None:
        """Boştaki bağlantıları kapatır; kullanımdakiler iade edilince kapanır."""
        with self._pool_lock:
            self._closed = True
            pool, self._pool = self._pool, None
        if pool is None:
            return
        drained = 0
        while True:
            try:
                conn = pool.get_nowait()
            except queue.Empty:
                break
            conn.close()
            drained += 1
        logger.info(f"Database pool drained ({drained} connections closed)")

    # ------------------------- Bağlantılar ------------------------- #
    def _new_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_file, check_same_thread=False, isolation_level=None, timeout=10)
        conn.row_factory = sqlite3.Row
        # WAL modunda okuyucular, ödünç/iade işlemi yazma kilidini tutarken de çalışır
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA temp_store=MEMORY;")
        return conn

    def _ensure_pool(self) -> queue.Queue:
        with self._pool_lock:
            if self._pool is None:
                self._closed = False
                self._pool = queue.Queue(maxsize=self.pool_size)
                for _ in range(self.pool_size):
                    self._pool.put(self._new_connection())
            return self._pool

    def _acquire(self) -> sqlite3.Connection:
        pool = self._ensure_pool()
        try:
            return pool.get_nowait()
        except queue.Empty:
            # Havuz boşsa fazladan bir bağlantı ver, iadede kapatılır
            return self._new_connection()

    def _release(self, conn: sqlite3.Connection) -> None:
        pool = self._pool
        if self._closed or pool is None:
            conn.close()
            return
        try:
            pool.put_nowait(conn)
        except queue.Full:
            conn.close()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._acquire()
        try:
            yield conn
        finally:
            self._release(conn)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Bloğu tek bir yazma işlemi olarak çalıştırır; her hata geri alır.

        BEGIN IMMEDIATE yazma kilidini baştan alır, böylece eşzamanlı iki
        işlem aynı kitabı Available okuyup ikisi birden güncelleyemez.
        """
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    # ------------------------- Şema ------------------------- #
    def create_tables(self) -> None:
        """Veritabanında mevcut değilse koleksiyon tablolarını oluşturur."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    author TEXT NOT NULL,
                    genre TEXT NOT NULL DEFAULT 'Unknown',
                    year INTEGER,
                    isbn TEXT,
                    cover TEXT,
                    status TEXT NOT NULL DEFAULT 'Available',
                    borrowed_by TEXT,
                    due_date TEXT,
                    borrow_count INTEGER NOT NULL DEFAULT 0 CHECK(borrow_count >= 0),
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS members (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    role TEXT NOT NULL DEFAULT 'student',
                    borrowed_books TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'member',
                    token TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS loans (
                    id TEXT PRIMARY KEY,
                    book_id TEXT NOT NULL,
                    member_id TEXT NOT NULL,
                    borrowed_on TEXT NOT NULL,
                    due_date TEXT NOT NULL,
                    returned_on TEXT,
                    fine INTEGER NOT NULL DEFAULT 0
                )
            """)

            # İlk şema sürümünden sonra eklenen sütunlar
            cursor.execute("PRAGMA table_info(users)")
            columns = [column[1] for column in cursor.fetchall()]
            if "last_login" not in columns:
                cursor.execute("ALTER TABLE users ADD COLUMN last_login TEXT")

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_created_at ON books(created_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_borrow_count ON books(borrow_count)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_users_token ON users(token)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_member ON loans(member_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_open ON loans(book_id, member_id, returned_on)")
