"""
SQL game store: SQLAlchemy-backed bosses, trades and game session.

Uses the given URL (DATABASE_URL / BOSSRAID_DB_URL) for PostgreSQL; otherwise
a local SQLite file. Trade settlement locks the boss row (SELECT ... FOR
UPDATE where supported) and guards the health write with a version check, so
concurrent writers cannot lose updates.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    String,
    case,
    create_engine,
    func,
    text,
    update,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from backend_bossraid.bossraid_logging import bind_trade, get_logger
from backend_bossraid.core.exceptions import (
    BossNotFoundError,
    PersistenceError,
    StaleBossVersionError,
)
from backend_bossraid.database.database import (
    SESSION_ID,
    GameStoreBackend,
    OutcomeResolver,
    SettlementResult,
    TradeBuilder,
    log_health_audit,
    validate_health,
)
from backend_bossraid.database.models import (
    TX_BUY,
    TX_SELL,
    Boss,
    BossSprites,
    GameSession,
    Trade,
    TraderDamage,
    utc_now_iso,
)

logger = get_logger(__name__)

Base = declarative_base()

SETTLE_MAX_ATTEMPTS = 3
MIGRATION_BATCH_SIZE = 200

# -----------------------------------------------------------------------------
# SQLAlchemy models
# -----------------------------------------------------------------------------


class BossRow(Base):
    """One row per boss; id order is raid order."""

    __tablename__ = "bosses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    boss_id = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(128), nullable=False)
    max_health = Column(Float, nullable=False)
    current_health = Column(Float, nullable=False)
    buy_weight = Column(Float, nullable=False, default=0.0)
    sell_weight = Column(Float, nullable=False, default=0.0)
    damage_per_buy = Column(Float, nullable=False, default=0.0)
    heal_per_sell = Column(Float, nullable=False, default=0.0)
    sprites = Column(JSON, nullable=True)
    is_defeated = Column(Boolean, nullable=False, default=False, index=True)
    defeated_at = Column(String(40), nullable=True)
    owner_wallet = Column(String(64), nullable=True)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(String(40), nullable=True)
    updated_at = Column(String(40), nullable=True)

    def to_model(self) -> Boss:
        return Boss(
            id=self.id,
            boss_id=self.boss_id,
            name=self.name,
            max_health=self.max_health,
            current_health=self.current_health,
            buy_weight=self.buy_weight,
            sell_weight=self.sell_weight,
            damage_per_buy=self.damage_per_buy or 0.0,
            heal_per_sell=self.heal_per_sell or 0.0,
            sprites=BossSprites.from_dict(self.sprites),
            is_defeated=bool(self.is_defeated),
            defeated_at=self.defeated_at,
            owner_wallet=self.owner_wallet,
            version=self.version or 0,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def apply(self, boss: Boss) -> None:
        """Copy every mutable field from a domain boss."""
        self.boss_id = boss.boss_id
        self.name = boss.name
        self.max_health = boss.max_health
        self.current_health = boss.current_health
        self.buy_weight = boss.buy_weight
        self.sell_weight = boss.sell_weight
        self.damage_per_buy = boss.damage_per_buy
        self.heal_per_sell = boss.heal_per_sell
        self.sprites = boss.sprites.to_dict()
        self.is_defeated = boss.is_defeated
        self.defeated_at = boss.defeated_at
        self.owner_wallet = boss.owner_wallet


class TradeRow(Base):
    """Applied trade; signature is unique (dedup at the storage level)."""

    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    boss_id = Column(Integer, nullable=False, index=True)
    signature = Column(String(128), unique=True, nullable=False, index=True)
    mint = Column(String(64), nullable=False)
    sol_amount = Column(Float, nullable=False)
    token_amount = Column(Float, nullable=False, default=0.0)
    tx_type = Column(String(8), nullable=False)
    damage_dealt = Column(Float, nullable=False, default=0.0)
    heal_applied = Column(Float, nullable=False, default=0.0)
    timestamp = Column(String(40), nullable=False, index=True)
    trader_address = Column(String(64), nullable=True, index=True)
    created_at = Column(String(40), nullable=True)

    def to_model(self) -> Trade:
        return Trade(
            id=self.id,
            boss_id=self.boss_id,
            signature=self.signature,
            mint=self.mint,
            sol_amount=self.sol_amount,
            token_amount=self.token_amount or 0.0,
            tx_type=self.tx_type,
            damage_dealt=self.damage_dealt or 0.0,
            heal_applied=self.heal_applied or 0.0,
            timestamp=self.timestamp,
            trader_address=self.trader_address,
            created_at=self.created_at,
        )

    @classmethod
    def from_model(cls, trade: Trade) -> "TradeRow":
        return cls(
            boss_id=trade.boss_id,
            signature=trade.signature,
            mint=trade.mint,
            sol_amount=trade.sol_amount,
            token_amount=trade.token_amount,
            tx_type=trade.tx_type,
            damage_dealt=trade.damage_dealt,
            heal_applied=trade.heal_applied,
            timestamp=trade.timestamp,
            trader_address=trade.trader_address,
            created_at=trade.created_at or utc_now_iso(),
        )


class GameSessionRow(Base):
    """Singleton session row (id = 1)."""

    __tablename__ = "game_session"

    id = Column(Integer, primary_key=True)
    current_boss_id = Column(Integer, nullable=False, default=1)
    total_damage_dealt = Column(Float, nullable=False, default=0.0)
    total_heal_applied = Column(Float, nullable=False, default=0.0)
    session_start = Column(String(40), nullable=False)
    last_activity = Column(String(40), nullable=False)

    def to_model(self) -> GameSession:
        return GameSession(
            id=self.id,
            current_boss_id=self.current_boss_id,
            total_damage_dealt=self.total_damage_dealt or 0.0,
            total_heal_applied=self.total_heal_applied or 0.0,
            session_start=self.session_start,
            last_activity=self.last_activity,
        )


# -----------------------------------------------------------------------------
# Backend
# -----------------------------------------------------------------------------


class SQLBackend(GameStoreBackend):
    """SQLAlchemy store: PostgreSQL in production, SQLite locally and in tests."""

    def __init__(self, url: str) -> None:
        self._url = url
        connect_args: dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self._engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        self._supports_row_lock = not url.startswith("sqlite")
        logger.info("sql_store_engine", url=make_url(url).render_as_string(hide_password=True))

    @property
    def url(self) -> str:
        return self._url

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Context manager for a single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("sql_store_error", error=str(e))
            raise PersistenceError(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ensure_schema(self) -> None:
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            logger.exception("sql_store_init_failed", error=str(e))
            raise PersistenceError(f"Cannot create tables: {e}") from e
        logger.info("sql_store_init_db")

    # --- helpers inside a session ---

    def _boss_row(self, session: Session, boss_id: int, *, for_update: bool = False) -> BossRow:
        q = session.query(BossRow).filter(BossRow.id == boss_id)
        if for_update and self._supports_row_lock:
            q = q.with_for_update()
        row = q.first()
        if row is None:
            raise BossNotFoundError(boss_id)
        return row

    def _session_row(self, session: Session) -> GameSessionRow:
        row = session.get(GameSessionRow, SESSION_ID)
        if row is None:
            first = session.query(func.min(BossRow.id)).scalar() or 1
            now = utc_now_iso()
            row = GameSessionRow(
                id=SESSION_ID,
                current_boss_id=first,
                total_damage_dealt=0.0,
                total_heal_applied=0.0,
                session_start=now,
                last_activity=now,
            )
            session.add(row)
            session.flush()
        return row

    def _write_health(
        self,
        session: Session,
        row: BossRow,
        health: float,
        defeated: bool,
        expected_version: int,
    ) -> Boss:
        """Versioned UPDATE: affects zero rows when another writer bumped the version."""
        boss = row.to_model()
        validate_health(boss, health)
        now = utc_now_iso()
        values: dict[str, Any] = {
            "current_health": health,
            "is_defeated": defeated,
            "version": expected_version + 1,
            "updated_at": now,
        }
        if defeated and not row.defeated_at:
            values["defeated_at"] = now
        result = session.execute(
            update(BossRow)
            .where(BossRow.id == row.id, BossRow.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.expire(row)
            raise StaleBossVersionError(row.id, expected_version, row.version)
        log_health_audit(boss, health, defeated)
        session.expire(row)
        return row.to_model()

    def _add_totals(
        self,
        session: Session,
        damage: float,
        heal: float,
        new_boss_id: int | None,
    ) -> None:
        srow = self._session_row(session)
        srow.total_damage_dealt = (srow.total_damage_dealt or 0.0) + damage
        srow.total_heal_applied = (srow.total_heal_applied or 0.0) + heal
        if new_boss_id is not None:
            srow.current_boss_id = new_boss_id
        srow.last_activity = utc_now_iso()

    # --- Bosses ---

    def list_bosses(self) -> list[Boss]:
        with self._session_scope() as session:
            return [r.to_model() for r in session.query(BossRow).order_by(BossRow.id.asc()).all()]

    def get_boss(self, boss_id: int) -> Boss | None:
        with self._session_scope() as session:
            row = session.get(BossRow, boss_id)
            return row.to_model() if row else None

    def get_boss_by_slug(self, slug: str) -> Boss | None:
        with self._session_scope() as session:
            row = session.query(BossRow).filter(BossRow.boss_id == slug).first()
            return row.to_model() if row else None

    def upsert_boss(self, boss: Boss, *, preserve_id: bool = False) -> Boss:
        now = utc_now_iso()
        with self._session_scope() as session:
            row = session.query(BossRow).filter(BossRow.boss_id == boss.boss_id).first()
            if row is None:
                row = BossRow(created_at=boss.created_at or now, version=boss.version)
                if preserve_id and boss.id:
                    row.id = boss.id
                session.add(row)
            else:
                row.version = max(boss.version, (row.version or 0) + 1)
            row.apply(boss)
            row.updated_at = now
            session.flush()
            return row.to_model()

    def write_boss_health(
        self,
        boss_id: int,
        health: float,
        defeated: bool,
        *,
        expected_version: int | None = None,
    ) -> Boss:
        with self._session_scope() as session:
            row = self._boss_row(session, boss_id, for_update=True)
            version = row.version or 0
            if expected_version is not None and version != expected_version:
                raise StaleBossVersionError(boss_id, expected_version, version)
            return self._write_health(session, row, health, defeated, version)

    # --- Trades ---

    def insert_trade(self, trade: Trade) -> bool:
        try:
            with self._session_scope() as session:
                if session.query(TradeRow.id).filter(TradeRow.signature == trade.signature).first():
                    return False
                session.add(TradeRow.from_model(trade))
                session.flush()
        except PersistenceError as e:
            # Concurrent insert of the same signature lost the race
            if isinstance(e.__cause__, IntegrityError):
                return False
            raise
        return True

    def get_trade(self, signature: str) -> Trade | None:
        with self._session_scope() as session:
            row = session.query(TradeRow).filter(TradeRow.signature == signature).first()
            return row.to_model() if row else None

    def list_trades(self, boss_id: int | None = None, *, limit: int | None = None) -> list[Trade]:
        with self._session_scope() as session:
            q = session.query(TradeRow)
            if boss_id is not None:
                q = q.filter(TradeRow.boss_id == boss_id)
            q = q.order_by(TradeRow.timestamp.desc(), TradeRow.id.desc())
            if limit is not None:
                q = q.limit(limit)
            return [r.to_model() for r in q.all()]

    def set_trader_address(self, signature: str, trader_address: str) -> bool:
        with self._session_scope() as session:
            row = session.query(TradeRow).filter(TradeRow.signature == signature).first()
            if row is None:
                return False
            row.trader_address = trader_address
            return True

    def trader_damage(self, boss_id: int) -> list[TraderDamage]:
        with self._session_scope() as session:
            rows = (
                session.query(
                    TradeRow.trader_address,
                    func.coalesce(func.sum(TradeRow.damage_dealt), 0.0),
                    func.coalesce(func.sum(TradeRow.heal_applied), 0.0),
                    func.sum(case((TradeRow.tx_type == TX_BUY, 1), else_=0)),
                    func.sum(case((TradeRow.tx_type == TX_SELL, 1), else_=0)),
                )
                .filter(TradeRow.boss_id == boss_id, TradeRow.trader_address.isnot(None))
                .group_by(TradeRow.trader_address)
                .all()
            )
        return [
            TraderDamage(
                address=address,
                total_damage=float(damage),
                total_heal=float(heal),
                buy_count=int(buys),
                sell_count=int(sells),
            )
            for address, damage, heal, buys, sells in rows
            if address
        ]

    # --- Session ---

    def get_session(self) -> GameSession:
        with self._session_scope() as session:
            return self._session_row(session).to_model()

    def add_session_totals(
        self,
        session_id: int,
        damage: float,
        heal: float,
        new_boss_id: int | None = None,
    ) -> bool:
        if session_id != SESSION_ID:
            return False
        with self._session_scope() as session:
            self._add_totals(session, damage, heal, new_boss_id)
        return True

    # --- Whole-store ---

    def reset_all(self) -> None:
        now = utc_now_iso()
        with self._session_scope() as session:
            for row in session.query(BossRow).all():
                row.current_health = row.max_health
                row.is_defeated = False
                row.defeated_at = None
                row.version = (row.version or 0) + 1
                row.updated_at = now
            srow = self._session_row(session)
            srow.current_boss_id = session.query(func.min(BossRow.id)).scalar() or 1
            srow.total_damage_dealt = 0.0
            srow.total_heal_applied = 0.0
            srow.session_start = now
            srow.last_activity = now

    def settle_trade(
        self,
        boss_id: int,
        signature: str,
        resolve: OutcomeResolver,
        build_trade: TradeBuilder,
    ) -> SettlementResult:
        for attempt in range(1, SETTLE_MAX_ATTEMPTS + 1):
            try:
                return self._settle_once(boss_id, signature, resolve, build_trade)
            except StaleBossVersionError as e:
                bind_trade(logger, signature, boss_id).warning(
                    "settle_version_conflict",
                    attempt=attempt,
                    expected=e.expected,
                )
                if attempt == SETTLE_MAX_ATTEMPTS:
                    raise
        raise AssertionError("unreachable")

    def _settle_once(
        self,
        boss_id: int,
        signature: str,
        resolve: OutcomeResolver,
        build_trade: TradeBuilder,
    ) -> SettlementResult:
        with self._session_scope() as session:
            row = self._boss_row(session, boss_id, for_update=True)
            if session.query(TradeRow.id).filter(TradeRow.signature == signature).first():
                return SettlementResult(boss=row.to_model(), outcome=None, duplicate=True)

            stored = row.to_model()
            outcome = resolve(stored)
            if not outcome.applied:
                return SettlementResult(boss=stored, outcome=outcome)

            boss = self._write_health(session, row, outcome.new_health, outcome.defeated, stored.version)
            session.add(TradeRow.from_model(build_trade(outcome)))
            next_boss_id = None
            if outcome.defeated:
                next_boss_id = (
                    session.query(func.min(BossRow.id)).filter(BossRow.is_defeated.is_(False)).scalar()
                )
            self._add_totals(session, outcome.damage, outcome.heal, next_boss_id)
            session.flush()
        return SettlementResult(boss=boss, outcome=outcome)

    # --- Migration ---

    def replace_all(
        self,
        bosses: list[Boss],
        trades: list[Trade],
        game_session: GameSession | None,
    ) -> None:
        """
        Replace the whole store with the given rows, keeping boss and trade ids.
        One transaction; trades are flushed in batches.
        """
        with self._session_scope() as session:
            session.query(TradeRow).delete()
            session.query(GameSessionRow).delete()
            session.query(BossRow).delete()
            session.flush()

            for boss in sorted(bosses, key=lambda b: b.id):
                row = BossRow(
                    id=boss.id,
                    version=boss.version,
                    created_at=boss.created_at or utc_now_iso(),
                    updated_at=boss.updated_at or utc_now_iso(),
                )
                row.apply(boss)
                session.add(row)
            session.flush()

            if game_session is not None:
                session.add(
                    GameSessionRow(
                        id=SESSION_ID,
                        current_boss_id=game_session.current_boss_id,
                        total_damage_dealt=game_session.total_damage_dealt,
                        total_heal_applied=game_session.total_heal_applied,
                        session_start=game_session.session_start,
                        last_activity=game_session.last_activity,
                    )
                )

            for start in range(0, len(trades), MIGRATION_BATCH_SIZE):
                batch = trades[start : start + MIGRATION_BATCH_SIZE]
                for trade in batch:
                    row = TradeRow.from_model(trade)
                    row.id = trade.id
                    session.add(row)
                session.flush()
                logger.info("sql_store_trades_migrated", count=start + len(batch), total=len(trades))

            if self._engine.dialect.name == "postgresql":
                for table in ("bosses", "trades"):
                    session.execute(
                        text(
                            f"SELECT setval('{table}_id_seq', (SELECT COALESCE(MAX(id), 1) FROM {table}))"
                        )
                    )
        logger.info(
            "sql_store_replaced",
            bosses=len(bosses),
            trades=len(trades),
            session=game_session is not None,
        )
