"""
PointsLedger: append-only point transactions plus the per-user balance.

Invariant: for every user, SUM(point_transactions.points) == user_points.total_points.
Both writes of an award happen in the caller's database transaction, so they
commit or roll back together.

The balance increment is a single INSERT ... ON CONFLICT DO UPDATE
(total_points = total_points + excluded.total_points), never a read-modify-write.
Replays with the same idempotency key return the first award unchanged.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gamification.application.catalog import AchievementCatalog
from gamification.domain.achievement_rules import level_achievement
from gamification.domain.events import validate_identifier, validate_points
from gamification.domain.levels import calculate_level, points_for_next_level
from gamification.errors import PersistenceError
from gamification.infrastructure.db.models import PointTransaction, UserPoints, TRANSACTION_EARNED
from gamification.infrastructure.db.upsert import insert_ignore, upsert
from gamification.utils.clock import utcnow

logger = logging.getLogger(__name__)

DEFAULT_MULTIPLIER = 1


@dataclass(frozen=True)
class AwardResult:
    user_id: str
    points: int                 # effective points granted (after multiplier)
    multiplier: int
    total_points: int
    level: int
    previous_level: int
    transaction_id: Optional[int] = None
    replayed: bool = False
    badge_levels: Tuple[int, ...] = ()   # levels whose badge this award granted

    @property
    def leveled_up(self) -> bool:
        return self.level > self.previous_level


@dataclass(frozen=True)
class LedgerReconciliation:
    user_id: str
    ledger_total: int
    balance: int

    @property
    def consistent(self) -> bool:
        return self.ledger_total == self.balance


class PointsLedger:
    def __init__(self, db: Session):
        self.db = db
        self.catalog = AchievementCatalog(db)

    def award_points(
        self,
        user_id: str,
        points: int,
        reason_code: str,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AwardResult:
        """
        Credit points to a user and record the ledger row.

        Args:
            user_id: User ID
            points: Non-negative integer; 0 is a no-op
            reason_code: Audit label (usually the triggering event type)
            metadata: Free-form context stored on the transaction
            idempotency_key: Caller key; a repeated key returns the first result
            now: Timestamp of the award (default: current UTC time)

        Returns:
            AwardResult with the effective points and multiplier

        Raises:
            ValidationError: bad user_id / points / reason_code
            PersistenceError: the store write failed, nothing was granted
        """
        validate_identifier(user_id, "user_id")
        validate_identifier(reason_code, "reason_code")
        validate_points(points)
        metadata = dict(metadata or {})
        now = now or utcnow()

        try:
            if points == 0:
                total, level = self._balance_row(user_id)
                return AwardResult(user_id, 0, DEFAULT_MULTIPLIER, total, level, level)

            if idempotency_key is not None:
                previous = self._find_by_key(user_id, idempotency_key)
                if previous is not None:
                    return self._replay(previous)

            multiplier = self._active_multiplier(user_id)
            final_points = points * multiplier

            transaction_id = self._append_transaction(
                user_id, final_points, reason_code, metadata, idempotency_key,
                points, multiplier, now,
            )
            if transaction_id is None:
                # Lost the race to a concurrent call with the same key
                return self._replay(self._find_by_key(user_id, idempotency_key))

            self._increment_balance(user_id, final_points)
            total, stored_level = self._balance_row(user_id)
            previous_level, level, badges = self._apply_level(user_id, total, stored_level, now)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to award {points} points to user {user_id}") from exc

        logger.info(
            "Awarded %d points to user %s for %s (total=%d, level=%d)",
            final_points, user_id, reason_code, total, level,
        )
        if level > previous_level:
            logger.info("User %s leveled up %d -> %d", user_id, previous_level, level)

        return AwardResult(
            user_id=user_id,
            points=final_points,
            multiplier=multiplier,
            total_points=total,
            level=level,
            previous_level=previous_level,
            transaction_id=transaction_id,
            badge_levels=badges,
        )

    # ------------------------------------------------------------------
    # Award steps
    # ------------------------------------------------------------------

    def _active_multiplier(self, user_id: str) -> int:
        # Premium multiplier rewards are not modelled yet
        return DEFAULT_MULTIPLIER

    def _append_transaction(
        self,
        user_id: str,
        final_points: int,
        reason_code: str,
        metadata: Dict[str, Any],
        idempotency_key: Optional[str],
        original_points: int,
        multiplier: int,
        now: datetime,
    ) -> Optional[int]:
        """Write the ledger row. Returns its id, or None on a duplicate key."""
        label = metadata.get("reasonLabel") or reason_code
        values = {
            "user_id": user_id,
            "kind": TRANSACTION_EARNED,
            "points": final_points,
            "reason_code": reason_code,
            "description": f"Points earned: {label}",
            "idempotency_key": idempotency_key,
            "metadata_json": {
                **metadata,
                "eventType": metadata.get("eventType", reason_code),
                "originalReason": reason_code,
                "originalPoints": original_points,
                "multiplier": multiplier,
            },
            "created_at": now,
        }

        if idempotency_key is None:
            row = PointTransaction(**values)
            self.db.add(row)
            self.db.flush()
            return row.id

        inserted = insert_ignore(
            self.db, PointTransaction.__table__, values,
            conflict_columns=("user_id", "idempotency_key"),
        )
        if not inserted:
            return None
        return self._find_by_key(user_id, idempotency_key).id

    def _increment_balance(self, user_id: str, points: int) -> None:
        table = UserPoints.__table__
        upsert(
            self.db,
            table,
            {
                "user_id": user_id,
                "total_points": points,
                "current_level": 1,
                "points_to_next_level": points_for_next_level(1),
            },
            conflict_columns=("user_id",),
            update_values=lambda excluded: {
                "total_points": table.c.total_points + excluded.total_points,
                "updated_at": func.now(),
            },
        )

    def _apply_level(
        self, user_id: str, total: int, stored_level: int, now: datetime
    ) -> Tuple[int, int, Tuple[int, ...]]:
        """
        Move the stored level up to the level implied by `total`.

        The update is conditional (current_level < new_level), so among
        concurrent awards exactly one performs a given level-up.

        Returns:
            (previous_level, level, levels whose badge was granted)
        """
        new_level = calculate_level(total)
        if new_level <= stored_level:
            return stored_level, stored_level, ()

        result = self.db.execute(
            update(UserPoints.__table__)
            .where(
                UserPoints.__table__.c.user_id == user_id,
                UserPoints.__table__.c.current_level < new_level,
            )
            .values(
                current_level=new_level,
                points_to_next_level=points_for_next_level(new_level),
                updated_at=func.now(),
            )
        )
        if result.rowcount != 1:
            # A concurrent award already performed this level-up
            return new_level, new_level, ()

        badges = []
        for level in range(stored_level + 1, new_level + 1):
            if self.catalog.grant(user_id, level_achievement(level), now=now):
                badges.append(level)
        return stored_level, new_level, tuple(badges)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _balance_row(self, user_id: str) -> Tuple[int, int]:
        row = self.db.execute(
            select(UserPoints.total_points, UserPoints.current_level)
            .where(UserPoints.user_id == user_id)
        ).first()
        if row is None:
            return 0, 1
        return row.total_points, row.current_level

    def _find_by_key(self, user_id: str, idempotency_key: str) -> Optional[PointTransaction]:
        return self.db.execute(
            select(PointTransaction).where(
                PointTransaction.user_id == user_id,
                PointTransaction.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()

    def _replay(self, previous: PointTransaction) -> AwardResult:
        total, level = self._balance_row(previous.user_id)
        multiplier = (previous.metadata_json or {}).get("multiplier", DEFAULT_MULTIPLIER)
        logger.info(
            "Duplicate award ignored for user %s (key=%s)",
            previous.user_id, previous.idempotency_key,
        )
        return AwardResult(
            user_id=previous.user_id,
            points=previous.points,
            multiplier=multiplier,
            total_points=total,
            level=level,
            previous_level=level,
            transaction_id=previous.id,
            replayed=True,
        )

    def get_balance(self, user_id: str) -> Optional[UserPoints]:
        """Current UserPoints row (fresh from the store) or None."""
        return self.db.execute(
            select(UserPoints)
            .where(UserPoints.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def count_transactions(self, user_id: str, reason_code: str) -> int:
        """Number of ledger rows with the given reason (e.g. completed lessons)."""
        return self.db.execute(
            select(func.count(PointTransaction.id)).where(
                PointTransaction.user_id == user_id,
                PointTransaction.reason_code == reason_code,
            )
        ).scalar_one()

    def points_since(self, user_id: str, since: datetime) -> int:
        """Sum of ledger points created at or after `since`."""
        return int(self.db.execute(
            select(func.coalesce(func.sum(PointTransaction.points), 0)).where(
                PointTransaction.user_id == user_id,
                PointTransaction.created_at >= since,
            )
        ).scalar_one())

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def reconcile(self, user_id: str) -> LedgerReconciliation:
        """Compare the ledger sum against the stored balance."""
        try:
            ledger_total = int(self.db.execute(
                select(func.coalesce(func.sum(PointTransaction.points), 0))
                .where(PointTransaction.user_id == user_id)
            ).scalar_one())
            balance, _ = self._balance_row(user_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to reconcile user {user_id}") from exc
        return LedgerReconciliation(user_id=user_id, ledger_total=ledger_total, balance=balance)

    def rebuild_balance(self, user_id: str) -> UserPoints:
        """
        Recompute UserPoints from the ledger (repair after manual edits).

        Level badges are not re-granted here; the next achievement
        evaluation fills in any that are missing.
        """
        reconciliation = self.reconcile(user_id)
        total = reconciliation.ledger_total
        level = calculate_level(total)
        try:
            upsert(
                self.db,
                UserPoints.__table__,
                {
                    "user_id": user_id,
                    "total_points": total,
                    "current_level": level,
                    "points_to_next_level": points_for_next_level(level),
                },
                conflict_columns=("user_id",),
            )
            self.db.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to rebuild balance for user {user_id}") from exc

        if not reconciliation.consistent:
            logger.warning(
                "Rebuilt balance for user %s: %d -> %d",
                user_id, reconciliation.balance, total,
            )
        return self.get_balance(user_id)

    def list_user_ids(self) -> list[str]:
        return list(self.db.execute(select(UserPoints.user_id).order_by(UserPoints.user_id)).scalars())
