from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal

from psycopg import errors as pg_errors

from rangegame.errors import DuplicatePredictionError, UserExistsError
from rangegame.models.leaderboard import ScoringResult
from rangegame.models.prediction import (
    PointGuess,
    Prediction,
    RangeGuess,
    Revision,
    Settlement,
)
from rangegame.models.user import AuthProvider, User
from rangegame.registry.db import Database

logger = logging.getLogger(__name__)

_PREDICTION_COLUMNS = (
    "id, subject, display_name, range_min, range_max, predicted_price, "
    "week_start, week_end, submitted_at, revision_log, actual_price, is_correct, "
    "score, range_width, day_multiplier, settled_at, created_at, updated_at"
)

_USER_COLUMNS = (
    "subject, username, email, password_hash, twitter_id, name, image, "
    "provider, last_login, created_at"
)


class Registry:
    """Query layer bridging game models and the game schema."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Predictions
    # ------------------------------------------------------------------

    def create_prediction(self, prediction: Prediction) -> Prediction:
        """Insert a prediction. Raises DuplicatePredictionError if the week is taken."""
        guess = prediction.guess
        if not isinstance(guess, RangeGuess):
            raise TypeError("New predictions must be range guesses")
        try:
            rows = self._db.execute(
                "INSERT INTO game.predictions "
                "(subject, display_name, range_min, range_max, week_start, week_end, "
                "submitted_at, revision_log, day_multiplier) "
                f"VALUES (%s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s) RETURNING {_PREDICTION_COLUMNS}",
                (
                    prediction.subject,
                    prediction.display_name,
                    guess.range_min,
                    guess.range_max,
                    prediction.week_start,
                    prediction.week_end,
                    prediction.submitted_at,
                    json.dumps([r.to_dict() for r in prediction.revision_log]),
                    prediction.revision_log[-1].day_multiplier if prediction.revision_log else None,
                ),
            )
        except pg_errors.UniqueViolation as exc:
            raise DuplicatePredictionError(
                f"{prediction.subject} already has a prediction for week of "
                f"{prediction.week_start.date()}"
            ) from exc
        return self._row_to_prediction(rows[0])

    def get_prediction(self, prediction_id: int) -> Prediction | None:
        row = self._db.execute_one(
            f"SELECT {_PREDICTION_COLUMNS} FROM game.predictions WHERE id = %s",
            (prediction_id,),
        )
        return self._row_to_prediction(row) if row else None

    def get_prediction_for_week(self, subject: str, week_start: datetime) -> Prediction | None:
        row = self._db.execute_one(
            f"SELECT {_PREDICTION_COLUMNS} FROM game.predictions "
            "WHERE subject = %s AND week_start = %s",
            (subject, week_start),
        )
        return self._row_to_prediction(row) if row else None

    def revise_prediction(self, prediction_id: int, revision: Revision) -> Prediction | None:
        """Replace the range and append to the revision log.

        Returns None when the row does not exist or is already settled.
        """
        rows = self._db.execute(
            "UPDATE game.predictions SET "
            "range_min = %s, range_max = %s, predicted_price = NULL, "
            "submitted_at = %s, day_multiplier = %s, "
            "revision_log = revision_log || %s::jsonb, updated_at = NOW() "
            f"WHERE id = %s AND actual_price IS NULL RETURNING {_PREDICTION_COLUMNS}",
            (
                revision.range_min,
                revision.range_max,
                revision.submitted_at,
                revision.day_multiplier,
                json.dumps([revision.to_dict()]),
                prediction_id,
            ),
        )
        return self._row_to_prediction(rows[0]) if rows else None

    def week_has_settlement(self, week_start: datetime) -> bool:
        row = self._db.execute_one(
            "SELECT 1 AS settled FROM game.predictions "
            "WHERE week_start = %s AND actual_price IS NOT NULL LIMIT 1",
            (week_start,),
        )
        return row is not None

    def get_week_predictions(
        self, week_start: datetime, unsettled_only: bool = False, limit: int | None = None,
    ) -> list[Prediction]:
        query = f"SELECT {_PREDICTION_COLUMNS} FROM game.predictions WHERE week_start = %s"
        params: list = [week_start]
        if unsettled_only:
            query += " AND actual_price IS NULL"
        query += " ORDER BY created_at DESC"
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)
        rows = self._db.execute(query, tuple(params))
        return [self._row_to_prediction(r) for r in rows]

    def get_predictions_for_user(self, subject: str, limit: int = 52) -> list[Prediction]:
        rows = self._db.execute(
            f"SELECT {_PREDICTION_COLUMNS} FROM game.predictions "
            "WHERE subject = %s ORDER BY week_start DESC LIMIT %s",
            (subject, limit),
        )
        return [self._row_to_prediction(r) for r in rows]

    def get_settled_predictions(
        self, week_from: datetime | None = None, week_to: datetime | None = None,
    ) -> list[Prediction]:
        """Settled predictions, optionally restricted to week_start in [week_from, week_to]."""
        conditions = ["actual_price IS NOT NULL"]
        params: list = []
        if week_from is not None:
            conditions.append("week_start >= %s")
            params.append(week_from)
        if week_to is not None:
            conditions.append("week_start <= %s")
            params.append(week_to)
        rows = self._db.execute(
            f"SELECT {_PREDICTION_COLUMNS} FROM game.predictions "
            f"WHERE {' AND '.join(conditions)} ORDER BY created_at",
            tuple(params),
        )
        return [self._row_to_prediction(r) for r in rows]

    def settle_prediction(self, prediction_id: int, settlement: Settlement) -> bool:
        """Write a settlement. Returns False if the row was already settled or is gone."""
        rows = self._db.execute(
            "UPDATE game.predictions SET "
            "actual_price = %s, is_correct = %s, score = %s, range_width = %s, "
            "day_multiplier = %s, settled_at = NOW(), updated_at = NOW() "
            "WHERE id = %s AND actual_price IS NULL RETURNING id",
            (
                settlement.actual_price,
                settlement.is_correct,
                settlement.score,
                settlement.range_width,
                settlement.day_multiplier,
                prediction_id,
            ),
        )
        return bool(rows)

    def get_legacy_predictions(self) -> list[Prediction]:
        rows = self._db.execute(
            f"SELECT {_PREDICTION_COLUMNS} FROM game.predictions "
            "WHERE predicted_price IS NOT NULL AND (range_min IS NULL OR range_max IS NULL) "
            "ORDER BY created_at"
        )
        return [self._row_to_prediction(r) for r in rows]

    def convert_legacy_prediction(
        self, prediction_id: int, range_min: Decimal, range_max: Decimal,
    ) -> None:
        self._db.execute(
            "UPDATE game.predictions SET range_min = %s, range_max = %s, "
            "predicted_price = NULL, updated_at = NOW() WHERE id = %s",
            (range_min, range_max, prediction_id),
        )

    def delete_week(self, week_start: datetime) -> int:
        """Delete every prediction for one week. Returns the count removed."""
        rows = self._db.execute(
            "DELETE FROM game.predictions WHERE week_start = %s RETURNING id",
            (week_start,),
        )
        return len(rows)

    # ------------------------------------------------------------------
    # Scoring audit
    # ------------------------------------------------------------------

    def log_scoring_run(self, result: ScoringResult, trigger: str = "manual") -> int:
        rows = self._db.execute(
            "INSERT INTO game.scoring_runs "
            "(week_start, actual_price, settled_count, correct_count, narrowest_width, "
            "skipped_count, failed_count, trigger) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s) RETURNING id",
            (
                result.week_start,
                result.actual_price,
                result.settled_count,
                result.correct_count,
                result.narrowest_width,
                result.skipped_count,
                result.failed_count,
                trigger,
            ),
        )
        return rows[0]["id"]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        try:
            rows = self._db.execute(
                "INSERT INTO game.users "
                "(subject, username, email, password_hash, twitter_id, name, image, provider) "
                f"VALUES (%s, %s, %s, %s, %s, %s, %s, %s) RETURNING {_USER_COLUMNS}",
                (
                    user.subject,
                    user.username,
                    user.email,
                    user.password_hash,
                    user.twitter_id,
                    user.name,
                    user.image,
                    user.provider.value,
                ),
            )
        except pg_errors.UniqueViolation as exc:
            raise UserExistsError(
                "User already exists with this username, email, or ID"
            ) from exc
        return self._row_to_user(rows[0])

    def get_user_by_subject(self, subject: str) -> User | None:
        row = self._db.execute_one(
            f"SELECT {_USER_COLUMNS} FROM game.users WHERE subject = %s", (subject,),
        )
        return self._row_to_user(row) if row else None

    def get_user_by_username(self, username: str) -> User | None:
        row = self._db.execute_one(
            f"SELECT {_USER_COLUMNS} FROM game.users WHERE username = %s", (username,),
        )
        return self._row_to_user(row) if row else None

    def find_twitter_user(self, twitter_id: str, username: str) -> User | None:
        row = self._db.execute_one(
            f"SELECT {_USER_COLUMNS} FROM game.users "
            "WHERE twitter_id = %s OR username = %s "
            "ORDER BY (twitter_id = %s) IS TRUE DESC LIMIT 1",
            (twitter_id, username, twitter_id),
        )
        return self._row_to_user(row) if row else None

    def update_password_hash(self, subject: str, password_hash: str) -> None:
        self._db.execute(
            "UPDATE game.users SET password_hash = %s WHERE subject = %s",
            (password_hash, subject),
        )

    def touch_login(
        self, subject: str, name: str | None = None, image: str | None = None,
    ) -> None:
        self._db.execute(
            "UPDATE game.users SET last_login = NOW(), "
            "name = COALESCE(%s, name), image = COALESCE(%s, image) WHERE subject = %s",
            (name, image, subject),
        )

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_prediction(r: dict) -> Prediction:
        if r["range_min"] is not None and r["range_max"] is not None:
            guess = RangeGuess(
                range_min=Decimal(str(r["range_min"])),
                range_max=Decimal(str(r["range_max"])),
            )
        else:
            guess = PointGuess(predicted_price=Decimal(str(r["predicted_price"])))

        settlement = None
        if r["actual_price"] is not None:
            settlement = Settlement(
                actual_price=Decimal(str(r["actual_price"])),
                is_correct=bool(r["is_correct"]),
                score=r["score"],
                range_width=Decimal(str(r["range_width"])) if r["range_width"] is not None else None,
                day_multiplier=r["day_multiplier"] or 1,
                settled_at=r["settled_at"],
            )

        log = r["revision_log"] or []
        if isinstance(log, str):
            log = json.loads(log)

        return Prediction(
            id=r["id"],
            subject=r["subject"],
            display_name=r["display_name"],
            guess=guess,
            week_start=r["week_start"],
            week_end=r["week_end"],
            submitted_at=r["submitted_at"],
            revision_log=[Revision.from_dict(entry) for entry in log],
            settlement=settlement,
            created_at=r["created_at"],
            updated_at=r["updated_at"],
        )

    @staticmethod
    def _row_to_user(r: dict) -> User:
        return User(
            subject=r["subject"],
            username=r["username"],
            email=r["email"],
            password_hash=r["password_hash"],
            twitter_id=r["twitter_id"],
            name=r["name"],
            image=r["image"],
            provider=AuthProvider(r["provider"] or "guest"),
            last_login=r["last_login"],
            created_at=r["created_at"],
        )
