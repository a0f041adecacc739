"""Repository classes encapsulating database operations.

Each repository is small and focused on a single table. The result
repository is append-only: there is no update path for a stored
`QuizResultRecord`, only bulk deletion when local storage is cleared.
"""

from typing import List, Optional
from sqlalchemy import delete
from sqlmodel import Session, select
from . import models


class QuizResultRepository:
    """Append and read operations for `QuizResultRecord` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, record: models.QuizResultRecord) -> models.QuizResultRecord:
        """Persist a new result and return the managed instance."""
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def list_all(self) -> List[models.QuizResultRecord]:
        """Return the full history, newest first."""
        stmt = select(models.QuizResultRecord).order_by(
            models.QuizResultRecord.timestamp.desc(),
            models.QuizResultRecord.id,
        )
        return list(self.session.exec(stmt).all())

    def get(self, record_id: str) -> Optional[models.QuizResultRecord]:
        """Fetch a single result by id."""
        return self.session.get(models.QuizResultRecord, record_id)

    def delete_all(self) -> None:
        """Remove every stored result."""
        self.session.execute(delete(models.QuizResultRecord))
        self.session.commit()


class StreakRepository:
    """Read and upsert the single `StreakState` row."""
    def __init__(self, session: Session):
        self.session = session

    def get(self) -> Optional[models.StreakState]:
        return self.session.get(models.StreakState, 1)

    def save(self, streak: int, last_quiz_at) -> models.StreakState:
        """Upsert the streak row."""
        state = self.get()
        if state is None:
            state = models.StreakState(id=1)
        state.streak = streak
        state.last_quiz_at = last_quiz_at
        self.session.add(state)
        self.session.commit()
        self.session.refresh(state)
        return state

    def delete_all(self) -> None:
        self.session.execute(delete(models.StreakState))
        self.session.commit()
