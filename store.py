"""Collection-style access to the SQLModel tables.

Every write commits on its own: the managers rely on single-row atomicity
only, and ``conditional_update`` is the compare-and-set primitive the
donation lock is built on.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=SQLModel)


@dataclass
class UpdateResult:
    matched_count: int
    modified_count: int


class EntityStore:
    def __init__(self, session: Session):
        self.session = session

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def insert(self, entity: ModelT) -> ModelT:
        self.session.add(entity)
        self._commit()
        self.session.refresh(entity)
        return entity

    def get(self, model: Type[ModelT], entity_id: Any) -> Optional[ModelT]:
        return self.session.get(model, entity_id)

    def refresh(self, entity: ModelT) -> ModelT:
        self.session.refresh(entity)
        return entity

    def find_one(self, model: Type[ModelT], *criteria) -> Optional[ModelT]:
        query = select(model)
        if criteria:
            query = query.where(*criteria)
        return self.session.exec(query).first()

    def find(
        self,
        model: Type[ModelT],
        *criteria,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        query = select(model)
        if criteria:
            query = query.where(*criteria)
        if order_by is not None:
            query = query.order_by(*order_by)
        if limit is not None:
            query = query.limit(limit)
        return list(self.session.exec(query).all())

    def update_one(
        self, model: Type[ModelT], criteria: Sequence[Any], patch: Dict[str, Any]
    ) -> UpdateResult:
        """Apply ``patch`` to the first matching row (last write wins)."""
        entity = self.find_one(model, *criteria)
        if entity is None:
            return UpdateResult(matched_count=0, modified_count=0)
        modified = 0
        for field, value in patch.items():
            if getattr(entity, field) != value:
                setattr(entity, field, value)
                modified = 1
        if modified:
            self.session.add(entity)
            self._commit()
            self.session.refresh(entity)
        return UpdateResult(matched_count=1, modified_count=modified)

    def update_many(
        self, model: Type[ModelT], criteria: Sequence[Any], patch: Dict[str, Any]
    ) -> UpdateResult:
        stmt = update(model).where(*criteria).values(**patch)
        try:
            result = self.session.exec(stmt)
        except SQLAlchemyError:
            self.session.rollback()
            raise
        self._commit()
        return UpdateResult(matched_count=result.rowcount, modified_count=result.rowcount)

    def conditional_update(
        self, model: Type[ModelT], criteria: Sequence[Any], patch: Dict[str, Any]
    ) -> bool:
        """Single ``UPDATE ... WHERE`` statement; False means the predicate
        did not hold (conflict)."""
        result = self.update_many(model, criteria, patch)
        if result.matched_count > 1:
            logger.warning(
                f"conditional update on {model.__name__} matched {result.matched_count} rows"
            )
        return result.matched_count > 0

    def delete_one(self, model: Type[ModelT], *criteria) -> int:
        entity = self.find_one(model, *criteria)
        if entity is None:
            return 0
        self.session.delete(entity)
        self._commit()
        return 1

    def delete_many(self, model: Type[ModelT], *criteria) -> int:
        stmt = delete(model).where(*criteria)
        try:
            result = self.session.exec(stmt)
        except SQLAlchemyError:
            self.session.rollback()
            raise
        self._commit()
        return result.rowcount
