from typing import Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Query, Session

ModelT = TypeVar('ModelT')


class BaseRepository(Generic[ModelT]):
    """仓储基类：按主键读取、按字段查询、新建与字段更新"""

    def __init__(self, db: Session, model_class: Type[ModelT]):
        self.db = db
        self.model_class = model_class

    def _query_by(self, **filters) -> Query:
        # 忽略模型上不存在的字段
        query = self.db.query(self.model_class)
        for attr, value in filters.items():
            if hasattr(self.model_class, attr):
                query = query.filter(getattr(self.model_class, attr) == value)
        return query

    def get_by_id(self, record_id: int) -> Optional[ModelT]:
        return self.db.get(self.model_class, record_id)

    def get_first_by(self, **filters) -> Optional[ModelT]:
        """按字段相等条件取第一条，例如校验通知是否属于该用户"""
        return self._query_by(**filters).first()

    def create(self, **fields) -> ModelT:
        """插入一条记录并立即提交"""
        record = self.model_class(**fields)
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def update(self, record_id: int, **fields) -> Optional[ModelT]:
        """按主键更新字段，记录不存在时返回 None"""
        record = self.get_by_id(record_id)
        if record is None:
            return None
        for key, value in fields.items():
            setattr(record, key, value)
        self.db.commit()
        self.db.refresh(record)
        return record
