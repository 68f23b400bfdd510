from typing import Dict, List, Optional
from sqlalchemy.orm import Session, selectinload
from vocab_trainer.models.vocab import Vocab, TextTarget, VocabExample
from vocab_trainer.repositories.base import BaseRepository

class VocabRepository(BaseRepository[Vocab]):
    def __init__(self, db: Session):
        super().__init__(db, Vocab)

    def find_by_id(self, vocab_id: int, user_id: Optional[int] = None) -> Optional[Vocab]:
        """获取词汇及其释义"""
        query = self.db.query(Vocab).options(
            selectinload(Vocab.text_targets).selectinload(TextTarget.examples)
        ).filter(Vocab.id == vocab_id)
        if user_id is not None:
            query = query.filter(Vocab.user_id == user_id)
        return query.first()

    def find_by_ids(self, vocab_ids: List[int], user_id: Optional[int] = None) -> List[Vocab]:
        """按传入顺序返回存在的词汇"""
        if not vocab_ids:
            return []
        query = self.db.query(Vocab).options(selectinload(Vocab.text_targets)).filter(Vocab.id.in_(vocab_ids))
        if user_id is not None:
            query = query.filter(Vocab.user_id == user_id)
        by_id = {vocab.id: vocab for vocab in query.all()}
        return [by_id[vid] for vid in vocab_ids if vid in by_id]

    def create_vocab(self, user_id: int, text_source: str, source_language_code: str,
                     target_language_code: str, text_targets: List[Dict] = None) -> Vocab:
        """创建词汇，text_targets 元素包含 text_target 及可选的 grammar/explanation/examples"""
        vocab = Vocab(
            user_id=user_id,
            text_source=text_source,
            source_language_code=source_language_code,
            target_language_code=target_language_code,
        )
        for item in text_targets or []:
            vocab.text_targets.append(self._build_text_target(item))
        self.db.add(vocab)
        self.db.commit()
        self.db.refresh(vocab)
        return vocab

    def add_text_target(self, vocab: Vocab, item: Dict) -> TextTarget:
        text_target = self._build_text_target(item)
        vocab.text_targets.append(text_target)
        self.db.commit()
        self.db.refresh(text_target)
        return text_target

    def remove_blank_text_targets(self, vocab: Vocab) -> int:
        """删除空白释义，返回删除数量"""
        blanks = [tt for tt in vocab.text_targets if not (tt.text_target or "").strip()]
        for tt in blanks:
            vocab.text_targets.remove(tt)
        if blanks:
            self.db.commit()
        return len(blanks)

    @staticmethod
    def _build_text_target(item: Dict) -> TextTarget:
        text_target = TextTarget(
            text_target=item.get("text_target", ""),
            grammar=item.get("grammar"),
            explanation_source=item.get("explanation_source"),
            explanation_target=item.get("explanation_target"),
        )
        for example in item.get("examples") or []:
            text_target.examples.append(
                VocabExample(source=example.get("source", ""), target=example.get("target", ""))
            )
        return text_target
