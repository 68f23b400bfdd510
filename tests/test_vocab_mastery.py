import pytest
from sqlalchemy.exc import SQLAlchemyError

from vocab_trainer.models.vocab_mastery import VocabMasteryHistory
from vocab_trainer.services.vocab_mastery_service import VocabMasteryService
from vocab_trainer.utils.exceptions import NotFoundError


def test_correct_answers_increase_score_up_to_ten(db_session, user, make_vocab):
    vocab = make_vocab()
    service = VocabMasteryService(db_session)

    for _ in range(12):
        mastery = service.update_mastery(vocab.id, user.id, True)

    assert mastery.mastery_score == 10
    assert mastery.correct_count == 12
    assert mastery.incorrect_count == 0


def test_incorrect_answers_never_go_below_zero(db_session, user, make_vocab):
    vocab = make_vocab()
    service = VocabMasteryService(db_session)

    service.update_mastery(vocab.id, user.id, True)
    service.update_mastery(vocab.id, user.id, False)
    mastery = service.update_mastery(vocab.id, user.id, False)

    assert mastery.mastery_score == 0
    assert mastery.correct_count == 1
    assert mastery.incorrect_count == 2


def test_summary_and_distribution(db_session, user, make_vocab):
    hello = make_vocab("hello", ("xin chào",))
    cat = make_vocab("cat", ("con mèo",))
    service = VocabMasteryService(db_session)
    for _ in range(3):
        service.update_mastery(hello.id, user.id, True)
    service.update_mastery(cat.id, user.id, False)

    summary = service.get_summary(user.id)
    assert summary["total_vocabs"] == 2
    assert summary["total_correct"] == 3
    assert summary["total_incorrect"] == 1
    assert summary["average_mastery"] == 1.5

    distribution = {item["range"]: item["count"] for item in service.get_distribution(user.id)}
    assert distribution["0"] == 1
    assert distribution["3-4"] == 1


def test_top_problematic_and_progress(db_session, user, make_vocab):
    cat = make_vocab("cat", ("con mèo",))
    service = VocabMasteryService(db_session)
    for _ in range(5):
        service.update_mastery(cat.id, user.id, False)

    problematic = service.get_top_problematic(user.id, min_incorrect=5)
    assert [item["text_source"] for item in problematic] == ["cat"]
    assert service.get_top_problematic(user.id, min_incorrect=6) == []

    progress = service.get_progress_over_time(user.id)
    assert len(progress) == 1
    assert progress[0]["events"] == 5


def test_get_mastery_not_found(db_session, user):
    with pytest.raises(NotFoundError):
        VocabMasteryService(db_session).get_mastery(999, user.id)


def test_history_failure_does_not_fail_update(db_session, user, make_vocab, monkeypatch):
    vocab = make_vocab()
    service = VocabMasteryService(db_session)

    def broken_history(mastery):
        raise SQLAlchemyError("history table unavailable")

    monkeypatch.setattr(service.mastery_repo, "add_history", broken_history)
    mastery = service.update_mastery(vocab.id, user.id, True)

    assert mastery.mastery_score == 1
    assert mastery.correct_count == 1
    assert db_session.query(VocabMasteryHistory).count() == 0
