import pytest

from vocab_trainer.jobs.job_queue import JobName, QueueName
from vocab_trainer.models.notification import Notification, NotificationAction
from vocab_trainer.models.vocab_trainer import QuestionType, TrainerStatus, VocabTrainer
from vocab_trainer.services.vocab_mastery_service import VocabMasteryService
from vocab_trainer.services.vocab_trainer_service import VocabTrainerService
from vocab_trainer.utils.exceptions import NotFoundError, ValidationError

HELLO_QUESTION = {
    "vocabId": None,
    "type": "textTarget",
    "content": 'What is the translation of "hello" from en to vi?',
    "options": [
        {"label": "A", "value": "tạm biệt"},
        {"label": "B", "value": "xin chào"},
        {"label": "C", "value": "cảm ơn"},
        {"label": "D", "value": "xin lỗi"},
    ],
    "correctAnswer": "xin chào",
}


@pytest.fixture
def service(db_session, mock_job_queue, mock_notifier):
    return VocabTrainerService(db_session, mock_job_queue, mock_notifier)


def enqueued_queues(mock_job_queue):
    return [call.args[0] for call in mock_job_queue.enqueue.call_args_list]


def served_mc_trainer(make_trainer, vocab, **fields):
    question = dict(HELLO_QUESTION, vocabId=vocab.id)
    return make_trainer([vocab.id], question_answers=[question], **fields)


def test_create_and_list_trainers(service, user, make_vocab):
    hello = make_vocab()
    cat = make_vocab("cat", ("con mèo",))

    trainer = service.create(user.id, {"name": "Animals", "vocab_ids": [cat.id, hello.id, cat.id],
                                       "question_type": "FLIP_CARD"})
    service.create(user.id, {"name": "Greetings", "vocab_ids": [hello.id]})

    assert trainer.vocab_ids == [cat.id, hello.id]
    assert trainer.status == TrainerStatus.PENDING.value
    assert trainer.reminder_repeat == 0

    page = service.find(user.id, page=1, page_size=1, sort_by="name", sort_order="asc")
    assert page["total"] == 2
    assert page["total_pages"] == 2
    assert [t.name for t in page["items"]] == ["Animals"]

    filtered = service.find(user.id, question_type="FLIP_CARD")
    assert [t.id for t in filtered["items"]] == [trainer.id]


def test_create_rejects_unknown_vocab(service, user):
    with pytest.raises(NotFoundError):
        service.create(user.id, {"name": "Empty", "vocab_ids": [404]})


def test_question_type_is_immutable(service, user, make_vocab, make_trainer):
    trainer = make_trainer([make_vocab().id])
    with pytest.raises(ValidationError):
        service.update(trainer.id, user.id, {"question_type": QuestionType.FLIP_CARD.value})


def test_reassigning_vocabs_clears_questions(service, user, make_vocab, make_trainer):
    hello = make_vocab()
    cat = make_vocab("cat", ("con mèo",))
    trainer = served_mc_trainer(make_trainer, hello)

    updated = service.update(trainer.id, user.id, {"vocab_ids": [cat.id], "name": "Cats"})

    assert updated.vocab_ids == [cat.id]
    assert updated.question_answers == []
    assert updated.name == "Cats"


def test_delete_bulk_only_removes_own_trainers(service, user, make_vocab, make_trainer, db_session):
    vocab = make_vocab()
    first = make_trainer([vocab.id])
    second = make_trainer([vocab.id])

    assert service.delete_bulk([first.id, second.id, 999], user.id) == 2
    assert db_session.query(VocabTrainer).count() == 0
    with pytest.raises(ValidationError):
        service.delete_bulk([], user.id)


@pytest.mark.asyncio
async def test_multiple_choice_exam_is_generated_in_background(service, user, make_vocab, make_trainer,
                                                               mock_job_queue):
    vocab = make_vocab()
    trainer = make_trainer([vocab.id])

    result = await service.find_one_and_exam(trainer.id, user.id)

    assert result["job_id"] == "job-1"
    assert result["trainer"].question_answers == []
    call = mock_job_queue.enqueue.call_args
    assert call.args[:2] == (QueueName.MULTIPLE_CHOICE_GENERATION, JobName.GENERATE_QUESTIONS)
    payload = call.args[2]
    assert payload["vocabTrainerId"] == trainer.id
    assert payload["vocabList"][0]["textSource"] == "hello"
    assert call.kwargs["key"] == f"trainer:{trainer.id}"


@pytest.mark.asyncio
async def test_existing_questions_are_returned_without_regeneration(service, user, make_vocab, make_trainer,
                                                                    mock_job_queue):
    vocab = make_vocab()
    trainer = served_mc_trainer(make_trainer, vocab)

    first = await service.find_one_and_exam(trainer.id, user.id)
    second = await service.find_one_and_exam(trainer.id, user.id)

    assert first["job_id"] is None
    assert first["trainer"].question_answers == second["trainer"].question_answers
    mock_job_queue.enqueue.assert_not_called()


@pytest.mark.asyncio
async def test_fill_in_blank_exam_is_built_once(service, user, make_vocab, make_trainer):
    vocab = make_vocab()
    trainer = make_trainer([vocab.id], question_type=QuestionType.FILL_IN_THE_BLANK.value)

    first = await service.find_one_and_exam(trainer.id, user.id)
    questions = list(first["trainer"].question_answers)
    second = await service.find_one_and_exam(trainer.id, user.id)

    assert first["job_id"] is None
    assert len(questions) == 1
    assert second["trainer"].question_answers == questions


@pytest.mark.asyncio
async def test_multiple_choice_submission_end_to_end(service, user, make_vocab, make_trainer,
                                                     db_session, mock_job_queue, mock_notifier):
    vocab = make_vocab("hello", ("xin chào",))
    trainer = served_mc_trainer(make_trainer, vocab)

    response = await service.submit_multiple_choice(trainer.id, user.id, {
        "word_test_selects": [{"vocab_id": vocab.id, "user_selected": "xin chào"}],
        "count_time": 42,
    })

    outcome = response["outcome"]
    assert outcome["status"] == TrainerStatus.PASSED.value
    assert outcome["scorePercentage"] == 100
    assert outcome["reminderRepeat"] == 1
    assert outcome["deleted"] is False

    refreshed = response["trainer"]
    assert refreshed.status == TrainerStatus.PASSED.value
    assert refreshed.count_time == 42
    assert [(r.vocab_id, r.status) for r in refreshed.results] == [(vocab.id, "PASSED")]

    mastery = VocabMasteryService(db_session).get_mastery(vocab.id, user.id)
    assert mastery.mastery_score == 1
    assert mastery.correct_count == 1

    assert enqueued_queues(mock_job_queue) == [QueueName.EMAIL_REMINDER, QueueName.NOTIFICATION]
    reminder_call = mock_job_queue.enqueue.call_args_list[0]
    assert reminder_call.args[2]["email"] == user.email
    assert reminder_call.kwargs["delay_ms"] > 0
    assert db_session.query(Notification).filter_by(user_id=user.id).count() == 1
    mock_notifier.emit_notification.assert_awaited_once()


@pytest.mark.asyncio
async def test_resubmission_replaces_results(service, user, make_vocab, make_trainer):
    vocab = make_vocab()
    trainer = served_mc_trainer(make_trainer, vocab)
    answers = {"word_test_selects": [{"vocab_id": vocab.id, "user_selected": "tạm biệt"}]}

    await service.submit_multiple_choice(trainer.id, user.id, answers)
    response = await service.submit_multiple_choice(trainer.id, user.id, answers)

    assert response["outcome"]["status"] == TrainerStatus.FAILED.value
    assert response["outcome"]["reminderRepeat"] == 0
    assert len(response["trainer"].results) == 1


@pytest.mark.asyncio
async def test_multiple_choice_is_graded_against_stored_question(service, user, make_vocab, make_trainer,
                                                              db_session):
    vocab = make_vocab()
    trainer = served_mc_trainer(make_trainer, vocab)

    response = await service.submit_multiple_choice(trainer.id, user.id, {
        "word_test_selects": [
            {"vocab_id": vocab.id, "user_selected": "tạm biệt", "system_selected": "tạm biệt"},
            {"vocab_id": 9999, "user_selected": "xin chào"},
        ],
    })

    assert response["outcome"]["status"] == TrainerStatus.FAILED.value
    assert response["outcome"]["scorePercentage"] == 0
    assert response["outcome"]["reminderRepeat"] == 0
    rows = [(r.vocab_id, r.status, r.user_selected, r.system_selected) for r in response["trainer"].results]
    assert rows == [
        (vocab.id, "FAILED", "tạm biệt", "xin chào"),
        (None, "FAILED", "xin chào", ""),
    ]
    mastery = VocabMasteryService(db_session).get_mastery(vocab.id, user.id)
    assert mastery.incorrect_count == 1
    assert mastery.correct_count == 0


@pytest.mark.asyncio
async def test_fifth_pass_keeps_trainer(service, user, make_vocab, make_trainer, db_session):
    vocab = make_vocab()
    trainer = served_mc_trainer(make_trainer, vocab, reminder_repeat=4)

    response = await service.submit_multiple_choice(trainer.id, user.id, {
        "word_test_selects": [{"vocab_id": vocab.id, "user_selected": "xin chào"}],
    })

    assert response["outcome"]["reminderRepeat"] == 5
    assert response["outcome"]["deleted"] is False
    assert db_session.get(VocabTrainer, trainer.id) is not None


@pytest.mark.asyncio
async def test_sixth_pass_deletes_trainer_with_completion_notification(service, user, make_vocab, make_trainer,
                                                                       db_session, mock_job_queue):
    vocab = make_vocab()
    trainer = served_mc_trainer(make_trainer, vocab, reminder_repeat=5)
    trainer_id = trainer.id

    response = await service.submit_multiple_choice(trainer_id, user.id, {
        "word_test_selects": [{"vocab_id": vocab.id, "user_selected": "xin chào"}],
    })

    assert response["outcome"]["deleted"] is True
    assert response["trainer"] is None
    db_session.expire_all()
    assert db_session.get(VocabTrainer, trainer_id) is None

    notifications = db_session.query(Notification).filter_by(user_id=user.id).all()
    assert len(notifications) == 1
    assert notifications[0].action == NotificationAction.COMPLETE.value
    assert notifications[0].data["message"] == "Your test has been completed after 6 passes"
    mock_job_queue.enqueue.assert_not_called()
    # 掌握度在删除前已更新
    assert VocabMasteryService(db_session).get_mastery(vocab.id, user.id).correct_count == 1


@pytest.mark.asyncio
async def test_submission_type_must_match(service, user, make_vocab, make_trainer):
    trainer = make_trainer([make_vocab().id], question_type=QuestionType.FLIP_CARD.value)
    with pytest.raises(ValidationError):
        await service.submit_multiple_choice(trainer.id, user.id, {
            "word_test_selects": [{"vocab_id": 1, "user_selected": "a"}],
        })


@pytest.mark.asyncio
async def test_fill_in_blank_submission_matches_vocabs(service, user, make_vocab, make_trainer, mock_job_queue):
    hello = make_vocab("hello", ("xin chào",))
    cat = make_vocab("cat", ("con mèo",))
    trainer = make_trainer([hello.id, cat.id], question_type=QuestionType.FILL_IN_THE_BLANK.value)

    response = await service.submit_fill_in_blank(trainer.id, user.id, {"word_test_inputs": [
        {"user_answer": "chào", "system_answer": "xin chào"},
        {"user_answer": "cat", "system_answer": "cat"},
        {"user_answer": "dog", "system_answer": "con chó"},
    ]})

    assert response["job_id"] == "job-1"
    call = mock_job_queue.enqueue.call_args
    assert call.args[:2] == (QueueName.FILL_IN_BLANK_EVALUATION, JobName.EVALUATE_ANSWERS)
    payload = call.args[2]
    assert [(e["vocabId"], e["questionType"]) for e in payload["evaluations"]] == [
        (hello.id, "textTarget"), (cat.id, "textSource"),
    ]
    # 分母为提交的全部答案
    assert len(payload["answerSubmissions"]) == 3


@pytest.mark.asyncio
async def test_translation_audio_requires_dialogue(service, user, make_vocab, make_trainer):
    trainer = make_trainer([make_vocab().id], question_type=QuestionType.TRANSLATION_AUDIO.value)
    with pytest.raises(ValidationError):
        await service.submit_translation_audio(trainer.id, user.id, {"file_id": "rec-1"})


@pytest.mark.asyncio
async def test_translation_audio_submission_enqueues_evaluation(service, user, make_vocab, make_trainer,
                                                                 mock_job_queue):
    dialogue = [{"speaker": s, "text": "hello xin chào"} for s in "ABAB"]
    trainer = make_trainer([make_vocab().id], question_type=QuestionType.TRANSLATION_AUDIO.value,
                           question_answers=dialogue)

    response = await service.submit_translation_audio(trainer.id, user.id, {
        "file_id": "rec-1", "target_style": "casual",
    })

    assert response["job_id"] == "job-1"
    payload = mock_job_queue.enqueue.call_args.args[2]
    assert payload["fileId"] == "rec-1"
    assert payload["sourceLanguage"] == "en"
    assert payload["targetLanguage"] == "vi"
    assert payload["targetStyle"] == "casual"
