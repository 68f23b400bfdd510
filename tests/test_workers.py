import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.fakes import ScriptedCompletionClient
from vocab_trainer.jobs.job_queue import Job, JobName, JobQueue, QueueName
from vocab_trainer.jobs.payloads import (
    AnswerSubmission, AudioEvaluationJobPayload, FillInBlankEvaluationItem, FillInBlankJobPayload,
    GenerationJobPayload, NotificationJobPayload, ReminderJobPayload, VocabSnapshot,
    VocabTranslationJobPayload
)
from vocab_trainer.models.notification import Notification
from vocab_trainer.models.vocab_trainer import QuestionType, VocabTrainer
from vocab_trainer.repositories.vocab_repository import VocabRepository
from vocab_trainer.repositories.vocab_trainer_repository import VocabTrainerRepository
from vocab_trainer.services.vocab_mastery_service import VocabMasteryService
from vocab_trainer.utils.audio_store import AudioFile
from vocab_trainer.utils.exceptions import ConflictError, ParseError
from vocab_trainer.workers.context import build_worker_context
from vocab_trainer.workers.evaluation_workers import AudioEvaluationWorker, FillInBlankEvaluationWorker
from vocab_trainer.workers.generation_workers import DialogueGenerationWorker, MultipleChoiceGenerationWorker
from vocab_trainer.workers.registry import register_workers
from vocab_trainer.workers.reminder_workers import EmailReminderWorker, NotificationWorker
from vocab_trainer.workers.vocab_translation_worker import VocabTranslationWorker

MC_RESPONSE = json.dumps({
    "content": "Translate hello",
    "options": [{"label": "A", "value": v} for v in ["xin chào", "tạm biệt", "cảm ơn", "xin lỗi"]],
    "correctAnswer": "xin chào",
})


@pytest.fixture
def context_factory(session_factory, mock_job_queue, mock_notifier):
    def _build(responses=None, **overrides):
        client = ScriptedCompletionClient(responses)
        context = build_worker_context(session_factory, mock_job_queue, client, mock_notifier, **overrides)
        context.exam_generator.retry_delay_ms = 0
        context.answer_evaluator.retry_delay_ms = 0
        return context
    return _build


def make_job(queue_name, job_name, payload):
    return Job(id="job-1", queue_name=queue_name, name=job_name, data=payload.to_payload())


def generation_job(trainer, vocabs, user, queue_name=QueueName.MULTIPLE_CHOICE_GENERATION,
                   job_name=JobName.GENERATE_QUESTIONS):
    payload = GenerationJobPayload(
        vocab_trainer_id=trainer.id,
        vocab_list=[VocabSnapshot.model_validate(v) for v in vocabs],
        user_id=user.id,
    )
    return make_job(queue_name, job_name, payload)


def progress_events(mock_notifier):
    return [call.args[2] for call in mock_notifier.emit_progress.call_args_list]


@pytest.mark.asyncio
async def test_multiple_choice_generation_saves_questions(context_factory, user, make_vocab, make_trainer,
                                                          session_factory, mock_notifier):
    vocab = make_vocab()
    trainer = make_trainer([vocab.id])
    context = context_factory([MC_RESPONSE])
    context.exam_generator.source_probability = 1.0
    worker = MultipleChoiceGenerationWorker(context)

    result = await worker.process(generation_job(trainer, [vocab], user))

    assert result == {"skipped": False, "count": 1}
    db = session_factory()
    saved = db.get(VocabTrainer, trainer.id)
    assert saved.question_answers[0]["vocabId"] == vocab.id
    assert saved.question_answers[0]["correctAnswer"] == "xin chào"
    db.close()
    assert progress_events(mock_notifier) == ["generating", "completed"]


@pytest.mark.asyncio
async def test_generation_is_skipped_when_questions_exist(context_factory, user, make_vocab, make_trainer):
    vocab = make_vocab()
    trainer = make_trainer([vocab.id], question_answers=[{"vocabId": vocab.id}])
    context = context_factory([])

    result = await MultipleChoiceGenerationWorker(context).process(generation_job(trainer, [vocab], user))

    assert result["skipped"] is True
    assert context.completion_client.prompts == []


@pytest.mark.asyncio
async def test_generation_is_skipped_when_vocabs_changed(context_factory, user, make_vocab, make_trainer):
    hello = make_vocab()
    cat = make_vocab("cat", ("con mèo",))
    trainer = make_trainer([cat.id])

    result = await MultipleChoiceGenerationWorker(context_factory([])).process(
        generation_job(trainer, [hello], user)
    )

    assert result == {"skipped": True, "count": 0}


@pytest.mark.asyncio
async def test_generation_fails_when_trainer_was_edited_meanwhile(context_factory, user, make_vocab, make_trainer,
                                                                  db_session, mock_notifier):
    vocab = make_vocab()
    trainer = make_trainer([vocab.id])
    context = context_factory()

    async def generate_while_user_edits(vocab_list, user_id):
        VocabTrainerRepository(db_session).update_trainer(trainer, name="Renamed")
        return [dict(json.loads(MC_RESPONSE), vocabId=vocab.id, type="textTarget")]

    context.exam_generator.generate_multiple_choice = generate_while_user_edits

    with pytest.raises(ConflictError):
        await MultipleChoiceGenerationWorker(context).process(generation_job(trainer, [vocab], user))

    assert progress_events(mock_notifier) == ["generating", "failed"]
    db_session.expire_all()
    saved = db_session.get(VocabTrainer, trainer.id)
    assert saved.name == "Renamed"
    assert saved.question_answers == []


@pytest.mark.asyncio
async def test_dialogue_generation_failure_is_reported(context_factory, user, make_vocab, make_trainer,
                                                       mock_notifier):
    vocab = make_vocab()
    trainer = make_trainer([vocab.id], question_type=QuestionType.TRANSLATION_AUDIO.value)
    worker = DialogueGenerationWorker(context_factory(["not json"] * 3))

    with pytest.raises(ParseError):
        await worker.process(generation_job(trainer, [vocab], user, QueueName.DIALOGUE_GENERATION,
                                            JobName.GENERATE_DIALOGUE))

    assert progress_events(mock_notifier) == ["generating", "failed"]


@pytest.mark.asyncio
async def test_fill_in_blank_evaluation_grades_against_all_submissions(context_factory, user, make_vocab,
                                                                       make_trainer, session_factory,
                                                                       mock_notifier):
    hello = make_vocab("hello", ("xin chào",))
    cat = make_vocab("cat", ("con mèo",))
    trainer = make_trainer([hello.id, cat.id], question_type=QuestionType.FILL_IN_THE_BLANK.value)
    payload = FillInBlankJobPayload(
        vocab_trainer_id=trainer.id,
        evaluations=[
            FillInBlankEvaluationItem(vocab=VocabSnapshot.model_validate(hello), vocab_id=hello.id,
                                      user_answer="chào", system_answer="xin chào", question_type="textTarget"),
            FillInBlankEvaluationItem(vocab=VocabSnapshot.model_validate(cat), vocab_id=cat.id,
                                      user_answer="dog", system_answer="cat", question_type="textSource"),
        ],
        answer_submissions=[AnswerSubmission(user_answer=a, system_answer=s)
                            for a, s in [("chào", "xin chào"), ("dog", "cat"), ("x", "unknown")]],
        user_id=user.id,
    )
    context = context_factory([
        json.dumps({"isCorrect": True, "explanation": "synonym"}),
        json.dumps({"isCorrect": False, "explanation": "wrong animal"}),
    ])

    outcome = await FillInBlankEvaluationWorker(context).process(
        make_job(QueueName.FILL_IN_BLANK_EVALUATION, JobName.EVALUATE_ANSWERS, payload)
    )

    assert outcome["status"] == "FAILED"
    assert outcome["scorePercentage"] == 33.33
    db = session_factory()
    saved = db.get(VocabTrainer, trainer.id)
    assert sorted((r.vocab_id, r.status) for r in saved.results) == sorted([(hello.id, "PASSED"), (cat.id, "FAILED")])
    mastery = VocabMasteryService(db)
    assert mastery.get_mastery(hello.id, user.id).mastery_score == 1
    assert mastery.get_mastery(cat.id, user.id).incorrect_count == 1
    db.close()
    assert progress_events(mock_notifier) == ["evaluating", "completed"]


@pytest.mark.asyncio
async def test_audio_evaluation_writes_report(context_factory, user, make_vocab, make_trainer, session_factory):
    vocab = make_vocab()
    dialogue = [
        {"speaker": "A", "text": "Hello!"}, {"speaker": "B", "text": "Hi there."},
        {"speaker": "A", "text": "How are you?"}, {"speaker": "B", "text": "Fine."},
    ]
    trainer = make_trainer([vocab.id], question_type=QuestionType.TRANSLATION_AUDIO.value,
                           question_answers=dialogue)
    audio_store = MagicMock()
    audio_store.download = AsyncMock(return_value=AudioFile(data=b"RIFF", mime_type="audio/wav"))
    context = context_factory([json.dumps({
        "scores": {"accuracy": 8, "fluency": 8, "register": 8, "completeness": 8},
        "errors": [], "missingIdeas": [], "correctedTranslation": "", "advice": [],
    })], audio_store=audio_store)
    payload = AudioEvaluationJobPayload(vocab_trainer_id=trainer.id, user_id=user.id, file_id="rec-1",
                                        source_language="en", target_language="vi")

    outcome = await AudioEvaluationWorker(context).process(
        make_job(QueueName.AUDIO_EVALUATION, JobName.EVALUATE_AUDIO, payload)
    )

    assert outcome["overallScore"] == 80.0
    assert outcome["status"] == "PASSED"
    audio_store.download.assert_awaited_once_with("rec-1")
    db = session_factory()
    result = db.get(VocabTrainer, trainer.id).results[0]
    assert result.vocab_id is None
    assert result.data["transcript"] == context.completion_client.transcript
    assert "## Overall Score: 80.0 / 100" in result.data["report"]
    assert VocabMasteryService(db).get_mastery(vocab.id, user.id).correct_count == 1
    db.close()


@pytest.mark.asyncio
async def test_vocab_translation_replaces_blank_targets(context_factory, user, make_vocab, session_factory):
    vocab = make_vocab("cat", ("  ",))
    context = context_factory([json.dumps({
        "textTarget": "con mèo", "grammar": "noun",
        "vocabExamples": [{"source": "The cat sleeps.", "target": "Con mèo ngủ."}],
    })])
    payload = VocabTranslationJobPayload(vocab_id=vocab.id, user_id=user.id)

    result = await VocabTranslationWorker(context).process(
        make_job(QueueName.VOCAB_TRANSLATION, JobName.TRANSLATE_VOCAB, payload)
    )

    assert result["textTarget"] == "con mèo"
    db = session_factory()
    saved = VocabRepository(db).find_by_id(vocab.id)
    assert [tt.text_target for tt in saved.text_targets] == ["con mèo"]
    assert saved.text_targets[0].examples[0].target == "Con mèo ngủ."
    db.close()


@pytest.mark.asyncio
async def test_email_reminder_worker_sends_email(context_factory):
    email_sender = MagicMock()
    email_sender.send = AsyncMock(return_value=True)
    context = context_factory(email_sender=email_sender)
    payload = ReminderJobPayload(email="learner@example.com", reminder_type="vocab_trainer",
                                 template="reminder", data={"testName": "Unit 1"})

    result = await EmailReminderWorker(context).process(
        make_job(QueueName.EMAIL_REMINDER, JobName.SEND_REMINDER, payload)
    )

    assert result == {"sent": True}
    email_sender.send.assert_awaited_once_with("learner@example.com", "reminder", {"testName": "Unit 1"})


@pytest.mark.asyncio
async def test_notification_worker_creates_and_pushes(context_factory, user, session_factory, mock_notifier):
    payload = NotificationJobPayload(user_id=user.id, data={"trainerName": "Unit 1"})

    result = await NotificationWorker(context_factory()).process(
        make_job(QueueName.NOTIFICATION, JobName.SEND_CREATE_NOTIFICATION, payload)
    )

    db = session_factory()
    notification = db.get(Notification, result["notificationId"])
    assert notification.data == {"trainerName": "Unit 1"}
    db.close()
    mock_notifier.emit_notification.assert_awaited_once()


def test_register_workers_covers_every_queue(context_factory):
    queue = JobQueue(concurrency=1)
    register_workers(queue, context_factory())

    registered = {(q, name) for q, handlers in queue._handlers.items() for name in handlers}
    assert registered == {
        (QueueName.MULTIPLE_CHOICE_GENERATION, JobName.GENERATE_QUESTIONS),
        (QueueName.DIALOGUE_GENERATION, JobName.GENERATE_DIALOGUE),
        (QueueName.FILL_IN_BLANK_EVALUATION, JobName.EVALUATE_ANSWERS),
        (QueueName.AUDIO_EVALUATION, JobName.EVALUATE_AUDIO),
        (QueueName.VOCAB_TRANSLATION, JobName.TRANSLATE_VOCAB),
        (QueueName.EMAIL_REMINDER, JobName.SEND_REMINDER),
        (QueueName.NOTIFICATION, JobName.SEND_CREATE_NOTIFICATION),
    }
