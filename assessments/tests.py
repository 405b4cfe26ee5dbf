import json
import math
import uuid
from collections import Counter
from io import StringIO
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework.test import APIClient

from assessments.approval import evaluate, threshold_for
from assessments.composer import (
    assemble_questions,
    bank_scenario,
    compose_template,
    resolve_scenario,
)
from assessments.constants import Block, CandidateStatus, DeploymentType, SeniorityLevel, parse_block
from assessments.exceptions import (
    GenerationFailure,
    InvalidQuestion,
    InvalidTemplate,
    PersistenceFailure,
    TemplateImmutable,
)
from assessments.generation import generate_questions, generate_scenario
from assessments.models import (
    AssessmentResult,
    AssessmentTemplate,
    BankQuestion,
    BankScenario,
    Candidate,
    Industry,
    SAPModule,
)
from assessments.questions import Question, Scenario
from assessments.scoring import OUTCOME_UNANSWERED, UNANSWERED, score_answers
from assessments.services import (
    build_candidate_report,
    compare_candidates,
    create_candidate_assessment,
    enroll_candidate,
    generate_bank_pack,
    save_template,
    submit_assessment,
)


def make_question(qid, block=Block.PROCESS, correct=0, weight=1.0):
    return Question(
        id=qid,
        text=f"Question {qid}?",
        options=("Option A", "Option B", "Option C", "Option D"),
        correct_answer_index=correct,
        block=block,
        seniority=SeniorityLevel.PLENO,
        industry="cross",
        module="fi",
        deployment_type=DeploymentType.PUBLIC_CLOUD,
        weight=weight,
    )


def make_question_set(per_block=5):
    return [
        make_question(f"{block.value}-{index}", block)
        for block in Block
        for index in range(per_block)
    ]


def make_scenario():
    return Scenario(
        id="scenario-1",
        module_id="fi",
        level=SeniorityLevel.PLENO,
        industry="cross",
        title="Month-end close",
        description="The client closes the books in 12 days and wants 5.",
        guidelines="Cover process, automation and governance.",
        rubric=({"criterion": "Process design", "points": "0-5"},),
    )


def make_template(questions=None, *, scenario=None, level=SeniorityLevel.PLENO):
    questions = make_question_set() if questions is None else questions
    template = compose_template(
        module_id="fi",
        industry_id="cross",
        level=level,
        deployment_type=DeploymentType.PUBLIC_CLOUD,
        block_counts=dict(Counter(question.block for question in questions)),
        include_scenario=scenario is not None,
        generated_questions=questions,
        generated_scenario=scenario,
    )
    return save_template(template)


def make_candidate(template=None, *, name="Ana Souza", email="ana@example.com"):
    return enroll_candidate(template or make_template(), name=name, email=email)


def correct_answers(questions):
    return {question.id: question.correct_answer_index for question in questions}


def fake_anthropic_client(text):
    client = MagicMock()
    client.messages.create.return_value = SimpleNamespace(
        content=[SimpleNamespace(text=text)]
    )
    return client


class QuestionValidationTests(TestCase):
    def test_answer_index_must_be_inside_options(self):
        with self.assertRaises(InvalidQuestion):
            make_question("q-1", correct=4)

    def test_block_labels_are_normalized(self):
        self.assertEqual(parse_block("Clean Core"), Block.CLEAN_CORE)
        self.assertEqual(parse_block("master-data"), Block.MASTER_DATA)
        self.assertEqual(parse_block("SAP_Activate"), Block.SAP_ACTIVATE)
        with self.assertRaises(ValueError):
            parse_block("Leadership")

    def test_unknown_block_is_invalid_question(self):
        with self.assertRaises(InvalidQuestion):
            make_question("q-1", block="Leadership")

    def test_public_dict_hides_answer_key(self):
        payload = make_question("q-1").to_public_dict()
        self.assertNotIn("correct_answer_index", payload)
        self.assertEqual(payload["block"], "process")

    def test_round_trip_through_snapshot(self):
        question = make_question("q-1", block=Block.SOFT_SKILL, correct=2, weight=1.5)
        self.assertEqual(Question.from_dict(question.to_dict()), question)


class ScoringTests(TestCase):
    def test_all_correct_scores_full_marks(self):
        questions = make_question_set()
        card = score_answers(questions, correct_answers(questions))
        self.assertEqual(card.score, 50.0)
        self.assertEqual(set(card.block_scores), set(Block.values))
        for value in card.block_scores.values():
            self.assertEqual(value, 10.0)
        self.assertEqual(card.correct_count, 25)

    def test_all_unanswered_scores_zero(self):
        questions = make_question_set()
        card = score_answers(questions, {})
        self.assertEqual(card.score, 0.0)
        for value in card.block_scores.values():
            self.assertEqual(value, 0.0)
            self.assertFalse(math.isnan(value))
        self.assertTrue(all(d.outcome == OUTCOME_UNANSWERED for d in card.answers))
        self.assertTrue(all(d.selected_option == UNANSWERED for d in card.answers))

    def test_weighted_block_asymmetry(self):
        questions = [
            make_question("heavy", block=Block.CLEAN_CORE, weight=3.0),
            make_question("light", block=Block.CLEAN_CORE, weight=1.0),
        ]
        card = score_answers(questions, {"heavy": 0, "light": 1})
        self.assertEqual(card.block_scores[Block.CLEAN_CORE.value], 7.5)
        self.assertEqual(card.score, 37.5)

    def test_blocks_without_questions_score_zero(self):
        card = score_answers([make_question("only", block=Block.PROCESS)], {"only": 0})
        self.assertEqual(card.block_scores["process"], 10.0)
        self.assertEqual(card.block_scores["soft_skill"], 0.0)
        self.assertEqual(len(card.block_scores), 5)

    def test_negative_none_and_bool_selections_are_unanswered(self):
        questions = [make_question("a"), make_question("b"), make_question("c")]
        card = score_answers(questions, {"a": -1, "b": None, "c": True})
        self.assertEqual(card.answered_count, 0)
        self.assertEqual([d.selected_option for d in card.answers], [-1, -1, -1])

    def test_wrong_answer_is_incorrect_not_unanswered(self):
        card = score_answers([make_question("a")], {"a": 3})
        detail = card.answers[0]
        self.assertFalse(detail.is_correct)
        self.assertEqual(detail.outcome, "incorrect")
        self.assertEqual(detail.to_dict()["selected_option"], 3)

    def test_score_stays_within_bounds(self):
        questions = make_question_set()
        for stride in range(1, 6):
            answers = {q.id: (0 if i % stride == 0 else 1) for i, q in enumerate(questions)}
            card = score_answers(questions, answers)
            self.assertGreaterEqual(card.score, 0.0)
            self.assertLessEqual(card.score, 50.0)
            for value in card.block_scores.values():
                self.assertGreaterEqual(value, 0.0)
                self.assertLessEqual(value, 10.0)

    def test_empty_question_set_is_invalid(self):
        with self.assertRaises(InvalidTemplate):
            score_answers([], {})


class ApprovalTests(TestCase):
    def test_threshold_boundaries(self):
        cases = [
            (SeniorityLevel.JUNIOR, 25.0, True),
            (SeniorityLevel.JUNIOR, 24.99, False),
            (SeniorityLevel.PLENO, 35.0, True),
            (SeniorityLevel.PLENO, 34.99, False),
            (SeniorityLevel.SENIOR, 42.5, True),
            (SeniorityLevel.SENIOR, 42.49, False),
        ]
        for level, score, approved in cases:
            with self.subTest(level=level, score=score):
                self.assertEqual(evaluate(level, score).approved, approved)

    def test_unknown_level_uses_mid_threshold(self):
        self.assertEqual(threshold_for("principal"), 35.0)
        self.assertTrue(evaluate("principal", 35.0).approved)
        self.assertFalse(evaluate(None, 34.0).approved)


class ComposeTemplateTests(TestCase):
    def test_rejects_empty_or_missing_questions(self):
        kwargs = dict(
            module_id="fi",
            industry_id="cross",
            level=SeniorityLevel.PLENO,
            deployment_type=DeploymentType.PUBLIC_CLOUD,
            block_counts={Block.PROCESS: 1},
            include_scenario=False,
        )
        with self.assertRaises(GenerationFailure):
            compose_template(generated_questions=[], **kwargs)
        with self.assertRaises(GenerationFailure):
            compose_template(generated_questions=[make_question("a"), None], **kwargs)

    def test_requested_scenario_must_be_supplied(self):
        with self.assertRaises(GenerationFailure):
            compose_template(
                module_id="fi",
                industry_id="cross",
                level=SeniorityLevel.PLENO,
                deployment_type=DeploymentType.PUBLIC_CLOUD,
                block_counts={Block.PROCESS: 1},
                include_scenario=True,
                generated_questions=[make_question("a")],
            )

    def test_block_count_mismatch_only_warns(self):
        with self.assertLogs("assessments.composer", level="WARNING"):
            template = compose_template(
                module_id="fi",
                industry_id="cross",
                level=SeniorityLevel.PLENO,
                deployment_type=DeploymentType.PUBLIC_CLOUD,
                block_counts={Block.PROCESS: 3},
                include_scenario=False,
                generated_questions=[make_question("a")],
            )
        self.assertEqual(template.question_count(), 1)

    def test_templates_are_distinct_snapshots(self):
        questions = make_question_set(1)
        first = make_template(questions, scenario=make_scenario())
        questions.append(make_question("late"))
        second = make_template(questions)
        self.assertNotEqual(first.uuid, second.uuid)
        self.assertEqual(first.question_count(), 5)
        self.assertEqual(second.question_count(), 6)
        self.assertEqual(first.scenario.title, "Month-end close")
        self.assertEqual(first.name, "AI Pack: FI Mid (Pleno)")

    def test_saved_template_is_immutable(self):
        template = make_template()
        template.name = "Edited"
        with self.assertRaises(TemplateImmutable):
            template.save()
        template.refresh_from_db()
        self.assertTrue(template.name.startswith("AI Pack"))


class AssembleQuestionsTests(TestCase):
    def setUp(self):
        for index in range(4):
            BankQuestion.objects.create(
                text=f"Bank soft skill {index}",
                options=["A", "B", "C", "D"],
                correct_answer_index=1,
                block=Block.SOFT_SKILL,
                seniority=SeniorityLevel.PLENO,
                module="fi",
                deployment_type=DeploymentType.PUBLIC_CLOUD,
            )
        BankQuestion.objects.create(
            text="Pharma only",
            options=["A", "B"],
            correct_answer_index=0,
            block=Block.SOFT_SKILL,
            seniority=SeniorityLevel.PLENO,
            industry="pharma",
            module="fi",
            deployment_type=DeploymentType.PUBLIC_CLOUD,
        )

    def test_bank_first_then_generates_remainder(self):
        def generator(module_id, industry_id, level, deployment_type, missing, context):
            return [
                make_question(f"ai-{block.value}-{index}", block)
                for block, count in missing.items()
                for index in range(count)
            ]

        mock_generator = MagicMock(side_effect=generator)
        questions = assemble_questions(
            module_id="fi",
            industry_id="retail",
            level=SeniorityLevel.PLENO,
            deployment_type=DeploymentType.PUBLIC_CLOUD,
            block_counts={Block.SOFT_SKILL: 5, Block.PROCESS: 2},
            generator=mock_generator,
        )

        mock_generator.assert_called_once()
        missing = mock_generator.call_args.args[4]
        self.assertEqual(missing, {Block.SOFT_SKILL: 1, Block.PROCESS: 2})
        self.assertEqual(len(questions), 7)
        soft = [q for q in questions if q.block == Block.SOFT_SKILL]
        self.assertEqual(sum(1 for q in soft if q.id.startswith("bank-")), 4)
        self.assertNotIn("Pharma only", [q.text for q in questions])
        # process block comes first and takes the module's process weight
        self.assertEqual(questions[0].block, Block.PROCESS)
        self.assertEqual(questions[0].weight, 2.0)
        self.assertEqual(soft[0].weight, 1.0)

    def test_no_generation_when_bank_covers_request(self):
        mock_generator = MagicMock()
        questions = assemble_questions(
            module_id="fi",
            industry_id="cross",
            level=SeniorityLevel.PLENO,
            deployment_type=DeploymentType.PUBLIC_CLOUD,
            block_counts={Block.SOFT_SKILL: 1},
            generator=mock_generator,
            bank_share=1.0,
        )
        mock_generator.assert_not_called()
        self.assertEqual(len(questions), 1)


class ResolveScenarioTests(TestCase):
    kwargs = dict(
        module_id="fi",
        level=SeniorityLevel.PLENO,
        industry_id="cross",
        deployment_type=DeploymentType.PUBLIC_CLOUD,
    )

    def test_generated_scenario_is_banked_and_reused(self):
        generator = MagicMock(return_value=make_scenario())
        first, new = resolve_scenario(generator=generator, **self.kwargs)
        self.assertTrue(new)
        self.assertFalse(BankScenario.objects.exists())

        banked = bank_scenario(first, deployment_type=DeploymentType.PUBLIC_CLOUD)
        second, new = resolve_scenario(generator=generator, **self.kwargs)
        generator.assert_called_once()
        self.assertFalse(new)
        self.assertEqual(banked, second)
        self.assertEqual(BankScenario.objects.count(), 1)
        self.assertTrue(BankScenario.objects.get().ai_generated)
        self.assertEqual(second.rubric[0].criterion, "Process design")

    def test_bank_write_failure_is_persistence_failure(self):
        with patch.object(BankScenario.objects, "create", side_effect=DatabaseError("locked")):
            with self.assertRaises(PersistenceFailure) as ctx:
                bank_scenario(make_scenario(), deployment_type=DeploymentType.PUBLIC_CLOUD)
        self.assertEqual(ctx.exception.step, "scenario")


class GenerationTests(TestCase):
    payload = [
        {
            "text": "Which object holds the customer's credit limit?",
            "options": ["KNA1", "UKMBP_CMS_SGM", "VBAK", "BSEG"],
            "correct_answer_index": 1,
            "block": "Master Data",
            "explanation": "Credit segment data lives in FSCM.",
        },
        {
            "text": "A key user asks to modify a standard program. What do you do?",
            "options": ["Modify it", "Use a BAdI or key-user extension", "Copy it", "Ignore"],
            "correctAnswerIndex": 1,
            "block": "Clean Core",
        },
    ]

    def test_parses_fenced_json(self):
        text = "```json\n" + json.dumps(self.payload) + "\n```"
        with patch(
            "assessments.generation._get_anthropic_client",
            return_value=fake_anthropic_client(text),
        ):
            questions = generate_questions(
                "fi", "cross", SeniorityLevel.PLENO, DeploymentType.PUBLIC_CLOUD,
                {Block.MASTER_DATA: 1, Block.CLEAN_CORE: 1},
            )
        self.assertEqual([q.block for q in questions], [Block.MASTER_DATA, Block.CLEAN_CORE])
        self.assertEqual(questions[1].correct_answer_index, 1)
        self.assertTrue(all(q.weight == 1.0 for q in questions))
        self.assertTrue(all(q.id.startswith("ai-") for q in questions))

    def test_malformed_or_empty_output_fails(self):
        for text in ("not json", "[]", json.dumps([{"text": "No options", "block": "Process"}])):
            with self.subTest(text=text), patch(
                "assessments.generation._get_anthropic_client",
                return_value=fake_anthropic_client(text),
            ):
                with self.assertRaises(GenerationFailure):
                    generate_questions(
                        "fi", "cross", SeniorityLevel.PLENO, DeploymentType.PUBLIC_CLOUD,
                        {Block.PROCESS: 1},
                    )

    @override_settings(ANTHROPIC_API_KEY="")
    def test_missing_api_key_is_generation_failure(self):
        with self.assertRaises(GenerationFailure):
            generate_scenario("fi", SeniorityLevel.PLENO, "cross", DeploymentType.PUBLIC_CLOUD)

    def test_scenario_generation(self):
        text = json.dumps(
            {
                "title": "Plant rollout",
                "description": "Roll out a new plant in 8 weeks.",
                "guidelines": "Cover cutover.",
                "rubric": [{"criterion": "Cutover plan", "points": "0-5"}],
            }
        )
        with patch(
            "assessments.generation._get_anthropic_client",
            return_value=fake_anthropic_client(text),
        ):
            scenario = generate_scenario(
                "pp", SeniorityLevel.SENIOR, "food", DeploymentType.PRIVATE_CLOUD
            )
        self.assertEqual(scenario.title, "Plant rollout")
        self.assertEqual(scenario.rubric[0].points, "0-5")


class CreateCandidateAssessmentTests(TestCase):
    def create(self, **overrides):
        kwargs = dict(
            name="Bruno Lima",
            email="Bruno@Example.com",
            module_id="fi",
            industry_id="cross",
            level=SeniorityLevel.SENIOR,
            deployment_type=DeploymentType.PUBLIC_CLOUD,
            include_scenario=False,
            block_counts={block: 1 for block in Block},
        )
        kwargs.update(overrides)
        return create_candidate_assessment(**kwargs)

    @patch("assessments.generation.generate_questions")
    def test_creates_template_then_candidate(self, mock_generate):
        mock_generate.return_value = make_question_set(1)
        created = self.create()
        candidate = Candidate.objects.get()
        self.assertEqual(candidate, created.candidate)
        self.assertEqual(candidate.template, created.template)
        self.assertEqual(candidate.status, CandidateStatus.PENDING)
        self.assertEqual(candidate.email, "bruno@example.com")
        self.assertEqual(candidate.applied_level, SeniorityLevel.SENIOR)
        self.assertEqual(created.template.question_count(), 5)
        self.assertIn(f"/test/{candidate.uuid}/", candidate.test_link)

    @patch("assessments.generation.generate_questions")
    def test_generation_failure_writes_nothing(self, mock_generate):
        mock_generate.side_effect = RuntimeError("upstream timeout")
        with self.assertRaises(GenerationFailure):
            self.create()
        self.assertFalse(AssessmentTemplate.objects.exists())
        self.assertFalse(Candidate.objects.exists())

    @patch("assessments.generation.generate_questions")
    def test_missing_scenario_aborts_before_writes(self, mock_generate):
        mock_generate.return_value = make_question_set(1)
        with patch("assessments.generation.generate_scenario", side_effect=GenerationFailure("empty")):
            with self.assertRaises(GenerationFailure):
                self.create(include_scenario=True)
        self.assertFalse(AssessmentTemplate.objects.exists())

    @patch("assessments.generation.generate_scenario")
    @patch("assessments.generation.generate_questions")
    def test_new_scenario_is_banked_with_the_template(self, mock_generate, mock_scenario):
        mock_generate.return_value = make_question_set(1)
        mock_scenario.return_value = make_scenario()
        created = self.create(include_scenario=True)
        banked = BankScenario.objects.get()
        self.assertTrue(banked.ai_generated)
        self.assertEqual(created.template.scenario.id, f"scenario-{banked.uuid}")

    @patch("assessments.generation.generate_scenario")
    @patch("assessments.generation.generate_questions")
    def test_composition_failure_leaves_scenario_unbanked(self, mock_generate, mock_scenario):
        mock_generate.return_value = []
        mock_scenario.return_value = make_scenario()
        with self.assertRaises(GenerationFailure):
            self.create(include_scenario=True)
        self.assertFalse(BankScenario.objects.exists())
        self.assertFalse(AssessmentTemplate.objects.exists())

    @patch("assessments.generation.generate_scenario")
    @patch("assessments.generation.generate_questions")
    def test_scenario_bank_failure_is_persistence_failure(self, mock_generate, mock_scenario):
        mock_generate.return_value = make_question_set(1)
        mock_scenario.return_value = make_scenario()
        with patch.object(BankScenario.objects, "create", side_effect=DatabaseError("locked")):
            with self.assertRaises(PersistenceFailure) as ctx:
                self.create(include_scenario=True)
        self.assertEqual(ctx.exception.step, "scenario")
        self.assertFalse(AssessmentTemplate.objects.exists())
        self.assertFalse(Candidate.objects.exists())

    @patch("assessments.generation.generate_questions")
    def test_template_save_failure(self, mock_generate):
        mock_generate.return_value = make_question_set(1)
        with patch.object(AssessmentTemplate, "save", side_effect=DatabaseError("disk full")):
            with self.assertRaises(PersistenceFailure) as ctx:
                self.create()
        self.assertEqual(ctx.exception.step, "template")
        self.assertIsNone(ctx.exception.template)
        self.assertFalse(Candidate.objects.exists())

    @patch("assessments.generation.generate_questions")
    def test_candidate_save_failure_keeps_template_for_retry(self, mock_generate):
        mock_generate.return_value = make_question_set(1)
        with patch.object(Candidate.objects, "create", side_effect=DatabaseError("locked")):
            with self.assertRaises(PersistenceFailure) as ctx:
                self.create()
        self.assertEqual(ctx.exception.step, "candidate")
        self.assertEqual(AssessmentTemplate.objects.count(), 1)
        self.assertFalse(Candidate.objects.exists())

        candidate = enroll_candidate(
            ctx.exception.template, name="Bruno Lima", email="bruno@example.com"
        )
        self.assertEqual(candidate.template, AssessmentTemplate.objects.get())
        mock_generate.assert_called_once()


class GenerateBankPackTests(TestCase):
    def generate(self, **overrides):
        kwargs = dict(
            module_id="fi",
            industry_id="cross",
            level=SeniorityLevel.PLENO,
            deployment_type=DeploymentType.PUBLIC_CLOUD,
            block_counts={block: 1 for block in Block},
        )
        kwargs.update(overrides)
        return generate_bank_pack(**kwargs)

    @patch("assessments.generation.generate_questions")
    def test_generated_questions_are_banked_as_a_standalone_template(self, mock_generate):
        mock_generate.return_value = make_question_set(1)
        pack = self.generate()

        rows = list(BankQuestion.objects.order_by("pk"))
        self.assertEqual(len(rows), 5)
        self.assertTrue(all(row.ai_generated for row in rows))
        template = AssessmentTemplate.objects.get()
        self.assertEqual(template, pack.template)
        self.assertIn("Public Cloud", template.name)
        self.assertEqual(
            sorted(question.id for question in template.question_set),
            sorted(f"bank-{row.pk}" for row in rows),
        )
        self.assertFalse(Candidate.objects.exists())

    @patch("assessments.generation.generate_questions")
    def test_banked_questions_feed_bank_first_assembly(self, mock_generate):
        mock_generate.return_value = make_question_set(1)
        self.generate()
        generator = MagicMock()
        questions = assemble_questions(
            module_id="fi",
            industry_id="retail",
            level=SeniorityLevel.PLENO,
            deployment_type=DeploymentType.PUBLIC_CLOUD,
            block_counts={Block.PROCESS: 1},
            generator=generator,
            bank_share=1.0,
        )
        generator.assert_not_called()
        self.assertTrue(questions[0].id.startswith("bank-"))

    @patch("assessments.generation.generate_questions")
    def test_failed_template_write_rolls_back_bank_rows(self, mock_generate):
        mock_generate.return_value = make_question_set(1)
        with patch.object(AssessmentTemplate, "save", side_effect=DatabaseError("disk full")):
            with self.assertRaises(PersistenceFailure) as ctx:
                self.generate()
        self.assertEqual(ctx.exception.step, "template")
        self.assertFalse(BankQuestion.objects.exists())

    @patch("assessments.generation.generate_questions")
    def test_generation_failure_writes_nothing(self, mock_generate):
        mock_generate.side_effect = RuntimeError("upstream timeout")
        with self.assertRaises(GenerationFailure):
            self.generate()
        self.assertFalse(BankQuestion.objects.exists())
        self.assertFalse(AssessmentTemplate.objects.exists())


class SubmitAssessmentTests(TestCase):
    def setUp(self):
        self.template = make_template()
        self.candidate = make_candidate(self.template)
        self.questions = self.template.question_set

    def test_records_result_and_completes_candidate(self):
        answers = correct_answers(self.questions[:10])
        result = submit_assessment(self.candidate, answers)
        self.candidate.refresh_from_db()
        self.assertEqual(self.candidate.status, CandidateStatus.COMPLETED)
        self.assertEqual(result.score, 20.0)
        self.assertEqual(len(result.answers), 25)
        self.assertEqual(
            sum(1 for a in result.answers if a["outcome"] == "unanswered"), 15
        )
        self.assertEqual(result.template, self.template)

    def test_duplicate_submission_returns_existing_result(self):
        first = submit_assessment(self.candidate, correct_answers(self.questions))
        second = submit_assessment(self.candidate, {})
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(second.score, 50.0)
        self.assertEqual(AssessmentResult.objects.count(), 1)

    def test_status_flip_failure_keeps_result_and_retries_flip(self):
        with patch.object(Candidate.objects, "filter", side_effect=DatabaseError("locked")):
            with self.assertRaises(PersistenceFailure) as ctx:
                submit_assessment(self.candidate, correct_answers(self.questions))
        self.assertEqual(ctx.exception.step, "candidate status")
        self.assertEqual(AssessmentResult.objects.count(), 1)
        self.assertEqual(
            Candidate.objects.get(pk=self.candidate.pk).status, CandidateStatus.PENDING
        )

        result = submit_assessment(self.candidate, {})
        self.assertEqual(result.score, 50.0)
        self.assertEqual(
            Candidate.objects.get(pk=self.candidate.pk).status, CandidateStatus.COMPLETED
        )

    def test_results_are_immutable(self):
        result = submit_assessment(self.candidate, {})
        result.score = 50.0
        with self.assertRaises(TemplateImmutable):
            result.save()

    @override_settings(ASSESSMENT_REPORT_RECIPIENT="ops@example.com", EMAIL_ENABLED=True)
    def test_completion_report_is_emailed(self):
        result = submit_assessment(self.candidate, correct_answers(self.questions))
        self.assertEqual(result.report_sent_to, "ops@example.com")
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("Ana Souza", mail.outbox[0].subject)
        self.assertIn("Approved", mail.outbox[0].body)

    @override_settings(ASSESSMENT_REPORT_RECIPIENT="ops@example.com", EMAIL_ENABLED=False)
    def test_email_disabled_sends_nothing(self):
        submit_assessment(self.candidate, {})
        self.assertEqual(len(mail.outbox), 0)

    @override_settings(ASSESSMENT_REPORT_RECIPIENT="ops@example.com", EMAIL_ENABLED=True)
    def test_email_failure_does_not_fail_submission(self):
        with patch("assessments.services.send_mail", side_effect=OSError("smtp down")):
            with self.assertLogs("assessments.services", level="WARNING"):
                result = submit_assessment(self.candidate, {})
        self.assertEqual(AssessmentResult.objects.get(), result)


class ReportingTests(TestCase):
    def test_report_requires_result(self):
        candidate = make_candidate()
        self.assertIsNone(build_candidate_report(candidate))

        submit_assessment(candidate, correct_answers(candidate.template.question_set))
        report = build_candidate_report(candidate)
        self.assertTrue(report.approval.approved)
        self.assertEqual(report.approval.threshold, 35.0)
        self.assertEqual(len(report.chart), 5)
        self.assertEqual(report.chart[0], {
            "block": "master_data", "label": "Master Data", "score": 10.0, "full_mark": 10,
        })

    def test_compare_candidates(self):
        template = make_template()
        done = make_candidate(template, name="Done", email="done@example.com")
        waiting = make_candidate(template, name="Waiting", email="waiting@example.com")
        submit_assessment(done, correct_answers(template.question_set[:5]))

        payload = compare_candidates([done, waiting])
        master = payload["blocks"][0]
        self.assertEqual(master[str(done.uuid)], 10.0)
        self.assertEqual(master[str(waiting.uuid)], 0)
        self.assertEqual(payload["candidates"][0]["score"], 10.0)
        self.assertFalse(payload["candidates"][0]["approved"])
        self.assertIsNone(payload["candidates"][1]["score"])


class SeedReferenceDataTests(TestCase):
    def test_seed_is_idempotent(self):
        call_command("seed_reference_data", stdout=StringIO())
        call_command("seed_reference_data", stdout=StringIO())
        self.assertEqual(SAPModule.objects.count(), 14)
        self.assertEqual(Industry.objects.count(), 6)
        self.assertEqual(SAPModule.objects.get(code="abap").category, "technical")


class OperatorAPITests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user("ops", "ops@example.com", "pw", is_staff=True)
        self.client = APIClient()
        self.client.force_authenticate(self.staff)

    def create_payload(self, **overrides):
        payload = {
            "name": "Carla Dias",
            "email": "carla@example.com",
            "module_id": "fi",
            "level": "pleno",
            "include_scenario": False,
            "block_counts": {block.value: 1 for block in Block},
        }
        payload.update(overrides)
        return payload

    def test_requires_staff(self):
        User = get_user_model()
        client = APIClient()
        client.force_authenticate(User.objects.create_user("cand", "c@example.com", "pw"))
        response = client.get(reverse("assessments:candidate-list"))
        self.assertEqual(response.status_code, 403)

    @patch("assessments.generation.generate_questions")
    def test_create_candidate(self, mock_generate):
        mock_generate.return_value = make_question_set(1)
        response = self.client.post(
            reverse("assessments:candidate-list"), self.create_payload(), format="json"
        )
        self.assertEqual(response.status_code, 201, response.data)
        candidate = Candidate.objects.get()
        self.assertEqual(response.data["uuid"], str(candidate.uuid))
        self.assertEqual(response.data["progress_status"], "pending")
        self.assertTrue(response.data["test_link"].endswith(f"/test/{candidate.uuid}/"))

    @patch("assessments.generation.generate_questions")
    def test_generation_failure_returns_502(self, mock_generate):
        mock_generate.side_effect = GenerationFailure("empty payload")
        response = self.client.post(
            reverse("assessments:candidate-list"), self.create_payload(), format="json"
        )
        self.assertEqual(response.status_code, 502)
        self.assertFalse(Candidate.objects.exists())

    @patch("assessments.generation.generate_questions")
    def test_persistence_failure_returns_503(self, mock_generate):
        mock_generate.return_value = make_question_set(1)
        with patch.object(Candidate.objects, "create", side_effect=DatabaseError("locked")):
            response = self.client.post(
                reverse("assessments:candidate-list"), self.create_payload(), format="json"
            )
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["step"], "candidate")
        self.assertEqual(response.data["template"], str(AssessmentTemplate.objects.get().uuid))

    def test_invalid_block_counts_rejected(self):
        response = self.client.post(
            reverse("assessments:candidate-list"),
            self.create_payload(block_counts={"leadership": 2}),
            format="json",
        )
        self.assertEqual(response.status_code, 400)

    def test_list_and_report(self):
        candidate = make_candidate()
        response = self.client.get(reverse("assessments:candidate-list"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data[0]["status"], "pending")

        report_url = reverse("assessments:candidate-report", args=[candidate.uuid])
        self.assertEqual(self.client.get(report_url).status_code, 404)

        submit_assessment(candidate, correct_answers(candidate.template.question_set))
        response = self.client.get(report_url)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["approved"])
        self.assertEqual(response.data["result"]["score"], 50.0)

    def test_compare_endpoint(self):
        template = make_template()
        first = make_candidate(template, name="First", email="first@example.com")
        second = make_candidate(template, name="Second", email="second@example.com")
        response = self.client.get(
            reverse("assessments:candidate-compare"), {"ids": f"{second.uuid},{first.uuid}"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["candidates"][0]["name"], "Second")
        bad = self.client.get(reverse("assessments:candidate-compare"), {"ids": "nope"})
        self.assertEqual(bad.status_code, 400)

    def test_delete_candidate_removes_result(self):
        candidate = make_candidate()
        submit_assessment(candidate, {})
        response = self.client.delete(
            reverse("assessments:candidate-detail", args=[candidate.uuid])
        )
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Candidate.objects.exists())
        self.assertFalse(AssessmentResult.objects.exists())

    def test_template_detail_and_protected_delete(self):
        template = make_template(make_question_set(1))
        make_candidate(template)
        url = reverse("assessments:template-detail", args=[template.uuid])

        response = self.client.get(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["question_count"], 5)
        self.assertIn("correct_answer_index", response.data["questions"][0])

        self.assertEqual(self.client.delete(url).status_code, 409)

        unused = make_template(make_question_set(1))
        response = self.client.delete(
            reverse("assessments:template-detail", args=[unused.uuid])
        )
        self.assertEqual(response.status_code, 204)

    def test_unknown_template_is_404(self):
        response = self.client.get(
            reverse("assessments:template-detail", args=[uuid.uuid4()])
        )
        self.assertEqual(response.status_code, 404)

    @patch("assessments.generation.generate_questions")
    def test_bank_generate_endpoint(self, mock_generate):
        mock_generate.return_value = make_question_set(1)
        response = self.client.post(
            reverse("assessments:bank-generate"),
            {"module_id": "fi", "level": "pleno", "block_counts": {block.value: 1 for block in Block}},
            format="json",
        )
        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(response.data["banked"], 5)
        self.assertEqual(response.data["template"]["question_count"], 5)
        self.assertEqual(BankQuestion.objects.filter(ai_generated=True).count(), 5)

    @patch("assessments.generation.generate_scenario")
    @patch("assessments.generation.generate_questions")
    def test_scenario_bank_failure_returns_503(self, mock_generate, mock_scenario):
        mock_generate.return_value = make_question_set(1)
        mock_scenario.return_value = make_scenario()
        with patch.object(BankScenario.objects, "create", side_effect=DatabaseError("locked")):
            response = self.client.post(
                reverse("assessments:candidate-list"),
                self.create_payload(include_scenario=True),
                format="json",
            )
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.data["step"], "scenario")
