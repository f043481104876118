"""
Test AI Engine
Tests the Voice: request construction and boundary validation with stub Gemini clients.
"""
import base64
import json
from datetime import date
from unittest.mock import MagicMock

import pytest

from examcraft.config import CORRECTION_MODEL, DEFAULT_SCHOOL_NAME, DEFAULT_TEACHER_NAME, GENERATION_MODEL
from examcraft.errors import CorrectionError, GenerationError
from examcraft.schemas import GenerationRequest, Question, ReferenceDocument, UserSettings
from examcraft.services.ai_engine import (
    build_exam,
    correct_exam,
    ensure_unique_question_ids,
    generate_exam,
)

from conftest import correction_payload, generated_payload


def _request(count: int = 5, **kwargs) -> GenerationRequest:
    return GenerationRequest(
        subject="Matemática", topic="Equações de 2º Grau", grade="9º ano", count=count, **kwargs
    )


def _sent_parts(client: MagicMock):
    kwargs = client.models.generate_content.call_args.kwargs
    return kwargs["contents"][0].parts


# --- Generation ---

def test_generate_returns_requested_count_with_default_weight(stub_client):
    client = stub_client(generated_payload(5, omit_weight=True))

    generated = generate_exam(client, _request(5))

    assert len(generated.questions) == 5
    assert all(q.weight == 1.0 for q in generated.questions)
    assert len({q.id for q in generated.questions}) == 5
    assert client.models.generate_content.call_args.kwargs["model"] == GENERATION_MODEL


def test_generate_response_schema_follows_exam_model(stub_client):
    client = stub_client(generated_payload(2))

    generate_exam(client, _request(2))

    config = client.models.generate_content.call_args.kwargs["config"]
    schema = config.response_json_schema
    assert config.response_mime_type == "application/json"
    assert {"title", "subject", "questions"} <= set(schema["required"])
    question = schema["$defs"]["Question"]
    assert {"id", "question", "correctAnswer"} <= set(question["required"])
    assert "weight" in question["properties"]
    assert schema["$defs"]["QuestionType"]["enum"] == ["multiple", "open"]


def test_generate_prompt_without_reference(stub_client):
    client = stub_client(generated_payload(3))

    generate_exam(client, _request(3, difficulty="Hard"))

    parts = _sent_parts(client)
    assert len(parts) == 1
    prompt = parts[0].text
    assert "Quantidade exata de questões: 3" in prompt
    assert "Difícil" in prompt
    assert "estrutura pedagógica moderna" in prompt
    assert "MODELO DE REFERÊNCIA" not in prompt


def test_generate_with_reference_text_and_pdf(stub_client):
    client = stub_client(generated_payload(2))
    pdf = b"%PDF-1.4\n%%EOF"
    reference = ReferenceDocument(name="modelo.pdf", data=base64.b64encode(pdf).decode())

    generate_exam(client, _request(2, model_reference="1) Questão modelo"), reference)

    parts = _sent_parts(client)
    assert "MODELO DE REFERÊNCIA" in parts[0].text
    assert parts[1].inline_data.mime_type == "application/pdf"
    assert parts[1].inline_data.data == pdf
    assert "1) Questão modelo" in parts[2].text


def test_generate_count_mismatch_fails(stub_client):
    client = stub_client(generated_payload(4))
    with pytest.raises(GenerationError, match="4 questões em vez de 5"):
        generate_exam(client, _request(5))


@pytest.mark.parametrize("payload", [
    "not json at all",
    "",
    json.dumps({"title": "Sem questões"}),
])
def test_generate_malformed_payload_fails(stub_client, payload):
    client = stub_client(payload)
    with pytest.raises(GenerationError):
        generate_exam(client, _request(5))


def test_generate_multiple_choice_without_options_fails(stub_client):
    payload = generated_payload(1)
    del payload["questions"][0]["options"]
    with pytest.raises(GenerationError):
        generate_exam(stub_client(payload), _request(1))


def test_generate_provider_error_fails():
    client = MagicMock()
    client.models.generate_content.side_effect = RuntimeError("503 unavailable")
    with pytest.raises(GenerationError):
        generate_exam(client, _request(5))


def test_duplicate_question_ids_are_rekeyed():
    questions = [
        Question(id="q", question="1", correct_answer="x"),
        Question(id="q", question="2", correct_answer="x"),
        Question(id=" ", question="3", correct_answer="x"),
    ]
    keyed = ensure_unique_question_ids(questions)

    assert keyed[0].id == "q"
    assert len({q.id for q in keyed}) == 3
    assert [q.question for q in keyed] == ["1", "2", "3"]


def test_build_exam_applies_identity_from_settings(stub_client):
    generated = generate_exam(stub_client(generated_payload(2)), _request(2))
    settings = UserSettings(teacher_name="Ana Souza", school_name="Escola Central")

    exam = build_exam(generated, settings, today=date(2025, 3, 10))

    assert exam.id
    assert exam.date == "10/03/2025"
    assert exam.teacher_name == "Ana Souza"
    assert exam.school_name == "Escola Central"
    assert exam.instructions == "Responda com atenção."
    assert exam.questions == generated.questions


def test_build_exam_falls_back_to_defaults(stub_client):
    payload = generated_payload(1)
    payload["instructions"] = "   "
    generated = generate_exam(stub_client(payload), _request(1))
    settings = UserSettings(default_instructions="Instruções padrão")

    exam = build_exam(generated, settings)

    assert exam.teacher_name == DEFAULT_TEACHER_NAME
    assert exam.school_name == DEFAULT_SCHOOL_NAME
    assert exam.instructions == "Instruções padrão"


# --- Correction ---

def test_correct_returns_aligned_result(stub_client, sample_exam):
    client = stub_client(correction_payload(3))

    result = correct_exam(client, sample_exam, "1. B\n2. Mostra quantas raízes\n3. C")

    assert 0 <= result.score <= result.max_score == 10
    assert len(result.detailed_correction) == len(sample_exam.questions)
    assert [item.question_index for item in result.detailed_correction] == [0, 1, 2]
    # blank correct answers are echoed from the exam
    assert result.detailed_correction[0].correct_answer == "B"
    assert client.models.generate_content.call_args.kwargs["model"] == CORRECTION_MODEL


def test_correct_prompt_embeds_questions_and_weights(stub_client, sample_exam):
    client = stub_client(correction_payload(3))

    correct_exam(client, sample_exam, "1. B")

    prompt = client.models.generate_content.call_args.kwargs["contents"]
    assert '"correctAnswer": "B"' in prompt
    assert '"weight": 2.0' in prompt
    assert "1. B" in prompt
    assert "crédito proporcional" in prompt


def test_correct_response_schema_follows_result_model(stub_client, sample_exam):
    client = stub_client(correction_payload(3))

    correct_exam(client, sample_exam, "1. B")

    schema = client.models.generate_content.call_args.kwargs["config"].response_json_schema
    assert "detailedCorrection" in schema["properties"]
    item = schema["$defs"]["CorrectionItem"]
    assert {"questionIndex", "isCorrect"} <= set(item["required"])


def test_correct_orders_items_by_index(stub_client, sample_exam):
    payload = correction_payload(3)
    payload["detailedCorrection"].reverse()

    result = correct_exam(stub_client(payload), sample_exam, "1. B")

    assert [item.question_index for item in result.detailed_correction] == [0, 1, 2]


def test_correct_blank_transcript_skips_provider(sample_exam):
    client = MagicMock()
    with pytest.raises(CorrectionError):
        correct_exam(client, sample_exam, "   ")
    client.models.generate_content.assert_not_called()


def test_correct_out_of_range_index_fails(stub_client, sample_exam):
    payload = correction_payload(3)
    payload["detailedCorrection"][2]["questionIndex"] = 3
    with pytest.raises(CorrectionError):
        correct_exam(stub_client(payload), sample_exam, "1. B")


def test_correct_repeated_index_fails(stub_client, sample_exam):
    payload = correction_payload(3)
    payload["detailedCorrection"][1]["questionIndex"] = 0
    with pytest.raises(CorrectionError):
        correct_exam(stub_client(payload), sample_exam, "1. B")


def test_correct_score_above_max_fails(stub_client, sample_exam):
    with pytest.raises(CorrectionError):
        correct_exam(stub_client(correction_payload(3, score=11)), sample_exam, "1. B")


def test_correct_short_list_is_accepted(stub_client, sample_exam):
    result = correct_exam(stub_client(correction_payload(2)), sample_exam, "1. B")
    assert len(result.detailed_correction) == 2


def test_correct_provider_error_fails(sample_exam):
    client = MagicMock()
    client.models.generate_content.side_effect = ConnectionError("offline")
    with pytest.raises(CorrectionError):
        correct_exam(client, sample_exam, "1. B")
