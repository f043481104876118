"""
AI Engine Service
Handles all interactions with Google Gemini API for exam generation and correction.
"""
import base64
import binascii
import json
import logging
import os
from datetime import date
from typing import List, Optional

from google import genai
from google.genai import types
from pydantic import ValidationError

from examcraft.config import (
    CORRECTION_MODEL,
    DEFAULT_SCHOOL_NAME,
    DEFAULT_TEACHER_NAME,
    GENERATION_MODEL,
    MAX_SCORE,
    PDF_MIME_TYPE,
    get_api_key,
    get_prompt,
)
from examcraft.errors import CorrectionError, GenerationError
from examcraft.schemas import (
    CorrectionResult,
    Exam,
    GeneratedExam,
    GenerationRequest,
    Question,
    ReferenceDocument,
    UserSettings,
)

logger = logging.getLogger(__name__)

GENERATION_FAILED = (
    "Houve um erro ao gerar sua prova. Verifique sua conexão e tente novamente."
)
CORRECTION_FAILED = "Houve um erro ao corrigir a prova. Tente novamente."


# --- Response Schemas ---

EXAM_RESPONSE_SCHEMA = GeneratedExam.model_json_schema()
CORRECTION_RESPONSE_SCHEMA = CorrectionResult.model_json_schema()


def get_client(api_key: Optional[str] = None) -> genai.Client:
    """
    Creates and returns a configured Gemini API client.

    Returns:
        genai.Client: Authenticated Gemini client.

    Raises:
        ValueError: If API key is not configured.
    """
    resolved_key = api_key.strip() if api_key else ""
    if not resolved_key:
        resolved_key = get_api_key()
    return genai.Client(api_key=resolved_key)


def new_id() -> str:
    """Short random identifier for exams and questions."""
    return os.urandom(5).hex()


def encode_reference(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def build_generation_prompt(request: GenerationRequest, has_reference: bool) -> str:
    """
    Builds the generation instruction.

    Args:
        request: Parameters from the create form.
        has_reference: Whether reference text or a reference PDF accompanies the prompt.

    Returns:
        Prompt string for the generator.
    """
    style = get_prompt("reference_style" if has_reference else "default_style")
    return get_prompt(
        "generator",
        subject=request.subject,
        grade=request.grade or "não informado",
        topic=request.topic,
        difficulty=request.difficulty.label,
        count=request.count,
        style_instruction=style,
    )


def _parse_generated(text: Optional[str]) -> GeneratedExam:
    if not text:
        raise GenerationError(GENERATION_FAILED)
    try:
        return GeneratedExam.model_validate_json(text)
    except ValidationError as e:
        logger.error("Generated exam failed validation: %s", e)
        raise GenerationError(GENERATION_FAILED) from e


def ensure_unique_question_ids(questions: List[Question]) -> List[Question]:
    """Re-key blank or repeated question ids, keeping order."""
    seen = set()
    keyed: List[Question] = []
    for question in questions:
        question_id = question.id.strip()
        if not question_id or question_id in seen:
            question_id = new_id()
        seen.add(question_id)
        keyed.append(question.model_copy(update={"id": question_id}))
    return keyed


def generate_exam(
    client: genai.Client,
    request: GenerationRequest,
    reference: Optional[ReferenceDocument] = None,
) -> GeneratedExam:
    """
    Asks the provider for an exam matching the create form.

    Args:
        client: Authenticated Gemini client.
        request: Subject, topic, grade, count, difficulty and optional reference text.
        reference: Optional uploaded PDF used as a style model.

    Returns:
        GeneratedExam with exactly ``request.count`` questions and unique ids.

    Raises:
        GenerationError: On provider failure or a payload that breaks the contract.
    """
    has_reference = bool(request.model_reference or reference)
    parts = [types.Part.from_text(text=build_generation_prompt(request, has_reference))]

    if reference:
        try:
            pdf_bytes = base64.b64decode(reference.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise GenerationError(GENERATION_FAILED) from e
        parts.append(types.Part.from_bytes(data=pdf_bytes, mime_type=PDF_MIME_TYPE))

    if request.model_reference:
        parts.append(types.Part.from_text(
            text=get_prompt("reference_text", model_reference=request.model_reference)
        ))

    logger.info(
        "Generating %d questions for %s / %s (reference: %s)",
        request.count, request.subject, request.topic, has_reference,
    )
    try:
        response = client.models.generate_content(
            model=GENERATION_MODEL,
            contents=[types.Content(role="user", parts=parts)],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_json_schema=EXAM_RESPONSE_SCHEMA,
            ),
        )
    except Exception as e:
        logger.exception("Generation request failed")
        raise GenerationError(GENERATION_FAILED) from e

    generated = _parse_generated(response.text)

    if len(generated.questions) != request.count:
        logger.error(
            "Provider returned %d questions, %d requested",
            len(generated.questions), request.count,
        )
        raise GenerationError(
            f"A IA retornou {len(generated.questions)} questões em vez de {request.count}. "
            "Tente novamente."
        )

    return generated.model_copy(
        update={"questions": ensure_unique_question_ids(generated.questions)}
    )


def build_exam(
    generated: GeneratedExam,
    settings: UserSettings,
    today: Optional[date] = None,
) -> Exam:
    """
    Augments a generated exam with id, display date and the teacher's identity.

    Missing instructions fall back to the default instructions from settings.
    """
    today = today or date.today()
    instructions = (generated.instructions or "").strip() or settings.default_instructions
    return Exam(
        id=new_id(),
        title=generated.title,
        subject=generated.subject,
        grade=generated.grade,
        date=today.strftime("%d/%m/%Y"),
        school_name=settings.school_name or DEFAULT_SCHOOL_NAME,
        teacher_name=settings.teacher_name or DEFAULT_TEACHER_NAME,
        questions=generated.questions,
        instructions=instructions,
    )


def build_correction_prompt(exam: Exam, student_answers: str) -> str:
    questions = [
        {"question": q.question, "correctAnswer": q.correct_answer, "weight": q.weight}
        for q in exam.questions
    ]
    return get_prompt(
        "corrector",
        subject=exam.subject,
        questions_json=json.dumps(questions, ensure_ascii=False),
        student_answers=student_answers,
        max_score=MAX_SCORE,
    )


def validate_correction(exam: Exam, result: CorrectionResult) -> CorrectionResult:
    """
    Checks the correction against the exam it grades.

    Every ``questionIndex`` must point at a question of the exam and appear
    once. A shorter list is accepted; the missing questions show as ungraded.

    Returns:
        The result with items ordered by question index and blank correct
        answers echoed from the exam.

    Raises:
        CorrectionError: On out-of-range or repeated indices.
    """
    total = len(exam.questions)
    seen = set()
    for item in result.detailed_correction:
        if item.question_index >= total:
            logger.error("Correction index %d out of range (%d questions)", item.question_index, total)
            raise CorrectionError(CORRECTION_FAILED)
        if item.question_index in seen:
            logger.error("Correction index %d repeated", item.question_index)
            raise CorrectionError(CORRECTION_FAILED)
        seen.add(item.question_index)

    if len(seen) < total:
        logger.warning("Correction covers %d of %d questions", len(seen), total)

    items = []
    for item in sorted(result.detailed_correction, key=lambda i: i.question_index):
        if not item.correct_answer.strip():
            item = item.model_copy(
                update={"correct_answer": exam.questions[item.question_index].correct_answer}
            )
        items.append(item)
    return result.model_copy(update={"detailed_correction": items})


def correct_exam(client: genai.Client, exam: Exam, student_answers: str) -> CorrectionResult:
    """
    Asks the provider to grade a student's transcript against an exam.

    Args:
        client: Authenticated Gemini client.
        exam: The exam providing questions, answer key and weights.
        student_answers: Raw transcript, any format (e.g. "1. A, 2. B...").

    Returns:
        A validated CorrectionResult normalized to ``MAX_SCORE``.

    Raises:
        CorrectionError: On empty input, provider failure or an invalid payload.
    """
    if not student_answers.strip():
        raise CorrectionError("Por favor, insira as respostas do aluno antes de prosseguir.")

    logger.info("Correcting exam %s (%d questions)", exam.id, len(exam.questions))
    try:
        response = client.models.generate_content(
            model=CORRECTION_MODEL,
            contents=build_correction_prompt(exam, student_answers),
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_json_schema=CORRECTION_RESPONSE_SCHEMA,
            ),
        )
    except Exception as e:
        logger.exception("Correction request failed")
        raise CorrectionError(CORRECTION_FAILED) from e

    if not response.text:
        raise CorrectionError(CORRECTION_FAILED)
    try:
        result = CorrectionResult.model_validate_json(response.text)
    except ValidationError as e:
        logger.error("Correction failed validation: %s", e)
        raise CorrectionError(CORRECTION_FAILED) from e

    return validate_correction(exam, result)
