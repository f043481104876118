"""
Exam Document Renderer
Turns an Exam into the fixed printable layout shared by preview and export.
"""
from string import ascii_uppercase
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from examcraft.config import OPEN_ANSWER_LINES
from examcraft.schemas import CorrectionItem, CorrectionResult, Exam, QuestionType

ANSWER_LINE = "_" * 60
UNGRADED = "ungraded"


class DocumentHeader(BaseModel):
    model_config = ConfigDict(frozen=True)

    school_name: str
    teacher_line: str
    date_field: str
    student_field: str
    class_field: str


class DocumentQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    heading: str
    text: str
    options: Tuple[str, ...] = ()
    answer_lines: int = 0


class ExamDocument(BaseModel):
    """Printable paper. Equal exams always give equal documents."""
    model_config = ConfigDict(frozen=True)

    title: str
    subtitle: str
    subject: str
    header: DocumentHeader
    instructions: Optional[str]
    questions: Tuple[DocumentQuestion, ...]


class CorrectionRow(BaseModel):
    """One exam question next to its grading outcome."""
    model_config = ConfigDict(frozen=True)

    number: int
    question: str
    status: str
    student_answer: str = ""
    correct_answer: str = ""
    comment: str = ""


def option_label(index: int) -> str:
    return f"{ascii_uppercase[index]})" if index < len(ascii_uppercase) else f"{index + 1})"


def build_document(exam: Exam) -> ExamDocument:
    """
    Lays out an exam as a printable paper.

    Args:
        exam: The exam to render.

    Returns:
        ExamDocument with boxed header, title block, optional instructions and
        questions numbered from 1. Multiple-choice options are lettered from A;
        open questions get blank answer lines.
    """
    header = DocumentHeader(
        school_name=exam.school_name.upper(),
        teacher_line=f"Professor(a): {exam.teacher_name}",
        date_field="DATA: ____/____/____",
        student_field="ALUNO(A): " + "_" * 48,
        class_field="TURMA: _________ | NOTA: _________",
    )

    questions = []
    for number, question in enumerate(exam.questions, start=1):
        if question.type == QuestionType.MULTIPLE:
            options = tuple(
                f"{option_label(index)} {text}"
                for index, text in enumerate(question.options or [])
            )
            answer_lines = 0
        else:
            options = ()
            answer_lines = OPEN_ANSWER_LINES
        questions.append(DocumentQuestion(
            number=number,
            heading=f"QUESTÃO {number}:",
            text=question.question,
            options=options,
            answer_lines=answer_lines,
        ))

    instructions = exam.instructions.strip()
    return ExamDocument(
        title=exam.title.upper(),
        subtitle=f"{exam.subject} - {exam.grade}" if exam.grade else exam.subject,
        subject=exam.subject,
        header=header,
        instructions=instructions or None,
        questions=tuple(questions),
    )


def render_text(document: ExamDocument) -> str:
    """Plain-text rendering of a document, used for the print preview."""
    border = "=" * 72
    lines: List[str] = [
        border,
        document.header.school_name,
        f"{document.header.teacher_line}    {document.header.date_field}",
        f"{document.header.student_field}    {document.header.class_field}",
        border,
        "",
        document.title.center(72).rstrip(),
        document.subtitle.center(72).rstrip(),
        "",
    ]

    if document.instructions:
        lines += ["INSTRUÇÕES:", *document.instructions.splitlines(), ""]

    for question in document.questions:
        lines += [question.heading, question.text]
        lines += [f"    {option}" for option in question.options]
        lines += [ANSWER_LINE] * question.answer_lines
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def build_correction_sheet(exam: Exam, correction: CorrectionResult) -> List[CorrectionRow]:
    """
    Pairs every question of the exam with its correction item.

    Questions without an item, or items pointing outside the exam, never
    raise: the question shows as ungraded.
    """
    by_index = {item.question_index: item for item in correction.detailed_correction}
    rows = []
    for index, question in enumerate(exam.questions):
        item: Optional[CorrectionItem] = by_index.get(index)
        if item is None:
            rows.append(CorrectionRow(
                number=index + 1,
                question=question.question,
                status=UNGRADED,
                correct_answer=question.correct_answer,
            ))
            continue
        rows.append(CorrectionRow(
            number=index + 1,
            question=question.question,
            status="correct" if item.is_correct else "incorrect",
            student_answer=item.student_answer,
            correct_answer=item.correct_answer or question.correct_answer,
            comment=item.comment,
        ))
    return rows
