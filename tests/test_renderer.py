"""
Test Exam Renderer
Tests the Paper: deterministic layout and the correction sheet.
"""
from examcraft.schemas import CorrectionItem, CorrectionResult
from examcraft.services.exam_renderer import (
    ANSWER_LINE,
    UNGRADED,
    build_correction_sheet,
    build_document,
    render_text,
)


def test_rendering_is_deterministic(sample_exam):
    first = build_document(sample_exam)
    second = build_document(sample_exam)

    assert first == second
    assert render_text(first).encode("utf-8") == render_text(second).encode("utf-8")


def test_header_and_title_block(sample_exam):
    document = build_document(sample_exam)

    assert document.header.school_name == "ESCOLA ESTADUAL CENTRAL"
    assert document.header.teacher_line == "Professor(a): Ana Souza"
    assert "DATA:" in document.header.date_field
    assert document.header.student_field.startswith("ALUNO(A):")
    assert "TURMA" in document.header.class_field and "NOTA" in document.header.class_field
    assert document.title == "EQUAÇÕES DE 2º GRAU"
    assert document.subtitle == "Matemática - 9º ano"


def test_questions_numbered_from_one(sample_exam):
    document = build_document(sample_exam)

    assert [q.number for q in document.questions] == [1, 2, 3]
    assert document.questions[0].heading == "QUESTÃO 1:"


def test_multiple_choice_options_are_lettered(sample_exam):
    first = build_document(sample_exam).questions[0]

    assert first.options == ("A) 1 e 6", "B) 2 e 3", "C) -2 e -3", "D) 0 e 5")
    assert first.answer_lines == 0


def test_open_questions_get_three_answer_lines(sample_exam):
    document = build_document(sample_exam)
    open_question = document.questions[1]

    assert open_question.options == ()
    assert open_question.answer_lines == 3
    assert render_text(document).count(ANSWER_LINE) == 3


def test_instructions_panel_is_optional(sample_exam):
    assert "INSTRUÇÕES:" in render_text(build_document(sample_exam))

    bare = sample_exam.model_copy(update={"instructions": "  "})
    document = build_document(bare)
    assert document.instructions is None
    assert "INSTRUÇÕES:" not in render_text(document)


def test_render_text_lists_questions_in_order(sample_exam):
    text = render_text(build_document(sample_exam))

    assert text.index("QUESTÃO 1:") < text.index("QUESTÃO 2:") < text.index("QUESTÃO 3:")
    assert "    B) 2 e 3" in text


def test_correction_sheet_full(sample_exam):
    correction = CorrectionResult(
        score=8,
        detailed_correction=[
            CorrectionItem(question_index=i, is_correct=i != 1, student_answer="x", comment="ok")
            for i in range(3)
        ],
    )
    rows = build_correction_sheet(sample_exam, correction)

    assert [row.status for row in rows] == ["correct", "incorrect", "correct"]
    assert rows[0].correct_answer == "B"


def test_correction_sheet_marks_missing_items_ungraded(sample_exam):
    correction = CorrectionResult(
        score=3,
        detailed_correction=[CorrectionItem(question_index=0, is_correct=True)],
    )
    rows = build_correction_sheet(sample_exam, correction)

    assert len(rows) == 3
    assert [row.status for row in rows] == ["correct", UNGRADED, UNGRADED]
    assert rows[2].correct_answer == "A"


def test_correction_sheet_ignores_out_of_range_items(sample_exam):
    correction = CorrectionResult(
        score=3,
        detailed_correction=[CorrectionItem(question_index=7, is_correct=True)],
    )
    rows = build_correction_sheet(sample_exam, correction)

    assert all(row.status == UNGRADED for row in rows)
