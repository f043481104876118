"""
Pytest Configuration & Shared Fixtures
"""
import json
from unittest.mock import MagicMock

import pytest

from examcraft.controller import ViewController
from examcraft.schemas import Exam, Question, QuestionType
from examcraft.services.store import ExamStore, LocalStorage


def make_response(payload) -> MagicMock:
    """Mock Gemini response whose text is the JSON payload."""
    response = MagicMock()
    response.text = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return response


def generated_payload(count: int, omit_weight: bool = False) -> dict:
    """Provider payload for an exam with ``count`` alternating questions."""
    questions = []
    for index in range(1, count + 1):
        question = {
            "id": f"q{index}",
            "type": "multiple" if index % 2 else "open",
            "question": f"Questão gerada {index}?",
            "correctAnswer": "A" if index % 2 else "Resposta esperada",
            "weight": 1.0,
        }
        if index % 2:
            question["options"] = ["x = 1", "x = 2", "x = 3", "x = 4"]
        if omit_weight:
            del question["weight"]
        questions.append(question)
    return {
        "title": "Avaliação de Matemática",
        "subject": "Matemática",
        "grade": "9º ano",
        "instructions": "Responda com atenção.",
        "questions": questions,
    }


def correction_payload(total: int, score: float = 7.5) -> dict:
    return {
        "score": score,
        "maxScore": 10,
        "feedback": "Bom trabalho, revise as questões abertas.",
        "detailedCorrection": [
            {
                "questionIndex": index,
                "isCorrect": index % 2 == 0,
                "studentAnswer": f"resposta {index + 1}",
                "correctAnswer": "",
                "comment": f"Comentário {index + 1}",
            }
            for index in range(total)
        ],
    }


@pytest.fixture
def stub_client():
    """Factory for a mock Gemini client returning the given payloads in order."""
    def _build(*payloads) -> MagicMock:
        client = MagicMock()
        client.models.generate_content.side_effect = [make_response(p) for p in payloads]
        return client
    return _build


@pytest.fixture
def sample_exam() -> Exam:
    """Returns a valid Exam with two multiple-choice and one open question."""
    return Exam(
        id="exam-1",
        title="Equações de 2º Grau",
        subject="Matemática",
        grade="9º ano",
        date="10/03/2025",
        school_name="Escola Estadual Central",
        teacher_name="Ana Souza",
        instructions="1. Leia com atenção.\n2. Use caneta azul.",
        questions=[
            Question(
                id="a1",
                type=QuestionType.MULTIPLE,
                question="Quais são as raízes de x² - 5x + 6 = 0?",
                options=["1 e 6", "2 e 3", "-2 e -3", "0 e 5"],
                correct_answer="B",
            ),
            Question(
                id="a2",
                type=QuestionType.OPEN,
                question="Explique o significado do discriminante.",
                correct_answer="Indica a quantidade de raízes reais.",
                weight=2.0,
            ),
            Question(
                id="a3",
                type=QuestionType.MULTIPLE,
                question="Qual o valor de Δ para x² + 1 = 0?",
                options=["-4", "0", "4", "1"],
                correct_answer="A",
            ),
        ],
    )


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "data")


@pytest.fixture
def store(storage) -> ExamStore:
    exam_store = ExamStore(storage)
    exam_store.load()
    return exam_store


@pytest.fixture
def controller(store) -> ViewController:
    """Controller whose AI client must be set per test via ``client_factory``."""
    return ViewController(store, client_factory=lambda api_key=None: MagicMock())
