"""
Data Schemas for ExamCraft
Pydantic models for type-safe data validation across the application.

Models serialize with camelCase aliases (``correctAnswer``, ``schoolName`` ...),
which is the format of both the persisted JSON and the provider payloads.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from examcraft.config import DEFAULT_INSTRUCTIONS, MAX_SCORE


class CamelModel(BaseModel):
    """Base model accepting both field names and camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class QuestionType(str, Enum):
    """Supported question formats."""
    MULTIPLE = "multiple"
    OPEN = "open"


class Difficulty(str, Enum):
    """Difficulty levels offered on the create form."""
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"

    @property
    def label(self) -> str:
        return {"Easy": "Fácil", "Medium": "Média", "Hard": "Difícil"}[self.value]


class ViewState(str, Enum):
    """Screens of the application."""
    DASHBOARD = "dashboard"
    CREATE = "create"
    EDIT = "edit"
    CORRECT = "correct"
    PRINT = "print"
    SETTINGS = "settings"


class Question(CamelModel):
    """A single assessable item."""
    id: str = Field(..., description="Identifier, unique within the exam")
    type: QuestionType = Field(QuestionType.OPEN, description="Question format")
    question: str = Field(..., description="The question text")
    options: Optional[List[str]] = Field(
        None,
        description="Ordered choices, only for multiple-choice questions"
    )
    correct_answer: str = Field(..., description="Expected answer or choice label")
    weight: float = Field(1.0, gt=0, description="Weight used for score normalization")

    @model_validator(mode="after")
    def check_options(self) -> "Question":
        if self.type == QuestionType.MULTIPLE and not self.options:
            raise ValueError(f"Multiple-choice question '{self.id}' has no options")
        if self.type == QuestionType.OPEN:
            self.options = None
        return self


class Exam(CamelModel):
    """A complete exam: metadata, instructions and ordered questions."""
    id: str
    title: str
    subject: str
    grade: str = ""
    date: str = ""
    school_name: str = ""
    teacher_name: str = ""
    questions: List[Question] = Field(default_factory=list)
    instructions: str = ""

    @field_validator("questions")
    @classmethod
    def check_unique_ids(cls, questions: List[Question]) -> List[Question]:
        seen = set()
        for question in questions:
            if question.id in seen:
                raise ValueError(f"Duplicate question id '{question.id}'")
            seen.add(question.id)
        return questions


class GeneratedExam(CamelModel):
    """Exam payload as returned by the provider, before augmentation."""
    title: str = Field(..., description="A formal title for the exam")
    subject: str
    grade: str = ""
    instructions: Optional[str] = Field(None, description="General guidance printed above the questions")
    questions: List[Question]


class CorrectionItem(CamelModel):
    """Grading outcome for one question."""
    question_index: int = Field(..., ge=0, description="Zero-based position of the question in the exam")
    is_correct: bool
    student_answer: str = ""
    correct_answer: str = ""
    comment: str = ""


class CorrectionResult(CamelModel):
    """Outcome of grading one student's submission against one exam."""
    score: float = Field(..., ge=0)
    max_score: float = Field(MAX_SCORE, gt=0, description=f"Always {MAX_SCORE:g}")
    feedback: str = ""
    detailed_correction: List[CorrectionItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_score_range(self) -> "CorrectionResult":
        if self.score > self.max_score:
            raise ValueError(f"Score {self.score} exceeds max score {self.max_score}")
        return self


class UserSettings(CamelModel):
    """Identity and defaults applied to newly generated exams."""
    teacher_name: str = ""
    school_name: str = ""
    default_instructions: str = DEFAULT_INSTRUCTIONS


class GenerationRequest(CamelModel):
    """Parameters of the create form."""
    subject: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    grade: str = ""
    count: int = Field(5, gt=0)
    difficulty: Difficulty = Difficulty.MEDIUM
    model_reference: Optional[str] = None

    @field_validator("subject", "topic")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class ReferenceDocument(CamelModel):
    """An uploaded PDF, base64-encoded for the generate request."""
    name: str
    data: str
