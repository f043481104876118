"""
View Controller
Orchestrates the six screens, wires user actions to the Exam Store and the
AI Engine, and owns the transient UI state (current exam, correction, flags).
"""
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from google import genai

from examcraft.config import PDF_MIME_TYPE
from examcraft.errors import (
    CorrectionError,
    ExamCraftError,
    ExamNotFoundError,
    NavigationError,
    OperationInProgressError,
    UploadRejectedError,
)
from examcraft.schemas import (
    CorrectionResult,
    Exam,
    GenerationRequest,
    Question,
    QuestionType,
    ReferenceDocument,
    UserSettings,
    ViewState,
)
from examcraft.services import ai_engine, doc_generator, exam_renderer
from examcraft.services.store import Confirm, ExamStore, is_confirmed

logger = logging.getLogger(__name__)

GENERATE = "generate"
CORRECT = "correct"
EXPORT = "export"

NEW_QUESTION_TEXT = "Escreva aqui o enunciado da sua nova questão..."
NEW_ANSWER_TEXT = "Escreva o gabarito esperado..."

QUESTION_FIELDS = {"question", "correct_answer", "weight", "options", "type"}
EXAM_FIELDS = {"title", "subject", "grade", "date", "school_name", "teacher_name", "instructions", "questions"}
VIEWS_NEEDING_EXAM = {ViewState.EDIT, ViewState.PRINT, ViewState.CORRECT}


class ViewController:
    """
    Screen state machine for a single local user.

    Args:
        store: Loaded exam store.
        client_factory: Builds a Gemini client from an optional API key when an AI call is made.
        confirm: Default confirmation prompt for destructive actions.
    """

    def __init__(
        self,
        store: ExamStore,
        client_factory: Callable[[Optional[str]], genai.Client] = ai_engine.get_client,
        confirm: Confirm = False,
    ):
        self.store = store
        self.client_factory = client_factory
        self.confirm = confirm

        self.view = ViewState.DASHBOARD
        self.current_exam: Optional[Exam] = None
        self.correction: Optional[CorrectionResult] = None
        self.editing_correction = False
        self.reference: Optional[ReferenceDocument] = None
        self.form: Optional[GenerationRequest] = None
        self.student_answers = ""
        self.notice: Optional[str] = None

        self._in_flight: set = set()
        self._lock = threading.Lock()

    # --- Flags ---

    @property
    def loading(self) -> bool:
        return bool(self._in_flight & {GENERATE, CORRECT})

    @property
    def exporting(self) -> bool:
        return EXPORT in self._in_flight

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        """Marks an operation in flight; a second one of the same kind is rejected."""
        with self._lock:
            if name in self._in_flight:
                raise OperationInProgressError("Aguarde a operação em andamento terminar.")
            self._in_flight.add(name)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(name)

    def _fail(self, error: ExamCraftError) -> ExamCraftError:
        self.notice = str(error)
        return error

    # --- Navigation ---

    def navigate(self, view: ViewState) -> ViewState:
        """
        Switches screens, enforcing the guards of each view.

        Raises:
            NavigationError: When the target view needs an exam that is not available.
        """
        view = ViewState(view)
        if view == ViewState.CORRECT:
            if not self.store.exams:
                raise self._fail(NavigationError("Crie uma prova primeiro!"))
            if self.current_exam is None:
                self.current_exam = self.store.exams[0]
        elif view in VIEWS_NEEDING_EXAM and self.current_exam is None:
            raise self._fail(NavigationError("Selecione uma prova primeiro."))

        logger.debug("View %s -> %s", self.view.value, view.value)
        self.view = view
        return view

    def select_exam(self, exam_id: str) -> Exam:
        exam = self.store.get(exam_id)
        if exam is None:
            raise self._fail(ExamNotFoundError(f"Prova '{exam_id}' não encontrada."))
        if self.current_exam is None or self.current_exam.id != exam.id:
            self.correction = None
            self.editing_correction = False
        self.current_exam = exam
        return exam

    def open_exam(self, exam_id: str, view: ViewState = ViewState.EDIT) -> Exam:
        exam = self.select_exam(exam_id)
        self.navigate(view)
        return exam

    # --- Reference upload ---

    def attach_reference(self, filename: str, content_type: Optional[str], data: bytes) -> ReferenceDocument:
        """
        Accepts a PDF as style reference for the next generation.

        Raises:
            UploadRejectedError: If the file is not a PDF.
        """
        if content_type != PDF_MIME_TYPE:
            raise self._fail(UploadRejectedError("Por favor, selecione apenas arquivos PDF."))
        self.reference = ReferenceDocument(name=filename, data=ai_engine.encode_reference(data))
        logger.info("Attached reference %s (%d bytes)", filename, len(data))
        return self.reference

    def clear_reference(self) -> None:
        self.reference = None

    # --- Generation ---

    def create_exam(self, request: GenerationRequest, api_key: Optional[str] = None) -> Exam:
        """
        Generates an exam, stores it and opens it for editing.

        The form is kept so a failed attempt can be resubmitted as is.

        Raises:
            GenerationError: If the provider call fails; nothing is stored.
            OperationInProgressError: If a generation is already running.
        """
        with self._operation(GENERATE):
            self.form = request
            try:
                client = self.client_factory(api_key)
                generated = ai_engine.generate_exam(client, request, self.reference)
            except ExamCraftError as e:
                raise self._fail(e)

            exam = ai_engine.build_exam(generated, self.store.settings)
            self.store.add(exam)

        logger.info("Created exam %s with %d questions", exam.id, len(exam.questions))
        self.current_exam = exam
        self.correction = None
        self.notice = None
        self.view = ViewState.EDIT
        return exam

    # --- Editing ---

    def _require_exam(self) -> Exam:
        if self.current_exam is None:
            raise self._fail(NavigationError("Selecione uma prova primeiro."))
        return self.current_exam

    def update_current_exam(self, **updates: Any) -> Exam:
        """Merges partial fields into the current exam (not persisted until saved)."""
        exam = self._require_exam()
        unknown = set(updates) - EXAM_FIELDS
        if unknown:
            raise ValueError(f"Unknown exam fields: {', '.join(sorted(unknown))}")
        self.current_exam = Exam.model_validate({**exam.model_dump(), **updates})
        return self.current_exam

    def _question_position(self, question_id: str) -> int:
        exam = self._require_exam()
        for index, question in enumerate(exam.questions):
            if question.id == question_id:
                return index
        raise self._fail(ExamNotFoundError(f"Questão '{question_id}' não encontrada."))

    def _replace_question(self, index: int, question: Question) -> Question:
        questions = list(self.current_exam.questions)
        questions[index] = question
        self.current_exam = self.current_exam.model_copy(update={"questions": questions})
        return question

    def update_question(self, question_id: str, **fields: Any) -> Question:
        """
        Changes fields of one question, leaving every other question untouched.

        Raises:
            ValueError: On unknown fields or values that break the question invariants.
        """
        unknown = set(fields) - QUESTION_FIELDS
        if unknown:
            raise ValueError(f"Unknown question fields: {', '.join(sorted(unknown))}")
        index = self._question_position(question_id)
        current = self.current_exam.questions[index]
        updated = Question.model_validate({**current.model_dump(), **fields})
        return self._replace_question(index, updated)

    def update_option(self, question_id: str, option_index: int, text: str) -> Question:
        index = self._question_position(question_id)
        current = self.current_exam.questions[index]
        options = list(current.options or [])
        if not 0 <= option_index < len(options):
            raise self._fail(ExamNotFoundError(f"Alternativa {option_index + 1} não existe."))
        options[option_index] = text
        return self._replace_question(index, current.model_copy(update={"options": options}))

    def add_question(self) -> Question:
        """Appends a blank open question for manual authoring."""
        exam = self._require_exam()
        question = Question(
            id=ai_engine.new_id(),
            type=QuestionType.OPEN,
            question=NEW_QUESTION_TEXT,
            correct_answer=NEW_ANSWER_TEXT,
            weight=1.0,
        )
        self.current_exam = exam.model_copy(update={"questions": [*exam.questions, question]})
        return question

    def delete_question(self, question_id: str, confirm: Optional[Confirm] = None) -> bool:
        index = self._question_position(question_id)
        if not is_confirmed(self.confirm if confirm is None else confirm):
            return False
        questions = list(self.current_exam.questions)
        del questions[index]
        self.current_exam = self.current_exam.model_copy(update={"questions": questions})
        return True

    def save_current_exam(self) -> Exam:
        """Writes the edited exam back into the store."""
        exam = self._require_exam()
        self.store.upsert(exam)
        self.notice = "Alterações salvas com sucesso!"
        return exam

    def delete_exam(self, exam_id: str, confirm: Optional[Confirm] = None) -> bool:
        deleted = self.store.delete_exam(exam_id, self.confirm if confirm is None else confirm)
        if deleted and self.current_exam is not None and self.current_exam.id == exam_id:
            self.current_exam = None
            self.correction = None
            if self.view in VIEWS_NEEDING_EXAM:
                self.view = ViewState.DASHBOARD
        return deleted

    # --- Print / export ---

    def preview(self) -> str:
        return exam_renderer.render_text(exam_renderer.build_document(self._require_exam()))

    def export(self, fmt: str = "pdf") -> Tuple[str, str, bytes]:
        """
        Exports the current exam as a downloadable document.

        Raises:
            ExportError: With guidance to use native print instead.
        """
        exam = self._require_exam()
        with self._operation(EXPORT):
            try:
                return doc_generator.export_document(
                    exam_renderer.build_document(exam), fmt, title=exam.title
                )
            except ExamCraftError as e:
                raise self._fail(e)

    # --- Correction ---

    def correct(self, student_answers: str, api_key: Optional[str] = None) -> CorrectionResult:
        """
        Grades a transcript against the current exam.

        The transcript is kept on failure so the teacher can retry.

        Raises:
            CorrectionError: On blank input or provider failure.
            OperationInProgressError: If a correction is already running.
        """
        exam = self._require_exam()
        with self._operation(CORRECT):
            self.student_answers = student_answers
            if not student_answers.strip():
                raise self._fail(CorrectionError(
                    "Por favor, insira as respostas do aluno antes de prosseguir."
                ))
            try:
                client = self.client_factory(api_key)
                result = ai_engine.correct_exam(client, exam, student_answers)
            except ExamCraftError as e:
                raise self._fail(e)

        self.correction = result
        self.editing_correction = False
        self.notice = None
        return result

    def _require_correction(self) -> CorrectionResult:
        if self.correction is None:
            raise self._fail(NavigationError("Nenhuma correção em andamento."))
        return self.correction

    def update_correction(self, feedback: Optional[str] = None, score: Optional[float] = None) -> CorrectionResult:
        correction = self._require_correction()
        updates: Dict[str, Any] = {}
        if feedback is not None:
            updates["feedback"] = feedback
        if score is not None:
            updates["score"] = score
        self.correction = CorrectionResult.model_validate({**correction.model_dump(), **updates})
        return self.correction

    def set_correction_editing(self, enabled: bool) -> None:
        self._require_correction()
        self.editing_correction = enabled

    def update_correction_comment(self, index: int, comment: str) -> CorrectionResult:
        correction = self._require_correction()
        items = list(correction.detailed_correction)
        if not 0 <= index < len(items):
            raise self._fail(ExamNotFoundError(f"Item {index + 1} da correção não existe."))
        items[index] = items[index].model_copy(update={"comment": comment})
        self.correction = correction.model_copy(update={"detailed_correction": items})
        return self.correction

    def reset_correction(self) -> None:
        """Discards the correction so the transcript can be graded again."""
        self.correction = None
        self.editing_correction = False

    def correction_sheet(self) -> List[exam_renderer.CorrectionRow]:
        return exam_renderer.build_correction_sheet(self._require_exam(), self._require_correction())

    # --- Settings ---

    def save_settings(self, settings: UserSettings) -> UserSettings:
        self.store.save_settings(settings)
        return settings

    # --- Snapshot ---

    def snapshot(self) -> Dict[str, Any]:
        """Serializable state for the front end."""
        return {
            "view": self.view.value,
            "loading": self.loading,
            "exporting": self.exporting,
            "editingCorrection": self.editing_correction,
            "currentExamId": self.current_exam.id if self.current_exam else None,
            "hasCorrection": self.correction is not None,
            "reference": self.reference.name if self.reference else None,
            "settingsSaved": self.store.settings_saved,
            "examCount": len(self.store.exams),
            "notice": self.notice,
        }
