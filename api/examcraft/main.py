"""
Main FastAPI Application
HTTP surface over the View Controller, which orchestrates store, AI and document services.
"""
import logging
from functools import lru_cache
from typing import List, Optional, Tuple

import httpx
from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from examcraft.config import get_data_dir
from examcraft.controller import ViewController
from examcraft.errors import (
    CorrectionError,
    ExamCraftError,
    ExamNotFoundError,
    ExportError,
    GenerationError,
    NavigationError,
    OperationInProgressError,
    UploadRejectedError,
)
from examcraft.schemas import (
    CamelModel,
    Difficulty,
    GenerationRequest,
    QuestionType,
    UserSettings,
    ViewState,
)
from examcraft.services.doc_generator import content_disposition
from examcraft.services.store import ExamStore, LocalStorage

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    UploadRejectedError: 415,
    NavigationError: 409,
    OperationInProgressError: 409,
    ExamNotFoundError: 404,
    GenerationError: 502,
    CorrectionError: 502,
    ExportError: 500,
}


# --- Request bodies ---

class NavigateRequest(CamelModel):
    view: ViewState


class ExamUpdate(CamelModel):
    title: Optional[str] = None
    subject: Optional[str] = None
    grade: Optional[str] = None
    date: Optional[str] = None
    school_name: Optional[str] = None
    teacher_name: Optional[str] = None
    instructions: Optional[str] = None


class QuestionUpdate(CamelModel):
    type: Optional[QuestionType] = None
    question: Optional[str] = None
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    weight: Optional[float] = None


class OptionUpdate(CamelModel):
    text: str


class CorrectRequest(CamelModel):
    student_answers: str


class CorrectionUpdate(CamelModel):
    feedback: Optional[str] = None
    score: Optional[float] = None


class CommentUpdate(CamelModel):
    comment: str


class EditingRequest(CamelModel):
    enabled: bool


# --- Dependencies ---

@lru_cache(maxsize=1)
def get_controller() -> ViewController:
    """Single controller for the single local user, loaded once at startup."""
    store = ExamStore(LocalStorage(get_data_dir()))
    store.load()
    return ViewController(store)


def get_api_key_header(
    x_gemini_api_key: Optional[str] = Header(default=None, alias="X-Gemini-API-Key"),
) -> Optional[str]:
    return x_gemini_api_key


async def download_blob(file_url: str) -> Tuple[bytes, Optional[str]]:
    """Download a reference file from a URL, returning its bytes and media type."""
    if not file_url.startswith("http"):
        raise HTTPException(status_code=422, detail="Invalid file_url")

    try:
        async with httpx.AsyncClient(timeout=60) as client:
            response = await client.get(file_url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Download of %s failed: %s", file_url, e)
        raise HTTPException(status_code=400, detail=f"Could not download file_url: {e}")
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    return response.content, content_type or None


# Initialize FastAPI App
app = FastAPI(
    title="ExamCraft API",
    description="AI-assisted exam authoring and grading for teachers",
    version="1.0.0"
)

# CORS Middleware (Allow all origins for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ExamCraftError)
async def examcraft_error_handler(request: Request, exc: ExamCraftError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    logger.info("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def _current_exam_json(controller: ViewController) -> dict:
    return controller.current_exam.to_json_dict()


@app.get("/")
async def read_root():
    """Return API status info (UI handled by the front end)."""
    return {"message": "ExamCraft API is running."}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "ExamCraft API"}


# --- State & navigation ---

@app.get("/api/state")
def read_state(controller: ViewController = Depends(get_controller)):
    return controller.snapshot()


@app.post("/api/view")
def navigate(body: NavigateRequest, controller: ViewController = Depends(get_controller)):
    controller.navigate(body.view)
    return controller.snapshot()


# --- Dashboard ---

@app.get("/api/exams")
def list_exams(controller: ViewController = Depends(get_controller)):
    return [exam.to_json_dict() for exam in controller.store.exams]


@app.get("/api/exams/{exam_id}")
def read_exam(exam_id: str, controller: ViewController = Depends(get_controller)):
    exam = controller.store.get(exam_id)
    if exam is None:
        raise HTTPException(status_code=404, detail="Exam not found")
    return exam.to_json_dict()


@app.post("/api/exams/{exam_id}/open")
def open_exam(
    exam_id: str,
    view: ViewState = ViewState.EDIT,
    controller: ViewController = Depends(get_controller),
):
    return controller.open_exam(exam_id, view).to_json_dict()


@app.delete("/api/exams/{exam_id}")
def delete_exam(
    exam_id: str,
    confirm: bool = False,
    controller: ViewController = Depends(get_controller),
):
    """Delete an exam; nothing happens unless the user confirmed."""
    deleted = controller.delete_exam(exam_id, confirm=confirm)
    return {"deleted": deleted, "examCount": len(controller.store.exams)}


# --- Create ---

@app.post("/api/reference")
async def upload_reference(
    file: Optional[UploadFile] = File(None, description="Reference PDF"),
    file_url: Optional[str] = Form(default=None, description="URL of a reference PDF"),
    controller: ViewController = Depends(get_controller),
):
    """Attach a reference PDF used to steer the style of the next generated exam."""
    if file:
        reference = controller.attach_reference(file.filename or "reference.pdf", file.content_type, await file.read())
    elif file_url:
        data, content_type = await download_blob(file_url)
        reference = controller.attach_reference(file_url.rsplit("/", 1)[-1], content_type, data)
    else:
        raise HTTPException(status_code=422, detail="file or file_url is required")
    return {"name": reference.name}


@app.delete("/api/reference")
def clear_reference(controller: ViewController = Depends(get_controller)):
    controller.clear_reference()
    return {"reference": None}


@app.post("/api/generate")
def generate_exam(
    subject: str = Form(..., description="Subject name"),
    topic: str = Form(..., description="Main content to be assessed"),
    grade: str = Form(default="", description="Grade or level label"),
    count: int = Form(default=5, description="Number of questions to generate"),
    difficulty: Difficulty = Form(default=Difficulty.MEDIUM, description="Easy, Medium or Hard"),
    model_reference: Optional[str] = Form(default=None, description="Reference exam text to imitate"),
    api_key: Optional[str] = Depends(get_api_key_header),
    controller: ViewController = Depends(get_controller),
):
    """
    Generate an exam with the AI provider and open it for editing.

    Returns:
        The stored exam.
    """
    request = GenerationRequest(
        subject=subject,
        topic=topic,
        grade=grade,
        count=count,
        difficulty=difficulty,
        model_reference=model_reference or None,
    )
    try:
        exam = controller.create_exam(request, api_key=api_key)
    except ExamCraftError:
        raise
    except ValueError as e:
        # API Key or configuration errors
        raise HTTPException(status_code=500, detail=f"Configuration error: {str(e)}")
    return exam.to_json_dict()


# --- Edit ---

@app.get("/api/exam")
def read_current_exam(controller: ViewController = Depends(get_controller)):
    if controller.current_exam is None:
        raise HTTPException(status_code=404, detail="No exam selected")
    return _current_exam_json(controller)


@app.patch("/api/exam")
def update_current_exam(body: ExamUpdate, controller: ViewController = Depends(get_controller)):
    controller.update_current_exam(**body.model_dump(exclude_unset=True))
    return _current_exam_json(controller)


@app.post("/api/exam/questions")
def add_question(controller: ViewController = Depends(get_controller)):
    return controller.add_question().to_json_dict()


@app.patch("/api/exam/questions/{question_id}")
def update_question(
    question_id: str,
    body: QuestionUpdate,
    controller: ViewController = Depends(get_controller),
):
    return controller.update_question(question_id, **body.model_dump(exclude_unset=True)).to_json_dict()


@app.put("/api/exam/questions/{question_id}/options/{option_index}")
def update_option(
    question_id: str,
    option_index: int,
    body: OptionUpdate,
    controller: ViewController = Depends(get_controller),
):
    return controller.update_option(question_id, option_index, body.text).to_json_dict()


@app.delete("/api/exam/questions/{question_id}")
def delete_question(
    question_id: str,
    confirm: bool = False,
    controller: ViewController = Depends(get_controller),
):
    deleted = controller.delete_question(question_id, confirm=confirm)
    return {"deleted": deleted, "exam": _current_exam_json(controller)}


@app.post("/api/exam/save")
def save_current_exam(controller: ViewController = Depends(get_controller)):
    controller.save_current_exam()
    return {"notice": controller.notice, "exam": _current_exam_json(controller)}


# --- Print ---

@app.get("/api/exam/preview", response_class=PlainTextResponse)
def preview_exam(controller: ViewController = Depends(get_controller)):
    return controller.preview()


@app.get("/api/exam/export")
def export_exam(fmt: str = "pdf", controller: ViewController = Depends(get_controller)):
    """Download the current exam as PDF or DOCX."""
    filename, media_type, content = controller.export(fmt)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": content_disposition(filename)},
    )


# --- Correct ---

@app.post("/api/correct")
def correct_exam(
    body: CorrectRequest,
    api_key: Optional[str] = Depends(get_api_key_header),
    controller: ViewController = Depends(get_controller),
):
    try:
        result = controller.correct(body.student_answers, api_key=api_key)
    except ExamCraftError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=500, detail=f"Configuration error: {str(e)}")
    return result.to_json_dict()


@app.get("/api/correction")
def read_correction(controller: ViewController = Depends(get_controller)):
    if controller.correction is None:
        raise HTTPException(status_code=404, detail="No correction")
    return {
        "correction": controller.correction.to_json_dict(),
        "rows": [row.model_dump(mode="json") for row in controller.correction_sheet()],
    }


@app.patch("/api/correction")
def update_correction(body: CorrectionUpdate, controller: ViewController = Depends(get_controller)):
    return controller.update_correction(**body.model_dump(exclude_unset=True)).to_json_dict()


@app.put("/api/correction/items/{index}/comment")
def update_correction_comment(
    index: int,
    body: CommentUpdate,
    controller: ViewController = Depends(get_controller),
):
    return controller.update_correction_comment(index, body.comment).to_json_dict()


@app.put("/api/correction/editing")
def set_correction_editing(body: EditingRequest, controller: ViewController = Depends(get_controller)):
    controller.set_correction_editing(body.enabled)
    return controller.snapshot()


@app.delete("/api/correction")
def reset_correction(controller: ViewController = Depends(get_controller)):
    controller.reset_correction()
    return controller.snapshot()


# --- Settings ---

@app.get("/api/settings")
def read_settings(controller: ViewController = Depends(get_controller)):
    return {
        "settings": controller.store.settings.to_json_dict(),
        "saved": controller.store.settings_saved,
    }


@app.put("/api/settings")
def save_settings(settings: UserSettings, controller: ViewController = Depends(get_controller)):
    controller.save_settings(settings)
    return {"settings": settings.to_json_dict(), "saved": controller.store.settings_saved}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
