"""
Configuration Module for ExamCraft
Centralizes environment variables, API settings, constants and prompt templates.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# --- Paths ---
BASE_DIR = Path(__file__).resolve().parents[2]

# --- API Configuration ---
GENERATION_MODEL = os.getenv("EXAMCRAFT_GENERATION_MODEL", "gemini-2.5-pro")
CORRECTION_MODEL = os.getenv("EXAMCRAFT_CORRECTION_MODEL", "gemini-2.5-flash")

# --- Application Constants ---
MAX_SCORE = 10.0
SETTINGS_SAVED_SECONDS = 3.0
OPEN_ANSWER_LINES = 3
EXAMS_STORAGE_KEY = "examcraft_exams"
SETTINGS_STORAGE_KEY = "examcraft_settings"
PDF_MIME_TYPE = "application/pdf"

DEFAULT_INSTRUCTIONS = (
    "1. Leia atentamente todas as questões.\n"
    "2. Utilize caneta azul ou preta.\n"
    "3. Não é permitido o uso de corretor líquido.\n"
    "4. Revisar as respostas antes de entregar."
)
DEFAULT_TEACHER_NAME = "Nome do Professor"
DEFAULT_SCHOOL_NAME = "Nome da Instituição"


def get_api_key() -> str:
    """
    Validates and returns the Gemini API Key.

    Raises:
        ValueError: If GEMINI_API_KEY is not found in environment.
    """
    # Load environment variables fresh (for testing and reload scenarios)
    load_dotenv()
    api_key = os.getenv("GEMINI_API_KEY")

    if not api_key:
        raise ValueError(
            "GEMINI_API_KEY not found. "
            "Please create a .env file with your API key."
        )
    return api_key


def get_data_dir() -> Path:
    """Directory holding the locally persisted exams and settings."""
    return Path(os.getenv("EXAMCRAFT_DATA_DIR", str(BASE_DIR / "data")))


# --- Prompt Templates ---
PROMPT_TEMPLATES = {
    "generator": """Você é um especialista em pedagogia e criação de avaliações acadêmicas.

Sua tarefa é criar uma prova de alta qualidade para a disciplina de {subject}, nível {grade}.
O conteúdo principal a ser cobrado é: {topic}.
Nível de dificuldade exigido: {difficulty}.
Quantidade exata de questões: {count}.

{style_instruction}

Regras:
1. Gere exatamente {count} questões, nem mais nem menos.
2. Cada questão tem `type` igual a `multiple` (com 4 ou 5 alternativas em `options`) ou `open` (sem `options`).
3. Para cada questão, atribua um peso (weight) padrão de 1.0.
4. Certifique-se de que cada questão tenha um gabarito preciso em `correctAnswer`.
5. Cada questão deve ter um `id` único.""",

    "reference_style": """IMPORTANTE - MODELO DE REFERÊNCIA:
O professor forneceu um modelo de prova. Você deve analisar este modelo e IMITAR fielmente o estilo de linguagem, o tipo de questões (se são mais interpretativas, técnicas ou conceituais) e a estrutura organizacional deste material.""",

    "default_style": "Crie uma prova com estrutura pedagógica moderna e equilibrada.",

    "reference_text": """Texto de referência adicional:
{model_reference}""",

    "corrector": """Você é um professor assistente corrigindo uma prova de {subject}.

CONTEXTO DA PROVA (QUESTÕES, GABARITOS E PESOS):
{questions_json}

RESPOSTAS ENVIADAS PELO ALUNO:
{student_answers}

REGRAS DE CORREÇÃO:
1. Calcule a nota final com base nos PESOS de cada questão. A nota máxima deve ser normalizada para {max_score:g}.
2. Seja justo: se a resposta estiver parcialmente correta em questões abertas, dê crédito proporcional ao peso.
3. Escreva um feedback motivador e construtivo para o aluno.
4. Para cada questão, explique brevemente por que está correta ou onde o aluno errou.
5. Retorne exatamente um item em `detailedCorrection` por questão, com `questionIndex` começando em 0, na ordem das questões.""",
}


def get_prompt(template_name: str, **kwargs) -> str:
    """
    Retrieves a formatted prompt template.

    Args:
        template_name: Name of the template ("generator", "corrector", ...).
        **kwargs: Variables to format into the template.

    Returns:
        Formatted prompt string.

    Raises:
        KeyError: If template_name is not found in templates.
    """
    if template_name not in PROMPT_TEMPLATES:
        raise KeyError(f"Prompt template '{template_name}' not found.")

    return PROMPT_TEMPLATES[template_name].format(**kwargs)
