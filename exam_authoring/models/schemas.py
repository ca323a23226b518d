from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator, model_validator


# --- Basic Enums ---
class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    IDENTIFICATION = "identification"
    ESSAY = "essay"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class GenerationMethod(str, Enum):
    AI = "ai"
    MANUAL = "manual"
    MIXED = "mixed"


class ExamType(str, Enum):
    PRELIM = "prelim"
    MIDTERM = "midterm"
    FINALS = "finals"


# Point value used when the generative service omits one.
DEFAULT_POINTS: Dict[QuestionType, int] = {
    QuestionType.ESSAY: 10,
    QuestionType.IDENTIFICATION: 3,
    QuestionType.MULTIPLE_CHOICE: 2,
    QuestionType.TRUE_FALSE: 2,
}


class _WireModel(BaseModel):
    """Models serialized with the camelCase keys stored in the content records."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Questions ---
class ChoiceOption(_WireModel):
    id: str = Field(..., min_length=1)
    text: str
    is_correct: StrictBool = Field(default=False, alias="isCorrect")


class _DraftBase(_WireModel):
    question: str = Field(..., description="Free-text prompt")
    points: StrictInt = Field(..., ge=1)
    difficulty: Difficulty = Difficulty.MEDIUM

    @field_validator("question")
    @classmethod
    def _prompt_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question prompt must not be empty")
        return v


class MultipleChoiceDraft(_DraftBase):
    type: Literal["multiple_choice"] = "multiple_choice"
    options: List[ChoiceOption] = Field(..., min_length=2)

    @field_validator("options")
    @classmethod
    def _exactly_one_correct(cls, v: List[ChoiceOption]) -> List[ChoiceOption]:
        correct = sum(1 for o in v if o.is_correct)
        if correct != 1:
            raise ValueError(f"exactly one option must be correct (found {correct})")
        return v


class TrueFalseDraft(_DraftBase):
    type: Literal["true_false"] = "true_false"
    correct_answer: StrictBool = Field(..., alias="correctAnswer")


class IdentificationDraft(_DraftBase):
    type: Literal["identification"] = "identification"
    # Grading guidance only; never auto-checked.
    sample_answer: Optional[str] = Field(default=None, alias="sampleAnswer")


class EssayDraft(_DraftBase):
    type: Literal["essay"] = "essay"
    sample_answer: Optional[str] = Field(default=None, alias="sampleAnswer")


class _Placed(_WireModel):
    id: str = Field(..., min_length=1)
    order: StrictInt = Field(..., ge=1)


class MultipleChoiceQuestion(_Placed, MultipleChoiceDraft):
    pass


class TrueFalseQuestion(_Placed, TrueFalseDraft):
    pass


class IdentificationQuestion(_Placed, IdentificationDraft):
    pass


class EssayQuestion(_Placed, EssayDraft):
    pass


QuestionDraft = Annotated[
    Union[MultipleChoiceDraft, TrueFalseDraft, IdentificationDraft, EssayDraft],
    Field(discriminator="type"),
]

Question = Annotated[
    Union[MultipleChoiceQuestion, TrueFalseQuestion, IdentificationQuestion, EssayQuestion],
    Field(discriminator="type"),
]

QUESTION_CLASSES = {
    QuestionType.MULTIPLE_CHOICE: MultipleChoiceQuestion,
    QuestionType.TRUE_FALSE: TrueFalseQuestion,
    QuestionType.IDENTIFICATION: IdentificationQuestion,
    QuestionType.ESSAY: EssayQuestion,
}


# --- Settings ---
class ContentSettings(_WireModel):
    """Resolved scoring/timing metadata. Build through the settings resolver."""

    total_points: int = Field(..., ge=0, alias="totalPoints")
    time_limit: int = Field(..., ge=1, alias="timeLimit")
    passing_score: Optional[int] = Field(default=None, alias="passingScore")
    available_from: datetime = Field(..., alias="availableFrom")
    available_until: datetime = Field(..., alias="availableUntil")
    randomize_questions: bool = Field(default=False, alias="randomizeQuestions")
    allow_multiple_attempts: bool = Field(default=False, alias="allowMultipleAttempts")
    max_attempts: Optional[int] = Field(default=None, alias="maxAttempts")


# --- Content identity/classification ---
class _DetailsBase(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str
    description: str = ""
    subject: str

    @field_validator("title", "subject")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class AssessmentDetails(_DetailsBase):
    grade_level: str = Field(..., alias="gradeLevel")

    @field_validator("grade_level")
    @classmethod
    def _level_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class ExaminationDetails(_DetailsBase):
    exam_type: ExamType = Field(..., alias="examType")
    year_level: str = Field(..., alias="yearLevel")
    semester: str

    @field_validator("year_level", "semester")
    @classmethod
    def _level_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


# --- Generation ---
class GenerationRequest(BaseModel):
    material: str = ""
    desired_count: int = Field(default=10, ge=1, alias="numberOfQuestions")
    requested_types: List[QuestionType] = Field(..., min_length=1, alias="questionTypes")
    difficulty: Difficulty = Difficulty.MEDIUM
    subject: str = ""
    level: str = Field(default="", alias="gradeLevel")

    model_config = ConfigDict(populate_by_name=True)


class RejectRequest(BaseModel):
    reason: str = ""


class ResubmitRequest(BaseModel):
    questions: List[Dict[str, Any]] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)


# --- Accounts ---
class AccountRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    fullname: str = Field(..., min_length=1)
    role: Literal["teacher", "student", "admin"] = "teacher"
    employee_id: Optional[str] = Field(default=None, alias="employeeId")
    department: Optional[str] = None
    student_id: Optional[str] = Field(default=None, alias="studentId")
    course: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email_shape(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("must be an e-mail address")
        return v

    @field_validator("fullname")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @model_validator(mode="after")
    def _role_fields(self) -> "AccountRequest":
        required = {
            "teacher": ("employee_id", "department"),
            "student": ("student_id", "course"),
        }.get(self.role, ())
        missing = [f for f in required if not str(getattr(self, f) or "").strip()]
        if missing:
            raise ValueError(f"{self.role} accounts require: {', '.join(missing)}")
        return self
