"""Answer scoring against an assessment's question bank.

Correct answers are stored polymorphically (an option index, a list of
indices, or literal text). They are decoded into a tagged variant before
matching so each shape has one explicit rule:

* ``IndexAnswer``    - submitted option index must equal the stored index
* ``IndexSetAnswer`` - submitted option index must be any one of the indices
* ``TextAnswer``     - trimmed, case-sensitive text equality

Scoring is deterministic: questions are visited in id order and nothing
depends on the clock.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Optional, Union

from exam_portal.exceptions import ValidationError
from exam_portal.models import QUESTION_ESSAY, QUESTION_MCQ, QUESTION_SHORT

logger = logging.getLogger(__name__)

QUESTION_TYPE_ALIASES = {
    "mcq": QUESTION_MCQ,
    "multiple-choice": QUESTION_MCQ,
    "multiple_choice": QUESTION_MCQ,
    "short": QUESTION_SHORT,
    "short-answer": QUESTION_SHORT,
    "short_answer": QUESTION_SHORT,
    "essay": QUESTION_ESSAY,
}


@dataclass(frozen=True)
class IndexAnswer:
    index: int


@dataclass(frozen=True)
class IndexSetAnswer:
    indices: tuple


@dataclass(frozen=True)
class TextAnswer:
    text: str


CorrectAnswer = Union[IndexAnswer, IndexSetAnswer, TextAnswer]


@dataclass(frozen=True)
class QuestionResult:
    question_id: Optional[int]
    correct: bool
    marks_awarded: int
    needs_review: bool = False
    expected_solution: Any = None
    explanation: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ScoreSheet:
    total: int
    total_marks: int
    percentage: Optional[float]
    results: list = field(default_factory=list)
    clamped: bool = False
    # Submitted answers keyed by question id
    answers: dict = field(default_factory=dict)

    @property
    def all_correct(self) -> bool:
        graded = [r for r in self.results if not r.needs_review]
        return bool(graded) and all(r.correct for r in graded)

    @property
    def correct_count(self) -> int:
        return sum(1 for r in self.results if r.correct)


def normalize_question_type(value: Optional[str]) -> str:
    key = (value or "").strip().lower()
    if key not in QUESTION_TYPE_ALIASES:
        raise ValidationError(f"Unknown question type: {value!r}")
    return QUESTION_TYPE_ALIASES[key]


def as_index(value: Any) -> Optional[int]:
    """Coerce an option reference to an int index; None when it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def decode_correct(raw: Any) -> Optional[CorrectAnswer]:
    """Decode a stored correct-answer value into its tagged variant."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (list, tuple)):
        indices = []
        for item in raw:
            idx = as_index(item)
            if idx is None:
                logger.warning("Ignoring non-index entry %r in correct answer list", item)
                continue
            indices.append(idx)
        return IndexSetAnswer(tuple(indices)) if indices else None
    index = as_index(raw) if not isinstance(raw, str) else None
    if index is not None:
        return IndexAnswer(index)
    if isinstance(raw, str) and raw.strip():
        return TextAnswer(raw.strip())
    return None


def parse_admin_correct(text: Any, question_type: str) -> Any:
    """Turn the admin's free-text correct answer into its stored form.

    For multiple-choice: digits become an index, comma-separated digits a list
    of indices, anything else is kept as literal option text.
    """
    if text is None:
        return None
    if question_type != QUESTION_MCQ:
        value = str(text).strip()
        return value or None
    if isinstance(text, bool):
        raise ValidationError("Correct answer must be an index, a list of indices or option text")
    if isinstance(text, (int, float)):
        index = as_index(text)
        if index is None:
            raise ValidationError(f"Correct answer index must be a whole number, got {text!r}")
        return index
    if isinstance(text, (list, tuple)):
        parts = list(text)
    else:
        value = str(text).strip()
        if not value:
            return None
        if value.isdigit():
            return int(value)
        if "," not in value:
            return value
        parts = [p.strip() for p in value.split(",")]

    indices = [as_index(p) for p in parts]
    if not indices or any(i is None for i in indices):
        raise ValidationError("Comma-separated correct answers must all be option indices")
    return indices


def validate_mcq(options: Optional[list], correct: Any) -> None:
    """Multiple-choice questions need options and a correct reference that resolves."""
    if not options:
        raise ValidationError("Multiple-choice questions need at least one option")
    decoded = decode_correct(correct)
    if decoded is None:
        raise ValidationError("Multiple-choice questions need a correct answer")
    if isinstance(decoded, IndexAnswer):
        if not 0 <= decoded.index < len(options):
            raise ValidationError(f"Correct index {decoded.index} is not a valid option")
    elif isinstance(decoded, IndexSetAnswer):
        bad = [i for i in decoded.indices if not 0 <= i < len(options)]
        if bad:
            raise ValidationError(f"Correct indices {bad} are not valid options")
    elif decoded.text not in [str(o).strip() for o in options]:
        raise ValidationError(f"Correct answer {decoded.text!r} does not match any option")


def _option_text(options: Optional[list], index: int) -> Optional[str]:
    if options and 0 <= index < len(options):
        return str(options[index]).strip()
    return None


def _expected_solution(decoded: CorrectAnswer, options: Optional[list]) -> Any:
    if isinstance(decoded, IndexAnswer):
        return _option_text(options, decoded.index) or decoded.index
    if isinstance(decoded, IndexSetAnswer):
        return [_option_text(options, i) or i for i in decoded.indices]
    return decoded.text


def _match_mcq(decoded: CorrectAnswer, options: Optional[list], submitted: Any) -> bool:
    if submitted is None:
        return False
    if isinstance(decoded, IndexAnswer):
        return as_index(submitted) == decoded.index
    if isinstance(decoded, IndexSetAnswer):
        # Any-of: one submitted index among the stored ones is enough
        picks = submitted if isinstance(submitted, (list, tuple)) else [submitted]
        return any(as_index(p) in decoded.indices for p in picks if as_index(p) is not None)
    if isinstance(submitted, str) and submitted.strip() == decoded.text:
        return True
    index = as_index(submitted)
    if index is not None:
        return _option_text(options, index) == decoded.text
    return False


def score_question(question, submitted: Any) -> QuestionResult:
    """Score one submitted answer; unmatched or missing answers earn 0."""
    qtype = (getattr(question, "type", None) or "").strip().lower()
    qtype = QUESTION_TYPE_ALIASES.get(qtype, qtype)
    marks = int(getattr(question, "marks", 0) or 0)
    question_id = getattr(question, "id", None)
    explanation = getattr(question, "explanation", None)

    if qtype == QUESTION_MCQ:
        decoded = decode_correct(question.correct)
        if decoded is None:
            logger.warning("Question %s has no usable correct answer", question_id)
            return QuestionResult(question_id, False, 0, True, None, explanation)
        correct = _match_mcq(decoded, question.options, submitted)
        return QuestionResult(
            question_id,
            correct,
            marks if correct else 0,
            False,
            _expected_solution(decoded, question.options),
            explanation,
        )

    if qtype == QUESTION_SHORT:
        expected = question.correct
        if expected is None or not str(expected).strip():
            return QuestionResult(
                question_id,
                False,
                0,
                True,
                None,
                explanation or "No expected answer set; needs manual review.",
            )
        expected = str(expected).strip()
        correct = isinstance(submitted, str) and submitted.strip() == expected
        return QuestionResult(question_id, correct, marks if correct else 0, False, expected, explanation)

    if qtype != QUESTION_ESSAY:
        logger.warning("Question %s has unknown type %r; left for manual grading", question_id, qtype)
    return QuestionResult(question_id, False, 0, True, None, explanation or "Essay answers are graded manually.")


def normalize_answers(answers: Any, question_ids: Iterable[int]) -> dict:
    """Map question id -> submitted answer, rejecting ids outside the assessment.

    Accepts ``{"12": "B"}`` style mappings or ``[{"question_id": 12, "answer": "B"}]``.
    """
    known = set(question_ids)
    if answers is None:
        return {}
    if isinstance(answers, list):
        pairs = []
        for item in answers:
            if not isinstance(item, dict) or "question_id" not in item:
                raise ValidationError("Each answer needs a question_id")
            pairs.append((item["question_id"], item.get("answer")))
    elif isinstance(answers, dict):
        pairs = list(answers.items())
    else:
        raise ValidationError("Answers must be an object keyed by question id")

    normalized = {}
    for key, value in pairs:
        qid = as_index(key)
        if qid is None:
            raise ValidationError(f"Invalid question id: {key!r}")
        if qid not in known:
            raise ValidationError(f"Question {qid} does not belong to this assessment")
        normalized[qid] = value
    return normalized


def score_assessment(assessment, questions: list, answers: Any) -> ScoreSheet:
    """Score all questions and clamp the total to ``assessment.total_marks``."""
    ordered = sorted(questions, key=lambda q: q.id or 0)
    submitted = normalize_answers(answers, [q.id for q in ordered])

    results = [score_question(q, submitted.get(q.id)) for q in ordered]
    total = sum(r.marks_awarded for r in results)

    total_marks = int(getattr(assessment, "total_marks", 0) or 0)
    clamped = False
    if total > total_marks:
        logger.warning(
            "Computed score %s exceeds total marks %s for assessment %s; clamping",
            total,
            total_marks,
            getattr(assessment, "id", None),
        )
        total = total_marks
        clamped = True

    percentage = round(total / total_marks * 100, 2) if total_marks > 0 else None
    return ScoreSheet(total, total_marks, percentage, results, clamped, submitted)
