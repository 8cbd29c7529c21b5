"""Utilities for importing a question bank from a human-friendly text file.

File format (repeat blocks separated by blank lines or '---'):

    Q: Question text (supports markdown + LaTeX). Additional lines until the
       next marker are treated as part of the question.
    A: First option text
    B: Second option text
    C: Third option text   (two to six options, letters A-F in order)
    CORRECT: A|B|C...
    IMAGE: /images/questions/diagram.png   (optional)

Example:

    Q: What is $2 + 2$?
    A: 3
    B: 4
    C: 5
    CORRECT: B
"""

from __future__ import annotations

from pathlib import Path

from livequiz.core.errors import QuizImportError
from livequiz.core.models import QuizQuestion

OPTION_LETTERS = ("A", "B", "C", "D", "E", "F")


def load_quiz_from_file(file_path: Path) -> list[QuizQuestion]:
    text = file_path.read_text(encoding="utf-8")
    return parse_quiz_text(text)


def parse_quiz_text(text: str) -> list[QuizQuestion]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            # Blank line encountered after content - finalize current block
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())

    questions = [_parse_block(block) for block in blocks if block]
    if not questions:
        raise QuizImportError("Quiz file did not contain any questions.")
    return questions


def _parse_block(block: str) -> QuizQuestion:
    question_lines: list[str] = []
    options: dict[str, str] = {}
    correct_letter: str | None = None
    image: str | None = None
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        upper = line.upper()
        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("CORRECT:"):
            correct_letter = line.split(":", 1)[1].strip().upper()
            current_section = None
            continue

        if upper.startswith("IMAGE:"):
            image = line.split(":", 1)[1].strip() or None
            current_section = None
            continue

        if len(line) > 2 and line[0].upper() in OPTION_LETTERS and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            question_lines.append(line)
        elif current_section in OPTION_LETTERS:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise QuizImportError(f"Encountered text outside of a known section: '{line}'.")

    if not question_lines:
        raise QuizImportError("Question text missing (Q: ...)")

    expected = OPTION_LETTERS[: len(options)]
    if len(options) < 2 or set(options) != set(expected):
        raise QuizImportError("Each question needs at least two options lettered in order from A.")
    option_list = [options[letter].strip() for letter in expected]
    if any(not opt for opt in option_list):
        raise QuizImportError("Option text cannot be empty.")

    if correct_letter is None:
        raise QuizImportError("CORRECT is missing.")
    if correct_letter not in expected:
        raise QuizImportError(f"CORRECT must be one of {', '.join(expected)}.")

    question_text = "\n".join(question_lines).strip()
    if not question_text:
        raise QuizImportError("Question text cannot be empty.")

    return QuizQuestion(
        id=0,  # assigned by the question bank
        prompt=question_text,
        options=option_list,
        correct_option_index=expected.index(correct_letter),
        image=image,
    )
