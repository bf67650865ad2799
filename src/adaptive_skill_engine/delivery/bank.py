"""Question bank loading from YAML."""

from pathlib import Path

import structlog
import yaml

from adaptive_skill_engine.models.question import Question

logger = structlog.get_logger()


def load_question_bank(path: Path) -> list[Question]:
    """Load questions from a YAML file with a top-level ``questions`` list."""
    if not path.exists():
        raise FileNotFoundError(f"Question bank not found: {path}")
    with open(path, encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    questions = [Question(**entry) for entry in data.get('questions', [])]
    logger.info("question_bank_loaded", path=str(path), count=len(questions))
    return questions
