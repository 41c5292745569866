# src/examlens/pipeline/prompts.py
from __future__ import annotations
from typing import Optional

from ..models.schema import EssayType

GRADING_SYSTEM_PROMPT = (
    "You are an expert exam grader. You output ONLY strict JSON matching the schema.\n"
    "Never invent questions that are not on the page. Bounding boxes are best effort."
)

GRADING_SCHEMA = """{
  "total_score": number,
  "total_max_score": %(total_max_score)s,
  "pages": [
    {
      "image_url": string (page number reference, e.g. "page_1"),
      "page_score": number,
      "questions": [
        {
          "id": number (unique within the page),
          "status": "correct" | "wrong" | "partial",
          "score_obtained": number,
          "score_max": number,
          "deduction": number,
          "box_2d": [x, y, width, height] (normalized 0-1000 relative to the page image),
          "analysis": string (detailed step-by-step solution for wrong or partial answers),
          "error_type": "calculation" | "concept" | "logic" (only when wrong or partial)
        }
      ]
    }
  ],
  "summary_tags": string[]
}"""


def grading_prompt(total_max_score: float, page_count: int) -> str:
    """
    Instruction prompt for exam grading; embeds the caller's max score and the page count.
    """
    max_score = _fmt_number(total_max_score)
    schema = GRADING_SCHEMA % {"total_max_score": max_score}
    return (
        f"Analyze the following {page_count} exam image(s) and grade them.\n\n"
        "IMPORTANT REQUIREMENTS:\n"
        "1. Identify all questions on every page\n"
        "2. For each question, decide whether the answer is correct, wrong, or partially correct\n"
        f"3. Distribute scores so that the whole exam is worth {max_score} points\n"
        "4. A correct answer scores exactly score_max; wrong or partial answers score less than score_max\n"
        "5. For wrong and partial answers, give a step-by-step solution in 'analysis'\n"
        "6. Categorize errors as 'calculation', 'concept', or 'logic'\n"
        "7. Give a bounding box for each question in a normalized 0-1000 coordinate space\n"
        "8. Provide short summary tags describing the overall performance\n"
        f"9. Return exactly {page_count} entries in 'pages', in the same order as the images\n"
        "10. Return strictly legitimate JSON only.\n\n"
        f"Return STRICT JSON in this format:\n{schema}"
    )


OCR_PROMPT = (
    "Please extract all the text from this image exactly as it appears. "
    "Preserve formatting where possible."
)

TABLE_PROMPT = (
    "Recognize the table in this image and output it as a Markdown table.\n"
    "- Keep the original rows and columns; the first row is the header.\n"
    "- Copy cell contents verbatim; leave unreadable cells empty.\n"
    "- Output only the Markdown table, no explanations."
)

DEFAULT_HOMEWORK_INSTRUCTION = "Solve this problem step-by-step and explain the concepts."


def homework_prompt(instruction: Optional[str] = None) -> str:
    return (
        "You are a helpful AI tutor. The user has uploaded a homework problem.\n"
        f"Instruction: {(instruction or '').strip() or DEFAULT_HOMEWORK_INSTRUCTION}\n\n"
        "Please provide a clear, well-formatted response using Markdown.\n"
        "If it's a math problem, show calculation steps."
    )


def tutor_prompt(question: str, student_answer: Optional[str] = None) -> str:
    """
    Socratic tutoring: guide first, never open with the answer.
    """
    answer_line = f"学生的答案：{student_answer}\n" if student_answer else ""
    return (
        "你是一个苏格拉底式辅导老师。学生正在做这道题目：\n\n"
        f"题目：{question}\n"
        f"{answer_line}\n"
        "请按照以下步骤进行辅导：\n"
        "1. **引导思考**：首先，引导学生思考这道题目考查什么知识点或考点\n"
        "2. **提示思路**：然后，给出第一步的思路提示，但不要直接给出答案\n"
        "3. **逐步深入**：如果学生继续询问，再逐步给出更多提示\n"
        "4. **完整解析**：最后，提供完整的解题步骤和答案\n\n"
        "重要提示：\n"
        "- 使用苏格拉底式提问，引导学生自己思考\n"
        "- 不要一开始就直接给出答案\n"
        "- 语气要鼓励和友好\n"
        "- 使用数学公式格式，如 $x^2$ 等\n\n"
        "请用中文回答，格式清晰，易于阅读。"
    )


# (first grade, last grade, guidance)
WORD_COUNT_GUIDANCE = (
    (1, 2, "200-300"),
    (3, 4, "300-400"),
    (5, 6, "400-500"),
    (7, 9, "500-600"),
    (10, 12, "800-1000"),
)

GRADE_LABELS = {
    1: "小学一年级", 2: "小学二年级", 3: "小学三年级",
    4: "小学四年级", 5: "小学五年级", 6: "小学六年级",
    7: "初中一年级", 8: "初中二年级", 9: "初中三年级",
    10: "高中一年级", 11: "高中二年级", 12: "高中三年级",
}

ESSAY_TYPE_LABELS = {
    EssayType.NARRATIVE: ("记叙文", "narrative"),
    EssayType.ARGUMENTATIVE: ("议论文", "argumentative essay"),
    EssayType.EXPOSITORY: ("说明文", "expository essay"),
    EssayType.DESCRIPTIVE: ("描写文", "descriptive essay"),
    EssayType.PRACTICAL: ("应用文", "practical writing (letter, notice, speech)"),
    EssayType.IMAGINATIVE: ("想象作文", "imaginative story"),
    EssayType.DIARY: ("日记", "diary entry"),
    EssayType.WEEKLY_DIARY: ("周记", "weekly journal"),
    EssayType.OTHER: ("不限文体", "free-form essay"),
}


def word_count_guidance(grade: int) -> str:
    """
    Grade-appropriate length guidance (characters for Chinese, words for English).
    """
    for first, last, guidance in WORD_COUNT_GUIDANCE:
        if first <= grade <= last:
            return guidance
    raise ValueError(f"grade out of range: {grade}")


def essay_prompt(
    *,
    grade: int,
    essay_type: EssayType,
    topic: Optional[str] = None,
    word_count: Optional[str] = None,
    language: str = "chinese",
) -> str:
    """
    Essay-writing prompt. With no topic, the subject comes from the attached image.
    """
    length = word_count or word_count_guidance(grade)
    zh_type, en_type = ESSAY_TYPE_LABELS[essay_type]

    if language == "english":
        subject = (
            f'Topic: "{topic}"'
            if topic
            else "The topic and requirements are in the attached image; read them carefully first."
        )
        return (
            f"You are an experienced English writing teacher. Write a model {en_type} "
            f"for a grade {grade} student.\n"
            f"{subject}\n"
            f"Length: about {length} words.\n"
            "Use vocabulary and sentence structures suitable for the grade level.\n"
            "Give the essay a title, then the body. Output Markdown only."
        )

    subject = f"作文题目：{topic}" if topic else "作文题目和要求在图片中，请先仔细阅读图片内容。"
    return (
        f"你是一位经验丰富的语文老师。请为{GRADE_LABELS[grade]}学生写一篇{zh_type}范文。\n"
        f"{subject}\n"
        f"字数要求：约{length}字。\n"
        "要求：语言符合该年级学生的表达水平，结构清晰，内容真实生动。\n"
        "先给出标题，再给出正文，使用 Markdown 格式输出。"
    )


def essay_examples_prompt(topic: str) -> str:
    return (
        f'Generate three different style essays on the topic: "{topic}"\n\n'
        "Return STRICT JSON:\n"
        "{\n"
        '  "creative": "engaging, storytelling-style essay",\n'
        '  "philosophical": "deep, reflective essay with philosophical insights",\n'
        '  "analytical": "logical, well-structured analytical essay"\n'
        "}"
    )


def _fmt_number(x: float) -> str:
    return str(int(x)) if float(x).is_integer() else str(x)
