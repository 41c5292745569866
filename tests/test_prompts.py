import pytest

from examlens.models.schema import EssayType
from examlens.pipeline import prompts


@pytest.mark.parametrize(
    "grade,expected",
    [(1, "200-300"), (2, "200-300"), (3, "300-400"), (6, "400-500"), (7, "500-600"), (9, "500-600"), (10, "800-1000"), (12, "800-1000")],
)
def test_word_count_guidance(grade, expected):
    assert prompts.word_count_guidance(grade) == expected


def test_word_count_guidance_out_of_range():
    with pytest.raises(ValueError):
        prompts.word_count_guidance(13)


def test_grading_prompt_embeds_max_score_and_pages():
    p = prompts.grading_prompt(150, 2)
    assert '"total_max_score": 150' in p
    assert "worth 150 points" in p
    assert "exactly 2 entries" in p
    assert "0-1000" in p


def test_grading_prompt_keeps_fractional_score():
    assert '"total_max_score": 99.5' in prompts.grading_prompt(99.5, 1)


def test_essay_prompt_chinese_topic():
    p = prompts.essay_prompt(grade=7, essay_type=EssayType.ARGUMENTATIVE, topic="诚信")
    assert "初中一年级" in p
    assert "议论文" in p
    assert "诚信" in p
    assert "500-600" in p


def test_essay_prompt_image_subject():
    p = prompts.essay_prompt(grade=2, essay_type=EssayType.DIARY)
    assert "图片" in p
    assert "日记" in p


def test_essay_prompt_english():
    p = prompts.essay_prompt(
        grade=10, essay_type=EssayType.EXPOSITORY, topic="Bees", word_count="350", language="english"
    )
    assert 'Topic: "Bees"' in p
    assert "about 350 words" in p
    assert "expository" in p


def test_every_essay_type_has_labels():
    assert set(prompts.ESSAY_TYPE_LABELS) == set(EssayType)


def test_homework_prompt_blank_instruction_uses_default():
    assert prompts.DEFAULT_HOMEWORK_INSTRUCTION in prompts.homework_prompt("   ")


def test_tutor_prompt_optional_answer():
    assert "学生的答案" not in prompts.tutor_prompt("1+1=?")
    assert "学生的答案：3" in prompts.tutor_prompt("1+1=?", "3")
