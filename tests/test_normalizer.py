import pytest

from novel_retrieval.config import NormalizerConfig
from novel_retrieval.converter import TextNormalizer


@pytest.fixture
def normalizer() -> TextNormalizer:
    return TextNormalizer()


@pytest.mark.parametrize(
    "line",
    [
        "She closed the chapter of her life and walked away.",
        "Chapter 12 was the part everyone remembered.",
        "In this chapter: nothing happens, said the narrator.",
        "He bookmarked the next chapter for later, then slept.",
        "我在笔趣阁看到这本书。",
        "第一次见面时，他没有说话。",
        "第三回合他终于赢了比赛。",
        "第二节课下课后，他去了图书馆。",
        "他把这本书加入收藏，然后继续读下去。",
        "She told him to add to favorites whatever he liked, and he laughed.",
    ],
)
def test_prose_mentioning_boilerplate_words_is_kept(normalizer, line):
    text = f"Opening line.\n{line}\nClosing line."
    assert normalizer.clean(text) == text


@pytest.mark.parametrize(
    "line",
    [
        "Chapter 12",
        "Chapter 12: The Return",
        "CHAPTER XIV - Ashes",
        "第十二章 归来",
        "第3回",
        "上一章 | 目录 | 下一章",
        "« Previous | Index | Next »",
        "【返回目录】",
        "请按Ctrl+D收藏本站",
        "Bookmark this site!",
        "请收藏本站。",
        "加入收藏",
        "第五节 夜雨",
        "https://www.example-novels.com/book/1/",
        "www.example-novels.com",
        "笔趣阁",
        "  天蚕土豆  ",
    ],
)
def test_boilerplate_lines_are_removed(normalizer, line):
    text = f"Opening line.\n{line}\nClosing line."
    assert normalizer.clean(text) == "Opening line.\n\nClosing line."


def test_blank_runs_collapse(normalizer):
    assert normalizer.clean("a\n\n\n\n\nb\n\n") == "a\n\nb"


def test_lines_are_trimmed(normalizer):
    assert normalizer.clean("   first  \n\t　second") == "first\nsecond"


def test_flat_text_is_resegmented_after_closing_quotes(normalizer):
    text = "“你好。”他说。“走吧。”她回答。"
    assert normalizer.clean(text) == "“你好。”\n他说。“走吧。”\n她回答。"


def test_resegment_requires_space_after_single_quote(normalizer):
    text = "‘Go home.’ She left. It’s late."
    assert normalizer.clean(text) == "‘Go home.’\nShe left. It’s late."


def test_resegment_can_be_disabled():
    normalizer = TextNormalizer(NormalizerConfig(resegment_flat_text=False))
    text = "“你好。”他说。"
    assert normalizer.clean(text) == text


def test_multi_line_text_is_not_resegmented(normalizer):
    text = "“你好。”他说。\n第二段。"
    assert normalizer.clean(text) == text


def test_extra_patterns_and_brand_lines():
    normalizer = TextNormalizer(
        NormalizerConfig(brand_lines=["My Novel Site"], extra_line_patterns=[r"^本章未完.*$"])
    )
    text = "Keep me.\nmy novel site\n本章未完，点击下一页继续\nMe too."
    assert normalizer.clean(text) == "Keep me.\n\nMe too."


def test_empty_input(normalizer):
    assert normalizer.clean("") == ""
    assert normalizer.clean("\n\n  \n") == ""
