"""Generation pipeline tests with a scripted fake generator."""

import random
from dataclasses import replace

import pytest

from manzai.core.errors import EmptyOutputError, GenerationError
from manzai.features.script.generator import TextGeneratorError
from manzai.features.script.normalizer import TITLE_PLACEHOLDER
from manzai.features.script.prompts import build_generation_request
from manzai.features.script.service import (
    CONTINUATION_TEMPERATURE,
    INITIAL_TEMPERATURE,
    MAX_OUTPUT_TOKENS,
    generate_script,
)
from manzai.tests.mocks import FakeGenerator, make_script

CLOSING = "B: もういいよ！"


def _run(generator, config, **request_kwargs):
    request = build_generation_request(length=350, **request_kwargs)
    return generate_script(request, generator=generator, config=config, rng=random.Random(5))


def _assert_well_formed(body, band):
    assert len(body) <= band.max_len
    assert body.endswith("\n\n" + CLOSING)
    assert body.count("もういいよ") == 1
    assert "\n\n\n" not in body


def test_long_initial_draft_needs_one_call(pipeline_config, fake_generator):
    result = _run(fake_generator, pipeline_config)

    assert len(fake_generator.calls) == 1
    assert fake_generator.calls[0]["temperature"] == INITIAL_TEMPERATURE
    assert fake_generator.calls[0]["max_tokens"] == MAX_OUTPUT_TOKENS
    assert result.draft.title == "テスト漫才"
    assert result.draft.stages == ["initial"]
    assert result.band.contains(result.draft.length)
    _assert_well_formed(result.draft.body, result.band)


def test_short_draft_is_continued(pipeline_config):
    continuation = make_script(turns=12, title=None, line="続きの台詞その{i}です。まだまだ続きます。")
    generator = FakeGenerator(replies=[make_script(turns=4), continuation])

    result = _run(generator, pipeline_config)

    assert len(generator.calls) == 2
    assert generator.calls[1]["temperature"] == CONTINUATION_TEMPERATURE
    assert "continuation" in result.draft.stages
    assert "続きの台詞その0です。" in result.draft.body
    assert result.draft.model_calls == 2
    _assert_well_formed(result.draft.body, result.band)


def test_continuation_headings_leave_no_gap(pipeline_config):
    continuation = "A: 続きその1です。\n\n# 後半\n\nB: 続きその2です。"
    generator = FakeGenerator(replies=[make_script(turns=4), continuation])

    result = _run(generator, pipeline_config)

    body = result.draft.body
    assert "後半" not in body
    assert body.endswith("A: 続きその1です。\n\nB: 続きその2です。\n\n" + CLOSING)
    _assert_well_formed(body, result.band)


def test_continuation_disabled(pipeline_config):
    generator = FakeGenerator(replies=[make_script(turns=4)])
    config = replace(pipeline_config, continuation_enabled=False)

    result = _run(generator, config)

    assert len(generator.calls) == 1
    _assert_well_formed(result.draft.body, result.band)


def test_continuation_failure_keeps_draft(pipeline_config):
    generator = FakeGenerator(replies=[make_script(turns=4), TextGeneratorError("timeout", status=504)])

    result = _run(generator, pipeline_config)

    assert result.draft.stages == ["initial"]
    assert result.draft.model_calls == 1
    assert result.draft.title == "テスト漫才"
    _assert_well_formed(result.draft.body, result.band)


def test_initial_failure_is_fatal(pipeline_config):
    generator = FakeGenerator(replies=[TextGeneratorError("bad gateway", status=502)])

    with pytest.raises(GenerationError) as excinfo:
        _run(generator, pipeline_config)

    assert excinfo.value.status_code == 500
    assert isinstance(excinfo.value.__cause__, TextGeneratorError)


def test_missing_generator_is_fatal(pipeline_config):
    with pytest.raises(GenerationError):
        _run(None, pipeline_config)


@pytest.mark.parametrize("raw", ["", "   \n  ", "【タイトル】\n\n"])
def test_empty_output(pipeline_config, raw):
    generator = FakeGenerator(replies=[raw])

    with pytest.raises(EmptyOutputError):
        _run(generator, pipeline_config)
    assert len(generator.calls) == 1


def test_verification_ok_keeps_draft(pipeline_config, long_script):
    generator = FakeGenerator(replies=[long_script, "OK"])
    config = replace(pipeline_config, verification_enabled=True)

    result = _run(generator, config)

    assert len(generator.calls) == 2
    assert "verification:ok" in result.draft.stages
    assert "その0です" in result.draft.body


def test_verification_rewrite_replaces_body(pipeline_config, long_script):
    rewrite = make_script(turns=20, title=None, line="直した台詞その{i}です。これで大丈夫です。")
    generator = FakeGenerator(replies=[long_script, rewrite])
    config = replace(pipeline_config, verification_enabled=True)

    result = _run(generator, config)

    assert "verification:rewritten" in result.draft.stages
    assert "直した台詞その0です。" in result.draft.body
    assert result.draft.title == "テスト漫才"
    _assert_well_formed(result.draft.body, result.band)


def test_verification_prose_reply_is_ignored(pipeline_config, long_script):
    generator = FakeGenerator(replies=[long_script, "特に問題は見当たりませんでしたが念のため確認しました。"])
    config = replace(pipeline_config, verification_enabled=True)

    result = _run(generator, config)

    assert "その0です" in result.draft.body
    assert not any(stage.startswith("verification") for stage in result.draft.stages)


def test_title_regenerated_when_missing(pipeline_config):
    generator = FakeGenerator(replies=[make_script(turns=24, title=None), "「宇宙漫才」"])
    config = replace(pipeline_config, title_regeneration_enabled=True)

    result = _run(generator, config)

    assert result.draft.title == "宇宙漫才"
    assert generator.calls[1]["max_tokens"] == 200


def test_title_placeholder_when_regeneration_fails(pipeline_config):
    generator = FakeGenerator(replies=[make_script(turns=24, title=None), TextGeneratorError("down")])
    config = replace(pipeline_config, title_regeneration_enabled=True)

    result = _run(generator, config)

    assert result.draft.title == TITLE_PLACEHOLDER
    _assert_well_formed(result.draft.body, result.band)


def test_title_placeholder_without_regeneration(pipeline_config):
    generator = FakeGenerator(replies=[make_script(turns=24, title=None)])

    result = _run(generator, pipeline_config)

    assert result.draft.title == TITLE_PLACEHOLDER
    assert len(generator.calls) == 1


def test_at_most_four_model_calls(pipeline_config):
    continuation = make_script(turns=12, title=None, line="続きの台詞その{i}です。まだまだ続きます。")
    generator = FakeGenerator(
        replies=[make_script(turns=4, title=None), continuation, "OK", "宇宙漫才"],
        default="A: 余計な呼び出し",
    )
    config = replace(pipeline_config, verification_enabled=True, title_regeneration_enabled=True)

    result = _run(generator, config)

    assert len(generator.calls) == 4
    assert result.draft.title == "宇宙漫才"
    assert result.draft.stages == ["initial", "continuation", "verification:ok", "title"]


def test_custom_tsukkomi_closes_script(pipeline_config):
    generator = FakeGenerator(replies=[make_script(turns=24, names=("太郎", "花子"))])

    result = _run(generator, pipeline_config, characters="太郎、花子")

    assert result.draft.body.endswith("\n\n花子: もういいよ！")
