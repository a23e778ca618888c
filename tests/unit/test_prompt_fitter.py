from __future__ import annotations

import pytest
from conftest import FakeTextModel

from app.ai.fitter import PromptFitter


@pytest.mark.anyio
async def test_short_prompt_is_returned_unchanged_without_model_call() -> None:
  model = FakeTextModel()
  result = await PromptFitter(model).fit("a calm beach at dawn", 3000)
  assert result.text == "a calm beach at dawn"
  assert result.strategy == "unchanged"
  assert model.calls == []


@pytest.mark.anyio
async def test_without_summarizer_long_prompt_is_cut_to_prefix() -> None:
  prompt = "x" * 5000
  result = await PromptFitter(None).fit(prompt, 3000)
  assert result.text == prompt[:3000]
  assert result.strategy == "truncated"
  assert result.original_length == 5000


@pytest.mark.anyio
async def test_summary_within_limit_is_used_and_targets_93_percent() -> None:
  model = FakeTextModel(["  condensed shot list  "])
  result = await PromptFitter(model).fit("y" * 5000, 3000)
  assert result.text == "condensed shot list"
  assert result.strategy == "summarized"
  assert result.usage == {"prompt_tokens": 10, "completion_tokens": 20}
  assert "2790" in model.calls[0]["system"]


@pytest.mark.anyio
async def test_overlong_summary_is_truncated_to_limit() -> None:
  model = FakeTextModel(["z" * 3500])
  result = await PromptFitter(model).fit("y" * 5000, 3000)
  assert result.strategy == "truncated"
  assert result.text == "z" * 3000


@pytest.mark.anyio
async def test_failed_or_empty_summary_falls_back_to_original_prefix() -> None:
  prompt = "".join(str(i % 10) for i in range(5000))
  failing = await PromptFitter(FakeTextModel([RuntimeError("upstream 500")])).fit(prompt, 3000)
  empty = await PromptFitter(FakeTextModel(["   "])).fit(prompt, 3000)
  assert failing.text == prompt[:3000] and failing.strategy == "truncated"
  assert empty.text == prompt[:3000] and empty.strategy == "truncated"


@pytest.mark.anyio
async def test_non_positive_limit_yields_empty_string() -> None:
  result = await PromptFitter(FakeTextModel()).fit("anything", 0)
  assert result.text == ""


@pytest.mark.anyio
async def test_fitting_is_idempotent() -> None:
  fitter = PromptFitter(FakeTextModel(["w" * 2500]))
  first = await fitter.fit("v" * 4000, 3000)
  second = await fitter.fit(first.text, 3000)
  assert second.text == first.text
  assert second.strategy == "unchanged"
