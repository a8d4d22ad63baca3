"""Tests for the end-to-end generation pipeline and the queued website path."""

import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest

from app.errors import CodegenParseError, ConflictError, NotFoundError
from app.services import generation_service
from app.services.codegen.asset_policy import PLACEHOLDERS
from app.services.generation_queue import generation_queue
from app.services.generation_service import (
    GenerationRequest,
    enqueue_website_generation,
    get_ticket,
    run_generation,
)
from tests.conftest import SIMPLE_RESULT, USER_ID, llm_response, mock_llm
from tests.test_spec_stage import GOOD_SPEC


def _request(**overrides) -> GenerationRequest:
    data = {"message": "build me a website", "user_id": USER_ID, "username": "octocat"}
    data.update(overrides)
    return GenerationRequest(**data)


class _Recorder:
    def __init__(self):
        self.events = []

    async def __call__(self, event):
        self.events.append(event)

    @property
    def stages(self):
        return [e.stage for e in self.events]


# ---------------------------------------------------------------------------
# run_generation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_run_generation_end_to_end():
    llm = mock_llm(llm_response(SIMPLE_RESULT))
    progress = _Recorder()

    outcome = await run_generation(_request(), llm=llm, on_progress=progress)

    summary = outcome.summary
    assert summary["status"] == "done"
    assert summary["project_type"] == "static_html"
    assert summary["pipeline"] == "direct"
    assert summary["file_count"] == 2
    assert set(summary["stage_timings"]) == {"codegen_direct", "output_copy", "zip_create"}
    assert outcome.files == ["index.html", "styles.css"]

    with zipfile.ZipFile(summary["zip_path"]) as zf:
        assert sorted(zf.namelist()) == ["index.html", "styles.css"]

    assert outcome.metadata.total_calls == 1
    assert outcome.metadata.totals.total_tokens == 300
    assert progress.stages[0] == "codegen"
    assert progress.stages[-1] == "complete"
    assert all(e.job_id for e in progress.events)


@pytest.mark.asyncio
async def test_external_image_reaches_zip_as_placeholder():
    site = {
        "files": [
            {
                "path": "index.html",
                "content": '<section class="hero"><img src="https://evil.example/cat.png" alt="Cat"></section>',
            },
            {"path": "styles.css", "content": ".card { background: url(img/card.jpg) center; }"},
        ],
        "notes": "Landing page",
    }
    outcome = await run_generation(_request(), llm=mock_llm(llm_response(site)))

    flags = outcome.summary["policy_flags"]
    assert flags["website_assets_enforced"] is True
    assert flags["assets_rewritten"] == 2

    with zipfile.ZipFile(outcome.summary["zip_path"]) as zf:
        html = zf.read("index.html").decode("utf-8")
        css = zf.read("styles.css").decode("utf-8")
    assert "evil.example" not in html
    assert f'src="{PLACEHOLDERS["generic"]}"' in html
    assert f"url('{PLACEHOLDERS['card']}')" in css

    written = Path(outcome.summary["output_dir"]) / "index.html"
    assert written.read_text(encoding="utf-8") == html

    job_log = Path(outcome.summary["logs_path"]).read_text(encoding="utf-8")
    assert "2 reference(s) rewritten" in job_log
    assert "Final state:\nJob ID: " in job_log
    assert "Status: done" in job_log
    assert "  zip_create: " in job_log


@pytest.mark.asyncio
async def test_run_generation_cached_pipeline_for_capable_model():
    llm = mock_llm(llm_response(SIMPLE_RESULT))
    outcome = await run_generation(_request(), llm=llm, model="google/gemini-3-flash-preview")
    assert outcome.summary["pipeline"] == "direct_cached"
    assert outcome.summary["policy_flags"]["caching_used"] is True


@pytest.mark.asyncio
async def test_run_generation_explicit_pipeline_overrides_selection():
    llm = mock_llm(llm_response(SIMPLE_RESULT))
    outcome = await run_generation(
        _request(), llm=llm, model="google/gemini-3-flash-preview", pipeline="direct",
    )
    assert outcome.summary["pipeline"] == "direct"
    assert outcome.summary["policy_flags"]["caching_used"] is False


@pytest.mark.asyncio
async def test_run_generation_two_stage():
    llm = mock_llm(llm_response(GOOD_SPEC), llm_response(SIMPLE_RESULT))
    progress = _Recorder()

    outcome = await run_generation(_request(two_stage=True), llm=llm, on_progress=progress)

    summary = outcome.summary
    assert summary["pipeline"] == "two_stage"
    assert "spec" in summary["stage_timings"]
    assert summary["token_usage"] == {"total": 600, "spec": 300, "generator": 300}
    assert outcome.metadata.planning_call is not None
    assert outcome.metadata.total_calls == 2
    assert progress.stages[0] == "spec"
    # The codegen prompt carries the improved spec
    codegen_messages = llm.complete.call_args.args[0]
    assert "IMPROVED SPEC: Dice Roller" in codegen_messages[-1]["content"]


@pytest.mark.asyncio
async def test_run_generation_forced_project_type():
    llm = mock_llm(llm_response(SIMPLE_RESULT))
    outcome = await run_generation(
        _request(message="make a discord bot", project_type="node_project"), llm=llm,
    )
    assert outcome.summary["project_type"] == "node_project"


@pytest.mark.asyncio
async def test_run_generation_output_to_logs_dir(tmp_path):
    llm = mock_llm(llm_response(SIMPLE_RESULT))
    outcome = await run_generation(
        _request(guild_name="My Guild", channel_name="general"), llm=llm,
    )
    output_dir = outcome.summary["output_dir"]
    assert output_dir.startswith(str(tmp_path / "browse"))
    assert "general" in output_dir


@pytest.mark.asyncio
async def test_run_generation_failure_marks_job_failed():
    llm = mock_llm(llm_response("not json at all"))
    progress = _Recorder()

    with pytest.raises(CodegenParseError):
        await run_generation(_request(), llm=llm, on_progress=progress)

    error = progress.events[-1]
    assert error.stage == "error"
    assert error.message == "Generation failed"
    assert error.detail


@pytest.mark.asyncio
async def test_zip_failure_is_not_fatal():
    llm = mock_llm(llm_response(SIMPLE_RESULT))
    with patch(
        "app.services.generation_service.try_create_zip_archive", return_value=None,
    ):
        outcome = await run_generation(_request(), llm=llm)

    assert outcome.summary["status"] == "done"
    assert outcome.summary["zip_path"] is None
    assert outcome.files == ["index.html", "styles.css"]


# ---------------------------------------------------------------------------
# Queued website path
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_enqueue_website_generation_runs_to_done():
    llm = mock_llm(llm_response(SIMPLE_RESULT))

    ticket = await enqueue_website_generation(
        _request(message="a bakery site", theme="pastel", project_type="discord_bot"), llm=llm,
    )
    assert ticket.status == "queued"
    assert ticket.position == 1

    await generation_queue.drain()

    done = get_ticket(ticket.ticket_id)
    assert done.status == "done"
    assert done.summary["project_type"] == "static_html"
    prompt = llm.complete.call_args.args[0][-1]["content"]
    assert "a bakery site (theme: pastel)" in prompt


@pytest.mark.asyncio
async def test_enqueue_rejects_second_request_from_same_user():
    llm = mock_llm(llm_response(SIMPLE_RESULT))
    await enqueue_website_generation(_request(), llm=llm)

    with pytest.raises(ConflictError):
        await enqueue_website_generation(_request(), llm=llm)

    await generation_queue.drain()
    # Allowed again once the first has finished
    llm.complete.side_effect = [llm_response(SIMPLE_RESULT)]
    await enqueue_website_generation(_request(), llm=llm)
    await generation_queue.drain()


@pytest.mark.asyncio
async def test_failed_queued_generation_updates_ticket():
    llm = mock_llm(llm_response("garbage"))
    ticket = await enqueue_website_generation(_request(), llm=llm)

    await generation_queue.drain()

    failed = get_ticket(ticket.ticket_id)
    assert failed.status == "failed"
    assert failed.error
    assert failed.position is None


@pytest.mark.asyncio
async def test_ticket_position_is_live():
    llm = mock_llm(llm_response(SIMPLE_RESULT), llm_response(SIMPLE_RESULT))
    first = await enqueue_website_generation(_request(user_id="u1"), llm=llm)
    second = await enqueue_website_generation(_request(user_id="u2"), llm=llm)
    assert second.position == 2

    await generation_queue.drain()
    assert get_ticket(first.ticket_id).status == "done"
    assert get_ticket(second.ticket_id).status == "done"


def test_unknown_ticket():
    with pytest.raises(NotFoundError):
        get_ticket("nope")


def test_ticket_store_is_bounded(monkeypatch):
    monkeypatch.setattr(generation_service, "_MAX_TICKETS", 2)
    for i in range(3):
        generation_service._store_ticket(
            generation_service.WebTicket(ticket_id=f"t{i}", user_id="u", username="u")
        )
    with pytest.raises(NotFoundError):
        get_ticket("t0")
    assert get_ticket("t2").ticket_id == "t2"
