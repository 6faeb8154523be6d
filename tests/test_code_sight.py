from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import httpx
import pytest

from insight.config import parse_config
from insight.dev.mock_gerrit_server import CHANGE_NUMBER, CURRENT_REVISION, PROJECT, build_app
from insight.errors import LocalIOError, PipelineError, RemoteHTTPError
from insight.linters.commit_linter import CommitLinter
from insight.proto.trigger import CodeTrigger, GerritTrigger
from insight.review.client import ReviewClient
from insight.review.models import Finding
from insight.review.schemas import ReviewInput
from insight.sights.code_sight import CodeSight


class _StubKernelLinter:
    def __init__(self) -> None:
        self.names: list[str] = []

    async def lint(self, root: str | Path, names: Sequence[str]) -> list[Finding]:
        self.names = list(names)
        return [
            Finding(file="src/a.c", line=42, severity="Warn", message="trailing statement"),
            Finding(file="src/a.c", line=3, severity="Warn", message="unchanged line"),
        ]


def _review(app: object) -> ReviewClient:
    http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://gerrit")
    return ReviewClient(base_url="http://gerrit", user="", password="", http_client=http_client)


def _sight(tmp_path: Path, review: ReviewClient | None, kernel: _StubKernelLinter | None = None) -> CodeSight:
    config = parse_config({"spec": {"reviewConfig": {"url": "http://gerrit", "root": str(tmp_path)}}})
    return CodeSight(config, review, CommitLinter(), kernel)


def _trigger(revision: str = CURRENT_REVISION) -> CodeTrigger:
    return CodeTrigger(gerritTrigger=GerritTrigger(project=PROJECT, patchsetRevision=revision))


@pytest.mark.anyio
async def test_empty_trigger_makes_no_calls(tmp_path: Path) -> None:
    app = build_app()
    info = await _sight(tmp_path, _review(app)).run(CodeTrigger())
    assert info.findings == []
    assert info.vote == ""
    assert app.state.reviews == []


@pytest.mark.anyio
async def test_clean_change_is_approved_and_scratch_removed(tmp_path: Path) -> None:
    app = build_app()
    sight = _sight(tmp_path, _review(app))

    info = await sight.run(_trigger())

    assert info.vote == "+1"
    assert info.findings == []
    assert info.reviewInfo.change == CHANGE_NUMBER
    assert info.reviewInfo.project == PROJECT
    assert info.reviewInfo.owner == "dev@example.com"
    assert app.state.reviews[0]["payload"]["labels"] == {"Code-Review": "+1"}
    assert not (tmp_path / str(CHANGE_NUMBER) / CURRENT_REVISION).exists()
    assert sight.notify(_trigger(), info) is None


@pytest.mark.anyio
async def test_kernel_findings_on_added_lines_are_commented(tmp_path: Path) -> None:
    app = build_app()
    kernel = _StubKernelLinter()
    sight = _sight(tmp_path, _review(app), kernel)

    info = await sight.run(_trigger())

    assert "/COMMIT_MSG" not in kernel.names
    assert sorted(kernel.names) == ["res/logo.png", "src/a.c"]
    assert info.findings == ["src/a.c:42:Warn:trailing statement", "src/a.c:3:Warn:unchanged line"]
    assert info.vote == "-1"
    payload = app.state.reviews[0]["payload"]
    assert payload["comments"] == {"src/a.c": [{"line": 42, "message": "trailing statement"}]}

    mail = sight.notify(_trigger(), info)
    assert mail is not None
    assert mail.to == ["dev@example.com"]
    assert "trailing statement" in mail.content


@pytest.mark.anyio
async def test_unknown_commit_fails_without_vote(tmp_path: Path) -> None:
    app = build_app()

    with pytest.raises(PipelineError) as exc_info:
        await _sight(tmp_path, _review(app)).run(_trigger("f" * 40))

    assert "No change found" in str(exc_info.value)
    assert exc_info.value.info.vote == ""
    assert app.state.reviews == []


class _BrokenReviewClient(ReviewClient):
    async def vote(self, commit: str, findings: Sequence[Finding]) -> ReviewInput:
        raise RemoteHTTPError("Gerrit API error 500: review", status_code=500)

    @staticmethod
    def clean(path: str | Path) -> None:
        raise LocalIOError(f"Failed to clean {path}: busy")


@pytest.mark.anyio
async def test_clean_failure_keeps_the_pipeline_error(tmp_path: Path) -> None:
    http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=build_app()), base_url="http://gerrit")
    review = _BrokenReviewClient(base_url="http://gerrit", user="", password="", http_client=http_client)

    with pytest.raises(PipelineError) as exc_info:
        await _sight(tmp_path, review).run(_trigger())

    assert "Gerrit API error 500" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, RemoteHTTPError)
