"""
本地 Mock Gerrit REST server（只覆盖连接器用到的接口）。

用途：
- 在没有真实 Gerrit 的情况下，本地跑通：
  query commit -> files -> content -> patch -> review
- 测试里通过 `httpx.ASGITransport(app=build_app())` 直接挂载，不走网络

启动：
  python -m insight.dev.mock_gerrit_server
"""

from __future__ import annotations

import base64
import json

import uvicorn
from fastapi import FastAPI, Request, Response

XSSI_PREFIX = ")]}'\n"

CHANGE_NUMBER = 1001
REVISION_NUMBER = 2
CURRENT_REVISION = "1111111111111111111111111111111111111111"
PROJECT = "platform/demo"

COMMIT_MESSAGE = (
    "Add a bounds check to the demo parser\n"
    "\n"
    "Reject inputs where the counter exceeds the limit.\n"
    "\n"
    "Change-Id: I0123456789abcdef0123456789abcdef01234567\n"
)

SOURCE = "int parse(void)\n{\n\tint n = 0;\n\tint m = 0;\n\tif (n > m) return -1;\n}\n"

PATCH = (
    f"From {CURRENT_REVISION} Mon Sep 17 00:00:00 2001\n"
    "From: Dev <dev@example.com>\n"
    "Subject: [PATCH] Add a bounds check to the demo parser\n"
    "\n"
    "Change-Id: I0123456789abcdef0123456789abcdef01234567\n"
    "---\n"
    " res/logo.png | Bin\n"
    " src/a.c      | 1 +\n"
    " 2 files changed, 1 insertion(+)\n"
    "\n"
    "diff --git a/res/logo.png b/res/logo.png\n"
    "index 3b18e51..a9c2f0e 100644\n"
    "Binary files differ\n"
    "diff --git a/src/a.c b/src/a.c\n"
    "index 3b18e51..a9c2f0e 100644\n"
    "--- a/src/a.c\n"
    "+++ b/src/a.c\n"
    "@@ -40,2 +40,3 @@ int parse(void)\n"
    " \tint n = 0;\n"
    " \tint m = 0;\n"
    "+\tif (n > m) return -1;\n"
    "-- \n"
    "2.39.2\n"
)


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _gerrit(data: object) -> Response:
    return Response(content=XSSI_PREFIX + json.dumps(data), media_type="application/json")


def _change() -> dict[str, object]:
    return {
        "id": "platform%2Fdemo~master~I0123456789abcdef0123456789abcdef01234567",
        "project": PROJECT,
        "branch": "master",
        "change_id": "I0123456789abcdef0123456789abcdef01234567",
        "subject": "Add a bounds check to the demo parser",
        "status": "NEW",
        "created": "2024-01-02 03:04:05.000000000",
        "updated": "2024-01-02 03:04:05.000000000",
        "_number": CHANGE_NUMBER,
        "owner": {"_account_id": 1000, "name": "Dev", "email": "dev@example.com", "username": "dev"},
        "current_revision": CURRENT_REVISION,
        "revisions": {
            CURRENT_REVISION: {
                "_number": REVISION_NUMBER,
                "ref": f"refs/changes/01/{CHANGE_NUMBER}/{REVISION_NUMBER}",
                "created": "2024-01-02 03:04:05.000000000",
                "uploader": {"_account_id": 1000, "name": "Dev", "email": "dev@example.com"},
            }
        },
    }


def _files() -> dict[str, object]:
    return {
        "/COMMIT_MSG": {"status": "A", "lines_inserted": 5, "size": len(COMMIT_MESSAGE)},
        "src/a.c": {"lines_inserted": 1, "size": len(SOURCE)},
        "src/gone.c": {"status": "D", "lines_deleted": 3},
        "src/moved.c": {"status": "R", "old_path": "src/old.c"},
        "res/logo.png": {"binary": True, "size": 64},
    }


def _contents() -> dict[str, str]:
    return {
        "/COMMIT_MSG": COMMIT_MESSAGE,
        "src/a.c": SOURCE,
        "res/logo.png": "\x89PNG",
    }


def build_app(files: dict[str, object] | None = None, contents: dict[str, str] | None = None) -> FastAPI:
    """
    每次调用返回一个独立状态的 app（测试之间互不影响）。

    `files`/`contents` 覆盖默认的文件列表和内容；列出但没有内容的文件返回 404。
    """
    files = _files() if files is None else files
    contents = _contents() if contents is None else contents
    app = FastAPI(title="Mock Gerrit API", version="0.1.0")
    reviews: list[dict[str, object]] = []
    app.state.reviews = reviews

    @app.get("/changes/")
    @app.get("/a/changes/")
    async def query_changes(q: str = "") -> Response:
        if q.startswith("commit:") and q != f"commit:{CURRENT_REVISION}":
            return _gerrit([])
        return _gerrit([_change()])

    @app.get("/changes/{change}/detail")
    @app.get("/a/changes/{change}/detail")
    async def change_detail(change: int) -> Response:
        if change != CHANGE_NUMBER:
            return Response(status_code=404, content="Not found")
        return _gerrit(_change())

    @app.get("/changes/{change}/revisions/{revision}/files/")
    @app.get("/a/changes/{change}/revisions/{revision}/files/")
    async def revision_files(change: int, revision: str) -> Response:
        _ = change, revision
        return _gerrit(files)

    @app.get("/changes/{change}/revisions/{revision}/files/{name:path}/content")
    @app.get("/a/changes/{change}/revisions/{revision}/files/{name:path}/content")
    async def file_content(change: int, revision: str, name: str) -> Response:
        _ = change, revision
        body = contents.get(name)
        if body is None:
            return Response(status_code=404, content="Not found")
        return Response(content=_b64(body), media_type="text/plain")

    @app.get("/changes/{change}/revisions/{revision}/patch")
    @app.get("/a/changes/{change}/revisions/{revision}/patch")
    async def revision_patch(change: int, revision: str) -> Response:
        _ = change, revision
        return Response(content=_b64(PATCH), media_type="text/plain")

    @app.post("/changes/{change}/revisions/{revision}/review")
    @app.post("/a/changes/{change}/revisions/{revision}/review")
    async def post_review(change: int, revision: str, request: Request) -> Response:
        payload = await request.json()
        reviews.append({"change": change, "revision": revision, "payload": payload})
        return _gerrit({"labels": payload.get("labels", {})})

    @app.get("/__debug__/reviews")
    async def debug_reviews() -> dict[str, object]:
        return {"count": len(reviews), "reviews": reviews}

    return app


app = build_app()


def main() -> None:
    uvicorn.run(app, host="127.0.0.1", port=9003)


if __name__ == "__main__":
    main()
