"""Editing session backed by the blogging platform's web editor.

The editor widget differs between accounts and layouts. It is detected once
per page load and recorded as an `EditorKind`; every operation dispatches on
that tag. Only CodeMirror 6 supports in-place URL patching; the other kinds
report no capability and the caller falls back to a full rewrite.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from qic.config.settings import BrowserConfig
from qic.exceptions import EditorNotFoundError, PollTimeoutError, PublishError
from qic.services.protocols import SubstitutionOutcome
from qic.utils.logging import get_logger
from qic.utils.polling import poll_until

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

log = get_logger(__name__)


class EditorKind(str, Enum):
    """Detected editor widget."""

    TEXTAREA = "textarea"
    CONTENTEDITABLE = "contenteditable"
    CODEMIRROR = "codemirror"
    CODEMIRROR6 = "codemirror6"
    MONACO = "monaco"


CM6_BODY = "[data-test-editor-body='true']"
CM6_CONTENT = ".cm-editor .cm-content[contenteditable='true']"
SUBMIT_BUTTON = "[data-test-editor-submit-button='true']"
SUBMIT_LABELS = r"公開設定へ|記事を更新する|投稿する|公開する"
CONFIRM_LABELS = r"記事を更新する|投稿する|公開する"
SAVING_LABELS = r"更新中です|保存中|処理中"

_DETECT_ENGINE_JS = """
() => {
  const cm6 = document.querySelector(".cm-editor");
  const body = document.querySelector("[data-test-editor-body='true']");
  if (cm6 && body && body.getAttribute("contenteditable") === "true") return "codemirror6";
  const host = document.querySelector(".CodeMirror");
  const cm = host && host.CodeMirror;
  if (cm && typeof cm.getValue === "function" && typeof cm.setValue === "function") return "codemirror";
  const monaco = globalThis.monaco;
  if (monaco && monaco.editor && typeof monaco.editor.getModels === "function") {
    const models = monaco.editor.getModels();
    if (Array.isArray(models) && models.length > 0) return "monaco";
  }
  return null;
}
"""

# Locates the CodeMirror 6 EditorView attached to some node under .cm-editor.
_FIND_CM6_VIEW_JS = """
const isView = (v) => v && typeof v.dispatch === "function" && v.state && v.state.doc
  && typeof v.state.doc.toString === "function";
const findView = () => {
  const root = document.querySelector(".cm-editor");
  if (!root) return null;
  for (const n of [root, ...root.querySelectorAll("*")]) {
    if (isView(n.cmView)) return n.cmView;
    if (isView(n.view)) return n.view;
    try {
      for (const k of Object.getOwnPropertyNames(n)) if (isView(n[k])) return n[k];
      for (const s of Object.getOwnPropertySymbols(n)) if (isView(n[s])) return n[s];
    } catch (e) {}
  }
  return null;
};
"""

_CM6_READ_DOC_JS = (
    "() => {"
    + _FIND_CM6_VIEW_JS
    + "const view = findView(); return view ? view.state.doc.toString() : null; }"
)

_CM6_REPLACE_JS = (
    "(pairs) => {"
    + _FIND_CM6_VIEW_JS
    + """
  const view = findView();
  if (!view) return { ok: false, replacedCount: 0, detail: "EditorView not found on DOM" };
  const doc = view.state.doc.toString();
  const changes = [];
  for (const [from, to] of pairs) {
    if (!from) continue;
    let idx = doc.indexOf(from);
    while (idx !== -1) {
      changes.push({ from: idx, to: idx + from.length, insert: to });
      idx = doc.indexOf(from, idx + from.length);
    }
  }
  changes.sort((a, b) => b.from - a.from);
  for (const c of changes) view.dispatch({ changes: c });
  return { ok: true, replacedCount: changes.length };
}"""
)

_CM6_STORE_BODY_JS = """
() => {
  try {
    const el = document.querySelector("script[data-js-react-on-rails-store='AppStoreWithReactOnRails']");
    if (!el || !el.textContent) return null;
    const article = (JSON.parse(el.textContent).articleEditor || {}).article || {};
    if (typeof article.rawBody === "string" && article.rawBody.length > 0) return article.rawBody;
    if (typeof article.originalRawBody === "string" && article.originalRawBody.length > 0) return article.originalRawBody;
    return null;
  } catch (e) { return null; }
}
"""

_CM6_VISIBLE_LINES_JS = """
() => {
  const lines = Array.from(document.querySelectorAll(".cm-content .cm-line"));
  if (lines.length === 0) return null;
  return lines.map((l) => l.textContent || "").join("\\n");
}
"""

_CODEMIRROR_GET_JS = """
() => { const h = document.querySelector(".CodeMirror"); const cm = h && h.CodeMirror; return cm ? String(cm.getValue()) : ""; }
"""
_CODEMIRROR_SET_JS = """
(b) => { const h = document.querySelector(".CodeMirror"); const cm = h && h.CodeMirror;
  if (!cm) throw new Error("CodeMirror not found"); cm.setValue(b); cm.focus(); }
"""
_MONACO_GET_JS = """
() => { const m = globalThis.monaco; const models = (m && m.editor && m.editor.getModels()) || [];
  return models.length ? String(models[0].getValue()) : ""; }
"""
_MONACO_SET_JS = """
(b) => { const m = globalThis.monaco; const models = (m && m.editor && m.editor.getModels()) || [];
  if (!models.length) throw new Error("Monaco model not found"); models[0].setValue(b); }
"""

_TEXTAREA_LENGTHS_JS = """
(els) => els.map((el, idx) => ({
  idx, name: el.getAttribute("name"), id: el.getAttribute("id"), len: (el.value || "").length
}))
"""


def editor_kind_from_probe(engine: str | None, textarea_len: int, has_contenteditable: bool) -> EditorKind:
    """Pick the editor kind from what the page probe found.

    Script-driven engines win; a non-empty body textarea comes next, then a
    contenteditable element.

    Raises:
        EditorNotFoundError: Nothing usable was found
    """
    if engine:
        return EditorKind(engine)
    if textarea_len > 0:
        return EditorKind.TEXTAREA
    if has_contenteditable:
        return EditorKind.CONTENTEDITABLE
    raise EditorNotFoundError()


def is_edit_url(url: str) -> bool:
    """The editor may live under /items/<id>/edit or /drafts/<id>/edit."""
    return "/edit" in url and ("/items/" in url or "/drafts/" in url)


class PlaywrightEditingSession:
    """`EditingSession` over the platform editor in a Playwright page."""

    def __init__(self, page: Page, edit_url: str, config: BrowserConfig | None = None) -> None:
        self.page = page
        self.edit_url = edit_url
        self.config = config or BrowserConfig()
        self.kind: EditorKind | None = None
        self._textarea_index: int | None = None

    async def open(self) -> EditorKind:
        """Navigate to the editor, wait for login and detect the widget."""
        log.info("editor.open", url=self.edit_url)
        await self.page.goto(self.edit_url, wait_until="domcontentloaded")
        await self.wait_until_ready()
        await self._select_write_tab()
        self.kind = await self._detect()
        log.info("editor.detected", kind=self.kind.value)
        return self.kind

    async def wait_until_ready(self) -> None:
        """Wait (up to the login timeout) for the user to log in and the editor to render."""

        async def probe() -> bool:
            if not is_edit_url(self.page.url):
                return False
            textareas = await self.page.locator("textarea").count()
            editables = await self.page.locator("[contenteditable='true']").count()
            return textareas > 0 or editables > 0

        await poll_until(
            probe,
            bool,
            interval=1.0,
            timeout=self.config.login_timeout,
            description="login and editor readiness (log in in the opened browser)",
            heartbeat=10.0,
            tolerate_errors=True,
        )

    async def _select_write_tab(self) -> None:
        for name in ("本文", "Write"):
            tab = self.page.get_by_role("tab", name=name)
            if await tab.count() > 0:
                try:
                    await tab.first.click(timeout=2000)
                    return
                except Exception as e:
                    log.debug("editor.write_tab_click_failed", tab=name, error=str(e))

    async def _detect(self) -> EditorKind:
        engine = await self.page.evaluate(_DETECT_ENGINE_JS)
        metas: list[dict[str, Any]] = await self.page.locator("textarea").evaluate_all(
            _TEXTAREA_LENGTHS_JS
        )
        candidates = [
            m for m in metas if (m.get("name") or "") != "commitMessage" and (m.get("id") or "") != "commitMessage"
        ]
        candidates.sort(key=lambda m: m["len"], reverse=True)
        best = candidates[0] if candidates else None
        self._textarea_index = best["idx"] if best else None
        has_ce = await self.page.locator("[contenteditable='true']").count() > 0
        return editor_kind_from_probe(engine, best["len"] if best else 0, has_ce)

    def _require_kind(self) -> EditorKind:
        if self.kind is None:
            raise EditorNotFoundError("Editor not opened; call open() first")
        return self.kind

    def _textarea(self) -> Locator:
        return self.page.locator("textarea").nth(self._textarea_index or 0)

    async def _focus_cm6(self) -> None:
        content = self.page.locator(CM6_CONTENT).first
        target = content if await content.count() > 0 else self.page.locator(CM6_BODY).first
        await target.click(timeout=30_000)

    async def read_snapshot(self) -> str:
        kind = self._require_kind()
        if kind is EditorKind.TEXTAREA:
            return await self._textarea().input_value()
        if kind is EditorKind.CONTENTEDITABLE:
            return await self.page.locator("[contenteditable='true']").first.text_content() or ""
        if kind is EditorKind.CODEMIRROR:
            return await self.page.evaluate(_CODEMIRROR_GET_JS)
        if kind is EditorKind.MONACO:
            return await self.page.evaluate(_MONACO_GET_JS)

        # CodeMirror 6: the server-rendered store keeps exact newlines
        stored = await self.page.evaluate(_CM6_STORE_BODY_JS)
        if isinstance(stored, str):
            return stored
        joined = await self.page.evaluate(_CM6_VISIBLE_LINES_JS)
        if isinstance(joined, str):
            return joined
        return await self.page.locator(CM6_BODY).first.inner_text()

    async def read_live(self) -> str:
        kind = self._require_kind()
        if kind is not EditorKind.CODEMIRROR6:
            return await self.read_snapshot()

        # CM6 virtualizes the DOM; only the EditorView or the autosave payload has the full text
        doc = await self.page.evaluate(_CM6_READ_DOC_JS)
        if isinstance(doc, str) and doc:
            return doc
        autosaved = await self._read_autosave_payload()
        if autosaved:
            return autosaved
        return await self.page.locator(CM6_BODY).first.inner_text()

    async def _read_autosave_payload(self) -> str | None:
        """Trigger a no-op edit and read rawBody from the autosave request."""

        def is_autosave(request: Any) -> bool:
            if request.method != "POST" or "/graphql" not in request.url:
                return False
            post = request.post_data or ""
            return "SaveEditingArticle" in post and '"rawBody"' in post

        try:
            await self._focus_cm6()
            async with self.page.expect_request(is_autosave, timeout=8000) as request_info:
                await self.page.keyboard.insert_text(" ")
                await self.page.keyboard.press("Backspace")
            request = await request_info.value
            payload = request.post_data_json or {}
        except Exception as e:
            log.debug("editor.autosave_read_failed", error=str(e))
            return None
        raw = ((payload.get("variables") or {}).get("input") or {}).get("rawBody")
        return raw if isinstance(raw, str) and raw else None

    async def write(self, text: str) -> None:
        kind = self._require_kind()
        if kind is EditorKind.TEXTAREA:
            textarea = self._textarea()
            await textarea.click(timeout=30_000)
            await textarea.fill(text)
        elif kind is EditorKind.CONTENTEDITABLE:
            el = self.page.locator("[contenteditable='true']").first
            await el.click(timeout=30_000)
            await el.press("Control+A")
            await self.page.keyboard.insert_text(text)
        elif kind is EditorKind.CODEMIRROR:
            await self.page.evaluate(_CODEMIRROR_SET_JS, text)
        elif kind is EditorKind.MONACO:
            await self.page.evaluate(_MONACO_SET_JS, text)
        else:
            await self._focus_cm6()
            await self.page.keyboard.press("Control+A")
            await self.page.keyboard.insert_text(text)
        log.info("editor.write", kind=kind.value, length=len(text))

    async def apply_substitutions(self, mapping: Mapping[str, str]) -> SubstitutionOutcome:
        kind = self._require_kind()
        if kind is not EditorKind.CODEMIRROR6:
            return SubstitutionOutcome(ok=False, detail=f"{kind.value} has no in-place replace")
        result = await self.page.evaluate(_CM6_REPLACE_JS, [[k, v] for k, v in mapping.items()])
        result = result or {}
        return SubstitutionOutcome(
            ok=bool(result.get("ok")),
            replaced_count=int(result.get("replacedCount") or 0),
            detail=result.get("detail"),
        )

    async def _find_submit_button(self) -> Locator | None:
        candidates = [
            self.page.locator(SUBMIT_BUTTON),
            self.page.get_by_role("button", name="更新"),
        ]
        for locator in candidates:
            count = await locator.count()
            for i in range(count):
                if await locator.nth(i).is_visible():
                    return locator.nth(i)
            if count > 0:
                return locator.first
        return None

    async def submit(self) -> bool:
        """Click submit, confirm in the publish dialog and wait to leave the editor.

        Returns:
            True once the page navigated away from the editor, False when the
            outcome is unknown after the submit timeout

        Raises:
            PublishError: The submit button or the confirm step never appeared
        """
        page = self.page
        if not is_edit_url(page.url):
            log.warning("submit.not_on_editor", url=page.url)
            await self.open()

        button = await self._find_submit_button()
        if button is None:
            raise PublishError("Submit button not found in editor")
        await page.keyboard.press("Escape")
        # Element click skips Playwright actionability checks, which can hang here
        await button.evaluate("(el) => el.click()")
        log.info("submit.clicked")

        confirm = page.get_by_role("button", name=re.compile(CONFIRM_LABELS)).first
        saving = page.get_by_text(re.compile(SAVING_LABELS)).first

        async def confirm_state() -> str | None:
            if not is_edit_url(page.url):
                return "left_editor"
            if await confirm.count() > 0:
                return "confirm"
            if await saving.count() > 0:
                return "saving"
            return None

        try:
            state = await poll_until(
                confirm_state,
                lambda s: s is not None,
                interval=0.5,
                timeout=self.config.submit_timeout,
                description="publish confirmation UI",
            )
        except PollTimeoutError as e:
            raise PublishError(str(e)) from e
        if state == "left_editor":
            return True
        if state == "confirm":
            await confirm.click(force=True, timeout=15_000, no_wait_after=True)
            log.info("submit.confirmed")

        async def on_editor() -> bool:
            return is_edit_url(page.url)

        try:
            await poll_until(
                on_editor,
                lambda still_editing: not still_editing,
                interval=1.0,
                timeout=self.config.default_timeout,
                description="editor to navigate after submit",
            )
        except PollTimeoutError:
            log.warning("submit.outcome_unknown", url=page.url)
            return False
        return True
