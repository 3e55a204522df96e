"""
Tests for MindMapSession: latest-request-wins generation, error state,
file loading and exports on top of the current map.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from mapstudio.core.errors import (
    SERVICE_UNREACHABLE_MESSAGE,
    PermanentServiceError,
    SupersededError,
    TransientServiceError,
    ValidationError,
)
from mapstudio.schemas.mindmap import ViewBox
from mapstudio.services.session import (
    EMPTY_TEXT_MESSAGE,
    NO_MAP_MESSAGE,
    MindMapSession,
    RequestTracker,
    SessionStore,
)
from mapstudio.services.viewport import GesturePhase


def make_session(generate, cfg):
    return MindMapSession(generate=generate, surface_width=1000, surface_height=800, cfg=cfg)


class TestRequestTracker:

    def test_only_latest_token_is_current(self):
        tracker = RequestTracker()
        first = tracker.begin()
        second = tracker.begin()
        assert not tracker.is_current(first)
        assert tracker.is_current(second)


class TestGenerate:

    def test_success_lays_out_and_fits(self, root_child_tree, cfg):
        session = make_session(AsyncMock(return_value=root_child_tree), cfg)
        tree = asyncio.run(session.generate("Some text"))
        assert tree is root_child_tree
        assert session.error is None
        assert session.is_loading is False
        assert session.positioned.children[0].y == 140
        assert session.viewport.view_box == ViewBox(x=-60, y=-60, width=300, height=340)

    def test_blank_text_sets_error_without_calling_generator(self, cfg):
        generate = AsyncMock()
        session = make_session(generate, cfg)
        assert asyncio.run(session.generate("   ")) is None
        assert session.error == EMPTY_TEXT_MESSAGE
        generate.assert_not_awaited()

    def test_uses_current_document_text(self, root_child_tree, cfg):
        generate = AsyncMock(return_value=root_child_tree)
        session = make_session(generate, cfg)
        session.document_text = "stored text"
        asyncio.run(session.generate())
        generate.assert_awaited_once_with("stored text")

    def test_failure_sets_single_error_message(self, cfg):
        failure = TransientServiceError(SERVICE_UNREACHABLE_MESSAGE, detail="socket")
        session = make_session(AsyncMock(side_effect=failure), cfg)
        assert asyncio.run(session.generate("text")) is None
        assert session.error == SERVICE_UNREACHABLE_MESSAGE
        assert session.tree is None
        assert session.is_loading is False

    def test_new_attempt_clears_previous_error(self, root_child_tree, cfg):
        generate = AsyncMock(side_effect=[PermanentServiceError("bad key"), root_child_tree])
        session = make_session(generate, cfg)
        asyncio.run(session.generate("text"))
        assert session.error == "bad key"
        asyncio.run(session.generate("text"))
        assert session.error is None
        assert session.tree is root_child_tree

    def test_new_map_gets_a_fresh_viewport(self, root_child_tree, uneven_tree, cfg):
        generate = AsyncMock(side_effect=[root_child_tree, uneven_tree])
        session = make_session(generate, cfg)
        asyncio.run(session.generate("one"))
        session.viewport.pointer_down(1, (10, 10))
        session.viewport.pan_by(50, 50)
        asyncio.run(session.generate("two"))
        assert session.viewport.phase is GesturePhase.IDLE
        assert session.viewport.view_box == ViewBox(x=-300, y=-60, width=780, height=480)


class TestLatestRequestWins:

    def _race(self, cfg, first_result, second_result):
        async def scenario():
            release_first = asyncio.Event()

            async def generate(text):
                if text == "first":
                    await release_first.wait()
                    if isinstance(first_result, Exception):
                        raise first_result
                    return first_result
                return second_result

            session = make_session(generate, cfg)
            slow = asyncio.create_task(session.generate("first"))
            await asyncio.sleep(0)
            fast = await session.generate("second")
            release_first.set()
            stale = await slow
            return session, stale, fast

        return asyncio.run(scenario())

    def test_stale_success_is_dropped(self, root_child_tree, uneven_tree, cfg):
        session, stale, fast = self._race(cfg, root_child_tree, uneven_tree)
        assert stale is None
        assert fast is uneven_tree
        assert session.tree is uneven_tree

    def test_stale_failure_does_not_overwrite_state(self, uneven_tree, cfg):
        session, stale, _ = self._race(cfg, PermanentServiceError("too late"), uneven_tree)
        assert stale is None
        assert session.error is None
        assert session.tree is uneven_tree

    def test_submit_raises_superseded_for_stale_request(self, root_child_tree, uneven_tree, cfg):
        async def scenario():
            release_first = asyncio.Event()

            async def generate(text):
                if text == "first":
                    await release_first.wait()
                    return root_child_tree
                return uneven_tree

            session = make_session(generate, cfg)
            slow = asyncio.create_task(session.submit("first"))
            await asyncio.sleep(0)
            await session.submit("second")
            release_first.set()
            with pytest.raises(SupersededError):
                await slow
            return session

        session = asyncio.run(scenario())
        assert session.tree is uneven_tree
        assert session.error is None


class TestSubmit:

    def test_failure_is_raised_and_kept(self, cfg):
        session = make_session(AsyncMock(side_effect=PermanentServiceError("bad key")), cfg)
        with pytest.raises(PermanentServiceError):
            asyncio.run(session.submit("text"))
        assert session.error == "bad key"

    def test_blank_text_raises(self, cfg):
        session = make_session(AsyncMock(), cfg)
        with pytest.raises(ValidationError) as exc:
            asyncio.run(session.submit(" "))
        assert exc.value.message == EMPTY_TEXT_MESSAGE


class TestSessionStore:

    def test_same_id_same_session(self):
        store = SessionStore()
        assert store.get("tab-1", generate=AsyncMock()) is store.get("tab-1")
        assert store.get("tab-2") is not store.get("tab-1")

    def test_generator_is_wired_in(self, root_child_tree):
        generate = AsyncMock(return_value=root_child_tree)
        session = SessionStore().get("tab", generate=generate)
        assert asyncio.run(session.generate("text")) is root_child_tree
        generate.assert_awaited_once_with("text")

    def test_least_recently_used_is_evicted(self):
        store = SessionStore(capacity=2)
        store.get("a")
        store.get("b")
        store.get("a")
        store.get("c")
        assert len(store) == 2
        assert "b" not in store
        assert "a" in store and "c" in store

class TestFileAndExport:

    def test_load_text_file(self, cfg):
        session = make_session(AsyncMock(), cfg)
        text = asyncio.run(session.load_file(b"Cells divide by mitosis.", "bio.txt"))
        assert text == "Cells divide by mitosis."
        assert session.document_text == text
        assert session.error is None

    def test_load_unsupported_file(self, cfg):
        session = make_session(AsyncMock(), cfg)
        assert asyncio.run(session.load_file(b"data", "deck.pptx")) is None
        assert session.error == ".pptx files are not supported for direct import yet."
        assert session.is_loading is False

    def test_export_without_map(self, cfg):
        session = make_session(AsyncMock(), cfg)
        assert session.export_outline() is None
        assert session.error == NO_MAP_MESSAGE
        assert session.export_pdf() is None

    def test_export_with_map(self, root_child_tree, cfg):
        session = make_session(AsyncMock(), cfg)
        session.show(root_child_tree)
        assert session.export_outline() == ["Topic: Root", "  Topic: Child"]
        assert session.export_pdf().startswith(b"%PDF")

    def test_search_before_and_after_map(self, uneven_tree, cfg):
        session = make_session(AsyncMock(), cfg)
        assert session.search("beta") == []
        session.show(uneven_tree)
        assert [n.id for n in session.search("beta")] == ["b", "b1", "b2"]

    def test_resize_reaches_viewport(self, root_child_tree, cfg):
        session = make_session(AsyncMock(), cfg)
        session.show(root_child_tree)
        session.resize(150, 170)
        before = session.viewport.view_box
        session.viewport.pan_by(10, 10)
        assert session.viewport.view_box.x == pytest.approx(before.x - 20)
