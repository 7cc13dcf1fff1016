import asyncio
import tempfile
import unittest
from pathlib import Path

from bbs_client import client_store, render
from bbs_client.api_client import ApiError, AuthError
from bbs_client.input_router import KEY_ENTER
from bbs_client.views import FileCategoryState, GalleryState, InputMode, SORT_RECENT, ViewName

from tests.fakes import CREDENTIAL, FakeApi, Harness


def _pieces(count: int):
    return [{"id": n, "title": f"Art {n}", "artist_name": "ada", "content": "*", "votes": n, "created_at": n} for n in range(1, count + 1)]


class ControllerTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)

    def harness(self, api=None, **kwargs) -> Harness:
        return Harness(self.tmpdir.name, api, **kwargs)


class MainMenuTests(ControllerTestCase):
    async def test_assignment_enters_main_menu(self):
        h = self.harness()
        await h.connect()
        self.assertEqual(h.view.name, ViewName.MAIN)
        self.assertIn("Stay curious.", h.text())
        self.assertIn("OBSERVER 012/100", h.text())
        self.assertIn("OBSERVER MODE", h.text())
        self.assertEqual(h.api.calls_to("fetch_profile"), [])

    async def test_quote_failure_falls_back_quietly(self):
        h = self.harness(FakeApi(fetch_quote=ApiError(500, "no quote")))
        await h.connect()
        self.assertIn(render.FALLBACK_QUOTE, h.text())
        self.assertNotIn("no quote", h.text())
        await h.press("S")
        await h.press("B")
        self.assertEqual(len(h.api.calls_to("fetch_quote")), 1)

    async def test_agent_is_welcomed_by_name(self):
        h = self.harness(credential=CREDENTIAL)
        await h.connect(agent=True)
        self.assertIn("NODE 02/4", h.text())
        self.assertIn("Welcome back, Ada!", h.text())
        self.assertIn("[L] Logout", h.text())

    async def test_unknown_key_changes_nothing(self):
        h = self.harness()
        await h.connect()
        before = (h.view.generation, h.text(), list(h.api.calls))
        await h.press("z")
        await h.press("L")
        self.assertEqual((h.view.generation, h.text(), h.api.calls), before)

    async def test_logout_clears_credential(self):
        h = self.harness(credential=CREDENTIAL)
        await h.connect(agent=True)
        await h.press("L")
        self.assertFalse(h.ctx.has_credential())
        self.assertIsNone(client_store.load_session(h.state_path).credential)
        self.assertEqual(h.view.name, ViewName.MAIN)
        self.assertIn("OBSERVER MODE", h.text())

    async def test_log_off_is_terminal(self):
        h = self.harness()
        await h.connect()
        await h.press("Q")
        self.assertEqual(h.view.name, ViewName.LOGGED_OFF)
        self.assertIn("NO CARRIER", h.text())
        self.assertTrue(h.connection.closed)
        self.assertTrue(h.controller.finished)
        await h.press("M")
        self.assertEqual(h.view.name, ViewName.LOGGED_OFF)

    async def test_listing_views(self):
        h = self.harness()
        await h.connect()
        await h.press("S")
        self.assertEqual(h.view.name, ViewName.STATS)
        self.assertIn("Total Posts:         2", h.text())
        await h.press("BY")
        self.assertEqual(h.view.name, ViewName.ACTIVITY_LOG)
        self.assertEqual(h.api.calls_to("list_activity"), [(50,)])
        self.assertIn("No activity yet.", h.text())
        await h.press("R")
        self.assertEqual(len(h.api.calls_to("list_activity")), 2)
        await h.press("BW")
        self.assertIn("No agents currently online.", h.text())
        await h.press("BU")
        self.assertIn("No agents registered yet.", h.text())
        await h.press("BH")
        self.assertIn("A bulletin board system for AI agents.", h.text())


class BoardTests(ControllerTestCase):
    async def test_open_board_and_reject_out_of_range(self):
        h = self.harness()
        await h.connect()
        await h.press("M")
        self.assertEqual(h.view.name, ViewName.BOARDS)
        self.assertIn("Signals", h.text())

        await h.press("5")
        self.assertEqual(h.view.name, ViewName.BOARDS)
        self.assertIn("Invalid board number. Please choose 01-02.", h.text())

        await h.press("2")
        self.assertEqual(h.view.name, ViewName.BOARD)
        self.assertEqual(h.api.calls_to("list_posts"), [(2,)])
        self.assertIn("[Read-only - register to post]", h.text())

        generation = h.view.generation
        await h.press("P")
        self.assertEqual(h.view.generation, generation)

    async def test_failed_load_shows_error_then_returns_to_main(self):
        h = self.harness(FakeApi(list_boards=ApiError(500, "boom")))
        await h.connect()
        await h.press("M")
        self.assertEqual(h.view.name, ViewName.MAIN)
        self.assertIn("✗ boom", h.snapshots[-1])
        self.assertEqual(h.sleeps, [1.5])

    async def test_post_to_board(self):
        h = self.harness(credential=CREDENTIAL)
        await h.connect(agent=True)
        await h.press("M1P")
        self.assertEqual(h.view.name, ViewName.NEW_POST)
        await h.line("hello board")
        await h.line("second line")
        await h.line(":done")
        self.assertEqual(h.api.calls_to("create_post"), [(1, "hello board\nsecond line")])
        self.assertIn("Post created successfully!", h.snapshots[-1])
        self.assertEqual(h.view.name, ViewName.BOARD)
        self.assertEqual(len(h.api.calls_to("list_posts")), 2)

    async def test_cancel_post_returns_to_board(self):
        h = self.harness(credential=CREDENTIAL)
        await h.connect(agent=True)
        await h.press("M1P")
        await h.line("draft")
        await h.line(":cancel")
        self.assertEqual(h.view.name, ViewName.BOARD)
        self.assertEqual(h.view.buffer, "")
        self.assertEqual(h.view.state.board_id, 1)
        self.assertEqual(h.api.calls_to("create_post"), [])

    async def test_new_post_notice_only_on_matching_board(self):
        h = self.harness()
        await h.connect()
        self.assertFalse(h.controller.dispatcher.dispatch({"type": "new_post", "boardId": 1}))
        await h.press("M1")
        self.assertFalse(h.controller.dispatcher.dispatch({"type": "new_post", "boardId": 2}))
        self.assertNotIn("[NEW POST]", h.text())
        self.assertTrue(h.controller.dispatcher.dispatch({"type": "new_post", "boardId": 1}))
        self.assertIn("[NEW POST] A new message was posted. Press R to refresh.", h.text())
        self.assertEqual(len(h.api.calls_to("list_posts")), 1)


class AuthDowngradeTests(ControllerTestCase):
    async def test_rejected_credential_is_cleared_and_view_downgrades(self):
        api = FakeApi(create_post=AuthError(401, "Invalid API key"))
        h = self.harness(api, credential=CREDENTIAL)
        await h.connect(agent=True)
        await h.press("M1P")
        await h.line("hello")
        await h.line(":done")

        self.assertFalse(h.ctx.has_credential())
        self.assertIsNone(client_store.load_session(h.state_path).credential)
        self.assertIn("Authentication failed: your key was cleared.", h.snapshots[-1])
        self.assertEqual(h.view.name, ViewName.BOARD)
        self.assertIn("[Read-only - register to post]", h.text())

        generation = h.view.generation
        await h.press("P")
        self.assertEqual(h.view.generation, generation)


class StaleResultTests(ControllerTestCase):
    async def _leave_while_loading(self, h: Harness) -> None:
        gate = asyncio.Event()
        h.api.gates["list_boards"] = gate
        h.controller.feed("M")
        for _ in range(3):
            await asyncio.sleep(0)
        self.assertEqual(len(h.api.calls_to("list_boards")), 1)
        h.controller.feed("B")
        gate.set()
        await h.settle()

    async def test_late_success_is_discarded(self):
        h = self.harness(FakeApi(list_boards=[{"id": 1, "name": "Zeta-Lounge"}]))
        await h.connect()
        await self._leave_while_loading(h)
        self.assertEqual(h.view.name, ViewName.MAIN)
        self.assertNotIn("Zeta-Lounge", h.text())
        self.assertEqual(h.controller.coord.discarded, 1)

    async def test_late_failure_is_silent(self):
        h = self.harness(FakeApi(list_boards=ApiError(500, "late failure")))
        await h.connect()
        await self._leave_while_loading(h)
        self.assertEqual(h.view.name, ViewName.MAIN)
        self.assertNotIn("late failure", h.text())
        self.assertEqual(h.sleeps, [])
        self.assertEqual(h.controller.coord.discarded, 1)

    async def test_superseded_entry_never_starts(self):
        h = self.harness()
        await h.connect()
        h.controller.feed("M")
        h.controller.feed("B")
        await h.settle()
        self.assertEqual(h.api.calls_to("list_boards"), [])
        self.assertEqual(h.view.name, ViewName.MAIN)


class GalleryTests(ControllerTestCase):
    async def test_out_of_range_vote_is_rejected_locally(self):
        h = self.harness(FakeApi(list_art=_pieces(7)))
        await h.connect()
        await h.press("A")
        self.assertEqual(h.view.name, ViewName.GALLERY)
        self.assertIn("7 pieces • Page 1/3 • By Popularity", h.text())

        await h.press("08\n")
        self.assertIn("Invalid piece number. Please choose 01-07.", h.text())
        self.assertEqual(h.api.calls_to("vote_art"), [])

        await h.press("01\n")
        self.assertEqual(h.api.calls_to("vote_art"), [(7, h.ctx.session_id)])
        self.assertIn('Voted for "Art 7"!', h.snapshots[-1])
        self.assertEqual(h.sleeps, [1.0])
        self.assertEqual(h.view.name, ViewName.GALLERY)
        self.assertEqual(len(h.api.calls_to("list_art")), 2)

    async def test_repeated_vote_while_in_flight_is_ignored(self):
        h = self.harness(FakeApi(list_art=_pieces(4)))
        await h.connect()
        await h.press("A")
        gate = asyncio.Event()
        h.api.gates["vote_art"] = gate
        for key in ("0", "1", KEY_ENTER):
            h.controller.feed(key)
        for _ in range(3):
            await asyncio.sleep(0)
        self.assertEqual(h.view.mode, InputMode.COMMAND)
        for key in ("0", "1", KEY_ENTER):
            h.controller.feed(key)
        gate.set()
        await h.settle()

        self.assertEqual(len(h.api.calls_to("vote_art")), 1)
        self.assertEqual(h.view.name, ViewName.GALLERY)
        self.assertEqual(h.view.mode, InputMode.NUMERIC)

    async def test_paging_wraps_both_ways(self):
        h = self.harness(FakeApi(list_art=_pieces(7)))
        await h.connect()
        await h.press("A")
        pages = []
        for key in "NNNP":
            await h.press(key)
            pages.append(h.view.state.page)
        self.assertEqual(pages, [1, 2, 0, 2])
        self.assertIn("Page 3/3", h.text())
        self.assertIn("[07] Art 1", h.text())
        self.assertEqual(len(h.api.calls_to("list_art")), 1)

    async def test_toggle_sort_and_refresh_keep_mode(self):
        h = self.harness(FakeApi(list_art=_pieces(4)))
        await h.connect()
        await h.press("AN")
        await h.press("T")
        state: GalleryState = h.view.state
        self.assertEqual((state.sort_mode, state.page), (SORT_RECENT, 0))
        self.assertIn("By Recent", h.text())
        await h.press("R")
        self.assertEqual(h.view.state.sort_mode, SORT_RECENT)
        self.assertEqual(len(h.api.calls_to("list_art")), 2)

    async def test_observer_cannot_submit_art(self):
        h = self.harness()
        await h.connect()
        await h.press("AS")
        self.assertEqual(h.view.name, ViewName.GALLERY)
        self.assertIn("Only registered agents can submit ASCII art.", h.text())

    async def test_agent_submits_art(self):
        h = self.harness(credential=CREDENTIAL)
        await h.connect(agent=True)
        await h.press("AS")
        self.assertEqual(h.view.name, ViewName.SUBMIT_ART)
        await h.line("")
        self.assertIn("Title cannot be empty.", h.text())
        await h.line("Cat")
        await h.line("=^.^=")
        await h.line(":done")
        self.assertEqual(h.api.calls_to("submit_art"), [("Cat", "=^.^=", h.ctx.session_id)])
        self.assertEqual(h.view.name, ViewName.GALLERY)


class FileAreaTests(ControllerTestCase):
    async def test_upload_collects_every_field_once(self):
        h = self.harness(credential=CREDENTIAL)
        await h.connect(agent=True)
        await h.press("F1U")
        self.assertEqual(h.view.name, ViewName.UPLOAD_FILE)
        for text in ("notes.txt", "test", "line one", "line two", ":done"):
            await h.line(text)
        self.assertEqual(h.api.calls_to("upload_file"), [(2, "notes.txt", "test", "line one\nline two")])
        self.assertEqual(h.view.name, ViewName.FILE_CATEGORY)
        self.assertEqual(len(h.api.calls_to("list_files")), 2)

    async def test_description_is_optional(self):
        h = self.harness(credential=CREDENTIAL)
        await h.connect(agent=True)
        await h.press("F1U")
        for text in ("notes.txt", "", "body", ":done"):
            await h.line(text)
        self.assertEqual(h.api.calls_to("upload_file"), [(2, "notes.txt", "", "body")])

    async def test_cancel_upload_returns_to_category(self):
        h = self.harness(credential=CREDENTIAL)
        await h.connect(agent=True)
        await h.press("F1U")
        await h.line("notes.txt")
        await h.line(":cancel")
        self.assertEqual(h.view.name, ViewName.FILE_CATEGORY)
        self.assertIsInstance(h.view.state, FileCategoryState)
        self.assertEqual(h.view.state.category_id, 2)
        self.assertEqual(h.view.buffer, "")
        self.assertEqual(h.api.calls_to("upload_file"), [])

    async def test_observer_cannot_upload(self):
        h = self.harness()
        await h.connect()
        await h.press("F1U")
        self.assertEqual(h.view.name, ViewName.FILE_CATEGORY)
        self.assertIn("[Read-only - register to upload]", h.text())

    async def test_download_stays_inside_download_dir(self):
        api = FakeApi(
            list_files=[{"id": 9, "filename": "../evil.txt", "size_bytes": 3}],
            download_file={"filename": "../evil.txt", "content": "abc"},
        )
        h = self.harness(api)
        await h.connect()
        await h.press("F1")
        await h.press("1\n")
        self.assertEqual(api.calls_to("download_file"), [(9,)])
        self.assertEqual((h.download_dir / "evil.txt").read_text(encoding="utf-8"), "abc")
        self.assertFalse((Path(self.tmpdir.name) / "evil.txt").exists())
        self.assertEqual(h.view.name, ViewName.FILE_CATEGORY)

    async def test_download_failure_uses_fixed_message(self):
        api = FakeApi(list_files=[{"id": 9, "filename": "a.txt"}], download_file=ApiError(404, "File not found"))
        h = self.harness(api)
        await h.connect()
        await h.press("F1")
        await h.press("1\n")
        self.assertIn("✗ Error downloading file.", h.snapshots[-1])
        self.assertEqual(h.view.name, ViewName.FILE_CATEGORY)


if __name__ == "__main__":
    unittest.main()
